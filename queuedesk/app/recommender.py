# queuedesk/app/recommender.py
"""
Service suggestions for the front door.

A visitor describes their problem in a sentence and a remote model names the
catalog service that fits best. The suggestion is advisory: anything other
than a known catalog name with a reason attached is dropped, and the visitor
simply picks services by hand.
"""
import logging
from typing import Optional, Protocol

import requests
from pydantic import BaseModel

from .catalog import ServiceCatalog
from .errors import RecommendationUnavailable
from . import config

logger = logging.getLogger(__name__)


class RecommendationRequest(BaseModel):
    issueDescription: str


class Recommendation(BaseModel):
    serviceName: str
    reasoning: str = ""


class RecommendationCollaborator(Protocol):
    def recommend(self, request: RecommendationRequest) -> Recommendation:
        ...


class HttpRecommendationClient:
    """POSTs the issue description to a remote recommendation endpoint."""

    def __init__(self, url: str, timeout: float = config.RECOMMENDATION_TIMEOUT,
                 session: Optional[requests.Session] = None):
        self.url = url
        self.timeout = timeout
        self.session = session or requests.Session()

    def recommend(self, request: RecommendationRequest) -> Recommendation:
        try:
            r = self.session.post(self.url, json=request.model_dump(), timeout=self.timeout)
            r.raise_for_status()
            return Recommendation.model_validate(r.json())
        except (requests.RequestException, ValueError) as e:
            raise RecommendationUnavailable(str(e)) from e


class ServiceRecommender:
    def __init__(self, catalog: ServiceCatalog, collaborator: Optional[RecommendationCollaborator] = None):
        self.catalog = catalog
        self.collaborator = collaborator

    def recommend(self, issue_description: str) -> Optional[Recommendation]:
        """Return a suggestion naming a catalog service, or None."""
        description = (issue_description or "").strip()
        if self.collaborator is None or not description:
            return None
        try:
            result = self.collaborator.recommend(RecommendationRequest(issueDescription=description))
            if result.serviceName not in self.catalog.items:
                raise RecommendationUnavailable(f"not on the menu: {result.serviceName!r}")
            return result
        except Exception as e:
            logger.warning("service recommendation failed: %s", e)
            return None


def build_recommender(catalog: ServiceCatalog) -> ServiceRecommender:
    collaborator = HttpRecommendationClient(config.RECOMMENDATION_URL) if config.RECOMMENDATION_URL else None
    return ServiceRecommender(catalog, collaborator)
