# queuedesk/app/estimator.py
"""
Wait-time estimates for the display boards and the check-in desk.

The remote predictor is asked first. Whatever goes wrong with it (no URL
configured, timeout, HTTP error, garbage payload) the estimator answers with
the simple people-per-staff formula instead, so callers always get a number.
"""
import json
import logging
import math
import random
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Protocol

import requests
from pydantic import BaseModel, Field

from .errors import PredictionUnavailable
from . import config

logger = logging.getLogger(__name__)

BASE_MINUTES_PER_PERSON = 5
MIN_PREDICTED_MINUTES = 5

FALLBACK_REASONING = (
    "Using fallback calculation. The estimated wait is based on the number of "
    "people in the queue and available staff."
)


class PredictionRequest(BaseModel):
    historicalData: str
    currentQueueStatus: str
    staffAvailability: str
    serviceTypesRequested: str


class PredictionResult(BaseModel):
    predictedWaitTime: float
    reasoning: str = ""


class Estimate(BaseModel):
    minutes: int = Field(ge=0)
    reasoning: str
    fallback: bool = False


class PredictionCollaborator(Protocol):
    def predict(self, request: PredictionRequest) -> PredictionResult:
        ...


class HttpPredictionClient:
    """POSTs the prediction request to a remote model endpoint."""

    def __init__(self, url: str, timeout: float = config.PREDICTION_TIMEOUT,
                 session: Optional[requests.Session] = None):
        self.url = url
        self.timeout = timeout
        self.session = session or requests.Session()

    def predict(self, request: PredictionRequest) -> PredictionResult:
        try:
            r = self.session.post(self.url, json=request.model_dump(), timeout=self.timeout)
            r.raise_for_status()
            return PredictionResult.model_validate(r.json())
        except (requests.RequestException, ValueError) as e:
            raise PredictionUnavailable(str(e)) from e


def default_jitter(rng=random) -> int:
    # +-2 around the prediction, then a further 0..2 upward nudge
    return rng.randint(-2, 2) + rng.randint(0, 2)


def fallback_minutes(queue_length: int, active_staff: int) -> int:
    if queue_length <= 0:
        return 0
    staff = max(1, active_staff)
    # round half up
    return math.floor(queue_length * BASE_MINUTES_PER_PERSON / staff + 0.5)


class WaitTimeEstimator:
    def __init__(self, collaborator: Optional[PredictionCollaborator] = None,
                 jitter: Callable[[], int] = default_jitter, total_staff: Optional[int] = None):
        self.collaborator = collaborator
        self.jitter = jitter
        self.total_staff = total_staff

    def build_request(self, queue_length: int, active_staff: int, served_today: int,
                      history: Optional[List[Dict[str, Any]]] = None,
                      service_mix: Optional[Dict[str, int]] = None) -> PredictionRequest:
        mix = [{"type": name, "count": count} for name, count in sorted((service_mix or {}).items())]
        return PredictionRequest(
            historicalData=json.dumps(history or []),
            currentQueueStatus=json.dumps({
                "queueLength": queue_length,
                "servicedToday": served_today,
                "timestamp": datetime.now(timezone.utc).isoformat(),
            }),
            staffAvailability=json.dumps({
                "activeStaff": active_staff,
                "totalStaff": self.total_staff if self.total_staff is not None else active_staff,
            }),
            serviceTypesRequested=json.dumps(mix),
        )

    def estimate(self, queue_length: int, active_staff: int, served_today: int, *,
                 history: Optional[List[Dict[str, Any]]] = None,
                 service_mix: Optional[Dict[str, int]] = None) -> Estimate:
        if self.collaborator is not None:
            try:
                request = self.build_request(queue_length, active_staff, served_today, history, service_mix)
                result = self.collaborator.predict(request)
                minutes = max(MIN_PREDICTED_MINUTES, round(result.predictedWaitTime) + self.jitter())
                return Estimate(minutes=minutes, reasoning=result.reasoning)
            except Exception as e:
                logger.warning("wait-time prediction failed, using fallback: %s", e)
        return Estimate(
            minutes=fallback_minutes(queue_length, active_staff),
            reasoning=FALLBACK_REASONING,
            fallback=True,
        )


def build_estimator(total_staff: Optional[int] = None) -> WaitTimeEstimator:
    collaborator = HttpPredictionClient(config.PREDICTION_URL) if config.PREDICTION_URL else None
    return WaitTimeEstimator(collaborator=collaborator, total_staff=total_staff)
