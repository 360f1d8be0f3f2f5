import json
import random

import pytest
import requests

from queuedesk.app.errors import PredictionUnavailable
from queuedesk.app.estimator import (
    HttpPredictionClient,
    PredictionResult,
    WaitTimeEstimator,
    default_jitter,
    fallback_minutes,
)


class StubPredictor:
    def __init__(self, minutes=None, reasoning="busy afternoon", exc=None):
        self.minutes = minutes
        self.reasoning = reasoning
        self.exc = exc
        self.requests = []

    def predict(self, request):
        self.requests.append(request)
        if self.exc is not None:
            raise self.exc
        return PredictionResult(predictedWaitTime=self.minutes, reasoning=self.reasoning)


def test_fallback_when_collaborator_fails():
    est = WaitTimeEstimator(collaborator=StubPredictor(exc=RuntimeError("model offline")), jitter=lambda: 0)
    result = est.estimate(10, 2, 0)
    assert result.minutes == 25
    assert result.fallback
    assert "fallback" in result.reasoning.lower()


def test_fallback_without_collaborator():
    result = WaitTimeEstimator().estimate(10, 2, 3)
    assert result.minutes == 25
    assert result.fallback


@pytest.mark.parametrize("length,staff,expected", [
    (0, 2, 0),
    (1, 2, 3),
    (3, 2, 8),
    (7, 3, 12),
    (4, 0, 20),
])
def test_fallback_formula(length, staff, expected):
    assert fallback_minutes(length, staff) == expected


def test_prediction_is_used_with_jitter():
    est = WaitTimeEstimator(collaborator=StubPredictor(minutes=18), jitter=lambda: 2)
    result = est.estimate(6, 2, 4)
    assert result.minutes == 20
    assert result.reasoning == "busy afternoon"
    assert not result.fallback


def test_prediction_clamped_to_five_minutes():
    est = WaitTimeEstimator(collaborator=StubPredictor(minutes=1), jitter=lambda: -2)
    assert est.estimate(1, 2, 0).minutes == 5


def test_collaborator_receives_json_context():
    stub = StubPredictor(minutes=12)
    est = WaitTimeEstimator(collaborator=stub, jitter=lambda: 0, total_staff=4)
    est.estimate(3, 2, 9, history=[{"hour": 9, "served": 2, "avgWaitMinutes": 7.5}],
                 service_mix={"Blood Test": 2, "General Physician": 1})
    sent = stub.requests[0]
    assert json.loads(sent.currentQueueStatus)["queueLength"] == 3
    assert json.loads(sent.currentQueueStatus)["servicedToday"] == 9
    assert json.loads(sent.staffAvailability) == {"activeStaff": 2, "totalStaff": 4}
    assert json.loads(sent.historicalData)[0]["hour"] == 9
    assert json.loads(sent.serviceTypesRequested) == [
        {"type": "Blood Test", "count": 2},
        {"type": "General Physician", "count": 1},
    ]


def test_default_jitter_bounds():
    rng = random.Random(42)
    values = {default_jitter(rng) for _ in range(500)}
    assert min(values) >= -2
    assert max(values) <= 4


class _Response:
    def __init__(self, payload=None, status=200):
        self.payload = payload
        self.status_code = status

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        if self.payload is None:
            raise ValueError("no json")
        return self.payload


class _Session:
    def __init__(self, response=None, exc=None):
        self.response = response
        self.exc = exc
        self.calls = []

    def post(self, url, json=None, timeout=None):
        self.calls.append((url, json, timeout))
        if self.exc is not None:
            raise self.exc
        return self.response


def test_http_client_parses_prediction():
    session = _Session(_Response({"predictedWaitTime": 14, "reasoning": "two doctors on break"}))
    client = HttpPredictionClient("http://predictor/wait", timeout=2.5, session=session)
    est = WaitTimeEstimator(collaborator=client, jitter=lambda: 0)
    result = est.estimate(4, 2, 1)
    assert result.minutes == 14
    url, body, timeout = session.calls[0]
    assert url == "http://predictor/wait"
    assert timeout == 2.5
    assert set(body) == {"historicalData", "currentQueueStatus", "staffAvailability", "serviceTypesRequested"}


@pytest.mark.parametrize("session", [
    _Session(exc=requests.Timeout("slow")),
    _Session(_Response(status=503)),
    _Session(_Response(payload=None)),
    _Session(_Response({"reasoning": "forgot the number"})),
])
def test_http_client_failures_become_unavailable(session):
    client = HttpPredictionClient("http://predictor/wait", session=session)
    with pytest.raises(PredictionUnavailable):
        client.predict(WaitTimeEstimator().build_request(1, 1, 0))
    result = WaitTimeEstimator(collaborator=client).estimate(10, 2, 0)
    assert result.fallback
    assert result.minutes == 25
