from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.orm import sessionmaker

from queuedesk.app.catalog import CatalogItem, Counter, ServiceCatalog
from queuedesk.app.db import init_db, make_engine
from queuedesk.app.estimator import WaitTimeEstimator
from queuedesk.app.service import QueueStateService
from queuedesk.app.store import QueueStore
from queuedesk.app.tickets import TicketIssuer

T0 = datetime(2024, 8, 1, 9, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now=T0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, minutes=0, seconds=0):
        self.now = self.now + timedelta(minutes=minutes, seconds=seconds)
        return self.now


@pytest.fixture
def session_factory():
    engine = make_engine("sqlite://")
    init_db(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def store(session_factory):
    return QueueStore(session_factory)


@pytest.fixture
def issuer(session_factory):
    return TicketIssuer(session_factory, start=1)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def small_catalog():
    counters = [
        Counter("Room 1", frozenset({"consult"})),
        Counter("Lab", frozenset({"blood"})),
    ]
    items = [
        CatalogItem("General Physician", "Consultation", "consult", 10),
        CatalogItem("Blood Test", "Diagnostics", "blood", 5),
        CatalogItem("Teleport", "Fiction", "teleport", 5),
    ]
    return ServiceCatalog(items, counters)


@pytest.fixture
def service(session_factory, store, issuer, small_catalog, clock):
    return QueueStateService(
        store=store,
        issuer=issuer,
        catalog=small_catalog,
        estimator=WaitTimeEstimator(jitter=lambda: 0),
        session_factory=session_factory,
        clock=clock,
    )
