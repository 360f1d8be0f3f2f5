# queuedesk/app/service.py
"""
Single writer for the queue and the serviced history.

Every change to either list goes through ``QueueStateService._mutate``: the
current documents are read together with their versions, the change is
computed in memory and both lists are written back with one compare-and-set.
A lost race simply re-reads and recomputes. Inside one process a lock keeps
ticks and staff actions from interleaving at all.
"""
import logging
import threading
import uuid
from collections import Counter
from datetime import datetime, timezone
from typing import Callable, Iterable, List, Optional, Set, Tuple

from .catalog import ServiceCatalog, default_catalog
from .db import SessionLocal
from .engine import TickResult, is_routable, tick
from .errors import InvalidTransition, QueueFull, UnknownTicket, WriteConflict
from .estimator import Estimate, WaitTimeEstimator, build_estimator
from .models import AuditLog
from .recommender import Recommendation, ServiceRecommender, build_recommender
from .schemas import Analytics, EntryStatus, Feedback, QueueEntry, TicketStatus
from .store import QUEUE_KEY, SERVICED_KEY, QueueStore
from .tickets import TicketIssuer
from . import config

logger = logging.getLogger(__name__)

Entries = List[QueueEntry]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _load(raw) -> Entries:
    return [QueueEntry.model_validate(item) for item in raw or []]


def _dump(entries: Iterable[QueueEntry]) -> list:
    return [e.model_dump(mode="json") for e in entries]


class QueueStateService:
    def __init__(self, store: Optional[QueueStore] = None, issuer: Optional[TicketIssuer] = None,
                 catalog: Optional[ServiceCatalog] = None, estimator: Optional[WaitTimeEstimator] = None,
                 session_factory=SessionLocal, max_waiting: int = config.MAX_WAITING,
                 max_retries: int = config.MAX_WRITE_RETRIES, clock: Callable[[], datetime] = utcnow,
                 recommender: Optional[ServiceRecommender] = None):
        self.session_factory = session_factory
        self.store = store or QueueStore(session_factory)
        self.issuer = issuer or TicketIssuer(session_factory)
        self.catalog = catalog or default_catalog()
        self.estimator = estimator or build_estimator(total_staff=len(self.catalog.counters))
        self.max_waiting = max_waiting
        self.max_retries = max_retries
        self.clock = clock
        self.recommender = recommender or build_recommender(self.catalog)
        self._lock = threading.RLock()
        # unroutable tickets already warned about
        self._stranded: Set[str] = set()

    # --- reads ---

    def _snapshot(self) -> Tuple[Entries, int, Entries, int]:
        raw_queue, qv = self.store.read(QUEUE_KEY, [])
        raw_serviced, sv = self.store.read(SERVICED_KEY, [])
        return _load(raw_queue), qv, _load(raw_serviced), sv

    def active_queue(self) -> Entries:
        return _load(self.store.get(QUEUE_KEY, []))

    def serviced(self) -> Entries:
        return _load(self.store.get(SERVICED_KEY, []))

    def find(self, ticket_number: str) -> TicketStatus:
        queue, _, serviced, _ = self._snapshot()
        for entry in queue:
            if entry.ticket_number == ticket_number:
                position = None
                if entry.status == EntryStatus.WAITING:
                    waiting = sorted((e for e in queue if e.status == EntryStatus.WAITING),
                                     key=lambda e: e.fifo_key())
                    position = [e.id for e in waiting].index(entry.id) + 1
                unroutable = (entry.status == EntryStatus.WAITING and bool(entry.requested_services)
                              and not is_routable(entry, self.catalog.counters))
                return TicketStatus(entry=entry, position=position, unroutable=unroutable)
        for entry in serviced:
            if entry.ticket_number == ticket_number:
                return TicketStatus(entry=entry, serviced=True)
        raise UnknownTicket(ticket_number)

    # --- writes ---

    def _mutate(self, change):
        """
        ``change(queue, serviced)`` returns ``(queue, serviced, result)`` or
        ``(None, None, result)`` when nothing needs writing. It may run more
        than once if another writer gets in first.
        """
        with self._lock:
            for attempt in range(1, self.max_retries + 1):
                queue, qv, serviced, sv = self._snapshot()
                new_queue, new_serviced, result = change(queue, serviced)
                if new_queue is None:
                    return result
                ok = self.store.compare_and_set({
                    QUEUE_KEY: (_dump(new_queue), qv),
                    SERVICED_KEY: (_dump(new_serviced), sv),
                })
                if ok:
                    return result
                logger.info("queue write conflict, retrying (attempt %d/%d)", attempt, self.max_retries)
            raise WriteConflict(f"gave up after {self.max_retries} conflicting writes")

    def run_tick(self, now: Optional[datetime] = None) -> TickResult:
        now = now or self.clock()

        def change(queue, serviced):
            result = tick(queue, now, self.catalog.counters)
            if not result.changed:
                return None, None, result
            return result.queue, serviced + result.newly_serviced, result

        with self._lock:
            result = self._mutate(change)
            for e in result.unroutable:
                if e.ticket_number not in self._stranded:
                    logger.warning("ticket %s requests services no counter offers: %s",
                                   e.ticket_number, ", ".join(s.name for s in e.requested_services))
            self._stranded = {e.ticket_number for e in result.unroutable}
        if result.changed:
            logger.info("tick %s: %d serviced, %d assigned, %d waiting",
                        now.isoformat(), len(result.newly_serviced), len(result.newly_assigned),
                        sum(1 for e in result.queue if e.status == EntryStatus.WAITING))
        return result

    def check_in(self, name: str, phone: str = "", services: Iterable[str] = (),
                 user: Optional[str] = None) -> QueueEntry:
        requests = self.catalog.requests_for(services)
        issued = {}

        def change(queue, serviced):
            waiting = sum(1 for e in queue if e.status == EntryStatus.WAITING)
            if waiting >= self.max_waiting:
                raise QueueFull(self.max_waiting)
            if not issued:
                # a retried write keeps its ticket and arrival time
                issued["ticket"] = self.issuer.issue()
                issued["at"] = self.clock()
            entry = QueueEntry(
                id=uuid.uuid4().hex,
                ticket_number=issued["ticket"],
                name=name.strip(),
                phone=phone.strip(),
                check_in_time=issued["at"],
                requested_services=requests,
            )
            return queue + [entry], serviced, entry

        entry = self._mutate(change)
        logger.info("checked in %s (%d services)", entry.ticket_number, len(entry.requested_services))
        self._audit("check_in", entry, user or "front_door", f"name={entry.name}")
        return entry

    def select_services(self, ticket_number: str, names: Iterable[str]) -> QueueEntry:
        requests = self.catalog.requests_for(names)

        def change(queue, serviced):
            i = self._index(queue, serviced, ticket_number)
            entry = queue[i]
            if entry.status != EntryStatus.WAITING:
                raise InvalidTransition(f"{ticket_number} is {entry.status.value}, services are frozen")
            updated = entry.model_copy(update={"requested_services": requests})
            return queue[:i] + [updated] + queue[i + 1:], serviced, updated

        return self._mutate(change)

    def resolve(self, ticket_number: str, notes: str = "", user: Optional[str] = None) -> QueueEntry:
        def change(queue, serviced):
            i = self._index(queue, serviced, ticket_number)
            entry = queue[i]
            done = entry.advance(EntryStatus.SERVICED, service_notes=notes or None,
                                 estimated_completion_time=self.clock())
            return queue[:i] + queue[i + 1:], serviced + [done], done

        entry = self._mutate(change)
        self._audit("resolve", entry, user or "staff", notes)
        return entry

    def transfer(self, ticket_number: str, staff_id: int, user: Optional[str] = None) -> QueueEntry:
        def change(queue, serviced):
            i = self._index(queue, serviced, ticket_number)
            updated = queue[i].model_copy(update={"assigned_to": staff_id})
            return queue[:i] + [updated] + queue[i + 1:], serviced, updated

        entry = self._mutate(change)
        self._audit("transfer", entry, user or "staff", f"to staff {staff_id}")
        return entry

    def add_feedback(self, ticket_number: str, feedback: Feedback) -> QueueEntry:
        def change(queue, serviced):
            for i, entry in enumerate(serviced):
                if entry.ticket_number == ticket_number:
                    updated = entry.model_copy(update={"feedback": feedback})
                    return queue, serviced[:i] + [updated] + serviced[i + 1:], updated
            if any(e.ticket_number == ticket_number for e in queue):
                raise InvalidTransition(f"{ticket_number} has not been serviced yet")
            raise UnknownTicket(ticket_number)

        return self._mutate(change)

    @staticmethod
    def _index(queue: Entries, serviced: Entries, ticket_number: str) -> int:
        for i, entry in enumerate(queue):
            if entry.ticket_number == ticket_number:
                return i
        if any(e.ticket_number == ticket_number for e in serviced):
            raise InvalidTransition(f"{ticket_number} has already been serviced")
        raise UnknownTicket(ticket_number)

    # --- derived numbers ---

    def recommend(self, issue_description: str) -> Optional[Recommendation]:
        return self.recommender.recommend(issue_description)

    def estimate_wait(self, active_staff: Optional[int] = None) -> Estimate:
        queue, _, serviced, _ = self._snapshot()
        waiting = [e for e in queue if e.status == EntryStatus.WAITING]
        today = self.clock().date()
        served_today = sum(
            1 for e in serviced
            if (e.estimated_completion_time or e.check_in_time).date() == today
        )
        mix = Counter(s.name for e in waiting for s in e.requested_services)
        staff = active_staff if active_staff is not None else len(self.catalog.counters)
        return self.estimator.estimate(len(waiting), staff, served_today,
                                       history=self._history(serviced), service_mix=dict(mix))

    @staticmethod
    def _history(serviced: Entries) -> list:
        by_hour = {}
        for e in serviced:
            wait = e.wait_minutes()
            if wait is None:
                continue
            by_hour.setdefault(e.check_in_time.hour, []).append(wait)
        return [
            {"hour": hour, "served": len(waits), "avgWaitMinutes": round(sum(waits) / len(waits), 1)}
            for hour, waits in sorted(by_hour.items())
        ]

    def analytics(self) -> Analytics:
        queue, _, serviced, _ = self._snapshot()
        durations = []
        waits = []
        for e in serviced:
            if e.estimated_completion_time is not None:
                minutes = (e.estimated_completion_time - e.check_in_time).total_seconds() / 60
                durations.append(max(0.0, minutes))
            wait = e.wait_minutes()
            if wait is not None:
                waits.append(wait)
        return Analytics(
            total_waiting=sum(1 for e in queue if e.status == EntryStatus.WAITING),
            in_service=sum(1 for e in queue if e.status == EntryStatus.IN_SERVICE),
            serviced_count=len(serviced),
            average_service_time=sum(durations) / len(durations) if durations else 0.0,
            max_wait_time=max(waits) if waits else 0.0,
            feedback_received=sum(1 for e in serviced if e.feedback is not None),
        )

    def _audit(self, action: str, entry: QueueEntry, user: str, details: Optional[str] = None) -> None:
        # best effort, an audit failure never undoes the action
        db = self.session_factory()
        try:
            db.add(AuditLog(entity="queue_entry", entity_id=entry.ticket_number, action=action,
                            user=user, details=details))
            db.commit()
        except Exception:
            db.rollback()
            logger.warning("audit write failed for %s %s", action, entry.ticket_number, exc_info=True)
        finally:
            db.close()
