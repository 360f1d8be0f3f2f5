# queuedesk/app/engine.py
"""
One scheduling step over the active queue.

``tick`` is a pure function of the queue it is handed, the clock reading and
the counter configuration: it finishes visitors whose service time has run
out, then fills every free counter with the earliest eligible waiting visitor.
Nothing is written anywhere; the caller persists the result.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Sequence, Set

from .catalog import Counter
from .schemas import EntryStatus, QueueEntry

logger = logging.getLogger(__name__)


@dataclass
class TickResult:
    queue: List[QueueEntry]
    newly_serviced: List[QueueEntry] = field(default_factory=list)
    newly_assigned: List[QueueEntry] = field(default_factory=list)
    # waiting entries no configured counter can ever take
    unroutable: List[QueueEntry] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.newly_serviced or self.newly_assigned)


def is_routable(entry: QueueEntry, counters: Sequence[Counter]) -> bool:
    return any(c.can_serve(s) for s in entry.requested_services for c in counters)


def _eligible(entry: QueueEntry, counter: Counter) -> bool:
    return any(counter.can_serve(s) for s in entry.requested_services)


def tick(queue: Sequence[QueueEntry], now: datetime, counters: Sequence[Counter]) -> TickResult:
    # phase 1: completions
    active: List[QueueEntry] = []
    newly_serviced: List[QueueEntry] = []
    for entry in queue:
        due = entry.estimated_completion_time
        if entry.status == EntryStatus.IN_SERVICE and due is not None and due <= now:
            newly_serviced.append(entry.advance(EntryStatus.SERVICED))
        else:
            active.append(entry)

    # phase 2: fill free counters in declared order
    occupied: Set[str] = {
        e.assigned_counter for e in active
        if e.status == EntryStatus.IN_SERVICE and e.assigned_counter
    }
    waiting = sorted(
        (i for i, e in enumerate(active) if e.status == EntryStatus.WAITING and e.requested_services),
        key=lambda i: active[i].fifo_key(),
    )
    claimed: Set[int] = set()
    newly_assigned: List[QueueEntry] = []
    for counter in counters:
        if counter.name in occupied:
            continue
        for i in waiting:
            if i in claimed or not _eligible(active[i], counter):
                continue
            entry = active[i]
            assigned = entry.advance(
                EntryStatus.IN_SERVICE,
                assigned_counter=counter.name,
                service_start_time=now,
                estimated_completion_time=now + timedelta(minutes=entry.total_minutes()),
            )
            active[i] = assigned
            claimed.add(i)
            occupied.add(counter.name)
            newly_assigned.append(assigned)
            break

    unroutable = [
        e for e in active
        if e.status == EntryStatus.WAITING and e.requested_services and not is_routable(e, counters)
    ]
    for e in unroutable:
        logger.debug("ticket %s requests services no counter offers: %s",
                     e.ticket_number, ", ".join(s.name for s in e.requested_services))

    return TickResult(queue=active, newly_serviced=newly_serviced,
                      newly_assigned=newly_assigned, unroutable=unroutable)
