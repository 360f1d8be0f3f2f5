# queuedesk/app/schemas.py
from datetime import datetime, timedelta
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from .errors import InvalidTransition


class EntryStatus(str, Enum):
    WAITING = "waiting"
    IN_SERVICE = "in-service"
    SERVICED = "serviced"

    @property
    def rank(self) -> int:
        return _STATUS_ORDER.index(self)

    def can_advance_to(self, other: "EntryStatus") -> bool:
        return other.rank > self.rank


_STATUS_ORDER = [EntryStatus.WAITING, EntryStatus.IN_SERVICE, EntryStatus.SERVICED]


def ticket_sequence(ticket_number: str) -> int:
    digits = ticket_number.rpartition("-")[2]
    return int(digits) if digits.isdigit() else 0


class ServiceRequest(BaseModel):
    name: str
    counter_class: str
    avg_minutes: int = Field(gt=0)


class Feedback(BaseModel):
    rating: str = Field(pattern="^(excellent|good|fair|poor)$")
    comments: Optional[str] = None


class QueueEntry(BaseModel):
    id: str
    ticket_number: str
    name: str
    phone: str = ""
    check_in_time: datetime
    status: EntryStatus = EntryStatus.WAITING
    requested_services: List[ServiceRequest] = Field(default_factory=list)
    assigned_counter: Optional[str] = None
    assigned_to: Optional[int] = None
    service_start_time: Optional[datetime] = None
    estimated_completion_time: Optional[datetime] = None
    service_notes: Optional[str] = None
    feedback: Optional[Feedback] = None

    def total_minutes(self) -> int:
        return sum(s.avg_minutes for s in self.requested_services)

    def fifo_key(self):
        return (self.check_in_time, ticket_sequence(self.ticket_number))

    def advance(self, status: EntryStatus, **changes) -> "QueueEntry":
        """Return a copy moved forward to ``status``; regressions are refused."""
        if not self.status.can_advance_to(status):
            raise InvalidTransition(
                f"{self.ticket_number}: cannot move from {self.status.value} to {status.value}"
            )
        return self.model_copy(update={"status": status, **changes})

    def wait_minutes(self) -> Optional[float]:
        if self.service_start_time is None:
            return None
        return max(timedelta(0), self.service_start_time - self.check_in_time).total_seconds() / 60


# --- API payloads ---

class CheckInIn(BaseModel):
    name: str = Field(min_length=1)
    phone: str = ""
    services: List[str] = Field(default_factory=list)


class ServicesIn(BaseModel):
    services: List[str] = Field(min_length=1)


class RecommendIn(BaseModel):
    issue_description: str = Field(min_length=1)


class ResolveIn(BaseModel):
    notes: str = ""
    user: Optional[str] = None


class TransferIn(BaseModel):
    staff_id: int
    user: Optional[str] = None


class TicketStatus(BaseModel):
    entry: QueueEntry
    position: Optional[int] = None
    serviced: bool = False
    unroutable: bool = False


class Analytics(BaseModel):
    total_waiting: int
    in_service: int
    serviced_count: int
    average_service_time: float
    max_wait_time: float
    feedback_received: int
