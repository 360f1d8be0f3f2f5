# queuedesk/app/tickets.py
import threading

from .db import SessionLocal
from .errors import WriteConflict
from .store import TICKET_COUNTER_KEY, QueueStore
from . import config

# a lost bump always means another front door got a ticket, so this only
# runs out under pathological contention
MAX_ISSUE_ATTEMPTS = 100


def format_ticket(seq: int, prefix: str = config.TICKET_PREFIX) -> str:
    return f"{prefix}{seq:03d}"


class TicketIssuer:
    """Hands out ticket numbers from the persisted ``ticketCounter``."""

    def __init__(self, session_factory=SessionLocal, start: int = config.TICKET_START,
                 prefix: str = config.TICKET_PREFIX, max_attempts: int = MAX_ISSUE_ATTEMPTS):
        self.store = QueueStore(session_factory)
        self.start = start
        self.prefix = prefix
        self.max_attempts = max_attempts
        self._lock = threading.Lock()

    def issue(self) -> str:
        """
        Claim the counter's current value and move it on by one.

        The bump is a versioned compare-and-set on the counter row, so two
        issuers sharing a database (kiosk and desk, or several server
        workers) can never both claim the same value; the loser re-reads and
        tries again. A missing counter starts at ``start``.
        """
        with self._lock:
            for _ in range(self.max_attempts):
                value, version = self.store.read(TICKET_COUNTER_KEY)
                seq = self.start if value is None else int(value)
                if self.store.compare_and_set({TICKET_COUNTER_KEY: (seq + 1, version)}):
                    return format_ticket(seq, self.prefix)
            raise WriteConflict(f"could not claim a ticket after {self.max_attempts} attempts")
