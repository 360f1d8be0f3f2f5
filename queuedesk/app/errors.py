# queuedesk/app/errors.py


class QueueError(Exception):
    """Base class for errors surfaced to queue callers."""


class QueueFull(QueueError):
    def __init__(self, limit: int):
        super().__init__(f"queue is full ({limit} waiting)")
        self.limit = limit


class UnknownTicket(QueueError):
    def __init__(self, ticket_number: str):
        super().__init__(f"ticket {ticket_number} not found")
        self.ticket_number = ticket_number


class UnknownService(QueueError):
    def __init__(self, name: str):
        super().__init__(f"unknown service: {name}")
        self.name = name


class InvalidTransition(QueueError):
    """Raised when an action would move an entry backwards or act on the wrong state."""


class WriteConflict(QueueError):
    """Concurrent writers kept winning the compare-and-set."""


class PredictionUnavailable(Exception):
    """The prediction collaborator failed; never leaves the estimator."""


class RecommendationUnavailable(Exception):
    """The recommendation collaborator failed or answered off-menu."""
