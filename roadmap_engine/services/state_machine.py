"""
Roadmap Engine Ticket State Machine

Four workflow states, fully connected:

    not_started <-> in_progress <-> blocked <-> complete

Any state may move to any other state. `complete` is only terminal in the
sense that nothing moves a ticket out of it automatically. The one
structural illegality is a no-op move (from == to).
"""

from ..models.ticket import TicketStatus
from .errors import NoOpTransition


STATES = tuple(TicketStatus)


def is_legal_transition(from_status: TicketStatus, to_status: TicketStatus) -> bool:
    return TicketStatus(from_status) != TicketStatus(to_status)


def validate_transition(from_status: TicketStatus, to_status: TicketStatus) -> TicketStatus:
    """Return the target status, or raise NoOpTransition."""
    target = TicketStatus(to_status)
    if not is_legal_transition(from_status, target):
        raise NoOpTransition(target)
    return target


# Storage representation (features.status column) <-> API values.
_TO_STORAGE = {
    TicketStatus.NOT_STARTED: "backlog",
    TicketStatus.IN_PROGRESS: "active",
    TicketStatus.BLOCKED: "blocked",
    TicketStatus.COMPLETE: "complete",
}
_FROM_STORAGE = {v: k for k, v in _TO_STORAGE.items()}


def status_to_storage(status: TicketStatus) -> str:
    return _TO_STORAGE[TicketStatus(status)]


def status_from_storage(value: str) -> TicketStatus:
    """Unknown stored values fall back to not_started."""
    return _FROM_STORAGE.get(value, TicketStatus.NOT_STARTED)
