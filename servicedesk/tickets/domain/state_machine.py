"""
Ticket State Machine
====================

The fixed transition table of the ticket lifecycle.

approved -> assigned has no entry here: only the assignment engine
moves a ticket there, through its own compare-and-set update.
"""

from dataclasses import dataclass
from typing import Dict, FrozenSet

from servicedesk.config import TicketAction, TicketStatus
from servicedesk.core import ConfigurationException, InvalidTransitionException


@dataclass(frozen=True)
class Transition:
    """Allowed source statuses and the resulting status for one action."""
    sources: FrozenSet[TicketStatus]
    target: TicketStatus


TRANSITIONS: Dict[TicketAction, Transition] = {
    TicketAction.APPROVE: Transition(frozenset({TicketStatus.PENDING_APPROVAL}), TicketStatus.APPROVED),
    TicketAction.REJECT: Transition(frozenset({TicketStatus.PENDING_APPROVAL}), TicketStatus.REJECTED),
    TicketAction.CANCEL: Transition(
        frozenset({TicketStatus.PENDING_APPROVAL, TicketStatus.APPROVED}), TicketStatus.CANCELLED
    ),
    TicketAction.START: Transition(frozenset({TicketStatus.ASSIGNED}), TicketStatus.IN_PROGRESS),
    TicketAction.HOLD: Transition(frozenset({TicketStatus.IN_PROGRESS}), TicketStatus.PENDING),
    TicketAction.RESUME: Transition(frozenset({TicketStatus.PENDING}), TicketStatus.IN_PROGRESS),
    TicketAction.RESOLVE: Transition(frozenset({TicketStatus.IN_PROGRESS}), TicketStatus.RESOLVED),
    TicketAction.CLOSE: Transition(
        frozenset({TicketStatus.RESOLVED, TicketStatus.ASSIGNED}), TicketStatus.CLOSED
    ),
}

# Every action must have an entry.
_missing = set(TicketAction) - set(TRANSITIONS)
if _missing:
    raise ConfigurationException("Ticket actions without a transition", {"actions": sorted(a.value for a in _missing)})

APPROVAL_ACTIONS = frozenset({TicketAction.APPROVE, TicketAction.REJECT})


def next_status(ticket_id: str, current: TicketStatus, action: TicketAction) -> TicketStatus:
    """
    Target status of an action.

    Raises:
        InvalidTransitionException: if the action is not allowed from current
    """
    transition = TRANSITIONS[TicketAction(action)]
    if current not in transition.sources:
        raise InvalidTransitionException(
            ticket_id, getattr(current, "value", current), TicketAction(action).value
        )
    return transition.target

