"""
Ticket Domain Layer
===================

Entities (Ticket, TicketDraft, BusinessApproval, AssignmentLogEntry) and
the lifecycle transition table.
"""

from servicedesk.tickets.domain.entities import (
    Ticket,
    TicketDraft,
    BusinessApproval,
    AssignmentLogEntry,
)
from servicedesk.tickets.domain.state_machine import (
    TRANSITIONS,
    APPROVAL_ACTIONS,
    next_status,
)

__all__ = [
    "Ticket",
    "TicketDraft",
    "BusinessApproval",
    "AssignmentLogEntry",
    "TRANSITIONS",
    "APPROVAL_ACTIONS",
    "next_status",
]
