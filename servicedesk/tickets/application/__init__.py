"""
Ticket Application Layer
========================

Contains:
- Services: TicketLifecycleService (submit, approve/reject, work transitions)
- Repository interfaces for tickets, approvals and the assignment log
"""

from servicedesk.tickets.application.services import (
    TicketLifecycleService,
    TicketRepositories,
    SubmissionResult,
    TransitionResult,
    ITicketRepository,
    IApprovalRepository,
    IAssignmentLogRepository,
)

__all__ = [
    "TicketLifecycleService",
    "TicketRepositories",
    "SubmissionResult",
    "TransitionResult",
    "ITicketRepository",
    "IApprovalRepository",
    "IAssignmentLogRepository",
]
