"""
Ticket Domain Entities
======================

Pure Python domain entities for the ticket lifecycle.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from servicedesk.config import (
    ApprovalStatus,
    AssignmentMethod,
    TicketPriority,
    TicketStatus,
)
from servicedesk.core import utcnow


@dataclass
class Ticket:
    """
    A service request moving through approval, assignment and work.

    assigned_to_user_id is set exactly when the status carries an assignee,
    except for a ticket closed without ever being assigned.
    """

    id: str
    title: str
    description: str
    status: TicketStatus
    priority: TicketPriority
    created_by_user_id: str
    assigned_to_user_id: Optional[str] = None
    department_id: Optional[str] = None
    service_catalog_id: Optional[str] = None
    service_item_id: Optional[str] = None
    template_id: Optional[str] = None
    sla_due_date: Optional[datetime] = None
    response_due_date: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    is_kasda_ticket: bool = False
    is_classification_locked: bool = False
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict:
        """Convert to dictionary for API responses."""
        def _iso(value: Optional[datetime]) -> Optional[str]:
            return value.isoformat() if value else None

        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "status": self.status.value,
            "priority": self.priority.value,
            "created_by_user_id": self.created_by_user_id,
            "assigned_to_user_id": self.assigned_to_user_id,
            "department_id": self.department_id,
            "service_catalog_id": self.service_catalog_id,
            "service_item_id": self.service_item_id,
            "template_id": self.template_id,
            "sla_due_date": _iso(self.sla_due_date),
            "response_due_date": _iso(self.response_due_date),
            "resolved_at": _iso(self.resolved_at),
            "closed_at": _iso(self.closed_at),
            "is_kasda_ticket": self.is_kasda_ticket,
            "is_classification_locked": self.is_classification_locked,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


@dataclass
class TicketDraft:
    """A ticket as filed by a requester, before SLA resolution."""

    title: str
    description: str
    created_by_user_id: str
    priority: TicketPriority = TicketPriority.MEDIUM
    department_id: Optional[str] = None
    service_catalog_id: Optional[str] = None
    service_item_id: Optional[str] = None
    template_id: Optional[str] = None
    is_kasda_ticket: bool = False


@dataclass
class BusinessApproval:
    """The single approval record of a ticket."""

    id: str
    ticket_id: str
    approval_status: ApprovalStatus = ApprovalStatus.PENDING
    business_reviewer_id: Optional[str] = None
    approved_at: Optional[datetime] = None
    comments: Optional[str] = None


@dataclass(frozen=True)
class AssignmentLogEntry:
    """One row of the append-only assignment history."""

    ticket_id: str
    assigned_to_user_id: str
    assignment_method: AssignmentMethod
    assignment_reason: str
    assignment_rule_id: Optional[str] = None
    assigned_by_user_id: Optional[str] = None
    id: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
