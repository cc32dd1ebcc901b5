"""
Assignment Application DTOs
===========================

Pydantic request/response models for the assignment API.
"""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field

from servicedesk.config import TicketPriority
from servicedesk.assignment.domain import AssignmentCriteria, AssignmentResult
from servicedesk.tickets.domain import AssignmentLogEntry

PriorityStr = Literal["low", "medium", "high", "urgent"]
AssignmentMethodStr = Literal["auto", "manual"]


class AutoAssignRequest(BaseModel):
    """
    Request model for auto-assignment.

    Criteria left empty are taken from the ticket; required_skill is only
    known to the caller.
    """
    assigned_by: Optional[str] = Field(None, description="Acting user ID")
    template_id: Optional[str] = None
    department_id: Optional[str] = None
    priority: Optional[PriorityStr] = None
    required_skill: Optional[str] = Field(None, description="Skill the ticket needs")

    def has_criteria(self) -> bool:
        return any((self.template_id, self.department_id, self.priority, self.required_skill))

    def to_criteria(self) -> AssignmentCriteria:
        return AssignmentCriteria(
            template_id=self.template_id,
            department_id=self.department_id,
            priority=TicketPriority(self.priority) if self.priority else None,
            required_skill=self.required_skill,
        )


class ManualAssignRequest(BaseModel):
    """Request model for manual assignment."""
    user_id: str = Field(..., min_length=1, description="Technician to assign")
    assigned_by: str = Field(..., min_length=1, description="Acting user ID")
    reason: Optional[str] = Field(None, max_length=1000, description="Why this technician")


class AssignmentResultResponse(BaseModel):
    """Outcome of an assignment attempt."""
    ticket_id: str
    success: bool
    reason: str
    assignment_method: AssignmentMethodStr
    assigned_user_id: Optional[str] = None
    assignment_rule_id: Optional[str] = None

    @classmethod
    def from_result(cls, result: AssignmentResult) -> "AssignmentResultResponse":
        return cls(**result.to_dict())


class AssignmentLogResponse(BaseModel):
    """One entry of a ticket's assignment history."""
    id: Optional[str] = None
    ticket_id: str
    assigned_to_user_id: str
    assignment_rule_id: Optional[str] = None
    assignment_method: AssignmentMethodStr
    assignment_reason: str
    assigned_by_user_id: Optional[str] = None
    created_at: datetime

    @classmethod
    def from_entry(cls, entry: AssignmentLogEntry) -> "AssignmentLogResponse":
        return cls(
            id=entry.id,
            ticket_id=entry.ticket_id,
            assigned_to_user_id=entry.assigned_to_user_id,
            assignment_rule_id=entry.assignment_rule_id,
            assignment_method=entry.assignment_method.value,
            assignment_reason=entry.assignment_reason,
            assigned_by_user_id=entry.assigned_by_user_id,
            created_at=entry.created_at,
        )
