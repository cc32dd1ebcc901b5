"""
Ticket Application DTOs
=======================

Pydantic request/response models for the ticket lifecycle API.
"""

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from servicedesk.config import TicketPriority
from servicedesk.directory import OrgUser
from servicedesk.tickets.domain import Ticket, TicketDraft


# ========== Type Aliases for Literals ==========
PriorityStr = Literal["low", "medium", "high", "urgent"]
TicketStatusStr = Literal[
    "pending_approval", "approved", "rejected", "assigned", "in_progress",
    "pending", "resolved", "closed", "cancelled"
]
ActionStr = Literal["approve", "reject", "cancel", "start", "hold", "resume", "resolve", "close"]


# ========== Request DTOs ==========

class TicketSubmitRequest(BaseModel):
    """Request model for filing a ticket."""
    title: str = Field(..., min_length=1, max_length=500, description="Ticket title")
    description: str = Field(..., min_length=1, description="Ticket description")
    created_by_user_id: str = Field(..., min_length=1, description="Requester user ID")
    priority: PriorityStr = Field(default="medium", description="Ticket priority")
    department_id: Optional[str] = Field(None, description="Department UUID")
    service_catalog_id: Optional[str] = Field(None, description="Service catalog ID")
    service_item_id: Optional[str] = Field(None, description="Service item ID")
    template_id: Optional[str] = Field(None, description="Ticket template ID")
    is_kasda_ticket: bool = Field(default=False, description="Government treasury (KASDA) ticket")

    @field_validator("title", "description")
    @classmethod
    def strip_text(cls, v: str) -> str:
        """Reject whitespace-only text."""
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v

    def to_draft(self) -> TicketDraft:
        return TicketDraft(
            title=self.title,
            description=self.description,
            created_by_user_id=self.created_by_user_id,
            priority=TicketPriority(self.priority),
            department_id=self.department_id,
            service_catalog_id=self.service_catalog_id,
            service_item_id=self.service_item_id,
            template_id=self.template_id,
            is_kasda_ticket=self.is_kasda_ticket,
        )


class TransitionRequest(BaseModel):
    """Request model for a lifecycle action."""
    actor_id: str = Field(..., min_length=1, description="User performing the action")
    comments: Optional[str] = Field(None, description="Required when rejecting")


# ========== Response DTOs ==========

class TicketResponse(BaseModel):
    """Response model for a ticket."""
    id: str
    title: str
    description: str
    status: TicketStatusStr
    priority: PriorityStr
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
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_entity(cls, ticket: Ticket) -> "TicketResponse":
        return cls(**ticket.to_dict())


class SubmissionResponse(BaseModel):
    """Response model for a submitted ticket."""
    ticket: TicketResponse
    sla_source: Literal["policy", "fallback"]
    sla_policy_id: Optional[str] = None
    reviewer_ids: List[str] = Field(default_factory=list, description="Reviewers notified")


class AssignmentSummary(BaseModel):
    success: bool
    reason: str
    assignment_method: Literal["auto", "manual"]
    assigned_user_id: Optional[str] = None
    assignment_rule_id: Optional[str] = None


class TransitionResponse(BaseModel):
    """Response model for a lifecycle action."""
    ticket: TicketResponse
    action: ActionStr
    previous_status: TicketStatusStr
    assignment: Optional[AssignmentSummary] = Field(
        None, description="Auto-assignment outcome, approve only"
    )


class ReviewerResponse(BaseModel):
    id: str
    username: str
    email: str
    role: str

    @classmethod
    def from_user(cls, user: OrgUser) -> "ReviewerResponse":
        return cls(id=user.id, username=user.username, email=user.email, role=user.role.value)
