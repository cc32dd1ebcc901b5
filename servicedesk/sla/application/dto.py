"""
SLA Application DTOs
=====================

Data Transfer Objects for SLA API layer.

Pydantic models for SLA resolution, policy administration and the
escalation sweep endpoints.
"""

from datetime import datetime
from typing import List, Literal, Optional
from uuid import uuid4

from pydantic import BaseModel, Field

from servicedesk.config import TicketPriority
from servicedesk.core import utcnow
from servicedesk.sla.domain import SLAContext, SLAPolicy, SLAResolution
from servicedesk.sla.services import EscalationSweepResult


# ========== Type Aliases for Literals ==========
PriorityStr = Literal["low", "medium", "high", "urgent"]
SLASourceStr = Literal["policy", "fallback"]


# ========== Request DTOs ==========

class SLAResolveRequest(BaseModel):
    """Ticket attributes to resolve an SLA for."""
    priority: PriorityStr = Field(..., description="Ticket priority")
    created_by_user_id: str = Field(..., min_length=1, description="Requester user ID")
    department_id: Optional[str] = Field(None, description="Department UUID")
    service_catalog_id: Optional[str] = Field(None, description="Service catalog ID")
    service_item_id: Optional[str] = Field(None, description="Service item ID")
    is_kasda_ticket: bool = Field(default=False, description="Government treasury (KASDA) ticket")
    created_at: Optional[datetime] = Field(None, description="Clock start; defaults to now")

    def to_context(self) -> SLAContext:
        return SLAContext(
            priority=TicketPriority(self.priority),
            created_by_user_id=self.created_by_user_id,
            department_id=self.department_id,
            service_catalog_id=self.service_catalog_id,
            service_item_id=self.service_item_id,
            is_kasda_ticket=self.is_kasda_ticket,
            created_at=self.created_at,
        )


class SLAPolicyCreateRequest(BaseModel):
    """A new policy; unset match fields are wildcards."""
    name: str = Field(..., min_length=1, max_length=200)
    service_item_id: Optional[str] = None
    service_catalog_id: Optional[str] = None
    department_id: Optional[str] = None
    priority: Optional[PriorityStr] = None
    response_time_minutes: int = Field(..., gt=0, description="First response target")
    resolution_time_minutes: int = Field(..., gt=0, description="Resolution target")
    business_hours_only: bool = Field(default=True, description="Count only open business hours")
    is_active: bool = True

    def to_policy(self) -> SLAPolicy:
        return SLAPolicy(
            id=str(uuid4()),
            name=self.name,
            service_item_id=self.service_item_id,
            service_catalog_id=self.service_catalog_id,
            department_id=self.department_id,
            priority=TicketPriority(self.priority) if self.priority else None,
            response_time_minutes=self.response_time_minutes,
            resolution_time_minutes=self.resolution_time_minutes,
            business_hours_only=self.business_hours_only,
            is_active=self.is_active,
            created_at=utcnow(),
        )


class EscalationSweepRequest(BaseModel):
    """Optional clock override for a manual sweep."""
    current_time: Optional[datetime] = Field(None, description="Evaluate as of this instant")


# ========== Response DTOs ==========

class SLAResolutionResponse(BaseModel):
    """Resolved SLA for a ticket."""
    policy_id: Optional[str] = Field(None, description="Applied policy, null for fallback")
    policy_name: Optional[str] = None
    due_date: datetime = Field(..., description="Resolution due date")
    response_due_date: datetime = Field(..., description="First response due date")
    response_time_minutes: int
    resolution_time_minutes: int
    business_hours_only: bool
    source: SLASourceStr

    @classmethod
    def from_resolution(cls, resolution: SLAResolution) -> "SLAResolutionResponse":
        return cls(**resolution.to_dict())


class SLAPolicyResponse(BaseModel):
    id: str
    name: Optional[str] = None
    service_item_id: Optional[str] = None
    service_catalog_id: Optional[str] = None
    department_id: Optional[str] = None
    priority: Optional[PriorityStr] = None
    response_time_minutes: int
    resolution_time_minutes: int
    business_hours_only: bool
    is_active: bool
    created_at: datetime

    @classmethod
    def from_entity(cls, policy: SLAPolicy) -> "SLAPolicyResponse":
        return cls(
            id=policy.id,
            name=policy.name,
            service_item_id=policy.service_item_id,
            service_catalog_id=policy.service_catalog_id,
            department_id=policy.department_id,
            priority=policy.priority.value if policy.priority else None,
            response_time_minutes=policy.response_time_minutes,
            resolution_time_minutes=policy.resolution_time_minutes,
            business_hours_only=policy.business_hours_only,
            is_active=policy.is_active,
            created_at=policy.created_at,
        )


class EscalationFailure(BaseModel):
    ticket_id: str
    error: str


class EscalationSweepResponse(BaseModel):
    """Summary of an escalation sweep."""
    started_at: datetime
    tickets_checked: int = Field(..., description="Overdue tickets selected")
    escalated_count: int
    escalated: List[str] = Field(default_factory=list)
    skipped: List[str] = Field(default_factory=list, description="No longer eligible at update time")
    failed_count: int
    failures: List[EscalationFailure] = Field(default_factory=list)

    @classmethod
    def from_result(cls, result: EscalationSweepResult) -> "EscalationSweepResponse":
        return cls(**result.to_dict())
