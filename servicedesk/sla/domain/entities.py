"""
SLA Domain Entities
====================

Policies, the ticket attributes they are matched against, and the
resolved outcome. No database or framework imports.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Tuple
from uuid import UUID

from servicedesk.config import SLASource, TicketPriority
from servicedesk.core import utcnow


@dataclass(frozen=True)
class SLAPolicy:
    """
    A configured response/resolution target.

    Each of the four match dimensions is either bound (must equal the ticket's
    value) or None (wildcard). The more dimensions bound, the more specific
    the policy.
    """

    id: str
    response_time_minutes: int
    resolution_time_minutes: int
    created_at: datetime
    name: Optional[str] = None
    service_item_id: Optional[str] = None
    service_catalog_id: Optional[str] = None
    department_id: Optional[str] = None
    priority: Optional[TicketPriority] = None
    business_hours_only: bool = False
    is_active: bool = True

    @property
    def bound_dimensions(self) -> int:
        """Number of non-wildcard match fields."""
        return sum(
            value is not None
            for value in (self.service_item_id, self.service_catalog_id, self.department_id, self.priority)
        )

    @property
    def specificity_key(self) -> Tuple[bool, bool, bool, bool, datetime, str]:
        """
        Sort key, larger is more specific.

        Service item beats service catalog beats department beats priority;
        among equals the most recently created policy wins, then the id.
        """
        return (
            self.service_item_id is not None,
            self.service_catalog_id is not None,
            self.department_id is not None,
            self.priority is not None,
            self.created_at,
            self.id,
        )

    def matches(self, context: "SLAContext") -> bool:
        """Check whether every bound dimension equals the ticket's value."""
        if not self.is_active:
            return False
        ids = (
            (self.service_item_id, context.service_item_id),
            (self.service_catalog_id, context.service_catalog_id),
            (self.department_id, context.department_id),
        )
        if not all(bound is None or same_id(bound, actual) for bound, actual in ids):
            return False
        return self.priority is None or self.priority == context.priority


def same_id(left: Optional[str], right: Optional[str]) -> bool:
    """Compare ids as UUIDs when both parse, so spelling (case, hyphens) does not matter."""
    if left is None or right is None:
        return left is right
    try:
        return UUID(str(left)) == UUID(str(right))
    except ValueError:
        return str(left) == str(right)


@dataclass(frozen=True)
class SLAContext:
    """The ticket attributes an SLA is resolved against."""

    priority: TicketPriority
    created_by_user_id: str
    department_id: Optional[str] = None
    service_catalog_id: Optional[str] = None
    service_item_id: Optional[str] = None
    is_kasda_ticket: bool = False
    created_at: Optional[datetime] = None


@dataclass
class SLAResolution:
    """
    Outcome of SLA resolution.

    Always carries a concrete due date, whether it came from a configured
    policy or from the fallback table.
    """

    due_date: datetime
    response_due_date: datetime
    response_time_minutes: int
    resolution_time_minutes: int
    business_hours_only: bool
    source: SLASource
    policy: Optional[SLAPolicy] = None
    resolved_at: datetime = field(default_factory=utcnow)

    @property
    def policy_id(self) -> Optional[str]:
        return self.policy.id if self.policy else None

    def to_dict(self) -> dict:
        """Convert to dictionary for API responses."""
        return {
            "policy_id": self.policy_id,
            "policy_name": self.policy.name if self.policy else None,
            "due_date": self.due_date.isoformat(),
            "response_due_date": self.response_due_date.isoformat(),
            "response_time_minutes": self.response_time_minutes,
            "resolution_time_minutes": self.resolution_time_minutes,
            "business_hours_only": self.business_hours_only,
            "source": self.source.value,
        }
