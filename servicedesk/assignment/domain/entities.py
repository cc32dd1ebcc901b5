"""
Assignment Domain Entities
==========================

Technicians, auto-assignment rules and assignment outcomes.
"""

from dataclasses import dataclass, field
from typing import Optional, Tuple

from servicedesk.config import (
    EXPERIENCE_RANK,
    AssignmentMethod,
    AssignmentStrategy,
    ExperienceLevel,
    TicketPriority,
)


@dataclass(frozen=True)
class Technician:
    """A user who can be assigned tickets, as seen by the engine."""

    id: str
    username: str
    is_available: bool = True
    current_workload: int = 0
    workload_capacity: int = 10
    primary_skill: Optional[str] = None
    secondary_skills: Tuple[str, ...] = ()
    experience_level: ExperienceLevel = ExperienceLevel.JUNIOR
    department_id: Optional[str] = None

    @property
    def experience_rank(self) -> int:
        return EXPERIENCE_RANK[ExperienceLevel(self.experience_level)]

    @property
    def workload_percent(self) -> float:
        """Share of capacity in use; zero capacity counts as full."""
        if self.workload_capacity <= 0:
            return float("inf")
        return self.current_workload / self.workload_capacity * 100

    def has_skill(self, skill: str) -> bool:
        return self.primary_skill == skill or skill in self.secondary_skills


@dataclass(frozen=True)
class AssignmentCriteria:
    """Ticket attributes rules are matched against. None is a wildcard."""

    template_id: Optional[str] = None
    department_id: Optional[str] = None
    priority: Optional[TicketPriority] = None
    required_skill: Optional[str] = None


@dataclass(frozen=True)
class AssignmentRule:
    """
    An auto-assignment rule.

    A NULL rule field matches any ticket; a given criterion must equal a
    bound rule field. Rules are evaluated by priority, highest first.
    """

    id: str
    name: str
    assignment_strategy: AssignmentStrategy
    priority: int = 0
    template_id: Optional[str] = None
    department_id: Optional[str] = None
    priority_level: Optional[TicketPriority] = None
    required_skill: Optional[str] = None
    respect_capacity: bool = True
    max_workload_percent: int = 100
    is_active: bool = True
    last_assigned_user_id: Optional[str] = None


@dataclass
class AssignmentResult:
    """Outcome of an assignment attempt. A failure is not an error."""

    ticket_id: str
    success: bool
    reason: str
    assignment_method: AssignmentMethod = AssignmentMethod.AUTO
    assigned_user_id: Optional[str] = None
    assignment_rule_id: Optional[str] = None
    previous_user_id: Optional[str] = field(default=None, repr=False)

    @classmethod
    def failure(cls, ticket_id: str, reason: str) -> "AssignmentResult":
        return cls(ticket_id=ticket_id, success=False, reason=reason)

    def to_dict(self) -> dict:
        return {
            "ticket_id": self.ticket_id,
            "success": self.success,
            "reason": self.reason,
            "assignment_method": self.assignment_method.value,
            "assigned_user_id": self.assigned_user_id,
            "assignment_rule_id": self.assignment_rule_id,
        }
