"""
Directory Entities
==================

Read-only view of the organization used by the approval guard.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional

from servicedesk.config import UserRole


@dataclass(frozen=True)
class OrgUser:
    """A user as seen by the organizational directory."""
    id: str
    username: str
    email: str
    role: UserRole
    unit_id: Optional[str] = None
    department_id: Optional[str] = None
    manager_id: Optional[str] = None
    is_business_reviewer: bool = False

    @property
    def can_review(self) -> bool:
        """Managers and admins flagged as business reviewers may approve."""
        return self.is_business_reviewer and self.role in (UserRole.MANAGER, UserRole.ADMIN)


class IOrgDirectory(ABC):
    """Interface for organizational lookups."""

    @abstractmethod
    async def get_user(self, user_id: str) -> Optional[OrgUser]:
        """Get a user by id."""

    @abstractmethod
    async def get_user_unit(self, user_id: str) -> Optional[str]:
        """Get the unit id of a user."""

    @abstractmethod
    async def get_unit_managers(self, unit_id: str) -> List[OrgUser]:
        """Get business reviewers attached to a unit."""

    async def get_eligible_approvers(self, requester_id: str) -> List[OrgUser]:
        """
        Reviewers allowed to act on a requester's tickets.

        Every business reviewer in the requester's unit qualifies, which gives
        backup coverage when the direct manager is away. A requester without a
        unit falls back to their direct manager. Requesters never approve
        their own tickets.
        """
        requester = await self.get_user(requester_id)
        if requester is None:
            return []

        if requester.unit_id:
            managers = await self.get_unit_managers(requester.unit_id)
        elif requester.manager_id:
            manager = await self.get_user(requester.manager_id)
            managers = [manager] if manager and manager.can_review else []
        else:
            managers = []

        return [m for m in managers if m.id != requester.id]
