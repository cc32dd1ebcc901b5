"""
Directory Repositories
======================

SQLAlchemy implementation of the organizational directory.
"""

from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from servicedesk.config import UserRole
from servicedesk.directory.entities import IOrgDirectory, OrgUser
from servicedesk.directory.models import UserModel
from servicedesk.infrastructure.database import to_uuid


def _to_entity(model: UserModel) -> OrgUser:
    return OrgUser(
        id=str(model.id),
        username=model.username,
        email=model.email,
        role=UserRole(model.role),
        unit_id=str(model.unit_id) if model.unit_id else None,
        department_id=str(model.department_id) if model.department_id else None,
        manager_id=str(model.manager_id) if model.manager_id else None,
        is_business_reviewer=model.is_business_reviewer,
    )


class SQLAlchemyOrgDirectory(IOrgDirectory):
    """Directory lookups evaluated at query time against the users table."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_user(self, user_id: str) -> Optional[OrgUser]:
        user_uuid = to_uuid(user_id)
        if user_uuid is None:
            return None

        model = await self._session.get(UserModel, user_uuid)
        return _to_entity(model) if model else None

    async def get_user_unit(self, user_id: str) -> Optional[str]:
        user = await self.get_user(user_id)
        return user.unit_id if user else None

    async def get_unit_managers(self, unit_id: str) -> List[OrgUser]:
        unit_uuid = to_uuid(unit_id)
        if unit_uuid is None:
            return []

        stmt = (
            select(UserModel)
            .where(
                UserModel.unit_id == unit_uuid,
                UserModel.is_business_reviewer.is_(True),
                UserModel.role.in_([UserRole.MANAGER.value, UserRole.ADMIN.value]),
            )
            .order_by(UserModel.username)
        )
        result = await self._session.execute(stmt)
        return [_to_entity(m) for m in result.scalars().all()]
