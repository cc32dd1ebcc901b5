"""
SLA Infrastructure Repositories
=================================

SQLAlchemy access to SLA policies, business hours and holidays.
"""

from datetime import date
from typing import List, Optional, Set
from uuid import UUID, uuid4

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from servicedesk.config import TicketPriority
from servicedesk.core import ValidationException, as_utc
from servicedesk.sla.application.services import (
    IBusinessCalendarRepository,
    ISLAPolicyRepository,
)
from servicedesk.sla.domain import BusinessWindow, SLAContext, SLAPolicy
from servicedesk.infrastructure.database import to_uuid
from servicedesk.sla.infrastructure.models import BusinessHoursModel, HolidayModel, SLAPolicyModel


def _wildcard_or_equal(column, value):
    """NULL matches anything; a bound column must equal the ticket's value."""
    if value is None:
        return column.is_(None)
    return or_(column.is_(None), column == value)


def _to_entity(model: SLAPolicyModel) -> SLAPolicy:
    return SLAPolicy(
        id=str(model.id),
        name=model.name,
        service_item_id=model.service_item_id,
        service_catalog_id=model.service_catalog_id,
        department_id=str(model.department_id) if model.department_id else None,
        priority=TicketPriority(model.priority) if model.priority else None,
        response_time_minutes=model.response_time_minutes,
        resolution_time_minutes=model.resolution_time_minutes,
        business_hours_only=model.business_hours_only,
        is_active=model.is_active,
        created_at=as_utc(model.created_at),
    )


class SQLAlchemySLAPolicyRepository(ISLAPolicyRepository):
    """
    SQLAlchemy implementation of SLA policy repository.

    Candidates are filtered and ordered most specific first in SQL.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    async def find_applicable(self, context: SLAContext) -> List[SLAPolicy]:
        department_uuid = to_uuid(context.department_id)

        stmt = (
            select(SLAPolicyModel)
            .where(
                SLAPolicyModel.is_active.is_(True),
                _wildcard_or_equal(SLAPolicyModel.service_item_id, context.service_item_id),
                _wildcard_or_equal(SLAPolicyModel.service_catalog_id, context.service_catalog_id),
                _wildcard_or_equal(SLAPolicyModel.department_id, department_uuid),
                _wildcard_or_equal(SLAPolicyModel.priority, TicketPriority(context.priority).value),
            )
            .order_by(
                SLAPolicyModel.service_item_id.is_(None),
                SLAPolicyModel.service_catalog_id.is_(None),
                SLAPolicyModel.department_id.is_(None),
                SLAPolicyModel.priority.is_(None),
                SLAPolicyModel.created_at.desc(),
                SLAPolicyModel.id.desc(),
            )
        )
        result = await self._session.execute(stmt)
        return [_to_entity(m) for m in result.scalars().all()]

    async def create(self, policy: SLAPolicy) -> SLAPolicy:
        department_uuid = to_uuid(policy.department_id)
        if policy.department_id and department_uuid is None:
            raise ValidationException("Malformed department id", {"department_id": policy.department_id})

        model = SLAPolicyModel(
            id=to_uuid(policy.id) or uuid4(),
            name=policy.name,
            service_item_id=policy.service_item_id,
            service_catalog_id=policy.service_catalog_id,
            department_id=department_uuid,
            priority=policy.priority.value if policy.priority else None,
            response_time_minutes=policy.response_time_minutes,
            resolution_time_minutes=policy.resolution_time_minutes,
            business_hours_only=policy.business_hours_only,
            is_active=policy.is_active,
            created_at=policy.created_at,
        )

        self._session.add(model)
        await self._session.flush()

        return _to_entity(model)

    async def list_policies(self, active_only: bool = False) -> List[SLAPolicy]:
        stmt = select(SLAPolicyModel).order_by(SLAPolicyModel.created_at.desc(), SLAPolicyModel.id)
        if active_only:
            stmt = stmt.where(SLAPolicyModel.is_active.is_(True))
        result = await self._session.execute(stmt)
        return [_to_entity(m) for m in result.scalars().all()]

    async def find_active_by_name(self, name: str) -> Optional[SLAPolicy]:
        stmt = (
            select(SLAPolicyModel)
            .where(SLAPolicyModel.is_active.is_(True), SLAPolicyModel.name == name)
            .limit(1)
        )
        model = (await self._session.execute(stmt)).scalar_one_or_none()
        return _to_entity(model) if model else None


class SQLAlchemyBusinessCalendarRepository(IBusinessCalendarRepository):
    """Business hours and holidays from the database."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def _windows_for(self, department_uuid: Optional[UUID]) -> List[BusinessWindow]:
        stmt = (
            select(BusinessHoursModel)
            .where(
                BusinessHoursModel.is_active.is_(True),
                BusinessHoursModel.department_id.is_(None)
                if department_uuid is None
                else BusinessHoursModel.department_id == department_uuid,
            )
            .order_by(BusinessHoursModel.day_of_week)
        )
        result = await self._session.execute(stmt)
        return [
            BusinessWindow.parse(m.day_of_week, m.start_time, m.end_time, m.timezone)
            for m in result.scalars().all()
        ]

    async def get_windows(self, department_id: Optional[str]) -> List[BusinessWindow]:
        department_uuid = to_uuid(department_id)
        if department_uuid is not None:
            windows = await self._windows_for(department_uuid)
            if windows:
                return windows
        return await self._windows_for(None)

    async def get_holidays(self, department_id: Optional[str], from_date: date) -> Set[date]:
        department_uuid = to_uuid(department_id)
        scope = HolidayModel.department_id.is_(None)
        if department_uuid is not None:
            scope = or_(scope, HolidayModel.department_id == department_uuid)

        stmt = select(HolidayModel.holiday_date).where(
            HolidayModel.is_active.is_(True),
            HolidayModel.holiday_date >= from_date,
            scope,
        )
        result = await self._session.execute(stmt)
        return set(result.scalars().all())
