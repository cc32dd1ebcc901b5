"""Shared fixtures: a throwaway SQLite database, a recording notifier and seed helpers."""

from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple
from uuid import UUID, uuid4

import pytest
import pytest_asyncio

from servicedesk.config import AssignmentStrategy, ExperienceLevel, TicketPriority, UserRole
from servicedesk.directory.models import DepartmentModel, UnitModel, UserModel
from servicedesk.engine import ServiceDeskEngine
from servicedesk.infrastructure.database import build_engine, build_session_maker, create_tables, transaction
from servicedesk.shared.infrastructure.notifications import INotificationService, NotificationDispatcher
from servicedesk.assignment.infrastructure.models import AutoAssignmentRuleModel
from servicedesk.sla.application.services import StaticSLAConfigProvider
from servicedesk.sla.infrastructure.models import BusinessHoursModel, HolidayModel, SLAPolicyModel
from servicedesk.tickets.domain import TicketDraft


class RecordingNotifier(INotificationService):
    """Keeps every notification in memory."""

    def __init__(self):
        self.sent: List[Tuple[str, str, Dict[str, Any]]] = []

    async def notify(self, user_id: str, event: str, payload: Dict[str, Any]) -> bool:
        self.sent.append((user_id, getattr(event, "value", event), payload))
        return True

    def recipients(self, event: str) -> List[str]:
        return [user_id for user_id, sent_event, _ in self.sent if sent_event == event]


class Seeder:
    """Inserts reference rows, each helper in its own transaction."""

    def __init__(self, session_factory):
        self._session_factory = session_factory

    async def _add(self, model) -> str:
        async with transaction(self._session_factory) as session:
            session.add(model)
        return str(model.id)

    async def department(self, name: str = "IT", department_type: str = "technical") -> str:
        return await self._add(DepartmentModel(id=uuid4(), name=name, department_type=department_type))

    async def unit(self, code: str = "HQ", department_id: Optional[str] = None) -> str:
        return await self._add(UnitModel(
            id=uuid4(),
            code=code,
            name=f"Unit {code}",
            department_id=UUID(department_id) if department_id else None,
        ))

    async def user(
        self,
        username: str,
        role: UserRole = UserRole.REQUESTER,
        unit_id: Optional[str] = None,
        department_id: Optional[str] = None,
        manager_id: Optional[str] = None,
        is_business_reviewer: bool = False,
        **technician: Any
    ) -> str:
        return await self._add(UserModel(
            id=uuid4(),
            username=username,
            email=f"{username}@example.com",
            role=UserRole(role).value,
            unit_id=UUID(unit_id) if unit_id else None,
            department_id=UUID(department_id) if department_id else None,
            manager_id=UUID(manager_id) if manager_id else None,
            is_business_reviewer=is_business_reviewer,
            **technician,
        ))

    async def technician(
        self,
        username: str,
        primary_skill: Optional[str] = None,
        secondary_skills: Sequence[str] = (),
        experience_level: ExperienceLevel = ExperienceLevel.JUNIOR,
        current_workload: int = 0,
        workload_capacity: int = 10,
        is_available: bool = True,
        department_id: Optional[str] = None
    ) -> str:
        return await self.user(
            username,
            role=UserRole.TECHNICIAN,
            department_id=department_id,
            primary_skill=primary_skill,
            secondary_skills=list(secondary_skills),
            experience_level=ExperienceLevel(experience_level).value,
            current_workload=current_workload,
            workload_capacity=workload_capacity,
            is_available=is_available,
        )

    async def rule(
        self,
        name: str,
        strategy: AssignmentStrategy = AssignmentStrategy.LEAST_LOADED,
        priority: int = 0,
        department_id: Optional[str] = None,
        priority_level: Optional[TicketPriority] = None,
        required_skill: Optional[str] = None,
        template_id: Optional[str] = None,
        respect_capacity: bool = True,
        max_workload_percent: int = 100,
        is_active: bool = True
    ) -> str:
        return await self._add(AutoAssignmentRuleModel(
            id=uuid4(),
            name=name,
            assignment_strategy=AssignmentStrategy(strategy).value,
            priority=priority,
            department_id=UUID(department_id) if department_id else None,
            priority_level=TicketPriority(priority_level).value if priority_level else None,
            required_skill=required_skill,
            template_id=template_id,
            respect_capacity=respect_capacity,
            max_workload_percent=max_workload_percent,
            is_active=is_active,
        ))

    async def policy(
        self,
        response: int,
        resolution: int,
        name: Optional[str] = None,
        service_item_id: Optional[str] = None,
        service_catalog_id: Optional[str] = None,
        department_id: Optional[str] = None,
        priority: Optional[TicketPriority] = None,
        business_hours_only: bool = False,
        is_active: bool = True,
        created_at: Optional[datetime] = None
    ) -> str:
        return await self._add(SLAPolicyModel(
            id=uuid4(),
            name=name,
            service_item_id=service_item_id,
            service_catalog_id=service_catalog_id,
            department_id=UUID(department_id) if department_id else None,
            priority=TicketPriority(priority).value if priority else None,
            response_time_minutes=response,
            resolution_time_minutes=resolution,
            business_hours_only=business_hours_only,
            is_active=is_active,
            created_at=created_at or datetime(2024, 1, 1, tzinfo=timezone.utc),
        ))

    async def business_hours(
        self,
        days: Sequence[int],
        start: str = "08:00",
        end: str = "17:00",
        tz: str = "Asia/Jakarta",
        department_id: Optional[str] = None
    ) -> None:
        async with transaction(self._session_factory) as session:
            for day in days:
                session.add(BusinessHoursModel(
                    id=uuid4(),
                    department_id=UUID(department_id) if department_id else None,
                    day_of_week=day,
                    start_time=start,
                    end_time=end,
                    timezone=tz,
                ))

    async def holiday(self, day: date, name: str = "Holiday", department_id: Optional[str] = None) -> str:
        return await self._add(HolidayModel(
            id=uuid4(),
            holiday_date=day,
            name=name,
            department_id=UUID(department_id) if department_id else None,
        ))


@pytest_asyncio.fixture
async def db_engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'servicedesk.db'}")
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return build_session_maker(db_engine)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def dispatcher(notifier):
    return NotificationDispatcher(notifier)


@pytest.fixture
def seed(session_factory):
    return Seeder(session_factory)


@pytest.fixture
def engine(session_factory, dispatcher):
    return ServiceDeskEngine(session_factory, StaticSLAConfigProvider(), dispatcher)


@pytest_asyncio.fixture
async def org(seed):
    """A department with one unit, a requester, two reviewers and an outsider."""
    department_id = await seed.department("IT")
    unit_id = await seed.unit("HQ", department_id)
    other_unit_id = await seed.unit("BR1", department_id)

    manager_id = await seed.user(
        "manager", UserRole.MANAGER, unit_id=unit_id, department_id=department_id,
        is_business_reviewer=True
    )
    backup_id = await seed.user(
        "backup", UserRole.MANAGER, unit_id=unit_id, department_id=department_id,
        is_business_reviewer=True
    )
    requester_id = await seed.user(
        "requester", UserRole.REQUESTER, unit_id=unit_id, department_id=department_id,
        manager_id=manager_id
    )
    outsider_id = await seed.user(
        "outsider", UserRole.MANAGER, unit_id=other_unit_id, department_id=department_id,
        is_business_reviewer=True
    )
    return {
        "department_id": department_id,
        "unit_id": unit_id,
        "manager_id": manager_id,
        "backup_id": backup_id,
        "requester_id": requester_id,
        "outsider_id": outsider_id,
    }


def make_draft(org: dict, **overrides: Any) -> TicketDraft:
    values = dict(
        title="Printer offline",
        description="The 3rd floor printer does not respond.",
        created_by_user_id=org["requester_id"],
        priority=TicketPriority.HIGH,
        department_id=org["department_id"],
    )
    values.update(overrides)
    return TicketDraft(**values)


@pytest.fixture
def draft_factory(org):
    def factory(**overrides: Any) -> TicketDraft:
        return make_draft(org, **overrides)
    return factory
