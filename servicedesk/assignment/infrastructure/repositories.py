"""
Assignment Infrastructure Repositories
=======================================

SQLAlchemy implementation of the engine's data access, including the
atomic assignment write path.

Workload counters are only ever changed by in-SQL arithmetic
(current_workload = current_workload + 1), never by writing back a value
read earlier. The availability and capacity checks of an auto-assignment
are repeated in the WHERE clause of that increment, so they hold against
the row as committed, not against the snapshot the strategy ranked.
"""

from typing import List, Optional

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from servicedesk.config import (
    AssignmentMethod,
    AssignmentStrategy,
    ExperienceLevel,
    TicketPriority,
    TicketStatus,
    UserRole,
)
from servicedesk.core import InvalidTransitionException
from servicedesk.directory.models import UserModel
from servicedesk.infrastructure.database import to_uuid
from servicedesk.assignment.application.services import IAssignmentRepository
from servicedesk.assignment.domain import AssignmentCriteria, AssignmentRule, Technician
from servicedesk.assignment.infrastructure.models import AutoAssignmentRuleModel
from servicedesk.tickets.domain import AssignmentLogEntry, Ticket
from servicedesk.tickets.infrastructure.repositories import (
    SQLAlchemyAssignmentLogRepository,
    SQLAlchemyTicketRepository,
)


def _technician(model: UserModel) -> Technician:
    return Technician(
        id=str(model.id),
        username=model.username,
        is_available=model.is_available,
        current_workload=model.current_workload,
        workload_capacity=model.workload_capacity,
        primary_skill=model.primary_skill,
        secondary_skills=tuple(model.secondary_skills or ()),
        experience_level=ExperienceLevel(model.experience_level),
        department_id=str(model.department_id) if model.department_id else None,
    )


def _rule(model: AutoAssignmentRuleModel) -> AssignmentRule:
    return AssignmentRule(
        id=str(model.id),
        name=model.name,
        assignment_strategy=AssignmentStrategy(model.assignment_strategy),
        priority=model.priority,
        template_id=model.template_id,
        department_id=str(model.department_id) if model.department_id else None,
        priority_level=TicketPriority(model.priority_level) if model.priority_level else None,
        required_skill=model.required_skill,
        respect_capacity=model.respect_capacity,
        max_workload_percent=model.max_workload_percent,
        is_active=model.is_active,
        last_assigned_user_id=str(model.last_assigned_user_id) if model.last_assigned_user_id else None,
    )


def _matches(column, value):
    """Absent criterion matches every rule; a given one needs NULL or equal."""
    if value is None:
        return None
    return or_(column.is_(None), column == value)


class SQLAlchemyAssignmentRepository(IAssignmentRepository):
    """SQLAlchemy implementation of the assignment engine's repository."""

    def __init__(self, session: AsyncSession):
        self._session = session
        self._tickets = SQLAlchemyTicketRepository(session)
        self._logs = SQLAlchemyAssignmentLogRepository(session)

    async def get_ticket(self, ticket_id: str) -> Optional[Ticket]:
        return await self._tickets.get_by_id(ticket_id)

    async def find_matching_rules(self, criteria: AssignmentCriteria) -> List[AssignmentRule]:
        conditions = [
            _matches(AutoAssignmentRuleModel.template_id, criteria.template_id),
            _matches(AutoAssignmentRuleModel.department_id, to_uuid(criteria.department_id)),
            _matches(
                AutoAssignmentRuleModel.priority_level,
                TicketPriority(criteria.priority).value if criteria.priority else None
            ),
            _matches(AutoAssignmentRuleModel.required_skill, criteria.required_skill),
        ]
        stmt = (
            select(AutoAssignmentRuleModel)
            .where(AutoAssignmentRuleModel.is_active.is_(True), *[c for c in conditions if c is not None])
            .order_by(
                AutoAssignmentRuleModel.priority.desc(),
                AutoAssignmentRuleModel.name,
                AutoAssignmentRuleModel.id,
            )
        )
        result = await self._session.execute(stmt)
        return [_rule(m) for m in result.scalars().all()]

    async def list_technicians(self) -> List[Technician]:
        stmt = (
            select(UserModel)
            .where(UserModel.role == UserRole.TECHNICIAN.value)
            .order_by(UserModel.id)
        )
        result = await self._session.execute(stmt)
        return [_technician(m) for m in result.scalars().all()]

    async def get_technician(self, user_id: str) -> Optional[Technician]:
        user_uuid = to_uuid(user_id)
        if user_uuid is None:
            return None
        model = await self._session.get(UserModel, user_uuid)
        return _technician(model) if model else None

    async def apply_assignment(
        self,
        ticket_id: str,
        expected_status: TicketStatus,
        technician_id: str,
        method: AssignmentMethod,
        reason: str,
        rule: Optional[AssignmentRule] = None,
        assigned_by: Optional[str] = None,
        previous_user_id: Optional[str] = None,
    ) -> None:
        changed = await self._tickets.compare_and_set_status(
            ticket_id,
            [expected_status],
            TicketStatus.ASSIGNED,
            expected_assignee=previous_user_id,
            assigned_to_user_id=technician_id,
        )
        if not changed:
            raise InvalidTransitionException(
                ticket_id, TicketStatus(expected_status).value, "assign",
                {"ticket_id": ticket_id, "expected_status": TicketStatus(expected_status).value}
            )

        if previous_user_id:
            await self.release_workload(previous_user_id)

        await self._logs.append(AssignmentLogEntry(
            ticket_id=ticket_id,
            assigned_to_user_id=technician_id,
            assignment_method=method,
            assignment_reason=reason,
            assignment_rule_id=rule.id if rule else None,
            assigned_by_user_id=assigned_by,
        ))

        if rule is not None and rule.assignment_strategy == AssignmentStrategy.ROUND_ROBIN:
            await self._session.execute(
                update(AutoAssignmentRuleModel)
                .where(AutoAssignmentRuleModel.id == to_uuid(rule.id))
                .values(last_assigned_user_id=to_uuid(technician_id))
                .execution_options(synchronize_session=False)
            )

    async def reserve_workload(self, user_id: str, rule: Optional[AssignmentRule] = None) -> bool:
        conditions = [UserModel.id == to_uuid(user_id)]
        if rule is not None:
            conditions.append(UserModel.is_available.is_(True))
            if rule.respect_capacity:
                conditions.append(
                    UserModel.current_workload * 100 < UserModel.workload_capacity * rule.max_workload_percent
                )
        result = await self._session.execute(
            update(UserModel)
            .where(*conditions)
            .values(current_workload=UserModel.current_workload + 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def release_workload(self, user_id: str) -> None:
        await self._session.execute(
            update(UserModel)
            .where(UserModel.id == to_uuid(user_id), UserModel.current_workload > 0)
            .values(current_workload=UserModel.current_workload - 1)
            .execution_options(synchronize_session=False)
        )
