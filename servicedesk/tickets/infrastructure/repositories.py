"""
Ticket Infrastructure Repositories
===================================

SQLAlchemy implementations of the ticket, approval and assignment log
repositories.

Status changes go through compare_and_set_status: the UPDATE carries the
expected status in its WHERE clause, so two racing writers cannot both win.
"""

from datetime import datetime
from typing import Any, Iterable, List, Optional
from uuid import uuid4

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from servicedesk.config import (
    SETTLED_STATUSES,
    ApprovalStatus,
    AssignmentMethod,
    TicketPriority,
    TicketStatus,
)
from servicedesk.core import as_utc, utcnow
from servicedesk.infrastructure.database import to_uuid
from servicedesk.tickets.application.services import (
    IApprovalRepository,
    IAssignmentLogRepository,
    ITicketRepository,
)
from servicedesk.tickets.domain import AssignmentLogEntry, BusinessApproval, Ticket
from servicedesk.tickets.infrastructure.models import (
    BusinessApprovalModel,
    TicketAssignmentLogModel,
    TicketModel,
)


def _str(value: Any) -> Optional[str]:
    return str(value) if value is not None else None


def _to_entity(model: TicketModel) -> Ticket:
    return Ticket(
        id=str(model.id),
        title=model.title,
        description=model.description,
        status=TicketStatus(model.status),
        priority=TicketPriority(model.priority),
        created_by_user_id=str(model.created_by_user_id),
        assigned_to_user_id=_str(model.assigned_to_user_id),
        department_id=_str(model.department_id),
        service_catalog_id=model.service_catalog_id,
        service_item_id=model.service_item_id,
        template_id=model.template_id,
        sla_due_date=as_utc(model.sla_due_date),
        response_due_date=as_utc(model.response_due_date),
        resolved_at=as_utc(model.resolved_at),
        closed_at=as_utc(model.closed_at),
        is_kasda_ticket=model.is_kasda_ticket,
        is_classification_locked=model.is_classification_locked,
        created_at=as_utc(model.created_at),
        updated_at=as_utc(model.updated_at),
    )


def _escalation_candidates(current_time: datetime):
    """WHERE clause of the overdue selection."""
    return (
        TicketModel.sla_due_date.is_not(None),
        TicketModel.sla_due_date < current_time,
        TicketModel.status.not_in([s.value for s in SETTLED_STATUSES]),
        TicketModel.priority != TicketPriority.URGENT.value,
    )


class SQLAlchemyTicketRepository(ITicketRepository):
    """
    SQLAlchemy implementation of ticket repository.

    Handles persistence of Ticket entities using async SQLAlchemy.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_by_id(self, ticket_id: str) -> Optional[Ticket]:
        """Get ticket by internal ID."""
        ticket_uuid = to_uuid(ticket_id)
        if ticket_uuid is None:
            return None

        stmt = select(TicketModel).where(TicketModel.id == ticket_uuid)
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return _to_entity(model) if model else None

    async def create(self, ticket: Ticket) -> Ticket:
        """Create new ticket."""
        model = TicketModel(
            id=to_uuid(ticket.id) or uuid4(),
            title=ticket.title,
            description=ticket.description,
            status=TicketStatus(ticket.status).value,
            priority=TicketPriority(ticket.priority).value,
            created_by_user_id=to_uuid(ticket.created_by_user_id),
            assigned_to_user_id=to_uuid(ticket.assigned_to_user_id),
            department_id=to_uuid(ticket.department_id),
            service_catalog_id=ticket.service_catalog_id,
            service_item_id=ticket.service_item_id,
            template_id=ticket.template_id,
            sla_due_date=ticket.sla_due_date,
            response_due_date=ticket.response_due_date,
            is_kasda_ticket=ticket.is_kasda_ticket,
            is_classification_locked=ticket.is_classification_locked,
            created_at=ticket.created_at,
            updated_at=ticket.updated_at,
        )

        self._session.add(model)
        await self._session.flush()

        return _to_entity(model)

    async def compare_and_set_status(
        self,
        ticket_id: str,
        expected: Iterable[TicketStatus],
        new_status: TicketStatus,
        expected_assignee: Optional[str] = None,
        **values: Any
    ) -> bool:
        """
        Move a ticket to new_status only if it is still in an expected status.

        Returns:
            True if exactly one row changed
        """
        ticket_uuid = to_uuid(ticket_id)
        if ticket_uuid is None:
            return False

        conditions = [
            TicketModel.id == ticket_uuid,
            TicketModel.status.in_([TicketStatus(s).value for s in expected]),
        ]
        if expected_assignee is not None:
            conditions.append(TicketModel.assigned_to_user_id == to_uuid(expected_assignee))

        if "assigned_to_user_id" in values:
            values["assigned_to_user_id"] = to_uuid(values["assigned_to_user_id"])

        stmt = (
            update(TicketModel)
            .where(*conditions)
            .values(status=TicketStatus(new_status).value, updated_at=utcnow(), **values)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return result.rowcount == 1

    async def list_overdue_ids(self, current_time: datetime) -> List[str]:
        stmt = (
            select(TicketModel.id)
            .where(*_escalation_candidates(current_time))
            .order_by(TicketModel.sla_due_date, TicketModel.id)
        )
        result = await self._session.execute(stmt)
        return [str(ticket_id) for ticket_id in result.scalars().all()]

    async def escalate_priority(self, ticket_id: str, current_time: datetime) -> bool:
        """Raise an overdue ticket to urgent if it is still eligible."""
        ticket_uuid = to_uuid(ticket_id)
        if ticket_uuid is None:
            return False

        stmt = (
            update(TicketModel)
            .where(TicketModel.id == ticket_uuid, *_escalation_candidates(current_time))
            .values(priority=TicketPriority.URGENT.value, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return result.rowcount == 1

    async def list(
        self,
        filters: dict,
        limit: int = 100,
        offset: int = 0
    ) -> List[Ticket]:
        """List tickets with filters."""
        stmt = select(TicketModel)

        if "status" in filters:
            statuses = filters["status"]
            if isinstance(statuses, (list, tuple, set)):
                stmt = stmt.where(TicketModel.status.in_([TicketStatus(s).value for s in statuses]))
            else:
                stmt = stmt.where(TicketModel.status == TicketStatus(statuses).value)

        if "priority" in filters:
            stmt = stmt.where(TicketModel.priority == TicketPriority(filters["priority"]).value)

        if "assigned_to_user_id" in filters:
            assignee_uuid = to_uuid(filters["assigned_to_user_id"])
            if assignee_uuid is None:
                return []
            stmt = stmt.where(TicketModel.assigned_to_user_id == assignee_uuid)

        stmt = stmt.order_by(TicketModel.created_at.desc(), TicketModel.id).limit(limit).offset(offset)

        result = await self._session.execute(stmt)
        return [_to_entity(m) for m in result.scalars().all()]


class SQLAlchemyApprovalRepository(IApprovalRepository):
    """Persistence of the per-ticket business approval row."""

    def __init__(self, session: AsyncSession):
        self._session = session

    @staticmethod
    def _to_entity(model: BusinessApprovalModel) -> BusinessApproval:
        return BusinessApproval(
            id=str(model.id),
            ticket_id=str(model.ticket_id),
            approval_status=ApprovalStatus(model.approval_status),
            business_reviewer_id=_str(model.business_reviewer_id),
            approved_at=as_utc(model.approved_at),
            comments=model.comments,
        )

    async def create(self, approval: BusinessApproval) -> BusinessApproval:
        model = BusinessApprovalModel(
            id=to_uuid(approval.id) or uuid4(),
            ticket_id=to_uuid(approval.ticket_id),
            business_reviewer_id=to_uuid(approval.business_reviewer_id),
            approval_status=ApprovalStatus(approval.approval_status).value,
            approved_at=approval.approved_at,
            comments=approval.comments,
        )
        self._session.add(model)
        await self._session.flush()
        return self._to_entity(model)

    async def get_by_ticket(self, ticket_id: str) -> Optional[BusinessApproval]:
        ticket_uuid = to_uuid(ticket_id)
        if ticket_uuid is None:
            return None

        stmt = select(BusinessApprovalModel).where(BusinessApprovalModel.ticket_id == ticket_uuid)
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return self._to_entity(model) if model else None

    async def record_decision(
        self,
        ticket_id: str,
        decision: ApprovalStatus,
        reviewer_id: str,
        comments: Optional[str],
        decided_at: datetime
    ) -> bool:
        """Settle a pending approval; False if it was already decided."""
        stmt = (
            update(BusinessApprovalModel)
            .where(
                BusinessApprovalModel.ticket_id == to_uuid(ticket_id),
                BusinessApprovalModel.approval_status == ApprovalStatus.PENDING.value,
            )
            .values(
                approval_status=ApprovalStatus(decision).value,
                business_reviewer_id=to_uuid(reviewer_id),
                approved_at=decided_at,
                comments=comments,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return result.rowcount == 1


class SQLAlchemyAssignmentLogRepository(IAssignmentLogRepository):
    """Append-only assignment history."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def append(self, entry: AssignmentLogEntry) -> AssignmentLogEntry:
        model = TicketAssignmentLogModel(
            id=to_uuid(entry.id) or uuid4(),
            ticket_id=to_uuid(entry.ticket_id),
            assigned_to_user_id=to_uuid(entry.assigned_to_user_id),
            assignment_rule_id=to_uuid(entry.assignment_rule_id),
            assignment_method=AssignmentMethod(entry.assignment_method).value,
            assignment_reason=entry.assignment_reason,
            assigned_by_user_id=to_uuid(entry.assigned_by_user_id),
            created_at=entry.created_at,
        )
        self._session.add(model)
        await self._session.flush()
        return self._to_entity(model)

    async def list_for_ticket(self, ticket_id: str) -> List[AssignmentLogEntry]:
        stmt = (
            select(TicketAssignmentLogModel)
            .where(TicketAssignmentLogModel.ticket_id == to_uuid(ticket_id))
            .order_by(TicketAssignmentLogModel.created_at, TicketAssignmentLogModel.id)
        )
        result = await self._session.execute(stmt)
        return [self._to_entity(m) for m in result.scalars().all()]

    @staticmethod
    def _to_entity(model: TicketAssignmentLogModel) -> AssignmentLogEntry:
        return AssignmentLogEntry(
            id=str(model.id),
            ticket_id=str(model.ticket_id),
            assigned_to_user_id=str(model.assigned_to_user_id),
            assignment_rule_id=_str(model.assignment_rule_id),
            assignment_method=AssignmentMethod(model.assignment_method),
            assignment_reason=model.assignment_reason,
            assigned_by_user_id=_str(model.assigned_by_user_id),
            created_at=as_utc(model.created_at),
        )
