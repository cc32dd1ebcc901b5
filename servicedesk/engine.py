"""
Service Desk Engine
===================

Composition root of the lifecycle engine.

Binds the SQLAlchemy repositories to the application services and exposes
the operations the API layer and background jobs call:

    engine = ServiceDeskEngine(get_session_maker(), config_manager, dispatcher)
    result = await engine.submit(draft)
    await engine.transition(result.ticket.id, TicketAction.APPROVE, reviewer_id)
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from servicedesk.config import TicketAction, settings
from servicedesk.directory import OrgUser
from servicedesk.directory.repositories import SQLAlchemyOrgDirectory
from servicedesk.infrastructure.database import transaction
from servicedesk.shared.infrastructure.notifications import NotificationDispatcher
from servicedesk.assignment.application.services import AutoAssignmentEngine
from servicedesk.assignment.domain import AssignmentCriteria, AssignmentResult
from servicedesk.assignment.infrastructure.repositories import SQLAlchemyAssignmentRepository
from servicedesk.sla.application.services import ISLAConfigProvider, SLAPolicyAdminService, SLAResolverService
from servicedesk.sla.domain import SLAContext, SLAPolicy, SLAResolution
from servicedesk.sla.infrastructure.repositories import (
    SQLAlchemyBusinessCalendarRepository,
    SQLAlchemySLAPolicyRepository,
)
from servicedesk.sla.services import EscalationMonitor, EscalationSweepResult
from servicedesk.tickets.application.services import (
    SubmissionResult,
    TicketLifecycleService,
    TicketRepositories,
    TransitionResult,
)
from servicedesk.tickets.domain import AssignmentLogEntry, Ticket, TicketDraft
from servicedesk.tickets.infrastructure.repositories import (
    SQLAlchemyApprovalRepository,
    SQLAlchemyAssignmentLogRepository,
    SQLAlchemyTicketRepository,
)


class ServiceDeskEngine:
    """Facade over SLA resolution, assignment, lifecycle and escalation."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        config_provider: ISLAConfigProvider,
        dispatcher: NotificationDispatcher,
        escalation_contact_user_id: Optional[str] = None
    ):
        self._session_factory = session_factory
        self._config_provider = config_provider
        self.dispatcher = dispatcher

        self.assignment_engine = AutoAssignmentEngine(
            session_factory, SQLAlchemyAssignmentRepository, dispatcher
        )
        self.lifecycle = TicketLifecycleService(
            session_factory, self._ticket_repositories, self.assignment_engine, dispatcher
        )
        self.escalation_monitor = EscalationMonitor(
            session_factory,
            SQLAlchemyTicketRepository,
            dispatcher,
            escalation_contact_user_id
            if escalation_contact_user_id is not None
            else settings.escalation_contact_user_id,
        )

    # ---------- wiring ----------

    def _sla_resolver(self, session: AsyncSession) -> SLAResolverService:
        return SLAResolverService(
            SQLAlchemySLAPolicyRepository(session),
            SQLAlchemyBusinessCalendarRepository(session),
            self._config_provider,
        )

    def _ticket_repositories(self, session: AsyncSession) -> TicketRepositories:
        return TicketRepositories(
            tickets=SQLAlchemyTicketRepository(session),
            approvals=SQLAlchemyApprovalRepository(session),
            assignment_logs=SQLAlchemyAssignmentLogRepository(session),
            directory=SQLAlchemyOrgDirectory(session),
            assignments=SQLAlchemyAssignmentRepository(session),
            sla_resolver=self._sla_resolver(session),
        )

    # ---------- operations ----------

    async def resolve_sla(self, context: SLAContext) -> SLAResolution:
        async with transaction(self._session_factory) as session:
            return await self._sla_resolver(session).resolve(context)

    async def submit(self, draft: TicketDraft) -> SubmissionResult:
        return await self.lifecycle.submit(draft)

    async def transition(
        self,
        ticket_id: str,
        action: TicketAction,
        actor_id: str,
        comments: Optional[str] = None
    ) -> TransitionResult:
        return await self.lifecycle.transition(ticket_id, action, actor_id, comments)

    async def assign_ticket(
        self,
        ticket_id: str,
        criteria: Optional[AssignmentCriteria] = None,
        assigned_by: Optional[str] = None
    ) -> AssignmentResult:
        return await self.assignment_engine.assign(ticket_id, criteria, assigned_by)

    async def manual_assign(
        self,
        ticket_id: str,
        user_id: str,
        assigned_by: str,
        reason: Optional[str] = None
    ) -> AssignmentResult:
        return await self.assignment_engine.manual_assign(ticket_id, user_id, assigned_by, reason)

    async def run_escalation_sweep(self, current_time: Optional[datetime] = None) -> EscalationSweepResult:
        return await self.escalation_monitor.run_sweep(current_time)

    async def create_sla_policy(self, policy: SLAPolicy) -> SLAPolicy:
        async with transaction(self._session_factory) as session:
            return await SLAPolicyAdminService(SQLAlchemySLAPolicyRepository(session)).create_policy(policy)

    # ---------- queries ----------

    async def get_ticket(self, ticket_id: str) -> Ticket:
        return await self.lifecycle.get_ticket(ticket_id)

    async def get_eligible_approvers(self, ticket_id: str) -> List[OrgUser]:
        return await self.lifecycle.get_eligible_approvers(ticket_id)

    async def get_assignment_history(self, ticket_id: str) -> List[AssignmentLogEntry]:
        async with transaction(self._session_factory) as session:
            return await SQLAlchemyAssignmentLogRepository(session).list_for_ticket(ticket_id)

    async def list_tickets(
        self,
        filters: Optional[Dict[str, Any]] = None,
        limit: int = 100,
        offset: int = 0
    ) -> List[Ticket]:
        """Newest first; filters on status, priority and assigned_to_user_id."""
        async with transaction(self._session_factory) as session:
            return await SQLAlchemyTicketRepository(session).list(filters or {}, limit, offset)

    async def list_sla_policies(self, active_only: bool = False) -> List[SLAPolicy]:
        async with transaction(self._session_factory) as session:
            return await SLAPolicyAdminService(SQLAlchemySLAPolicyRepository(session)).list_policies(active_only)
