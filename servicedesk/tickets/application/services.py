"""
Ticket Application Services
============================

Orchestrates the ticket lifecycle: submission, business approval and the
work transitions that follow assignment.

Technician selection lives in the assignment engine. Repositories are built
per session by an injected factory, so one transaction spans every table an
action touches.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Callable, Iterable, List, Optional
from uuid import uuid4

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from servicedesk.config import (
    ApprovalStatus,
    NotificationEvent,
    TicketAction,
    TicketStatus,
)
from servicedesk.core import (
    ApplicationException,
    AuthorizationException,
    InvalidTransitionException,
    ResourceNotFoundException,
    ValidationException,
    utcnow,
)
from servicedesk.directory import IOrgDirectory, OrgUser
from servicedesk.infrastructure.database import transaction
from servicedesk.shared.infrastructure.logging import get_logger
from servicedesk.shared.infrastructure.notifications import NotificationDispatcher
from servicedesk.sla.application.services import SLAResolverService
from servicedesk.sla.domain import SLAContext, SLAResolution
from servicedesk.assignment.application.services import AutoAssignmentEngine, IAssignmentRepository
from servicedesk.assignment.domain import AssignmentResult
from servicedesk.tickets.domain import (
    APPROVAL_ACTIONS,
    AssignmentLogEntry,
    BusinessApproval,
    Ticket,
    TicketDraft,
    next_status,
)

logger = get_logger(__name__)


# ========== Repository Interfaces (Dependency Inversion) ==========

class ITicketRepository(ABC):
    """Interface for ticket data access."""

    @abstractmethod
    async def get_by_id(self, ticket_id: str) -> Optional[Ticket]:
        """Get ticket by internal ID."""

    @abstractmethod
    async def create(self, ticket: Ticket) -> Ticket:
        """Create new ticket."""

    @abstractmethod
    async def compare_and_set_status(
        self,
        ticket_id: str,
        expected: Iterable[TicketStatus],
        new_status: TicketStatus,
        expected_assignee: Optional[str] = None,
        **values: Any
    ) -> bool:
        """Conditional status update; True if the ticket was still in an expected status."""

    @abstractmethod
    async def list_overdue_ids(self, current_time: datetime) -> List[str]:
        """Ids of tickets past due, open and not yet urgent."""

    @abstractmethod
    async def escalate_priority(self, ticket_id: str, current_time: datetime) -> bool:
        """Raise an overdue ticket to urgent; False if no longer eligible."""

    @abstractmethod
    async def list(
        self,
        filters: dict,
        limit: int = 100,
        offset: int = 0
    ) -> List[Ticket]:
        """List tickets with filters."""


class IApprovalRepository(ABC):
    """Interface for the business approval row of a ticket."""

    @abstractmethod
    async def create(self, approval: BusinessApproval) -> BusinessApproval:
        """Create the approval row."""

    @abstractmethod
    async def get_by_ticket(self, ticket_id: str) -> Optional[BusinessApproval]:
        """Get the approval row of a ticket."""

    @abstractmethod
    async def record_decision(
        self,
        ticket_id: str,
        decision: ApprovalStatus,
        reviewer_id: str,
        comments: Optional[str],
        decided_at: datetime
    ) -> bool:
        """Settle a pending approval; False if it was already decided."""


class IAssignmentLogRepository(ABC):
    """Interface for the append-only assignment history."""

    @abstractmethod
    async def append(self, entry: AssignmentLogEntry) -> AssignmentLogEntry:
        """Append one entry."""

    @abstractmethod
    async def list_for_ticket(self, ticket_id: str) -> List[AssignmentLogEntry]:
        """History of one ticket, oldest first."""


@dataclass
class TicketRepositories:
    """Everything the lifecycle needs, bound to one session."""
    tickets: ITicketRepository
    approvals: IApprovalRepository
    assignment_logs: IAssignmentLogRepository
    directory: IOrgDirectory
    assignments: IAssignmentRepository
    sla_resolver: SLAResolverService


TicketRepositoriesFactory = Callable[[AsyncSession], TicketRepositories]


# ========== Results ==========

@dataclass
class SubmissionResult:
    """A stored ticket with its SLA and the reviewers that were notified."""
    ticket: Ticket
    sla: SLAResolution
    approval: BusinessApproval
    reviewer_ids: List[str] = field(default_factory=list)


@dataclass
class TransitionResult:
    """Outcome of a lifecycle action."""
    ticket: Ticket
    action: TicketAction
    previous_status: TicketStatus
    assignment: Optional[AssignmentResult] = None

    def to_dict(self) -> dict:
        return {
            "ticket": self.ticket.to_dict(),
            "action": self.action.value,
            "previous_status": self.previous_status.value,
            "assignment": self.assignment.to_dict() if self.assignment else None,
        }


# ========== Application Services ==========

class TicketLifecycleService:
    """
    Drives tickets through the fixed lifecycle.

    Each action runs in one transaction ending in a compare-and-set status
    update, so a stale or concurrent request fails with
    InvalidTransitionException and changes nothing. Approval commits before
    auto-assignment starts; an assignment failure never undoes it.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        repositories_factory: TicketRepositoriesFactory,
        assignment_engine: AutoAssignmentEngine,
        dispatcher: NotificationDispatcher
    ):
        self._session_factory = session_factory
        self._repositories_factory = repositories_factory
        self._engine = assignment_engine
        self._dispatcher = dispatcher

    async def submit(self, draft: TicketDraft) -> SubmissionResult:
        """
        File a ticket for business approval.

        Resolves the SLA, stores the ticket as pending_approval together with
        its approval row and notifies every eligible reviewer.

        Raises:
            ResourceNotFoundException: unknown requester
        """
        now = utcnow()

        async with transaction(self._session_factory) as session:
            repos = self._repositories_factory(session)

            requester = await repos.directory.get_user(draft.created_by_user_id)
            if requester is None:
                raise ResourceNotFoundException("User", draft.created_by_user_id)

            sla = await repos.sla_resolver.resolve(SLAContext(
                priority=draft.priority,
                created_by_user_id=draft.created_by_user_id,
                department_id=draft.department_id,
                service_catalog_id=draft.service_catalog_id,
                service_item_id=draft.service_item_id,
                is_kasda_ticket=draft.is_kasda_ticket,
                created_at=now,
            ))

            ticket = await repos.tickets.create(Ticket(
                id=str(uuid4()),
                title=draft.title,
                description=draft.description,
                status=TicketStatus.PENDING_APPROVAL,
                priority=draft.priority,
                created_by_user_id=requester.id,
                department_id=draft.department_id,
                service_catalog_id=draft.service_catalog_id,
                service_item_id=draft.service_item_id,
                template_id=draft.template_id,
                sla_due_date=sla.due_date,
                response_due_date=sla.response_due_date,
                is_kasda_ticket=draft.is_kasda_ticket,
                created_at=now,
                updated_at=now,
            ))

            reviewers = await repos.directory.get_eligible_approvers(requester.id)
            approval = await repos.approvals.create(BusinessApproval(
                id=str(uuid4()),
                ticket_id=ticket.id,
                business_reviewer_id=reviewers[0].id if reviewers else None,
            ))

        if not reviewers:
            logger.warning(
                "Ticket has no eligible reviewer",
                extra={"ticket_id": ticket.id, "requester_id": requester.id}
            )

        for reviewer in reviewers:
            self._dispatcher.dispatch(
                reviewer.id,
                NotificationEvent.APPROVAL_REQUESTED,
                {"ticket_id": ticket.id, "title": ticket.title, "requester_id": requester.id}
            )

        logger.info(
            "Ticket submitted",
            extra={
                "ticket_id": ticket.id,
                "sla_source": sla.source.value,
                "sla_due_date": sla.due_date.isoformat(),
                "reviewer_count": len(reviewers),
            }
        )
        return SubmissionResult(ticket, sla, approval, [r.id for r in reviewers])

    async def get_eligible_approvers(self, ticket_id: str) -> List[OrgUser]:
        """Reviewers allowed to approve or reject a ticket."""
        async with transaction(self._session_factory) as session:
            repos = self._repositories_factory(session)
            ticket = await repos.tickets.get_by_id(ticket_id)
            if ticket is None:
                raise ResourceNotFoundException("Ticket", ticket_id)
            return await repos.directory.get_eligible_approvers(ticket.created_by_user_id)

    async def get_ticket(self, ticket_id: str) -> Ticket:
        async with transaction(self._session_factory) as session:
            ticket = await self._repositories_factory(session).tickets.get_by_id(ticket_id)
        if ticket is None:
            raise ResourceNotFoundException("Ticket", ticket_id)
        return ticket

    async def transition(
        self,
        ticket_id: str,
        action: TicketAction,
        actor_id: str,
        comments: Optional[str] = None
    ) -> TransitionResult:
        """
        Apply a lifecycle action.

        Raises:
            ResourceNotFoundException: unknown ticket
            InvalidTransitionException: action not allowed from the current status
            AuthorizationException: approve/reject by an ineligible reviewer
            ValidationException: reject without comments
        """
        action = TicketAction(action)
        if action == TicketAction.REJECT and not (comments and comments.strip()):
            raise ValidationException("Rejection requires comments", {"ticket_id": ticket_id})

        now = utcnow()

        async with transaction(self._session_factory) as session:
            repos = self._repositories_factory(session)

            ticket = await repos.tickets.get_by_id(ticket_id)
            if ticket is None:
                raise ResourceNotFoundException("Ticket", ticket_id)

            previous = ticket.status
            target = next_status(ticket_id, previous, action)

            if action in APPROVAL_ACTIONS:
                await self._ensure_reviewer(repos.directory, ticket, actor_id)

            values = {}
            if target == TicketStatus.RESOLVED:
                values["resolved_at"] = now
            elif target == TicketStatus.CLOSED:
                values["closed_at"] = now

            changed = await repos.tickets.compare_and_set_status(ticket_id, [previous], target, **values)
            if not changed:
                raise InvalidTransitionException(ticket_id, previous.value, action.value)

            if action in APPROVAL_ACTIONS:
                decision = ApprovalStatus.APPROVED if action == TicketAction.APPROVE else ApprovalStatus.REJECTED
                recorded = await repos.approvals.record_decision(ticket_id, decision, actor_id, comments, now)
                if not recorded:
                    raise InvalidTransitionException(ticket_id, previous.value, action.value)

            if self._releases_workload(previous, target) and ticket.assigned_to_user_id:
                await repos.assignments.release_workload(ticket.assigned_to_user_id)

        ticket = replace(ticket, status=target, updated_at=now, **values)
        logger.info(
            "Ticket transitioned",
            extra={
                "ticket_id": ticket_id,
                "action": action.value,
                "from_status": previous.value,
                "to_status": target.value,
                "actor_id": actor_id,
            }
        )

        result = TransitionResult(ticket=ticket, action=action, previous_status=previous)

        if action == TicketAction.APPROVE:
            self._dispatcher.dispatch(
                ticket.created_by_user_id, NotificationEvent.TICKET_APPROVED, {"ticket_id": ticket_id}
            )
            result.assignment = await self._auto_assign(ticket_id)
            if result.assignment.success:
                result.ticket = replace(
                    ticket,
                    status=TicketStatus.ASSIGNED,
                    assigned_to_user_id=result.assignment.assigned_user_id,
                )
        elif action == TicketAction.REJECT:
            self._dispatcher.dispatch(
                ticket.created_by_user_id,
                NotificationEvent.TICKET_REJECTED,
                {"ticket_id": ticket_id, "comments": comments}
            )

        return result

    async def _ensure_reviewer(self, directory: IOrgDirectory, ticket: Ticket, actor_id: str) -> None:
        reviewers = await directory.get_eligible_approvers(ticket.created_by_user_id)
        if actor_id not in {r.id for r in reviewers}:
            raise AuthorizationException(
                "User is not an eligible business reviewer for this ticket",
                {"ticket_id": ticket.id, "actor_id": actor_id}
            )

    @staticmethod
    def _releases_workload(previous: TicketStatus, target: TicketStatus) -> bool:
        """Work ends at resolve, or at close straight from assigned."""
        if target == TicketStatus.RESOLVED:
            return True
        return target == TicketStatus.CLOSED and previous == TicketStatus.ASSIGNED

    async def _auto_assign(self, ticket_id: str) -> AssignmentResult:
        """Run the engine after approval has committed; failures are reported, not raised."""
        try:
            return await self._engine.assign(ticket_id)
        except ApplicationException as e:
            logger.error(
                "Auto-assignment failed after approval",
                extra={"ticket_id": ticket_id, "error": e.message}
            )
            return AssignmentResult.failure(ticket_id, e.message)
