"""
Assignment Application Services
================================

The auto-assignment engine: rule matching, strategy evaluation and the
atomic hand-over of a ticket to a technician.
"""

from abc import ABC, abstractmethod
from typing import Callable, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from servicedesk.config import AssignmentMethod, NotificationEvent, TicketStatus
from servicedesk.core import InvalidTransitionException, ResourceNotFoundException
from servicedesk.infrastructure.database import transaction
from servicedesk.shared.infrastructure.logging import get_logger, log_latency
from servicedesk.shared.infrastructure.notifications import NotificationDispatcher
from servicedesk.assignment.domain import (
    AssignmentCriteria,
    AssignmentResult,
    AssignmentRule,
    Technician,
    select_candidate,
)
from servicedesk.tickets.domain.entities import Ticket

logger = get_logger(__name__)

NO_RULES_REASON = "no assignment rules match criteria"
NO_CANDIDATE_REASON = "no available technicians match criteria"


# ========== Repository Interfaces (Dependency Inversion) ==========

class IAssignmentRepository(ABC):
    """Interface for the data the engine reads and the assignment write path."""

    @abstractmethod
    async def get_ticket(self, ticket_id: str) -> Optional[Ticket]:
        """Get ticket by id."""

    @abstractmethod
    async def find_matching_rules(self, criteria: AssignmentCriteria) -> List[AssignmentRule]:
        """Active rules matching the criteria, in evaluation order."""

    @abstractmethod
    async def list_technicians(self) -> List[Technician]:
        """All users with the technician role."""

    @abstractmethod
    async def get_technician(self, user_id: str) -> Optional[Technician]:
        """Get a technician by user id."""

    @abstractmethod
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
        """
        Hand a ticket to a technician inside the caller's transaction.

        The technician's workload must already be reserved with
        reserve_workload in the same transaction.

        Raises:
            InvalidTransitionException: if the ticket left expected_status
        """

    @abstractmethod
    async def reserve_workload(self, user_id: str, rule: Optional[AssignmentRule] = None) -> bool:
        """
        Add one ticket to a technician's workload.

        With a rule, only succeeds while the technician is available and,
        if the rule respects capacity, still below its workload ceiling.
        Returns False when those checks fail at write time.
        """

    @abstractmethod
    async def release_workload(self, user_id: str) -> None:
        """Decrement a technician's workload, never below zero."""


AssignmentRepositoryFactory = Callable[[AsyncSession], IAssignmentRepository]


# ========== Application Services ==========

class AutoAssignmentEngine:
    """
    Picks a technician for an approved ticket and assigns it atomically.

    Rules are tried in order; the first rule whose strategy yields an
    available technician with spare capacity wins. Finding nobody is a
    normal outcome and leaves the ticket approved.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        repository_factory: AssignmentRepositoryFactory,
        dispatcher: Optional[NotificationDispatcher] = None
    ):
        self._session_factory = session_factory
        self._repository_factory = repository_factory
        self._dispatcher = dispatcher

    @staticmethod
    def criteria_for(ticket: Ticket, required_skill: Optional[str] = None) -> AssignmentCriteria:
        """Criteria derived from a ticket's classification."""
        return AssignmentCriteria(
            template_id=ticket.template_id,
            department_id=ticket.department_id,
            priority=ticket.priority,
            required_skill=required_skill,
        )

    async def assign(
        self,
        ticket_id: str,
        criteria: Optional[AssignmentCriteria] = None,
        assigned_by: Optional[str] = None
    ) -> AssignmentResult:
        """
        Auto-assign an approved ticket.

        Args:
            ticket_id: Ticket UUID
            criteria: Matching criteria; derived from the ticket when omitted
            assigned_by: Acting user, if any

        Returns:
            AssignmentResult, success=False when no rule or technician fits

        Raises:
            ResourceNotFoundException: unknown ticket
            InvalidTransitionException: ticket is not (or no longer) approved
            RepositoryException: persistence failure, nothing applied
        """
        with log_latency(logger, "auto_assignment", ticket_id=ticket_id):
            async with transaction(self._session_factory) as session:
                repo = self._repository_factory(session)

                ticket = await repo.get_ticket(ticket_id)
                if ticket is None:
                    raise ResourceNotFoundException("Ticket", ticket_id)
                if ticket.status != TicketStatus.APPROVED:
                    raise InvalidTransitionException(ticket_id, ticket.status.value, "assign")

                criteria = criteria or self.criteria_for(ticket)
                result = await self._assign_with_rules(repo, ticket_id, criteria, assigned_by)

        logger.info(
            "Auto-assignment finished",
            extra={
                "ticket_id": ticket_id,
                "success": result.success,
                "assigned_user_id": result.assigned_user_id,
                "assignment_rule_id": result.assignment_rule_id,
                "reason": result.reason,
            }
        )
        if result.success:
            self._notify_assignee(result)
        return result

    async def _assign_with_rules(
        self,
        repo: IAssignmentRepository,
        ticket_id: str,
        criteria: AssignmentCriteria,
        assigned_by: Optional[str]
    ) -> AssignmentResult:
        rules = await repo.find_matching_rules(criteria)
        if not rules:
            return AssignmentResult.failure(ticket_id, NO_RULES_REASON)

        technicians = await repo.list_technicians()

        for rule in rules:
            candidate = await self._claim_candidate(repo, rule, criteria, technicians)
            if candidate is None:
                logger.debug(
                    "Rule produced no candidate",
                    extra={"ticket_id": ticket_id, "rule_id": rule.id, "strategy": rule.assignment_strategy}
                )
                continue

            reason = f"rule '{rule.name}' ({rule.assignment_strategy.value})"
            await repo.apply_assignment(
                ticket_id,
                TicketStatus.APPROVED,
                candidate.id,
                AssignmentMethod.AUTO,
                reason,
                rule=rule,
                assigned_by=assigned_by,
            )
            return AssignmentResult(
                ticket_id=ticket_id,
                success=True,
                reason=reason,
                assignment_method=AssignmentMethod.AUTO,
                assigned_user_id=candidate.id,
                assignment_rule_id=rule.id,
            )

        return AssignmentResult.failure(ticket_id, NO_CANDIDATE_REASON)

    async def _claim_candidate(
        self,
        repo: IAssignmentRepository,
        rule: AssignmentRule,
        criteria: AssignmentCriteria,
        technicians: List[Technician]
    ) -> Optional[Technician]:
        """Best candidate whose workload could be reserved under the rule's checks."""
        pool = list(technicians)
        while True:
            candidate = select_candidate(rule, criteria, pool)
            if candidate is None:
                return None
            if await repo.reserve_workload(candidate.id, rule):
                return candidate
            logger.info(
                "Technician no longer eligible at write time",
                extra={"rule_id": rule.id, "technician_id": candidate.id}
            )
            pool = [t for t in pool if t.id != candidate.id]

    async def manual_assign(
        self,
        ticket_id: str,
        user_id: str,
        assigned_by: str,
        reason: Optional[str] = None
    ) -> AssignmentResult:
        """
        Assign a ticket to a chosen technician, bypassing rules.

        An approved ticket is assigned; an assigned ticket is re-assigned and
        the previous technician's workload released in the same transaction.
        """
        async with transaction(self._session_factory) as session:
            repo = self._repository_factory(session)

            ticket = await repo.get_ticket(ticket_id)
            if ticket is None:
                raise ResourceNotFoundException("Ticket", ticket_id)

            technician = await repo.get_technician(user_id)
            if technician is None:
                raise ResourceNotFoundException("User", user_id)

            if ticket.status == TicketStatus.APPROVED:
                previous_user_id = None
            elif ticket.status == TicketStatus.ASSIGNED:
                previous_user_id = ticket.assigned_to_user_id
            else:
                raise InvalidTransitionException(ticket_id, ticket.status.value, "assign")

            reason = reason or "manual assignment"
            await repo.reserve_workload(technician.id)
            await repo.apply_assignment(
                ticket_id,
                ticket.status,
                technician.id,
                AssignmentMethod.MANUAL,
                reason,
                assigned_by=assigned_by,
                previous_user_id=previous_user_id,
            )

        result = AssignmentResult(
            ticket_id=ticket_id,
            success=True,
            reason=reason,
            assignment_method=AssignmentMethod.MANUAL,
            assigned_user_id=technician.id,
            previous_user_id=previous_user_id,
        )
        logger.info(
            "Manual assignment",
            extra={
                "ticket_id": ticket_id,
                "assigned_user_id": technician.id,
                "previous_user_id": previous_user_id,
                "assigned_by": assigned_by,
            }
        )
        self._notify_assignee(result)
        return result

    def _notify_assignee(self, result: AssignmentResult) -> None:
        if self._dispatcher is None:
            return
        self._dispatcher.dispatch(
            result.assigned_user_id,
            NotificationEvent.TICKET_ASSIGNED,
            {
                "ticket_id": result.ticket_id,
                "assignment_method": result.assignment_method.value,
                "reason": result.reason,
            }
        )
