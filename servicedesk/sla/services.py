"""
SLA Escalation Services
=======================

Periodic escalation of overdue tickets.

The sweep is split in two: a selection query returning the overdue ticket
ids, and a per-ticket step that runs in its own transaction. One failing
ticket is logged and counted; the rest of the sweep carries on.

This service:
1. Queries tickets past their SLA due date that are still open
2. Raises each to urgent priority with a conditional update
3. Notifies the assignee (or requester) and the escalation contact
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from servicedesk.config import NotificationEvent
from servicedesk.core import ApplicationException, EscalationItemException, as_utc, utcnow
from servicedesk.infrastructure.database import transaction
from servicedesk.shared.infrastructure.logging import get_logger, log_latency
from servicedesk.shared.infrastructure.notifications import NotificationDispatcher
from servicedesk.tickets.application.services import ITicketRepository

logger = get_logger(__name__)

TicketRepositoryFactory = Callable[[AsyncSession], ITicketRepository]


@dataclass
class EscalationSweepResult:
    """Summary of one sweep."""
    started_at: datetime
    checked: int = 0
    escalated: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    failed: List[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "started_at": self.started_at.isoformat(),
            "tickets_checked": self.checked,
            "escalated_count": len(self.escalated),
            "escalated": self.escalated,
            "skipped": self.skipped,
            "failed_count": len(self.failed),
            "failures": self.failed,
        }


class EscalationMonitor:
    """
    Escalates overdue tickets to urgent priority.

    Escalation only ever raises priority, and urgent tickets are excluded
    from selection, so running the sweep again is harmless.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        ticket_repository_factory: TicketRepositoryFactory,
        dispatcher: NotificationDispatcher,
        escalation_contact_user_id: Optional[str] = None
    ):
        self._session_factory = session_factory
        self._ticket_repository_factory = ticket_repository_factory
        self._dispatcher = dispatcher
        self._contact_user_id = escalation_contact_user_id

    async def find_overdue_tickets(self, current_time: Optional[datetime] = None) -> List[str]:
        """Ids of open, non-urgent tickets whose SLA due date has passed."""
        current_time = as_utc(current_time) if current_time else utcnow()
        async with transaction(self._session_factory) as session:
            return await self._ticket_repository_factory(session).list_overdue_ids(current_time)

    async def escalate_ticket(self, ticket_id: str, current_time: Optional[datetime] = None) -> bool:
        """
        Escalate one ticket in its own transaction.

        Returns:
            True if escalated, False if it was no longer eligible

        Raises:
            EscalationItemException: if the update failed
        """
        current_time = as_utc(current_time) if current_time else utcnow()

        try:
            async with transaction(self._session_factory) as session:
                repo = self._ticket_repository_factory(session)
                if not await repo.escalate_priority(ticket_id, current_time):
                    return False
                ticket = await repo.get_by_id(ticket_id)
        except ApplicationException as e:
            raise EscalationItemException(ticket_id, e.message) from e

        payload = {
            "ticket_id": ticket_id,
            "title": ticket.title,
            "status": ticket.status.value,
            "sla_due_date": ticket.sla_due_date.isoformat() if ticket.sla_due_date else None,
        }
        owner = ticket.assigned_to_user_id or ticket.created_by_user_id
        self._dispatcher.dispatch(owner, NotificationEvent.TICKET_ESCALATED, payload)
        if self._contact_user_id and self._contact_user_id != owner:
            self._dispatcher.dispatch(self._contact_user_id, NotificationEvent.TICKET_ESCALATED, payload)

        logger.warning(
            "Ticket escalated to urgent",
            extra={"ticket_id": ticket_id, "notified_user_id": owner}
        )
        return True

    async def run_sweep(self, current_time: Optional[datetime] = None) -> EscalationSweepResult:
        """
        Evaluate all overdue tickets and escalate them.

        Returns:
            Summary of the sweep
        """
        current_time = as_utc(current_time) if current_time else utcnow()
        result = EscalationSweepResult(started_at=current_time)

        with log_latency(logger, "escalation_sweep"):
            ticket_ids = await self.find_overdue_tickets(current_time)
            result.checked = len(ticket_ids)

            for ticket_id in ticket_ids:
                try:
                    if await self.escalate_ticket(ticket_id, current_time):
                        result.escalated.append(ticket_id)
                    else:
                        result.skipped.append(ticket_id)
                except EscalationItemException as e:
                    logger.error(
                        "Escalation failed for ticket",
                        extra={"ticket_id": ticket_id, "error": e.reason}
                    )
                    result.failed.append({"ticket_id": ticket_id, "error": e.reason})

        logger.info(
            "Escalation sweep finished",
            extra={
                "tickets_checked": result.checked,
                "escalated_count": len(result.escalated),
                "failed_count": len(result.failed),
            }
        )
        return result
