from datetime import timedelta

from servicedesk.config import AssignmentStrategy, NotificationEvent, TicketAction, TicketPriority
from servicedesk.core import RepositoryException, utcnow
from servicedesk.engine import ServiceDeskEngine
from servicedesk.infrastructure.database import transaction
from servicedesk.sla.application.services import StaticSLAConfigProvider
from servicedesk.sla.services import EscalationMonitor
from servicedesk.tickets.infrastructure.repositories import SQLAlchemyTicketRepository

ESCALATED = NotificationEvent.TICKET_ESCALATED.value


def later(hours: int):
    return utcnow() + timedelta(hours=hours)


async def test_overdue_ticket_escalated_once(engine, org, draft_factory, dispatcher, notifier):
    ticket = (await engine.submit(draft_factory(priority=TicketPriority.HIGH))).ticket

    first = await engine.run_escalation_sweep(later(5))
    second = await engine.run_escalation_sweep(later(6))
    await dispatcher.drain()

    assert first.escalated == [ticket.id]
    assert second.checked == 0
    assert (await engine.get_ticket(ticket.id)).priority == TicketPriority.URGENT
    assert notifier.recipients(ESCALATED) == [org["requester_id"]]


async def test_selection_skips_due_settled_and_urgent(engine, org, seed, draft_factory):
    overdue = (await engine.submit(draft_factory(priority=TicketPriority.HIGH))).ticket
    already_urgent = (await engine.submit(draft_factory(priority=TicketPriority.URGENT))).ticket
    not_due = (await engine.submit(draft_factory(priority=TicketPriority.LOW))).ticket

    technician_id = await seed.technician("tech")
    resolved = (await engine.submit(draft_factory(priority=TicketPriority.HIGH))).ticket
    await engine.transition(resolved.id, TicketAction.APPROVE, org["manager_id"])
    await engine.manual_assign(resolved.id, technician_id, org["manager_id"])
    for action in (TicketAction.START, TicketAction.RESOLVE):
        await engine.transition(resolved.id, action, technician_id)

    overdue_ids = await engine.escalation_monitor.find_overdue_tickets(later(5))

    assert overdue_ids == [overdue.id]
    assert already_urgent.id not in overdue_ids
    assert not_due.id not in overdue_ids


async def test_assignee_and_contact_are_notified(
    session_factory, dispatcher, notifier, org, seed, draft_factory
):
    engine = ServiceDeskEngine(
        session_factory, StaticSLAConfigProvider(), dispatcher,
        escalation_contact_user_id=org["outsider_id"]
    )
    technician_id = await seed.technician("tech")
    await seed.rule("all", AssignmentStrategy.LEAST_LOADED)
    ticket = (await engine.submit(draft_factory())).ticket
    await engine.transition(ticket.id, TicketAction.APPROVE, org["manager_id"])

    result = await engine.run_escalation_sweep(later(5))
    await dispatcher.drain()

    assert result.escalated == [ticket.id]
    assert sorted(notifier.recipients(ESCALATED)) == sorted([technician_id, org["outsider_id"]])


class FailingTicketRepository(SQLAlchemyTicketRepository):
    failing_ids = set()

    async def escalate_priority(self, ticket_id, current_time):
        if ticket_id in self.failing_ids:
            raise RepositoryException("Database transaction failed")
        return await super().escalate_priority(ticket_id, current_time)


async def test_one_failure_does_not_stop_the_sweep(session_factory, dispatcher, engine, draft_factory):
    broken = (await engine.submit(draft_factory())).ticket
    healthy = (await engine.submit(draft_factory())).ticket
    FailingTicketRepository.failing_ids = {broken.id}
    monitor = EscalationMonitor(session_factory, FailingTicketRepository, dispatcher)

    result = await monitor.run_sweep(later(5))

    assert result.checked == 2
    assert result.escalated == [healthy.id]
    assert result.failed == [{"ticket_id": broken.id, "error": "Database transaction failed"}]
    assert (await engine.get_ticket(broken.id)).priority == TicketPriority.HIGH


async def test_sweep_summary(engine, draft_factory):
    await engine.submit(draft_factory())

    summary = (await engine.run_escalation_sweep(later(5))).to_dict()

    assert summary["tickets_checked"] == 1
    assert summary["escalated_count"] == 1
    assert summary["failed_count"] == 0


async def overdue_ids(session_factory, current_time):
    async with transaction(session_factory) as session:
        return await SQLAlchemyTicketRepository(session).list_overdue_ids(current_time)


async def test_selection_boundary_and_on_hold(session_factory, engine, org, seed, draft_factory):
    waiting = (await engine.submit(draft_factory(priority=TicketPriority.HIGH))).ticket
    on_hold = (await engine.submit(draft_factory(priority=TicketPriority.LOW))).ticket
    technician_id = await seed.technician("tech")
    await engine.transition(on_hold.id, TicketAction.APPROVE, org["manager_id"])
    await engine.manual_assign(on_hold.id, technician_id, org["manager_id"])
    for action in (TicketAction.START, TicketAction.HOLD):
        await engine.transition(on_hold.id, action, technician_id)

    assert waiting.id not in await overdue_ids(session_factory, waiting.sla_due_date)
    assert waiting.id in await overdue_ids(session_factory, waiting.sla_due_date + timedelta(seconds=1))
    assert on_hold.id in await overdue_ids(session_factory, later(48))
