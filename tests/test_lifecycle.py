import asyncio
from datetime import timedelta
from uuid import UUID, uuid4

import pytest
import pytest_asyncio

from servicedesk.config import (
    ApprovalStatus,
    AssignmentMethod,
    AssignmentStrategy,
    NotificationEvent,
    TicketAction,
    TicketPriority,
    TicketStatus,
)
from servicedesk.core import (
    AuthorizationException,
    DomainException,
    InvalidTransitionException,
    ResourceNotFoundException,
    ValidationException,
)
from servicedesk.directory.models import UserModel
from servicedesk.infrastructure.database import transaction
from servicedesk.tickets.infrastructure.repositories import SQLAlchemyApprovalRepository


async def workload_of(session_factory, user_id):
    async with transaction(session_factory) as session:
        user = await session.get(UserModel, UUID(user_id))
        return user.current_workload


async def approval_of(session_factory, ticket_id):
    async with transaction(session_factory) as session:
        return await SQLAlchemyApprovalRepository(session).get_by_ticket(ticket_id)


class TestSubmit:
    async def test_ticket_waits_for_approval_with_sla(self, engine, org, draft_factory, session_factory):
        result = await engine.submit(draft_factory())

        assert result.ticket.status == TicketStatus.PENDING_APPROVAL
        assert result.ticket.assigned_to_user_id is None
        assert result.ticket.sla_due_date is not None
        assert result.ticket.response_due_date < result.ticket.sla_due_date
        assert result.sla.resolution_time_minutes == 240

        stored = await engine.get_ticket(result.ticket.id)
        assert stored.sla_due_date == result.ticket.sla_due_date

        approval = await approval_of(session_factory, result.ticket.id)
        assert approval.approval_status == ApprovalStatus.PENDING

    async def test_every_unit_reviewer_is_notified(self, engine, org, draft_factory, dispatcher, notifier):
        result = await engine.submit(draft_factory())
        await dispatcher.drain()

        assert set(result.reviewer_ids) == {org["manager_id"], org["backup_id"]}
        assert set(notifier.recipients(NotificationEvent.APPROVAL_REQUESTED.value)) == {
            org["manager_id"], org["backup_id"]
        }

    async def test_unknown_requester(self, engine, org, draft_factory):
        with pytest.raises(ResourceNotFoundException):
            await engine.submit(draft_factory(created_by_user_id=str(uuid4())))

    async def test_eligible_approvers_exclude_requester(self, engine, org, seed, draft_factory):
        # A reviewer filing a ticket cannot approve it.
        result = await engine.submit(draft_factory(created_by_user_id=org["manager_id"]))

        approvers = await engine.get_eligible_approvers(result.ticket.id)

        assert [u.id for u in approvers] == [org["backup_id"]]

    async def test_requester_without_unit_falls_back_to_manager(self, engine, org, seed, draft_factory):
        lone_id = await seed.user("lone", manager_id=org["manager_id"])
        result = await engine.submit(draft_factory(created_by_user_id=lone_id))

        approvers = await engine.get_eligible_approvers(result.ticket.id)

        assert [u.id for u in approvers] == [org["manager_id"]]


class TestApproval:
    async def test_backup_reviewer_can_approve(self, engine, org, draft_factory, session_factory):
        ticket = (await engine.submit(draft_factory())).ticket

        result = await engine.transition(ticket.id, TicketAction.APPROVE, org["backup_id"])

        assert result.previous_status == TicketStatus.PENDING_APPROVAL
        approval = await approval_of(session_factory, ticket.id)
        assert approval.approval_status == ApprovalStatus.APPROVED
        assert approval.business_reviewer_id == org["backup_id"]
        assert approval.approved_at is not None

    async def test_reviewer_of_another_unit_is_refused(self, engine, org, draft_factory):
        ticket = (await engine.submit(draft_factory())).ticket

        with pytest.raises(AuthorizationException):
            await engine.transition(ticket.id, TicketAction.APPROVE, org["outsider_id"])

        assert (await engine.get_ticket(ticket.id)).status == TicketStatus.PENDING_APPROVAL

    async def test_requester_cannot_approve_own_ticket(self, engine, org, draft_factory):
        ticket = (await engine.submit(draft_factory())).ticket

        with pytest.raises(AuthorizationException):
            await engine.transition(ticket.id, TicketAction.APPROVE, org["requester_id"])

    async def test_reject_requires_comments(self, engine, org, draft_factory):
        ticket = (await engine.submit(draft_factory())).ticket

        with pytest.raises(ValidationException):
            await engine.transition(ticket.id, TicketAction.REJECT, org["manager_id"], "   ")

        assert (await engine.get_ticket(ticket.id)).status == TicketStatus.PENDING_APPROVAL

    async def test_reject_records_decision_and_notifies(
        self, engine, org, draft_factory, session_factory, dispatcher, notifier
    ):
        ticket = (await engine.submit(draft_factory())).ticket

        result = await engine.transition(ticket.id, TicketAction.REJECT, org["manager_id"], "Duplicate")
        await dispatcher.drain()

        assert result.ticket.status == TicketStatus.REJECTED
        approval = await approval_of(session_factory, ticket.id)
        assert approval.approval_status == ApprovalStatus.REJECTED
        assert approval.comments == "Duplicate"
        assert notifier.recipients(NotificationEvent.TICKET_REJECTED.value) == [org["requester_id"]]

    async def test_second_decision_is_refused(self, engine, org, draft_factory):
        ticket = (await engine.submit(draft_factory())).ticket
        await engine.transition(ticket.id, TicketAction.REJECT, org["manager_id"], "No budget")

        with pytest.raises(InvalidTransitionException):
            await engine.transition(ticket.id, TicketAction.APPROVE, org["backup_id"])

        assert (await engine.get_ticket(ticket.id)).status == TicketStatus.REJECTED

    async def test_concurrent_approvals_one_wins(self, engine, org, draft_factory):
        ticket = (await engine.submit(draft_factory())).ticket

        outcomes = await asyncio.gather(
            engine.transition(ticket.id, TicketAction.APPROVE, org["manager_id"]),
            engine.transition(ticket.id, TicketAction.APPROVE, org["backup_id"]),
            return_exceptions=True,
        )

        errors = [o for o in outcomes if isinstance(o, Exception)]
        assert len(errors) == 1
        assert isinstance(errors[0], InvalidTransitionException)
        assert (await engine.get_ticket(ticket.id)).status == TicketStatus.APPROVED

    async def test_approval_without_rules_stays_approved(self, engine, org, draft_factory):
        ticket = (await engine.submit(draft_factory())).ticket

        result = await engine.transition(ticket.id, TicketAction.APPROVE, org["manager_id"])

        assert result.assignment is not None
        assert not result.assignment.success
        assert result.ticket.status == TicketStatus.APPROVED
        assert (await engine.get_ticket(ticket.id)).status == TicketStatus.APPROVED

    async def test_assignment_error_does_not_undo_approval(self, engine, org, draft_factory, monkeypatch):
        ticket = (await engine.submit(draft_factory())).ticket

        async def broken_assign(ticket_id, *args, **kwargs):
            raise DomainException("Assignment rule misconfigured")

        monkeypatch.setattr(engine.assignment_engine, "assign", broken_assign)

        result = await engine.transition(ticket.id, TicketAction.APPROVE, org["manager_id"])

        assert result.ticket.status == TicketStatus.APPROVED
        assert not result.assignment.success
        assert result.assignment.reason == "Assignment rule misconfigured"
        assert (await engine.get_ticket(ticket.id)).status == TicketStatus.APPROVED


class TestWork:
    @pytest_asyncio.fixture
    async def assigned(self, engine, org, seed, draft_factory):
        technician_id = await seed.technician("tech", department_id=org["department_id"])
        await seed.rule("everyone", AssignmentStrategy.LEAST_LOADED)
        ticket = (await engine.submit(draft_factory())).ticket
        result = await engine.transition(ticket.id, TicketAction.APPROVE, org["manager_id"])
        assert result.assignment.success
        return result.ticket, technician_id

    async def test_approval_assigns_a_technician(self, engine, assigned, dispatcher, notifier, org):
        ticket, technician_id = assigned
        await dispatcher.drain()

        assert ticket.status == TicketStatus.ASSIGNED
        assert ticket.assigned_to_user_id == technician_id
        assert notifier.recipients(NotificationEvent.TICKET_APPROVED.value) == [org["requester_id"]]
        assert notifier.recipients(NotificationEvent.TICKET_ASSIGNED.value) == [technician_id]

    async def test_full_work_cycle_releases_workload(self, engine, assigned, session_factory):
        ticket, technician_id = assigned
        assert await workload_of(session_factory, technician_id) == 1

        for action in (TicketAction.START, TicketAction.HOLD, TicketAction.RESUME, TicketAction.RESOLVE):
            await engine.transition(ticket.id, action, technician_id)

        resolved = await engine.get_ticket(ticket.id)
        assert resolved.status == TicketStatus.RESOLVED
        assert resolved.resolved_at is not None
        assert resolved.assigned_to_user_id == technician_id
        assert await workload_of(session_factory, technician_id) == 0

        closed = (await engine.transition(ticket.id, TicketAction.CLOSE, technician_id)).ticket
        assert closed.status == TicketStatus.CLOSED
        assert closed.closed_at is not None
        assert await workload_of(session_factory, technician_id) == 0

    async def test_close_from_assigned_releases_workload(self, engine, assigned, session_factory):
        ticket, technician_id = assigned

        await engine.transition(ticket.id, TicketAction.CLOSE, technician_id)

        assert await workload_of(session_factory, technician_id) == 0

    async def test_cannot_cancel_after_assignment(self, engine, assigned, org):
        ticket, _ = assigned

        with pytest.raises(InvalidTransitionException):
            await engine.transition(ticket.id, TicketAction.CANCEL, org["requester_id"])

    async def test_cannot_resolve_on_hold(self, engine, assigned):
        ticket, technician_id = assigned
        await engine.transition(ticket.id, TicketAction.START, technician_id)
        await engine.transition(ticket.id, TicketAction.HOLD, technician_id)

        with pytest.raises(InvalidTransitionException):
            await engine.transition(ticket.id, TicketAction.RESOLVE, technician_id)

        assert (await engine.get_ticket(ticket.id)).status == TicketStatus.PENDING


async def test_cancel_from_approved(engine, org, draft_factory):
    ticket = (await engine.submit(draft_factory())).ticket
    await engine.transition(ticket.id, TicketAction.APPROVE, org["manager_id"])

    result = await engine.transition(ticket.id, TicketAction.CANCEL, org["requester_id"])

    assert result.ticket.status == TicketStatus.CANCELLED


async def test_unknown_ticket(engine, org):
    with pytest.raises(ResourceNotFoundException):
        await engine.transition(str(uuid4()), TicketAction.START, org["requester_id"])

    with pytest.raises(ResourceNotFoundException):
        await engine.get_ticket("not-a-uuid")


async def test_priority_is_kept_on_submit(engine, org, draft_factory):
    ticket = (await engine.submit(draft_factory(priority=TicketPriority.LOW))).ticket
    assert (await engine.get_ticket(ticket.id)).priority == TicketPriority.LOW


async def test_fallback_sla_then_capacity_aware_skill_assignment(
    engine, org, seed, draft_factory, session_factory
):
    submitted = await engine.submit(draft_factory(priority=TicketPriority.HIGH, is_kasda_ticket=False))
    ticket = submitted.ticket
    assert ticket.sla_due_date == ticket.created_at + timedelta(minutes=240)

    light_id = await seed.technician("light", primary_skill="banking", current_workload=40, workload_capacity=100)
    heavy_id = await seed.technician("heavy", primary_skill="banking", current_workload=95, workload_capacity=100)
    rule_id = await seed.rule(
        "banking", AssignmentStrategy.SKILL_MATCH, required_skill="banking",
        respect_capacity=True, max_workload_percent=90
    )

    result = await engine.transition(ticket.id, TicketAction.APPROVE, org["manager_id"])

    assert result.assignment.success
    assert result.ticket.status == TicketStatus.ASSIGNED
    assert result.ticket.assigned_to_user_id == light_id
    assert await workload_of(session_factory, light_id) == 41
    assert await workload_of(session_factory, heavy_id) == 95

    history = await engine.get_assignment_history(ticket.id)
    assert len(history) == 1
    assert history[0].assignment_method == AssignmentMethod.AUTO
    assert history[0].assignment_rule_id == rule_id
