import asyncio
from dataclasses import replace
from uuid import UUID, uuid4

import pytest
import pytest_asyncio
from sqlalchemy import select

from servicedesk.config import (
    AssignmentMethod,
    AssignmentStrategy,
    ExperienceLevel,
    TicketAction,
    TicketPriority,
    TicketStatus,
)
from servicedesk.core import InvalidTransitionException, ResourceNotFoundException
from servicedesk.directory.models import UserModel
from servicedesk.infrastructure.database import transaction
from servicedesk.assignment.application.services import (
    NO_CANDIDATE_REASON,
    NO_RULES_REASON,
    AutoAssignmentEngine,
)
from servicedesk.assignment.domain import AssignmentCriteria
from servicedesk.assignment.infrastructure.models import AutoAssignmentRuleModel
from servicedesk.assignment.infrastructure.repositories import SQLAlchemyAssignmentRepository


async def workload_of(session_factory, user_id):
    async with transaction(session_factory) as session:
        return (await session.get(UserModel, UUID(user_id))).current_workload


async def cursor_of(session_factory, rule_id):
    async with transaction(session_factory) as session:
        value = await session.scalar(
            select(AutoAssignmentRuleModel.last_assigned_user_id).where(
                AutoAssignmentRuleModel.id == UUID(rule_id)
            )
        )
        return str(value) if value else None


@pytest_asyncio.fixture
async def approved_ticket(engine, org, draft_factory):
    """Factory of tickets approved while no rule exists, so they stay approved."""
    async def factory(**overrides):
        ticket = (await engine.submit(draft_factory(**overrides))).ticket
        result = await engine.transition(ticket.id, TicketAction.APPROVE, org["manager_id"])
        assert result.ticket.status == TicketStatus.APPROVED
        return ticket.id
    return factory


class TestAutoAssign:
    async def test_no_rules(self, engine, approved_ticket):
        ticket_id = await approved_ticket()

        result = await engine.assign_ticket(ticket_id)

        assert not result.success
        assert result.reason == NO_RULES_REASON
        assert (await engine.get_ticket(ticket_id)).status == TicketStatus.APPROVED

    async def test_no_candidate_leaves_ticket_approved(self, engine, seed, approved_ticket):
        ticket_id = await approved_ticket()
        await seed.technician("busy", workload_capacity=2, current_workload=2)
        await seed.technician("away", is_available=False)
        await seed.rule("all", AssignmentStrategy.LEAST_LOADED)

        result = await engine.assign_ticket(ticket_id)

        assert not result.success
        assert result.reason == NO_CANDIDATE_REASON
        assert (await engine.get_ticket(ticket_id)).status == TicketStatus.APPROVED
        assert await engine.get_assignment_history(ticket_id) == []

    async def test_assignment_is_atomic(self, engine, seed, approved_ticket, session_factory):
        ticket_id = await approved_ticket()
        technician_id = await seed.technician("tech", current_workload=3)
        rule_id = await seed.rule("all", AssignmentStrategy.LEAST_LOADED)

        result = await engine.assign_ticket(ticket_id, assigned_by=None)

        assert result.success
        assert result.assigned_user_id == technician_id
        assert result.assignment_rule_id == rule_id
        assert result.reason == "rule 'all' (least_loaded)"

        ticket = await engine.get_ticket(ticket_id)
        assert ticket.status == TicketStatus.ASSIGNED
        assert ticket.assigned_to_user_id == technician_id
        assert await workload_of(session_factory, technician_id) == 4

        history = await engine.get_assignment_history(ticket_id)
        assert len(history) == 1
        assert history[0].assignment_method == AssignmentMethod.AUTO
        assert history[0].assignment_rule_id == rule_id

    async def test_sole_candidate_over_ceiling_is_not_selected(
        self, engine, seed, approved_ticket, session_factory
    ):
        ticket_id = await approved_ticket()
        technician_id = await seed.technician(
            "busy", primary_skill="banking", current_workload=90, workload_capacity=100
        )
        await seed.rule("banking", AssignmentStrategy.SKILL_MATCH, required_skill="banking",
                        max_workload_percent=80)

        result = await engine.assign_ticket(ticket_id)

        assert not result.success
        assert result.reason == NO_CANDIDATE_REASON
        assert await workload_of(session_factory, technician_id) == 90

    async def test_over_ceiling_falls_through_to_next_rule(self, engine, seed, approved_ticket):
        ticket_id = await approved_ticket()
        await seed.technician("busy", primary_skill="banking", current_workload=90, workload_capacity=100)
        idle_id = await seed.technician("idle", current_workload=1, workload_capacity=100)
        await seed.rule("banking", AssignmentStrategy.SKILL_MATCH, priority=10, required_skill="banking",
                        max_workload_percent=80)
        fallback_id = await seed.rule("fallback", AssignmentStrategy.LEAST_LOADED, priority=1)

        result = await engine.assign_ticket(ticket_id)

        assert result.assigned_user_id == idle_id
        assert result.assignment_rule_id == fallback_id

    async def test_capacity_rechecked_against_stored_workload(
        self, session_factory, seed, approved_ticket
    ):
        ticket_id = await approved_ticket()
        filled_id = await seed.technician(
            "filled", current_workload=9, workload_capacity=10, experience_level=ExperienceLevel.SENIOR
        )
        spare_id = await seed.technician("spare", current_workload=5, workload_capacity=10)
        await seed.rule("all", AssignmentStrategy.LEAST_LOADED, max_workload_percent=90)
        assigner = AutoAssignmentEngine(session_factory, StaleWorkloadRepository)

        result = await assigner.assign(ticket_id)

        # The stale read ranks "filled" first; the write-time check refuses it.
        assert result.assigned_user_id == spare_id
        assert await workload_of(session_factory, filled_id) == 9
        assert await workload_of(session_factory, spare_id) == 6

    async def test_rules_tried_in_priority_order(self, engine, seed, approved_ticket):
        ticket_id = await approved_ticket()
        network_id = await seed.technician("net", primary_skill="network", experience_level=ExperienceLevel.SENIOR)
        await seed.technician("idle", current_workload=0)
        await seed.rule("skills", AssignmentStrategy.SKILL_MATCH, priority=10, required_skill="network")
        await seed.rule("fallback", AssignmentStrategy.LEAST_LOADED, priority=1)

        result = await engine.assign_ticket(
            ticket_id, AssignmentCriteria(priority=TicketPriority.HIGH, required_skill="network")
        )

        assert result.assigned_user_id == network_id
        assert result.reason.startswith("rule 'skills'")

    async def test_next_rule_when_first_has_no_candidate(self, engine, seed, approved_ticket):
        ticket_id = await approved_ticket()
        idle_id = await seed.technician("idle")
        await seed.rule("dba", AssignmentStrategy.SKILL_MATCH, priority=10, required_skill="database")
        fallback_id = await seed.rule("fallback", AssignmentStrategy.LEAST_LOADED, priority=1)

        result = await engine.assign_ticket(ticket_id)

        assert result.assigned_user_id == idle_id
        assert result.assignment_rule_id == fallback_id

    async def test_rule_bound_to_other_priority_is_skipped(self, engine, seed, approved_ticket):
        ticket_id = await approved_ticket(priority=TicketPriority.LOW)
        await seed.technician("tech")
        await seed.rule("urgent only", AssignmentStrategy.LEAST_LOADED, priority_level=TicketPriority.URGENT)

        result = await engine.assign_ticket(ticket_id)

        assert result.reason == NO_RULES_REASON

    async def test_round_robin_rotates_and_persists_cursor(
        self, engine, seed, approved_ticket, session_factory
    ):
        ticket_ids = [await approved_ticket() for _ in range(3)]
        first = await seed.technician("first")
        second = await seed.technician("second")
        rule_id = await seed.rule("rotate", AssignmentStrategy.ROUND_ROBIN)
        in_id_order = sorted([first, second])

        picks = []
        for ticket_id in ticket_ids:
            result = await engine.assign_ticket(ticket_id)
            picks.append(result.assigned_user_id)

        # First pick has the lowest workload and, on a tie, the lowest id.
        assert picks == [in_id_order[0], in_id_order[1], in_id_order[0]]
        assert await cursor_of(session_factory, rule_id) == in_id_order[0]

    async def test_ticket_must_be_approved(self, engine, seed, org, draft_factory):
        ticket = (await engine.submit(draft_factory())).ticket
        await seed.technician("tech")
        await seed.rule("all")

        with pytest.raises(InvalidTransitionException):
            await engine.assign_ticket(ticket.id)

    async def test_unknown_ticket(self, engine):
        with pytest.raises(ResourceNotFoundException):
            await engine.assign_ticket(str(uuid4()))

    async def test_concurrent_attempts_assign_once(self, engine, seed, approved_ticket, session_factory):
        ticket_id = await approved_ticket()
        technician_id = await seed.technician("tech")
        await seed.rule("all")

        outcomes = await asyncio.gather(
            engine.assign_ticket(ticket_id),
            engine.assign_ticket(ticket_id),
            return_exceptions=True,
        )

        successes = [o for o in outcomes if not isinstance(o, Exception) and o.success]
        errors = [o for o in outcomes if isinstance(o, Exception)]
        assert len(successes) == 1
        assert len(errors) == 1
        assert isinstance(errors[0], InvalidTransitionException)
        assert await workload_of(session_factory, technician_id) == 1
        assert len(await engine.get_assignment_history(ticket_id)) == 1

    async def test_concurrent_tickets_count_every_assignment(
        self, engine, seed, approved_ticket, session_factory
    ):
        ticket_ids = [await approved_ticket() for _ in range(4)]
        technician_id = await seed.technician("tech", workload_capacity=10)
        await seed.rule("all")

        results = await asyncio.gather(*(engine.assign_ticket(t) for t in ticket_ids))

        assert all(r.success for r in results)
        assert await workload_of(session_factory, technician_id) == 4


class StaleWorkloadRepository(SQLAlchemyAssignmentRepository):
    """Reports every technician idle, as a read taken before other assignments committed would."""

    async def list_technicians(self):
        return [replace(t, current_workload=0) for t in await super().list_technicians()]


class TestRuleQuery:
    async def find(self, session_factory, criteria):
        async with transaction(session_factory) as session:
            rules = await SQLAlchemyAssignmentRepository(session).find_matching_rules(criteria)
        return [r.name for r in rules]

    async def test_wildcards_and_bound_fields(self, seed, session_factory):
        await seed.rule("high only", priority_level=TicketPriority.HIGH)
        await seed.rule("any", priority=-1)

        assert await self.find(session_factory, AssignmentCriteria(priority=TicketPriority.HIGH)) == [
            "high only", "any"
        ]
        assert await self.find(session_factory, AssignmentCriteria(priority=TicketPriority.LOW)) == ["any"]
        assert await self.find(session_factory, AssignmentCriteria()) == ["high only", "any"]

    async def test_inactive_rule_never_matches(self, seed, session_factory):
        await seed.rule("retired", is_active=False)
        assert await self.find(session_factory, AssignmentCriteria()) == []

    async def test_evaluation_order(self, seed, session_factory):
        await seed.rule("b", priority=5)
        await seed.rule("a", priority=5)
        await seed.rule("z", priority=9)

        assert await self.find(session_factory, AssignmentCriteria()) == ["z", "a", "b"]


class TestManualAssign:
    async def test_assigns_approved_ticket(self, engine, seed, approved_ticket, org, session_factory):
        ticket_id = await approved_ticket()
        technician_id = await seed.technician("tech")

        result = await engine.manual_assign(ticket_id, technician_id, org["manager_id"], "VIP user")

        assert result.success
        assert result.assignment_method == AssignmentMethod.MANUAL
        history = await engine.get_assignment_history(ticket_id)
        assert history[0].assignment_reason == "VIP user"
        assert history[0].assigned_by_user_id == org["manager_id"]
        assert await workload_of(session_factory, technician_id) == 1

    async def test_reassignment_moves_workload(self, engine, seed, approved_ticket, org, session_factory):
        ticket_id = await approved_ticket()
        first = await seed.technician("first")
        second = await seed.technician("second")

        await engine.manual_assign(ticket_id, first, org["manager_id"])
        result = await engine.manual_assign(ticket_id, second, org["manager_id"], "Escalated to L2")

        assert result.previous_user_id == first
        assert await workload_of(session_factory, first) == 0
        assert await workload_of(session_factory, second) == 1
        assert (await engine.get_ticket(ticket_id)).assigned_to_user_id == second
        assert [e.assigned_to_user_id for e in await engine.get_assignment_history(ticket_id)] == [first, second]

    async def test_unknown_technician(self, engine, approved_ticket, org):
        ticket_id = await approved_ticket()

        with pytest.raises(ResourceNotFoundException):
            await engine.manual_assign(ticket_id, str(uuid4()), org["manager_id"])

    async def test_refused_once_work_started(self, engine, seed, approved_ticket, org):
        ticket_id = await approved_ticket()
        technician_id = await seed.technician("tech")
        await engine.manual_assign(ticket_id, technician_id, org["manager_id"])
        await engine.transition(ticket_id, TicketAction.START, technician_id)

        with pytest.raises(InvalidTransitionException):
            await engine.manual_assign(ticket_id, technician_id, org["manager_id"])
