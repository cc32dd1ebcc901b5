from servicedesk.config import AssignmentStrategy, ExperienceLevel
from servicedesk.assignment.domain import (
    AssignmentCriteria,
    AssignmentRule,
    Technician,
    rank_candidates,
    select_candidate,
)


def tech(tech_id, workload=0, capacity=10, skill=None, secondary=(), level=ExperienceLevel.JUNIOR,
         available=True, department_id=None):
    return Technician(
        id=tech_id,
        username=f"user-{tech_id}",
        is_available=available,
        current_workload=workload,
        workload_capacity=capacity,
        primary_skill=skill,
        secondary_skills=tuple(secondary),
        experience_level=level,
        department_id=department_id,
    )


def rule(strategy, **kwargs):
    kwargs.setdefault("id", "rule-1")
    kwargs.setdefault("name", "default")
    return AssignmentRule(assignment_strategy=strategy, **kwargs)


NO_CRITERIA = AssignmentCriteria()


class TestSkillMatch:
    def test_prefers_experience_then_workload(self):
        technicians = [
            tech("a", workload=1, skill="network", level=ExperienceLevel.SENIOR),
            tech("b", workload=0, skill="network", level=ExperienceLevel.JUNIOR),
            tech("c", workload=0, secondary=["network"], level=ExperienceLevel.SENIOR),
            tech("d", workload=0, skill="database", level=ExperienceLevel.EXPERT),
        ]
        ranked = rank_candidates(
            rule(AssignmentStrategy.SKILL_MATCH, required_skill="network"), NO_CRITERIA, technicians
        )

        assert [t.id for t in ranked] == ["c", "a", "b"]

    def test_falls_back_to_ticket_skill(self):
        technicians = [tech("a", skill="printer"), tech("b", skill="network")]
        criteria = AssignmentCriteria(required_skill="printer")

        chosen = select_candidate(rule(AssignmentStrategy.SKILL_MATCH), criteria, technicians)

        assert chosen.id == "a"

    def test_no_skill_anywhere_yields_nobody(self):
        technicians = [tech("a", skill="printer")]
        assert select_candidate(rule(AssignmentStrategy.SKILL_MATCH), NO_CRITERIA, technicians) is None


class TestRoundRobin:
    def test_first_pick_is_least_loaded(self):
        technicians = [tech("a", workload=3), tech("b", workload=1), tech("c", workload=2)]
        chosen = select_candidate(rule(AssignmentStrategy.ROUND_ROBIN), NO_CRITERIA, technicians)
        assert chosen.id == "b"

    def test_rotates_after_cursor(self):
        technicians = [tech("a"), tech("b"), tech("c")]

        picks = []
        cursor = None
        for _ in range(4):
            chosen = select_candidate(
                rule(AssignmentStrategy.ROUND_ROBIN, last_assigned_user_id=cursor), NO_CRITERIA, technicians
            )
            picks.append(chosen.id)
            cursor = chosen.id

        assert picks == ["a", "b", "c", "a"]

    def test_skips_unavailable_technicians(self):
        technicians = [tech("a"), tech("b", available=False), tech("c")]
        chosen = select_candidate(
            rule(AssignmentStrategy.ROUND_ROBIN, last_assigned_user_id="a"), NO_CRITERIA, technicians
        )
        assert chosen.id == "c"

    def test_cursor_of_removed_technician(self):
        technicians = [tech("a"), tech("c")]
        chosen = select_candidate(
            rule(AssignmentStrategy.ROUND_ROBIN, last_assigned_user_id="b"), NO_CRITERIA, technicians
        )
        assert chosen.id == "c"


class TestLeastLoaded:
    def test_lowest_workload_wins_ties_to_experience(self):
        technicians = [
            tech("a", workload=2),
            tech("b", workload=1, level=ExperienceLevel.JUNIOR),
            tech("c", workload=1, level=ExperienceLevel.SENIOR),
        ]
        ranked = rank_candidates(rule(AssignmentStrategy.LEAST_LOADED), NO_CRITERIA, technicians)
        assert [t.id for t in ranked] == ["c", "b", "a"]


class TestFilters:
    def test_capacity_ceiling(self):
        technicians = [tech("a", workload=8, capacity=10), tech("b", workload=9, capacity=10)]
        strict = rule(AssignmentStrategy.LEAST_LOADED, max_workload_percent=85)

        assert [t.id for t in rank_candidates(strict, NO_CRITERIA, technicians)] == ["a"]

    def test_full_technicians_are_skipped(self):
        technicians = [tech("a", workload=10, capacity=10), tech("b", workload=0, capacity=0)]
        assert select_candidate(rule(AssignmentStrategy.LEAST_LOADED), NO_CRITERIA, technicians) is None

    def test_capacity_ignored_when_rule_allows(self):
        technicians = [tech("a", workload=12, capacity=10)]
        lenient = rule(AssignmentStrategy.LEAST_LOADED, respect_capacity=False)
        assert select_candidate(lenient, NO_CRITERIA, technicians).id == "a"

    def test_rule_department_scopes_the_pool(self):
        technicians = [tech("a", department_id="it"), tech("b", department_id="finance")]
        scoped = rule(AssignmentStrategy.LEAST_LOADED, department_id="finance")
        assert select_candidate(scoped, NO_CRITERIA, technicians).id == "b"

