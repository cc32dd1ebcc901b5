"""
Assignment Strategies
=====================

Candidate ordering for each auto-assignment strategy, plus the shared
availability and capacity filters.

Every strategy is a pure function taking the rule, the criteria and the
in-scope technicians and returning them best first. The engine always
takes the head of the filtered list, so results are deterministic for a
given database state.
"""

from typing import Callable, Dict, List, Optional, Sequence

from servicedesk.config import AssignmentStrategy
from servicedesk.core import ConfigurationException
from servicedesk.assignment.domain.entities import AssignmentCriteria, AssignmentRule, Technician

StrategyFn = Callable[[AssignmentRule, AssignmentCriteria, Sequence[Technician]], List[Technician]]


def in_scope(rule: AssignmentRule, technicians: Sequence[Technician]) -> List[Technician]:
    """Technicians of the rule's department, or everyone for a global rule."""
    if rule.department_id is None:
        return list(technicians)
    return [t for t in technicians if t.department_id == rule.department_id]


def skill_match(
    rule: AssignmentRule,
    criteria: AssignmentCriteria,
    technicians: Sequence[Technician]
) -> List[Technician]:
    """
    Technicians holding the required skill, most experienced first.

    The rule's own skill takes precedence over the ticket's. Without
    either there is nothing to match on and no candidate is produced.
    """
    skill = rule.required_skill or criteria.required_skill
    if not skill:
        return []

    skilled = [t for t in in_scope(rule, technicians) if t.has_skill(skill)]
    return sorted(skilled, key=lambda t: (-t.experience_rank, t.current_workload, t.id))


def round_robin(
    rule: AssignmentRule,
    criteria: AssignmentCriteria,
    technicians: Sequence[Technician]
) -> List[Technician]:
    """
    Rotate through technicians in stable id order.

    The list starts right after the rule's cursor. A rule that has never
    assigned starts with the least loaded technician.
    """
    pool = sorted(in_scope(rule, technicians), key=lambda t: t.id)
    cursor = rule.last_assigned_user_id
    if cursor is None:
        return sorted(pool, key=lambda t: (t.current_workload, t.id))

    split = next((i for i, t in enumerate(pool) if t.id > cursor), len(pool))
    return pool[split:] + pool[:split]


def least_loaded(
    rule: AssignmentRule,
    criteria: AssignmentCriteria,
    technicians: Sequence[Technician]
) -> List[Technician]:
    """Lowest workload first; ties go to the more experienced."""
    return sorted(
        in_scope(rule, technicians),
        key=lambda t: (t.current_workload, -t.experience_rank, t.id)
    )


STRATEGIES: Dict[AssignmentStrategy, StrategyFn] = {
    AssignmentStrategy.SKILL_MATCH: skill_match,
    AssignmentStrategy.ROUND_ROBIN: round_robin,
    AssignmentStrategy.LEAST_LOADED: least_loaded,
}

_unhandled = set(AssignmentStrategy) - set(STRATEGIES)
if _unhandled:
    raise ConfigurationException(
        "Assignment strategies without an implementation",
        {"strategies": sorted(s.value for s in _unhandled)}
    )


def filter_available(candidates: Sequence[Technician]) -> List[Technician]:
    return [t for t in candidates if t.is_available]


def filter_capacity(rule: AssignmentRule, candidates: Sequence[Technician]) -> List[Technician]:
    """Drop technicians at or above the rule's workload ceiling."""
    if not rule.respect_capacity:
        return list(candidates)
    return [t for t in candidates if t.workload_percent < rule.max_workload_percent]


def rank_candidates(
    rule: AssignmentRule,
    criteria: AssignmentCriteria,
    technicians: Sequence[Technician]
) -> List[Technician]:
    """Strategy order, then the availability and capacity filters."""
    ordered = STRATEGIES[AssignmentStrategy(rule.assignment_strategy)](rule, criteria, technicians)
    return filter_capacity(rule, filter_available(ordered))


def select_candidate(
    rule: AssignmentRule,
    criteria: AssignmentCriteria,
    technicians: Sequence[Technician]
) -> Optional[Technician]:
    """Head of the ranked pool, or None when it is empty."""
    ranked = rank_candidates(rule, criteria, technicians)
    return ranked[0] if ranked else None
