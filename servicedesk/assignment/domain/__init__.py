"""
Assignment Domain Layer
=======================

Contains:
- Entities: Technician, AssignmentRule, AssignmentCriteria, AssignmentResult
- Strategies: skill_match, round_robin, least_loaded and the candidate filters

Pure Python, no infrastructure dependencies.
"""

from servicedesk.assignment.domain.entities import (
    Technician,
    AssignmentRule,
    AssignmentCriteria,
    AssignmentResult,
)
from servicedesk.assignment.domain.strategies import (
    STRATEGIES,
    rank_candidates,
    select_candidate,
)

__all__ = [
    "Technician",
    "AssignmentRule",
    "AssignmentCriteria",
    "AssignmentResult",
    "STRATEGIES",
    "rank_candidates",
    "select_candidate",
]
