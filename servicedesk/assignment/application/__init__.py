"""
Assignment Application Layer
============================

Contains the AutoAssignmentEngine and its repository interface.
"""

from servicedesk.assignment.application.services import (
    AutoAssignmentEngine,
    IAssignmentRepository,
    NO_RULES_REASON,
    NO_CANDIDATE_REASON,
)

__all__ = [
    "AutoAssignmentEngine",
    "IAssignmentRepository",
    "NO_RULES_REASON",
    "NO_CANDIDATE_REASON",
]
