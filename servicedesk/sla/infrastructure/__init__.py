"""
SLA Infrastructure Layer
=========================

Contains:
- Models: SQLAlchemy ORM models for policies, business hours and holidays
- Repositories: Concrete implementations of repository interfaces
- External: Config file watcher and escalation scheduler
"""

from servicedesk.sla.infrastructure.repositories import (
    SQLAlchemySLAPolicyRepository,
    SQLAlchemyBusinessCalendarRepository,
)

__all__ = [
    "SQLAlchemySLAPolicyRepository",
    "SQLAlchemyBusinessCalendarRepository",
]
