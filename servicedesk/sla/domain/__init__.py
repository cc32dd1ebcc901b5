"""
SLA Domain Layer
================

Contains:
- Entities: SLAPolicy, SLAContext, SLAResolution
- Value Objects: SLAConfig (fallback table), BusinessWindow, BusinessCalendar
- Domain Services: SLACalculator (specificity ordering, deadlines, overdue check)
"""

from servicedesk.sla.domain.entities import SLAPolicy, SLAContext, SLAResolution
from servicedesk.sla.domain.value_objects import (
    SLACalculator,
    SLAConfig,
    FallbackTarget,
    BusinessWindow,
    BusinessCalendar,
    default_business_windows,
)

__all__ = [
    # Entities
    "SLAPolicy",
    "SLAContext",
    "SLAResolution",
    # Value Objects & Services
    "SLACalculator",
    "SLAConfig",
    "FallbackTarget",
    "BusinessWindow",
    "BusinessCalendar",
    "default_business_windows",
]
