"""
SLA Application Layer
======================

Contains:
- Services: SLA resolution against the policy store and fallback table,
  policy administration
- DTOs: Data transfer objects for API serialization
"""

from servicedesk.sla.application.services import (
    SLAPolicyAdminService,
    SLAResolverService,
    StaticSLAConfigProvider,
    ISLAPolicyRepository,
    IBusinessCalendarRepository,
    ISLAConfigProvider,
)

__all__ = [
    # Services
    "SLAPolicyAdminService",
    "SLAResolverService",
    "StaticSLAConfigProvider",
    # Repository Interfaces
    "ISLAPolicyRepository",
    "IBusinessCalendarRepository",
    "ISLAConfigProvider",
]
