"""
SLA Application Services
=========================

SLA resolution against the policy store and fallback table, and policy
administration. Storage is reached only through the repository interfaces
declared here.
"""

from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import date, datetime, timedelta
from typing import List, Optional, Set

from servicedesk.config import SLASource, settings
from servicedesk.core import ConfigurationException, DomainException, ValidationException, as_utc, utcnow
from servicedesk.shared.infrastructure.logging import get_logger
from servicedesk.sla.domain import (
    BusinessCalendar,
    BusinessWindow,
    SLACalculator,
    SLAConfig,
    SLAContext,
    SLAPolicy,
    SLAResolution,
    default_business_windows,
)

logger = get_logger(__name__)


# ========== Repository Interfaces (Dependency Inversion) ==========

class ISLAPolicyRepository(ABC):
    """Interface for SLA policy data access."""

    @abstractmethod
    async def find_applicable(self, context: SLAContext) -> List[SLAPolicy]:
        """Active policies whose bound dimensions all match the context."""

    @abstractmethod
    async def create(self, policy: SLAPolicy) -> SLAPolicy:
        """Create new policy."""

    @abstractmethod
    async def list_policies(self, active_only: bool = False) -> List[SLAPolicy]:
        """Policies, newest first."""

    @abstractmethod
    async def find_active_by_name(self, name: str) -> Optional[SLAPolicy]:
        """Active policy with this exact name, if any."""


class IBusinessCalendarRepository(ABC):
    """Interface for business hours and holiday lookups."""

    @abstractmethod
    async def get_windows(self, department_id: Optional[str]) -> List[BusinessWindow]:
        """Department windows, or the global ones when the department has none."""

    @abstractmethod
    async def get_holidays(self, department_id: Optional[str], from_date: date) -> Set[date]:
        """Active holidays on or after from_date (global plus department)."""


class ISLAConfigProvider(ABC):
    """Interface for SLA configuration access."""

    @abstractmethod
    def get_config(self) -> SLAConfig:
        """Get current SLA configuration."""


class StaticSLAConfigProvider(ISLAConfigProvider):
    """Fixed configuration, used when no YAML file is watched."""

    def __init__(self, config: Optional[SLAConfig] = None):
        self._config = config or SLAConfig()

    def get_config(self) -> SLAConfig:
        return self._config


# ========== Application Services ==========

class SLAResolverService:
    """
    Resolves the SLA that applies to a ticket.

    The most specific active policy wins; without one the fallback table
    keyed by ticket kind and priority applies. Due dates use the business
    clock only for policies flagged business_hours_only.
    """

    def __init__(
        self,
        policy_repository: ISLAPolicyRepository,
        calendar_repository: IBusinessCalendarRepository,
        config_provider: ISLAConfigProvider
    ):
        self._policy_repo = policy_repository
        self._calendar_repo = calendar_repository
        self._config_provider = config_provider

    async def resolve(self, context: SLAContext) -> SLAResolution:
        """
        Resolve SLA targets and due dates for a ticket.

        Args:
            context: Ticket attributes

        Returns:
            SLAResolution with a concrete due date

        Raises:
            RepositoryException: If the policy store cannot be read
        """
        start = as_utc(context.created_at) if context.created_at else utcnow()

        candidates = await self._policy_repo.find_applicable(context)
        policy = SLACalculator.select_most_specific(candidates, context)

        if policy is None:
            return self._fallback(context, start)

        if policy.business_hours_only:
            calendar = await self._build_calendar(context.department_id, start)
            try:
                due_date = calendar.add_business_minutes(start, policy.resolution_time_minutes)
                response_due = calendar.add_business_minutes(start, policy.response_time_minutes)
            except ValueError as e:
                raise ConfigurationException(
                    "Business calendar has no open hours",
                    {"department_id": context.department_id, "error": str(e)}
                ) from e
        else:
            due_date = SLACalculator.calculate_deadline(start, policy.resolution_time_minutes)
            response_due = SLACalculator.calculate_deadline(start, policy.response_time_minutes)

        logger.info(
            "SLA policy resolved",
            extra={
                "policy_id": policy.id,
                "bound_dimensions": policy.bound_dimensions,
                "business_hours_only": policy.business_hours_only,
                "due_date": due_date.isoformat(),
            }
        )

        return SLAResolution(
            due_date=due_date,
            response_due_date=response_due,
            response_time_minutes=policy.response_time_minutes,
            resolution_time_minutes=policy.resolution_time_minutes,
            business_hours_only=policy.business_hours_only,
            source=SLASource.POLICY,
            policy=policy,
        )

    def _fallback(self, context: SLAContext, start: datetime) -> SLAResolution:
        """Wall-clock due dates from the fallback table."""
        target = self._config_provider.get_config().get_fallback(
            context.is_kasda_ticket, context.priority
        )
        due_date = SLACalculator.calculate_deadline(start, target.resolution)

        logger.info(
            "SLA fallback applied",
            extra={
                "priority": context.priority,
                "is_kasda_ticket": context.is_kasda_ticket,
                "resolution_time_minutes": target.resolution,
            }
        )

        return SLAResolution(
            due_date=due_date,
            response_due_date=SLACalculator.calculate_deadline(start, target.response),
            response_time_minutes=target.response,
            resolution_time_minutes=target.resolution,
            business_hours_only=False,
            source=SLASource.FALLBACK,
        )

    async def _build_calendar(self, department_id: Optional[str], start: datetime) -> BusinessCalendar:
        windows = await self._calendar_repo.get_windows(department_id)
        if not windows:
            windows = default_business_windows(
                settings.business_hours_start,
                settings.business_hours_end,
                settings.business_timezone,
            )

        # Local date of the start can precede the UTC one, so look back a day.
        holidays = await self._calendar_repo.get_holidays(department_id, start.date() - timedelta(days=1))
        return BusinessCalendar(windows, holidays)


class SLAPolicyAdminService:
    """Maintains the policy table that SLAResolverService reads."""

    def __init__(self, policy_repository: ISLAPolicyRepository):
        self._policy_repo = policy_repository

    async def create_policy(self, policy: SLAPolicy) -> SLAPolicy:
        """
        Store a new policy.

        Raises:
            ValidationException: blank name, non-positive targets, or a
                resolution target not above the response target
            DomainException: an active policy already uses the name
        """
        name = (policy.name or "").strip()
        if not name:
            raise ValidationException("SLA policy name is required")
        if policy.response_time_minutes <= 0 or policy.resolution_time_minutes <= 0:
            raise ValidationException(
                "Response and resolution times must be positive",
                {"response_time_minutes": policy.response_time_minutes,
                 "resolution_time_minutes": policy.resolution_time_minutes}
            )
        if policy.response_time_minutes >= policy.resolution_time_minutes:
            raise ValidationException(
                "Resolution time must be greater than response time",
                {"response_time_minutes": policy.response_time_minutes,
                 "resolution_time_minutes": policy.resolution_time_minutes}
            )
        if policy.is_active and await self._policy_repo.find_active_by_name(name):
            raise DomainException("An active SLA policy with this name already exists", {"name": name})

        created = await self._policy_repo.create(replace(policy, name=name))
        logger.info(
            "SLA policy created",
            extra={"policy_id": created.id, "bound_dimensions": created.bound_dimensions}
        )
        return created

    async def list_policies(self, active_only: bool = False) -> List[SLAPolicy]:
        return await self._policy_repo.list_policies(active_only)
