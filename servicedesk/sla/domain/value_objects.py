"""
SLA Value Objects
==================

Immutable value objects for SLA domain.

Value objects are defined by their attributes rather than an identity.
They are immutable and can be freely shared.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Dict, Iterable, List, Optional, Sequence, Tuple
from zoneinfo import ZoneInfo

from pydantic import BaseModel, Field, field_validator

from servicedesk.config import TicketPriority, VALID_PRIORITIES
from servicedesk.sla.domain.entities import SLAPolicy, SLAContext

# Longest stretch scanned for the next business window (a year of holidays).
MAX_CALENDAR_SCAN_DAYS = 370

TECHNICAL = "technical"
KASDA = "kasda"

DEFAULT_FALLBACK_TARGETS: Dict[str, Dict[str, Dict[str, int]]] = {
    TECHNICAL: {
        "urgent": {"response": 15, "resolution": 120},
        "high": {"response": 30, "resolution": 240},
        "medium": {"response": 60, "resolution": 480},
        "low": {"response": 240, "resolution": 1440},
    },
    KASDA: {
        "urgent": {"response": 240, "resolution": 480},
        "high": {"response": 480, "resolution": 1440},
        "medium": {"response": 960, "resolution": 2880},
        "low": {"response": 1440, "resolution": 4320},
    },
}


class SLACalculator:
    """
    Stateless SLA rules: which policy wins and when a ticket is due.
    """

    @staticmethod
    def select_most_specific(
        policies: Iterable[SLAPolicy],
        context: SLAContext
    ) -> Optional[SLAPolicy]:
        """
        Pick the single applicable policy for a ticket.

        Args:
            policies: Candidate policies (may include non-matching ones)
            context: Ticket attributes

        Returns:
            The most specific matching policy, or None
        """
        applicable = [p for p in policies if p.matches(context)]
        if not applicable:
            return None
        return max(applicable, key=lambda p: p.specificity_key)

    @staticmethod
    def calculate_deadline(created_at: datetime, sla_minutes: int) -> datetime:
        """Wall-clock deadline."""
        return created_at + timedelta(minutes=sla_minutes)


@dataclass(frozen=True)
class BusinessWindow:
    """Opening hours for one weekday (0=Sunday ... 6=Saturday)."""
    day_of_week: int
    start: time
    end: time
    timezone: str = "Asia/Jakarta"

    @classmethod
    def parse(cls, day_of_week: int, start: str, end: str, tz: str = "Asia/Jakarta") -> "BusinessWindow":
        """Build a window from HH:MM strings."""
        return cls(
            day_of_week=day_of_week,
            start=time.fromisoformat(start),
            end=time.fromisoformat(end),
            timezone=tz,
        )


class BusinessCalendar:
    """
    Counts SLA minutes only while the desk is open.

    Windows are keyed by weekday; holidays close the whole day. A clock
    started outside a window begins at the next opening.
    """

    def __init__(
        self,
        windows: Sequence[BusinessWindow],
        holidays: Iterable[date] = (),
        tz: Optional[str] = None
    ):
        if not windows:
            raise ValueError("A business calendar needs at least one window")
        self._windows: Dict[int, BusinessWindow] = {w.day_of_week: w for w in windows}
        self._holidays = frozenset(holidays)
        self._tz = ZoneInfo(tz or windows[0].timezone)

    @staticmethod
    def day_index(day: date) -> int:
        """Weekday with Sunday as 0."""
        return (day.weekday() + 1) % 7

    def _window_bounds(self, day: date) -> Optional[Tuple[datetime, datetime]]:
        if day in self._holidays:
            return None
        window = self._windows.get(self.day_index(day))
        if window is None or window.end <= window.start:
            return None
        return (
            datetime.combine(day, window.start, tzinfo=self._tz),
            datetime.combine(day, window.end, tzinfo=self._tz),
        )

    def add_business_minutes(self, start: datetime, minutes: int) -> datetime:
        """
        Deadline after `minutes` of open time, returned in UTC.

        Raises:
            ValueError: if no window opens within MAX_CALENDAR_SCAN_DAYS
        """
        cursor = start.astimezone(self._tz)
        remaining = timedelta(minutes=max(0, minutes))
        if not remaining:
            return start.astimezone(timezone.utc)

        for _ in range(MAX_CALENDAR_SCAN_DAYS):
            bounds = self._window_bounds(cursor.date())
            if bounds is not None:
                open_at, close_at = bounds
                if cursor < open_at:
                    cursor = open_at
                if cursor < close_at:
                    available = close_at - cursor
                    if remaining <= available:
                        return (cursor + remaining).astimezone(timezone.utc)
                    remaining -= available
            next_day = cursor.date() + timedelta(days=1)
            cursor = datetime.combine(next_day, time(0), tzinfo=self._tz)

        raise ValueError("No business hours found within the scan horizon")


class FallbackTarget(BaseModel):
    """Response/resolution minutes for one fallback cell."""
    response: int = Field(ge=1, description="Minutes to first response")
    resolution: int = Field(ge=1, description="Minutes to resolution")


class SLAConfig(BaseModel):
    """
    SLA configuration loaded from YAML.

    Holds the fallback table used when no policy matches a ticket. Missing
    cells are filled with the built-in defaults.
    """
    fallback_targets: Dict[str, Dict[str, FallbackTarget]] = Field(
        default_factory=dict,
        validate_default=True,
        description="Fallback minutes by ticket kind (technical/kasda) and priority"
    )

    @field_validator("fallback_targets", mode="before")
    @classmethod
    def fill_fallback_targets(cls, v: Optional[dict]) -> dict:
        """Merge configured cells over the defaults."""
        v = v or {}
        merged: Dict[str, Dict[str, dict]] = {}
        for kind, defaults in DEFAULT_FALLBACK_TARGETS.items():
            configured = v.get(kind) or {}
            merged[kind] = {}
            for priority in VALID_PRIORITIES:
                cell = dict(defaults[priority])
                override = configured.get(priority)
                if isinstance(override, FallbackTarget):
                    override = override.model_dump()
                cell.update(override or {})
                merged[kind][priority] = cell
        return merged

    def get_fallback(self, is_kasda_ticket: bool, priority: TicketPriority) -> FallbackTarget:
        """Fallback cell for a ticket kind and priority."""
        kind = KASDA if is_kasda_ticket else TECHNICAL
        return self.fallback_targets[kind][TicketPriority(priority).value]


def default_business_windows(start: str, end: str, tz: str) -> List[BusinessWindow]:
    """Monday to Friday with the same opening hours."""
    return [BusinessWindow.parse(day, start, end, tz) for day in range(1, 6)]
