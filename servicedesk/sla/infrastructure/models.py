"""
SLA Infrastructure Models
==========================

SQLAlchemy ORM models for SLA module.

These are the database representations of our domain entities.
They belong in the infrastructure layer, not the domain layer.
"""

from datetime import date, datetime, timezone
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Integer, SmallInteger, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from servicedesk.infrastructure.database import Base
from servicedesk.config import TicketPriority


class SLAPolicyModel(Base):
    """
    Database model for SLA policies.

    Maps to the 'sla_policies' table. A NULL match column is a wildcard.
    """
    __tablename__ = "sla_policies"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Match dimensions
    service_item_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    service_catalog_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    department_id: Mapped[Optional[UUID]] = mapped_column(
        Uuid, ForeignKey("departments.id"), nullable=True, index=True
    )
    priority: Mapped[Optional[TicketPriority]] = mapped_column(String(50), nullable=True)

    # Targets
    response_time_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    resolution_time_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    business_hours_only: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc)
    )


class BusinessHoursModel(Base):
    """
    Opening hours per weekday.

    Rows with a NULL department_id form the global calendar.
    """
    __tablename__ = "business_hours"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    department_id: Mapped[Optional[UUID]] = mapped_column(
        Uuid, ForeignKey("departments.id"), nullable=True, index=True
    )
    day_of_week: Mapped[int] = mapped_column(SmallInteger, nullable=False)  # 0=Sunday
    start_time: Mapped[str] = mapped_column(String(5), nullable=False)  # HH:MM
    end_time: Mapped[str] = mapped_column(String(5), nullable=False)
    timezone: Mapped[str] = mapped_column(String(64), nullable=False, default="Asia/Jakarta")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class HolidayModel(Base):
    """Days on which the business clock does not run."""
    __tablename__ = "holiday_calendar"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    holiday_date: Mapped[date] = mapped_column("date", Date, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    department_id: Mapped[Optional[UUID]] = mapped_column(
        Uuid, ForeignKey("departments.id"), nullable=True, index=True
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
