"""
Directory Infrastructure Models
================================

SQLAlchemy ORM models for the organizational hierarchy: departments,
units and users (requesters, managers, technicians).
"""

from datetime import datetime, timezone
from typing import List, Optional
from uuid import UUID, uuid4

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from servicedesk.config import ExperienceLevel, UserRole
from servicedesk.infrastructure.database import Base


class DepartmentModel(Base):
    """Maps to the 'departments' table."""
    __tablename__ = "departments"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    department_type: Mapped[str] = mapped_column(String(50), nullable=False, default="technical")


class UnitModel(Base):
    """
    Organizational unit (branch, division).

    Business reviewers are attached to units; a requester's unit decides who
    may approve the requester's tickets.
    """
    __tablename__ = "units"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    code: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    department_id: Mapped[Optional[UUID]] = mapped_column(
        Uuid, ForeignKey("departments.id"), nullable=True, index=True
    )


class UserModel(Base):
    """
    Database model for users.

    current_workload is owned by the database: it only changes through
    in-SQL increments and decrements inside an assignment transaction.
    """
    __tablename__ = "users"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    username: Mapped[str] = mapped_column(String(150), nullable=False, unique=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[UserRole] = mapped_column(String(50), nullable=False, default=UserRole.REQUESTER)

    # Organization
    unit_id: Mapped[Optional[UUID]] = mapped_column(Uuid, ForeignKey("units.id"), nullable=True, index=True)
    department_id: Mapped[Optional[UUID]] = mapped_column(
        Uuid, ForeignKey("departments.id"), nullable=True, index=True
    )
    manager_id: Mapped[Optional[UUID]] = mapped_column(Uuid, ForeignKey("users.id"), nullable=True)
    is_business_reviewer: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Technician scheduling
    is_available: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    current_workload: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    workload_capacity: Mapped[int] = mapped_column(Integer, nullable=False, default=10)
    primary_skill: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, index=True)
    secondary_skills: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    experience_level: Mapped[ExperienceLevel] = mapped_column(
        String(50), nullable=False, default=ExperienceLevel.JUNIOR
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc)
    )
