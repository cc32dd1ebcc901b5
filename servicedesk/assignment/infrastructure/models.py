"""
Assignment Infrastructure Models
=================================

SQLAlchemy ORM model for auto-assignment rules.
"""

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from servicedesk.infrastructure.database import Base
from servicedesk.config import AssignmentStrategy, TicketPriority


class AutoAssignmentRuleModel(Base):
    """
    Maps to the 'auto_assignment_rules' table.

    last_assigned_user_id is the round-robin cursor, advanced inside the
    assignment transaction.
    """
    __tablename__ = "auto_assignment_rules"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    # Match fields (NULL = any)
    template_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    department_id: Mapped[Optional[UUID]] = mapped_column(Uuid, ForeignKey("departments.id"), nullable=True)
    priority_level: Mapped[Optional[TicketPriority]] = mapped_column(String(50), nullable=True)
    required_skill: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # Selection
    assignment_strategy: Mapped[AssignmentStrategy] = mapped_column(
        String(50), nullable=False, default=AssignmentStrategy.LEAST_LOADED
    )
    respect_capacity: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    max_workload_percent: Mapped[int] = mapped_column(Integer, nullable=False, default=100)
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)

    last_assigned_user_id: Mapped[Optional[UUID]] = mapped_column(Uuid, ForeignKey("users.id"), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc)
    )
