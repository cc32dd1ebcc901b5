"""
Ticket Infrastructure Models
=============================

SQLAlchemy ORM models for tickets, their approval record and the
assignment history.
"""

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import Boolean, DateTime, ForeignKey, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from servicedesk.infrastructure.database import Base
from servicedesk.config import ApprovalStatus, AssignmentMethod, TicketPriority, TicketStatus


def _now() -> datetime:
    return datetime.now(timezone.utc)


class TicketModel(Base):
    """
    Database model for Ticket entity.

    Maps to the 'tickets' table. Rows are never physically deleted.
    """
    __tablename__ = "tickets"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[TicketStatus] = mapped_column(
        String(50), nullable=False, default=TicketStatus.PENDING_APPROVAL, index=True
    )
    priority: Mapped[TicketPriority] = mapped_column(String(50), nullable=False, default=TicketPriority.MEDIUM)

    # People
    created_by_user_id: Mapped[UUID] = mapped_column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    assigned_to_user_id: Mapped[Optional[UUID]] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=True, index=True
    )

    # Classification
    department_id: Mapped[Optional[UUID]] = mapped_column(Uuid, ForeignKey("departments.id"), nullable=True)
    service_catalog_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    service_item_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    template_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    is_kasda_ticket: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_classification_locked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # SLA tracking
    sla_due_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True, index=True)
    response_due_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    closed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now)


class BusinessApprovalModel(Base):
    """
    The approval record of a ticket.

    Exactly one row per ticket; business_reviewer_id records who acted.
    """
    __tablename__ = "business_approvals"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    ticket_id: Mapped[UUID] = mapped_column(Uuid, ForeignKey("tickets.id"), nullable=False, unique=True)
    business_reviewer_id: Mapped[Optional[UUID]] = mapped_column(Uuid, ForeignKey("users.id"), nullable=True)
    approval_status: Mapped[ApprovalStatus] = mapped_column(
        String(50), nullable=False, default=ApprovalStatus.PENDING
    )
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    comments: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now)


class TicketAssignmentLogModel(Base):
    """Append-only assignment history."""
    __tablename__ = "ticket_assignment_logs"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    ticket_id: Mapped[UUID] = mapped_column(Uuid, ForeignKey("tickets.id"), nullable=False, index=True)
    assigned_to_user_id: Mapped[UUID] = mapped_column(Uuid, ForeignKey("users.id"), nullable=False)
    assignment_rule_id: Mapped[Optional[UUID]] = mapped_column(Uuid, nullable=True)
    assignment_method: Mapped[AssignmentMethod] = mapped_column(String(20), nullable=False)
    assignment_reason: Mapped[str] = mapped_column(Text, nullable=False)
    assigned_by_user_id: Mapped[Optional[UUID]] = mapped_column(Uuid, ForeignKey("users.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now)
