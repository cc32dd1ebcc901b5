"""
Configuration
=============

Runtime settings (environment variables or `.env`) and the enumerations
shared by every context: ticket status, priority, lifecycle actions,
assignment strategies and notification events.
"""

from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Service desk settings; every field can be overridden by an env var of the same name."""

    # ========== Application ==========
    app_name: str = Field(default="servicedesk-engine", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Root log level")

    # ========== Server ==========
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port", ge=1, le=65535)

    # ========== Database ==========
    database_url: str = Field(
        default="postgresql+asyncpg://localhost:5432/servicedesk",
        description="Database connection URL (async driver)"
    )
    db_pool_size: int = Field(default=5, description="Database connection pool size", ge=1)
    db_max_overflow: int = Field(default=10, description="Max overflow connections", ge=0)

    # ========== SLA Configuration ==========
    sla_config_path: Path = Field(
        default=Path("sla_config.yaml"),
        description="Path to the YAML file overriding the fallback SLA table"
    )
    business_hours_start: str = Field(
        default="08:00",
        description="Default business day start (HH:MM) when none is configured"
    )
    business_hours_end: str = Field(
        default="17:00",
        description="Default business day end (HH:MM) when none is configured"
    )
    business_timezone: str = Field(
        default="Asia/Jakarta",
        description="Timezone for default business hours"
    )

    # ========== Escalation ==========
    escalation_enabled: bool = Field(
        default=True,
        description="Run the periodic escalation sweep"
    )
    escalation_interval_seconds: int = Field(
        default=3600,
        description="Seconds between escalation sweeps",
        ge=10
    )
    escalation_contact_user_id: Optional[str] = Field(
        default=None,
        description="User notified on every escalation in addition to the ticket owner"
    )

    # ========== Notifications ==========
    notification_webhook_url: Optional[str] = Field(
        default=None,
        description="Webhook receiving ticket notifications (email relay, chat)"
    )
    notification_timeout_seconds: float = Field(
        default=5.0,
        description="Timeout for notification webhook calls",
        ge=0.1,
        le=30
    )

    # ========== CORS ==========
    cors_origins: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:8080"],
        description="Allowed CORS origins"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        allowed = {"development", "staging", "production", "test"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unknown log level {v!r}")
        return level

    @field_validator("business_hours_start", "business_hours_end")
    @classmethod
    def validate_clock_time(cls, v: str) -> str:
        """Ensure business hour bounds are HH:MM."""
        hours, _, minutes = v.partition(":")
        if not (hours.isdigit() and minutes.isdigit()) or int(hours) > 23 or int(minutes) > 59:
            raise ValueError("business hours must be formatted HH:MM")
        return v


@lru_cache()
def get_settings() -> Settings:
    return Settings()


settings = get_settings()


# ========== Constants ==========

class TicketPriority(str, Enum):
    """Ticket priority levels."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class TicketStatus(str, Enum):
    """Ticket lifecycle statuses."""
    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    REJECTED = "rejected"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    PENDING = "pending"
    RESOLVED = "resolved"
    CLOSED = "closed"
    CANCELLED = "cancelled"


class TicketAction(str, Enum):
    """Actions a user may request on a ticket."""
    APPROVE = "approve"
    REJECT = "reject"
    CANCEL = "cancel"
    START = "start"
    HOLD = "hold"
    RESUME = "resume"
    RESOLVE = "resolve"
    CLOSE = "close"


class ApprovalStatus(str, Enum):
    """Business approval outcomes."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class UserRole(str, Enum):
    """Roles relevant to the lifecycle engine."""
    REQUESTER = "requester"
    MANAGER = "manager"
    TECHNICIAN = "technician"
    ADMIN = "admin"


class ExperienceLevel(str, Enum):
    """Technician seniority, lowest first."""
    JUNIOR = "junior"
    INTERMEDIATE = "intermediate"
    SENIOR = "senior"
    EXPERT = "expert"


class AssignmentStrategy(str, Enum):
    """Candidate-selection strategies for auto-assignment rules."""
    SKILL_MATCH = "skill_match"
    ROUND_ROBIN = "round_robin"
    LEAST_LOADED = "least_loaded"


class AssignmentMethod(str, Enum):
    """How a ticket ended up with its technician."""
    AUTO = "auto"
    MANUAL = "manual"


class SLASource(str, Enum):
    """Where a resolved SLA came from."""
    POLICY = "policy"
    FALLBACK = "fallback"


class NotificationEvent(str, Enum):
    """Events pushed to the notification service."""
    APPROVAL_REQUESTED = "approval_requested"
    TICKET_APPROVED = "ticket_approved"
    TICKET_REJECTED = "ticket_rejected"
    TICKET_ASSIGNED = "ticket_assigned"
    TICKET_ESCALATED = "ticket_escalated"


# ========== Derived lookups ==========

VALID_PRIORITIES = [p.value for p in TicketPriority]
EXPERIENCE_RANK = {level: rank for rank, level in enumerate(ExperienceLevel, start=1)}

# Statuses the escalation sweep never touches
SETTLED_STATUSES = [TicketStatus.RESOLVED, TicketStatus.CLOSED]
