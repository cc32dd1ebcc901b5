"""
Service Desk Errors
===================

Error hierarchy shared by every bounded context.

Application services raise these; the API layer maps each family to an
HTTP status (see ``servicedesk.shared.api.middleware``) and the escalation
sweep records them per ticket instead of aborting.
"""

from typing import Optional


class ApplicationException(Exception):
    """Root of every error the service desk raises on purpose."""

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class DomainException(ApplicationException):
    """A business rule refused the operation."""


class RepositoryException(ApplicationException):
    """A storage transaction failed or was rolled back."""


class ValidationException(ApplicationException):
    """Caller input is malformed, e.g. a reject without comments."""


class AuthorizationException(ApplicationException):
    """The acting user may not decide on this ticket."""


class ResourceNotFoundException(ApplicationException):
    """Ticket, user or rule does not exist (malformed ids included)."""

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[str] = None,
        details: Optional[dict] = None
    ):
        self.resource_type = resource_type
        self.resource_id = resource_id
        label = f"{resource_type} '{resource_id}'" if resource_id else resource_type
        super().__init__(f"{label} not found", details)


class ConfigurationException(ApplicationException):
    """Static setup is inconsistent: unknown strategy, closed calendar, missing engine."""


class InvalidTransitionException(DomainException):
    """The ticket's current status does not allow the requested action."""

    def __init__(
        self,
        ticket_id: str,
        current_status: Optional[str],
        action: str,
        details: Optional[dict] = None
    ):
        self.ticket_id = ticket_id
        self.current_status = current_status
        self.action = action
        super().__init__(
            f"Cannot {action} ticket {ticket_id} in status '{current_status}'",
            details or {"ticket_id": ticket_id, "status": current_status, "action": action}
        )


class EscalationItemException(DomainException):
    """One overdue ticket could not be escalated; the sweep carries on."""

    def __init__(self, ticket_id: str, reason: str, details: Optional[dict] = None):
        self.ticket_id = ticket_id
        self.reason = reason
        super().__init__(
            f"Escalation failed for ticket {ticket_id}: {reason}",
            details or {"ticket_id": ticket_id}
        )
