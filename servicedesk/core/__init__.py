"""
Core
====

Error types and UTC time helpers used by every layer of the service desk.
"""

from servicedesk.core.exceptions import (
    ApplicationException,
    DomainException,
    RepositoryException,
    ValidationException,
    AuthorizationException,
    ResourceNotFoundException,
    ConfigurationException,
    InvalidTransitionException,
    EscalationItemException,
)
from servicedesk.core.timeutils import utcnow, as_utc

__all__ = [
    "ApplicationException",
    "DomainException",
    "RepositoryException",
    "ValidationException",
    "AuthorizationException",
    "ResourceNotFoundException",
    "ConfigurationException",
    "InvalidTransitionException",
    "EscalationItemException",
    "utcnow",
    "as_utc",
]
