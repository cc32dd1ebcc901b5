"""
API Dependencies
================

FastAPI dependencies shared by every module router.
"""

from fastapi import Request

from servicedesk.core import ConfigurationException
from servicedesk.engine import ServiceDeskEngine


def get_engine(request: Request) -> ServiceDeskEngine:
    """The engine built during application startup."""
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise ConfigurationException("Service desk engine not initialized")
    return engine
