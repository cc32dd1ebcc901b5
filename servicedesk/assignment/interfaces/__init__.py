"""
Assignment Interfaces Layer
===========================

HTTP routes for technician assignment.
"""

from servicedesk.assignment.interfaces.controllers import assignments_router

__all__ = ["assignments_router"]
