"""
Ticket Interfaces Layer
=======================

HTTP routes for the ticket lifecycle.
"""

from servicedesk.tickets.interfaces.controllers import tickets_router

__all__ = ["tickets_router"]
