"""
SLA Module
==========

Bounded Context for Service Level Agreement resolution and escalation.

Responsibilities:
- Resolve the most specific SLA policy for a ticket, or the fallback target
- Compute due dates on the wall clock or the business-hours clock
- Hot-reload the fallback table from YAML via watchdog
- Escalate overdue tickets to urgent on a fixed schedule
"""

__version__ = "1.0.0"
