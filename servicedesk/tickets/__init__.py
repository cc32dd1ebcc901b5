"""
Tickets Module
==============

Bounded Context for the ticket lifecycle.

Responsibilities:
- Ticket submission with SLA resolution and reviewer routing
- Business approval guarded by the organizational directory
- The fixed status transition table, enforced with compare-and-set updates
- Workload release when work on a ticket ends
"""
