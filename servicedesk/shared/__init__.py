"""
Shared Kernel
=============

Plumbing used by every bounded context (directory, tickets, SLA,
assignment): structured logging, notification delivery and the HTTP
middleware. Ticket rules, SLA maths and assignment strategies stay in
their own contexts.
"""
