"""
Ticket Infrastructure Layer
===========================

SQLAlchemy models and repositories for tickets, approvals and the
assignment log.
"""
