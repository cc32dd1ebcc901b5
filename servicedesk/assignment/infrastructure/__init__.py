"""
Assignment Infrastructure Layer
===============================

SQLAlchemy model for auto-assignment rules and the engine's repository.
"""
