"""
Shared Infrastructure
=====================

JSON logging with correlation ids, and fire-and-continue notification
delivery over a webhook guarded by a circuit breaker.
"""
