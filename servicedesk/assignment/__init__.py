"""
Assignment Module
=================

Bounded Context for handing approved tickets to technicians.

Responsibilities:
- Match auto-assignment rules against ticket criteria
- Rank technicians with the rule's strategy (skill match, round robin, least loaded)
- Assign atomically: ticket status, workload counter, history and rotation cursor
- Manual assignment and re-assignment
"""
