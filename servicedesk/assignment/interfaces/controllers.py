"""
Assignment Controllers (API Routes)
===================================

FastAPI routes for automatic and manual technician assignment.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends

from servicedesk.engine import ServiceDeskEngine
from servicedesk.shared.api.dependencies import get_engine
from servicedesk.assignment.application.dto import (
    AssignmentLogResponse,
    AssignmentResultResponse,
    AutoAssignRequest,
    ManualAssignRequest,
)

router = APIRouter(prefix="/assignments", tags=["Assignment"])


@router.post(
    "/{ticket_id}/auto",
    response_model=AssignmentResultResponse,
    summary="Auto-assign an approved ticket",
    description="""
    Evaluate the active assignment rules in priority order and assign the
    first available technician.

    **Strategies**: skill_match, round_robin, least_loaded.

    When no rule produces a candidate the ticket stays **approved** and the
    response carries `success: false` with the reason.
    """
)
async def auto_assign(
    ticket_id: str,
    request: Optional[AutoAssignRequest] = None,
    engine: ServiceDeskEngine = Depends(get_engine)
):
    criteria = request.to_criteria() if request and request.has_criteria() else None
    assigned_by = request.assigned_by if request else None
    result = await engine.assign_ticket(ticket_id, criteria, assigned_by)
    return AssignmentResultResponse.from_result(result)


@router.post(
    "/{ticket_id}/manual",
    response_model=AssignmentResultResponse,
    summary="Assign or re-assign a ticket to a chosen technician"
)
async def manual_assign(
    ticket_id: str,
    request: ManualAssignRequest,
    engine: ServiceDeskEngine = Depends(get_engine)
):
    result = await engine.manual_assign(
        ticket_id, request.user_id, request.assigned_by, request.reason
    )
    return AssignmentResultResponse.from_result(result)


@router.get(
    "/{ticket_id}/history",
    response_model=List[AssignmentLogResponse],
    summary="Assignment history of a ticket, oldest first"
)
async def assignment_history(ticket_id: str, engine: ServiceDeskEngine = Depends(get_engine)):
    entries = await engine.get_assignment_history(ticket_id)
    return [AssignmentLogResponse.from_entry(entry) for entry in entries]


# Export router
assignments_router = router
