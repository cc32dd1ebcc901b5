"""
Ticket Controllers (API Routes)
===============================

FastAPI routes for filing tickets and driving them through the lifecycle.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from servicedesk.config import TicketAction
from servicedesk.engine import ServiceDeskEngine
from servicedesk.shared.api.dependencies import get_engine
from servicedesk.shared.infrastructure.logging import get_logger
from servicedesk.tickets.application.dto import (
    PriorityStr,
    ReviewerResponse,
    SubmissionResponse,
    TicketResponse,
    TicketStatusStr,
    TicketSubmitRequest,
    TransitionRequest,
    TransitionResponse,
)

logger = get_logger(__name__)
router = APIRouter(prefix="/tickets", tags=["Tickets"])


# ========== Example payloads for Swagger ==========

SUBMIT_EXAMPLE = {
    "title": "Cannot access payroll system",
    "description": "Login fails with 'account locked' since this morning.",
    "created_by_user_id": "c0a80121-7ac0-4e1c-8b6a-0a1b2c3d4e5f",
    "priority": "high",
    "department_id": "5b1f8e9a-3c2d-4e6f-9a0b-1c2d3e4f5a6b",
    "is_kasda_ticket": False
}


# ========== Route Handlers ==========

@router.post(
    "",
    response_model=SubmissionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="File a new ticket",
    description="""
    Store a ticket in **pending_approval** with its SLA due dates.

    A pending business approval is recorded and every eligible reviewer
    of the ticket's department is notified.
    """,
    openapi_extra={
        "requestBody": {"content": {"application/json": {"example": SUBMIT_EXAMPLE}}}
    }
)
async def submit_ticket(
    request: TicketSubmitRequest,
    engine: ServiceDeskEngine = Depends(get_engine)
):
    result = await engine.submit(request.to_draft())
    logger.info(
        "Ticket submitted via API",
        extra={"ticket_id": result.ticket.id, "sla_source": result.sla.source.value}
    )
    return SubmissionResponse(
        ticket=TicketResponse.from_entity(result.ticket),
        sla_source=result.sla.source.value,
        sla_policy_id=result.sla.policy_id,
        reviewer_ids=result.reviewer_ids,
    )


@router.get(
    "",
    response_model=List[TicketResponse],
    summary="List tickets",
    description="Newest first. Filters combine with AND."
)
async def list_tickets(
    status_filter: Optional[TicketStatusStr] = Query(None, alias="status"),
    priority: Optional[PriorityStr] = Query(None),
    assigned_to_user_id: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    engine: ServiceDeskEngine = Depends(get_engine)
):
    filters = {
        key: value
        for key, value in (
            ("status", status_filter),
            ("priority", priority),
            ("assigned_to_user_id", assigned_to_user_id),
        )
        if value is not None
    }
    tickets = await engine.list_tickets(filters, limit, offset)
    return [TicketResponse.from_entity(t) for t in tickets]


@router.get(
    "/{ticket_id}",
    response_model=TicketResponse,
    summary="Get a ticket"
)
async def get_ticket(ticket_id: str, engine: ServiceDeskEngine = Depends(get_engine)):
    ticket = await engine.get_ticket(ticket_id)
    return TicketResponse.from_entity(ticket)


@router.get(
    "/{ticket_id}/approvers",
    response_model=List[ReviewerResponse],
    summary="List users allowed to approve or reject a ticket"
)
async def get_eligible_approvers(ticket_id: str, engine: ServiceDeskEngine = Depends(get_engine)):
    reviewers = await engine.get_eligible_approvers(ticket_id)
    return [ReviewerResponse.from_user(user) for user in reviewers]


@router.post(
    "/{ticket_id}/actions/{action}",
    response_model=TransitionResponse,
    summary="Apply a lifecycle action",
    description="""
    Apply **approve**, **reject**, **cancel**, **start**, **hold**, **resume**,
    **resolve** or **close** to a ticket.

    An action that is not allowed from the ticket's current status returns
    409 and changes nothing. Approving triggers auto-assignment; its outcome
    is reported in `assignment`.
    """
)
async def apply_action(
    ticket_id: str,
    action: TicketAction,
    request: TransitionRequest,
    engine: ServiceDeskEngine = Depends(get_engine)
):
    result = await engine.transition(
        ticket_id, action, request.actor_id, request.comments
    )
    return TransitionResponse(**result.to_dict())


# Export router
tickets_router = router
