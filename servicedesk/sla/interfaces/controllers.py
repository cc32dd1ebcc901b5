"""
SLA Controllers (API Routes)
=============================

FastAPI routes for SLA resolution, policy administration and the
escalation sweep. Handlers delegate to the engine.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from servicedesk.engine import ServiceDeskEngine
from servicedesk.shared.api.dependencies import get_engine
from servicedesk.shared.infrastructure.logging import get_logger
from servicedesk.sla.application.dto import (
    EscalationSweepRequest,
    EscalationSweepResponse,
    SLAPolicyCreateRequest,
    SLAPolicyResponse,
    SLAResolutionResponse,
    SLAResolveRequest,
)

logger = get_logger(__name__)
router = APIRouter(prefix="/sla", tags=["SLA"])


# ========== Example payloads for Swagger ==========

SLA_RESOLUTION_EXAMPLE = {
    "policy_id": None,
    "policy_name": None,
    "due_date": "2024-01-15T12:00:00+00:00",
    "response_due_date": "2024-01-15T10:15:00+00:00",
    "response_time_minutes": 15,
    "resolution_time_minutes": 120,
    "business_hours_only": False,
    "source": "fallback"
}


# ========== Route Handlers ==========

@router.post(
    "/resolve",
    response_model=SLAResolutionResponse,
    summary="Resolve the SLA for ticket attributes",
    description="""
    Find the most specific active SLA policy for the given attributes.

    **Specificity**: service item > service catalog > department > priority,
    then the newest policy. Without a matching policy the fallback table
    (technical or KASDA, by priority) applies on the wall clock.
    """,
    responses={
        200: {
            "description": "Resolved SLA",
            "content": {"application/json": {"example": SLA_RESOLUTION_EXAMPLE}}
        }
    }
)
async def resolve_sla(
    request: SLAResolveRequest,
    engine: ServiceDeskEngine = Depends(get_engine)
):
    resolution = await engine.resolve_sla(request.to_context())
    return SLAResolutionResponse.from_resolution(resolution)


@router.post(
    "/policies",
    response_model=SLAPolicyResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create an SLA policy",
    description="""
    Add a policy to the table `/sla/resolve` and ticket submission read.

    Resolution time must exceed response time, and an active policy name
    must be unique (409 otherwise).
    """
)
async def create_policy(
    request: SLAPolicyCreateRequest,
    engine: ServiceDeskEngine = Depends(get_engine)
):
    policy = await engine.create_sla_policy(request.to_policy())
    return SLAPolicyResponse.from_entity(policy)


@router.get(
    "/policies",
    response_model=List[SLAPolicyResponse],
    summary="List SLA policies, newest first"
)
async def list_policies(
    active_only: bool = Query(False),
    engine: ServiceDeskEngine = Depends(get_engine)
):
    policies = await engine.list_sla_policies(active_only)
    return [SLAPolicyResponse.from_entity(p) for p in policies]


@router.post(
    "/escalations/sweep",
    response_model=EscalationSweepResponse,
    summary="Run the escalation sweep now",
    description="""
    Escalate every open ticket past its SLA due date to urgent priority.

    The same sweep runs on a schedule; triggering it manually is safe
    because already-urgent tickets are never escalated again.
    """
)
async def run_escalation_sweep(
    request: Optional[EscalationSweepRequest] = None,
    engine: ServiceDeskEngine = Depends(get_engine)
):
    current_time = request.current_time if request else None
    result = await engine.run_escalation_sweep(current_time)
    return EscalationSweepResponse.from_result(result)


# Export router
sla_router = router
