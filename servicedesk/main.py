"""
Service Desk Engine
===================

HTTP entry point for the ticket lifecycle backend.

Contexts:
- SLA: policy resolution, business-hours deadlines, escalation sweep
- Tickets: submission, business approval, lifecycle actions
- Assignment: rule-based and manual technician assignment
- Directory: users, units, technician skills and workload

Run locally with ``python -m servicedesk.main`` or
``uvicorn servicedesk.main:app``.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from servicedesk.config import settings
from servicedesk.core import ApplicationException
from servicedesk.engine import ServiceDeskEngine
from servicedesk.infrastructure.database import (
    close_database,
    create_tables,
    get_session_maker,
    init_database,
)
from servicedesk.shared.api.middleware import (
    CorrelationIDMiddleware,
    LoggingMiddleware,
    application_exception_handler,
    global_exception_handler,
)
from servicedesk.shared.infrastructure.logging import get_logger, setup_logging
from servicedesk.shared.infrastructure.notifications import NotificationDispatcher, build_notifier
from servicedesk.sla.infrastructure.external import EscalationScheduler, SLAConfigManager

from servicedesk.assignment.interfaces import assignments_router
from servicedesk.sla.interfaces import sla_router
from servicedesk.tickets.interfaces import tickets_router

logger = get_logger(__name__)


async def _start_escalation(engine: ServiceDeskEngine) -> Optional[EscalationScheduler]:
    if not settings.escalation_enabled:
        logger.info("Escalation sweep disabled")
        return None

    async def sweep() -> None:
        await engine.run_escalation_sweep()

    scheduler = EscalationScheduler(interval_seconds=settings.escalation_interval_seconds)
    await scheduler.start(sweep)
    return scheduler


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Build the engine on startup and tear it down in reverse order.

    Startup: logging, database and tables, SLA config file (watched),
    notification dispatcher, engine, escalation scheduler.
    Shutdown: scheduler, file watch, pending notifications, database.
    """
    setup_logging(settings.log_level, settings.environment)
    logger.info(
        "Service desk starting",
        extra={"version": settings.app_version, "environment": settings.environment}
    )

    init_database()
    # Schema bootstrap for development; deployments run migrations first.
    await create_tables()

    config_manager = SLAConfigManager()
    config_manager.load(settings.sla_config_path)
    config_manager.start_watching()

    dispatcher = NotificationDispatcher(build_notifier())
    engine = ServiceDeskEngine(get_session_maker(), config_manager, dispatcher)
    scheduler = await _start_escalation(engine)

    app.state.settings = settings
    app.state.engine = engine
    app.state.config_manager = config_manager
    app.state.scheduler = scheduler
    logger.info("Service desk ready")

    yield

    logger.info("Service desk stopping")
    if scheduler is not None:
        await scheduler.stop()
    config_manager.stop_watching()
    await dispatcher.close()
    await close_database()
    logger.info("Service desk stopped")


API_DESCRIPTION = """
SLA resolution, business approval, technician auto-assignment and
escalation for an internal service desk. The acting user is passed in each
request body; authentication happens upstream.

### Tickets

- `POST /tickets` - File a ticket (pending approval, SLA attached)
- `GET /tickets` - List tickets by status, priority or assignee
- `GET /tickets/{id}` - Get a ticket
- `GET /tickets/{id}/approvers` - Reviewers allowed to decide
- `POST /tickets/{id}/actions/{action}` - approve, reject, cancel, start,
  hold, resume, resolve, close

### Assignment

- `POST /assignments/{ticket_id}/auto` - Rule-based assignment
- `POST /assignments/{ticket_id}/manual` - Assign a chosen technician
- `GET /assignments/{ticket_id}/history` - Assignment log

### SLA

- `POST /sla/resolve` - Resolve the SLA for ticket attributes
- `POST /sla/policies`, `GET /sla/policies` - Maintain SLA policies
- `POST /sla/escalations/sweep` - Escalate overdue tickets now

### Fallback SLA targets (minutes, response / resolution)

| Priority | Technical | KASDA |
|----------|-----------|-------|
| Urgent   | 15 / 120  | 240 / 480 |
| High     | 30 / 240  | 480 / 1440 |
| Medium   | 60 / 480  | 960 / 2880 |
| Low      | 240 / 1440 | 1440 / 4320 |
"""

app = FastAPI(
    title="Service Desk Engine API",
    description=API_DESCRIPTION,
    version=settings.app_version,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(LoggingMiddleware)
# Added last so it wraps the access log and every handler.
app.add_middleware(CorrelationIDMiddleware)

app.add_exception_handler(ApplicationException, application_exception_handler)
app.add_exception_handler(Exception, global_exception_handler)

app.include_router(tickets_router)
app.include_router(assignments_router)
app.include_router(sla_router)


@app.get("/health", tags=["Health"])
async def health_check(request: Request):
    """Engine readiness, escalation scheduler state and notification backlog."""
    engine: Optional[ServiceDeskEngine] = getattr(request.app.state, "engine", None)
    scheduler: Optional[EscalationScheduler] = getattr(request.app.state, "scheduler", None)

    return {
        "status": "healthy" if engine else "degraded",
        "version": settings.app_version,
        "environment": settings.environment,
        "checks": {
            "engine": "ready" if engine else "not_initialized",
            "escalation_scheduler": "running" if scheduler and scheduler.is_running else "stopped",
            "pending_notifications": engine.dispatcher.pending_count if engine else 0,
        },
    }


@app.get("/", tags=["Root"])
async def root():
    return {
        "service": "Service Desk Engine",
        "version": settings.app_version,
        "docs": "/docs",
        "health": "/health",
        "routes": ["/tickets", "/assignments", "/sla"],
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "servicedesk.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.environment == "development",
        log_level=settings.log_level.lower(),
    )
