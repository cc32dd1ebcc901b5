"""
Notification Delivery
=====================

Outbound notifications for ticket lifecycle events:
- INotificationService: the contract the engine depends on
- WebhookNotifier: JSON webhook (email relay / chat) with retry and circuit breaker
- LogNotifier: used when no webhook is configured
- NotificationDispatcher: fire-and-continue delivery in background tasks

Delivery failures are logged, never propagated to the caller.
"""

import asyncio
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Set

import httpx

from servicedesk.config import settings
from servicedesk.core import utcnow
from servicedesk.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class INotificationService(ABC):
    """Interface for pushing a lifecycle event to a user."""

    @abstractmethod
    async def notify(self, user_id: str, event: str, payload: Dict[str, Any]) -> bool:
        """Deliver one notification. Returns True when delivered."""

    async def close(self) -> None:
        """Release transport resources."""


class CircuitState:
    """Circuit breaker states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """
    Circuit breaker for preventing cascade failures.

    States:
    - CLOSED: Normal operation, requests pass through
    - OPEN: After N failures, reject all requests for M seconds
    - HALF_OPEN: After timeout, allow one test request
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0
    ):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_time: Optional[float] = None

    @property
    def state(self) -> str:
        """Get current circuit state."""
        if self._state == CircuitState.OPEN and self._last_failure_time:
            elapsed = time.monotonic() - self._last_failure_time
            if elapsed >= self.recovery_timeout:
                self._state = CircuitState.HALF_OPEN
        return self._state

    def allow_request(self) -> bool:
        """Check if request should be allowed."""
        return self.state in (CircuitState.CLOSED, CircuitState.HALF_OPEN)

    def record_success(self) -> None:
        """Record successful request."""
        self._failure_count = 0
        self._state = CircuitState.CLOSED

    def record_failure(self) -> None:
        """Record failed request."""
        self._failure_count += 1
        self._last_failure_time = time.monotonic()

        if self._failure_count >= self.failure_threshold:
            self._state = CircuitState.OPEN
            logger.warning(
                "Circuit breaker opened",
                extra={
                    "failure_count": self._failure_count,
                    "recovery_timeout": self.recovery_timeout
                }
            )


class WebhookNotifier(INotificationService):
    """
    Webhook notification client with circuit breaker and retry logic.

    Posts one JSON document per notification:
        {"user_id": ..., "event": ..., "payload": {...}, "sent_at": ...}
    """

    def __init__(
        self,
        webhook_url: str,
        timeout_seconds: float = 5.0,
        max_retries: int = 3,
        http_client: Optional[httpx.AsyncClient] = None
    ):
        self._webhook_url = webhook_url
        self._timeout = timeout_seconds
        self._max_retries = max_retries
        self._circuit_breaker = CircuitBreaker(failure_threshold=5, recovery_timeout=60)
        self._http_client = http_client

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self._timeout)
        return self._http_client

    def _build_message(self, user_id: str, event: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "user_id": user_id,
            "event": event,
            "payload": payload,
            "sent_at": utcnow().isoformat(),
        }

    async def notify(self, user_id: str, event: str, payload: Dict[str, Any]) -> bool:
        if not self._circuit_breaker.allow_request():
            logger.warning(
                "Circuit breaker open, skipping notification",
                extra={"user_id": user_id, "event": event}
            )
            return False

        message = self._build_message(user_id, event, payload)

        for attempt in range(self._max_retries):
            try:
                client = await self._get_client()
                response = await client.post(self._webhook_url, json=message)

                if response.is_success:
                    self._circuit_breaker.record_success()
                    logger.info(
                        "Notification sent",
                        extra={"user_id": user_id, "event": event}
                    )
                    return True

                logger.warning(
                    "Notification webhook returned non-2xx",
                    extra={"status_code": response.status_code, "attempt": attempt + 1}
                )
            except httpx.HTTPError as e:
                logger.error(
                    "Notification delivery failed",
                    extra={"error": str(e), "attempt": attempt + 1, "user_id": user_id}
                )

            if attempt < self._max_retries - 1:
                await asyncio.sleep(2 ** attempt)

        self._circuit_breaker.record_failure()
        return False

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None


class LogNotifier(INotificationService):
    """Records notifications in the log only."""

    async def notify(self, user_id: str, event: str, payload: Dict[str, Any]) -> bool:
        logger.info(
            "Notification (log only)",
            extra={"user_id": user_id, "event": event, "notification_payload": payload}
        )
        return True


class NotificationDispatcher:
    """
    Fire-and-continue wrapper around a notification service.

    dispatch() schedules delivery on the running loop and returns at once,
    so a slow recipient never holds up a transition or an escalation sweep.
    """

    def __init__(self, notifier: INotificationService):
        self._notifier = notifier
        self._pending: Set[asyncio.Task] = set()

    def dispatch(self, user_id: Optional[str], event: str, payload: Dict[str, Any]) -> None:
        if not user_id:
            return
        task = asyncio.create_task(self._deliver(user_id, event, payload))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _deliver(self, user_id: str, event: str, payload: Dict[str, Any]) -> None:
        try:
            await self._notifier.notify(user_id, event, payload)
        except Exception as e:
            # Delivery is best effort
            logger.error(
                "Notification raised",
                extra={"user_id": user_id, "event": event, "error": str(e)}
            )

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def drain(self) -> None:
        """Wait for every in-flight notification."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def close(self) -> None:
        await self.drain()
        await self._notifier.close()


def build_notifier() -> INotificationService:
    """Pick the notifier from settings."""
    if settings.notification_webhook_url:
        return WebhookNotifier(
            settings.notification_webhook_url,
            timeout_seconds=settings.notification_timeout_seconds
        )
    logger.info("Notification webhook not configured, notifications are logged only")
    return LogNotifier()
