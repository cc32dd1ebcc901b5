import json

import httpx

from servicedesk.config import NotificationEvent
from servicedesk.shared.infrastructure.notifications import (
    CircuitBreaker,
    CircuitState,
    INotificationService,
    NotificationDispatcher,
    WebhookNotifier,
)


def webhook(handler, **kwargs):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return WebhookNotifier("https://hooks.example.com/desk", http_client=client, **kwargs)


async def test_webhook_posts_event_document():
    received = []

    def handler(request):
        received.append(json.loads(request.content))
        return httpx.Response(204)

    notifier = webhook(handler)
    delivered = await notifier.notify("u-1", NotificationEvent.TICKET_ASSIGNED, {"ticket_id": "t-1"})
    await notifier.close()

    assert delivered
    assert received[0]["user_id"] == "u-1"
    assert received[0]["event"] == "ticket_assigned"
    assert received[0]["payload"] == {"ticket_id": "t-1"}


async def test_webhook_failure_opens_circuit():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(503)

    notifier = webhook(handler, max_retries=1)
    notifier._circuit_breaker = CircuitBreaker(failure_threshold=2, recovery_timeout=60)

    assert not await notifier.notify("u-1", "ticket_escalated", {})
    assert not await notifier.notify("u-1", "ticket_escalated", {})
    assert not await notifier.notify("u-1", "ticket_escalated", {})

    assert len(calls) == 2
    assert notifier._circuit_breaker.state == CircuitState.OPEN


def test_circuit_half_opens_after_timeout():
    breaker = CircuitBreaker(failure_threshold=1, recovery_timeout=0)
    breaker.record_failure()

    assert breaker.state == CircuitState.HALF_OPEN
    assert breaker.allow_request()

    breaker.record_success()
    assert breaker.state == CircuitState.CLOSED


class ExplodingNotifier(INotificationService):
    async def notify(self, user_id, event, payload):
        raise RuntimeError("smtp relay down")


async def test_dispatcher_swallows_delivery_errors():
    dispatcher = NotificationDispatcher(ExplodingNotifier())

    dispatcher.dispatch("u-1", NotificationEvent.TICKET_APPROVED, {})
    await dispatcher.drain()

    assert dispatcher.pending_count == 0


async def test_dispatcher_ignores_missing_recipient(notifier):
    dispatcher = NotificationDispatcher(notifier)

    dispatcher.dispatch(None, NotificationEvent.TICKET_APPROVED, {})
    await dispatcher.close()

    assert notifier.sent == []
