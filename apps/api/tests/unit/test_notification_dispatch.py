import uuid

import httpx
import pytest

from app.config import settings
from app.integrations.errors import RelayRejectedError, RelayTimeoutError, RelayUnavailableError
from app.integrations.notifications import (
    LoggingNotificationDispatcher,
    WebhookNotificationDispatcher,
    get_notification_dispatcher,
)
from app.models.domain import now_utc
from app.models.order import OrderStatus
from app.schemas.events import LifecycleEvent


def _event(recipients=None) -> LifecycleEvent:
    return LifecycleEvent(
        action="start_delivery",
        order_id=uuid.uuid4(),
        order_number="ORD000654321",
        org_id=uuid.uuid4(),
        actor_id=uuid.uuid4(),
        prior_status=OrderStatus.PACKAGE_PICKED_UP,
        new_status=OrderStatus.IN_TRANSIT,
        timestamp=now_utc(),
        recipients=(uuid.uuid4(),) if recipients is None else recipients,
    )


class _Response:
    def __init__(self, status_code: int):
        self.status_code = status_code


class _ClientStub:
    def __init__(self, post_sequence, posted):
        self._post_sequence = post_sequence
        self._posted = posted

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False

    def post(self, url, json):
        self._posted.append((url, json))
        value = self._post_sequence.pop(0)
        if isinstance(value, Exception):
            raise value
        return value


def _patch_client(monkeypatch, sequence) -> list:
    posted: list = []
    monkeypatch.setattr(
        "app.integrations.notifications.httpx.Client",
        lambda timeout: _ClientStub(sequence, posted),
    )
    return posted


def _webhook(max_retries: int = 2) -> WebhookNotificationDispatcher:
    return WebhookNotificationDispatcher(
        "http://relay/events", timeout_s=0.1, max_retries=max_retries, backoff_s=0
    )


def test_webhook_retries_timeouts_then_succeeds(monkeypatch):
    posted = _patch_client(monkeypatch, [httpx.ReadTimeout("timeout"), _Response(202)])
    event = _event()

    _webhook().dispatch(event)

    assert len(posted) == 2
    url, body = posted[-1]
    assert url == "http://relay/events"
    assert body["order_id"] == str(event.order_id)
    assert body["new_status"] == "in_transit"


def test_webhook_gives_up_after_max_retries_on_5xx(monkeypatch):
    posted = _patch_client(monkeypatch, [_Response(503), _Response(502)])

    with pytest.raises(RelayUnavailableError) as exc:
        _webhook(max_retries=1).dispatch(_event())

    assert len(posted) == 2
    assert exc.value.status_code == 502
    assert exc.value.retryable is True


def test_webhook_raises_timeout_when_every_attempt_times_out(monkeypatch):
    _patch_client(monkeypatch, [httpx.ConnectTimeout("slow"), httpx.ReadTimeout("slow")])

    with pytest.raises(RelayTimeoutError):
        _webhook(max_retries=1).dispatch(_event())


def test_webhook_does_not_retry_rejections(monkeypatch):
    posted = _patch_client(monkeypatch, [_Response(400), _Response(202)])

    with pytest.raises(RelayRejectedError) as exc:
        _webhook().dispatch(_event())

    assert len(posted) == 1
    assert exc.value.retryable is False
    assert str(exc.value) == "notification-relay:REJECTED:400:Relay rejected event"


def test_webhook_skips_events_without_recipients(monkeypatch):
    posted = _patch_client(monkeypatch, [])

    _webhook().dispatch(_event(recipients=()))

    assert posted == []


def test_dispatcher_selection_follows_settings(monkeypatch):
    monkeypatch.setattr(settings, "notification_webhook_url", "")
    assert isinstance(get_notification_dispatcher(), LoggingNotificationDispatcher)

    monkeypatch.setattr(settings, "notification_webhook_url", " http://relay/events ")
    dispatcher = get_notification_dispatcher()
    assert isinstance(dispatcher, WebhookNotificationDispatcher)
    assert dispatcher.url == "http://relay/events"


def test_logging_dispatcher_logs_once_per_recipient(monkeypatch):
    from app.integrations import notifications

    logged: list[tuple[str, str | None]] = []

    def _record_event(message: str, *, actor_id: str | None = None, **kwargs):
        logged.append((message, actor_id))

    monkeypatch.setattr(notifications, "log_event", _record_event)
    first, second = uuid.uuid4(), uuid.uuid4()

    LoggingNotificationDispatcher().dispatch(_event(recipients=(first, second)))

    assert logged == [
        ("notify:start_delivery:in_transit", str(first)),
        ("notify:start_delivery:in_transit", str(second)),
    ]
