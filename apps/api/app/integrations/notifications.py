import time
from typing import Protocol

import httpx

from app.config import settings
from app.integrations.errors import (
    NotificationDeliveryError,
    RelayRejectedError,
    RelayTimeoutError,
    RelayUnavailableError,
)
from app.observability import log_event
from app.schemas.events import LifecycleEvent

_RELAY = "notification-relay"


class NotificationDispatcher(Protocol):
    def dispatch(self, event: LifecycleEvent) -> None: ...


class LoggingNotificationDispatcher:
    def dispatch(self, event: LifecycleEvent) -> None:
        for recipient in event.recipients:
            log_event(
                f"notify:{event.action}:{event.new_status.value}",
                order_id=str(event.order_id),
                actor_id=str(recipient),
                org_id=str(event.org_id),
            )


class WebhookNotificationDispatcher:
    """POSTs each lifecycle event to a push/email relay."""

    def __init__(
        self,
        url: str,
        timeout_s: float,
        max_retries: int,
        backoff_s: float,
    ) -> None:
        self.url = url
        self.timeout_s = timeout_s
        self.max_retries = max_retries
        self.backoff_s = backoff_s

    def dispatch(self, event: LifecycleEvent) -> None:
        if not event.recipients:
            return

        body = event.model_dump(mode="json")
        attempts = self.max_retries + 1
        for attempt in range(attempts):
            try:
                with httpx.Client(timeout=httpx.Timeout(self.timeout_s)) as client:
                    response = client.post(self.url, json=body)

                if response.status_code >= 500:
                    raise RelayUnavailableError(_RELAY, status_code=response.status_code)
                if response.status_code >= 400:
                    raise RelayRejectedError(_RELAY, response.status_code)
                return
            except httpx.TimeoutException:
                failure: NotificationDeliveryError = RelayTimeoutError(_RELAY)
            except httpx.TransportError as err:
                failure = RelayUnavailableError(_RELAY, str(err))
            except RelayUnavailableError as err:
                failure = err

            if attempt >= self.max_retries:
                raise failure

            time.sleep(self.backoff_s * (2**attempt))


def get_notification_dispatcher() -> NotificationDispatcher:
    if not settings.notification_webhook_url.strip():
        return LoggingNotificationDispatcher()
    return WebhookNotificationDispatcher(
        settings.notification_webhook_url.strip(),
        timeout_s=settings.notification_timeout_s,
        max_retries=settings.notification_max_retries,
        backoff_s=settings.notification_backoff_s,
    )
