from app.integrations.errors import (
    NotificationDeliveryError,
    RelayRejectedError,
    RelayTimeoutError,
    RelayUnavailableError,
)

__all__ = [
    "NotificationDeliveryError",
    "RelayTimeoutError",
    "RelayUnavailableError",
    "RelayRejectedError",
]
