from dataclasses import dataclass


@dataclass
class NotificationDeliveryError(Exception):
    """A lifecycle notification could not be handed to the relay."""

    relay: str
    code: str
    message: str
    retryable: bool = False
    status_code: int | None = None

    def __str__(self) -> str:
        if self.status_code is None:
            return f"{self.relay}:{self.code}:{self.message}"
        return f"{self.relay}:{self.code}:{self.status_code}:{self.message}"


class RelayTimeoutError(NotificationDeliveryError):
    def __init__(self, relay: str, message: str = "Relay timed out") -> None:
        super().__init__(relay=relay, code="TIMEOUT", message=message, retryable=True)


class RelayUnavailableError(NotificationDeliveryError):
    def __init__(
        self, relay: str, message: str = "Relay unavailable", status_code: int | None = None
    ) -> None:
        super().__init__(
            relay=relay,
            code="UNAVAILABLE",
            message=message,
            retryable=True,
            status_code=status_code,
        )


class RelayRejectedError(NotificationDeliveryError):
    def __init__(self, relay: str, status_code: int, message: str = "Relay rejected event") -> None:
        super().__init__(
            relay=relay,
            code="REJECTED",
            message=message,
            retryable=False,
            status_code=status_code,
        )
