from dataclasses import dataclass
from typing import Any

from fastapi import status


@dataclass
class OrderLifecycleError(Exception):
    kind: str
    message: str
    http_status: int = status.HTTP_400_BAD_REQUEST
    retryable: bool = False

    def __str__(self) -> str:
        return f"{self.kind}:{self.message}"

    def to_result(self) -> dict[str, Any]:
        return {"kind": self.kind, "message": self.message}


class OrderNotFoundError(OrderLifecycleError):
    def __init__(self, message: str = "Order not found") -> None:
        super().__init__(kind="not_found", message=message, http_status=status.HTTP_404_NOT_FOUND)


class OrderForbiddenError(OrderLifecycleError):
    def __init__(self, message: str = "Not permitted to perform this action") -> None:
        super().__init__(kind="forbidden", message=message, http_status=status.HTTP_403_FORBIDDEN)


class InvalidTransitionError(OrderLifecycleError):
    def __init__(self, message: str) -> None:
        super().__init__(
            kind="invalid_transition", message=message, http_status=status.HTTP_409_CONFLICT
        )


class InvalidPayloadError(OrderLifecycleError):
    def __init__(self, message: str) -> None:
        super().__init__(
            kind="invalid_payload",
            message=message,
            http_status=status.HTTP_422_UNPROCESSABLE_ENTITY,
        )


class OrderConflictError(OrderLifecycleError):
    """The conditional write lost to a concurrent writer; re-read and retry."""

    def __init__(self, message: str = "Order was modified concurrently; re-read and retry") -> None:
        super().__init__(
            kind="conflict",
            message=message,
            http_status=status.HTTP_409_CONFLICT,
            retryable=True,
        )
