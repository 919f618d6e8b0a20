from app.schemas.events import AuditEntry, LifecycleEvent
from app.schemas.order import (
    CancelOrderRequest,
    CustomerLocationRequest,
    ErrorResponse,
    ErrorResult,
    OrderCreateRequest,
    OrderDetailResponse,
    OrderListResponse,
    OrderResponse,
    RiderLocationRequest,
)

__all__ = [
    "AuditEntry",
    "LifecycleEvent",
    "OrderCreateRequest",
    "OrderResponse",
    "OrderDetailResponse",
    "OrderListResponse",
    "RiderLocationRequest",
    "CustomerLocationRequest",
    "CancelOrderRequest",
    "ErrorResult",
    "ErrorResponse",
]
