import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from app.models.order import OrderStatus
from app.models.order_audit_record import AuditOutcome


class LifecycleEvent(BaseModel):
    """Emitted once per applied transition (and on order creation)."""

    model_config = ConfigDict(frozen=True)

    action: str
    order_id: uuid.UUID
    order_number: str
    org_id: uuid.UUID
    actor_id: uuid.UUID
    prior_status: OrderStatus | None
    new_status: OrderStatus
    timestamp: datetime
    recipients: tuple[uuid.UUID, ...] = ()


class AuditEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    order_id: str
    org_id: uuid.UUID | None = None
    actor_id: str
    action: str
    outcome: AuditOutcome
    error_kind: str | None = None
    prior_status: OrderStatus | None = None
    new_status: OrderStatus | None = None
    detail: str | None = None
    payload: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime

    @classmethod
    def applied(
        cls, event: LifecycleEvent, payload: dict[str, Any] | None = None
    ) -> "AuditEntry":
        return cls(
            order_id=str(event.order_id),
            org_id=event.org_id,
            actor_id=str(event.actor_id),
            action=event.action,
            outcome=AuditOutcome.APPLIED,
            prior_status=event.prior_status,
            new_status=event.new_status,
            payload=payload or {},
            created_at=event.timestamp,
        )
