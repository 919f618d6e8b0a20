import uuid
from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict

from app.models.order import OrderStatus
from app.models.user import UserRole


class OrderSnapshot(BaseModel):
    """Immutable read of one order row, detached from any session."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: uuid.UUID
    order_number: str
    org_id: uuid.UUID
    package_description: str
    customer_id: uuid.UUID
    rider_id: uuid.UUID | None = None
    rider_current_location: str | None = None
    customer_location_label: str | None = None
    customer_location_precise: str | None = None
    status: OrderStatus
    assigned_at: datetime | None = None
    rider_accepted_at: datetime | None = None
    customer_location_set_at: datetime | None = None
    package_picked_up_at: datetime | None = None
    delivery_started_at: datetime | None = None
    arrived_at_location_at: datetime | None = None
    delivered_at: datetime | None = None
    cancelled_at: datetime | None = None
    cancelled_by: uuid.UUID | None = None
    cancellation_reason: str | None = None
    created_at: datetime
    updated_at: datetime


class UserSnapshot(BaseModel):
    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: uuid.UUID
    email: str
    name: str | None = None
    role: UserRole
    is_active: bool = True


class MembershipSnapshot(BaseModel):
    model_config = ConfigDict(from_attributes=True, frozen=True)

    user_id: uuid.UUID
    org_id: uuid.UUID
    role: UserRole
    is_active: bool = True
    is_suspended: bool = False
    suspension_reason: str | None = None


def now_utc() -> datetime:
    return datetime.now(timezone.utc)
