import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.models.order import OrderStatus

# Request bodies stay permissive: emptiness and length are checked by the
# lifecycle engine after authorization, so callers learn about permission and
# state problems before payload problems.


class _StrippedStrings(BaseModel):
    @field_validator("*", mode="before")
    @classmethod
    def strip_strings(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip()
        return value


class OrderCreateRequest(_StrippedStrings):
    org_id: uuid.UUID
    package_description: str | None = None
    customer_id: uuid.UUID
    rider_id: uuid.UUID | None = None


class RiderLocationRequest(_StrippedStrings):
    current_location: str | None = None


class CustomerLocationRequest(_StrippedStrings):
    location_label: str | None = None
    location_precise: str | None = None


class CancelOrderRequest(_StrippedStrings):
    reason: str | None = None


class OrderResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    order_number: str
    org_id: uuid.UUID
    package_description: str
    customer_id: uuid.UUID
    rider_id: uuid.UUID | None
    rider_current_location: str | None
    customer_location_label: str | None
    customer_location_precise: str | None
    status: OrderStatus
    assigned_at: datetime | None
    rider_accepted_at: datetime | None
    customer_location_set_at: datetime | None
    package_picked_up_at: datetime | None
    delivery_started_at: datetime | None
    arrived_at_location_at: datetime | None
    delivered_at: datetime | None
    cancelled_at: datetime | None
    cancelled_by: uuid.UUID | None
    cancellation_reason: str | None
    created_at: datetime
    updated_at: datetime


class OrderDetailResponse(OrderResponse):
    actor_classes: list[str] = Field(default_factory=list)
    allowed_actions: list[str] = Field(default_factory=list)


class OrderListResponse(BaseModel):
    items: list[OrderResponse]


class ErrorResult(BaseModel):
    kind: str
    message: str


class ErrorResponse(BaseModel):
    detail: ErrorResult
