from typing import Callable

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.auth.dependencies import AuthContext, get_auth_context
from app.dependencies import get_order_engine
from app.models.domain import OrderSnapshot
from app.models.order import OrderStatus
from app.observability import observe_timing
from app.schemas.order import (
    CancelOrderRequest,
    CustomerLocationRequest,
    ErrorResponse,
    OrderCreateRequest,
    OrderDetailResponse,
    OrderListResponse,
    OrderResponse,
    RiderLocationRequest,
)
from app.services.errors import OrderLifecycleError
from app.services.orders_service import OrderLifecycleEngine, OrderView, parse_order_id

router = APIRouter(prefix="/api/v1/orders", tags=["orders"])

_ERROR_RESPONSES = {
    status.HTTP_403_FORBIDDEN: {"model": ErrorResponse},
    status.HTTP_404_NOT_FOUND: {"model": ErrorResponse},
    status.HTTP_409_CONFLICT: {"model": ErrorResponse},
    status.HTTP_422_UNPROCESSABLE_ENTITY: {"model": ErrorResponse},
}


def _translate_lifecycle_error(err: OrderLifecycleError) -> HTTPException:
    return HTTPException(status_code=err.http_status, detail=err.to_result())


def _lifecycle_call(action_name: str, call: Callable[[], OrderSnapshot]) -> OrderResponse:
    try:
        with observe_timing(f"order_action_seconds:{action_name}"):
            order = call()
    except OrderLifecycleError as err:
        raise _translate_lifecycle_error(err) from err
    return OrderResponse.model_validate(order)


def _detail(view: OrderView) -> OrderDetailResponse:
    return OrderDetailResponse.model_validate(
        {
            **view.order.model_dump(),
            "actor_classes": sorted(cls.value for cls in view.actor_classes),
            "allowed_actions": [action.value for action in view.allowed_actions],
        }
    )


@router.post(
    "",
    response_model=OrderResponse,
    summary="Create order (organization owner)",
    status_code=status.HTTP_201_CREATED,
    responses=_ERROR_RESPONSES,
)
def create_order_endpoint(
    payload: OrderCreateRequest,
    engine: OrderLifecycleEngine = Depends(get_order_engine),
    auth: AuthContext = Depends(get_auth_context),
) -> OrderResponse:
    return _lifecycle_call(
        "create_order",
        lambda: engine.create_order(
            auth.caller,
            org_id=payload.org_id,
            package_description=payload.package_description,
            customer_id=payload.customer_id,
            rider_id=payload.rider_id,
        ),
    )


@router.get("", response_model=OrderListResponse, summary="List orders visible to the caller")
def list_orders_endpoint(
    status_filter: OrderStatus | None = Query(default=None, alias="status"),
    engine: OrderLifecycleEngine = Depends(get_order_engine),
    auth: AuthContext = Depends(get_auth_context),
) -> OrderListResponse:
    orders = engine.list_orders(auth.caller, status_filter)
    return OrderListResponse(items=[OrderResponse.model_validate(order) for order in orders])


@router.get(
    "/{order_id}",
    response_model=OrderDetailResponse,
    summary="Get order detail",
    responses=_ERROR_RESPONSES,
)
def get_order_endpoint(
    order_id: str,
    engine: OrderLifecycleEngine = Depends(get_order_engine),
    auth: AuthContext = Depends(get_auth_context),
) -> OrderDetailResponse:
    try:
        view = engine.get_order(parse_order_id(order_id), auth.caller)
    except OrderLifecycleError as err:
        raise _translate_lifecycle_error(err) from err
    return _detail(view)


@router.post(
    "/{order_id}/accept",
    response_model=OrderResponse,
    summary="Rider accepts the delivery",
    responses=_ERROR_RESPONSES,
)
def accept_endpoint(
    order_id: str,
    payload: RiderLocationRequest,
    engine: OrderLifecycleEngine = Depends(get_order_engine),
    auth: AuthContext = Depends(get_auth_context),
) -> OrderResponse:
    return _lifecycle_call(
        "rider_accept",
        lambda: engine.rider_accept(
            parse_order_id(order_id), auth.caller, payload.current_location
        ),
    )


@router.post(
    "/{order_id}/customer-location",
    response_model=OrderResponse,
    summary="Set the drop-off location",
    responses=_ERROR_RESPONSES,
)
def set_customer_location_endpoint(
    order_id: str,
    payload: CustomerLocationRequest,
    engine: OrderLifecycleEngine = Depends(get_order_engine),
    auth: AuthContext = Depends(get_auth_context),
) -> OrderResponse:
    return _lifecycle_call(
        "set_customer_location",
        lambda: engine.set_customer_location(
            parse_order_id(order_id),
            auth.caller,
            payload.location_label,
            payload.location_precise,
        ),
    )


@router.patch(
    "/{order_id}/customer-location",
    response_model=OrderResponse,
    summary="Change the drop-off location before pickup",
    responses=_ERROR_RESPONSES,
)
def update_customer_location_endpoint(
    order_id: str,
    payload: CustomerLocationRequest,
    engine: OrderLifecycleEngine = Depends(get_order_engine),
    auth: AuthContext = Depends(get_auth_context),
) -> OrderResponse:
    return _lifecycle_call(
        "update_customer_location",
        lambda: engine.update_customer_location(
            parse_order_id(order_id),
            auth.caller,
            payload.location_label,
            payload.location_precise,
        ),
    )


@router.post(
    "/{order_id}/pickup",
    response_model=OrderResponse,
    summary="Rider picked up the package",
    responses=_ERROR_RESPONSES,
)
def pickup_endpoint(
    order_id: str,
    engine: OrderLifecycleEngine = Depends(get_order_engine),
    auth: AuthContext = Depends(get_auth_context),
) -> OrderResponse:
    return _lifecycle_call(
        "mark_package_picked_up",
        lambda: engine.mark_package_picked_up(parse_order_id(order_id), auth.caller),
    )


@router.post(
    "/{order_id}/start",
    response_model=OrderResponse,
    summary="Rider starts the delivery run",
    responses=_ERROR_RESPONSES,
)
def start_endpoint(
    order_id: str,
    engine: OrderLifecycleEngine = Depends(get_order_engine),
    auth: AuthContext = Depends(get_auth_context),
) -> OrderResponse:
    return _lifecycle_call(
        "start_delivery",
        lambda: engine.start_delivery(parse_order_id(order_id), auth.caller),
    )


@router.post(
    "/{order_id}/arrive",
    response_model=OrderResponse,
    summary="Rider arrived at the drop-off location",
    responses=_ERROR_RESPONSES,
)
def arrive_endpoint(
    order_id: str,
    engine: OrderLifecycleEngine = Depends(get_order_engine),
    auth: AuthContext = Depends(get_auth_context),
) -> OrderResponse:
    return _lifecycle_call(
        "mark_arrived",
        lambda: engine.mark_arrived(parse_order_id(order_id), auth.caller),
    )


@router.post(
    "/{order_id}/confirm",
    response_model=OrderResponse,
    summary="Customer confirms delivery",
    responses=_ERROR_RESPONSES,
)
def confirm_endpoint(
    order_id: str,
    engine: OrderLifecycleEngine = Depends(get_order_engine),
    auth: AuthContext = Depends(get_auth_context),
) -> OrderResponse:
    return _lifecycle_call(
        "confirm_delivery",
        lambda: engine.confirm_delivery(parse_order_id(order_id), auth.caller),
    )


@router.post(
    "/{order_id}/cancel",
    response_model=OrderResponse,
    summary="Cancel order",
    responses=_ERROR_RESPONSES,
)
def cancel_endpoint(
    order_id: str,
    payload: CancelOrderRequest | None = None,
    engine: OrderLifecycleEngine = Depends(get_order_engine),
    auth: AuthContext = Depends(get_auth_context),
) -> OrderResponse:
    reason = payload.reason if payload else None
    return _lifecycle_call(
        "cancel",
        lambda: engine.cancel(parse_order_id(order_id), auth.caller, reason),
    )


@router.patch(
    "/{order_id}/rider-location",
    response_model=OrderResponse,
    summary="Rider reports current location",
    responses=_ERROR_RESPONSES,
)
def rider_location_endpoint(
    order_id: str,
    payload: RiderLocationRequest,
    engine: OrderLifecycleEngine = Depends(get_order_engine),
    auth: AuthContext = Depends(get_auth_context),
) -> OrderResponse:
    return _lifecycle_call(
        "update_rider_location",
        lambda: engine.update_rider_location(
            parse_order_id(order_id), auth.caller, payload.current_location
        ),
    )
