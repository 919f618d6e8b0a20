import enum
from dataclasses import dataclass
from types import MappingProxyType

from app.models.order import OrderStatus
from app.services.errors import InvalidTransitionError


class ActorClass(str, enum.Enum):
    """A caller's relationship to one specific order."""

    OWNER_OF_ORG = "owner-of-org"
    ASSIGNED_RIDER = "assigned-rider"
    ORDER_CUSTOMER = "order-customer"
    # Active rider of the order's organization looking at an unclaimed pending order.
    ORG_RIDER = "org-rider"


class OrderAction(str, enum.Enum):
    RIDER_ACCEPT = "rider_accept"
    SET_CUSTOMER_LOCATION = "set_customer_location"
    MARK_PACKAGE_PICKED_UP = "mark_package_picked_up"
    START_DELIVERY = "start_delivery"
    MARK_ARRIVED = "mark_arrived"
    CONFIRM_DELIVERY = "confirm_delivery"
    CANCEL = "cancel"
    UPDATE_RIDER_LOCATION = "update_rider_location"
    UPDATE_CUSTOMER_LOCATION = "update_customer_location"


TERMINAL_STATUSES: frozenset[OrderStatus] = frozenset(
    {OrderStatus.DELIVERED, OrderStatus.CANCELLED}
)
NON_TERMINAL_STATUSES: frozenset[OrderStatus] = frozenset(OrderStatus) - TERMINAL_STATUSES

_RIDER = frozenset({ActorClass.ASSIGNED_RIDER})
_CUSTOMER = frozenset({ActorClass.ORDER_CUSTOMER})
_CUSTOMER_OR_OWNER = frozenset({ActorClass.ORDER_CUSTOMER, ActorClass.OWNER_OF_ORG})

ACTION_ACTORS: MappingProxyType[OrderAction, frozenset[ActorClass]] = MappingProxyType(
    {
        OrderAction.RIDER_ACCEPT: frozenset({ActorClass.ASSIGNED_RIDER, ActorClass.ORG_RIDER}),
        OrderAction.SET_CUSTOMER_LOCATION: _CUSTOMER_OR_OWNER,
        OrderAction.MARK_PACKAGE_PICKED_UP: _RIDER,
        OrderAction.START_DELIVERY: _RIDER,
        OrderAction.MARK_ARRIVED: _RIDER,
        OrderAction.CONFIRM_DELIVERY: _CUSTOMER,
        OrderAction.CANCEL: frozenset(
            {ActorClass.ORDER_CUSTOMER, ActorClass.ASSIGNED_RIDER, ActorClass.OWNER_OF_ORG}
        ),
        OrderAction.UPDATE_RIDER_LOCATION: _RIDER,
        OrderAction.UPDATE_CUSTOMER_LOCATION: _CUSTOMER_OR_OWNER,
    }
)


@dataclass(frozen=True)
class Transition:
    action: OrderAction
    from_status: OrderStatus
    to_status: OrderStatus
    # Order column stamped when ``to_status`` is entered; None for side actions.
    timestamp_field: str | None


def _linear(
    action: OrderAction, from_status: OrderStatus, to_status: OrderStatus, field: str
) -> tuple[tuple[OrderStatus, OrderAction], Transition]:
    return (from_status, action), Transition(action, from_status, to_status, field)


def _side_action(
    action: OrderAction, statuses: frozenset[OrderStatus]
) -> dict[tuple[OrderStatus, OrderAction], Transition]:
    return {(s, action): Transition(action, s, s, None) for s in statuses}


def _build_table() -> dict[tuple[OrderStatus, OrderAction], Transition]:
    table = dict(
        [
            _linear(
                OrderAction.RIDER_ACCEPT,
                OrderStatus.PENDING,
                OrderStatus.RIDER_ACCEPTED,
                "rider_accepted_at",
            ),
            _linear(
                OrderAction.SET_CUSTOMER_LOCATION,
                OrderStatus.RIDER_ACCEPTED,
                OrderStatus.CUSTOMER_LOCATION_SET,
                "customer_location_set_at",
            ),
            _linear(
                OrderAction.MARK_PACKAGE_PICKED_UP,
                OrderStatus.CUSTOMER_LOCATION_SET,
                OrderStatus.PACKAGE_PICKED_UP,
                "package_picked_up_at",
            ),
            _linear(
                OrderAction.START_DELIVERY,
                OrderStatus.PACKAGE_PICKED_UP,
                OrderStatus.IN_TRANSIT,
                "delivery_started_at",
            ),
            _linear(
                OrderAction.MARK_ARRIVED,
                OrderStatus.IN_TRANSIT,
                OrderStatus.ARRIVED_AT_LOCATION,
                "arrived_at_location_at",
            ),
            _linear(
                OrderAction.CONFIRM_DELIVERY,
                OrderStatus.ARRIVED_AT_LOCATION,
                OrderStatus.DELIVERED,
                "delivered_at",
            ),
        ]
    )
    for status_value in NON_TERMINAL_STATUSES:
        table[(status_value, OrderAction.CANCEL)] = Transition(
            OrderAction.CANCEL, status_value, OrderStatus.CANCELLED, "cancelled_at"
        )
    table.update(_side_action(OrderAction.UPDATE_RIDER_LOCATION, NON_TERMINAL_STATUSES))
    table.update(
        _side_action(
            OrderAction.UPDATE_CUSTOMER_LOCATION, frozenset({OrderStatus.CUSTOMER_LOCATION_SET})
        )
    )
    return table


ORDER_TRANSITIONS: MappingProxyType[tuple[OrderStatus, OrderAction], Transition] = (
    MappingProxyType(_build_table())
)


def required_actors(action: OrderAction) -> frozenset[ActorClass]:
    return ACTION_ACTORS[action]


def lookup_transition(current: OrderStatus, action: OrderAction) -> Transition:
    transition = ORDER_TRANSITIONS.get((current, action))
    if transition is None:
        if current in TERMINAL_STATUSES:
            raise InvalidTransitionError(
                f"Order is {current.value}; no further changes are accepted"
            )
        raise InvalidTransitionError(f"Cannot {action.value} while order is {current.value}")
    return transition


def is_terminal(status_value: OrderStatus) -> bool:
    return status_value in TERMINAL_STATUSES


def allowed_actions(
    current: OrderStatus, actors: frozenset[ActorClass]
) -> list[OrderAction]:
    """Actions this set of actor classes could apply right now, in table order."""
    return [
        action
        for action in OrderAction
        if (current, action) in ORDER_TRANSITIONS and not actors.isdisjoint(ACTION_ACTORS[action])
    ]
