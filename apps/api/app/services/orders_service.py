from __future__ import annotations

import secrets
import time
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable

from app.models.domain import OrderSnapshot, now_utc
from app.models.order import OrderStatus
from app.models.order_audit_record import AuditOutcome
from app.models.user import UserRole
from app.observability import log_event, metrics_store
from app.repositories.orders import NewOrder, OrderRepository
from app.repositories.organizations import OrganizationDirectory
from app.schemas.events import AuditEntry, LifecycleEvent
from app.services.errors import (
    InvalidPayloadError,
    OrderConflictError,
    OrderForbiddenError,
    OrderLifecycleError,
    OrderNotFoundError,
)
from app.services.lifecycle_events import LifecycleEventPublisher
from app.services.role_resolver import CallerIdentity, RoleResolver
from app.services.state_machine import (
    ActorClass,
    OrderAction,
    Transition,
    allowed_actions,
    lookup_transition,
    required_actors,
)

MAX_LOCATION_LABEL_LENGTH = 255
MAX_FREE_TEXT_LENGTH = 2000

_RIDER_CLASSES = frozenset({ActorClass.ASSIGNED_RIDER, ActorClass.ORG_RIDER})
_CANCELLED_BY_LABELS: tuple[tuple[ActorClass, str], ...] = (
    (ActorClass.OWNER_OF_ORG, "owner"),
    (ActorClass.ASSIGNED_RIDER, "rider"),
    (ActorClass.ORDER_CUSTOMER, "customer"),
)

FieldsBuilder = Callable[[OrderSnapshot, frozenset[ActorClass]], dict[str, Any]]


@dataclass(frozen=True)
class OrderView:
    order: OrderSnapshot
    actor_classes: frozenset[ActorClass]

    @property
    def allowed_actions(self) -> list[OrderAction]:
        return allowed_actions(self.order.status, self.actor_classes)


def parse_order_id(value: str) -> uuid.UUID:
    try:
        return uuid.UUID(value)
    except ValueError as err:
        raise OrderNotFoundError() from err


def _require_text(value: str | None, field: str, max_length: int = MAX_FREE_TEXT_LENGTH) -> str:
    cleaned = (value or "").strip()
    if not cleaned:
        raise InvalidPayloadError(f"{field} is required")
    if len(cleaned) > max_length:
        raise InvalidPayloadError(f"{field} must be at most {max_length} characters")
    return cleaned


def _location_fields(label: str | None, precise: str | None) -> dict[str, Any]:
    return {
        "customer_location_label": _require_text(
            label, "location_label", MAX_LOCATION_LABEL_LENGTH
        ),
        "customer_location_precise": _require_text(precise, "location_precise"),
    }


def _audit_details(fields: dict[str, Any]) -> dict[str, Any]:
    return {
        key: str(value) if isinstance(value, uuid.UUID) else value for key, value in fields.items()
    }


def _no_fields(_order: OrderSnapshot, _actors: frozenset[ActorClass]) -> dict[str, Any]:
    return {}


class OrderLifecycleEngine:
    """Applies lifecycle actions to orders.

    Each call reads the order, resolves the caller's relationship to it, checks
    the transition table, validates the payload and then issues one
    compare-and-swap write keyed on the status it read. Losing that race is a
    ``conflict``; nothing is held in memory between calls.
    """

    def __init__(
        self,
        repository: OrderRepository,
        directory: OrganizationDirectory,
        events: LifecycleEventPublisher,
        clock: Callable[[], datetime] = now_utc,
    ) -> None:
        self.repository = repository
        self.directory = directory
        self.events = events
        self.clock = clock
        self.resolver = RoleResolver(directory)

    # -- creation -------------------------------------------------------

    def create_order(
        self,
        caller: CallerIdentity,
        *,
        org_id: uuid.UUID,
        package_description: str | None,
        customer_id: uuid.UUID,
        rider_id: uuid.UUID | None = None,
    ) -> OrderSnapshot:
        if self.directory.resolve_org_role(caller.user_id, org_id) != UserRole.OWNER:
            raise OrderForbiddenError("Only organization owners can create orders")

        description = _require_text(package_description, "package_description")

        customer = self.directory.get_user(customer_id)
        if customer is None or customer.role != UserRole.CUSTOMER or not customer.is_active:
            raise InvalidPayloadError("Customer not found")

        if rider_id is not None:
            self._ensure_assignable_rider(rider_id, org_id)

        now = self.clock()
        order = self.repository.insert_order(
            NewOrder(
                order_number=self._generate_unique_order_number(),
                org_id=org_id,
                package_description=description,
                customer_id=customer_id,
                rider_id=rider_id,
                assigned_at=now if rider_id is not None else None,
            )
        )
        metrics_store.increment("orders_created_total")
        log_event(
            "order_created",
            order_id=str(order.id),
            actor_id=str(caller.user_id),
            org_id=str(org_id),
        )
        self.events.publish(
            LifecycleEvent(
                action="create_order",
                order_id=order.id,
                order_number=order.order_number,
                org_id=order.org_id,
                actor_id=caller.user_id,
                prior_status=None,
                new_status=order.status,
                timestamp=now,
                recipients=self._recipients(order, caller),
            ),
            _audit_details({"package_description": description, "rider_id": rider_id}),
        )
        return order

    # -- reads ----------------------------------------------------------

    def get_order(self, order_id: uuid.UUID, caller: CallerIdentity) -> OrderView:
        order = self.repository.get_order_snapshot(order_id)
        if order is None:
            raise OrderNotFoundError()
        actors = self.resolver.resolve(caller, order)
        if not actors:
            raise OrderNotFoundError()
        return OrderView(order=order, actor_classes=actors)

    def list_orders(
        self, caller: CallerIdentity, status_filter: OrderStatus | None = None
    ) -> list[OrderSnapshot]:
        return self.repository.list_orders(self.resolver.read_scope(caller, status_filter))

    # -- lifecycle actions ----------------------------------------------

    def rider_accept(
        self, order_id: uuid.UUID, caller: CallerIdentity, current_location: str | None
    ) -> OrderSnapshot:
        def fields(_order: OrderSnapshot, _actors: frozenset[ActorClass]) -> dict[str, Any]:
            return {"rider_current_location": _require_text(current_location, "current_location")}

        return self._apply(order_id, caller, OrderAction.RIDER_ACCEPT, fields)

    def set_customer_location(
        self,
        order_id: uuid.UUID,
        caller: CallerIdentity,
        location_label: str | None,
        location_precise: str | None,
    ) -> OrderSnapshot:
        return self._apply(
            order_id,
            caller,
            OrderAction.SET_CUSTOMER_LOCATION,
            lambda _order, _actors: _location_fields(location_label, location_precise),
        )

    def update_customer_location(
        self,
        order_id: uuid.UUID,
        caller: CallerIdentity,
        location_label: str | None,
        location_precise: str | None,
    ) -> OrderSnapshot:
        return self._apply(
            order_id,
            caller,
            OrderAction.UPDATE_CUSTOMER_LOCATION,
            lambda _order, _actors: _location_fields(location_label, location_precise),
        )

    def mark_package_picked_up(self, order_id: uuid.UUID, caller: CallerIdentity) -> OrderSnapshot:
        return self._apply(order_id, caller, OrderAction.MARK_PACKAGE_PICKED_UP, _no_fields)

    def start_delivery(self, order_id: uuid.UUID, caller: CallerIdentity) -> OrderSnapshot:
        return self._apply(order_id, caller, OrderAction.START_DELIVERY, _no_fields)

    def mark_arrived(self, order_id: uuid.UUID, caller: CallerIdentity) -> OrderSnapshot:
        return self._apply(order_id, caller, OrderAction.MARK_ARRIVED, _no_fields)

    def confirm_delivery(self, order_id: uuid.UUID, caller: CallerIdentity) -> OrderSnapshot:
        return self._apply(order_id, caller, OrderAction.CONFIRM_DELIVERY, _no_fields)

    def cancel(
        self, order_id: uuid.UUID, caller: CallerIdentity, reason: str | None = None
    ) -> OrderSnapshot:
        def fields(_order: OrderSnapshot, actors: frozenset[ActorClass]) -> dict[str, Any]:
            if reason is not None and reason.strip():
                resolved_reason = _require_text(reason, "reason")
            else:
                label = next(name for cls, name in _CANCELLED_BY_LABELS if cls in actors)
                resolved_reason = f"Cancelled by {label}"
            return {"cancelled_by": caller.user_id, "cancellation_reason": resolved_reason}

        return self._apply(order_id, caller, OrderAction.CANCEL, fields)

    def update_rider_location(
        self, order_id: uuid.UUID, caller: CallerIdentity, current_location: str | None
    ) -> OrderSnapshot:
        def fields(_order: OrderSnapshot, _actors: frozenset[ActorClass]) -> dict[str, Any]:
            return {"rider_current_location": _require_text(current_location, "current_location")}

        return self._apply(order_id, caller, OrderAction.UPDATE_RIDER_LOCATION, fields)

    # -- internals ------------------------------------------------------

    def _apply(
        self,
        order_id: uuid.UUID,
        caller: CallerIdentity,
        action: OrderAction,
        build_fields: FieldsBuilder,
    ) -> OrderSnapshot:
        order: OrderSnapshot | None = None
        details: dict[str, Any] = {}
        try:
            order = self.repository.get_order_snapshot(order_id)
            if order is None:
                raise OrderNotFoundError()

            actors = self._authorize(caller, order, action)
            transition = lookup_transition(order.status, action)
            fields = build_fields(order, actors)
            details = _audit_details(fields)
            if not actors.isdisjoint(_RIDER_CLASSES) and required_actors(action) <= _RIDER_CLASSES:
                self._ensure_rider_in_good_standing(caller.user_id, order.org_id, action)

            now = self.clock()
            fields.update(self._transition_fields(transition, now))
            claim = action == OrderAction.RIDER_ACCEPT and order.rider_id is None
            if claim:
                fields.update({"rider_id": caller.user_id, "assigned_at": now})

            affected = self.repository.conditional_update(
                order.id, order.status, fields, require_unassigned=claim
            )
            if affected == 0:
                metrics_store.increment("order_transition_conflicts_total")
                raise OrderConflictError()
        except OrderLifecycleError as err:
            self._reject(order_id, caller, action, order, err, details)
            raise

        updated = order.model_copy(update=fields)
        self._applied(caller, action, transition, order, updated, now, details)
        return updated

    def _authorize(
        self, caller: CallerIdentity, order: OrderSnapshot, action: OrderAction
    ) -> frozenset[ActorClass]:
        actors = self.resolver.resolve(caller, order)
        if not actors:
            raise OrderForbiddenError(f"Not a party to this order; cannot {action.value}")
        required = required_actors(action)
        if actors.isdisjoint(required):
            allowed = ", ".join(sorted(cls.value for cls in required))
            raise OrderForbiddenError(f"{action.value} requires one of: {allowed}")
        return actors

    @staticmethod
    def _transition_fields(transition: Transition, now: datetime) -> dict[str, Any]:
        fields: dict[str, Any] = {"updated_at": now}
        if transition.to_status != transition.from_status:
            fields["status"] = transition.to_status
        if transition.timestamp_field is not None:
            fields[transition.timestamp_field] = now
        return fields

    def _ensure_rider_in_good_standing(
        self, rider_id: uuid.UUID, org_id: uuid.UUID, action: OrderAction
    ) -> None:
        membership = self.directory.get_membership(rider_id, org_id, UserRole.RIDER)
        if membership is None:
            raise OrderForbiddenError("Rider membership not found in this organization")
        if not membership.is_active:
            raise OrderForbiddenError(
                f"Rider membership is inactive; contact the organization to {action.value}"
            )
        if membership.is_suspended:
            reason = membership.suspension_reason or "policy violation"
            raise OrderForbiddenError(f"Cannot {action.value} while suspended. Reason: {reason}")
        user = self.directory.get_user(rider_id)
        if user is not None and not user.is_active:
            raise OrderForbiddenError(f"Rider must be active to {action.value}")

    def _ensure_assignable_rider(self, rider_id: uuid.UUID, org_id: uuid.UUID) -> None:
        membership = self.directory.get_membership(rider_id, org_id, UserRole.RIDER)
        if membership is None or not membership.is_active:
            raise InvalidPayloadError("Rider is not an active member of this organization")
        if membership.is_suspended:
            raise InvalidPayloadError("Cannot assign orders to suspended riders")
        user = self.directory.get_user(rider_id)
        if user is None or not user.is_active:
            raise InvalidPayloadError("Rider is currently inactive and cannot be assigned orders")

    def _generate_unique_order_number(self) -> str:
        while True:
            millis = int(time.time() * 1000) % 1_000_000
            candidate = f"ORD{millis:06d}{secrets.randbelow(1000):03d}"
            if not self.repository.order_number_exists(candidate):
                return candidate

    @staticmethod
    def _recipients(order: OrderSnapshot, caller: CallerIdentity) -> tuple[uuid.UUID, ...]:
        parties = [order.customer_id, order.rider_id]
        return tuple(p for p in dict.fromkeys(parties) if p is not None and p != caller.user_id)

    def _applied(
        self,
        caller: CallerIdentity,
        action: OrderAction,
        transition: Transition,
        prior: OrderSnapshot,
        updated: OrderSnapshot,
        now: datetime,
        details: dict[str, Any],
    ) -> None:
        metrics_store.increment("order_transitions_total")
        metrics_store.increment(f"order_transitions_total:{action.value}")
        log_event(
            f"order_{action.value}",
            order_id=str(prior.id),
            actor_id=str(caller.user_id),
            org_id=str(prior.org_id),
        )

        if transition.to_status == transition.from_status:
            # Side actions leave the status alone: audited, not announced.
            self.events.record_attempt(
                AuditEntry(
                    order_id=str(prior.id),
                    org_id=prior.org_id,
                    actor_id=str(caller.user_id),
                    action=action.value,
                    outcome=AuditOutcome.APPLIED,
                    prior_status=prior.status,
                    new_status=updated.status,
                    payload=details,
                    created_at=now,
                )
            )
            return

        self.events.publish(
            LifecycleEvent(
                action=action.value,
                order_id=prior.id,
                order_number=prior.order_number,
                org_id=prior.org_id,
                actor_id=caller.user_id,
                prior_status=prior.status,
                new_status=updated.status,
                timestamp=now,
                recipients=self._recipients(updated, caller),
            ),
            details,
        )

    def _reject(
        self,
        order_id: uuid.UUID,
        caller: CallerIdentity,
        action: OrderAction,
        order: OrderSnapshot | None,
        err: OrderLifecycleError,
        details: dict[str, Any],
    ) -> None:
        metrics_store.increment(f"order_transition_rejections_total:{err.kind}")
        log_event(
            f"order_{action.value}_rejected:{err.kind}",
            order_id=str(order_id),
            actor_id=str(caller.user_id),
            org_id=str(order.org_id) if order else None,
        )
        self.events.record_attempt(
            AuditEntry(
                order_id=str(order_id),
                org_id=order.org_id if order else None,
                actor_id=str(caller.user_id),
                action=action.value,
                outcome=AuditOutcome.REJECTED,
                error_kind=err.kind,
                prior_status=order.status if order else None,
                detail=err.message,
                payload=details,
                created_at=self.clock(),
            )
        )
