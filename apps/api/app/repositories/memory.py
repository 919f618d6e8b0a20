from __future__ import annotations

import uuid
from threading import Lock
from typing import Any

from app.models.domain import MembershipSnapshot, OrderSnapshot, UserSnapshot, now_utc
from app.models.order import OrderStatus
from app.models.user import UserRole
from app.repositories.orders import NewOrder, OrderScope
from app.repositories.organizations import strongest_role


class InMemoryStore:
    def __init__(self) -> None:
        self.lock = Lock()
        self.orders: dict[uuid.UUID, OrderSnapshot] = {}
        self.users: dict[uuid.UUID, UserSnapshot] = {}
        self.memberships: list[MembershipSnapshot] = []

    def reset(self) -> None:
        with self.lock:
            self.orders.clear()
            self.users.clear()
            self.memberships.clear()

    def add_user(
        self,
        role: UserRole,
        *,
        user_id: uuid.UUID | None = None,
        email: str | None = None,
        is_active: bool = True,
    ) -> UserSnapshot:
        resolved_id = user_id or uuid.uuid4()
        user = UserSnapshot(
            id=resolved_id,
            email=email or f"{role.value}-{resolved_id.hex[:8]}@example.test",
            role=role,
            is_active=is_active,
        )
        self.users[user.id] = user
        return user

    def add_membership(
        self,
        user_id: uuid.UUID,
        org_id: uuid.UUID,
        role: UserRole,
        *,
        is_active: bool = True,
        is_suspended: bool = False,
        suspension_reason: str | None = None,
    ) -> MembershipSnapshot:
        membership = MembershipSnapshot(
            user_id=user_id,
            org_id=org_id,
            role=role,
            is_active=is_active,
            is_suspended=is_suspended,
            suspension_reason=suspension_reason,
        )
        self.memberships.append(membership)
        return membership


class InMemoryOrderRepository:
    """Order repository over :class:`InMemoryStore`.

    ``conditional_update`` holds the store lock for the compare and the swap,
    matching the atomicity a single ``UPDATE ... WHERE status = ?`` gives.
    """

    def __init__(self, store: InMemoryStore) -> None:
        self.store = store

    def get_order_snapshot(self, order_id: uuid.UUID) -> OrderSnapshot | None:
        with self.store.lock:
            return self.store.orders.get(order_id)

    def conditional_update(
        self,
        order_id: uuid.UUID,
        expected_status: OrderStatus,
        fields: dict[str, Any],
        *,
        require_unassigned: bool = False,
    ) -> int:
        with self.store.lock:
            current = self.store.orders.get(order_id)
            if current is None or current.status != expected_status:
                return 0
            if require_unassigned and current.rider_id is not None:
                return 0
            self.store.orders[order_id] = current.model_copy(
                update={"updated_at": now_utc(), **fields}
            )
            return 1

    def list_orders(self, scope: OrderScope) -> list[OrderSnapshot]:
        if scope.is_empty():
            return []
        with self.store.lock:
            matched = [order for order in self.store.orders.values() if scope.matches(order)]
        return sorted(matched, key=lambda o: (o.created_at, o.order_number), reverse=True)

    def insert_order(self, new_order: NewOrder) -> OrderSnapshot:
        created = now_utc()
        order = OrderSnapshot(
            id=uuid.uuid4(),
            order_number=new_order.order_number,
            org_id=new_order.org_id,
            package_description=new_order.package_description,
            customer_id=new_order.customer_id,
            rider_id=new_order.rider_id,
            status=OrderStatus.PENDING,
            assigned_at=new_order.assigned_at,
            created_at=created,
            updated_at=created,
        )
        with self.store.lock:
            self.store.orders[order.id] = order
        return order

    def order_number_exists(self, order_number: str) -> bool:
        with self.store.lock:
            return any(o.order_number == order_number for o in self.store.orders.values())


class InMemoryOrganizationDirectory:
    def __init__(self, store: InMemoryStore) -> None:
        self.store = store

    def _memberships(self, user_id: uuid.UUID) -> list[MembershipSnapshot]:
        return [m for m in self.store.memberships if m.user_id == user_id]

    def resolve_org_role(self, user_id: uuid.UUID, org_id: uuid.UUID) -> UserRole | None:
        roles = {m.role for m in self._memberships(user_id) if m.org_id == org_id and m.is_active}
        return strongest_role(roles)

    def get_membership(
        self, user_id: uuid.UUID, org_id: uuid.UUID, role: UserRole
    ) -> MembershipSnapshot | None:
        return next(
            (m for m in self._memberships(user_id) if m.org_id == org_id and m.role == role),
            None,
        )

    def member_org_ids(self, user_id: uuid.UUID, role: UserRole) -> frozenset[uuid.UUID]:
        return frozenset(
            m.org_id for m in self._memberships(user_id) if m.role == role and m.is_active
        )

    def get_user(self, user_id: uuid.UUID) -> UserSnapshot | None:
        return self.store.users.get(user_id)
