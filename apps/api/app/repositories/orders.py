from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Any, Protocol

from sqlalchemy import and_, or_, select, update
from sqlalchemy.orm import Session

from app.models.domain import OrderSnapshot
from app.models.order import Order, OrderStatus


@dataclass(frozen=True)
class NewOrder:
    order_number: str
    org_id: uuid.UUID
    package_description: str
    customer_id: uuid.UUID
    rider_id: uuid.UUID | None
    assigned_at: Any = None


@dataclass(frozen=True)
class OrderScope:
    """Caller-scoped read predicate; an order matches if any clause matches."""

    customer_id: uuid.UUID | None = None
    rider_id: uuid.UUID | None = None
    owner_org_ids: frozenset[uuid.UUID] = field(default_factory=frozenset)
    open_rider_org_ids: frozenset[uuid.UUID] = field(default_factory=frozenset)
    status: OrderStatus | None = None

    def is_empty(self) -> bool:
        return (
            self.customer_id is None
            and self.rider_id is None
            and not self.owner_org_ids
            and not self.open_rider_org_ids
        )

    def matches(self, order: OrderSnapshot) -> bool:
        if self.status is not None and order.status != self.status:
            return False
        if self.customer_id is not None and order.customer_id == self.customer_id:
            return True
        if self.rider_id is not None and order.rider_id == self.rider_id:
            return True
        if order.org_id in self.owner_org_ids:
            return True
        return (
            order.org_id in self.open_rider_org_ids
            and order.rider_id is None
            and order.status == OrderStatus.PENDING
        )


class OrderRepository(Protocol):
    def get_order_snapshot(self, order_id: uuid.UUID) -> OrderSnapshot | None: ...

    def conditional_update(
        self,
        order_id: uuid.UUID,
        expected_status: OrderStatus,
        fields: dict[str, Any],
        *,
        require_unassigned: bool = False,
    ) -> int: ...

    def list_orders(self, scope: OrderScope) -> list[OrderSnapshot]: ...

    def insert_order(self, new_order: NewOrder) -> OrderSnapshot: ...

    def order_number_exists(self, order_number: str) -> bool: ...


class SqlAlchemyOrderRepository:
    def __init__(self, db: Session) -> None:
        self.db = db

    def get_order_snapshot(self, order_id: uuid.UUID) -> OrderSnapshot | None:
        row = self.db.scalar(
            select(Order).where(Order.id == order_id).execution_options(populate_existing=True)
        )
        if row is None:
            return None
        return OrderSnapshot.model_validate(row)

    def conditional_update(
        self,
        order_id: uuid.UUID,
        expected_status: OrderStatus,
        fields: dict[str, Any],
        *,
        require_unassigned: bool = False,
    ) -> int:
        criteria = [Order.id == order_id, Order.status == expected_status]
        if require_unassigned:
            criteria.append(Order.rider_id.is_(None))
        result = self.db.execute(
            update(Order)
            .where(and_(*criteria))
            .values(**fields)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        return int(result.rowcount or 0)

    def list_orders(self, scope: OrderScope) -> list[OrderSnapshot]:
        if scope.is_empty():
            return []

        clauses: list[Any] = []
        if scope.customer_id is not None:
            clauses.append(Order.customer_id == scope.customer_id)
        if scope.rider_id is not None:
            clauses.append(Order.rider_id == scope.rider_id)
        if scope.owner_org_ids:
            clauses.append(Order.org_id.in_(scope.owner_org_ids))
        if scope.open_rider_org_ids:
            clauses.append(
                and_(
                    Order.org_id.in_(scope.open_rider_org_ids),
                    Order.rider_id.is_(None),
                    Order.status == OrderStatus.PENDING,
                )
            )

        stmt = select(Order).where(or_(*clauses))
        if scope.status is not None:
            stmt = stmt.where(Order.status == scope.status)
        rows = self.db.scalars(stmt.order_by(Order.created_at.desc(), Order.order_number.desc()))
        return [OrderSnapshot.model_validate(row) for row in rows]

    def insert_order(self, new_order: NewOrder) -> OrderSnapshot:
        row = Order(
            order_number=new_order.order_number,
            org_id=new_order.org_id,
            package_description=new_order.package_description,
            customer_id=new_order.customer_id,
            rider_id=new_order.rider_id,
            status=OrderStatus.PENDING,
            assigned_at=new_order.assigned_at,
        )
        self.db.add(row)
        self.db.commit()
        self.db.refresh(row)
        return OrderSnapshot.model_validate(row)

    def order_number_exists(self, order_number: str) -> bool:
        found = self.db.scalar(select(Order.id).where(Order.order_number == order_number))
        return found is not None
