"""Resolve what a caller is to one specific order.

Capabilities are computed per call from stored relationships. The caller's
session organization is carried for logging only and never grants access:
organization roles are always looked up against the order's own ``org_id``.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass

from app.models.domain import OrderSnapshot
from app.models.order import OrderStatus
from app.models.user import UserRole
from app.repositories.orders import OrderScope
from app.repositories.organizations import OrganizationDirectory
from app.services.state_machine import ActorClass


@dataclass(frozen=True)
class CallerIdentity:
    user_id: uuid.UUID
    role: UserRole
    session_org_id: uuid.UUID | None = None


class RoleResolver:
    def __init__(self, directory: OrganizationDirectory) -> None:
        self.directory = directory

    def resolve(self, caller: CallerIdentity, order: OrderSnapshot) -> frozenset[ActorClass]:
        classes: set[ActorClass] = set()

        if caller.user_id == order.customer_id:
            classes.add(ActorClass.ORDER_CUSTOMER)
        if order.rider_id is not None and caller.user_id == order.rider_id:
            classes.add(ActorClass.ASSIGNED_RIDER)

        org_role = self.directory.resolve_org_role(caller.user_id, order.org_id)
        if org_role == UserRole.OWNER:
            classes.add(ActorClass.OWNER_OF_ORG)
        if self._can_claim(caller, order):
            classes.add(ActorClass.ORG_RIDER)

        return frozenset(classes)

    def _can_claim(self, caller: CallerIdentity, order: OrderSnapshot) -> bool:
        if order.rider_id is not None or order.status != OrderStatus.PENDING:
            return False
        membership = self.directory.get_membership(caller.user_id, order.org_id, UserRole.RIDER)
        return membership is not None and membership.is_active

    def read_scope(
        self, caller: CallerIdentity, status_filter: OrderStatus | None = None
    ) -> OrderScope:
        """Listing predicate: everything the caller relates to, nothing else."""
        return OrderScope(
            customer_id=caller.user_id,
            rider_id=caller.user_id,
            owner_org_ids=self.directory.member_org_ids(caller.user_id, UserRole.OWNER),
            open_rider_org_ids=self.directory.member_org_ids(caller.user_id, UserRole.RIDER),
            status=status_filter,
        )
