from __future__ import annotations

import uuid
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.domain import MembershipSnapshot, UserSnapshot
from app.models.organization import OrganizationMembership
from app.models.user import User, UserRole

# When a user holds several active roles in one organization, the strongest wins.
_ROLE_PRECEDENCE: tuple[UserRole, ...] = (UserRole.OWNER, UserRole.RIDER, UserRole.CUSTOMER)


class OrganizationDirectory(Protocol):
    def resolve_org_role(self, user_id: uuid.UUID, org_id: uuid.UUID) -> UserRole | None: ...

    def get_membership(
        self, user_id: uuid.UUID, org_id: uuid.UUID, role: UserRole
    ) -> MembershipSnapshot | None: ...

    def member_org_ids(self, user_id: uuid.UUID, role: UserRole) -> frozenset[uuid.UUID]: ...

    def get_user(self, user_id: uuid.UUID) -> UserSnapshot | None: ...


def strongest_role(roles: set[UserRole]) -> UserRole | None:
    for role in _ROLE_PRECEDENCE:
        if role in roles:
            return role
    return None


class SqlAlchemyOrganizationDirectory:
    def __init__(self, db: Session) -> None:
        self.db = db

    def resolve_org_role(self, user_id: uuid.UUID, org_id: uuid.UUID) -> UserRole | None:
        roles = self.db.scalars(
            select(OrganizationMembership.role).where(
                OrganizationMembership.user_id == user_id,
                OrganizationMembership.org_id == org_id,
                OrganizationMembership.is_active.is_(True),
            )
        )
        return strongest_role(set(roles))

    def get_membership(
        self, user_id: uuid.UUID, org_id: uuid.UUID, role: UserRole
    ) -> MembershipSnapshot | None:
        row = self.db.scalar(
            select(OrganizationMembership).where(
                OrganizationMembership.user_id == user_id,
                OrganizationMembership.org_id == org_id,
                OrganizationMembership.role == role,
            )
        )
        return MembershipSnapshot.model_validate(row) if row is not None else None

    def member_org_ids(self, user_id: uuid.UUID, role: UserRole) -> frozenset[uuid.UUID]:
        org_ids = self.db.scalars(
            select(OrganizationMembership.org_id).where(
                OrganizationMembership.user_id == user_id,
                OrganizationMembership.role == role,
                OrganizationMembership.is_active.is_(True),
            )
        )
        return frozenset(org_ids)

    def get_user(self, user_id: uuid.UUID) -> UserSnapshot | None:
        row = self.db.get(User, user_id)
        return UserSnapshot.model_validate(row) if row is not None else None
