import uuid
from dataclasses import dataclass

import pytest

from app.models.user import UserRole
from app.repositories.memory import (
    InMemoryOrderRepository,
    InMemoryOrganizationDirectory,
    InMemoryStore,
)
from app.schemas.events import AuditEntry, LifecycleEvent
from app.services.orders_service import OrderLifecycleEngine
from app.services.role_resolver import CallerIdentity


class RecordingPublisher:
    def __init__(self) -> None:
        self.events: list[LifecycleEvent] = []
        self.details: list[dict] = []
        self.attempts: list[AuditEntry] = []

    def publish(self, event: LifecycleEvent, details: dict | None = None) -> None:
        self.events.append(event)
        self.details.append(details or {})

    def record_attempt(self, entry: AuditEntry) -> None:
        self.attempts.append(entry)


@dataclass(frozen=True)
class Parties:
    org_id: uuid.UUID
    other_org_id: uuid.UUID
    owner: CallerIdentity
    rider: CallerIdentity
    spare_rider: CallerIdentity
    customer: CallerIdentity
    other_owner: CallerIdentity
    other_rider: CallerIdentity
    stranger: CallerIdentity


def _caller(store: InMemoryStore, role: UserRole) -> CallerIdentity:
    user = store.add_user(role)
    return CallerIdentity(user_id=user.id, role=role)


@pytest.fixture
def memory_store():
    return InMemoryStore()


@pytest.fixture
def parties(memory_store):
    org_id = uuid.uuid4()
    other_org_id = uuid.uuid4()

    owner = _caller(memory_store, UserRole.OWNER)
    rider = _caller(memory_store, UserRole.RIDER)
    spare_rider = _caller(memory_store, UserRole.RIDER)
    customer = _caller(memory_store, UserRole.CUSTOMER)
    other_owner = _caller(memory_store, UserRole.OWNER)
    other_rider = _caller(memory_store, UserRole.RIDER)
    stranger = _caller(memory_store, UserRole.CUSTOMER)

    memory_store.add_membership(owner.user_id, org_id, UserRole.OWNER)
    memory_store.add_membership(rider.user_id, org_id, UserRole.RIDER)
    memory_store.add_membership(spare_rider.user_id, org_id, UserRole.RIDER)
    memory_store.add_membership(other_owner.user_id, other_org_id, UserRole.OWNER)
    memory_store.add_membership(other_rider.user_id, other_org_id, UserRole.RIDER)

    return Parties(
        org_id=org_id,
        other_org_id=other_org_id,
        owner=owner,
        rider=rider,
        spare_rider=spare_rider,
        customer=customer,
        other_owner=other_owner,
        other_rider=other_rider,
        stranger=stranger,
    )


@pytest.fixture
def publisher():
    return RecordingPublisher()


@pytest.fixture
def order_repository(memory_store):
    return InMemoryOrderRepository(memory_store)


@pytest.fixture
def directory(memory_store):
    return InMemoryOrganizationDirectory(memory_store)


@pytest.fixture
def lifecycle_engine(order_repository, directory, publisher):
    return OrderLifecycleEngine(
        repository=order_repository, directory=directory, events=publisher
    )


@pytest.fixture
def place_order(lifecycle_engine, parties):
    def _place(*, assign_rider: bool = True):
        return lifecycle_engine.create_order(
            parties.owner,
            org_id=parties.org_id,
            package_description="Two boxes of documents",
            customer_id=parties.customer.user_id,
            rider_id=parties.rider.user_id if assign_rider else None,
        )

    return _place


@pytest.fixture
def advance(lifecycle_engine, parties):
    """Walk an order along the happy path until it reaches ``stop_after``."""

    steps = [
        ("rider_accept", lambda oid: lifecycle_engine.rider_accept(oid, parties.rider, "Depot")),
        (
            "set_customer_location",
            lambda oid: lifecycle_engine.set_customer_location(
                oid, parties.customer, "Home", "12 Harbour Road, flat 3"
            ),
        ),
        (
            "mark_package_picked_up",
            lambda oid: lifecycle_engine.mark_package_picked_up(oid, parties.rider),
        ),
        ("start_delivery", lambda oid: lifecycle_engine.start_delivery(oid, parties.rider)),
        ("mark_arrived", lambda oid: lifecycle_engine.mark_arrived(oid, parties.rider)),
        ("confirm_delivery", lambda oid: lifecycle_engine.confirm_delivery(oid, parties.customer)),
    ]

    def _advance(order_id: uuid.UUID, stop_after: str):
        order = None
        for name, step in steps:
            order = step(order_id)
            if name == stop_after:
                return order
        raise AssertionError(f"unknown step {stop_after}")

    return _advance
