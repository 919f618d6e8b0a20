from sqlalchemy import select

from app.integrations.audit import SqlAlchemyAuditSink
from app.models.domain import now_utc
from app.models.order import OrderStatus
from app.models.order_audit_record import AuditOutcome, OrderAuditRecord
from app.models.user import UserRole
from app.repositories.orders import NewOrder, OrderScope, SqlAlchemyOrderRepository
from app.repositories.organizations import SqlAlchemyOrganizationDirectory
from app.schemas.events import AuditEntry
from app.services.orders_service import OrderLifecycleEngine
from app.services.role_resolver import CallerIdentity


def _insert(repository, seeded_parties, number="ORD123456001", rider_key="rider_a"):
    return repository.insert_order(
        NewOrder(
            order_number=number,
            org_id=seeded_parties["org_a"],
            package_description="Flowers",
            customer_id=seeded_parties["customer"],
            rider_id=seeded_parties[rider_key] if rider_key else None,
        )
    )


def test_conditional_update_applies_once(db_session, seeded_parties):
    repository = SqlAlchemyOrderRepository(db_session)
    order = _insert(repository, seeded_parties)
    fields = {"status": OrderStatus.CANCELLED, "cancelled_at": now_utc()}

    first = repository.conditional_update(order.id, OrderStatus.PENDING, fields)
    second = repository.conditional_update(order.id, OrderStatus.PENDING, fields)

    assert first == 1
    assert second == 0
    assert repository.get_order_snapshot(order.id).status == OrderStatus.CANCELLED


def test_conditional_update_can_require_unassigned(db_session, seeded_parties):
    repository = SqlAlchemyOrderRepository(db_session)
    order = _insert(repository, seeded_parties)
    claim = {"status": OrderStatus.RIDER_ACCEPTED, "rider_id": seeded_parties["spare_rider_a"]}

    affected = repository.conditional_update(
        order.id, OrderStatus.PENDING, claim, require_unassigned=True
    )

    assert affected == 0
    assert repository.get_order_snapshot(order.id).rider_id == seeded_parties["rider_a"]


def test_get_order_snapshot_sees_writes_from_other_sessions(
    db_session, session_factory, seeded_parties
):
    repository = SqlAlchemyOrderRepository(db_session)
    order = _insert(repository, seeded_parties)
    repository.get_order_snapshot(order.id)

    with session_factory() as other:
        SqlAlchemyOrderRepository(other).conditional_update(
            order.id, OrderStatus.PENDING, {"status": OrderStatus.CANCELLED}
        )

    assert repository.get_order_snapshot(order.id).status == OrderStatus.CANCELLED


def test_list_orders_applies_scope(db_session, seeded_parties):
    repository = SqlAlchemyOrderRepository(db_session)
    assigned = _insert(repository, seeded_parties, "ORD123456001")
    open_order = _insert(repository, seeded_parties, "ORD123456002", rider_key=None)

    rider_scope = OrderScope(
        customer_id=seeded_parties["spare_rider_a"],
        rider_id=seeded_parties["spare_rider_a"],
        open_rider_org_ids=frozenset({seeded_parties["org_a"]}),
    )
    owner_scope = OrderScope(owner_org_ids=frozenset({seeded_parties["org_a"]}))
    other_owner_scope = OrderScope(owner_org_ids=frozenset({seeded_parties["org_b"]}))

    assert [o.id for o in repository.list_orders(rider_scope)] == [open_order.id]
    assert {o.id for o in repository.list_orders(owner_scope)} == {assigned.id, open_order.id}
    assert repository.list_orders(other_owner_scope) == []
    assert repository.list_orders(OrderScope()) == []


def test_order_number_exists(db_session, seeded_parties):
    repository = SqlAlchemyOrderRepository(db_session)
    _insert(repository, seeded_parties)

    assert repository.order_number_exists("ORD123456001")
    assert not repository.order_number_exists("ORD999999999")


def test_directory_reads_memberships(db_session, seeded_parties):
    directory = SqlAlchemyOrganizationDirectory(db_session)

    assert directory.resolve_org_role(seeded_parties["owner_a"], seeded_parties["org_a"]) == (
        UserRole.OWNER
    )
    assert directory.resolve_org_role(seeded_parties["owner_a"], seeded_parties["org_b"]) is None
    assert directory.member_org_ids(seeded_parties["rider_b"], UserRole.RIDER) == {
        seeded_parties["org_b"]
    }
    membership = directory.get_membership(
        seeded_parties["rider_a"], seeded_parties["org_a"], UserRole.RIDER
    )
    assert membership is not None
    assert membership.is_active and not membership.is_suspended
    assert directory.get_user(seeded_parties["customer"]).role == UserRole.CUSTOMER


def test_engine_runs_against_sql_repositories(db_session, seeded_parties, publisher):
    engine = OrderLifecycleEngine(
        repository=SqlAlchemyOrderRepository(db_session),
        directory=SqlAlchemyOrganizationDirectory(db_session),
        events=publisher,
    )
    owner = CallerIdentity(user_id=seeded_parties["owner_a"], role=UserRole.OWNER)
    rider = CallerIdentity(user_id=seeded_parties["spare_rider_a"], role=UserRole.RIDER)

    order = engine.create_order(
        owner,
        org_id=seeded_parties["org_a"],
        package_description="Cake",
        customer_id=seeded_parties["customer"],
    )
    accepted = engine.rider_accept(order.id, rider, "Bakery")

    stored = SqlAlchemyOrderRepository(db_session).get_order_snapshot(order.id)
    assert accepted.status == OrderStatus.RIDER_ACCEPTED
    assert stored.status == OrderStatus.RIDER_ACCEPTED
    assert stored.rider_id == rider.user_id
    assert stored.rider_accepted_at is not None


def test_audit_sink_writes_one_row_per_entry(db_session, session_factory):
    sink = SqlAlchemyAuditSink(session_factory)

    sink.record(
        AuditEntry(
            order_id="not-a-real-order",
            actor_id="someone",
            action="cancel",
            outcome=AuditOutcome.REJECTED,
            error_kind="forbidden",
            detail="Not a party to this order; cannot cancel",
            payload={"cancellation_reason": "Changed my mind"},
            created_at=now_utc(),
        )
    )

    rows = db_session.scalars(select(OrderAuditRecord)).all()
    assert len(rows) == 1
    assert rows[0].outcome == AuditOutcome.REJECTED
    assert rows[0].error_kind == "forbidden"
    assert rows[0].prior_status is None
    assert rows[0].payload == {"cancellation_reason": "Changed my mind"}
