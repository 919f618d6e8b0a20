import threading

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

import app.models  # noqa: F401
from app.config import settings
from app.db.base import Base
from app.db.session import engine as app_engine
from app.db.session import get_db
from app.dependencies import get_event_dispatcher
from app.integrations.audit import SqlAlchemyAuditSink
from app.main import app
from app.models.organization import Organization, OrganizationMembership
from app.models.user import User, UserRole
from app.observability import metrics_store
from app.schemas.events import LifecycleEvent
from app.services.lifecycle_events import InlineExecutor, LifecycleEventDispatcher


class RecordingNotifier:
    def __init__(self) -> None:
        self.sent: list[LifecycleEvent] = []

    def dispatch(self, event: LifecycleEvent) -> None:
        self.sent.append(event)


@pytest.fixture(scope="session", autouse=True)
def setup_test_schema():
    Base.metadata.drop_all(bind=app_engine)
    Base.metadata.create_all(bind=app_engine)
    yield
    Base.metadata.drop_all(bind=app_engine)


@pytest.fixture(autouse=True)
def reset_db():
    Base.metadata.drop_all(bind=app_engine)
    Base.metadata.create_all(bind=app_engine)
    yield


@pytest.fixture(autouse=True)
def reset_metrics_store():
    metrics_store.reset()
    yield


@pytest.fixture
def session_factory():
    return sessionmaker(autocommit=False, autoflush=False, bind=app_engine)


@pytest.fixture
def db_session(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def event_dispatcher(notifier, session_factory):
    dispatcher = LifecycleEventDispatcher(
        notifier=notifier,
        audit_sink=SqlAlchemyAuditSink(session_factory),
        executor=InlineExecutor(),
    )
    yield dispatcher
    dispatcher.shutdown()


@pytest.fixture
def client(db_session, session_factory, event_dispatcher):
    db_session_lock = threading.Lock()

    def override_get_db():
        if db_session_lock.acquire(blocking=False):
            try:
                yield db_session
            finally:
                db_session_lock.release()
            return

        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_event_dispatcher] = lambda: event_dispatcher
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture(scope="session", autouse=True)
def enable_test_auth_bypass():
    original = settings.enable_test_auth_bypass
    settings.enable_test_auth_bypass = True
    yield
    settings.enable_test_auth_bypass = original


@pytest.fixture(scope="session", autouse=True)
def enable_testing_mode():
    original = settings.testing
    settings.testing = True
    yield
    settings.testing = original


@pytest.fixture
def seeded_parties(db_session):
    """Two organizations with an owner and a rider each, plus two customers."""

    def add_user(key: str, role: UserRole) -> User:
        user = User(email=f"{key}@example.test", name=key.replace("_", " ").title(), role=role)
        db_session.add(user)
        return user

    users = {
        "owner_a": add_user("owner_a", UserRole.OWNER),
        "rider_a": add_user("rider_a", UserRole.RIDER),
        "spare_rider_a": add_user("spare_rider_a", UserRole.RIDER),
        "owner_b": add_user("owner_b", UserRole.OWNER),
        "rider_b": add_user("rider_b", UserRole.RIDER),
        "customer": add_user("customer", UserRole.CUSTOMER),
        "other_customer": add_user("other_customer", UserRole.CUSTOMER),
    }
    db_session.flush()

    org_a = Organization(name="Harbour Couriers", owner_user_id=users["owner_a"].id)
    org_b = Organization(name="Hilltop Express", owner_user_id=users["owner_b"].id)
    db_session.add_all([org_a, org_b])
    db_session.flush()

    memberships = [
        ("owner_a", org_a, UserRole.OWNER),
        ("rider_a", org_a, UserRole.RIDER),
        ("spare_rider_a", org_a, UserRole.RIDER),
        ("owner_b", org_b, UserRole.OWNER),
        ("rider_b", org_b, UserRole.RIDER),
    ]
    for key, org, role in memberships:
        db_session.add(OrganizationMembership(user_id=users[key].id, org_id=org.id, role=role))
    db_session.commit()

    ids = {key: user.id for key, user in users.items()}
    ids["org_a"] = org_a.id
    ids["org_b"] = org_b.id
    return ids
