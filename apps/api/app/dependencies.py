from threading import Lock

from fastapi import Depends
from sqlalchemy.orm import Session

from app.config import settings
from app.db.session import SessionLocal, get_db
from app.integrations.audit import SqlAlchemyAuditSink
from app.integrations.notifications import get_notification_dispatcher
from app.repositories.orders import SqlAlchemyOrderRepository
from app.repositories.organizations import SqlAlchemyOrganizationDirectory
from app.services.lifecycle_events import LifecycleEventDispatcher, LifecycleEventPublisher
from app.services.orders_service import OrderLifecycleEngine

_dispatcher: LifecycleEventDispatcher | None = None
_dispatcher_lock = Lock()


def get_event_dispatcher() -> LifecycleEventPublisher:
    global _dispatcher
    with _dispatcher_lock:
        if _dispatcher is None:
            _dispatcher = LifecycleEventDispatcher(
                notifier=get_notification_dispatcher(),
                audit_sink=SqlAlchemyAuditSink(SessionLocal),
                max_workers=settings.lifecycle_event_workers,
            )
        return _dispatcher


def shutdown_event_dispatcher() -> None:
    global _dispatcher
    with _dispatcher_lock:
        dispatcher, _dispatcher = _dispatcher, None
    if dispatcher is not None:
        dispatcher.shutdown(wait_for_pending=True)


def get_order_engine(
    db: Session = Depends(get_db),
    events: LifecycleEventPublisher = Depends(get_event_dispatcher),
) -> OrderLifecycleEngine:
    return OrderLifecycleEngine(
        repository=SqlAlchemyOrderRepository(db),
        directory=SqlAlchemyOrganizationDirectory(db),
        events=events,
    )
