from typing import Callable, Protocol

from sqlalchemy.orm import Session

from app.models.order_audit_record import OrderAuditRecord
from app.schemas.events import AuditEntry


class AuditSink(Protocol):
    def record(self, entry: AuditEntry) -> None: ...


class SqlAlchemyAuditSink:
    """Writes audit rows in a session of its own, after the order write committed."""

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self.session_factory = session_factory

    def record(self, entry: AuditEntry) -> None:
        with self.session_factory() as db:
            db.add(
                OrderAuditRecord(
                    order_id=entry.order_id,
                    org_id=entry.org_id,
                    actor_id=entry.actor_id,
                    action=entry.action,
                    outcome=entry.outcome,
                    error_kind=entry.error_kind,
                    prior_status=entry.prior_status.value if entry.prior_status else None,
                    new_status=entry.new_status.value if entry.new_status else None,
                    detail=entry.detail,
                    payload=entry.payload,
                    created_at=entry.created_at,
                )
            )
            db.commit()
