"""Best-effort fan-out of lifecycle events to notifications and audit.

Sinks run on a thread pool after the order write has committed. A sink
failure is logged and counted, never raised: the caller's result is already
decided by the time a sink runs.
"""

from __future__ import annotations

import logging
from concurrent.futures import Executor, Future, ThreadPoolExecutor, wait
from threading import Lock
from typing import Any, Callable, Protocol

from app.integrations.audit import AuditSink
from app.integrations.notifications import NotificationDispatcher
from app.observability import log_event, metrics_store
from app.schemas.events import AuditEntry, LifecycleEvent


class LifecycleEventPublisher(Protocol):
    def publish(self, event: LifecycleEvent, details: dict[str, Any] | None = None) -> None: ...

    def record_attempt(self, entry: AuditEntry) -> None: ...


class InlineExecutor(Executor):
    """Runs submitted work on the calling thread; handy for scripts and tests."""

    def submit(self, fn: Callable[..., Any], /, *args: Any, **kwargs: Any) -> Future:
        future: Future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except BaseException as exc:
            future.set_exception(exc)
        return future


class LifecycleEventDispatcher:
    def __init__(
        self,
        notifier: NotificationDispatcher,
        audit_sink: AuditSink,
        executor: Executor | None = None,
        max_workers: int = 4,
    ) -> None:
        self.notifier = notifier
        self.audit_sink = audit_sink
        self._executor = executor or ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="lifecycle-events"
        )
        self._pending: set[Future] = set()
        self._pending_lock = Lock()

    def publish(self, event: LifecycleEvent, details: dict[str, Any] | None = None) -> None:
        """Notify the parties and audit the transition; `details` only reaches the audit row."""
        self._submit("notification", self.notifier.dispatch, event, str(event.order_id))
        entry = AuditEntry.applied(event, details)
        self._submit("audit", self.audit_sink.record, entry, event.order_id)

    def record_attempt(self, entry: AuditEntry) -> None:
        self._submit("audit", self.audit_sink.record, entry, entry.order_id)

    def wait_idle(self, timeout: float | None = 5.0) -> bool:
        """Block until everything submitted so far has finished."""
        with self._pending_lock:
            pending = list(self._pending)
        _, not_done = wait(pending, timeout=timeout)
        return not not_done

    def shutdown(self, wait_for_pending: bool = True) -> None:
        self._executor.shutdown(wait=wait_for_pending)

    def _submit(self, sink: str, fn: Callable[[Any], None], item: Any, order_id: Any) -> None:
        try:
            future = self._executor.submit(self._run_isolated, sink, fn, item, str(order_id))
        except RuntimeError:
            # Executor already shut down (process is stopping).
            log_event(
                f"{sink}_dropped_after_shutdown",
                order_id=str(order_id),
                level=logging.WARNING,
            )
            return
        with self._pending_lock:
            self._pending.add(future)
        future.add_done_callback(self._forget)

    def _forget(self, future: Future) -> None:
        with self._pending_lock:
            self._pending.discard(future)

    @staticmethod
    def _run_isolated(sink: str, fn: Callable[[Any], None], item: Any, order_id: str) -> None:
        try:
            fn(item)
        except Exception:
            metrics_store.increment("lifecycle_side_effect_failures_total")
            log_event(
                f"{sink}_side_effect_failed",
                order_id=order_id,
                level=logging.WARNING,
                exc_info=True,
            )
