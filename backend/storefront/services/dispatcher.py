# Overview: Background notification dispatcher; queue, worker thread, and per-delivery retry policy.

"""
Notification Dispatcher

WHY: Request handlers must never wait on, or fail because of, SMTP or
webhook endpoints. Handlers enqueue a small job ({"event", "params"}) after
their transaction commits; the worker expands it into deliveries and sends
each one with its own retry/backoff budget.

Modes:
- "thread": daemon worker thread started lazily on first enqueue
- "inline": jobs run immediately in the caller's app context (tests, CLI)

Failures are logged (app logger + NotificationLog) and never raised.
"""
from __future__ import annotations

import queue
import threading
import time

_STOP = object()


class NotificationDispatcher:
    def __init__(self, app=None):
        self.app = None
        self._queue: queue.Queue = queue.Queue()
        self._worker: threading.Thread | None = None
        self._lock = threading.Lock()
        if app is not None:
            self.init_app(app)

    def init_app(self, app) -> None:
        self.app = app
        app.extensions["notification_dispatcher"] = self

    @property
    def mode(self) -> str:
        return self.app.config.get("NOTIFICATION_DISPATCH_MODE", "thread")

    def enqueue(self, event: str, **params) -> None:
        job = {"event": event, "params": params}
        if self.mode == "inline":
            self._run_job_safely(job)
            return
        self._ensure_worker()
        self._queue.put(job)

    def _ensure_worker(self) -> None:
        with self._lock:
            if self._worker is not None and self._worker.is_alive():
                return
            self._worker = threading.Thread(
                target=self._work_loop,
                name="notification-dispatcher",
                daemon=True,
            )
            self._worker.start()

    def _work_loop(self) -> None:
        while True:
            job = self._queue.get()
            try:
                if job is _STOP:
                    return
                with self.app.app_context():
                    self._run_job_safely(job)
            finally:
                self._queue.task_done()

    def shutdown(self, timeout: float = 5.0) -> None:
        """Stop the worker after it drains queued jobs."""
        with self._lock:
            worker = self._worker
            self._worker = None
        if worker is None or not worker.is_alive():
            return
        self._queue.put(_STOP)
        worker.join(timeout)

    def _run_job_safely(self, job: dict) -> None:
        from ..extensions import db

        try:
            self.run_job(job)
        except Exception:
            db.session.rollback()
            self.app.logger.exception("Notification job %s failed", job.get("event"))

    def run_job(self, job: dict) -> list[bool]:
        from . import notification_service

        deliveries = notification_service.expand_event(job["event"], job["params"])
        return [self.deliver_with_retry(d) for d in deliveries]

    def deliver_with_retry(self, delivery) -> bool:
        """
        Send one delivery, retrying ChannelError with exponential backoff.

        Every attempt is logged; returns True once an attempt succeeds.
        Any other exception fails this delivery only (no retry) so the rest
        of the job still goes out.
        """
        from ..extensions import db
        from . import notification_service
        from .channels import ChannelError

        max_attempts = max(int(self.app.config.get("NOTIFICATION_MAX_ATTEMPTS", 3)), 1)
        backoff = float(self.app.config.get("NOTIFICATION_BACKOFF_SECONDS", 1.0))

        for attempt in range(1, max_attempts + 1):
            try:
                notification_service.send(delivery)
            except ChannelError as exc:
                notification_service.log_attempt(delivery, attempt, str(exc))
                self.app.logger.warning(
                    "%s %s delivery to %s failed (attempt %s/%s): %s",
                    delivery.event, delivery.channel, delivery.recipient, attempt, max_attempts, exc,
                )
                if attempt < max_attempts and backoff > 0:
                    time.sleep(backoff * (2 ** (attempt - 1)))
                continue
            except Exception as exc:
                db.session.rollback()
                notification_service.log_attempt(delivery, attempt, f"Unexpected error: {exc}")
                self.app.logger.exception(
                    "%s %s delivery to %s failed unexpectedly",
                    delivery.event, delivery.channel, delivery.recipient,
                )
                return False
            notification_service.log_attempt(delivery, attempt)
            self.app.logger.info("%s %s delivered to %s", delivery.event, delivery.channel, delivery.recipient)
            return True
        return False
