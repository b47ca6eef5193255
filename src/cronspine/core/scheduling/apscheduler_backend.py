"""APScheduler-based timer engine.

Wraps APScheduler 3.x ``BackgroundScheduler`` to provide the
``TimerEngine`` protocol: cron-triggered jobs, each behind an
engine-owned handle id, with post-fire hooks.

Every registration is an APScheduler job whose id is the handle id and
whose function is ``APSchedulerEngine._fire(handle_id)``. The callable,
options and fire timestamps live in an engine-side table, so ``update``
can swap them under the same handle and ``get`` works before ``start``.

Job defaults:
    - ``max_instances=1``: no two concurrent fires of one handle
    - ``coalesce=True``: a backlog of missed fires runs once
    - ``misfire_grace_time``: configurable lateness tolerance

.. note::

    Live registrations are not durable. ``stop()`` discards them all;
    the schedule store plus ``SchedulerService.recover()`` rebuild them.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4
from zoneinfo import ZoneInfo

from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler

from cronspine.core.errors import EngineError, HandleNotFoundError
from cronspine.core.logging import get_logger
from cronspine.core.models.scheduler import ScheduledFunc
from cronspine.core.scheduling.cron import CronSpecTrigger
from cronspine.core.scheduling.protocol import Job, ScheduleOptions

logger = get_logger(__name__)


@dataclass
class _Registration:
    fn: Job
    opts: ScheduleOptions
    trigger: CronSpecTrigger
    last_run: datetime | None = None
    next_run: datetime | None = None
    fires: int = 0
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def snapshot(self, handle_id: str) -> ScheduledFunc:
        return ScheduledFunc(
            handle_id=handle_id,
            spec=self.opts.spec,
            last_run=self.last_run,
            next_run=self.next_run,
        )


class APSchedulerEngine:
    """``TimerEngine`` backed by an APScheduler ``BackgroundScheduler``.

    Example::

        >>> engine = APSchedulerEngine(timezone="UTC")
        >>> engine.start()
        >>> handle = engine.schedule(lambda: print("tick"), ScheduleOptions(spec="*/5 * * * *"))
        >>> engine.get(handle.handle_id).next_run
        >>> # … later …
        >>> engine.stop()
    """

    name: str = "apscheduler"

    def __init__(
        self,
        timezone: str = "UTC",
        max_workers: int = 10,
        misfire_grace_seconds: int = 60,
    ) -> None:
        self._timezone = ZoneInfo(timezone)
        self._max_workers = max_workers
        self._misfire_grace_seconds = misfire_grace_seconds
        self._lock = threading.Lock()
        self._registrations: dict[str, _Registration] = {}
        self._scheduler = self._build_scheduler()

    def _build_scheduler(self) -> BackgroundScheduler:
        return BackgroundScheduler(
            executors={"default": ThreadPoolExecutor(self._max_workers)},
            job_defaults={
                "coalesce": True,
                "max_instances": 1,
                "misfire_grace_time": self._misfire_grace_seconds,
            },
            timezone=self._timezone,
        )

    def _now(self) -> datetime:
        return datetime.now(UTC)

    def _trigger(self, spec: str) -> CronSpecTrigger:
        return CronSpecTrigger(spec, self._timezone)

    def _registration(self, handle_id: str) -> _Registration:
        with self._lock:
            reg = self._registrations.get(handle_id)
        if reg is None:
            raise HandleNotFoundError("handle not found").with_context(handle_id=handle_id)
        return reg

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._scheduler.running

    def start(self) -> None:
        """Start firing. A no-op when already running."""
        if self._scheduler.running:
            return
        try:
            self._scheduler.start()
        except Exception as exc:
            raise EngineError("failed to start timer engine", cause=exc) from exc
        logger.info("timer_engine_started", backend=self.name, handles=len(self._registrations))

    def stop(self) -> None:
        """Stop firing and discard every registration.

        Waits for in-flight fires to finish. The engine can be started again
        afterwards with an empty registration table.
        """
        if self._scheduler.running:
            self._scheduler.shutdown(wait=True)
        with self._lock:
            discarded = len(self._registrations)
            self._registrations.clear()
        self._scheduler = self._build_scheduler()
        logger.info("timer_engine_stopped", backend=self.name, discarded=discarded)

    # ------------------------------------------------------------------
    # TimerEngine protocol
    # ------------------------------------------------------------------

    def schedule(self, fn: Job, opts: ScheduleOptions) -> ScheduledFunc:
        trigger = self._trigger(opts.spec)
        handle_id = uuid4().hex
        reg = _Registration(
            fn=fn,
            opts=opts,
            trigger=trigger,
            next_run=trigger.get_next_fire_time(None, self._now()),
        )
        with self._lock:
            self._registrations[handle_id] = reg
        try:
            self._scheduler.add_job(
                self._fire,
                trigger=trigger,
                args=[handle_id],
                id=handle_id,
                name=f"cronspine:{opts.spec}",
            )
        except Exception as exc:
            with self._lock:
                self._registrations.pop(handle_id, None)
            raise EngineError("failed to register job", cause=exc).with_context(
                handle_id=handle_id, spec=opts.spec
            ) from exc

        logger.debug("timer_job_added", handle_id=handle_id, spec=opts.spec)
        return reg.snapshot(handle_id)

    def update(self, handle_id: str, fn: Job, opts: ScheduleOptions) -> ScheduledFunc:
        """Swap callable, spec and hooks behind an existing handle id."""
        trigger = self._trigger(opts.spec)
        reg = self._registration(handle_id)
        try:
            self._scheduler.reschedule_job(handle_id, trigger=trigger)
        except JobLookupError as exc:
            raise HandleNotFoundError("handle not found", cause=exc).with_context(
                handle_id=handle_id
            ) from exc
        except Exception as exc:
            raise EngineError("failed to update job", cause=exc).with_context(
                handle_id=handle_id, spec=opts.spec
            ) from exc

        with reg.lock:
            reg.fn = fn
            reg.opts = opts
            reg.trigger = trigger
            reg.next_run = trigger.get_next_fire_time(None, self._now())
            snapshot = reg.snapshot(handle_id)

        logger.debug("timer_job_updated", handle_id=handle_id, spec=opts.spec)
        return snapshot

    def delete(self, handle_id: str) -> None:
        self._registration(handle_id)
        try:
            self._scheduler.remove_job(handle_id)
        except JobLookupError as exc:
            raise HandleNotFoundError("handle not found", cause=exc).with_context(
                handle_id=handle_id
            ) from exc
        except Exception as exc:
            raise EngineError("failed to remove job", cause=exc).with_context(
                handle_id=handle_id
            ) from exc
        with self._lock:
            self._registrations.pop(handle_id, None)
        logger.debug("timer_job_removed", handle_id=handle_id)

    def get(self, handle_id: str) -> ScheduledFunc:
        reg = self._registration(handle_id)
        with reg.lock:
            return reg.snapshot(handle_id)

    # ------------------------------------------------------------------
    # Firing
    # ------------------------------------------------------------------

    def _fire(self, handle_id: str) -> None:
        """Run one fire: the job, then its hooks in order.

        Exceptions from the job or any hook are logged and contained.
        """
        with self._lock:
            reg = self._registrations.get(handle_id)
        if reg is None:
            logger.warning("timer_fire_for_unknown_handle", handle_id=handle_id)
            return

        with reg.lock:
            fn, opts, trigger = reg.fn, reg.opts, reg.trigger

        try:
            fn()
        except Exception:
            logger.exception("timer_job_failed", handle_id=handle_id, spec=opts.spec)

        now = self._now()
        with reg.lock:
            reg.fires += 1
            reg.last_run = now
            reg.next_run = trigger.get_next_fire_time(now, now)

        for hook in opts.hooks:
            try:
                hook()
            except Exception:
                logger.exception("timer_hook_failed", handle_id=handle_id, spec=opts.spec)

    def fire_now(self, handle_id: str) -> None:
        """Run a registration synchronously, outside the schedule."""
        self._registration(handle_id)
        self._fire(handle_id)

    def health(self) -> dict[str, Any]:
        """Return engine health status."""
        with self._lock:
            handles = len(self._registrations)
            fires = sum(r.fires for r in self._registrations.values())
        return {
            "healthy": self._scheduler.running,
            "backend": self.name,
            "handles": handles,
            "fires": fires,
            "timezone": str(self._timezone),
        }


__all__ = ["APSchedulerEngine"]