"""Scheduler service - main orchestrator.

Manifesto:
    The SchedulerService keeps two views of every schedule in step: the
    durable row in the schedule store and the live registration in the
    timer engine. Every mutation goes through a compensating operation, so
    a half-applied change is undone rather than left behind, and a restart
    rebuilds the live side from the durable one.

Tags:
    cronspine, scheduling, orchestrator, saga, recovery, service

Doc-Types:
    api-reference, architecture-diagram


┌──────────────────────────────────────────────────────────────────────────────┐
│  SCHEDULER SERVICE ARCHITECTURE                                               │
│                                                                               │
│  ┌────────────────────────────────────────────────────────────────────┐      │
│  │                    SchedulerService                                │      │
│  │                                                                    │      │
│  │   ┌─────────────────┐  ┌─────────────────┐  ┌─────────────────┐  │      │
│  │   │  ScheduleStore  │  │  TimerEngine    │  │  Submitter      │  │      │
│  │   │  (durable)      │  │  (live)         │  │  (execution)    │  │      │
│  │   └────────┬────────┘  └────────┬────────┘  └────────┬────────┘  │      │
│  │            │                    │                    │           │      │
│  │            ▼                    ▼                    ▼           │      │
│  │   ┌────────────────────────────────────────────────────────────┐ │      │
│  │   │  schedule   → CreateScheduleOperation                      │ │      │
│  │   │  reschedule → UpdateScheduleOperation                      │ │      │
│  │   │  unschedule → DeleteScheduleOperation                      │ │      │
│  │   │               (per-ID lock, CompoundOperation rollback)    │ │      │
│  │   └────────────────────────────────────────────────────────────┘ │      │
│  │                                                                    │      │
│  │   HandleRegistry: ScheduleID → ScheduledFunc (lock-guarded)       │      │
│  │                                                                    │      │
│  │   On fire:  trigger_for(type)  → submitter.submit(type)          │      │
│  │             sync_for(id)       → store.sync(id, last, next)       │      │
│  │                                                                    │      │
│  │   On start(recovery=True): recover() replays persisted rows        │      │
│  └────────────────────────────────────────────────────────────────────┘      │
│                                                                               │
│  Lifecycle per schedule:                                                      │
│    Unscheduled → Active → Active(new spec) → Unscheduled (soft-deleted)      │
│    restart:  Active → Persisted-only → Active                                 │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from cronspine.core.errors import HandleNotFoundError, ValidationError
from cronspine.core.logging import LogContext, get_logger
from cronspine.core.models.scheduler import (
    ScheduleID,
    WorkflowSchedule,
    WorkflowScheduleProps,
    WorkflowType,
    new_schedule_id,
    parse_workflow_type,
)
from cronspine.core.scheduling.cron import validate_spec
from cronspine.core.scheduling.operation import (
    CompoundOperation,
    CreateScheduleOperation,
    DeleteScheduleOperation,
    UpdateScheduleOperation,
)
from cronspine.core.scheduling.protocol import (
    Hook,
    Job,
    ScheduleOptions,
    TimerEngine,
    WorkflowSubmitter,
)
from cronspine.core.scheduling.registry import HandleRegistry, KeyedLock
from cronspine.core.scheduling.repository import ScheduleStore

if TYPE_CHECKING:
    from cronspine.core.settings import SchedulerSettings

logger = get_logger(__name__)


@dataclass
class SchedulerStats:
    """Counters for fired triggers and recovery."""

    submitted: int = 0
    submit_failures: int = 0
    synced: int = 0
    sync_failures: int = 0
    recovered: int = 0
    recover_failures: int = 0
    last_fire: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "submitted": self.submitted,
            "submit_failures": self.submit_failures,
            "synced": self.synced,
            "sync_failures": self.sync_failures,
            "recovered": self.recovered,
            "recover_failures": self.recover_failures,
            "last_fire": self.last_fire.isoformat() if self.last_fire else None,
        }


class SchedulerService:
    """Keeps the schedule store and the timer engine consistent.

    Example:
        >>> store = ScheduleStore(create_cronspine_engine("sqlite://"))
        >>> store.create_tables()
        >>> service = SchedulerService(store, APSchedulerEngine(), registry)
        >>> service.start(recovery=True)
        >>> sid = service.schedule(WorkflowScheduleProps(
        ...     workflow_type=WorkflowType.SCREENSHOT, spec="0 0 * * MON",
        ... ))
        >>> service.reschedule(sid, WorkflowScheduleProps(spec="0 0 * * FRI"))
        >>> service.unschedule(sid)
        >>> service.stop()
    """

    def __init__(
        self,
        store: ScheduleStore,
        engine: TimerEngine,
        submitter: WorkflowSubmitter,
    ) -> None:
        """Initialize scheduler service.

        Args:
            store: Durable schedule store
            engine: Live timer engine
            submitter: Starts workflow executions when a schedule fires
        """
        self.store = store
        self.engine = engine
        self.submitter = submitter
        self.handles = HandleRegistry()

        self._locks: KeyedLock[ScheduleID] = KeyedLock()
        self._stats = SchedulerStats()
        self._stats_lock = threading.Lock()
        self._running = False

    # === Lifecycle ===

    def start(self, recovery: bool = False) -> int:
        """Start the timer engine; with *recovery*, replay persisted schedules.

        Returns:
            Number of schedules re-registered by recovery (0 without it)
        """
        if not self._running:
            self.engine.start()
            self._running = True
            logger.info("scheduler_started", recovery=recovery)

        if recovery:
            return self.recover()
        return 0

    def stop(self) -> None:
        """Stop the timer engine and forget every live handle.

        The engine discards its registrations; rows stay in the store and
        come back with ``start(recovery=True)``.
        """
        self.engine.stop()
        self.handles.clear()
        self._running = False
        logger.info("scheduler_stopped")

    @property
    def is_running(self) -> bool:
        return self._running

    # === Mutations ===

    @staticmethod
    def _validated(props: WorkflowScheduleProps) -> WorkflowScheduleProps:
        if props.workflow_type is None:
            raise ValidationError("workflow_type is required")
        return WorkflowScheduleProps(
            workflow_type=parse_workflow_type(props.workflow_type),
            spec=validate_spec(props.spec),
            about=props.about,
        )

    def schedule(self, props: WorkflowScheduleProps) -> ScheduleID:
        """Persist and register a new schedule. Returns its new ID."""
        props = self._validated(props)
        schedule_id = new_schedule_id()

        with self._locks.hold(schedule_id), LogContext(
            schedule_id=str(schedule_id), operation="schedule"
        ):
            CompoundOperation([CreateScheduleOperation(self, schedule_id, props)]).execute()
        return schedule_id

    def unschedule(self, schedule_id: ScheduleID) -> None:
        """Soft-delete the row and remove the live registration.

        A persisted-only schedule (one ``recover`` skipped) is still
        soft-deleted; ``HandleNotFoundError`` is raised afterwards.

        Raises:
            ScheduleNotFoundError: no live row
            HandleNotFoundError: no live handle
        """
        with self._locks.hold(schedule_id), LogContext(
            schedule_id=str(schedule_id), operation="unschedule"
        ):
            CompoundOperation([DeleteScheduleOperation(self, schedule_id)]).execute()

    def reschedule(self, schedule_id: ScheduleID, props: WorkflowScheduleProps) -> ScheduleID:
        """Change a schedule. Fields left ``None`` keep their persisted value."""
        with self._locks.hold(schedule_id), LogContext(
            schedule_id=str(schedule_id), operation="reschedule"
        ):
            current = self.store.get_schedule(schedule_id)
            merged = self._validated(props.merged_with(current.props()))
            CompoundOperation([UpdateScheduleOperation(self, schedule_id, merged)]).execute()
        return schedule_id

    # === Reads ===

    def get(self, schedule_id: ScheduleID) -> WorkflowSchedule:
        """Return the persisted schedule, if it is also live.

        Raises:
            HandleNotFoundError: not registered in this process
            ScheduleNotFoundError: no live row
        """
        handle = self.handles.get(schedule_id)
        if handle is None:
            raise HandleNotFoundError("scheduled function not found").with_context(
                schedule_id=schedule_id
            )
        self.engine.get(handle.handle_id)
        return self.store.get_schedule(schedule_id)

    def list(
        self,
        limit: int | None = None,
        offset: int | None = None,
        workflow_type: WorkflowType | None = None,
    ) -> list[WorkflowSchedule]:
        """Persisted schedules, newest first. Never raises NotFound."""
        return self.store.list_scheduled_workflows(limit, offset, workflow_type)

    # === Recovery ===

    def recover(self) -> int:
        """Re-register every persisted schedule that is not live yet.

        Schedules that fail to register are logged and skipped. Safe to call
        repeatedly: live IDs are never registered twice.

        "Live" means present in ``handles``. Clearing ``handles`` while the
        engine keeps its jobs orphans those jobs, and recovery registers a
        second one per schedule, so each fire submits twice. Use ``stop()``
        (which empties the engine too) before recovering in-process.

        Returns:
            Number of schedules registered by this call
        """
        schedules = self.store.list_scheduled_workflows()
        recovered = 0
        skipped = 0

        for schedule in schedules:
            with self._locks.hold(schedule.id):
                if schedule.id in self.handles:
                    continue
                try:
                    handle = self.engine.schedule(
                        self.trigger_for(schedule.workflow_type),
                        ScheduleOptions(spec=schedule.spec, hooks=(self.sync_for(schedule.id),)),
                    )
                except Exception:
                    skipped += 1
                    logger.exception(
                        "schedule_recovery_failed",
                        schedule_id=str(schedule.id),
                        workflow_type=schedule.workflow_type.value,
                        spec=schedule.spec,
                    )
                    continue
                self.handles.put(schedule.id, handle)
                recovered += 1

        with self._stats_lock:
            self._stats.recovered += recovered
            self._stats.recover_failures += skipped
        logger.info(
            "schedules_recovered",
            persisted=len(schedules),
            recovered=recovered,
            failed=skipped,
            live=len(self.handles),
        )
        return recovered

    # === Engine callbacks ===

    def trigger_for(self, workflow_type: WorkflowType) -> Job:
        """Closure fired by the engine: submit one *workflow_type* execution."""

        def trigger() -> None:
            try:
                job_id = self.submitter.submit(workflow_type)
            except Exception:
                with self._stats_lock:
                    self._stats.submit_failures += 1
                logger.exception("workflow_submit_failed", workflow_type=workflow_type.value)
                return
            with self._stats_lock:
                self._stats.submitted += 1
                self._stats.last_fire = datetime.now(UTC)
            logger.debug("workflow_triggered", workflow_type=workflow_type.value, job_id=job_id)

        return trigger

    def sync_for(self, schedule_id: ScheduleID) -> Hook:
        """Hook run after each fire: persist the handle's last/next run."""

        def sync() -> None:
            handle = self.handles.get(schedule_id)
            if handle is None:
                logger.error("scheduled_function_not_found", schedule_id=str(schedule_id))
                return
            try:
                fresh = self.engine.get(handle.handle_id)
                self.store.sync(schedule_id, fresh.last_run, fresh.next_run)
            except Exception:
                with self._stats_lock:
                    self._stats.sync_failures += 1
                logger.exception("schedule_sync_failed", schedule_id=str(schedule_id))
                return
            with self._stats_lock:
                self._stats.synced += 1

        return sync

    # === Introspection ===

    def get_stats(self) -> SchedulerStats:
        with self._stats_lock:
            return SchedulerStats(**vars(self._stats))

    def health(self) -> dict[str, Any]:
        engine_health = self.engine.health() if hasattr(self.engine, "health") else {}
        return {
            "healthy": self._running,
            "live_schedules": len(self.handles),
            "engine": engine_health,
            "stats": self.get_stats().to_dict(),
        }


def create_scheduler(
    settings: SchedulerSettings,
    submitter: WorkflowSubmitter,
    engine: TimerEngine | None = None,
) -> SchedulerService:
    """Wire store, engine and service from settings.

    Creates the schedule table if missing. Pass *engine* to replace the
    APScheduler engine (tests).
    """
    from cronspine.core.orm.session import create_cronspine_engine
    from cronspine.core.scheduling.apscheduler_backend import APSchedulerEngine

    url = settings.resolved_database_url
    if settings.database_url is None:
        settings.data_dir.mkdir(parents=True, exist_ok=True)

    db = create_cronspine_engine(
        url,
        echo=settings.echo_sql,
        statement_timeout_seconds=settings.statement_timeout_seconds,
    )
    store = ScheduleStore(db)
    store.create_tables()

    if engine is None:
        engine = APSchedulerEngine(
            timezone=settings.timezone,
            max_workers=settings.max_workers,
            misfire_grace_seconds=settings.misfire_grace_seconds,
        )
    return SchedulerService(store, engine, submitter)


__all__ = ["SchedulerStats", "SchedulerService", "create_scheduler"]
