"""Schedule store - durable CRUD with soft delete.

Manifesto:
    The store is the durable half of every schedule. It is the source that
    ``recover()`` replays after a restart, so a row is never physically
    removed: unscheduling stamps ``deleted_at`` and every read filters it.
    A compensating rollback can then revive the exact row it removed.

Tags:
    cronspine, scheduling, repository, CRUD, soft-delete, sqlalchemy

Doc-Types:
    api-reference, architecture-diagram


┌──────────────────────────────────────────────────────────────────────────────┐
│  SCHEDULE STORE                                                               │
│                                                                               │
│  ┌────────────────────────────────────────────────────────────────────┐      │
│  │                        ScheduleStore                               │      │
│  │                                                                    │      │
│  │   Writes:                                                          │      │
│  │   ├── create_schedule_with_id(id, props) → id   (upsert/revive)    │      │
│  │   ├── create_schedule(props) → id                                  │      │
│  │   ├── update_schedule(id, props)                                   │      │
│  │   ├── delete_schedule(id)                       (soft delete)      │      │
│  │   └── sync(id, last_run, next_run)                                 │      │
│  │                                                                    │      │
│  │   Reads (deleted_at IS NULL):                                      │      │
│  │   ├── get_schedule(id) → WorkflowSchedule                          │      │
│  │   └── list_scheduled_workflows(limit, offset, type) → list         │      │
│  └────────────────────────────────────────────────────────────────────┘      │
│                                                                               │
│  Errors:                                                                      │
│  - ScheduleNotFoundError: row absent or soft-deleted                          │
│  - PersistenceError: any SQLAlchemy failure (cause chained)                   │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from cronspine.core.errors import (
    PersistenceError,
    ScheduleNotFoundError,
    ValidationError,
)
from cronspine.core.logging import get_logger
from cronspine.core.models.scheduler import (
    ScheduleID,
    WorkflowSchedule,
    WorkflowScheduleProps,
    WorkflowType,
    new_schedule_id,
)
from cronspine.core.orm.base import (
    CronspineBase,
    from_naive_utc,
    to_naive_utc,
    utcnow_naive,
)
from cronspine.core.orm.session import cronspine_session_factory
from cronspine.core.orm.tables.scheduling import WorkflowScheduleTable

logger = get_logger(__name__)


def _require_complete(props: WorkflowScheduleProps) -> tuple[WorkflowType, str]:
    if props.workflow_type is None:
        raise ValidationError("workflow_type is required")
    if not props.spec:
        raise ValidationError("spec is required")
    return props.workflow_type, props.spec


def _row_to_schedule(row: WorkflowScheduleTable) -> WorkflowSchedule:
    return WorkflowSchedule(
        id=ScheduleID(row.id),
        workflow_type=WorkflowType(row.workflow_type),
        spec=row.spec,
        about=row.about,
        last_run=from_naive_utc(row.last_run),
        next_run=from_naive_utc(row.next_run),
        created_at=from_naive_utc(row.created_at),
        updated_at=from_naive_utc(row.updated_at),
        deleted_at=from_naive_utc(row.deleted_at),
    )


class ScheduleStore:
    """SQLAlchemy-backed store for ``workflow_schedules``.

    Example:
        >>> engine = create_cronspine_engine("sqlite://")
        >>> store = ScheduleStore(engine)
        >>> store.create_tables()
        >>> sid = store.create_schedule(WorkflowScheduleProps(
        ...     workflow_type=WorkflowType.SCREENSHOT, spec="0 0 * * MON",
        ... ))
        >>> store.get_schedule(sid).spec
        '0 0 * * MON'
    """

    def __init__(
        self,
        engine: Engine,
        session_factory: sessionmaker[Session] | None = None,
        clock: Callable[[], datetime] = utcnow_naive,
    ) -> None:
        """Initialize the store.

        Args:
            engine: Bound SQLAlchemy engine
            session_factory: Defaults to ``cronspine_session_factory(engine)``
            clock: Source of naive-UTC timestamps for created/updated/deleted
        """
        self.engine = engine
        self._sessions = session_factory or cronspine_session_factory(engine)
        self._clock = clock

    def create_tables(self) -> None:
        """Create ``workflow_schedules`` if it does not exist."""
        try:
            CronspineBase.metadata.create_all(
                self.engine, tables=[WorkflowScheduleTable.__table__]
            )
        except SQLAlchemyError as exc:
            raise PersistenceError("failed to create schedule tables", cause=exc) from exc

    @contextmanager
    def _transaction(
        self, operation: str, schedule_id: ScheduleID | None = None
    ) -> Iterator[Session]:
        try:
            with self._sessions() as session, session.begin():
                yield session
        except SQLAlchemyError as exc:
            raise PersistenceError(
                f"schedule store {operation} failed", cause=exc
            ).with_context(operation=operation, schedule_id=schedule_id) from exc

    @staticmethod
    def _live_row(
        session: Session, schedule_id: ScheduleID, operation: str
    ) -> WorkflowScheduleTable:
        row = session.get(WorkflowScheduleTable, str(schedule_id))
        if row is None or row.deleted_at is not None:
            raise ScheduleNotFoundError("schedule not found").with_context(
                schedule_id=schedule_id, operation=operation
            )
        return row

    # === Writes ===

    def create_schedule_with_id(
        self, schedule_id: ScheduleID, props: WorkflowScheduleProps
    ) -> ScheduleID:
        """Insert the row, or overwrite/revive an existing row with this id."""
        workflow_type, spec = _require_complete(props)
        now = self._clock()
        with self._transaction("create", schedule_id) as session:
            row = session.get(WorkflowScheduleTable, str(schedule_id))
            if row is None:
                session.add(
                    WorkflowScheduleTable(
                        id=str(schedule_id),
                        workflow_type=workflow_type.value,
                        spec=spec,
                        about=props.about,
                        created_at=now,
                        updated_at=now,
                    )
                )
                revived = False
            else:
                revived = row.deleted_at is not None
                row.workflow_type = workflow_type.value
                row.spec = spec
                row.about = props.about
                row.deleted_at = None
                row.updated_at = now

        logger.debug(
            "schedule_row_written",
            schedule_id=str(schedule_id),
            workflow_type=workflow_type.value,
            spec=spec,
            revived=revived,
        )
        return schedule_id

    def create_schedule(self, props: WorkflowScheduleProps) -> ScheduleID:
        """Allocate a new id and insert the row."""
        return self.create_schedule_with_id(new_schedule_id(), props)

    def update_schedule(self, schedule_id: ScheduleID, props: WorkflowScheduleProps) -> None:
        """Overwrite type/spec/about of a live row and bump ``updated_at``."""
        workflow_type, spec = _require_complete(props)
        with self._transaction("update", schedule_id) as session:
            row = self._live_row(session, schedule_id, "update")
            row.workflow_type = workflow_type.value
            row.spec = spec
            row.about = props.about
            row.updated_at = self._clock()

    def delete_schedule(self, schedule_id: ScheduleID) -> None:
        """Soft delete: stamp ``deleted_at``. Rows are never removed."""
        with self._transaction("delete", schedule_id) as session:
            row = self._live_row(session, schedule_id, "delete")
            now = self._clock()
            row.deleted_at = now
            row.updated_at = now

    def sync(
        self,
        schedule_id: ScheduleID,
        last_run: datetime | None,
        next_run: datetime | None,
    ) -> None:
        """Persist fire timestamps; ``None`` is stored as NULL."""
        with self._transaction("sync", schedule_id) as session:
            row = self._live_row(session, schedule_id, "sync")
            row.last_run = to_naive_utc(last_run)
            row.next_run = to_naive_utc(next_run)

    # === Reads ===

    def get_schedule(self, schedule_id: ScheduleID) -> WorkflowSchedule:
        """Return the live row, or raise ScheduleNotFoundError."""
        with self._transaction("get", schedule_id) as session:
            return _row_to_schedule(self._live_row(session, schedule_id, "get"))

    def list_scheduled_workflows(
        self,
        limit: int | None = None,
        offset: int | None = None,
        workflow_type: WorkflowType | None = None,
    ) -> list[WorkflowSchedule]:
        """List live rows, newest first. ``None`` limit/offset mean unbounded."""
        if limit is not None and limit < 0:
            raise ValidationError("limit must be >= 0")
        if offset is not None and offset < 0:
            raise ValidationError("offset must be >= 0")

        stmt = (
            select(WorkflowScheduleTable)
            .where(WorkflowScheduleTable.deleted_at.is_(None))
            .order_by(WorkflowScheduleTable.created_at.desc(), WorkflowScheduleTable.id)
        )
        if workflow_type is not None:
            stmt = stmt.where(WorkflowScheduleTable.workflow_type == workflow_type.value)
        if limit is not None:
            stmt = stmt.limit(limit)
        if offset is not None:
            stmt = stmt.offset(offset)

        with self._transaction("list") as session:
            return [_row_to_schedule(row) for row in session.scalars(stmt)]


__all__ = ["ScheduleStore"]
