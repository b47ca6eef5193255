"""Compensating operations (sagas) for schedule mutations.

Manifesto:
    Creating, changing or removing a schedule writes to two places that
    share no transaction: the schedule store and the timer engine. Each
    mutation is therefore an ``Operation`` with an explicit ``rollback``.
    When the second write fails the first one is undone; when the undo
    fails too, the schedule is flagged with ``InconsistencyError`` and left
    for an operator.

    - **Single pass:** rollbacks run once, newest first, never retried
    - **Self-compensating steps:** a concrete operation whose engine step
      fails after its store step succeeded undoes its own store step before
      re-raising
    - **Loud failure:** every failed rollback is logged at critical level

Architecture:
    ::

        CompoundOperation([op1, op2, op3]).execute()

            op1.execute() ✓ ──► op2.execute() ✓ ──► op3.execute() ✗
                                                         │
            op1.rollback() ◄── op2.rollback() ◄──────────┘
                                                         │
                                            re-raise op3's error
                         (or InconsistencyError if a rollback failed)

Tags:
    cronspine, scheduling, saga, rollback, compensation, consistency

Doc-Types:
    api-reference, architecture-diagram
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from cronspine.core.errors import (
    HandleNotFoundError,
    InconsistencyError,
    ScheduleNotFoundError,
)
from cronspine.core.logging import get_logger
from cronspine.core.models.scheduler import (
    ScheduledFunc,
    ScheduleID,
    WorkflowScheduleProps,
)
from cronspine.core.scheduling.protocol import ScheduleOptions

if TYPE_CHECKING:
    from cronspine.core.scheduling.service import SchedulerService

logger = get_logger(__name__)


@runtime_checkable
class Operation(Protocol):
    """A reversible step."""

    def execute(self) -> None:
        ...

    def rollback(self) -> None:
        ...


class CompoundOperation:
    """Runs operations in order with single-pass backward rollback.

    On the first failure, every operation that already completed is rolled
    back in reverse order and the original error is re-raised. If any of
    those rollbacks fails the pass stops and ``InconsistencyError`` is raised
    carrying both errors.
    """

    def __init__(self, operations: Iterable[Operation] = ()) -> None:
        self._operations: list[Operation] = list(operations)
        self._executed: list[Operation] = []

    def add(self, operation: Operation) -> CompoundOperation:
        self._operations.append(operation)
        return self

    @property
    def executed(self) -> list[Operation]:
        return list(self._executed)

    def execute(self) -> None:
        for op in self._operations:
            try:
                op.execute()
            except Exception as exc:
                self._rollback_executed(exc)
                raise
            self._executed.append(op)

    def _rollback_executed(self, original: Exception) -> None:
        for op in reversed(self._executed):
            try:
                op.rollback()
            except InconsistencyError as exc:
                if exc.original is None:
                    exc.original = original
                raise
            except Exception as exc:
                logger.critical(
                    "compound_rollback_failed",
                    operation=type(op).__name__,
                    error=str(exc),
                    original_error=str(original),
                )
                raise InconsistencyError(
                    f"rollback failed: {exc} (original error: {original})",
                    original=original,
                    cause=exc,
                ).with_context(operation=type(op).__name__) from exc
        self._executed.clear()


# ---------------------------------------------------------------------------
# Concrete schedule operations
# ---------------------------------------------------------------------------


class _ScheduleOperation:
    """Shared plumbing: collaborators come from the owning service."""

    name = "schedule"

    def __init__(self, service: SchedulerService, schedule_id: ScheduleID) -> None:
        self.service = service
        self.schedule_id = schedule_id

    def _options(self, spec: str) -> ScheduleOptions:
        return ScheduleOptions(spec=spec, hooks=(self.service.sync_for(self.schedule_id),))

    def _live_handle(self) -> ScheduledFunc:
        handle = self.service.handles.get(self.schedule_id)
        if handle is None:
            raise HandleNotFoundError("scheduled function not found").with_context(
                schedule_id=self.schedule_id, operation=self.name
            )
        return handle

    def _compensate(self, original: Exception) -> None:
        """Undo this operation's own completed steps after *original*."""
        try:
            self.rollback()
        except InconsistencyError as exc:
            if exc.original is None:
                exc.original = original
            raise

    def _inconsistent(self, exc: Exception) -> InconsistencyError:
        logger.critical(
            f"{self.name}_rollback_failed",
            schedule_id=str(self.schedule_id),
            error=str(exc),
        )
        return InconsistencyError(
            f"failed to rollback {self.name} operation: {exc}", cause=exc
        ).with_context(schedule_id=self.schedule_id, operation=self.name)


class CreateScheduleOperation(_ScheduleOperation):
    """Store row, then engine registration, then live-map entry."""

    name = "create"

    def __init__(
        self,
        service: SchedulerService,
        schedule_id: ScheduleID,
        props: WorkflowScheduleProps,
    ) -> None:
        super().__init__(service, schedule_id)
        self.props = props
        self.handle: ScheduledFunc | None = None

    def execute(self) -> None:
        svc = self.service
        svc.store.create_schedule_with_id(self.schedule_id, self.props)
        try:
            self.handle = svc.engine.schedule(
                svc.trigger_for(self.props.workflow_type),
                self._options(self.props.spec),
            )
        except Exception as exc:
            self._compensate(exc)
            raise
        svc.handles.put(self.schedule_id, self.handle)
        logger.info(
            "schedule_created",
            schedule_id=str(self.schedule_id),
            workflow_type=self.props.workflow_type.value,
            spec=self.props.spec,
            handle_id=self.handle.handle_id,
        )

    def rollback(self) -> None:
        svc = self.service
        try:
            if self.handle is not None:
                svc.engine.delete(self.handle.handle_id)
                svc.handles.remove(self.schedule_id)
                self.handle = None
            try:
                svc.store.delete_schedule(self.schedule_id)
            except ScheduleNotFoundError:
                pass
        except Exception as exc:
            raise self._inconsistent(exc) from exc
        logger.warning("schedule_create_rolled_back", schedule_id=str(self.schedule_id))


class UpdateScheduleOperation(_ScheduleOperation):
    """Store update, then engine update under the same handle id."""

    name = "update"

    def __init__(
        self,
        service: SchedulerService,
        schedule_id: ScheduleID,
        props: WorkflowScheduleProps,
    ) -> None:
        super().__init__(service, schedule_id)
        self.props = props
        self.old_props: WorkflowScheduleProps | None = None
        self.old_handle: ScheduledFunc | None = None
        self._store_updated = False

    def execute(self) -> None:
        svc = self.service
        self.old_props = svc.store.get_schedule(self.schedule_id).props()
        self.old_handle = self._live_handle()

        svc.store.update_schedule(self.schedule_id, self.props)
        self._store_updated = True
        try:
            handle = svc.engine.update(
                self.old_handle.handle_id,
                svc.trigger_for(self.props.workflow_type),
                self._options(self.props.spec),
            )
        except Exception as exc:
            self._compensate(exc)
            raise
        svc.handles.put(self.schedule_id, handle)
        logger.info(
            "schedule_updated",
            schedule_id=str(self.schedule_id),
            workflow_type=self.props.workflow_type.value,
            spec=self.props.spec,
            previous_spec=self.old_props.spec,
        )

    def rollback(self) -> None:
        if not self._store_updated:
            return
        svc = self.service
        old = self.old_props
        try:
            svc.store.update_schedule(self.schedule_id, old)
            restored = svc.engine.update(
                self.old_handle.handle_id,
                svc.trigger_for(old.workflow_type),
                self._options(old.spec),
            )
        except Exception as exc:
            raise self._inconsistent(exc) from exc
        svc.handles.put(self.schedule_id, restored)
        self._store_updated = False
        logger.warning(
            "schedule_update_rolled_back", schedule_id=str(self.schedule_id), spec=old.spec
        )


class DeleteScheduleOperation(_ScheduleOperation):
    """Soft-delete the row, then remove the engine registration.

    A row with no live handle is still soft-deleted before
    ``HandleNotFoundError`` is raised.
    """

    name = "delete"

    def __init__(self, service: SchedulerService, schedule_id: ScheduleID) -> None:
        super().__init__(service, schedule_id)
        self.old_props: WorkflowScheduleProps | None = None
        self.old_handle: ScheduledFunc | None = None
        self.was_deleted = False

    def execute(self) -> None:
        svc = self.service
        self.old_props = svc.store.get_schedule(self.schedule_id).props()

        svc.store.delete_schedule(self.schedule_id)
        self.old_handle = svc.handles.get(self.schedule_id)
        if self.old_handle is None:
            # Persisted-only (never recovered): the row is gone, nothing to unregister.
            logger.warning("schedule_deleted_without_handle", schedule_id=str(self.schedule_id))
            raise HandleNotFoundError(
                "scheduled function not found; persisted schedule deleted"
            ).with_context(schedule_id=self.schedule_id, operation=self.name)
        try:
            svc.engine.delete(self.old_handle.handle_id)
        except Exception as exc:
            self._restore_row(exc)
            raise

        svc.handles.remove(self.schedule_id)
        self.was_deleted = True
        logger.info("schedule_deleted", schedule_id=str(self.schedule_id))

    def _restore_row(self, original: Exception) -> None:
        # The original handle is still registered; only the row needs reviving.
        try:
            self.service.store.create_schedule_with_id(self.schedule_id, self.old_props)
        except Exception as exc:
            inconsistency = self._inconsistent(exc)
            inconsistency.original = original
            raise inconsistency from exc
        logger.warning(
            "schedule_delete_self_healed",
            schedule_id=str(self.schedule_id),
            error=str(original),
        )

    def rollback(self) -> None:
        if not self.was_deleted:
            return
        svc = self.service
        old = self.old_props
        try:
            svc.store.create_schedule_with_id(self.schedule_id, old)
            handle = svc.engine.schedule(
                svc.trigger_for(old.workflow_type), self._options(old.spec)
            )
        except Exception as exc:
            raise self._inconsistent(exc) from exc
        svc.handles.put(self.schedule_id, handle)
        self.was_deleted = False
        logger.warning("schedule_delete_rolled_back", schedule_id=str(self.schedule_id))


__all__ = [
    "Operation",
    "CompoundOperation",
    "CreateScheduleOperation",
    "UpdateScheduleOperation",
    "DeleteScheduleOperation",
]
