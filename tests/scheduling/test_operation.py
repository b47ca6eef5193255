"""Tests for compensating schedule operations.

Covers CompoundOperation ordering and backward rollback, and the create /
update / delete operations including their self-compensation paths.
"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from structlog.testing import capture_logs

from cronspine.core.errors import (
    EngineError,
    HandleNotFoundError,
    InconsistencyError,
    PersistenceError,
    ScheduleNotFoundError,
)
from cronspine.core.models.scheduler import (
    WorkflowScheduleProps,
    WorkflowType,
    new_schedule_id,
)
from cronspine.core.scheduling.operation import (
    CompoundOperation,
    CreateScheduleOperation,
    DeleteScheduleOperation,
    Operation,
    UpdateScheduleOperation,
)

MONDAY = WorkflowScheduleProps(workflow_type=WorkflowType.SCREENSHOT, spec="0 0 * * MON")
FRIDAY = WorkflowScheduleProps(workflow_type=WorkflowType.SCREENSHOT, spec="0 0 * * FRI")


class RecordingOp:
    """Operation that appends to a shared journal."""

    def __init__(self, name, journal, fail_execute=None, fail_rollback=None):
        self.name = name
        self.journal = journal
        self.fail_execute = fail_execute
        self.fail_rollback = fail_rollback

    def execute(self):
        self.journal.append(f"execute:{self.name}")
        if self.fail_execute:
            raise self.fail_execute

    def rollback(self):
        self.journal.append(f"rollback:{self.name}")
        if self.fail_rollback:
            raise self.fail_rollback


def _criticals(logs):
    return [entry["event"] for entry in logs if entry["log_level"] == "critical"]


# ── CompoundOperation ────────────────────────────────────────


class TestCompoundOperation:
    def test_recording_op_satisfies_protocol(self):
        assert isinstance(RecordingOp("a", []), Operation)

    def test_executes_in_order(self):
        journal = []
        compound = CompoundOperation([RecordingOp("a", journal), RecordingOp("b", journal)])
        compound.add(RecordingOp("c", journal))

        compound.execute()

        assert journal == ["execute:a", "execute:b", "execute:c"]
        assert len(compound.executed) == 3

    def test_failure_rolls_back_completed_in_reverse(self):
        journal = []
        boom = RuntimeError("boom")
        compound = CompoundOperation(
            [
                RecordingOp("a", journal),
                RecordingOp("b", journal),
                RecordingOp("c", journal, fail_execute=boom),
                RecordingOp("d", journal),
            ]
        )

        with pytest.raises(RuntimeError) as exc_info:
            compound.execute()

        assert exc_info.value is boom
        assert journal == [
            "execute:a",
            "execute:b",
            "execute:c",
            "rollback:b",
            "rollback:a",
        ]

    def test_failing_op_itself_not_rolled_back(self):
        journal = []
        compound = CompoundOperation([RecordingOp("only", journal, fail_execute=ValueError("x"))])

        with pytest.raises(ValueError):
            compound.execute()

        assert journal == ["execute:only"]

    def test_rollback_failure_raises_inconsistency(self):
        journal = []
        original = RuntimeError("engine down")
        rollback_err = OSError("disk gone")
        compound = CompoundOperation(
            [
                RecordingOp("a", journal),
                RecordingOp("b", journal, fail_rollback=rollback_err),
                RecordingOp("c", journal, fail_execute=original),
            ]
        )

        with capture_logs() as logs, pytest.raises(InconsistencyError) as exc_info:
            compound.execute()

        err = exc_info.value
        assert err.original is original
        assert err.cause is rollback_err
        assert "compound_rollback_failed" in _criticals(logs)
        # single pass: "a" is never rolled back once "b" failed
        assert "rollback:a" not in journal

    def test_inconsistency_from_rollback_gets_original(self):
        journal = []
        original = RuntimeError("boom")
        inner = InconsistencyError("nested")
        compound = CompoundOperation(
            [
                RecordingOp("a", journal, fail_rollback=inner),
                RecordingOp("b", journal, fail_execute=original),
            ]
        )

        with pytest.raises(InconsistencyError) as exc_info:
            compound.execute()

        assert exc_info.value is inner
        assert inner.original is original

    def test_to_dict_carries_both_errors(self):
        err = InconsistencyError("rollback failed", original=ValueError("a"), cause=OSError("b"))
        data = err.to_dict()
        assert data["original_error"] == "a"
        assert data["cause"] == "b"
        assert data["category"] == "INCONSISTENCY"


# ── Create ───────────────────────────────────────────────────


class TestCreateScheduleOperation:
    def test_execute_writes_both_sides(self, service, timer_engine):
        sid = new_schedule_id()
        op = CreateScheduleOperation(service, sid, MONDAY)

        op.execute()

        assert service.store.get_schedule(sid).spec == "0 0 * * MON"
        handle = service.handles.get(sid)
        assert handle is not None
        assert timer_engine.jobs[handle.handle_id].opts.spec == "0 0 * * MON"

    def test_hooks_include_sync(self, service, timer_engine):
        sid = new_schedule_id()
        CreateScheduleOperation(service, sid, MONDAY).execute()

        job = timer_engine.jobs[service.handles.get(sid).handle_id]
        assert len(job.opts.hooks) == 1

    def test_engine_failure_removes_row(self, service, timer_engine):
        sid = new_schedule_id()
        timer_engine.fail_next("schedule")

        with pytest.raises(EngineError):
            CreateScheduleOperation(service, sid, MONDAY).execute()

        with pytest.raises(ScheduleNotFoundError):
            service.store.get_schedule(sid)
        assert sid not in service.handles
        assert timer_engine.jobs == {}

    def test_engine_and_store_failure_is_inconsistent(self, service, timer_engine, monkeypatch):
        sid = new_schedule_id()
        engine_err = EngineError("engine refused")
        timer_engine.fail_next("schedule", engine_err)
        monkeypatch.setattr(
            service.store, "delete_schedule", MagicMock(side_effect=PersistenceError("db gone"))
        )

        with capture_logs() as logs, pytest.raises(InconsistencyError) as exc_info:
            CreateScheduleOperation(service, sid, MONDAY).execute()

        assert exc_info.value.original is engine_err
        assert isinstance(exc_info.value.cause, PersistenceError)
        assert exc_info.value.context.schedule_id == str(sid)
        assert "create_rollback_failed" in _criticals(logs)

    def test_rollback_after_success_undoes_both_sides(self, service, timer_engine):
        sid = new_schedule_id()
        op = CreateScheduleOperation(service, sid, MONDAY)
        op.execute()

        op.rollback()

        assert timer_engine.jobs == {}
        assert sid not in service.handles
        assert service.store.list_scheduled_workflows() == []


# ── Update ───────────────────────────────────────────────────


class TestUpdateScheduleOperation:
    def test_execute_keeps_handle_id(self, service, timer_engine):
        sid = service.schedule(MONDAY)
        handle_id = service.handles.get(sid).handle_id

        UpdateScheduleOperation(service, sid, FRIDAY).execute()

        assert service.handles.get(sid).handle_id == handle_id
        assert service.handles.get(sid).spec == "0 0 * * FRI"
        assert service.store.get_schedule(sid).spec == "0 0 * * FRI"
        assert timer_engine.specs() == {"0 0 * * FRI"}

    def test_missing_handle_changes_nothing(self, service):
        sid = service.schedule(MONDAY)
        service.handles.remove(sid)

        with pytest.raises(HandleNotFoundError):
            UpdateScheduleOperation(service, sid, FRIDAY).execute()

        assert service.store.get_schedule(sid).spec == "0 0 * * MON"

    def test_unknown_schedule_raises_not_found(self, service):
        with pytest.raises(ScheduleNotFoundError):
            UpdateScheduleOperation(service, new_schedule_id(), FRIDAY).execute()

    def test_engine_failure_restores_row(self, service, timer_engine):
        sid = service.schedule(MONDAY)
        handle_id = service.handles.get(sid).handle_id
        timer_engine.fail_next("update")

        with pytest.raises(EngineError):
            UpdateScheduleOperation(service, sid, FRIDAY).execute()

        assert service.store.get_schedule(sid).spec == "0 0 * * MON"
        assert timer_engine.specs() == {"0 0 * * MON"}
        assert service.handles.get(sid).handle_id == handle_id

    def test_engine_failure_twice_is_inconsistent(self, service, timer_engine):
        sid = service.schedule(MONDAY)
        timer_engine.fail_next("update", times=2)

        with capture_logs() as logs, pytest.raises(InconsistencyError) as exc_info:
            UpdateScheduleOperation(service, sid, FRIDAY).execute()

        assert isinstance(exc_info.value.original, EngineError)
        assert "update_rollback_failed" in _criticals(logs)

    def test_rollback_after_success_restores_old_spec(self, service, timer_engine):
        sid = service.schedule(MONDAY)
        op = UpdateScheduleOperation(service, sid, FRIDAY)
        op.execute()

        op.rollback()

        assert service.store.get_schedule(sid).spec == "0 0 * * MON"
        assert timer_engine.specs() == {"0 0 * * MON"}
        assert service.handles.get(sid).spec == "0 0 * * MON"

    def test_rollback_restores_old_workflow_type(self, service, timer_engine, submitter):
        sid = service.schedule(MONDAY)
        report = WorkflowScheduleProps(workflow_type=WorkflowType.REPORT, spec="0 0 * * MON")
        op = UpdateScheduleOperation(service, sid, report)
        op.execute()

        op.rollback()
        timer_engine.fire(service.handles.get(sid).handle_id)

        submitter.submit.assert_called_once_with(WorkflowType.SCREENSHOT)
        assert service.store.get_schedule(sid).workflow_type is WorkflowType.SCREENSHOT

    def test_rollback_without_execute_is_noop(self, service, timer_engine):
        sid = service.schedule(MONDAY)
        calls_before = list(timer_engine.calls)

        UpdateScheduleOperation(service, sid, FRIDAY).rollback()

        assert timer_engine.calls == calls_before


# ── Delete ───────────────────────────────────────────────────


class TestDeleteScheduleOperation:
    def test_execute_removes_both_sides(self, service, timer_engine):
        sid = service.schedule(MONDAY)

        op = DeleteScheduleOperation(service, sid)
        op.execute()

        assert op.was_deleted is True
        assert timer_engine.jobs == {}
        assert sid not in service.handles
        with pytest.raises(ScheduleNotFoundError):
            service.store.get_schedule(sid)

    def test_missing_handle_still_deletes_row(self, service, timer_engine):
        sid = service.store.create_schedule(MONDAY)

        op = DeleteScheduleOperation(service, sid)
        with capture_logs() as logs, pytest.raises(HandleNotFoundError):
            op.execute()

        with pytest.raises(ScheduleNotFoundError):
            service.store.get_schedule(sid)
        assert op.was_deleted is False
        assert [c for c in timer_engine.calls if c[0] == "delete"] == []
        assert "schedule_deleted_without_handle" in [entry["event"] for entry in logs]

    def test_engine_failure_self_heals(self, service, timer_engine):
        sid = service.schedule(MONDAY)
        handle_id = service.handles.get(sid).handle_id
        timer_engine.fail_next("delete")

        with capture_logs() as logs, pytest.raises(EngineError):
            DeleteScheduleOperation(service, sid).execute()

        assert service.store.get_schedule(sid).spec == "0 0 * * MON"
        assert handle_id in timer_engine.jobs
        assert service.handles.get(sid).handle_id == handle_id
        assert "schedule_delete_self_healed" in [entry["event"] for entry in logs]

    def test_engine_failure_and_restore_failure_is_inconsistent(
        self, service, timer_engine, monkeypatch
    ):
        sid = service.schedule(MONDAY)
        engine_err = EngineError("engine refused")
        timer_engine.fail_next("delete", engine_err)
        monkeypatch.setattr(
            service.store,
            "create_schedule_with_id",
            MagicMock(side_effect=PersistenceError("db gone")),
        )

        with capture_logs() as logs, pytest.raises(InconsistencyError) as exc_info:
            DeleteScheduleOperation(service, sid).execute()

        assert exc_info.value.original is engine_err
        assert "delete_rollback_failed" in _criticals(logs)

    def test_rollback_after_success_revives_schedule(self, service, timer_engine):
        sid = service.schedule(MONDAY)
        op = DeleteScheduleOperation(service, sid)
        op.execute()

        op.rollback()

        assert service.store.get_schedule(sid).spec == "0 0 * * MON"
        handle = service.handles.get(sid)
        assert handle is not None
        assert handle.handle_id in timer_engine.jobs
        assert op.was_deleted is False

    def test_rollback_engine_failure_is_inconsistent(self, service, timer_engine):
        sid = service.schedule(MONDAY)
        op = DeleteScheduleOperation(service, sid)
        op.execute()
        timer_engine.fail_next("schedule")

        with pytest.raises(InconsistencyError) as exc_info:
            op.rollback()

        assert isinstance(exc_info.value.cause, EngineError)
