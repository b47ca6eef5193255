"""Pytest fixtures for scheduling tests.

``FakeTimerEngine`` satisfies the ``TimerEngine`` protocol in memory. It
never fires on its own: tests call ``fire(handle_id)``. Failures are
injected per method with ``fail_next``.
"""

from __future__ import annotations

import itertools
from collections import defaultdict
from dataclasses import dataclass
from datetime import UTC, datetime
from unittest.mock import MagicMock

import pytest

from cronspine.core.errors import EngineError, HandleNotFoundError
from cronspine.core.models.scheduler import ScheduledFunc
from cronspine.core.orm.session import create_cronspine_engine
from cronspine.core.scheduling.cron import next_fire_time, validate_spec
from cronspine.core.scheduling.protocol import Job, ScheduleOptions
from cronspine.core.scheduling.repository import ScheduleStore
from cronspine.core.scheduling.service import SchedulerService


@dataclass
class FakeJob:
    fn: Job
    opts: ScheduleOptions
    func: ScheduledFunc


class FakeTimerEngine:
    """In-memory TimerEngine with failure injection."""

    name = "fake"

    def __init__(self) -> None:
        self.jobs: dict[str, FakeJob] = {}
        self.running = False
        self.calls: list[tuple[str, str | None]] = []
        self._ids = itertools.count(1)
        self._failures: dict[str, list[Exception]] = defaultdict(list)

    def fail_next(self, method: str, exc: Exception | None = None, times: int = 1) -> None:
        for _ in range(times):
            self._failures[method].append(exc or EngineError(f"injected {method} failure"))

    def _maybe_fail(self, method: str) -> None:
        if self._failures[method]:
            raise self._failures[method].pop(0)

    def _require(self, handle_id: str) -> FakeJob:
        if handle_id not in self.jobs:
            raise HandleNotFoundError("handle not found").with_context(handle_id=handle_id)
        return self.jobs[handle_id]

    # --- TimerEngine ---

    def start(self) -> None:
        self.running = True

    def stop(self) -> None:
        self.running = False
        self.jobs.clear()

    def schedule(self, fn: Job, opts: ScheduleOptions) -> ScheduledFunc:
        self.calls.append(("schedule", None))
        self._maybe_fail("schedule")
        validate_spec(opts.spec)
        handle_id = f"h{next(self._ids)}"
        func = ScheduledFunc(handle_id=handle_id, spec=opts.spec)
        self.jobs[handle_id] = FakeJob(fn, opts, func)
        return func

    def update(self, handle_id: str, fn: Job, opts: ScheduleOptions) -> ScheduledFunc:
        self.calls.append(("update", handle_id))
        self._maybe_fail("update")
        job = self._require(handle_id)
        validate_spec(opts.spec)
        func = ScheduledFunc(
            handle_id=handle_id, spec=opts.spec, last_run=job.func.last_run
        )
        self.jobs[handle_id] = FakeJob(fn, opts, func)
        return func

    def delete(self, handle_id: str) -> None:
        self.calls.append(("delete", handle_id))
        self._maybe_fail("delete")
        self._require(handle_id)
        del self.jobs[handle_id]

    def get(self, handle_id: str) -> ScheduledFunc:
        self._maybe_fail("get")
        return self._require(handle_id).func

    # --- test helpers ---

    def fire(self, handle_id: str, now: datetime | None = None) -> None:
        job = self._require(handle_id)
        now = now or datetime.now(UTC)
        job.fn()
        job.func = job.func.with_runs(now, next_fire_time(job.opts.spec, now))
        for hook in job.opts.hooks:
            hook()

    def specs(self) -> set[str]:
        return {job.opts.spec for job in self.jobs.values()}


@pytest.fixture
def store(clock):
    """ScheduleStore on a fresh in-memory SQLite database."""
    s = ScheduleStore(create_cronspine_engine("sqlite://"), clock=clock)
    s.create_tables()
    yield s
    s.engine.dispose()


@pytest.fixture
def timer_engine():
    return FakeTimerEngine()


@pytest.fixture
def submitter():
    sub = MagicMock()
    sub.submit.return_value = "job-1"
    return sub


@pytest.fixture
def service(store, timer_engine, submitter):
    """Started SchedulerService over the in-memory store and fake engine."""
    svc = SchedulerService(store, timer_engine, submitter)
    svc.start()
    yield svc
    svc.stop()


@pytest.fixture
def make_timer_engine():
    """Factory for extra fake engines (tests that build their own service)."""
    return FakeTimerEngine
