"""Timer engine and workflow submitter protocols.

┌──────────────────────────────────────────────────────────────────────────────┐
│  CONSUMED CONTRACTS                                                           │
│                                                                               │
│  The scheduling core never parses cron itself and never runs a workflow.     │
│  It talks to two collaborators through these protocols:                       │
│                                                                               │
│   ┌─────────────────┐  schedule/update/delete  ┌─────────────────────┐       │
│   │ SchedulerService│ ───────────────────────► │ TimerEngine         │       │
│   │   + sagas       │                          │ (APSchedulerEngine) │       │
│   └─────────────────┘                          └──────────┬──────────┘       │
│            ▲                                              │ fire             │
│            │ sync hook                                    ▼                  │
│            │                                   ┌─────────────────────┐       │
│            └────────────────────────────────── │ trigger closure     │       │
│                                                │  → WorkflowSubmitter│       │
│                                                └─────────────────────┘       │
│                                                                               │
│  Responsibility Split:                                                        │
│  - TimerEngine: WHEN (cron evaluation, firing, per-handle serialization)     │
│  - WorkflowSubmitter: WHAT (start a workflow execution)                      │
│  - SchedulerService: keeping both in step with the durable store             │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

from cronspine.core.models.scheduler import ScheduledFunc, WorkflowType

Job = Callable[[], None]
"""Zero-argument callable fired by the engine."""

Hook = Callable[[], None]
"""Zero-argument callable run after each fire, in registration order."""


@dataclass(frozen=True)
class ScheduleOptions:
    """Registration options for a timer engine job.

    Attributes:
        spec: Cron expression (5 fields, or an ``@daily`` style descriptor)
        hooks: Run synchronously, in order, after each fire of the job
    """

    spec: str
    hooks: Sequence[Hook] = field(default_factory=tuple)


@runtime_checkable
class TimerEngine(Protocol):
    """In-process component that fires callbacks on a cron spec.

    Guarantees implementations must provide:
        - no two concurrent fires of the same handle
        - hooks run synchronously, in order, after each fire
        - exceptions raised by jobs or hooks are contained (logged), never
          propagated into the engine's scheduling loop

    Raises:
        ValidationError: ``schedule``/``update`` with a malformed spec
        HandleNotFoundError: ``update``/``delete``/``get`` of an unknown handle
        EngineError: any other registration failure
    """

    def start(self) -> None:
        """Begin firing registered jobs."""
        ...

    def stop(self) -> None:
        """Stop firing and discard every registration."""
        ...

    def schedule(self, fn: Job, opts: ScheduleOptions) -> ScheduledFunc:
        """Register *fn* and return its handle."""
        ...

    def update(self, handle_id: str, fn: Job, opts: ScheduleOptions) -> ScheduledFunc:
        """Replace the job and options behind *handle_id*."""
        ...

    def delete(self, handle_id: str) -> None:
        """Remove a registration."""
        ...

    def get(self, handle_id: str) -> ScheduledFunc:
        """Return a fresh snapshot of a registration."""
        ...


@runtime_checkable
class WorkflowSubmitter(Protocol):
    """Starts workflow executions.

    ``submit`` returns an execution/job identifier. Errors propagate to the
    caller, which for fired triggers means they are logged and dropped.
    """

    def submit(self, workflow_type: WorkflowType) -> str:
        ...


__all__ = [
    "Job",
    "Hook",
    "ScheduleOptions",
    "TimerEngine",
    "WorkflowSubmitter",
]
