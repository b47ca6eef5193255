"""Scheduler models: schedule identity, inputs, persisted rows, live handles.

Manifesto:
    A schedule exists in two forms. ``WorkflowSchedule`` is the durable row
    in ``workflow_schedules``; ``ScheduledFunc`` is the live registration the
    timer engine owns. Both need typed representations so the sagas that
    keep them in step never pass loose dicts around.

Tags:
    cronspine, models, scheduling, dataclasses, cron, schema-mapping

Doc-Types:
    api-reference, data-model
"""

from __future__ import annotations

import datetime
import uuid
from dataclasses import asdict, dataclass, field, replace
from enum import Enum
from typing import Any

from cronspine.core.errors import ValidationError

ScheduleID = uuid.UUID


def new_schedule_id() -> ScheduleID:
    """Allocate a fresh schedule identifier."""
    return uuid.uuid4()


def parse_schedule_id(value: str | ScheduleID) -> ScheduleID:
    """Parse a schedule identifier, raising ValidationError when malformed."""
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value).strip())
    except (ValueError, AttributeError) as exc:
        raise ValidationError(f"invalid schedule id: {value!r}", cause=exc) from exc


class WorkflowType(str, Enum):
    """Workflow kinds the platform can submit."""

    SCREENSHOT = "screenshot"
    REPORT = "report"


def parse_workflow_type(value: str | WorkflowType) -> WorkflowType:
    """Parse a workflow type, raising ValidationError for unknown values."""
    if isinstance(value, WorkflowType):
        return value
    try:
        return WorkflowType(str(value).strip().lower())
    except ValueError as exc:
        known = ", ".join(t.value for t in WorkflowType)
        raise ValidationError(
            f"unknown workflow type {value!r} (known: {known})", cause=exc
        ).with_context(workflow_type=value) from exc


# ---------------------------------------------------------------------------
# Input
# ---------------------------------------------------------------------------


@dataclass
class WorkflowScheduleProps:
    """Caller-supplied schedule description.

    For ``reschedule`` any field left as ``None`` keeps the persisted value.
    """

    workflow_type: WorkflowType | None = None
    spec: str | None = None
    about: str | None = None

    def merged_with(self, current: WorkflowScheduleProps) -> WorkflowScheduleProps:
        """Fill unset fields from *current*."""
        return WorkflowScheduleProps(
            workflow_type=self.workflow_type if self.workflow_type is not None else current.workflow_type,
            spec=self.spec if self.spec is not None else current.spec,
            about=self.about if self.about is not None else current.about,
        )


# ---------------------------------------------------------------------------
# workflow_schedules
# ---------------------------------------------------------------------------


@dataclass
class WorkflowSchedule:
    """Persisted schedule row (``workflow_schedules``)."""

    id: ScheduleID
    workflow_type: WorkflowType
    spec: str
    about: str | None = None
    last_run: datetime.datetime | None = None
    next_run: datetime.datetime | None = None
    created_at: datetime.datetime | None = None
    updated_at: datetime.datetime | None = None
    deleted_at: datetime.datetime | None = None

    def props(self) -> WorkflowScheduleProps:
        """Snapshot of the mutable fields, used for rollback."""
        return WorkflowScheduleProps(
            workflow_type=self.workflow_type, spec=self.spec, about=self.about
        )

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["id"] = str(self.id)
        data["workflow_type"] = self.workflow_type.value
        for key in ("last_run", "next_run", "created_at", "updated_at", "deleted_at"):
            value = data[key]
            data[key] = value.isoformat() if value is not None else None
        return data


# ---------------------------------------------------------------------------
# Live registration (not persisted)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ScheduledFunc:
    """Snapshot of a timer engine registration.

    Instances are immutable; the engine hands out a fresh snapshot on every
    ``get`` so callers always see current ``last_run`` / ``next_run``.
    """

    handle_id: str
    spec: str
    last_run: datetime.datetime | None = None
    next_run: datetime.datetime | None = None
    metadata: dict[str, Any] = field(default_factory=dict, compare=False)

    def with_runs(
        self,
        last_run: datetime.datetime | None,
        next_run: datetime.datetime | None,
    ) -> ScheduledFunc:
        return replace(self, last_run=last_run, next_run=next_run)


__all__ = [
    "ScheduleID",
    "new_schedule_id",
    "parse_schedule_id",
    "WorkflowType",
    "parse_workflow_type",
    "WorkflowScheduleProps",
    "WorkflowSchedule",
    "ScheduledFunc",
]
