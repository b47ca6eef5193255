"""Dataclass models for cronspine.

Modules
-------
scheduler
    Schedule identity, caller input, persisted ``workflow_schedules`` rows,
    and live timer registrations.

Tags:
    cronspine, models, dataclasses, data-contracts

Doc-Types:
    package-overview, module-index
"""

from cronspine.core.models.scheduler import (
    ScheduledFunc,
    ScheduleID,
    WorkflowSchedule,
    WorkflowScheduleProps,
    WorkflowType,
    new_schedule_id,
    parse_schedule_id,
    parse_workflow_type,
)

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
