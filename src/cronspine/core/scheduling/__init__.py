"""Workflow scheduling for cronspine.

Manifesto:
    "Run workflow X on cron spec S" has to survive partial failures and
    restarts. The schedule is written durably, registered with an
    in-process timer engine, and the two are kept in step by compensating
    operations. After a restart the durable rows are replayed into the
    engine.

┌──────────────────────────────────────────────────────────────────────────────┐
│  CRONSPINE SCHEDULING                                                         │
│                                                                               │
│  Quick Start:                                                                 │
│  ┌──────────────────────────────────────────────────────────────────────┐   │
│  │   from cronspine.core.scheduling import (                            │   │
│  │       WorkflowRegistry, create_scheduler,                            │   │
│  │   )                                                                  │   │
│  │   from cronspine.core.settings import SchedulerSettings              │   │
│  │                                                                      │   │
│  │   registry = WorkflowRegistry()                                      │   │
│  │   registry.register("screenshot", capture_pages)                     │   │
│  │                                                                      │   │
│  │   service = create_scheduler(SchedulerSettings(), registry)          │   │
│  │   service.start(recovery=True)                                       │   │
│  │   sid = service.schedule(WorkflowScheduleProps(                      │   │
│  │       workflow_type=WorkflowType.SCREENSHOT, spec="0 0 * * MON"))    │   │
│  └──────────────────────────────────────────────────────────────────────┘   │
│                                                                               │
│  Modules:                                                                     │
│  - protocol             TimerEngine / WorkflowSubmitter contracts            │
│  - cron                 Spec validation, CronSpecTrigger (croniter)          │
│  - repository           ScheduleStore (SQLAlchemy, soft delete)              │
│  - apscheduler_backend  APSchedulerEngine                                    │
│  - registry             HandleRegistry, KeyedLock                            │
│  - operation            Operation, CompoundOperation, concrete sagas         │
│  - submitter            WorkflowRegistry                                     │
│  - service              SchedulerService, create_scheduler                   │
│                                                                               │
│  Dependencies:                                                                │
│  - croniter: cron expression parsing                                         │
│  - apscheduler: background timer engine                                      │
│  - sqlalchemy: schedule store                                                │
└──────────────────────────────────────────────────────────────────────────────┘

Guardrails:
    ❌ Writing to the store or engine directly for a managed schedule
    ✅ Go through SchedulerService so the change is compensated on failure

    ❌ Treating the engine's registrations as durable
    ✅ Call ``start(recovery=True)`` after every process start

Tags:
    cronspine, scheduling, cron, saga, recovery

Doc-Types:
    package-overview, module-index
"""

from cronspine.core.scheduling.apscheduler_backend import APSchedulerEngine
from cronspine.core.scheduling.cron import CronSpecTrigger, next_fire_time, validate_spec
from cronspine.core.scheduling.operation import (
    CompoundOperation,
    CreateScheduleOperation,
    DeleteScheduleOperation,
    Operation,
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
from cronspine.core.scheduling.service import (
    SchedulerService,
    SchedulerStats,
    create_scheduler,
)
from cronspine.core.scheduling.submitter import WorkflowRegistry

__all__ = [
    # Contracts
    "TimerEngine",
    "WorkflowSubmitter",
    "ScheduleOptions",
    "Job",
    "Hook",
    # Cron
    "validate_spec",
    "next_fire_time",
    "CronSpecTrigger",
    # Store / engine
    "ScheduleStore",
    "APSchedulerEngine",
    # Sagas
    "Operation",
    "CompoundOperation",
    "CreateScheduleOperation",
    "UpdateScheduleOperation",
    "DeleteScheduleOperation",
    # Service
    "HandleRegistry",
    "KeyedLock",
    "SchedulerService",
    "SchedulerStats",
    "create_scheduler",
    "WorkflowRegistry",
]
