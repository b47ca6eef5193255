"""cronspine core -- errors, logging, settings, models, ORM and scheduling.

Architecture::

    errors.py          Structured error hierarchy (CronspineError, NotFoundError, ...)
    logging.py         structlog configuration
    settings.py        pydantic-settings SchedulerSettings
    models/            Dataclass models (WorkflowSchedule, ScheduledFunc, ...)
    orm/               SQLAlchemy 2.0 declarative tables, engine/session factories
    scheduling/        Store, timer engine, sagas, SchedulerService
"""
