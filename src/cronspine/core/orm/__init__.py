"""SQLAlchemy 2.0 ORM layer for cronspine.

Modules
-------
base        CronspineBase (declarative base) + TimestampMixin + SoftDeleteMixin
session     Engine factory, CronspineSession, session factory
tables      Mapped table classes (WorkflowScheduleTable)

Tags:
    cronspine, orm, sqlalchemy, declarative

Doc-Types:
    package-overview, module-index
"""

from __future__ import annotations

from cronspine.core.orm.base import CronspineBase, SoftDeleteMixin, TimestampMixin
from cronspine.core.orm.session import (
    CronspineSession,
    create_cronspine_engine,
    cronspine_session_factory,
)
from cronspine.core.orm.tables import WorkflowScheduleTable

__all__ = [
    "CronspineBase",
    "TimestampMixin",
    "SoftDeleteMixin",
    "create_cronspine_engine",
    "CronspineSession",
    "cronspine_session_factory",
    "WorkflowScheduleTable",
]
