"""Scheduling table definitions: workflow schedules.

Tags:
    cronspine, orm, sqlalchemy, tables, scheduling

Doc-Types:
    api-reference, data-model
"""

from __future__ import annotations

import datetime

from sqlalchemy import DateTime, Index, Text
from sqlalchemy.orm import Mapped, mapped_column

from cronspine.core.orm.base import CronspineBase, SoftDeleteMixin, TimestampMixin


class WorkflowScheduleTable(TimestampMixin, SoftDeleteMixin, CronspineBase):
    __tablename__ = "workflow_schedules"

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    workflow_type: Mapped[str] = mapped_column(Text, nullable=False)
    about: Mapped[str | None] = mapped_column(Text)
    spec: Mapped[str] = mapped_column(Text, nullable=False)
    last_run: Mapped[datetime.datetime | None] = mapped_column(DateTime)
    next_run: Mapped[datetime.datetime | None] = mapped_column(DateTime)

    __table_args__ = (
        Index("ix_workflow_schedules_type_created", "workflow_type", "created_at"),
    )
