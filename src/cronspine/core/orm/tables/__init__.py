"""ORM table package.

Tags:
    cronspine, orm, sqlalchemy, tables

Doc-Types:
    api-reference
"""

from cronspine.core.orm.tables.scheduling import WorkflowScheduleTable  # noqa: F401

__all__ = ["WorkflowScheduleTable"]
