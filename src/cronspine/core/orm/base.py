"""Declarative base, mixins and type-map for cronspine ORM models.

Uses SQLAlchemy 2.0 ``DeclarativeBase`` with a ``type_annotation_map``
that maps Python built-in types to portable SA column types.

Timestamps are stored as naive UTC ``DateTime`` values; the store converts
them to aware UTC datetimes at the edge.

Mixins
------
* **TimestampMixin**: ``created_at`` / ``updated_at`` set from Python.
* **SoftDeleteMixin**: ``deleted_at``; rows are never physically deleted.
"""

from __future__ import annotations

import datetime

from sqlalchemy import DateTime, Integer, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow_naive() -> datetime.datetime:
    """Current UTC time without tzinfo, the form stored in the database."""
    return datetime.datetime.now(datetime.UTC).replace(tzinfo=None)


def to_naive_utc(value: datetime.datetime | None) -> datetime.datetime | None:
    """Normalize an aware datetime to naive UTC; naive input is assumed UTC."""
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(datetime.UTC).replace(tzinfo=None)
    return value


def from_naive_utc(value: datetime.datetime | None) -> datetime.datetime | None:
    """Attach UTC tzinfo to a value read back from the database."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=datetime.UTC)
    return value.astimezone(datetime.UTC)


class CronspineBase(DeclarativeBase):
    """Shared declarative base for every cronspine table.

    * ``str``   → ``Text``
    * ``int``   → ``Integer``
    * ``datetime.datetime`` → ``DateTime``
    """

    type_annotation_map = {
        str: Text,
        int: Integer,
        datetime.datetime: DateTime,
    }


class TimestampMixin:
    """Adds ``created_at`` and ``updated_at``.

    Values come from Python rather than a server default so the same DDL
    works on SQLite and PostgreSQL.
    """

    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime,
        nullable=False,
        default=utcnow_naive,
    )
    updated_at: Mapped[datetime.datetime] = mapped_column(
        DateTime,
        nullable=False,
        default=utcnow_naive,
        onupdate=utcnow_naive,
    )


class SoftDeleteMixin:
    """Adds a nullable ``deleted_at`` column; NULL means live."""

    deleted_at: Mapped[datetime.datetime | None] = mapped_column(
        DateTime,
        nullable=True,
        default=None,
        index=True,
    )
