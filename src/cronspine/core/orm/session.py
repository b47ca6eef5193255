"""SQLAlchemy engine factory and session factory.

This module provides:

* ``create_cronspine_engine``  -- Create a SA engine from a URL.
* ``CronspineSession``         -- Session with ``expire_on_commit=False``.
* ``cronspine_session_factory`` -- ``sessionmaker`` producing ``CronspineSession``.

Tags:
    cronspine, orm, sqlalchemy, session, engine

Doc-Types:
    api-reference
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import create_engine as _sa_create_engine
from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool


def _is_memory_sqlite(url: str) -> bool:
    return url in ("sqlite://", "sqlite:///:memory:") or "mode=memory" in url


def create_cronspine_engine(
    url: str = "sqlite:///cronspine.db",
    *,
    echo: bool = False,
    statement_timeout_seconds: float | None = None,
    pool_size: int | None = None,
    max_overflow: int | None = None,
    **kwargs: Any,
) -> Engine:
    """Create a SQLAlchemy engine with sane defaults.

    Parameters
    ----------
    url:
        Database URL (``sqlite:///…``, ``postgresql://…``, etc.)
    echo:
        If ``True``, log all SQL.
    statement_timeout_seconds:
        Driver-level timeout. SQLite gets it as the ``timeout`` connect
        argument (lock wait), other drivers as ``connect_timeout``.
    pool_size, max_overflow:
        Connection pool parameters (ignored for SQLite).
    **kwargs:
        Extra arguments forwarded to ``sqlalchemy.create_engine``.
    """
    connect_args: dict[str, Any] = dict(kwargs.pop("connect_args", {}))

    if url.startswith("sqlite"):
        # Fired triggers sync from engine worker threads
        connect_args.setdefault("check_same_thread", False)
        if statement_timeout_seconds is not None:
            connect_args.setdefault("timeout", statement_timeout_seconds)

        if _is_memory_sqlite(url):
            # One shared connection, otherwise every checkout sees an empty database
            kwargs.setdefault("poolclass", StaticPool)

        engine = _sa_create_engine(url, echo=echo, connect_args=connect_args, **kwargs)

        @event.listens_for(engine, "connect")
        def _set_sqlite_pragma(dbapi_connection: Any, _rec: Any) -> None:
            cursor = dbapi_connection.cursor()
            if not _is_memory_sqlite(url):
                cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        return engine

    if statement_timeout_seconds is not None:
        connect_args.setdefault("connect_timeout", int(statement_timeout_seconds))

    pool_kwargs: dict[str, Any] = {"pool_pre_ping": True}
    if pool_size is not None:
        pool_kwargs["pool_size"] = pool_size
    if max_overflow is not None:
        pool_kwargs["max_overflow"] = max_overflow

    return _sa_create_engine(
        url, echo=echo, connect_args=connect_args, **pool_kwargs, **kwargs
    )


class CronspineSession(Session):
    """Pre-configured session with ``expire_on_commit=False``.

    Entities read inside a ``with session.begin()`` block stay usable after
    the block commits.
    """

    def __init__(self, bind: Engine | None = None, **kwargs: Any) -> None:
        kwargs.setdefault("expire_on_commit", False)
        super().__init__(bind=bind, **kwargs)


def cronspine_session_factory(engine: Engine) -> sessionmaker[CronspineSession]:
    """Return a ``sessionmaker`` bound to *engine* that produces ``CronspineSession`` instances."""
    return sessionmaker(bind=engine, class_=CronspineSession)
