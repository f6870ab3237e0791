"""SQLAlchemy engine and session factories.

Shared by the relational source schema and the SQL-backed document store.

* ``create_engine_for_url`` -- engine with SQLite pragmas and pool defaults.
* ``EtfSession``            -- session with ``expire_on_commit=False``.
* ``session_factory``       -- ``sessionmaker`` producing ``EtfSession``.

Tags:
    etfspine, sqlalchemy, engine, session
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import ArgumentError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from etfspine.core.errors import ConfigError


def create_engine_for_url(
    url: str,
    *,
    echo: bool = False,
    pool_size: int | None = None,
    max_overflow: int | None = None,
    **kwargs: Any,
) -> Engine:
    """Create a SQLAlchemy engine with sane defaults.

    SQLite engines get ``PRAGMA foreign_keys=ON`` on every connection, and
    in-memory SQLite shares one connection so every session sees the same
    database. A URL SQLAlchemy cannot parse, or whose dialect is not
    installed, raises ``ConfigError``.
    """
    try:
        parsed = make_url(url)
        parsed.get_dialect()
    except ArgumentError as exc:
        raise ConfigError(f"Invalid database URL {url!r}: {exc}", cause=exc).with_context(url=url) from exc

    if parsed.get_backend_name() == "sqlite":
        kwargs.setdefault("connect_args", {"check_same_thread": False})
        if parsed.database in (None, "", ":memory:"):
            kwargs.setdefault("poolclass", StaticPool)

        engine = create_engine(url, echo=echo, **kwargs)

        @event.listens_for(engine, "connect")
        def _set_sqlite_pragma(dbapi_connection: Any, _rec: Any) -> None:
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        return engine

    pool_kwargs: dict[str, Any] = {}
    if pool_size is not None:
        pool_kwargs["pool_size"] = pool_size
    if max_overflow is not None:
        pool_kwargs["max_overflow"] = max_overflow

    return create_engine(url, echo=echo, **pool_kwargs, **kwargs)


class EtfSession(Session):
    """Pre-configured session with ``expire_on_commit=False``."""

    def __init__(self, bind: Engine | None = None, **kwargs: Any) -> None:
        kwargs.setdefault("expire_on_commit", False)
        super().__init__(bind=bind, **kwargs)


def session_factory(engine: Engine) -> sessionmaker[EtfSession]:
    """Return a ``sessionmaker`` bound to *engine* that produces ``EtfSession`` instances."""
    return sessionmaker(bind=engine, class_=EtfSession)


__all__ = ["EtfSession", "create_engine_for_url", "session_factory"]
