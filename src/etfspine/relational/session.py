"""Engine and session helpers for the relational source database."""

from __future__ import annotations

from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from etfspine.core.database import EtfSession, create_engine_for_url, session_factory
from etfspine.relational.base import EtfBase

# Registers the trigger DDL listeners before any create_all runs.
from etfspine.relational import triggers as _triggers  # noqa: F401


def create_source_engine(url: str, *, echo: bool = False) -> Engine:
    """Engine for the relational source database (SQLite gets ``foreign_keys=ON``)."""
    return create_engine_for_url(url, echo=echo)


def source_session_factory(engine: Engine) -> sessionmaker[EtfSession]:
    return session_factory(engine)


def create_source_schema(engine: Engine) -> None:
    """Create all source tables, indexes and triggers.

    Existing tables are skipped, so their triggers are not re-created.
    """
    EtfBase.metadata.create_all(engine)


def drop_source_schema(engine: Engine) -> None:
    EtfBase.metadata.drop_all(engine)


__all__ = [
    "create_source_engine",
    "create_source_schema",
    "drop_source_schema",
    "source_session_factory",
]
