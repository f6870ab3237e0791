"""Declarative base and naming convention for the relational source schema.

Every constraint in the source schema has a stable name: explicit names for
CHECK constraints and indexes, the naming convention below for primary keys,
foreign keys and column-level UNIQUE constraints. The constraint translation
report refers to constraints by these names.
"""

from __future__ import annotations

import datetime
from decimal import Decimal

from sqlalchemy import Boolean, Date, DateTime, Integer, MetaData, Numeric, Text
from sqlalchemy.orm import DeclarativeBase

NAMING_CONVENTION = {
    "pk": "pk_%(table_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "uq": "uq_%(table_name)s_%(column_0_N_name)s",
    "ix": "ix_%(table_name)s_%(column_0_N_name)s",
}


class EtfBase(DeclarativeBase):
    """Shared declarative base for every source table.

    ``type_annotation_map`` resolves plain annotations:

    * ``str``      → ``Text``
    * ``int``      → ``Integer``
    * ``bool``     → ``Boolean``
    * ``date``     → ``Date``
    * ``datetime`` → ``DateTime``
    * ``Decimal``  → ``Numeric(18, 6)``
    """

    metadata = MetaData(naming_convention=NAMING_CONVENTION)

    type_annotation_map = {
        str: Text,
        int: Integer,
        bool: Boolean,
        datetime.date: Date,
        datetime.datetime: DateTime,
        Decimal: Numeric(18, 6),
    }
