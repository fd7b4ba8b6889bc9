"""Declarative base and type-map for the jobspine ORM models.

Uses SQLAlchemy 2.0 ``DeclarativeBase`` with a ``type_annotation_map``
that maps Python built-in types to portable SA column types:

* ``str``   → ``Text``
* ``int``   → ``Integer``
* ``datetime.datetime`` → ``DateTime(timezone=True)``
* ``dict``  → ``JSON``    (stored as TEXT in SQLite, native JSON elsewhere)
"""

from __future__ import annotations

import datetime

from sqlalchemy import JSON, DateTime, Integer, Text
from sqlalchemy.orm import DeclarativeBase


class JobSpineBase(DeclarativeBase):
    """Shared declarative base for every jobspine table."""

    type_annotation_map = {
        str: Text,
        int: Integer,
        datetime.datetime: DateTime(timezone=True),
        dict: JSON,
    }
