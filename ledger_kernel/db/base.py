"""
Declarative base and column types shared by every ledger table.

Conventions applied through ``Base.type_annotation_map``:
    - Primary keys are uuid4 values stored as ``String(36)`` (``UUIDString``).
    - Money is ``Decimal`` -> ``Numeric(38, 9)``; floats are never stored.
    - ``datetime`` columns use ``UTCDateTime``: written as naive UTC, read
      back timezone-aware.  SQLite would otherwise hand back naive values
      that cannot be compared with ``Clock.now()``.

``TrackedBase`` adds server-stamped ``created_at`` / ``updated_at``.
Nothing in this module imports models or services.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import BigInteger, DateTime, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """uuid.UUID in Python, 36-character text in the database."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return None if value is None else str(value)

    def process_result_value(self, value, dialect):
        return None if value is None else PyUUID(str(value))


class UTCDateTime(TypeDecorator):
    """Aware datetimes in, aware UTC datetimes out.

    Offsets are converted to UTC before the value is stored without tzinfo,
    so SQL comparisons stay correct.  A naive value on either side is taken
    to be UTC already.
    """

    impl = DateTime(timezone=False)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None or value.tzinfo is None:
            return value
        return value.astimezone(timezone.utc).replace(tzinfo=None)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class Base(DeclarativeBase):
    type_annotation_map: ClassVar[dict] = {
        PyUUID: UUIDString(),
        Decimal: Numeric(38, 9),
        datetime: UTCDateTime(),
        int: BigInteger,
    }

    id: Mapped[PyUUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)


class TrackedBase(Base):
    """Abstract base whose rows carry insert and last-update timestamps."""

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now(),
    )


UUID = PyUUID
