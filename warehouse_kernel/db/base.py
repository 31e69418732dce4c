"""
Module: warehouse_kernel.db.base
Responsibility: Declarative base for the warehouse tables: portable UUID
    keys, one Decimal column type for every quantity and price, and audit
    columns shared by items, batches and movements.
Architecture position: Kernel > DB.  Imported by every model; imports
    nothing from the rest of the kernel.

Invariants enforced:
    - Keys are UUIDs stored as 36-character strings so SQLite and PostgreSQL
      hold the same values.  Movement ids come from the caller (they are the
      idempotency key); every other key defaults to uuid4.
    - A Decimal annotation becomes Numeric(38, 9).  Quantities, pieces,
      coefficients and prices never pass through float.

Audit relevance:
    created_by_id / updated_by_id are nullable: the web application does not
    always forward an operator to the stock kernel.
"""

from datetime import datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import BigInteger, DateTime, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """UUID column persisted as String(36)."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return None if value is None else str(value)

    def process_result_value(self, value, dialect):
        return None if value is None else PyUUID(value)


class Base(DeclarativeBase):
    """Every warehouse table: UUID ``id`` plus the shared annotation map."""

    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(38, 9),
        datetime: DateTime(timezone=True),
        PyUUID: UUIDString(),
        int: BigInteger,
    }

    id: Mapped[PyUUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)


class TrackedBase(Base):
    """
    Adds who/when columns.

    Timestamps are filled by the database server.  These columns are
    metadata, so they may change even on batches whose business fields are
    frozen by db/immutability.py.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )
    created_by_id: Mapped[PyUUID | None] = mapped_column(UUIDString(), nullable=True)
    updated_by_id: Mapped[PyUUID | None] = mapped_column(UUIDString(), nullable=True)


UUID = PyUUID
