"""
Base class for the kernel's read-side query objects.

A selector borrows the caller's Session, runs SELECTs only and hands back
frozen records from ``warehouse_kernel.domain.dtos`` rather than ORM rows,
so nothing a service reads through it can be flushed by accident.  The
transaction stays with whoever opened the session.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from warehouse_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseSelector(ABC, Generic[ModelType]):
    """Read-only queries over one primary model."""

    def __init__(self, session: Session):
        self.session = session
