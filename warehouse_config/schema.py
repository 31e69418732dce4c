"""
Configuration schema (``warehouse_config.schema``).

Responsibility
--------------
Frozen dataclasses describing the warehouse configuration set: database
connection, ledger behaviour and logging.  Every dataclass validates itself
in ``__post_init__`` and raises ``ValueError`` on bad values.

Architecture position
---------------------
**Config layer**.  Imported by ``warehouse_config.loader`` and by the
services that receive a ``WarehouseConfig``.  No dependency on the kernel's
database or services.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


@dataclass(frozen=True)
class DatabaseSettings:
    """Connection settings handed to ``init_engine_from_url``."""

    url: str = "sqlite+pysqlite:///:memory:"
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10

    def __post_init__(self) -> None:
        if not self.url:
            raise ValueError("database.url is required")
        if self.pool_size < 1:
            raise ValueError(f"database.pool_size must be >= 1, got {self.pool_size}")
        if self.max_overflow < 0:
            raise ValueError(
                f"database.max_overflow must be >= 0, got {self.max_overflow}"
            )


@dataclass(frozen=True)
class LedgerSettings:
    """
    Stock ledger behaviour.

    quantity_tolerance: slack allowed between the pieces and the base
        quantity of a batch after conversion, and below which a batch
        counts as exhausted.
    enforce_job_return_balance: reject returns to a lot larger than what the
        job site holds from that lot.
    max_lock_retries: retries of a unit of work after an optimistic lock
        conflict on a batch row.
    """

    currency: str = "EUR"
    quantity_tolerance: Decimal = Decimal("0.001")
    enforce_job_return_balance: bool = True
    max_lock_retries: int = 3
    default_unit: str = "pz"

    def __post_init__(self) -> None:
        if self.quantity_tolerance < 0:
            raise ValueError(
                f"ledger.quantity_tolerance must be >= 0, got {self.quantity_tolerance}"
            )
        if self.max_lock_retries < 0:
            raise ValueError(
                f"ledger.max_lock_retries must be >= 0, got {self.max_lock_retries}"
            )
        if not self.currency:
            raise ValueError("ledger.currency is required")


@dataclass(frozen=True)
class LoggingSettings:
    level: str = "INFO"

    def __post_init__(self) -> None:
        if self.level.upper() not in _LOG_LEVELS:
            raise ValueError(f"logging.level must be one of {sorted(_LOG_LEVELS)}")


@dataclass(frozen=True)
class WarehouseConfig:
    """The complete, validated configuration set."""

    config_id: str = "default"
    version: int = 1
    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    ledger: LedgerSettings = field(default_factory=LedgerSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    checksum: str = ""
