"""
Configuration Loader (``warehouse_config.loader``).

Responsibility
--------------
Loads the YAML configuration file and parses it into the frozen
``warehouse_config.schema`` dataclasses.  Services never call this directly;
the single public entry point is ``warehouse_config.get_active_config()``.

Invariants enforced
-------------------
* Every parsed object is a frozen dataclass from ``schema.py``.
* Quantities are parsed from their string form into ``Decimal``; a float
  never enters the ledger settings.
* ``compute_checksum`` produces a deterministic SHA-256 hash for
  configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Invalid values  -> ``ValueError`` from the schema dataclasses.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from warehouse_config.schema import (
    DatabaseSettings,
    LedgerSettings,
    LoggingSettings,
    WarehouseConfig,
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Read a YAML file and return its top-level mapping.

    Raises:
        FileNotFoundError: if the path does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_decimal(value: Any, name: str) -> Decimal:
    """Parse a YAML scalar into Decimal via its string form."""
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"{name} is not a number: {value!r}") from exc


def parse_database(data: dict[str, Any]) -> DatabaseSettings:
    defaults = DatabaseSettings()
    return DatabaseSettings(
        url=data.get("url", defaults.url),
        echo=bool(data.get("echo", defaults.echo)),
        pool_size=int(data.get("pool_size", defaults.pool_size)),
        max_overflow=int(data.get("max_overflow", defaults.max_overflow)),
    )


def parse_ledger(data: dict[str, Any]) -> LedgerSettings:
    defaults = LedgerSettings()
    return LedgerSettings(
        currency=data.get("currency", defaults.currency),
        quantity_tolerance=parse_decimal(
            data.get("quantity_tolerance", str(defaults.quantity_tolerance)),
            "ledger.quantity_tolerance",
        ),
        enforce_job_return_balance=bool(
            data.get("enforce_job_return_balance", defaults.enforce_job_return_balance)
        ),
        max_lock_retries=int(data.get("max_lock_retries", defaults.max_lock_retries)),
        default_unit=data.get("default_unit", defaults.default_unit),
    )


def parse_logging(data: dict[str, Any]) -> LoggingSettings:
    return LoggingSettings(level=str(data.get("level", "INFO")).upper())


def parse_config(data: dict[str, Any]) -> WarehouseConfig:
    """Parse a raw configuration mapping into a WarehouseConfig."""
    return WarehouseConfig(
        config_id=str(data.get("config_id", "default")),
        version=int(data.get("version", 1)),
        database=parse_database(data.get("database") or {}),
        ledger=parse_ledger(data.get("ledger") or {}),
        logging=parse_logging(data.get("logging") or {}),
        checksum=compute_checksum(data),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Identical ``data`` always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
