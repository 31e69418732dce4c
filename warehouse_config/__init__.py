"""
warehouse_config -- single public entrypoint for warehouse configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  Returns a frozen ``WarehouseConfig``.

Architecture position:
    Configuration.  Sits beside ``warehouse_kernel`` and below
    ``warehouse_services``.  The kernel MUST NEVER import from
    ``warehouse_config``; services receive the parsed settings.

Failure modes:
    - ``FileNotFoundError`` -- the configuration file does not exist.
    - ``ValueError`` -- a value fails schema validation.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``WAREHOUSE_CONFIG_TRACE`` log entry with the config id, version and
    checksum of the parsed file.
"""

from __future__ import annotations

import logging
from pathlib import Path

from warehouse_config.loader import load_yaml_file, parse_config
from warehouse_config.schema import (
    DatabaseSettings,
    LedgerSettings,
    LoggingSettings,
    WarehouseConfig,
)

_logger = logging.getLogger("warehouse_kernel.config")

# Default configuration file
_DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"


def get_active_config(config_path: Path | None = None) -> WarehouseConfig:
    """The ONLY public configuration entrypoint.

    Args:
        config_path: Override path to a configuration file.
            Defaults to warehouse_config/sets/default.yaml.

    Returns:
        WarehouseConfig -- validated and frozen.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If configuration validation fails.
    """
    path = config_path or _DEFAULT_CONFIG_PATH
    config = parse_config(load_yaml_file(path))

    _logger.info(
        "WAREHOUSE_CONFIG_TRACE",
        extra={
            "trace_type": "WAREHOUSE_CONFIG_TRACE",
            "config_set_id": config.config_id,
            "config_set_version": config.version,
            "checksum": config.checksum,
            "config_path": str(path),
        },
    )
    return config


__all__ = [
    "get_active_config",
    "WarehouseConfig",
    "DatabaseSettings",
    "LedgerSettings",
    "LoggingSettings",
]
