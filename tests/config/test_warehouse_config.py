"""Tests for warehouse_config: loading, validation and the config trace."""

from decimal import Decimal

import pytest
import yaml

from warehouse_config import LedgerSettings, WarehouseConfig, get_active_config
from warehouse_config.loader import compute_checksum, parse_config
from warehouse_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_engine,
    get_session_factory,
    reset_engine,
)
from warehouse_services.inventory_engine import InventoryEngine


def _write_config(tmp_path, data: dict):
    path = tmp_path / "warehouse.yaml"
    path.write_text(yaml.safe_dump(data))
    return path


class TestGetActiveConfig:
    """The packaged default set and file overrides."""

    def test_default_set_loads(self):
        config = get_active_config()

        assert isinstance(config, WarehouseConfig)
        assert config.config_id == "default"
        assert config.ledger.quantity_tolerance == Decimal("0.001")
        assert config.ledger.max_lock_retries == 3
        assert config.ledger.default_unit == "pz"
        assert len(config.checksum) == 64

    def test_config_trace_logged(self, captured_logs):
        config = get_active_config()

        traces = [r for r in captured_logs() if r["message"] == "WAREHOUSE_CONFIG_TRACE"]
        assert len(traces) == 1
        assert traces[0]["checksum"] == config.checksum
        assert traces[0]["config_set_id"] == "default"

    def test_file_override(self, tmp_path):
        path = _write_config(tmp_path, {
            "config_id": "site-north",
            "version": 4,
            "database": {"url": "sqlite+pysqlite:///:memory:"},
            "ledger": {"quantity_tolerance": "0.01", "enforce_job_return_balance": False},
            "logging": {"level": "debug"},
        })

        config = get_active_config(path)

        assert config.config_id == "site-north"
        assert config.version == 4
        assert config.ledger.quantity_tolerance == Decimal("0.01")
        assert config.ledger.enforce_job_return_balance is False
        assert config.ledger.currency == "EUR"
        assert config.logging.level == "DEBUG"

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_config(tmp_path / "absent.yaml")

    def test_empty_file_gives_defaults(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")

        config = get_active_config(path)

        assert config.ledger == LedgerSettings()


class TestValidation:
    """Bad values are rejected when the config is parsed."""

    def test_negative_tolerance_rejected(self, tmp_path):
        path = _write_config(tmp_path, {"ledger": {"quantity_tolerance": "-0.5"}})
        with pytest.raises(ValueError, match="quantity_tolerance"):
            get_active_config(path)

    def test_non_numeric_tolerance_rejected(self, tmp_path):
        path = _write_config(tmp_path, {"ledger": {"quantity_tolerance": "a lot"}})
        with pytest.raises(ValueError, match="not a number"):
            get_active_config(path)

    def test_negative_retries_rejected(self):
        with pytest.raises(ValueError, match="max_lock_retries"):
            parse_config({"ledger": {"max_lock_retries": -1}})

    def test_unknown_log_level_rejected(self, tmp_path):
        path = _write_config(tmp_path, {"logging": {"level": "verbose"}})
        with pytest.raises(ValueError, match="logging.level"):
            get_active_config(path)

    def test_empty_database_url_rejected(self):
        with pytest.raises(ValueError, match="database.url"):
            parse_config({"database": {"url": ""}})


class TestChecksum:

    def test_checksum_ignores_key_order(self):
        a = {"config_id": "x", "ledger": {"currency": "EUR", "max_lock_retries": 2}}
        b = {"ledger": {"max_lock_retries": 2, "currency": "EUR"}, "config_id": "x"}
        assert compute_checksum(a) == compute_checksum(b)

    def test_checksum_changes_with_content(self):
        assert compute_checksum({"version": 1}) != compute_checksum({"version": 2})


class TestEngineFromConfig:
    """InventoryEngine.from_config wires the module-level engine."""

    def test_from_config_builds_working_engine(self, tmp_path):
        path = _write_config(tmp_path, {
            "database": {"url": "sqlite+pysqlite:///:memory:"},
            "ledger": {"default_unit": "m"},
        })
        config = get_active_config(path)

        facade = InventoryEngine.from_config(config)
        try:
            create_tables()
            item = facade.register_item("CABLE-FG7", "Fire-rated cable")

            assert facade.get_item(item.id).unit == "m"
            assert get_engine().dialect.name == "sqlite"
            drop_tables()
        finally:
            reset_engine()

        with pytest.raises(RuntimeError, match="not initialized"):
            get_session_factory()
