"""Tests for ledger_config: loader, schema and get_active_config()."""

from pathlib import Path

import pytest
import yaml

from ledger_config import get_active_config
from ledger_config.loader import compute_checksum, parse_config, parse_payments
from ledger_config.schema import LedgerConfig
from ledger_kernel.exceptions import InvalidCurrencyError


def _write(tmp_path: Path, data: dict) -> Path:
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump(data))
    return path


MINIMAL = {
    "config_id": "test",
    "version": 2,
    "database": {"url": "sqlite://"},
}


class TestGetActiveConfig:
    def test_default_set_loads(self):
        config = get_active_config()
        assert isinstance(config, LedgerConfig)
        assert config.config_id == "ledger-default"
        assert config.payments.queue_payments is False
        assert config.payments.default_currency == "USD"
        assert len(config.checksum) == 64

    def test_emits_trace(self, tmp_path, captured_logs):
        config = get_active_config(_write(tmp_path, MINIMAL))

        traces = [r for r in captured_logs() if r["message"] == "LEDGER_CONFIG_TRACE"]
        assert len(traces) == 1
        assert traces[0]["config_set_id"] == "test"
        assert traces[0]["checksum"] == config.checksum

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_config(tmp_path / "absent.yaml")


class TestParseConfig:
    def test_defaults(self):
        config = parse_config(MINIMAL)
        assert config.version == 2
        assert config.database.pool_size == 20
        assert config.logging.level == "INFO"
        assert config.payments.worker_tick_seconds == 30

    def test_missing_database_url(self):
        with pytest.raises(KeyError):
            parse_config({"config_id": "x", "version": 1, "database": {}})

    def test_bad_pool_size(self):
        data = dict(MINIMAL, database={"url": "sqlite://", "pool_size": -1})
        with pytest.raises(ValueError):
            parse_config(data)

    def test_bad_log_level(self):
        with pytest.raises(ValueError):
            parse_config(dict(MINIMAL, logging={"level": "LOUD"}))

    def test_payments_section(self):
        payments = parse_payments({"queue_payments": True, "default_currency": "eur"})
        assert payments.queue_payments is True
        assert payments.default_currency == "EUR"

    def test_unknown_currency(self):
        with pytest.raises(InvalidCurrencyError):
            parse_payments({"default_currency": "ZZZ"})

    def test_checksum_is_deterministic(self):
        reordered = {"database": {"url": "sqlite://"}, "version": 2, "config_id": "test"}
        assert compute_checksum(MINIMAL) == compute_checksum(reordered)
        assert compute_checksum(MINIMAL) != compute_checksum(dict(MINIMAL, version=3))
