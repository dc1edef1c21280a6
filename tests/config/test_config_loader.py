"""
Tests for YAML configuration loading and the policy bridge.

Tests cover:
1. Shipped defaults
2. Partial files fall back to defaults
3. Rejection of unknown keys and invalid values
4. Checksum identity and the LIBRARY_CONFIG_TRACE log
"""

from decimal import Decimal

import pytest
import yaml

from library_config import (
    DEFAULT_CONFIG_PATH,
    ConfigurationError,
    get_active_config,
    to_policy,
)
from library_config.loader import compute_checksum, load_config, parse_config


def _write(tmp_path, data, name="circulation.yaml"):
    path = tmp_path / name
    path.write_text(yaml.safe_dump(data))
    return path


class TestShippedDefaults:
    def test_default_file_loads(self):
        config = get_active_config()
        assert config.config_id == "default"
        assert config.fines.daily_rate == Decimal("0.50")
        assert config.fines.lost_book_replacement_cost == Decimal("25.00")
        assert config.lending.loan_period_days == 14
        assert dict(config.lending.role_limits) == {"ADMIN": 10, "LIBRARIAN": 10, "MEMBER": 5}
        assert config.orchestrator.conflict_retries == 1
        assert config.orchestrator.statement_timeout_ms == 5000
        assert len(config.checksum) == 64

    def test_bridge_to_policy(self):
        policy = to_policy(get_active_config(DEFAULT_CONFIG_PATH))
        assert policy.daily_fine_rate == Decimal("0.50")
        assert policy.fine_payment_days == 30
        assert policy.max_books_for("LIBRARIAN") == 10
        assert policy.max_page_size == 1000


class TestPartialFiles:
    def test_missing_sections_use_defaults(self, tmp_path):
        config = load_config(_write(tmp_path, {"config_id": "branch", "version": 2}))
        assert config.version == 2
        assert config.fines.daily_rate == Decimal("0.50")
        assert config.orchestrator.statement_timeout_ms is None

    def test_overrides_applied(self, tmp_path):
        path = _write(
            tmp_path,
            {
                "config_id": "strict",
                "version": 1,
                "lending": {"loan_period_days": 7, "role_limits": {"member": 2}},
                "fines": {"daily_rate": "1.00"},
            },
        )
        policy = to_policy(load_config(path))
        assert policy.loan_period_days == 7
        assert policy.max_books_for("MEMBER") == 2
        assert policy.daily_fine_rate == Decimal("1.00")

    def test_yaml_float_rate_is_exact(self, tmp_path):
        path = tmp_path / "float.yaml"
        path.write_text("config_id: f\nversion: 1\nfines:\n  daily_rate: 0.1\n")
        assert load_config(path).fines.daily_rate == Decimal("0.1")


class TestRejection:
    @pytest.mark.parametrize(
        "data, key",
        [
            ({"version": 1}, "config_id"),
            ({"config_id": "x"}, "version"),
            ({"config_id": "x", "version": 1, "extra": {}}, "<root>"),
            ({"config_id": "x", "version": 1, "fines": {"rate": "1"}}, "fines"),
            ({"config_id": "x", "version": 1, "fines": {"daily_rate": "-1"}}, "fines.daily_rate"),
            ({"config_id": "x", "version": 1, "fines": {"daily_rate": "abc"}}, "fines.daily_rate"),
            (
                {"config_id": "x", "version": 1, "fines": {"lost_book_replacement_cost": "0"}},
                "fines.lost_book_replacement_cost",
            ),
            (
                {"config_id": "x", "version": 1, "lending": {"loan_period_days": 0}},
                "lending.loan_period_days",
            ),
            (
                {"config_id": "x", "version": 1, "lending": {"loan_period_days": True}},
                "lending.loan_period_days",
            ),
            (
                {"config_id": "x", "version": 1, "paging": {"default_page_size": 50, "max_page_size": 10}},
                "paging.default_page_size",
            ),
            (
                {"config_id": "x", "version": 1, "orchestrator": {"store_retry_backoff_seconds": -1}},
                "orchestrator.store_retry_backoff_seconds",
            ),
            ({"config_id": "x", "version": 1, "database": {"echo": "yes"}}, "database.echo"),
        ],
    )
    def test_invalid_values(self, data, key):
        with pytest.raises(ConfigurationError) as exc_info:
            parse_config(data)
        assert exc_info.value.key == key
        assert exc_info.value.code == "CONFIGURATION_ERROR"

    def test_malformed_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("fines: [unclosed\n")
        with pytest.raises(ConfigurationError):
            load_config(path)

    def test_non_mapping(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- 1\n- 2\n")
        with pytest.raises(ConfigurationError):
            load_config(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_config(tmp_path / "absent.yaml")


class TestChecksum:
    def test_independent_of_key_order(self):
        assert compute_checksum({"a": 1, "b": 2}) == compute_checksum({"b": 2, "a": 1})

    def test_changes_with_content(self):
        assert compute_checksum({"a": 1}) != compute_checksum({"a": 2})

    def test_trace_logged(self, captured_logs):
        config = get_active_config()
        traces = [r for r in captured_logs() if r["message"] == "LIBRARY_CONFIG_TRACE"]
        assert traces
        assert traces[-1]["checksum"] == config.checksum
        assert traces[-1]["config_id"] == "default"
