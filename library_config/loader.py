"""
Configuration Loader (``library_config.loader``).

Responsibility
--------------
Loads a YAML configuration file and parses it into the typed
``library_config.schema`` dataclasses.  The single public entry point for
runtime config is ``library_config.get_active_config()``.

Invariants enforced
-------------------
* Every parse error raises ``ConfigurationError`` naming the offending key;
  unknown keys are rejected rather than ignored.
* Money values are parsed to ``Decimal`` from their string form.
* ``compute_checksum`` produces a deterministic SHA-256 hash for
  configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``ConfigurationError`` (wrapping ``yaml.YAMLError``).
* Wrong types, out-of-range values, unknown keys -> ``ConfigurationError``.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from library_config.schema import (
    CirculationConfig,
    DatabaseConfig,
    FineConfig,
    LendingConfig,
    OrchestratorConfig,
    PagingConfig,
)


class ConfigurationError(ValueError):
    """Configuration file is malformed or holds invalid values."""

    code: str = "CONFIGURATION_ERROR"

    def __init__(self, key: str, reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f"Invalid configuration at '{key}': {reason}")


_SECTIONS = ("lending", "fines", "paging", "orchestrator", "database")
_TOP_LEVEL_KEYS = frozenset(("config_id", "version", *_SECTIONS))


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        ConfigurationError: if the file is not valid YAML or not a mapping.
    """
    with open(path) as f:
        try:
            data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ConfigurationError(str(path), f"invalid YAML: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError(str(path), "top level must be a mapping")
    return data


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 checksum of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


# ---------------------------------------------------------------------------
# Field parsers
# ---------------------------------------------------------------------------


def _section(data: dict[str, Any], name: str, allowed: set[str]) -> dict[str, Any]:
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise ConfigurationError(name, "must be a mapping")
    unknown = set(section) - allowed
    if unknown:
        raise ConfigurationError(name, f"unknown keys {sorted(unknown)}")
    return section


def _int(section: dict[str, Any], key: str, path: str, default: int, minimum: int = 1) -> int:
    value = section.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigurationError(f"{path}.{key}", f"expected integer, got {value!r}")
    if value < minimum:
        raise ConfigurationError(f"{path}.{key}", f"must be >= {minimum}")
    return value


def _decimal(section: dict[str, Any], key: str, path: str, default: Decimal) -> Decimal:
    value = section.get(key, default)
    if isinstance(value, bool):
        raise ConfigurationError(f"{path}.{key}", f"expected amount, got {value!r}")
    try:
        # YAML floats go through str() so 0.5 stays exactly 0.5
        amount = Decimal(str(value))
    except InvalidOperation as exc:
        raise ConfigurationError(f"{path}.{key}", f"expected amount, got {value!r}") from exc
    if not amount.is_finite() or amount < 0:
        raise ConfigurationError(f"{path}.{key}", "must be a non-negative amount")
    return amount


def parse_lending(data: dict[str, Any]) -> LendingConfig:
    section = _section(data, "lending", {"loan_period_days", "default_max_books", "role_limits"})
    defaults = LendingConfig()
    raw_limits = section.get("role_limits", dict(defaults.role_limits))
    if not isinstance(raw_limits, dict):
        raise ConfigurationError("lending.role_limits", "must be a mapping of role to limit")
    role_limits = tuple(
        (str(role).upper(), _int(raw_limits, role, "lending.role_limits", 0))
        for role in sorted(raw_limits)
    )
    return LendingConfig(
        loan_period_days=_int(section, "loan_period_days", "lending", defaults.loan_period_days),
        default_max_books=_int(section, "default_max_books", "lending", defaults.default_max_books),
        role_limits=role_limits,
    )


def parse_fines(data: dict[str, Any]) -> FineConfig:
    section = _section(data, "fines", {"daily_rate", "payment_days", "lost_book_replacement_cost"})
    defaults = FineConfig()
    cost = _decimal(
        section, "lost_book_replacement_cost", "fines", defaults.lost_book_replacement_cost
    )
    if cost == 0:
        raise ConfigurationError("fines.lost_book_replacement_cost", "must be positive")
    return FineConfig(
        daily_rate=_decimal(section, "daily_rate", "fines", defaults.daily_rate),
        payment_days=_int(section, "payment_days", "fines", defaults.payment_days),
        lost_book_replacement_cost=cost,
    )


def parse_paging(data: dict[str, Any]) -> PagingConfig:
    section = _section(data, "paging", {"default_page_size", "max_page_size"})
    defaults = PagingConfig()
    paging = PagingConfig(
        default_page_size=_int(section, "default_page_size", "paging", defaults.default_page_size),
        max_page_size=_int(section, "max_page_size", "paging", defaults.max_page_size),
    )
    if paging.default_page_size > paging.max_page_size:
        raise ConfigurationError("paging.default_page_size", "exceeds max_page_size")
    return paging


def parse_orchestrator(data: dict[str, Any]) -> OrchestratorConfig:
    section = _section(
        data,
        "orchestrator",
        {
            "conflict_retries",
            "store_retry_attempts",
            "store_retry_backoff_seconds",
            "statement_timeout_ms",
        },
    )
    defaults = OrchestratorConfig()
    backoff = section.get("store_retry_backoff_seconds", defaults.store_retry_backoff_seconds)
    if isinstance(backoff, bool) or not isinstance(backoff, (int, float)) or backoff < 0:
        raise ConfigurationError(
            "orchestrator.store_retry_backoff_seconds", "must be a non-negative number"
        )
    timeout = section.get("statement_timeout_ms")
    return OrchestratorConfig(
        conflict_retries=_int(
            section, "conflict_retries", "orchestrator", defaults.conflict_retries, minimum=0
        ),
        store_retry_attempts=_int(
            section, "store_retry_attempts", "orchestrator", defaults.store_retry_attempts
        ),
        store_retry_backoff_seconds=float(backoff),
        statement_timeout_ms=(
            _int(section, "statement_timeout_ms", "orchestrator", 0)
            if timeout is not None
            else None
        ),
    )


def parse_database(data: dict[str, Any]) -> DatabaseConfig:
    section = _section(data, "database", {"url", "echo", "pool_size", "max_overflow"})
    defaults = DatabaseConfig()
    url = section.get("url", defaults.url)
    if not isinstance(url, str) or not url:
        raise ConfigurationError("database.url", "must be a non-empty string")
    echo = section.get("echo", defaults.echo)
    if not isinstance(echo, bool):
        raise ConfigurationError("database.echo", "must be true or false")
    return DatabaseConfig(
        url=url,
        echo=echo,
        pool_size=_int(section, "pool_size", "database", defaults.pool_size),
        max_overflow=_int(section, "max_overflow", "database", defaults.max_overflow, minimum=0),
    )


def parse_config(data: dict[str, Any]) -> CirculationConfig:
    """
    Parse a full configuration mapping.

    Raises:
        ConfigurationError: on any missing, unknown or invalid key.
    """
    unknown = set(data) - _TOP_LEVEL_KEYS
    if unknown:
        raise ConfigurationError("<root>", f"unknown keys {sorted(unknown)}")
    if "config_id" not in data:
        raise ConfigurationError("config_id", "is required")
    if "version" not in data:
        raise ConfigurationError("version", "is required")

    return CirculationConfig(
        config_id=str(data["config_id"]),
        version=_int(data, "version", "<root>", 1),
        lending=parse_lending(data),
        fines=parse_fines(data),
        paging=parse_paging(data),
        orchestrator=parse_orchestrator(data),
        database=parse_database(data),
        checksum=compute_checksum(data),
    )


def load_config(path: Path) -> CirculationConfig:
    """Load and parse one YAML configuration file."""
    return parse_config(load_yaml_file(path))
