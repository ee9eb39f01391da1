"""
Configuration Loader (``payroll_config.loader``).

Responsibility
--------------
Loads a YAML configuration file and parses it into the frozen dataclasses
of ``payroll_config.schema``.  The single public entry point for runtime
config is ``payroll_config.get_active_config()``.

Invariants enforced
-------------------
* Unknown keys are errors, never silently ignored.
* Monetary/decimal values are parsed via ``Decimal(str(...))``.
* ``compute_checksum`` is deterministic for identical configurations.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys -> ``KeyError`` propagates.
* Unknown keys or out-of-range values -> ``ValueError``.
"""

from __future__ import annotations

from dataclasses import replace
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from payroll_config.schema import (
    DatabaseSettings,
    LoggingSettings,
    PayrollConfig,
    SettlementPolicy,
)
from payroll_kernel.utils.hashing import hash_payload

_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def _reject_unknown(section: str, data: dict[str, Any], allowed: set[str]) -> None:
    unknown = sorted(set(data) - allowed)
    if unknown:
        raise ValueError(f"Unknown key(s) in '{section}': {', '.join(unknown)}")


def parse_decimal(value: Any, field_name: str) -> Decimal:
    """Parse a YAML scalar into a Decimal without going through binary float."""
    if isinstance(value, bool):
        raise ValueError(f"{field_name} must be a number, got {value!r}")
    try:
        result = Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"{field_name} must be a number, got {value!r}") from exc
    if not result.is_finite():
        raise ValueError(f"{field_name} must be finite, got {value!r}")
    return result


def parse_database(data: dict[str, Any]) -> DatabaseSettings:
    _reject_unknown("database", data, {"url", "echo", "pool_size", "max_overflow"})
    defaults = DatabaseSettings()
    return DatabaseSettings(
        url=str(data.get("url", defaults.url)),
        echo=bool(data.get("echo", defaults.echo)),
        pool_size=int(data.get("pool_size", defaults.pool_size)),
        max_overflow=int(data.get("max_overflow", defaults.max_overflow)),
    )


def parse_settlement(data: dict[str, Any]) -> SettlementPolicy:
    """
    Parse and validate the settlement section.

    Raises:
        ValueError: non-positive notional days/hours, attempts < 1, or
            decimal places outside 0..9.
    """
    _reject_unknown(
        "settlement",
        data,
        {
            "bonus_notional_days",
            "bonus_notional_hours_per_day",
            "money_decimal_places",
            "max_commit_attempts",
            "lock_overlapping_periods",
        },
    )
    defaults = SettlementPolicy()
    policy = SettlementPolicy(
        bonus_notional_days=int(data.get("bonus_notional_days", defaults.bonus_notional_days)),
        bonus_notional_hours_per_day=parse_decimal(
            data.get("bonus_notional_hours_per_day", defaults.bonus_notional_hours_per_day),
            "bonus_notional_hours_per_day",
        ),
        money_decimal_places=int(data.get("money_decimal_places", defaults.money_decimal_places)),
        max_commit_attempts=int(data.get("max_commit_attempts", defaults.max_commit_attempts)),
        lock_overlapping_periods=bool(
            data.get("lock_overlapping_periods", defaults.lock_overlapping_periods)
        ),
    )

    if policy.bonus_notional_days <= 0:
        raise ValueError("bonus_notional_days must be positive")
    if policy.bonus_notional_hours_per_day <= 0:
        raise ValueError("bonus_notional_hours_per_day must be positive")
    if not 0 <= policy.money_decimal_places <= 9:
        raise ValueError("money_decimal_places must be between 0 and 9")
    if policy.max_commit_attempts < 1:
        raise ValueError("max_commit_attempts must be at least 1")
    return policy


def parse_logging(data: dict[str, Any]) -> LoggingSettings:
    _reject_unknown("logging", data, {"level"})
    level = str(data.get("level", LoggingSettings().level)).upper()
    if level not in _LOG_LEVELS:
        raise ValueError(f"Unknown log level: {level}")
    return LoggingSettings(level=level)


def parse_config(data: dict[str, Any]) -> PayrollConfig:
    """
    Parse a whole configuration document.

    Required top-level keys: config_id, version.
    """
    _reject_unknown(
        "root", data, {"config_id", "version", "database", "settlement", "logging"}
    )
    config = PayrollConfig(
        config_id=str(data["config_id"]),
        version=int(data["version"]),
        database=parse_database(data.get("database") or {}),
        settlement=parse_settlement(data.get("settlement") or {}),
        logging=parse_logging(data.get("logging") or {}),
    )
    return replace(config, checksum=compute_checksum(config))


def compute_checksum(config: PayrollConfig) -> str:
    """
    SHA-256 of the canonical JSON form of the configuration.

    The database URL is left out so the same settings checksum alike across
    environments.
    """
    data = config.to_dict()
    data["database"].pop("url")
    return hash_payload(data)


def load_config_file(path: Path) -> PayrollConfig:
    return parse_config(load_yaml_file(path))
