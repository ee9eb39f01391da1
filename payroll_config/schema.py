"""
Configuration schema (``payroll_config.schema``).

Frozen dataclasses produced by ``payroll_config.loader``.  Nothing here reads
files or the environment.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from decimal import Decimal
from typing import Any


@dataclass(frozen=True)
class DatabaseSettings:
    """Connection settings handed to ``init_engine_from_url``."""

    url: str = "sqlite:///payroll.db"
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10


@dataclass(frozen=True)
class SettlementPolicy:
    """
    Knobs of the settlement engine.

    Attributes:
        bonus_notional_days: Days in the fixed notional bonus month.
        bonus_notional_hours_per_day: Hours per notional bonus day.
        money_decimal_places: Places computed amounts are rounded to.
        max_commit_attempts: Fresh attempts per worker on a version conflict.
        lock_overlapping_periods: If True, any shared day with a live
            snapshot of the same kind blocks a commit; if False only an
            identical period does.
    """

    bonus_notional_days: int = 30
    bonus_notional_hours_per_day: Decimal = Decimal("8")
    money_decimal_places: int = 2
    max_commit_attempts: int = 3
    lock_overlapping_periods: bool = True


@dataclass(frozen=True)
class LoggingSettings:
    level: str = "INFO"


@dataclass(frozen=True)
class PayrollConfig:
    """The whole runtime configuration."""

    config_id: str
    version: int
    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    settlement: SettlementPolicy = field(default_factory=SettlementPolicy)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    checksum: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Plain-data view, without the checksum."""
        data = asdict(self)
        data.pop("checksum")
        return data
