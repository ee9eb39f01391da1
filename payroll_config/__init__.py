"""
payroll_config -- single public entrypoint for payroll configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component reads configuration files
    or environment variables directly.

Architecture position:
    Configuration -- sits above ``payroll_kernel`` and below
    ``payroll_services``.  The kernel MUST NEVER import from
    ``payroll_config``; the service facade translates the settings into
    kernel constructor arguments.

Invariants enforced:
    - Single entrypoint: all runtime config flows through ``get_active_config()``.
    - ``PAYROLL_DATABASE_URL``, when set, overrides the database URL and
      nothing else.
    - Same YAML always yields the same checksum.

Failure modes:
    - ``FileNotFoundError`` -- the configuration file does not exist.
    - ``ValueError`` -- unknown keys or out-of-range values.

Audit relevance:
    Every successful call emits a ``payroll_config_loaded`` log entry with
    the config id, version and checksum, tying settlements to the exact
    settings that governed them.
"""

from __future__ import annotations

import logging
import os
from dataclasses import replace
from pathlib import Path

from payroll_config.loader import compute_checksum, load_config_file
from payroll_config.schema import (
    DatabaseSettings,
    LoggingSettings,
    PayrollConfig,
    SettlementPolicy,
)

_logger = logging.getLogger("payroll_kernel.config")

DATABASE_URL_ENV = "PAYROLL_DATABASE_URL"

# Default configuration file
DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"


def get_active_config(config_path: Path | str | None = None) -> PayrollConfig:
    """The ONLY public configuration entrypoint.

    Args:
        config_path: YAML file to load.  Defaults to
            payroll_config/sets/default.yaml.

    Returns:
        Frozen PayrollConfig with its checksum filled in.
    """
    path = Path(config_path) if config_path is not None else DEFAULT_CONFIG_PATH
    config = load_config_file(path)

    url_override = os.environ.get(DATABASE_URL_ENV)
    if url_override:
        config = replace(config, database=replace(config.database, url=url_override))

    _logger.info(
        "payroll_config_loaded",
        extra={
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "config_path": str(path),
            "database_url_overridden": bool(url_override),
        },
    )
    return config


__all__ = [
    "get_active_config",
    "compute_checksum",
    "DatabaseSettings",
    "LoggingSettings",
    "PayrollConfig",
    "SettlementPolicy",
    "DATABASE_URL_ENV",
    "DEFAULT_CONFIG_PATH",
]
