"""
worksheet_config -- single public entrypoint for engine configuration.

Responsibility:
    ``get_active_config()`` is the only way runtime code obtains settings.
    It loads a YAML file (``defaults.yaml`` next to this module unless a
    path is given), applies the ``DATABASE_URL`` environment override, and
    returns a frozen ``EngineConfig``.

Architecture position:
    Configuration -- sits above ``worksheet_kernel`` and below
    ``worksheet_services``.  The kernel MUST NEVER import from this
    package; services pass plain values (prefix, retry count) down.

Failure modes:
    - ``FileNotFoundError`` -- the configuration file does not exist.
    - ``ValueError`` -- unknown keys, wrong types, or out-of-range values.

Audit relevance:
    Every call logs ``worksheet_config_loaded`` with the SHA-256 checksum
    of the source document, tying engine behaviour to an exact file.
"""

from __future__ import annotations

import os
from dataclasses import replace
from pathlib import Path

from worksheet_config.loader import compute_checksum, load_config, parse_config
from worksheet_config.schema import (
    DatabaseConfig,
    EngineConfig,
    InventoryConfig,
    LifecycleConfig,
    LoggingConfig,
    NumberingConfig,
)
from worksheet_kernel.logging_config import get_logger

_logger = get_logger("config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"

DATABASE_URL_ENV = "DATABASE_URL"

__all__ = [
    "DEFAULT_CONFIG_PATH",
    "DatabaseConfig",
    "EngineConfig",
    "InventoryConfig",
    "LifecycleConfig",
    "LoggingConfig",
    "NumberingConfig",
    "compute_checksum",
    "get_active_config",
    "parse_config",
]


def get_active_config(path: Path | str | None = None) -> EngineConfig:
    """
    Load and validate the engine configuration.

    Args:
        path: YAML file to load.  Defaults to ``worksheet_config/defaults.yaml``.

    Returns:
        EngineConfig with ``DATABASE_URL`` applied when set.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If validation fails.
    """
    config = load_config(Path(path) if path is not None else DEFAULT_CONFIG_PATH)

    env_url = os.environ.get(DATABASE_URL_ENV)
    if env_url:
        config = replace(config, database=replace(config.database, url=env_url))

    _logger.info(
        "worksheet_config_loaded",
        extra={
            "source": config.source,
            "checksum": config.checksum,
            "database_url_from_env": bool(env_url),
            "worksheet_prefix": config.numbering.worksheet_prefix,
        },
    )
    return config
