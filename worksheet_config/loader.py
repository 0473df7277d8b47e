"""
Configuration Loader (``worksheet_config.loader``).

Responsibility
--------------
Loads the engine YAML file and parses it into the frozen dataclasses of
``worksheet_config.schema``.  Runtime callers go through
``worksheet_config.get_active_config()``.

Invariants enforced
-------------------
* Unknown sections or keys raise ``ValueError`` naming them; typos never
  fall back silently to defaults.
* ``compute_checksum`` is deterministic for identical content.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Wrong value types or ranges  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import fields
from pathlib import Path
from typing import Any

import yaml

from worksheet_config.schema import (
    DatabaseConfig,
    EngineConfig,
    InventoryConfig,
    LifecycleConfig,
    LoggingConfig,
    NumberingConfig,
)

_SECTIONS: dict[str, type] = {
    "database": DatabaseConfig,
    "numbering": NumberingConfig,
    "inventory": InventoryConfig,
    "lifecycle": LifecycleConfig,
    "logging": LoggingConfig,
}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the top level is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping")
    return data


def _check_type(section: str, key: str, value: Any, expected: Any) -> None:
    # bool is an int subclass; reject it where an int is expected
    if expected == "int" and (isinstance(value, bool) or not isinstance(value, int)):
        raise ValueError(f"{section}.{key} must be an integer, got {value!r}")
    if expected == "bool" and not isinstance(value, bool):
        raise ValueError(f"{section}.{key} must be true or false, got {value!r}")
    if expected == "str" and not isinstance(value, str):
        raise ValueError(f"{section}.{key} must be a string, got {value!r}")


def parse_section(name: str, data: dict[str, Any] | None) -> Any:
    """Parse one top-level section into its dataclass."""
    cls = _SECTIONS[name]
    data = data or {}
    if not isinstance(data, dict):
        raise ValueError(f"{name} must be a mapping")

    known = {f.name: f.type for f in fields(cls)}
    unknown = sorted(set(data) - set(known))
    if unknown:
        raise ValueError(f"Unknown key(s) in {name}: {', '.join(unknown)}")

    for key, value in data.items():
        _check_type(name, key, value, known[key])
    return cls(**data)


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def parse_config(data: dict[str, Any], source: str | None = None) -> EngineConfig:
    unknown = sorted(set(data) - set(_SECTIONS))
    if unknown:
        raise ValueError(f"Unknown configuration section(s): {', '.join(unknown)}")

    sections = {name: parse_section(name, data.get(name)) for name in _SECTIONS}
    return EngineConfig(
        **sections,
        checksum=compute_checksum(data),
        source=source,
    )


def load_config(path: Path) -> EngineConfig:
    return parse_config(load_yaml_file(path), source=str(path))
