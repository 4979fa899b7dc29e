"""
Configuration Loader (``rwsplit_config.loader``).

Responsibility
--------------
Loads a YAML database configuration file and parses it into the frozen
dataclasses of ``rwsplit_config.schema``.  Runtime callers go through
``rwsplit_config.get_active_config()`` rather than calling this directly.

Expected layout::

    name: app
    primary:
      url: postgresql+psycopg://app@db-primary/app
      pool_size: 10
    replica:            # optional; defaults to the primary settings
      url: postgresql+psycopg://app@db-replica/app

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Wrongly typed values or unknown keys  -> ``ValueError``.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from rwsplit_config.schema import DatabaseConfig, EngineSettings

_INT_FIELDS = ("pool_size", "max_overflow", "pool_timeout", "pool_recycle")
_BOOL_FIELDS = ("echo", "pool_pre_ping")
_KNOWN_FIELDS = frozenset(("url", "isolation_level", *_INT_FIELDS, *_BOOL_FIELDS))


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
        raise ValueError(f"{path}: expected a mapping at top level, got {type(data).__name__}")
    return data


def _require_int(data: dict[str, Any], key: str) -> int:
    value = data[key]
    # bool is an int subclass; "pool_size: yes" is a mistake, not 1.
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{key} must be an integer, got {value!r}")
    if value < 0:
        raise ValueError(f"{key} must not be negative, got {value!r}")
    return value


def _require_bool(data: dict[str, Any], key: str) -> bool:
    value = data[key]
    if not isinstance(value, bool):
        raise ValueError(f"{key} must be true or false, got {value!r}")
    return value


def parse_engine_settings(data: dict[str, Any]) -> EngineSettings:
    """
    Parse ``EngineSettings`` from a dict.

    Only ``url`` is required; everything else falls back to the dataclass
    defaults.
    """
    if not isinstance(data, dict):
        raise ValueError(f"engine settings must be a mapping, got {type(data).__name__}")
    unknown = set(data) - _KNOWN_FIELDS
    if unknown:
        raise ValueError(f"unknown engine settings: {', '.join(sorted(unknown))}")

    url = data["url"]
    if not isinstance(url, str) or not url:
        raise ValueError(f"url must be a non-empty string, got {url!r}")

    kwargs: dict[str, Any] = {"url": url}
    for key in _INT_FIELDS:
        if key in data:
            kwargs[key] = _require_int(data, key)
    for key in _BOOL_FIELDS:
        if key in data:
            kwargs[key] = _require_bool(data, key)
    if data.get("isolation_level") is not None:
        kwargs["isolation_level"] = str(data["isolation_level"])
    return EngineSettings(**kwargs)


def parse_database_config(data: dict[str, Any]) -> DatabaseConfig:
    """Parse a ``DatabaseConfig``; a missing replica section reuses the primary."""
    primary = parse_engine_settings(data["primary"])
    replica_data = data.get("replica")
    replica = parse_engine_settings(replica_data) if replica_data else primary
    return DatabaseConfig(
        name=str(data.get("name", "default")),
        primary=primary,
        replica=replica,
    )
