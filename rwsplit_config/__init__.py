"""
rwsplit_config -- single public entrypoint for database configuration.

Responsibility:
    Provides the ONLY way to obtain database configuration at runtime
    through ``get_active_config()``.  Returns a frozen ``DatabaseConfig``;
    ``rwsplit_config.bridges`` turns it into engines and a Factory.

Architecture position:
    Configuration.  Sits above ``rwsplit_kernel``.  The kernel MUST NEVER
    import from ``rwsplit_config``.

Failure modes:
    - ``FileNotFoundError`` -- the configuration file does not exist.
    - ``yaml.YAMLError`` -- the file is not valid YAML.
    - ``KeyError`` / ``ValueError`` -- structural validation failures.
"""

from __future__ import annotations

import logging
from pathlib import Path

from rwsplit_config.loader import load_yaml_file, parse_database_config
from rwsplit_config.schema import DatabaseConfig, EngineSettings

_logger = logging.getLogger("rwsplit_kernel.config")


def get_active_config(path: str | Path) -> DatabaseConfig:
    """
    The ONLY public configuration entrypoint.

    Emits a ``config_loaded`` log entry carrying the config name and the
    primary/replica dialects.  URLs are never logged since they may embed
    credentials.
    """
    config = parse_database_config(load_yaml_file(Path(path)))
    _logger.info(
        "config_loaded",
        extra={
            "config_name": config.name,
            "primary_dialect": config.primary.dialect,
            "replica_dialect": config.replica.dialect,
            "shared_engine": config.shares_engine,
        },
    )
    return config


__all__ = ["get_active_config", "DatabaseConfig", "EngineSettings"]
