"""
Database configuration schema.

Typed, frozen views over the YAML database configuration.  The loader
parses raw dicts into these; the bridges turn them into engines and a
Factory.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.engine import make_url


@dataclass(frozen=True)
class EngineSettings:
    """Connection and pool settings for one database role."""

    url: str
    echo: bool = False
    pool_size: int = 5
    max_overflow: int = 10
    pool_timeout: int = 30
    pool_recycle: int = 1800
    pool_pre_ping: bool = True
    isolation_level: str | None = None

    @property
    def dialect(self) -> str:
        return make_url(self.url).get_backend_name()

    def engine_kwargs(self) -> dict[str, object]:
        """Keyword arguments for ``create_engine_from_url`` (everything but the URL)."""
        return {
            "echo": self.echo,
            "pool_size": self.pool_size,
            "max_overflow": self.max_overflow,
            "pool_timeout": self.pool_timeout,
            "pool_recycle": self.pool_recycle,
            "pool_pre_ping": self.pool_pre_ping,
            "isolation_level": self.isolation_level,
        }


@dataclass(frozen=True)
class DatabaseConfig:
    """
    A named primary/replica pair.

    ``replica`` is always populated; a configuration without a replica
    section reuses the primary settings.
    """

    name: str
    primary: EngineSettings
    replica: EngineSettings

    @property
    def shares_engine(self) -> bool:
        return self.replica == self.primary
