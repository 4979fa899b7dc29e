"""
Config -> Kernel Bridges.

Functions that turn a ``DatabaseConfig`` into kernel objects.  These live in
rwsplit_config (the producer) because the kernel must never import
rwsplit_config.

Usage:
    from rwsplit_config import get_active_config
    from rwsplit_config.bridges import build_factory

    factory = build_factory(get_active_config("config/database.yaml"))
"""

from __future__ import annotations

from rwsplit_config.schema import DatabaseConfig, EngineSettings
from rwsplit_kernel.db.engine import create_engine_from_url
from rwsplit_kernel.db.store import PRIMARY, REPLICA
from rwsplit_kernel.domain.clock import Clock
from rwsplit_kernel.services.factory import Factory, Handles, InjectorFn


def _engine(settings: EngineSettings, role: str):
    return create_engine_from_url(settings.url, role=role, **settings.engine_kwargs())


def build_handles(config: DatabaseConfig) -> Handles:
    """Primary and replica handles; identical settings share one engine."""
    primary = _engine(config.primary, PRIMARY)
    replica = primary if config.shares_engine else _engine(config.replica, REPLICA)
    return Handles.from_engines(primary, replica)


def build_factory(
    config: DatabaseConfig,
    injector: InjectorFn | None = None,
    clock: Clock | None = None,
) -> Factory:
    """A Factory over freshly built engines for ``config``."""
    return Factory(build_handles(config), injector=injector, clock=clock)
