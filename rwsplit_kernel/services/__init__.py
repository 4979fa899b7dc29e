"""Accessors and the factory that hands them out."""

from rwsplit_kernel.services.accessor import ReadAccessor, WriteAccessor
from rwsplit_kernel.services.factory import (
    Factory,
    Handles,
    Injector,
    InjectorFn,
    bind_log_context,
    no_injection,
)

__all__ = [
    "ReadAccessor",
    "WriteAccessor",
    "Factory",
    "Handles",
    "Injector",
    "InjectorFn",
    "bind_log_context",
    "no_injection",
]
