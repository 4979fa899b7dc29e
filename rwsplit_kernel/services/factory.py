"""
Module: rwsplit_kernel.services.factory
Responsibility: Decide which handle backs a new accessor and at what initial
    transaction state.  Readers get the replica handle at AFTER; writers get
    the primary handle at BEFORE.  An optional injection hook may customize
    the handle per request context before the accessor is built.
Architecture position: Kernel > Services.  The entry point application code
    wires once at startup and asks for accessors per request.

Invariants enforced:
    - The primary/replica pair is passed in explicitly (``Handles``); the
      factory holds no module-level state and performs no I/O.
    - The injection hook sees a throwaway ``Injector`` holder; whatever it
      does cannot change the factory's own handles.
    - Every call returns a new accessor; accessors are never pooled.

Failure modes:
    - None at construction.  Store failures surface later from accessor
      operations.
    - Exceptions raised by a caller-supplied injector propagate unchanged.
"""

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from sqlalchemy.engine import Engine

from rwsplit_kernel.db.store import PRIMARY, REPLICA, StoreHandle
from rwsplit_kernel.domain.clock import Clock, SystemClock
from rwsplit_kernel.domain.transaction import TxnState
from rwsplit_kernel.logging_config import LogContext, get_logger, store_fields
from rwsplit_kernel.services.accessor import ReadAccessor, WriteAccessor

logger = get_logger("services.factory")


@dataclass(frozen=True)
class Handles:
    """The process-wide primary (read-write) and replica (read-only) handles."""

    primary: StoreHandle
    replica: StoreHandle

    @classmethod
    def from_engines(cls, primary: Engine, replica: Engine | None = None) -> "Handles":
        """Handles over two engines; with no replica the primary serves reads too."""
        return cls(
            primary=StoreHandle.from_engine(primary, PRIMARY),
            replica=StoreHandle.from_engine(replica if replica is not None else primary, REPLICA),
        )


@dataclass
class Injector:
    """Mutable holder passed to the injection hook; replace ``handle`` to customize it."""

    handle: StoreHandle


InjectorFn = Callable[[Mapping[str, Any] | None, Injector], None]


def no_injection(ctx: Mapping[str, Any] | None, injector: Injector) -> None:
    return None


def bind_log_context(ctx: Mapping[str, Any] | None, injector: Injector) -> None:
    """
    Injection hook that attaches request-scoped fields to the handle.

    Copies the current ``LogContext`` fields, then ``ctx`` on top, into the
    handle's session ``info``.  Accessor log lines carry them as
    ``session_info``.
    """
    info: dict[str, Any] = dict(LogContext.get_all())
    if ctx:
        info.update(ctx)
    if info:
        injector.handle = injector.handle.with_info(**info)


class Factory:
    """
    Builds ReadAccessor / WriteAccessor objects bound to the right handle.

    Usage::

        factory = Factory(Handles.from_engines(primary_engine, replica_engine))
        users = factory.reader().find_many(User, Where("active = ?", True))

        with factory.writer(request_ctx).transaction() as tx:
            tx.save(user)
    """

    def __init__(
        self,
        handles: Handles,
        injector: InjectorFn | None = None,
        clock: Clock | None = None,
    ):
        self._handles = handles
        self._injector = injector or no_injection
        self._clock = clock or SystemClock()

    @property
    def handles(self) -> Handles:
        return self._handles

    def reader(self, ctx: Mapping[str, Any] | None = None) -> ReadAccessor:
        """Read-only accessor on the replica handle, state AFTER."""
        accessor = ReadAccessor(self._inject(ctx, self._handles.replica), TxnState.AFTER)
        logger.debug("accessor_created", extra=store_fields(REPLICA, TxnState.AFTER, accessor.handle.info))
        return accessor

    def writer(self, ctx: Mapping[str, Any] | None = None) -> WriteAccessor:
        """Read-write accessor on the primary handle, state BEFORE."""
        accessor = WriteAccessor(
            self._inject(ctx, self._handles.primary),
            TxnState.BEFORE,
            clock=self._clock,
        )
        logger.debug("accessor_created", extra=store_fields(PRIMARY, TxnState.BEFORE, accessor.handle.info))
        return accessor

    def _inject(self, ctx: Mapping[str, Any] | None, handle: StoreHandle) -> StoreHandle:
        holder = Injector(handle)
        self._injector(ctx, holder)
        return holder.handle
