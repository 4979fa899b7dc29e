"""
Capability contracts exposed to application code.

Repositories should depend on these protocols rather than on the concrete
accessor classes: a read path takes a ``ReadOnly``, a write path a
``Writer``, and wiring code a ``DBSelector``.
"""

from collections.abc import Mapping
from contextlib import AbstractContextManager
from typing import Any, Protocol, TypeVar, runtime_checkable

from rwsplit_kernel.domain.options import Option
from rwsplit_kernel.domain.transaction import TxnState

R = TypeVar("R")


@runtime_checkable
class Record(Protocol):
    """A persisted entity that names its own storage table."""

    @classmethod
    def table_name(cls) -> str: ...


# Homogeneous records of one mapped type, as returned by find_many.
RecordCollection = list[R]


class Queries(Protocol):
    def count(self, record: Any, *options: Option) -> int: ...

    def find(self, record: R | type[R], *options: Option) -> R: ...

    def find_many(self, record: R | type[R], *options: Option) -> RecordCollection[R]: ...


class Commands(Protocol):
    def save(self, record: R, *options: Option) -> R: ...

    def delete(self, record: Any, *options: Option) -> int: ...


class TxnBehavior(Protocol):
    @property
    def state(self) -> TxnState: ...

    def begin(self) -> None: ...

    def commit(self) -> None: ...

    def rollback(self) -> None: ...

    def transaction(self) -> AbstractContextManager[Any]: ...


class ReadOnly(Queries, Protocol):
    """Read methods only."""


class Writer(Queries, Commands, TxnBehavior, Protocol):
    """Reads, writes, and transaction control."""


class DBSelector(Protocol):
    """Hands out a read-only accessor or a writable one."""

    def reader(self, ctx: Mapping[str, Any] | None = None) -> ReadOnly: ...

    def writer(self, ctx: Mapping[str, Any] | None = None) -> Writer: ...


__all__ = [
    "Record",
    "RecordCollection",
    "Queries",
    "Commands",
    "TxnBehavior",
    "ReadOnly",
    "Writer",
    "DBSelector",
]
