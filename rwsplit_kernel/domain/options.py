"""
Options -- composable query modifiers.

Responsibility:
    Defines the tagged option variants (``Where``, ``Order``, ``Limit``,
    ``Offset``, ``ForUpdate``, ``IgnoreSoftDelete``), the ``PendingQuery``
    they transform, and ``OptionList``, the immutable ordered collection of
    options a caller builds up and hands to an accessor.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  Options only record *what* the caller
    asked for.  Turning a ``PendingQuery`` into SQL is the job of
    ``rwsplit_kernel.db.statements``.

Invariants enforced:
    - Every option is a pure function ``PendingQuery -> PendingQuery``; the
      input query is never mutated.
    - Options apply strictly in the order supplied.
    - ``OptionList.add()`` never mutates the receiver.

Failure modes:
    - ``ValueError`` from ``Where`` when a mapping clause is given extra
      positional arguments.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass, field, replace
from typing import Any, overload


@dataclass(frozen=True)
class PendingQuery:
    """
    Everything the options have said about an operation so far.

    ``filters`` and ``ordering`` hold the ``Where`` and ``Order`` options
    themselves, in application order.
    """

    model: type
    filters: tuple[Where, ...] = ()
    ordering: tuple[Order, ...] = ()
    limit: int | None = None
    offset: int | None = None
    lock: ForUpdate | None = None
    include_deleted: bool = False


class Option(ABC):
    """A single query modification."""

    @abstractmethod
    def apply(self, query: PendingQuery) -> PendingQuery:
        """Return a new PendingQuery with this option applied."""
        ...

    def __call__(self, query: PendingQuery) -> PendingQuery:
        return self.apply(query)


@dataclass(frozen=True, init=False)
class Where(Option):
    """
    Append a filter predicate.

    ``clause`` is one of:

    * a string using ``?`` placeholders, bound positionally to ``args``
      (``Where("id = ?", 123)``).  A list/tuple/set argument is expanded
      into a parameter list (``Where("id IN ?", [1, 2])``);
    * a SQLAlchemy column expression (``Where(User.id == 123)``);
    * a mapping of attribute name to value, combined with AND.
    """

    clause: Any
    args: tuple[Any, ...]

    def __init__(self, clause: Any, *args: Any):
        if isinstance(clause, Mapping):
            if args:
                raise ValueError("Where(mapping) takes no positional arguments")
            clause = dict(clause)
        object.__setattr__(self, "clause", clause)
        object.__setattr__(self, "args", args)

    def apply(self, query: PendingQuery) -> PendingQuery:
        return replace(query, filters=query.filters + (self,))


@dataclass(frozen=True)
class Order(Option):
    """
    Append an ordering term.

    With ``reorder=True`` every ordering accumulated so far is discarded
    first.
    """

    spec: Any
    reorder: bool = False

    def apply(self, query: PendingQuery) -> PendingQuery:
        if self.reorder:
            return replace(query, ordering=(self,))
        return replace(query, ordering=query.ordering + (self,))


@dataclass(frozen=True)
class Limit(Option):
    """Cap the number of rows. ``None`` or a negative value removes the cap."""

    count: int | None

    def apply(self, query: PendingQuery) -> PendingQuery:
        if self.count is None or self.count < 0:
            return replace(query, limit=None)
        return replace(query, limit=self.count)


@dataclass(frozen=True)
class Offset(Option):
    """Skip rows. ``None`` or a negative value removes the offset."""

    count: int | None

    def apply(self, query: PendingQuery) -> PendingQuery:
        if self.count is None or self.count < 0:
            return replace(query, offset=None)
        return replace(query, offset=self.count)


@dataclass(frozen=True)
class ForUpdate(Option):
    """Request a row-locking read (``SELECT ... FOR UPDATE``)."""

    nowait: bool = False
    skip_locked: bool = False

    def apply(self, query: PendingQuery) -> PendingQuery:
        return replace(query, lock=self)


@dataclass(frozen=True)
class IgnoreSoftDelete(Option):
    """
    Disable the soft-delete visibility filter.

    Soft-deleted rows become visible to reads, ``save`` can update a
    soft-deleted row, and ``delete`` removes rows physically.
    """

    def apply(self, query: PendingQuery) -> PendingQuery:
        return replace(query, include_deleted=True)


@dataclass(frozen=True)
class OptionList(Sequence[Option]):
    """
    Immutable ordered collection of options.

    Usage::

        opts = OptionList().add(Where("id = ?", 123)).add(ForUpdate())
        writer.find(user, *opts)
    """

    options: tuple[Option, ...] = field(default=())

    @classmethod
    def of(cls, options: Iterable[Option]) -> OptionList:
        return cls(tuple(options))

    def add(self, *options: Option) -> OptionList:
        """Return a new list with ``options`` appended; the receiver when empty."""
        if not options:
            return self
        return OptionList(self.options + options)

    def apply(self, query: PendingQuery) -> PendingQuery:
        """Fold every option over ``query`` in list order."""
        for option in self.options:
            query = option.apply(query)
        return query

    @overload
    def __getitem__(self, index: int) -> Option: ...

    @overload
    def __getitem__(self, index: slice) -> OptionList: ...

    def __getitem__(self, index: int | slice) -> Option | OptionList:
        if isinstance(index, slice):
            return OptionList(self.options[index])
        return self.options[index]

    def __len__(self) -> int:
        return len(self.options)

    def __iter__(self) -> Iterator[Option]:
        return iter(self.options)
