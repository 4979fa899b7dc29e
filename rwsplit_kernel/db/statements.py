"""
Module: rwsplit_kernel.db.statements
Responsibility: Translate a PendingQuery (the result of folding options) into
    SQLAlchemy statements.  This is the only place option variants are
    interpreted; accessors never build SQL themselves.
Architecture position: Kernel > DB.  May import from db/base.py, domain/ and
    exceptions.py.  MUST NOT import from services/ or outer layers.

Invariants enforced:
    - The soft-delete filter (``deleted_at IS NULL``) comes first and is
      present unless the query says ``include_deleted``.
    - Option filters follow in application order.
    - Single-row reads order by primary key ascending unless an Order option
      was given, and are always limited to one row.
    - ``?`` placeholders bind positionally; bind names are unique within a
      statement so several string filters can coexist.

Failure modes:
    - UnmappedRecordError if a value is neither a mapped class nor an
      instance of one.
    - ValueError if a string filter's placeholder count does not match its
      arguments, or a mapping filter names an unknown attribute.
"""

import re
from collections.abc import Mapping
from datetime import datetime
from typing import Any

from sqlalchemy import (
    ColumnElement,
    Delete,
    Insert,
    Select,
    Update,
    and_,
    bindparam,
    delete,
    func,
    insert,
    inspect,
    select,
    text,
    update,
)
from sqlalchemy.orm import Mapper

from rwsplit_kernel.db.base import SOFT_DELETE_COLUMN
from rwsplit_kernel.domain.options import Order, PendingQuery, Where
from rwsplit_kernel.exceptions import UnmappedRecordError

# A colon that text() would read as a named bind parameter.
_BIND_COLON = re.compile(r"(?<![:\w\\]):(?=\w)")


# ---------------------------------------------------------------------------
# Mapping helpers
# ---------------------------------------------------------------------------


def mapper_for(record: Any) -> Mapper:
    """Return the mapper for a mapped class or an instance of one."""
    info = inspect(record, raiseerr=False)
    if info is None:
        raise UnmappedRecordError(record)
    if isinstance(info, Mapper):
        return info
    mapper = getattr(info, "mapper", None)
    if mapper is None:
        raise UnmappedRecordError(record)
    return mapper


def model_for(record: Any) -> type:
    return mapper_for(record).class_


def table_name_for(model: type) -> str:
    table_name = getattr(model, "table_name", None)
    if callable(table_name):
        return table_name()
    return model.__table__.name


def soft_delete_column(model: type) -> Any:
    """The ``deleted_at`` attribute of ``model``, or None if not soft-deletable."""
    if SOFT_DELETE_COLUMN in mapper_for(model).column_attrs.keys():
        return getattr(model, SOFT_DELETE_COLUMN)
    return None


def primary_key_identity(record: Any) -> dict[str, Any]:
    """
    Attribute name -> value for the primary key of an instance.

    Returns an empty dict when ``record`` is a class or any key part is unset.
    """
    if isinstance(record, type):
        return {}
    mapper = mapper_for(record)
    identity: dict[str, Any] = {}
    for column in mapper.primary_key:
        key = mapper.get_property_by_column(column).key
        value = getattr(record, key, None)
        if value is None:
            return {}
        identity[key] = value
    return identity


def column_values(record: Any) -> dict[str, Any]:
    """Attribute name -> current value for every mapped column of an instance."""
    mapper = mapper_for(record)
    return {prop.key: getattr(record, prop.key, None) for prop in mapper.column_attrs}


# ---------------------------------------------------------------------------
# Option interpretation
# ---------------------------------------------------------------------------


def _text(sql: str):
    return text(_BIND_COLON.sub(r"\\:", sql))


def _string_clause(clause: str, args: tuple[Any, ...], position: int) -> ColumnElement:
    parts = clause.split("?")
    if len(parts) - 1 != len(args):
        raise ValueError(
            f"Where({clause!r}) has {len(parts) - 1} placeholder(s) "
            f"but {len(args)} argument(s)"
        )
    sql = [_BIND_COLON.sub(r"\\:", parts[0])]
    params = []
    for index, (arg, tail) in enumerate(zip(args, parts[1:])):
        name = f"w{position}_{index}"
        sql.append(f":{name}")
        sql.append(_BIND_COLON.sub(r"\\:", tail))
        if isinstance(arg, (list, tuple, set, frozenset)):
            params.append(bindparam(name, list(arg), expanding=True))
        else:
            params.append(bindparam(name, arg))
    return text("".join(sql)).bindparams(*params)


def _mapping_clause(model: type, clause: Mapping[str, Any]) -> ColumnElement:
    attrs = mapper_for(model).column_attrs.keys()
    terms = []
    for key, value in clause.items():
        if key not in attrs:
            raise ValueError(f"{model.__name__} has no column attribute {key!r}")
        column = getattr(model, key)
        if value is None:
            terms.append(column.is_(None))
        elif isinstance(value, (list, tuple, set, frozenset)):
            terms.append(column.in_(list(value)))
        else:
            terms.append(column == value)
    return and_(*terms)


def where_clause(model: type, option: Where, position: int = 0) -> Any:
    """SQL expression for one Where option."""
    if isinstance(option.clause, str):
        return _string_clause(option.clause, option.args, position)
    if isinstance(option.clause, Mapping):
        return _mapping_clause(model, option.clause)
    return option.clause


def order_clause(option: Order) -> Any:
    if isinstance(option.spec, str):
        return _text(option.spec)
    return option.spec


def criteria(query: PendingQuery) -> list[Any]:
    """Soft-delete filter (unless disabled) followed by the option filters."""
    terms: list[Any] = []
    if not query.include_deleted:
        deleted_at = soft_delete_column(query.model)
        if deleted_at is not None:
            terms.append(deleted_at.is_(None))
    for position, option in enumerate(query.filters):
        terms.append(where_clause(query.model, option, position))
    return terms


def _identity_terms(model: type, identity: Mapping[str, Any]) -> list[Any]:
    return [getattr(model, key) == value for key, value in identity.items()]


# ---------------------------------------------------------------------------
# Statements
# ---------------------------------------------------------------------------


def select_statement(query: PendingQuery, *, first: bool = False) -> Select:
    """
    SELECT for ``find`` (``first=True``) or ``find_many``.

    ``first`` adds the primary-key default ordering (when no Order option was
    given) and ``LIMIT 1``; any Limit option is ignored in that case.
    """
    stmt = (
        select(query.model)
        .where(*criteria(query))
        .execution_options(populate_existing=True)
    )

    if query.ordering:
        stmt = stmt.order_by(*(order_clause(o) for o in query.ordering))
    elif first:
        stmt = stmt.order_by(*(c.asc() for c in mapper_for(query.model).primary_key))

    if first:
        stmt = stmt.limit(1)
    elif query.limit is not None:
        stmt = stmt.limit(query.limit)

    if query.offset is not None:
        stmt = stmt.offset(query.offset)

    if query.lock is not None:
        stmt = stmt.with_for_update(
            nowait=query.lock.nowait,
            skip_locked=query.lock.skip_locked,
        )
    return stmt


def count_statement(query: PendingQuery) -> Select:
    return select(func.count()).select_from(query.model).where(*criteria(query))


def update_statement(
    query: PendingQuery,
    identity: Mapping[str, Any],
    values: Mapping[str, Any],
) -> Update:
    """UPDATE by primary key, restricted by the query's criteria."""
    return (
        update(query.model)
        .where(*_identity_terms(query.model, identity), *criteria(query))
        .values(dict(values))
        .execution_options(synchronize_session=False)
    )


def insert_statement(model: type, values: Mapping[str, Any]) -> Insert:
    """
    Core INSERT against the model's table.

    ``values`` is keyed by attribute name; keys are translated to column keys
    so ``inserted_primary_key`` is reported by the DBAPI result.
    """
    mapper = mapper_for(model)
    row = {mapper.column_attrs[key].columns[0].key: value for key, value in values.items()}
    return insert(mapper.local_table).values(row)


def soft_delete_statement(
    query: PendingQuery,
    identity: Mapping[str, Any],
    deleted_at: datetime,
) -> Update:
    """``UPDATE ... SET deleted_at = now WHERE deleted_at IS NULL AND ...``"""
    return (
        update(query.model)
        .where(*criteria(query), *_identity_terms(query.model, identity))
        .values({SOFT_DELETE_COLUMN: deleted_at})
        .execution_options(synchronize_session=False)
    )


def delete_statement(query: PendingQuery, identity: Mapping[str, Any]) -> Delete:
    return (
        delete(query.model)
        .where(*criteria(query), *_identity_terms(query.model, identity))
        .execution_options(synchronize_session=False)
    )
