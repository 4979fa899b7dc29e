"""
Module: rwsplit_kernel.services.accessor
Responsibility: ReadAccessor and WriteAccessor -- the objects application code
    actually calls.  An accessor binds one StoreHandle to one transaction
    state machine and exposes count/find/find_many (both kinds) plus
    save/delete and begin/commit/rollback (writers only).
Architecture position: Kernel > Services.  May import from db/, domain/,
    exceptions.py and logging_config.py.  Constructed by
    services/factory.py; application code should not build accessors by hand.

Invariants enforced:
    - Options are folded in the order supplied before anything touches the
      Store.
    - CRUD operations never check or change TxnState; they run on whatever
      handle is currently bound.
    - begin/commit/rollback consult the state machine first; illegal
      requests raise TransactionStateError and leave handle and state as
      they were.
    - The handle is replaced, never mutated, on every transaction transition.
    - find() raises ResourceNotFoundError (never NoResultFound) on zero rows
      and leaves the caller's record untouched.
    - Records handed back by find/find_many are detached from the Session,
      also inside a transaction.  Editing them changes nothing in the
      database until they are passed to save().
    - Store errors propagate unchanged.

Failure modes:
    - ResourceNotFoundError from find().
    - TransactionStateError from begin/commit/rollback misuse.
    - UnmappedRecordError when handed something that is not a mapped record.
    - MissingIdentityError from delete() of a keyless, unfiltered instance.
    - Any SQLAlchemyError from the Store, unwrapped.

Concurrency:
    An accessor is a single-threaded-use object.  Share the Factory, not the
    accessor.
"""

from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from datetime import datetime
from typing import Any, TypeVar

from sqlalchemy.exc import NoResultFound

from rwsplit_kernel.db.base import CREATED_AT_COLUMN, UPDATED_AT_COLUMN
from rwsplit_kernel.db.statements import (
    column_values,
    count_statement,
    delete_statement,
    insert_statement,
    mapper_for,
    model_for,
    primary_key_identity,
    select_statement,
    soft_delete_column,
    soft_delete_statement,
    table_name_for,
    update_statement,
)
from rwsplit_kernel.db.store import StoreHandle
from rwsplit_kernel.domain.clock import Clock, SystemClock
from rwsplit_kernel.domain.options import Option, OptionList, PendingQuery
from rwsplit_kernel.domain.transaction import (
    TransactionStateMachine,
    TxnOperation,
    TxnState,
)
from rwsplit_kernel.exceptions import (
    MissingIdentityError,
    ResourceNotFoundError,
    TransactionStateError,
)
from rwsplit_kernel.interfaces import RecordCollection
from rwsplit_kernel.logging_config import get_logger, store_fields

logger = get_logger("services.accessor")

R = TypeVar("R")


class ReadAccessor:
    """
    Read-only accessor.

    Contract:
        Exposes count/find/find_many only.  Built by ``Factory.reader()`` on
        the replica handle with state AFTER: there is no transaction to
        manage, and no transaction methods to call.
    """

    def __init__(
        self,
        handle: StoreHandle,
        state: TxnState = TxnState.AFTER,
    ):
        self._handle = handle
        self._txn = TransactionStateMachine(state)

    @property
    def handle(self) -> StoreHandle:
        return self._handle

    @property
    def state(self) -> TxnState:
        return self._txn.state

    def __repr__(self) -> str:
        return f"{type(self).__name__}(role={self._handle.role}, state={self.state.value})"

    # -- helpers ------------------------------------------------------------

    def _pending(self, record: Any, options: Iterable[Option]) -> PendingQuery:
        return OptionList.of(options).apply(PendingQuery(model_for(record)))

    def _log_extra(self, **fields: Any) -> dict[str, Any]:
        return store_fields(self._handle.role, self.state, self._handle.info, **fields)

    # -- queries ------------------------------------------------------------

    def count(self, record: Any, *options: Option) -> int:
        """Number of rows of ``record``'s table matching ``options``."""
        query = self._pending(record, options)
        with self._handle.reading() as session:
            return session.execute(count_statement(query)).scalar_one()

    def find(self, record: R | type[R], *options: Option) -> R:
        """
        Fetch at most one row.

        Given a mapped class, returns the loaded record.  Given an instance,
        copies the loaded column values onto it and returns it.

        Raises:
            ResourceNotFoundError: If no row matches.  ``record`` is not
                modified.
        """
        query = self._pending(record, options)
        with self._handle.reading() as session:
            try:
                found = session.execute(select_statement(query, first=True)).scalar_one()
            except NoResultFound:
                table = table_name_for(query.model)
                logger.debug("resource_not_found", extra=self._log_extra(table=table))
                raise ResourceNotFoundError(table) from None
            session.expunge(found)

        if isinstance(record, type):
            return found
        if found is not record:
            for prop in mapper_for(record).column_attrs:
                setattr(record, prop.key, getattr(found, prop.key))
        return record

    def find_many(self, record: R | type[R], *options: Option) -> RecordCollection[R]:
        """All matching rows, possibly none."""
        query = self._pending(record, options)
        with self._handle.reading() as session:
            found = list(session.execute(select_statement(query)).scalars().all())
            for loaded in found:
                session.expunge(loaded)
        return found


class WriteAccessor(ReadAccessor):
    """
    Read-write accessor with an explicit transaction lifecycle.

    Contract:
        Built by ``Factory.writer()`` on the primary handle with state
        BEFORE.  Without ``begin()`` every write commits on its own.  After
        ``begin()`` all operations share one transaction until ``commit()``
        or ``rollback()``.

    Usage::

        writer = factory.writer()
        writer.begin()
        try:
            user = writer.find(User, Where("id = ?", 1), ForUpdate())
            user.name = "renamed"
            writer.save(user)
            writer.commit()
        finally:
            writer.rollback()  # no-op once committed

    or, equivalently, ``with writer.transaction(): ...``.
    """

    def __init__(
        self,
        handle: StoreHandle,
        state: TxnState = TxnState.BEFORE,
        clock: Clock | None = None,
    ):
        super().__init__(handle, state)
        self._clock = clock or SystemClock()

    # -- commands -----------------------------------------------------------

    def save(self, record: R, *options: Option) -> R:
        """
        Upsert ``record`` by primary key.

        With the key set, issues an UPDATE restricted by the options (and by
        the soft-delete filter unless IgnoreSoftDelete is given); when that
        matches no row, or the key is unset, INSERTs the record.  Generated
        keys are written back onto ``record``.
        """
        if isinstance(record, type):
            raise TypeError("save() needs a record instance, not a class")

        query = self._pending(record, options)
        mapper = mapper_for(record)
        now = self._clock.now_utc()
        if UPDATED_AT_COLUMN in mapper.column_attrs.keys():
            setattr(record, UPDATED_AT_COLUMN, now)

        identity = primary_key_identity(record)
        table = table_name_for(query.model)
        with self._handle.writing() as session:
            if identity:
                result = session.execute(
                    update_statement(query, identity, self._update_values(record, identity))
                )
                if result.rowcount > 0:
                    logger.debug("record_saved", extra=self._log_extra(table=table, action="update"))
                    return record

            self._stamp_created(record, now)
            values = {k: v for k, v in column_values(record).items() if v is not None}
            result = session.execute(insert_statement(query.model, values))
            self._assign_generated_key(record, result.inserted_primary_key)

        logger.debug("record_saved", extra=self._log_extra(table=table, action="insert"))
        return record

    def delete(self, record: Any, *options: Option) -> int:
        """
        Delete the rows matching ``record``'s primary key (when set) and
        ``options``.

        Soft-deletable tables get ``deleted_at`` stamped unless
        IgnoreSoftDelete is given, in which case -- as for tables without a
        ``deleted_at`` column -- rows are removed physically.

        Returns:
            Number of rows affected.

        Raises:
            MissingIdentityError: If ``record`` is an instance whose primary
                key is unset and no Where option is given.  Pass the class
                to delete every matching row.
        """
        query = self._pending(record, options)
        identity = primary_key_identity(record)
        if not identity and not query.filters and not isinstance(record, type):
            raise MissingIdentityError(table_name_for(query.model))
        soft = not query.include_deleted and soft_delete_column(query.model) is not None

        with self._handle.writing() as session:
            if soft:
                stmt = soft_delete_statement(query, identity, self._clock.now_utc())
            else:
                stmt = delete_statement(query, identity)
            affected = session.execute(stmt).rowcount

        logger.info(
            "records_deleted",
            extra=self._log_extra(
                table=table_name_for(query.model),
                mode="soft" if soft else "hard",
                affected=affected,
            ),
        )
        return affected

    # -- transaction lifecycle ------------------------------------------------

    def begin(self) -> None:
        """Open a transaction. Legal only from BEFORE."""
        target = self._plan(TxnOperation.BEGIN)
        self._handle = self._handle.begin()
        self._txn.complete(target)
        logger.info("transaction_begun", extra=self._log_extra())

    def commit(self) -> None:
        """
        Commit the open transaction. Legal only from ACTIVE.

        If the Store fails to commit, the transaction is discarded, the state
        becomes AFTER, and the Store's error is re-raised.
        """
        target = self._plan(TxnOperation.COMMIT)
        try:
            handle = self._handle.commit()
        except Exception:
            self._handle = self._handle.detached()
            self._txn.conclude()
            logger.error("transaction_commit_failed", extra=self._log_extra(), exc_info=True)
            raise
        self._handle = handle
        self._txn.complete(target)
        logger.info("transaction_committed", extra=self._log_extra())

    def rollback(self) -> None:
        """Roll back the open transaction; a no-op once concluded."""
        target = self._plan(TxnOperation.ROLLBACK)
        if target is None:
            return
        try:
            handle = self._handle.rollback()
        except Exception:
            self._handle = self._handle.detached()
            self._txn.conclude()
            raise
        self._handle = handle
        self._txn.complete(target)
        logger.info("transaction_rolled_back", extra=self._log_extra())

    @contextmanager
    def transaction(self) -> Iterator["WriteAccessor"]:
        """
        begin() on entry; commit() on normal exit, rollback() and re-raise on
        exception.  A body that concludes the transaction itself is left
        alone on exit.
        """
        self.begin()
        try:
            yield self
        except BaseException:
            self.rollback()
            raise
        if self._txn.is_active:
            self.commit()

    # -- helpers ------------------------------------------------------------

    def _plan(self, operation: TxnOperation) -> TxnState | None:
        try:
            return self._txn.plan(operation)
        except TransactionStateError:
            logger.error(
                "transaction_state_violation",
                extra=self._log_extra(operation=operation.value),
                exc_info=True,
            )
            raise

    def _update_values(self, record: Any, identity: dict[str, Any]) -> dict[str, Any]:
        # NULLs are not written into NOT NULL columns (e.g. an unset created_at).
        mapper = mapper_for(record)
        values = {}
        for key, value in column_values(record).items():
            if key in identity:
                continue
            if value is None and not mapper.column_attrs[key].columns[0].nullable:
                continue
            values[key] = value
        return values

    def _stamp_created(self, record: Any, now: datetime) -> None:
        if CREATED_AT_COLUMN in mapper_for(record).column_attrs.keys():
            if getattr(record, CREATED_AT_COLUMN, None) is None:
                setattr(record, CREATED_AT_COLUMN, now)

    def _assign_generated_key(self, record: Any, inserted: Any) -> None:
        if inserted is None:
            return
        mapper = mapper_for(record)
        for column, value in zip(mapper.local_table.primary_key.columns, inserted):
            key = mapper.get_property_by_column(column).key
            if getattr(record, key, None) is None and value is not None:
                setattr(record, key, value)
