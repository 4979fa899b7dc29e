"""
Typed exception hierarchy for the rwsplit kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of an accessor branch on error *types*, never on messages.  The
kernel adds exactly two kinds of errors on top of whatever the Store raises:

  1. "resource not found" -- one stable type for a single-row fetch that
     matched nothing, whichever database backs the Store.
  2. transaction-lifecycle misuse -- begin/commit/rollback called in the
     wrong state.  This is a defect in the calling code, not a runtime
     condition, and lives in its own branch of the hierarchy.

Every class carries a ``code`` class attribute (machine-readable) and stores
its context as attributes so structured logs can serialize it.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    RwsplitKernelError (base)
    |
    +-- QueryError
    |   +-- ResourceNotFoundError
    |
    +-- RecordError
    |   +-- UnmappedRecordError
    |   +-- MissingIdentityError
    |
    +-- TransactionLifecycleError
        +-- TransactionStateError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                          | When Raised
-------------|-------------------------------|-----------------------------------
Query        | RESOURCE_NOT_FOUND            | find() matched zero rows
-------------|-------------------------------|-----------------------------------
Record       | UNMAPPED_RECORD               | Operation given a non-mapped value
             | MISSING_IDENTITY              | delete() of a keyless instance with
             |                               | no Where option
-------------|-------------------------------|-----------------------------------
Transaction  | TRANSACTION_STATE_VIOLATION   | begin/commit/rollback out of order

===============================================================================
HANDLING PATTERNS
===============================================================================

1. BRANCH ON NOT-FOUND, LET EVERYTHING ELSE PROPAGATE:

    try:
        user = reader.find(User, Where("email = ?", email))
    except ResourceNotFoundError:
        return None

2. STORE FAILURES ARE NOT WRAPPED:

    try:
        writer.save(user)
    except IntegrityError:        # sqlalchemy.exc, unchanged
        ...

3. NEVER CATCH TransactionLifecycleError:

    It signals a bug in the unit-of-work boundaries of the caller.  Let it
    abort the request so the defect shows up in tests.

===============================================================================
"""

from typing import Any


class RwsplitKernelError(Exception):
    """
    Base exception for all rwsplit kernel errors.

    All subclasses must have a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "RWSPLIT_KERNEL_ERROR"


# Query-related exceptions


class QueryError(RwsplitKernelError):
    """Base exception for query-related errors."""

    code: str = "QUERY_ERROR"


class ResourceNotFoundError(QueryError):
    """
    A single-row fetch matched zero rows.

    The one error value application code is expected to branch on.  The
    Store's native signal (``sqlalchemy.exc.NoResultFound``) never escapes
    the accessor.
    """

    code: str = "RESOURCE_NOT_FOUND"

    def __init__(self, table_name: str):
        self.table_name = table_name
        super().__init__(f"resource not found: {table_name}")


# Record-related exceptions


class RecordError(RwsplitKernelError):
    """Base exception for record-related errors."""

    code: str = "RECORD_ERROR"


class UnmappedRecordError(RecordError):
    """An accessor operation was handed something that is not a mapped record."""

    code: str = "UNMAPPED_RECORD"

    def __init__(self, value: Any):
        self.value_type = type(value).__name__ if not isinstance(value, type) else value.__name__
        super().__init__(f"Not a mapped record type: {self.value_type}")


class MissingIdentityError(RecordError):
    """
    delete() was given an instance with no primary key and no filter.

    Such a call would match every row of the table.  Deleting a whole table
    is spelled with the class, ``writer.delete(User)``, never with a blank
    instance.
    """

    code: str = "MISSING_IDENTITY"

    def __init__(self, table_name: str):
        self.table_name = table_name
        super().__init__(f"refusing to delete from {table_name}: record has no primary key and no filter")


# Transaction-lifecycle exceptions


class TransactionLifecycleError(RwsplitKernelError):
    """
    Base exception for transaction-lifecycle misuse.

    These are programming errors, not recoverable runtime faults.  The kernel
    never catches them and callers should not either.
    """

    code: str = "TRANSACTION_LIFECYCLE_ERROR"


class TransactionStateError(TransactionLifecycleError):
    """
    begin/commit/rollback was called from a state that does not allow it.

    Carries the state the accessor was in and the operation that was refused.
    """

    code: str = "TRANSACTION_STATE_VIOLATION"

    def __init__(self, state: Any, operation: str):
        self.state = state
        self.operation = operation
        super().__init__(
            f"current txnState:{getattr(state, 'value', state)}, {operation} is not allowed"
        )
