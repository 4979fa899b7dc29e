"""
Module: rwsplit_kernel.domain.transaction
Responsibility: The transaction state machine that governs when a unit of work
    may begin, commit, or roll back.
Architecture position: Kernel > Domain.  Pure, zero I/O.  The accessor asks the
    machine whether a transition is legal *before* touching the Store, and
    records the new state only after the Store call succeeded.

Invariants enforced:
    - States move strictly BEFORE -> ACTIVE -> AFTER.  AFTER is terminal.
    - begin is legal only from BEFORE; commit only from ACTIVE.
    - rollback is legal from ACTIVE, a no-op from AFTER, illegal from BEFORE.
    - Every illegal request raises TransactionStateError; none is ignored.

Failure modes:
    - TransactionStateError carrying the current state and the refused
      operation.
"""

from enum import Enum

from rwsplit_kernel.exceptions import TransactionStateError


class TxnState(str, Enum):
    """Where a unit of work stands."""

    BEFORE = "before"  # no transaction started; writers start here
    ACTIVE = "active"  # transaction open
    AFTER = "after"  # committed, rolled back, or never needed (readers)


class TxnOperation(str, Enum):
    BEGIN = "begin"
    COMMIT = "commit"
    ROLLBACK = "rollback"


# operation -> {from_state: to_state}; to_state None means "legal, do nothing"
_TRANSITIONS: dict[TxnOperation, dict[TxnState, TxnState | None]] = {
    TxnOperation.BEGIN: {TxnState.BEFORE: TxnState.ACTIVE},
    TxnOperation.COMMIT: {TxnState.ACTIVE: TxnState.AFTER},
    TxnOperation.ROLLBACK: {
        TxnState.ACTIVE: TxnState.AFTER,
        TxnState.AFTER: None,
    },
}


class TransactionStateMachine:
    """
    Tracks the TxnState of one accessor.

    Contract:
        ``plan(operation)`` validates a request and returns the state to move
        to, or ``None`` when the request is legal but has nothing to do.
        ``complete(target)`` records the move once the Store has done its
        part.  Splitting the two keeps the state unchanged when the Store
        call itself fails.

    Non-goals:
        Thread safety.  One machine belongs to one accessor, which is a
        single-threaded-use object.
    """

    def __init__(self, initial: TxnState = TxnState.BEFORE):
        self._state = TxnState(initial)

    @property
    def state(self) -> TxnState:
        return self._state

    @property
    def is_active(self) -> bool:
        return self._state is TxnState.ACTIVE

    def plan(self, operation: TxnOperation) -> TxnState | None:
        """
        Validate ``operation`` against the current state.

        Returns:
            The target state, or None for a legal no-op.

        Raises:
            TransactionStateError: If ``operation`` is illegal here.
        """
        allowed = _TRANSITIONS[TxnOperation(operation)]
        if self._state not in allowed:
            raise TransactionStateError(self._state, TxnOperation(operation).value)
        return allowed[self._state]

    def complete(self, target: TxnState) -> None:
        self._state = target

    def conclude(self) -> None:
        """Force the terminal state (used when the Store's commit fails)."""
        self._state = TxnState.AFTER

    def __repr__(self) -> str:
        return f"TransactionStateMachine(state={self._state.value})"
