"""Pure domain layer: options, transaction states, clock."""

from rwsplit_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from rwsplit_kernel.domain.options import (
    ForUpdate,
    IgnoreSoftDelete,
    Limit,
    Offset,
    Option,
    OptionList,
    Order,
    PendingQuery,
    Where,
)
from rwsplit_kernel.domain.transaction import (
    TransactionStateMachine,
    TxnOperation,
    TxnState,
)

__all__ = [
    "Clock",
    "SystemClock",
    "DeterministicClock",
    "Option",
    "OptionList",
    "PendingQuery",
    "Where",
    "Order",
    "Limit",
    "Offset",
    "ForUpdate",
    "IgnoreSoftDelete",
    "TxnState",
    "TxnOperation",
    "TransactionStateMachine",
]
