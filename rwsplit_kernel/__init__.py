"""
rwsplit Kernel - read/write split data access

A thin layer over SQLAlchemy with:
- Composable query options (Where, Order, Limit, Offset, ForUpdate)
- Read accessors on the replica, write accessors on the primary
- An explicit BEFORE -> ACTIVE -> AFTER transaction lifecycle
- Soft delete and timestamp stamping for records that opt in
- A per-request injection hook on accessor creation
"""

__version__ = "0.1.0"
