"""
Module: rwsplit_kernel.db.store
Responsibility: StoreHandle -- the connection handle an accessor owns.  Wraps a
    SQLAlchemy ``sessionmaker`` and, while a transaction is open, the Session
    and SessionTransaction carrying it.
Architecture position: Kernel > DB.  May import from db/engine.py.  MUST NOT
    import from services/ or outer layers.

Invariants enforced:
    - Handles are immutable.  begin/commit/rollback return a *new* handle; the
      accessor replaces its own reference, mirroring the session object
      changing identity across a transaction boundary.
    - Outside a transaction every read runs in its own short-lived Session and
      every write in its own committed unit of work.
    - Inside a transaction every operation shares the transaction's Session.
    - The Session of a concluded transaction is always closed, whether the
      commit/rollback succeeded or raised.
    - Sessions never autoflush; nothing reaches the database except the
      statements the accessor executes.

Failure modes:
    - Any SQLAlchemyError raised by the Session propagates unchanged.
    - RuntimeError if commit/rollback is requested on a handle with no open
      transaction (the accessor's state machine prevents this).
"""

from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, SessionTransaction

from rwsplit_kernel.db.engine import session_factory

PRIMARY = "primary"
REPLICA = "replica"


@dataclass(frozen=True)
class StoreHandle:
    """
    Immutable handle to a database, optionally carrying an open transaction.

    ``info`` is copied into ``Session.info`` of every session the handle
    opens; injectors use it to attach request-scoped data.
    """

    sessions: Callable[..., Session]
    role: str = PRIMARY
    info: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    session: Session | None = field(default=None, compare=False)
    transaction: SessionTransaction | None = field(default=None, compare=False)

    @classmethod
    def from_engine(cls, engine: Engine, role: str = PRIMARY) -> "StoreHandle":
        return cls(sessions=session_factory(engine), role=role)

    @property
    def in_transaction(self) -> bool:
        return self.transaction is not None

    def with_info(self, **info: Any) -> "StoreHandle":
        """New handle whose sessions carry ``info`` merged over the current one."""
        return replace(self, info=MappingProxyType({**self.info, **info}))

    def _open(self) -> Session:
        # Records are written only through explicit statements, never by flush.
        return self.sessions(info=dict(self.info), autoflush=False)

    # -- Operation scopes ---------------------------------------------------

    @contextmanager
    def reading(self) -> Iterator[Session]:
        """Session for a read: the transaction's, or a fresh one closed on exit."""
        if self.session is not None:
            yield self.session
            return
        with self._open() as session:
            yield session

    @contextmanager
    def writing(self) -> Iterator[Session]:
        """
        Session for a write: the transaction's, or a fresh one that commits on
        normal exit and rolls back on exception.
        """
        if self.session is not None:
            yield self.session
            return
        with self._open() as session, session.begin():
            yield session

    # -- Transaction transitions --------------------------------------------

    def begin(self) -> "StoreHandle":
        session = self._open()
        try:
            transaction = session.begin()
        except Exception:
            session.close()
            raise
        return replace(self, session=session, transaction=transaction)

    def commit(self) -> "StoreHandle":
        session, transaction = self._require_transaction("commit")
        try:
            transaction.commit()
        finally:
            session.close()
        return self.detached()

    def rollback(self) -> "StoreHandle":
        session, transaction = self._require_transaction("rollback")
        try:
            transaction.rollback()
        finally:
            session.close()
        return self.detached()

    def detached(self) -> "StoreHandle":
        """Same database and info, no transaction."""
        return replace(self, session=None, transaction=None)

    def _require_transaction(self, operation: str) -> tuple[Session, SessionTransaction]:
        if self.session is None or self.transaction is None:
            raise RuntimeError(f"{operation} requested on a {self.role} handle with no transaction")
        return self.session, self.transaction
