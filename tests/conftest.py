"""
Pytest fixtures for the rwsplit test suite.

Provides:
- Structured logging configured for every test, plus ``captured_logs``
- File-backed SQLite engines: primary and replica point at the same file,
  so writes committed on the primary are visible to replica reads
- ``User`` (timestamps + soft delete) and ``Tag`` (plain) records
- A DeterministicClock and a Factory wired to it
- ``sql_log``: statements executed on the primary engine
"""

import json
import logging
from io import StringIO

import pytest
from sqlalchemy import Integer, String, event
from sqlalchemy.orm import Mapped, mapped_column

from rwsplit_kernel.db.base import RecordBase, SoftDeleteMixin, TimestampMixin
from rwsplit_kernel.db.engine import create_engine_from_url
from rwsplit_kernel.db.store import PRIMARY, REPLICA
from rwsplit_kernel.domain.clock import DeterministicClock
from rwsplit_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from rwsplit_kernel.services.factory import Factory, Handles


# =============================================================================
# Records
# =============================================================================


class User(TimestampMixin, SoftDeleteMixin, RecordBase):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str | None] = mapped_column(String(200), nullable=True)


class Tag(RecordBase):
    __tablename__ = "tags"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    label: Mapped[str] = mapped_column(String(50), nullable=False)


@pytest.fixture
def user_model() -> type[User]:
    return User


@pytest.fixture
def tag_model() -> type[Tag]:
    return Tag


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture rwsplit_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, writer):
            writer.begin()
            logs = captured_logs()
            assert any(r["message"] == "transaction_begun" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("rwsplit_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def database_url(tmp_path) -> str:
    return f"sqlite:///{tmp_path / 'rwsplit.db'}"


@pytest.fixture
def engines(database_url):
    """(primary, replica) engines over one SQLite file, schema created."""
    primary = create_engine_from_url(database_url, role=PRIMARY)
    replica = create_engine_from_url(database_url, role=REPLICA)
    RecordBase.metadata.create_all(primary)
    yield primary, replica
    replica.dispose()
    primary.dispose()


@pytest.fixture
def sql_log(engines) -> list[tuple[str, tuple]]:
    """(statement, parameters) for every statement run on the primary engine."""
    primary, _ = engines
    statements: list[tuple[str, tuple]] = []

    def _capture(conn, cursor, statement, parameters, context, executemany):
        statements.append((statement, parameters))

    event.listen(primary, "before_cursor_execute", _capture)
    yield statements
    event.remove(primary, "before_cursor_execute", _capture)


@pytest.fixture
def deterministic_clock() -> DeterministicClock:
    return DeterministicClock()


@pytest.fixture
def handles(engines) -> Handles:
    primary, replica = engines
    return Handles.from_engines(primary, replica)


@pytest.fixture
def factory(handles, deterministic_clock) -> Factory:
    return Factory(handles, clock=deterministic_clock)


@pytest.fixture
def reader(factory):
    return factory.reader()


@pytest.fixture
def writer(factory):
    return factory.writer()


@pytest.fixture
def seeded_users(factory, user_model):
    """Three committed users: alice, bob, carol (ids 1..3)."""
    writer = factory.writer()
    return [writer.save(user_model(name=name)) for name in ("alice", "bob", "carol")]
