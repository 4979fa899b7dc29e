"""
Factory: handle selection, initial transaction state, injection hook.
"""

from typing import get_origin, get_type_hints
from unittest.mock import MagicMock

import pytest

from rwsplit_kernel.db.store import PRIMARY, REPLICA, StoreHandle
from rwsplit_kernel.domain.options import Where
from rwsplit_kernel.domain.transaction import TxnState
from rwsplit_kernel.interfaces import Queries, Record, RecordCollection
from rwsplit_kernel.logging_config import LogContext
from rwsplit_kernel.services.accessor import ReadAccessor, WriteAccessor
from rwsplit_kernel.services.factory import (
    Factory,
    Handles,
    Injector,
    bind_log_context,
)


def _mock_sessions(count: int) -> tuple[MagicMock, MagicMock]:
    """A sessionmaker stand-in whose sessions answer every query with ``count``."""
    session = MagicMock()
    session.__enter__.return_value = session
    session.__exit__.return_value = False
    session.execute.return_value.scalar_one.return_value = count
    return MagicMock(return_value=session), session


class TestSelection:

    def test_reader_uses_replica_in_after(self, factory, handles):
        reader = factory.reader()
        assert isinstance(reader, ReadAccessor)
        assert not isinstance(reader, WriteAccessor)
        assert reader.handle is handles.replica
        assert reader.handle.role == REPLICA
        assert reader.state is TxnState.AFTER

    def test_writer_uses_primary_in_before(self, factory, handles):
        writer = factory.writer()
        assert isinstance(writer, WriteAccessor)
        assert writer.handle is handles.primary
        assert writer.handle.role == PRIMARY
        assert writer.state is TxnState.BEFORE

    def test_fresh_accessor_per_call(self, factory):
        assert factory.writer() is not factory.writer()
        assert factory.reader() is not factory.reader()

    def test_writer_transactions_are_independent(self, factory):
        first, second = factory.writer(), factory.writer()
        first.begin()
        assert second.state is TxnState.BEFORE
        assert factory.handles.primary.in_transaction is False
        first.rollback()

    def test_single_engine_handles(self, engines):
        primary, _ = engines
        handles = Handles.from_engines(primary)
        assert handles.primary.role == PRIMARY
        assert handles.replica.role == REPLICA
        assert handles.primary.sessions.kw["bind"] is handles.replica.sessions.kw["bind"]

    def test_accessor_created_logged(self, factory, captured_logs):
        factory.reader()
        created = [r for r in captured_logs() if r["message"] == "accessor_created"]
        assert created[0]["role"] == "replica"
        assert created[0]["txn_state"] == "after"


class TestReplicaCount:

    def test_reader_count_returns_store_value(self, user_model):
        replica_sessions, session = _mock_sessions(1000)
        primary_sessions, _ = _mock_sessions(0)
        factory = Factory(
            Handles(
                primary=StoreHandle(sessions=primary_sessions, role=PRIMARY),
                replica=StoreHandle(sessions=replica_sessions, role=REPLICA),
            )
        )

        assert factory.reader().count(user_model, Where("id = ?", 123)) == 1000

        replica_sessions.assert_called_once_with(info={}, autoflush=False)
        primary_sessions.assert_not_called()
        statement = session.execute.call_args.args[0]
        assert "count(*)" in str(statement)


class TestInjection:

    def test_injector_receives_context_and_replaces_handle(self, handles):
        calls = []
        replacement = handles.primary.with_info(tenant="acme")

        def injector(ctx, holder):
            calls.append((ctx, holder.handle))
            holder.handle = replacement

        factory = Factory(handles, injector=injector)
        writer = factory.writer({"tenant": "acme"})

        assert calls == [({"tenant": "acme"}, handles.primary)]
        assert writer.handle is replacement
        assert factory.handles.primary is handles.primary

    def test_injector_runs_for_readers(self, handles):
        seen = []
        factory = Factory(handles, injector=lambda ctx, holder: seen.append(holder.handle.role))
        factory.reader()
        assert seen == [REPLICA]

    def test_injector_errors_propagate(self, handles):
        def injector(ctx, holder):
            raise LookupError("no tenant")

        with pytest.raises(LookupError):
            Factory(handles, injector=injector).writer()

    def test_injector_holder_is_mutable(self, handles):
        holder = Injector(handles.primary)
        holder.handle = handles.replica
        assert holder.handle is handles.replica


class TestBindLogContext:

    def test_merges_log_context_and_ctx(self, handles):
        LogContext.set(request_id="req-1", correlation_id="corr-1")
        writer = Factory(handles, injector=bind_log_context).writer({"tenant": "acme"})
        assert dict(writer.handle.info) == {
            "request_id": "req-1",
            "correlation_id": "corr-1",
            "tenant": "acme",
        }

    def test_ctx_overrides_log_context(self, handles):
        LogContext.set(request_id="from-context")
        reader = Factory(handles, injector=bind_log_context).reader({"request_id": "explicit"})
        assert reader.handle.info["request_id"] == "explicit"

    def test_nothing_to_bind_keeps_handle(self, handles):
        reader = Factory(handles, injector=bind_log_context).reader()
        assert reader.handle is handles.replica

    def test_info_reaches_sessions_and_logs(self, handles, captured_logs):
        writer = Factory(handles, injector=bind_log_context).writer({"tenant": "acme"})
        writer.begin()
        assert writer.handle.session.info["tenant"] == "acme"
        writer.rollback()

        begun = [r for r in captured_logs() if r["message"] == "transaction_begun"][0]
        assert begun["session_info"] == {"tenant": "acme"}


class TestRecordContract:

    def test_records_expose_table_name(self, user_model, tag_model):
        assert isinstance(user_model(name="x"), Record)
        assert user_model.table_name() == "users"
        assert tag_model.table_name() == "tags"

    def test_find_many_returns_record_collection(self, reader, seeded_users, user_model):
        assert RecordCollection[user_model] == list[user_model]
        for fn in (Queries.find_many, ReadAccessor.find_many):
            assert get_origin(get_type_hints(fn)["return"]) is list

        users = reader.find_many(user_model)
        assert isinstance(users, list)
        assert {type(u) for u in users} == {user_model}
