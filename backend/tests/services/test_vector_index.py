"""
Tests for VectorIndex (pgvector).

SQL is checked by compiling statements with the PostgreSQL dialect; the
session factory is a mock, so no database is needed.

This test module verifies:
1. Upsert is an ON CONFLICT overwrite, sent in bounded batches
2. Queries use cosine distance and JSONB containment filters
3. avatar_documents queries require an owner_id filter (before any DB access)
4. Vector dimension validation
5. Per-namespace partial HNSW indexes and transaction-local search settings
6. The bounded readiness check
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import OperationalError

from chatgenius.core.exceptions import ScopeFilterRequiredError, VectorIndexError
from chatgenius.models.index_record import IndexRecordModel, Namespace
from chatgenius.services.vector_index import IndexRecord, VectorIndex, check_scope


class FakeSession:
    def __init__(self, result=None, error: Exception | None = None):
        self.execute = AsyncMock(return_value=result, side_effect=error)
        self.commit = AsyncMock()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return False


def make_index(session: FakeSession, **kwargs) -> tuple[VectorIndex, MagicMock]:
    factory = MagicMock(return_value=session)
    kwargs.setdefault("dimension", 3)
    kwargs.setdefault("upsert_delay", 0)
    return VectorIndex(factory, **kwargs), factory


def compile_pg(stmt) -> str:
    return str(stmt.compile(dialect=postgresql.dialect()))


# ========================================
# Scope enforcement
# ========================================

class TestScope:
    def test_messages_need_no_filter(self):
        check_scope(Namespace.MESSAGES, None)

    @pytest.mark.parametrize("metadata_filter", [None, {}, {"scope_id": "c1"}, {"owner_id": ""}])
    def test_avatar_documents_require_owner(self, metadata_filter):
        with pytest.raises(ScopeFilterRequiredError, match="owner_id"):
            check_scope(Namespace.AVATAR_DOCUMENTS, metadata_filter)

    def test_avatar_documents_with_owner(self):
        check_scope("avatar_documents", {"owner_id": "u1"})

    @pytest.mark.asyncio
    async def test_unscoped_query_never_reaches_database(self):
        index, factory = make_index(FakeSession())

        with pytest.raises(ScopeFilterRequiredError):
            await index.query(Namespace.AVATAR_DOCUMENTS, [0.1, 0.2, 0.3], None, top_k=3)

        factory.assert_not_called()


# ========================================
# Statements
# ========================================

class TestStatements:
    def test_upsert_statement_overwrites_on_conflict(self):
        index, _ = make_index(FakeSession())
        stmt = index.build_upsert_statement(
            "messages",
            [IndexRecord("m1", [0.1, 0.2, 0.3], {"content": "hello", "scope_id": "c1"})],
        )

        sql = compile_pg(stmt)

        assert "INSERT INTO index_records" in sql
        assert "ON CONFLICT (namespace, item_id) DO UPDATE" in sql
        assert "embedding = excluded.embedding" in sql
        assert "record_metadata = excluded.record_metadata" in sql

    def test_query_statement_cosine_and_filter(self):
        index, _ = make_index(FakeSession())
        stmt = index.build_query_statement("avatar_documents", [0.1, 0.2, 0.3], {"owner_id": "u1"}, 6)

        sql = compile_pg(stmt)

        assert "<=>" in sql
        assert "@>" in sql
        assert "index_records.namespace = 'avatar_documents'" in sql
        assert "LIMIT" in sql

    def test_query_statement_without_filter(self):
        index, _ = make_index(FakeSession())
        sql = compile_pg(index.build_query_statement("messages", [0.1, 0.2, 0.3], None, 5))

        assert "@>" not in sql

    def test_query_statement_rejects_unknown_namespace(self):
        index, _ = make_index(FakeSession())

        with pytest.raises(ValueError):
            index.build_query_statement("messages' OR true --", [0.1, 0.2, 0.3], None, 5)

    def test_search_settings_are_transaction_local(self):
        index, _ = make_index(FakeSession(), ef_search=40, iterative_scan="strict_order")

        for stmt in index.build_search_settings(10):
            compiled = stmt.compile(dialect=postgresql.dialect())
            assert "set_config" in str(compiled)
            # is_local: the setting ends with the query's transaction
            assert list(compiled.params.values())[-1] is True

    @pytest.mark.parametrize(
        "configured, top_k, expected",
        [(40, 10, "40"), (40, 200, "200"), (40, 5000, "1000")],
    )
    def test_ef_search_covers_top_k(self, configured, top_k, expected):
        index, _ = make_index(FakeSession(), ef_search=configured)

        params = index.build_search_settings(top_k)[0].compile(dialect=postgresql.dialect()).params

        assert "hnsw.ef_search" in params.values()
        assert expected in params.values()
        assert True in params.values()

    def test_iterative_scan_can_be_disabled(self):
        index, _ = make_index(FakeSession(), iterative_scan="off")

        assert len(index.build_search_settings(5)) == 1

    def test_iterative_scan_mode(self):
        index, _ = make_index(FakeSession(), iterative_scan="relaxed_order")

        params = index.build_search_settings(5)[1].compile(dialect=postgresql.dialect()).params

        assert "hnsw.iterative_scan" in params.values()
        assert "relaxed_order" in params.values()


class TestSchema:
    @pytest.mark.parametrize("namespace", list(Namespace))
    def test_partial_hnsw_index_per_namespace(self, namespace):
        indexes = {index.name: index for index in IndexRecordModel.__table__.indexes}

        hnsw = indexes[f"ix_index_records_embedding_hnsw_{namespace.value}"]

        options = hnsw.dialect_options["postgresql"]
        assert options["using"] == "hnsw"
        assert str(options["where"]) == f"namespace = '{namespace.value}'"

    def test_no_shared_hnsw_index(self):
        names = {index.name for index in IndexRecordModel.__table__.indexes}

        assert "ix_index_records_embedding_hnsw" not in names


# ========================================
# Operations
# ========================================

@pytest.mark.asyncio
class TestOperations:
    async def test_upsert_in_batches_with_delay(self):
        session = FakeSession()
        index, factory = make_index(session, upsert_batch_size=100, upsert_delay=0.5)
        records = [IndexRecord(f"m{i}", [0.0, 0.0, 1.0], {"content": f"m{i}"}) for i in range(250)]

        with patch("chatgenius.services.vector_index.asyncio.sleep", new_callable=AsyncMock) as sleep:
            written = await index.upsert(Namespace.MESSAGES, records)

        assert written == 250
        assert session.execute.await_count == 3
        assert session.commit.await_count == 3
        assert sleep.await_count == 2

    async def test_upsert_nothing(self):
        session = FakeSession()
        index, factory = make_index(session)

        assert await index.upsert(Namespace.MESSAGES, []) == 0
        factory.assert_not_called()

    async def test_upsert_rejects_wrong_dimension(self):
        session = FakeSession()
        index, factory = make_index(session)

        with pytest.raises(VectorIndexError, match="dimension 2, expected 3"):
            await index.upsert(Namespace.MESSAGES, [IndexRecord("m1", [0.1, 0.2], {})])

        factory.assert_not_called()

    async def test_upsert_database_error(self):
        session = FakeSession(error=OperationalError("INSERT", {}, Exception("connection lost")))
        index, _ = make_index(session)

        with pytest.raises(VectorIndexError, match="Upsert into 'messages' failed"):
            await index.upsert(Namespace.MESSAGES, [IndexRecord("m1", [0.1, 0.2, 0.3], {})])

    async def test_delete_reports_whether_removed(self):
        index, _ = make_index(FakeSession(result=MagicMock(rowcount=1)))
        assert await index.delete_by_id(Namespace.MESSAGES, "m1") is True

        index, _ = make_index(FakeSession(result=MagicMock(rowcount=0)))
        assert await index.delete_by_id(Namespace.MESSAGES, "missing") is False

    async def test_query_maps_rows_to_results(self):
        rows = [
            MagicMock(item_id="d2", score=0.41, record_metadata={"owner_id": "u1"}),
            MagicMock(item_id="d1", score=0.93, record_metadata={"owner_id": "u1"}),
        ]
        result = MagicMock()
        result.all.return_value = rows
        session = FakeSession(result=result)
        index, _ = make_index(session)

        results = await index.query(Namespace.AVATAR_DOCUMENTS, [0.1, 0.2, 0.3], {"owner_id": "u1"}, top_k=6)

        assert [r.id for r in results] == ["d1", "d2"]
        assert results[0].score == pytest.approx(0.93)
        assert results[0].metadata == {"owner_id": "u1"}
        # ef_search, iterative_scan, then the search itself
        assert session.execute.await_count == 3


@pytest.mark.asyncio
class TestReadiness:
    async def test_becomes_consistent(self):
        index, _ = make_index(FakeSession())
        index.exists = AsyncMock(side_effect=[False, False, True])

        assert await index.wait_for_consistency(Namespace.MESSAGES, "m1", present=True, interval=0)
        assert index.exists.await_count == 3

    async def test_bounded_attempts(self):
        index, _ = make_index(FakeSession())
        index.exists = AsyncMock(return_value=True)

        consistent = await index.wait_for_consistency(
            Namespace.MESSAGES, "m1", present=False, max_attempts=4, interval=0
        )

        assert consistent is False
        assert index.exists.await_count == 4
