"""
Tests for the asyncpg repository against a recording fake connection
"""
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from uuid import uuid4

import pytest

from hydraulic_kb.asyncpg_repository import (
    ENTRY_COLUMNS, JOB_COLUMNS, SCHEMA_SQL, AsyncPGKnowledgeBaseRepository, DatabasePool,
    _insert_sql, ensure_schema,
)
from hydraulic_kb.config import Settings
from hydraulic_kb.models import (
    BatchJob, EntrySource, ErrorType, JobStatus, KnowledgeBaseEntry, ProcessingFailure,
    ValidationStatus,
)


class FakeConnection:

    def __init__(self, row=None, rows=()):
        self.row = row
        self.rows = list(rows)
        self.executed = []
        self.fetched = []

    async def execute(self, sql, *args):
        self.executed.append((sql, args))

    async def fetchrow(self, sql, *args):
        self.fetched.append((sql, args))
        return self.row

    async def fetch(self, sql, *args):
        self.fetched.append((sql, args))
        return self.rows


class FakeDatabase:

    def __init__(self, conn):
        self.conn = conn
        self.transactions = 0

    @asynccontextmanager
    async def acquire(self):
        yield self.conn

    @asynccontextmanager
    async def transaction(self):
        self.transactions += 1
        yield self.conn


def test_insert_sql():
    assert _insert_sql("t", ["id", "a"]) == "INSERT INTO t (id, a) VALUES ($1, $2)"
    assert _insert_sql("t", ["id", "a", "b"], upsert_key="id").endswith(
        "ON CONFLICT (id) DO UPDATE SET a = EXCLUDED.a, b = EXCLUDED.b")


def test_pool_requires_initialize():
    db = DatabasePool.from_settings(Settings(_env_file=None, database_url="postgresql+asyncpg://u:p@h/db"))
    assert db.dsn == "postgresql://u:p@h/db"
    with pytest.raises(RuntimeError):
        db.pool


async def test_ensure_schema():
    conn = FakeConnection()
    await ensure_schema(FakeDatabase(conn))
    assert conn.executed == [(SCHEMA_SQL, ())]


async def test_save_entry_supersedes_previous():
    previous_id = uuid4()
    conn = FakeConnection(row={"id": previous_id, "version": 2})
    db = FakeDatabase(conn)
    repo = AsyncPGKnowledgeBaseRepository(db)

    stored = await repo.save_entry(KnowledgeBaseEntry(item_code="30101080000200Y", specifications={"bore": 80}))
    assert stored.version == 3
    assert db.transactions == 1
    (update_sql, update_args), (insert_sql, insert_args) = conn.executed
    assert update_sql.startswith("UPDATE kb_entries SET active = FALSE")
    assert update_args[0] == previous_id
    assert insert_sql.startswith("INSERT INTO kb_entries")
    assert len(insert_args) == len(ENTRY_COLUMNS)
    values = dict(zip(ENTRY_COLUMNS, insert_args))
    assert values["specifications"] == {"bore": 80}
    assert values["version"] == 3
    assert values["active"] is True
    assert values["source"] == "CATALOG"
    assert values["validation_status"] == "PENDING"


async def test_get_entry_validates_row():
    entry = KnowledgeBaseEntry(item_code="2030108", item_name="Barrel")
    conn = FakeConnection(row=entry.model_dump())
    loaded = await AsyncPGKnowledgeBaseRepository(FakeDatabase(conn)).get_entry("2030108")
    assert loaded == entry
    assert conn.fetched[0][1] == ("2030108",)


async def test_find_processed_codes_short_circuits_empty():
    conn = FakeConnection(rows=[{"item_code": "A"}])
    repo = AsyncPGKnowledgeBaseRepository(FakeDatabase(conn))
    assert await repo.find_processed_codes([]) == set()
    assert conn.fetched == []
    assert await repo.find_processed_codes(["A", "B"]) == {"A"}
    assert conn.fetched[0][1] == (["A", "B"], "CATALOG")


async def test_update_job_upserts_json_checkpoint():
    conn = FakeConnection()
    job = BatchJob(status=JobStatus.PAUSED, checkpoint_data={"successful_items": ["A"]})
    await AsyncPGKnowledgeBaseRepository(FakeDatabase(conn)).update_job(job)
    [(sql, args)] = conn.executed
    assert "ON CONFLICT (id) DO UPDATE" in sql
    values = dict(zip(JOB_COLUMNS, args))
    assert values["status"] == "PAUSED"
    assert values["checkpoint_data"] == {"successful_items": ["A"]}


async def test_list_failures_unresolved_filter():
    failure = ProcessingFailure(job_id="j", item_code="A", error_type=ErrorType.TIMEOUT)
    conn = FakeConnection(rows=[failure.model_dump()])
    [loaded] = await AsyncPGKnowledgeBaseRepository(FakeDatabase(conn)).list_failures("j", unresolved_only=True)
    assert loaded.error_type is ErrorType.TIMEOUT
    assert "AND NOT resolved" in conn.fetched[0][0]


async def test_update_entry_upserts_by_id():
    conn = FakeConnection()
    entry = KnowledgeBaseEntry(item_code="30101080000300Y", source=EntrySource.GENERATED,
                               validation_status=ValidationStatus.VALIDATED, validation_notes="checked")
    await AsyncPGKnowledgeBaseRepository(FakeDatabase(conn)).update_entry(entry)
    [(sql, args)] = conn.executed
    assert sql.startswith("INSERT INTO kb_entries")
    assert "ON CONFLICT (id) DO UPDATE" in sql
    values = dict(zip(ENTRY_COLUMNS, args))
    assert values["source"] == "GENERATED"
    assert values["validation_status"] == "VALIDATED"
    assert values["validation_notes"] == "checked"


async def test_list_generated_entries_with_status():
    entry = KnowledgeBaseEntry(item_code="30101080000300Y", source=EntrySource.GENERATED,
                               validation_status=ValidationStatus.PENDING_VALIDATION)
    conn = FakeConnection(rows=[entry.model_dump()])
    repo = AsyncPGKnowledgeBaseRepository(FakeDatabase(conn))
    [loaded] = await repo.list_generated_entries(ValidationStatus.PENDING_VALIDATION)
    assert loaded.source is EntrySource.GENERATED
    sql, args = conn.fetched[0]
    assert "validation_status = $2" in sql
    assert sql.endswith("ORDER BY created_at")
    assert args == ("GENERATED", "PENDING_VALIDATION")

    await repo.list_generated_entries()
    assert conn.fetched[1][1] == ("GENERATED",)


async def test_entry_statistics_from_aggregate_row():
    conn = FakeConnection(row={
        "total_entries": 4, "hydraulic_cylinder_count": 3, "total_triples": 100,
        "average_quality_score": 0.75, "inactive_versions": 2, "generated_entries": 1,
        "validated_entries": 0, "invalid_entries": 0, "pending_validation": 1,
    })
    stats = await AsyncPGKnowledgeBaseRepository(FakeDatabase(conn)).entry_statistics()
    assert stats.hydraulic_cylinder_percentage == 75.0
    assert stats.average_triple_count == 25.0
    assert stats.inactive_versions == 2
    assert "FROM kb_entries" in conn.fetched[0][0]


async def test_purge_inactive_entries_returns_codes():
    cutoff = datetime(2024, 5, 1, tzinfo=timezone.utc)
    conn = FakeConnection(rows=[{"item_code": "2030108"}, {"item_code": "2030108"}])
    deleted = await AsyncPGKnowledgeBaseRepository(FakeDatabase(conn)).purge_inactive_entries(cutoff)
    assert deleted == ["2030108", "2030108"]
    sql, args = conn.fetched[0]
    assert sql.startswith("DELETE FROM kb_entries WHERE NOT active")
    assert args == (cutoff,)
