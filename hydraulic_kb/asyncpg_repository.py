"""
asyncpg_repository.py — Production PostgreSQL repository implementation.

Implements the KnowledgeBaseRepository interface using an asyncpg connection
pool. Specifications, generated BOMs and checkpoint data are stored as JSONB.
"""

from __future__ import annotations

import json
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

import asyncpg

from hydraulic_kb.models import (
    BatchJob, EntrySource, KnowledgeBaseEntry, KnowledgeBaseStatistics, ProcessingFailure,
    ValidationStatus,
)
from hydraulic_kb.repository import KnowledgeBaseRepository

logger = logging.getLogger(__name__)

# ── Schema ───────────────────────────────────────────────────────────────────

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS kb_entries (
    id                     UUID PRIMARY KEY,
    item_code              TEXT NOT NULL,
    item_name              TEXT NOT NULL DEFAULT '',
    is_hydraulic_cylinder  BOOLEAN NOT NULL DEFAULT FALSE,
    specifications         JSONB NOT NULL DEFAULT '{}'::jsonb,
    triple_count           INTEGER NOT NULL DEFAULT 0,
    component_count        INTEGER NOT NULL DEFAULT 0,
    hierarchy_depth        INTEGER NOT NULL DEFAULT 0,
    quality_score          DOUBLE PRECISION,
    bom                    JSONB,
    job_id                 TEXT,
    source                 TEXT NOT NULL DEFAULT 'CATALOG',
    validation_status      TEXT NOT NULL DEFAULT 'PENDING',
    validation_notes       TEXT,
    description            TEXT NOT NULL DEFAULT '',
    active                 BOOLEAN NOT NULL DEFAULT TRUE,
    version                INTEGER NOT NULL DEFAULT 1,
    created_at             TIMESTAMPTZ NOT NULL,
    updated_at             TIMESTAMPTZ NOT NULL
);
CREATE UNIQUE INDEX IF NOT EXISTS kb_entries_active_code
    ON kb_entries (item_code) WHERE active;
CREATE INDEX IF NOT EXISTS kb_entries_job ON kb_entries (job_id);
CREATE INDEX IF NOT EXISTS kb_entries_generated
    ON kb_entries (validation_status, created_at) WHERE active AND source = 'GENERATED';

CREATE TABLE IF NOT EXISTS batch_jobs (
    id                         TEXT PRIMARY KEY,
    status                     TEXT NOT NULL,
    total_items                INTEGER NOT NULL DEFAULT 0,
    processed_items            INTEGER NOT NULL DEFAULT 0,
    success_count              INTEGER NOT NULL DEFAULT 0,
    failure_count              INTEGER NOT NULL DEFAULT 0,
    skipped_count              INTEGER NOT NULL DEFAULT 0,
    timeout_count              INTEGER NOT NULL DEFAULT 0,
    last_processed_item_code   TEXT,
    checkpoint_data            JSONB NOT NULL DEFAULT '{}'::jsonb,
    start_time                 TIMESTAMPTZ NOT NULL,
    end_time                   TIMESTAMPTZ,
    average_time_per_item      DOUBLE PRECISION,
    estimated_completion_time  TIMESTAMPTZ,
    error_details              TEXT,
    initiated_by               TEXT NOT NULL DEFAULT 'system',
    batch_size                 INTEGER NOT NULL DEFAULT 50
);

CREATE TABLE IF NOT EXISTS processing_failures (
    id             UUID PRIMARY KEY,
    job_id         TEXT NOT NULL,
    item_code      TEXT NOT NULL,
    error_type     TEXT NOT NULL,
    error_message  TEXT NOT NULL DEFAULT '',
    stack_trace    TEXT,
    retry_count    INTEGER NOT NULL DEFAULT 0,
    resolved       BOOLEAN NOT NULL DEFAULT FALSE,
    resolved_at    TIMESTAMPTZ,
    created_at     TIMESTAMPTZ NOT NULL
);
CREATE INDEX IF NOT EXISTS processing_failures_job ON processing_failures (job_id);
"""

ENTRY_COLUMNS = [
    "id", "item_code", "item_name", "is_hydraulic_cylinder", "specifications",
    "triple_count", "component_count", "hierarchy_depth", "quality_score", "bom",
    "job_id", "source", "validation_status", "validation_notes", "description",
    "active", "version", "created_at", "updated_at",
]

JOB_COLUMNS = [
    "id", "status", "total_items", "processed_items", "success_count",
    "failure_count", "skipped_count", "timeout_count", "last_processed_item_code",
    "checkpoint_data", "start_time", "end_time", "average_time_per_item",
    "estimated_completion_time", "error_details", "initiated_by", "batch_size",
]

FAILURE_COLUMNS = [
    "id", "job_id", "item_code", "error_type", "error_message", "stack_trace",
    "retry_count", "resolved", "resolved_at", "created_at",
]


# ── Connection Pool Manager ──────────────────────────────────────────────────

class DatabasePool:
    """Manages asyncpg connection pool lifecycle."""

    def __init__(self, dsn: str, min_size: int = 2, max_size: int = 10,
                 command_timeout: int = 30):
        self.dsn = dsn
        self.min_size = min_size
        self.max_size = max_size
        self.command_timeout = command_timeout
        self._pool: Optional[asyncpg.Pool] = None

    @classmethod
    def from_settings(cls, settings) -> "DatabasePool":
        return cls(
            settings.asyncpg_dsn,
            min_size=settings.db_pool_min,
            max_size=settings.db_pool_max,
            command_timeout=settings.db_command_timeout,
        )

    async def initialize(self) -> None:
        """Create connection pool and install the JSONB codec."""
        self._pool = await asyncpg.create_pool(
            self.dsn,
            min_size=self.min_size,
            max_size=self.max_size,
            command_timeout=self.command_timeout,
            init=self._init_connection,
        )
        logger.info(
            "Database pool initialized (min=%d, max=%d)", self.min_size, self.max_size
        )

    async def _init_connection(self, conn: asyncpg.Connection) -> None:
        """Per-connection setup: JSONB columns round-trip as Python objects."""
        await conn.set_type_codec(
            "jsonb",
            encoder=json.dumps,
            decoder=json.loads,
            schema="pg_catalog",
        )

    @property
    def pool(self) -> asyncpg.Pool:
        if self._pool is None:
            raise RuntimeError("Database pool not initialized. Call initialize() first.")
        return self._pool

    @asynccontextmanager
    async def acquire(self):
        async with self.pool.acquire() as conn:
            yield conn

    @asynccontextmanager
    async def transaction(self):
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                yield conn

    async def close(self) -> None:
        if self._pool:
            await self._pool.close()
            logger.info("Database pool closed")


async def ensure_schema(db: DatabasePool) -> None:
    async with db.acquire() as conn:
        await conn.execute(SCHEMA_SQL)
    logger.info("Knowledge base schema ensured")


def _row_values(record: dict[str, Any], columns: list[str]) -> list[Any]:
    return [record[c] for c in columns]


def _insert_sql(table: str, columns: list[str], upsert_key: Optional[str] = None) -> str:
    placeholders = ", ".join(f"${i + 1}" for i in range(len(columns)))
    sql = f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({placeholders})"
    if upsert_key:
        updates = ", ".join(f"{c} = EXCLUDED.{c}" for c in columns if c != upsert_key)
        sql += f" ON CONFLICT ({upsert_key}) DO UPDATE SET {updates}"
    return sql


# ── Knowledge Base Repository ────────────────────────────────────────────────

class AsyncPGKnowledgeBaseRepository(KnowledgeBaseRepository):
    """
    Production repository implementing the KnowledgeBaseRepository interface.

    Models are written with ``model_dump()``; nested models (the BOM,
    checkpoint lists) go through ``mode="json"`` so they fit JSONB.
    """

    def __init__(self, db: DatabasePool):
        self.db = db

    # ── Entries ──────────────────────────────────────────────────────────

    @staticmethod
    def _entry_record(entry: KnowledgeBaseEntry) -> dict[str, Any]:
        record = entry.model_dump()
        record["specifications"] = entry.specifications
        record["bom"] = entry.bom.model_dump(mode="json") if entry.bom else None
        record["source"] = entry.source.value
        record["validation_status"] = entry.validation_status.value
        return record

    async def get_entry(self, item_code: str) -> Optional[KnowledgeBaseEntry]:
        async with self.db.acquire() as conn:
            row = await conn.fetchrow(
                "SELECT * FROM kb_entries WHERE item_code = $1 AND active",
                item_code,
            )
            return KnowledgeBaseEntry.model_validate(dict(row)) if row else None

    async def find_entries_by_prefix(self, prefix: str) -> list[KnowledgeBaseEntry]:
        async with self.db.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT * FROM kb_entries
                WHERE active AND item_code LIKE $1 || '%'
                ORDER BY item_code
                """,
                prefix,
            )
            return [KnowledgeBaseEntry.model_validate(dict(r)) for r in rows]

    async def find_processed_codes(self, item_codes: Iterable[str]) -> set[str]:
        codes = list(item_codes)
        if not codes:
            return set()
        async with self.db.acquire() as conn:
            rows = await conn.fetch(
                "SELECT item_code FROM kb_entries "
                "WHERE active AND source = $2 AND item_code = ANY($1::text[])",
                codes, EntrySource.CATALOG.value,
            )
            return {r["item_code"] for r in rows}

    async def save_entry(self, entry: KnowledgeBaseEntry) -> KnowledgeBaseEntry:
        async with self.db.transaction() as conn:
            previous = await conn.fetchrow(
                "SELECT id, version FROM kb_entries WHERE item_code = $1 AND active FOR UPDATE",
                entry.item_code,
            )
            stored = entry.model_copy()
            stored.active = True
            if previous:
                await conn.execute(
                    "UPDATE kb_entries SET active = FALSE, updated_at = $2 WHERE id = $1",
                    previous["id"], datetime.now(timezone.utc),
                )
                stored.version = previous["version"] + 1
            await conn.execute(
                _insert_sql("kb_entries", ENTRY_COLUMNS),
                *_row_values(self._entry_record(stored), ENTRY_COLUMNS),
            )
            logger.debug("Saved entry %s (v%d)", stored.item_code, stored.version)
        return stored

    async def list_entries(self, job_id: Optional[str] = None) -> list[KnowledgeBaseEntry]:
        async with self.db.acquire() as conn:
            if job_id is None:
                rows = await conn.fetch("SELECT * FROM kb_entries WHERE active ORDER BY item_code")
            else:
                rows = await conn.fetch(
                    "SELECT * FROM kb_entries WHERE active AND job_id = $1 ORDER BY item_code",
                    job_id,
                )
            return [KnowledgeBaseEntry.model_validate(dict(r)) for r in rows]

    async def update_entry(self, entry: KnowledgeBaseEntry) -> None:
        async with self.db.acquire() as conn:
            await conn.execute(
                _insert_sql("kb_entries", ENTRY_COLUMNS, upsert_key="id"),
                *_row_values(self._entry_record(entry), ENTRY_COLUMNS),
            )

    async def list_generated_entries(
        self, status: Optional[ValidationStatus] = None,
    ) -> list[KnowledgeBaseEntry]:
        query = "SELECT * FROM kb_entries WHERE active AND source = $1"
        args: list[Any] = [EntrySource.GENERATED.value]
        if status is not None:
            query += " AND validation_status = $2"
            args.append(status.value)
        async with self.db.acquire() as conn:
            rows = await conn.fetch(query + " ORDER BY created_at", *args)
            return [KnowledgeBaseEntry.model_validate(dict(r)) for r in rows]

    async def entry_statistics(self) -> KnowledgeBaseStatistics:
        async with self.db.acquire() as conn:
            row = await conn.fetchrow(
                """
                SELECT
                    COUNT(*) FILTER (WHERE active) AS total_entries,
                    COUNT(*) FILTER (WHERE active AND is_hydraulic_cylinder) AS hydraulic_cylinder_count,
                    COALESCE(SUM(triple_count) FILTER (WHERE active), 0) AS total_triples,
                    AVG(quality_score) FILTER (WHERE active) AS average_quality_score,
                    COUNT(*) FILTER (WHERE NOT active) AS inactive_versions,
                    COUNT(*) FILTER (WHERE active AND source = 'GENERATED') AS generated_entries,
                    COUNT(*) FILTER (WHERE active AND validation_status = 'VALIDATED') AS validated_entries,
                    COUNT(*) FILTER (WHERE active AND validation_status = 'INVALID') AS invalid_entries,
                    COUNT(*) FILTER (WHERE active AND validation_status = 'PENDING_VALIDATION')
                        AS pending_validation
                FROM kb_entries
                """
            )
            return KnowledgeBaseStatistics.model_validate(dict(row))

    async def purge_inactive_entries(self, older_than: datetime) -> list[str]:
        async with self.db.acquire() as conn:
            rows = await conn.fetch(
                "DELETE FROM kb_entries WHERE NOT active AND updated_at < $1 RETURNING item_code",
                older_than,
            )
        codes = [r["item_code"] for r in rows]
        logger.info("Purged %d inactive entry versions older than %s", len(codes), older_than.isoformat())
        return codes

    # ── Jobs ─────────────────────────────────────────────────────────────

    @staticmethod
    def _job_record(job: BatchJob) -> dict[str, Any]:
        record = job.model_dump()
        record["status"] = job.status.value
        record["checkpoint_data"] = job.model_dump(mode="json")["checkpoint_data"]
        return record

    async def create_job(self, job: BatchJob) -> BatchJob:
        async with self.db.acquire() as conn:
            await conn.execute(
                _insert_sql("batch_jobs", JOB_COLUMNS),
                *_row_values(self._job_record(job), JOB_COLUMNS),
            )
        logger.info("Created batch job %s (%d items)", job.id, job.total_items)
        return job

    async def get_job(self, job_id: str) -> Optional[BatchJob]:
        async with self.db.acquire() as conn:
            row = await conn.fetchrow("SELECT * FROM batch_jobs WHERE id = $1", job_id)
            return BatchJob.model_validate(dict(row)) if row else None

    async def update_job(self, job: BatchJob) -> None:
        async with self.db.acquire() as conn:
            await conn.execute(
                _insert_sql("batch_jobs", JOB_COLUMNS, upsert_key="id"),
                *_row_values(self._job_record(job), JOB_COLUMNS),
            )

    # ── Failures ─────────────────────────────────────────────────────────

    @staticmethod
    def _failure_record(failure: ProcessingFailure) -> dict[str, Any]:
        record = failure.model_dump()
        record["error_type"] = failure.error_type.value
        return record

    async def save_failure(self, failure: ProcessingFailure) -> ProcessingFailure:
        async with self.db.acquire() as conn:
            await conn.execute(
                _insert_sql("processing_failures", FAILURE_COLUMNS),
                *_row_values(self._failure_record(failure), FAILURE_COLUMNS),
            )
        return failure

    async def list_failures(self, job_id: str, unresolved_only: bool = False) -> list[ProcessingFailure]:
        query = "SELECT * FROM processing_failures WHERE job_id = $1"
        if unresolved_only:
            query += " AND NOT resolved"
        async with self.db.acquire() as conn:
            rows = await conn.fetch(query + " ORDER BY created_at", job_id)
            return [ProcessingFailure.model_validate(dict(r)) for r in rows]

    async def update_failure(self, failure: ProcessingFailure) -> None:
        async with self.db.acquire() as conn:
            await conn.execute(
                _insert_sql("processing_failures", FAILURE_COLUMNS, upsert_key="id"),
                *_row_values(self._failure_record(failure), FAILURE_COLUMNS),
            )
