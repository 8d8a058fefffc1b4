"""
Hydraulic Cylinder Knowledge Base — Persistence

Repository interface for knowledge-base entries, batch jobs and
processing failures, plus an in-memory implementation.
"""
from __future__ import annotations
import asyncio
import logging
from datetime import datetime, timezone
from typing import Iterable, Optional
from uuid import UUID

from hydraulic_kb.models import (
    BatchJob, EntrySource, KnowledgeBaseEntry, KnowledgeBaseStatistics, ProcessingFailure,
    ValidationStatus,
)

logger = logging.getLogger(__name__)


# ============================================================
# Database Abstraction Layer (Repository Pattern)
# ============================================================

class KnowledgeBaseRepository:
    """
    Abstract DB access. In production, backed by asyncpg
    (see asyncpg_repository.py); implementations are swappable.
    """

    # ── Entries ──────────────────────────────────────────────

    async def get_entry(self, item_code: str) -> Optional[KnowledgeBaseEntry]:
        """The active entry for ``item_code``."""
        raise NotImplementedError

    async def find_entries_by_prefix(self, prefix: str) -> list[KnowledgeBaseEntry]:
        raise NotImplementedError

    async def find_processed_codes(self, item_codes: Iterable[str]) -> set[str]:
        """Subset of ``item_codes`` that already have an active catalog entry."""
        raise NotImplementedError

    async def save_entry(self, entry: KnowledgeBaseEntry) -> KnowledgeBaseEntry:
        """Store ``entry`` as the active one, deactivating and superseding any previous."""
        raise NotImplementedError

    async def list_entries(self, job_id: Optional[str] = None) -> list[KnowledgeBaseEntry]:
        raise NotImplementedError

    async def update_entry(self, entry: KnowledgeBaseEntry) -> None:
        """Overwrite a stored entry in place, without a new version."""
        raise NotImplementedError

    async def list_generated_entries(
        self, status: Optional[ValidationStatus] = None,
    ) -> list[KnowledgeBaseEntry]:
        """Active generated entries, oldest first, optionally with one validation status."""
        raise NotImplementedError

    async def entry_statistics(self) -> KnowledgeBaseStatistics:
        raise NotImplementedError

    async def purge_inactive_entries(self, older_than: datetime) -> list[str]:
        """Delete superseded versions last touched before ``older_than``. Returns their codes."""
        raise NotImplementedError

    # ── Jobs ─────────────────────────────────────────────────

    async def create_job(self, job: BatchJob) -> BatchJob:
        raise NotImplementedError

    async def get_job(self, job_id: str) -> Optional[BatchJob]:
        raise NotImplementedError

    async def update_job(self, job: BatchJob) -> None:
        raise NotImplementedError

    # ── Failures ─────────────────────────────────────────────

    async def save_failure(self, failure: ProcessingFailure) -> ProcessingFailure:
        raise NotImplementedError

    async def list_failures(self, job_id: str, unresolved_only: bool = False) -> list[ProcessingFailure]:
        raise NotImplementedError

    async def update_failure(self, failure: ProcessingFailure) -> None:
        raise NotImplementedError


# ============================================================
# In-Memory Repository (for testing / local dev)
# ============================================================

class InMemoryRepository(KnowledgeBaseRepository):
    """In-memory implementation for testing without a database.

    Records are copied on the way in and out, so callers mutating a
    returned model never change what is stored.
    """

    def __init__(self):
        self.entries: dict[UUID, KnowledgeBaseEntry] = {}
        self.jobs: dict[str, BatchJob] = {}
        self.failures: dict[UUID, ProcessingFailure] = {}
        self._active_index: dict[str, UUID] = {}
        self._lock = asyncio.Lock()

    async def get_entry(self, item_code: str) -> Optional[KnowledgeBaseEntry]:
        eid = self._active_index.get(item_code)
        return self.entries[eid].model_copy(deep=True) if eid else None

    async def find_entries_by_prefix(self, prefix: str) -> list[KnowledgeBaseEntry]:
        return [
            self.entries[eid].model_copy(deep=True)
            for code, eid in sorted(self._active_index.items())
            if code.startswith(prefix)
        ]

    async def find_processed_codes(self, item_codes: Iterable[str]) -> set[str]:
        return {
            c for c in item_codes
            if c in self._active_index
            and self.entries[self._active_index[c]].source is EntrySource.CATALOG
        }

    async def save_entry(self, entry: KnowledgeBaseEntry) -> KnowledgeBaseEntry:
        async with self._lock:
            stored = entry.model_copy(deep=True)
            previous_id = self._active_index.get(stored.item_code)
            if previous_id is not None:
                previous = self.entries[previous_id]
                previous.active = False
                previous.updated_at = datetime.now(timezone.utc)
                stored.version = previous.version + 1
            stored.active = True
            self.entries[stored.id] = stored
            self._active_index[stored.item_code] = stored.id
            return stored.model_copy(deep=True)

    async def list_entries(self, job_id: Optional[str] = None) -> list[KnowledgeBaseEntry]:
        return [
            e.model_copy(deep=True) for e in self.entries.values()
            if e.active and (job_id is None or e.job_id == job_id)
        ]

    async def update_entry(self, entry: KnowledgeBaseEntry) -> None:
        async with self._lock:
            self.entries[entry.id] = entry.model_copy(deep=True)

    async def list_generated_entries(
        self, status: Optional[ValidationStatus] = None,
    ) -> list[KnowledgeBaseEntry]:
        generated = [
            e for e in self.entries.values()
            if e.active and e.source is EntrySource.GENERATED
            and (status is None or e.validation_status is status)
        ]
        generated.sort(key=lambda e: e.created_at)
        return [e.model_copy(deep=True) for e in generated]

    async def entry_statistics(self) -> KnowledgeBaseStatistics:
        active = [e for e in self.entries.values() if e.active]
        return KnowledgeBaseStatistics.from_entries(
            active, inactive_versions=len(self.entries) - len(active))

    async def purge_inactive_entries(self, older_than: datetime) -> list[str]:
        async with self._lock:
            stale = [
                e for e in self.entries.values()
                if not e.active and e.updated_at < older_than
            ]
            for e in stale:
                del self.entries[e.id]
        return [e.item_code for e in stale]

    async def create_job(self, job: BatchJob) -> BatchJob:
        self.jobs[job.id] = job.model_copy(deep=True)
        return job

    async def get_job(self, job_id: str) -> Optional[BatchJob]:
        job = self.jobs.get(job_id)
        return job.model_copy(deep=True) if job else None

    async def update_job(self, job: BatchJob) -> None:
        self.jobs[job.id] = job.model_copy(deep=True)

    async def save_failure(self, failure: ProcessingFailure) -> ProcessingFailure:
        self.failures[failure.id] = failure.model_copy(deep=True)
        return failure

    async def list_failures(self, job_id: str, unresolved_only: bool = False) -> list[ProcessingFailure]:
        return [
            f.model_copy(deep=True) for f in self.failures.values()
            if f.job_id == job_id and (not unresolved_only or not f.resolved)
        ]

    async def update_failure(self, failure: ProcessingFailure) -> None:
        self.failures[failure.id] = failure.model_copy(deep=True)
