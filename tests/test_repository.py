"""
Tests for the in-memory repository
"""
from datetime import datetime, timedelta, timezone

import pytest

from hydraulic_kb.models import (
    BatchJob, EntrySource, ErrorType, JobStatus, KnowledgeBaseEntry, ProcessingFailure,
    ValidationStatus,
)


def generated(code, status=ValidationStatus.PENDING_VALIDATION, **fields):
    return KnowledgeBaseEntry(item_code=code, source=EntrySource.GENERATED, validation_status=status, **fields)


async def test_save_entry_versions_and_deactivates(repo):
    first = await repo.save_entry(KnowledgeBaseEntry(item_code="30101080000200Y", triple_count=10))
    second = await repo.save_entry(KnowledgeBaseEntry(item_code="30101080000200Y", triple_count=12))
    assert first.version == 1
    assert second.version == 2
    assert (await repo.get_entry("30101080000200Y")).triple_count == 12
    assert not repo.entries[first.id].active
    assert len(await repo.list_entries()) == 1


async def test_returned_entries_are_copies(repo):
    await repo.save_entry(KnowledgeBaseEntry(item_code="2030108"))
    entry = await repo.get_entry("2030108")
    entry.item_name = "changed"
    assert (await repo.get_entry("2030108")).item_name == ""


async def test_find_processed_codes_and_prefix(repo):
    for code in ("30101080000200Y", "30111125000600Y", "2030108"):
        await repo.save_entry(KnowledgeBaseEntry(item_code=code))
    assert await repo.find_processed_codes(["2030108", "9999999"]) == {"2030108"}
    assert [e.item_code for e in await repo.find_entries_by_prefix("3010")] == ["30101080000200Y"]
    assert await repo.get_entry("9999999") is None


async def test_list_entries_by_job(repo):
    await repo.save_entry(KnowledgeBaseEntry(item_code="A", job_id="job-1"))
    await repo.save_entry(KnowledgeBaseEntry(item_code="B", job_id="job-2"))
    assert [e.item_code for e in await repo.list_entries("job-1")] == ["A"]


async def test_jobs(repo):
    job = await repo.create_job(BatchJob(total_items=5))
    job.status = JobStatus.PROCESSING
    assert (await repo.get_job(job.id)).status is JobStatus.INITIALIZING
    await repo.update_job(job)
    assert (await repo.get_job(job.id)).status is JobStatus.PROCESSING
    assert await repo.get_job("missing") is None


async def test_failures_unresolved_only(repo):
    open_failure = ProcessingFailure(job_id="j", item_code="A", error_type=ErrorType.TIMEOUT)
    closed = ProcessingFailure(job_id="j", item_code="B")
    closed.mark_resolved()
    await repo.save_failure(open_failure)
    await repo.save_failure(closed)
    await repo.save_failure(ProcessingFailure(job_id="other", item_code="C"))

    assert {f.item_code for f in await repo.list_failures("j")} == {"A", "B"}
    assert [f.item_code for f in await repo.list_failures("j", unresolved_only=True)] == ["A"]

    open_failure.mark_resolved()
    await repo.update_failure(open_failure)
    assert await repo.list_failures("j", unresolved_only=True) == []


async def test_generated_entries_are_not_processed(repo):
    await repo.save_entry(generated("30101080000300Y"))
    await repo.save_entry(KnowledgeBaseEntry(item_code="2030108"))
    assert await repo.find_processed_codes(["30101080000300Y", "2030108"]) == {"2030108"}


async def test_list_generated_entries_by_status(repo):
    t0 = datetime(2024, 5, 1, tzinfo=timezone.utc)
    await repo.save_entry(generated("30101080000400Y", created_at=t0 + timedelta(hours=1)))
    await repo.save_entry(generated("30101080000300Y", created_at=t0))
    await repo.save_entry(generated("30111125000600Y", ValidationStatus.VALIDATED))
    await repo.save_entry(KnowledgeBaseEntry(item_code="30101080000200Y"))

    pending = await repo.list_generated_entries(ValidationStatus.PENDING_VALIDATION)
    assert [e.item_code for e in pending] == ["30101080000300Y", "30101080000400Y"]
    assert len(await repo.list_generated_entries()) == 3


async def test_update_entry_keeps_version(repo):
    stored = await repo.save_entry(generated("30101080000300Y"))
    stored.validation_status = ValidationStatus.INVALID
    stored.validation_notes = "wrong seal kit"
    await repo.update_entry(stored)
    loaded = await repo.get_entry("30101080000300Y")
    assert loaded.version == 1
    assert loaded.validation_status is ValidationStatus.INVALID
    assert loaded.validation_notes == "wrong seal kit"


async def test_entry_statistics(repo):
    await repo.save_entry(KnowledgeBaseEntry(
        item_code="30101080000200Y", is_hydraulic_cylinder=True, triple_count=30, quality_score=1.0))
    await repo.save_entry(KnowledgeBaseEntry(
        item_code="30101080000200Y", is_hydraulic_cylinder=True, triple_count=40, quality_score=0.9))
    await repo.save_entry(KnowledgeBaseEntry(item_code="2030108", triple_count=6))
    await repo.save_entry(generated("30111125000600Y", triple_count=14, quality_score=0.3))

    stats = await repo.entry_statistics()
    assert stats.total_entries == 3
    assert stats.inactive_versions == 1
    assert stats.hydraulic_cylinder_count == 1
    assert stats.total_triples == 60
    assert stats.average_triple_count == 20.0
    assert stats.average_quality_score == pytest.approx(0.6)
    assert stats.generated_entries == 1
    assert stats.pending_validation == 1
    assert stats.validated_entries == 0


async def test_purge_inactive_entries(repo):
    first = await repo.save_entry(KnowledgeBaseEntry(item_code="2030108"))
    await repo.save_entry(KnowledgeBaseEntry(item_code="2030108"))
    later = datetime.now(timezone.utc) + timedelta(minutes=1)

    assert await repo.purge_inactive_entries(later - timedelta(days=1)) == []
    assert await repo.purge_inactive_entries(later) == ["2030108"]
    assert first.id not in repo.entries
    assert (await repo.get_entry("2030108")).version == 2
    assert (await repo.entry_statistics()).inactive_versions == 0
