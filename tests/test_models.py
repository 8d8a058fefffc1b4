"""
Tests for job bookkeeping, failure records and error classification
"""
from datetime import datetime, timedelta, timezone

import pytest

from hydraulic_kb.config import Settings
from hydraulic_kb.errors import (
    CriticalBatchFailure, ItemProcessingFailure, ParseError, RuleParseError, TaskTimeout,
    determine_error_type,
)
from hydraulic_kb.models import BatchJob, BatchOptions, ErrorType, JobStatus, ProcessingFailure


class TestBatchJob:

    def test_progress(self):
        job = BatchJob(total_items=200)
        job.update_progress(processed=50, success=45, failed=3, skipped=2, timeouts=0,
                            elapsed_seconds=10.0)
        assert job.progress_percentage == 25.0
        assert job.success_rate == 90.0
        assert job.average_time_per_item == 200.0
        assert job.estimated_completion_time is not None

    def test_no_eta_when_done(self):
        job = BatchJob(total_items=2)
        job.update_progress(2, 2, 0, 0, 0, elapsed_seconds=1.0)
        assert job.estimated_completion_time is None

    def test_empty_job(self):
        job = BatchJob()
        assert job.progress_percentage == 0.0
        assert job.success_rate == 0.0

    @pytest.mark.parametrize("status, resumable, terminal", [
        (JobStatus.INITIALIZING, False, False),
        (JobStatus.PROCESSING, True, False),
        (JobStatus.PAUSED, True, False),
        (JobStatus.COMPLETED, False, True),
        (JobStatus.FAILED, False, True),
        (JobStatus.CANCELLED, False, True),
    ])
    def test_status_predicates(self, status, resumable, terminal):
        job = BatchJob(status=status)
        assert job.is_resumable is resumable
        assert job.is_terminal is terminal

    def test_duration(self):
        start = datetime(2024, 3, 1, 8, 0, tzinfo=timezone.utc)
        job = BatchJob(start_time=start, end_time=start + timedelta(seconds=90))
        assert job.duration_seconds == 90.0

    def test_mark_failed(self):
        job = BatchJob()
        job.mark_failed("boom")
        assert job.status is JobStatus.FAILED
        assert job.error_details == "boom"
        assert job.end_time is not None

    def test_options_from_settings(self):
        settings = Settings(_env_file=None, worker_pool_size=3, batch_size=7)
        options = BatchOptions.from_settings(settings, max_retries=0)
        assert (options.pool_size, options.batch_size, options.max_retries) == (3, 7, 0)


class TestProcessingFailure:

    def test_can_retry(self):
        failure = ProcessingFailure(job_id="j", item_code="A", retry_count=2)
        assert failure.can_retry(3)
        assert not failure.can_retry(2)
        failure.mark_resolved()
        assert not failure.can_retry(3)
        assert failure.resolved_at is not None

    def test_short_message(self):
        failure = ProcessingFailure(job_id="j", item_code="A", error_message="x" * 150)
        assert len(failure.short_message) == 100
        assert failure.short_message.endswith("...")

    def test_transient(self):
        assert ProcessingFailure(job_id="j", item_code="A", error_type=ErrorType.NETWORK_ERROR).is_transient
        assert not ProcessingFailure(job_id="j", item_code="A", error_type=ErrorType.PARSING_ERROR).is_transient


@pytest.mark.parametrize("exc, expected", [
    (ItemProcessingFailure("A", "gone", ErrorType.EXPORT_FAILED), ErrorType.EXPORT_FAILED),
    (TaskTimeout("A", 1.0), ErrorType.TIMEOUT),
    (TimeoutError(), ErrorType.TIMEOUT),
    (MemoryError(), ErrorType.MEMORY_ERROR),
    (FileNotFoundError("x"), ErrorType.FILE_NOT_FOUND),
    (PermissionError("x"), ErrorType.PERMISSION_DENIED),
    (ConnectionResetError("x"), ErrorType.NETWORK_ERROR),
    (ParseError("301", "too short"), ErrorType.PARSING_ERROR),
    (RuleParseError("[R", "expected ]"), ErrorType.PARSING_ERROR),
    (ValueError("bad"), ErrorType.VALIDATION_FAILED),
    (RuntimeError("database is locked"), ErrorType.DATABASE_ERROR),
    (RuntimeError("Item not found"), ErrorType.FILE_NOT_FOUND),
    (RuntimeError("malformed payload"), ErrorType.PARSING_ERROR),
    (RuntimeError("something else"), ErrorType.UNKNOWN),
])
def test_determine_error_type(exc, expected):
    assert determine_error_type(exc) is expected


def test_error_messages():
    assert str(ParseError("301", "too short")) == "Cannot parse code '301': too short"
    assert str(RuleParseError("[R", "expected ]", 2)) == "Invalid rule at offset 2: expected ]"
    assert str(TaskTimeout("A", 2.5)) == "Processing A exceeded 2.5s"
    assert str(CriticalBatchFailure("j", "db down")) == "Batch j failed: db down"
