"""
Hydraulic Cylinder Knowledge Base — Error Taxonomy

Recoverable errors are isolated to their unit of work (one code, one rule,
one merge source, one catalog item). Only CriticalBatchFailure aborts a job.
"""
from __future__ import annotations
from typing import Optional

from hydraulic_kb.models import ErrorType


class KnowledgeBaseError(Exception):
    """Base class for all knowledge base errors."""


class ParseError(KnowledgeBaseError):
    """Malformed or short item code."""

    def __init__(self, code: str, reason: str):
        self.code = code
        self.reason = reason
        super().__init__(f"Cannot parse code {code!r}: {reason}")


class RuleParseError(KnowledgeBaseError):
    """A single rule text could not be compiled."""

    def __init__(self, text: str, reason: str, position: Optional[int] = None):
        self.text = text
        self.reason = reason
        self.position = position
        where = f" at offset {position}" if position is not None else ""
        super().__init__(f"Invalid rule{where}: {reason}")


class GraphMergeError(KnowledgeBaseError):
    """A source graph could not be merged into the target."""

    def __init__(self, source: str, reason: str):
        self.source = source
        self.reason = reason
        super().__init__(f"Failed to merge facts from {source}: {reason}")


class TaskTimeout(KnowledgeBaseError, TimeoutError):
    """A per-item operation exceeded its time budget."""

    def __init__(self, item_code: str, timeout_seconds: float):
        self.item_code = item_code
        self.timeout_seconds = timeout_seconds
        super().__init__(f"Processing {item_code} exceeded {timeout_seconds:g}s")


class ItemProcessingFailure(KnowledgeBaseError):
    """Export or classification failed for one catalog item."""

    def __init__(
        self,
        item_code: str,
        message: str,
        error_type: ErrorType = ErrorType.UNKNOWN,
    ):
        self.item_code = item_code
        self.message = message
        self.error_type = error_type
        super().__init__(f"[{error_type.value}] {item_code}: {message}")


class CriticalBatchFailure(KnowledgeBaseError):
    """Coordinator-level failure; the whole job is marked FAILED."""

    def __init__(self, job_id: str, message: str):
        self.job_id = job_id
        self.message = message
        super().__init__(f"Batch {job_id} failed: {message}")


class JobNotFoundError(KnowledgeBaseError):
    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Batch job not found: {job_id}")


class InvalidJobStateError(KnowledgeBaseError):
    def __init__(self, job_id: str, status: str, action: str):
        self.job_id = job_id
        self.status = status
        self.action = action
        super().__init__(f"Cannot {action} job {job_id} in status {status}")


# ============================================================
# Error Classification
# ============================================================

_MESSAGE_KEYWORDS: list[tuple[tuple[str, ...], ErrorType]] = [
    (('not found', 'no such file'), ErrorType.FILE_NOT_FOUND),
    (('timeout', 'timed out'), ErrorType.TIMEOUT),
    (('connection', 'network', 'unreachable'), ErrorType.NETWORK_ERROR),
    (('database', 'sql', 'constraint'), ErrorType.DATABASE_ERROR),
    (('permission', 'access denied'), ErrorType.PERMISSION_DENIED),
    (('memory',), ErrorType.MEMORY_ERROR),
    (('parse', 'malformed'), ErrorType.PARSING_ERROR),
    (('invalid', 'validation'), ErrorType.VALIDATION_FAILED),
    (('export',), ErrorType.EXPORT_FAILED),
]


def determine_error_type(exc: BaseException) -> ErrorType:
    """Map an exception to an ErrorType, by type first and message second."""
    if isinstance(exc, ItemProcessingFailure):
        return exc.error_type
    if isinstance(exc, (TimeoutError, TaskTimeout)):
        return ErrorType.TIMEOUT
    if isinstance(exc, MemoryError):
        return ErrorType.MEMORY_ERROR
    if isinstance(exc, FileNotFoundError):
        return ErrorType.FILE_NOT_FOUND
    if isinstance(exc, PermissionError):
        return ErrorType.PERMISSION_DENIED
    if isinstance(exc, OSError):
        return ErrorType.NETWORK_ERROR
    if isinstance(exc, (ParseError, RuleParseError)):
        return ErrorType.PARSING_ERROR
    if isinstance(exc, ValueError):
        return ErrorType.VALIDATION_FAILED

    message = str(exc).lower()
    for keywords, error_type in _MESSAGE_KEYWORDS:
        if any(k in message for k in keywords):
            return error_type
    return ErrorType.UNKNOWN
