"""
Hydraulic Cylinder Knowledge Base — Core Pydantic Models
"""
from __future__ import annotations
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import Any, Optional, Union
from uuid import UUID, uuid4
from pydantic import BaseModel, Field, field_validator

# ============================================================
# Enums
# ============================================================

class ComponentCategory(str, Enum):
    CYLINDER_BARREL = "CylinderBarrel"
    PISTON = "Piston"
    PISTON_ROD = "PistonRod"
    END_CAP = "EndCap"
    SEALING_COMPONENT = "SealingComponent"
    BUSHING = "Bushing"
    GASKET = "Gasket"
    FASTENER = "Fastener"
    TIE_ROD = "TieRod"
    NUT = "Nut"
    MOUNTING = "Mounting"
    OTHER = "Other"

class JobStatus(str, Enum):
    INITIALIZING = "INITIALIZING"
    PROCESSING = "PROCESSING"
    PAUSED = "PAUSED"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"

class ItemOutcome(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"
    TIMEOUT = "timeout"

class ErrorType(str, Enum):
    FILE_NOT_FOUND = "FILE_NOT_FOUND"
    EXPORT_FAILED = "EXPORT_FAILED"
    VALIDATION_FAILED = "VALIDATION_FAILED"
    DATABASE_ERROR = "DATABASE_ERROR"
    PARSING_ERROR = "PARSING_ERROR"
    TIMEOUT = "TIMEOUT"
    MEMORY_ERROR = "MEMORY_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    UNKNOWN = "UNKNOWN"

    @property
    def is_transient(self) -> bool:
        return self in (ErrorType.TIMEOUT, ErrorType.NETWORK_ERROR, ErrorType.MEMORY_ERROR)

class Priority(str, Enum):
    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"

class MaintenanceType(str, Enum):
    VISUAL = "Visual"
    FUNCTIONAL = "Functional"
    MECHANICAL = "Mechanical"
    CHEMICAL = "Chemical"
    MEASUREMENT = "Measurement"
    COMPREHENSIVE = "Comprehensive"
    PREVENTIVE = "Preventive"
    CORRECTIVE = "Corrective"
    DIAGNOSTIC = "Diagnostic"

class EntrySource(str, Enum):
    CATALOG = "CATALOG"
    GENERATED = "GENERATED"

class ValidationStatus(str, Enum):
    PENDING = "PENDING"
    PENDING_VALIDATION = "PENDING_VALIDATION"
    VALIDATED = "VALIDATED"
    INVALID = "INVALID"


STRUCTURAL_CATEGORIES = (
    ComponentCategory.CYLINDER_BARREL,
    ComponentCategory.PISTON,
    ComponentCategory.PISTON_ROD,
    ComponentCategory.END_CAP,
)

REQUIRED_CATEGORIES = STRUCTURAL_CATEGORIES + (ComponentCategory.SEALING_COMPONENT,)

# Categories always present in a suggestion map, even when empty
SUGGESTION_CATEGORIES = REQUIRED_CATEGORIES + (
    ComponentCategory.BUSHING,
    ComponentCategory.GASKET,
    ComponentCategory.FASTENER,
)

# ============================================================
# Specifications
# ============================================================

class Specification(BaseModel):
    """Decoded attributes of a cylinder item code.

    Numeric fields hold an int when the code digits are numeric and the raw
    substring otherwise; downstream comparisons fall back to string equality.
    """
    item_code: str = ""
    product_type: Optional[str] = None
    series: Optional[str] = None
    type: Optional[str] = None
    bore: Optional[Union[int, str]] = None
    stroke: Optional[Union[int, str]] = None
    rod_end_type: Optional[str] = None
    installation_type: Optional[str] = None
    special_features: Optional[str] = None
    operating_temperature: Optional[float] = None

    def is_complete(self) -> bool:
        return all(
            v not in (None, "")
            for v in (self.series, self.bore, self.stroke, self.rod_end_type)
        )

    @property
    def numeric_bore(self) -> Optional[int]:
        return self.bore if isinstance(self.bore, int) else None

    @property
    def numeric_stroke(self) -> Optional[int]:
        return self.stroke if isinstance(self.stroke, int) else None

    def summary(self) -> dict[str, str]:
        """Human-readable spec map, e.g. {'bore': '80mm'}."""
        out: dict[str, str] = {}
        if self.series:
            out['series'] = self.series
        if self.type:
            out['type'] = self.type
        if self.bore not in (None, ""):
            out['bore'] = f"{self.bore}mm"
        if self.stroke not in (None, ""):
            out['stroke'] = f"{self.stroke}mm"
        if self.rod_end_type:
            out['rodEndType'] = self.rod_end_type
        if self.installation_type:
            out['installationType'] = self.installation_type
        if self.special_features:
            out['specialFeatures'] = self.special_features
        return out

class ComponentCode(BaseModel):
    """Decoded layout of a component item code (first character '2')."""
    item_code: str
    part_group: Optional[str] = None
    variant: Optional[str] = None
    series: Optional[str] = None
    bore_range: Optional[int] = None
    suffix: str = ""

    @property
    def bore_span(self) -> Optional[tuple[int, int]]:
        if self.bore_range is None:
            return None
        start = self.bore_range * 10
        return start, start + 9

# ============================================================
# Catalog Records (external collaborator shapes)
# ============================================================

class CatalogItem(BaseModel):
    item_code: str
    item_name: str = ""
    item_spec: str = ""

    @field_validator("item_code")
    @classmethod
    def strip_code(cls, v: str) -> str:
        return v.strip()

class BomLine(BaseModel):
    master_code: str
    component_code: str
    quantity: float = 1.0
    effective_date: Optional[date] = None
    expiry_date: Optional[date] = None

    def is_effective(self, on: Optional[date] = None) -> bool:
        on = on or date.today()
        if self.effective_date and self.effective_date > on:
            return False
        if self.expiry_date and self.expiry_date <= on:
            return False
        return True

class HierarchyLine(BaseModel):
    """A BOM line reached during hierarchy traversal."""
    line: BomLine
    depth: int

# ============================================================
# Compatibility & Similarity Results
# ============================================================

class FactorScore(BaseModel):
    name: str
    weight: float
    matched: bool
    detail: str = ""

    @property
    def contribution(self) -> float:
        return self.weight if self.matched else 0.0

class CompatibilityAssessment(BaseModel):
    component_code: str
    component_name: str = ""
    category: ComponentCategory = ComponentCategory.OTHER
    compatible: bool = False
    confidence: float = 0.0
    reasons: list[str] = Field(default_factory=list)
    source: str = "manual"  # rule | manual | similarity
    factors: list[FactorScore] = Field(default_factory=list)

    @field_validator("confidence")
    @classmethod
    def clamp_confidence(cls, v: float) -> float:
        return max(0.0, min(1.0, v))

    @property
    def evaluated_weight(self) -> float:
        return sum(f.weight for f in self.factors)

class ComponentSuggestion(BaseModel):
    component_code: str
    component_name: str = ""
    category: ComponentCategory
    confidence: float
    reasons: list[str] = Field(default_factory=list)
    recommended_quantity: int = 1
    priority: Priority = Priority.LOW
    replacement_cycle: str = ""

class SimilarityMatch(BaseModel):
    code: str
    name: str = ""
    score: float
    similarity_percentage: float
    similarities: list[str] = Field(default_factory=list)

# ============================================================
# BOM Structure
# ============================================================

class AssemblyStep(BaseModel):
    step: int
    operation: str
    description: str
    required_components: list[str] = Field(default_factory=list)
    tools: list[str] = Field(default_factory=list)
    critical_points: list[str] = Field(default_factory=list)

class MaintenanceTask(BaseModel):
    task: str
    description: str = ""
    type: MaintenanceType
    estimated_time: str

class MaintenanceSchedule(BaseModel):
    daily: list[MaintenanceTask] = Field(default_factory=list)
    weekly: list[MaintenanceTask] = Field(default_factory=list)
    monthly: list[MaintenanceTask] = Field(default_factory=list)
    annual: list[MaintenanceTask] = Field(default_factory=list)
    condition_based: list[MaintenanceTask] = Field(default_factory=list)

class BomValidation(BaseModel):
    complete: bool
    completeness_score: float
    missing_components: list[ComponentCategory] = Field(default_factory=list)
    component_counts: dict[str, int] = Field(default_factory=dict)
    warnings: list[str] = Field(default_factory=list)

class BomMetadata(BaseModel):
    total_components: int = 0
    high_confidence_components: int = 0
    average_confidence: float = 0.0
    inference_iterations: int = 0
    classification_warnings: list[str] = Field(default_factory=list)
    generated_at: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

class BOMStructure(BaseModel):
    target_code: str
    valid_cylinder_code: bool
    specifications: Specification
    specification_summary: dict[str, str] = Field(default_factory=dict)
    classifications: list[str] = Field(default_factory=list)
    suggestions: dict[ComponentCategory, list[ComponentSuggestion]] = Field(default_factory=dict)
    quantities: dict[ComponentCategory, int] = Field(default_factory=dict)
    spare_parts: dict[ComponentCategory, int] = Field(default_factory=dict)
    assembly_sequence: list[AssemblyStep] = Field(default_factory=list)
    maintenance: MaintenanceSchedule = Field(default_factory=MaintenanceSchedule)
    validation: BomValidation
    metadata: BomMetadata = Field(default_factory=BomMetadata)
    similar_products: list[SimilarityMatch] = Field(default_factory=list)

# ============================================================
# Knowledge Base Records
# ============================================================

class KnowledgeBaseEntry(BaseModel):
    id: UUID = Field(default_factory=uuid4)
    item_code: str
    item_name: str = ""
    is_hydraulic_cylinder: bool = False
    specifications: dict[str, Any] = Field(default_factory=dict)
    triple_count: int = 0
    component_count: int = 0
    hierarchy_depth: int = 0
    quality_score: Optional[float] = None
    bom: Optional[BOMStructure] = None
    job_id: Optional[str] = None
    source: EntrySource = EntrySource.CATALOG
    validation_status: ValidationStatus = ValidationStatus.PENDING
    validation_notes: Optional[str] = None
    description: str = ""
    active: bool = True
    version: int = 1
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

class ProcessingFailure(BaseModel):
    id: UUID = Field(default_factory=uuid4)
    job_id: str
    item_code: str
    error_type: ErrorType = ErrorType.UNKNOWN
    error_message: str = ""
    stack_trace: Optional[str] = None
    retry_count: int = 0
    resolved: bool = False
    resolved_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def short_message(self) -> str:
        if len(self.error_message) <= 100:
            return self.error_message
        return self.error_message[:97] + "..."

    @property
    def is_transient(self) -> bool:
        return self.error_type.is_transient

    def can_retry(self, max_retries: int) -> bool:
        return not self.resolved and self.retry_count < max_retries

    def mark_resolved(self) -> None:
        self.resolved = True
        self.resolved_at = datetime.now(timezone.utc)

class KnowledgeBaseStatistics(BaseModel):
    """Counts over active entries; ``inactive_versions`` counts superseded rows."""
    total_entries: int = 0
    hydraulic_cylinder_count: int = 0
    total_triples: int = 0
    average_quality_score: Optional[float] = None
    inactive_versions: int = 0
    generated_entries: int = 0
    validated_entries: int = 0
    invalid_entries: int = 0
    pending_validation: int = 0

    @property
    def hydraulic_cylinder_percentage(self) -> float:
        if self.total_entries == 0:
            return 0.0
        return self.hydraulic_cylinder_count / self.total_entries * 100.0

    @property
    def average_triple_count(self) -> float:
        if self.total_entries == 0:
            return 0.0
        return self.total_triples / self.total_entries

    @classmethod
    def from_entries(cls, entries: list[KnowledgeBaseEntry],
                     inactive_versions: int = 0) -> "KnowledgeBaseStatistics":
        scores = [e.quality_score for e in entries if e.quality_score is not None]
        statuses = [e.validation_status for e in entries]
        return cls(
            total_entries=len(entries),
            hydraulic_cylinder_count=sum(1 for e in entries if e.is_hydraulic_cylinder),
            total_triples=sum(e.triple_count for e in entries),
            average_quality_score=sum(scores) / len(scores) if scores else None,
            inactive_versions=inactive_versions,
            generated_entries=sum(1 for e in entries if e.source is EntrySource.GENERATED),
            validated_entries=statuses.count(ValidationStatus.VALIDATED),
            invalid_entries=statuses.count(ValidationStatus.INVALID),
            pending_validation=statuses.count(ValidationStatus.PENDING_VALIDATION),
        )

class GeneratedBomStatistics(BaseModel):
    total_generated: int = 0
    validated: int = 0
    invalid: int = 0
    pending_validation: int = 0
    average_quality_score: Optional[float] = None

    @property
    def validation_rate(self) -> float:
        if self.total_generated == 0:
            return 0.0
        return self.validated / self.total_generated * 100.0

    @classmethod
    def from_entries(cls, entries: list[KnowledgeBaseEntry]) -> "GeneratedBomStatistics":
        stats = KnowledgeBaseStatistics.from_entries(entries)
        return cls(
            total_generated=stats.total_entries,
            validated=stats.validated_entries,
            invalid=stats.invalid_entries,
            pending_validation=stats.pending_validation,
            average_quality_score=stats.average_quality_score,
        )

class CleanupReport(BaseModel):
    cutoff: datetime
    deleted_item_codes: list[str] = Field(default_factory=list)
    completed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def deleted_count(self) -> int:
        return len(self.deleted_item_codes)

# ============================================================
# Batch Jobs
# ============================================================

class BatchOptions(BaseModel):
    pool_size: int = 8
    batch_size: int = 50
    task_timeout_seconds: float = 120.0
    max_retries: int = 3
    include_hierarchy: bool = True
    initiated_by: str = "system"

    @classmethod
    def from_settings(cls, settings: Any, **overrides: Any) -> "BatchOptions":
        values = {
            'pool_size': settings.worker_pool_size,
            'batch_size': settings.batch_size,
            'task_timeout_seconds': settings.task_timeout_seconds,
            'max_retries': settings.max_retries,
        }
        values.update(overrides)
        return cls(**values)

class BatchJob(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid4()))
    status: JobStatus = JobStatus.INITIALIZING
    total_items: int = 0
    processed_items: int = 0
    success_count: int = 0
    failure_count: int = 0
    skipped_count: int = 0
    timeout_count: int = 0
    last_processed_item_code: Optional[str] = None
    checkpoint_data: dict[str, Any] = Field(default_factory=dict)
    start_time: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    end_time: Optional[datetime] = None
    average_time_per_item: Optional[float] = None  # milliseconds
    estimated_completion_time: Optional[datetime] = None
    error_details: Optional[str] = None
    initiated_by: str = "system"
    batch_size: int = 50

    @property
    def progress_percentage(self) -> float:
        if self.total_items == 0:
            return 0.0
        return self.processed_items / self.total_items * 100.0

    @property
    def success_rate(self) -> float:
        if self.processed_items == 0:
            return 0.0
        return self.success_count / self.processed_items * 100.0

    @property
    def duration_seconds(self) -> float:
        end = self.end_time or datetime.now(timezone.utc)
        return (end - self.start_time).total_seconds()

    @property
    def is_resumable(self) -> bool:
        return self.status in (JobStatus.PROCESSING, JobStatus.PAUSED)

    @property
    def is_terminal(self) -> bool:
        return self.status in (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED)

    def update_progress(self, processed: int, success: int, failed: int,
                        skipped: int, timeouts: int, elapsed_seconds: float) -> None:
        self.processed_items = processed
        self.success_count = success
        self.failure_count = failed
        self.skipped_count = skipped
        self.timeout_count = timeouts
        if processed > 0:
            self.average_time_per_item = elapsed_seconds * 1000.0 / processed
            remaining = self.total_items - processed
            if remaining > 0:
                eta_ms = self.average_time_per_item * remaining
                self.estimated_completion_time = (
                    datetime.now(timezone.utc) + timedelta(milliseconds=eta_ms)
                )
            else:
                self.estimated_completion_time = None

    def mark_completed(self) -> None:
        self.status = JobStatus.COMPLETED
        self.end_time = datetime.now(timezone.utc)
        self.estimated_completion_time = None

    def mark_failed(self, error: str) -> None:
        self.status = JobStatus.FAILED
        self.error_details = error
        self.end_time = datetime.now(timezone.utc)

    def mark_cancelled(self) -> None:
        self.status = JobStatus.CANCELLED
        self.end_time = datetime.now(timezone.utc)

class BatchResult(BaseModel):
    job_id: str
    status: JobStatus
    total_items: int
    processed_items: int
    success_count: int
    failure_count: int
    skipped_count: int
    timeout_count: int = 0
    successful_items: list[str] = Field(default_factory=list)
    failed_items: list[dict[str, str]] = Field(default_factory=list)
    skipped_items: list[str] = Field(default_factory=list)
    timed_out_items: list[str] = Field(default_factory=list)
    processing_time_seconds: float = 0.0
    average_time_per_item: Optional[float] = None
    success_rate: float = 0.0
    hydraulic_cylinder_count: int = 0
    resumed_from: Optional[int] = None
    processed_in_this_run: int = 0
    summary: str = ""
