"""
Hydraulic Cylinder Knowledge Base — BOM Generator
bom_generator.py

Responsibilities:
  1. Classify the target together with the knowledge base components
  2. Rank compatible components per category
  3. Spec-driven quantities, spare parts, priorities, replacement cycles
  4. Assembly sequence and maintenance schedule
  5. Completeness validation and generation metadata
  6. Similar reference cylinders from the knowledge base
"""
from __future__ import annotations
import logging
import time
from typing import Optional

from hydraulic_kb.classification import ClassificationEngine
from hydraulic_kb.code_parser import CodeParser, is_cylinder_code
from hydraulic_kb.compatibility import CompatibilityEngine
from hydraulic_kb.fact_graph import HAS_ITEM_NAME, HAS_MATERIAL, FactGraph
from hydraulic_kb.models import (
    AssemblyStep, BOMStructure, BomMetadata, BomValidation, ComponentCategory,
    ComponentSuggestion, MaintenanceSchedule, MaintenanceTask, MaintenanceType,
    Priority, REQUIRED_CATEGORIES, STRUCTURAL_CATEGORIES, SUGGESTION_CATEGORIES,
    Specification,
)
from hydraulic_kb.seeding import bom_working_graph, item_facts
from hydraulic_kb.similarity import SimilarityEngine

logger = logging.getLogger(__name__)

C = ComponentCategory

SIMILAR_PRODUCTS_LIMIT = 5
HIGH_CONFIDENCE = 0.8


# ============================================================
# Quantities
# ============================================================

def seal_quantity(bore: Optional[int]) -> int:
    if bore is None:
        return 4
    if bore <= 50:
        return 4
    if bore <= 100:
        return 5
    if bore <= 150:
        return 6
    return 8


def bushing_quantity(stroke: Optional[int]) -> int:
    if stroke is None:
        return 2
    if stroke <= 300:
        return 1
    if stroke <= 600:
        return 2
    return 3


def fastener_quantity(bore: Optional[int]) -> int:
    """Tie rods: 4 up to 100mm bore, 6 up to 150mm, 8 above."""
    if bore is None or bore <= 100:
        return 4
    if bore <= 150:
        return 6
    return 8


def category_quantity(category: ComponentCategory, spec: Specification) -> int:
    if category in (C.CYLINDER_BARREL, C.PISTON, C.PISTON_ROD):
        return 1
    if category is C.END_CAP:
        return 2
    if category is C.SEALING_COMPONENT:
        return seal_quantity(spec.numeric_bore)
    if category is C.BUSHING:
        return bushing_quantity(spec.numeric_stroke)
    if category is C.GASKET:
        return 2
    if category in (C.FASTENER, C.TIE_ROD):
        return fastener_quantity(spec.numeric_bore)
    return 1


def spare_parts(quantities: dict[ComponentCategory, int]) -> dict[ComponentCategory, int]:
    return {
        C.SEALING_COMPONENT: max(2, quantities.get(C.SEALING_COMPONENT, 4) // 2),
        C.GASKET: 1,
        C.BUSHING: 1,
    }


def priority_for(category: ComponentCategory, confidence: float) -> Priority:
    if category in STRUCTURAL_CATEGORIES:
        return Priority.CRITICAL
    if category is C.SEALING_COMPONENT:
        return Priority.HIGH if confidence > 0.7 else Priority.MEDIUM
    if category in (C.BUSHING, C.GASKET):
        return Priority.MEDIUM if confidence > 0.8 else Priority.LOW
    return Priority.LOW


REPLACEMENT_CYCLES: dict[ComponentCategory, str] = {
    C.CYLINDER_BARREL: "10+ years (inspect annually)",
    C.PISTON: "10+ years (inspect annually)",
    C.PISTON_ROD: "10+ years (inspect annually)",
    C.END_CAP: "10+ years (inspect annually)",
    C.SEALING_COMPONENT: "12-18 months",
    C.BUSHING: "2-3 years",
    C.GASKET: "During major service",
}


def replacement_cycle(category: ComponentCategory) -> str:
    return REPLACEMENT_CYCLES.get(category, "Replace if damaged")


# ============================================================
# Assembly & Maintenance Templates
# ============================================================

ASSEMBLY_SEQUENCE: list[AssemblyStep] = [
    AssemblyStep(
        step=1, operation="Prepare Barrel Assembly",
        description="Clean and inspect cylinder barrel bore",
        required_components=[C.CYLINDER_BARREL.value],
        tools=["Bore gauge", "Cleaning kit"],
        critical_points=["Check bore surface finish", "Verify dimensional tolerance"],
    ),
    AssemblyStep(
        step=2, operation="Install Rear End Cap",
        description="Mount rear end cap with gasket and fasteners",
        required_components=[C.END_CAP.value, C.GASKET.value, C.FASTENER.value],
        tools=["Torque wrench", "Assembly fixture"],
        critical_points=["Proper gasket alignment", "Correct torque specification"],
    ),
    AssemblyStep(
        step=3, operation="Assemble Piston",
        description="Install seals on piston and check dimensions",
        required_components=[C.PISTON.value, C.SEALING_COMPONENT.value],
        tools=["Seal installation tool", "Micrometer"],
        critical_points=["Avoid seal damage", "Verify seal orientation"],
    ),
    AssemblyStep(
        step=4, operation="Install Piston Assembly",
        description="Insert piston with rod into cylinder barrel",
        required_components=[C.PISTON.value, C.PISTON_ROD.value],
        tools=["Assembly guide", "Soft hammer"],
        critical_points=["Prevent seal rolling", "Maintain alignment"],
    ),
    AssemblyStep(
        step=5, operation="Install Front End Cap",
        description="Mount front end cap with bushing and seals",
        required_components=[
            C.END_CAP.value, C.BUSHING.value, C.SEALING_COMPONENT.value, C.GASKET.value,
        ],
        tools=["Bushing driver", "Torque wrench"],
        critical_points=["Bushing alignment", "Rod seal installation"],
    ),
    AssemblyStep(
        step=6, operation="Final Assembly",
        description="Install rod end attachment and complete assembly",
        required_components=[C.PISTON_ROD.value],
        tools=["Thread gauge", "Assembly fixture"],
        critical_points=["Verify rod end type", "Check thread engagement"],
    ),
    AssemblyStep(
        step=7, operation="Testing and Quality Control",
        description="Perform functional testing and leak check",
        required_components=[],
        tools=["Test bench", "Pressure gauge", "Flow meter"],
        critical_points=[
            "Pressure test at 1.5x working pressure",
            "Check smooth operation",
            "Verify stroke length",
        ],
    ),
]

MAINTENANCE_TIME: dict[MaintenanceType, str] = {
    MaintenanceType.VISUAL: "5-10 minutes",
    MaintenanceType.FUNCTIONAL: "10-15 minutes",
    MaintenanceType.MECHANICAL: "15-30 minutes",
    MaintenanceType.CHEMICAL: "20-30 minutes",
    MaintenanceType.MEASUREMENT: "30-45 minutes",
    MaintenanceType.COMPREHENSIVE: "4-8 hours",
    MaintenanceType.PREVENTIVE: "2-4 hours",
    MaintenanceType.CORRECTIVE: "1-3 hours",
    MaintenanceType.DIAGNOSTIC: "1-2 hours",
}

# bucket → (task, description, type)
MAINTENANCE_PLAN: dict[str, list[tuple[str, str, MaintenanceType]]] = {
    "daily": [
        ("Visual Inspection", "Check for external leaks and damage", MaintenanceType.VISUAL),
        ("Operation Check", "Verify smooth cylinder movement", MaintenanceType.FUNCTIONAL),
    ],
    "weekly": [
        ("Leak Detection", "Check all seal areas for leakage", MaintenanceType.VISUAL),
        ("Mounting Check", "Verify mounting bolts and alignment", MaintenanceType.MECHANICAL),
    ],
    "monthly": [
        ("Fluid Analysis", "Check hydraulic fluid condition", MaintenanceType.CHEMICAL),
        ("Pressure Check", "Verify operating pressure", MaintenanceType.MEASUREMENT),
        ("Rod Condition", "Inspect rod surface for scoring", MaintenanceType.VISUAL),
    ],
    "annual": [
        ("Complete Inspection", "Disassemble and inspect all components", MaintenanceType.COMPREHENSIVE),
        ("Seal Replacement", "Replace all sealing components", MaintenanceType.PREVENTIVE),
        ("Dimension Check", "Measure critical dimensions", MaintenanceType.MEASUREMENT),
        ("Performance Test", "Full functional testing", MaintenanceType.FUNCTIONAL),
    ],
    "condition_based": [
        ("Excessive Leakage", "Replace affected seals immediately", MaintenanceType.CORRECTIVE),
        ("Abnormal Operation", "Check for internal damage", MaintenanceType.DIAGNOSTIC),
        ("Pressure Drop", "Inspect seals and valves", MaintenanceType.DIAGNOSTIC),
    ],
}


def assembly_sequence() -> list[AssemblyStep]:
    return [step.model_copy(deep=True) for step in ASSEMBLY_SEQUENCE]


def maintenance_schedule() -> MaintenanceSchedule:
    buckets = {
        bucket: [
            MaintenanceTask(task=task, description=desc, type=kind,
                            estimated_time=MAINTENANCE_TIME[kind])
            for task, desc, kind in tasks
        ]
        for bucket, tasks in MAINTENANCE_PLAN.items()
    }
    return MaintenanceSchedule(**buckets)


# ============================================================
# Validation
# ============================================================

END_CAP_WARNING = "Less than 2 end caps found - cylinder requires front and rear end caps"
SEAL_WARNING = "Insufficient sealing components - minimum 3 required (piston seal, rod seal, wiper)"


def validate_bom(suggestions: dict[ComponentCategory, list[ComponentSuggestion]],
                 valid_code: bool = True, target_code: str = "") -> BomValidation:
    counts = {c.value: len(suggestions.get(c, [])) for c in suggestions}
    missing = [c for c in REQUIRED_CATEGORIES if not suggestions.get(c)]
    present = len(REQUIRED_CATEGORIES) - len(missing)

    warnings: list[str] = []
    if not valid_code:
        warnings.append(
            f"{target_code!r} is not a valid hydraulic cylinder code; "
            f"BOM derived from a partial specification"
        )
    if len(suggestions.get(C.END_CAP, [])) < 2:
        warnings.append(END_CAP_WARNING)
    if len(suggestions.get(C.SEALING_COMPONENT, [])) < 3:
        warnings.append(SEAL_WARNING)

    return BomValidation(
        complete=not missing,
        completeness_score=present / len(REQUIRED_CATEGORIES),
        missing_components=missing,
        component_counts=counts,
        warnings=warnings,
    )


# ============================================================
# Generator
# ============================================================

class BomGenerator:
    """
    Generates a BOM for a (possibly new) cylinder code against the
    components and reference BOMs held in ``knowledge``.
    """

    def __init__(
        self,
        knowledge: FactGraph,
        classifier: Optional[ClassificationEngine] = None,
        compatibility: Optional[CompatibilityEngine] = None,
        similarity: Optional[SimilarityEngine] = None,
        parser: Optional[CodeParser] = None,
    ):
        self.knowledge = knowledge
        self.parser = parser or CodeParser()
        self.classifier = classifier or ClassificationEngine()
        self.similarity = similarity or SimilarityEngine(parser=self.parser)
        self.compatibility = compatibility or CompatibilityEngine(self.similarity, parser=self.parser)

    def generate(self, target_code: str, target_spec: Optional[Specification] = None) -> BOMStructure:
        start = time.perf_counter()
        target_code = target_code.strip()
        spec = target_spec or self.parser.parse(target_code)
        valid = is_cylinder_code(target_code)
        if not valid:
            logger.warning(f"Generating BOM for non-cylinder code {target_code!r}")

        name = str(self.knowledge.value(target_code, HAS_ITEM_NAME, "") or "")
        material = str(self.knowledge.value(target_code, HAS_MATERIAL, "") or "")
        working = bom_working_graph(
            self.knowledge,
            item_facts(target_code, name, material, spec),
            name=f"bom:{target_code}",
        )
        closure = self.classifier.run(working)

        suggestions = self.compatibility.suggest(closure.graph, target_code, spec)
        quantities = {c: category_quantity(c, spec) for c in SUGGESTION_CATEGORIES}
        for category, items in suggestions.items():
            qty = quantities.setdefault(category, category_quantity(category, spec))
            for s in items:
                s.recommended_quantity = qty
                s.priority = priority_for(category, s.confidence)
                s.replacement_cycle = replacement_cycle(category)

        all_suggestions = [s for items in suggestions.values() for s in items]
        confidences = [s.confidence for s in all_suggestions]
        metadata = BomMetadata(
            total_components=len(all_suggestions),
            high_confidence_components=sum(1 for c in confidences if c > HIGH_CONFIDENCE),
            average_confidence=round(sum(confidences) / len(confidences), 2) if confidences else 0.0,
            inference_iterations=closure.iterations,
            classification_warnings=list(closure.warnings),
        )

        bom = BOMStructure(
            target_code=target_code,
            valid_cylinder_code=valid,
            specifications=spec,
            specification_summary=spec.summary(),
            classifications=sorted(closure.graph.types_of(target_code)),
            suggestions=suggestions,
            quantities=quantities,
            spare_parts=spare_parts(quantities),
            assembly_sequence=assembly_sequence(),
            maintenance=maintenance_schedule(),
            validation=validate_bom(suggestions, valid, target_code),
            metadata=metadata,
            similar_products=self.similarity.find_similar_cylinders(
                self.knowledge, target_code, spec)[:SIMILAR_PRODUCTS_LIMIT],
        )
        logger.info(
            f"Generated BOM for {target_code}: {metadata.total_components} components, "
            f"completeness {bom.validation.completeness_score:.0%} "
            f"({(time.perf_counter() - start) * 1000:.0f}ms)"
        )
        return bom
