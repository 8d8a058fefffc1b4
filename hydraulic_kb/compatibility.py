"""
Hydraulic Cylinder Knowledge Base — Compatibility Engine

Responsibilities:
  1. Score every component in a graph against a target cylinder
  2. Prefer rule-inferred facts, then a weighted manual score, then
     similarity to reference cylinders that use the component
  3. Category-specific boosts for suggestions that already qualify
  4. Rank and cap suggestions per component category
"""
from __future__ import annotations
import logging
import re
from dataclasses import dataclass
from typing import Optional

from hydraulic_kb.code_parser import CodeParser, category_for_code, parse_component_code
from hydraulic_kb.fact_graph import (
    COMPATIBLE_WITH, HAS_COMPONENT, HAS_ITEM_NAME, RECOMMENDED_FOR, FactGraph,
)
from hydraulic_kb.models import (
    CompatibilityAssessment, ComponentCategory, ComponentSuggestion, FactorScore,
    SUGGESTION_CATEGORIES, Specification,
)
from hydraulic_kb.seeding import component_codes
from hydraulic_kb.similarity import SimilarityEngine, spec_from_graph

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FactorWeights:
    series: float = 0.3
    bore: float = 0.25
    code_pattern: float = 0.25
    name: float = 0.2


DEFAULT_FACTOR_WEIGHTS = FactorWeights()

RULE_RECOMMENDED_CONFIDENCE = 0.95
RULE_COMPATIBLE_CONFIDENCE = 0.9

REASON_BANDS: list[tuple[float, str]] = [
    (0.8, "Excellent match - multiple compatibility factors"),
    (0.6, "Good match - series and size compatible"),
    (0.4, "Moderate match - partial compatibility"),
    (0.3, "Possible match - limited compatibility"),
]


def reason_for_score(score: float) -> str:
    for floor, reason in REASON_BANDS:
        if score >= floor:
            return reason
    return "Low compatibility"


def _mentions_number(text: str, number) -> bool:
    return re.search(rf"(?<!\d){re.escape(str(number))}(?!\d)", text) is not None


class CompatibilityEngine:

    def __init__(
        self,
        similarity: Optional[SimilarityEngine] = None,
        threshold: float = 0.3,
        max_per_category: int = 10,
        weights: FactorWeights = DEFAULT_FACTOR_WEIGHTS,
        parser: Optional[CodeParser] = None,
    ):
        self.parser = parser or CodeParser()
        self.similarity = similarity or SimilarityEngine(parser=self.parser)
        self.threshold = threshold
        self.max_per_category = max_per_category
        self.weights = weights

    @classmethod
    def from_settings(cls, settings, similarity: Optional[SimilarityEngine] = None,
                      parser: Optional[CodeParser] = None) -> "CompatibilityEngine":
        return cls(
            similarity=similarity,
            threshold=settings.compatibility_threshold,
            max_per_category=settings.max_suggestions_per_category,
            parser=parser,
        )

    # ============================================================
    # Public API
    # ============================================================

    def suggest(
        self,
        graph: FactGraph,
        target_code: str,
        target_spec: Optional[Specification] = None,
    ) -> dict[ComponentCategory, list[ComponentSuggestion]]:
        """Ranked compatible components per category for ``target_code``."""
        suggestions: dict[ComponentCategory, list[ComponentSuggestion]] = {
            c: [] for c in SUGGESTION_CATEGORIES
        }
        for a in self.assess_all(graph, target_code, target_spec):
            if not a.compatible:
                continue
            suggestions.setdefault(a.category, []).append(ComponentSuggestion(
                component_code=a.component_code,
                component_name=a.component_name,
                category=a.category,
                confidence=a.confidence,
                reasons=list(a.reasons),
            ))
        for category, items in suggestions.items():
            items.sort(key=lambda s: (-s.confidence, s.component_code))
            del items[self.max_per_category:]
        logger.info(
            f"Compatibility for {target_code}: "
            f"{sum(len(v) for v in suggestions.values())} suggestions across "
            f"{sum(1 for v in suggestions.values() if v)} categories"
        )
        return suggestions

    def assess_all(
        self,
        graph: FactGraph,
        target_code: str,
        target_spec: Optional[Specification] = None,
    ) -> list[CompatibilityAssessment]:
        target_code = target_code.strip()
        spec = target_spec or self.parser.parse(target_code)
        return [
            self.assess_component(graph, code, target_code, spec)
            for code in component_codes(graph)
            if code != target_code
        ]

    def assess_component(
        self,
        graph: FactGraph,
        component_code: str,
        target_code: str,
        spec: Specification,
    ) -> CompatibilityAssessment:
        name = str(graph.value(component_code, HAS_ITEM_NAME, "") or "")
        assessment = CompatibilityAssessment(
            component_code=component_code,
            component_name=name,
            category=self.resolve_category(graph, component_code),
        )

        if graph.contains(component_code, RECOMMENDED_FOR, target_code):
            assessment.confidence = RULE_RECOMMENDED_CONFIDENCE
            assessment.reasons.append("Highly recommended by rules")
            assessment.source = "rule"
        elif graph.contains(component_code, COMPATIBLE_WITH, target_code):
            assessment.confidence = RULE_COMPATIBLE_CONFIDENCE
            assessment.reasons.append("Rule-based inference")
            assessment.source = "rule"
        else:
            score, factors = self.manual_score(spec, component_code, name)
            assessment.factors = factors
            assessment.confidence = score
            assessment.reasons.append(reason_for_score(score))
            assessment.source = "manual"
            if score <= self.threshold:
                self._similarity_fallback(graph, assessment, target_code, spec)

        assessment.compatible = assessment.confidence > self.threshold
        if assessment.compatible:
            self._apply_boosts(assessment, spec)
        return assessment

    # ============================================================
    # Category Resolution
    # ============================================================

    def resolve_category(self, graph: FactGraph, component_code: str) -> ComponentCategory:
        """Rule-derived category wins over the part-group table."""
        code_category = category_for_code(component_code)
        types = graph.types_of(component_code)
        rule_categories = [
            c for c in ComponentCategory
            if c is not ComponentCategory.OTHER and c.value in types
        ]
        if not rule_categories:
            return code_category
        differing = [c for c in rule_categories if c is not code_category]
        if differing:
            if code_category is not ComponentCategory.OTHER:
                logger.debug(
                    f"{component_code}: rules say {differing[0].value}, "
                    f"part group says {code_category.value}; using rules"
                )
            return differing[0]
        return rule_categories[0]

    # ============================================================
    # Manual Scoring
    # ============================================================

    def manual_score(self, spec: Specification, component_code: str,
                     name: str = "") -> tuple[float, list[FactorScore]]:
        """
        Weighted factor score normalized by the weight actually evaluated.
        A factor whose inputs are missing is left out entirely.
        """
        w = self.weights
        layout = parse_component_code(component_code)
        lowered = name.lower()
        factors: list[FactorScore] = []

        if spec.series and layout.series:
            factors.append(FactorScore(
                name="series", weight=w.series,
                matched=layout.series == spec.series,
                detail=f"component series {layout.series} vs {spec.series}",
            ))

        if spec.bore not in (None, "") and (layout.bore_range is not None or name):
            in_range = False
            if layout.bore_span and spec.numeric_bore is not None:
                low, high = layout.bore_span
                in_range = low <= spec.numeric_bore <= high
            named = bool(name) and any(
                re.search(rf"{prefix}\s*(?<!\d){re.escape(str(spec.bore))}(?!\d)", lowered)
                for prefix in ("", "ø", "dia", "bore")
            )
            factors.append(FactorScore(
                name="bore", weight=w.bore, matched=in_range or named,
                detail=f"bore {spec.bore} vs range {layout.bore_span}",
            ))

        factors.append(FactorScore(
            name="code_pattern", weight=w.code_pattern,
            matched=(
                component_code.startswith("2")
                and component_code[:6].isdigit()
                and category_for_code(component_code) is not ComponentCategory.OTHER
            ),
            detail=f"part group {layout.part_group}",
        ))

        if name and (spec.series or spec.bore not in (None, "")):
            matched = False
            if spec.series:
                matched = (
                    f"series {spec.series}" in lowered
                    or re.search(rf"\bs{re.escape(spec.series)}\b", lowered) is not None
                )
            if not matched and spec.bore not in (None, ""):
                matched = _mentions_number(lowered, spec.bore)
            factors.append(FactorScore(name="name", weight=w.name, matched=matched))

        evaluated = sum(f.weight for f in factors)
        if evaluated == 0:
            return 0.0, factors
        score = sum(f.contribution for f in factors) / evaluated
        return max(0.0, min(1.0, score)), factors

    # ============================================================
    # Fallback & Boosts
    # ============================================================

    def _similarity_fallback(self, graph: FactGraph, assessment: CompatibilityAssessment,
                             target_code: str, spec: Specification) -> None:
        best_code: Optional[str] = None
        best_score = 0.0
        for reference in sorted(graph.query(None, HAS_COMPONENT, assessment.component_code).subjects()):
            if reference == target_code:
                continue
            score = self.similarity.similarity(spec, spec_from_graph(graph, reference, self.parser))
            if score > best_score:
                best_code, best_score = reference, score
        if best_code is None or best_score <= self.threshold:
            return
        assessment.confidence = best_score
        assessment.reasons = [f"Used in similar cylinder {best_code} ({best_score * 100:.0f}% similar)"]
        assessment.source = "similarity"

    def _apply_boosts(self, assessment: CompatibilityAssessment, spec: Specification) -> None:
        name = assessment.component_name.lower()
        boost: Optional[tuple[float, str]] = None
        if assessment.category is ComponentCategory.SEALING_COMPONENT:
            if spec.numeric_bore is not None and spec.numeric_bore > 100 and "high pressure" in name:
                boost = (1.2, " - Recommended for large bore")
        elif assessment.category is ComponentCategory.BUSHING:
            if spec.numeric_stroke is not None and spec.numeric_stroke > 500 and "heavy duty" in name:
                boost = (1.15, " - Recommended for long stroke")
        elif assessment.category is ComponentCategory.END_CAP:
            token = spec.installation_type
            if token and assessment.component_code.endswith(token):
                boost = (1.1, " - Matches installation type")
        if boost is None:
            return
        factor, suffix = boost
        assessment.confidence = min(1.0, assessment.confidence * factor)
        if assessment.reasons:
            assessment.reasons[0] += suffix
        else:
            assessment.reasons.append(suffix.lstrip(" -"))

