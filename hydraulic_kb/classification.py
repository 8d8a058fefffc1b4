"""
Hydraulic Cylinder Knowledge Base — Classification Engine

Responsibilities:
  1. Forward-chain enabled rules over a FactGraph to a fixpoint (bounded)
  2. Validate the closure for mutually exclusive tier conflicts
  3. Summarize what was classified
"""
from __future__ import annotations
import logging
import time
from dataclasses import dataclass, field
from typing import Iterable, Optional

from hydraulic_kb.fact_graph import COMPONENT_ITEM, HYDRAULIC_CYLINDER, Fact, FactGraph
from hydraulic_kb.rules import Rule, analyze_rules, compile_rules, default_rules, RuleAnalysis

logger = logging.getLogger(__name__)

# Each dimension's classes are mutually exclusive for one entity
TIER_DIMENSIONS: dict[str, tuple[str, ...]] = {
    "bore": (
        "MicroBoreCylinder", "SmallBoreCylinder", "MediumBoreCylinder",
        "LargeBoreCylinder", "ExtraLargeBoreCylinder",
    ),
    "stroke": (
        "ShortStrokeCylinder", "MediumStrokeCylinder",
        "LongStrokeCylinder", "ExtraLongStrokeCylinder",
    ),
    "series": (
        "StandardCylinder", "HeavyDutyCylinder", "CompactCylinder", "LightDutyCylinder",
    ),
    "rodEnd": (
        "YokeRodEnd", "InternalThreadRodEnd", "ExternalThreadRodEnd", "PinRodEnd",
    ),
}


@dataclass
class ClassificationResult:
    graph: FactGraph
    iterations: int = 0
    new_facts: int = 0
    capped: bool = False
    warnings: list[str] = field(default_factory=list)
    summary: dict[str, int] = field(default_factory=dict)
    elapsed_ms: float = 0.0

    @property
    def valid(self) -> bool:
        return not self.warnings and not self.capped


class ClassificationEngine:
    """
    Rules are compiled once at construction and evaluated in
    (priority, name) order on every pass.
    """

    def __init__(self, rules: Optional[Iterable[Rule]] = None, max_iterations: int = 25):
        if max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")
        self.rules: list[Rule] = sorted(
            rules if rules is not None else default_rules(),
            key=Rule.sort_key,
        )
        self.max_iterations = max_iterations

    @classmethod
    def from_settings(cls, settings) -> "ClassificationEngine":
        return cls(max_iterations=settings.closure_max_iterations)

    def with_custom_rules(self, texts: Iterable[str]) -> "ClassificationEngine":
        """New engine with this engine's rules plus the compiled custom ones."""
        custom = compile_rules(texts)
        logger.info(f"Compiled {len(custom)} custom rules")
        return ClassificationEngine(self.rules + custom, self.max_iterations)

    @property
    def enabled_rules(self) -> list[Rule]:
        return [r for r in self.rules if r.enabled]

    def analyze(self) -> RuleAnalysis:
        return analyze_rules(self.rules)

    # ----------------------------------------------------------
    # Closure
    # ----------------------------------------------------------

    def classify(self, graph: FactGraph) -> FactGraph:
        """Return the rule closure of ``graph``; the input is left untouched."""
        return self.run(graph).graph

    def run(self, graph: FactGraph) -> ClassificationResult:
        start = time.perf_counter()
        working = graph.copy(name=f"{graph.name}:closure")
        before = len(working)
        rules = self.enabled_rules

        iterations = 0
        capped = False
        while True:
            if iterations >= self.max_iterations:
                capped = True
                logger.warning(
                    f"Closure of {graph.name} stopped at the {self.max_iterations}-iteration cap"
                )
                break
            iterations += 1
            added = 0
            for rule in rules:
                # Materialize before inserting; consequences() reads the graph lazily
                derived: list[Fact] = list(rule.consequences(working))
                if derived:
                    added += working.add_all(derived)
            if added == 0:
                break

        result = ClassificationResult(
            graph=working,
            iterations=iterations,
            new_facts=len(working) - before,
            capped=capped,
        )
        result.warnings = find_tier_conflicts(working)
        for w in result.warnings:
            logger.warning(w)
        result.summary = {
            "hydraulic_cylinders": len(working.subjects_of_type(HYDRAULIC_CYLINDER)),
            "components": len(working.subjects_of_type(COMPONENT_ITEM)),
            "total_facts": len(working),
            "inferred_facts": result.new_facts,
        }
        result.elapsed_ms = (time.perf_counter() - start) * 1000
        logger.debug(
            f"Classified {graph.name}: {result.new_facts} new facts in "
            f"{iterations} iterations ({result.elapsed_ms:.1f}ms)"
        )
        return result


def find_tier_conflicts(graph: FactGraph) -> list[str]:
    """One warning per entity holding two or more classes of one tier dimension."""
    warnings: list[str] = []
    for dimension, classes in TIER_DIMENSIONS.items():
        holders: dict[str, list[str]] = {}
        for cls_name in classes:
            for subject in graph.subjects_of_type(cls_name):
                holders.setdefault(subject, []).append(cls_name)
        for subject in sorted(holders):
            found = holders[subject]
            if len(found) > 1:
                warnings.append(
                    f"Tier conflict for {subject}: {dimension} classified as {', '.join(found)}"
                )
    return warnings
