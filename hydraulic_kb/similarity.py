"""
Hydraulic Cylinder Knowledge Base — Similarity Engine

Responsibilities:
  1. Weighted spec-to-spec similarity with tiered bore/stroke proximity
  2. Ranked candidate search (numpy-vectorized proximity over many candidates)
  3. Memoized pair scores and search results
  4. Similar-cylinder lookup over the knowledge base graph
"""
from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Any, Optional, Sequence

import numpy as np

from hydraulic_kb.code_parser import CodeParser
from hydraulic_kb.fact_graph import (
    HAS_BORE, HAS_INSTALLATION_TYPE, HAS_ITEM_NAME, HAS_ROD_END_TYPE,
    HAS_SERIES, HAS_STROKE, HYDRAULIC_CYLINDER, FactGraph,
)
from hydraulic_kb.memo import BoundedMemo, pair_key
from hydraulic_kb.models import SimilarityMatch, Specification

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SimilarityWeights:
    series: float = 0.25
    bore: float = 0.30
    stroke: float = 0.25
    rod_end: float = 0.10
    installation: float = 0.10

    @property
    def total(self) -> float:
        return self.series + self.bore + self.stroke + self.rod_end + self.installation


DEFAULT_WEIGHTS = SimilarityWeights()


def proximity(a: Any, b: Any, tolerance: int) -> float:
    """Tiered closeness of two dimensions; string equality for non-numeric values."""
    if not _is_number(a) or not _is_number(b):
        return 1.0 if str(a) == str(b) else 0.0
    d = abs(a - b)
    if d == 0:
        return 1.0
    if d <= tolerance // 4:
        return 0.9
    if d <= tolerance // 2:
        return 0.7
    if d <= tolerance:
        return 0.5
    if d <= 2 * tolerance:
        return 0.3
    return 0.0


def _is_number(v: Any) -> bool:
    return isinstance(v, (int, float)) and not isinstance(v, bool)


def _present(v: Any) -> bool:
    return v not in (None, "")


def _proximity_vector(target: float, values: np.ndarray, tolerance: int) -> np.ndarray:
    d = np.abs(values - target)
    return np.select(
        [d == 0, d <= tolerance // 4, d <= tolerance // 2, d <= tolerance, d <= 2 * tolerance],
        [1.0, 0.9, 0.7, 0.5, 0.3],
        default=0.0,
    )


class SimilarityEngine:

    def __init__(
        self,
        weights: SimilarityWeights = DEFAULT_WEIGHTS,
        bore_tolerance: int = 20,
        stroke_tolerance: int = 50,
        threshold: float = 0.3,
        top_n: int = 20,
        score_memo: Optional[BoundedMemo[float]] = None,
        search_memo: Optional[BoundedMemo[list[SimilarityMatch]]] = None,
        parser: Optional[CodeParser] = None,
    ):
        self.weights = weights
        self.bore_tolerance = bore_tolerance
        self.stroke_tolerance = stroke_tolerance
        self.threshold = threshold
        self.top_n = top_n
        self.score_memo = score_memo if score_memo is not None else BoundedMemo(10000, ttl_seconds=3600)
        self.search_memo = search_memo if search_memo is not None else BoundedMemo(100, ttl_seconds=1800)
        self.parser = parser or CodeParser()

    @classmethod
    def from_settings(cls, settings, parser: Optional[CodeParser] = None) -> "SimilarityEngine":
        return cls(
            bore_tolerance=settings.bore_tolerance_mm,
            stroke_tolerance=settings.stroke_tolerance_mm,
            threshold=settings.similarity_threshold,
            top_n=settings.similarity_top_n,
            score_memo=BoundedMemo(settings.score_cache_size, ttl_seconds=settings.score_cache_ttl_seconds),
            search_memo=BoundedMemo(settings.search_cache_size, ttl_seconds=settings.search_cache_ttl_seconds),
            parser=parser,
        )

    # ----------------------------------------------------------
    # Pair scoring
    # ----------------------------------------------------------

    def similarity(self, a: Specification, b: Specification) -> float:
        return self.score_memo.get_or_compute(
            pair_key(_fingerprint(a), _fingerprint(b)), lambda: self._score(a, b)[0])

    def explain(self, a: Specification, b: Specification) -> tuple[float, list[str]]:
        return self._score(a, b)

    def _score(self, a: Specification, b: Specification) -> tuple[float, list[str]]:
        w = self.weights
        total = 0.0
        evaluated = 0.0
        notes: list[str] = []

        if _present(a.series) or _present(b.series):
            evaluated += w.series
            if a.series == b.series:
                total += w.series
                notes.append("Same series")

        if _present(a.bore) or _present(b.bore):
            evaluated += w.bore
            if _present(a.bore) and _present(b.bore):
                p = proximity(a.bore, b.bore, self.bore_tolerance)
                total += w.bore * p
                notes.extend(_dimension_note("bore", a.bore, b.bore, p))

        if _present(a.stroke) or _present(b.stroke):
            evaluated += w.stroke
            if _present(a.stroke) and _present(b.stroke):
                p = proximity(a.stroke, b.stroke, self.stroke_tolerance)
                total += w.stroke * p
                notes.extend(_dimension_note("stroke", a.stroke, b.stroke, p))

        if _present(a.rod_end_type) or _present(b.rod_end_type):
            evaluated += w.rod_end
            if a.rod_end_type == b.rod_end_type:
                total += w.rod_end
                notes.append("Same rod end type")

        if _present(a.installation_type) or _present(b.installation_type):
            evaluated += w.installation
            if a.installation_type == b.installation_type:
                total += w.installation
                notes.append("Same installation type")

        if evaluated == 0:
            return 0.0, notes
        return min(1.0, total / evaluated), notes

    # ----------------------------------------------------------
    # Search
    # ----------------------------------------------------------

    def find_similar(
        self,
        target: Specification,
        candidates: Sequence[tuple[Specification, str]],
        top_n: Optional[int] = None,
    ) -> list[SimilarityMatch]:
        """
        Rank ``(spec, name)`` candidates against ``target``.

        Bore and stroke proximity are computed for all numeric rows at once;
        rows with non-numeric values go through proximity() one by one.
        """
        top_n = top_n or self.top_n
        rows = [(s, n) for s, n in candidates if s.item_code != target.item_code or not target.item_code]
        if not rows:
            return []

        bore_scores = self._dimension_scores(target.bore, [s.bore for s, _ in rows], self.bore_tolerance)
        stroke_scores = self._dimension_scores(target.stroke, [s.stroke for s, _ in rows], self.stroke_tolerance)

        w = self.weights
        matches: list[SimilarityMatch] = []
        for i, (spec, name) in enumerate(rows):
            total = 0.0
            evaluated = 0.0
            notes: list[str] = []

            if _present(target.series) or _present(spec.series):
                evaluated += w.series
                if target.series == spec.series:
                    total += w.series
                    notes.append("Same series")
            if bore_scores[i] is not None:
                evaluated += w.bore
                total += w.bore * bore_scores[i]
                notes.extend(_dimension_note("bore", target.bore, spec.bore, bore_scores[i]))
            if stroke_scores[i] is not None:
                evaluated += w.stroke
                total += w.stroke * stroke_scores[i]
                notes.extend(_dimension_note("stroke", target.stroke, spec.stroke, stroke_scores[i]))
            if _present(target.rod_end_type) or _present(spec.rod_end_type):
                evaluated += w.rod_end
                if target.rod_end_type == spec.rod_end_type:
                    total += w.rod_end
                    notes.append("Same rod end type")
            if _present(target.installation_type) or _present(spec.installation_type):
                evaluated += w.installation
                if target.installation_type == spec.installation_type:
                    total += w.installation
                    notes.append("Same installation type")

            score = min(1.0, total / evaluated) if evaluated else 0.0
            if score >= self.threshold:
                matches.append(SimilarityMatch(
                    code=spec.item_code,
                    name=name,
                    score=score,
                    similarity_percentage=round(score * 100, 1),
                    similarities=notes,
                ))

        matches.sort(key=lambda m: (-m.score, m.code))
        return matches[:top_n]

    def _dimension_scores(self, target: Any, values: list[Any], tolerance: int) -> list[Optional[float]]:
        """Per-row proximity, or None where both sides lack the value."""
        out: list[Optional[float]] = [None] * len(values)
        numeric_idx = [
            i for i, v in enumerate(values) if _is_number(v) and _is_number(target)
        ]
        if numeric_idx:
            arr = np.array([values[i] for i in numeric_idx], dtype=float)
            scores = _proximity_vector(float(target), arr, tolerance)
            for i, s in zip(numeric_idx, scores.tolist()):
                out[i] = s
        numeric_set = set(numeric_idx)
        for i, v in enumerate(values):
            if i in numeric_set:
                continue
            if not _present(target) and not _present(v):
                continue
            if _present(target) and _present(v):
                out[i] = proximity(target, v, tolerance)
            else:
                out[i] = 0.0
        return out

    def find_similar_cylinders(self, graph: FactGraph, code: str,
                               target: Optional[Specification] = None) -> list[SimilarityMatch]:
        """Search the cylinder entities of ``graph`` for neighbours of ``code``."""
        code = code.strip()
        target = target or self.parser.parse(code)
        # The graph only grows, so its size versions the search
        cache_key = (graph.name, len(graph), _fingerprint(target), code)
        cached = self.search_memo.get(cache_key)
        if cached is not None:
            return list(cached)

        candidates = [
            (spec_from_graph(graph, subject, self.parser), str(graph.value(subject, HAS_ITEM_NAME, "")))
            for subject in graph.subjects_of_type(HYDRAULIC_CYLINDER)
            if subject != code
        ]
        matches = self.find_similar(target, candidates)
        self.search_memo.put(cache_key, matches)
        logger.debug(f"Found {len(matches)} cylinders similar to {code} among {len(candidates)}")
        return list(matches)

    def clear_caches(self) -> None:
        self.score_memo.clear()
        self.search_memo.clear()


def _fingerprint(spec: Specification) -> str:
    # Keyed on the compared fields, not the code; callers may override a parsed spec
    return "|".join(
        str(v) for v in (spec.series, spec.bore, spec.stroke, spec.rod_end_type, spec.installation_type)
    )


def _dimension_note(label: str, a: Any, b: Any, score: float) -> list[str]:
    if score == 1.0:
        return [f"Same {label} {'size' if label == 'bore' else 'length'}"]
    if score > 0:
        return [f"Similar {label} ({a} vs {b}mm)"]
    return []


def spec_from_graph(graph: FactGraph, subject: str, parser: Optional[CodeParser] = None) -> Specification:
    """Rebuild a Specification from graph facts, falling back to the code."""
    spec = (parser or CodeParser()).parse(subject)
    for predicate, attr in (
        (HAS_SERIES, "series"),
        (HAS_BORE, "bore"),
        (HAS_STROKE, "stroke"),
        (HAS_ROD_END_TYPE, "rod_end_type"),
        (HAS_INSTALLATION_TYPE, "installation_type"),
    ):
        value = graph.value(subject, predicate)
        if value is not None:
            setattr(spec, attr, value)
    return spec

