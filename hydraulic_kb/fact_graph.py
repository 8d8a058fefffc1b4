"""
Hydraulic Cylinder Knowledge Base — Fact Graph

In-memory triple store with (subject, predicate) and (predicate, object)
indexes. The graph only grows; merge is a set union.

Mutations hold a threading lock. Queries snapshot the matching bucket under
the same lock and then iterate lock-free, so a reader sees either the whole
merge or none of it.
"""
from __future__ import annotations
import logging
import threading
from collections import defaultdict
from typing import Any, Iterable, Iterator, NamedTuple, Optional, Union

from hydraulic_kb.errors import GraphMergeError

logger = logging.getLogger(__name__)

# ============================================================
# Vocabulary
# ============================================================

IS_A = "isA"
HAS_ITEM_CODE = "hasItemCode"
HAS_ITEM_NAME = "hasItemName"
HAS_MATERIAL = "hasMaterial"
HAS_SERIES = "hasSeries"
HAS_TYPE = "hasType"
HAS_BORE = "hasBore"
HAS_STROKE = "hasStroke"
HAS_ROD_END_TYPE = "hasRodEndType"
HAS_INSTALLATION_TYPE = "hasInstallationType"
HAS_SPECIAL_FEATURES = "hasSpecialFeatures"
HAS_OPERATING_TEMPERATURE = "hasOperatingTemperature"
HAS_COMPONENT = "hasComponent"
COMPATIBLE_WITH = "compatibleWith"
RECOMMENDED_FOR = "recommendedFor"
HAS_VALID_SPECIFICATIONS = "hasValidSpecifications"
REQUIRES_REDUNDANT_SEALING = "requiresRedundantSealing"
REQUIRES_ENHANCED_BUSHING = "requiresEnhancedBushing"

MATERIAL = "Material"
HYDRAULIC_CYLINDER = "HydraulicCylinder"
COMPONENT_ITEM = "ComponentItem"

Value = Union[str, int, float, bool]


class Fact(NamedTuple):
    subject: str
    predicate: str
    object: Value


# ============================================================
# Query
# ============================================================

class FactQuery:
    """Lazy, restartable view over the facts matching a pattern.

    Each iteration takes a fresh snapshot, so iterating twice may observe
    facts added in between.
    """

    def __init__(self, graph: "FactGraph", subject: Optional[str],
                 predicate: Optional[str], obj: Optional[Value]):
        self._graph = graph
        self._pattern = (subject, predicate, obj)

    def __iter__(self) -> Iterator[Fact]:
        return iter(self._graph._snapshot(*self._pattern))

    def first(self) -> Optional[Fact]:
        for fact in self:
            return fact
        return None

    def objects(self) -> Iterator[Value]:
        return (f.object for f in self)

    def subjects(self) -> Iterator[str]:
        return (f.subject for f in self)

    def count(self) -> int:
        return sum(1 for _ in self)


# ============================================================
# Graph
# ============================================================

class FactGraph:

    def __init__(self, facts: Optional[Iterable[Fact]] = None, name: str = "graph"):
        self.name = name
        self._lock = threading.Lock()
        self._facts: set[Fact] = set()
        self._by_sp: dict[tuple[str, str], list[Fact]] = defaultdict(list)
        self._by_po: dict[tuple[str, Value], list[Fact]] = defaultdict(list)
        self._by_p: dict[str, list[Fact]] = defaultdict(list)
        self._by_s: dict[str, list[Fact]] = defaultdict(list)
        if facts:
            self.add_all(facts)

    # ----------------------------------------------------------
    # Mutation
    # ----------------------------------------------------------

    def add(self, subject: str, predicate: str, obj: Value) -> bool:
        """Add one fact; returns False if it was already present."""
        with self._lock:
            return self._insert(Fact(subject, predicate, obj))

    def add_fact(self, fact: Fact) -> bool:
        with self._lock:
            return self._insert(Fact(*fact))

    def add_all(self, facts: Iterable[Fact]) -> int:
        batch = [Fact(*f) for f in facts]
        with self._lock:
            return sum(1 for f in batch if self._insert(f))

    def merge(self, other: "FactGraph") -> int:
        """Union ``other`` into this graph. Returns the number of new facts."""
        if other is self:
            return 0
        incoming = other.facts()
        for fact in incoming:
            _validate(fact, other.name)
        with self._lock:
            return sum(1 for f in incoming if self._insert(f))

    def merge_all(self, sources: Iterable["FactGraph"]) -> int:
        """Merge several sources, skipping any that fail. Returns sources merged."""
        merged = 0
        for source in sources:
            try:
                added = self.merge(source)
                merged += 1
                logger.debug(f"Merged {added} new facts from {source.name}")
            except GraphMergeError as e:
                logger.warning(f"Skipping merge source: {e}")
        return merged

    def _insert(self, fact: Fact) -> bool:
        if fact in self._facts:
            return False
        self._facts.add(fact)
        s, p, o = fact
        self._by_sp[(s, p)].append(fact)
        self._by_po[(p, o)].append(fact)
        self._by_p[p].append(fact)
        self._by_s[s].append(fact)
        return True

    # ----------------------------------------------------------
    # Reads
    # ----------------------------------------------------------

    def query(self, subject: Optional[str] = None, predicate: Optional[str] = None,
              obj: Optional[Value] = None) -> FactQuery:
        return FactQuery(self, subject, predicate, obj)

    def contains(self, subject: str, predicate: str, obj: Value) -> bool:
        with self._lock:
            return Fact(subject, predicate, obj) in self._facts

    def __contains__(self, fact: object) -> bool:
        if not isinstance(fact, tuple) or len(fact) != 3:
            return False
        with self._lock:
            return Fact(*fact) in self._facts

    def value(self, subject: str, predicate: str, default: Any = None) -> Any:
        fact = self.query(subject, predicate).first()
        return fact.object if fact else default

    def types_of(self, subject: str) -> set[str]:
        return {str(o) for o in self.query(subject, IS_A).objects()}

    def subjects_of_type(self, type_name: str) -> list[str]:
        return sorted(self.query(None, IS_A, type_name).subjects())

    def facts(self) -> list[Fact]:
        with self._lock:
            return list(self._facts)

    def copy(self, name: Optional[str] = None) -> "FactGraph":
        return FactGraph(self.facts(), name=name or self.name)

    def _snapshot(self, s: Optional[str], p: Optional[str], o: Optional[Value]) -> list[Fact]:
        with self._lock:
            if s is not None and p is not None:
                bucket = self._by_sp.get((s, p), ())
            elif p is not None and o is not None:
                bucket = self._by_po.get((p, o), ())
            elif s is not None:
                bucket = self._by_s.get(s, ())
            elif p is not None:
                bucket = self._by_p.get(p, ())
            else:
                bucket = self._facts
            return [
                f for f in bucket
                if (s is None or f.subject == s)
                and (p is None or f.predicate == p)
                and (o is None or f.object == o)
            ]

    def __len__(self) -> int:
        with self._lock:
            return len(self._facts)

    def __iter__(self) -> Iterator[Fact]:
        return iter(self.facts())

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, FactGraph):
            return NotImplemented
        return set(self.facts()) == set(other.facts())

    __hash__ = None  # mutable

    def __repr__(self) -> str:
        return f"FactGraph(name={self.name!r}, facts={len(self)})"


def _validate(fact: Any, source: str) -> None:
    if not isinstance(fact, tuple) or len(fact) != 3:
        raise GraphMergeError(source, f"not a triple: {fact!r}")
    s, p, o = fact
    if not isinstance(s, str) or not s:
        raise GraphMergeError(source, f"invalid subject {s!r}")
    if not isinstance(p, str) or not p:
        raise GraphMergeError(source, f"invalid predicate {p!r}")
    if o is None:
        raise GraphMergeError(source, f"null object for ({s}, {p})")
