"""
Catalog records → facts.

Every catalog item becomes a Material with its code, name and material
spec; cylinders also carry their decoded attributes, and BOM lines become
hasComponent edges.
"""
from __future__ import annotations
from typing import Iterable, Optional

from hydraulic_kb.code_parser import is_component_code
from hydraulic_kb.fact_graph import (
    COMPONENT_ITEM, HAS_BORE, HAS_COMPONENT, HAS_INSTALLATION_TYPE, HAS_ITEM_CODE,
    HAS_ITEM_NAME, HAS_MATERIAL, HAS_OPERATING_TEMPERATURE, HAS_ROD_END_TYPE,
    HAS_SERIES, HAS_SPECIAL_FEATURES, HAS_STROKE, HAS_TYPE, IS_A, MATERIAL,
    Fact, FactGraph,
)
from hydraulic_kb.models import Specification

SPEC_PREDICATES: list[tuple[str, str]] = [
    ("series", HAS_SERIES),
    ("type", HAS_TYPE),
    ("bore", HAS_BORE),
    ("stroke", HAS_STROKE),
    ("rod_end_type", HAS_ROD_END_TYPE),
    ("installation_type", HAS_INSTALLATION_TYPE),
    ("special_features", HAS_SPECIAL_FEATURES),
    ("operating_temperature", HAS_OPERATING_TEMPERATURE),
]

REFERENCE_PREDICATES = {HAS_ITEM_NAME} | {p for _, p in SPEC_PREDICATES}


def item_facts(code: str, name: str = "", material: str = "",
               spec: Optional[Specification] = None) -> list[Fact]:
    code = code.strip()
    facts = [Fact(code, IS_A, MATERIAL), Fact(code, HAS_ITEM_CODE, code)]
    if name:
        facts.append(Fact(code, HAS_ITEM_NAME, name))
    if material:
        facts.append(Fact(code, HAS_MATERIAL, material))
    if spec is not None:
        for attr, predicate in SPEC_PREDICATES:
            value = getattr(spec, attr)
            if value not in (None, ""):
                facts.append(Fact(code, predicate, value))
    return facts


def bom_facts(edges: Iterable[tuple[str, str]]) -> list[Fact]:
    return [Fact(master.strip(), HAS_COMPONENT, child.strip()) for master, child in edges]


def component_codes(graph: FactGraph) -> list[str]:
    """Components known to the graph, classified or not."""
    codes = set(graph.subjects_of_type(COMPONENT_ITEM))
    for fact in graph.query(None, HAS_ITEM_CODE):
        if is_component_code(str(fact.object)):
            codes.add(fact.subject)
    return sorted(codes)


def bom_working_graph(knowledge: FactGraph, target_facts: Iterable[Fact],
                      name: str = "bom") -> FactGraph:
    """
    Target facts plus every component and the BOM edges of the knowledge
    base. Reference cylinders contribute attributes only, so the closure
    derives compatibility for the target alone.
    """
    working = FactGraph(target_facts, name=name)
    for code in component_codes(knowledge):
        working.add_all(knowledge.query(code))
    references: set[str] = set()
    for fact in knowledge.query(None, HAS_COMPONENT):
        working.add_fact(fact)
        references.add(fact.subject)
    for ref in references:
        working.add_all(f for f in knowledge.query(ref) if f.predicate in REFERENCE_PREDICATES)
    return working
