"""
Tests for forward-chaining classification
"""
import logging

from hydraulic_kb.classification import ClassificationEngine, find_tier_conflicts
from hydraulic_kb.fact_graph import (
    COMPATIBLE_WITH, HAS_VALID_SPECIFICATIONS, REQUIRES_ENHANCED_BUSHING,
    REQUIRES_REDUNDANT_SEALING, Fact, FactGraph,
)
from hydraulic_kb.rules import parse_rule

STANDARD = "30101080000200Y"
HEAVY = "30111125000600Y"
COMPACT = "30121040000100I"


def test_standard_cylinder_classes(classifier, make_graph):
    closed = classifier.classify(make_graph(STANDARD))
    types = closed.types_of(STANDARD)
    assert {
        "Material", "HydraulicCylinder", "MediumBoreCylinder", "MediumStrokeCylinder",
        "StandardCylinder", "YokeRodEnd", "PrecisionCylinder", "OptimalDesignCylinder",
    } <= types
    assert "HighPressureCylinder" not in types
    assert closed.contains(STANDARD, HAS_VALID_SPECIFICATIONS, True)


def test_heavy_duty_requirements(classifier, make_graph):
    closed = classifier.classify(make_graph(HEAVY))
    types = closed.types_of(HEAVY)
    assert {
        "HeavyDutyCylinder", "LargeBoreCylinder", "LongStrokeCylinder",
        "HighPressureCylinder", "ComplexConfigurationCylinder",
    } <= types
    assert closed.contains(HEAVY, REQUIRES_REDUNDANT_SEALING, True)
    assert closed.contains(HEAVY, REQUIRES_ENHANCED_BUSHING, True)


def test_compact_high_speed(classifier, make_graph):
    types = classifier.classify(make_graph(COMPACT)).types_of(COMPACT)
    assert {"CompactCylinder", "SmallBoreCylinder", "MediumStrokeCylinder",
            "HighSpeedCylinder", "InternalThreadRodEnd"} <= types
    assert "ShortStrokeCylinder" not in types


def test_short_code_is_not_validated(classifier):
    graph = FactGraph([Fact("3010108", "isA", "Material"), Fact("3010108", "hasItemCode", "3010108")])
    closed = classifier.classify(graph)
    assert "HydraulicCylinder" in closed.types_of("3010108")
    assert not closed.contains("3010108", HAS_VALID_SPECIFICATIONS, True)


def test_components_categorized_and_linked(classifier, make_graph):
    graph = make_graph(STANDARD, components=[
        "2010108", ("2510108", "Rod seal S10 80", "PU"), ("2990108", "Wiper ring", ""),
    ])
    closed = classifier.classify(graph)
    assert "CylinderBarrel" in closed.types_of("2010108")
    assert "SealingComponent" in closed.types_of("2510108")
    # Category from the name when the part group is unknown
    assert "SealingComponent" in closed.types_of("2990108")
    assert closed.contains("2010108", COMPATIBLE_WITH, STANDARD)


def test_closure_is_idempotent(classifier, make_graph):
    graph = make_graph(STANDARD, components=["2030108", "2200108"])
    once = classifier.classify(graph)
    twice = classifier.classify(once)
    assert once == twice


def test_input_graph_untouched(classifier, make_graph):
    graph = make_graph(STANDARD)
    before = len(graph)
    result = classifier.run(graph)
    assert len(graph) == before
    assert result.new_facts == len(result.graph) - before
    assert result.iterations >= 2
    assert result.valid


def test_result_summary(classifier, make_graph):
    result = classifier.run(make_graph(STANDARD, components=["2030108", "2110108"]))
    assert result.summary["hydraulic_cylinders"] == 1
    assert result.summary["components"] == 2
    assert result.summary["total_facts"] == len(result.graph)


def test_tier_conflict_reported(classifier, make_graph, caplog):
    engine = classifier.with_custom_rules([
        "[ForceLarge/35: (?c isA MediumBoreCylinder) -> (?c isA LargeBoreCylinder)]",
    ])
    with caplog.at_level(logging.WARNING, logger="hydraulic_kb.classification"):
        result = engine.run(make_graph(STANDARD))
    assert result.warnings == [
        f"Tier conflict for {STANDARD}: bore classified as MediumBoreCylinder, LargeBoreCylinder"
    ]
    assert not result.valid
    assert "Tier conflict" in caplog.text


def test_malformed_custom_rule_skipped(classifier):
    engine = classifier.with_custom_rules(["[Broken: (?c isA X) ->", "[Ok: (?c isA X) -> (?c isA Y)]"])
    assert len(engine.rules) == len(classifier.rules) + 1
    assert engine.rules is not classifier.rules


def test_disabled_rule_not_applied(make_graph):
    engine = ClassificationEngine([
        parse_rule("[Identify/10: (?m hasItemCode ?c) regex(?c, '^3') -> (?m isA HydraulicCylinder)]"),
        parse_rule("[disabled Tag/20: (?m isA HydraulicCylinder) -> (?m isA Tagged)]"),
    ])
    types = engine.classify(make_graph(STANDARD)).types_of(STANDARD)
    assert "HydraulicCylinder" in types
    assert "Tagged" not in types
    assert engine.analyze().disabled_rules == 1


def test_rules_sorted_by_priority_then_name():
    engine = ClassificationEngine([
        parse_rule("[B/20: (?a isA X) -> (?a isA Y)]"),
        parse_rule("[A/20: (?a isA X) -> (?a isA Y)]"),
        parse_rule("[Z/5: (?a isA X) -> (?a isA Y)]"),
    ])
    assert [r.name for r in engine.rules] == ["Z", "A", "B"]


def test_iteration_cap(make_graph, caplog):
    engine = ClassificationEngine(max_iterations=1)
    with caplog.at_level(logging.WARNING, logger="hydraulic_kb.classification"):
        result = engine.run(make_graph(STANDARD))
    assert result.capped
    assert not result.valid
    assert "iteration cap" in caplog.text


def test_find_tier_conflicts_on_plain_graph():
    graph = FactGraph([
        Fact("X", "isA", "YokeRodEnd"), Fact("X", "isA", "PinRodEnd"),
        Fact("Y", "isA", "ShortStrokeCylinder"),
    ])
    assert find_tier_conflicts(graph) == ["Tier conflict for X: rodEnd classified as YokeRodEnd, PinRodEnd"]
