"""
Tests for cylinder similarity scoring and search
"""
import pytest

from hydraulic_kb.code_parser import parse
from hydraulic_kb.fact_graph import HAS_BORE, FactGraph
from hydraulic_kb.models import Specification
from hydraulic_kb.seeding import item_facts
from hydraulic_kb.similarity import SimilarityEngine, proximity, spec_from_graph

TARGET = "30101080000200Y"


@pytest.fixture
def engine():
    return SimilarityEngine()


@pytest.mark.parametrize("a, b, expected", [
    (80, 80, 1.0),
    (80, 85, 0.9),
    (80, 90, 0.7),
    (80, 100, 0.5),
    (80, 120, 0.3),
    (80, 121, 0.0),
    ("0B0", "0B0", 1.0),
    ("0B0", 80, 0.0),
])
def test_bore_proximity_tiers(a, b, expected):
    assert proximity(a, b, 20) == expected


def test_stroke_tolerance_uses_integer_division():
    # 50 // 4 == 12
    assert proximity(200, 212, 50) == 0.9
    assert proximity(200, 213, 50) == 0.7


class TestPairScore:

    def test_identical(self, engine):
        assert engine.similarity(parse(TARGET), parse(TARGET)) == 1.0

    def test_close_bore(self, engine):
        score = engine.similarity(parse(TARGET), parse("30101085000200Y"))
        # (0.25 + 0.30 * 0.9 + 0.25 + 0.10) / 0.90
        assert score == pytest.approx(0.87 / 0.9)

    def test_missing_on_one_side_counts_as_mismatch(self, engine):
        score = engine.similarity(parse(TARGET), parse("3010108"))
        assert score == pytest.approx(0.25 / 0.9)

    def test_factor_missing_on_both_sides_is_skipped(self, engine):
        a = Specification(series="10", bore=80)
        b = Specification(series="10", bore=80)
        assert engine.similarity(a, b) == 1.0

    def test_nothing_to_compare(self, engine):
        assert engine.similarity(Specification(), Specification()) == 0.0

    def test_symmetric_and_memoized(self, engine):
        a, b = parse(TARGET), parse("30101100000400Y")
        assert engine.similarity(a, b) == engine.similarity(b, a)
        stats = engine.score_memo.stats()
        assert stats.misses == 1
        assert stats.hits == 1

    def test_explain_notes(self, engine):
        score, notes = engine.explain(parse(TARGET), parse("30101085000200Y"))
        assert notes == ["Same series", "Similar bore (80 vs 85mm)", "Same stroke length", "Same rod end type"]
        assert score == pytest.approx(engine.similarity(parse(TARGET), parse("30101085000200Y")))


class TestSearch:

    CANDIDATES = [
        "30101080000200Y",
        "30101085000200Y",
        "30101080000250Y",
        "30111125000600Y",
    ]

    def candidates(self):
        return [(parse(code), f"Cylinder {code}") for code in self.CANDIDATES]

    def test_ranking_threshold_and_self_exclusion(self, engine):
        matches = engine.find_similar(parse(TARGET), self.candidates())
        assert [m.code for m in matches] == ["30101085000200Y", "30101080000250Y"]
        assert matches[0].similarity_percentage == pytest.approx(96.7)
        assert matches[0].name == "Cylinder 30101085000200Y"

    def test_matches_pair_scores(self, engine):
        for match in engine.find_similar(parse(TARGET), self.candidates()):
            assert match.score == pytest.approx(engine.similarity(parse(TARGET), parse(match.code)))

    def test_top_n(self, engine):
        assert len(engine.find_similar(parse(TARGET), self.candidates(), top_n=1)) == 1

    def test_ties_ordered_by_code(self, engine):
        candidates = [(parse("30101080000200N"), ""), (parse("30101080000200M"), "")]
        matches = engine.find_similar(parse(TARGET), candidates)
        assert [m.code for m in matches] == ["30101080000200M", "30101080000200N"]

    def test_non_numeric_candidate_dimension(self, engine):
        matches = engine.find_similar(parse(TARGET), [(parse("3010A0B0000200Y"), "")])
        assert len(matches) == 1
        assert "Same series" in matches[0].similarities
        assert matches[0].score == pytest.approx(0.6 / 0.9)


class TestGraphSearch:

    def graph(self, classifier):
        graph = FactGraph(name="kb")
        for code in TestSearch.CANDIDATES:
            graph.add_all(item_facts(code, f"Cylinder {code}", spec=parse(code)))
        return classifier.classify(graph)

    def test_find_similar_cylinders(self, engine, classifier):
        matches = engine.find_similar_cylinders(self.graph(classifier), TARGET)
        assert [m.code for m in matches] == ["30101085000200Y", "30101080000250Y"]

    def test_search_is_cached_until_graph_grows(self, engine, classifier):
        graph = self.graph(classifier)
        engine.find_similar_cylinders(graph, TARGET)
        engine.find_similar_cylinders(graph, TARGET)
        assert engine.search_memo.stats().hits == 1

        graph.add_all(item_facts("30101080000210Y", spec=parse("30101080000210Y")))
        graph.add("30101080000210Y", "isA", "HydraulicCylinder")
        matches = engine.find_similar_cylinders(graph, TARGET)
        assert matches[0].code == "30101080000210Y"

    def test_spec_from_graph_prefers_facts(self):
        graph = FactGraph(item_facts("3010108", spec=parse("3010108")))
        graph.add("3010108", HAS_BORE, 90)
        spec = spec_from_graph(graph, "3010108")
        assert spec.series == "10"
        assert spec.bore == 90
