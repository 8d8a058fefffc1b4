"""
Tests for BOM generation
"""
import pytest

from hydraulic_kb.bom_generator import (
    END_CAP_WARNING, SEAL_WARNING, BomGenerator, bushing_quantity, category_quantity,
    fastener_quantity, maintenance_schedule, priority_for, replacement_cycle,
    seal_quantity, spare_parts, validate_bom,
)
from hydraulic_kb.code_parser import parse
from hydraulic_kb.fact_graph import FactGraph
from hydraulic_kb.models import (
    ComponentCategory, ComponentSuggestion, MaintenanceType, Priority, Specification,
)
from hydraulic_kb.sample_data import BOMS, COMPONENTS, CYLINDERS
from hydraulic_kb.seeding import bom_facts, item_facts

C = ComponentCategory
TARGET = "30101090000300Y"


@pytest.fixture(scope="module")
def knowledge():
    from hydraulic_kb.classification import ClassificationEngine
    graph = FactGraph(name="kb")
    for code, name in CYLINDERS:
        graph.add_all(item_facts(code, name, spec=parse(code)))
    for code, name, material in COMPONENTS:
        graph.add_all(item_facts(code, name, material))
    for master, children in BOMS.items():
        graph.add_all(bom_facts((master, child) for child in children))
    return ClassificationEngine().classify(graph)


@pytest.fixture(scope="module")
def bom(knowledge):
    return BomGenerator(knowledge).generate(TARGET)


class TestQuantities:

    @pytest.mark.parametrize("bore, expected", [(None, 4), (40, 4), (50, 4), (90, 5), (120, 6), (150, 6), (200, 8)])
    def test_seals(self, bore, expected):
        assert seal_quantity(bore) == expected

    @pytest.mark.parametrize("stroke, expected", [(None, 2), (200, 1), (300, 1), (450, 2), (1000, 3)])
    def test_bushings(self, stroke, expected):
        assert bushing_quantity(stroke) == expected

    @pytest.mark.parametrize("bore, expected", [(None, 4), (100, 4), (125, 6), (160, 8)])
    def test_fasteners(self, bore, expected):
        assert fastener_quantity(bore) == expected

    def test_category_quantity(self):
        spec = parse("30101120000700Y")
        assert category_quantity(C.END_CAP, spec) == 2
        assert category_quantity(C.CYLINDER_BARREL, spec) == 1
        assert category_quantity(C.SEALING_COMPONENT, spec) == 6
        assert category_quantity(C.BUSHING, spec) == 3
        assert category_quantity(C.GASKET, spec) == 2
        assert category_quantity(C.TIE_ROD, spec) == 6
        assert category_quantity(C.MOUNTING, spec) == 1

    def test_non_numeric_bore_uses_defaults(self):
        assert category_quantity(C.SEALING_COMPONENT, Specification(bore="0B0")) == 4

    def test_spare_parts(self):
        assert spare_parts({C.SEALING_COMPONENT: 6}) == {C.SEALING_COMPONENT: 3, C.GASKET: 1, C.BUSHING: 1}
        assert spare_parts({})[C.SEALING_COMPONENT] == 2

    def test_priorities(self):
        assert priority_for(C.PISTON, 0.1) is Priority.CRITICAL
        assert priority_for(C.SEALING_COMPONENT, 0.75) is Priority.HIGH
        assert priority_for(C.SEALING_COMPONENT, 0.7) is Priority.MEDIUM
        assert priority_for(C.BUSHING, 0.85) is Priority.MEDIUM
        assert priority_for(C.GASKET, 0.5) is Priority.LOW
        assert priority_for(C.FASTENER, 0.99) is Priority.LOW

    def test_replacement_cycles(self):
        assert replacement_cycle(C.SEALING_COMPONENT) == "12-18 months"
        assert replacement_cycle(C.FASTENER) == "Replace if damaged"


class TestValidation:

    def suggestion(self, code, category):
        return ComponentSuggestion(component_code=code, category=category, confidence=0.9)

    def test_missing_categories(self):
        result = validate_bom({
            C.CYLINDER_BARREL: [self.suggestion("2030108", C.CYLINDER_BARREL)],
            C.END_CAP: [self.suggestion("2200108", C.END_CAP)],
        })
        assert not result.complete
        assert result.completeness_score == pytest.approx(2 / 5)
        assert result.missing_components == [C.PISTON, C.PISTON_ROD, C.SEALING_COMPONENT]
        assert END_CAP_WARNING in result.warnings
        assert SEAL_WARNING in result.warnings

    def test_invalid_code_warning(self):
        result = validate_bom({}, valid_code=False, target_code="3010109")
        assert result.completeness_score == 0.0
        assert "'3010109' is not a valid hydraulic cylinder code" in result.warnings[0]


class TestGenerate:

    def test_specification(self, bom):
        assert bom.valid_cylinder_code
        assert bom.specifications.bore == 90
        assert bom.specification_summary["stroke"] == "300mm"
        assert {"HydraulicCylinder", "MediumBoreCylinder", "StandardCylinder",
                "OptimalDesignCylinder"} <= set(bom.classifications)

    def test_suggestions_per_category(self, bom):
        codes = {c: [s.component_code for s in items] for c, items in bom.suggestions.items()}
        assert codes[C.CYLINDER_BARREL] == ["2030108"]
        assert codes[C.END_CAP] == ["2200108", "2210108"]
        assert codes[C.SEALING_COMPONENT] == ["2500108", "2510108", "2520108"]
        assert codes[C.BUSHING] == ["2600108"]
        assert codes[C.FASTENER] == ["2800108"]

    def test_heavy_duty_parts_not_suggested(self, bom):
        suggested = {s.component_code for items in bom.suggestions.values() for s in items}
        assert not suggested & {"20311112", "22011112", "25011112"}

    def test_suggestion_annotations(self, bom):
        seal = bom.suggestions[C.SEALING_COMPONENT][0]
        assert seal.confidence == 0.95
        assert seal.recommended_quantity == 5
        assert seal.priority is Priority.HIGH
        assert seal.replacement_cycle == "12-18 months"
        assert bom.suggestions[C.PISTON][0].priority is Priority.CRITICAL

    def test_quantities_and_spares(self, bom):
        assert bom.quantities[C.SEALING_COMPONENT] == 5
        assert bom.quantities[C.END_CAP] == 2
        assert bom.quantities[C.BUSHING] == 1
        assert bom.spare_parts[C.SEALING_COMPONENT] == 2

    def test_validation_complete(self, bom):
        assert bom.validation.complete
        assert bom.validation.completeness_score == 1.0
        assert bom.validation.warnings == []

    def test_metadata(self, bom):
        assert bom.metadata.total_components == 11
        assert bom.metadata.high_confidence_components == 11
        assert bom.metadata.average_confidence == 0.95
        assert bom.metadata.inference_iterations >= 2
        assert bom.metadata.classification_warnings == []

    def test_templates(self, bom):
        assert [s.step for s in bom.assembly_sequence] == list(range(1, 8))
        assert bom.assembly_sequence[0].operation == "Prepare Barrel Assembly"
        assert len(bom.maintenance.daily) == 2
        assert len(bom.maintenance.annual) == 4
        assert bom.maintenance.monthly[0].estimated_time == "20-30 minutes"

    def test_similar_products(self, bom):
        assert [m.code for m in bom.similar_products] == [
            "30101080000250Y", "30101080000200Y", "30101100000400Y",
        ]

    def test_knowledge_not_modified(self, knowledge):
        before = len(knowledge)
        BomGenerator(knowledge).generate("30101085000350Y")
        assert len(knowledge) == before

    def test_partial_code(self, knowledge):
        bom = BomGenerator(knowledge).generate("3010109")
        assert not bom.valid_cylinder_code
        assert "not a valid hydraulic cylinder code" in bom.validation.warnings[0]
        assert bom.quantities[C.SEALING_COMPONENT] == 4


def test_maintenance_schedule_types():
    schedule = maintenance_schedule()
    assert schedule.condition_based[0].type is MaintenanceType.CORRECTIVE
    assert schedule.annual[0].estimated_time == "4-8 hours"
