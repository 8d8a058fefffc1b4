"""
Tests for item code parsing
"""
import pytest

from hydraulic_kb.code_parser import (
    CodeParser, category_for_code, is_component_code, is_cylinder_code,
    parse, parse_component_code, parse_strict,
)
from hydraulic_kb.errors import ParseError
from hydraulic_kb.memo import BoundedMemo
from hydraulic_kb.models import ComponentCategory


class TestParse:

    def test_full_cylinder_code(self):
        spec = parse("30101080000200Y")
        assert spec.item_code == "30101080000200Y"
        assert spec.product_type == "3"
        assert spec.series == "10"
        assert spec.type == "1"
        assert spec.bore == 80
        assert spec.special_features == "00"
        assert spec.stroke == 200
        assert spec.rod_end_type == "Y"
        assert spec.installation_type is None
        assert spec.is_complete()

    def test_installation_type_from_sixteenth_character(self):
        spec = parse("30101080000200YF")
        assert spec.rod_end_type == "Y"
        assert spec.installation_type == "F"

    def test_short_code_fills_only_covered_fields(self):
        spec = parse("3010108")
        assert spec.series == "10"
        assert spec.type == "1"
        assert spec.bore is None
        assert spec.stroke is None
        assert not spec.is_complete()

    def test_fourteen_character_code_is_partial(self):
        """Stroke spans the rod end position; rod end needs a 15th character"""
        spec = parse("3010108000200Y")
        assert spec.bore == 80
        assert spec.stroke == "200Y"
        assert spec.numeric_stroke is None
        assert spec.rod_end_type is None

    def test_non_numeric_bore_kept_raw(self):
        spec = parse("3010A0B0000200Y")
        assert spec.bore == "0B0"
        assert spec.numeric_bore is None

    @pytest.mark.parametrize("code", [None, "", "   "])
    def test_empty_code_never_raises(self, code):
        spec = parse(code)
        assert spec.item_code == ""
        assert spec.series is None

    def test_surrounding_whitespace_stripped(self):
        assert parse("  30101080000200Y ").bore == 80

    def test_summary(self):
        summary = parse("30101080000200Y").summary()
        assert summary["bore"] == "80mm"
        assert summary["stroke"] == "200mm"
        assert summary["rodEndType"] == "Y"
        assert "installationType" not in summary


class TestParseStrict:

    def test_valid_code(self):
        assert parse_strict("30101080000200Y").stroke == 200

    @pytest.mark.parametrize("code, reason", [
        ("", "empty"),
        ("2030108", "prefix"),
        ("3010108000200Y", "length"),
    ])
    def test_rejects(self, code, reason):
        with pytest.raises(ParseError) as exc:
            parse_strict(code)
        assert reason in exc.value.reason


class TestPredicates:

    def test_cylinder_code(self):
        assert is_cylinder_code("30101080000200Y")
        assert is_cylinder_code("40101080000200Y")
        assert not is_cylinder_code("3010108")
        assert not is_cylinder_code("20301080000200Y")
        assert not is_cylinder_code(None)

    def test_component_code(self):
        assert is_component_code("2030108")
        assert is_component_code("2030")
        assert not is_component_code("203")
        assert not is_component_code("30101080000200Y")


class TestComponentCodes:

    def test_layout(self):
        layout = parse_component_code("2030108")
        assert layout.part_group == "203"
        assert layout.variant == "0"
        assert layout.series == "10"
        assert layout.bore_range == 8
        assert layout.bore_span == (80, 89)
        assert layout.suffix == ""

    def test_suffix_letters(self):
        layout = parse_component_code("2400108F")
        assert layout.suffix == "F"
        assert layout.series == "10"
        assert layout.bore_range == 8

    def test_two_digit_bore_range(self):
        assert parse_component_code("20311012").bore_span == (120, 129)

    def test_short_code_has_no_series(self):
        layout = parse_component_code("2030")
        assert layout.series is None
        assert layout.bore_span is None

    @pytest.mark.parametrize("code, category", [
        ("2030108", ComponentCategory.CYLINDER_BARREL),
        ("2110108", ComponentCategory.PISTON),
        ("2120108", ComponentCategory.PISTON_ROD),
        ("2200108", ComponentCategory.END_CAP),
        ("2400108", ComponentCategory.MOUNTING),
        ("2510108", ComponentCategory.SEALING_COMPONENT),
        ("2600108", ComponentCategory.BUSHING),
        ("2700108", ComponentCategory.GASKET),
        ("2800108", ComponentCategory.FASTENER),
        ("2900108", ComponentCategory.OTHER),
        ("30101080000200Y", ComponentCategory.OTHER),
        ("", ComponentCategory.OTHER),
    ])
    def test_category_for_code(self, code, category):
        assert category_for_code(code) is category


class TestCodeParser:

    def test_memoizes(self):
        parser = CodeParser(BoundedMemo(16))
        first = parser.parse("30101080000200Y")
        second = parser.parse("30101080000200Y")
        assert first == second
        assert parser.memo.stats().hits == 1

    def test_returns_independent_copies(self):
        parser = CodeParser()
        spec = parser.parse("30101080000200Y")
        spec.operating_temperature = 95.0
        assert parser.parse("30101080000200Y").operating_temperature is None
