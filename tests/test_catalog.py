"""
Tests for the in-memory catalog and BOM hierarchy traversal
"""
from datetime import date

from hydraulic_kb.catalog import InMemoryCatalog, traverse_hierarchy
from hydraulic_kb.models import BomLine, CatalogItem


def line(master, child, **kwargs):
    return BomLine(master_code=master, component_code=child, **kwargs)


async def test_sample_catalog(catalog):
    items = await catalog.list_items()
    assert len(items) == 18
    assert (await catalog.get_item(" 2030108 ")).item_name == "Cylinder barrel S10 80"
    assert await catalog.get_item("9999999") is None
    assert await catalog.master_item_codes() == [
        "30101080000200Y", "30101080000250Y", "30101100000400Y", "30111125000600Y",
    ]


async def test_item_codes_are_stripped():
    catalog = InMemoryCatalog([CatalogItem(item_code="  2030108 ")])
    assert "2030108" in catalog.items


async def test_single_level(catalog):
    hierarchy = await traverse_hierarchy(catalog, "30101100000400Y")
    assert hierarchy.max_depth == 1
    assert hierarchy.repeated_edges == 0
    assert hierarchy.component_codes == [
        "2110108", "2120108", "2200108", "2210108", "2500108", "2510108",
    ]


async def test_multi_level_with_cycle():
    catalog = InMemoryCatalog(lines=[
        line("A", "B"), line("A", "C"),
        line("B", "D"),
        line("D", "A"),  # cycle back to the root
        line("C", "D"),  # D reached twice
    ])
    hierarchy = await traverse_hierarchy(catalog, "A")
    assert hierarchy.component_codes == ["B", "C", "D", "A"]
    assert hierarchy.max_depth == 3
    assert hierarchy.repeated_edges == 2
    assert [hl.depth for hl in hierarchy.lines] == [1, 1, 2, 2, 3]


async def test_max_depth():
    catalog = InMemoryCatalog(lines=[line("A", "B"), line("B", "C"), line("C", "D")])
    hierarchy = await traverse_hierarchy(catalog, "A", max_depth=2)
    assert hierarchy.component_codes == ["B", "C"]
    assert hierarchy.max_depth == 2


async def test_effective_dates():
    catalog = InMemoryCatalog(
        lines=[
            line("A", "OLD", expiry_date=date(2024, 1, 1)),
            line("A", "NEW", effective_date=date(2024, 1, 1)),
            line("A", "FUTURE", effective_date=date(2025, 1, 1)),
        ],
        as_of=date(2024, 6, 1),
    )
    hierarchy = await traverse_hierarchy(catalog, "A")
    assert hierarchy.component_codes == ["NEW"]


def test_line_effective_on_boundary():
    assert line("A", "B", effective_date=date(2024, 1, 1)).is_effective(date(2024, 1, 1))
    assert not line("A", "B", expiry_date=date(2024, 1, 1)).is_effective(date(2024, 1, 1))
