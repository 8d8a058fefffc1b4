"""
A small hydraulic cylinder catalog for demos and local development.

Two S10 80mm cylinders share one set of components, an S10 100mm cylinder
reuses most of them, and a heavy-duty S11 125mm cylinder has its own
barrel, end cap and high-pressure seal.
"""
from __future__ import annotations

from hydraulic_kb.catalog import InMemoryCatalog
from hydraulic_kb.models import BomLine, CatalogItem

CYLINDERS: list[tuple[str, str]] = [
    ("30101080000200Y", "Hydraulic cylinder S10 80x200 yoke"),
    ("30101080000250Y", "Hydraulic cylinder S10 80x250 yoke"),
    ("30101100000400Y", "Hydraulic cylinder S10 100x400 yoke"),
    ("30111125000600Y", "Hydraulic cylinder S11 125x600 heavy duty"),
]

# (code, name, material)
COMPONENTS: list[tuple[str, str, str]] = [
    ("2030108", "Cylinder barrel S10 80", "St52"),
    ("2110108", "Piston S10 80", "C45"),
    ("2120108", "Piston rod S10 80 chromed", "CK45"),
    ("2200108", "Front end cap S10 80", "S355"),
    ("2210108", "Rear end cap S10 80", "S355"),
    ("2500108", "Piston seal S10 80", "NBR"),
    ("2510108", "Rod seal S10 80", "PU"),
    ("2520108", "Wiper S10 80", "PU"),
    ("2600108", "Guide bushing S10", "Bronze"),
    ("2700108", "Gasket S10 80", "NBR"),
    ("2800108", "Tie rod S10 80", "8.8 steel"),
    ("20311112", "Cylinder barrel S11 125 heavy duty", "St52"),
    ("22011112", "End cap S11 125 heavy duty", "S355"),
    ("25011112", "High pressure piston seal S11 125", "Viton"),
]

_S10_SET = ["2030108", "2110108", "2120108", "2200108", "2210108",
            "2500108", "2510108", "2520108", "2600108", "2700108", "2800108"]

BOMS: dict[str, list[str]] = {
    "30101080000200Y": _S10_SET,
    "30101080000250Y": _S10_SET,
    "30101100000400Y": ["2110108", "2120108", "2200108", "2210108", "2500108", "2510108"],
    "30111125000600Y": ["20311112", "22011112", "25011112", "2600108"],
}


def sample_catalog() -> InMemoryCatalog:
    catalog = InMemoryCatalog()
    for code, name in CYLINDERS:
        catalog.add_item(CatalogItem(item_code=code, item_name=name))
    for code, name, material in COMPONENTS:
        catalog.add_item(CatalogItem(item_code=code, item_name=name, item_spec=material))
    for master, children in BOMS.items():
        for child in children:
            catalog.add_line(BomLine(master_code=master, component_code=child))
    return catalog
