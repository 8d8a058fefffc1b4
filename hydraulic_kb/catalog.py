"""
Hydraulic Cylinder Knowledge Base — Catalog Source

Responsibilities:
  1. Catalog collaborator interface (items and BOM lines)
  2. In-memory catalog for tests and local development
  3. Multi-level BOM traversal with an explicit worklist
"""
from __future__ import annotations
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, Optional

from hydraulic_kb.models import BomLine, CatalogItem, HierarchyLine

logger = logging.getLogger(__name__)


# ============================================================
# Catalog Abstraction
# ============================================================

class CatalogSource:
    """
    Read-only access to the item master and BOM tables.
    In production, backed by the ERP database; implementations are swappable.
    """

    async def list_items(self) -> list[CatalogItem]:
        raise NotImplementedError

    async def get_item(self, code: str) -> Optional[CatalogItem]:
        raise NotImplementedError

    async def bom_lines(self, master_code: str) -> list[BomLine]:
        """Effective BOM lines of one master item."""
        raise NotImplementedError

    async def master_item_codes(self) -> list[str]:
        """Codes that own at least one BOM line."""
        raise NotImplementedError


class InMemoryCatalog(CatalogSource):

    def __init__(self, items: Iterable[CatalogItem] = (), lines: Iterable[BomLine] = (),
                 as_of: Optional[date] = None):
        self.items: dict[str, CatalogItem] = {}
        self.lines: dict[str, list[BomLine]] = {}
        self.as_of = as_of
        for item in items:
            self.add_item(item)
        for line in lines:
            self.add_line(line)

    def add_item(self, item: CatalogItem) -> None:
        self.items[item.item_code] = item

    def add_line(self, line: BomLine) -> None:
        self.lines.setdefault(line.master_code.strip(), []).append(line)

    async def list_items(self) -> list[CatalogItem]:
        return list(self.items.values())

    async def get_item(self, code: str) -> Optional[CatalogItem]:
        return self.items.get(code.strip())

    async def bom_lines(self, master_code: str) -> list[BomLine]:
        return [
            line for line in self.lines.get(master_code.strip(), [])
            if line.is_effective(self.as_of)
        ]

    async def master_item_codes(self) -> list[str]:
        return sorted(code for code, lines in self.lines.items() if lines)


# ============================================================
# Hierarchy Traversal
# ============================================================

@dataclass
class BomHierarchy:
    root: str
    lines: list[HierarchyLine] = field(default_factory=list)
    max_depth: int = 0
    repeated_edges: int = 0

    @property
    def component_codes(self) -> list[str]:
        seen: dict[str, None] = {}
        for hl in self.lines:
            seen.setdefault(hl.line.component_code.strip(), None)
        return list(seen)


async def traverse_hierarchy(catalog: CatalogSource, root: str,
                             max_depth: Optional[int] = None) -> BomHierarchy:
    """
    Breadth-first walk of the BOM below ``root``.

    Each master is expanded once; an edge back to an already expanded
    master is recorded as a line but not followed.
    """
    root = root.strip()
    hierarchy = BomHierarchy(root=root)
    visited: set[str] = {root}
    worklist: deque[tuple[str, int]] = deque([(root, 1)])

    while worklist:
        master, depth = worklist.popleft()
        if max_depth is not None and depth > max_depth:
            continue
        for line in await catalog.bom_lines(master):
            child = line.component_code.strip()
            hierarchy.lines.append(HierarchyLine(line=line, depth=depth))
            hierarchy.max_depth = max(hierarchy.max_depth, depth)
            if child in visited:
                hierarchy.repeated_edges += 1
                continue
            visited.add(child)
            worklist.append((child, depth + 1))

    if hierarchy.repeated_edges:
        logger.debug(f"BOM of {root}: {hierarchy.repeated_edges} repeated or cyclic edges not followed")
    return hierarchy
