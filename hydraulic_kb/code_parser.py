"""
Hydraulic Cylinder Knowledge Base — Item Code Parser

Responsibilities:
  1. Fixed-width cylinder code → Specification (partial decoding, never raises)
  2. Cylinder / component code predicates
  3. Component code layout → ComponentCode
  4. Part group → ComponentCategory mapping
"""
from __future__ import annotations
import logging
from typing import Optional, Union

from hydraulic_kb.errors import ParseError
from hydraulic_kb.memo import BoundedMemo
from hydraulic_kb.models import ComponentCategory, ComponentCode, Specification

logger = logging.getLogger(__name__)

# ============================================================
# Code Layout
# ============================================================

MIN_CYLINDER_CODE_LENGTH = 15
MIN_COMPONENT_CODE_LENGTH = 4
CYLINDER_PREFIXES = ('3', '4')
COMPONENT_PREFIX = '2'

# (field, start, end, numeric): half-open, 0-indexed
CYLINDER_CODE_FIELDS: list[tuple[str, int, int, bool]] = [
    ('product_type', 0, 1, False),
    ('series', 2, 4, False),
    ('type', 4, 5, False),
    ('bore', 5, 8, True),
    ('special_features', 8, 10, False),
    ('stroke', 10, 14, True),
    ('rod_end_type', 14, 15, False),
    ('installation_type', 15, 16, False),
]

# Component part groups: first three characters of the code.
# (low, high) inclusive numeric ranges over the group.
CATEGORY_GROUPS: list[tuple[int, int, ComponentCategory]] = [
    (200, 209, ComponentCategory.CYLINDER_BARREL),
    (210, 211, ComponentCategory.PISTON),
    (212, 213, ComponentCategory.PISTON_ROD),
    (214, 219, ComponentCategory.TIE_ROD),
    (220, 229, ComponentCategory.END_CAP),
    (230, 239, ComponentCategory.NUT),
    (240, 249, ComponentCategory.MOUNTING),
    (250, 259, ComponentCategory.SEALING_COMPONENT),
    (260, 269, ComponentCategory.BUSHING),
    (270, 279, ComponentCategory.GASKET),
    (280, 289, ComponentCategory.FASTENER),
]


def is_cylinder_code(code: Optional[str]) -> bool:
    if not code:
        return False
    code = code.strip()
    return len(code) >= MIN_CYLINDER_CODE_LENGTH and code[0] in CYLINDER_PREFIXES


def is_component_code(code: Optional[str]) -> bool:
    if not code:
        return False
    code = code.strip()
    return len(code) >= MIN_COMPONENT_CODE_LENGTH and code[0] == COMPONENT_PREFIX


def _numeric_or_raw(raw: str) -> Union[int, str]:
    """'080' → 80; non-numeric substrings are kept verbatim."""
    if raw.isdigit():
        return int(raw)
    return raw


def parse(code: Optional[str]) -> Specification:
    """
    Decode a cylinder item code into a Specification.

    Each field is filled only when the code covers its full range; anything
    beyond the code's length is left empty. Never raises.
    """
    code = (code or '').strip()
    spec = Specification(item_code=code)
    for name, start, end, numeric in CYLINDER_CODE_FIELDS:
        if len(code) < end:
            continue
        raw = code[start:end]
        value = _numeric_or_raw(raw) if numeric else raw
        setattr(spec, name, value)
    return spec


def parse_strict(code: Optional[str]) -> Specification:
    """Like parse(), but raises ParseError unless the code is a full cylinder code."""
    code = (code or '').strip()
    if not code:
        raise ParseError(code, "empty code")
    if code[0] not in CYLINDER_PREFIXES:
        raise ParseError(code, f"first character {code[0]!r} is not a cylinder prefix")
    if len(code) < MIN_CYLINDER_CODE_LENGTH:
        raise ParseError(code, f"length {len(code)} < {MIN_CYLINDER_CODE_LENGTH}")
    return parse(code)


class CodeParser:
    """Memoizing front end over parse(), for hot loops in the engines."""

    def __init__(self, memo: Optional[BoundedMemo[Specification]] = None):
        self.memo = memo if memo is not None else BoundedMemo(max_size=4096)

    def parse(self, code: Optional[str]) -> Specification:
        key = (code or '').strip()
        cached = self.memo.get_or_compute(key, lambda: parse(key))
        # Callers may attach operating_temperature; never hand out the cached instance
        return cached.model_copy()


# ============================================================
# Component Codes
# ============================================================

def parse_component_code(code: Optional[str]) -> ComponentCode:
    """
    Decode a component code: ``[0,3)`` part group, ``[3]`` variant,
    ``[4,6)`` series, ``[6,8)`` bore range in tens of mm; any trailing
    letters form the suffix (installation token on mounting parts).
    """
    code = (code or '').strip()
    digits_end = len(code)
    while digits_end > 0 and not code[digits_end - 1].isdigit():
        digits_end -= 1
    body, suffix = code[:digits_end], code[digits_end:]

    result = ComponentCode(item_code=code, suffix=suffix)
    if len(body) >= 3:
        result.part_group = body[:3]
    if len(body) >= 4:
        result.variant = body[3]
    if len(body) >= 6:
        result.series = body[4:6]
    range_digits = body[6:8]
    if range_digits.isdigit():
        result.bore_range = int(range_digits)
    return result


def category_for_code(code: Optional[str]) -> ComponentCategory:
    """Map a component code to its category by part group."""
    code = (code or '').strip()
    group = code[:3]
    if len(group) < 3 or not group.isdigit() or group[0] != COMPONENT_PREFIX:
        return ComponentCategory.OTHER
    value = int(group)
    for low, high, category in CATEGORY_GROUPS:
        if low <= value <= high:
            return category
    return ComponentCategory.OTHER
