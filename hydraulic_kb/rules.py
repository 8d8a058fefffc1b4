"""
Hydraulic Cylinder Knowledge Base — Rule Language
rules.py

Responsibilities:
  1. Tokenize and parse textual rules into a typed AST (once, up front)
  2. Match rule bodies against a FactGraph and instantiate rule heads
  3. Ship the default hydraulic cylinder rule base
  4. Summarize a rule set (analyze_rules)

Grammar:

    rule    := '[' ['disabled'] NAME ['/' PRIORITY] ':' body '->' head ']'
    body    := (pattern | guard)+
    head    := pattern+
    pattern := '(' term term term ')'
    guard   := GUARD '(' arg (',' arg)* ')'
    arg     := term | 'concat' '(' arg (',' arg)* ')'
    term    := ?var | 'literal' | number | true | false | identifier

GUARD is one of regex, greaterThan, lessThan, notEqual, equal. ``regex``
uses search semantics on the string form of its first argument; the
comparison guards are numeric and fail on non-numeric operands.

Example:

    [MediumBoreCylinder/30:
        (?c isA HydraulicCylinder) (?c hasBore ?b)
        greaterThan(?b, 49) lessThan(?b, 100)
        -> (?c isA MediumBoreCylinder)]
"""
from __future__ import annotations
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from functools import lru_cache
from typing import Any, Iterable, Iterator, Optional, Union

from hydraulic_kb.errors import RuleParseError
from hydraulic_kb.fact_graph import Fact, FactGraph, Value

logger = logging.getLogger(__name__)

DEFAULT_PRIORITY = 100

# ============================================================
# AST
# ============================================================

@dataclass(frozen=True)
class Var:
    name: str

    def __str__(self) -> str:
        return f"?{self.name}"


@dataclass(frozen=True)
class Const:
    value: Value

    def __str__(self) -> str:
        return repr(self.value) if isinstance(self.value, str) else str(self.value)


@dataclass(frozen=True)
class Concat:
    parts: tuple["Arg", ...]


Term = Union[Var, Const]
Arg = Union[Var, Const, Concat]
Bindings = dict[str, Value]


class GuardKind(str, Enum):
    REGEX = "regex"
    GREATER_THAN = "greaterThan"
    LESS_THAN = "lessThan"
    NOT_EQUAL = "notEqual"
    EQUAL = "equal"


GUARD_ARITY = {kind: 2 for kind in GuardKind}


@dataclass(frozen=True)
class TriplePattern:
    subject: Term
    predicate: Term
    object: Term

    def variables(self) -> set[str]:
        return {t.name for t in (self.subject, self.predicate, self.object) if isinstance(t, Var)}

    def instantiate(self, bindings: Bindings) -> Optional[Fact]:
        s = _resolve_term(self.subject, bindings)
        p = _resolve_term(self.predicate, bindings)
        o = _resolve_term(self.object, bindings)
        if not isinstance(s, str) or not isinstance(p, str):
            return None
        return Fact(s, p, o)


@dataclass(frozen=True)
class Guard:
    kind: GuardKind
    args: tuple[Arg, ...]

    def variables(self) -> set[str]:
        out: set[str] = set()
        for a in self.args:
            out |= _arg_variables(a)
        return out

    def holds(self, bindings: Bindings) -> bool:
        values = [_resolve_arg(a, bindings) for a in self.args]
        left, right = values
        if self.kind is GuardKind.REGEX:
            pattern = _compile_regex(str(right))
            return pattern is not None and pattern.search(str(left)) is not None
        if self.kind is GuardKind.GREATER_THAN:
            a, b = _as_number(left), _as_number(right)
            return a is not None and b is not None and a > b
        if self.kind is GuardKind.LESS_THAN:
            a, b = _as_number(left), _as_number(right)
            return a is not None and b is not None and a < b
        if self.kind is GuardKind.EQUAL:
            return _values_equal(left, right)
        return not _values_equal(left, right)


BodyElement = Union[TriplePattern, Guard]


@dataclass(frozen=True)
class Rule:
    name: str
    priority: int
    body: tuple[BodyElement, ...]
    head: tuple[TriplePattern, ...]
    enabled: bool = True
    source: str = field(default="", compare=False)

    @property
    def patterns(self) -> list[TriplePattern]:
        return [e for e in self.body if isinstance(e, TriplePattern)]

    @property
    def guards(self) -> list[Guard]:
        return [e for e in self.body if isinstance(e, Guard)]

    def sort_key(self) -> tuple[int, str]:
        return (self.priority, self.name)

    def matches(self, graph: FactGraph) -> Iterator[Bindings]:
        """Yield every variable binding that satisfies the body.

        Guards run as soon as all their variables are bound.
        """
        bindings: list[Bindings] = [{}]
        bound: set[str] = set()
        pending = list(self.guards)
        for element in self.body:
            if isinstance(element, Guard):
                continue
            bindings = [b2 for b in bindings for b2 in _extend(graph, element, b)]
            if not bindings:
                return
            bound |= element.variables()
            ready = [g for g in pending if g.variables() <= bound]
            if ready:
                pending = [g for g in pending if g not in ready]
                bindings = [b for b in bindings if all(g.holds(b) for g in ready)]
        if pending:
            # parse_rule rejects unbound guard variables; only variable-free guards land here
            bindings = [b for b in bindings if all(g.holds(b) for g in pending)]
        yield from bindings

    def consequences(self, graph: FactGraph) -> Iterator[Fact]:
        for bindings in self.matches(graph):
            for pattern in self.head:
                fact = pattern.instantiate(bindings)
                if fact is not None:
                    yield fact


def _resolve_term(term: Term, bindings: Bindings) -> Value:
    if isinstance(term, Var):
        return bindings[term.name]
    return term.value


def _resolve_arg(arg: Arg, bindings: Bindings) -> Value:
    if isinstance(arg, Concat):
        return ''.join(str(_resolve_arg(p, bindings)) for p in arg.parts)
    return _resolve_term(arg, bindings)


def _arg_variables(arg: Arg) -> set[str]:
    if isinstance(arg, Var):
        return {arg.name}
    if isinstance(arg, Concat):
        out: set[str] = set()
        for p in arg.parts:
            out |= _arg_variables(p)
        return out
    return set()


def _extend(graph: FactGraph, pattern: TriplePattern, bindings: Bindings) -> Iterator[Bindings]:
    lookup: list[Optional[Value]] = []
    for term in (pattern.subject, pattern.predicate, pattern.object):
        if isinstance(term, Var):
            lookup.append(bindings.get(term.name))
        else:
            lookup.append(term.value)
    s, p, o = lookup
    if (s is not None and not isinstance(s, str)) or (p is not None and not isinstance(p, str)):
        return
    for fact in graph.query(s, p, o):
        extended = dict(bindings)
        ok = True
        for term, value in zip((pattern.subject, pattern.predicate, pattern.object), fact):
            if not isinstance(term, Var):
                continue
            if term.name in extended and extended[term.name] != value:
                ok = False
                break
            extended[term.name] = value
        if ok:
            yield extended


@lru_cache(maxsize=512)
def _compile_regex(pattern: str) -> Optional[re.Pattern]:
    try:
        return re.compile(pattern)
    except re.error as e:
        logger.warning(f"Invalid regex in rule guard {pattern!r}: {e}")
        return None


def _as_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(str(value).strip())
    except (TypeError, ValueError):
        return None


def _values_equal(a: Any, b: Any) -> bool:
    na, nb = _as_number(a), _as_number(b)
    if na is not None and nb is not None:
        return na == nb
    return str(a) == str(b)


# ============================================================
# Tokenizer & Parser
# ============================================================

_TOKEN_RE = re.compile(r"""
    (?P<ws>\s+)
  | (?P<arrow>->)
  | (?P<lbracket>\[) | (?P<rbracket>\])
  | (?P<lparen>\()   | (?P<rparen>\))
  | (?P<comma>,)     | (?P<colon>:)     | (?P<slash>/)
  | (?P<var>\?[A-Za-z_]\w*)
  | (?P<string>'(?:[^'\\]|\\.)*')
  | (?P<number>-?\d+(?:\.\d+)?(?![\w.]))
  | (?P<ident>[A-Za-z_]\w*)
""", re.VERBOSE)


@dataclass
class _Token:
    kind: str
    text: str
    pos: int


def _tokenize(text: str) -> list[_Token]:
    tokens: list[_Token] = []
    pos = 0
    while pos < len(text):
        m = _TOKEN_RE.match(text, pos)
        if not m:
            raise RuleParseError(text, f"unexpected character {text[pos]!r}", pos)
        kind = m.lastgroup
        if kind != 'ws':
            tokens.append(_Token(kind, m.group(), pos))
        pos = m.end()
    return tokens


class _Parser:

    def __init__(self, text: str):
        self.text = text
        self.tokens = _tokenize(text)
        self.i = 0

    def peek(self, offset: int = 0) -> Optional[_Token]:
        j = self.i + offset
        return self.tokens[j] if j < len(self.tokens) else None

    def expect(self, kind: str) -> _Token:
        tok = self.peek()
        if tok is None:
            raise RuleParseError(self.text, f"expected {kind}, got end of rule", len(self.text))
        if tok.kind != kind:
            raise RuleParseError(self.text, f"expected {kind}, got {tok.text!r}", tok.pos)
        self.i += 1
        return tok

    def at(self, kind: str) -> bool:
        tok = self.peek()
        return tok is not None and tok.kind == kind

    def parse(self) -> Rule:
        self.expect('lbracket')
        enabled = True
        if self.at('ident') and self.peek().text == 'disabled' and self.peek(1) and self.peek(1).kind == 'ident':
            self.i += 1
            enabled = False
        name = self.expect('ident').text
        priority = DEFAULT_PRIORITY
        if self.at('slash'):
            self.i += 1
            tok = self.expect('number')
            try:
                priority = int(tok.text)
            except ValueError:
                raise RuleParseError(self.text, f"priority must be an integer, got {tok.text}", tok.pos)
        self.expect('colon')

        body: list[BodyElement] = []
        while not self.at('arrow'):
            if self.peek() is None:
                raise RuleParseError(self.text, "missing '->'", len(self.text))
            body.append(self.parse_body_element())
        self.expect('arrow')

        head: list[TriplePattern] = []
        while not self.at('rbracket'):
            if self.peek() is None:
                raise RuleParseError(self.text, "missing ']'", len(self.text))
            head.append(self.parse_pattern())
        self.expect('rbracket')
        if self.peek() is not None:
            raise RuleParseError(self.text, "trailing input after ']'", self.peek().pos)

        if not any(isinstance(e, TriplePattern) for e in body):
            raise RuleParseError(self.text, "rule body needs at least one fact pattern")
        if not head:
            raise RuleParseError(self.text, "rule head must assert at least one fact")

        rule = Rule(name=name, priority=priority, body=tuple(body), head=tuple(head),
                    enabled=enabled, source=self.text)
        _check_bindings(rule, self.text)
        return rule

    def parse_body_element(self) -> BodyElement:
        if self.at('lparen'):
            return self.parse_pattern()
        tok = self.expect('ident')
        try:
            kind = GuardKind(tok.text)
        except ValueError:
            raise RuleParseError(self.text, f"unknown guard {tok.text!r}", tok.pos)
        args = self.parse_args()
        if len(args) != GUARD_ARITY[kind]:
            raise RuleParseError(
                self.text, f"{kind.value} takes {GUARD_ARITY[kind]} arguments, got {len(args)}", tok.pos)
        if kind is GuardKind.REGEX and isinstance(args[1], Const):
            try:
                re.compile(str(args[1].value))
            except re.error as e:
                raise RuleParseError(self.text, f"invalid regex: {e}", tok.pos)
        return Guard(kind, tuple(args))

    def parse_args(self) -> list[Arg]:
        self.expect('lparen')
        args = [self.parse_arg()]
        while self.at('comma'):
            self.i += 1
            args.append(self.parse_arg())
        self.expect('rparen')
        return args

    def parse_arg(self) -> Arg:
        if self.at('ident') and self.peek().text == 'concat' and self.peek(1) and self.peek(1).kind == 'lparen':
            self.i += 1
            return Concat(tuple(self.parse_args()))
        return self.parse_term()

    def parse_pattern(self) -> TriplePattern:
        self.expect('lparen')
        s, p, o = self.parse_term(), self.parse_term(), self.parse_term()
        self.expect('rparen')
        return TriplePattern(s, p, o)

    def parse_term(self) -> Term:
        tok = self.peek()
        if tok is None:
            raise RuleParseError(self.text, "expected a term, got end of rule", len(self.text))
        self.i += 1
        if tok.kind == 'var':
            return Var(tok.text[1:])
        if tok.kind == 'string':
            return Const(tok.text[1:-1].replace("\\'", "'"))
        if tok.kind == 'number':
            return Const(float(tok.text) if '.' in tok.text else int(tok.text))
        if tok.kind == 'ident':
            if tok.text == 'true':
                return Const(True)
            if tok.text == 'false':
                return Const(False)
            return Const(tok.text)
        raise RuleParseError(self.text, f"expected a term, got {tok.text!r}", tok.pos)


def _check_bindings(rule: Rule, text: str) -> None:
    bound: set[str] = set()
    for p in rule.patterns:
        bound |= p.variables()
    for g in rule.guards:
        missing = g.variables() - bound
        if missing:
            raise RuleParseError(text, f"guard {g.kind.value} uses unbound variable(s) {sorted(missing)}")
    for h in rule.head:
        missing = h.variables() - bound
        if missing:
            raise RuleParseError(text, f"head uses unbound variable(s) {sorted(missing)}")


def parse_rule(text: str) -> Rule:
    """Parse one rule text. Raises RuleParseError on malformed input."""
    return _Parser(text.strip()).parse()


def compile_rules(texts: Iterable[str]) -> list[Rule]:
    """Parse every rule text, skipping (and logging) the ones that fail."""
    rules: list[Rule] = []
    for text in texts:
        try:
            rules.append(parse_rule(text))
        except RuleParseError as e:
            logger.warning(f"Skipping rule {text.strip()[:60]!r}: {e}")
    return rules


# ============================================================
# Rule Analysis
# ============================================================

@dataclass
class RuleAnalysis:
    total_rules: int = 0
    enabled_rules: int = 0
    disabled_rules: int = 0
    uses_regex: int = 0
    uses_comparisons: int = 0
    asserts_compatibility: int = 0
    asserts_recommendation: int = 0
    asserted_types: list[str] = field(default_factory=list)


def analyze_rules(rules: Iterable[Rule]) -> RuleAnalysis:
    analysis = RuleAnalysis()
    types: set[str] = set()
    for rule in rules:
        analysis.total_rules += 1
        if rule.enabled:
            analysis.enabled_rules += 1
        else:
            analysis.disabled_rules += 1
        kinds = {g.kind for g in rule.guards}
        if GuardKind.REGEX in kinds:
            analysis.uses_regex += 1
        if kinds & {GuardKind.GREATER_THAN, GuardKind.LESS_THAN}:
            analysis.uses_comparisons += 1
        predicates = {h.predicate.value for h in rule.head if isinstance(h.predicate, Const)}
        if "compatibleWith" in predicates:
            analysis.asserts_compatibility += 1
        if "recommendedFor" in predicates:
            analysis.asserts_recommendation += 1
        for h in rule.head:
            if isinstance(h.predicate, Const) and h.predicate.value == "isA" and isinstance(h.object, Const):
                types.add(str(h.object.value))
    analysis.asserted_types = sorted(types)
    return analysis


# ============================================================
# Default Rule Base
# ============================================================

IDENTIFICATION_RULES = [
    r"""[IdentifyHydraulicCylinder/10:
        (?m isA Material) (?m hasItemCode ?code) regex(?code, '^[34]')
        -> (?m isA HydraulicCylinder)]""",
    r"""[IdentifyComponentItem/10:
        (?m isA Material) (?m hasItemCode ?code) regex(?code, '^2')
        -> (?m isA ComponentItem)]""",
    r"""[ValidateCylinderSpecs/15:
        (?c isA HydraulicCylinder) (?c hasItemCode ?code) regex(?code, '^[34][0-9]{13,}')
        -> (?c hasValidSpecifications true)]""",
]

COMPONENT_CATEGORY_RULES = [
    r"""[BarrelComponent/20:
        (?p isA ComponentItem) (?p hasItemCode ?code) regex(?code, '^20[0-2]')
        -> (?p isA CylinderBarrel)]""",
    r"""[PistonComponent/20:
        (?p isA ComponentItem) (?p hasItemCode ?code) regex(?code, '^21[0-1]')
        -> (?p isA Piston)]""",
    r"""[PistonRodComponent/20:
        (?p isA ComponentItem) (?p hasItemCode ?code) regex(?code, '^21[2-3]')
        -> (?p isA PistonRod)]""",
    r"""[EndCapComponent/20:
        (?p isA ComponentItem) (?p hasItemCode ?code) regex(?code, '^22[0-3]')
        -> (?p isA EndCap)]""",
    r"""[MountingComponent/20:
        (?p isA ComponentItem) (?p hasItemCode ?code) regex(?code, '^24[0-9]')
        -> (?p isA Mounting)]""",
    r"""[SealingComponent/20:
        (?p isA ComponentItem) (?p hasItemCode ?code) regex(?code, '^25[0-2]')
        -> (?p isA SealingComponent)]""",
    r"""[BushingComponent/20:
        (?p isA ComponentItem) (?p hasItemCode ?code) regex(?code, '^26[0-1]')
        -> (?p isA Bushing)]""",
    r"""[GasketComponent/20:
        (?p isA ComponentItem) (?p hasItemCode ?code) regex(?code, '^27[0-1]')
        -> (?p isA Gasket)]""",
    r"""[FastenerComponent/20:
        (?p isA ComponentItem) (?p hasItemCode ?code) regex(?code, '^28[0-9]')
        -> (?p isA Fastener)]""",
    r"""[SealByName/25:
        (?p isA ComponentItem) (?p hasItemName ?n) regex(?n, '(?i)\bseal|o-ring|wiper|packing')
        -> (?p isA SealingComponent)]""",
    r"""[BushingByName/25:
        (?p isA ComponentItem) (?p hasItemName ?n) regex(?n, '(?i)bushing|guide ring')
        -> (?p isA Bushing)]""",
    r"""[GasketByName/25:
        (?p isA ComponentItem) (?p hasItemName ?n) regex(?n, '(?i)gasket')
        -> (?p isA Gasket)]""",
]

BORE_TIER_RULES = [
    r"""[MicroBoreCylinder/30:
        (?c isA HydraulicCylinder) (?c hasBore ?b) greaterThan(?b, 9) lessThan(?b, 30)
        -> (?c isA MicroBoreCylinder)]""",
    r"""[SmallBoreCylinder/30:
        (?c isA HydraulicCylinder) (?c hasBore ?b) greaterThan(?b, 29) lessThan(?b, 50)
        -> (?c isA SmallBoreCylinder)]""",
    r"""[MediumBoreCylinder/30:
        (?c isA HydraulicCylinder) (?c hasBore ?b) greaterThan(?b, 49) lessThan(?b, 100)
        -> (?c isA MediumBoreCylinder)]""",
    r"""[LargeBoreCylinder/30:
        (?c isA HydraulicCylinder) (?c hasBore ?b) greaterThan(?b, 99) lessThan(?b, 150)
        -> (?c isA LargeBoreCylinder)]""",
    r"""[ExtraLargeBoreCylinder/30:
        (?c isA HydraulicCylinder) (?c hasBore ?b) greaterThan(?b, 149)
        -> (?c isA ExtraLargeBoreCylinder)]""",
]

STROKE_TIER_RULES = [
    r"""[ShortStrokeCylinder/30:
        (?c isA HydraulicCylinder) (?c hasStroke ?s) greaterThan(?s, -1) lessThan(?s, 100)
        -> (?c isA ShortStrokeCylinder)]""",
    r"""[MediumStrokeCylinder/30:
        (?c isA HydraulicCylinder) (?c hasStroke ?s) greaterThan(?s, 99) lessThan(?s, 500)
        -> (?c isA MediumStrokeCylinder)]""",
    r"""[LongStrokeCylinder/30:
        (?c isA HydraulicCylinder) (?c hasStroke ?s) greaterThan(?s, 499) lessThan(?s, 1000)
        -> (?c isA LongStrokeCylinder)]""",
    r"""[ExtraLongStrokeCylinder/30:
        (?c isA HydraulicCylinder) (?c hasStroke ?s) greaterThan(?s, 999)
        -> (?c isA ExtraLongStrokeCylinder)]""",
]

SERIES_RULES = [
    r"""[StandardSeries/30: (?c isA HydraulicCylinder) (?c hasSeries '10') -> (?c isA StandardCylinder)]""",
    r"""[HeavyDutySeries/30: (?c isA HydraulicCylinder) (?c hasSeries '11') -> (?c isA HeavyDutyCylinder)]""",
    r"""[CompactSeries/30: (?c isA HydraulicCylinder) (?c hasSeries '12') -> (?c isA CompactCylinder)]""",
    r"""[LightDutySeries/30: (?c isA HydraulicCylinder) (?c hasSeries '13') -> (?c isA LightDutyCylinder)]""",
]

ROD_END_RULES = [
    r"""[YokeRodEnd/30: (?c isA HydraulicCylinder) (?c hasRodEndType 'Y') -> (?c isA YokeRodEnd)]""",
    r"""[InternalThreadRodEnd/30: (?c isA HydraulicCylinder) (?c hasRodEndType 'I') -> (?c isA InternalThreadRodEnd)]""",
    r"""[ExternalThreadRodEnd/30: (?c isA HydraulicCylinder) (?c hasRodEndType 'E') -> (?c isA ExternalThreadRodEnd)]""",
    r"""[PinRodEnd/30: (?c isA HydraulicCylinder) (?c hasRodEndType 'P') -> (?c isA PinRodEnd)]""",
]

PERFORMANCE_RULES = [
    r"""[HighPressureApplication/40:
        (?c isA HeavyDutyCylinder) (?c hasBore ?b) greaterThan(?b, 99)
        -> (?c isA HighPressureCylinder)]""",
    r"""[HighSpeedApplication/40:
        (?c isA CompactCylinder) (?c hasStroke ?s) lessThan(?s, 300)
        -> (?c isA HighSpeedCylinder)]""",
    r"""[PrecisionApplication/40:
        (?c isA StandardCylinder) (?c hasBore ?b) greaterThan(?b, 49) lessThan(?b, 90)
        -> (?c isA PrecisionCylinder)]""",
]

ADVANCED_RULES = [
    r"""[ComplexConfiguration/50:
        (?c isA LargeBoreCylinder) (?c isA LongStrokeCylinder) (?c isA HeavyDutyCylinder)
        -> (?c isA ComplexConfigurationCylinder)]""",
    r"""[RedundantSealingRequirement/50:
        (?c isA HighPressureCylinder)
        -> (?c requiresRedundantSealing true)]""",
    r"""[EnhancedBushingRequirement/50:
        (?c isA LongStrokeCylinder) (?c isA HeavyDutyCylinder)
        -> (?c requiresEnhancedBushing true)]""",
]

COMPATIBILITY_RULES = [
    r"""[SeriesCompatibility/60:
        (?c isA HydraulicCylinder) (?c hasSeries ?series)
        (?p isA ComponentItem) (?p hasItemCode ?code)
        regex(?code, concat('^2[0-9]{3}', ?series))
        -> (?p compatibleWith ?c)]""",
    r"""[MicroBoreCompatibility/60:
        (?c isA MicroBoreCylinder) (?p isA ComponentItem) (?p hasItemCode ?code)
        regex(?code, '^2[0-9]{5}[1-2]([^0-9]|$)')
        -> (?p compatibleWith ?c)]""",
    r"""[SmallBoreCompatibility/60:
        (?c isA SmallBoreCylinder) (?p isA ComponentItem) (?p hasItemCode ?code)
        regex(?code, '^2[0-9]{5}[3-4]([^0-9]|$)')
        -> (?p compatibleWith ?c)]""",
    r"""[MediumBoreCompatibility/60:
        (?c isA MediumBoreCylinder) (?p isA ComponentItem) (?p hasItemCode ?code)
        regex(?code, '^2[0-9]{5}[5-9]([^0-9]|$)')
        -> (?p compatibleWith ?c)]""",
    r"""[LargeBoreCompatibility/60:
        (?c isA LargeBoreCylinder) (?p isA ComponentItem) (?p hasItemCode ?code)
        regex(?code, '^2[0-9]{5}1[0-4]([^0-9]|$)')
        -> (?p compatibleWith ?c)]""",
    r"""[ExtraLargeBoreCompatibility/60:
        (?c isA ExtraLargeBoreCylinder) (?p isA ComponentItem) (?p hasItemCode ?code)
        regex(?code, '^2[0-9]{5}(1[5-9]|[2-9][0-9])([^0-9]|$)')
        -> (?p compatibleWith ?c)]""",
    r"""[InstallationCompatibility/60:
        (?c isA HydraulicCylinder) (?c hasInstallationType ?inst)
        (?p isA Mounting) (?p hasItemCode ?code)
        regex(?code, concat('^24[0-9]+', ?inst, '$'))
        -> (?p compatibleWith ?c)]""",
]

RECOMMENDATION_RULES = [
    r"""[StandardSeriesRecommendation/70:
        (?c isA StandardCylinder) (?p isA ComponentItem) (?p hasItemName ?n)
        regex(?n, '[Ss]tandard|S10')
        -> (?p recommendedFor ?c)]""",
    r"""[HeavyDutySeriesRecommendation/70:
        (?c isA HeavyDutyCylinder) (?p isA ComponentItem) (?p hasItemName ?n)
        regex(?n, '[Hh]eavy.*[Dd]uty|HD|S11')
        -> (?p recommendedFor ?c)]""",
    r"""[HighQualitySealRequirement/70:
        (?c isA HighPressureCylinder) (?p isA SealingComponent) (?p hasItemName ?n)
        regex(?n, '[Hh]igh.*[Pp]ressure|HP|[Vv]iton')
        -> (?p recommendedFor ?c)]""",
    r"""[HighTemperatureCompatibility/70:
        (?c isA HydraulicCylinder) (?c hasOperatingTemperature ?t) greaterThan(?t, 80)
        (?p isA SealingComponent) (?p hasMaterial ?m)
        regex(?m, '[Vv]iton|PTFE|[Ff]luor')
        -> (?p recommendedFor ?c)]""",
    r"""[LowTemperatureCompatibility/70:
        (?c isA HydraulicCylinder) (?c hasOperatingTemperature ?t) lessThan(?t, -20)
        (?p isA SealingComponent) (?p hasMaterial ?m)
        regex(?m, '[Ss]ilicone|[Ll]ow.*[Tt]emp')
        -> (?p recommendedFor ?c)]""",
]

OPTIMIZATION_RULES = [
    r"""[OptimalDesign/80:
        (?c isA HydraulicCylinder) (?c hasRodEndType 'Y') (?c hasBore ?b) (?c hasStroke ?s)
        greaterThan(?b, 79) lessThan(?b, 130) greaterThan(?s, 99) lessThan(?s, 600)
        -> (?c isA OptimalDesignCylinder)]""",
    r"""[HighSpeedOptimization/80:
        (?c isA HighSpeedCylinder) (?p isA Bushing) (?p hasMaterial ?m)
        regex(?m, '[Bb]ronze|[Ss]elf.*[Ll]ubr')
        -> (?p recommendedFor ?c)]""",
]

DEFAULT_RULE_TEXTS: list[str] = (
    IDENTIFICATION_RULES
    + COMPONENT_CATEGORY_RULES
    + BORE_TIER_RULES
    + STROKE_TIER_RULES
    + SERIES_RULES
    + ROD_END_RULES
    + PERFORMANCE_RULES
    + ADVANCED_RULES
    + COMPATIBILITY_RULES
    + RECOMMENDATION_RULES
    + OPTIMIZATION_RULES
)


def default_rules() -> list[Rule]:
    return compile_rules(DEFAULT_RULE_TEXTS)
