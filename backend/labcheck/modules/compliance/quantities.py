"""Quantitative expressions in laboratory results and regulatory limits.

Parses strings such as ``< 10 UFC/g``, ``≤ 1,5 x 10^3``, ``10≤ x <102 (ufc/g)``
or ``Assente in 25 g`` into comparator, value, unit and presence markers.

Values are reasoned about as intervals: a result reported as ``< 10`` (below
the laboratory limit of quantification) is the range ``[0, 10)``, so it can be
compared with a limit range without pretending it equals 10.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Literal

Comparator = Literal["<", "<=", "=", ">=", ">"]
Presence = Literal["absent", "present"]

_SUPERSCRIPTS = str.maketrans("⁰¹²³⁴⁵⁶⁷⁸⁹⁻⁺", "0123456789-+")

_SUPERSCRIPT_EXP_RE = re.compile(r"(\d)\s*([⁻⁺]?[⁰¹²³⁴⁵⁶⁷⁸⁹]+)")

# CEIRSA exports lose superscripts: "<102" means "< 10^2"
_CEIRSA_POWER_RE = re.compile(r"(?<![\d.,^])10([1-9]\d*)\b")

_QUANTITY_RE = re.compile(
    r"(?P<cmp><=|>=|<|>|=)?\s*"
    r"(?P<mantissa>\d+(?:[.,]\d+)?)"
    r"(?:\s*[x*]\s*10\s*\^\s*(?P<sci>[-+]?\d+)"
    r"|\s*\^\s*(?P<pow>[-+]?\d+)"
    r"|[eE](?P<exp>[-+]?\d+))?"
)

_RANGE_RE = re.compile(
    r"(?P<low>\d+(?:[.,]\d+)?(?:\s*\^\s*\d+)?)\s*(?P<low_op><=|<)\s*[xX]\s*"
    r"(?P<high_op><=|<)\s*(?P<high>\d+(?:[.,]\d+)?(?:\s*\^\s*\d+)?)"
)

_PAREN_UNIT_RE = re.compile(r"\(([^)]*[A-Za-zµμ][^)]*)\)")
# "UFC/100 ml": a per-quantity denominator may be split by a space
_TRAILING_UNIT_RE = re.compile(
    r"^\s*(?P<unit>[A-Za-zµμ°%][^\s(),;/]*(?:/\s*\d*\s*[A-Za-zµμ][^\s(),;]*|/[^\s(),;]*)?)"
)

_ABSENT_MARKERS = (
    "non rilevato",
    "non presente",
    "not present",
    "non rilevata",
    "non rilevabile",
    "assente",
    "assenza",
    "not detected",
    "absent",
    "negativo",
    "negative",
)
_ABSENT_EXACT = {"nr", "n.r.", "n.r", "nd", "n.d."}
_PRESENT_MARKERS = (
    "rilevato",
    "rilevata",
    "presente",
    "presenza",
    "detected",
    "present",
    "positivo",
    "positive",
)
_PRESENT_EXACT = {"r", "p"}


# ---------------------------------------------------------------------------
# Intervals
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Interval:
    """A range of possible true values."""

    low: float
    high: float
    low_closed: bool = True
    high_closed: bool = True

    def within(self, other: Interval) -> bool:
        """True when every value of this interval also lies in ``other``."""
        if self.low < other.low:
            return False
        if self.low == other.low and self.low_closed and not other.low_closed:
            return False
        if self.high > other.high:
            return False
        if self.high == other.high and self.high_closed and not other.high_closed:
            return False
        return True

    def union(self, other: Interval) -> Interval | None:
        """Union of two touching or overlapping intervals, None if there is a gap."""
        first, second = sorted((self, other), key=lambda i: (i.low, not i.low_closed))
        if second.low > first.high:
            return None
        if second.low == first.high and not (first.high_closed or second.low_closed):
            return None
        if second.high > first.high or (second.high == first.high and second.high_closed):
            high, high_closed = second.high, second.high_closed
        else:
            high, high_closed = first.high, first.high_closed
        return Interval(first.low, high, first.low_closed, high_closed)

    @property
    def is_upper_bound(self) -> bool:
        """An "at most" range: unbounded below zero, finite above."""
        return self.low <= 0 and math.isfinite(self.high)


def _lower_floor(value: float) -> float:
    # Counts and concentrations are never negative
    return 0.0 if value > 0 else -math.inf


# ---------------------------------------------------------------------------
# Quantities
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Quantity:
    """A reported or limiting value: comparator, magnitude and unit."""

    comparator: Comparator
    value: float
    unit: str | None = None
    raw: str = ""

    @property
    def is_below_loq(self) -> bool:
        """Reported as "less than" the laboratory's quantification limit."""
        return self.comparator in ("<", "<=")

    def interval(self) -> Interval:
        if self.comparator == "<":
            return Interval(_lower_floor(self.value), self.value, True, False)
        if self.comparator == "<=":
            return Interval(_lower_floor(self.value), self.value, True, True)
        if self.comparator == ">":
            return Interval(self.value, math.inf, False, False)
        if self.comparator == ">=":
            return Interval(self.value, math.inf, True, False)
        return Interval(self.value, self.value, True, True)

    def describe(self) -> str:
        symbol = {"<": "<", "<=": "≤", "=": "", ">=": "≥", ">": ">"}[self.comparator]
        unit = f" {self.unit}" if self.unit else ""
        return f"{symbol} {format_number(self.value)}{unit}".strip()


@dataclass(frozen=True)
class Limit:
    """A regulatory limit: the range of compliant values and its unit."""

    raw: str
    interval: Interval | None = None
    unit: str | None = None
    presence: Presence | None = None

    def describe(self) -> str:
        return self.raw.strip()


def format_number(value: float) -> str:
    if math.isinf(value):
        return "∞"
    return f"{value:g}"


def normalize_expression(text: str, *, ceirsa_notation: bool = False) -> str:
    """Canonical comparator spelling, superscript exponents as ``^n``."""
    text = _SUPERSCRIPT_EXP_RE.sub(
        lambda m: f"{m.group(1)}^{m.group(2).translate(_SUPERSCRIPTS)}", text
    )
    text = (
        text.replace("≤", "<=")
        .replace("≥", ">=")
        .replace("=<", "<=")
        .replace("=>", ">=")
        .replace("×", "x")
        .replace("&lt;", "<")
        .replace("&gt;", ">")
    )
    if ceirsa_notation:
        text = _CEIRSA_POWER_RE.sub(r"10^\1", text)
    return text


def _to_float(mantissa: str) -> float:
    return float(mantissa.replace(",", "."))


def _number_value(text: str) -> float:
    """Value of ``12``, ``1,5``, ``10^2`` style tokens."""
    if "^" in text:
        base, exp = text.split("^", 1)
        return _to_float(base.strip()) ** int(exp.strip())
    return _to_float(text)


def _match_value(match: re.Match[str]) -> float:
    mantissa = _to_float(match.group("mantissa"))
    if match.group("sci") is not None:
        return mantissa * 10 ** int(match.group("sci"))
    if match.group("pow") is not None:
        return mantissa ** int(match.group("pow"))
    if match.group("exp") is not None:
        return mantissa * 10 ** int(match.group("exp"))
    return mantissa


def extract_unit(text: str, after: int | None = None) -> str | None:
    """Unit in parentheses anywhere, else the token following position ``after``."""
    paren = _PAREN_UNIT_RE.search(text)
    if paren:
        return paren.group(1).strip()
    if after is None:
        return None
    trailing = _TRAILING_UNIT_RE.match(text[after:])
    if trailing:
        return trailing.group("unit").strip()
    return None


def parse_quantity(text: str | None, *, ceirsa_notation: bool = False) -> Quantity | None:
    """Parse the first quantitative expression in ``text``."""
    if not text or not text.strip():
        return None
    normalized = normalize_expression(text.strip(), ceirsa_notation=ceirsa_notation)
    match = _QUANTITY_RE.search(normalized)
    if match is None:
        return None
    comparator: Comparator = match.group("cmp") or "="  # type: ignore[assignment]
    return Quantity(
        comparator=comparator,
        value=_match_value(match),
        unit=extract_unit(normalized, match.end()),
        raw=text.strip(),
    )


def parse_presence(text: str | None) -> Presence | None:
    """Presence/absence statements (Italian and English report wording)."""
    if not text:
        return None
    lowered = text.strip().lower()
    if lowered in _ABSENT_EXACT:
        return "absent"
    if lowered in _PRESENT_EXACT:
        return "present"
    if any(marker in lowered for marker in _ABSENT_MARKERS):
        return "absent"
    if any(marker in lowered for marker in _PRESENT_MARKERS):
        return "present"
    return None


def parse_limit(text: str | None, *, ceirsa_notation: bool = False) -> Limit | None:
    """Parse a regulatory limit: presence rule, range ``a ≤ x < b`` or bound."""
    if not text or not text.strip():
        return None
    raw = text.strip()
    normalized = normalize_expression(raw, ceirsa_notation=ceirsa_notation)
    unit = extract_unit(normalized)
    presence = parse_presence(raw)

    range_match = _RANGE_RE.search(normalized)
    if range_match:
        interval = Interval(
            _number_value(range_match.group("low")),
            _number_value(range_match.group("high")),
            low_closed=range_match.group("low_op") == "<=",
            high_closed=range_match.group("high_op") == "<=",
        )
        return Limit(raw=raw, interval=interval, unit=unit, presence=presence)

    if presence is not None:
        return Limit(raw=raw, unit=unit, presence=presence)

    quantity = parse_quantity(raw, ceirsa_notation=ceirsa_notation)
    if quantity is None:
        return Limit(raw=raw, unit=unit)
    return Limit(raw=raw, interval=quantity.interval(), unit=unit or quantity.unit)


# ---------------------------------------------------------------------------
# Units
# ---------------------------------------------------------------------------


def normalize_unit(unit: str | None) -> str | None:
    """Comparable spelling of a unit: ``CFU / g`` and ``ufc/g`` are equal."""
    if not unit:
        return None
    normalized = unit.lower().translate(_SUPERSCRIPTS).replace("^", "")
    normalized = re.sub(r"[\s.]", "", normalized)
    normalized = normalized.replace("cfu", "ufc").replace("µ", "u").replace("μ", "u")
    if normalized in {"", "_", "-", "/", "n/a"}:
        return None
    return normalized


def units_comparable(first: str | None, second: str | None) -> bool:
    """Units are comparable unless both are known and differ."""
    left, right = normalize_unit(first), normalize_unit(second)
    return left is None or right is None or left == right
