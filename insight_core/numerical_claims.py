"""
Numerical claim extraction and grounding checks for AI evaluation text.

This module provides:
1. Regex-based extraction of currency, percentage and count claims (no LLM)
2. A NumericalClaim data model with raw text, scale and normalized value
3. Deterministic comparison of claims against a grounding snapshot

Design principle: the LLM writes the prose. Python checks the numbers.
"""

from __future__ import annotations
import re
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import List, Dict, Optional, Iterator, Mapping, Any


# ---------------------------------------------------------------------------
# Data Models
# ---------------------------------------------------------------------------

class ClaimKind(str, Enum):
    CURRENCY = "currency"
    PERCENTAGE = "percentage"
    COUNT = "count"


class ScaleFactor(str, Enum):
    UNIT = "unit"
    THOUSAND = "thousand"
    MILLION = "million"
    BILLION = "billion"
    TRILLION = "trillion"


SCALE_VALUES = {
    ScaleFactor.UNIT: 1,
    ScaleFactor.THOUSAND: 1_000,
    ScaleFactor.MILLION: 1_000_000,
    ScaleFactor.BILLION: 1_000_000_000,
    ScaleFactor.TRILLION: 1_000_000_000_000,
}


class ClaimVerdict(str, Enum):
    CONSISTENT = "consistent"
    CONTRADICTED = "contradicted"
    UNVERIFIABLE = "unverifiable"


@dataclass
class NumericalClaim:
    """A single quantitative assertion found in generated text."""
    field: str                             # Source field name
    raw_text: str                          # Original matched span
    value: float                           # Parsed number before scaling
    kind: ClaimKind
    scale: ScaleFactor = ScaleFactor.UNIT
    normalized_value: float = 0.0          # value * scale
    position: int = 0                      # Character offset within the field text
    context_sentence: str = ""

    def __post_init__(self):
        # Percentages are never scaled by million/billion
        if self.kind == ClaimKind.PERCENTAGE:
            self.normalized_value = self.value
        else:
            self.normalized_value = self.value * SCALE_VALUES.get(self.scale, 1)

    def to_dict(self) -> Dict:
        d = asdict(self)
        d["kind"] = self.kind.value
        d["scale"] = self.scale.value
        return d


@dataclass
class ClaimCheck:
    """Outcome of checking one claim against the grounding snapshot."""
    claim: NumericalClaim
    verdict: ClaimVerdict
    grounding_field: Optional[str] = None
    grounding_value: Optional[float] = None
    relative_diff: Optional[float] = None

    @property
    def contradicted(self) -> bool:
        return self.verdict == ClaimVerdict.CONTRADICTED

    def to_dict(self) -> Dict:
        return {
            "claim": self.claim.to_dict(),
            "verdict": self.verdict.value,
            "grounding_field": self.grounding_field,
            "grounding_value": self.grounding_value,
            "relative_diff": self.relative_diff,
        }


@dataclass
class ClaimVerificationResult:
    total_claims: int = 0
    grounded_claims: int = 0
    unverifiable_claims: int = 0
    contradicted_claims: int = 0
    details: List[ClaimCheck] = field(default_factory=list)

    @property
    def grounding_rate(self) -> float:
        if self.total_claims == 0:
            return 0.0
        return round(self.grounded_claims / self.total_claims, 3)

    @property
    def contradictions(self) -> List[ClaimCheck]:
        return [d for d in self.details if d.contradicted]

    def to_dict(self) -> Dict:
        return {
            "total_claims": self.total_claims,
            "grounded_claims": self.grounded_claims,
            "unverifiable_claims": self.unverifiable_claims,
            "contradicted_claims": self.contradicted_claims,
            "grounding_rate": self.grounding_rate,
            "contradictions": [c.to_dict() for c in self.contradictions],
            "details": [d.to_dict() for d in self.details],
        }


# ---------------------------------------------------------------------------
# Regex-Based Claim Extraction
# ---------------------------------------------------------------------------

_NUMBER = r'\d{1,3}(?:,\d{3})+(?:\.\d+)?|\d+(?:\.\d+)?'

# ASCII hyphen or unicode minus, glued to the digits or the "$"
_SIGN = '[-−]'

_COUNT_NOUNS = (
    r'competitors|rivals|protocols|projects|products|users|customers|'
    r'holders|wallets|teams|chains|integrations|partners'
)

# Matches: $45 billion, $8.0B, -$2M, $-2M | 23%, -15%, 18 percent | 15 competitors
# A dash glued to a preceding word or digit ("10-15%", "pre-$5") is a range
# or hyphen, not a sign.
_CLAIM_PATTERN = re.compile(
    r'(?:(?<![\w.])(?P<cur_sign>' + _SIGN + r'))?\$\s*(?P<cur_sign_after>' + _SIGN + r')?'
    r'(?P<cur_number>' + _NUMBER + r')'
    r'(?:\s*(?P<scale>thousand|million|billion|trillion|bn|mm|mn|tn|[kmbt])\b)?'
    r'|(?<![\w.])(?P<pct_sign>' + _SIGN + r')?(?P<pct_number>' + _NUMBER + r')\s*(?:%|percent\b)'
    r'|(?<![\w.$])(?P<count_sign>' + _SIGN + r')?(?P<count_number>' + _NUMBER + r')'
    r'\s+(?P<count_noun>' + _COUNT_NOUNS + r')\b',
    re.IGNORECASE,
)

_SCALE_SUFFIXES = {
    "k": ScaleFactor.THOUSAND, "thousand": ScaleFactor.THOUSAND,
    "m": ScaleFactor.MILLION, "mm": ScaleFactor.MILLION, "mn": ScaleFactor.MILLION, "million": ScaleFactor.MILLION,
    "b": ScaleFactor.BILLION, "bn": ScaleFactor.BILLION, "billion": ScaleFactor.BILLION,
    "t": ScaleFactor.TRILLION, "tn": ScaleFactor.TRILLION, "trillion": ScaleFactor.TRILLION,
}


def _parse_number(s: str) -> float:
    return float(s.replace(",", "").strip())


def _get_sentence(text: str, pos: int) -> str:
    """Extract the sentence containing position `pos`."""
    start = pos
    while start > 0 and text[start - 1] not in '!?\n' and not _is_sentence_stop(text, start - 1):
        start -= 1
    end = pos
    while end < len(text) and text[end] not in '!?\n' and not _is_sentence_stop(text, end):
        end += 1
    return text[start:end].strip()


def _is_sentence_stop(text: str, i: int) -> bool:
    # A period between two digits is a decimal point, not a sentence end
    if text[i] != ".":
        return False
    before = text[i - 1] if i > 0 else " "
    after = text[i + 1] if i + 1 < len(text) else " "
    return not (before.isdigit() and after.isdigit())


def _claims_in_text(field_name: str, text: str) -> Iterator[NumericalClaim]:
    for match in _CLAIM_PATTERN.finditer(text):
        if match.group("cur_number"):
            kind = ClaimKind.CURRENCY
            num_str = match.group("cur_number")
            sign = match.group("cur_sign") or match.group("cur_sign_after")
            scale = _SCALE_SUFFIXES.get((match.group("scale") or "").lower(), ScaleFactor.UNIT)
        elif match.group("pct_number"):
            kind = ClaimKind.PERCENTAGE
            num_str = match.group("pct_number")
            sign = match.group("pct_sign")
            scale = ScaleFactor.UNIT
        else:
            kind = ClaimKind.COUNT
            num_str = match.group("count_number")
            sign = match.group("count_sign")
            scale = ScaleFactor.UNIT

        try:
            value = _parse_number(num_str)
        except ValueError:
            continue
        if sign:
            value = -value

        start = match.start()
        yield NumericalClaim(
            field=field_name,
            raw_text=match.group(0).strip(),
            value=value,
            kind=kind,
            scale=scale,
            position=start,
            context_sentence=_get_sentence(text, start)[:300],
        )


class ClaimSequence:
    """Lazy, restartable view over the claims in a set of text fields.

    Each iteration re-scans the text, so the sequence can be consumed any
    number of times. len() materializes one pass.
    """

    def __init__(self, text_fields: Mapping[str, str]):
        # Snapshot the mapping so later caller edits don't change results
        self._fields = dict(text_fields)

    def __iter__(self) -> Iterator[NumericalClaim]:
        for name, text in self._fields.items():
            if not text:
                continue
            yield from _claims_in_text(name, text)

    def __len__(self) -> int:
        return sum(1 for _ in self)

    def __bool__(self) -> bool:
        return next(iter(self), None) is not None

    def to_list(self) -> List[NumericalClaim]:
        return list(self)


def extract_numerical_claims(text_fields: Mapping[str, str]) -> ClaimSequence:
    """Extract currency, percentage and count claims from each text field.

    Order is field order, then position within the field's text.
    """
    return ClaimSequence(text_fields)


# ---------------------------------------------------------------------------
# Grounding Comparison
# ---------------------------------------------------------------------------

DEFAULT_TOLERANCE = 0.5  # relative difference; wide enough to absorb rounding

_TVL_HINT = re.compile(r'\btvl\b|total\s+value\s+locked', re.IGNORECASE)
_COMPETITOR_HINT = re.compile(r'\bcompetitor|\brival', re.IGNORECASE)


def default_field_for_claim(claim: NumericalClaim) -> Optional[str]:
    """Kind-to-grounding-field mapping used when the caller supplies none."""
    if claim.kind == ClaimKind.CURRENCY:
        if _TVL_HINT.search(claim.context_sentence):
            return "tvl_usd"
        return "market_size_usd"
    if claim.kind == ClaimKind.PERCENTAGE:
        return "growth_rate_pct"
    if claim.kind == ClaimKind.COUNT and _COMPETITOR_HINT.search(claim.context_sentence):
        return "competitor_count"
    return None


def relative_difference(claimed: float, actual: float) -> Optional[float]:
    """|claimed - actual| / |actual|, or None when actual is zero."""
    if actual == 0:
        return None
    return abs(claimed - actual) / abs(actual)


def _grounding_number(grounding: Mapping[str, Any], key: Optional[str]) -> Optional[float]:
    if not key:
        return None
    raw = grounding.get(key)
    if raw is None or isinstance(raw, bool):
        return None
    try:
        return float(raw)
    except (TypeError, ValueError):
        return None


def verify_claims_against_grounding(
    claims,
    grounding: Optional[Mapping[str, Any]],
    tolerance: float = DEFAULT_TOLERANCE,
    field_map: Optional[Mapping[ClaimKind, str]] = None,
) -> ClaimVerificationResult:
    """Cross-check extracted claims against verified real-world figures.

    field_map overrides the kind -> grounding-field mapping. A claim with no
    usable grounding value is unverifiable, never contradicted.
    """
    grounding = grounding or {}
    result = ClaimVerificationResult()

    for claim in claims:
        result.total_claims += 1
        key = field_map.get(claim.kind) if field_map is not None else default_field_for_claim(claim)
        truth = _grounding_number(grounding, key)
        diff = relative_difference(claim.normalized_value, truth) if truth is not None else None

        if truth is None or diff is None:
            verdict = ClaimVerdict.UNVERIFIABLE
            result.unverifiable_claims += 1
        else:
            result.grounded_claims += 1
            if diff > tolerance:
                verdict = ClaimVerdict.CONTRADICTED
                result.contradicted_claims += 1
            else:
                verdict = ClaimVerdict.CONSISTENT

        result.details.append(ClaimCheck(
            claim=claim,
            verdict=verdict,
            grounding_field=key,
            grounding_value=truth,
            relative_diff=round(diff, 4) if diff is not None else None,
        ))

    return result
