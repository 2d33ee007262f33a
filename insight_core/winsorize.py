"""
Winsorization helpers for creator-score statistics.

Extreme returns are clipped to the nearest retained value instead of being
dropped, so sample sizes stay intact while outliers stop dominating the
mean / standard deviation used in creator scoring.

Policy is fail-open: empty samples or an alpha outside (0, 0.5) return the
input unchanged. Callers that need strict trimming must validate alpha.
"""

from __future__ import annotations
import math
from collections import defaultdict
from dataclasses import dataclass, asdict
from typing import List, Dict, Optional, Sequence

SMALL_SAMPLE_SIZE = 20
ALPHA_SMALL = 0.10
ALPHA_DEFAULT = 0.05


@dataclass
class PairReturn:
    """A single return observation tagged with its trading pair."""
    pair: str
    ret: float

    def to_dict(self) -> Dict:
        return asdict(self)


def winsorize(sample: Sequence[float], alpha: float = ALPHA_DEFAULT) -> List[float]:
    """Clamp each value into [sorted[k], sorted[n-k-1]] where k = floor(n * alpha).

    Output has the same length and order as the input.
    """
    values = list(sample)
    n = len(values)
    if n == 0 or not (0 < alpha < 0.5):
        return values

    trim_count = math.floor(n * alpha)
    if trim_count == 0:
        return values

    ordered = sorted(values)
    lower = ordered[trim_count]
    upper = ordered[n - trim_count - 1]
    return [min(max(v, lower), upper) for v in values]


def winsorize_by_pair(returns: Sequence[PairReturn], alpha: Optional[float] = None) -> List[PairReturn]:
    """Winsorize returns independently per trading pair.

    If alpha is None each pair gets the size-based alpha from
    get_alpha_for_sample_size(). Output is grouped by pair in order of
    first appearance.
    """
    by_pair: Dict[str, List[float]] = defaultdict(list)
    for r in returns:
        by_pair[r.pair].append(r.ret)

    result: List[PairReturn] = []
    for pair, values in by_pair.items():
        a = alpha if alpha is not None else get_alpha_for_sample_size(len(values))
        result.extend(PairReturn(pair=pair, ret=v) for v in winsorize(values, a))
    return result


def get_alpha_for_sample_size(n: int) -> float:
    """Small samples are more outlier-sensitive, so they get the wider trim."""
    return ALPHA_SMALL if n < SMALL_SAMPLE_SIZE else ALPHA_DEFAULT


def _mean(values: List[float]) -> float:
    return sum(values) / len(values)


def winsorized_mean(sample: Sequence[float], alpha: float = ALPHA_DEFAULT) -> float:
    if len(sample) == 0:
        return 0.0
    return _mean(winsorize(sample, alpha))


def winsorized_std(sample: Sequence[float], alpha: float = ALPHA_DEFAULT) -> float:
    """Population standard deviation of the winsorized sample."""
    if len(sample) == 0:
        return 0.0
    clipped = winsorize(sample, alpha)
    # alpha=0 is a no-op: the data is already clipped once
    mean = winsorized_mean(clipped, 0)
    variance = sum((v - mean) ** 2 for v in clipped) / len(clipped)
    return math.sqrt(variance)
