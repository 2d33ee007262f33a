"""
Creator Score v1: deterministic scoring from matured prediction history.

Components (all 0-1, higher is better):
- accuracy     1 - Brier score
- consistency  1 / (1 + std of winsorized returns)
- volume       log-scaled 30d notional
- recency      exponentially decayed daily accuracy

total = 0.45*accuracy + 0.25*consistency + 0.20*volume + 0.10*recency
"""

from __future__ import annotations
import math
from collections import defaultdict
from dataclasses import dataclass, asdict
from typing import List, Dict, Optional, Sequence

from insight_core.winsorize import (
    PairReturn, winsorize, winsorized_std, get_alpha_for_sample_size,
)

W_ACC = 0.45
W_CONS = 0.25
W_VOL = 0.20
W_REC = 0.10
HALF_LIFE_DAYS = 14
VOL_NORM = 50_000.0          # USDC
PROVISIONAL_THRESHOLD = 50   # matured insights needed for a stable score
TREND_FLAT_THRESHOLD = 0.01  # 1 percentage point


@dataclass
class ScoreBreakdown:
    accuracy: float
    consistency: float
    volume_score: float
    recency_score: float
    total_score: float
    is_provisional: bool
    matured_n: int

    def to_dict(self) -> Dict:
        return asdict(self)


def clamp01(x: float) -> float:
    return max(0.0, min(1.0, x))


def accuracy_from_brier(brier: float) -> float:
    return clamp01(1 - brier)


def consistency_from_std(std: float) -> float:
    return clamp01(1 / (1 + std))


def volume_score_from_notional(notional: float, norm: float = VOL_NORM) -> float:
    return clamp01(math.log1p(max(0.0, notional)) / math.log1p(norm))


def recency_weights(days: Sequence[float], half_life: float = HALF_LIFE_DAYS) -> List[float]:
    """Exponential-decay weights for `days` ago, normalized to sum to 1."""
    k = math.log(2) / half_life
    weights = [math.exp(-k * d) for d in days]
    total = sum(weights)
    return [w / total for w in weights] if total > 0 else weights


def weighted_average(values: Sequence[float], weights: Sequence[float]) -> float:
    if len(values) != len(weights) or len(values) == 0:
        return 0.0
    total_weight = sum(weights)
    if total_weight <= 0:
        return 0.0
    return sum(v * w for v, w in zip(values, weights)) / total_weight


def calculate_brier_score(predictions: Sequence[float], outcomes: Sequence[int]) -> float:
    """Mean squared error of probabilities vs 0/1 outcomes. Worst case (1) on bad input."""
    if len(predictions) != len(outcomes) or len(predictions) == 0:
        return 1.0
    total = 0.0
    for p, o in zip(predictions, outcomes):
        total += (clamp01(p) - (1 if o == 1 else 0)) ** 2
    return total / len(predictions)


def calculate_returns(prices: Sequence[float], side: str) -> List[float]:
    """Period returns from a price path. SELL returns are inverted; non-positive prices skipped."""
    if len(prices) < 2:
        return []
    returns: List[float] = []
    for prev, curr in zip(prices, prices[1:]):
        if prev <= 0 or curr <= 0:
            continue
        if side.upper() == "BUY":
            returns.append(curr / prev - 1)
        else:
            returns.append(prev / curr - 1)
    return returns


def returns_std_by_pair(returns: Sequence[PairReturn]) -> Optional[float]:
    """Winsorize each pair with its own size-based alpha, then take the pooled std.

    Returns None when there are no returns at all.
    """
    by_pair: Dict[str, List[float]] = defaultdict(list)
    for r in returns:
        by_pair[r.pair].append(r.ret)

    pooled: List[float] = []
    for values in by_pair.values():
        pooled.extend(winsorize(values, get_alpha_for_sample_size(len(values))))

    if not pooled:
        return None
    return winsorized_std(pooled, 0)


def calculate_total_score(accuracy: float, consistency: float, volume_score: float, recency_score: float) -> float:
    return (
        W_ACC * clamp01(accuracy)
        + W_CONS * clamp01(consistency)
        + W_VOL * clamp01(volume_score)
        + W_REC * clamp01(recency_score)
    )


def is_provisional(matured_n: int) -> bool:
    return matured_n < PROVISIONAL_THRESHOLD


def _recency_score(series: Optional[Sequence[float]]) -> float:
    if not series:
        return 0.0
    weights = recency_weights(list(range(len(series))))
    return weighted_average(series, weights)


def calculate_creator_score(
    matured_n: int,
    brier_mean: float,
    ret_std_30d: Optional[float],
    notional_30d: float,
    daily_accuracy: Optional[Sequence[float]] = None,
    daily_scores: Optional[Sequence[float]] = None,
    vol_norm: float = VOL_NORM,
) -> ScoreBreakdown:
    """Full score breakdown. Daily series are ordered most recent first.

    daily_scores is only used for recency when daily_accuracy is missing.
    A missing return std (no trades) yields zero consistency.
    """
    accuracy = accuracy_from_brier(brier_mean)
    consistency = consistency_from_std(ret_std_30d) if ret_std_30d is not None else 0.0
    volume = volume_score_from_notional(notional_30d, vol_norm)
    recency = _recency_score(daily_accuracy) if daily_accuracy else _recency_score(daily_scores)

    return ScoreBreakdown(
        accuracy=accuracy,
        consistency=consistency,
        volume_score=volume,
        recency_score=recency,
        total_score=calculate_total_score(accuracy, consistency, volume, recency),
        is_provisional=is_provisional(matured_n),
        matured_n=matured_n,
    )


def calculate_trend(current_score: float, previous_score: float) -> str:
    """'up' / 'down' / 'flat' comparing two 7-day scores."""
    diff = current_score - previous_score
    if abs(diff) < TREND_FLAT_THRESHOLD:
        return "flat"
    return "up" if diff > 0 else "down"


def format_score(score: float, precision: int = 3) -> str:
    return f"{score * 100:.{precision}f}%"
