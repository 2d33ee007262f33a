"""
Grounding snapshots: freshness tracking and caching for verified market data.

Market / on-chain figures are fetched by the caller. This module only wraps
them with provenance (source, fetch time, TTL), scores how stale they are,
and flattens them into the snapshot the claim checker consumes.
"""

from __future__ import annotations
import datetime
import threading
from dataclasses import dataclass, field
from typing import List, Dict, Any, Optional, Tuple, Sequence, Callable

NO_SOURCE_FRESHNESS = 0.3
MIN_SOURCE_FRESHNESS = 0.3


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


@dataclass
class GroundingEnvelope:
    data: Dict[str, Any]
    source: str
    fetched_at: datetime.datetime
    ttl_hours: float
    staleness_hours: float
    is_stale: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "data": self.data,
            "source": self.source,
            "fetched_at": self.fetched_at.isoformat(),
            "ttl_hours": self.ttl_hours,
            "staleness_hours": round(self.staleness_hours, 3),
            "is_stale": self.is_stale,
        }


def wrap_grounding(
    data: Dict[str, Any],
    source: str,
    fetched_at: datetime.datetime,
    ttl_hours: float,
    now: Optional[datetime.datetime] = None,
) -> GroundingEnvelope:
    """Attach provenance to a payload. Naive datetimes are treated as UTC."""
    if fetched_at.tzinfo is None:
        fetched_at = fetched_at.replace(tzinfo=datetime.timezone.utc)
    now = now or _utcnow()
    staleness = max(0.0, (now - fetched_at).total_seconds() / 3600)
    return GroundingEnvelope(
        data=dict(data),
        source=source,
        fetched_at=fetched_at,
        ttl_hours=ttl_hours,
        staleness_hours=staleness,
        is_stale=staleness > ttl_hours,
    )


@dataclass
class SourceFreshness:
    source: str
    staleness_hours: float
    ttl_hours: float
    freshness_score: float


@dataclass
class DataFreshness:
    overall_freshness: float
    stale_source_count: int
    total_source_count: int
    worst_source: Optional[SourceFreshness] = None
    details: List[SourceFreshness] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "overall_freshness": self.overall_freshness,
            "stale_source_count": self.stale_source_count,
            "total_source_count": self.total_source_count,
            "worst_source": (
                {"source": self.worst_source.source, "staleness_hours": self.worst_source.staleness_hours}
                if self.worst_source else None
            ),
            "details": [d.__dict__ for d in self.details],
        }


def compute_data_freshness(envelopes: Sequence[GroundingEnvelope]) -> DataFreshness:
    """Blend average and worst-source freshness (60/40). No sources -> low baseline."""
    if not envelopes:
        return DataFreshness(
            overall_freshness=NO_SOURCE_FRESHNESS,
            stale_source_count=0,
            total_source_count=0,
        )

    details = []
    for env in envelopes:
        ttl = env.ttl_hours if env.ttl_hours > 0 else 1
        ratio = env.staleness_hours / ttl
        details.append(SourceFreshness(
            source=env.source,
            staleness_hours=env.staleness_hours,
            ttl_hours=ttl,
            freshness_score=max(MIN_SOURCE_FRESHNESS, 1 - 0.5 * ratio),
        ))

    worst = min(details, key=lambda d: d.freshness_score)
    avg = sum(d.freshness_score for d in details) / len(details)
    return DataFreshness(
        overall_freshness=round(0.6 * avg + 0.4 * worst.freshness_score, 3),
        stale_source_count=sum(1 for env in envelopes if env.is_stale),
        total_source_count=len(envelopes),
        worst_source=worst,
        details=details,
    )


def grounding_staleness_note(freshness: DataFreshness) -> str:
    """Prompt note listing stale sources; empty when every source is fresh."""
    if freshness.stale_source_count == 0:
        return ""
    lines = [
        f"- {d.source}: last refreshed {round(d.staleness_hours)}h ago "
        f"(expected freshness: {d.ttl_hours:g}h)"
        for d in freshness.details
        if d.staleness_hours > d.ttl_hours
    ]
    return (
        "\nDATA FRESHNESS WARNING:\n"
        f"{freshness.stale_source_count} of {freshness.total_source_count} data sources "
        "are beyond their expected freshness window.\n"
        + "\n".join(lines)
        + "\nTreat specific figures from stale sources as approximate. "
        "Do not present stale data with false precision.\n"
    )


def merge_grounding(envelopes: Sequence[GroundingEnvelope]) -> Dict[str, Any]:
    """Flatten envelope payloads into one snapshot. Fresher envelopes win on key clashes."""
    snapshot: Dict[str, Any] = {}
    for env in sorted(envelopes, key=lambda e: e.staleness_hours, reverse=True):
        snapshot.update(env.data)
    return snapshot


def envelope_expires_at(envelopes: Sequence[GroundingEnvelope]) -> Optional[datetime.datetime]:
    """When the first envelope in the set goes stale."""
    if not envelopes:
        return None
    return min(env.fetched_at + datetime.timedelta(hours=env.ttl_hours) for env in envelopes)


class GroundingCache:
    """Caller-owned cache of grounding envelope sets, keyed by subject.

    An entry expires when its first envelope goes stale, or after
    max_age_seconds when one is given (0 means do not keep). Pass an
    instance to the verifier via VerificationOptions.grounding_cache;
    there is no shared module-level cache.
    """

    def __init__(
        self,
        max_age_seconds: Optional[float] = None,
        clock: Callable[[], datetime.datetime] = _utcnow,
    ):
        self._entries: Dict[str, Tuple[List[GroundingEnvelope], datetime.datetime]] = {}
        self._lock = threading.Lock()
        self._max_age_seconds = max_age_seconds
        self._clock = clock
        self.hits = 0
        self.misses = 0

    def _expiry(self, envelopes: List[GroundingEnvelope], max_age_seconds: Optional[float]) -> datetime.datetime:
        age = max_age_seconds if max_age_seconds is not None else self._max_age_seconds
        if age is not None:
            return self._clock() + datetime.timedelta(seconds=age)
        return envelope_expires_at(envelopes) or self._clock()

    def put(
        self,
        key: str,
        envelopes: Sequence[GroundingEnvelope],
        max_age_seconds: Optional[float] = None,
    ) -> None:
        items = list(envelopes)
        with self._lock:
            self._entries[key] = (items, self._expiry(items, max_age_seconds))

    def lookup(self, key: str) -> Optional[List[GroundingEnvelope]]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            envelopes, expires_at = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return None
            return list(envelopes)

    def get_or_fetch(
        self,
        key: str,
        fetch: Callable[[], Sequence[GroundingEnvelope]],
        max_age_seconds: Optional[float] = None,
    ) -> List[GroundingEnvelope]:
        """Cached envelopes for key, or fetch() and cache a non-empty result."""
        cached = self.lookup(key)
        if cached is not None:
            self.hits += 1
            return cached
        self.misses += 1
        fetched = list(fetch() or [])
        if fetched:
            self.put(key, fetched, max_age_seconds)
        return fetched

    def invalidate(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
