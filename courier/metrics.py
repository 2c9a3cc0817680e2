"""Response-time statistics for run reports and the console summary.

Exact percentiles for small samples; T-Digest streaming percentiles above
EXACT_SAMPLE_LIMIT so data-driven runs with many iterations stay bounded.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from typing import TYPE_CHECKING

from tdigest import TDigest

from .logging_config import get_logger

if TYPE_CHECKING:
    from collections.abc import Iterable

    from .models import RunResult

logger = get_logger("metrics")

# Above this many samples percentiles come from a T-Digest
EXACT_SAMPLE_LIMIT = 1000


@dataclass(slots=True, frozen=True)
class TimingSummary:
    count: int = 0
    min_ms: float = 0.0
    max_ms: float = 0.0
    avg_ms: float = 0.0
    p50_ms: float = 0.0
    p95_ms: float = 0.0
    p99_ms: float = 0.0

    def to_dict(self) -> dict[str, float]:
        return {
            "count": self.count,
            "minMs": round(self.min_ms, 2),
            "maxMs": round(self.max_ms, 2),
            "avgMs": round(self.avg_ms, 2),
            "p50Ms": round(self.p50_ms, 2),
            "p95Ms": round(self.p95_ms, 2),
            "p99Ms": round(self.p99_ms, 2),
        }


def _percentile_from_digest(digest: TDigest, p: float) -> float:
    """Get percentile from T-Digest. Returns 0.0 if empty."""
    try:
        return digest.percentile(p) or 0.0
    except (ValueError, IndexError):
        return 0.0


def _percentile(sorted_times: list[float], p: float) -> float:
    """Linear-interpolated percentile of an already sorted list."""
    if not sorted_times:
        return 0.0
    k = (len(sorted_times) - 1) * (p / 100.0)
    f = int(k)
    c = f + 1 if f + 1 < len(sorted_times) else f
    return sorted_times[f] + (k - f) * (sorted_times[c] - sorted_times[f])


def timing_summary(times: Iterable[float]) -> TimingSummary:
    values = list(times)
    if not values:
        return TimingSummary()
    if len(values) <= EXACT_SAMPLE_LIMIT:
        ordered = sorted(values)
        p50, p95, p99 = (_percentile(ordered, p) for p in (50, 95, 99))
    else:
        digest = TDigest()
        digest.batch_update(values)
        p50, p95, p99 = (_percentile_from_digest(digest, p) for p in (50, 95, 99))
    return TimingSummary(
        count=len(values),
        min_ms=min(values),
        max_ms=max(values),
        avg_ms=sum(values) / len(values),
        p50_ms=p50,
        p95_ms=p95,
        p99_ms=p99,
    )


def run_timing_summary(result: RunResult) -> TimingSummary:
    """Timing over items whose request reached the server."""
    return timing_summary(i.response_time_ms for i in result.items if i.error is None)


def status_distribution(result: RunResult) -> dict[str, int]:
    """Count of items per status code; transport failures count under "Error"."""
    counts = Counter(str(i.status_code) if i.error is None else "Error" for i in result.items)
    return dict(sorted(counts.items()))
