import math
from collections import Counter
from datetime import datetime
from typing import NamedTuple, Optional, Dict, Sequence, Tuple, Union

from config import PERCENTILES, RunConfig


class Success(NamedTuple):
    """A completed HTTP exchange; 4xx/5xx still count as Success."""
    status_code: int
    response_size: int

    @property
    def ok(self) -> bool:
        return True


class Failure(NamedTuple):
    kind: "ErrorKind"  # noqa: F821 (http_client.ErrorKind)
    message: str

    @property
    def ok(self) -> bool:
        return False


Result = Union[Success, Failure]


class RequestOutcome(NamedTuple):
    index: int
    is_warmup: bool
    started_at: datetime
    waited_for: float  # seconds slept before sending, excluded from latency
    latency: float     # seconds spent strictly inside the transport call
    result: Result


class RunResult(NamedTuple):
    config: RunConfig
    outcomes: Tuple[RequestOutcome, ...]  # ordered by dispatch index
    started_at: datetime
    elapsed_s: float
    peak_in_flight: int = 0
    # From the first non-warmup dispatch to the end of the run
    measured_elapsed_s: Optional[float] = None

    @property
    def measured_window_s(self) -> float:
        return self.elapsed_s if self.measured_elapsed_s is None else self.measured_elapsed_s

    @property
    def measured(self) -> Tuple[RequestOutcome, ...]:
        return tuple(o for o in self.outcomes if not o.is_warmup)

    @property
    def warmup(self) -> Tuple[RequestOutcome, ...]:
        return tuple(o for o in self.outcomes if o.is_warmup)


class Summary(NamedTuple):
    total: int
    warmup: int
    measured: int
    successes: int
    failures: int
    elapsed_s: float
    throughput_rps: float
    status_counts: Dict[int, int]
    failure_counts: Dict[str, int]
    # Latency statistics over measured successes; None when there are none
    min_s: Optional[float] = None
    min_status: Optional[int] = None
    max_s: Optional[float] = None
    max_status: Optional[int] = None
    first_s: Optional[float] = None
    first_status: Optional[int] = None
    avg_s: Optional[float] = None
    stddev_s: Optional[float] = None
    percentiles_s: Optional[Dict[int, float]] = None
    sum_s: Optional[float] = None

    @property
    def has_latencies(self) -> bool:
        return self.min_s is not None


def percentile(sorted_values: Sequence[float], pct: float) -> float:
    """
    Linear interpolation between the two samples around rank n * pct / 100.
    Expects the values sorted ascending.
    """
    if not sorted_values:
        raise ValueError("percentile of an empty sequence")
    rank = len(sorted_values) * (pct / 100.0)
    lower = int(rank) - 1
    if lower < 0:
        return sorted_values[0]
    if lower + 1 >= len(sorted_values):
        return sorted_values[lower]
    frac_upper = rank - int(rank)
    return sorted_values[lower] * (1.0 - frac_upper) + sorted_values[lower + 1] * frac_upper


def summarize(run: RunResult) -> Summary:
    measured = run.measured
    ok = [o for o in measured if o.result.ok]
    failed = [o for o in measured if not o.result.ok]

    status_counts = Counter(o.result.status_code for o in ok)
    failure_counts = Counter(o.result.kind.value for o in failed)
    window = run.measured_window_s
    throughput = len(measured) / window if window > 0 else 0.0

    base = dict(
        total=len(run.outcomes), warmup=len(run.outcomes) - len(measured), measured=len(measured),
        successes=len(ok), failures=len(failed), elapsed_s=run.elapsed_s, throughput_rps=throughput,
        status_counts=dict(sorted(status_counts.items())), failure_counts=dict(sorted(failure_counts.items())),
    )
    if not ok:
        return Summary(**base)

    fastest = min(ok, key=lambda o: o.latency)
    slowest = max(ok, key=lambda o: o.latency)
    first = ok[0]
    latencies = sorted(o.latency for o in ok)
    total = math.fsum(latencies)
    avg = total / len(latencies)
    stddev = math.sqrt(math.fsum((v - avg) ** 2 for v in latencies) / len(latencies))

    return Summary(
        **base,
        min_s=fastest.latency, min_status=fastest.result.status_code,
        max_s=slowest.latency, max_status=slowest.result.status_code,
        first_s=first.latency, first_status=first.result.status_code,
        avg_s=avg, stddev_s=stddev,
        percentiles_s={p: percentile(latencies, p) for p in PERCENTILES},
        sum_s=total,
    )
