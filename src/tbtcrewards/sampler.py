"""
tbtcrewards/sampler.py

Metric sampling and bucket reconciliation.

A SampleSeries is lazy and restartable: the upstream request is made on
first iteration, and iterating again re-scans the same rows without
another request. Missing samples stay missing; nothing here ever fills a
gap with a zero.

Usage:
    from tbtcrewards.sampler import MetricSampler, expected_buckets, observed_buckets

    sampler = MetricSampler(prometheus_client, resolution=60)
    series = sampler.sample("up", operator, start, end)

    expected = expected_buckets(start, end, 60)
    up = observed_buckets(series, start, end, 60, lambda s: s.value == 1)
    missing = expected - up
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterator, List, Optional, Set, TYPE_CHECKING

from .config import QUERY_RESOLUTION
from .errors import MetricUnavailable

if TYPE_CHECKING:
    from .engine import MetricsSource

logger = logging.getLogger("tbtcrewards.sampler")


# ============================================================================
# DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True)
class MetricSample:
    """A single sampled value of an operator metric."""
    timestamp: int
    value: float
    labels: Dict[str, str] = field(default_factory=dict, hash=False)

    def to_dict(self) -> dict:
        return {"timestamp": self.timestamp, "value": self.value, "labels": dict(self.labels)}


class SampleSeries:
    """
    Lazy, restartable sequence of samples for one metric and operator.

    The fetch callable runs once, on first iteration. A failed fetch is
    not cached, so the next iteration retries it.
    """

    def __init__(
        self,
        fetch: Callable[[], List[MetricSample]],
        metric: str = "",
        operator: str = "",
    ):
        self._fetch = fetch
        self.metric = metric
        self.operator = operator
        self._samples: Optional[List[MetricSample]] = None

    @property
    def fetched(self) -> bool:
        return self._samples is not None

    def _load(self) -> List[MetricSample]:
        if self._samples is None:
            samples = self._fetch()
            for sample in samples:
                if not isinstance(sample, MetricSample):
                    raise MetricUnavailable(
                        f"Malformed sample for {self.metric}: {sample!r}",
                        metric=self.metric,
                        operator=self.operator,
                    )
            self._samples = sorted(samples, key=lambda s: s.timestamp)
            logger.debug(
                f"Fetched {len(self._samples)} samples of {self.metric} for {self.operator}"
            )
        return self._samples

    def __iter__(self) -> Iterator[MetricSample]:
        return iter(self._load())

    def latest(self) -> Optional[MetricSample]:
        """Get the most recent sample, or None if there are none."""
        samples = self._load()
        return samples[-1] if samples else None


class MetricSampler:
    """
    Pulls raw samples for named operator metrics.

    Any failure of the underlying source that is not already a
    MetricUnavailable (unexpected payload shapes, parse errors) is
    reclassified as one, so predicate evaluation only has a single
    condition to recover from.
    """

    def __init__(self, source: "MetricsSource", resolution: int = QUERY_RESOLUTION):
        """
        Initialize MetricSampler.

        Args:
            source: Metrics client implementing sample_metric()
            resolution: Default sampling resolution in seconds
        """
        self.source = source
        self.resolution = resolution

    def sample(
        self,
        metric_name: str,
        operator_address: str,
        start: int,
        end: int,
        resolution: Optional[int] = None,
    ) -> SampleSeries:
        """
        Get the samples of a metric for an operator over [start, end].

        Returns:
            SampleSeries; nothing is requested until it is iterated
        """
        step = resolution or self.resolution

        def fetch() -> List[MetricSample]:
            try:
                return list(self.source.sample_metric(
                    metric_name, operator_address, start, end, step
                ))
            except MetricUnavailable:
                raise
            except (ValueError, TypeError, KeyError) as e:
                raise MetricUnavailable(
                    f"Malformed {metric_name} data for {operator_address}: {e}",
                    metric=metric_name,
                    operator=operator_address,
                ) from e

        return SampleSeries(fetch, metric=metric_name, operator=operator_address)


# ============================================================================
# BUCKET RECONCILIATION
# ============================================================================

def expected_buckets(start: int, end: int, resolution: int) -> Set[int]:
    """
    Get the exhaustive set of resolution-sized buckets covering [start, end).

    A trailing partial bucket counts as a full one. A zero-length range has
    no buckets.
    """
    duration = end - start
    if duration <= 0:
        return set()
    return set(range(-(-duration // resolution)))


def bucket_of(timestamp: int, start: int, end: int, resolution: int) -> Optional[int]:
    """Get the bucket index of a timestamp, or None if it is outside [start, end)."""
    if timestamp < start or timestamp >= end:
        return None
    return (timestamp - start) // resolution


def observed_buckets(
    samples,
    start: int,
    end: int,
    resolution: int,
    predicate: Callable[[MetricSample], bool] = lambda s: True,
) -> Set[int]:
    """
    Get the buckets holding at least one sample that satisfies predicate.

    Several samples in one bucket (multiple series, jitter) count once.
    """
    buckets = set()
    for sample in samples:
        index = bucket_of(sample.timestamp, start, end, resolution)
        if index is not None and predicate(sample):
            buckets.add(index)
    return buckets
