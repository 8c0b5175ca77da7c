"""
tbtcrewards/predicates.py

Eligibility predicates for a single operator and sub-interval.

Gate predicates (pass/fail, any failure zeroes the reward):
- Beacon authorization: Random Beacon module authorized at the end
- tBTC authorization: tBTC module authorized at the end
- Pre-parameters: enough pre-generated key material in inventory

Ratio predicates (fraction of the sub-interval the condition held):
- Uptime: share of sampling buckets in which the client was up
- Version: share of sampling buckets in which the client ran the
  applicable release or a newer one

All ratios are fixed-point integers scaled by the configured precision.
An evaluator that finds no data raises MetricUnavailable; evaluate_safely()
turns that into an unsatisfied, zero-ratio verdict marked unavailable.
"""

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional

from .config import AUTHORIZED, HUNDRED, PRECISION, QUERY_RESOLUTION
from .errors import MetricUnavailable
from .interval import ReleaseEvent, SubInterval
from .sampler import MetricSample, SampleSeries, bucket_of, expected_buckets, observed_buckets
from .versioning import ClientVersion, parse_version

logger = logging.getLogger("tbtcrewards.predicates")


# ============================================================================
# DATA STRUCTURES
# ============================================================================

class PredicateKind(Enum):
    """The five eligibility predicates, in report order."""
    BEACON = "beacon"
    TBTC = "tbtc"
    UPTIME = "uptime"
    PRE_PARAMS = "pre_params"
    VERSION = "version"

    @property
    def is_gate(self) -> bool:
        return self in GATE_KINDS


GATE_KINDS = frozenset({PredicateKind.BEACON, PredicateKind.TBTC, PredicateKind.PRE_PARAMS})
RATIO_KINDS = frozenset({PredicateKind.UPTIME, PredicateKind.VERSION})


@dataclass(frozen=True)
class PredicateVerdict:
    """Result of evaluating one predicate."""
    kind: PredicateKind
    satisfied: bool
    ratio: int                  # fixed-point, 0..precision
    unavailable: bool = False   # data could not be sampled
    reason: str = ""

    @classmethod
    def gate(cls, kind: PredicateKind, satisfied: bool, reason: str = "",
             precision: int = PRECISION) -> "PredicateVerdict":
        return cls(kind=kind, satisfied=satisfied,
                   ratio=precision if satisfied else 0, reason=reason)

    @classmethod
    def missing(cls, kind: PredicateKind, reason: str) -> "PredicateVerdict":
        """Verdict for a predicate whose data was unavailable."""
        return cls(kind=kind, satisfied=False, ratio=0, unavailable=True, reason=reason)

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "satisfied": self.satisfied,
            "ratio": self.ratio,
            "unavailable": self.unavailable,
            "reason": self.reason,
        }


# ============================================================================
# GATE PREDICATES
# ============================================================================

def _latest(samples: Iterable[MetricSample], kind: PredicateKind) -> MetricSample:
    # Prometheus reports gaps in scrape data as NaN; those are not readings
    if isinstance(samples, SampleSeries):
        latest = samples.latest()
    else:
        latest = None
        for sample in samples:
            latest = sample
    if latest is None:
        raise MetricUnavailable(f"No {kind.value} samples")
    if not math.isfinite(latest.value):
        raise MetricUnavailable(
            f"Non-finite {kind.value} value {latest.value} at {latest.timestamp}"
        )
    return latest


def evaluate_authorization(
    kind: PredicateKind,
    samples: Iterable[MetricSample],
    sentinel: float = AUTHORIZED,
    precision: int = PRECISION,
) -> PredicateVerdict:
    """
    Check a module authorization flag at the end of the sub-interval.

    Args:
        kind: PredicateKind.BEACON or PredicateKind.TBTC
        samples: Authorization samples, ascending
        sentinel: Value meaning "authorized"

    Returns:
        Gate verdict from the latest sample

    Raises:
        MetricUnavailable: If there are no samples or the latest is NaN/Inf
    """
    if kind not in (PredicateKind.BEACON, PredicateKind.TBTC):
        raise ValueError(f"Not an authorization predicate: {kind}")

    latest = _latest(samples, kind)
    authorized = latest.value == sentinel
    reason = "" if authorized else f"{kind.value} not authorized at {latest.timestamp}"
    return PredicateVerdict.gate(kind, authorized, reason, precision)


def evaluate_pre_params(
    samples: Iterable[MetricSample],
    required_pre_params: int,
    precision: int = PRECISION,
) -> PredicateVerdict:
    """
    Check the latest pre-parameter inventory count against the requirement.

    Raises:
        MetricUnavailable: If there are no samples or the latest is NaN/Inf
    """
    latest = _latest(samples, PredicateKind.PRE_PARAMS)
    count = int(latest.value)
    satisfied = count >= required_pre_params
    reason = "" if satisfied else f"pre-params {count} < {required_pre_params}"
    return PredicateVerdict.gate(PredicateKind.PRE_PARAMS, satisfied, reason, precision)


# ============================================================================
# RATIO PREDICATES
# ============================================================================

def evaluate_uptime(
    samples: Iterable[MetricSample],
    sub_interval: SubInterval,
    required_uptime_percent: int,
    resolution: int = QUERY_RESOLUTION,
    precision: int = PRECISION,
) -> PredicateVerdict:
    """
    Measure the share of the sub-interval the client was up.

    Each sample stands for one resolution-sized bucket. The expected
    bucket set covers the whole sub-interval; a bucket with no "up"
    sample counts as down.

    Returns:
        Verdict with ratio = up buckets / expected buckets, satisfied when
        ratio * 100 >= required_uptime_percent

    Raises:
        MetricUnavailable: If there are no samples at all
    """
    samples = list(samples)
    if not samples:
        raise MetricUnavailable("No uptime samples")

    expected = expected_buckets(sub_interval.start, sub_interval.end, resolution)
    if not expected:
        return PredicateVerdict(PredicateKind.UPTIME, False, 0, reason="empty sub-interval")

    up = observed_buckets(
        samples, sub_interval.start, sub_interval.end, resolution,
        lambda s: s.value == 1,
    ) & expected

    ratio = len(up) * precision // len(expected)
    satisfied = ratio * HUNDRED >= required_uptime_percent * precision
    reason = "" if satisfied else (
        f"uptime {len(up)}/{len(expected)} buckets below {required_uptime_percent}%"
    )
    return PredicateVerdict(PredicateKind.UPTIME, satisfied, ratio, reason=reason)


def _required_version(
    bucket_start: int,
    applicable: ClientVersion,
    applicable_release: ReleaseEvent,
    previous: Optional[ClientVersion],
    allowed_upgrade_delay: int,
) -> ClientVersion:
    if previous is not None and bucket_start < applicable_release.timestamp + allowed_upgrade_delay:
        return min(applicable, previous)
    return applicable


def evaluate_version(
    samples: Iterable[MetricSample],
    sub_interval: SubInterval,
    resolution: int = QUERY_RESOLUTION,
    precision: int = PRECISION,
    previous_release: Optional[ReleaseEvent] = None,
    allowed_upgrade_delay: int = 0,
    label: str = "version",
) -> PredicateVerdict:
    """
    Measure the share of the sub-interval the client ran a current release.

    The version in effect in a bucket is the latest one reported at or
    before the end of that bucket, so a reported version holds until the
    next report. Buckets before the first report do not meet the bar. A
    regression after an upgrade lowers the ratio for the time spent on
    the older version.

    With allowed_upgrade_delay > 0 the previous release also counts as
    current for that many seconds after the applicable release was
    published.

    Returns:
        Verdict with ratio = current buckets / expected buckets, satisfied
        only when the whole sub-interval was current

    Raises:
        MetricUnavailable: If there are no version samples
        ValueError: If the applicable release tag cannot be parsed
    """
    release = sub_interval.applicable_release
    if release is None:
        return PredicateVerdict(
            PredicateKind.VERSION, True, precision, reason="no applicable release"
        )

    applicable = release.version
    if applicable is None:
        raise ValueError(f"Unparseable release tag: {release.tag}")
    previous = previous_release.version if previous_release else None

    reported = [s for s in samples if label in s.labels]
    if not reported:
        raise MetricUnavailable("No version samples")

    expected = expected_buckets(sub_interval.start, sub_interval.end, resolution)
    if not expected:
        return PredicateVerdict(PredicateKind.VERSION, False, 0, reason="empty sub-interval")

    # Latest report per bucket, highest version on a timestamp tie
    per_bucket: Dict[int, MetricSample] = {}
    carried: Optional[MetricSample] = None
    for sample in reported:
        index = bucket_of(sample.timestamp, sub_interval.start, sub_interval.end, resolution)
        if index is None:
            if sample.timestamp < sub_interval.start:
                carried = _newer_report(carried, sample, label)
            continue
        per_bucket[index] = _newer_report(per_bucket.get(index), sample, label)

    current = 0
    in_effect: Optional[ClientVersion] = parse_version(carried.labels[label]) if carried else None
    for index in sorted(expected):
        if index in per_bucket:
            in_effect = parse_version(per_bucket[index].labels[label])
        required = _required_version(
            sub_interval.start + index * resolution,
            applicable, release, previous, allowed_upgrade_delay,
        )
        if in_effect is not None and in_effect.meets(required):
            current += 1

    ratio = current * precision // len(expected)
    satisfied = ratio == precision
    reason = "" if satisfied else (
        f"version below {release.tag} in {len(expected) - current}/{len(expected)} buckets"
    )
    return PredicateVerdict(PredicateKind.VERSION, satisfied, ratio, reason=reason)


def _newer_report(
    current: Optional[MetricSample],
    candidate: MetricSample,
    label: str,
) -> MetricSample:
    if current is None or candidate.timestamp > current.timestamp:
        return candidate
    if candidate.timestamp == current.timestamp:
        a = parse_version(candidate.labels[label])
        b = parse_version(current.labels[label])
        if a is not None and (b is None or a > b):
            return candidate
    return current


# ============================================================================
# RECOVERY
# ============================================================================

def evaluate_safely(
    kind: PredicateKind,
    evaluator: Callable[..., PredicateVerdict],
    *args,
    operator: str = "",
    **kwargs,
) -> PredicateVerdict:
    """
    Run an evaluator, recovering from MetricUnavailable.

    A predicate whose metric cannot be sampled is unsatisfied with a zero
    ratio and marked unavailable, so the report can tell missing data
    apart from a measured failure. Other errors propagate.
    """
    try:
        return evaluator(*args, **kwargs)
    except MetricUnavailable as e:
        logger.warning(f"Metric unavailable for {kind.value} of {operator or 'operator'}: {e}")
        return PredicateVerdict.missing(kind, f"MetricUnavailable: {e}")


def verdicts_by_kind(verdicts: Iterable[PredicateVerdict]) -> Dict[PredicateKind, List[PredicateVerdict]]:
    """Group verdicts by predicate kind."""
    grouped: Dict[PredicateKind, List[PredicateVerdict]] = {kind: [] for kind in PredicateKind}
    for verdict in verdicts:
        grouped[verdict.kind].append(verdict)
    return grouped
