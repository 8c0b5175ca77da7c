"""
tbtcrewards/eligibility.py

Combines predicate verdicts into an eligibility fraction.

Per sub-interval:
- Gate check: Beacon, tBTC or pre-params unsatisfied -> fraction 0
- Otherwise: fraction = uptime ratio x version ratio

Per operator:
- Duration-weighted average of the sub-interval fractions

Fractions are fixed-point integers scaled by the configured precision.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Iterator, Sequence, Tuple

from .config import PRECISION
from .interval import RewardInterval, SubInterval
from .predicates import GATE_KINDS, RATIO_KINDS, PredicateKind, PredicateVerdict, verdicts_by_kind

logger = logging.getLogger("tbtcrewards.eligibility")


@dataclass(frozen=True)
class SubIntervalEligibility:
    """Verdicts and resulting fraction for one sub-interval."""
    sub_interval: SubInterval
    verdicts: Tuple[PredicateVerdict, ...]
    fraction: int

    @property
    def gate_failed(self) -> bool:
        return any(v.kind in GATE_KINDS and not v.satisfied and not v.unavailable
                   for v in self.verdicts)

    @property
    def data_unavailable(self) -> bool:
        return any(v.unavailable for v in self.verdicts)

    def to_dict(self) -> dict:
        return {
            "sub_interval": self.sub_interval.to_dict(),
            "verdicts": [v.to_dict() for v in self.verdicts],
            "fraction": self.fraction,
        }


@dataclass(frozen=True)
class OperatorEligibility:
    """Final eligibility of one operator over the reward interval."""
    operator_address: str
    interval: RewardInterval
    sub_intervals: Tuple[SubIntervalEligibility, ...]
    eligibility_fraction: int

    @property
    def verdicts(self) -> Tuple[PredicateVerdict, ...]:
        """All verdicts, in sub-interval then predicate order."""
        return tuple(v for result in self.sub_intervals for v in result.verdicts)

    @property
    def gate_failed(self) -> bool:
        return any(result.gate_failed for result in self.sub_intervals)

    @property
    def data_unavailable(self) -> bool:
        return any(True for _ in self.unavailable_verdicts())

    def unavailable_verdicts(self) -> Iterator[PredicateVerdict]:
        return (v for v in self.verdicts if v.unavailable)

    def to_dict(self) -> dict:
        return {
            "operator_address": self.operator_address,
            "interval": self.interval.to_dict(),
            "sub_intervals": [r.to_dict() for r in self.sub_intervals],
            "eligibility_fraction": self.eligibility_fraction,
        }


def aggregate_verdicts(
    verdicts: Sequence[PredicateVerdict],
    precision: int = PRECISION,
) -> int:
    """
    Combine one verdict of each kind into a sub-interval fraction.

    Args:
        verdicts: Exactly one verdict per PredicateKind
        precision: Fixed-point scale

    Returns:
        Fraction in [0, precision]

    Raises:
        ValueError: If a kind is missing or repeated
    """
    grouped = verdicts_by_kind(verdicts)
    for kind, found in grouped.items():
        if len(found) > 1:
            raise ValueError(f"Duplicate verdict for {kind.value}")

    missing = [kind.value for kind, found in grouped.items() if not found]
    if missing:
        raise ValueError(f"Missing verdicts: {sorted(missing)}")
    by_kind = {kind: found[0] for kind, found in grouped.items()}

    if any(not by_kind[kind].satisfied for kind in GATE_KINDS):
        return 0

    fraction = precision
    for kind in RATIO_KINDS:
        fraction = fraction * by_kind[kind].ratio // precision
    return fraction


def evaluate_sub_interval(
    sub_interval: SubInterval,
    verdicts: Iterable[PredicateVerdict],
    precision: int = PRECISION,
) -> SubIntervalEligibility:
    """Aggregate one sub-interval's verdicts, keeping them in report order."""
    order = list(PredicateKind)
    ordered = tuple(sorted(verdicts, key=lambda v: order.index(v.kind)))
    return SubIntervalEligibility(
        sub_interval=sub_interval,
        verdicts=ordered,
        fraction=aggregate_verdicts(ordered, precision),
    )


def combine_sub_intervals(
    results: Sequence[SubIntervalEligibility],
    precision: int = PRECISION,
) -> int:
    """
    Duration-weighted average of sub-interval fractions.

    Zero-length sub-intervals carry zero weight. If every sub-interval is
    zero-length the fraction is 0.
    """
    total = sum(r.sub_interval.duration for r in results)
    if total <= 0:
        return 0
    weighted = sum(r.fraction * r.sub_interval.duration for r in results)
    return min(precision, weighted // total)


def build_operator_eligibility(
    operator_address: str,
    interval: RewardInterval,
    results: Sequence[SubIntervalEligibility],
    precision: int = PRECISION,
) -> OperatorEligibility:
    fraction = combine_sub_intervals(results, precision)
    logger.debug(f"Operator {operator_address} eligibility {fraction}/{precision}")
    return OperatorEligibility(
        operator_address=operator_address,
        interval=interval,
        sub_intervals=tuple(results),
        eligibility_fraction=fraction,
    )
