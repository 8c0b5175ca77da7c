"""
tbtcrewards/rewards.py

Reward calculation from stake, eligibility, elapsed time and an annual rate.

    reward = stake x (rate / 100) x (elapsed / SECONDS_IN_YEAR) x eligibility

Everything is integer arithmetic with a single final division, so the
same inputs always give the same reward on every platform. Conversion to
a human-readable percentage happens only when a report is emitted.

Usage:
    from tbtcrewards.rewards import calculate_reward

    reward = calculate_reward(
        stake_amount=10_000,
        eligibility_fraction=500_000,   # 0.5 at PRECISION
        elapsed_seconds=SECONDS_IN_YEAR // 2,
        annual_rate_percent=15,
    )
    # 375
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

from .config import APR, HUNDRED, PRECISION, SECONDS_IN_YEAR, RewardsConfig
from .eligibility import OperatorEligibility

logger = logging.getLogger("tbtcrewards.rewards")


class EligibilityStatus(Enum):
    """Why an operator earned what it earned."""
    ELIGIBLE = "eligible"                    # full eligibility
    PARTIAL = "partial"                      # prorated by uptime/version
    INELIGIBLE = "ineligible"                # measured ratios were zero
    GATE_FAILED = "gate_failed"              # authorization or pre-params failed
    DATA_UNAVAILABLE = "data_unavailable"    # a metric could not be sampled
    EVALUATION_FAILED = "evaluation_failed"  # operator evaluation errored


@dataclass(frozen=True)
class RewardRecord:
    """Final reward entry for one operator."""
    operator_address: str
    eligibility_fraction: int   # fixed-point
    stake_amount: int           # fixed-point token units
    reward_amount: int          # fixed-point token units
    status: EligibilityStatus = EligibilityStatus.ELIGIBLE
    annotations: Tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self, precision: int = PRECISION) -> dict:
        return {
            "operator_address": self.operator_address,
            "eligibility_fraction": self.eligibility_fraction,
            "eligibility_percent": to_display_percent(self.eligibility_fraction, precision),
            "stake_amount": str(self.stake_amount),
            "reward_amount": str(self.reward_amount),
            "status": self.status.value,
            "annotations": list(self.annotations),
        }


# ============================================================================
# CALCULATION
# ============================================================================

def calculate_reward(
    stake_amount: int,
    eligibility_fraction: int,
    elapsed_seconds: int,
    annual_rate_percent: int = APR,
    precision: int = PRECISION,
) -> int:
    """
    Compute an operator's reward for the interval.

    Args:
        stake_amount: Stake in fixed-point token units
        eligibility_fraction: Eligibility scaled by precision
        elapsed_seconds: Length of the reward interval
        annual_rate_percent: Annual rate, 15 means 15%
        precision: Fixed-point scale of eligibility_fraction

    Returns:
        Reward in the same units as stake_amount, rounded down
    """
    if stake_amount < 0 or elapsed_seconds < 0 or annual_rate_percent < 0:
        raise ValueError("stake, elapsed time and rate must be non-negative")
    if not 0 <= eligibility_fraction <= precision:
        raise ValueError(
            f"eligibility_fraction must be within [0, {precision}], got {eligibility_fraction}"
        )

    numerator = stake_amount * annual_rate_percent * elapsed_seconds * eligibility_fraction
    denominator = HUNDRED * SECONDS_IN_YEAR * precision
    return numerator // denominator


def classify(eligibility: OperatorEligibility, precision: int = PRECISION) -> EligibilityStatus:
    fraction = eligibility.eligibility_fraction
    if fraction == 0 and eligibility.gate_failed:
        return EligibilityStatus.GATE_FAILED
    if eligibility.data_unavailable:
        return EligibilityStatus.DATA_UNAVAILABLE
    if fraction >= precision:
        return EligibilityStatus.ELIGIBLE
    if fraction == 0:
        return EligibilityStatus.INELIGIBLE
    return EligibilityStatus.PARTIAL


def _annotations(eligibility: OperatorEligibility) -> Tuple[str, ...]:
    notes: List[str] = []
    multiple = len(eligibility.sub_intervals) > 1
    for index, result in enumerate(eligibility.sub_intervals):
        for verdict in result.verdicts:
            if verdict.satisfied or not verdict.reason:
                continue
            prefix = f"[{index}] " if multiple else ""
            notes.append(f"{prefix}{verdict.kind.value}: {verdict.reason}")
    return tuple(notes)


def build_reward_record(
    eligibility: OperatorEligibility,
    stake_amount: int,
    config: Optional[RewardsConfig] = None,
) -> RewardRecord:
    """
    Derive the reward record for an evaluated operator.

    Args:
        eligibility: The operator's final eligibility
        stake_amount: Stake in fixed-point token units
        config: Rate and precision (defaults if None)
    """
    config = config or RewardsConfig()
    reward = calculate_reward(
        stake_amount=stake_amount,
        eligibility_fraction=eligibility.eligibility_fraction,
        elapsed_seconds=eligibility.interval.duration,
        annual_rate_percent=config.annual_rate_percent,
        precision=config.precision,
    )
    status = classify(eligibility, config.precision)
    logger.debug(f"Reward for {eligibility.operator_address}: {reward} ({status.value})")
    return RewardRecord(
        operator_address=eligibility.operator_address,
        eligibility_fraction=eligibility.eligibility_fraction,
        stake_amount=stake_amount,
        reward_amount=reward,
        status=status,
        annotations=_annotations(eligibility),
    )


def failed_record(operator_address: str, stake_amount: int, error: str) -> RewardRecord:
    """Record for an operator whose evaluation did not complete."""
    return RewardRecord(
        operator_address=operator_address,
        eligibility_fraction=0,
        stake_amount=stake_amount,
        reward_amount=0,
        status=EligibilityStatus.EVALUATION_FAILED,
        annotations=(error,),
    )


# ============================================================================
# DISPLAY
# ============================================================================

def to_display_percent(ratio: int, precision: int = PRECISION, places: int = 2) -> str:
    """
    Convert a fixed-point ratio to a percentage string, rounding half up.

    Examples:
        to_display_percent(959_900)   -> "95.99"
        to_display_percent(999_995)   -> "100.00"
    """
    scale = 10 ** places
    scaled = (ratio * HUNDRED * scale * 2 + precision) // (2 * precision)
    whole, frac = divmod(scaled, scale)
    return f"{whole}.{frac:0{places}d}" if places else str(whole)
