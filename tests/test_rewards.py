"""
tbtcrewards/tests/test_rewards.py

Tests for reward calculation and reward records.
"""

import pytest
from tbtcrewards.config import PRECISION, SECONDS_IN_YEAR, RewardsConfig
from tbtcrewards.eligibility import build_operator_eligibility, evaluate_sub_interval
from tbtcrewards.interval import RewardInterval, SubInterval
from tbtcrewards.predicates import PredicateKind, PredicateVerdict
from tbtcrewards.rewards import (
    EligibilityStatus,
    RewardRecord,
    build_reward_record,
    calculate_reward,
    classify,
    failed_record,
    to_display_percent,
)


# ============================================================================
# TEST DATA
# ============================================================================

def eligibility_for(*sub_verdicts, start=0, end=SECONDS_IN_YEAR // 2):
    """Operator eligibility with one sub-interval per verdict list, split evenly."""
    interval = RewardInterval(start, end, 1, 2)
    step = (end - start) // len(sub_verdicts)
    results = []
    for index, verdicts in enumerate(sub_verdicts):
        sub_end = end if index == len(sub_verdicts) - 1 else start + (index + 1) * step
        results.append(evaluate_sub_interval(SubInterval(start + index * step, sub_end), verdicts))
    return build_operator_eligibility("0xabc", interval, results)


def perfect(uptime=PRECISION, version=PRECISION, **gates):
    return [
        PredicateVerdict.gate(PredicateKind.BEACON, gates.get("beacon", True),
                              "" if gates.get("beacon", True) else "beacon not authorized at 5"),
        PredicateVerdict.gate(PredicateKind.TBTC, True),
        PredicateVerdict.gate(PredicateKind.PRE_PARAMS, True),
        PredicateVerdict(PredicateKind.UPTIME, uptime == PRECISION, uptime,
                         reason="" if uptime == PRECISION else "low uptime"),
        PredicateVerdict(PredicateKind.VERSION, version == PRECISION, version),
    ]


# ============================================================================
# CALCULATION TESTS
# ============================================================================

class TestCalculateReward:
    """Test fixed-point reward formula."""

    def test_half_year_half_eligible(self):
        """Test 10000 x 15% x 0.5 year x 0.5 eligibility is exactly 375."""
        reward = calculate_reward(
            stake_amount=10_000,
            eligibility_fraction=PRECISION // 2,
            elapsed_seconds=SECONDS_IN_YEAR // 2,
            annual_rate_percent=15,
        )
        assert reward == 375

    def test_full_year(self):
        assert calculate_reward(10**22, PRECISION, SECONDS_IN_YEAR) == 15 * 10**20

    def test_zero_eligibility(self):
        assert calculate_reward(10**22, 0, SECONDS_IN_YEAR) == 0

    def test_rounds_down(self):
        assert calculate_reward(1, PRECISION, SECONDS_IN_YEAR) == 0

    def test_linear_in_stake(self):
        """Test doubling the stake doubles the reward."""
        a = calculate_reward(10**21, 734_211, 2_592_000)
        b = calculate_reward(2 * 10**21, 734_211, 2_592_000)
        assert b in (2 * a, 2 * a + 1)

    def test_linear_in_fraction(self):
        """Test doubling the eligibility fraction doubles the reward."""
        a = calculate_reward(10**21, 250_000, 2_592_000)
        b = calculate_reward(10**21, 500_000, 2_592_000)
        assert b in (2 * a, 2 * a + 1)

    def test_linear_in_elapsed(self):
        a = calculate_reward(10**24, PRECISION, 86_400)
        b = calculate_reward(10**24, PRECISION, 2 * 86_400)
        assert b in (2 * a, 2 * a + 1)

    def test_deterministic(self):
        args = (123_456_789_000, 987_654, 1_234_567)
        assert calculate_reward(*args) == calculate_reward(*args)

    @pytest.mark.parametrize("kwargs", [
        {"stake_amount": -1},
        {"eligibility_fraction": PRECISION + 1},
        {"eligibility_fraction": -1},
        {"elapsed_seconds": -1},
        {"annual_rate_percent": -1},
    ])
    def test_invalid_inputs(self, kwargs):
        args = dict(stake_amount=1, eligibility_fraction=1, elapsed_seconds=1, annual_rate_percent=15)
        args.update(kwargs)
        with pytest.raises(ValueError):
            calculate_reward(**args)


# ============================================================================
# RECORD TESTS
# ============================================================================

class TestBuildRewardRecord:
    """Test deriving reward records from eligibility."""

    def test_eligible(self):
        record = build_reward_record(eligibility_for(perfect()), 10_000)
        assert record.status == EligibilityStatus.ELIGIBLE
        assert record.eligibility_fraction == PRECISION
        assert record.reward_amount == 750
        assert record.annotations == ()

    def test_gate_failed(self):
        """Test a failed gate gives no reward and a gate status."""
        record = build_reward_record(eligibility_for(perfect(beacon=False)), 10_000)
        assert record.eligibility_fraction == 0
        assert record.reward_amount == 0
        assert record.status == EligibilityStatus.GATE_FAILED
        assert record.annotations == ("beacon: beacon not authorized at 5",)

    def test_partial(self):
        record = build_reward_record(eligibility_for(perfect(uptime=PRECISION // 2)), 10_000)
        assert record.status == EligibilityStatus.PARTIAL
        assert record.reward_amount == 375

    def test_data_unavailable(self):
        """Test missing metrics are annotated, not reported as measured."""
        verdicts = perfect()
        verdicts[3] = PredicateVerdict.missing(PredicateKind.UPTIME, "MetricUnavailable: No uptime samples")
        record = build_reward_record(eligibility_for(verdicts), 10_000)
        assert record.status == EligibilityStatus.DATA_UNAVAILABLE
        assert record.reward_amount == 0
        assert any("MetricUnavailable" in note for note in record.annotations)

    def test_annotations_indexed_per_sub_interval(self):
        record = build_reward_record(
            eligibility_for(perfect(), perfect(uptime=500_000)), 10_000,
        )
        assert record.annotations == ("[1] uptime: low uptime",)

    def test_uses_config_rate(self):
        config = RewardsConfig(annual_rate_percent=30)
        record = build_reward_record(eligibility_for(perfect()), 10_000, config)
        assert record.reward_amount == 1500

    def test_ineligible(self):
        eligibility = eligibility_for(perfect(uptime=0))
        assert classify(eligibility) == EligibilityStatus.INELIGIBLE


class TestRewardRecord:
    """Test record serialization."""

    def test_to_dict(self):
        record = RewardRecord(
            operator_address="0xabc",
            eligibility_fraction=959_900,
            stake_amount=10**22,
            reward_amount=12345,
        )
        data = record.to_dict()
        assert data["stake_amount"] == str(10**22)
        assert data["reward_amount"] == "12345"
        assert data["eligibility_percent"] == "95.99"
        assert data["status"] == "eligible"

    def test_failed_record(self):
        record = failed_record("0xdef", 500, "evaluation timed out after 1.0s")
        assert record.status == EligibilityStatus.EVALUATION_FAILED
        assert record.reward_amount == 0
        assert record.stake_amount == 500
        assert record.annotations == ("evaluation timed out after 1.0s",)


class TestDisplayPercent:
    """Test display conversion."""

    @pytest.mark.parametrize("ratio,expected", [
        (0, "0.00"),
        (PRECISION, "100.00"),
        (959_900, "95.99"),
        (959_950, "96.00"),
        (959_949, "95.99"),
        (999_995, "100.00"),
        (1, "0.00"),
    ])
    def test_round_half_up(self, ratio, expected):
        assert to_display_percent(ratio) == expected

    def test_places(self):
        assert to_display_percent(123_456, places=0) == "12"
        assert to_display_percent(123_456, places=3) == "12.346"
