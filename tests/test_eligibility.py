"""
tbtcrewards/tests/test_eligibility.py

Tests for aggregating verdicts into eligibility fractions.
"""

import pytest
from tbtcrewards.config import PRECISION
from tbtcrewards.eligibility import (
    SubIntervalEligibility,
    aggregate_verdicts,
    build_operator_eligibility,
    combine_sub_intervals,
    evaluate_sub_interval,
)
from tbtcrewards.interval import RewardInterval, SubInterval
from tbtcrewards.predicates import PredicateKind, PredicateVerdict


# ============================================================================
# TEST DATA
# ============================================================================

def verdicts(beacon=True, tbtc=True, pre_params=True, uptime=PRECISION, version=PRECISION,
             unavailable=()):
    """Build one verdict of each kind."""
    result = [
        PredicateVerdict.gate(PredicateKind.BEACON, beacon),
        PredicateVerdict.gate(PredicateKind.TBTC, tbtc),
        PredicateVerdict.gate(PredicateKind.PRE_PARAMS, pre_params),
        PredicateVerdict(PredicateKind.UPTIME, uptime * 100 >= 96 * PRECISION, uptime),
        PredicateVerdict(PredicateKind.VERSION, version == PRECISION, version),
    ]
    return [
        PredicateVerdict.missing(v.kind, "MetricUnavailable: no data") if v.kind in unavailable else v
        for v in result
    ]


def result(start, end, fraction):
    return SubIntervalEligibility(SubInterval(start, end), (), fraction)


# ============================================================================
# AGGREGATION TESTS
# ============================================================================

class TestAggregateVerdicts:
    """Test per-sub-interval aggregation."""

    def test_all_perfect(self):
        assert aggregate_verdicts(verdicts()) == PRECISION

    @pytest.mark.parametrize("gate", ["beacon", "tbtc", "pre_params"])
    def test_any_gate_zeroes(self, gate):
        """Test a failed gate zeroes the fraction whatever the ratios."""
        assert aggregate_verdicts(verdicts(**{gate: False})) == 0

    def test_beacon_unauthorized_everything_else_perfect(self):
        assert aggregate_verdicts(verdicts(beacon=False)) == 0

    def test_ratios_multiply(self):
        assert aggregate_verdicts(verdicts(uptime=800_000, version=500_000)) == 400_000

    def test_unsatisfied_uptime_still_contributes(self):
        """Test an uptime below threshold is prorated, not zeroed."""
        assert aggregate_verdicts(verdicts(uptime=959_900)) == 959_900

    def test_unavailable_gate_zeroes(self):
        assert aggregate_verdicts(verdicts(unavailable=(PredicateKind.TBTC,))) == 0

    def test_unavailable_ratio_zeroes(self):
        assert aggregate_verdicts(verdicts(unavailable=(PredicateKind.UPTIME,))) == 0

    def test_missing_kind(self):
        with pytest.raises(ValueError):
            aggregate_verdicts(verdicts()[:4])

    def test_duplicate_kind(self):
        with pytest.raises(ValueError):
            aggregate_verdicts(verdicts() + [PredicateVerdict.gate(PredicateKind.BEACON, True)])

    def test_monotonic_in_ratios(self):
        """Test raising a ratio never lowers the fraction."""
        fractions = [aggregate_verdicts(verdicts(uptime=u)) for u in range(0, PRECISION + 1, 100_000)]
        assert fractions == sorted(fractions)

    def test_within_bounds(self):
        for uptime in (0, 1, 500_000, PRECISION):
            for version in (0, 333_333, PRECISION):
                assert 0 <= aggregate_verdicts(verdicts(uptime=uptime, version=version)) <= PRECISION


class TestEvaluateSubInterval:
    """Test sub-interval results."""

    def test_orders_verdicts(self):
        sub = SubInterval(0, 600)
        outcome = evaluate_sub_interval(sub, list(reversed(verdicts())))
        assert [v.kind for v in outcome.verdicts] == list(PredicateKind)
        assert outcome.fraction == PRECISION

    def test_gate_failed_flag(self):
        outcome = evaluate_sub_interval(SubInterval(0, 600), verdicts(pre_params=False))
        assert outcome.gate_failed
        assert not outcome.data_unavailable

    def test_unavailable_gate_is_not_gate_failure(self):
        outcome = evaluate_sub_interval(
            SubInterval(0, 600), verdicts(unavailable=(PredicateKind.BEACON,)),
        )
        assert not outcome.gate_failed
        assert outcome.data_unavailable


# ============================================================================
# COMBINATION TESTS
# ============================================================================

class TestCombineSubIntervals:
    """Test duration-weighted combination."""

    def test_weighted_average(self):
        results = [result(0, 300, PRECISION), result(300, 1000, 0)]
        assert combine_sub_intervals(results) == 300_000

    def test_single(self):
        assert combine_sub_intervals([result(0, 100, 123_456)]) == 123_456

    def test_zero_length_has_no_weight(self):
        results = [result(0, 0, 0), result(0, 100, PRECISION)]
        assert combine_sub_intervals(results) == PRECISION

    def test_all_zero_length(self):
        assert combine_sub_intervals([result(5, 5, PRECISION)]) == 0

    def test_empty(self):
        assert combine_sub_intervals([]) == 0


class TestOperatorEligibility:
    """Test operator-level eligibility."""

    def test_build(self):
        interval = RewardInterval(0, 1000, 1, 2)
        subs = [
            evaluate_sub_interval(SubInterval(0, 500), verdicts()),
            evaluate_sub_interval(SubInterval(500, 1000), verdicts(beacon=False)),
        ]
        eligibility = build_operator_eligibility("0xabc", interval, subs)

        assert eligibility.eligibility_fraction == 500_000
        assert eligibility.gate_failed
        assert len(eligibility.verdicts) == 10
        assert list(eligibility.unavailable_verdicts()) == []

        data = eligibility.to_dict()
        assert data["operator_address"] == "0xabc"
        assert len(data["sub_intervals"]) == 2
