"""
tbtcrewards/engine.py

Reward run driver.

Flow:
1. Resolve the calendar window to block numbers (fatal on failure)
2. List release tags and keep the eligible ones (fatal if fewer than 2)
3. Partition the window at release boundaries
4. For every operator, in parallel: sample metrics per sub-interval,
   evaluate the five predicates, aggregate, compute the reward
5. Collect per-operator failures into their records

Operators share no mutable state. Each one is evaluated in a worker
thread under a trio CapacityLimiter and a per-operator deadline; a failed
or timed-out operator never stops the others.

Usage:
    from tbtcrewards.engine import RewardsEngine, run_rewards

    run = run_rewards(
        explorer=etherscan,
        release_source=github,
        metrics=prometheus,
        stakes={"0xabc...": 10**21},
        start=start,
        end=end,
    )
    for record in run.records:
        print(record.operator_address, record.reward_amount)
"""

import functools
import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Mapping, Optional, Protocol, Sequence, Tuple, TypeVar

import trio

from .config import KEEP_CORE_REPO, RELEASE_TAG_PATTERN, RewardsConfig
from .eligibility import (
    OperatorEligibility,
    SubIntervalEligibility,
    build_operator_eligibility,
    evaluate_sub_interval,
)
from .errors import BlockResolutionError, InputValidationError, InsufficientReleaseData
from .interval import ReleaseEvent, ReleaseSet, RewardInterval, SubInterval, partition_interval
from .predicates import (
    PredicateKind,
    PredicateVerdict,
    evaluate_authorization,
    evaluate_pre_params,
    evaluate_safely,
    evaluate_uptime,
    evaluate_version,
)
from .rewards import RewardRecord, build_reward_record, failed_record
from .sampler import MetricSample, MetricSampler

logger = logging.getLogger("tbtcrewards.engine")

T = TypeVar("T")


# ============================================================================
# COLLABORATOR INTERFACES
# ============================================================================

class BlockExplorer(Protocol):
    def resolve_block_for_timestamp(self, timestamp: int) -> int: ...


class ReleaseSource(Protocol):
    def list_release_tags(self, repo: str, pattern: str) -> Sequence[ReleaseEvent]: ...


class MetricsSource(Protocol):
    def sample_metric(
        self, name: str, operator_address: str, start: int, end: int, resolution: int
    ) -> Sequence[MetricSample]: ...


# ============================================================================
# RESULTS
# ============================================================================

@dataclass(frozen=True)
class RewardRun:
    """Everything a reward run produced, ready for the report."""
    interval: RewardInterval
    releases: ReleaseSet
    sub_intervals: Tuple[SubInterval, ...]
    records: Tuple[RewardRecord, ...]
    eligibilities: Dict[str, OperatorEligibility] = field(default_factory=dict, hash=False)
    failures: Dict[str, str] = field(default_factory=dict, hash=False)


# ============================================================================
# WHOLE-RUN STEPS
# ============================================================================

async def _bounded(fn: Callable[..., T], *args, timeout: float, error: type, what: str) -> T:
    """Run a blocking upstream call in a thread, failing with error on timeout."""
    try:
        with trio.fail_after(timeout):
            return await trio.to_thread.run_sync(
                functools.partial(fn, *args), abandon_on_cancel=True
            )
    except trio.TooSlowError:
        raise error(f"{what} timed out after {timeout}s")


async def resolve_interval(
    explorer: BlockExplorer,
    start: int,
    end: int,
    timeout: float = 30.0,
) -> RewardInterval:
    """
    Resolve a calendar window to a RewardInterval.

    Raises:
        BlockResolutionError: If either boundary cannot be resolved
        InputValidationError: If the window or blocks are inconsistent
    """
    if start >= end:
        raise InputValidationError(f"Interval start must precede end: {start} >= {end}")

    start_block = await _bounded(
        explorer.resolve_block_for_timestamp, start,
        timeout=timeout, error=BlockResolutionError, what=f"Block lookup for {start}",
    )
    end_block = await _bounded(
        explorer.resolve_block_for_timestamp, end,
        timeout=timeout, error=BlockResolutionError, what=f"Block lookup for {end}",
    )
    logger.info(f"Reward interval {start}-{end}, blocks {start_block}-{end_block}")
    return RewardInterval(start=start, end=end, start_block=start_block, end_block=end_block)


async def select_releases(
    source: ReleaseSource,
    config: RewardsConfig,
    repo: str = KEEP_CORE_REPO,
    pattern: str = RELEASE_TAG_PATTERN,
) -> ReleaseSet:
    """
    Get the eligible releases: the newest config.eligible_release_tags tags.

    Raises:
        InsufficientReleaseData: If fewer than 2 tags are available
        InputValidationError: If a tag is unparseable or the list is not
            chronological
    """
    events = list(await _bounded(
        source.list_release_tags, repo, pattern,
        timeout=config.request_timeout, error=InsufficientReleaseData,
        what="Release listing",
    ))
    if len(events) < 2:
        raise InsufficientReleaseData(f"At least 2 release tags are required, got {len(events)}")

    eligible = events[:config.eligible_release_tags]
    for event in eligible:
        if event.version is None:
            raise InputValidationError(f"Unparseable release tag: {event.tag}")

    releases = ReleaseSet.from_events(eligible, max_size=config.eligible_release_tags)
    logger.info(f"Eligible releases: {', '.join(e.tag for e in eligible)}")
    return releases


# ============================================================================
# ENGINE
# ============================================================================

class RewardsEngine:
    """
    Evaluates operators against the five predicates and prices their rewards.

    Usage:
        engine = RewardsEngine(MetricSampler(prometheus), config)
        run = trio.run(engine.run, interval, releases, stakes)
    """

    def __init__(self, sampler: MetricSampler, config: Optional[RewardsConfig] = None):
        """
        Initialize RewardsEngine.

        Args:
            sampler: Metric sampler for operator metrics
            config: Thresholds and limits (defaults if None)
        """
        self.sampler = sampler
        self.config = config or RewardsConfig()

    # =========== SINGLE OPERATOR ===========

    def _zero_length(self, sub_interval: SubInterval) -> SubIntervalEligibility:
        # Nothing to measure; the sub-interval carries no weight
        precision = self.config.precision
        verdicts = [
            PredicateVerdict(kind, kind.is_gate, precision if kind.is_gate else 0,
                             reason="zero-length sub-interval")
            for kind in PredicateKind
        ]
        return evaluate_sub_interval(sub_interval, verdicts, precision)

    def evaluate_sub_interval(
        self,
        operator: str,
        sub_interval: SubInterval,
        previous_release: Optional[ReleaseEvent] = None,
    ) -> SubIntervalEligibility:
        """
        Evaluate all five predicates for one operator and sub-interval.

        MetricUnavailable from any metric only affects its own predicate.
        """
        if sub_interval.duration <= 0:
            return self._zero_length(sub_interval)

        config = self.config
        start, end = sub_interval.start, sub_interval.end
        resolution = config.query_resolution

        def series(key: str):
            return self.sampler.sample(config.metric(key), operator, start, end, resolution)

        verdicts = [
            evaluate_safely(
                PredicateKind.BEACON, evaluate_authorization,
                PredicateKind.BEACON, series("beacon"),
                precision=config.precision, operator=operator,
            ),
            evaluate_safely(
                PredicateKind.TBTC, evaluate_authorization,
                PredicateKind.TBTC, series("tbtc"),
                precision=config.precision, operator=operator,
            ),
            evaluate_safely(
                PredicateKind.UPTIME, evaluate_uptime,
                series("uptime"), sub_interval, config.required_uptime_percent,
                resolution=resolution, precision=config.precision, operator=operator,
            ),
            evaluate_safely(
                PredicateKind.PRE_PARAMS, evaluate_pre_params,
                series("pre_params"), config.required_pre_params,
                precision=config.precision, operator=operator,
            ),
            evaluate_safely(
                PredicateKind.VERSION, evaluate_version,
                series("version"), sub_interval,
                resolution=resolution, precision=config.precision,
                previous_release=previous_release,
                allowed_upgrade_delay=config.allowed_upgrade_delay,
                operator=operator,
            ),
        ]
        return evaluate_sub_interval(sub_interval, verdicts, config.precision)

    def evaluate_operator(
        self,
        operator: str,
        interval: RewardInterval,
        sub_intervals: Sequence[SubInterval],
        releases: Optional[ReleaseSet] = None,
    ) -> OperatorEligibility:
        """Evaluate an operator over every sub-interval of the reward interval."""
        ordered = releases.ascending if releases is not None else ()
        results = []
        for sub_interval in sub_intervals:
            results.append(self.evaluate_sub_interval(
                operator, sub_interval, _previous_release(ordered, sub_interval.applicable_release)
            ))
        return build_operator_eligibility(operator, interval, results, self.config.precision)

    # =========== ALL OPERATORS ===========

    async def _evaluate_one(
        self,
        operator: str,
        stake: int,
        interval: RewardInterval,
        sub_intervals: Sequence[SubInterval],
        releases: ReleaseSet,
        limiter: trio.CapacityLimiter,
        records: Dict[str, RewardRecord],
        eligibilities: Dict[str, OperatorEligibility],
        failures: Dict[str, str],
    ) -> None:
        timeout = self.config.operator_timeout
        try:
            with trio.fail_after(timeout):
                eligibility = await trio.to_thread.run_sync(
                    functools.partial(
                        self.evaluate_operator, operator, interval, sub_intervals, releases
                    ),
                    limiter=limiter,
                    abandon_on_cancel=True,
                )
        except trio.TooSlowError:
            failures[operator] = f"evaluation timed out after {timeout}s"
        except Exception as e:
            failures[operator] = f"{type(e).__name__}: {e}"
        else:
            eligibilities[operator] = eligibility
            records[operator] = build_reward_record(eligibility, stake, self.config)
            return

        logger.error(f"Evaluation failed for {operator}: {failures[operator]}")
        records[operator] = failed_record(operator, stake, failures[operator])

    async def run(
        self,
        interval: RewardInterval,
        releases: ReleaseSet,
        stakes: Mapping[str, int],
    ) -> RewardRun:
        """
        Evaluate every operator and compute their rewards.

        Args:
            interval: Resolved reward interval
            releases: Eligible releases
            stakes: Operator address -> stake in fixed-point token units

        Returns:
            RewardRun with records sorted by operator address
        """
        sub_intervals = partition_interval(interval, releases)
        limiter = trio.CapacityLimiter(self.config.max_concurrent_operators)

        records: Dict[str, RewardRecord] = {}
        eligibilities: Dict[str, OperatorEligibility] = {}
        failures: Dict[str, str] = {}

        logger.info(
            f"Evaluating {len(stakes)} operators over {len(sub_intervals)} sub-interval(s)"
        )
        async with trio.open_nursery() as nursery:
            for operator, stake in stakes.items():
                nursery.start_soon(
                    self._evaluate_one, operator, int(stake), interval, sub_intervals,
                    releases, limiter, records, eligibilities, failures,
                )

        ordered = tuple(records[operator] for operator in sorted(records))
        logger.info(
            f"Evaluated {len(ordered)} operators, {len(failures)} failed, "
            f"total reward {sum(r.reward_amount for r in ordered)}"
        )
        return RewardRun(
            interval=interval,
            releases=releases,
            sub_intervals=sub_intervals,
            records=ordered,
            eligibilities=eligibilities,
            failures=failures,
        )


def _previous_release(
    ordered: Sequence[ReleaseEvent],
    release: Optional[ReleaseEvent],
) -> Optional[ReleaseEvent]:
    if release is None or release not in ordered:
        return None
    index = ordered.index(release)
    return ordered[index - 1] if index > 0 else None


# ============================================================================
# ENTRY POINTS
# ============================================================================

async def run_rewards_async(
    explorer: BlockExplorer,
    release_source: ReleaseSource,
    metrics: MetricsSource,
    stakes: Mapping[str, int],
    start: int,
    end: int,
    config: Optional[RewardsConfig] = None,
    repo: str = KEEP_CORE_REPO,
    pattern: str = RELEASE_TAG_PATTERN,
) -> RewardRun:
    """
    Full reward run: resolve, select releases, evaluate.

    Raises:
        BlockResolutionError, InsufficientReleaseData, InputValidationError:
            Whole-run failures; nothing is evaluated
    """
    config = config or RewardsConfig()
    interval = await resolve_interval(explorer, start, end, timeout=config.request_timeout)
    releases = await select_releases(release_source, config, repo, pattern)
    engine = RewardsEngine(MetricSampler(metrics, config.query_resolution), config)
    return await engine.run(interval, releases, stakes)


def run_rewards(*args, **kwargs) -> RewardRun:
    """Synchronous wrapper around run_rewards_async()."""
    return trio.run(functools.partial(run_rewards_async, *args, **kwargs))
