"""
tbtcrewards - tBTC staker reward calculation

Decides, for every operator, what share of a reward interval it was
eligible for and prices that share against its stake:
- Release-bounded sub-intervals of the reward interval
- Gate predicates: Beacon/tBTC authorization, pre-parameter inventory
- Ratio predicates: uptime and client version currency
- Fixed-point arithmetic end to end
- Parallel per-operator evaluation on trio

Usage:
    from tbtcrewards import RewardsConfig, run_rewards
    from tbtcrewards.clients import EtherscanClient, GitHubReleaseClient, PrometheusClient

    run = run_rewards(
        explorer=EtherscanClient(api_key=token),
        release_source=GitHubReleaseClient(),
        metrics=PrometheusClient(),
        stakes={"0xabc...": 40_000 * 10**18},
        start=start,
        end=end,
        config=RewardsConfig(required_uptime_percent=96),
    )

CLI Usage:
    tbtc-rewards --etherscan-token $TOKEN --stakes-file stakes.json --output rewards.json
"""

from .config import RewardsConfig, PRECISION, SECONDS_IN_YEAR
from .errors import (
    RewardsError,
    InputValidationError,
    InsufficientReleaseData,
    BlockResolutionError,
    MetricUnavailable,
)
from .versioning import ClientVersion
from .interval import (
    RewardInterval,
    ReleaseEvent,
    ReleaseSet,
    SubInterval,
    partition_interval,
)
from .sampler import MetricSample, MetricSampler
from .predicates import PredicateKind, PredicateVerdict
from .eligibility import OperatorEligibility, aggregate_verdicts
from .rewards import EligibilityStatus, RewardRecord, calculate_reward, to_display_percent
from .engine import RewardRun, RewardsEngine, run_rewards
from .report import build_report, write_report

__version__ = "1.0.0"
__all__ = [
    "RewardsConfig",
    "PRECISION",
    "SECONDS_IN_YEAR",
    "RewardsError",
    "InputValidationError",
    "InsufficientReleaseData",
    "BlockResolutionError",
    "MetricUnavailable",
    "ClientVersion",
    "RewardInterval",
    "ReleaseEvent",
    "ReleaseSet",
    "SubInterval",
    "partition_interval",
    "MetricSample",
    "MetricSampler",
    "PredicateKind",
    "PredicateVerdict",
    "OperatorEligibility",
    "aggregate_verdicts",
    "EligibilityStatus",
    "RewardRecord",
    "calculate_reward",
    "to_display_percent",
    "RewardRun",
    "RewardsEngine",
    "run_rewards",
    "build_report",
    "write_report",
]
