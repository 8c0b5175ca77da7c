"""
tbtcrewards/config.py

Configuration constants and the RewardsConfig data class.

Every threshold and scale the engine uses is carried in a RewardsConfig
instance that is passed explicitly to the evaluators, the aggregator and
the reward calculator. Nothing in the package reads process-wide mutable
settings.

Usage:
    from tbtcrewards.config import RewardsConfig

    config = RewardsConfig(required_uptime_percent=96)
    config = RewardsConfig.from_env()   # TBTC_REWARDS_* variables
"""

import os
import logging
from dataclasses import dataclass, field, fields, replace
from typing import Dict, Optional

from .errors import InputValidationError

logger = logging.getLogger("tbtcrewards.config")


# ============================================================================
# CONSTANTS
# ============================================================================

# Fixed-point scale for ratios and fractions
PRECISION = 1_000_000
HUNDRED = 100

# Not leap-year adjusted, so re-runs stay reproducible
SECONDS_IN_YEAR = 31_536_000

# Annual reward rate
APR = 15  # percent

# Eligibility thresholds
REQUIRED_PRE_PARAMS = 500
REQUIRED_UPTIME = 96  # percent

# 1min sampling time for the metrics
QUERY_RESOLUTION = 60

# 10min step when searching for operators
OPERATORS_SEARCH_QUERY_STEP = 600

# Upgrade grace period after a release (3 weeks). Disabled by default.
ALLOWED_UPGRADE_DELAY = 1_814_400

# Release tags: 2 by default, 3 when a hot fix makes all three eligible
ELIGIBLE_NUMBER_OF_TAGS = 2
MAX_ELIGIBLE_NUMBER_OF_TAGS = 3

# tBTC v2 rewards are calculated since Oct 1st 2022
TBTC_V2_REWARDS_START = 1_664_582_400

# The block explorer cannot resolve "now"
REWARDS_END_OFFSET = 15 * 60

# Sentinel value of an authorized module
AUTHORIZED = 1

# Upstream defaults
PROMETHEUS_API_DEFAULT = "https://monitoring.threshold.network/prometheus/api/v1"
PROMETHEUS_JOB_DEFAULT = "keep-discovered-nodes"
NETWORK_DEFAULT = "mainnet"
KEEP_CORE_REPO = "keep-network/keep-core"
RELEASE_TAG_PATTERN = "v[0-9]*.*-m[0-9]"

# Metric names exposed by the keep-core client
METRIC_NAMES: Dict[str, str] = {
    "beacon": "beacon_authorization",
    "tbtc": "tbtc_authorization",
    "uptime": "up",
    "pre_params": "tbtc_pre_params_count",
    "version": "client_info",
}

ENV_PREFIX = "TBTC_REWARDS_"


@dataclass(frozen=True)
class RewardsConfig:
    """
    Thresholds, scales and limits recognized by the engine.

    Usage:
        config = RewardsConfig(
            required_pre_params=500,
            required_uptime_percent=96,
        )
    """

    # Eligibility thresholds
    required_pre_params: int = REQUIRED_PRE_PARAMS
    required_uptime_percent: int = REQUIRED_UPTIME

    # Reward rate
    annual_rate_percent: int = APR

    # Sampling
    query_resolution: int = QUERY_RESOLUTION

    # Releases
    eligible_release_tags: int = ELIGIBLE_NUMBER_OF_TAGS
    allowed_upgrade_delay: int = 0  # seconds, 0 = no grace period

    # Fixed-point scale
    precision: int = PRECISION

    # Upstream calls
    request_timeout: float = 30.0
    operator_timeout: float = 300.0
    max_concurrent_operators: int = 8

    # Metric names (beacon, tbtc, uptime, pre_params, version)
    metric_names: Dict[str, str] = field(default_factory=lambda: dict(METRIC_NAMES))

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        """
        Check every field is in range.

        Raises:
            InputValidationError: On the first malformed setting
        """
        if self.required_pre_params < 0:
            raise InputValidationError(
                f"required_pre_params must be non-negative, got {self.required_pre_params}"
            )
        if not 0 <= self.required_uptime_percent <= HUNDRED:
            raise InputValidationError(
                f"required_uptime_percent must be within [0, 100], got {self.required_uptime_percent}"
            )
        if self.annual_rate_percent < 0:
            raise InputValidationError(
                f"annual_rate_percent must be non-negative, got {self.annual_rate_percent}"
            )
        if self.query_resolution <= 0:
            raise InputValidationError(
                f"query_resolution must be positive, got {self.query_resolution}"
            )
        if not 2 <= self.eligible_release_tags <= MAX_ELIGIBLE_NUMBER_OF_TAGS:
            raise InputValidationError(
                f"eligible_release_tags must be 2 or {MAX_ELIGIBLE_NUMBER_OF_TAGS}, "
                f"got {self.eligible_release_tags}"
            )
        if self.allowed_upgrade_delay < 0:
            raise InputValidationError(
                f"allowed_upgrade_delay must be non-negative, got {self.allowed_upgrade_delay}"
            )
        if self.precision <= 0:
            raise InputValidationError(f"precision must be positive, got {self.precision}")
        if self.request_timeout <= 0 or self.operator_timeout <= 0:
            raise InputValidationError("timeouts must be positive")
        if self.max_concurrent_operators < 1:
            raise InputValidationError(
                f"max_concurrent_operators must be at least 1, got {self.max_concurrent_operators}"
            )
        missing = set(METRIC_NAMES) - set(self.metric_names)
        if missing:
            raise InputValidationError(f"metric_names missing entries: {sorted(missing)}")

    def metric(self, key: str) -> str:
        """Get the upstream metric name for a predicate key."""
        return self.metric_names[key]

    def with_overrides(self, **overrides) -> "RewardsConfig":
        """Copy with the given non-None fields replaced."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **changes) if changes else self

    def to_dict(self) -> dict:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_env(cls, environ: Optional[Dict[str, str]] = None) -> "RewardsConfig":
        """
        Create configuration from TBTC_REWARDS_* environment variables.

        Variable names are the upper-cased field names, e.g.
        TBTC_REWARDS_REQUIRED_UPTIME_PERCENT=96. Unset variables keep
        their defaults.

        Raises:
            InputValidationError: If a variable cannot be parsed
        """
        environ = os.environ if environ is None else environ
        values = {}
        for f in fields(cls):
            if f.name == "metric_names":
                continue
            raw = environ.get(f"{ENV_PREFIX}{f.name.upper()}")
            if raw is None or raw.strip() == "":
                continue
            caster = float if f.name.endswith("timeout") else int
            try:
                values[f.name] = caster(raw.strip())
            except ValueError:
                raise InputValidationError(
                    f"Invalid value for {ENV_PREFIX}{f.name.upper()}: {raw!r}"
                )
            logger.debug(f"Config override from environment: {f.name}={values[f.name]}")
        return cls(**values)
