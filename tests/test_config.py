"""
tbtcrewards/tests/test_config.py

Tests for RewardsConfig.
"""

import pytest
from tbtcrewards.config import (
    METRIC_NAMES,
    PRECISION,
    REQUIRED_PRE_PARAMS,
    REQUIRED_UPTIME,
    RewardsConfig,
)
from tbtcrewards.errors import InputValidationError


class TestRewardsConfig:
    """Test configuration defaults and validation."""

    def test_defaults(self):
        config = RewardsConfig()
        assert config.required_pre_params == REQUIRED_PRE_PARAMS == 500
        assert config.required_uptime_percent == REQUIRED_UPTIME == 96
        assert config.annual_rate_percent == 15
        assert config.query_resolution == 60
        assert config.eligible_release_tags == 2
        assert config.precision == PRECISION
        assert config.allowed_upgrade_delay == 0

    @pytest.mark.parametrize("kwargs", [
        {"required_pre_params": -1},
        {"required_uptime_percent": 101},
        {"required_uptime_percent": -1},
        {"annual_rate_percent": -5},
        {"query_resolution": 0},
        {"eligible_release_tags": 1},
        {"eligible_release_tags": 4},
        {"precision": 0},
        {"request_timeout": 0},
        {"max_concurrent_operators": 0},
        {"metric_names": {"uptime": "up"}},
    ])
    def test_invalid_values(self, kwargs):
        """Test malformed thresholds fail before any evaluation."""
        with pytest.raises(InputValidationError):
            RewardsConfig(**kwargs)

    def test_metric_lookup(self):
        config = RewardsConfig()
        assert config.metric("uptime") == "up"
        assert config.metric("version") == "client_info"

    def test_with_overrides_skips_none(self):
        """Test None overrides keep the current values."""
        config = RewardsConfig().with_overrides(required_uptime_percent=90, required_pre_params=None)
        assert config.required_uptime_percent == 90
        assert config.required_pre_params == 500

    def test_with_overrides_validates(self):
        with pytest.raises(InputValidationError):
            RewardsConfig().with_overrides(required_uptime_percent=200)

    def test_to_dict(self):
        data = RewardsConfig().to_dict()
        assert data["required_pre_params"] == 500
        assert data["metric_names"] == METRIC_NAMES


class TestFromEnv:
    """Test environment configuration."""

    def test_empty_environment(self):
        assert RewardsConfig.from_env({}) == RewardsConfig()

    def test_reads_prefixed_variables(self):
        config = RewardsConfig.from_env({
            "TBTC_REWARDS_REQUIRED_UPTIME_PERCENT": "90",
            "TBTC_REWARDS_REQUEST_TIMEOUT": "12.5",
            "TBTC_REWARDS_ELIGIBLE_RELEASE_TAGS": "3",
            "UNRELATED": "x",
        })
        assert config.required_uptime_percent == 90
        assert config.request_timeout == 12.5
        assert config.eligible_release_tags == 3

    def test_blank_variable_ignored(self):
        assert RewardsConfig.from_env({"TBTC_REWARDS_REQUIRED_PRE_PARAMS": " "}).required_pre_params == 500

    def test_unparseable_variable(self):
        with pytest.raises(InputValidationError):
            RewardsConfig.from_env({"TBTC_REWARDS_REQUIRED_PRE_PARAMS": "many"})
