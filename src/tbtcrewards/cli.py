"""
tbtcrewards/cli.py

Command-line entry point: tbtc-rewards.

Resolves the reward window, lists eligible client releases, evaluates
every operator and writes the JSON report. Any whole-run failure (block
resolution, release listing, invalid input) exits with status 1 and
writes nothing.

Usage:
    tbtc-rewards --etherscan-token $TOKEN --output rewards.json \\
        --stakes-file stakes.json

    tbtc-rewards --etherscan-token $TOKEN --output rewards.json \\
        --operator-address 0xabc... --stake 40000000000000000000000
"""

import json
import logging
import sys
from typing import Dict, Optional, Sequence

import click

from .clients import ETHERSCAN_APIS, EtherscanClient, GitHubReleaseClient, PrometheusClient
from .config import (
    KEEP_CORE_REPO,
    MAX_ELIGIBLE_NUMBER_OF_TAGS,
    NETWORK_DEFAULT,
    PROMETHEUS_API_DEFAULT,
    PROMETHEUS_JOB_DEFAULT,
    RELEASE_TAG_PATTERN,
    RewardsConfig,
)
from .engine import run_rewards
from .errors import InputValidationError, RewardsError
from .interval import monthly_reward_window
from .report import build_report, write_report

logger = logging.getLogger("tbtcrewards.cli")


LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def load_stakes(path: Optional[str]) -> Dict[str, int]:
    """
    Load operator stakes from a JSON object of address -> amount.

    Amounts may be integers or decimal strings in fixed-point token units.

    Raises:
        InputValidationError: If the file is unreadable or malformed
    """
    if not path:
        return {}
    try:
        with open(path) as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        raise InputValidationError(f"Cannot read stakes file {path}: {e}")

    if not isinstance(data, dict):
        raise InputValidationError(f"Stakes file {path} must hold a JSON object")

    stakes = {}
    for address, amount in data.items():
        try:
            stake = int(str(amount))
        except ValueError:
            raise InputValidationError(f"Invalid stake for {address}: {amount!r}")
        if stake < 0:
            raise InputValidationError(f"Negative stake for {address}: {stake}")
        stakes[address] = stake
    return stakes


def resolve_stakes(
    operators: Sequence[str],
    stakes: Dict[str, int],
    default_stake: Optional[int],
) -> Dict[str, int]:
    """
    Match every operator to a stake.

    Raises:
        InputValidationError: If an operator has no stake and no default
            was given
    """
    resolved = {}
    for operator in operators:
        if operator in stakes:
            resolved[operator] = stakes[operator]
        elif default_stake is not None:
            resolved[operator] = default_stake
        else:
            raise InputValidationError(f"No stake for operator {operator}")
    return resolved


@click.command(name="tbtc-rewards")
@click.option("--etherscan-token", envvar="ETHERSCAN_TOKEN", required=True,
              help="Etherscan API key token.")
@click.option("--etherscan-api", default=None,
              help="Etherscan API URL (default: derived from --network).")
@click.option("--network", type=click.Choice(sorted(ETHERSCAN_APIS)), default=NETWORK_DEFAULT,
              show_default=True, help="Ethereum network.")
@click.option("--prometheus-api", default=PROMETHEUS_API_DEFAULT, show_default=True,
              help="Prometheus API URL.")
@click.option("--prometheus-job", default=PROMETHEUS_JOB_DEFAULT, show_default=True,
              help="Prometheus service discovery job name.")
@click.option("--github-token", envvar="GITHUB_TOKEN", default=None,
              help="GitHub token for release listing.")
@click.option("--operator-address", "operator_addresses", multiple=True,
              help="Operator address to evaluate (repeatable). Discovered from "
                   "Prometheus when omitted.")
@click.option("--stake", type=int, default=None,
              help="Stake for operators missing from --stakes-file.")
@click.option("--stakes-file", type=click.Path(exists=True, dir_okay=False), default=None,
              help="JSON object of operator address -> stake.")
@click.option("--output", required=True, type=click.Path(dir_okay=False),
              help="Report output path.")
@click.option("--required-pre-params", type=click.IntRange(min=0), default=None,
              help="Required pre-parameter count.")
@click.option("--required-uptime", type=click.IntRange(0, 100), default=None,
              help="Required uptime in percent.")
@click.option("--start-timestamp", type=int, default=None,
              help="Interval start (default: first day of the current month).")
@click.option("--end-timestamp", type=int, default=None,
              help="Interval end (default: 15 minutes ago).")
@click.option("--release-tags", type=click.IntRange(2, MAX_ELIGIBLE_NUMBER_OF_TAGS), default=None,
              help="Number of eligible release tags.")
@click.option("--upgrade-delay", type=click.IntRange(min=0), default=None,
              help="Seconds the previous release stays current after a new one.")
@click.option("--request-timeout", type=float, default=None,
              help="Per-request timeout in seconds.")
@click.option("--concurrency", type=click.IntRange(min=1), default=None,
              help="Operators evaluated at once.")
@click.option("--log-level", type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"],
                                               case_sensitive=False),
              default="INFO", show_default=True)
def main(
    etherscan_token,
    etherscan_api,
    network,
    prometheus_api,
    prometheus_job,
    github_token,
    operator_addresses,
    stake,
    stakes_file,
    output,
    required_pre_params,
    required_uptime,
    start_timestamp,
    end_timestamp,
    release_tags,
    upgrade_delay,
    request_timeout,
    concurrency,
    log_level,
):
    """Calculate tBTC staker rewards for a reward interval."""
    logging.basicConfig(level=getattr(logging, log_level.upper()), format=LOG_FORMAT)

    try:
        config = RewardsConfig.from_env().with_overrides(
            required_pre_params=required_pre_params,
            required_uptime_percent=required_uptime,
            eligible_release_tags=release_tags,
            allowed_upgrade_delay=upgrade_delay,
            request_timeout=request_timeout,
            max_concurrent_operators=concurrency,
        )

        default_start, default_end = monthly_reward_window()
        start = default_start if start_timestamp is None else start_timestamp
        end = default_end if end_timestamp is None else end_timestamp
        if start >= end:
            raise InputValidationError(f"Interval start must precede end: {start} >= {end}")

        explorer = EtherscanClient(
            api_key=etherscan_token,
            api_url=etherscan_api,
            network=network,
            timeout=config.request_timeout,
        )
        metrics = PrometheusClient(
            api_url=prometheus_api,
            job=prometheus_job,
            timeout=config.request_timeout,
        )
        releases = GitHubReleaseClient(token=github_token, timeout=config.request_timeout)

        operators = list(operator_addresses) or metrics.discover_operators(start, end)
        stakes = resolve_stakes(operators, load_stakes(stakes_file), stake)

        run = run_rewards(
            explorer=explorer,
            release_source=releases,
            metrics=metrics,
            stakes=stakes,
            start=start,
            end=end,
            config=config,
            repo=KEEP_CORE_REPO,
            pattern=RELEASE_TAG_PATTERN,
        )
        write_report(output, build_report(run, config))
    except RewardsError as e:
        logger.error(f"Reward calculation aborted: {type(e).__name__}: {e}")
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    click.echo(f"Rewards for {len(run.records)} operators written to {output}")


if __name__ == "__main__":
    main()
