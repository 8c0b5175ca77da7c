"""
tbtcrewards/report.py

JSON report for a reward run.

The report is deterministic: records are sorted by operator address, keys
are sorted, and token amounts are written as decimal strings so large
stakes survive JSON consumers that parse numbers as floats. Percentages
are display-only; the fixed-point values sit next to them.

Usage:
    from tbtcrewards.report import build_report, write_report

    report = build_report(run, config)
    write_report("rewards.json", report)
"""

import json
import logging
import os
import tempfile
from typing import Any, Dict, Optional

from .config import RewardsConfig
from .engine import RewardRun
from .rewards import EligibilityStatus, to_display_percent

logger = logging.getLogger("tbtcrewards.report")


REPORT_VERSION = 1


def build_report(run: RewardRun, config: Optional[RewardsConfig] = None) -> Dict[str, Any]:
    """
    Assemble the report of a reward run.

    Args:
        run: Completed reward run
        config: Configuration the run used

    Returns:
        JSON-serializable dict
    """
    config = config or RewardsConfig()
    precision = config.precision

    operators = {}
    for record in run.records:
        entry = record.to_dict(precision)
        eligibility = run.eligibilities.get(record.operator_address)
        if eligibility is not None:
            entry["sub_intervals"] = [
                dict(
                    result.to_dict(),
                    fraction_percent=to_display_percent(result.fraction, precision),
                )
                for result in eligibility.sub_intervals
            ]
        operators[record.operator_address] = entry

    statuses = {status.value: 0 for status in EligibilityStatus}
    for record in run.records:
        statuses[record.status.value] += 1

    return {
        "version": REPORT_VERSION,
        "interval": run.interval.to_dict(),
        "releases": [event.to_dict() for event in run.releases],
        "sub_intervals": [sub.to_dict() for sub in run.sub_intervals],
        "config": config.to_dict(),
        "operators": operators,
        "summary": {
            "operators": len(run.records),
            "total_reward": str(sum(r.reward_amount for r in run.records)),
            "statuses": statuses,
        },
        "failures": dict(sorted(run.failures.items())),
    }


def dumps_report(report: Dict[str, Any]) -> str:
    return json.dumps(report, indent=4, sort_keys=True) + "\n"


def write_report(path: str, report: Dict[str, Any]) -> None:
    """
    Write a report to disk.

    The file is written to a temporary name in the same directory and
    renamed into place, so a failed write never leaves a partial report.
    """
    directory = os.path.dirname(os.path.abspath(path))
    os.makedirs(directory, exist_ok=True)

    fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".rewards-", suffix=".json")
    try:
        with os.fdopen(fd, "w") as f:
            f.write(dumps_report(report))
        os.replace(tmp_path, path)
    except OSError:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise

    logger.info(f"Wrote report for {len(report.get('operators', {}))} operators to {path}")
