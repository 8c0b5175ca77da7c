"""
tbtcrewards/interval.py

Reward interval and its partition into release-bounded sub-intervals.

Version currency is judged against the client release that was current
at the start of each sub-interval, so every release published inside the
reward interval opens a new sub-interval.

Usage:
    from tbtcrewards.interval import RewardInterval, ReleaseSet, partition_interval

    interval = RewardInterval(start, end, start_block, end_block)
    releases = ReleaseSet.from_events(events, max_size=2)
    sub_intervals = partition_interval(interval, releases)
"""

import logging
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence, Tuple, Union

from .config import (
    ELIGIBLE_NUMBER_OF_TAGS,
    MAX_ELIGIBLE_NUMBER_OF_TAGS,
    REWARDS_END_OFFSET,
    TBTC_V2_REWARDS_START,
)
from .errors import InputValidationError, InsufficientReleaseData
from .versioning import ClientVersion, parse_version

logger = logging.getLogger("tbtcrewards.interval")


# ============================================================================
# DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True)
class RewardInterval:
    """The overall reward window and its block bounds."""
    start: int          # Unix timestamp
    end: int            # Unix timestamp
    start_block: int
    end_block: int

    def __post_init__(self):
        if self.start >= self.end:
            raise InputValidationError(
                f"Interval start must precede end: {self.start} >= {self.end}"
            )
        if self.start_block < 0 or self.end_block < 0:
            raise InputValidationError("Block numbers must be non-negative")
        if self.start_block > self.end_block:
            raise InputValidationError(
                f"Block numbers must be monotonic with time: "
                f"{self.start_block} > {self.end_block}"
            )

    @property
    def duration(self) -> int:
        return self.end - self.start

    def to_dict(self) -> dict:
        return {
            "start": self.start,
            "end": self.end,
            "start_block": self.start_block,
            "end_block": self.end_block,
        }


@dataclass(frozen=True)
class ReleaseEvent:
    """A client release tag and the time it was published."""
    tag: str
    timestamp: int

    @property
    def version(self) -> Optional[ClientVersion]:
        return parse_version(self.tag)

    def to_dict(self) -> dict:
        return {"tag": self.tag, "timestamp": self.timestamp}


@dataclass(frozen=True)
class SubInterval:
    """A partition of the reward interval with the release it is judged against."""
    start: int
    end: int
    applicable_release: Optional[ReleaseEvent] = None

    @property
    def duration(self) -> int:
        return self.end - self.start

    def to_dict(self) -> dict:
        return {
            "start": self.start,
            "end": self.end,
            "applicable_release": (
                self.applicable_release.to_dict() if self.applicable_release else None
            ),
        }


@dataclass(frozen=True)
class ReleaseSet:
    """
    Bounded, validated collection of release events.

    Releases arrive newest first from the source-control client. The set
    checks the order is chronological (in either direction), that at
    least 2 and at most max_size releases are present, and exposes them
    sorted ascending.
    """
    events: Tuple[ReleaseEvent, ...]
    max_size: int = ELIGIBLE_NUMBER_OF_TAGS

    def __post_init__(self):
        if not 2 <= self.max_size <= MAX_ELIGIBLE_NUMBER_OF_TAGS:
            raise InputValidationError(
                f"Release cap must be between 2 and {MAX_ELIGIBLE_NUMBER_OF_TAGS}, "
                f"got {self.max_size}"
            )
        if len(self.events) < 2:
            raise InsufficientReleaseData(
                f"At least 2 release tags are required, got {len(self.events)}"
            )
        if len(self.events) > self.max_size:
            raise InputValidationError(
                f"At most {self.max_size} release tags are considered, got {len(self.events)}"
            )
        timestamps = [e.timestamp for e in self.events]
        ascending = all(a <= b for a, b in zip(timestamps, timestamps[1:]))
        descending = all(a >= b for a, b in zip(timestamps, timestamps[1:]))
        if not (ascending or descending):
            raise InputValidationError(
                f"Release list is not chronological: {[e.tag for e in self.events]}"
            )

    @classmethod
    def from_events(
        cls,
        events: Iterable[ReleaseEvent],
        max_size: int = ELIGIBLE_NUMBER_OF_TAGS,
    ) -> "ReleaseSet":
        return cls(events=tuple(events), max_size=max_size)

    @property
    def ascending(self) -> Tuple[ReleaseEvent, ...]:
        return tuple(sorted(self.events, key=lambda e: e.timestamp))

    def __len__(self) -> int:
        return len(self.events)

    def __iter__(self):
        return iter(self.ascending)


# ============================================================================
# PARTITIONING
# ============================================================================

def latest_release_at(
    releases: Sequence[ReleaseEvent],
    timestamp: int,
) -> Optional[ReleaseEvent]:
    """
    Get the most recent release published at or before a timestamp.

    Args:
        releases: Releases sorted ascending by timestamp
        timestamp: Point in time

    Returns:
        The release, or None if every release is later
    """
    current = None
    for release in releases:
        if release.timestamp <= timestamp:
            current = release
        else:
            break
    return current


def partition_interval(
    interval: RewardInterval,
    releases: Union[ReleaseSet, Sequence[ReleaseEvent]],
) -> Tuple[SubInterval, ...]:
    """
    Split a reward interval at release boundaries.

    Every release timestamp strictly inside (start, end) is a split point.
    Releases outside the interval never split it, but the nearest one
    before the interval still applies to the first sub-interval.

    Args:
        interval: The reward interval
        releases: At least 2 release events, in chronological order

    Returns:
        Sub-intervals that exactly tile the interval, in order

    Raises:
        InsufficientReleaseData: If fewer than 2 releases are given
        InputValidationError: If the release list is not chronological
    """
    if not isinstance(releases, ReleaseSet):
        releases = ReleaseSet.from_events(
            releases,
            max_size=max(ELIGIBLE_NUMBER_OF_TAGS, min(len(releases), MAX_ELIGIBLE_NUMBER_OF_TAGS)),
        )

    ordered = releases.ascending
    split_points = sorted({
        r.timestamp for r in ordered
        if interval.start < r.timestamp < interval.end
    })

    boundaries = [interval.start] + split_points + [interval.end]
    sub_intervals = tuple(
        SubInterval(
            start=start,
            end=end,
            applicable_release=latest_release_at(ordered, start),
        )
        for start, end in zip(boundaries, boundaries[1:])
    )

    logger.debug(
        f"Partitioned interval {interval.start}-{interval.end} into "
        f"{len(sub_intervals)} sub-interval(s)"
    )
    return sub_intervals


# ============================================================================
# CALENDAR WINDOW
# ============================================================================

def monthly_reward_window(now: Optional[int] = None) -> Tuple[int, int]:
    """
    Get the default reward window for a run.

    The window ends 15 minutes before now, since the block explorer cannot
    resolve a block for the current second, and starts at 00:00 UTC on
    the first day of that month. It never starts before tBTC v2 rewards
    began (2022-10-01).

    Args:
        now: Unix timestamp (defaults to current time)

    Returns:
        (start, end) Unix timestamps
    """
    if now is None:
        now = int(datetime.now(timezone.utc).timestamp())

    end = now - REWARDS_END_OFFSET
    end_dt = datetime.fromtimestamp(end, tz=timezone.utc)
    month_start = end_dt.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    start = max(int(month_start.timestamp()), TBTC_V2_REWARDS_START)

    return start, end
