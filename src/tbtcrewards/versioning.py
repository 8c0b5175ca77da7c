"""
tbtcrewards/versioning.py

Client version parsing for release currency checks.

keep-core release tags look like "v2.0.0-m3": semantic version plus a
milestone suffix. Operators report the same format through the
client_info metric, sometimes with a build suffix ("v2.0.0-m3-7-gabc123").

Usage:
    from tbtcrewards.versioning import ClientVersion

    if ClientVersion.from_string("v2.1.0-m1") >= ClientVersion.from_string("v2.0.0-m3"):
        # current
        pass
"""

import re
import logging
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger("tbtcrewards.versioning")


VERSION_PATTERN = re.compile(r"^v?(\d+)\.(\d+)\.(\d+)(?:-m(\d+))?")


@dataclass(frozen=True, order=True)
class ClientVersion:
    """
    Ordered client version.

    Compares as (major, minor, patch, milestone). A tag without a
    milestone suffix is treated as milestone 0.
    """
    major: int
    minor: int
    patch: int
    milestone: int = 0

    def __str__(self) -> str:
        base = f"v{self.major}.{self.minor}.{self.patch}"
        return f"{base}-m{self.milestone}" if self.milestone else base

    def __repr__(self) -> str:
        return f"ClientVersion({self})"

    @classmethod
    def from_string(cls, version_str: str) -> "ClientVersion":
        """
        Parse version from a tag or reported version string.

        Args:
            version_str: Version like "v2.0.0-m3" or "2.0.0"

        Returns:
            ClientVersion instance

        Raises:
            ValueError: If string is not a valid version
        """
        if not isinstance(version_str, str):
            raise ValueError(f"Invalid version string {version_str!r}")

        match = VERSION_PATTERN.match(version_str.strip())
        if not match:
            raise ValueError(f"Invalid version string '{version_str}'")

        major, minor, patch, milestone = match.groups()
        return cls(
            major=int(major),
            minor=int(minor),
            patch=int(patch),
            milestone=int(milestone) if milestone else 0,
        )

    def meets(self, required: "ClientVersion") -> bool:
        """Check if this version is the required one or newer."""
        return self >= required


def parse_version(version_str: Optional[str]) -> Optional[ClientVersion]:
    """
    Parse a version, returning None for missing or unparseable input.

    Reported versions come from operators and may be anything; an
    unparseable one simply never meets a release bar.
    """
    if not version_str:
        return None
    try:
        return ClientVersion.from_string(version_str)
    except ValueError:
        logger.debug(f"Ignoring invalid version: {version_str}")
        return None
