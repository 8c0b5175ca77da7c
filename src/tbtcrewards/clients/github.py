"""
tbtcrewards/clients/github.py

Release tag listing from GitHub.

Tags are filtered with the same glob git uses for keep-core client
releases ("v[0-9]*.*-m[0-9]") and sorted newest version first.
"""

import fnmatch
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

import requests

from ..config import KEEP_CORE_REPO, RELEASE_TAG_PATTERN
from ..errors import InsufficientReleaseData
from ..interval import ReleaseEvent
from ..versioning import parse_version

logger = logging.getLogger("tbtcrewards.clients.github")


GITHUB_API_DEFAULT = "https://api.github.com"


def _parse_time(value: str) -> int:
    # GitHub timestamps look like 2023-01-31T12:00:00Z
    return int(datetime.fromisoformat(value.replace("Z", "+00:00")).timestamp())


class GitHubReleaseClient:
    """Lists client releases of an upstream repository."""

    def __init__(
        self,
        api_url: str = GITHUB_API_DEFAULT,
        token: Optional[str] = None,
        timeout: float = 30.0,
        per_page: int = 100,
        session: Optional[requests.Session] = None,
    ):
        self.api_url = api_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self.per_page = per_page
        self.session = session or requests.Session()

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/vnd.github+json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _fetch_releases(self, repo: str) -> List[Dict[str, Any]]:
        url = f"{self.api_url}/repos/{repo}/releases"
        try:
            response = self.session.get(
                url,
                params={"per_page": self.per_page},
                headers=self._headers(),
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.json()
        except requests.Timeout as e:
            raise InsufficientReleaseData(f"Release listing timed out after {self.timeout}s") from e
        except requests.RequestException as e:
            raise InsufficientReleaseData(f"Release listing failed: {e}") from e
        except ValueError as e:
            raise InsufficientReleaseData(f"Invalid release listing: {e}") from e

        if not isinstance(data, list):
            raise InsufficientReleaseData(f"Unexpected release listing for {repo}")
        return data

    def list_release_tags(
        self,
        repo: str = KEEP_CORE_REPO,
        pattern: str = RELEASE_TAG_PATTERN,
    ) -> List[ReleaseEvent]:
        """
        List release tags matching a glob, newest version first.

        Draft releases are skipped; the release's publication time is used
        as the tag timestamp.

        Raises:
            InsufficientReleaseData: If fewer than 2 tags match or the
                listing fails
        """
        events = []
        for release in self._fetch_releases(repo):
            tag = release.get("tag_name") or ""
            if release.get("draft") or not fnmatch.fnmatchcase(tag, pattern):
                continue
            published = release.get("published_at") or release.get("created_at")
            if not published or parse_version(tag) is None:
                logger.debug(f"Skipping release without date or version: {tag}")
                continue
            events.append(ReleaseEvent(tag=tag, timestamp=_parse_time(published)))

        events.sort(key=lambda e: (parse_version(e.tag), e.timestamp), reverse=True)
        logger.info(f"Found {' '.join(e.tag for e in events)} tags")

        if len(events) < 2:
            raise InsufficientReleaseData(
                f"At least 2 release tags matching {pattern} are required, found {len(events)}"
            )
        return events
