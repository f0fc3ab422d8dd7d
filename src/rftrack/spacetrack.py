"""Space-Track.org client for fetching current element sets.

Downloads the latest TLE for a list of NORAD IDs so a prediction run uses
up-to-date orbits. Responses are cached on disk for 24 hours and requests
are spaced to stay within Space-Track's published rate limits.

Requires a free account at https://www.space-track.org/auth/createAccount

Credentials come from the rftrack config file, the constructor, or the
environment::

    export SPACETRACK_USER="your@email.com"
    export SPACETRACK_PASS="your_password"
"""

from __future__ import annotations

import logging
import os
import time
from pathlib import Path
from typing import Optional, Union

import requests
from tqdm import tqdm

from .tle import TLE, iter_records

logger = logging.getLogger(__name__)

BASE_URL = "https://www.space-track.org"
LOGIN_URL = f"{BASE_URL}/ajaxauth/login"
QUERY_URL = f"{BASE_URL}/basicspacedata/query"

# Space-Track rate limits: 30 requests per minute, 300 per hour
RATE_LIMIT_DELAY = 2.5  # seconds between requests
CACHE_MAX_AGE_HOURS = 24
BATCH_SIZE = 100
"""NORAD IDs per ``gp`` query."""


class SpaceTrackClient:
    """Client for the Space-Track.org REST API."""

    def __init__(
        self,
        username: Optional[str] = None,
        password: Optional[str] = None,
        cache_dir: Optional[Path] = None,
    ):
        self.username = username or os.environ.get("SPACETRACK_USER", "")
        self.password = password or os.environ.get("SPACETRACK_PASS", "")
        self.cache_dir = cache_dir or Path.home() / ".cache" / "rftrack"
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self.session = requests.Session()
        self._authenticated = False
        self._last_request_time = 0.0

    def __repr__(self) -> str:
        return f"SpaceTrackClient(username={self.username!r}, cache_dir={str(self.cache_dir)!r})"

    def _authenticate(self):
        if self._authenticated:
            return

        if not self.username or not self.password:
            raise ValueError(
                "Space-Track credentials required. Set them in the rftrack config, "
                "the SPACETRACK_USER and SPACETRACK_PASS environment variables, "
                "or pass them to the constructor.\n"
                "Register free at: https://www.space-track.org/auth/createAccount"
            )

        resp = self.session.post(
            LOGIN_URL,
            data={"identity": self.username, "password": self.password},
        )
        if resp.status_code != 200 or "Login Failed" in resp.text:
            raise ConnectionError(
                f"Space-Track authentication failed (HTTP {resp.status_code})"
            )

        self._authenticated = True
        logger.info("Authenticated with Space-Track")

    def _rate_limit(self):
        elapsed = time.time() - self._last_request_time
        if elapsed < RATE_LIMIT_DELAY:
            time.sleep(RATE_LIMIT_DELAY - elapsed)
        self._last_request_time = time.time()

    def _query(self, endpoint: str, use_cache: bool = True) -> str:
        """Execute a query, serving it from the disk cache when fresh."""
        cache_key = endpoint.replace("/", "_").replace(" ", "_").replace(",", "-")[:200]
        cache_file = self.cache_dir / f"{cache_key}.txt"

        if use_cache and cache_file.exists():
            age_hours = (time.time() - cache_file.stat().st_mtime) / 3600
            if age_hours < CACHE_MAX_AGE_HOURS:
                logger.debug("Cache hit: %s", cache_file.name)
                return cache_file.read_text()

        self._authenticate()
        self._rate_limit()

        url = f"{QUERY_URL}/{endpoint}"
        logger.info("Querying: %s", url)

        resp = self.session.get(url)
        resp.raise_for_status()

        if use_cache:
            cache_file.write_text(resp.text)

        return resp.text

    def get_latest_tles(self, norad_ids: list[int], use_cache: bool = True) -> str:
        """Fetch the newest 3-line element set for each satellite.

        Args:
            norad_ids: NORAD catalog numbers.
            use_cache: Serve batches from the disk cache when fresh.

        Returns:
            TLE text (title, line 1, line 2 per satellite), ordered by NORAD ID.
        """
        ids = sorted(set(norad_ids))
        batches = [ids[i:i + BATCH_SIZE] for i in range(0, len(ids), BATCH_SIZE)]

        chunks = []
        for batch in tqdm(batches, desc="Fetching TLEs", disable=len(batches) < 2):
            id_list = ",".join(str(n) for n in batch)
            endpoint = (
                f"class/gp/NORAD_CAT_ID/{id_list}/"
                f"orderby/NORAD_CAT_ID asc/format/3le"
            )
            raw = self._query(endpoint, use_cache=use_cache)
            if raw.strip():
                chunks.append(raw.strip())

        text = "\n".join(chunks)
        found = {TLE.parse(l1, l2).norad_id for _, l1, l2 in iter_records(text.splitlines())}
        missing = set(ids) - found
        if missing:
            logger.warning("No TLEs found for NORAD %s", ", ".join(map(str, sorted(missing))))
        return text + "\n" if text else ""


def save_tles(text: str, path: Union[str, Path]) -> Path:
    """Write fetched TLE text to a file."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)
    logger.info("Wrote TLEs to %s", path)
    return path
