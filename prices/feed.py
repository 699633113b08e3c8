"""
HTTP client for the official price feed.

``FeedClient`` owns one ``requests.Session`` for its lifetime: open it with
``with FeedClient(...) as client:`` and the session is closed on exit.
"""

from __future__ import annotations

import logging
from pathlib import Path

import requests
from django.conf import settings

from prices.exceptions import FeedDownloadError

logger = logging.getLogger(__name__)


class FeedClient:
    def __init__(self, url: str | None = None, *, timeout: int | None = None) -> None:
        self.url = url or settings.FEED_URL
        self.timeout = timeout or settings.FEED_TIMEOUT_SECONDS
        self._session: requests.Session | None = None

    def __enter__(self) -> "FeedClient":
        self._session = requests.Session()
        self._session.headers.update({"Accept": "text/csv"})
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        if self._session is not None:
            self._session.close()
            self._session = None

    def download(self) -> str:
        """
        Fetch the feed and return it as text.

        Raises ``FeedDownloadError`` on network errors and non-200 responses.
        """
        if self._session is None:
            raise RuntimeError("FeedClient used outside of its context manager")

        logger.info("[FEED] downloading %s", self.url)
        try:
            response = self._session.get(self.url, timeout=self.timeout)
        except requests.RequestException as exc:
            raise FeedDownloadError(f"Could not reach feed: {exc}") from exc

        if response.status_code != 200:
            raise FeedDownloadError(f"Feed returned HTTP {response.status_code}")

        # The publisher does not always declare a charset.
        if not response.encoding or response.encoding.lower() == "iso-8859-1":
            response.encoding = "utf-8"
        text = response.text
        logger.info("[FEED] downloaded %d characters", len(text))
        return text


def read_feed_file(path: str | Path) -> str:
    """Read a local copy of the feed. Raises ``FeedDownloadError`` if missing."""
    try:
        return Path(path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise FeedDownloadError(f"Could not read feed file {path}: {exc}") from exc
