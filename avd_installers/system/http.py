from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Mapping

import requests

logger = logging.getLogger(__name__)

USER_AGENT = "avd-image-installers"
GITHUB_ACCEPT = "application/vnd.github+json"
CHUNK_SIZE = 256 * 1024


class HttpClient:
    """Release-index and download transport over a shared ``requests`` session.

    Errors are raised as ``requests.RequestException`` (or ``ValueError`` for a
    body that is not a JSON object); stages translate them into their own
    error kinds.
    """

    def __init__(self, *, timeout_s: float, session: requests.Session | None = None) -> None:
        self._timeout_s = timeout_s
        self._session = session or requests.Session()
        self._session.headers.setdefault("User-Agent", USER_AGENT)

    def fetch_json(self, url: str) -> Mapping[str, Any]:
        logger.debug("GET %s", url)
        response = self._session.get(url, headers={"Accept": GITHUB_ACCEPT}, timeout=self._timeout_s)
        response.raise_for_status()
        payload = response.json()
        if not isinstance(payload, Mapping):
            raise ValueError(f"Expected a JSON object from {url} (got {type(payload).__name__})")
        return payload

    def download(self, url: str, destination: Path) -> Path:
        logger.debug("Downloading %s -> %s", url, destination)
        destination.parent.mkdir(parents=True, exist_ok=True)
        with self._session.get(url, stream=True, timeout=self._timeout_s) as response:
            response.raise_for_status()
            written = 0
            with destination.open("wb") as handle:
                for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                    if chunk:
                        handle.write(chunk)
                        written += len(chunk)
        logger.debug("Downloaded %d bytes to %s", written, destination)
        return destination

    def close(self) -> None:
        self._session.close()
