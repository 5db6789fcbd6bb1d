"""Remote fetch boundary for URL datasets."""

from __future__ import annotations

import threading

import requests

from astrolabe.core.errors import FetchError
from astrolabe.core.logging import get_logger
from astrolabe.ingest.types import FetchedPayload

logger = get_logger(__name__)

NOT_FOUND_STATUSES = frozenset({404, 410})


class RemoteFetcher:
    """HTTP GET with a session-scoped, in-memory cache.

    Cached payloads are never persisted; they only spare repeated previews of
    the same URL within one process.
    """

    def __init__(self, timeout: float = 30.0, session: requests.Session | None = None) -> None:
        self.timeout = timeout
        self.session = session or requests.Session()
        self._cache: dict[str, FetchedPayload] = {}
        self._lock = threading.Lock()

    def fetch(self, url: str, use_cache: bool = True) -> FetchedPayload:
        if use_cache:
            with self._lock:
                cached = self._cache.get(url)
            if cached is not None:
                return cached
        try:
            resp = self.session.get(url, timeout=self.timeout)
        except (requests.ConnectionError, requests.Timeout) as exc:
            logger.warning("Network failure fetching %s: %s", url, exc)
            raise FetchError(url, "network", str(exc)) from exc
        except requests.RequestException as exc:
            logger.warning("Request failed for %s: %s", url, exc)
            raise FetchError(url, "network", str(exc)) from exc
        if resp.status_code in NOT_FOUND_STATUSES:
            raise FetchError(url, "not_found", f"HTTP {resp.status_code}")
        if not resp.ok:
            raise FetchError(url, "http", f"HTTP {resp.status_code}: {resp.reason}")
        length_header = resp.headers.get("content-length")
        payload = FetchedPayload(
            url=url,
            text=resp.text,
            content_type=resp.headers.get("content-type"),
            content_length=int(length_header) if length_header and length_header.isdigit() else None,
        )
        with self._lock:
            self._cache[url] = payload
        return payload

    def cached(self, url: str) -> FetchedPayload | None:
        with self._lock:
            return self._cache.get(url)

    def forget(self, url: str | None = None) -> None:
        with self._lock:
            if url is None:
                self._cache.clear()
            else:
                self._cache.pop(url, None)


__all__ = ["RemoteFetcher"]
