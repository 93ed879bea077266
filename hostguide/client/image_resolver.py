"""Resolve image references in page content to displayable URLs.

Private images (references under the storage prefix) need a signed URL from the
get-image function; everything else is used as-is. Signed URLs are cached for
55 minutes and reused only while more than 5 minutes of that remain, so a URL
handed out is always comfortably inside the issuer's 1 hour validity.

Failures never raise: the caller gets ``None`` and should leave the image out.
"""

import asyncio
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

import httpx
from cachetools import TTLCache

from hostguide.shared import RESOLVER_CACHE_TTL, RESOLVER_SAFETY_MARGIN

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class CachedSignedUrl:
    url: str
    expires_at: float


class SignedUrlResolver:
    def __init__(
        self,
        issuer_url: str,
        storage_prefix: str,
        *,
        http_client: Optional[httpx.Client] = None,
        clock: Callable[[], float] = time.time,
        maxsize: int = 4096,
        timeout: float = 10.0,
    ):
        self.issuer_url = issuer_url
        self.storage_prefix = storage_prefix
        self._http = http_client
        self._clock = clock
        self._timeout = timeout
        # Keyed by (token, path): a URL signed for one guest's token is not
        # handed to a request carrying another token.
        self._cache: TTLCache = TTLCache(maxsize=maxsize, ttl=RESOLVER_CACHE_TTL, timer=clock)
        self._lock = threading.Lock()
        self._inflight: dict[tuple[str, str], asyncio.Task] = {}

    # -- cache ---------------------------------------------------------------

    def private_path(self, reference: str) -> Optional[str]:
        """Storage path for a private reference, None for anything else."""
        if not reference or not reference.startswith(self.storage_prefix):
            return None
        return reference[len(self.storage_prefix):]

    def _cached(self, key: tuple[str, str]) -> Optional[str]:
        with self._lock:
            entry = self._cache.get(key)
        if entry is not None and self._clock() < entry.expires_at - RESOLVER_SAFETY_MARGIN:
            return entry.url
        return None

    def _store(self, key: tuple[str, str], url: str) -> None:
        with self._lock:
            self._cache[key] = CachedSignedUrl(url=url, expires_at=self._clock() + RESOLVER_CACHE_TTL)

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()

    def _signed_url_from(self, resp: httpx.Response, path: str) -> Optional[str]:
        if resp.status_code != 200:
            log.info("get-image returned %s for path=%s", resp.status_code, path)
            return None
        try:
            data = resp.json()
        except ValueError:
            log.warning("get-image returned malformed body for path=%s", path)
            return None
        url = data.get("signedUrl") if isinstance(data, dict) else None
        if not isinstance(url, str) or not url:
            log.warning("get-image response without signedUrl for path=%s", path)
            return None
        return url

    # -- sync ----------------------------------------------------------------

    def resolve(self, reference: str, token: str) -> Optional[str]:
        """Displayable URL for ``reference``, or None if the image is not available."""
        path = self.private_path(reference)
        if path is None:
            return reference
        if not path or not token:
            return None

        key = (token, path)
        cached = self._cached(key)
        if cached is not None:
            return cached

        params = {"path": path, "token": token}
        try:
            if self._http is not None:
                resp = self._http.get(self.issuer_url, params=params, timeout=self._timeout)
            else:
                resp = httpx.get(self.issuer_url, params=params, timeout=self._timeout)
        except httpx.HTTPError as exc:
            log.warning("get-image request failed for path=%s: %s", path, exc)
            return None

        url = self._signed_url_from(resp, path)
        if url is not None:
            self._store(key, url)
        return url

    # -- async ---------------------------------------------------------------

    async def resolve_async(self, client: httpx.AsyncClient, reference: str, token: str) -> Optional[str]:
        """Async resolve. Concurrent calls for the same image share one issuer request."""
        path = self.private_path(reference)
        if path is None:
            return reference
        if not path or not token:
            return None

        key = (token, path)
        cached = self._cached(key)
        if cached is not None:
            return cached

        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._fetch_async(client, key))
            self._inflight[key] = task
            task.add_done_callback(lambda _t, key=key: self._inflight.pop(key, None))
        return await asyncio.shield(task)

    async def _fetch_async(self, client: httpx.AsyncClient, key: tuple[str, str]) -> Optional[str]:
        token, path = key
        try:
            resp = await client.get(
                self.issuer_url,
                params={"path": path, "token": token},
                timeout=self._timeout,
            )
        except httpx.HTTPError as exc:
            log.warning("get-image request failed for path=%s: %s", path, exc)
            return None
        url = self._signed_url_from(resp, path)
        if url is not None:
            self._store(key, url)
        return url
