"""Owner authentication via the platform auth service.

Token validation flow:
1. Extract the bearer token from the ``Authorization`` header.
2. Check the in-memory TTL cache for a previous successful validation.
3. On cache miss, call ``GET {AUTH_BASE_URL}/auth/v1/user`` with the token
   forwarded as ``Authorization: Bearer <token>``.
4. If the response is non-200 **or** carries no user ``id``, reject with HTTP 401.
5. On success, cache the user for 300 s and return it.

Guests never go through here; they hold a space access token instead.
"""

import logging
import threading

import httpx
from cachetools import TTLCache
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from hostguide.config import AUTH_API_KEY, AUTH_BASE_URL

log = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Token cache: bearer token -> user dict
# ---------------------------------------------------------------------------

_token_cache: TTLCache = TTLCache(maxsize=1000, ttl=300)
_cache_lock = threading.Lock()

# ---------------------------------------------------------------------------
# FastAPI security scheme (shows "Authorize" button in /docs)
# ---------------------------------------------------------------------------

bearer_scheme = HTTPBearer(auto_error=False)


def _auth_headers(token: str | None = None) -> dict[str, str]:
    headers = {}
    if AUTH_API_KEY:
        headers["apikey"] = AUTH_API_KEY
    if token:
        headers["Authorization"] = f"Bearer {token}"
    return headers


def validate_token(token: str | None) -> dict:
    """Validate an owner bearer token with the auth service and return the user.

    Raises HTTPException(401) on failure.
    """
    if not token:
        raise HTTPException(status_code=401, detail="Missing bearer token")

    with _cache_lock:
        cached = _token_cache.get(token)
        if cached is not None:
            return cached

    url = f"{AUTH_BASE_URL}/auth/v1/user"
    try:
        resp = httpx.get(url, headers=_auth_headers(token), timeout=10.0)
    except httpx.HTTPError as exc:
        log.warning("Auth service user lookup failed: %s", exc)
        raise HTTPException(status_code=401, detail="Token validation failed") from exc

    if resp.status_code != 200:
        log.info("Auth service returned %s for user lookup", resp.status_code)
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    try:
        data = resp.json()
    except ValueError:
        data = None
    if not isinstance(data, dict) or not data.get("id"):
        log.info("Auth service user lookup returned no user id")
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    user = {"id": str(data["id"]), "email": data.get("email")}
    with _cache_lock:
        _token_cache[token] = user
    return user


def evict_token(token: str) -> None:
    with _cache_lock:
        _token_cache.pop(token, None)


def login(body: dict) -> httpx.Response:
    """Password login against the auth service. Raises httpx.HTTPError when unreachable."""
    return httpx.post(
        f"{AUTH_BASE_URL}/auth/v1/token",
        params={"grant_type": "password"},
        json=body,
        headers=_auth_headers(),
        timeout=10.0,
    )


def logout(token: str) -> httpx.Response:
    """Revoke the session upstream and stop trusting the token locally."""
    evict_token(token)
    return httpx.post(
        f"{AUTH_BASE_URL}/auth/v1/logout",
        headers=_auth_headers(token),
        timeout=10.0,
    )


# ---------------------------------------------------------------------------
# Dependency
# ---------------------------------------------------------------------------


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> dict:
    """Validate the owner's bearer token and return ``{"id", "email"}``.

    Usage::

        @router.get("/protected")
        def protected(user=Depends(get_current_user)):
            ...
    """
    return validate_token(credentials.credentials if credentials else None)
