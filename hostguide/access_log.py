"""Request logging shared by the API app and the get-image function.

Access tokens travel in the query string (``/view/<token>`` links, ``?token=``
on the issuer), so paths and queries are redacted before they are logged.
"""

import logging
import re
import time

from starlette.middleware.base import BaseHTTPMiddleware

log = logging.getLogger(__name__)

_TOKEN_QUERY_RE = re.compile(r"token=[^&\s]+", flags=re.IGNORECASE)
_VIEW_PATH_RE = re.compile(r"(/view/)[^/]+")


def request_line_safe(path: str, query: str) -> str:
    """Path + query with token= values and /view/<token> segments redacted."""
    path = _VIEW_PATH_RE.sub(r"\1REDACTED", path)
    if not query:
        return path
    safe = _TOKEN_QUERY_RE.sub("token=REDACTED", query)
    return f"{path}?{safe}"


class AccessLogMiddleware(BaseHTTPMiddleware):
    """Log every HTTP request. Tokens are never logged. No log for GET /api/ping when 200."""

    async def dispatch(self, request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        if request.url.path == "/api/ping" and response.status_code == 200:
            return response  # skip log for probe to avoid noise
        client = request.client or ("?", "?")
        client_addr = f"{client[0]}:{client[1]}"
        path_safe = request_line_safe(request.url.path, request.url.query)
        log.info(
            f'{client_addr} - "{request.method} {path_safe}" {response.status_code}',
            extra={
                "client": client_addr,
                "method": request.method,
                "path": path_safe,
                "status": response.status_code,
                "duration": time.perf_counter() - started,
            },
        )
        return response
