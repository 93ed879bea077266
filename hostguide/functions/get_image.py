#!/usr/bin/env python3
"""
get-image function: trade {image path, space access token} for a 1 hour signed URL.

Deployed on its own, reachable without a platform login and cross-origin, so it
answers CORS preflights itself before doing its own token check.
Entrypoint for uvicorn is hostguide.functions.get_image:app.

    GET ?path=<owner_id>/<filename>&token=<access token>   (or x-access-token header)
      200 {"signedUrl": ...}
      400 {"error": "Missing image path"} / {"error": "Invalid image path"}
      401 {"error": "Missing access token"}
      403 {"error": "Invalid token or access denied"}
      500 {"error": "Failed to generate signed URL"} / {"error": "Internal server error"}
"""
import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Query, Request
from fastapi.responses import JSONResponse, Response

from hostguide import config
from hostguide.access_log import AccessLogMiddleware
from hostguide.backends import SpaceBackend, create_backend
from hostguide.images import ImageAccessError, issue_signed_url, s3_client
from hostguide.logging_config import setup_logging
from hostguide.shared import ACCESS_TOKEN_HEADER

setup_logging()
log = logging.getLogger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": f"authorization, x-client-info, apikey, content-type, {ACCESS_TOKEN_HEADER}",
    "Access-Control-Allow-Methods": "GET, OPTIONS",
}


@asynccontextmanager
async def _lifespan(app: FastAPI):
    app.state.backend = create_backend()
    log.info(
        "get-image function loaded API_ENV=%s bucket=%s store=%s",
        config.API_ENV,
        config.IMAGES_BUCKET,
        config.STORE_BACKEND,
    )
    try:
        yield
    finally:
        app.state.backend.close()


app = FastAPI(title="get-image", lifespan=_lifespan)
app.add_middleware(AccessLogMiddleware)


def get_backend(request: Request) -> SpaceBackend:
    return request.app.state.backend


def _json(body: dict, status_code: int) -> JSONResponse:
    return JSONResponse(body, status_code=status_code, headers=CORS_HEADERS)


@app.options("/{rest:path}")
def preflight(rest: str = ""):
    return Response(status_code=204, headers=CORS_HEADERS)


@app.get("/")
def get_image(
    request: Request,
    path: Optional[str] = Query(None),
    token: Optional[str] = Query(None),
    backend: SpaceBackend = Depends(get_backend),
):
    token = token or request.headers.get(ACCESS_TOKEN_HEADER)
    try:
        signed_url = issue_signed_url(backend, s3_client(), config.IMAGES_BUCKET, path, token)
    except ImageAccessError as exc:
        if exc.status_code >= 500:
            log.error("get-image %s: %s", exc.message, exc)
        return _json({"error": exc.message}, exc.status_code)
    except Exception:
        log.exception("get-image failed")
        return _json({"error": "Internal server error"}, 500)
    return _json({"signedUrl": signed_url}, 200)


if __name__ == "__main__":
    import uvicorn
    port = int(os.environ.get("PORT", 8081))
    log.info(f"get-image function starting host=0.0.0.0 port={port}")
    uvicorn.run(
        "hostguide.functions.get_image:app",
        host="0.0.0.0",
        port=port,
        reload=False,
        access_log=False,
    )
