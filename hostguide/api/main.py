#!/usr/bin/env python3
"""
hostguide API: owner CRUD over spaces/pages, image uploads and the guest view.
Signed image URLs come from the separate get-image function (hostguide.functions.get_image).
Entrypoint for uvicorn is hostguide.api.main:app.
"""
import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from hostguide import config
from hostguide.access_log import AccessLogMiddleware
from hostguide.api import create_public_router, create_router
from hostguide.backends import StoreError, create_backend
from hostguide.client.image_resolver import SignedUrlResolver
from hostguide.logging_config import setup_logging

setup_logging()
log = logging.getLogger(__name__)


@asynccontextmanager
async def _lifespan(app: FastAPI):
    app.state.backend = create_backend()
    app.state.resolver = SignedUrlResolver(config.ISSUER_URL, config.STORAGE_URL_PREFIX)
    log.info(
        "hostguide API loaded API_ENV=%s store=%s AUTH_BASE_URL=%s ISSUER_URL=%s",
        config.API_ENV,
        config.STORE_BACKEND,
        config.AUTH_BASE_URL,
        config.ISSUER_URL,
    )
    try:
        yield
    finally:
        app.state.backend.close()


app = FastAPI(title="hostguide", lifespan=_lifespan)
app.add_middleware(AccessLogMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(create_public_router(), prefix="/api")  # ping, login/logout, guest view (no auth)
app.include_router(create_router(), prefix="/api")         # owner routes (auth required)


@app.exception_handler(StoreError)
async def _store_error(request: Request, exc: StoreError):
    log.error("store failure on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse({"error": "Store unavailable"}, status_code=503)


if __name__ == "__main__":
    import uvicorn
    port = int(os.environ.get("PORT", 8080))
    log.info(f"hostguide API starting host=0.0.0.0 port={port}")
    uvicorn.run(
        "hostguide.api.main:app",
        host="0.0.0.0",
        port=port,
        reload=False,
        access_log=False,
    )
