"""Data-access layer for spaces and pages.

One capability set (``SpaceBackend``) with two adapters, picked at composition time:

- ``local``: JSON document on local disk (single process, no server needed)
- ``sql``: relational store through SQLAlchemy (``HOSTGUIDE_DATABASE_URL``)
"""

import logging
from typing import Optional

from hostguide.backends.base import Page, Space, SpaceBackend, StoreError

log = logging.getLogger(__name__)

BACKEND_KINDS = ("local", "sql")


def create_backend(kind: Optional[str] = None) -> SpaceBackend:
    """Build the adapter named by ``kind`` (default: ``HOSTGUIDE_STORE``)."""
    from hostguide import config

    kind = (kind or config.STORE_BACKEND).strip().lower()
    if kind == "local":
        from hostguide.backends.local import LocalBackend

        log.info("Using local store path=%s", config.LOCAL_STORE_PATH)
        return LocalBackend(config.LOCAL_STORE_PATH)
    if kind == "sql":
        from hostguide.backends.sql import SqlBackend

        log.info("Using SQL store")
        return SqlBackend(config.DATABASE_URL)
    raise RuntimeError(f"Invalid HOSTGUIDE_STORE={kind!r}. Must be one of {list(BACKEND_KINDS)}.")


__all__ = ["BACKEND_KINDS", "Page", "Space", "SpaceBackend", "StoreError", "create_backend"]
