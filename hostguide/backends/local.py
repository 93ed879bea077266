"""Local-only adapter: the whole store is one JSON document on disk.

Every mutation is applied to a copy, written to a temp file and swapped in with
``os.replace`` so a failed write leaves both the file and the in-memory state as
they were.
"""

import copy
import json
import logging
import os
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Optional

from hostguide.backends.base import Page, Space, SpaceBackend, StoreError

log = logging.getLogger(__name__)


def _page_record(page: Page) -> dict[str, Any]:
    return page.to_dict()


def _space_record(space: Space) -> dict[str, Any]:
    return space.to_dict(include_pages=False)


def _page_from_record(rec: dict[str, Any]) -> Page:
    return Page(
        id=rec["id"],
        space_id=rec["space_id"],
        title=rec["title"],
        content=rec.get("content") or "",
        sort_order=int(rec.get("sort_order", 0)),
        created_at=datetime.fromisoformat(rec["created_at"]),
        updated_at=datetime.fromisoformat(rec["updated_at"]),
    )


class LocalBackend(SpaceBackend):
    def __init__(self, path: str | os.PathLike):
        self._path = Path(path)
        self._lock = threading.RLock()
        self._data = self._load()

    def _load(self) -> dict[str, dict]:
        if not self._path.exists():
            return {"spaces": {}, "pages": {}}
        try:
            with open(self._path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as exc:
            raise StoreError(f"Cannot read local store {self._path}") from exc
        data.setdefault("spaces", {})
        data.setdefault("pages", {})
        log.info("Loaded local store path=%s spaces=%d", self._path, len(data["spaces"]))
        return data

    def _write(self, data: dict) -> None:
        tmp = self._path.with_name(self._path.name + ".tmp")
        try:
            if self._path.parent and not self._path.parent.exists():
                self._path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp, self._path)
        except (OSError, TypeError, ValueError) as exc:
            raise StoreError(f"Cannot write local store {self._path}") from exc

    def _commit(self, mutate: Callable[[dict], Any]) -> Any:
        with self._lock:
            data = copy.deepcopy(self._data)
            result = mutate(data)
            self._write(data)
            self._data = data
            return result

    # -- reads ---------------------------------------------------------------

    def _pages_for(self, data: dict, space_id: str) -> list[Page]:
        pages = [_page_from_record(r) for r in data["pages"].values() if r["space_id"] == space_id]
        pages.sort(key=lambda p: (p.sort_order, p.created_at))
        return pages

    def _space_from_record(self, data: dict, rec: dict[str, Any]) -> Space:
        return Space(
            id=rec["id"],
            owner_id=rec["owner_id"],
            name=rec["name"],
            description=rec.get("description") or "",
            access_token=rec["access_token"],
            created_at=datetime.fromisoformat(rec["created_at"]),
            updated_at=datetime.fromisoformat(rec["updated_at"]),
            address=rec.get("address"),
            contact=rec.get("contact"),
            pages=self._pages_for(data, rec["id"]),
        )

    def get_space(self, space_id: str) -> Optional[Space]:
        with self._lock:
            rec = self._data["spaces"].get(space_id)
            return self._space_from_record(self._data, rec) if rec else None

    def list_spaces(self, owner_id: str) -> list[Space]:
        with self._lock:
            spaces = [
                self._space_from_record(self._data, rec)
                for rec in self._data["spaces"].values()
                if rec["owner_id"] == owner_id
            ]
        spaces.sort(key=lambda s: s.created_at, reverse=True)
        return spaces

    def find_space_by_token(self, access_token: str) -> Optional[Space]:
        if not access_token:
            return None
        with self._lock:
            for rec in self._data["spaces"].values():
                if rec["access_token"] == access_token:
                    return self._space_from_record(self._data, rec)
        return None

    def get_page(self, page_id: str) -> Optional[Page]:
        with self._lock:
            rec = self._data["pages"].get(page_id)
            return _page_from_record(rec) if rec else None

    def list_pages(self, space_id: str) -> list[Page]:
        with self._lock:
            return self._pages_for(self._data, space_id)

    # -- writes --------------------------------------------------------------

    def _insert_space(self, space: Space) -> None:
        def mutate(data):
            if any(r["access_token"] == space.access_token for r in data["spaces"].values()):
                raise StoreError("access_token already in use")
            data["spaces"][space.id] = _space_record(space)
            for page in space.pages:
                data["pages"][page.id] = _page_record(page)

        self._commit(mutate)

    def _save_space(self, space: Space) -> None:
        def mutate(data):
            if space.id in data["spaces"]:
                data["spaces"][space.id] = _space_record(space)

        self._commit(mutate)

    def _remove_space(self, space_id: str) -> bool:
        def mutate(data):
            if data["spaces"].pop(space_id, None) is None:
                return False
            for page_id in [pid for pid, r in data["pages"].items() if r["space_id"] == space_id]:
                del data["pages"][page_id]
            return True

        return self._commit(mutate)

    @staticmethod
    def _touch(data: dict, space_id: str, when: datetime) -> None:
        rec = data["spaces"].get(space_id)
        if rec is not None:
            rec["updated_at"] = when.isoformat()

    def _insert_page(self, page: Page, touched_at: datetime) -> None:
        def mutate(data):
            if page.space_id not in data["spaces"]:
                raise StoreError(f"space {page.space_id} does not exist")
            data["pages"][page.id] = _page_record(page)
            self._touch(data, page.space_id, touched_at)

        self._commit(mutate)

    def _save_page(self, page: Page, touched_at: datetime) -> None:
        def mutate(data):
            if page.id in data["pages"]:
                data["pages"][page.id] = _page_record(page)
                self._touch(data, page.space_id, touched_at)

        self._commit(mutate)

    def _remove_page(self, page: Page, touched_at: datetime) -> bool:
        def mutate(data):
            if data["pages"].pop(page.id, None) is None:
                return False
            self._touch(data, page.space_id, touched_at)
            return True

        return self._commit(mutate)
