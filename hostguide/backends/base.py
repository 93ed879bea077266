"""Spaces/pages records and the storage-independent half of the data-access layer.

``SpaceBackend`` owns the rules (token minting, the welcome page, sort order,
which fields an owner may change, timestamps). Adapters only persist and load
records; see ``local.py`` and ``sql.py``.
"""

import secrets
import uuid
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field, replace
from datetime import UTC, datetime
from typing import Any, Optional

from hostguide.shared import WELCOME_PAGE_TITLE

SPACE_UPDATABLE_FIELDS = frozenset({"name", "description", "address", "contact"})
PAGE_UPDATABLE_FIELDS = frozenset({"title", "content", "sort_order"})


class StoreError(Exception):
    """The underlying store failed; nothing was written."""


@dataclass
class Page:
    id: str
    space_id: str
    title: str
    content: str
    sort_order: int
    created_at: datetime
    updated_at: datetime

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["created_at"] = self.created_at.isoformat()
        data["updated_at"] = self.updated_at.isoformat()
        return data


@dataclass
class Space:
    id: str
    owner_id: str
    name: str
    description: str
    access_token: str
    created_at: datetime
    updated_at: datetime
    address: Optional[dict[str, str]] = None
    contact: Optional[dict[str, str]] = None
    pages: list[Page] = field(default_factory=list)

    def to_dict(self, include_pages: bool = True) -> dict[str, Any]:
        data = {
            "id": self.id,
            "owner_id": self.owner_id,
            "name": self.name,
            "description": self.description,
            "access_token": self.access_token,
            "address": self.address,
            "contact": self.contact,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }
        if include_pages:
            data["pages"] = [p.to_dict() for p in self.pages]
        return data

    def to_public_dict(self) -> dict[str, Any]:
        """Fields a guest holding the access token may see (pages listed separately)."""
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "address": self.address,
            "contact": self.contact,
        }


def utcnow() -> datetime:
    return datetime.now(UTC)


def new_id() -> str:
    return str(uuid.uuid4())


def new_access_token() -> str:
    """Opaque, unguessable public access token (~192 bits)."""
    return secrets.token_urlsafe(24)


def welcome_content(space_name: str) -> str:
    return (
        f"# Welcome to {space_name}\n\n"
        "We're glad you're here. Use the pages in this guide to find everything "
        "you need during your stay.\n"
    )


def _clean_map(value: Any, field_name: str) -> Optional[dict[str, str]]:
    if value is None:
        return None
    if not isinstance(value, dict):
        raise ValueError(f"{field_name} must be an object")
    cleaned = {}
    for k, v in value.items():
        if v is None:
            continue
        if not isinstance(k, str) or not isinstance(v, str):
            raise ValueError(f"{field_name} values must be strings")
        cleaned[k] = v.strip()
    return cleaned or None


def _text(value: Any, field_name: str, required: bool = False, strip: bool = True) -> str:
    """A text field from client input; None counts as empty."""
    if value is None:
        value = ""
    if not isinstance(value, str):
        raise ValueError(f"{field_name} must be a string")
    if strip:
        value = value.strip()
    if required and not value.strip():
        raise ValueError(f"{field_name.capitalize()} is required")
    return value


def _sort_order(value: Any) -> int:
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValueError("sort_order must be an integer")
    return value


def _check_changes(changes: dict[str, Any], allowed: frozenset) -> None:
    unknown = set(changes) - allowed
    if unknown:
        raise ValueError(f"Cannot update field(s): {', '.join(sorted(unknown))}")


class SpaceBackend(ABC):
    """Spaces and pages CRUD. Same capability set for every adapter."""

    # -- storage primitives (adapters) -------------------------------------
    # Page writes also set the owning space's updated_at to ``touched_at``,
    # in the same transaction as the page change.

    @abstractmethod
    def _insert_space(self, space: Space) -> None:
        """Persist a new space together with ``space.pages`` atomically."""

    @abstractmethod
    def _save_space(self, space: Space) -> None:
        """Overwrite the mutable columns of an existing space."""

    @abstractmethod
    def _remove_space(self, space_id: str) -> bool:
        """Delete a space and all its pages. False if it did not exist."""

    @abstractmethod
    def _insert_page(self, page: Page, touched_at: datetime) -> None: ...

    @abstractmethod
    def _save_page(self, page: Page, touched_at: datetime) -> None: ...

    @abstractmethod
    def _remove_page(self, page: Page, touched_at: datetime) -> bool: ...

    @abstractmethod
    def get_space(self, space_id: str) -> Optional[Space]:
        """Space with its pages in display order, or None."""

    @abstractmethod
    def list_spaces(self, owner_id: str) -> list[Space]:
        """Spaces owned by ``owner_id``, newest first, pages included."""

    @abstractmethod
    def find_space_by_token(self, access_token: str) -> Optional[Space]: ...

    @abstractmethod
    def get_page(self, page_id: str) -> Optional[Page]: ...

    @abstractmethod
    def list_pages(self, space_id: str) -> list[Page]: ...

    def close(self) -> None:
        pass

    # -- operations ----------------------------------------------------------

    def create_space(
        self,
        owner_id: str,
        name: str,
        description: str = "",
        address: Optional[dict[str, str]] = None,
        contact: Optional[dict[str, str]] = None,
    ) -> Space:
        if not owner_id:
            raise ValueError("owner_id is required")
        name = _text(name, "space name", required=True)
        now = utcnow()
        space = Space(
            id=new_id(),
            owner_id=owner_id,
            name=name,
            description=_text(description, "description"),
            access_token=new_access_token(),
            created_at=now,
            updated_at=now,
            address=_clean_map(address, "address"),
            contact=_clean_map(contact, "contact"),
        )
        space.pages = [
            Page(
                id=new_id(),
                space_id=space.id,
                title=WELCOME_PAGE_TITLE,
                content=welcome_content(name),
                sort_order=0,
                created_at=now,
                updated_at=now,
            )
        ]
        self._insert_space(space)
        return space

    def update_space(self, space_id: str, /, **changes: Any) -> Optional[Space]:
        _check_changes(changes, SPACE_UPDATABLE_FIELDS)
        if "name" in changes:
            changes["name"] = _text(changes["name"], "space name", required=True)
        if "description" in changes:
            changes["description"] = _text(changes["description"], "description")
        for key in ("address", "contact"):
            if key in changes:
                changes[key] = _clean_map(changes[key], key)
        space = self.get_space(space_id)
        if space is None:
            return None
        updated = replace(space, **changes, updated_at=utcnow())
        self._save_space(updated)
        return updated

    def delete_space(self, space_id: str) -> bool:
        return self._remove_space(space_id)

    def create_page(
        self,
        space_id: str,
        title: str,
        content: str = "",
        sort_order: Optional[int] = None,
    ) -> Optional[Page]:
        """Append a page to a space. None if the space does not exist."""
        title = _text(title, "page title", required=True)
        content = _text(content, "content", strip=False)
        if sort_order is not None:
            sort_order = _sort_order(sort_order)
        if self.get_space(space_id) is None:
            return None
        if sort_order is None:
            existing = self.list_pages(space_id)
            sort_order = max((p.sort_order for p in existing), default=-1) + 1
        now = utcnow()
        page = Page(
            id=new_id(),
            space_id=space_id,
            title=title,
            content=content,
            sort_order=sort_order,
            created_at=now,
            updated_at=now,
        )
        self._insert_page(page, now)
        return page

    def update_page(self, page_id: str, /, **changes: Any) -> Optional[Page]:
        _check_changes(changes, PAGE_UPDATABLE_FIELDS)
        if "title" in changes:
            changes["title"] = _text(changes["title"], "page title", required=True)
        if "content" in changes:
            changes["content"] = _text(changes["content"], "content", strip=False)
        if "sort_order" in changes:
            changes["sort_order"] = _sort_order(changes["sort_order"])
        page = self.get_page(page_id)
        if page is None:
            return None
        now = utcnow()
        updated = replace(page, **changes, updated_at=now)
        self._save_page(updated, now)
        return updated

    def delete_page(self, page_id: str) -> bool:
        page = self.get_page(page_id)
        if page is None:
            return False
        return self._remove_page(page, utcnow())
