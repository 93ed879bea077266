"""Remote-backed adapter: spaces/pages in a relational database via SQLAlchemy.

Table layout follows the hosted schema (``spaces.user_id``, ``spaces.access_token``
UNIQUE, ``pages.space_id`` ON DELETE CASCADE). Each public operation runs in its
own transaction and is rolled back on any database error.
"""

import logging
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import Iterator, Optional

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String, Text, create_engine, delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, relationship, sessionmaker
from sqlalchemy.pool import StaticPool

from hostguide.backends.base import Page, Space, SpaceBackend, StoreError

log = logging.getLogger(__name__)

Base = declarative_base()


class SpaceRow(Base):
    __tablename__ = "spaces"

    id = Column(String(36), primary_key=True)
    user_id = Column(String(255), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, default="")
    access_token = Column(String(128), nullable=False, unique=True, index=True)
    address = Column(JSON, nullable=True)
    contact = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)

    pages = relationship(
        "PageRow",
        back_populates="space",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by=lambda: [PageRow.sort_order, PageRow.created_at],
    )


class PageRow(Base):
    __tablename__ = "pages"

    id = Column(String(36), primary_key=True)
    space_id = Column(String(36), ForeignKey("spaces.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    content = Column(Text, default="")
    sort_order = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)

    space = relationship("SpaceRow", back_populates="pages")


def _aware(value: datetime) -> datetime:
    # SQLite drops tzinfo; everything is stored as UTC.
    return value if value.tzinfo is not None else value.replace(tzinfo=UTC)


def _page_to_domain(row: PageRow) -> Page:
    return Page(
        id=row.id,
        space_id=row.space_id,
        title=row.title,
        content=row.content or "",
        sort_order=row.sort_order,
        created_at=_aware(row.created_at),
        updated_at=_aware(row.updated_at),
    )


def _space_to_domain(row: SpaceRow) -> Space:
    return Space(
        id=row.id,
        owner_id=row.user_id,
        name=row.name,
        description=row.description or "",
        access_token=row.access_token,
        created_at=_aware(row.created_at),
        updated_at=_aware(row.updated_at),
        address=row.address,
        contact=row.contact,
        pages=[_page_to_domain(p) for p in row.pages],
    )


class SqlBackend(SpaceBackend):
    def __init__(self, database_url: str, create_tables: bool = True):
        engine_kwargs: dict = {"future": True}
        if database_url.startswith("sqlite"):
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            if ":memory:" in database_url or database_url in ("sqlite://", "sqlite+pysqlite://"):
                # One shared connection, otherwise each checkout sees an empty database.
                engine_kwargs["poolclass"] = StaticPool
        self._engine = create_engine(database_url, **engine_kwargs)
        self._sessions = sessionmaker(bind=self._engine, expire_on_commit=False)
        if create_tables:
            Base.metadata.create_all(self._engine)

    def close(self) -> None:
        self._engine.dispose()

    @contextmanager
    def _session(self) -> Iterator[Session]:
        session = self._sessions()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            log.exception("Database operation failed")
            raise StoreError("Database operation failed") from exc
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # -- reads ---------------------------------------------------------------

    def get_space(self, space_id: str) -> Optional[Space]:
        with self._session() as s:
            row = s.get(SpaceRow, space_id)
            return _space_to_domain(row) if row else None

    def list_spaces(self, owner_id: str) -> list[Space]:
        with self._session() as s:
            rows = s.scalars(
                select(SpaceRow).where(SpaceRow.user_id == owner_id).order_by(SpaceRow.created_at.desc())
            ).all()
            return [_space_to_domain(r) for r in rows]

    def find_space_by_token(self, access_token: str) -> Optional[Space]:
        if not access_token:
            return None
        with self._session() as s:
            row = s.scalars(select(SpaceRow).where(SpaceRow.access_token == access_token)).one_or_none()
            return _space_to_domain(row) if row else None

    def get_page(self, page_id: str) -> Optional[Page]:
        with self._session() as s:
            row = s.get(PageRow, page_id)
            return _page_to_domain(row) if row else None

    def list_pages(self, space_id: str) -> list[Page]:
        with self._session() as s:
            rows = s.scalars(
                select(PageRow)
                .where(PageRow.space_id == space_id)
                .order_by(PageRow.sort_order, PageRow.created_at)
            ).all()
            return [_page_to_domain(r) for r in rows]

    # -- writes --------------------------------------------------------------

    def _insert_space(self, space: Space) -> None:
        with self._session() as s:
            row = SpaceRow(
                id=space.id,
                user_id=space.owner_id,
                name=space.name,
                description=space.description,
                access_token=space.access_token,
                address=space.address,
                contact=space.contact,
                created_at=space.created_at,
                updated_at=space.updated_at,
            )
            row.pages = [
                PageRow(
                    id=p.id,
                    space_id=space.id,
                    title=p.title,
                    content=p.content,
                    sort_order=p.sort_order,
                    created_at=p.created_at,
                    updated_at=p.updated_at,
                )
                for p in space.pages
            ]
            s.add(row)

    def _save_space(self, space: Space) -> None:
        with self._session() as s:
            row = s.get(SpaceRow, space.id)
            if row is None:
                return
            row.name = space.name
            row.description = space.description
            row.address = space.address
            row.contact = space.contact
            row.updated_at = space.updated_at

    def _remove_space(self, space_id: str) -> bool:
        with self._session() as s:
            row = s.get(SpaceRow, space_id)
            if row is None:
                return False
            # Explicit so SQLite (no FK enforcement by default) cascades too.
            s.execute(delete(PageRow).where(PageRow.space_id == space_id))
            s.delete(row)
            return True

    @staticmethod
    def _touch(s: Session, space_id: str, when: datetime) -> None:
        space = s.get(SpaceRow, space_id)
        if space is not None:
            space.updated_at = when

    def _insert_page(self, page: Page, touched_at: datetime) -> None:
        with self._session() as s:
            if s.get(SpaceRow, page.space_id) is None:
                raise StoreError(f"space {page.space_id} does not exist")
            s.add(
                PageRow(
                    id=page.id,
                    space_id=page.space_id,
                    title=page.title,
                    content=page.content,
                    sort_order=page.sort_order,
                    created_at=page.created_at,
                    updated_at=page.updated_at,
                )
            )
            self._touch(s, page.space_id, touched_at)

    def _save_page(self, page: Page, touched_at: datetime) -> None:
        with self._session() as s:
            row = s.get(PageRow, page.id)
            if row is None:
                return
            row.title = page.title
            row.content = page.content
            row.sort_order = page.sort_order
            row.updated_at = page.updated_at
            self._touch(s, row.space_id, touched_at)

    def _remove_page(self, page: Page, touched_at: datetime) -> bool:
        with self._session() as s:
            row = s.get(PageRow, page.id)
            if row is None:
                return False
            s.delete(row)
            self._touch(s, page.space_id, touched_at)
            return True
