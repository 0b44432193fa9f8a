"""
Meme record store: SQLAlchemy-backed and in-memory implementations.
"""

from __future__ import annotations

import threading
import time
import uuid
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Callable, Dict, Optional, Protocol

from sqlalchemy import (
    JSON,
    Column,
    Float,
    ForeignKey,
    Integer,
    String,
    create_engine,
    delete,
    event,
    select,
)
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from memestream.errors import InvalidQuery

TRENDING_MIN_LIKES = 50
TRENDING_LIMIT = 20
DEFAULT_REPORT_REASON = "Not specified"


class Category(str, Enum):
    WHOLESOME = "Wholesome"
    RELATABLE = "Relatable"
    POLITICAL = "Political"
    DANK = "Dank"
    DARK = "Dark"
    TECH = "Tech"
    ANIMALS = "Animals"
    SPORTS = "Sports"


CATEGORIES = tuple(c.value for c in Category)


class SortOrder(str, Enum):
    NEWEST = "newest"
    OLDEST = "oldest"
    MOST_LIKED = "mostLiked"

    @classmethod
    def parse(cls, value: Optional[str]) -> "SortOrder":
        for order in cls:
            if order.value == value:
                return order
        return cls.NEWEST


@dataclass
class MemeRecord:
    image_url: str
    media_id: str
    caption: str
    category: str
    owner_id: str
    tags: list[str] = field(default_factory=list)
    likes: int = 0
    liked_by: list[str] = field(default_factory=list)
    report_count: int = 0
    reported_by: list[dict] = field(default_factory=list)
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    created_at: float = field(default_factory=lambda: time.time())

    def is_trending(self, now: float) -> bool:
        one_week_ago = now - 7 * 24 * 3600
        return self.likes >= TRENDING_MIN_LIKES and self.created_at >= one_week_ago


# Receives the existing reports and the reporting user id.
DuplicateReportCheck = Callable[[list[dict], str], bool]


class MemeStore(Protocol):
    """Interface for meme persistence."""

    def create(self, record: MemeRecord) -> MemeRecord:
        ...

    def get(self, meme_id: str) -> Optional[MemeRecord]:
        ...

    def list_memes(
        self,
        *,
        category: Optional[str] = None,
        tag: Optional[str] = None,
        sort: SortOrder = SortOrder.NEWEST,
        page: int = 1,
        page_size: int = 9,
    ) -> list[MemeRecord]:
        ...

    def trending(self, since: float) -> list[MemeRecord]:
        ...

    def toggle_like(self, meme_id: str, user_id: str) -> Optional[tuple[bool, int]]:
        ...

    def add_report(
        self,
        meme_id: str,
        user_id: str,
        reason: str,
        is_duplicate: DuplicateReportCheck,
    ) -> Optional[bool]:
        ...

    def delete(self, meme_id: str) -> bool:
        ...


def _check_page(page: int, page_size: int) -> None:
    if page < 1 or page_size < 1:
        raise InvalidQuery("Invalid pagination parameters")


def _sort_key(sort: SortOrder) -> tuple[Callable[[MemeRecord], tuple], bool]:
    if sort == SortOrder.OLDEST:
        return (lambda m: (m.created_at,)), False
    if sort == SortOrder.MOST_LIKED:
        return (lambda m: (m.likes, m.created_at)), True
    return (lambda m: (m.created_at,)), True


class InMemoryMemeStore:
    """Simple in-memory store for development and tests."""

    def __init__(self):
        self.memes: Dict[str, MemeRecord] = {}
        self._lock = threading.Lock()

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        with self._lock:
            self.memes.clear()

    def create(self, record: MemeRecord) -> MemeRecord:
        with self._lock:
            self.memes[record.id] = _copy(record)
        return record

    def get(self, meme_id: str) -> Optional[MemeRecord]:
        with self._lock:
            record = self.memes.get(meme_id)
            return _copy(record) if record else None

    def list_memes(
        self,
        *,
        category: Optional[str] = None,
        tag: Optional[str] = None,
        sort: SortOrder = SortOrder.NEWEST,
        page: int = 1,
        page_size: int = 9,
    ) -> list[MemeRecord]:
        _check_page(page, page_size)
        key, reverse = _sort_key(sort)
        skip = (page - 1) * page_size
        with self._lock:
            items = [
                m
                for m in self.memes.values()
                if (not category or m.category == category)
                and (not tag or tag in m.tags)
            ]
            items.sort(key=key, reverse=reverse)
            return [_copy(m) for m in items[skip : skip + page_size]]

    def trending(self, since: float) -> list[MemeRecord]:
        with self._lock:
            items = [
                m
                for m in self.memes.values()
                if m.created_at >= since and m.likes >= TRENDING_MIN_LIKES
            ]
            items.sort(key=lambda m: m.likes, reverse=True)
            return [_copy(m) for m in items[:TRENDING_LIMIT]]

    def toggle_like(self, meme_id: str, user_id: str) -> Optional[tuple[bool, int]]:
        with self._lock:
            meme = self.memes.get(meme_id)
            if not meme:
                return None
            if user_id in meme.liked_by:
                meme.liked_by = [u for u in meme.liked_by if u != user_id]
                meme.likes = max(0, meme.likes - 1)
                return False, meme.likes
            meme.liked_by = meme.liked_by + [user_id]
            meme.likes += 1
            return True, meme.likes

    def add_report(
        self,
        meme_id: str,
        user_id: str,
        reason: str,
        is_duplicate: DuplicateReportCheck,
    ) -> Optional[bool]:
        with self._lock:
            meme = self.memes.get(meme_id)
            if not meme:
                return None
            if is_duplicate(meme.reported_by, user_id):
                return False
            meme.reported_by = meme.reported_by + [
                {"userId": user_id, "reason": reason}
            ]
            meme.report_count += 1
            return True

    def delete(self, meme_id: str) -> bool:
        with self._lock:
            return self.memes.pop(meme_id, None) is not None


def _copy(record: MemeRecord) -> MemeRecord:
    return replace(
        record,
        tags=list(record.tags),
        liked_by=list(record.liked_by),
        reported_by=[dict(r) for r in record.reported_by],
    )


class SqlMemeStore:
    """
    SQLAlchemy-backed implementation. Accepts any SQLAlchemy URL (e.g., Postgres or SQLite for tests).

    Like and report updates run inside a transaction that holds a row lock, so
    concurrent toggles on the same meme serialise in the database.
    SQLite ignores FOR UPDATE, so there every transaction starts with
    BEGIN IMMEDIATE and takes the write lock up front.
    """

    def __init__(self, database_url: str):
        if not database_url:
            raise ValueError("DATABASE_URL is required for SqlMemeStore")
        self.engine = create_engine(
            database_url,
            future=True,
            pool_pre_ping=True,
            pool_recycle=1800,
        )
        if self.engine.dialect.name == "sqlite":
            _begin_immediate_on_sqlite(self.engine)
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        Base.metadata.create_all(self.engine)

    def _to_record(self, row: "MemeRow") -> MemeRecord:
        return MemeRecord(
            id=row.id,
            image_url=row.image_url,
            media_id=row.media_id,
            caption=row.caption,
            category=row.category,
            owner_id=row.owner_id,
            tags=list(row.tags or []),
            likes=row.likes,
            liked_by=list(row.liked_by or []),
            report_count=row.report_count,
            reported_by=[dict(r) for r in row.reported_by or []],
            created_at=row.created_at,
        )

    def _locked_row(self, session: Session, meme_id: str) -> Optional["MemeRow"]:
        stmt = select(MemeRow).where(MemeRow.id == meme_id).with_for_update()
        return session.execute(stmt).scalar_one_or_none()

    def create(self, record: MemeRecord) -> MemeRecord:
        with self.Session() as session:
            session.add(
                MemeRow(
                    id=record.id,
                    image_url=record.image_url,
                    media_id=record.media_id,
                    caption=record.caption,
                    category=record.category,
                    owner_id=record.owner_id,
                    tags=list(record.tags),
                    likes=record.likes,
                    liked_by=list(record.liked_by),
                    report_count=record.report_count,
                    reported_by=list(record.reported_by),
                    created_at=record.created_at,
                )
            )
            for position, tag in enumerate(record.tags):
                session.add(MemeTagRow(meme_id=record.id, position=position, tag=tag))
            session.commit()
        return record

    def get(self, meme_id: str) -> Optional[MemeRecord]:
        with self.Session() as session:
            row = session.get(MemeRow, meme_id)
            return self._to_record(row) if row else None

    def list_memes(
        self,
        *,
        category: Optional[str] = None,
        tag: Optional[str] = None,
        sort: SortOrder = SortOrder.NEWEST,
        page: int = 1,
        page_size: int = 9,
    ) -> list[MemeRecord]:
        _check_page(page, page_size)
        stmt = select(MemeRow)
        if category:
            stmt = stmt.where(MemeRow.category == category)
        if tag:
            stmt = stmt.where(
                MemeRow.id.in_(select(MemeTagRow.meme_id).where(MemeTagRow.tag == tag))
            )
        if sort == SortOrder.OLDEST:
            stmt = stmt.order_by(MemeRow.created_at.asc())
        elif sort == SortOrder.MOST_LIKED:
            stmt = stmt.order_by(MemeRow.likes.desc(), MemeRow.created_at.desc())
        else:
            stmt = stmt.order_by(MemeRow.created_at.desc())
        stmt = stmt.offset((page - 1) * page_size).limit(page_size)
        with self.Session() as session:
            rows = session.execute(stmt).scalars().all()
            return [self._to_record(row) for row in rows]

    def trending(self, since: float) -> list[MemeRecord]:
        stmt = (
            select(MemeRow)
            .where(MemeRow.created_at >= since)
            .where(MemeRow.likes >= TRENDING_MIN_LIKES)
            .order_by(MemeRow.likes.desc())
            .limit(TRENDING_LIMIT)
        )
        with self.Session() as session:
            rows = session.execute(stmt).scalars().all()
            return [self._to_record(row) for row in rows]

    def toggle_like(self, meme_id: str, user_id: str) -> Optional[tuple[bool, int]]:
        with self.Session() as session:
            row = self._locked_row(session, meme_id)
            if not row:
                return None
            liked_by = list(row.liked_by or [])
            if user_id in liked_by:
                liked_by = [u for u in liked_by if u != user_id]
                row.likes = max(0, row.likes - 1)
                liked = False
            else:
                liked_by.append(user_id)
                row.likes = row.likes + 1
                liked = True
            # Reassign so the JSON column is flagged dirty.
            row.liked_by = liked_by
            likes = row.likes
            session.commit()
            return liked, likes

    def add_report(
        self,
        meme_id: str,
        user_id: str,
        reason: str,
        is_duplicate: DuplicateReportCheck,
    ) -> Optional[bool]:
        with self.Session() as session:
            row = self._locked_row(session, meme_id)
            if not row:
                return None
            reports = [dict(r) for r in row.reported_by or []]
            if is_duplicate(reports, user_id):
                return False
            reports.append({"userId": user_id, "reason": reason})
            row.reported_by = reports
            row.report_count = row.report_count + 1
            session.commit()
            return True

    def delete(self, meme_id: str) -> bool:
        with self.Session() as session:
            session.execute(delete(MemeTagRow).where(MemeTagRow.meme_id == meme_id))
            result = session.execute(delete(MemeRow).where(MemeRow.id == meme_id))
            session.commit()
            return bool(result.rowcount)


def _begin_immediate_on_sqlite(engine) -> None:
    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        # Let SQLAlchemy emit BEGIN itself instead of the driver deferring it.
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin_immediate(connection):
        connection.exec_driver_sql("BEGIN IMMEDIATE")


Base = declarative_base()


class MemeRow(Base):
    __tablename__ = "memes"

    id = Column(String, primary_key=True)
    image_url = Column(String, nullable=False)
    media_id = Column(String, nullable=False)
    caption = Column(String, nullable=False)
    category = Column(String, nullable=False, index=True)
    tags = Column(JSON, nullable=False, default=list)
    likes = Column(Integer, nullable=False, default=0, index=True)
    liked_by = Column(JSON, nullable=False, default=list)
    report_count = Column(Integer, nullable=False, default=0)
    reported_by = Column(JSON, nullable=False, default=list)
    owner_id = Column(String, nullable=False)
    created_at = Column(Float, nullable=False, index=True)


class MemeTagRow(Base):
    __tablename__ = "meme_tags"

    meme_id = Column(String, ForeignKey("memes.id"), primary_key=True)
    position = Column(Integer, primary_key=True)
    tag = Column(String, nullable=False, index=True)
