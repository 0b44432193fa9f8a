"""
Meme service: orchestrates the record store, the media store and the
caption generator behind the HTTP routes.
"""

from __future__ import annotations

import calendar
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, Optional, Protocol, Sequence

from memestream.db import (
    CATEGORIES,
    DEFAULT_REPORT_REASON,
    DuplicateReportCheck,
    MemeRecord,
    MemeStore,
    SortOrder,
)
from memestream.errors import (
    CaptionGenerationError,
    Forbidden,
    InvalidQuery,
    NotFound,
    ValidationError,
)
from memestream.gemini import mock_caption
from memestream.storage import DEFAULT_FOLDER, MediaStore

logger = logging.getLogger(__name__)

ANONYMOUS_USER = "anonymous"
DEFAULT_PAGE_SIZE = 9

_DIGITS = re.compile(r"[0-9]+")


class CaptionGenerator(Protocol):
    def generate(self, image_data: str, tags: Sequence[str] = ()) -> str:
        ...


def same_user_id(reports: list[dict], user_id: str) -> bool:
    return any(report.get("userId") == user_id for report in reports)


def user_id_substring(reports: list[dict], user_id: str) -> bool:
    """Match when the stored text of any report contains the user id."""
    return any(
        user_id in f"{report.get('userId', '')} {report.get('reason', '')}"
        for report in reports
    )


REPORT_DEDUPE_POLICIES: dict[str, DuplicateReportCheck] = {
    "user_id": same_user_id,
    "substring": user_id_substring,
}


@dataclass(frozen=True)
class AccessPolicy:
    """Ownership and admin-role checks for destructive operations."""

    admin_user_ids: frozenset[str] = frozenset({"admin"})

    def is_owner(self, user_id: Optional[str], meme: MemeRecord) -> bool:
        return bool(user_id) and meme.owner_id == user_id

    def has_admin_role(self, user_id: Optional[str]) -> bool:
        return bool(user_id) and user_id in self.admin_user_ids

    def can_delete(self, user_id: Optional[str], meme: MemeRecord) -> bool:
        return self.is_owner(user_id, meme) or self.has_admin_role(user_id)


def parse_positive_int(value, name: str) -> int:
    text = str(value).strip()
    if not _DIGITS.fullmatch(text):
        raise InvalidQuery("Invalid pagination parameters", detail=f"{name}={value!r}")
    number = int(text)
    if number < 1:
        raise InvalidQuery("Invalid pagination parameters", detail=f"{name}={value!r}")
    return number


def one_month_before(moment: datetime) -> datetime:
    if moment.month == 1:
        year, month = moment.year - 1, 12
    else:
        year, month = moment.year, moment.month - 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def trending_cutoff(timeframe: Optional[str], now: datetime) -> datetime:
    if timeframe == "day":
        return now - timedelta(days=1)
    if timeframe == "month":
        return one_month_before(now)
    return now - timedelta(days=7)


def _clean_tags(tags: Optional[Iterable[str]]) -> list[str]:
    return [t.strip() for t in tags or [] if t and t.strip()]


class MemeService:
    def __init__(
        self,
        store: MemeStore,
        media: MediaStore,
        captioner: Optional[CaptionGenerator] = None,
        *,
        access: Optional[AccessPolicy] = None,
        report_dedupe: str = "user_id",
        media_folder: str = DEFAULT_FOLDER,
        default_page_size: int = DEFAULT_PAGE_SIZE,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        if report_dedupe not in REPORT_DEDUPE_POLICIES:
            raise ValueError(f"Unknown report dedupe policy: {report_dedupe}")
        self.store = store
        self.media = media
        self.captioner = captioner
        self.access = access or AccessPolicy()
        self.is_duplicate_report = REPORT_DEDUPE_POLICIES[report_dedupe]
        self.media_folder = media_folder
        self.default_page_size = default_page_size
        self.clock = clock

    def now(self) -> float:
        return self.clock().timestamp()

    def list_memes(
        self,
        *,
        category: Optional[str] = None,
        tag: Optional[str] = None,
        sort: Optional[str] = None,
        page=None,
        limit=None,
    ) -> list[MemeRecord]:
        page_num = parse_positive_int(1 if page is None else page, "page")
        page_size = parse_positive_int(
            self.default_page_size if limit is None else limit, "limit"
        )
        return self.store.list_memes(
            category=category or None,
            tag=tag or None,
            sort=SortOrder.parse(sort),
            page=page_num,
            page_size=page_size,
        )

    def get_meme(self, meme_id: str) -> MemeRecord:
        meme = self.store.get(meme_id)
        if not meme:
            raise NotFound("Meme not found")
        return meme

    def create_meme(
        self,
        *,
        image_data: Optional[str],
        caption: Optional[str],
        category: Optional[str],
        tags: Optional[Iterable[str]] = None,
        owner_id: Optional[str] = None,
    ) -> MemeRecord:
        caption = (caption or "").strip()
        if not image_data or not caption or not category:
            raise ValidationError("Please provide image, caption, and category")
        if category not in CATEGORIES:
            raise ValidationError(
                f"Invalid category: {category}",
                detail=f"Expected one of {', '.join(CATEGORIES)}",
            )

        uploaded = self.media.upload(image_data, folder=self.media_folder)
        record = MemeRecord(
            image_url=uploaded.url,
            media_id=uploaded.media_id,
            caption=caption,
            category=category,
            tags=_clean_tags(tags),
            owner_id=owner_id or ANONYMOUS_USER,
            created_at=self.now(),
        )
        try:
            self.store.create(record)
        except Exception:
            # The uploaded image is left behind; clean-up happens out of band.
            logger.exception(
                "Persisting meme failed after upload, orphaned media %s",
                uploaded.media_id,
            )
            raise
        logger.info("Created meme %s (%s) for %s", record.id, category, record.owner_id)
        return record

    def trending(self, timeframe: Optional[str] = None) -> list[MemeRecord]:
        since = trending_cutoff(timeframe, self.clock())
        return self.store.trending(since.timestamp())

    def toggle_like(self, meme_id: str, user_id: Optional[str]) -> tuple[bool, int]:
        if not user_id:
            raise ValidationError("User ID is required")
        result = self.store.toggle_like(meme_id, user_id)
        if result is None:
            raise NotFound("Meme not found")
        return result

    def report_meme(
        self, meme_id: str, user_id: Optional[str], reason: Optional[str] = None
    ) -> bool:
        if not user_id:
            raise ValidationError("User ID is required")
        added = self.store.add_report(
            meme_id,
            user_id,
            reason or DEFAULT_REPORT_REASON,
            self.is_duplicate_report,
        )
        if added is None:
            raise NotFound("Meme not found")
        if added:
            logger.info("Meme %s reported by %s", meme_id, user_id)
        return added

    def delete_meme(self, meme_id: str, requester_id: Optional[str]) -> None:
        meme = self.get_meme(meme_id)
        if not self.access.can_delete(requester_id, meme):
            raise Forbidden("You are not authorized to delete this meme")

        # A failure here propagates and leaves the record in place.
        self.media.delete(meme.media_id)
        self.store.delete(meme_id)
        logger.info("Deleted meme %s by %s", meme_id, requester_id)

    def generate_caption(
        self, image_data: Optional[str], tags: Optional[Sequence[str]] = None
    ) -> str:
        if not image_data:
            raise ValidationError("Image data is required")
        tags = list(tags or [])
        if self.captioner is None:
            return mock_caption(tags)
        try:
            return self.captioner.generate(image_data, tags)
        except CaptionGenerationError:
            raise
        except Exception as e:
            logger.exception("Caption generation error")
            raise CaptionGenerationError(
                "Failed to generate caption", detail=str(e)
            ) from e
