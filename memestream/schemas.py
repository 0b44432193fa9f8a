"""
Pydantic schemas for the MemeStream API.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel

from memestream.db import MemeRecord


class Report(BaseModel):
    userId: str
    reason: str


class Meme(BaseModel):
    id: str
    imageUrl: str
    mediaId: str
    caption: str
    category: str
    tags: list[str]
    likes: int
    likedBy: list[str]
    reportCount: int
    reportedBy: list[Report]
    ownerId: str
    createdAt: datetime
    isTrending: bool

    @classmethod
    def from_record(cls, record: MemeRecord, now: float) -> "Meme":
        return cls(
            id=record.id,
            imageUrl=record.image_url,
            mediaId=record.media_id,
            caption=record.caption,
            category=record.category,
            tags=record.tags,
            likes=record.likes,
            likedBy=record.liked_by,
            reportCount=record.report_count,
            reportedBy=[Report(**r) for r in record.reported_by],
            ownerId=record.owner_id,
            createdAt=datetime.fromtimestamp(record.created_at, tz=timezone.utc),
            isTrending=record.is_trending(now),
        )


# Request bodies keep their fields optional so missing values reach the
# service and come back as 400s with the standard envelope.


class CreateMemeRequest(BaseModel):
    imageData: Optional[str] = None
    caption: Optional[str] = None
    category: Optional[str] = None
    tags: Optional[list[str]] = None
    userId: Optional[str] = None


class UserActionRequest(BaseModel):
    userId: Optional[str] = None


class ReportRequest(BaseModel):
    userId: Optional[str] = None
    reason: Optional[str] = None


class CaptionRequest(BaseModel):
    imageData: Optional[str] = None
    tags: Optional[list[str]] = None


class MessageResponse(BaseModel):
    success: bool = True
    message: str


class CreateMemeResponse(MessageResponse):
    meme: Meme


class LikeResponse(BaseModel):
    success: bool = True
    liked: bool
    likes: int


class CaptionResponse(BaseModel):
    success: bool = True
    caption: str


class StatusResponse(BaseModel):
    message: str
    status: str
    version: str
    cors: str
