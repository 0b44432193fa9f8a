"""
HTTP routes for the MemeStream API.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Body, Depends, Header, Query

from memestream.dependencies import get_meme_service
from memestream.schemas import (
    CaptionRequest,
    CaptionResponse,
    CreateMemeRequest,
    CreateMemeResponse,
    LikeResponse,
    Meme,
    MessageResponse,
    ReportRequest,
    StatusResponse,
    UserActionRequest,
)
from memestream.service import MemeService

logger = logging.getLogger(__name__)

router = APIRouter()

API_VERSION = "1.0.0"


@router.get("", response_model=StatusResponse)
def api_status():
    return StatusResponse(
        message="Welcome to MemeStream API",
        status="online",
        version=API_VERSION,
        cors="enabled",
    )


@router.get("/memes", response_model=list[Meme])
def list_memes(
    category: Optional[str] = Query(None),
    tag: Optional[str] = Query(None),
    sort: Optional[str] = Query(None, description="newest, oldest or mostLiked"),
    # Parsed by the service so bad values get the standard 400 envelope.
    page: Optional[str] = Query(None),
    limit: Optional[str] = Query(None),
    service: MemeService = Depends(get_meme_service),
):
    memes = service.list_memes(
        category=category, tag=tag, sort=sort, page=page, limit=limit
    )
    now = service.now()
    return [Meme.from_record(m, now) for m in memes]


@router.post("/memes", response_model=CreateMemeResponse, status_code=201)
def create_meme(
    payload: CreateMemeRequest,
    service: MemeService = Depends(get_meme_service),
):
    record = service.create_meme(
        image_data=payload.imageData,
        caption=payload.caption,
        category=payload.category,
        tags=payload.tags,
        owner_id=payload.userId,
    )
    return CreateMemeResponse(
        message="Meme created successfully", meme=Meme.from_record(record, service.now())
    )


@router.get("/memes/{meme_id}", response_model=Meme)
def get_meme(meme_id: str, service: MemeService = Depends(get_meme_service)):
    return Meme.from_record(service.get_meme(meme_id), service.now())


@router.get("/trending", response_model=list[Meme])
def trending_memes(
    timeframe: Optional[str] = Query(None, description="day, week or month"),
    service: MemeService = Depends(get_meme_service),
):
    now = service.now()
    return [Meme.from_record(m, now) for m in service.trending(timeframe)]


@router.post("/memes/{meme_id}/like", response_model=LikeResponse)
def toggle_like(
    meme_id: str,
    payload: UserActionRequest,
    service: MemeService = Depends(get_meme_service),
):
    liked, likes = service.toggle_like(meme_id, payload.userId)
    return LikeResponse(liked=liked, likes=likes)


@router.post("/memes/{meme_id}/report", response_model=MessageResponse)
def report_meme(
    meme_id: str,
    payload: ReportRequest,
    service: MemeService = Depends(get_meme_service),
):
    service.report_meme(meme_id, payload.userId, payload.reason)
    return MessageResponse(message="Meme reported successfully")


@router.delete("/memes/{meme_id}", response_model=MessageResponse)
def delete_meme(
    meme_id: str,
    payload: Optional[UserActionRequest] = Body(None),
    user_id_header: Optional[str] = Header(None, alias="User-ID"),
    service: MemeService = Depends(get_meme_service),
):
    requester_id = (payload.userId if payload else None) or user_id_header
    service.delete_meme(meme_id, requester_id)
    return MessageResponse(message="Meme deleted successfully")


@router.post("/generate-caption", response_model=CaptionResponse)
def generate_caption(
    payload: CaptionRequest,
    service: MemeService = Depends(get_meme_service),
):
    caption = service.generate_caption(payload.imageData, payload.tags)
    return CaptionResponse(caption=caption)
