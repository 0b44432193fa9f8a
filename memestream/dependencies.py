"""
Dependency wiring for the FastAPI app.

Adapters are built once from the settings object and shared across
requests; nothing below the routes reads the environment.
"""

from __future__ import annotations

from fastapi import Depends

from memestream.config import Settings, get_settings
from memestream.db import InMemoryMemeStore, MemeStore, SqlMemeStore
from memestream.gemini import GeminiCaptioner
from memestream.service import AccessPolicy, MemeService
from memestream.storage import CosMediaStore, InMemoryMediaStore, MediaStore

_meme_store: MemeStore | None = None
_media_store: MediaStore | None = None
_captioner: GeminiCaptioner | None = None


def get_meme_store(settings: Settings = Depends(get_settings)) -> MemeStore:
    """
    Return a singleton store so meme state persists across requests.
    """
    global _meme_store
    if _meme_store:
        return _meme_store

    if settings.use_in_memory_backends or not settings.database_url:
        _meme_store = InMemoryMemeStore()
    else:
        _meme_store = SqlMemeStore(settings.database_url)
    return _meme_store


def get_media_store(settings: Settings = Depends(get_settings)) -> MediaStore:
    global _media_store
    if _media_store:
        return _media_store

    if settings.use_in_memory_backends or not settings.cos_bucket:
        _media_store = InMemoryMediaStore()
    else:
        _media_store = CosMediaStore(
            bucket=settings.cos_bucket,
            region=settings.cos_region or "",
            endpoint=settings.cos_endpoint or "",
            access_key_id=settings.aws_access_key_id or "",
            secret_access_key=settings.aws_secret_access_key or "",
            public_base_url=settings.media_public_base_url,
            transform=settings.media_transform,
        )
    return _media_store


def get_captioner(settings: Settings = Depends(get_settings)) -> GeminiCaptioner | None:
    """
    Return the Gemini captioner, or None when no API key is configured so the
    service falls back to canned captions.
    """
    global _captioner
    if not settings.gemini_api_key:
        return None
    if _captioner is None or _captioner.api_key != settings.gemini_api_key:
        _captioner = GeminiCaptioner(
            api_key=settings.gemini_api_key, model=settings.gemini_model
        )
    return _captioner


def get_meme_service(
    settings: Settings = Depends(get_settings),
    store: MemeStore = Depends(get_meme_store),
    media: MediaStore = Depends(get_media_store),
    captioner: GeminiCaptioner | None = Depends(get_captioner),
) -> MemeService:
    return MemeService(
        store,
        media,
        captioner,
        access=AccessPolicy(admin_user_ids=frozenset(settings.admin_user_ids)),
        report_dedupe=settings.report_dedupe,
        media_folder=settings.media_folder,
        default_page_size=settings.default_page_size,
    )
