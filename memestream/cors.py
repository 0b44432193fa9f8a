"""
Cross-origin policy for the browser frontend.

``enforce`` lets the CORS middleware reject origins outside the allow-list.
``log-only`` answers every origin but logs the ones that would have been
rejected.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from memestream.config import Settings

logger = logging.getLogger(__name__)

ALLOWED_METHODS = ["GET", "POST", "PUT", "DELETE", "OPTIONS"]
ALLOWED_HEADERS = ["Content-Type", "Authorization", "User-ID"]
EXPOSED_HEADERS = ["Content-Length", "Content-Type"]
PREFLIGHT_MAX_AGE = 86400


@dataclass
class OriginPolicy:
    allowed_origins: list[str] = field(default_factory=list)
    origin_regex: Optional[str] = None
    mode: str = "log-only"

    @classmethod
    def from_settings(cls, settings: Settings) -> "OriginPolicy":
        return cls(
            allowed_origins=list(settings.cors_allowed_origins),
            origin_regex=settings.cors_origin_regex or None,
            mode=settings.cors_mode,
        )

    def is_allowed(self, origin: str) -> bool:
        if origin in self.allowed_origins:
            return True
        return bool(self.origin_regex and re.fullmatch(self.origin_regex, origin))

    def install(self, app: FastAPI) -> None:
        enforce = self.mode == "enforce"
        app.add_middleware(
            CORSMiddleware,
            allow_origins=self.allowed_origins if enforce else ["*"],
            allow_origin_regex=self.origin_regex if enforce else None,
            allow_methods=ALLOWED_METHODS,
            allow_headers=ALLOWED_HEADERS,
            expose_headers=EXPOSED_HEADERS,
            allow_credentials=False,
            max_age=PREFLIGHT_MAX_AGE,
        )
        if enforce:
            return

        # Registered after CORSMiddleware so it also sees preflight requests.
        @app.middleware("http")
        async def log_unlisted_origin(request: Request, call_next):
            origin = request.headers.get("origin")
            if origin and not self.is_allowed(origin):
                logger.warning("Origin %s not allowed by CORS, allowing anyway", origin)
            return await call_next(request)
