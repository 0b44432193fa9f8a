"""
FastAPI application entry point for the MemeStream backend.
"""

from __future__ import annotations

import logging
import time
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.datastructures import Headers
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from memestream.config import Settings, get_settings
from memestream.cors import OriginPolicy
from memestream.errors import MemeStreamError
from memestream.routes import API_VERSION, router

logger = logging.getLogger(__name__)


def _error_response(
    settings: Settings, status_code: int, message: str, detail: Optional[str] = None
) -> JSONResponse:
    content = {"success": False, "message": message}
    if detail and settings.expose_error_details:
        content["error"] = detail
    return JSONResponse(status_code=status_code, content=content)


class BodySizeLimitMiddleware:
    """
    Rejects request bodies larger than ``max_body_bytes`` with a 413.

    The declared ``Content-Length`` is checked first; bodies without one
    (chunked uploads) are counted as they arrive and replayed to the app
    once they fit.
    """

    def __init__(self, app: ASGIApp, settings: Settings):
        self.app = app
        self.settings = settings

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        limit = self.settings.max_body_bytes
        length = Headers(scope=scope).get("content-length")
        if length and length.isdigit() and int(length) > limit:
            await self._reject(scope, receive, send)
            return

        chunks: list[bytes] = []
        received = 0
        more_body = True
        while more_body:
            message = await receive()
            if message["type"] != "http.request":
                # Client went away before finishing the body.
                return
            chunk = message.get("body", b"")
            received += len(chunk)
            if received > limit:
                await self._reject(scope, receive, send)
                return
            chunks.append(chunk)
            more_body = message.get("more_body", False)

        body = b"".join(chunks)
        replayed = False

        async def replay() -> Message:
            nonlocal replayed
            if replayed:
                return await receive()
            replayed = True
            return {"type": "http.request", "body": body, "more_body": False}

        await self.app(scope, replay, send)

    async def _reject(self, scope: Scope, receive: Receive, send: Send) -> None:
        response = _error_response(
            self.settings,
            413,
            "Request body too large",
            f"limit={self.settings.max_body_bytes}",
        )
        await response(scope, receive, send)


def _install_error_handlers(app: FastAPI, settings: Settings) -> None:
    @app.exception_handler(MemeStreamError)
    async def handle_meme_stream_error(request: Request, exc: MemeStreamError):
        if exc.status_code >= 500:
            logger.error(
                "API Error on %s %s: %s",
                request.method,
                request.url.path,
                exc.detail or exc.message,
            )
        return _error_response(settings, exc.status_code, exc.message, exc.detail)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        return _error_response(settings, 400, "Invalid request body", str(exc.errors()))

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception):
        logger.exception("API Error on %s %s", request.method, request.url.path)
        return _error_response(settings, 500, "Server Error", str(exc))


def _install_middleware(app: FastAPI, settings: Settings) -> None:
    app.add_middleware(BodySizeLimitMiddleware, settings=settings)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        logger.info(
            "%s %s %d %.1f ms",
            request.method,
            request.url.path,
            response.status_code,
            (time.perf_counter() - start) * 1000,
        )
        return response

    OriginPolicy.from_settings(settings).install(app)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    logging.basicConfig(level=settings.log_level.upper())

    app = FastAPI(title="MemeStream API", version=API_VERSION)
    app.dependency_overrides[get_settings] = lambda: settings
    app.include_router(router, prefix=settings.api_prefix)
    _install_error_handlers(app, settings)
    _install_middleware(app, settings)
    return app


app = create_app()
