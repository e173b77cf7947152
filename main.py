"""
Project IDE Backend
CRUD API for browser IDE projects with database or in-memory storage
"""

import logging
import traceback
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from starlette.datastructures import Headers
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from config.settings import Settings, get_settings
from crud.project_store import ProjectStore, create_project_store
from routers.projects_router import projects_router
from services.project_service import ProjectService
from utils.rate_limit import RateLimiterMiddleware, create_redis_client
from utils.responses import error_response
from utils.shared_utils import configure_logging

logger = logging.getLogger(__name__)


# Uncaught exception middleware - logs all unhandled exceptions and returns 500
class UncaughtExceptionMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request, call_next):
        try:
            return await call_next(request)
        except Exception as e:
            logger.error(f"Uncaught exception: {e}\n{traceback.format_exc()}")
            return error_response("Internal server error", status=500)


class BodyTooLarge(HTTPException):
    def __init__(self):
        super().__init__(status_code=413, detail="Request body too large")


class BodySizeLimitMiddleware:
    """
    Reject request bodies above the ceiling.

    A declared Content-Length is checked up front. Bodies without one
    (chunked uploads) are counted as they are received and cut off once the
    running total passes ``max_body_bytes``.
    """

    def __init__(self, app: ASGIApp, max_body_bytes: int):
        self.app = app
        self.max_body_bytes = max_body_bytes

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        content_length = Headers(scope=scope).get("content-length")
        if content_length is not None:
            try:
                declared = int(content_length)
            except ValueError:
                await error_response("Invalid Content-Length header", status=400)(scope, receive, send)
                return
            if declared > self.max_body_bytes:
                logger.warning(f"Rejected {declared}-byte body on {scope['path']}")
                await error_response("Request body too large", status=413)(scope, receive, send)
                return

        received = 0
        response_started = False

        async def limited_receive() -> Message:
            nonlocal received
            message = await receive()
            if message["type"] == "http.request":
                received += len(message.get("body", b""))
                if received > self.max_body_bytes:
                    raise BodyTooLarge()
            return message

        async def tracked_send(message: Message) -> None:
            nonlocal response_started
            if message["type"] == "http.response.start":
                response_started = True
            await send(message)

        try:
            await self.app(scope, limited_receive, tracked_send)
        except BodyTooLarge:
            if response_started:
                raise
            logger.warning(f"Rejected streamed body over {self.max_body_bytes} bytes on {scope['path']}")
            await error_response("Request body too large", status=413)(scope, receive, send)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses: CSP, HSTS, X-Frame-Options, X-Content-Type-Options"""

    def __init__(self, app, enable_hsts: bool = False):
        super().__init__(app)
        self.enable_hsts = enable_hsts

    async def dispatch(self, request, call_next):
        response = await call_next(request)

        # The API only serves JSON
        response.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none'"

        # HTTPS is only guaranteed in production
        if self.enable_hsts:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-Content-Type-Options"] = "nosniff"

        return response


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        # Unknown paths and unsupported methods both count as unmatched routes
        if exc.status_code in (404, 405):
            return error_response("Route not found", status=404)
        return error_response(str(exc.detail), status=exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        logger.info(f"Malformed request on {request.url.path}: {exc.errors()}")
        return error_response("Invalid JSON body", status=400)


def create_app(settings: Optional[Settings] = None, store: Optional[ProjectStore] = None) -> FastAPI:
    """
    Build the application.

    ``store`` injects a ready project store (tests); otherwise the backend is
    chosen once at startup from ``settings.database_url``.
    """
    settings = settings or get_settings()
    configure_logging(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if getattr(app.state, "project_service", None) is None:
            project_store = await create_project_store(settings)
            app.state.project_service = ProjectService(project_store)
        logger.info(f"🚀 Project IDE backend ready ({settings.environment})")
        logger.info(f"🔗 Storage: {app.state.project_service.backend}")
        try:
            yield
        finally:
            await app.state.project_service.store.close()
            if redis_client is not None:
                await redis_client.aclose()

    app = FastAPI(title="Project IDE Backend", lifespan=lifespan)
    app.state.settings = settings
    app.state.project_service = ProjectService(store) if store is not None else None

    redis_client = create_redis_client(settings.redis_url)

    app.add_middleware(UncaughtExceptionMiddleware)
    app.add_middleware(
        RateLimiterMiddleware,
        max_requests=settings.rate_limit_max_requests,
        window_seconds=settings.rate_limit_window_seconds,
        redis_client=redis_client,
        trust_proxy=settings.trust_proxy,
    )
    app.add_middleware(BodySizeLimitMiddleware, max_body_bytes=settings.max_body_bytes)
    app.add_middleware(SecurityHeadersMiddleware, enable_hsts=settings.is_production)
    app.add_middleware(GZipMiddleware, minimum_size=1024)

    # CORS MUST be near the bottom
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.frontend_url],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)
    app.include_router(projects_router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=get_settings().host, port=get_settings().port)
