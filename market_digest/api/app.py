"""
FastAPI application exposing the newsletter endpoints.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ..config import Settings, load_settings
from ..errors import NewsletterError, NotFoundError, StorageError, ValidationError
from ..pipeline import Pipeline, build_pipeline
from .routes import router as newsletter_router

logger = logging.getLogger(__name__)

STATUS_CODES = {
    ValidationError: 400,
    NotFoundError: 404,
    StorageError: 500,
}


def _error_response(status_code: int, kind: str, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": kind, "message": message})


def create_app(settings: Optional[Settings] = None, pipeline: Optional[Pipeline] = None) -> FastAPI:
    """
    Build the API application.

    Args:
        settings: Application settings, loaded from the environment if omitted
        pipeline: Pre-built components, built from settings if omitted
    """
    if pipeline is None:
        settings = settings or load_settings()
        pipeline = build_pipeline(settings)
    settings = pipeline.settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if settings.scheduler_enabled:
            pipeline.scheduler.start()
        yield
        await pipeline.shutdown()

    app = FastAPI(title="Market Digest API", version="0.1.0", lifespan=lifespan)
    app.state.pipeline = pipeline

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type", "Authorization"],
        max_age=86400,
    )

    @app.exception_handler(NewsletterError)
    async def newsletter_error_handler(request: Request, exc: NewsletterError):
        status_code = next(
            (code for error_type, code in STATUS_CODES.items() if isinstance(exc, error_type)), 500
        )
        if status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc}")
        return _error_response(status_code, exc.kind, str(exc))

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        details = "; ".join(
            f"{'.'.join(str(p) for p in err.get('loc', ())[1:]) or 'body'}: {err.get('msg')}"
            for err in exc.errors()
        )
        return _error_response(400, ValidationError.kind, details or "Invalid request body")

    @app.get("/api/status")
    async def status():
        return {
            "status": "ok",
            "message": "API is running",
            "time": datetime.now(timezone.utc).isoformat(),
        }

    app.include_router(newsletter_router)
    return app
