"""FastAPI application entry point."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from facematch.config import Settings

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from facematch.api.routes import router
from facematch.config import get_settings
from facematch.core.gallery import GalleryState
from facematch.errors import StoreError
from facematch.ml.inference import WorkerPool
from facematch.service import RecognitionService
from facematch.store.enrollment_store import create_store

logger = logging.getLogger(__name__)


def init_app_state(app: FastAPI, settings: Settings) -> None:
    """Attach settings, the recognition service and the worker pool to ``app``."""
    app.state.settings = settings
    state = GalleryState(embedding_dim=settings.embedding_dim, recognition_active=settings.recognition_active)
    service = RecognitionService(state, create_store(settings), settings)
    service.load()
    app.state.service = service
    app.state.worker_pool = WorkerPool(settings)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan: initialize on startup, clean up on shutdown."""
    settings = get_settings()

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    logger.info(
        "Starting FaceMatch (threshold=%s, mismatch_policy=%s, gallery=%s, max_concurrent=%s)",
        settings.match_threshold,
        settings.mismatch_policy,
        settings.gallery_path or "<memory>",
        settings.max_concurrent,
    )

    init_app_state(app, settings)

    logger.info("FaceMatch ready (%d enrolled)", len(app.state.service.state))
    yield

    logger.info("Shutting down FaceMatch")
    app.state.worker_pool.shutdown()
    logger.info("FaceMatch shutdown complete")


async def _store_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Enrollment store failure on %s: %s", request.url.path, exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Enrollment store unavailable"},
    )


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    application = FastAPI(
        title="FaceMatch",
        description="Face embedding enrollment and matching API",
        version="0.1.0",
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    application.add_exception_handler(StoreError, _store_error_handler)
    application.include_router(router)
    return application


app = create_app()
