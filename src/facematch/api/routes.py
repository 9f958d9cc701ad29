"""API route definitions."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status

from facematch.api.middleware import verify_api_key
from facematch.api.schemas import (
    EnrollRequest,
    ErrorResponse,
    GalleryResponse,
    HealthResponse,
    MatchRequest,
    MatchResponse,
    RecognitionState,
    RecordResponse,
    RemovedResponse,
)
from facematch.errors import DimensionMismatch, InvalidEmbedding, InvalidName, RecordNotFound

if TYPE_CHECKING:
    from facematch.config import Settings
    from facematch.ml.inference import WorkerPool
    from facematch.service import RecognitionService

router = APIRouter(prefix="/api/v1", dependencies=[Depends(verify_api_key)])

HTTP_422_UNPROCESSABLE = 422

_BUSY = {status.HTTP_503_SERVICE_UNAVAILABLE: {"model": ErrorResponse}}


def _get_settings(request: Request) -> Settings:
    settings: Settings = request.app.state.settings
    return settings


def _get_service(request: Request) -> RecognitionService:
    service: RecognitionService = request.app.state.service
    return service


def _get_worker_pool(request: Request) -> WorkerPool:
    pool: WorkerPool = request.app.state.worker_pool
    return pool


def _unprocessable(exc: Exception) -> HTTPException:
    return HTTPException(status_code=HTTP_422_UNPROCESSABLE, detail=str(exc))


def _busy() -> HTTPException:
    return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Server busy, try again later")


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
)
async def health(request: Request) -> HealthResponse:
    """Return service health status."""
    settings = _get_settings(request)
    state = _get_service(request).state
    pool = _get_worker_pool(request)
    return HealthResponse(
        status="ok",
        gallery_size=len(state),
        embedding_dim=state.embedding_dim,
        recognition_active=state.recognition_active,
        match_threshold=settings.match_threshold,
        concurrent_requests=pool.active_count,
        queue_depth=pool.queue_depth,
    )


@router.get(
    "/gallery",
    response_model=GalleryResponse,
    summary="List enrolled faces",
)
async def list_gallery(request: Request) -> GalleryResponse:
    """Return enrollment records in gallery order."""
    gallery = _get_service(request).state.snapshot()
    return GalleryResponse(records=[RecordResponse.from_record(record) for record in gallery])


@router.post(
    "/gallery",
    response_model=RecordResponse,
    status_code=status.HTTP_201_CREATED,
    responses={HTTP_422_UNPROCESSABLE: {"model": ErrorResponse}, **_BUSY},
    summary="Enroll a face embedding",
)
async def enroll(request: Request, body: EnrollRequest) -> RecordResponse:
    """Add a named embedding to the gallery. Re-enrolling a name adds another record."""
    service = _get_service(request)
    pool = _get_worker_pool(request)
    try:
        record = await pool.run(service.enroll_embedding, body.name, body.embedding)
    except (DimensionMismatch, InvalidEmbedding, InvalidName) as exc:
        raise _unprocessable(exc) from exc
    except TimeoutError as exc:
        raise _busy() from exc
    return RecordResponse.from_record(record)


@router.delete(
    "/gallery/{record_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={status.HTTP_404_NOT_FOUND: {"model": ErrorResponse}, **_BUSY},
    summary="Delete one enrollment record",
)
async def delete_record(request: Request, record_id: str) -> Response:
    service = _get_service(request)
    pool = _get_worker_pool(request)
    try:
        await pool.run(service.remove, record_id)
    except RecordNotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except TimeoutError as exc:
        raise _busy() from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete(
    "/gallery",
    response_model=RemovedResponse,
    responses=_BUSY,
    summary="Delete all enrollment records",
)
async def clear_gallery(request: Request) -> RemovedResponse:
    service = _get_service(request)
    pool = _get_worker_pool(request)
    try:
        removed = await pool.run(service.clear)
    except TimeoutError as exc:
        raise _busy() from exc
    return RemovedResponse(removed=removed)


@router.post(
    "/match",
    response_model=MatchResponse,
    responses={HTTP_422_UNPROCESSABLE: {"model": ErrorResponse}, **_BUSY},
    summary="Identify a face embedding",
)
async def match(request: Request, body: MatchRequest) -> MatchResponse:
    """Return the best gallery match for an embedding."""
    service = _get_service(request)
    pool = _get_worker_pool(request)
    try:
        result = await pool.run(service.match, body.embedding, body.threshold)
    except (DimensionMismatch, InvalidEmbedding) as exc:
        raise _unprocessable(exc) from exc
    except TimeoutError as exc:
        raise _busy() from exc
    return MatchResponse.from_result(result)


@router.get(
    "/recognition",
    response_model=RecognitionState,
    summary="Recognition toggle state",
)
async def get_recognition(request: Request) -> RecognitionState:
    return RecognitionState(active=_get_service(request).state.recognition_active)


@router.put(
    "/recognition",
    response_model=RecognitionState,
    summary="Enable or disable recognition",
)
async def set_recognition(request: Request, body: RecognitionState) -> RecognitionState:
    state = _get_service(request).state
    state.set_recognition(body.active)
    return RecognitionState(active=state.recognition_active)
