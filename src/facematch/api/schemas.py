"""Pydantic request/response schemas for the FaceMatch API."""

from __future__ import annotations

import math
from datetime import datetime
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from facematch.core.matcher import EnrollmentRecord, MatchResult


class EnrollRequest(BaseModel):
    """A named embedding to add to the gallery."""

    name: str = Field(min_length=1, max_length=100)
    embedding: list[float] = Field(min_length=1, description="Face embedding vector")


class RecordResponse(BaseModel):
    """An enrollment record, without its embedding."""

    id: str
    name: str
    created_at: datetime
    dimension: int

    @classmethod
    def from_record(cls, record: EnrollmentRecord) -> RecordResponse:
        return cls(
            id=record.record_id,
            name=record.name,
            created_at=record.created_at,
            dimension=record.dimension,
        )


class GalleryResponse(BaseModel):
    records: list[RecordResponse]


class RemovedResponse(BaseModel):
    removed: int


class MatchRequest(BaseModel):
    embedding: list[float] = Field(min_length=1, description="Face embedding vector")
    threshold: float | None = Field(default=None, ge=-1.0, le=1.0, description="Overrides the configured threshold")


class MatchResponse(BaseModel):
    """Best match for a query embedding."""

    name: str | None
    score: float | None = Field(description="Best cosine similarity found, null when nothing was compared")
    accepted: bool
    record_id: str | None

    @classmethod
    def from_result(cls, result: MatchResult) -> MatchResponse:
        return cls(
            name=result.name,
            score=result.score if math.isfinite(result.score) else None,
            accepted=result.accepted,
            record_id=result.record_id,
        )


class RecognitionState(BaseModel):
    active: bool


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    gallery_size: int
    embedding_dim: int | None
    recognition_active: bool
    match_threshold: float
    concurrent_requests: int
    queue_depth: int


class ErrorResponse(BaseModel):
    """Standard error response."""

    detail: str
