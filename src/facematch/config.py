"""Environment-based configuration for FaceMatch."""

from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from FACEMATCH_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="FACEMATCH_",
        case_sensitive=False,
        protected_namespaces=(),
    )

    # Server
    host: str = "0.0.0.0"  # noqa: S104
    port: int = 8083
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # Authentication (None = disabled)
    api_key: str | None = None

    # Matching
    match_threshold: float = Field(default=0.7, ge=-1.0, le=1.0)
    mismatch_policy: Literal["strict", "skip"] = "strict"
    embedding_dim: int | None = Field(default=None, gt=0)
    recognition_active: bool = False

    # Enrollment store (None = in-memory only)
    gallery_path: str | None = None

    # Recognition cadence
    min_face_size: int = Field(default=100, ge=0)
    min_embedding_interval: float = Field(default=0.0, ge=0.0)

    # ML device
    device: Literal["cpu", "cuda", "openvino"] = "cpu"

    # Embedding model
    recognition_model: str = "auraface_v1"
    model_path: str | None = None
    models_dir: str = "models"
    accept_insightface_license: bool = False

    # ONNX Runtime threading
    intra_op_threads: int = Field(default=0, ge=0)
    inter_op_threads: int = Field(default=1, ge=1)

    # Concurrency
    max_concurrent: int = Field(default=2, ge=1)

    # Model management
    model_ttl: int = Field(default=300, ge=0)
    gpu_mem_limit: int = Field(default=2_147_483_648, ge=0)


def get_settings() -> Settings:
    """Create and return application settings."""
    return Settings()
