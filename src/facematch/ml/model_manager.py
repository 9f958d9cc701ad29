"""Model manager: locate, load, cache, and evict ONNX embedding models.

Models come either from a local file (``FACEMATCH_MODEL_PATH``) or from the
HuggingFace Hub registry below. Sessions are cached per model name and evicted
after ``model_ttl`` seconds of inactivity.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from huggingface_hub import hf_hub_download
from onnxruntime import InferenceSession, SessionOptions
from onnxruntime.capi.onnxruntime_pybind11_state import ExecutionMode

if TYPE_CHECKING:
    from facematch.config import Settings

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Model registry
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ModelSpec:
    """Static metadata for a single embedding model."""

    name: str
    repo_id: str
    filename: str
    subfolder: str | None
    embedding_dim: int
    license: str
    insightface: bool


MODEL_REGISTRY: dict[str, ModelSpec] = {
    "auraface_v1": ModelSpec(
        name="auraface_v1",
        repo_id="fal/AuraFace-v1",
        filename="glintr100.onnx",
        subfolder=None,
        embedding_dim=512,
        license="Apache-2.0",
        insightface=False,
    ),
    "w600k_r50": ModelSpec(
        name="w600k_r50",
        repo_id="public-data/insightface",
        filename="w600k_r50.onnx",
        subfolder="models/buffalo_l",
        embedding_dim=512,
        license="Non-commercial (InsightFace)",
        insightface=True,
    ),
}

LOCAL_MODEL_NAME = "local"


def get_spec(model_name: str) -> ModelSpec:
    try:
        return MODEL_REGISTRY[model_name]
    except KeyError:
        raise KeyError(f"Unknown model: {model_name}") from None


@dataclass
class _CachedSession:
    session: InferenceSession
    last_used: float


class OnnxModelManager:
    """Resolves model files and caches ONNX inference sessions."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._models_dir = Path(settings.models_dir)

        self._lock = threading.Lock()
        self._sessions: dict[str, _CachedSession] = {}
        self._model_paths: dict[str, Path] = {}

        self._providers = self._build_providers()
        self._session_options = self._build_session_options()

    # -- Public API ---------------------------------------------------------

    @property
    def active_model(self) -> str:
        """Name of the model selected by configuration."""
        if self._settings.model_path:
            return LOCAL_MODEL_NAME
        return self._settings.recognition_model

    def ensure_downloaded(self, model_name: str) -> Path:
        """Return the local path of a model, downloading it if needed."""
        if model_name == LOCAL_MODEL_NAME:
            return self._local_path()

        spec = get_spec(model_name)
        self._check_license(spec)

        cached = self._model_paths.get(model_name)
        if cached is not None and cached.exists():
            return cached

        self._models_dir.mkdir(parents=True, exist_ok=True)
        downloaded = Path(
            hf_hub_download(
                repo_id=spec.repo_id,
                filename=spec.filename,
                subfolder=spec.subfolder,
                local_dir=str(self._models_dir),
            )
        )
        self._model_paths[model_name] = downloaded
        logger.info("Downloaded %s to %s", model_name, downloaded)
        return downloaded

    def get_session(self, model_name: str) -> InferenceSession:
        """Return a cached InferenceSession, creating one if needed."""
        with self._lock:
            cached = self._sessions.get(model_name)
            if cached is not None:
                cached.last_used = time.monotonic()
                return cached.session

        model_path = self.ensure_downloaded(model_name)
        session = InferenceSession(
            str(model_path),
            sess_options=self._session_options,
            providers=self._providers,
        )

        with self._lock:
            # Another thread may have loaded the same model meanwhile.
            existing = self._sessions.get(model_name)
            if existing is not None:
                existing.last_used = time.monotonic()
                return existing.session
            self._sessions[model_name] = _CachedSession(session=session, last_used=time.monotonic())
            logger.info("Loaded session for %s", model_name)
            return session

    def get_loaded_models(self) -> list[str]:
        """Return names of models with active sessions."""
        with self._lock:
            return list(self._sessions.keys())

    def unload_idle_models(self) -> None:
        """Remove sessions that have exceeded the configured TTL."""
        ttl = self._settings.model_ttl
        if ttl == 0:
            return

        now = time.monotonic()
        with self._lock:
            expired = [name for name, cached in self._sessions.items() if (now - cached.last_used) > ttl]
            for name in expired:
                del self._sessions[name]
                logger.info("Evicted idle session for %s", name)

    def shutdown(self) -> None:
        """Clear all cached sessions."""
        with self._lock:
            self._sessions.clear()
            logger.info("All model sessions cleared")

    # -- Internal -----------------------------------------------------------

    def _local_path(self) -> Path:
        if not self._settings.model_path:
            raise KeyError("No local model configured (FACEMATCH_MODEL_PATH)")
        path = Path(self._settings.model_path)
        if not path.is_file():
            raise FileNotFoundError(f"Model file not found: {path}")
        return path

    def _check_license(self, spec: ModelSpec) -> None:
        if spec.insightface and not self._settings.accept_insightface_license:
            raise RuntimeError(f"Model '{spec.name}' requires FACEMATCH_ACCEPT_INSIGHTFACE_LICENSE=true")

    def _build_providers(self) -> list[str | tuple[str, dict[str, object]]]:
        device = self._settings.device
        if device == "cuda":
            return [
                (
                    "CUDAExecutionProvider",
                    {
                        "device_id": 0,
                        "gpu_mem_limit": self._settings.gpu_mem_limit,
                        "arena_extend_strategy": "kSameAsRequested",
                    },
                ),
                "CPUExecutionProvider",
            ]
        if device == "openvino":
            return [
                ("OpenVINOExecutionProvider", {"device_type": "CPU"}),
                "CPUExecutionProvider",
            ]
        return ["CPUExecutionProvider"]

    def _build_session_options(self) -> SessionOptions:
        opts = SessionOptions()
        opts.intra_op_num_threads = self._settings.intra_op_threads
        opts.inter_op_num_threads = self._settings.inter_op_threads
        opts.execution_mode = ExecutionMode.ORT_SEQUENTIAL
        opts.enable_mem_pattern = True
        opts.enable_mem_reuse = True

        if self._settings.device == "openvino":
            # OpenVINO does its own graph optimization
            from onnxruntime import GraphOptimizationLevel

            opts.graph_optimization_level = GraphOptimizationLevel.ORT_DISABLE_ALL
        return opts
