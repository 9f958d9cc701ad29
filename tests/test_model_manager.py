"""Tests for the ONNX model manager."""

from __future__ import annotations

import time
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from facematch.config import Settings
from facematch.ml.model_manager import LOCAL_MODEL_NAME, MODEL_REGISTRY, OnnxModelManager, get_spec

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_settings(**overrides: object) -> Settings:
    defaults: dict[str, object] = {
        "device": "cpu",
        "accept_insightface_license": False,
        "models_dir": "/tmp/facematch_test_models",
        "model_ttl": 300,
        "intra_op_threads": 0,
        "inter_op_threads": 1,
        "gpu_mem_limit": 2_147_483_648,
        "max_concurrent": 2,
    }
    defaults.update(overrides)
    return Settings(**defaults)  # type: ignore[arg-type]


# ---------------------------------------------------------------------------
# Model registry tests
# ---------------------------------------------------------------------------


class TestModelRegistry:
    def test_known_model_lookup(self) -> None:
        spec = get_spec("auraface_v1")
        assert spec.name == "auraface_v1"
        assert spec.embedding_dim == 512

    def test_unknown_model_raises_keyerror(self) -> None:
        with pytest.raises(KeyError, match="Unknown model"):
            get_spec("nonexistent_model")

    def test_insightface_flag_correct(self) -> None:
        assert MODEL_REGISTRY["w600k_r50"].insightface is True
        assert MODEL_REGISTRY["auraface_v1"].insightface is False


# ---------------------------------------------------------------------------
# OnnxModelManager tests
# ---------------------------------------------------------------------------


class TestOnnxModelManager:
    @patch("facematch.ml.model_manager.hf_hub_download")
    def test_ensure_downloaded_calls_hf_hub_download(self, mock_download: MagicMock, tmp_path: Path) -> None:
        mock_download.return_value = str(tmp_path / "glintr100.onnx")
        mgr = OnnxModelManager(_make_settings(models_dir=str(tmp_path)))

        path = mgr.ensure_downloaded("auraface_v1")

        mock_download.assert_called_once_with(
            repo_id="fal/AuraFace-v1",
            filename="glintr100.onnx",
            subfolder=None,
            local_dir=str(tmp_path),
        )
        assert path == tmp_path / "glintr100.onnx"

    @patch("facematch.ml.model_manager.hf_hub_download")
    def test_ensure_downloaded_skips_existing(self, mock_download: MagicMock, tmp_path: Path) -> None:
        model_file = tmp_path / "glintr100.onnx"
        model_file.touch()

        mgr = OnnxModelManager(_make_settings(models_dir=str(tmp_path)))
        mgr._model_paths["auraface_v1"] = model_file

        path = mgr.ensure_downloaded("auraface_v1")

        mock_download.assert_not_called()
        assert path == model_file

    def test_insightface_blocked_without_license(self) -> None:
        mgr = OnnxModelManager(_make_settings(accept_insightface_license=False))
        with pytest.raises(RuntimeError, match="FACEMATCH_ACCEPT_INSIGHTFACE_LICENSE"):
            mgr.ensure_downloaded("w600k_r50")

    @patch("facematch.ml.model_manager.hf_hub_download")
    def test_insightface_allowed_with_license(self, mock_download: MagicMock, tmp_path: Path) -> None:
        mock_download.return_value = str(tmp_path / "models/buffalo_l/w600k_r50.onnx")
        mgr = OnnxModelManager(_make_settings(accept_insightface_license=True, models_dir=str(tmp_path)))

        path = mgr.ensure_downloaded("w600k_r50")

        assert path == tmp_path / "models/buffalo_l/w600k_r50.onnx"
        mock_download.assert_called_once()

    @patch("facematch.ml.model_manager.hf_hub_download")
    def test_local_model_path(self, mock_download: MagicMock, tmp_path: Path) -> None:
        model_file = tmp_path / "ghostfacenet.onnx"
        model_file.touch()
        mgr = OnnxModelManager(_make_settings(model_path=str(model_file)))

        assert mgr.active_model == LOCAL_MODEL_NAME
        assert mgr.ensure_downloaded(LOCAL_MODEL_NAME) == model_file
        mock_download.assert_not_called()

    def test_local_model_missing_file(self, tmp_path: Path) -> None:
        mgr = OnnxModelManager(_make_settings(model_path=str(tmp_path / "missing.onnx")))
        with pytest.raises(FileNotFoundError):
            mgr.ensure_downloaded(LOCAL_MODEL_NAME)

    def test_active_model_defaults_to_registry(self) -> None:
        assert OnnxModelManager(_make_settings()).active_model == "auraface_v1"

    @patch("facematch.ml.model_manager.InferenceSession")
    @patch("facematch.ml.model_manager.hf_hub_download")
    def test_get_session_creates_and_caches(
        self, mock_download: MagicMock, mock_session_cls: MagicMock, tmp_path: Path
    ) -> None:
        mock_download.return_value = str(tmp_path / "glintr100.onnx")
        mock_session = MagicMock()
        mock_session_cls.return_value = mock_session

        mgr = OnnxModelManager(_make_settings(models_dir=str(tmp_path)))

        session1 = mgr.get_session("auraface_v1")
        session2 = mgr.get_session("auraface_v1")

        assert session1 is mock_session
        assert session2 is mock_session
        mock_session_cls.assert_called_once()

    @patch("facematch.ml.model_manager.InferenceSession")
    @patch("facematch.ml.model_manager.hf_hub_download")
    def test_unload_idle_models_removes_expired(
        self, mock_download: MagicMock, mock_session_cls: MagicMock, tmp_path: Path
    ) -> None:
        mock_download.return_value = str(tmp_path / "glintr100.onnx")
        mgr = OnnxModelManager(_make_settings(model_ttl=1, models_dir=str(tmp_path)))
        mgr.get_session("auraface_v1")
        assert mgr.get_loaded_models() == ["auraface_v1"]

        mgr._sessions["auraface_v1"].last_used = time.monotonic() - 10

        mgr.unload_idle_models()
        assert mgr.get_loaded_models() == []

    def test_unload_idle_skipped_when_ttl_zero(self) -> None:
        mgr = OnnxModelManager(_make_settings(model_ttl=0))
        mgr.unload_idle_models()
        assert mgr.get_loaded_models() == []

    def test_provider_building_cpu(self) -> None:
        mgr = OnnxModelManager(_make_settings(device="cpu"))
        assert mgr._providers == ["CPUExecutionProvider"]

    def test_provider_building_cuda(self) -> None:
        mgr = OnnxModelManager(_make_settings(device="cuda"))
        assert len(mgr._providers) == 2
        provider_name, provider_opts = mgr._providers[0]  # type: ignore[misc]
        assert provider_name == "CUDAExecutionProvider"
        assert provider_opts["device_id"] == 0
        assert mgr._providers[1] == "CPUExecutionProvider"

    @patch("facematch.ml.model_manager.InferenceSession")
    @patch("facematch.ml.model_manager.hf_hub_download")
    def test_shutdown_clears_sessions(
        self, mock_download: MagicMock, mock_session_cls: MagicMock, tmp_path: Path
    ) -> None:
        mock_download.return_value = str(tmp_path / "glintr100.onnx")
        mgr = OnnxModelManager(_make_settings(models_dir=str(tmp_path)))
        mgr.get_session("auraface_v1")

        mgr.shutdown()
        assert mgr.get_loaded_models() == []
