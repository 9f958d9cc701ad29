"""Tests for gallery state transitions."""

from __future__ import annotations

import threading

import pytest

from facematch.core.gallery import MAX_NAME_LENGTH, GalleryState
from facematch.core.matcher import find_best_match
from facematch.errors import DimensionMismatch, InvalidEmbedding, InvalidName, RecordNotFound


class TestEnroll:
    def test_enroll_appends_in_order(self) -> None:
        state = GalleryState()
        alice = state.enroll("Alice", [1.0, 0.0])
        bob = state.enroll("Bob", [0.0, 1.0])

        assert state.snapshot() == (alice, bob)
        assert len(state) == 2

    def test_reenrollment_is_additive(self) -> None:
        state = GalleryState()
        first = state.enroll("Alice", [1.0, 0.0])
        second = state.enroll("Alice", [0.9, 0.1])

        assert [r.name for r in state.snapshot()] == ["Alice", "Alice"]
        assert first.record_id != second.record_id

    def test_name_is_stripped(self) -> None:
        record = GalleryState().enroll("  Alice \n", [1.0])
        assert record.name == "Alice"

    @pytest.mark.parametrize("name", ["", "   ", "x" * (MAX_NAME_LENGTH + 1)])
    def test_invalid_name(self, name: str) -> None:
        with pytest.raises(InvalidName):
            GalleryState().enroll(name, [1.0])

    def test_invalid_embedding(self) -> None:
        with pytest.raises(InvalidEmbedding):
            GalleryState().enroll("Alice", [])

    def test_learns_dimension_from_first_record(self) -> None:
        state = GalleryState()
        assert state.embedding_dim is None
        state.enroll("Alice", [1.0, 0.0, 0.0])
        assert state.embedding_dim == 3

        with pytest.raises(DimensionMismatch):
            state.enroll("Bob", [1.0, 0.0])
        assert len(state) == 1

    def test_configured_dimension_enforced(self) -> None:
        state = GalleryState(embedding_dim=128)
        with pytest.raises(DimensionMismatch) as excinfo:
            state.enroll("Alice", [1.0] * 192)
        assert excinfo.value.expected == 128
        assert excinfo.value.actual == 192

    def test_records_are_immutable(self) -> None:
        record = GalleryState().enroll("Alice", [1.0, 2.0])
        with pytest.raises(AttributeError):
            record.name = "Mallory"  # type: ignore[misc]
        assert record.embedding == (1.0, 2.0)
        assert record.created_at.tzinfo is not None


class TestSnapshots:
    def test_snapshot_unchanged_by_later_enrollment(self) -> None:
        state = GalleryState()
        state.enroll("Alice", [1.0, 0.0])
        snapshot = state.snapshot()

        state.enroll("Bob", [0.0, 1.0])

        assert len(snapshot) == 1
        assert len(state.snapshot()) == 2

    def test_in_flight_match_uses_acquired_snapshot(self) -> None:
        state = GalleryState()
        state.enroll("Alice", [0.6, 0.8])
        snapshot = state.snapshot()
        state.clear()

        result = find_best_match([0.6, 0.8], snapshot, 0.7)
        assert result.name == "Alice"

    def test_concurrent_enrollment_keeps_every_record(self) -> None:
        state = GalleryState()

        def worker(prefix: str) -> None:
            for i in range(50):
                state.enroll(f"{prefix}-{i}", [float(i + 1), 1.0])

        threads = [threading.Thread(target=worker, args=(p,)) for p in "abcd"]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(state) == 200
        assert len({r.record_id for r in state.snapshot()}) == 200


class TestRemoval:
    def test_remove_by_id(self) -> None:
        state = GalleryState()
        alice = state.enroll("Alice", [1.0, 0.0])
        bob = state.enroll("Bob", [0.0, 1.0])

        removed = state.remove(alice.record_id)

        assert removed == alice
        assert state.snapshot() == (bob,)

    def test_remove_unknown_id(self) -> None:
        state = GalleryState()
        state.enroll("Alice", [1.0])
        with pytest.raises(RecordNotFound, match="nope"):
            state.remove("nope")
        assert len(state) == 1

    def test_remove_name_drops_all_records(self) -> None:
        state = GalleryState()
        state.enroll("Alice", [1.0, 0.0])
        bob = state.enroll("Bob", [0.0, 1.0])
        state.enroll("Alice", [0.9, 0.1])

        assert state.remove_name("Alice") == 2
        assert state.snapshot() == (bob,)
        assert state.remove_name("Alice") == 0

    def test_clear(self) -> None:
        state = GalleryState()
        state.enroll("Alice", [1.0, 0.0])
        state.enroll("Bob", [0.0, 1.0])

        assert state.clear() == 2
        assert state.snapshot() == ()

    def test_learned_dimension_reset_when_empty(self) -> None:
        state = GalleryState()
        state.enroll("Alice", [1.0, 0.0])
        state.clear()
        assert state.embedding_dim is None
        state.enroll("Bob", [1.0, 0.0, 0.0])
        assert state.embedding_dim == 3

    def test_configured_dimension_survives_clear(self) -> None:
        state = GalleryState(embedding_dim=2)
        state.enroll("Alice", [1.0, 0.0])
        state.clear()
        assert state.embedding_dim == 2


class TestReplace:
    def test_replace_installs_records(self) -> None:
        source = GalleryState()
        records = (source.enroll("Alice", [1.0, 0.0]), source.enroll("Bob", [0.0, 1.0]))

        state = GalleryState()
        state.replace(records)

        assert state.snapshot() == records
        assert state.embedding_dim == 2

    def test_replace_rejects_mixed_dimensions(self) -> None:
        source = GalleryState()
        a = source.enroll("Alice", [1.0, 0.0])
        source.clear()
        b = source.enroll("Bob", [1.0, 0.0, 0.0])

        state = GalleryState()
        with pytest.raises(DimensionMismatch):
            state.replace([a, b])
        assert state.snapshot() == ()


class TestRecognitionToggle:
    def test_inactive_by_default(self) -> None:
        assert GalleryState().recognition_active is False

    def test_toggle(self) -> None:
        state = GalleryState()
        assert state.toggle_recognition() is True
        assert state.recognition_active is True
        assert state.toggle_recognition() is False

    def test_set(self) -> None:
        state = GalleryState(recognition_active=False)
        state.set_recognition(True)
        assert state.recognition_active is True
