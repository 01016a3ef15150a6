"""Tests for chunk planning, the chunk registry and the checkpoint tracker."""

from __future__ import annotations

import pytest

from blob_indexer.errors import ChunkProcessingError
from blob_indexer.slots_processor import slot_sequence
from blob_indexer.synchronizer import (
    CheckpointTracker,
    ChunkPlanner,
    ChunkRegistry,
    ChunkStatus,
    SlotChunk,
    auto_chunk_size,
)


def visited(chunks: list[SlotChunk]) -> list[int]:
    return [slot for chunk in chunks for slot in chunk.slots]


class TestSlotSequence:
    def test_ascending_excludes_final(self) -> None:
        assert list(slot_sequence(10, 13)) == [10, 11, 12]

    def test_descending_excludes_initial(self) -> None:
        assert list(slot_sequence(13, 10)) == [12, 11, 10]

    def test_equal_is_empty(self) -> None:
        assert list(slot_sequence(5, 5)) == []


class TestChunkPlanner:
    def test_ascending_chunks(self) -> None:
        chunks = ChunkPlanner(10, 20, 4).plan()
        assert [(c.initial_slot, c.final_slot) for c in chunks] == [(10, 14), (14, 18), (18, 20)]
        assert [c.chunk_id for c in chunks] == [0, 1, 2]

    def test_descending_chunks(self) -> None:
        chunks = ChunkPlanner(20, 10, 4).plan()
        assert [(c.initial_slot, c.final_slot) for c in chunks] == [(20, 16), (16, 12), (12, 10)]
        assert visited(chunks) == list(range(19, 9, -1))

    def test_both_directions_cover_the_same_slots(self) -> None:
        up = visited(ChunkPlanner(100, 137, 5).plan())
        down = visited(ChunkPlanner(137, 100, 5).plan())
        assert up == list(range(100, 137))
        assert down == list(reversed(up))

    def test_chunks_never_exceed_size(self) -> None:
        assert all(c.size <= 7 for c in ChunkPlanner(0, 100, 7).plan())

    def test_single_slot_range(self) -> None:
        chunks = ChunkPlanner(5, 6, 10).plan()
        assert chunks == [SlotChunk(chunk_id=0, initial_slot=5, final_slot=6)]

    def test_empty_range(self) -> None:
        planner = ChunkPlanner(5, 5, 10)
        assert planner.exhausted
        assert planner.plan() == []

    def test_rejects_zero_chunk_size(self) -> None:
        with pytest.raises(ValueError):
            ChunkPlanner(0, 10, 0)

    def test_replayed_chunk_is_a_valid_range(self) -> None:
        """A chunk's bounds, fed back to the planner, visit the same slots."""
        chunk = ChunkPlanner(50, 30, 8).plan()[1]
        replay = ChunkPlanner(chunk.initial_slot, chunk.final_slot, 100).plan()
        assert visited(replay) == list(chunk.slots)

    @pytest.mark.parametrize(
        ("total", "workers", "expected"),
        [(10, 3, 4), (10, 10, 1), (1, 8, 1), (100, 1, 100)],
    )
    def test_auto_chunk_size(self, total: int, workers: int, expected: int) -> None:
        assert auto_chunk_size(total, workers) == expected


class TestChunkRegistry:
    chunk = SlotChunk(chunk_id=0, initial_slot=0, final_slot=10)

    def test_lifecycle(self) -> None:
        registry = ChunkRegistry()
        record = registry.register(self.chunk)
        assert record.status == ChunkStatus.PLANNED

        registry.mark_inflight(0)
        assert registry.inflight_count() == 1

        error = ChunkProcessingError(0, 10, 3, RuntimeError("boom"))
        registry.mark_failed(0, error)
        assert registry.get(0).status == ChunkStatus.FAILED
        assert registry.get(0).error is error
        assert registry.failed() == [record]
        assert registry.inflight_count() == 0

    def test_duplicate_registration(self) -> None:
        registry = ChunkRegistry()
        registry.register(self.chunk)
        with pytest.raises(RuntimeError):
            registry.register(self.chunk)

    def test_terminal_states_are_final(self) -> None:
        registry = ChunkRegistry()
        registry.register(self.chunk)
        registry.mark_done(0)
        with pytest.raises(RuntimeError):
            registry.mark_inflight(0)

    def test_unknown_chunk(self) -> None:
        with pytest.raises(KeyError):
            ChunkRegistry().get(9)


class TestCheckpointTracker:
    def chunks(self, initial: int = 100, final: int = 130, size: int = 10) -> list[SlotChunk]:
        return ChunkPlanner(initial, final, size).plan()

    def test_in_order_completion(self) -> None:
        first, second, _ = self.chunks()
        tracker = CheckpointTracker()
        assert tracker.complete(first) == 109
        assert tracker.complete(second) == 119

    def test_out_of_order_completion_waits_for_the_gap(self) -> None:
        first, second, third = self.chunks()
        tracker = CheckpointTracker()
        assert tracker.complete(third) is None
        assert tracker.complete(second) is None
        assert tracker.checkpoint is None
        assert tracker.complete(first) == 129

    def test_failed_chunk_blocks_advancement(self) -> None:
        first, second, third = self.chunks()
        tracker = CheckpointTracker()
        tracker.mark_failed(first)
        assert tracker.complete(second) is None
        assert tracker.complete(third) is None
        assert tracker.checkpoint is None

    def test_failure_in_the_middle(self) -> None:
        first, second, third = self.chunks()
        tracker = CheckpointTracker()
        tracker.mark_failed(second)
        tracker.complete(third)
        assert tracker.complete(first) == 109
        assert tracker.checkpoint == 109

    def test_descending_checkpoint_is_the_lowest_slot_reached(self) -> None:
        first, second, _ = self.chunks(130, 100)
        tracker = CheckpointTracker()
        tracker.complete(first)
        assert tracker.complete(second) == 110

    def test_completing_a_failed_chunk_is_an_error(self) -> None:
        first = self.chunks()[0]
        tracker = CheckpointTracker()
        tracker.mark_failed(first)
        with pytest.raises(RuntimeError):
            tracker.complete(first)
