import threading
from typing import Optional

from blob_indexer.synchronizer.planner import SlotChunk


class CheckpointTracker:
    """
    Ordered commit of chunk completions.

    Chunks complete in any order; the checkpoint only moves across the
    contiguous prefix (by ``chunk_id``) of chunks that finished cleanly. A
    failed chunk is never released, so nothing after it can advance the
    checkpoint during this run.
    """

    def __init__(self, initial: Optional[int] = None):
        self._lock = threading.Lock()
        self._buffer: dict[int, SlotChunk] = {}
        self._next_chunk_id = 0
        self._failed: set[int] = set()
        self._checkpoint = initial

    @property
    def checkpoint(self) -> Optional[int]:
        with self._lock:
            return self._checkpoint

    def mark_failed(self, chunk: SlotChunk) -> None:
        with self._lock:
            self._failed.add(chunk.chunk_id)

    def complete(self, chunk: SlotChunk) -> Optional[int]:
        """
        Record a clean chunk. Returns the new checkpoint when it advanced,
        else None.
        """
        with self._lock:
            if chunk.chunk_id in self._failed:
                raise RuntimeError(f"chunk {chunk.chunk_id} already marked failed")
            self._buffer[chunk.chunk_id] = chunk

            advanced = False
            while self._next_chunk_id in self._buffer:
                ready = self._buffer.pop(self._next_chunk_id)
                self._checkpoint = ready.last_slot
                self._next_chunk_id += 1
                advanced = True

            return self._checkpoint if advanced else None
