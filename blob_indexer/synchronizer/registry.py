import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from blob_indexer.errors import ChunkProcessingError
from blob_indexer.metrics import CHUNKS_INFLIGHT
from blob_indexer.synchronizer.planner import SlotChunk


# control plane state machine; holds no slot data
class ChunkStatus(str, Enum):
    PLANNED = "PLANNED"
    INFLIGHT = "INFLIGHT"
    DONE = "DONE"
    FAILED = "FAILED"


@dataclass
class ChunkRecord:
    chunk: SlotChunk
    status: ChunkStatus = ChunkStatus.PLANNED

    error: Optional[ChunkProcessingError] = None

    created_ts: float = field(default_factory=time.time)
    updated_ts: float = field(default_factory=time.time)

    def touch(self):
        self.updated_ts = time.time()


class ChunkRegistry:
    """
    Single source of truth for chunk lifecycle within one ``Synchronizer.run``.

    PLANNED -> INFLIGHT -> DONE | FAILED
    """

    def __init__(self, network: str = "mainnet"):
        self._chunks: dict[int, ChunkRecord] = {}
        self._network = network

    # -------------------------
    # register
    # -------------------------
    def register(self, chunk: SlotChunk) -> ChunkRecord:
        if chunk.chunk_id in self._chunks:
            raise RuntimeError(f"chunk {chunk.chunk_id} already registered")
        record = ChunkRecord(chunk=chunk)
        self._chunks[chunk.chunk_id] = record
        return record

    # -------------------------
    # lookup
    # -------------------------
    def get(self, chunk_id: int) -> ChunkRecord:
        try:
            return self._chunks[chunk_id]
        except KeyError:
            raise KeyError(f"chunk {chunk_id} not found") from None

    # -------------------------
    # state transitions
    # -------------------------
    def mark_inflight(self, chunk_id: int):
        self._transition(chunk_id, ChunkStatus.INFLIGHT)

    def mark_done(self, chunk_id: int):
        self._transition(chunk_id, ChunkStatus.DONE)

    def mark_failed(self, chunk_id: int, error: ChunkProcessingError):
        r = self._transition(chunk_id, ChunkStatus.FAILED)
        r.error = error

    def _transition(self, chunk_id: int, status: ChunkStatus) -> ChunkRecord:
        r = self.get(chunk_id)
        if r.status in (ChunkStatus.DONE, ChunkStatus.FAILED):
            raise RuntimeError(f"chunk {chunk_id} already {r.status.value}")
        r.status = status
        r.touch()
        CHUNKS_INFLIGHT.labels(network=self._network).set(self.inflight_count())
        return r

    # -------------------------
    # helpers
    # -------------------------
    def inflight_count(self) -> int:
        return sum(1 for r in self._chunks.values() if r.status == ChunkStatus.INFLIGHT)

    def failed(self) -> list[ChunkRecord]:
        return [r for r in self._chunks.values() if r.status == ChunkStatus.FAILED]
