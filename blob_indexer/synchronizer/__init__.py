from blob_indexer.synchronizer.checkpoint import CheckpointTracker
from blob_indexer.synchronizer.planner import ChunkPlanner, SlotChunk, auto_chunk_size
from blob_indexer.synchronizer.registry import ChunkRecord, ChunkRegistry, ChunkStatus
from blob_indexer.synchronizer.synchronizer import Synchronizer

__all__ = [
    # planning
    "ChunkPlanner",
    "SlotChunk",
    "auto_chunk_size",

    # control
    "ChunkStatus",
    "ChunkRecord",
    "ChunkRegistry",

    # checkpoint
    "CheckpointTracker",

    # orchestration
    "Synchronizer",
]
