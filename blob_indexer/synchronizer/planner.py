import math
from dataclasses import dataclass
from typing import Optional

from blob_indexer.slots_processor import slot_sequence


@dataclass(frozen=True)
class SlotChunk:
    """
    Contiguous slot sub-range handed to one worker.

    Uses the same ``(initial_slot, final_slot)`` convention as
    ``Synchronizer.run`` so a failed chunk can be replayed verbatim.
    """

    chunk_id: int
    initial_slot: int
    final_slot: int

    @property
    def slots(self) -> range:
        return slot_sequence(self.initial_slot, self.final_slot)

    @property
    def size(self) -> int:
        return abs(self.final_slot - self.initial_slot)

    @property
    def last_slot(self) -> int:
        """Last slot visited by this chunk, in traversal order."""
        return self.slots[-1]


def auto_chunk_size(total_slots: int, num_workers: int) -> int:
    return max(1, math.ceil(total_slots / max(1, num_workers)))


class ChunkPlanner:
    """
    Splits ``(initial_slot, final_slot)`` into chunks of at most
    ``slots_per_chunk`` slots, in traversal order.

    - bounded: generation stops at ``final_slot``
    - no retry, no knowledge of execution results
    """

    def __init__(self, initial_slot: int, final_slot: int, slots_per_chunk: int):
        if slots_per_chunk < 1:
            raise ValueError(f"slots_per_chunk must be >= 1, got {slots_per_chunk}")

        self._step = -1 if initial_slot > final_slot else 1
        self._next_slot = initial_slot
        self._final_slot = final_slot
        self._slots_per_chunk = slots_per_chunk
        self._next_chunk_id = 0

    @property
    def exhausted(self) -> bool:
        return self._next_slot == self._final_slot

    def next_chunk(self) -> Optional[SlotChunk]:
        if self.exhausted:
            return None

        start = self._next_slot
        remaining = abs(self._final_slot - start)
        end = start + self._step * min(self._slots_per_chunk, remaining)

        chunk = SlotChunk(chunk_id=self._next_chunk_id, initial_slot=start, final_slot=end)

        self._next_slot = end
        self._next_chunk_id += 1
        return chunk

    def plan(self) -> list[SlotChunk]:
        chunks = []
        while (chunk := self.next_chunk()) is not None:
            chunks.append(chunk)
        return chunks
