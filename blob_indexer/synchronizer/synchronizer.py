import os
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Optional

from blob_indexer.context import Context
from blob_indexer.errors import ChunkProcessingError, ClientError, SynchronizerError
from blob_indexer.logging import log
from blob_indexer.metrics import CHECKPOINT_SLOT, CHUNKS_DISPATCHED, CHUNKS_FAILED
from blob_indexer.slots_processor import SlotOutcome, SlotsProcessor
from blob_indexer.synchronizer.checkpoint import CheckpointTracker
from blob_indexer.synchronizer.planner import ChunkPlanner, SlotChunk, auto_chunk_size
from blob_indexer.synchronizer.registry import ChunkRegistry


def _span(initial_slot: int, final_slot: int) -> tuple[int, int]:
    """Lowest and highest slot visited by ``(initial_slot, final_slot)``, either direction."""
    return min(initial_slot, final_slot), max(initial_slot, final_slot) - 1


class Synchronizer:
    """
    Fan a slot range out over a fixed pool of worker threads.

    - each chunk is processed strictly in slot order by one worker
    - a failing chunk stops at its first slot error, is recorded downstream
      as a failed range and never blocks sibling chunks
    - the checkpoint moves only across contiguous clean chunks
    - a failed ascending range holds the persisted checkpoint below it across
      runs, until ``run`` replays that range cleanly
    - ``run`` returns after every chunk was attempted and raises
      ``SynchronizerError`` listing the failed chunks, if any
    """

    def __init__(
        self,
        context: Context,
        *,
        num_workers: Optional[int] = None,
        slots_per_chunk: Optional[int] = None,
        slots_processor: Optional[SlotsProcessor] = None,
    ):
        self.context = context
        self.num_workers = num_workers or os.cpu_count() or 1
        self.slots_per_chunk = slots_per_chunk
        self.slots_processor = slots_processor or SlotsProcessor(context)
        self.last_checkpoint: Optional[int] = None

        # failed ascending ranges, as (initial_slot, final_slot), not yet replayed
        self.unresolved_ranges: list[tuple[int, int]] = []
        self._persisted: Optional[int] = None
        self._held: Optional[int] = None

    @property
    def blocked_at(self) -> Optional[int]:
        """Lowest unreplayed failed slot; nothing at or above it is persisted."""
        if not self.unresolved_ranges:
            return None
        return min(_span(*r)[0] for r in self.unresolved_ranges)

    def _process_chunk(self, chunk: SlotChunk) -> list[SlotOutcome]:
        return self.slots_processor.process_slots(chunk.initial_slot, chunk.final_slot)

    def run(self, initial_slot: int, final_slot: int) -> None:
        if initial_slot == final_slot:
            return

        reverse = initial_slot > final_slot
        total_slots = abs(final_slot - initial_slot)
        chunk_size = self.slots_per_chunk or auto_chunk_size(total_slots, self.num_workers)
        chunks = ChunkPlanner(initial_slot, final_slot, chunk_size).plan()

        registry = ChunkRegistry(network=self.context.network)
        tracker = CheckpointTracker()

        log.info(
            "sync_run_start",
            extra={
                "initial_slot": initial_slot,
                "final_slot": final_slot,
                "reverse": reverse,
                "chunks": len(chunks),
                "chunk_size": chunk_size,
                "workers": self.num_workers,
                "blocked_at": self.blocked_at,
            },
        )

        with ThreadPoolExecutor(max_workers=self.num_workers, thread_name_prefix="slots-worker") as pool:
            future_map = {}
            for chunk in chunks:
                registry.register(chunk)
                registry.mark_inflight(chunk.chunk_id)
                future_map[pool.submit(self._process_chunk, chunk)] = chunk
                CHUNKS_DISPATCHED.labels(network=self.context.network).inc()

            for future in as_completed(future_map):
                chunk = future_map[future]
                try:
                    outcomes = future.result()
                except ChunkProcessingError as e:
                    self._record_failure(chunk, e, registry, tracker, reverse)
                    continue
                except Exception as e:
                    error = ChunkProcessingError(chunk.initial_slot, chunk.final_slot, chunk.slots[0], e)
                    self._record_failure(chunk, error, registry, tracker, reverse)
                    continue

                registry.mark_done(chunk.chunk_id)
                log.info(
                    "chunk_done",
                    extra={
                        "chunk_id": chunk.chunk_id,
                        "initial_slot": chunk.initial_slot,
                        "final_slot": chunk.final_slot,
                        "slots": len(outcomes),
                    },
                )

                checkpoint = tracker.complete(chunk)
                if checkpoint is not None:
                    self._save_checkpoint(checkpoint, reverse)
                elif not reverse:
                    # released once every earlier slot is clean or replayed
                    self._hold(chunk.last_slot)

        failed = registry.failed()
        self._resolve_replayed(initial_slot, final_slot, failed)

        if failed:
            failures = sorted(
                (r.error for r in failed),
                key=lambda e: abs(e.initial_slot - initial_slot),
            )
            raise SynchronizerError(failures)

        log.info(
            "sync_run_done",
            extra={
                "initial_slot": initial_slot,
                "final_slot": final_slot,
                "checkpoint": self.last_checkpoint,
            },
        )

    # -----------------------------
    # checkpoint
    # -----------------------------
    def _save_checkpoint(self, checkpoint: int, reverse: bool) -> None:
        # backfills run below the forward cursor and must not move it
        if reverse:
            self.last_checkpoint = checkpoint
            CHECKPOINT_SLOT.labels(network=self.context.network).set(checkpoint)
            return

        blocked_at = self.blocked_at
        if blocked_at is not None and checkpoint >= blocked_at:
            self._hold(checkpoint)
            log.warning(
                "checkpoint_held",
                extra={"checkpoint": checkpoint, "blocked_at": blocked_at},
            )
            return

        self._persist(checkpoint)

    def _hold(self, slot: int) -> None:
        self._held = slot if self._held is None else max(self._held, slot)

    def _persist(self, checkpoint: int) -> None:
        if self._persisted is not None and checkpoint <= self._persisted:
            return

        self.last_checkpoint = checkpoint
        CHECKPOINT_SLOT.labels(network=self.context.network).set(checkpoint)
        try:
            self.context.blobscan_client.update_last_indexed_slot(checkpoint)
        except ClientError:
            log.exception("checkpoint_save_failed", extra={"checkpoint": checkpoint})
            return
        self._persisted = checkpoint

    def _resolve_replayed(self, initial_slot: int, final_slot: int, failed: list) -> None:
        """Drop failed ranges this run covered cleanly; release the held checkpoint when none remain."""
        lo, hi = _span(initial_slot, final_slot)
        failed_spans = [_span(r.chunk.initial_slot, r.chunk.final_slot) for r in failed]

        remaining = []
        for bounds in self.unresolved_ranges:
            r_lo, r_hi = _span(*bounds)
            covered = lo <= r_lo and r_hi <= hi
            overlaps = any(f_lo <= r_hi and r_lo <= f_hi for f_lo, f_hi in failed_spans)
            if covered and not overlaps:
                log.info(
                    "failed_range_replayed",
                    extra={"initial_slot": bounds[0], "final_slot": bounds[1]},
                )
                continue
            remaining.append(bounds)
        self.unresolved_ranges = remaining

        if not self.unresolved_ranges and self._held is not None:
            held, self._held = self._held, None
            self._persist(held)

    # -----------------------------
    # failure recording
    # -----------------------------
    def _record_failure(
        self,
        chunk: SlotChunk,
        error: ChunkProcessingError,
        registry: ChunkRegistry,
        tracker: CheckpointTracker,
        reverse: bool,
    ) -> None:
        registry.mark_failed(chunk.chunk_id, error)
        tracker.mark_failed(chunk)
        bounds = (chunk.initial_slot, chunk.final_slot)
        if not reverse and bounds not in self.unresolved_ranges:
            self.unresolved_ranges.append(bounds)
        CHUNKS_FAILED.labels(network=self.context.network).inc()

        log.error(
            "chunk_failed",
            extra={
                "chunk_id": chunk.chunk_id,
                "initial_slot": chunk.initial_slot,
                "final_slot": chunk.final_slot,
                "failed_slot": error.failed_slot,
                "error_type": type(error.cause).__name__,
                "error": str(error.cause)[:300],
            },
        )

        try:
            record = self.context.blobscan_client.persist_failed_range(
                chunk.initial_slot, chunk.final_slot
            )
        except ClientError:
            log.exception(
                "failed_range_persist_failed",
                extra={"initial_slot": chunk.initial_slot, "final_slot": chunk.final_slot},
            )
            return

        log.warning(
            "failed_range_recorded",
            extra={
                "id": record.id,
                "initial_slot": record.initial_slot,
                "final_slot": record.final_slot,
            },
        )
