import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, TypeVar

from blob_indexer import mapper
from blob_indexer.context import Context
from blob_indexer.entities import Blob
from blob_indexer.errors import (
    ChunkProcessingError,
    ClientError,
    ExecutionBlockNotFound,
    InvalidNodeData,
    MissingSidecars,
    SlotClientError,
    SlotProcessingError,
    UnmatchedBlob,
    ValidatorNotFound,
)
from blob_indexer.logging import log
from blob_indexer.metrics import (
    BLOBS_INDEXED,
    BLOBS_PER_BLOCK,
    BLOCKS_INDEXED,
    SLOT_LATENCY,
    SLOTS_PROCESSED,
    TX_INDEXED,
)

T = TypeVar("T")


class SlotStatus(str, Enum):
    INDEXED = "INDEXED"
    SKIPPED = "SKIPPED"


@dataclass
class SlotOutcome:
    slot: int
    status: SlotStatus
    block_number: Optional[int] = None
    reason: Optional[str] = None

    @classmethod
    def indexed(cls, slot: int, block_number: int) -> "SlotOutcome":
        return cls(slot=slot, status=SlotStatus.INDEXED, block_number=block_number)

    @classmethod
    def skipped(cls, slot: int, reason: str, block_number: Optional[int] = None) -> "SlotOutcome":
        return cls(slot=slot, status=SlotStatus.SKIPPED, reason=reason, block_number=block_number)


def slot_sequence(initial_slot: int, final_slot: int) -> range:
    """
    Slots visited for ``(initial_slot, final_slot)``.

    Ascending ranges cover ``initial .. final-1``; descending ones cover
    ``initial-1 .. final``. Both directions visit the same set.
    """
    if initial_slot > final_slot:
        return range(initial_slot - 1, final_slot - 1, -1)
    return range(initial_slot, final_slot)


class SlotsProcessor:
    """
    Per-slot state machine: beacon block -> execution block -> entities -> index API.

    A slot ends in one of three ways: ``INDEXED``, ``SKIPPED`` (missed slot,
    pre-merge block, empty block) or a raised ``SlotProcessingError``. Nothing
    is submitted unless every step succeeded.
    """

    def __init__(self, context: Context):
        self.context = context

    def _call(self, slot: int, stage: str, fn: Callable[[], T]) -> T:
        try:
            return fn()
        except ClientError as e:
            raise SlotClientError(slot, stage, e) from e

    def _skip(self, slot: int, reason: str, block_number: Optional[int] = None) -> SlotOutcome:
        log.info(
            "slot_skipped",
            extra={"slot": slot, "reason": reason, "block_number": block_number},
        )
        SLOTS_PROCESSED.labels(network=self.context.network, status=SlotStatus.SKIPPED.value).inc()
        return SlotOutcome.skipped(slot, reason, block_number)

    # -----------------------------
    # range
    # -----------------------------
    def process_slots(self, initial_slot: int, final_slot: int) -> list[SlotOutcome]:
        outcomes = []
        for slot in slot_sequence(initial_slot, final_slot):
            try:
                outcomes.append(self.process_slot(slot))
            except Exception as e:
                raise ChunkProcessingError(initial_slot, final_slot, slot, e) from e
        return outcomes

    # -----------------------------
    # single slot
    # -----------------------------
    def process_slot(self, slot: int) -> SlotOutcome:
        started = time.perf_counter()
        try:
            outcome = self._process_slot(slot)
        except SlotProcessingError as e:
            log.error(
                "slot_failed",
                extra={"slot": slot, "stage": e.stage, "error": str(e)[:300]},
            )
            raise
        finally:
            SLOT_LATENCY.labels(network=self.context.network).observe(time.perf_counter() - started)
        return outcome

    def _process_slot(self, slot: int) -> SlotOutcome:
        beacon = self.context.beacon_client
        execution = self.context.execution_client
        blobscan = self.context.blobscan_client

        if slot == 0:
            return self._skip(slot, "genesis slot has no beacon block")

        beacon_block = self._call(slot, "beacon_block", lambda: beacon.get_block(slot))
        if beacon_block is None:
            return self._skip(slot, "no block for slot")

        if not beacon_block.has_execution_payload:
            return self._skip(slot, "no execution payload")

        has_commitments = beacon_block.has_blob_commitments
        block_hash = beacon_block.execution_block_hash

        execution_block = self._call(
            slot, "execution_block", lambda: execution.get_block_with_transactions(block_hash)
        )
        if execution_block is None:
            raise ExecutionBlockNotFound(slot, block_hash)

        try:
            tx_hash_to_versioned_hashes = mapper.create_tx_hash_versioned_hashes_mapping(execution_block)
            transactions = mapper.build_transactions(execution_block)
        except ValueError as e:
            raise InvalidNodeData(slot, e) from e

        if not transactions:
            return self._skip(slot, "empty block", execution_block.get("number"))

        proposer = self._find_proposer(slot)

        try:
            block = mapper.build_block(execution_block, slot, proposer)
        except ValueError as e:
            raise InvalidNodeData(slot, e) from e

        blobs: list[Blob] = []
        # sidecars are only requested when the beacon block advertises commitments
        if has_commitments:
            blobs = self._collect_blobs(slot, tx_hash_to_versioned_hashes)

        self._call(slot, "index", lambda: blobscan.index(block, transactions, blobs))

        network = self.context.network
        SLOTS_PROCESSED.labels(network=network, status=SlotStatus.INDEXED.value).inc()
        BLOCKS_INDEXED.labels(network=network).inc()
        TX_INDEXED.labels(network=network).inc(len(transactions))
        BLOBS_INDEXED.labels(network=network).inc(len(blobs))
        BLOBS_PER_BLOCK.labels(network=network).observe(len(blobs))

        log.info(
            "slot_indexed",
            extra={
                "slot": slot,
                "block_number": block.number,
                "transactions": len(transactions),
                "blobs": len(blobs),
            },
        )
        return SlotOutcome.indexed(slot, block.number)

    def _find_proposer(self, slot: int) -> str:
        epoch = slot // self.context.slots_per_epoch
        duties = self._call(
            slot, "proposer_duty", lambda: self.context.beacon_client.get_validators(epoch)
        )
        for duty in duties or []:
            if duty.slot == slot:
                return duty.pubkey
        raise ValidatorNotFound(slot, epoch)

    def _collect_blobs(self, slot: int, tx_hash_to_versioned_hashes: dict[str, list[str]]) -> list[Blob]:
        sidecars = self._call(
            slot, "blob_sidecars", lambda: self.context.beacon_client.get_blob_sidecars(slot)
        )
        if sidecars is None or not sidecars.data:
            raise MissingSidecars(slot)

        try:
            versioned_hash_to_sidecar = mapper.create_versioned_hash_blob_mapping(sidecars.data)
        except ValueError as e:
            raise InvalidNodeData(slot, e) from e

        blobs = []
        for tx_hash, versioned_hashes in tx_hash_to_versioned_hashes.items():
            for index, vh in enumerate(versioned_hashes):
                sidecar = versioned_hash_to_sidecar.get(vh)
                if sidecar is None:
                    raise UnmatchedBlob(slot, tx_hash, index, vh)
                blobs.append(mapper.build_blob(sidecar, vh, index, tx_hash))
        return blobs
