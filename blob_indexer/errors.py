"""
Exception hierarchy of the indexer.

Skips are not errors: a slot without a block, without an execution payload or
without transactions is reported through ``SlotOutcome``. Everything here is a
real fault, classified by how far it is allowed to propagate:

- ``SlotProcessingError``: aborts one slot.
- ``ChunkProcessingError``: the first slot error of a chunk, with the chunk bounds.
- ``SynchronizerError``: every failed chunk of one ``Synchronizer.run`` call.
- ``ConfigError`` / ``FatalIndexerError``: terminate the driver loop.
"""


class IndexerError(Exception):
    pass


class ConfigError(IndexerError):
    pass


class FatalIndexerError(IndexerError):
    pass


# -----------------------------
# Clients
# -----------------------------
class ClientError(IndexerError):
    """Non-retryable failure talking to a node or to the index API."""

    def __init__(self, message: str, *, client: str | None = None, status: int | None = None):
        super().__init__(message)
        self.client = client
        self.status = status


class ClientTemporarilyUnavailable(ClientError):
    """Transient fault (timeout, connection reset, 429, 5xx); safe to retry."""


class RetryExhausted(ClientTemporarilyUnavailable):
    def __init__(self, description: str, attempts: int):
        super().__init__(f"{description} still failing after {attempts} attempts")
        self.description = description
        self.attempts = attempts


# -----------------------------
# Slot processing
# -----------------------------
class SlotProcessingError(IndexerError):
    stage = "unknown"

    def __init__(self, slot: int, message: str):
        super().__init__(f"slot {slot}: {message}")
        self.slot = slot


class ExecutionBlockNotFound(SlotProcessingError):
    stage = "execution_block"

    def __init__(self, slot: int, block_hash: str):
        super().__init__(slot, f"execution block {block_hash} not found")
        self.block_hash = block_hash


class ValidatorNotFound(SlotProcessingError):
    stage = "proposer_duty"

    def __init__(self, slot: int, epoch: int):
        super().__init__(slot, f"no proposer duty for slot in epoch {epoch}")
        self.epoch = epoch


class MissingSidecars(SlotProcessingError):
    stage = "blob_sidecars"

    def __init__(self, slot: int):
        super().__init__(slot, "block advertises blob commitments but no sidecars were returned")


class UnmatchedBlob(SlotProcessingError):
    stage = "blob_matching"

    def __init__(self, slot: int, tx_hash: str, index: int, versioned_hash: str):
        super().__init__(
            slot,
            f"sidecar not found for blob {index} with versioned hash "
            f"{versioned_hash} from tx {tx_hash}",
        )
        self.tx_hash = tx_hash
        self.index = index
        self.versioned_hash = versioned_hash


class InvalidNodeData(SlotProcessingError):
    stage = "entity_mapping"

    def __init__(self, slot: int, cause: Exception):
        super().__init__(slot, f"cannot map node response: {cause}")
        self.cause = cause


class SlotClientError(SlotProcessingError):
    def __init__(self, slot: int, stage: str, cause: Exception):
        super().__init__(slot, f"{stage} failed: {cause}")
        self.stage = stage
        self.cause = cause


# -----------------------------
# Chunks / synchronizer
# -----------------------------
class ChunkProcessingError(IndexerError):
    def __init__(self, initial_slot: int, final_slot: int, failed_slot: int, cause: Exception):
        super().__init__(
            f"failed to process slots [{initial_slot}, {final_slot}) at slot {failed_slot}: {cause}"
        )
        self.initial_slot = initial_slot
        self.final_slot = final_slot
        self.failed_slot = failed_slot
        self.cause = cause


class SynchronizerError(IndexerError):
    def __init__(self, failed_chunks: list[ChunkProcessingError]):
        bounds = ", ".join(f"({c.initial_slot}, {c.final_slot})" for c in failed_chunks)
        super().__init__(f"{len(failed_chunks)} chunk(s) failed: {bounds}")
        self.failed_chunks = failed_chunks

    @property
    def failed_ranges(self) -> list[tuple[int, int]]:
        return [(c.initial_slot, c.final_slot) for c in self.failed_chunks]
