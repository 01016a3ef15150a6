"""Shared fakes and fixtures for indexer tests."""

from __future__ import annotations

import threading
from typing import Optional

import pytest

from blob_indexer.clients.beacon import BeaconBlock, BlobSidecar, BlobSidecars, ProposerDuty
from blob_indexer.context import Context
from blob_indexer.entities import FailedRangeRecord, IndexRequest
from blob_indexer.errors import ClientError
from blob_indexer.mapper import versioned_hash

SLOTS_PER_EPOCH = 32


def commitment_for(slot: int, tx: int, index: int) -> str:
    """Deterministic 48-byte fake KZG commitment."""
    seed = f"{slot:08x}{tx:04x}{index:04x}"
    return "0x" + (seed * 6)[:96]


def tx_hash_for(slot: int, tx: int) -> str:
    return "0x" + f"{slot:032x}{tx:032x}"


def pubkey_for(slot: int) -> str:
    return "0x" + f"{slot:096x}"


class FakeBeaconClient:
    """In-memory beacon node; records every call."""

    def __init__(self) -> None:
        self.blocks: dict = {}
        self.duties: dict[int, list[ProposerDuty]] = {}
        self.sidecars: dict[int, BlobSidecars] = {}
        self.calls: list[tuple] = []
        self._lock = threading.Lock()

    def _record(self, *call) -> None:
        with self._lock:
            self.calls.append(call)

    def get_block(self, block_id) -> Optional[BeaconBlock]:
        self._record("get_block", block_id)
        return self.blocks.get(block_id)

    def get_validators(self, epoch: int) -> Optional[list[ProposerDuty]]:
        self._record("get_validators", epoch)
        return self.duties.get(epoch)

    def get_blob_sidecars(self, block_id) -> Optional[BlobSidecars]:
        self._record("get_blob_sidecars", block_id)
        return self.sidecars.get(block_id)


class FakeExecutionClient:
    def __init__(self) -> None:
        self.blocks: dict[str, dict] = {}
        self.calls: list[str] = []

    def get_block_with_transactions(self, block_hash: str) -> Optional[dict]:
        self.calls.append(block_hash)
        return self.blocks.get(block_hash)


class FakeBlobscanClient:
    """In-memory index API."""

    def __init__(self) -> None:
        self.indexed: list[IndexRequest] = []
        self.failed_ranges: list[FailedRangeRecord] = []
        self.checkpoints: list[int] = []
        self.last_slot: Optional[int] = None
        self.fail_persist = False
        self._lock = threading.Lock()

    def get_last_indexed_slot(self) -> Optional[int]:
        return self.last_slot

    def update_last_indexed_slot(self, slot: int) -> None:
        with self._lock:
            self.checkpoints.append(slot)
            self.last_slot = slot

    def index(self, block, transactions, blobs) -> None:
        with self._lock:
            self.indexed.append(IndexRequest(block=block, transactions=transactions, blobs=blobs))

    def persist_failed_range(self, initial_slot: int, final_slot: int) -> FailedRangeRecord:
        if self.fail_persist:
            raise ClientError("index API down", client="blobscan", status=400)
        with self._lock:
            record = FailedRangeRecord(
                initial_slot=initial_slot,
                final_slot=final_slot,
                id=len(self.failed_ranges) + 1,
            )
            self.failed_ranges.append(record)
        return record

    @property
    def indexed_slots(self) -> list[int]:
        return sorted(r.block.slot for r in self.indexed)


class FakeChain:
    """Builds consistent beacon + execution data for a set of slots."""

    def __init__(self, beacon: FakeBeaconClient, execution: FakeExecutionClient) -> None:
        self.beacon = beacon
        self.execution = execution

    def add_block(
        self,
        slot: int,
        *,
        tx_count: int = 1,
        blobs_per_tx: Optional[dict[int, int]] = None,
        sidecars: bool = True,
        execution_block: bool = True,
        proposer_duty: bool = True,
    ) -> dict:
        blobs_per_tx = blobs_per_tx or {}
        block_hash = "0x" + f"{slot:064x}"
        block_number = 1_000_000 + slot

        transactions = []
        commitments = []
        for tx in range(tx_count):
            tx_commitments = [commitment_for(slot, tx, i) for i in range(blobs_per_tx.get(tx, 0))]
            commitments.extend(tx_commitments)
            transactions.append(
                {
                    "hash": tx_hash_for(slot, tx),
                    "from": "0x" + f"{tx + 1:040x}",
                    "to": "0x" + f"{tx + 2:040x}",
                    "blobVersionedHashes": [versioned_hash(c) for c in tx_commitments],
                }
            )

        self.beacon.blocks[slot] = BeaconBlock(
            slot=str(slot),
            execution_block_hash=block_hash,
            blob_kzg_commitments=commitments,
        )

        if proposer_duty:
            epoch = slot // SLOTS_PER_EPOCH
            self.beacon.duties.setdefault(epoch, []).append(
                ProposerDuty(pubkey=pubkey_for(slot), slot=slot)
            )

        if sidecars and commitments:
            self.beacon.sidecars[slot] = BlobSidecars(
                data=[
                    BlobSidecar(commitment=c, payload="0x" + "ab" * 64, index=i)
                    for i, c in enumerate(commitments)
                ]
            )

        block = {
            "number": block_number,
            "hash": block_hash,
            "timestamp": 1_700_000_000 + slot * 12,
            "transactions": transactions,
        }
        if execution_block:
            self.execution.blocks[block_hash] = block
        return block

    def add_blocks(self, slots, **kwargs) -> None:
        for slot in slots:
            self.add_block(slot, **kwargs)


@pytest.fixture
def beacon() -> FakeBeaconClient:
    return FakeBeaconClient()


@pytest.fixture
def execution() -> FakeExecutionClient:
    return FakeExecutionClient()


@pytest.fixture
def blobscan() -> FakeBlobscanClient:
    return FakeBlobscanClient()


@pytest.fixture
def chain(beacon: FakeBeaconClient, execution: FakeExecutionClient) -> FakeChain:
    return FakeChain(beacon, execution)


@pytest.fixture
def context(
    beacon: FakeBeaconClient,
    execution: FakeExecutionClient,
    blobscan: FakeBlobscanClient,
) -> Context:
    return Context(
        beacon_client=beacon,
        execution_client=execution,
        blobscan_client=blobscan,
        network="test",
        slots_per_epoch=SLOTS_PER_EPOCH,
    )
