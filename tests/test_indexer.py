"""Tests for the head-polling driver loop."""

from __future__ import annotations

import pytest

from blob_indexer.clients.beacon import BeaconBlock
from blob_indexer.context import Context
from blob_indexer.errors import ClientError, ClientTemporarilyUnavailable, FatalIndexerError
from blob_indexer.indexer import Indexer
from blob_indexer.retry import RetryPolicy
from blob_indexer.synchronizer import Synchronizer

from .conftest import FakeBeaconClient, FakeBlobscanClient, FakeChain


class StopLoop(Exception):
    pass


def make_indexer(context: Context, **kwargs) -> Indexer:
    kwargs.setdefault(
        "head_retry_policy", RetryPolicy(max_attempts=3, jitter=0.0, sleep=lambda s: None)
    )
    synchronizer = Synchronizer(context, num_workers=2, slots_per_chunk=5)
    return Indexer(context, synchronizer, **kwargs)


def set_head(beacon: FakeBeaconClient, slot) -> None:
    beacon.blocks["head"] = BeaconBlock(slot=str(slot))


class TestStartSlot:
    def test_from_slot_wins(self, context: Context, blobscan: FakeBlobscanClient) -> None:
        blobscan.last_slot = 500
        assert make_indexer(context, from_slot=42).resolve_start_slot() == 42

    def test_resumes_after_last_indexed_slot(
        self, context: Context, blobscan: FakeBlobscanClient
    ) -> None:
        blobscan.last_slot = 500
        assert make_indexer(context).resolve_start_slot() == 501

    def test_starts_from_genesis(self, context: Context) -> None:
        assert make_indexer(context).resolve_start_slot() == 0

    def test_unreachable_index_api_is_fatal(
        self, context: Context, blobscan: FakeBlobscanClient, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        def down():
            raise ClientError("HTTP 401", client="blobscan", status=401)

        monkeypatch.setattr(blobscan, "get_last_indexed_slot", down)
        with pytest.raises(FatalIndexerError):
            make_indexer(context).resolve_start_slot()


class TestStep:
    def test_syncs_up_to_the_head(
        self,
        context: Context,
        chain: FakeChain,
        beacon: FakeBeaconClient,
        blobscan: FakeBlobscanClient,
    ) -> None:
        chain.add_blocks(range(10, 20))
        blobscan.last_slot = 9
        set_head(beacon, 20)

        indexer = make_indexer(context)
        indexer.step()

        assert blobscan.indexed_slots == list(range(10, 20))
        assert indexer.current_slot == 20
        assert blobscan.last_slot == 19

    def test_head_not_ahead(
        self, context: Context, beacon: FakeBeaconClient, blobscan: FakeBlobscanClient
    ) -> None:
        set_head(beacon, 30)
        indexer = make_indexer(context, from_slot=30)
        indexer.step()

        assert indexer.current_slot == 30
        assert blobscan.indexed == []

    def test_missing_head_is_retried_next_poll(self, context: Context) -> None:
        indexer = make_indexer(context, from_slot=5)
        indexer.step()
        assert indexer.current_slot == 5

    def test_malformed_head_slot_is_fatal(
        self, context: Context, beacon: FakeBeaconClient
    ) -> None:
        set_head(beacon, "not-a-slot")
        with pytest.raises(FatalIndexerError, match="malformed head slot"):
            make_indexer(context, from_slot=0).step()

    def test_unreachable_head_is_fatal(
        self, context: Context, beacon: FakeBeaconClient, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        attempts = []

        def timeout(block_id):
            attempts.append(block_id)
            raise ClientTemporarilyUnavailable("timeout", client="beacon")

        monkeypatch.setattr(beacon, "get_block", timeout)

        with pytest.raises(FatalIndexerError, match="unreachable"):
            make_indexer(context, from_slot=0).step()
        assert attempts == ["head", "head", "head"]

    def test_failed_chunks_do_not_stop_the_loop(
        self,
        context: Context,
        chain: FakeChain,
        beacon: FakeBeaconClient,
        blobscan: FakeBlobscanClient,
    ) -> None:
        chain.add_blocks(range(10, 20))
        chain.execution.blocks.pop("0x" + f"{12:064x}")
        set_head(beacon, 20)

        indexer = make_indexer(context, from_slot=10)
        indexer.step()

        assert indexer.current_slot == 20
        assert [(r.initial_slot, r.final_slot) for r in blobscan.failed_ranges] == [(10, 15)]
        assert blobscan.indexed_slots == list(range(15, 20))

    def test_failed_range_holds_the_checkpoint_across_polls(
        self,
        context: Context,
        chain: FakeChain,
        beacon: FakeBeaconClient,
        blobscan: FakeBlobscanClient,
    ) -> None:
        chain.add_blocks(range(100, 130))
        chain.execution.blocks.pop("0x" + f"{103:064x}")
        synchronizer = Synchronizer(context, num_workers=2, slots_per_chunk=10)
        indexer = Indexer(
            context,
            synchronizer,
            from_slot=100,
            head_retry_policy=RetryPolicy(max_attempts=3, jitter=0.0, sleep=lambda s: None),
        )

        set_head(beacon, 120)
        indexer.step()
        set_head(beacon, 130)
        indexer.step()

        assert indexer.current_slot == 130
        assert all(slot < 110 for slot in blobscan.checkpoints)
        assert synchronizer.blocked_at == 100

        restarted = make_indexer(context)
        assert restarted.resolve_start_slot() <= 100


class TestRunForever:
    def test_polls_at_the_configured_interval(
        self,
        context: Context,
        chain: FakeChain,
        beacon: FakeBeaconClient,
        blobscan: FakeBlobscanClient,
    ) -> None:
        chain.add_blocks(range(1, 8))
        sleeps = []

        def sleep(seconds: float) -> None:
            sleeps.append(seconds)
            if len(sleeps) == 1:
                set_head(beacon, 8)
                return
            raise StopLoop

        set_head(beacon, 4)
        indexer = make_indexer(context, poll_interval=2.5, sleep=sleep)

        with pytest.raises(StopLoop):
            indexer.run_forever()

        assert sleeps == [2.5, 2.5]
        assert blobscan.indexed_slots == list(range(1, 8))
        assert indexer.current_slot == 8
