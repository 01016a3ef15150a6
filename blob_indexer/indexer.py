import time
from typing import Callable, Optional

from prometheus_client import start_http_server

from blob_indexer.config import Config
from blob_indexer.context import Context
from blob_indexer.errors import (
    ClientError,
    ConfigError,
    FatalIndexerError,
    RetryExhausted,
    SynchronizerError,
)
from blob_indexer.logging import log, setup_logging
from blob_indexer.metrics import CHAIN_HEAD_SLOT, CHECKPOINT_LAG, CLIENT_RETRIES
from blob_indexer.retry import RetryPolicy, default_head_policy
from blob_indexer.synchronizer import Synchronizer


class Indexer:
    """
    Driver loop: poll the beacon head, sync up to it, sleep, repeat.

    ``current_slot`` only moves forward. Chunk failures are already recorded
    downstream by the synchronizer, so a failed ``run`` is logged and the loop
    carries on; the synchronizer keeps the persisted checkpoint below every
    failed range, so a restart resumes at or before the gap. Only an
    unreachable head or a malformed head slot is fatal.
    """

    def __init__(
        self,
        context: Context,
        synchronizer: Synchronizer,
        *,
        from_slot: Optional[int] = None,
        poll_interval: float = 10.0,
        head_retry_policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.context = context
        self.synchronizer = synchronizer
        self.from_slot = from_slot
        self.poll_interval = poll_interval
        self.head_retry_policy = head_retry_policy or default_head_policy()
        self.sleep = sleep
        self.current_slot: Optional[int] = None

    def _on_head_retry(self, attempt: int, delay: float, error: Exception):
        CLIENT_RETRIES.labels(network=self.context.network, client="beacon").inc()
        log.warning(
            "beacon_head_retry",
            extra={"attempt": attempt, "retry_in_sec": round(delay, 1), "error": str(error)[:200]},
        )

    def resolve_start_slot(self) -> int:
        if self.from_slot is not None:
            return self.from_slot
        try:
            last_slot = self.context.blobscan_client.get_last_indexed_slot()
        except ClientError as e:
            log.exception("latest_slot_fetch_failed")
            raise FatalIndexerError("failed to fetch latest indexed slot") from e
        return 0 if last_slot is None else last_slot + 1

    def fetch_head_slot(self) -> Optional[int]:
        try:
            head = self.head_retry_policy.call(
                lambda: self.context.beacon_client.get_block("head"),
                description="beacon head block",
                on_retry=self._on_head_retry,
            )
        except RetryExhausted as e:
            log.exception("beacon_head_fetch_failed")
            raise FatalIndexerError("beacon head block unreachable") from e
        except ClientError as e:
            log.exception("beacon_head_fetch_failed")
            raise FatalIndexerError("beacon head block request rejected") from e

        if head is None:
            return None
        try:
            return int(head.slot)
        except (TypeError, ValueError):
            raise FatalIndexerError(f"malformed head slot: {head.slot!r}") from None

    def step(self) -> None:
        """One poll: fetch head, sync ``[current_slot, head)``."""
        if self.current_slot is None:
            self.current_slot = self.resolve_start_slot()

        head_slot = self.fetch_head_slot()
        if head_slot is None:
            log.warning("beacon_head_missing", extra={"current_slot": self.current_slot})
            return

        CHAIN_HEAD_SLOT.labels(network=self.context.network).set(head_slot)

        if head_slot <= self.current_slot:
            return

        try:
            self.synchronizer.run(self.current_slot, head_slot)
        except SynchronizerError as e:
            log.error(
                "sync_run_failed",
                extra={
                    "initial_slot": self.current_slot,
                    "final_slot": head_slot,
                    "failed_ranges": e.failed_ranges,
                    "blocked_at": self.synchronizer.blocked_at,
                },
            )

        self.current_slot = head_slot

        checkpoint = self.synchronizer.last_checkpoint
        if checkpoint is not None:
            CHECKPOINT_LAG.labels(network=self.context.network).set(max(0, head_slot - checkpoint))

    def run_forever(self) -> None:
        while True:
            self.step()
            self.sleep(self.poll_interval)


def build_indexer(config: Config) -> Indexer:
    context = Context.from_config(config)
    synchronizer = Synchronizer(
        context,
        num_workers=config.pool_size,
        slots_per_chunk=config.slots_per_save,
    )
    return Indexer(
        context,
        synchronizer,
        from_slot=config.from_slot,
        poll_interval=config.poll_interval,
    )


# Entrypoint
def main() -> int:
    try:
        config = Config.from_env()
    except ConfigError as e:
        log.error("invalid_config", extra={"error": str(e)})
        return 1

    setup_logging(config.log_level)
    log.info("indexer_start", extra=config.summary())

    if config.metrics_port:
        # Prometheus metrics endpoint
        start_http_server(config.metrics_port)

    try:
        indexer = build_indexer(config)
        indexer.run_forever()
    except FatalIndexerError as e:
        log.error("fatal_indexer_error", extra={"error": str(e)})
        return 1
    except Exception as e:
        log.exception("fatal_runtime_error", extra={"error_type": type(e).__name__})
        raise
    return 0
