from prometheus_client import Counter, Gauge, Histogram

# -----------------------------
# Progress
# -----------------------------
CHAIN_HEAD_SLOT = Gauge(
    "indexer_chain_head_slot",
    "Latest beacon head slot seen by the indexer",
    ["network"],
)
CHECKPOINT_SLOT = Gauge(
    "indexer_checkpoint_slot",
    "Highest contiguous slot confirmed by the synchronizer",
    ["network"],
)
CHECKPOINT_LAG = Gauge(
    "indexer_checkpoint_lag",
    "Slot lag between chain head and indexer checkpoint",
    ["network"],
)

# -----------------------------
# Slot outcomes / throughput
# -----------------------------
SLOTS_PROCESSED = Counter(
    "indexer_slots_total",
    "Slots processed by outcome",
    ["network", "status"],
)
BLOCKS_INDEXED = Counter(
    "indexer_blocks_indexed_total",
    "Execution blocks submitted to the index API",
    ["network"],
)
TX_INDEXED = Counter(
    "indexer_tx_indexed_total",
    "Transactions submitted to the index API",
    ["network"],
)
BLOBS_INDEXED = Counter(
    "indexer_blobs_indexed_total",
    "Blobs submitted to the index API",
    ["network"],
)
BLOBS_PER_BLOCK = Histogram(
    "indexer_blobs_per_block",
    "Blobs per indexed block",
    ["network"],
    buckets=(0, 1, 2, 3, 4, 6, 9, 12, 16),
)
SLOT_LATENCY = Histogram(
    "indexer_slot_latency_sec",
    "Time spent processing a single slot",
    ["network"],
    buckets=(0.1, 0.25, 0.5, 1, 2, 5, 10, 30),
)

# -----------------------------
# Chunks
# -----------------------------
CHUNKS_DISPATCHED = Counter(
    "indexer_chunks_dispatched_total",
    "Slot chunks handed to the worker pool",
    ["network"],
)
CHUNKS_FAILED = Counter(
    "indexer_chunks_failed_total",
    "Slot chunks that failed and were recorded for reprocessing",
    ["network"],
)
CHUNKS_INFLIGHT = Gauge(
    "indexer_chunks_inflight",
    "Slot chunks currently being processed",
    ["network"],
)

# -----------------------------
# Clients
# -----------------------------
CLIENT_REQUESTS = Counter(
    "indexer_client_requests_total",
    "Requests sent to upstream/downstream services",
    ["network", "client"],
)
CLIENT_ERRORS = Counter(
    "indexer_client_errors_total",
    "Failed requests to upstream/downstream services",
    ["network", "client"],
)
CLIENT_RETRIES = Counter(
    "indexer_client_retries_total",
    "Retries scheduled after transient client faults",
    ["network", "client"],
)
