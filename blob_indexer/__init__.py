# context
from blob_indexer.config import Config
from blob_indexer.context import Context

# processing
from blob_indexer.slots_processor import SlotOutcome, SlotsProcessor, SlotStatus

# orchestration
from blob_indexer.synchronizer import Synchronizer
from blob_indexer.indexer import Indexer

__all__ = [
    # context
    "Config",
    "Context",

    # processing
    "SlotOutcome",
    "SlotStatus",
    "SlotsProcessor",

    # orchestration
    "Synchronizer",
    "Indexer",
]
