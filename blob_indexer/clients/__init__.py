from blob_indexer.clients.beacon import BeaconBlock, BeaconClient, BlobSidecar, BlobSidecars, ProposerDuty
from blob_indexer.clients.blobscan import BlobscanClient
from blob_indexer.clients.execution import ExecutionClient
from blob_indexer.clients.http import JsonHttpClient, build_session

__all__ = [
    "BeaconBlock",
    "BeaconClient",
    "BlobSidecar",
    "BlobSidecars",
    "ProposerDuty",
    "BlobscanClient",
    "ExecutionClient",
    "JsonHttpClient",
    "build_session",
]
