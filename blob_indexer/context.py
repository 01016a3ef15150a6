from dataclasses import dataclass

from blob_indexer.clients import BeaconClient, BlobscanClient, ExecutionClient, build_session
from blob_indexer.config import Config


@dataclass
class Context:
    """Service handles built once and shared (read-only) by every worker thread."""

    beacon_client: BeaconClient
    execution_client: ExecutionClient
    blobscan_client: BlobscanClient

    network: str = "mainnet"
    slots_per_epoch: int = 32

    @classmethod
    def from_config(cls, config: Config) -> "Context":
        # one pooled connection per worker, plus the driver thread
        pool_size = config.pool_size + 1

        return cls(
            beacon_client=BeaconClient(
                config.beacon_node_endpoint,
                session=build_session(pool_size),
                timeout=config.request_timeout,
                network=config.network_name,
            ),
            execution_client=ExecutionClient.from_url(
                config.execution_node_endpoint,
                timeout=config.request_timeout,
                network=config.network_name,
            ),
            blobscan_client=BlobscanClient(
                config.blobscan_api_endpoint,
                config.secret_key,
                session=build_session(pool_size),
                timeout=config.request_timeout,
                network=config.network_name,
            ),
            network=config.network_name,
            slots_per_epoch=config.slots_per_epoch,
        )
