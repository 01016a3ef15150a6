from typing import Optional

import requests
from web3 import Web3
from web3.exceptions import BlockNotFound, Web3Exception
from web3.middleware import ExtraDataToPOAMiddleware

from blob_indexer.errors import ClientError, ClientTemporarilyUnavailable
from blob_indexer.metrics import CLIENT_ERRORS, CLIENT_REQUESTS, CLIENT_RETRIES
from blob_indexer.retry import RetryPolicy, default_call_policy
from blob_indexer.web3_utils import to_json_safe
from blob_indexer.clients.http import RETRYABLE_STATUS


class ExecutionClient:
    """
    Execution-layer JSON-RPC accessor.

    Blocks are returned as plain dicts with every ``HexBytes`` turned into a
    0x-hex string::

        {number, hash, timestamp, transactions: [{hash, from, to, blobVersionedHashes}]}
    """

    name = "execution"

    def __init__(
        self,
        w3: Web3,
        *,
        retry_policy: Optional[RetryPolicy] = None,
        network: str = "mainnet",
    ):
        self.w3 = w3
        self.retry_policy = retry_policy or default_call_policy()
        self.network = network

    @classmethod
    def from_url(cls, url: str, *, timeout: float = 30.0, **kwargs) -> "ExecutionClient":
        w3 = Web3(Web3.HTTPProvider(url, request_kwargs={"timeout": timeout}))
        # devnets and POA chains ship oversized extraData
        w3.middleware_onion.inject(ExtraDataToPOAMiddleware, layer=0)
        return cls(w3, **kwargs)

    def _on_retry(self, attempt: int, delay: float, error: Exception):
        CLIENT_RETRIES.labels(network=self.network, client=self.name).inc()

    def _fetch_block(self, block_hash: str) -> Optional[dict]:
        CLIENT_REQUESTS.labels(network=self.network, client=self.name).inc()
        try:
            block = self.w3.eth.get_block(block_hash, full_transactions=True)
        except BlockNotFound:
            return None
        except (requests.ConnectionError, requests.Timeout) as e:
            CLIENT_ERRORS.labels(network=self.network, client=self.name).inc()
            raise ClientTemporarilyUnavailable(
                f"eth_getBlockByHash {block_hash}: {e}", client=self.name
            ) from e
        except requests.HTTPError as e:
            CLIENT_ERRORS.labels(network=self.network, client=self.name).inc()
            status = e.response.status_code if e.response is not None else None
            error_cls = ClientTemporarilyUnavailable if status in RETRYABLE_STATUS else ClientError
            raise error_cls(
                f"eth_getBlockByHash {block_hash} -> HTTP {status}", client=self.name, status=status
            ) from e
        except Web3Exception as e:
            CLIENT_ERRORS.labels(network=self.network, client=self.name).inc()
            raise ClientError(f"eth_getBlockByHash {block_hash}: {e}", client=self.name) from e

        if block is None:
            return None
        return to_json_safe(block)

    def get_block_with_transactions(self, block_hash: str) -> Optional[dict]:
        return self.retry_policy.call(
            lambda: self._fetch_block(block_hash),
            description=f"{self.name} eth_getBlockByHash {block_hash}",
            on_retry=self._on_retry,
        )
