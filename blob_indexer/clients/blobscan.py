import time
from typing import Optional

import jwt

from blob_indexer.clients.http import JsonHttpClient
from blob_indexer.entities import Blob, Block, FailedRangeRecord, IndexRequest, Transaction
from blob_indexer.errors import ClientError

JWT_ALGORITHM = "HS256"
JWT_TTL_SECONDS = 5 * 60


class BlobscanClient(JsonHttpClient):
    """
    Index API client.

    Every request is authenticated with a short-lived HS256 JWT signed with
    the shared secret.
    """

    name = "blobscan"

    def __init__(self, base_url: str, secret_key: str, **kwargs):
        super().__init__(base_url, **kwargs)
        self._secret_key = secret_key

    def _token(self) -> str:
        now = int(time.time())
        return jwt.encode(
            {"iat": now, "exp": now + JWT_TTL_SECONDS},
            self._secret_key,
            algorithm=JWT_ALGORITHM,
        )

    def _headers(self) -> dict:
        return {"Authorization": f"Bearer {self._token()}"}

    # -----------------------------
    # checkpoint
    # -----------------------------
    def get_last_indexed_slot(self) -> Optional[int]:
        body = self.request("GET", "/slot", allow_not_found=True)
        if body is None:
            return None
        try:
            slot = body.get("slot")
            return None if slot is None else int(slot)
        except (AttributeError, TypeError, ValueError) as e:
            raise ClientError(f"malformed slot response: {body!r}", client=self.name) from e

    def update_last_indexed_slot(self, slot: int) -> None:
        self.request("PUT", "/slot", json={"slot": slot})

    # -----------------------------
    # indexing
    # -----------------------------
    def index(self, block: Block, transactions: list[Transaction], blobs: list[Blob]) -> None:
        request = IndexRequest(block=block, transactions=transactions, blobs=blobs)
        self.request("PUT", "/index", json=request.to_json())

    def persist_failed_range(self, initial_slot: int, final_slot: int) -> FailedRangeRecord:
        record = FailedRangeRecord(initial_slot=initial_slot, final_slot=final_slot)
        body = self.request("POST", "/failed-slots-chunks", json={"chunks": [record.to_json()]})

        # the API may echo the stored chunks with their ids
        chunks = body.get("chunks") if isinstance(body, dict) else None
        if not chunks:
            return record
        try:
            return FailedRangeRecord.from_json(chunks[0])
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise ClientError(f"malformed failed range response: {body!r}", client=self.name) from e
