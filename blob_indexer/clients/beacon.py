from dataclasses import dataclass, field
from typing import Optional, Union

from blob_indexer.clients.http import JsonHttpClient
from blob_indexer.errors import ClientError

BlockId = Union[int, str]  # slot number or "head" / "finalized" / "0x<root>"


@dataclass
class BeaconBlock:
    slot: str  # as returned by the node; callers parse it
    execution_block_hash: Optional[str] = None
    blob_kzg_commitments: Optional[list[str]] = None

    @property
    def has_execution_payload(self) -> bool:
        return self.execution_block_hash is not None

    @property
    def has_blob_commitments(self) -> bool:
        return bool(self.blob_kzg_commitments)


@dataclass
class ProposerDuty:
    pubkey: str
    slot: int
    validator_index: Optional[int] = None


@dataclass
class BlobSidecar:
    commitment: str
    payload: str
    index: Optional[int] = None

    def __repr__(self) -> str:
        return f"BlobSidecar(index={self.index}, commitment={self.commitment}, payload=[omitted])"


@dataclass
class BlobSidecars:
    data: list[BlobSidecar] = field(default_factory=list)


class BeaconClient(JsonHttpClient):
    """Read-only accessor for the beacon node REST API."""

    name = "beacon"

    def get_block(self, block_id: BlockId) -> Optional[BeaconBlock]:
        body = self.request("GET", f"/eth/v2/beacon/blocks/{block_id}", allow_not_found=True)
        if body is None:
            return None
        try:
            message = body["data"]["message"]
            block_body = message.get("body", {})
        except (KeyError, TypeError, AttributeError) as e:
            raise ClientError(f"malformed beacon block {block_id}", client=self.name) from e

        payload = block_body.get("execution_payload")
        return BeaconBlock(
            slot=message.get("slot"),
            execution_block_hash=payload.get("block_hash") if payload else None,
            blob_kzg_commitments=block_body.get("blob_kzg_commitments"),
        )

    def get_validators(self, epoch: int) -> Optional[list[ProposerDuty]]:
        """Proposer duties of ``epoch``; one entry per slot of the epoch."""
        body = self.request(
            "GET", f"/eth/v1/validator/duties/proposer/{epoch}", allow_not_found=True
        )
        if body is None:
            return None
        try:
            return [
                ProposerDuty(
                    pubkey=duty["pubkey"],
                    slot=int(duty["slot"]),
                    validator_index=int(duty["validator_index"])
                    if duty.get("validator_index") is not None
                    else None,
                )
                for duty in body["data"]
            ]
        except (KeyError, TypeError, ValueError) as e:
            raise ClientError(f"malformed proposer duties for epoch {epoch}", client=self.name) from e

    def get_blob_sidecars(self, block_id: BlockId) -> Optional[BlobSidecars]:
        body = self.request("GET", f"/eth/v1/beacon/blob_sidecars/{block_id}", allow_not_found=True)
        if body is None:
            return None
        try:
            return BlobSidecars(
                data=[
                    BlobSidecar(
                        commitment=item["kzg_commitment"],
                        payload=item["blob"],
                        index=int(item["index"]) if item.get("index") is not None else None,
                    )
                    for item in body.get("data") or []
                ]
            )
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise ClientError(f"malformed blob sidecars for {block_id}", client=self.name) from e
