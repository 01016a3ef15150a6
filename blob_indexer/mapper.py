"""
Pure transformations from raw node responses to index entities.

Nothing here performs I/O. Malformed input raises ``ValueError``; callers
decide how to classify it.
"""

import hashlib

from blob_indexer.clients.beacon import BlobSidecar
from blob_indexer.entities import Blob, Block, Transaction
from blob_indexer.web3_utils import hex_to_bytes, to_hex, to_int

VERSIONED_HASH_VERSION_KZG = b"\x01"


def versioned_hash(commitment: str) -> str:
    """EIP-4844 ``kzg_to_versioned_hash``: version byte + sha256(commitment)[1:]."""
    digest = hashlib.sha256(hex_to_bytes(commitment)).digest()
    return to_hex(VERSIONED_HASH_VERSION_KZG + digest[1:])


def _field(obj: dict, name: str, what: str):
    value = obj.get(name)
    if value is None:
        raise ValueError(f"missing {name} field in {what}")
    return value


# -----------------------------
# cross-reference maps
# -----------------------------
def create_tx_hash_versioned_hashes_mapping(execution_block: dict) -> dict[str, list[str]]:
    """
    Map each blob-carrying transaction to the versioned hashes it declares.

    Keeps block order for transactions and declaration order for hashes, so
    the position in the list is the blob index within the transaction.
    """
    mapping: dict[str, list[str]] = {}
    for tx in execution_block.get("transactions") or []:
        hashes = tx.get("blobVersionedHashes") or []
        if hashes:
            tx_hash = to_hex(_field(tx, "hash", "transaction"))
            mapping[tx_hash] = [to_hex(h) for h in hashes]
    return mapping


def create_versioned_hash_blob_mapping(sidecars: list[BlobSidecar]) -> dict[str, BlobSidecar]:
    return {versioned_hash(sidecar.commitment): sidecar for sidecar in sidecars}


# -----------------------------
# entities
# -----------------------------
def build_block(execution_block: dict, slot: int, proposer: str | None = None) -> Block:
    number = to_int(_field(execution_block, "number", "execution block"))
    return Block(
        number=number,
        hash=to_hex(_field(execution_block, "hash", f"execution block {number}")),
        timestamp=to_int(_field(execution_block, "timestamp", f"execution block {number}")),
        slot=slot,
        proposer=proposer,
    )


def build_transaction(tx: dict, execution_block: dict) -> Transaction:
    to = tx.get("to")
    return Transaction(
        hash=to_hex(_field(tx, "hash", "transaction")),
        from_=to_hex(_field(tx, "from", "transaction")),
        to=None if to is None else to_hex(to),
        block_number=to_int(_field(execution_block, "number", "execution block")),
    )


def build_transactions(execution_block: dict) -> list[Transaction]:
    return [build_transaction(tx, execution_block) for tx in execution_block.get("transactions") or []]


def build_blob(sidecar: BlobSidecar, versioned_hash_: str, index: int, tx_hash: str) -> Blob:
    return Blob(
        versioned_hash=versioned_hash_,
        commitment=sidecar.commitment,
        data=sidecar.payload,
        tx_hash=tx_hash,
        index=index,
    )
