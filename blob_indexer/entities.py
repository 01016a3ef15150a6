from dataclasses import dataclass, field
from typing import Optional


# Entities as submitted to the index API (wire field names are lower camel case)


@dataclass
class Block:
    number: int
    hash: str
    timestamp: int
    slot: int
    proposer: Optional[str] = None

    def to_json(self) -> dict:
        out = {
            "number": self.number,
            "hash": self.hash,
            "timestamp": self.timestamp,
            "slot": self.slot,
        }
        if self.proposer is not None:
            out["proposer"] = self.proposer
        return out


@dataclass
class Transaction:
    hash: str
    from_: str
    block_number: int
    to: Optional[str] = None

    def to_json(self) -> dict:
        out = {
            "hash": self.hash,
            "from": self.from_,
            "blockNumber": self.block_number,
        }
        # contract creations carry no recipient
        if self.to is not None:
            out["to"] = self.to
        return out


@dataclass
class Blob:
    versioned_hash: str
    commitment: str
    data: str = field(repr=False)
    tx_hash: str
    index: int

    def to_json(self) -> dict:
        return {
            "versionedHash": self.versioned_hash,
            "commitment": self.commitment,
            "data": self.data,
            "txHash": self.tx_hash,
            "index": self.index,
        }


@dataclass
class FailedRangeRecord:
    initial_slot: int
    final_slot: int
    id: Optional[int] = None  # assigned by the index API

    def to_json(self) -> dict:
        out = {"initialSlot": self.initial_slot, "finalSlot": self.final_slot}
        if self.id is not None:
            out["id"] = self.id
        return out

    @classmethod
    def from_json(cls, payload: dict) -> "FailedRangeRecord":
        return cls(
            initial_slot=int(payload["initialSlot"]),
            final_slot=int(payload["finalSlot"]),
            id=payload.get("id"),
        )


@dataclass
class IndexRequest:
    block: Block
    transactions: list[Transaction]
    blobs: list[Blob] = field(default_factory=list)

    def to_json(self) -> dict:
        return {
            "block": self.block.to_json(),
            "transactions": [tx.to_json() for tx in self.transactions],
            "blobs": [blob.to_json() for blob in self.blobs],
        }
