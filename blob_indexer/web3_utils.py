from hexbytes import HexBytes
from web3.datastructures import AttributeDict

# -----------------------------
# JSON safe serialization
# -----------------------------
def to_json_safe(obj):
    if isinstance(obj, (HexBytes, bytes, bytearray)):
        return HexBytes(obj).to_0x_hex()
    elif isinstance(obj, (AttributeDict, dict)):
        return {k: to_json_safe(v) for k, v in obj.items()}
    elif isinstance(obj, (list, tuple)):
        return [to_json_safe(v) for v in obj]
    else:
        return obj


def to_hex(value) -> str:
    """Normalize a hash/bytes value from any node to a lowercase 0x-hex string."""
    if isinstance(value, str):
        value = value.lower()
        return value if value.startswith("0x") else f"0x{value}"
    return HexBytes(value).to_0x_hex()


def hex_to_bytes(value: str) -> bytes:
    return bytes(HexBytes(value))


def to_int(value) -> int:
    # JSON-RPC quantities arrive as hex strings, REST ones as decimal strings
    if isinstance(value, str):
        return int(value, 16) if value.startswith("0x") else int(value)
    return int(value)


