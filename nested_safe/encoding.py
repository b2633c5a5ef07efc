"""
Byte-level helpers shared by the hashing, signing and translation layers:
keccak256, fixed-width integer packing, hex conversion, CREATE2 addresses and
the Safe signature-byte layout.
"""

from Crypto.Hash import keccak as _keccak_mod
from eth_utils import to_checksum_address

# ============================================================
#  Constants
# ============================================================

FULL = (1 << 256) - 1
ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

SIGNATURE_SLOT_LENGTH = 65  # r (32) + s (32) + v (1)

# v byte values understood by Safe.checkNSignatures
V_CONTRACT = 0
V_APPROVED_HASH = 1

# ============================================================
#  Keccak256
# ============================================================

def keccak256(data: bytes) -> bytes:
    h = _keccak_mod.new(digest_bits=256)
    h.update(data)
    return h.digest()


def keccak_int(data: bytes) -> int:
    """keccak256 returning a 256-bit int."""
    return int.from_bytes(keccak256(data), "big")


def selector(signature: bytes) -> bytes:
    """4-byte function selector, e.g. selector(b"execute(address,uint256,bytes)")."""
    return keccak256(signature)[:4]

# ============================================================
#  Int / hex / address conversion
# ============================================================

def to_b32(val: int) -> bytes:
    return (val & FULL).to_bytes(32, "big")


def to_uint(val: int, length: int) -> bytes:
    """Big-endian unsigned int of `length` bytes; rejects values that do not fit."""
    if val < 0 or val >= 1 << (8 * length):
        raise ValueError(f"{val} does not fit in uint{8 * length}")
    return val.to_bytes(length, "big")


def to_hex(val, length=None):
    """0x-prefixed hex of bytes, or of an int padded to `length` bytes."""
    if isinstance(val, int):
        if length is None:
            return hex(val)
        return "0x" + val.to_bytes(length, "big").hex()
    return "0x" + bytes(val).hex()


def hex_to_bytes(h) -> bytes:
    if h is None or h in ("", "0x"):
        return b""
    if isinstance(h, (bytes, bytearray)):
        return bytes(h)
    return bytes.fromhex(h[2:] if h.startswith("0x") else h)


def hex_to_int(h) -> int:
    if h is None:
        return 0
    if isinstance(h, int):
        return h
    return int(h, 16)


def address_bytes(address: str) -> bytes:
    raw = hex_to_bytes(address)
    if len(raw) != 20:
        raise ValueError(f"Not a 20-byte address: {address}")
    return raw


def address_int(address: str) -> int:
    """Numeric value of an address; Safe orders owners by this."""
    return int.from_bytes(address_bytes(address), "big")


def checksum(address) -> str:
    if isinstance(address, (bytes, bytearray)):
        address = "0x" + bytes(address).hex()
    return to_checksum_address(address)


def create2_address(deployer: str, salt: bytes, init_code_hash: bytes) -> str:
    """keccak256(0xff ++ deployer ++ salt ++ keccak256(init_code))[12:]"""
    if len(salt) != 32 or len(init_code_hash) != 32:
        raise ValueError("CREATE2 salt and init code hash must be 32 bytes")
    digest = keccak256(b"\xff" + address_bytes(deployer) + salt + init_code_hash)
    return checksum(digest[12:])

# ============================================================
#  Safe signature bytes
# ============================================================

def encode_static_slot(owner: str, word: int, v: int) -> bytes:
    """pad32(owner) ++ uint256(word) ++ uint8(v) -- contract and approved-hash slots."""
    return b"\x00" * 12 + address_bytes(owner) + to_b32(word) + bytes([v])


def encode_signature_bytes(slots) -> bytes:
    """
    Concatenate (owner, static_slot, dynamic_data) triples into Safe signature
    bytes. Slots must already be in ascending owner order. Contract slots carry
    dynamic_data; their `s` word is rewritten to the offset of
    uint256(len) ++ dynamic_data past the static part.
    """
    static = b""
    dynamic = b""
    static_len = len(slots) * SIGNATURE_SLOT_LENGTH
    for owner, slot, data in slots:
        if data is None:
            static += slot
            continue
        static += encode_static_slot(owner, static_len + len(dynamic), V_CONTRACT)
        dynamic += to_b32(len(data)) + data
    return static + dynamic
