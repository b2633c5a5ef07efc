"""
WOTS+C one-time signatures over keccak256 (n = 128 bits, w = 16).

This is the alternate key scheme behind WotsSignerFactory: the public key is
a (pk_seed, pk_root) pair, the signature is 32 chain values plus a 4-byte
grinding counter chosen so the message digits sum to TARGET_SUM, which makes
the checksum chains unnecessary.

A key must sign a single digest only; signing two different digests with the
same key leaks enough chain values to forge.
"""

import struct

from .encoding import FULL, keccak_int, to_b32

# ============================================================
#  Constants
# ============================================================

N = 16  # n = 128 bits = 16 bytes
N_MASK = (1 << 256) - (1 << 128)  # top 128 bits of uint256

ADRS_WOTS = 0
ADRS_WOTS_PK = 1

W = 16
LOG_W = 4
L = 32
LEN1 = 32
TARGET_SUM = 240
W_MASK = 0xF

MAX_COUNT = 10_000_000
SIG_SIZE = L * N + 4
SIGNER_DATA_SIZE = 64

# ============================================================
#  Tweakable hash primitives
# ============================================================

def to_b4(val: int) -> bytes:
    return struct.pack(">I", val & 0xFFFFFFFF)


def make_adrs(layer, tree, atype, kp, ci, cp, ha):
    return ((layer & 0xFFFFFFFF) << 224 |
            (tree & 0xFFFFFFFFFFFFFFFF) << 160 |
            (atype & 0xFFFFFFFF) << 128 |
            (kp & 0xFFFFFFFF) << 96 |
            (ci & 0xFFFFFFFF) << 64 |
            (cp & 0xFFFFFFFF) << 32 |
            (ha & 0xFFFFFFFF))


def th_multi(seed, adrs, vals):
    data = to_b32(seed) + to_b32(adrs)
    for v in vals:
        data += to_b32(v)
    return keccak_int(data) & N_MASK


def chain_hash(seed, adrs, val, start_pos, steps):
    pos_clear = FULL ^ (0xFFFFFFFF << 32)
    for step in range(steps):
        pos = start_pos + step
        a = (adrs & pos_clear) | ((pos & 0xFFFFFFFF) << 32)
        val = keccak_int(to_b32(seed) + to_b32(a) + to_b32(val)) & N_MASK
    return val


def set_chain_index(adrs, idx):
    mask = FULL ^ (0xFFFFFFFF << 64)
    return (adrs & mask) | ((idx & 0xFFFFFFFF) << 64)

# ============================================================
#  Keys
# ============================================================

def derive_keypair(entropy: bytes):
    """Deterministic (pk_seed, sk_seed) from caller-supplied entropy."""
    root = keccak_int(b"wots_signer_v1" + entropy)
    pk_seed = keccak_int(b"pk_seed" + to_b32(root)) & N_MASK
    sk_seed = keccak_int(b"sk_seed" + to_b32(root))
    return pk_seed, sk_seed


def wots_secret(sk_seed, chain_idx):
    data = to_b32(sk_seed) + b"wots" + to_b4(chain_idx)
    return keccak_int(data) & N_MASK


def public_key(pk_seed, sk_seed):
    """pk_root: hash of the 32 fully-advanced chain ends."""
    base_adrs = make_adrs(0, 0, ADRS_WOTS, 0, 0, 0, 0)
    pk_elements = []
    for i in range(L):
        sk_i = wots_secret(sk_seed, i)
        pk_elements.append(chain_hash(pk_seed, set_chain_index(base_adrs, i), sk_i, 0, W - 1))
    pk_adrs = make_adrs(0, 0, ADRS_WOTS_PK, 0, 0, 0, 0)
    return th_multi(pk_seed, pk_adrs, pk_elements)


def encode_signer_data(pk_seed: int, pk_root: int) -> bytes:
    return to_b32(pk_seed) + to_b32(pk_root)


def decode_signer_data(signer_data: bytes):
    if len(signer_data) != SIGNER_DATA_SIZE:
        raise ValueError(f"WOTS signer data must be {SIGNER_DATA_SIZE} bytes, got {len(signer_data)}")
    return int.from_bytes(signer_data[:32], "big"), int.from_bytes(signer_data[32:], "big")

# ============================================================
#  Sign / verify
# ============================================================

def wots_digest(seed, msg_hash, count):
    hash_adrs = make_adrs(0, 0, ADRS_WOTS, 0, 0, 0, 0)
    return keccak_int(to_b32(seed) + to_b32(hash_adrs) + to_b32(msg_hash) + to_b32(count))


def extract_digits(d):
    return [(d >> (i * LOG_W)) & W_MASK for i in range(LEN1)]


def find_count(seed, msg_hash):
    for count in range(MAX_COUNT):
        digits = extract_digits(wots_digest(seed, msg_hash, count))
        if sum(digits) == TARGET_SUM:
            return count, digits
    raise RuntimeError("WOTS+C count grinding failed")


def sign(pk_seed, sk_seed, digest: bytes) -> bytes:
    """Sign a 32-byte digest. Output: 32 x 16-byte chain values ++ uint32 count."""
    msg_hash = int.from_bytes(digest, "big")
    count, digits = find_count(pk_seed, msg_hash)
    base_adrs = make_adrs(0, 0, ADRS_WOTS, 0, 0, 0, 0)
    sig = b""
    for i in range(L):
        sigma_i = chain_hash(pk_seed, set_chain_index(base_adrs, i), wots_secret(sk_seed, i),
                             0, digits[i])
        sig += to_b32(sigma_i)[:N]
    sig += to_b4(count)
    return sig


def verify(pk_seed, pk_root, digest: bytes, sig: bytes) -> bool:
    if len(digest) != 32 or len(sig) != SIG_SIZE:
        return False
    msg_hash = int.from_bytes(digest, "big")
    count = struct.unpack(">I", sig[L * N:])[0]
    digits = extract_digits(wots_digest(pk_seed, msg_hash, count))
    if sum(digits) != TARGET_SUM:
        return False

    base_adrs = make_adrs(0, 0, ADRS_WOTS, 0, 0, 0, 0)
    pk_elements = []
    for i in range(L):
        sigma_i = int.from_bytes(sig[i * N:(i + 1) * N] + b"\x00" * N, "big")
        pk_elements.append(chain_hash(pk_seed, set_chain_index(base_adrs, i), sigma_i,
                                      digits[i], W - 1 - digits[i]))
    pk_adrs = make_adrs(0, 0, ADRS_WOTS_PK, 0, 0, 0, 0)
    return th_multi(pk_seed, pk_adrs, pk_elements) == pk_root
