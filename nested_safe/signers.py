"""
Key holders and the alternate-signer boundary.

EcdsaKey and WotsKey are the cryptographic material a human or agent supplies
to the aggregator. SignerFactory is the capability boundary around alternate
(non-ECDSA) schemes: deterministic signer addresses, idempotent creation and
verification that works before the signer exists on chain.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from eth_account import Account as EthAccount

from .encoding import checksum, create2_address, keccak256
from .errors import InvalidSignerVerificationError, OneTimeKeyReuseError
from .log import get_logger
from . import wots

logger = get_logger(__name__)

MAGIC_VALUE = bytes.fromhex("1626ba7e")  # ERC-1271 isValidSignature success marker
INVALID_VALUE = bytes.fromhex("ffffffff")

# ============================================================
#  Key holders
# ============================================================

class EcdsaKey:
    """secp256k1 key; signs raw 32-byte digests as r || s || v."""

    def __init__(self, private_key):
        self._account = EthAccount.from_key(private_key)
        self.address = checksum(self._account.address)

    def sign(self, digest: bytes) -> bytes:
        signed = self._account.unsafe_sign_hash(digest)
        return (
            signed.r.to_bytes(32, "big") +
            signed.s.to_bytes(32, "big") +
            signed.v.to_bytes(1, "big")
        )

    def __repr__(self):
        return f"EcdsaKey({self.address})"


class WotsKey:
    """
    One-time WOTS+C key. Its owner address is the signer contract address the
    factory derives from signer_data. Refuses to sign a second, different digest.
    """

    def __init__(self, pk_seed: int, sk_seed: int, address: str):
        self.pk_seed = pk_seed
        self._sk_seed = sk_seed
        self.pk_root = wots.public_key(pk_seed, sk_seed)
        self.address = checksum(address)
        self._signed = None

    @classmethod
    def from_entropy(cls, entropy: bytes, factory: "SignerFactory") -> "WotsKey":
        pk_seed, sk_seed = wots.derive_keypair(entropy)
        signer_data = wots.encode_signer_data(pk_seed, wots.public_key(pk_seed, sk_seed))
        return cls(pk_seed, sk_seed, factory.get_signer(signer_data))

    @property
    def signer_data(self) -> bytes:
        return wots.encode_signer_data(self.pk_seed, self.pk_root)

    def sign(self, digest: bytes) -> bytes:
        if self._signed is not None and self._signed != digest:
            raise OneTimeKeyReuseError(
                f"One-time key {self.address} already signed 0x{self._signed.hex()}",
                signer=self.address, context={"signed": "0x" + self._signed.hex()})
        sig = wots.sign(self.pk_seed, self._sk_seed, digest)
        self._signed = digest
        return sig

    def __repr__(self):
        return f"WotsKey({self.address})"


def signer_map(*keys) -> Dict[str, object]:
    """Index key holders by owner address, the shape the aggregator expects."""
    return {k.address: k for k in keys}

# ============================================================
#  Signer registry (deployment collaborator)
# ============================================================

class SignerRegistry(ABC):
    """Where signer contracts live. Deploying is the only side effect in the system."""

    @abstractmethod
    def is_deployed(self, address: str) -> bool:
        ...

    @abstractmethod
    def deploy(self, address: str, signer_data: bytes) -> None:
        ...

    @abstractmethod
    def signer_data_at(self, address: str) -> Optional[bytes]:
        ...


class InMemorySignerRegistry(SignerRegistry):
    """Registry kept in process memory; records every deploy call."""

    def __init__(self):
        self._signers: Dict[str, bytes] = {}
        self.deploy_calls: List[str] = []

    def is_deployed(self, address: str) -> bool:
        return checksum(address) in self._signers

    def deploy(self, address: str, signer_data: bytes) -> None:
        address = checksum(address)
        self.deploy_calls.append(address)
        self._signers[address] = bytes(signer_data)

    def signer_data_at(self, address: str) -> Optional[bytes]:
        return self._signers.get(checksum(address))

# ============================================================
#  Signer factory boundary
# ============================================================

class SignerFactory(ABC):

    @abstractmethod
    def get_signer(self, signer_data: bytes) -> str:
        """Deterministic signer address; the signer need not exist."""

    @abstractmethod
    def create_signer(self, signer_data: bytes) -> str:
        """Provision the signer if missing. Idempotent, safe to retry."""

    @abstractmethod
    def is_valid_signature_for(self, data: bytes, signature: bytes, signer_data: bytes) -> bytes:
        """
        Same answer as create_signer(signer_data) followed by the signer's own
        isValidSignature(data, signature), without creating anything.
        Returns MAGIC_VALUE on success.
        """


class WotsSigner:
    """The deployed signer contract for one WOTS+C public key."""

    def __init__(self, signer_data: bytes):
        self.pk_seed, self.pk_root = wots.decode_signer_data(signer_data)

    def is_valid_signature(self, data: bytes, signature: bytes) -> bytes:
        if wots.verify(self.pk_seed, self.pk_root, data, signature):
            return MAGIC_VALUE
        return INVALID_VALUE


class WotsSignerFactory(SignerFactory):
    """
    CREATE2 factory for WOTS+C signers:
    address = create2(factory, keccak256(signer_data), init_code_hash).
    """

    def __init__(self, address: str, init_code_hash: bytes, registry: SignerRegistry):
        self.address = checksum(address)
        self.init_code_hash = init_code_hash
        self.registry = registry

    def get_signer(self, signer_data: bytes) -> str:
        return create2_address(self.address, keccak256(signer_data), self.init_code_hash)

    def create_signer(self, signer_data: bytes) -> str:
        wots.decode_signer_data(signer_data)
        signer = self.get_signer(signer_data)
        if not self.registry.is_deployed(signer):
            self.registry.deploy(signer, signer_data)
            logger.info("signer_created", signer=signer, factory=self.address)
        return signer

    def signer_at(self, address: str) -> Optional[WotsSigner]:
        signer_data = self.registry.signer_data_at(address)
        if signer_data is None:
            return None
        return WotsSigner(signer_data)

    def is_valid_signature_for(self, data: bytes, signature: bytes, signer_data: bytes) -> bytes:
        return WotsSigner(signer_data).is_valid_signature(data, signature)


def verify_with_factory(factory: SignerFactory, data: bytes, signature: bytes,
                        signer_data: bytes, signer: Optional[str] = None) -> None:
    """
    Raise InvalidSignerVerificationError unless the factory returns the
    success marker. A raising factory counts as an invalid signature.
    """
    try:
        result = factory.is_valid_signature_for(data, signature, signer_data)
    except Exception as exc:
        raise InvalidSignerVerificationError(
            f"Signer {signer} verification aborted: {exc}", signer=signer,
            context={"signer_data": "0x" + signer_data.hex()}) from exc
    if result != MAGIC_VALUE:
        raise InvalidSignerVerificationError(
            f"Signer {signer} rejected the signature", signer=signer, result=result,
            context={"signer_data": "0x" + signer_data.hex()})


def provision_signers(account, factory: SignerFactory) -> List[str]:
    """create_signer for every alternate key owner of an account about to be deployed."""
    created = []
    for owner in account.owners:
        if getattr(owner, "signer_data", None) is not None:
            created.append(factory.create_signer(owner.signer_data))
    return created
