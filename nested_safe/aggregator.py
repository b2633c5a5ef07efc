"""
Bottom-up signature aggregation over an ownership tree.

At each account the owners' contributions are collected over that account's
own Safe transaction hash:

* a key owner signs the digest (ECDSA slot, or a contract slot for an
  alternate-scheme key);
* a nested account owner is aggregated recursively over its own hash of the
  same request and wrapped as a contract slot tagged with its address;
* the owner that is the next hop on the executor path will be msg.sender of
  this account's execTransaction, so it contributes an approved-hash slot.

Slots are emitted in ascending owner order; verifiers do a single linear scan.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from .encoding import (
    V_APPROVED_HASH,
    address_int,
    encode_signature_bytes,
    encode_static_slot,
)
from .errors import InsufficientSignaturesError, NoTerminalSignersError, OneTimeKeyReuseError
from .hashing import safe_tx_hash
from .log import get_logger
from .request import AuthorizationRequest
from .signers import SignerFactory, verify_with_factory
from .tree import Account, AccountOwner, KeyOwner

logger = get_logger(__name__)

# ============================================================
#  Signature components
# ============================================================

@dataclass(frozen=True)
class EcdsaComponent:
    owner: str
    signature: bytes


@dataclass(frozen=True)
class ApprovedHashComponent:
    owner: str


@dataclass(frozen=True)
class ContractComponent:
    """ERC-1271 style slot: the owner contract validates `data` itself."""
    owner: str
    data: bytes


def encode_components(components) -> bytes:
    slots = []
    for c in sorted(components, key=lambda c: address_int(c.owner)):
        if isinstance(c, EcdsaComponent):
            slots.append((c.owner, c.signature, None))
        elif isinstance(c, ApprovedHashComponent):
            slots.append((c.owner, encode_static_slot(c.owner, 0, V_APPROVED_HASH), None))
        elif isinstance(c, ContractComponent):
            slots.append((c.owner, None, c.data))
        else:
            raise TypeError(f"Unknown signature component {type(c).__name__}")
    return encode_signature_bytes(slots)

# ============================================================
#  Aggregator
# ============================================================

class SignatureAggregator:

    def __init__(self, chain_id: int, signer_factory: Optional[SignerFactory] = None):
        self.chain_id = chain_id
        self.signer_factory = signer_factory

    def aggregate(self, account: Account, request: AuthorizationRequest,
                  signers: Dict[str, object], executor_path: Sequence[Account] = ()) -> bytes:
        """
        Aggregated signature approving `request` on behalf of `account`.

        Raises InsufficientSignaturesError naming the under-threshold account
        (with the failures of its nested accounts, and any one-time key already
        spent elsewhere in the tree, in `causes`), or
        NoTerminalSignersError if recursion reaches an account with no owners.
        """
        return encode_components(self.components(account, request, signers, executor_path))

    def components(self, account: Account, request: AuthorizationRequest,
                   signers: Dict[str, object], executor_path: Sequence[Account] = (),
                   depth: int = 0, visiting=()) -> List[object]:
        digest = safe_tx_hash(account.address, self.chain_id, request)
        return self._collect(account, digest, request, signers, executor_path, depth, visiting)

    def sign_digest(self, account: Account, digest: bytes, signers: Dict[str, object]) -> bytes:
        """Collect key-owner signatures over an explicit digest (e.g. a SafeOp hash)."""
        if any(isinstance(o, AccountOwner) for o in account.owners):
            raise ValueError(f"{account.address} has nested owners; sign_digest needs a key-only account")
        return encode_components(self._collect(account, digest, None, signers, (), 0, ()))

    def _collect(self, account, digest, request, signers, executor_path, depth, visiting):
        if account.address in visiting or not account.owners:
            raise NoTerminalSignersError(
                f"No terminal signers reachable from {account.address}",
                account=account.address, depth=depth)
        visiting = visiting + (account.address,)
        next_hop = _next_hop(account, executor_path)

        components = []
        causes = []
        for owner in account.owners:
            if isinstance(owner, KeyOwner):
                key = signers.get(owner.address)
                if key is None:
                    continue
                try:
                    components.append(self._key_component(owner, key, digest))
                except OneTimeKeyReuseError as exc:
                    logger.warning("one_time_key_reused", account=account.address, depth=depth,
                                   signer=exc.signer)
                    causes.append(OneTimeKeyReuseError(
                        f"{exc} (needed again by {account.address})", signer=exc.signer,
                        account=account.address, depth=depth, context=exc.context))
            elif isinstance(owner, AccountOwner):
                if owner.address == next_hop:
                    components.append(ApprovedHashComponent(owner.address))
                    continue
                try:
                    nested = self.components(owner.account, request, signers,
                                             depth=depth + 1, visiting=visiting)
                except InsufficientSignaturesError as exc:
                    causes.append(exc)
                    continue
                components.append(ContractComponent(owner.address, encode_components(nested)))
            else:
                raise TypeError(f"Unknown owner type {type(owner).__name__}")

        if len(components) < account.threshold:
            raise InsufficientSignaturesError(
                f"{account.address} has {len(components)} of {account.threshold} required signatures",
                account=account.address,
                threshold=account.threshold,
                collected=len(components),
                depth=depth,
                causes=causes,
                context={"digest": "0x" + digest.hex()},
            )
        logger.debug("account_aggregated", account=account.address, depth=depth,
                     collected=len(components), threshold=account.threshold)
        return sorted(components, key=lambda c: address_int(c.owner))

    def _key_component(self, owner: KeyOwner, key, digest: bytes):
        raw = key.sign(digest)
        if not owner.is_alternate:
            return EcdsaComponent(owner.address, raw)
        if self.signer_factory is not None:
            verify_with_factory(self.signer_factory, digest, raw, owner.signer_data, owner.address)
        return ContractComponent(owner.address, raw)


def _next_hop(account: Account, executor_path: Sequence[Account]) -> Optional[str]:
    for i, hop in enumerate(executor_path[:-1]):
        if hop.address == account.address:
            return executor_path[i + 1].address
    return None
