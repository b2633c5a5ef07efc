"""
Off-chain model of Safe's checkNSignatures, applied recursively.

The verifier never needs to know the tree depth: it reads exactly `threshold`
slots from the signature, and a contract slot belonging to a nested account
sends it one level down with that account's own hash of the same request.
Used to check aggregates before spending gas on a submission.
"""

from typing import Optional

from eth_keys import keys
from eth_keys.exceptions import BadSignature, ValidationError

from .encoding import (
    SIGNATURE_SLOT_LENGTH,
    V_APPROVED_HASH,
    V_CONTRACT,
    address_int,
    checksum,
)
from .errors import InvalidSignatureError
from .hashing import safe_tx_hash
from .signers import SignerFactory, verify_with_factory
from .tree import Account, AccountOwner, KeyOwner


class SignatureVerifier:

    def __init__(self, chain_id: int, signer_factory: Optional[SignerFactory] = None):
        self.chain_id = chain_id
        self.signer_factory = signer_factory

    def check_request(self, account: Account, request, signature: bytes,
                      sender: Optional[str] = None, depth: int = 0) -> None:
        digest = safe_tx_hash(account.address, self.chain_id, request)
        self.check(account, digest, request, signature, sender=sender, depth=depth)

    def check(self, account: Account, digest: bytes, request, signature: bytes,
              sender: Optional[str] = None, depth: int = 0) -> None:
        """
        Raise InvalidSignatureError (or InvalidSignerVerificationError for an
        alternate signer) unless `signature` carries `account.threshold` valid
        owner approvals of `digest` in strictly ascending owner order.
        `request` is needed only when nested accounts appear in the signature.
        """
        threshold = account.threshold
        if len(signature) < threshold * SIGNATURE_SLOT_LENGTH:
            self._fail(account, depth, f"signature has {len(signature)} bytes, "
                                       f"need {threshold} slots")

        last_owner = -1
        for i in range(threshold):
            slot = signature[i * SIGNATURE_SLOT_LENGTH:(i + 1) * SIGNATURE_SLOT_LENGTH]
            r = int.from_bytes(slot[:32], "big")
            s = int.from_bytes(slot[32:64], "big")
            v = slot[64]

            if v == V_CONTRACT:
                owner_address = self._word_address(account, depth, r)
                data = self._dynamic_part(account, depth, signature, s, threshold)
                self._check_contract(account, depth, owner_address, digest, request, data)
            elif v == V_APPROVED_HASH:
                owner_address = self._word_address(account, depth, r)
                if sender is None or checksum(sender) != owner_address:
                    self._fail(account, depth, f"approved hash from {owner_address} "
                                               f"but caller is {sender}")
            elif v in (27, 28):
                owner_address = self._recover(account, depth, digest, r, s, v)
                owner = account.owner(owner_address)
                if not isinstance(owner, KeyOwner) or owner.is_alternate:
                    self._fail(account, depth, f"ECDSA signer {owner_address} is not a key owner")
            else:
                self._fail(account, depth, f"unsupported signature type v={v}")

            if account.owner(owner_address) is None:
                self._fail(account, depth, f"{owner_address} is not an owner")
            if address_int(owner_address) <= last_owner:
                self._fail(account, depth, "owners are not in strictly ascending order")
            last_owner = address_int(owner_address)

    def _check_contract(self, account, depth, owner_address, digest, request, data):
        owner = account.owner(owner_address)
        if isinstance(owner, AccountOwner):
            if request is None:
                self._fail(account, depth, f"nested signature from {owner_address} needs the request")
            self.check_request(owner.account, request, data, depth=depth + 1)
        elif isinstance(owner, KeyOwner) and owner.is_alternate:
            if self.signer_factory is None:
                self._fail(account, depth, f"no signer factory to verify {owner_address}")
            verify_with_factory(self.signer_factory, digest, data, owner.signer_data, owner_address)
        else:
            self._fail(account, depth, f"{owner_address} cannot produce a contract signature")

    def _word_address(self, account, depth, word: int) -> str:
        if word >> 160:
            self._fail(account, depth, "owner word is not an address")
        return checksum(word.to_bytes(20, "big"))

    def _dynamic_part(self, account, depth, signature, offset, threshold) -> bytes:
        if offset < threshold * SIGNATURE_SLOT_LENGTH:
            self._fail(account, depth, "contract signature offset points into the static part")
        if offset + 32 > len(signature):
            self._fail(account, depth, "contract signature offset out of bounds")
        length = int.from_bytes(signature[offset:offset + 32], "big")
        if offset + 32 + length > len(signature):
            self._fail(account, depth, "contract signature length out of bounds")
        return signature[offset + 32:offset + 32 + length]

    def _recover(self, account, depth, digest, r, s, v) -> str:
        try:
            public_key = keys.Signature(vrs=(v - 27, r, s)).recover_public_key_from_msg_hash(digest)
        except (BadSignature, ValidationError) as exc:
            raise InvalidSignatureError(f"{account.address}: unrecoverable ECDSA signature",
                                        account=account.address, depth=depth) from exc
        return checksum(public_key.to_checksum_address())

    def _fail(self, account, depth, reason):
        raise InvalidSignatureError(f"{account.address}: {reason}",
                                    account=account.address, depth=depth)
