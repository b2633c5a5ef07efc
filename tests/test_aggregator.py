import pytest

from nested_safe.aggregator import SignatureAggregator
from nested_safe.encoding import SIGNATURE_SLOT_LENGTH, address_int, checksum
from nested_safe.errors import (
    InsufficientSignaturesError,
    InvalidSignatureError,
    InvalidSignerVerificationError,
    NoTerminalSignersError,
    OneTimeKeyReuseError,
)
from nested_safe.hashing import safe_tx_hash
from nested_safe.signers import INVALID_VALUE, SignerFactory, WotsKey, signer_map
from nested_safe.tree import Account, KeyOwner
from nested_safe.verifier import SignatureVerifier

from .conftest import CHAIN_ID, key_account, nested, safe_address


def slots(signature: bytes, count: int):
    """(owner, s, v) per static slot."""
    out = []
    for i in range(count):
        slot = signature[i * SIGNATURE_SLOT_LENGTH:(i + 1) * SIGNATURE_SLOT_LENGTH]
        out.append((slot[:32], int.from_bytes(slot[32:64], "big"), slot[64]))
    return out


def dynamic_part(signature: bytes, offset: int) -> bytes:
    length = int.from_bytes(signature[offset:offset + 32], "big")
    return signature[offset + 32:offset + 32 + length]


@pytest.fixture
def aggregator():
    return SignatureAggregator(CHAIN_ID)


@pytest.fixture
def verifier():
    return SignatureVerifier(CHAIN_ID)


class TestKeyOnlyAccounts:

    def test_one_of_one_equals_raw_signature(self, aggregator, keys, request_):
        account = key_account(safe_address(0x10), keys[0])
        signature = aggregator.aggregate(account, request_, signer_map(keys[0]))
        assert signature == keys[0].sign(safe_tx_hash(account.address, CHAIN_ID, request_))

    def test_one_of_one_without_key_fails(self, aggregator, keys, request_):
        account = key_account(safe_address(0x10), keys[0])
        with pytest.raises(InsufficientSignaturesError) as exc_info:
            aggregator.aggregate(account, request_, signer_map(keys[1]))
        err = exc_info.value
        assert err.account == account.address
        assert err.deficit == 1
        assert err.depth == 0

    def test_two_of_two_needs_both_over_account_hash(self, aggregator, verifier, keys, request_):
        b, c = keys[0], keys[1]
        account = key_account(safe_address(0x10), b, c, threshold=2)
        digest = safe_tx_hash(account.address, CHAIN_ID, request_)

        signature = aggregator.aggregate(account, request_, signer_map(b, c))

        first, second = sorted((b, c), key=lambda k: address_int(k.address))
        assert signature == first.sign(digest) + second.sign(digest)
        verifier.check_request(account, request_, signature)

        with pytest.raises(InsufficientSignaturesError) as exc_info:
            aggregator.aggregate(account, request_, signer_map(b))
        assert exc_info.value.account == account.address
        assert exc_info.value.deficit == 1

    def test_output_sorted_regardless_of_signer_order(self, aggregator, keys, request_):
        account = key_account(safe_address(0x10), *keys[:4], threshold=3)
        forward = aggregator.aggregate(account, request_, signer_map(*keys[:4]))
        backward = aggregator.aggregate(account, request_, signer_map(*reversed(keys[:4])))
        assert forward == backward

        digest = safe_tx_hash(account.address, CHAIN_ID, request_)
        expected = sorted(keys[:4], key=lambda k: address_int(k.address))
        assert forward == b"".join(k.sign(digest) for k in expected)

    def test_monotonic_deficit(self, aggregator, keys, request_):
        account = key_account(safe_address(0x10), *keys[:3], threshold=3)
        for present in range(3):
            with pytest.raises(InsufficientSignaturesError) as exc_info:
                aggregator.aggregate(account, request_, signer_map(*keys[:present]))
            assert exc_info.value.collected == present
            assert exc_info.value.deficit == 3 - present
        assert aggregator.aggregate(account, request_, signer_map(*keys[:3]))

    def test_extra_signers_are_ignored(self, aggregator, keys, request_):
        account = key_account(safe_address(0x10), keys[0])
        with_extra = aggregator.aggregate(account, request_, signer_map(keys[0], keys[5]))
        assert with_extra == aggregator.aggregate(account, request_, signer_map(keys[0]))


class TestNestedAccounts:

    @pytest.fixture
    def three_level(self, keys):
        d, e = keys[0], keys[1]
        middle = key_account(safe_address(0x20), e)
        root = Account(safe_address(0x10), (nested(middle), KeyOwner(d.address)), 2)
        return root, middle, d, e

    def test_composite_wraps_child_signature(self, aggregator, verifier, three_level, request_):
        root, middle, d, e = three_level
        signature = aggregator.aggregate(root, request_, signer_map(d, e))

        root_digest = safe_tx_hash(root.address, CHAIN_ID, request_)
        middle_digest = safe_tx_hash(middle.address, CHAIN_ID, request_)
        assert root_digest != middle_digest

        parsed = {}
        for owner_word, s, v in slots(signature, 2):
            if v == 0:
                parsed[checksum(owner_word[12:])] = ("contract", dynamic_part(signature, s))
            else:
                parsed["ecdsa"] = v
        assert parsed[middle.address] == ("contract", e.sign(middle_digest))
        assert d.sign(root_digest) in signature[:2 * SIGNATURE_SLOT_LENGTH]

        verifier.check_request(root, request_, signature)

    def test_slots_ordered_across_owner_kinds(self, aggregator, three_level, request_):
        root, middle, d, e = three_level
        signature = aggregator.aggregate(root, request_, signer_map(e, d))
        digest = safe_tx_hash(root.address, CHAIN_ID, request_)
        middle_first = address_int(middle.address) < address_int(d.address)
        contract_slot = 0 if middle_first else 1
        assert slots(signature, 2)[contract_slot][2] == 0
        assert signature[(1 - contract_slot) * 65:(2 - contract_slot) * 65] == d.sign(digest)

    def test_child_failure_reported_as_cause(self, aggregator, three_level, request_):
        root, middle, d, e = three_level
        with pytest.raises(InsufficientSignaturesError) as exc_info:
            aggregator.aggregate(root, request_, signer_map(d))
        err = exc_info.value
        assert err.account == root.address
        assert err.deficit == 1
        assert [c.account for c in err.causes] == [middle.address]
        assert err.causes[0].depth == 1

    def test_child_failure_tolerated_when_threshold_met(self, aggregator, verifier, keys, request_):
        d, e = keys[0], keys[1]
        middle = key_account(safe_address(0x20), e)
        root = Account(safe_address(0x10), (nested(middle), KeyOwner(d.address)), 1)
        signature = aggregator.aggregate(root, request_, signer_map(d))
        assert signature == d.sign(safe_tx_hash(root.address, CHAIN_ID, request_))
        verifier.check_request(root, request_, signature)

    def test_path_hop_is_approved_hash(self, aggregator, verifier, three_level, request_):
        root, middle, d, e = three_level
        signature = aggregator.aggregate(root, request_, signer_map(d), executor_path=(root, middle))

        approved = [s for s in slots(signature, 2) if s[2] == 1]
        assert len(approved) == 1
        assert checksum(approved[0][0][12:]) == middle.address
        verifier.check_request(root, request_, signature, sender=middle.address)
        with pytest.raises(InvalidSignatureError):
            verifier.check_request(root, request_, signature)

    def test_deep_chain(self, aggregator, verifier, keys, request_):
        account = key_account(safe_address(0x40), keys[0])
        for i in (0x30, 0x20, 0x10):
            account = Account(safe_address(i), (nested(account),), 1)
        signature = aggregator.aggregate(account, request_, signer_map(keys[0]))
        verifier.check_request(account, request_, signature)

    def test_no_terminal_signers(self, aggregator, keys, request_):
        empty = Account(safe_address(0x20), (), 1)
        root = Account(safe_address(0x10), (nested(empty), KeyOwner(keys[0].address)), 1)
        with pytest.raises(NoTerminalSignersError) as exc_info:
            aggregator.aggregate(root, request_, signer_map(keys[0]))
        assert exc_info.value.account == empty.address
        assert exc_info.value.depth == 1


class TestAlternateSigners:

    def test_wots_owner_gets_contract_slot(self, factory, keys, request_):
        wots_key = WotsKey.from_entropy(b"alt", factory)
        account = Account(safe_address(0x10), (
            KeyOwner(keys[0].address),
            KeyOwner(wots_key.address, signer_data=wots_key.signer_data),
        ), 2)
        aggregator = SignatureAggregator(CHAIN_ID, factory)

        signature = aggregator.aggregate(account, request_, signer_map(keys[0], wots_key))

        contract = [s for s in slots(signature, 2) if s[2] == 0]
        assert checksum(contract[0][0][12:]) == wots_key.address
        SignatureVerifier(CHAIN_ID, factory).check_request(account, request_, signature)

    def test_rejecting_factory_raises(self, keys, request_, factory):
        class RejectingFactory(SignerFactory):
            def get_signer(self, signer_data):
                return factory.get_signer(signer_data)

            def create_signer(self, signer_data):
                return factory.create_signer(signer_data)

            def is_valid_signature_for(self, data, signature, signer_data):
                return INVALID_VALUE

        wots_key = WotsKey.from_entropy(b"alt", factory)
        account = Account(safe_address(0x10), (
            KeyOwner(wots_key.address, signer_data=wots_key.signer_data),
        ), 1)
        with pytest.raises(InvalidSignerVerificationError) as exc_info:
            SignatureAggregator(CHAIN_ID, RejectingFactory()).aggregate(
                account, request_, signer_map(wots_key))
        assert exc_info.value.signer == wots_key.address

    @pytest.fixture
    def shared_key_tree(self, factory):
        """root owned by child and by the same WOTS key that owns child."""
        wots_key = WotsKey.from_entropy(b"shared", factory)
        owner = KeyOwner(wots_key.address, signer_data=wots_key.signer_data)
        child = Account(safe_address(0x20), (owner,), 1)
        return wots_key, owner, child

    def test_shared_one_time_key_signs_once(self, factory, shared_key_tree, request_):
        wots_key, owner, child = shared_key_tree
        root = Account(safe_address(0x10), (nested(child), owner), 1)

        signature = SignatureAggregator(CHAIN_ID, factory).aggregate(
            root, request_, signer_map(wots_key))

        (owner_word, _, v), = slots(signature, 1)
        assert (checksum(owner_word[12:]), v) == (child.address, 0)
        SignatureVerifier(CHAIN_ID, factory).check_request(root, request_, signature)

    def test_shared_one_time_key_reported_as_cause(self, factory, shared_key_tree, request_):
        wots_key, owner, child = shared_key_tree
        root = Account(safe_address(0x10), (nested(child), owner), 2)

        with pytest.raises(InsufficientSignaturesError) as exc_info:
            SignatureAggregator(CHAIN_ID, factory).aggregate(root, request_, signer_map(wots_key))

        err = exc_info.value
        assert err.account == root.address
        assert err.deficit == 1
        reuse, = err.causes
        assert isinstance(reuse, OneTimeKeyReuseError)
        assert reuse.signer == wots_key.address
        assert (reuse.account, reuse.depth) == (root.address, 0)


class TestVerifierRejects:

    def test_reordered_slots(self, aggregator, verifier, keys, request_):
        account = key_account(safe_address(0x10), keys[0], keys[1], threshold=2)
        signature = aggregator.aggregate(account, request_, signer_map(keys[0], keys[1]))
        swapped = signature[65:130] + signature[:65]
        with pytest.raises(InvalidSignatureError):
            verifier.check_request(account, request_, swapped)

    def test_tampered_nested_signature(self, aggregator, verifier, keys, request_):
        middle = key_account(safe_address(0x20), keys[1])
        root = Account(safe_address(0x10), (nested(middle),), 1)
        signature = bytearray(aggregator.aggregate(root, request_, signer_map(keys[1])))
        signature[-10] ^= 0x01
        with pytest.raises(InvalidSignatureError) as exc_info:
            verifier.check_request(root, request_, bytes(signature))
        assert exc_info.value.account == middle.address
        assert exc_info.value.depth == 1

    def test_signature_for_other_account(self, aggregator, verifier, keys, request_):
        a = key_account(safe_address(0x10), keys[0])
        b = key_account(safe_address(0x11), keys[0])
        signature = aggregator.aggregate(a, request_, signer_map(keys[0]))
        with pytest.raises(InvalidSignatureError):
            verifier.check_request(b, request_, signature)

    def test_too_short(self, verifier, keys, request_):
        account = key_account(safe_address(0x10), keys[0], keys[1], threshold=2)
        with pytest.raises(InvalidSignatureError):
            verifier.check_request(account, request_, b"\x00" * 65)
