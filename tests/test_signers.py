import pytest
from eth_keys import keys as eth_keys

from nested_safe import wots
from nested_safe.encoding import keccak256
from nested_safe.errors import InvalidSignerVerificationError, OneTimeKeyReuseError
from nested_safe.signers import (
    INVALID_VALUE,
    MAGIC_VALUE,
    WotsKey,
    provision_signers,
    verify_with_factory,
)
from nested_safe.tree import Account, KeyOwner

from .conftest import ecdsa_key, safe_address

DIGEST = keccak256(b"approve me")


class TestWots:

    def test_sign_and_verify(self):
        pk_seed, sk_seed = wots.derive_keypair(b"alice")
        pk_root = wots.public_key(pk_seed, sk_seed)
        sig = wots.sign(pk_seed, sk_seed, DIGEST)

        assert len(sig) == wots.SIG_SIZE
        assert wots.verify(pk_seed, pk_root, DIGEST, sig)

    def test_rejects_other_digest_and_tampering(self):
        pk_seed, sk_seed = wots.derive_keypair(b"alice")
        pk_root = wots.public_key(pk_seed, sk_seed)
        sig = wots.sign(pk_seed, sk_seed, DIGEST)

        assert not wots.verify(pk_seed, pk_root, keccak256(b"other"), sig)
        tampered = bytes([sig[0] ^ 1]) + sig[1:]
        assert not wots.verify(pk_seed, pk_root, DIGEST, tampered)
        assert not wots.verify(pk_seed, pk_root, DIGEST, sig[:-1])

    def test_signer_data_round_trip(self):
        data = wots.encode_signer_data(5, 7)
        assert len(data) == wots.SIGNER_DATA_SIZE
        assert wots.decode_signer_data(data) == (5, 7)
        with pytest.raises(ValueError):
            wots.decode_signer_data(data[:-1])


class TestKeys:

    def test_ecdsa_signature_recovers_to_owner(self):
        key = ecdsa_key(1)
        sig = key.sign(DIGEST)
        assert len(sig) == 65
        assert sig[64] in (27, 28)
        recovered = eth_keys.Signature(
            vrs=(sig[64] - 27, int.from_bytes(sig[:32], "big"), int.from_bytes(sig[32:64], "big"))
        ).recover_public_key_from_msg_hash(DIGEST)
        assert recovered.to_checksum_address() == key.address

    def test_wots_key_is_one_time(self, factory):
        key = WotsKey.from_entropy(b"bob", factory)
        first = key.sign(DIGEST)
        assert key.sign(DIGEST) == first
        with pytest.raises(OneTimeKeyReuseError) as exc_info:
            key.sign(keccak256(b"second message"))
        assert exc_info.value.signer == key.address

    def test_wots_key_address_is_factory_address(self, factory):
        key = WotsKey.from_entropy(b"bob", factory)
        assert key.address == factory.get_signer(key.signer_data)


class TestWotsSignerFactory:

    def test_get_signer_is_stable_across_creation(self, factory, registry):
        key = WotsKey.from_entropy(b"carol", factory)
        before = factory.get_signer(key.signer_data)
        assert factory.get_signer(key.signer_data) == before
        assert not registry.is_deployed(before)

        created = factory.create_signer(key.signer_data)

        assert created == before
        assert factory.get_signer(key.signer_data) == before
        assert registry.is_deployed(before)

    def test_distinct_signer_data_distinct_addresses(self, factory):
        a = WotsKey.from_entropy(b"a", factory)
        b = WotsKey.from_entropy(b"b", factory)
        assert a.address != b.address

    def test_create_signer_is_idempotent(self, factory, registry):
        key = WotsKey.from_entropy(b"carol", factory)
        factory.create_signer(key.signer_data)
        factory.create_signer(key.signer_data)
        assert registry.deploy_calls == [key.address]

    def test_create_signer_rejects_malformed_data(self, factory, registry):
        with pytest.raises(ValueError):
            factory.create_signer(b"\x01" * 10)
        assert registry.deploy_calls == []

    @pytest.mark.parametrize("deployed", [False, True])
    def test_verification_matches_deployed_signer(self, factory, registry, deployed):
        key = WotsKey.from_entropy(b"dave", factory)
        good = key.sign(DIGEST)
        bad = bytes([good[5] ^ 0xFF]).join([good[:5], good[6:]])
        if deployed:
            factory.create_signer(key.signer_data)
        calls_before = list(registry.deploy_calls)

        lazy_good = factory.is_valid_signature_for(DIGEST, good, key.signer_data)
        lazy_bad = factory.is_valid_signature_for(DIGEST, bad, key.signer_data)
        assert registry.deploy_calls == calls_before

        factory.create_signer(key.signer_data)
        signer = factory.signer_at(key.address)
        assert lazy_good == signer.is_valid_signature(DIGEST, good) == MAGIC_VALUE
        assert lazy_bad == signer.is_valid_signature(DIGEST, bad) == INVALID_VALUE

    def test_signer_at_unknown_address(self, factory):
        assert factory.signer_at(safe_address(0x42)) is None


class TestVerifyWithFactory:

    def test_accepts_magic_value(self, factory):
        key = WotsKey.from_entropy(b"erin", factory)
        verify_with_factory(factory, DIGEST, key.sign(DIGEST), key.signer_data, key.address)

    def test_rejects_non_magic_value(self, factory):
        key = WotsKey.from_entropy(b"erin", factory)
        with pytest.raises(InvalidSignerVerificationError) as exc_info:
            verify_with_factory(factory, DIGEST, b"\x00" * wots.SIG_SIZE, key.signer_data,
                                key.address)
        assert exc_info.value.result == INVALID_VALUE
        assert exc_info.value.signer == key.address

    def test_aborting_factory_counts_as_invalid(self, factory):
        with pytest.raises(InvalidSignerVerificationError) as exc_info:
            verify_with_factory(factory, DIGEST, b"sig", b"\x01" * 3)
        assert exc_info.value.result is None
        assert isinstance(exc_info.value.__cause__, ValueError)


def test_provision_signers_creates_only_alternate_owners(factory, registry):
    wots_key = WotsKey.from_entropy(b"frank", factory)
    account = Account(safe_address(0x10), (
        KeyOwner(ecdsa_key(1).address),
        KeyOwner(wots_key.address, signer_data=wots_key.signer_data),
    ), 1)

    assert provision_signers(account, factory) == [wots_key.address]
    assert provision_signers(account, factory) == [wots_key.address]
    assert registry.deploy_calls == [wots_key.address]
