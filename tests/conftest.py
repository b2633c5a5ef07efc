"""Pytest configuration and shared fixtures."""

import pytest

from nested_safe.encoding import keccak256
from nested_safe.request import AuthorizationRequest, GasParameters, ValidityWindow
from nested_safe.signers import EcdsaKey, InMemorySignerRegistry, WotsSignerFactory
from nested_safe.tree import Account, AccountOwner, KeyOwner

CHAIN_ID = 11155111
MODULE = "0x75cf11467937ce3F2f357CE24ffc3DBF8fD5c226"
ENTRY_POINT = "0x0000000071727De22E5E9d8BAf0edAc6f37da032"
TOKEN = "0x" + "77" * 20


def ecdsa_key(i: int) -> EcdsaKey:
    return EcdsaKey(i.to_bytes(32, "big"))


def safe_address(i: int) -> str:
    return "0x" + f"{i:02x}" * 20


def key_account(address, *keys, threshold=1, **kwargs) -> Account:
    return Account(address, tuple(KeyOwner(k.address) for k in keys), threshold, **kwargs)


def nested(account: Account) -> AccountOwner:
    return AccountOwner(account)


@pytest.fixture
def keys():
    """Six deterministic ECDSA keys."""
    return [ecdsa_key(i) for i in range(1, 7)]


@pytest.fixture
def registry():
    return InMemorySignerRegistry()


@pytest.fixture
def factory(registry):
    return WotsSignerFactory("0x" + "aa" * 20, keccak256(b"wots-signer-proxy"), registry)


@pytest.fixture
def gas():
    return GasParameters(
        verification_gas_limit=500_000,
        call_gas_limit=200_000,
        pre_verification_gas=60_000,
        max_fee_per_gas=30 * 10**9,
        max_priority_fee_per_gas=2 * 10**9,
    )


@pytest.fixture
def request_(gas):
    """ERC-20 transfer out of the root Safe."""
    transfer = bytes.fromhex("a9059cbb") + b"\x00" * 12 + b"\x11" * 20 + (42).to_bytes(32, "big")
    return AuthorizationRequest(
        to=TOKEN,
        value=0,
        data=transfer,
        nonce=3,
        gas=gas,
        window=ValidityWindow(valid_after=1_700_000_000, valid_until=1_700_000_300),
    )
