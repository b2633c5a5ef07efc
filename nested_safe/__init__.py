"""
Nested Safe authorization for ERC-4337 relays.

A Safe owned by other Safes (recursively, down to key holders) approves one
operation; the signatures are aggregated bottom-up and the result is sent
from a key-only leaf Safe through an ERC-4337 bundler.
"""

from .aggregator import SignatureAggregator
from .builder import NestedOperation, build_nested_user_operation
from .errors import (
    BundlerError,
    IncompleteOperationError,
    InsufficientSignaturesError,
    InvalidOwnershipTreeError,
    InvalidSignatureError,
    InvalidSignerVerificationError,
    NestedSafeError,
    NoExecutorFoundError,
    NoTerminalSignersError,
    OneTimeKeyReuseError,
)
from .executor import find_executor_path
from .hashing import safe_op_hash, safe_tx_hash, user_operation_hash
from .request import AuthorizationRequest, GasParameters, Operation, ValidityWindow
from .signers import (
    MAGIC_VALUE,
    EcdsaKey,
    InMemorySignerRegistry,
    SignerFactory,
    WotsKey,
    WotsSignerFactory,
    provision_signers,
    signer_map,
)
from .translator import AccountMeta, UserOperation, to_relay_operation
from .tree import Account, AccountOwner, KeyOwner, OwnershipTree, load_tree
from .verifier import SignatureVerifier

__all__ = [
    "Account",
    "AccountMeta",
    "AccountOwner",
    "AuthorizationRequest",
    "BundlerError",
    "EcdsaKey",
    "GasParameters",
    "InMemorySignerRegistry",
    "IncompleteOperationError",
    "InsufficientSignaturesError",
    "InvalidOwnershipTreeError",
    "InvalidSignatureError",
    "InvalidSignerVerificationError",
    "KeyOwner",
    "MAGIC_VALUE",
    "NestedOperation",
    "NestedSafeError",
    "NoExecutorFoundError",
    "NoTerminalSignersError",
    "OneTimeKeyReuseError",
    "Operation",
    "OwnershipTree",
    "SignatureAggregator",
    "SignatureVerifier",
    "SignerFactory",
    "UserOperation",
    "ValidityWindow",
    "WotsKey",
    "WotsSignerFactory",
    "build_nested_user_operation",
    "find_executor_path",
    "load_tree",
    "provision_signers",
    "safe_op_hash",
    "safe_tx_hash",
    "signer_map",
    "to_relay_operation",
    "user_operation_hash",
]
