"""
Domain-separated hashes.

safe_tx_hash is the per-account authorization digest: EIP-712 with the
account address as verifyingContract and the chain id in the domain, so a
signature for one Safe (or one chain) never validates for another. Every
request field is in the preimage, the relay parameters included.

safe_op_hash and user_operation_hash cover the relayed operation itself.
"""

from eth_abi import encode

from .encoding import keccak256
from .request import AuthorizationRequest, GasParameters, ValidityWindow

# ============================================================
#  Type hashes
# ============================================================

DOMAIN_SEPARATOR_TYPEHASH = keccak256(
    b"EIP712Domain(uint256 chainId,address verifyingContract)"
)

SAFE_TX_TYPEHASH = keccak256(
    b"SafeTx(address to,uint256 value,bytes data,uint8 operation,uint256 safeTxGas,"
    b"uint256 baseGas,uint256 gasPrice,address gasToken,address refundReceiver,uint256 nonce)"
)

# SafeTx plus the relay parameters, as an EIP-712 nested struct
RELAY_PARAMS_TYPE = (
    b"RelayParams(uint128 verificationGasLimit,uint128 callGasLimit,uint256 preVerificationGas,"
    b"uint128 maxPriorityFeePerGas,uint128 maxFeePerGas,bytes paymasterAndData,"
    b"uint48 validAfter,uint48 validUntil)"
)
RELAY_PARAMS_TYPEHASH = keccak256(RELAY_PARAMS_TYPE)

RELAYED_SAFE_TX_TYPEHASH = keccak256(
    b"RelayedSafeTx(address to,uint256 value,bytes data,uint8 operation,uint256 safeTxGas,"
    b"uint256 baseGas,uint256 gasPrice,address gasToken,address refundReceiver,uint256 nonce,"
    b"RelayParams relay)" + RELAY_PARAMS_TYPE
)

SAFE_OP_TYPEHASH = keccak256(
    b"SafeOp(address safe,uint256 nonce,bytes initCode,bytes callData,"
    b"uint128 verificationGasLimit,uint128 callGasLimit,uint256 preVerificationGas,"
    b"uint128 maxPriorityFeePerGas,uint128 maxFeePerGas,bytes paymasterAndData,"
    b"uint48 validAfter,uint48 validUntil,address entryPoint)"
)

# ============================================================
#  EIP-712
# ============================================================

def domain_separator(chain_id: int, verifying_contract: str) -> bytes:
    return keccak256(encode(
        ["bytes32", "uint256", "address"],
        [DOMAIN_SEPARATOR_TYPEHASH, chain_id, verifying_contract],
    ))


def _typed_digest(domain: bytes, struct_hash: bytes) -> bytes:
    return keccak256(b"\x19\x01" + domain + struct_hash)


def has_relay_params(request: AuthorizationRequest) -> bool:
    window = request.window
    return (request.gas is not None or bool(request.paymaster_and_data) or
            (window is not None and (window.valid_after or window.valid_until)))


def relay_params_hash(request: AuthorizationRequest) -> bytes:
    gas = request.gas or GasParameters(0, 0, 0, 0, 0)
    window = request.window or ValidityWindow()
    return keccak256(encode(
        ["bytes32", "uint128", "uint128", "uint256", "uint128", "uint128", "bytes32",
         "uint48", "uint48"],
        [
            RELAY_PARAMS_TYPEHASH,
            gas.verification_gas_limit,
            gas.call_gas_limit,
            gas.pre_verification_gas,
            gas.max_priority_fee_per_gas,
            gas.max_fee_per_gas,
            keccak256(request.paymaster_and_data),
            window.valid_after,
            window.valid_until,
        ]
    ))


def safe_tx_hash(account_address: str, chain_id: int, request: AuthorizationRequest) -> bytes:
    """
    Digest the owners of `account_address` sign to approve `request`.

    A request without relay parameters hashes as Safe's own SafeTx. Once gas,
    a validity window or paymaster data are set, the RelayedSafeTx type binds
    them too.
    """
    types = ["bytes32", "address", "uint256", "bytes32", "uint8", "uint256",
             "uint256", "uint256", "address", "address", "uint256"]
    values = [
        SAFE_TX_TYPEHASH,
        request.to,
        request.value,
        keccak256(request.data),
        int(request.operation),
        request.safe_tx_gas,
        request.base_gas,
        request.gas_price,
        request.gas_token,
        request.refund_receiver,
        request.nonce,
    ]
    if has_relay_params(request):
        values[0] = RELAYED_SAFE_TX_TYPEHASH
        types.append("bytes32")
        values.append(relay_params_hash(request))
    struct_hash = keccak256(encode(types, values))
    return _typed_digest(domain_separator(chain_id, account_address), struct_hash)


def safe_op_hash(user_op, window, chain_id: int, module: str, entry_point: str) -> bytes:
    """
    SafeOp digest checked by the Safe 4337 module when the executor account
    validates a user operation. The validity window is signed here and
    travels in front of the signature bytes.
    """
    window = window or ValidityWindow()
    struct_hash = keccak256(encode(
        ["bytes32", "address", "uint256", "bytes32", "bytes32", "uint128", "uint128",
         "uint256", "uint128", "uint128", "bytes32", "uint48", "uint48", "address"],
        [
            SAFE_OP_TYPEHASH,
            user_op.sender,
            user_op.nonce,
            keccak256(user_op.init_code),
            keccak256(user_op.call_data),
            user_op.verification_gas_limit,
            user_op.call_gas_limit,
            user_op.pre_verification_gas,
            user_op.max_priority_fee_per_gas,
            user_op.max_fee_per_gas,
            keccak256(user_op.paymaster_and_data),
            window.valid_after,
            window.valid_until,
            entry_point,
        ]
    ))
    return _typed_digest(domain_separator(chain_id, module), struct_hash)


def user_operation_hash(user_op, entry_point: str, chain_id: int) -> bytes:
    """EntryPoint v0.7 userOpHash: keccak256(abi.encode(keccak256(pack(op)), entryPoint, chainId))."""
    packed = encode(
        ["address", "uint256", "bytes32", "bytes32", "bytes32", "uint256", "bytes32", "bytes32"],
        [
            user_op.sender,
            user_op.nonce,
            keccak256(user_op.init_code),
            keccak256(user_op.call_data),
            user_op.account_gas_limits,
            user_op.pre_verification_gas,
            user_op.gas_fees,
            keccak256(user_op.paymaster_and_data),
        ]
    )
    return keccak256(encode(
        ["bytes32", "address", "uint256"],
        [keccak256(packed), entry_point, chain_id],
    ))
