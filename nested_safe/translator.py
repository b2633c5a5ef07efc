"""
Translate an authorization request plus its aggregated signature into an
ERC-4337 (EntryPoint v0.7) user operation sent by a Safe with the 4337 module.
"""

from dataclasses import dataclass, field, replace
from typing import Optional

from eth_abi import encode

from .encoding import checksum, hex_to_bytes, selector, to_hex, to_uint
from .errors import IncompleteOperationError
from .request import AuthorizationRequest, ValidityWindow

EXECUTE_USER_OP_SELECTOR = selector(b"executeUserOp(address,uint256,bytes,uint8)")
EXEC_TRANSACTION_SELECTOR = selector(
    b"execTransaction(address,uint256,bytes,uint8,uint256,uint256,uint256,address,address,bytes)"
)


@dataclass(frozen=True)
class AccountMeta:
    """What the translator needs to know about the originating account."""
    address: str
    deployed: bool = True
    init_code: Optional[bytes] = field(default=None, repr=False)

    @classmethod
    def of(cls, account) -> "AccountMeta":
        return cls(address=account.address, deployed=account.deployed, init_code=account.init_code)


@dataclass(frozen=True)
class UserOperation:
    sender: str
    nonce: int
    init_code: bytes
    call_data: bytes
    verification_gas_limit: int
    call_gas_limit: int
    pre_verification_gas: int
    max_fee_per_gas: int
    max_priority_fee_per_gas: int
    paymaster_and_data: bytes = b""
    signature: bytes = b""

    @property
    def account_gas_limits(self) -> bytes:
        # uint128(verificationGasLimit) || uint128(callGasLimit)
        return to_uint(self.verification_gas_limit, 16) + to_uint(self.call_gas_limit, 16)

    @property
    def gas_fees(self) -> bytes:
        # uint128(maxPriorityFeePerGas) || uint128(maxFeePerGas)
        return to_uint(self.max_priority_fee_per_gas, 16) + to_uint(self.max_fee_per_gas, 16)

    def packed(self):
        """PackedUserOperation tuple for EntryPoint.handleOps."""
        return (
            self.sender,
            self.nonce,
            self.init_code,
            self.call_data,
            self.account_gas_limits,
            self.pre_verification_gas,
            self.gas_fees,
            self.paymaster_and_data,
            self.signature,
        )

    def to_rpc(self) -> dict:
        """Unpacked JSON-RPC form accepted by v0.7 bundlers (eth_sendUserOperation)."""
        op = {
            "sender": self.sender,
            "nonce": hex(self.nonce),
            "callData": to_hex(self.call_data),
            "callGasLimit": hex(self.call_gas_limit),
            "verificationGasLimit": hex(self.verification_gas_limit),
            "preVerificationGas": hex(self.pre_verification_gas),
            "maxFeePerGas": hex(self.max_fee_per_gas),
            "maxPriorityFeePerGas": hex(self.max_priority_fee_per_gas),
            "signature": to_hex(self.signature),
        }
        if self.init_code:
            op["factory"] = checksum(self.init_code[:20])
            op["factoryData"] = to_hex(self.init_code[20:])
        if self.paymaster_and_data:
            pm = self.paymaster_and_data
            op["paymaster"] = checksum(pm[:20])
            op["paymasterVerificationGasLimit"] = hex(int.from_bytes(pm[20:36], "big"))
            op["paymasterPostOpGasLimit"] = hex(int.from_bytes(pm[36:52], "big"))
            op["paymasterData"] = to_hex(pm[52:])
        return op

# ============================================================
#  Call data
# ============================================================

def execute_user_op_calldata(request: AuthorizationRequest) -> bytes:
    """Safe4337Module.executeUserOp(to, value, data, operation)"""
    return EXECUTE_USER_OP_SELECTOR + encode(
        ["address", "uint256", "bytes", "uint8"],
        [request.to, request.value, request.data, int(request.operation)],
    )


def exec_transaction_calldata(request: AuthorizationRequest, signatures: bytes) -> bytes:
    """Safe.execTransaction for `request` approved by `signatures`."""
    return EXEC_TRANSACTION_SELECTOR + encode(
        ["address", "uint256", "bytes", "uint8", "uint256", "uint256", "uint256",
         "address", "address", "bytes"],
        [
            request.to,
            request.value,
            request.data,
            int(request.operation),
            request.safe_tx_gas,
            request.base_gas,
            request.gas_price,
            request.gas_token,
            request.refund_receiver,
            signatures,
        ],
    )

# ============================================================
#  Translation
# ============================================================

def unsigned_operation(request: AuthorizationRequest, meta: AccountMeta) -> UserOperation:
    """Every field except the signature. Raises IncompleteOperationError."""
    if not meta.address:
        raise IncompleteOperationError("Relay operation needs a sender", field="sender")
    if not request.to:
        raise IncompleteOperationError("Relay operation needs a call target", field="to")
    if request.gas is None:
        raise IncompleteOperationError("Relay operation needs gas parameters", field="gas",
                                       context={"sender": meta.address})
    init_code = b""
    if not meta.deployed:
        if not meta.init_code:
            raise IncompleteOperationError(
                f"{meta.address} is not deployed and no init code was supplied",
                field="init_code", context={"sender": meta.address})
        init_code = hex_to_bytes(meta.init_code)

    gas = request.gas
    return UserOperation(
        sender=checksum(meta.address),
        nonce=request.nonce,
        init_code=init_code,
        call_data=execute_user_op_calldata(request),
        verification_gas_limit=gas.verification_gas_limit,
        call_gas_limit=gas.call_gas_limit,
        pre_verification_gas=gas.pre_verification_gas,
        max_fee_per_gas=gas.max_fee_per_gas,
        max_priority_fee_per_gas=gas.max_priority_fee_per_gas,
        paymaster_and_data=request.paymaster_and_data,
    )


def encode_relay_signature(window: Optional[ValidityWindow], signature: bytes) -> bytes:
    """uint48 validAfter || uint48 validUntil || aggregated signature"""
    window = window or ValidityWindow()
    return to_uint(window.valid_after, 6) + to_uint(window.valid_until, 6) + signature


def to_relay_operation(request: AuthorizationRequest, signature: bytes,
                       meta: AccountMeta) -> UserOperation:
    op = unsigned_operation(request, meta)
    if not signature:
        raise IncompleteOperationError("Relay operation needs a signature", field="signature",
                                       context={"sender": op.sender})
    return replace(op, signature=encode_relay_signature(request.window, signature))
