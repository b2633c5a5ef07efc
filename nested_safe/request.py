"""Authorization request: the payload an account is asked to approve."""

from dataclasses import dataclass, field, replace
from enum import IntEnum
from typing import Optional

from .encoding import ZERO_ADDRESS, checksum, hex_to_bytes


class Operation(IntEnum):
    CALL = 0
    DELEGATECALL = 1


@dataclass(frozen=True)
class GasParameters:
    verification_gas_limit: int
    call_gas_limit: int
    pre_verification_gas: int
    max_fee_per_gas: int
    max_priority_fee_per_gas: int


@dataclass(frozen=True)
class ValidityWindow:
    """Unix seconds; 0 means unbounded on that side."""
    valid_after: int = 0
    valid_until: int = 0

    def __post_init__(self):
        for name in ("valid_after", "valid_until"):
            value = getattr(self, name)
            if not 0 <= value < 1 << 48:
                raise ValueError(f"{name} must fit in uint48, got {value}")
        if self.valid_until and self.valid_after > self.valid_until:
            raise ValueError("valid_after is later than valid_until")


@dataclass(frozen=True)
class AuthorizationRequest:
    to: str
    value: int = 0
    data: bytes = field(default=b"", repr=False)
    operation: Operation = Operation.CALL
    nonce: int = 0
    # Safe refund parameters, part of the Safe transaction hash
    safe_tx_gas: int = 0
    base_gas: int = 0
    gas_price: int = 0
    gas_token: str = ZERO_ADDRESS
    refund_receiver: str = ZERO_ADDRESS
    # relay parameters, only used by the account that originates the operation
    gas: Optional[GasParameters] = None
    window: Optional[ValidityWindow] = None
    paymaster_and_data: bytes = field(default=b"", repr=False)

    def __post_init__(self):
        if self.to:
            object.__setattr__(self, "to", checksum(self.to))
        object.__setattr__(self, "data", hex_to_bytes(self.data))
        object.__setattr__(self, "operation", Operation(self.operation))
        object.__setattr__(self, "paymaster_and_data", hex_to_bytes(self.paymaster_and_data))

    def with_call(self, to: str, data: bytes, nonce: int) -> "AuthorizationRequest":
        """
        Request for an intermediate account that forwards a signed call upward.
        Keeps the relay parameters, resets value and Safe refund fields.
        """
        return replace(self, to=to, value=0, data=data, operation=Operation.CALL, nonce=nonce,
                       safe_tx_gas=0, base_gas=0, gas_price=0, gas_token=ZERO_ADDRESS,
                       refund_receiver=ZERO_ADDRESS)

    @classmethod
    def from_dict(cls, d: dict) -> "AuthorizationRequest":
        gas = d.get("gas")
        window = d.get("window")
        return cls(
            to=d["to"],
            value=int(d.get("value", 0)),
            data=hex_to_bytes(d.get("data")),
            operation=Operation(int(d.get("operation", 0))),
            nonce=int(d.get("nonce", 0)),
            safe_tx_gas=int(d.get("safe_tx_gas", 0)),
            base_gas=int(d.get("base_gas", 0)),
            gas_price=int(d.get("gas_price", 0)),
            gas_token=d.get("gas_token", ZERO_ADDRESS),
            refund_receiver=d.get("refund_receiver", ZERO_ADDRESS),
            gas=GasParameters(**{k: int(v) for k, v in gas.items()}) if gas else None,
            window=ValidityWindow(**{k: int(v) for k, v in window.items()}) if window else None,
            paymaster_and_data=hex_to_bytes(d.get("paymaster_and_data")),
        )
