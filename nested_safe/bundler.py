"""
JSON-RPC client for an ERC-4337 bundler (the relay network).

Submission, inclusion and fee markets are the bundler's business; this client
makes one HTTP call per method and never retries.
"""

import requests

from .encoding import hex_to_int
from .errors import BundlerError
from .log import get_logger

logger = get_logger(__name__)


class BundlerClient:

    def __init__(self, url: str, entry_point: str, timeout: float = 30.0, session=None):
        self.url = url
        self.entry_point = entry_point
        self.timeout = timeout
        self.session = session or requests.Session()
        self._id = 0

    def rpc_call(self, method, params):
        """Make a JSON-RPC call and return its result."""
        self._id += 1
        payload = {
            "jsonrpc": "2.0",
            "id": self._id,
            "method": method,
            "params": params,
        }
        try:
            resp = self.session.post(self.url, json=payload, timeout=self.timeout)
            result = resp.json()
        except (requests.RequestException, ValueError) as exc:
            raise BundlerError(f"{method} failed: {exc}", method=method) from exc
        if "error" in result:
            error = result["error"] or {}
            raise BundlerError(
                f"RPC error ({method}): {error.get('message')}",
                method=method, code=error.get("code"), data=error.get("data"))
        return result.get("result")

    def send_user_operation(self, user_op) -> str:
        """eth_sendUserOperation; returns the userOpHash chosen by the bundler."""
        op_hash = self.rpc_call("eth_sendUserOperation", [user_op.to_rpc(), self.entry_point])
        logger.info("user_operation_sent", sender=user_op.sender, nonce=user_op.nonce,
                    user_op_hash=op_hash)
        return op_hash

    def estimate_user_operation_gas(self, user_op) -> dict:
        estimate = self.rpc_call("eth_estimateUserOperationGas", [user_op.to_rpc(), self.entry_point])
        return {k: hex_to_int(v) for k, v in (estimate or {}).items()}

    def get_user_operation_receipt(self, user_op_hash: str):
        """None until the operation is included."""
        return self.rpc_call("eth_getUserOperationReceipt", [user_op_hash])

    def supported_entry_points(self):
        return self.rpc_call("eth_supportedEntryPoints", [])
