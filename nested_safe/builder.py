"""
End-to-end construction of a relayed operation for a nested Safe.

For an executor path [root, ..., parent, executor]:

  1. root's owners approve the caller's request; the next hop on the path is
     approved implicitly as msg.sender.
  2. each further account on the path is asked to call the previous one's
     execTransaction with the signatures just collected.
  3. the executor's key owners sign the SafeOp hash of the user operation that
     performs that call through the Safe 4337 module.
"""

from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from .aggregator import SignatureAggregator
from .config import ENTRYPOINT_V07, SAFE_4337_MODULE_V030
from .executor import find_executor_path
from .hashing import safe_op_hash
from .log import get_logger
from .request import AuthorizationRequest
from .signers import SignerFactory
from .translator import (
    AccountMeta,
    UserOperation,
    exec_transaction_calldata,
    to_relay_operation,
    unsigned_operation,
)
from .tree import Account, OwnershipTree
from .verifier import SignatureVerifier

logger = get_logger(__name__)


@dataclass(frozen=True)
class NestedOperation:
    path: Tuple[Account, ...]
    requests: Tuple[AuthorizationRequest, ...]  # per path level, root first
    signatures: Tuple[bytes, ...]  # per path level; the executor's covers the SafeOp hash
    safe_op_hash: bytes
    user_operation: UserOperation

    @property
    def executor(self) -> Account:
        return self.path[-1]


def build_nested_user_operation(
    tree: OwnershipTree,
    request: AuthorizationRequest,
    signers: Dict[str, object],
    chain_id: Optional[int] = None,
    module: str = SAFE_4337_MODULE_V030,
    entry_point: str = ENTRYPOINT_V07,
    signer_factory: Optional[SignerFactory] = None,
    verify: bool = True,
) -> NestedOperation:
    chain_id = tree.chain_id if chain_id is None else chain_id
    if chain_id is None:
        raise ValueError("chain_id is required when the tree does not carry one")

    path = find_executor_path(tree)
    aggregator = SignatureAggregator(chain_id, signer_factory)
    verifier = SignatureVerifier(chain_id, signer_factory) if verify else None

    requests = [request]
    signatures = []
    current = request
    for account, next_account in zip(path, path[1:]):
        signature = aggregator.aggregate(account, current, signers, path)
        if verifier is not None:
            verifier.check_request(account, current, signature, sender=next_account.address)
        signatures.append(signature)
        current = current.with_call(account.address, exec_transaction_calldata(current, signature),
                                    next_account.nonce)
        requests.append(current)

    executor = path[-1]
    meta = AccountMeta.of(executor)
    digest = safe_op_hash(unsigned_operation(current, meta), current.window, chain_id,
                          module, entry_point)
    signature = aggregator.sign_digest(executor, digest, signers)
    if verifier is not None:
        verifier.check(executor, digest, None, signature)
    signatures.append(signature)

    user_op = to_relay_operation(current, signature, meta)
    logger.info("nested_operation_built", root=path[0].address, executor=executor.address,
                depth=len(path) - 1, nonce=user_op.nonce, lazy=not executor.deployed)
    return NestedOperation(
        path=path,
        requests=tuple(requests),
        signatures=tuple(signatures),
        safe_op_hash=digest,
        user_operation=user_op,
    )
