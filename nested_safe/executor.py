"""
Execution-origin selection.

Only an account owned exclusively by key holders can originate a user
operation without itself needing an aggregated proof, so the relayed
operation is sent from such a leaf and climbs back up to the root through
execTransaction calls.
"""

from typing import Tuple

from .errors import NoExecutorFoundError
from .log import get_logger
from .tree import Account, AccountOwner, KeyOwner, OwnershipTree

logger = get_logger(__name__)


def find_executor_path(root) -> Tuple[Account, ...]:
    """
    Return the root-to-executor path; the executor is the last element.

    Policy: the first key-only account found by depth-first pre-order
    traversal, owners visited in their configured order. This is not
    necessarily the cheapest executor, but it is deterministic.
    """
    if isinstance(root, OwnershipTree):
        root = root.root
    path = _search(root, ())
    if path is None:
        raise NoExecutorFoundError(
            f"No account under {root.address} is owned only by key holders",
            context={"root": root.address})
    logger.info("executor_selected", root=root.address, executor=path[-1].address,
                depth=len(path) - 1)
    return path


def _search(account: Account, path):
    if any(a.address == account.address for a in path):
        return None
    path = path + (account,)
    if account.is_key_only:
        return path
    for owner in account.owners:
        if isinstance(owner, AccountOwner):
            found = _search(owner.account, path)
            if found is not None:
                return found
        elif not isinstance(owner, KeyOwner):
            raise TypeError(f"Unknown owner type {type(owner).__name__}")
    return None
