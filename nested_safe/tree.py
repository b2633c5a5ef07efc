"""
Ownership tree of nested Safes.

An Account is owned by KeyOwners (terminal key holders) and/or AccountOwners
(other Accounts). Trees are built once from an account-configuration snapshot
and are read-only afterwards; every node is a frozen dataclass.

Snapshot format (dict or JSON file):

    {
      "chain_id": 11155111,
      "root": "0x...",
      "accounts": {
        "0x...": {
          "threshold": 2,
          "owners": [{"account": "0x..."}, {"key": "0x..."}, {"signer_data": "0x..."}],
          "deployed": true,
          "nonce": 0,
          "init_code": "0x..."
        }
      }
    }
"""

import json
from dataclasses import dataclass, field
from typing import Dict, Iterator, Optional, Tuple, Union

from .encoding import checksum, hex_to_bytes
from .errors import InvalidOwnershipTreeError
from .log import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class KeyOwner:
    """
    Terminal key holder. Plain ECDSA keys are identified by their EOA address;
    alternate-scheme keys also carry the opaque signer_data their signer
    contract is derived from.
    """
    address: str
    signer_data: Optional[bytes] = None

    def __post_init__(self):
        object.__setattr__(self, "address", checksum(self.address))

    @property
    def is_alternate(self) -> bool:
        return self.signer_data is not None


@dataclass(frozen=True)
class AccountOwner:
    account: "Account"

    @property
    def address(self) -> str:
        return self.account.address


Owner = Union[KeyOwner, AccountOwner]


@dataclass(frozen=True)
class Account:
    address: str
    owners: Tuple[Owner, ...]
    threshold: int
    deployed: bool = True
    nonce: int = 0
    init_code: Optional[bytes] = field(default=None, repr=False)

    def __post_init__(self):
        object.__setattr__(self, "address", checksum(self.address))
        object.__setattr__(self, "owners", tuple(self.owners))

    @property
    def is_key_only(self) -> bool:
        """Owned exclusively by key holders, so it can originate an operation itself."""
        return bool(self.owners) and all(isinstance(o, KeyOwner) for o in self.owners)

    def owner(self, address: str) -> Optional[Owner]:
        address = checksum(address)
        for o in self.owners:
            if o.address == address:
                return o
        return None


@dataclass(frozen=True)
class OwnershipTree:
    root: Account
    chain_id: Optional[int] = None

    def accounts(self) -> Iterator[Account]:
        """All accounts, depth-first pre-order, each shared node once."""
        seen = set()
        stack = [self.root]
        while stack:
            account = stack.pop()
            if account.address in seen:
                continue
            seen.add(account.address)
            yield account
            nested = [o.account for o in account.owners if isinstance(o, AccountOwner)]
            stack.extend(reversed(nested))

    def find(self, address: str) -> Optional[Account]:
        address = checksum(address)
        for account in self.accounts():
            if account.address == address:
                return account
        return None

    @classmethod
    def from_snapshot(cls, snapshot: dict, signer_factory=None) -> "OwnershipTree":
        """
        Build and validate a tree. Rejects cycles (an account transitively
        owning itself), references to accounts missing from the snapshot,
        duplicate owners and thresholds outside 1..len(owners).
        """
        try:
            configs = {checksum(a): cfg for a, cfg in snapshot["accounts"].items()}
            root_address = checksum(snapshot["root"])
        except (KeyError, ValueError) as exc:
            raise InvalidOwnershipTreeError(f"Malformed snapshot: {exc}") from exc

        built: Dict[str, Account] = {}

        def build(address: str, visiting: Tuple[str, ...]) -> Account:
            if address in visiting:
                cycle = " -> ".join(visiting + (address,))
                raise InvalidOwnershipTreeError(
                    f"Ownership cycle: {cycle}", account=address,
                    context={"cycle": list(visiting + (address,))})
            if address in built:
                return built[address]
            cfg = configs.get(address)
            if cfg is None:
                raise InvalidOwnershipTreeError(
                    f"Account {address} is referenced but not in the snapshot",
                    account=address, context={"depth": len(visiting)})

            owners = []
            for entry in cfg.get("owners", []):
                owners.append(_build_owner(entry, address, visiting + (address,), build,
                                           signer_factory))

            addresses = [o.address for o in owners]
            if len(set(addresses)) != len(addresses):
                raise InvalidOwnershipTreeError(f"Duplicate owners on {address}", account=address)
            threshold = int(cfg.get("threshold", 1))
            if not 1 <= threshold <= len(owners):
                raise InvalidOwnershipTreeError(
                    f"Threshold {threshold} invalid for {len(owners)} owner(s) on {address}",
                    account=address)

            init_code = cfg.get("init_code")
            account = Account(
                address=address,
                owners=tuple(owners),
                threshold=threshold,
                deployed=bool(cfg.get("deployed", True)),
                nonce=int(cfg.get("nonce", 0)),
                init_code=hex_to_bytes(init_code) if init_code else None,
            )
            built[address] = account
            return account

        root = build(root_address, ())
        logger.debug("ownership_tree_built", root=root.address, accounts=len(built))
        return cls(root=root, chain_id=snapshot.get("chain_id"))


def _build_owner(entry: dict, parent: str, visiting, build, signer_factory) -> Owner:
    if "account" in entry:
        return AccountOwner(build(_owner_address(entry["account"], parent), visiting))
    if "signer_data" in entry:
        signer_data = hex_to_bytes(entry["signer_data"])
        address = entry.get("key")
        derived = signer_factory.get_signer(signer_data) if signer_factory is not None else None
        if address is None:
            if derived is None:
                raise InvalidOwnershipTreeError(
                    f"Alternate signer on {parent} has no address and no factory to derive it",
                    account=parent)
            address = derived
        elif derived is not None and _owner_address(address, parent) != derived:
            raise InvalidOwnershipTreeError(
                f"Alternate signer {address} on {parent} does not match factory address {derived}",
                account=parent)
        return KeyOwner(_owner_address(address, parent), signer_data=signer_data)
    if "key" in entry:
        return KeyOwner(_owner_address(entry["key"], parent))
    raise InvalidOwnershipTreeError(f"Unrecognised owner entry on {parent}: {entry}",
                                    account=parent)


def _owner_address(value, parent: str) -> str:
    try:
        return checksum(value)
    except (TypeError, ValueError) as exc:
        raise InvalidOwnershipTreeError(f"Malformed owner address {value!r} on {parent}: {exc}",
                                        account=parent) from exc


def load_tree(path: str, signer_factory=None) -> OwnershipTree:
    with open(path) as f:
        snapshot = json.load(f)
    return OwnershipTree.from_snapshot(snapshot, signer_factory=signer_factory)
