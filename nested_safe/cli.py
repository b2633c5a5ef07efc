"""
Build and send ERC-4337 user operations for nested Safes.

Usage:
    # Which leaf Safe originates the operation
    nested-safe executor --tree tree.json
    # Safe transaction hash an account's owners sign
    nested-safe hash --tree tree.json --request request.json --account 0x...
    # Aggregate signatures and print the user operation
    nested-safe build --tree tree.json --request request.json --key <hex_privkey> --key <hex_privkey>
    # Same, then submit it to the bundler
    nested-safe send --tree tree.json --request request.json --key <hex_privkey>

Environment: see nested_safe.config. Private keys may also be given as a
comma-separated NESTED_SAFE_KEYS variable.
"""

import argparse
import json
import os
import sys

from .builder import build_nested_user_operation
from .bundler import BundlerClient
from .config import load_settings
from .encoding import hex_to_bytes, to_hex
from .errors import NestedSafeError
from .executor import find_executor_path
from .hashing import safe_tx_hash
from .log import configure_logging, get_logger
from .request import AuthorizationRequest
from .signers import EcdsaKey, InMemorySignerRegistry, WotsKey, WotsSignerFactory, signer_map
from .tree import load_tree

logger = get_logger(__name__)

# ============================================================
#  Helpers
# ============================================================

def _signer_factory(args):
    if not args.signer_factory:
        return None
    if not args.signer_init_code_hash:
        raise SystemExit("--signer-init-code-hash is required with --signer-factory")
    return WotsSignerFactory(args.signer_factory, hex_to_bytes(args.signer_init_code_hash),
                             InMemorySignerRegistry())


def _load_request(path):
    with open(path) as f:
        return AuthorizationRequest.from_dict(json.load(f))


def _keys(args, factory):
    raw = list(args.key or [])
    env_keys = os.environ.get("NESTED_SAFE_KEYS")
    if env_keys:
        raw.extend(k.strip() for k in env_keys.split(",") if k.strip())
    keys = [EcdsaKey(hex_to_bytes(k)) for k in raw]
    for entropy in args.wots_entropy or []:
        if factory is None:
            raise SystemExit("--wots-entropy needs --signer-factory")
        keys.append(WotsKey.from_entropy(hex_to_bytes(entropy), factory))
    return signer_map(*keys)


def _build(args, settings):
    factory = _signer_factory(args)
    tree = load_tree(args.tree, signer_factory=factory)
    return build_nested_user_operation(
        tree,
        _load_request(args.request),
        _keys(args, factory),
        chain_id=tree.chain_id or settings.chain_id,
        module=settings.safe_4337_module,
        entry_point=settings.entry_point,
        signer_factory=factory,
    )

# ============================================================
#  Commands
# ============================================================

def cmd_executor(args, settings):
    path = find_executor_path(load_tree(args.tree, signer_factory=_signer_factory(args)))
    for depth, account in enumerate(path):
        print(f"{'  ' * depth}{account.address} ({account.threshold}-of-{len(account.owners)})")
    print(f"Executor: {path[-1].address}")


def cmd_hash(args, settings):
    tree = load_tree(args.tree, signer_factory=_signer_factory(args))
    account = tree.find(args.account) if args.account else tree.root
    if account is None:
        raise SystemExit(f"{args.account} is not in the tree")
    digest = safe_tx_hash(account.address, tree.chain_id or settings.chain_id,
                          _load_request(args.request))
    print(to_hex(digest))


def cmd_build(args, settings):
    nested = _build(args, settings)
    print(json.dumps({
        "executor": nested.executor.address,
        "safeOpHash": to_hex(nested.safe_op_hash),
        "userOperation": nested.user_operation.to_rpc(),
    }, indent=2))


def cmd_send(args, settings):
    if not settings.bundler_url:
        print("Error: set BUNDLER_URL or PIMLICO_API_KEY", file=sys.stderr)
        sys.exit(1)
    nested = _build(args, settings)
    bundler = BundlerClient(settings.bundler_url, settings.entry_point, settings.bundler_timeout)
    op_hash = bundler.send_user_operation(nested.user_operation)
    print(f"UserOp hash: {op_hash}")

# ============================================================
#  Main
# ============================================================

def _add_common(p, request=True):
    p.add_argument("--tree", required=True, help="Account-configuration snapshot (JSON)")
    if request:
        p.add_argument("--request", required=True, help="Authorization request (JSON)")
    p.add_argument("--signer-factory", help="WOTS signer factory address")
    p.add_argument("--signer-init-code-hash", help="WOTS signer init code hash (hex)")


def main(argv=None):
    parser = argparse.ArgumentParser(description="Nested Safe 4337 UserOp Tool")
    parser.add_argument("--env-file", help="Path to .env (default: ./.env)")
    sub = parser.add_subparsers(dest="command")

    p_executor = sub.add_parser("executor", help="Show the executor path")
    _add_common(p_executor, request=False)

    p_hash = sub.add_parser("hash", help="Safe transaction hash for one account")
    _add_common(p_hash)
    p_hash.add_argument("--account", help="Account address (default: root)")

    for name, help_text in (("build", "Build a signed UserOp"), ("send", "Build and send a UserOp")):
        p = sub.add_parser(name, help=help_text)
        _add_common(p)
        p.add_argument("--key", action="append", help="ECDSA private key (hex), repeatable")
        p.add_argument("--wots-entropy", action="append", help="WOTS key entropy (hex), repeatable")

    args = parser.parse_args(argv)
    settings = load_settings(args.env_file)
    configure_logging(settings.log_level, format_json=settings.log_json)

    commands = {
        "executor": cmd_executor,
        "hash": cmd_hash,
        "build": cmd_build,
        "send": cmd_send,
    }
    if args.command not in commands:
        parser.print_help()
        return
    try:
        commands[args.command](args, settings)
    except NestedSafeError as exc:
        logger.error("command_failed", command=args.command, error=str(exc), **exc.context)
        sys.exit(1)


if __name__ == "__main__":
    main()
