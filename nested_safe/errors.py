"""
Structured exceptions for nested Safe authorization.

Every error carries a `context` dict (account address, tree depth, field name,
...) so a caller can resume a partially signed flow instead of restarting it.
"""

from typing import Any, Dict, List, Optional


class NestedSafeError(Exception):
    """Base class for all errors raised by this package."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.context = context or {}


class InvalidOwnershipTreeError(NestedSafeError):
    """The account-configuration snapshot does not describe a valid tree."""

    def __init__(self, message: str, account: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.account = account


class NoExecutorFoundError(NestedSafeError):
    """No account in the tree is owned exclusively by key holders."""


class NoTerminalSignersError(NestedSafeError):
    """Recursion reached an account with no way down to a key holder."""

    def __init__(self, message: str, account: Optional[str] = None,
                 depth: Optional[int] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.account = account
        self.depth = depth


class InsufficientSignaturesError(NestedSafeError):
    """An account in the path collected fewer components than its threshold."""

    def __init__(self, message: str, account: str, threshold: int, collected: int,
                 depth: int = 0, causes: Optional[List["NestedSafeError"]] = None,
                 **kwargs):
        super().__init__(message, **kwargs)
        self.account = account
        self.threshold = threshold
        self.collected = collected
        self.depth = depth
        self.causes = causes or []

    @property
    def deficit(self) -> int:
        return self.threshold - self.collected


class IncompleteOperationError(NestedSafeError):
    """A relay operation could not be built because a required field is missing."""

    def __init__(self, message: str, field: str, **kwargs):
        super().__init__(message, **kwargs)
        self.field = field


class InvalidSignerVerificationError(NestedSafeError):
    """An alternate signer did not return the success marker."""

    def __init__(self, message: str, signer: Optional[str] = None,
                 result: Optional[bytes] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.signer = signer
        self.result = result


class InvalidSignatureError(NestedSafeError):
    """Signature bytes are malformed, misordered or do not match an owner."""

    def __init__(self, message: str, account: Optional[str] = None,
                 depth: Optional[int] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.account = account
        self.depth = depth


class BundlerError(NestedSafeError):
    """The bundler answered a JSON-RPC call with an error or an unusable response."""

    def __init__(self, message: str, method: str, code: Optional[int] = None,
                 data: Any = None, **kwargs):
        super().__init__(message, **kwargs)
        self.method = method
        self.code = code
        self.data = data


class OneTimeKeyReuseError(NestedSafeError):
    """A one-time key was asked to sign a second, different digest."""

    def __init__(self, message: str, signer: str, account: Optional[str] = None,
                 depth: Optional[int] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.signer = signer
        self.account = account
        self.depth = depth
