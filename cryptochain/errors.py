"""
Exception Types

Errors raised by cryptochain when an operation's preconditions are not met.

Proof verification and chain validation never raise for a bad proof or a
tampered chain: those outcomes are returned as values
(see VerificationStatus and IssueKind).
"""


class CryptoChainError(Exception):
    """Base class for all cryptochain errors."""
    pass


class EmptyInputError(CryptoChainError, ValueError):
    """Raised when a tree or chain is built from no data."""
    pass


class TreeNotBuiltError(CryptoChainError, RuntimeError):
    """Raised when a proof is requested before the tree is built."""
    pass


class ChainEmptyError(CryptoChainError, RuntimeError):
    """Raised when an operation needs at least one block."""
    pass


class ItemNotFoundError(CryptoChainError, LookupError):
    """Raised when a proof is requested for an item that is not in the tree."""

    def __init__(self, item: bytes):
        super().__init__(f"Data item {item!r} not found in the tree")
        self.item = item


class ProofDecodeError(CryptoChainError, ValueError):
    """Raised when a serialized proof cannot be decoded."""
    pass


class ChainDecodeError(CryptoChainError, ValueError):
    """Raised when a serialized block or chain cannot be decoded."""
    pass


class ChainValidationError(CryptoChainError):
    """Raised when a loaded chain fails validation."""

    def __init__(self, result):
        errors = "; ".join(result.errors) or "unknown error"
        super().__init__(f"Chain validation failed: {errors}")
        self.result = result
