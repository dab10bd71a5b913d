"""
Hash Oracle

The hash function used by Merkle trees and the block chain is passed in as
a value rather than hard-coded, so the algorithm can be swapped (or replaced
by a toy hash in tests) without touching the data structures.

Contract:
- hash(data) returns a fixed-width digest (digest_size bytes)
- the output is deterministic for a given input
"""

import hashlib
from abc import ABC, abstractmethod
from typing import Optional


# ============================================================================
# Constants
# ============================================================================

DEFAULT_HASH_ALGORITHM = "sha256"


# ============================================================================
# Oracle Interface
# ============================================================================

class HashOracle(ABC):
    """Fixed-width cryptographic hash function."""

    name: str = "abstract"
    digest_size: int = 0

    @abstractmethod
    def hash(self, data: bytes) -> bytes:
        """
        Hash a byte string.

        Args:
            data: Input bytes

        Returns:
            Digest of exactly digest_size bytes
        """

    def hash_hex(self, data: bytes) -> str:
        """Hash a byte string and return the digest as hex."""
        return self.hash(data).hex()

    def combine(self, left: bytes, right: bytes) -> bytes:
        """
        Hash two child digests into a parent digest.

        The raw digest bytes are concatenated, never their hex text.
        """
        return self.hash(left + right)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, digest_size={self.digest_size})"


class HashlibOracle(HashOracle):
    """
    HashOracle backed by a hashlib algorithm.

    Example:
        >>> oracle = HashlibOracle("sha256")
        >>> oracle.hash_hex(b"abc")[:16]
        'ba7816bf8f01cfea'
    """

    def __init__(self, name: str = DEFAULT_HASH_ALGORITHM):
        """
        Args:
            name: hashlib algorithm name (sha256, sha3_256, blake2s, ...)

        Raises:
            ValueError: If the algorithm is unknown or has a variable-length
                digest (shake_*)
        """
        try:
            probe = hashlib.new(name)
        except ValueError:
            raise ValueError(f"Unknown hash algorithm: {name}") from None

        if probe.digest_size == 0:
            raise ValueError(f"Hash algorithm {name} has no fixed digest size")

        self.name = probe.name
        self.digest_size = probe.digest_size
        self._algorithm = name

    def hash(self, data: bytes) -> bytes:
        return hashlib.new(self._algorithm, data).digest()


_default_oracle: Optional[HashOracle] = None


def default_hash_oracle() -> HashOracle:
    """Get the shared SHA-256 oracle."""
    global _default_oracle
    if _default_oracle is None:
        _default_oracle = HashlibOracle(DEFAULT_HASH_ALGORITHM)
    return _default_oracle


def sha256(data: bytes) -> bytes:
    """Compute the SHA-256 digest of data."""
    return default_hash_oracle().hash(data)


def sha256_hex(data: bytes) -> str:
    """Compute the SHA-256 digest of data as a hex string."""
    return default_hash_oracle().hash_hex(data)
