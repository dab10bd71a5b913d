"""
Merkle Proofs and Proof Verification

A Merkle proof (authentication path) lets a party that only knows the root
confirm that one data item is part of the tree (SPV-style verification).

Verification is a pure fold over the proof steps and does not need the
tree object, so proofs produced elsewhere can be checked here.

Outcomes are values, not exceptions:
- VALID: the steps fold the data hash into the expected root
- MALFORMED_PROOF: the proof cannot be checked (bad digest width,
  missing or surplus steps, unknown sibling position)
- ROOT_MISMATCH: the proof was folded but produced a different root

Wire format (to_bytes):
    [data_index (4) | leaf_count (4) | digest_size (2) |
     item_len (4) | data_item | data_hash | root |
     step_count (2) | steps ...]
    step = [position (1) | level (2) | sibling hash (digest_size)]
"""

import logging
import struct
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from ..errors import ProofDecodeError
from .hashing import HashOracle, default_hash_oracle

logger = logging.getLogger(__name__)


# ============================================================================
# Proof Structure
# ============================================================================

class Position(Enum):
    """Side of the sibling relative to the node being folded upward."""
    LEFT = "left"
    RIGHT = "right"


_POSITION_CODES = {Position.LEFT: 0, Position.RIGHT: 1}
_CODE_POSITIONS = {code: pos for pos, code in _POSITION_CODES.items()}


@dataclass(frozen=True)
class ProofStep:
    """One sibling digest on the path from a leaf to the root."""
    hash: bytes
    position: Position
    level: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            'hash': self.hash.hex(),
            'position': self.position.value,
            'level': self.level,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ProofStep':
        return cls(
            hash=bytes.fromhex(data['hash']),
            position=Position(data['position']),
            level=int(data['level']),
        )


@dataclass(frozen=True)
class MerkleProof:
    """
    Inclusion proof for a single data item.

    steps are ordered leaf to root. leaf_count is the number of items the
    tree was built from; it fixes how many steps a well-formed proof has.
    """
    data_item: bytes
    data_hash: bytes
    steps: Tuple[ProofStep, ...]
    root: bytes
    data_index: int
    leaf_count: int

    @property
    def size_bytes(self) -> int:
        """Size of the binary encoding of this proof."""
        return len(self.to_bytes())

    def to_dict(self) -> Dict[str, Any]:
        """Convert proof to dictionary for serialization."""
        return {
            'data_item': self.data_item.hex(),
            'data_hash': self.data_hash.hex(),
            'steps': [step.to_dict() for step in self.steps],
            'root': self.root.hex(),
            'data_index': self.data_index,
            'leaf_count': self.leaf_count,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'MerkleProof':
        """
        Create proof from dictionary.

        Raises:
            ProofDecodeError: If a field is missing or badly encoded
        """
        try:
            return cls(
                data_item=bytes.fromhex(data['data_item']),
                data_hash=bytes.fromhex(data['data_hash']),
                steps=tuple(ProofStep.from_dict(s) for s in data['steps']),
                root=bytes.fromhex(data['root']),
                data_index=int(data['data_index']),
                leaf_count=int(data['leaf_count']),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ProofDecodeError(f"Invalid proof dictionary: {e}") from e

    def to_bytes(self) -> bytes:
        """
        Serialize to length-prefixed binary.

        Raises:
            ValueError: If digests in the proof differ in width
        """
        digest_size = len(self.data_hash)
        if len(self.root) != digest_size or any(len(s.hash) != digest_size for s in self.steps):
            raise ValueError("All digests in a proof must have the same width")

        parts = [
            struct.pack('>IIH', self.data_index, self.leaf_count, digest_size),
            struct.pack('>I', len(self.data_item)),
            self.data_item,
            self.data_hash,
            self.root,
            struct.pack('>H', len(self.steps)),
        ]
        for step in self.steps:
            parts.append(struct.pack('>BH', _POSITION_CODES[step.position], step.level))
            parts.append(step.hash)
        return b''.join(parts)

    @classmethod
    def from_bytes(cls, data: bytes) -> 'MerkleProof':
        """
        Deserialize from binary produced by to_bytes.

        Raises:
            ProofDecodeError: If data is truncated, has trailing bytes, or
                contains an unknown position code
        """
        try:
            offset = 0
            data_index, leaf_count, digest_size = struct.unpack_from('>IIH', data, offset)
            offset += 10

            (item_len,) = struct.unpack_from('>I', data, offset)
            offset += 4
            data_item = _take(data, offset, item_len)
            offset += item_len

            data_hash = _take(data, offset, digest_size)
            offset += digest_size
            root = _take(data, offset, digest_size)
            offset += digest_size

            (step_count,) = struct.unpack_from('>H', data, offset)
            offset += 2

            steps = []
            for _ in range(step_count):
                code, level = struct.unpack_from('>BH', data, offset)
                offset += 3
                if code not in _CODE_POSITIONS:
                    raise ProofDecodeError(f"Unknown position code: {code}")
                sibling = _take(data, offset, digest_size)
                offset += digest_size
                steps.append(ProofStep(sibling, _CODE_POSITIONS[code], level))
        except struct.error as e:
            raise ProofDecodeError(f"Truncated proof: {e}") from e

        if offset != len(data):
            raise ProofDecodeError(f"{len(data) - offset} trailing bytes after proof")

        return cls(
            data_item=data_item,
            data_hash=data_hash,
            steps=tuple(steps),
            root=root,
            data_index=data_index,
            leaf_count=leaf_count,
        )

    def to_hex(self) -> str:
        """Serialize to hex string."""
        return self.to_bytes().hex()

    @classmethod
    def from_hex(cls, hex_str: str) -> 'MerkleProof':
        """Deserialize from hex string."""
        try:
            raw = bytes.fromhex(hex_str)
        except ValueError as e:
            raise ProofDecodeError(f"Invalid hex: {e}") from e
        return cls.from_bytes(raw)


def _take(data: bytes, offset: int, length: int) -> bytes:
    chunk = data[offset:offset + length]
    if len(chunk) != length:
        raise ProofDecodeError("Truncated proof")
    return chunk


def expected_proof_length(leaf_count: int) -> int:
    """Number of steps in a proof for a tree with leaf_count leaves."""
    if leaf_count <= 1:
        return 0
    # ceil(log2(n)) without floating point
    return (leaf_count - 1).bit_length()


# ============================================================================
# Verification
# ============================================================================

class VerificationStatus(Enum):
    """Outcome of checking a proof."""
    VALID = "valid"
    MALFORMED_PROOF = "malformed_proof"
    ROOT_MISMATCH = "root_mismatch"


@dataclass(frozen=True)
class VerificationResult:
    """Result of ProofVerifier.check; truthy only when the proof is valid."""
    status: VerificationStatus
    computed_root: Optional[bytes] = None
    reason: str = ""

    @property
    def is_valid(self) -> bool:
        return self.status is VerificationStatus.VALID

    def __bool__(self) -> bool:
        return self.is_valid


class ProofVerifier:
    """
    Stateless Merkle proof verifier.

    Example:
        >>> verifier = ProofVerifier()
        >>> verifier.check(proof, root).status
        <VerificationStatus.VALID: 'valid'>
    """

    def __init__(self, hash_oracle: Optional[HashOracle] = None):
        self._hash = hash_oracle or default_hash_oracle()

    @property
    def hash_oracle(self) -> HashOracle:
        return self._hash

    def check(self, proof: MerkleProof, expected_root: bytes) -> VerificationResult:
        """
        Fold proof.data_hash through the steps and compare with expected_root.

        Safe to call on untrusted input: a proof that cannot be checked
        yields MALFORMED_PROOF rather than an exception.

        Args:
            proof: Proof to check
            expected_root: Root the caller trusts

        Returns:
            VerificationResult with the status and the computed root
        """
        problem = self._find_malformation(proof, expected_root)
        if problem:
            logger.debug("Malformed proof: %s", problem)
            return VerificationResult(VerificationStatus.MALFORMED_PROOF, reason=problem)

        computed = self._fold(proof.data_hash, proof.steps)
        if computed != expected_root:
            logger.debug(
                "Proof for index %d reconstructs %s, expected %s",
                proof.data_index, computed.hex()[:16], expected_root.hex()[:16]
            )
            return VerificationResult(
                VerificationStatus.ROOT_MISMATCH,
                computed_root=computed,
                reason="Reconstructed root does not match expected root",
            )

        return VerificationResult(VerificationStatus.VALID, computed_root=computed)

    def verify(self, proof: MerkleProof, expected_root: bytes) -> bool:
        """Return True iff the proof folds into expected_root."""
        return self.check(proof, expected_root).is_valid

    def verify_inclusion(self, data_item: bytes, proof: MerkleProof,
                         expected_root: bytes) -> VerificationResult:
        """
        Check that data_item itself (not the hash carried in the proof) is
        included under expected_root.
        """
        if not isinstance(data_item, (bytes, bytearray)):
            return VerificationResult(
                VerificationStatus.MALFORMED_PROOF,
                reason="Data item must be bytes",
            )
        if not isinstance(proof, MerkleProof):
            return VerificationResult(
                VerificationStatus.MALFORMED_PROOF,
                reason="Not a MerkleProof",
            )
        rehashed = MerkleProof(
            data_item=bytes(data_item),
            data_hash=self._hash.hash(bytes(data_item)),
            steps=proof.steps,
            root=proof.root,
            data_index=proof.data_index,
            leaf_count=proof.leaf_count,
        )
        return self.check(rehashed, expected_root)

    def _fold(self, data_hash: bytes, steps: Tuple[ProofStep, ...]) -> bytes:
        current = data_hash
        for step in steps:
            if step.position is Position.LEFT:
                current = self._hash.combine(step.hash, current)
            else:
                current = self._hash.combine(current, step.hash)
        return current

    def _find_malformation(self, proof: Any, expected_root: Any) -> Optional[str]:
        width = self._hash.digest_size

        if not isinstance(proof, MerkleProof):
            return "Not a MerkleProof"
        if not _is_digest(expected_root, width):
            return f"Expected root must be a {width}-byte digest"
        if not _is_digest(proof.data_hash, width):
            return f"Data hash must be a {width}-byte digest"
        if not isinstance(proof.leaf_count, int) or proof.leaf_count < 1:
            return "Leaf count must be a positive integer"
        if not isinstance(proof.data_index, int) or not 0 <= proof.data_index < proof.leaf_count:
            return f"Data index {proof.data_index} out of range for {proof.leaf_count} leaves"

        steps = proof.steps
        if not isinstance(steps, (tuple, list)):
            return "Steps must be a sequence"
        if proof.leaf_count > 1 and not steps:
            return "Empty step list for a tree with more than one leaf"

        expected = expected_proof_length(proof.leaf_count)
        if len(steps) != expected:
            return f"Expected {expected} steps for {proof.leaf_count} leaves, got {len(steps)}"

        for i, step in enumerate(steps):
            if not isinstance(step, ProofStep):
                return f"Step {i} is not a ProofStep"
            if not isinstance(step.position, Position):
                return f"Step {i} has unknown position {step.position!r}"
            if not _is_digest(step.hash, width):
                return f"Step {i} hash must be a {width}-byte digest"

        return None


def _is_digest(value: Any, width: int) -> bool:
    return isinstance(value, bytes) and len(value) == width


def verify_proof(proof: MerkleProof, expected_root: bytes,
                 hash_oracle: Optional[HashOracle] = None) -> bool:
    """Convenience function: verify a proof with a fresh ProofVerifier."""
    return ProofVerifier(hash_oracle).verify(proof, expected_root)
