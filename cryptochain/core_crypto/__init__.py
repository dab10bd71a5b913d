# Core Cryptography Module
"""
Core hashing primitives including:
- Injectable hash oracle (hashlib-backed)
- Merkle trees
- Merkle proofs and stateless proof verification
"""

from .hashing import (
    HashOracle,
    HashlibOracle,
    default_hash_oracle,
    sha256,
    sha256_hex,
    DEFAULT_HASH_ALGORITHM,
)
from .merkle import (
    MerkleTree,
    MerkleNode,
    LeafNode,
    InternalNode,
    build_merkle_root,
    tree_height,
)
from .proof import (
    MerkleProof,
    ProofStep,
    Position,
    ProofVerifier,
    VerificationResult,
    VerificationStatus,
    expected_proof_length,
    verify_proof,
)

__all__ = [
    'HashOracle',
    'HashlibOracle',
    'default_hash_oracle',
    'sha256',
    'sha256_hex',
    'DEFAULT_HASH_ALGORITHM',
    'MerkleTree',
    'MerkleNode',
    'LeafNode',
    'InternalNode',
    'build_merkle_root',
    'tree_height',
    'MerkleProof',
    'ProofStep',
    'Position',
    'ProofVerifier',
    'VerificationResult',
    'VerificationStatus',
    'expected_proof_length',
    'verify_proof',
]
