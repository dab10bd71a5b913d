"""
Merkle Tree Implementation

A Merkle tree (hash tree) is a tree data structure where:
- Leaf nodes contain hashes of data blocks
- Non-leaf nodes contain hashes of their children
- The root hash represents the entire dataset

Features:
- Odd node duplication (last node duplicated when a level has an odd count)
- Root hash generation
- Proof generation (authentication path)
- Proof verification (see proof.py)

Nodes are an explicit sum type: LeafNode carries data, InternalNode carries
two children. A duplicated node is a deep copy, so every node has exactly
one parent and sides can be told apart by identity even when hashes match.

Internal node digest: H(left.hash + right.hash) over the raw digest bytes.
"""

import copy
import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Union

from ..errors import EmptyInputError, ItemNotFoundError, TreeNotBuiltError
from .hashing import HashOracle, default_hash_oracle
from .proof import MerkleProof, Position, ProofStep, ProofVerifier

logger = logging.getLogger(__name__)


# ============================================================================
# Node Structure
# ============================================================================

@dataclass(frozen=True, eq=False)
class LeafNode:
    """Leaf wrapping the digest of one original data item."""
    hash: bytes
    data: bytes
    level: int
    index: int


@dataclass(frozen=True, eq=False)
class InternalNode:
    """Internal node wrapping the digest of its two children."""
    hash: bytes
    left: 'MerkleNode'
    right: 'MerkleNode'
    level: int
    index: int


MerkleNode = Union[LeafNode, InternalNode]


def tree_height(leaf_count: int) -> int:
    """Height of a tree over leaf_count leaves: ceil(log2(n)) + 1, or 1."""
    if leaf_count <= 1:
        return 1
    return (leaf_count - 1).bit_length() + 1


# ============================================================================
# Merkle Tree
# ============================================================================

class MerkleTree:
    """
    Merkle Tree over an ordered list of byte strings.

    Example:
        >>> tree = MerkleTree()
        >>> root = tree.build([b"tx1", b"tx2", b"tx3"])
        >>> proof = tree.generate_proof(b"tx2")
        >>> MerkleTree.verify(proof, root)
        True
    """

    def __init__(self, hash_oracle: Optional[HashOracle] = None):
        """
        Initialize an empty Merkle tree.

        Args:
            hash_oracle: Hash function to use (SHA-256 by default)
        """
        self._hash = hash_oracle or default_hash_oracle()
        self._items: List[bytes] = []
        self._root: Optional[MerkleNode] = None

    @property
    def hash_oracle(self) -> HashOracle:
        return self._hash

    def build(self, items: Sequence[bytes]) -> bytes:
        """
        Build the Merkle tree from a list of data items.

        Any previously built tree is replaced.

        Args:
            items: Ordered list of raw data bytes, one per leaf

        Returns:
            Root hash of the tree

        Raises:
            EmptyInputError: If items is empty
            TypeError: If an item is not bytes
        """
        if not items:
            raise EmptyInputError("Cannot build Merkle tree with no items")

        for position, item in enumerate(items):
            if not isinstance(item, (bytes, bytearray)):
                raise TypeError(
                    f"Item {position} must be bytes, got {type(item).__name__}"
                )

        items = [bytes(item) for item in items]
        if len(set(items)) != len(items):
            logger.warning("Duplicate data items detected; proofs resolve to the first occurrence")

        height = tree_height(len(items))
        level = height - 1

        current: List[MerkleNode] = [
            LeafNode(hash=self._hash.hash(item), data=item, level=level, index=i)
            for i, item in enumerate(items)
        ]

        while len(current) > 1:
            next_level: List[MerkleNode] = []

            for i in range(0, len(current), 2):
                left = current[i]
                if i + 1 < len(current):
                    right = current[i + 1]
                else:
                    # Odd count: pair the last node with a private copy of itself
                    right = copy.deepcopy(left)
                    logger.debug(
                        "Level %d has odd count %d, duplicating %s",
                        level, len(current), left.hash.hex()[:16]
                    )

                next_level.append(InternalNode(
                    hash=self._hash.combine(left.hash, right.hash),
                    left=left,
                    right=right,
                    level=level - 1,
                    index=i // 2,
                ))

            current = next_level
            level -= 1

        self._items = items
        self._root = current[0]

        logger.debug(
            "Built Merkle tree: %d leaves, height %d, root %s",
            len(items), height, self._root.hash.hex()[:16]
        )
        return self._root.hash

    @property
    def root(self) -> Optional[bytes]:
        """Get the root hash of the tree."""
        return self._root.hash if self._root else None

    @property
    def root_hex(self) -> Optional[str]:
        """Get the root hash as a hexadecimal string."""
        return self._root.hash.hex() if self._root else None

    @property
    def root_node(self) -> Optional[MerkleNode]:
        return self._root

    @property
    def leaf_count(self) -> int:
        """Get the number of original items in the tree."""
        return len(self._items)

    @property
    def height(self) -> int:
        """Get the height of the tree (number of levels), 0 before build."""
        return tree_height(len(self._items)) if self._root else 0

    @property
    def items(self) -> List[bytes]:
        """Get a copy of the original data items."""
        return list(self._items)

    def generate_proof(self, data_item: bytes) -> MerkleProof:
        """
        Generate a Merkle proof (authentication path) for a data item.

        The leaf is found by descending from the root, left subtree first,
        comparing leaf data byte for byte. A leaf duplicated during build
        sits to the right of its original, so the original is always found.

        Args:
            data_item: The original item bytes

        Returns:
            MerkleProof with steps ordered leaf to root

        Raises:
            TreeNotBuiltError: If build has not been called
            ItemNotFoundError: If data_item is not one of the items
        """
        if self._root is None:
            raise TreeNotBuiltError("Merkle tree must be built before generating proofs")

        path = self._find_path(self._root, data_item, [])
        if path is None:
            raise ItemNotFoundError(data_item)

        steps: List[ProofStep] = []
        for depth in range(len(path) - 1, 0, -1):
            node = path[depth]
            parent = path[depth - 1]

            # Identity, not hash: a duplicate has the same hash as its twin
            if parent.left is node:
                steps.append(ProofStep(parent.right.hash, Position.RIGHT, node.level))
            else:
                steps.append(ProofStep(parent.left.hash, Position.LEFT, node.level))

        leaf = path[-1]
        proof = MerkleProof(
            data_item=leaf.data,
            data_hash=leaf.hash,
            steps=tuple(steps),
            root=self._root.hash,
            data_index=self._items.index(leaf.data),
            leaf_count=len(self._items),
        )

        logger.debug(
            "Generated proof for index %d with %d steps",
            proof.data_index, len(steps)
        )
        return proof

    def _find_path(self, node: MerkleNode, target: bytes,
                   path: List[MerkleNode]) -> Optional[List[MerkleNode]]:
        current_path = path + [node]

        if isinstance(node, LeafNode):
            return current_path if node.data == target else None

        return (
            self._find_path(node.left, target, current_path)
            or self._find_path(node.right, target, current_path)
        )

    @staticmethod
    def verify(proof: MerkleProof, expected_root: bytes,
               hash_oracle: Optional[HashOracle] = None) -> bool:
        """
        Verify a Merkle proof against a root.

        Does not use any tree state; see ProofVerifier for the detailed
        outcome (malformed proof vs. root mismatch).
        """
        return ProofVerifier(hash_oracle).verify(proof, expected_root)

    def levels(self) -> List[List[bytes]]:
        """
        Get the digests at each level, root level first.

        Duplicated nodes appear in the level they were added to.
        """
        if self._root is None:
            return []

        result: List[List[bytes]] = []
        frontier: List[MerkleNode] = [self._root]
        while frontier:
            result.append([node.hash for node in frontier])
            children: List[MerkleNode] = []
            for node in frontier:
                if isinstance(node, InternalNode):
                    children.extend((node.left, node.right))
            frontier = children
        return result

    def render(self, width: int = 12) -> str:
        """Render the tree as indented text, one node per line."""
        if self._root is None:
            return "(empty)"

        lines: List[str] = []

        def walk(node: MerkleNode, depth: int) -> None:
            indent = "  " * depth
            digest = node.hash.hex()[:width] + "..."
            if isinstance(node, LeafNode):
                lines.append(f"{indent}Leaf: {node.data!r} ({digest})")
            else:
                lines.append(f"{indent}Node: {digest}")
                walk(node.left, depth + 1)
                walk(node.right, depth + 1)

        walk(self._root, 0)
        return "\n".join(lines)

    def __repr__(self) -> str:
        """String representation of the tree."""
        if not self._root:
            return "MerkleTree(empty)"
        return f"MerkleTree(leaves={self.leaf_count}, height={self.height}, root={self.root_hex[:16]}...)"


def build_merkle_root(items: Sequence[bytes],
                      hash_oracle: Optional[HashOracle] = None) -> bytes:
    """
    Convenience function to build a Merkle tree and return only the root.

    Args:
        items: List of data items
        hash_oracle: Optional hash function

    Returns:
        Root hash of the Merkle tree
    """
    tree = MerkleTree(hash_oracle)
    return tree.build(items)
