"""
cryptochain - Merkle trees, inclusion proofs and a timestamped
hash-linked chain of blocks.
"""

__version__ = "1.0.0"
