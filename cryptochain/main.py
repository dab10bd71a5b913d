"""
cryptochain - Main Entry Point

Command line demonstrations of Merkle proofs, block chain validation and
digital signatures.

    python -m cryptochain.main merkle tx1 tx2 tx3
    python -m cryptochain.main chain "genesis" "block 1" "block 2" --delay 0
    python -m cryptochain.main sign "hello" --algorithm ec
"""

import argparse
import logging
import sys
from typing import List, Optional

from .blockchain.ledger import build_chain
from .blockchain.timing import DEFAULT_MINING_DELAY, MiningDelay
from .core_crypto.hashing import DEFAULT_HASH_ALGORITHM, HashlibOracle
from .core_crypto.merkle import MerkleTree
from .core_crypto.proof import MerkleProof, ProofVerifier
from .errors import CryptoChainError
from .log import configure_logging
from .signatures.digital_signature import generate_key_pair, sign, verify

logger = logging.getLogger(__name__)

TAMPERED_DATA = "TAMPERED DATA - This should be detected!"


def _rule(title: str) -> None:
    print("\n" + "=" * 60)
    print(f"  {title}")
    print("=" * 60)


def run_merkle(items: List[str], algorithm: str) -> int:
    """Build a tree, then prove and verify every item."""
    oracle = HashlibOracle(algorithm)
    tree = MerkleTree(oracle)
    verifier = ProofVerifier(oracle)
    data = [item.encode('utf-8') for item in items]

    _rule("MERKLE TREE CONSTRUCTION")
    root = tree.build(data)
    print(tree.render())
    print(f"\nRoot:   {root.hex()}")
    print(f"Height: {tree.height} levels, {tree.leaf_count} leaves")

    _rule("PROOF GENERATION AND VERIFICATION")
    all_valid = True
    for item in data:
        proof = tree.generate_proof(item)
        result = verifier.check(proof, root)
        all_valid = all_valid and result.is_valid
        print(f"{item.decode('utf-8')!r}: {len(proof.steps)} steps, "
              f"{proof.size_bytes} bytes, {result.status.value}")
        for step in proof.steps:
            print(f"    level {step.level}: {step.position.value:<5} {step.hash.hex()[:16]}...")

    forged = tree.generate_proof(data[0])
    forged = MerkleProof(
        data_item=b"NonExistent Item",
        data_hash=oracle.hash(b"NonExistent Item"),
        steps=forged.steps,
        root=forged.root,
        data_index=forged.data_index,
        leaf_count=forged.leaf_count,
    )
    forged_result = verifier.check(forged, root)
    print(f"\nForged item with valid steps: {forged_result.status.value}")

    return 0 if all_valid and not forged_result.is_valid else 1


def run_chain(payloads: List[str], delay: float, algorithm: str) -> int:
    """Build a chain, validate it, then validate a tampered copy."""
    mining_delay = MiningDelay(delay)

    _rule("CHAIN-OF-BLOCKS SIMULATION")
    try:
        chain = build_chain(payloads, mining_delay, HashlibOracle(algorithm))
    except KeyboardInterrupt:
        print("Interrupted")
        return 130
    print(chain.render())

    stats = chain.stats()
    print(f"Genesis hash:       {stats.genesis_hash.hex()[:32]}...")
    print(f"Latest hash:        {stats.latest_hash.hex()[:32]}...")
    print(f"Average block time: {stats.average_block_time:.2f}ms")

    _rule("VALIDATION")
    result = chain.validate()
    print(f"Valid: {result.is_valid} ({result.blocks_validated} blocks, "
          f"{result.validation_time_ms:.3f}ms)")

    if chain.length < 2:
        return 0 if result.is_valid else 1

    _rule("TAMPERING DETECTION")
    forged = chain.tampered_copy(1, TAMPERED_DATA)
    forged_result = forged.validate()
    print(f"Original block 1: {chain.blocks[1].data!r}")
    print(f"Tampered block 1: {forged.blocks[1].data!r}")
    print(f"Tampered chain valid: {forged_result.is_valid}")
    for error in forged_result.errors:
        print(f"  - {error}")

    return 0 if result.is_valid and not forged_result.is_valid else 1


def run_sign(message: str, algorithm: str, size: Optional[int]) -> int:
    """Sign a message and verify the signature and a modified message."""
    _rule("DIGITAL SIGNATURE")
    key_pair = generate_key_pair(algorithm, size)
    data = message.encode('utf-8')
    signature = sign(data, key_pair.private_key)
    valid = verify(data, signature, key_pair.public_key)
    modified = verify(data + b"!", signature, key_pair.public_key)

    print(f"Algorithm: {key_pair.algorithm.value.upper()}-{key_pair.size}")
    print(f"Signature: {signature.hex()[:64]}... ({len(signature)} bytes)")
    print(f"Original message verifies: {valid}")
    print(f"Modified message verifies: {modified}")

    return 0 if valid and not modified else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='cryptochain',
        description='Merkle tree, block chain and signature demonstrations'
    )
    parser.add_argument('--log-level', default='WARNING')
    parser.add_argument('--hash', default=DEFAULT_HASH_ALGORITHM,
                        help='hashlib algorithm for trees and blocks')
    sub = parser.add_subparsers(dest='cmd')

    merklep = sub.add_parser('merkle', help='build a tree and verify proofs')
    merklep.add_argument('items', nargs='+')

    chainp = sub.add_parser('chain', help='build and validate a chain of blocks')
    chainp.add_argument('payloads', nargs='+')
    chainp.add_argument('--delay', type=float, default=DEFAULT_MINING_DELAY,
                        help='seconds to wait between blocks')

    signp = sub.add_parser('sign', help='sign and verify a message')
    signp.add_argument('message')
    signp.add_argument('--algorithm', choices=['rsa', 'ec'], default='rsa')
    signp.add_argument('--size', type=int)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for cryptochain."""
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        configure_logging(args.log_level)
    except ValueError as e:
        parser.error(str(e))

    try:
        if args.cmd == 'merkle':
            return run_merkle(args.items, args.hash)
        if args.cmd == 'chain':
            return run_chain(args.payloads, args.delay, args.hash)
        if args.cmd == 'sign':
            return run_sign(args.message, args.algorithm, args.size)
    except (CryptoChainError, ValueError) as e:
        logger.debug("Command %s failed", args.cmd, exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 2

    parser.print_help()
    return 0


if __name__ == "__main__":
    sys.exit(main())
