"""
Blockchain Ledger Module

Implements a simple timestamped chain of blocks with:
- Hash chaining (each block binds the previous block's hash)
- Injectable hash oracle and clock
- Full chain validation that collects every problem instead of stopping
  at the first one
- Tamper simulation on a deep copy of the chain

Block hash input (fixed binary header):
    [block_id (8) | timestamp_ms (8) | data_len (4) | data (UTF-8) |
     previous_hash | nonce (8)]

The nonce is illustrative only; there is no proof of work.
"""

import copy
import json
import logging
import struct
import time
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Sequence

from ..core_crypto.hashing import HashOracle, HashlibOracle, default_hash_oracle
from ..errors import (
    ChainDecodeError, ChainEmptyError, ChainValidationError, EmptyInputError
)
from .timing import Clock, MiningDelay, system_clock_ms

logger = logging.getLogger(__name__)


# ============================================================================
# Constants
# ============================================================================

GENESIS_PREV_HASH = b'\x00' * 32  # 32 zero bytes for genesis block (SHA-256)
INT64_MIN = -2 ** 63
INT64_MAX = 2 ** 63 - 1
MAX_RECOMMENDED_BLOCKS = 1000
MAX_RECOMMENDED_DATA_SIZE = 10_000  # bytes per block payload


def genesis_prev_hash(hash_oracle: Optional[HashOracle] = None) -> bytes:
    """All-zero previous hash for a genesis block, one digest wide."""
    oracle = hash_oracle or default_hash_oracle()
    return b'\x00' * oracle.digest_size


def _is_int64(value: Any) -> bool:
    return (
        isinstance(value, int) and not isinstance(value, bool)
        and INT64_MIN <= value <= INT64_MAX
    )


def _check_int64(name: str, value: Any) -> None:
    if not _is_int64(value):
        raise ValueError(f"{name} must be a signed 64-bit integer, got {value!r}")


# ============================================================================
# Block Structure (Immutable)
# ============================================================================

@dataclass(frozen=True)
class Block:
    """
    Immutable block structure for the blockchain.

    frozen=True ensures blocks cannot be modified after creation; tamper
    simulation builds modified copies instead.
    """
    block_id: int
    timestamp: int  # Unix time in milliseconds
    data: str
    previous_hash: bytes
    current_hash: bytes
    nonce: int
    block_size: int

    @property
    def timestamp_readable(self) -> str:
        """Timestamp as an ISO-8601 UTC string."""
        moment = datetime.fromtimestamp(self.timestamp / 1000, tz=timezone.utc)
        return moment.isoformat(timespec='milliseconds')

    def to_dict(self) -> Dict[str, Any]:
        """Convert block to dictionary for serialization."""
        return {
            'block_id': self.block_id,
            'timestamp': self.timestamp,
            'data': self.data,
            'previous_hash': self.previous_hash.hex(),
            'current_hash': self.current_hash.hex(),
            'nonce': self.nonce,
            'block_size': self.block_size,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Block':
        """
        Create block from dictionary.

        Integer fields must be integers but are not range-checked here;
        out-of-range values are reported by chain validation.

        Raises:
            ChainDecodeError: If a field is missing or has the wrong type
        """
        try:
            for key in ('block_id', 'timestamp', 'nonce', 'block_size'):
                value = data[key]
                if not isinstance(value, int) or isinstance(value, bool):
                    raise TypeError(f"{key} must be an integer, got {value!r}")
            if not isinstance(data['data'], str):
                raise TypeError("data must be a string")

            return cls(
                block_id=data['block_id'],
                timestamp=data['timestamp'],
                data=data['data'],
                previous_hash=bytes.fromhex(data['previous_hash']),
                current_hash=bytes.fromhex(data['current_hash']),
                nonce=data['nonce'],
                block_size=data['block_size'],
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ChainDecodeError(f"Invalid block dictionary: {e}") from e

    def __str__(self) -> str:
        return (
            f"Block #{self.block_id}\n"
            f"  Time: {self.timestamp_readable}\n"
            f"  Data: {self.data!r}\n"
            f"  Hash: {self.current_hash.hex()[:16]}...\n"
            f"  Prev: {self.previous_hash.hex()[:16]}...\n"
            f"  Nonce: {self.nonce}"
        )


def compute_block_hash(
    block_id: int,
    timestamp: int,
    data: str,
    previous_hash: bytes,
    nonce: int,
    hash_oracle: Optional[HashOracle] = None
) -> bytes:
    """
    Compute the hash of a block from its fields.

    Args:
        block_id: Position of the block in the chain
        timestamp: Block timestamp in milliseconds
        data: Block payload
        previous_hash: Hash of the previous block
        nonce: Block nonce
        hash_oracle: Hash function (SHA-256 by default)

    Returns:
        Block digest

    Raises:
        ValueError: If an integer field is not a signed 64-bit integer
        TypeError: If data is not a string or previous_hash is not bytes
    """
    _check_int64("block_id", block_id)
    _check_int64("timestamp", timestamp)
    _check_int64("nonce", nonce)
    if not isinstance(data, str):
        raise TypeError(f"Block data must be str, got {type(data).__name__}")
    if not isinstance(previous_hash, bytes):
        raise TypeError("previous_hash must be bytes")

    oracle = hash_oracle or default_hash_oracle()
    payload = data.encode('utf-8')
    header = (
        struct.pack('>qqI', block_id, timestamp, len(payload)) +
        payload +
        previous_hash +
        struct.pack('>q', nonce)
    )
    return oracle.hash(header)


# ============================================================================
# Validation Results
# ============================================================================

class IssueKind(Enum):
    """Kinds of problems chain validation can report."""
    HASH_MISMATCH = "hash_mismatch"
    CHAIN_LINK_MISMATCH = "chain_link_mismatch"
    TIMESTAMP_ORDER_VIOLATION = "timestamp_order_violation"
    SEQUENCE_VIOLATION = "sequence_violation"


@dataclass(frozen=True)
class ValidationIssue:
    """A single validation diagnostic."""
    kind: IssueKind
    position: int  # index of the block in the chain
    message: str


@dataclass
class ValidationDetails:
    hash_consistency: bool = True
    chain_consistency: bool = True
    timestamp_consistency: bool = True


@dataclass
class ValidationResult:
    """Full diagnostic report from validate_chain."""
    is_valid: bool
    blocks_validated: int
    errors: List[str] = field(default_factory=list)
    issues: List[ValidationIssue] = field(default_factory=list)
    details: ValidationDetails = field(default_factory=ValidationDetails)
    validation_time_ms: float = 0.0

    def issues_of(self, kind: IssueKind) -> List[ValidationIssue]:
        """Get all issues of one kind."""
        return [issue for issue in self.issues if issue.kind is kind]


def validate_chain(
    blocks: Sequence[Block],
    hash_oracle: Optional[HashOracle] = None
) -> ValidationResult:
    """
    Validate every block of a chain.

    For each block i:
    - its hash is recomputed from the stored fields
    - block 0 must reference the all-zero digest (genesis_prev_hash);
      block i > 0 must reference the hash of block i - 1
    - for i > 0 its timestamp must not be earlier than block i - 1's
    - its block_id must equal i

    Validation is read-only and never stops early.

    Args:
        blocks: Blocks in chain order
        hash_oracle: Hash function the chain was built with

    Returns:
        ValidationResult with all errors found

    Raises:
        ChainEmptyError: If blocks is empty
    """
    if not blocks:
        raise ChainEmptyError("No blocks to validate")

    oracle = hash_oracle or default_hash_oracle()
    genesis = genesis_prev_hash(oracle)
    started = time.perf_counter()
    details = ValidationDetails()
    issues: List[ValidationIssue] = []

    def report(kind: IssueKind, position: int, message: str) -> None:
        issues.append(ValidationIssue(kind, position, message))

    for i, block in enumerate(blocks):
        # Hash consistency
        try:
            recalculated = compute_block_hash(
                block.block_id, block.timestamp, block.data,
                block.previous_hash, block.nonce, oracle
            )
        except (TypeError, ValueError) as e:
            details.hash_consistency = False
            report(
                IssueKind.HASH_MISMATCH, i,
                f"Block {block.block_id}: Hash mismatch. Header cannot be encoded: {e}"
            )
        else:
            if recalculated != block.current_hash:
                details.hash_consistency = False
                report(
                    IssueKind.HASH_MISMATCH, i,
                    f"Block {block.block_id}: Hash mismatch. "
                    f"Expected: {recalculated.hex()}, Found: {_hex(block.current_hash)}"
                )

        if i == 0:
            if block.previous_hash != genesis:
                details.chain_consistency = False
                report(
                    IssueKind.CHAIN_LINK_MISMATCH, i,
                    f"Block {block.block_id}: Genesis previous hash must be "
                    f"{genesis.hex()}, Found: {_hex(block.previous_hash)}"
                )
        else:
            previous = blocks[i - 1]

            # Chain consistency
            if block.previous_hash != previous.current_hash:
                details.chain_consistency = False
                report(
                    IssueKind.CHAIN_LINK_MISMATCH, i,
                    f"Block {block.block_id}: Previous hash mismatch. "
                    f"Expected: {_hex(previous.current_hash)}, Found: {_hex(block.previous_hash)}"
                )

            # Timestamp consistency; non-integer stamps are already a hash mismatch
            if (_is_int64(block.timestamp) and _is_int64(previous.timestamp)
                    and block.timestamp < previous.timestamp):
                details.timestamp_consistency = False
                report(
                    IssueKind.TIMESTAMP_ORDER_VIOLATION, i,
                    f"Block {block.block_id}: Timestamp {block.timestamp} is before "
                    f"previous block timestamp {previous.timestamp}"
                )

        # Sequence
        if block.block_id != i:
            report(
                IssueKind.SEQUENCE_VIOLATION, i,
                f"Block {block.block_id}: Block ID should be {i}"
            )

    result = ValidationResult(
        is_valid=not issues,
        blocks_validated=len(blocks),
        errors=[issue.message for issue in issues],
        issues=issues,
        details=details,
        validation_time_ms=(time.perf_counter() - started) * 1000,
    )

    if result.is_valid:
        logger.debug("Validated %d blocks: chain is valid", len(blocks))
    else:
        logger.warning(
            "Chain validation found %d problem(s) in %d blocks",
            len(issues), len(blocks)
        )
    return result


def _hex(value: Any) -> str:
    return value.hex() if isinstance(value, bytes) else repr(value)


# ============================================================================
# Blockchain
# ============================================================================

@dataclass(frozen=True)
class ChainStats:
    """Summary figures for a chain."""
    length: int
    genesis_hash: bytes
    latest_hash: bytes
    created_at: int
    span_ms: int
    average_block_time: float
    min_block_time: Optional[int]
    max_block_time: Optional[int]


class Blockchain:
    """
    A hash-linked chain of timestamped blocks.

    The chain only grows by append and provides no internal locking:
    concurrent appends to the same instance must be serialized by the
    caller.

    Example:
        >>> chain = Blockchain()
        >>> genesis = chain.append("genesis")
        >>> block = chain.append("second")
        >>> chain.validate().is_valid
        True
    """

    def __init__(
        self,
        hash_oracle: Optional[HashOracle] = None,
        clock: Optional[Clock] = None
    ):
        """
        Initialize an empty blockchain.

        Args:
            hash_oracle: Hash function for block hashes (SHA-256 by default)
            clock: Callable returning the current time in milliseconds
        """
        self._hash = hash_oracle or default_hash_oracle()
        self._clock = clock or system_clock_ms
        self._chain: List[Block] = []

    @property
    def hash_oracle(self) -> HashOracle:
        return self._hash

    @property
    def blocks(self) -> List[Block]:
        """Get the blocks (copy of the list; blocks themselves are immutable)."""
        return list(self._chain)

    @property
    def length(self) -> int:
        """Get blockchain length."""
        return len(self._chain)

    def __len__(self) -> int:
        return len(self._chain)

    def __iter__(self) -> Iterator[Block]:
        return iter(list(self._chain))

    @property
    def last_block(self) -> Block:
        """
        Get the last block in the chain.

        Raises:
            ChainEmptyError: If the chain has no blocks
        """
        if not self._chain:
            raise ChainEmptyError("Chain has no blocks")
        return self._chain[-1]

    @property
    def genesis_hash(self) -> bytes:
        """Hash of the first block."""
        if not self._chain:
            raise ChainEmptyError("Chain has no genesis block")
        return self._chain[0].current_hash

    @property
    def latest_hash(self) -> bytes:
        """Hash of the last block."""
        return self.last_block.current_hash

    @property
    def created_at(self) -> int:
        """Timestamp of the genesis block."""
        if not self._chain:
            raise ChainEmptyError("Chain has no genesis block")
        return self._chain[0].timestamp

    @property
    def average_block_time(self) -> float:
        """Mean milliseconds between consecutive blocks (0 for one block)."""
        if len(self._chain) < 2:
            return 0.0
        span = self._chain[-1].timestamp - self._chain[0].timestamp
        return span / (len(self._chain) - 1)

    def append(self, data: str, nonce: Optional[int] = None) -> Block:
        """
        Create a block for data, link it to the current tail and append it.

        Args:
            data: Block payload
            nonce: Nonce to record; defaults to the block's position

        Returns:
            The new block

        Raises:
            TypeError: If data is not a string
            ValueError: If nonce, or the clock reading, is not a signed
                64-bit integer
        """
        if not isinstance(data, str):
            raise TypeError(f"Block data must be str, got {type(data).__name__}")
        if nonce is not None:
            _check_int64("nonce", nonce)

        block_id = len(self._chain)
        previous_hash = (
            self._chain[-1].current_hash if self._chain else genesis_prev_hash(self._hash)
        )
        timestamp = self._clock()
        if nonce is None:
            nonce = block_id

        block = Block(
            block_id=block_id,
            timestamp=timestamp,
            data=data,
            previous_hash=previous_hash,
            current_hash=compute_block_hash(
                block_id, timestamp, data, previous_hash, nonce, self._hash
            ),
            nonce=nonce,
            block_size=len(data.encode('utf-8')),
        )

        self._chain.append(block)
        logger.debug(
            "Appended block %d (%d bytes) hash %s",
            block_id, block.block_size, block.current_hash.hex()[:16]
        )
        return block

    def validate(self) -> ValidationResult:
        """
        Validate the entire blockchain.

        Raises:
            ChainEmptyError: If the chain has no blocks
        """
        return validate_chain(self._chain, self._hash)

    def tampered_copy(self, block_id: int, data: str) -> 'Blockchain':
        """
        Return a deep copy of the chain with one block's data replaced.

        The replaced block keeps its stored hash, so validating the copy
        reports the tampering. This chain is left untouched.

        Raises:
            IndexError: If block_id is not in the chain
        """
        if not 0 <= block_id < len(self._chain):
            raise IndexError(f"Block {block_id} out of range [0, {len(self._chain) - 1}]")

        forged = Blockchain(self._hash, self._clock)
        forged._chain = copy.deepcopy(self._chain)
        forged._chain[block_id] = replace(forged._chain[block_id], data=data)
        return forged

    def stats(self) -> ChainStats:
        """
        Summarize chain timing.

        Raises:
            ChainEmptyError: If the chain has no blocks
        """
        deltas = [
            later.timestamp - earlier.timestamp
            for earlier, later in zip(self._chain, self._chain[1:])
        ]
        return ChainStats(
            length=self.length,
            genesis_hash=self.genesis_hash,
            latest_hash=self.latest_hash,
            created_at=self.created_at,
            span_ms=self._chain[-1].timestamp - self._chain[0].timestamp,
            average_block_time=self.average_block_time,
            min_block_time=min(deltas) if deltas else None,
            max_block_time=max(deltas) if deltas else None,
        )

    def to_json(self) -> str:
        """Serialize blockchain to JSON."""
        return json.dumps({
            'hash_algorithm': self._hash.name,
            'chain': [block.to_dict() for block in self._chain],
        }, indent=2)

    @classmethod
    def from_json(
        cls,
        json_str: str,
        hash_oracle: Optional[HashOracle] = None,
        validate: bool = True
    ) -> 'Blockchain':
        """
        Deserialize blockchain from JSON.

        Args:
            json_str: Output of to_json
            hash_oracle: Hash function; defaults to the algorithm named in
                the document
            validate: Validate the loaded chain

        Raises:
            ChainDecodeError: If the document is not a serialized chain
            ChainValidationError: If validate is set and the chain is invalid
        """
        try:
            data = json.loads(json_str)
            if hash_oracle is None:
                hash_oracle = HashlibOracle(data.get('hash_algorithm', 'sha256'))
            block_dicts = list(data['chain'])
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise ChainDecodeError(f"Invalid chain document: {e}") from e

        blockchain = cls(hash_oracle)
        blockchain._chain = [Block.from_dict(block_data) for block_data in block_dicts]

        if validate and blockchain._chain:
            result = blockchain.validate()
            if not result.is_valid:
                raise ChainValidationError(result)

        return blockchain

    def render(self) -> str:
        """Render the chain as text, genesis first."""
        lines = [f"Blockchain (length={self.length})", "=" * 60]
        for block in self._chain:
            lines.append(str(block))
            lines.append("-" * 40)
        return "\n".join(lines)

    def __repr__(self) -> str:
        if not self._chain:
            return "Blockchain(empty)"
        return f"Blockchain(length={self.length}, latest={self.latest_hash.hex()[:16]}...)"


# ============================================================================
# Convenience Functions
# ============================================================================

def screen_payloads(payloads: Sequence[str]) -> List[str]:
    """
    Check block payloads for sizes likely to make a demo chain slow.

    Warnings are logged and returned; nothing is rejected.
    """
    warnings = []
    if len(payloads) > MAX_RECOMMENDED_BLOCKS:
        warnings.append(
            f"{len(payloads)} blocks requested; chains over "
            f"{MAX_RECOMMENDED_BLOCKS} blocks may take significant time to create"
        )

    oversized = [p for p in payloads if len(p.encode('utf-8')) > MAX_RECOMMENDED_DATA_SIZE]
    if oversized:
        warnings.append(
            f"{len(oversized)} block(s) exceed {MAX_RECOMMENDED_DATA_SIZE} bytes"
        )

    for message in warnings:
        logger.warning(message)
    return warnings


def build_chain(
    payloads: Sequence[str],
    mining_delay: Optional[MiningDelay] = None,
    hash_oracle: Optional[HashOracle] = None,
    clock: Optional[Clock] = None
) -> Blockchain:
    """
    Create a chain with one block per payload, waiting between blocks.

    If the mining delay is cancelled, no further blocks are created and the
    chain built so far is returned (it is valid up to its last block).

    Args:
        payloads: Block payloads, genesis first
        mining_delay: Wait between blocks (1 second by default)
        hash_oracle: Hash function
        clock: Millisecond clock

    Returns:
        The new blockchain

    Raises:
        EmptyInputError: If payloads is empty
    """
    if not payloads:
        raise EmptyInputError("Cannot create blockchain with no data")

    screen_payloads(payloads)
    delay = mining_delay or MiningDelay()
    chain = Blockchain(hash_oracle, clock)

    for i, payload in enumerate(payloads):
        if i > 0 and not delay.wait():
            logger.info(
                "Block creation cancelled after %d of %d blocks",
                chain.length, len(payloads)
            )
            break
        chain.append(payload)

    logger.info("Created blockchain with %d blocks", chain.length)
    return chain
