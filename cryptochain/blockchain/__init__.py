# Blockchain Module
"""
Timestamped chain-of-blocks implementation including:
- Hash-linked immutable blocks (frozen dataclass)
- Genesis block with all-zero previous hash
- Full chain validation collecting every diagnostic
- Cancellable simulated mining delay
"""

from .ledger import (
    Block,
    Blockchain,
    ChainStats,
    IssueKind,
    ValidationIssue,
    ValidationDetails,
    ValidationResult,
    build_chain,
    compute_block_hash,
    screen_payloads,
    validate_chain,
    genesis_prev_hash,
    GENESIS_PREV_HASH,
    MAX_RECOMMENDED_BLOCKS,
    MAX_RECOMMENDED_DATA_SIZE,
)
from .timing import MiningDelay, system_clock_ms, DEFAULT_MINING_DELAY

__all__ = [
    'Block',
    'Blockchain',
    'ChainStats',
    'IssueKind',
    'ValidationIssue',
    'ValidationDetails',
    'ValidationResult',
    'build_chain',
    'compute_block_hash',
    'screen_payloads',
    'validate_chain',
    'genesis_prev_hash',
    'GENESIS_PREV_HASH',
    'MAX_RECOMMENDED_BLOCKS',
    'MAX_RECOMMENDED_DATA_SIZE',
    'MiningDelay',
    'system_clock_ms',
    'DEFAULT_MINING_DELAY',
]
