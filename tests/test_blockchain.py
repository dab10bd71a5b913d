"""
Unit tests for Blockchain Ledger module.

Tests:
- Block creation and linking
- Chain validation
- Tampered chain detection
- Mining delay and cancellation
- Serialization
"""

import itertools
import json
import logging
import threading
from dataclasses import FrozenInstanceError, replace

import pytest

from cryptochain.blockchain.ledger import (
    Block, Blockchain, IssueKind, build_chain, compute_block_hash,
    genesis_prev_hash, screen_payloads, validate_chain, GENESIS_PREV_HASH,
    MAX_RECOMMENDED_DATA_SIZE
)
from cryptochain.blockchain.timing import MiningDelay, system_clock_ms
from cryptochain.core_crypto.hashing import HashlibOracle
from cryptochain.errors import (
    ChainDecodeError, ChainEmptyError, ChainValidationError, CryptoChainError,
    EmptyInputError
)

START_MS = 1_700_000_000_000


def fixed_clock(start=START_MS, step=1000):
    """Clock returning start, start + step, start + 2 * step, ..."""
    counter = itertools.count(start, step)
    return lambda: next(counter)


def no_wait():
    return MiningDelay(1.0, waiter=lambda seconds: None)


@pytest.fixture
def chain():
    blockchain = Blockchain(clock=fixed_clock())
    for payload in ("Genesis", "Block 1", "Block 2"):
        blockchain.append(payload)
    return blockchain


class TestBlock:
    """Tests for Block structure."""

    def test_block_is_frozen(self, chain):
        """Blocks cannot be modified after creation."""
        with pytest.raises(FrozenInstanceError):
            chain.blocks[0].data = "changed"

    def test_block_hash_matches_fields(self, chain):
        """Stored hash is the hash of the block's fields."""
        block = chain.blocks[1]
        assert block.current_hash == compute_block_hash(
            block.block_id, block.timestamp, block.data,
            block.previous_hash, block.nonce
        )

    def test_hash_covers_every_field(self):
        """Changing any hashed field changes the hash."""
        base = dict(block_id=1, timestamp=START_MS, data="x",
                    previous_hash=b'\x01' * 32, nonce=1)
        reference = compute_block_hash(**base)
        for key, value in [('block_id', 2), ('timestamp', START_MS + 1), ('data', "y"),
                           ('previous_hash', b'\x02' * 32), ('nonce', 2)]:
            assert compute_block_hash(**dict(base, **{key: value})) != reference

    def test_block_size_is_utf8_length(self):
        """block_size counts UTF-8 bytes, not characters."""
        blockchain = Blockchain(clock=fixed_clock())
        block = blockchain.append("héllo")
        assert block.block_size == 6

    def test_timestamp_readable(self, chain):
        """Readable timestamp is ISO-8601 UTC with milliseconds."""
        assert chain.blocks[0].timestamp_readable == "2023-11-14T22:13:20.000+00:00"

    def test_dict_round_trip(self, chain):
        """to_dict/from_dict preserve the block."""
        block = chain.blocks[2]
        assert Block.from_dict(block.to_dict()) == block

    def test_str(self, chain):
        """String form names the block and its data."""
        text = str(chain.blocks[1])
        assert text.startswith("Block #1")
        assert "'Block 1'" in text


class TestBlockchain:
    """Tests for Blockchain operations."""

    def test_genesis_block(self, chain):
        """Genesis references the all-zero hash and has id 0."""
        genesis = chain.blocks[0]
        assert genesis.block_id == 0
        assert genesis.previous_hash == GENESIS_PREV_HASH
        assert GENESIS_PREV_HASH == b'\x00' * 32

    def test_blocks_are_linked(self, chain):
        """Each block references the previous block's hash."""
        blocks = chain.blocks
        for earlier, later in zip(blocks, blocks[1:]):
            assert later.previous_hash == earlier.current_hash

    def test_ids_and_nonces(self, chain):
        """Ids are positions and nonces default to the id."""
        assert [b.block_id for b in chain] == [0, 1, 2]
        assert [b.nonce for b in chain] == [0, 1, 2]

    def test_explicit_nonce(self):
        """A caller-supplied nonce is recorded and hashed."""
        blockchain = Blockchain(clock=fixed_clock())
        block = blockchain.append("data", nonce=42)
        assert block.nonce == 42
        assert blockchain.validate().is_valid

    def test_timestamps_from_clock(self, chain):
        """Timestamps come from the injected clock."""
        assert [b.timestamp for b in chain] == [START_MS, START_MS + 1000, START_MS + 2000]

    def test_length(self, chain):
        """Length grows with each append."""
        assert chain.length == 3
        assert len(chain) == 3

    def test_blocks_view_is_a_copy(self, chain):
        """Mutating the returned list does not change the chain."""
        blocks = chain.blocks
        blocks.pop()
        assert chain.length == 3

    def test_hash_views(self, chain):
        """Genesis/latest hashes and creation time."""
        assert chain.genesis_hash == chain.blocks[0].current_hash
        assert chain.latest_hash == chain.blocks[-1].current_hash
        assert chain.last_block.block_id == 2
        assert chain.created_at == START_MS

    def test_empty_chain_views(self):
        """Views that need a block raise on an empty chain."""
        blockchain = Blockchain()
        assert blockchain.length == 0
        assert repr(blockchain) == "Blockchain(empty)"
        for view in ('last_block', 'genesis_hash', 'latest_hash', 'created_at'):
            with pytest.raises(ChainEmptyError):
                getattr(blockchain, view)

    def test_non_string_data_rejected(self):
        """Block payloads must be text."""
        with pytest.raises(TypeError):
            Blockchain().append(b"bytes")

    def test_average_block_time(self, chain):
        """Average spacing of a fixed clock is its step."""
        assert chain.average_block_time == 1000.0

    def test_average_block_time_single_block(self):
        """A single block has no spacing."""
        blockchain = Blockchain(clock=fixed_clock())
        blockchain.append("only")
        assert blockchain.average_block_time == 0.0

    def test_stats(self, chain):
        """Stats summarize timing and hashes."""
        stats = chain.stats()
        assert stats.length == 3
        assert stats.span_ms == 2000
        assert stats.min_block_time == 1000
        assert stats.max_block_time == 1000
        assert stats.genesis_hash == chain.genesis_hash

    def test_stats_empty(self):
        """Stats of an empty chain raise."""
        with pytest.raises(ChainEmptyError):
            Blockchain().stats()

    def test_render(self, chain):
        """Render lists every block."""
        text = chain.render()
        assert text.startswith("Blockchain (length=3)")
        assert "Block #0" in text and "Block #2" in text

    def test_injected_hash_oracle(self):
        """The chain hashes with the oracle it was given."""
        oracle = HashlibOracle("sha3_256")
        blockchain = Blockchain(oracle, clock=fixed_clock())
        block = blockchain.append("data")
        assert block.current_hash == compute_block_hash(
            0, START_MS, "data", GENESIS_PREV_HASH, 0, oracle
        )
        assert blockchain.validate().is_valid

    def test_genesis_sentinel_matches_digest_width(self):
        """With a 64-byte hash the genesis link is 64 zero bytes."""
        oracle = HashlibOracle("sha512")
        blockchain = Blockchain(oracle, clock=fixed_clock())
        blockchain.append("g")
        blockchain.append("next")

        genesis = blockchain.blocks[0]
        assert genesis.previous_hash == b'\x00' * 64
        assert genesis.previous_hash == genesis_prev_hash(oracle)
        assert len(genesis.previous_hash) == len(blockchain.blocks[1].previous_hash)
        assert blockchain.validate().is_valid

    def test_default_genesis_sentinel(self):
        assert genesis_prev_hash() == GENESIS_PREV_HASH


class TestChainValidation:
    """Tests for validation and tamper detection."""

    def test_valid_chain(self, chain):
        """An untouched chain validates with no issues."""
        result = chain.validate()
        assert result.is_valid
        assert result.blocks_validated == 3
        assert result.errors == []
        assert result.details.hash_consistency
        assert result.details.chain_consistency
        assert result.details.timestamp_consistency

    def test_empty_chain_raises(self):
        """Validating nothing is a precondition failure."""
        with pytest.raises(ChainEmptyError):
            Blockchain().validate()
        with pytest.raises(CryptoChainError):
            validate_chain([])

    def test_tampered_copy_detected(self, chain):
        """Changing one block's data is reported as a hash mismatch on that block."""
        forged = chain.tampered_copy(1, "TAMPERED DATA")
        result = forged.validate()

        assert not result.is_valid
        assert [(i.kind, i.position) for i in result.issues] == [(IssueKind.HASH_MISMATCH, 1)]
        assert result.errors[0].startswith("Block 1: Hash mismatch. Expected: ")
        assert not result.details.hash_consistency
        assert result.details.chain_consistency

    def test_tampering_leaves_neighbours_valid(self, chain):
        """Blocks before and after the tampered one still hash correctly."""
        forged = chain.tampered_copy(1, "TAMPERED DATA")
        for position in (0, 2):
            block = forged.blocks[position]
            assert block.current_hash == compute_block_hash(
                block.block_id, block.timestamp, block.data,
                block.previous_hash, block.nonce
            )

    def test_tampered_copy_leaves_original(self, chain):
        """The live chain is untouched by tamper simulation."""
        chain.tampered_copy(1, "TAMPERED DATA")
        assert chain.blocks[1].data == "Block 1"
        assert chain.validate().is_valid

    def test_tampered_copy_out_of_range(self, chain):
        """Only existing blocks can be tampered."""
        with pytest.raises(IndexError):
            chain.tampered_copy(3, "x")
        with pytest.raises(IndexError):
            chain.tampered_copy(-1, "x")

    def test_rehashed_block_breaks_link(self, chain):
        """Recomputing a tampered block's hash breaks the next link instead."""
        blocks = chain.blocks
        old = blocks[1]
        blocks[1] = replace(old, data="forged", current_hash=compute_block_hash(
            old.block_id, old.timestamp, "forged", old.previous_hash, old.nonce
        ))
        result = validate_chain(blocks)

        assert [(i.kind, i.position) for i in result.issues] == [(IssueKind.CHAIN_LINK_MISMATCH, 2)]
        assert "Previous hash mismatch" in result.errors[0]
        assert not result.details.chain_consistency

    def test_timestamp_order_violation(self):
        """A block earlier than its predecessor is reported."""
        times = iter([START_MS + 5000, START_MS])
        blockchain = Blockchain(clock=lambda: next(times))
        blockchain.append("first")
        blockchain.append("second")
        result = blockchain.validate()

        assert [(i.kind, i.position) for i in result.issues] == [
            (IssueKind.TIMESTAMP_ORDER_VIOLATION, 1)
        ]
        assert not result.details.timestamp_consistency

    def test_equal_timestamps_allowed(self):
        """Timestamps need only be non-decreasing."""
        blockchain = Blockchain(clock=lambda: START_MS)
        blockchain.append("first")
        blockchain.append("second")
        assert blockchain.validate().is_valid

    def test_sequence_violation(self, chain):
        """A block whose id is not its position is reported."""
        blocks = chain.blocks[:2]
        previous = blocks[1]
        timestamp = previous.timestamp + 1000
        current_hash = compute_block_hash(7, timestamp, "late", previous.current_hash, 7)
        blocks.append(Block(7, timestamp, "late", previous.current_hash, current_hash, 7, 4))
        result = validate_chain(blocks)

        assert [(i.kind, i.position) for i in result.issues] == [(IssueKind.SEQUENCE_VIOLATION, 2)]
        assert result.errors == ["Block 7: Block ID should be 2"]

    def test_bad_genesis_reference(self):
        """Genesis must reference the all-zero hash."""
        previous_hash = b'\x11' * 32
        current_hash = compute_block_hash(0, START_MS, "g", previous_hash, 0)
        genesis = Block(0, START_MS, "g", previous_hash, current_hash, 0, 1)
        result = validate_chain([genesis])

        assert [(i.kind, i.position) for i in result.issues] == [(IssueKind.CHAIN_LINK_MISMATCH, 0)]

    def test_all_problems_collected(self, chain):
        """Validation continues past the first problem."""
        blocks = chain.blocks
        blocks[0] = replace(blocks[0], data="x")
        blocks[2] = replace(blocks[2], data="y")
        result = validate_chain(blocks)
        assert [i.position for i in result.issues_of(IssueKind.HASH_MISMATCH)] == [0, 2]
        assert len(result.errors) == 2

    def test_invalid_chain_logs_warning(self, chain, caplog):
        """A failed validation is logged."""
        forged = chain.tampered_copy(0, "x")
        with caplog.at_level(logging.WARNING, logger="cryptochain"):
            forged.validate()
        assert "Chain validation found 1 problem(s)" in caplog.text

    def test_wrong_hash_oracle_fails(self, chain):
        """Validating with a different hash function reports every block."""
        result = validate_chain(chain.blocks, HashlibOracle("sha3_256"))
        assert len(result.issues_of(IssueKind.HASH_MISMATCH)) == 3


class TestSerialization:
    """Tests for JSON round trips."""

    def test_json_round_trip(self, chain):
        """Loaded chain equals the saved one."""
        loaded = Blockchain.from_json(chain.to_json())
        assert loaded.blocks == chain.blocks
        assert loaded.validate().is_valid

    def test_json_names_algorithm(self, chain):
        """The document records the hash algorithm."""
        assert json.loads(chain.to_json())['hash_algorithm'] == 'sha256'

    def test_json_uses_recorded_algorithm(self):
        """Chains built with another hash reload with it."""
        blockchain = Blockchain(HashlibOracle("blake2s"), clock=fixed_clock())
        blockchain.append("a")
        blockchain.append("b")
        loaded = Blockchain.from_json(blockchain.to_json())
        assert loaded.hash_oracle.name == "blake2s"
        assert loaded.validate().is_valid

    def test_tampered_json_rejected(self, chain):
        """Loading a tampered document raises with the report attached."""
        document = json.loads(chain.to_json())
        document['chain'][1]['data'] = "forged"
        with pytest.raises(ChainValidationError) as excinfo:
            Blockchain.from_json(json.dumps(document))
        assert excinfo.value.result.issues[0].kind is IssueKind.HASH_MISMATCH

    def test_tampered_json_without_validation(self, chain):
        """validate=False loads the document as-is."""
        document = json.loads(chain.to_json())
        document['chain'][1]['data'] = "forged"
        loaded = Blockchain.from_json(json.dumps(document), validate=False)
        assert not loaded.validate().is_valid

    @pytest.mark.parametrize("document", [
        "not json",
        "[]",
        "{}",
        '{"chain": 5}',
        '{"chain": [7]}',
        '{"chain": [{"block_id": 0}]}',
        '{"hash_algorithm": "not-a-hash", "chain": []}',
    ])
    def test_malformed_document(self, document):
        """Malformed documents raise ChainDecodeError."""
        with pytest.raises(ChainDecodeError):
            Blockchain.from_json(document)

    def test_decode_error_is_value_error(self):
        """ChainDecodeError is caught by code expecting ValueError or CryptoChainError."""
        for base in (ValueError, CryptoChainError):
            with pytest.raises(base):
                Blockchain.from_json("{}")

    def test_sha512_round_trip(self):
        """A chain with a 64-byte hash reloads and validates."""
        blockchain = Blockchain(HashlibOracle("sha512"), clock=fixed_clock())
        blockchain.append("a")
        blockchain.append("b")
        loaded = Blockchain.from_json(blockchain.to_json())
        assert loaded.blocks == blockchain.blocks


class TestBuildChain:
    """Tests for build_chain and the mining delay."""

    def test_genesis_only_chain(self):
        """A chain built from one payload references the genesis sentinel and validates."""
        blockchain = build_chain(["g"])
        assert blockchain.length == 1
        assert blockchain.blocks[0].previous_hash == GENESIS_PREV_HASH
        assert blockchain.validate().is_valid

    def test_builds_one_block_per_payload(self):
        """Every payload becomes a block, in order."""
        blockchain = build_chain(["a", "b", "c"], no_wait(), clock=fixed_clock())
        assert [b.data for b in blockchain] == ["a", "b", "c"]
        assert blockchain.validate().is_valid

    def test_empty_payloads(self):
        """An empty payload list is rejected."""
        with pytest.raises(EmptyInputError):
            build_chain([], no_wait())
        with pytest.raises(ValueError):
            build_chain([], no_wait())

    def test_waits_between_blocks(self):
        """The delay runs once between each pair of blocks."""
        waits = []
        delay = MiningDelay(0.25, waiter=waits.append)
        build_chain(["a", "b", "c", "d"], delay, clock=fixed_clock())
        assert waits == [0.25, 0.25, 0.25]

    def test_cancellation_stops_creation(self):
        """A cancelled delay ends the chain at the blocks built so far."""
        delay = MiningDelay(1.0, waiter=lambda seconds: delay.cancel())
        blockchain = build_chain(["a", "b", "c"], delay, clock=fixed_clock())
        assert blockchain.length == 1
        assert blockchain.validate().is_valid

    def test_zero_delay(self):
        """A zero delay does not wait."""
        blockchain = build_chain(["a", "b"], MiningDelay(0), clock=fixed_clock())
        assert blockchain.length == 2


class TestMiningDelay:
    """Tests for MiningDelay."""

    def test_negative_rejected(self):
        with pytest.raises(ValueError):
            MiningDelay(-1)

    def test_cancel_is_sticky(self):
        """After cancel every wait returns False."""
        delay = MiningDelay(0)
        assert delay.wait()
        delay.cancel()
        assert delay.cancelled
        assert not delay.wait()
        assert not delay.wait()

    def test_cancel_interrupts_wait(self):
        """Cancelling from another thread ends a long wait early."""
        delay = MiningDelay(30.0)
        timer = threading.Timer(0.05, delay.cancel)
        timer.start()
        try:
            assert not delay.wait()
        finally:
            timer.cancel()

    def test_system_clock_is_milliseconds(self):
        """System clock returns integer milliseconds."""
        now = system_clock_ms()
        assert isinstance(now, int)
        assert now > START_MS


class TestPayloadScreening:
    """Tests for payload size warnings."""

    def test_normal_payloads(self):
        assert screen_payloads(["a", "b"]) == []

    def test_oversized_payload(self, caplog):
        """Large payloads are warned about, not rejected."""
        with caplog.at_level(logging.WARNING, logger="cryptochain"):
            warnings = screen_payloads(["x" * (MAX_RECOMMENDED_DATA_SIZE + 1)])
        assert len(warnings) == 1
        assert "exceed" in caplog.text

    def test_many_payloads(self):
        """Very long chains are warned about."""
        assert len(screen_payloads(["x"] * 1001)) == 1
