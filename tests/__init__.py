# cryptochain Test Suite
"""
Test suite including:
- Unit tests (hashing, Merkle trees, proofs, ledger, signatures)
- Security tests (tampering, forged and malformed proofs)
- CLI tests

Run with: pytest
Coverage: coverage run -m pytest && coverage report
"""
