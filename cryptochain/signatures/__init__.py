# Digital Signatures Module
"""
Public-key signatures used as a collaborator of the chain demos:
- RSA (PSS padding) and ECDSA (secp256k1 / secp384r1 / secp521r1)
- SHA-256 message digests
"""

from .digital_signature import (
    KeyPair,
    SignatureAlgorithm,
    SignatureOracle,
    generate_key_pair,
    sign,
    verify,
)

__all__ = [
    'KeyPair',
    'SignatureAlgorithm',
    'SignatureOracle',
    'generate_key_pair',
    'sign',
    'verify',
]
