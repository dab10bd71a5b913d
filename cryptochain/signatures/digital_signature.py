"""
Digital Signatures Module

Thin wrapper over the `cryptography` package providing:
- RSA and ECDSA key pair generation
- Signing (RSA-PSS / ECDSA, both over SHA-256)
- Verification that returns a bool instead of raising

ECDSA curves are chosen by size:
    256 -> secp256k1 (Bitcoin curve)
    384 -> secp384r1
    521 -> secp521r1
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, padding, rsa

logger = logging.getLogger(__name__)


# Constants
RSA_PUBLIC_EXPONENT = 65537
RSA_DEFAULT_SIZE = 2048
RSA_MIN_SIZE = 1024
EC_DEFAULT_SIZE = 256

EC_CURVES = {
    256: ec.SECP256K1,
    384: ec.SECP384R1,
    521: ec.SECP521R1,
}

PrivateKey = Union[rsa.RSAPrivateKey, ec.EllipticCurvePrivateKey]
PublicKey = Union[rsa.RSAPublicKey, ec.EllipticCurvePublicKey]


class SignatureAlgorithm(Enum):
    RSA = "rsa"
    EC = "ec"


@dataclass
class KeyPair:
    """RSA or ECDSA key pair container."""
    algorithm: SignatureAlgorithm
    size: int
    private_key: Optional[PrivateKey]
    public_key: PublicKey

    def public_pem(self) -> bytes:
        """Get public key as PEM (SubjectPublicKeyInfo)."""
        return self.public_key.public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo
        )

    def private_pem(self) -> bytes:
        """Get private key as unencrypted PKCS#8 PEM."""
        if self.private_key is None:
            raise ValueError("Key pair has no private key")
        return self.private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption()
        )

    @classmethod
    def from_public_pem(cls, data: bytes) -> 'KeyPair':
        """Create KeyPair from a PEM public key (public key only)."""
        public_key = serialization.load_pem_public_key(data)
        if isinstance(public_key, rsa.RSAPublicKey):
            return cls(SignatureAlgorithm.RSA, public_key.key_size, None, public_key)
        if isinstance(public_key, ec.EllipticCurvePublicKey):
            return cls(SignatureAlgorithm.EC, public_key.curve.key_size, None, public_key)
        raise ValueError(f"Unsupported public key type: {type(public_key).__name__}")


def generate_key_pair(algorithm: Union[str, SignatureAlgorithm] = "rsa",
                      size: Optional[int] = None) -> KeyPair:
    """
    Generate a new key pair.

    Args:
        algorithm: 'rsa' or 'ec'
        size: RSA modulus bits (default 2048) or EC curve size
            (256, 384 or 521; default 256)

    Returns:
        KeyPair with both keys

    Raises:
        ValueError: If the algorithm or size is not supported
    """
    algorithm = SignatureAlgorithm(algorithm)

    if algorithm is SignatureAlgorithm.RSA:
        size = size or RSA_DEFAULT_SIZE
        if size < RSA_MIN_SIZE:
            raise ValueError(f"RSA key size must be at least {RSA_MIN_SIZE} bits")
        private_key = rsa.generate_private_key(
            public_exponent=RSA_PUBLIC_EXPONENT,
            key_size=size
        )
    else:
        size = size or EC_DEFAULT_SIZE
        if size not in EC_CURVES:
            raise ValueError(f"EC key size must be one of {sorted(EC_CURVES)}")
        private_key = ec.generate_private_key(EC_CURVES[size]())

    logger.debug("Generated %s-%d key pair", algorithm.value.upper(), size)
    return KeyPair(algorithm, size, private_key, private_key.public_key())


def sign(message: bytes, private_key: PrivateKey) -> bytes:
    """
    Sign a message.

    Args:
        message: Data to sign (hashed with SHA-256 by the signature scheme)
        private_key: RSA or EC private key

    Returns:
        Signature bytes
    """
    if isinstance(private_key, rsa.RSAPrivateKey):
        return private_key.sign(
            message,
            padding.PSS(
                mgf=padding.MGF1(hashes.SHA256()),
                salt_length=padding.PSS.MAX_LENGTH
            ),
            hashes.SHA256()
        )
    if isinstance(private_key, ec.EllipticCurvePrivateKey):
        return private_key.sign(message, ec.ECDSA(hashes.SHA256()))
    raise TypeError(f"Unsupported private key type: {type(private_key).__name__}")


def verify(message: bytes, signature: bytes, public_key: PublicKey) -> bool:
    """
    Verify a signature.

    Args:
        message: Original data that was signed
        signature: Signature bytes
        public_key: Signer's public key

    Returns:
        True if signature is valid, False otherwise
    """
    try:
        if isinstance(public_key, rsa.RSAPublicKey):
            public_key.verify(
                signature,
                message,
                padding.PSS(
                    mgf=padding.MGF1(hashes.SHA256()),
                    salt_length=padding.PSS.MAX_LENGTH
                ),
                hashes.SHA256()
            )
        elif isinstance(public_key, ec.EllipticCurvePublicKey):
            public_key.verify(signature, message, ec.ECDSA(hashes.SHA256()))
        else:
            return False
        return True
    except (InvalidSignature, UnsupportedAlgorithm, ValueError, TypeError):
        return False


class SignatureOracle:
    """
    Key generation, signing and verification behind one object, so callers
    can take the signature scheme as a dependency.
    """

    def generate_key_pair(self, algorithm: Union[str, SignatureAlgorithm] = "rsa",
                          size: Optional[int] = None) -> KeyPair:
        return generate_key_pair(algorithm, size)

    def sign(self, message: bytes, private_key: PrivateKey) -> bytes:
        return sign(message, private_key)

    def verify(self, message: bytes, signature: bytes, public_key: PublicKey) -> bool:
        return verify(message, signature, public_key)
