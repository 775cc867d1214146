"""Key agreement and envelope encryption for sponsor sharing.

Both parties hold a P-256 key pair. Each side runs ECDH with its own private
key and the peer's public key, which yields the same 256-bit secret on both
ends without it ever being transmitted. That secret is used directly as an
AES-256-GCM key for every entry and comment exchanged on the connection.
"""

from __future__ import annotations

import base64
import binascii
import logging
import os

from cryptography.exceptions import InvalidTag, UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from recovery_companion.schemas.sponsor import EncryptedPayload, SponsorKeyPair
from recovery_companion.services.errors import CryptoUnavailable, DecryptionFailed

logger = logging.getLogger(__name__)

CURVE = ec.SECP256R1
SHARED_KEY_LENGTH_BYTES = 32
IV_LENGTH_BYTES = 12
PUBLIC_KEY_LENGTH_BYTES = 65  # uncompressed X9.62 point

_crypto_checked = False


def b64encode(data: bytes) -> str:
    """Encode bytes as standard base64 text."""
    return base64.b64encode(data).decode("ascii")


def b64decode(data: str) -> bytes:
    """Decode standard base64 text, rejecting non-alphabet characters."""
    try:
        return base64.b64decode(data.strip(), validate=True)
    except (binascii.Error, ValueError, AttributeError) as err:
        raise ValueError(f"Invalid base64 encoding: {err}") from err


def _self_test() -> None:
    """Exercise ECDH P-256 and AES-GCM once against the loaded backend."""
    local = ec.generate_private_key(CURVE())
    peer = ec.generate_private_key(CURVE())
    secret = local.exchange(ec.ECDH(), peer.public_key())
    iv = os.urandom(IV_LENGTH_BYTES)
    aead = AESGCM(secret[:SHARED_KEY_LENGTH_BYTES])
    aead.decrypt(iv, aead.encrypt(iv, b"probe", None), None)


class SponsorCryptoService:
    """Service handling the sponsor key exchange and envelope encryption."""

    @staticmethod
    def assert_crypto_available() -> None:
        """Raise ``CryptoUnavailable`` unless ECDH P-256 and AES-GCM both work.

        There is no weaker fallback: sharing is refused outright.
        """
        global _crypto_checked
        if _crypto_checked:
            return
        try:
            _self_test()
        except (UnsupportedAlgorithm, InvalidTag, ValueError) as err:
            logger.error("Required crypto primitives are unavailable: %s", err)
            raise CryptoUnavailable(
                "ECDH P-256 and AES-GCM are required for sponsor sharing"
            ) from err
        _crypto_checked = True

    @staticmethod
    def generate_key_pair() -> SponsorKeyPair:
        """Generate a P-256 key pair.

        Returns:
            Key pair with the public key as a base64 raw (uncompressed) point
            and the private key as base64 PKCS8 DER.
        """
        SponsorCryptoService.assert_crypto_available()
        private_key = ec.generate_private_key(CURVE())

        private_der = private_key.private_bytes(
            encoding=serialization.Encoding.DER,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )
        public_raw = private_key.public_key().public_bytes(
            encoding=serialization.Encoding.X962,
            format=serialization.PublicFormat.UncompressedPoint,
        )
        return SponsorKeyPair(public_key=b64encode(public_raw), private_key=b64encode(private_der))

    @staticmethod
    def load_private_key(private_key_b64: str) -> ec.EllipticCurvePrivateKey:
        """Load a base64 PKCS8 P-256 private key."""
        try:
            key = serialization.load_der_private_key(b64decode(private_key_b64), password=None)
        except (ValueError, TypeError, UnsupportedAlgorithm) as err:
            raise ValueError(f"Invalid private key: {err}") from err
        if not isinstance(key, ec.EllipticCurvePrivateKey) or not isinstance(key.curve, CURVE):
            raise ValueError("Private key must be an EC key on P-256")
        return key

    @staticmethod
    def load_public_key(public_key_b64: str) -> ec.EllipticCurvePublicKey:
        """Load a base64 raw P-256 public point."""
        raw = b64decode(public_key_b64)
        if len(raw) != PUBLIC_KEY_LENGTH_BYTES:
            raise ValueError("P-256 public keys must be 65-byte uncompressed points")
        try:
            return ec.EllipticCurvePublicKey.from_encoded_point(CURVE(), raw)
        except ValueError as err:
            raise ValueError(f"Invalid public key: {err}") from err

    @staticmethod
    def derive_shared_key(private_key_b64: str, peer_public_key_b64: str) -> str:
        """Derive the 256-bit shared secret for a connection.

        Args:
            private_key_b64: Local base64 PKCS8 private key
            peer_public_key_b64: Peer's base64 raw public key

        Returns:
            Base64 encoded 32-byte secret, identical on both sides
        """
        SponsorCryptoService.assert_crypto_available()
        private_key = SponsorCryptoService.load_private_key(private_key_b64)
        peer_public_key = SponsorCryptoService.load_public_key(peer_public_key_b64)
        secret = private_key.exchange(ec.ECDH(), peer_public_key)
        return b64encode(secret[:SHARED_KEY_LENGTH_BYTES])

    @staticmethod
    def _shared_key_bytes(shared_key_b64: str) -> bytes:
        key = b64decode(shared_key_b64)
        if len(key) != SHARED_KEY_LENGTH_BYTES:
            raise ValueError("Shared keys must be 32 bytes")
        return key

    @staticmethod
    def encrypt(shared_key_b64: str, plaintext: str) -> EncryptedPayload:
        """Encrypt UTF-8 text under a shared key with a fresh random IV."""
        SponsorCryptoService.assert_crypto_available()
        key = SponsorCryptoService._shared_key_bytes(shared_key_b64)
        iv = os.urandom(IV_LENGTH_BYTES)
        ciphertext = AESGCM(key).encrypt(iv, plaintext.encode("utf-8"), None)
        return EncryptedPayload(iv=b64encode(iv), ciphertext=b64encode(ciphertext))

    @staticmethod
    def decrypt(shared_key_b64: str, payload: EncryptedPayload) -> str:
        """Decrypt an envelope.

        Raises:
            DecryptionFailed: On a wrong key, a tampered IV or ciphertext,
                malformed base64, or a plaintext that is not UTF-8
        """
        SponsorCryptoService.assert_crypto_available()
        try:
            key = SponsorCryptoService._shared_key_bytes(shared_key_b64)
            iv = b64decode(payload.iv)
            ciphertext = b64decode(payload.ciphertext)
            if len(iv) != IV_LENGTH_BYTES:
                raise ValueError("IV must be 12 bytes")
            plaintext = AESGCM(key).decrypt(iv, ciphertext, None)
            return plaintext.decode("utf-8")
        except (InvalidTag, ValueError) as err:
            raise DecryptionFailed("Unable to decrypt sponsor payload") from err
