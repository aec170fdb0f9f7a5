"""
Wallet Signature Utilities

This module handles the cryptographic side of wallet login.

Aptos wallets do not sign the raw challenge. They wrap it in the wallet
sign-message format first and sign that:

    APTOS
    message: <challenge>

so verification has to rebuild exactly that text -> format_wallet_message().

Signatures and public keys arrive as text in one of three encodings:
- "0x" prefixed hex (what most wallets return)
- bare hex
- base64

The signature scheme is Ed25519 (32-byte public key, 64-byte detached
signature), checked with the cryptography library.
"""

import base64
import binascii
import logging
from typing import Optional

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey

from app.core.exceptions import DecodeError

logger = logging.getLogger(__name__)

CHAIN_TAG = "APTOS"
PUBLIC_KEY_NUM_BYTES = 32
SIGNATURE_NUM_BYTES = 64


def format_wallet_message(challenge: str) -> str:
    """Build the text a wallet actually signs for the given challenge."""
    return f"{CHAIN_TAG}\nmessage: {challenge}"


def _decode_hex(value: str) -> bytes:
    """Helper: Decode hex string to bytes."""
    return binascii.unhexlify(value.encode())


def _decode_base64(value: str) -> bytes:
    """Helper: Decode base64 string to bytes."""
    return base64.b64decode(value, validate=True)


def decode_key_material(value: Optional[str], field: str = "value", expected_length: Optional[int] = None) -> bytes:
    """
    Decode a signature or public key sent by the client.

    "0x" prefixed values are hex. Anything else is tried as base64 first and
    then as bare hex. A bare hex string is usually also valid base64 text, so
    when expected_length is given a base64 result of the wrong size falls
    through to the hex attempt.

    Args:
        value: Encoded text from the request
        field: Name used in the error message
        expected_length: Byte length the decoded value should have

    Returns:
        Decoded bytes

    Raises:
        DecodeError: If the value cannot be read in any supported encoding
    """
    if value is None:
        raise DecodeError(field)
    value = value.strip()
    if not value:
        raise DecodeError(field)

    if value[:2].lower() == "0x":
        try:
            return _decode_hex(value[2:])
        except (binascii.Error, ValueError):
            raise DecodeError(field)

    from_base64: Optional[bytes] = None
    try:
        from_base64 = _decode_base64(value)
    except (binascii.Error, ValueError):
        pass

    if from_base64 is not None and (expected_length is None or len(from_base64) == expected_length):
        return from_base64

    try:
        return _decode_hex(value)
    except (binascii.Error, ValueError):
        if from_base64 is not None:
            return from_base64
        raise DecodeError(field)


def verify_signature(message: str, signature_bytes: bytes, public_key_bytes: bytes) -> bool:
    """
    Check a detached Ed25519 signature over the UTF-8 bytes of message.

    Returns False for wrong sizes and bad signatures, it never raises.
    """
    if len(public_key_bytes) != PUBLIC_KEY_NUM_BYTES or len(signature_bytes) != SIGNATURE_NUM_BYTES:
        return False
    try:
        Ed25519PublicKey.from_public_bytes(public_key_bytes).verify(signature_bytes, message.encode("utf-8"))
    except (InvalidSignature, ValueError):
        return False
    return True


class SignatureVerifier:
    """Verifies wallet signatures over the formatted challenge message."""

    def verify(self, challenge: str, signature: str, public_key: str) -> bool:
        """
        Verify a wallet signature for a challenge.

        Args:
            challenge: Raw challenge text that was issued
            signature: Encoded detached signature
            public_key: Encoded Ed25519 public key

        Returns:
            True if the signature is valid for the formatted challenge

        Raises:
            DecodeError: If signature or public key cannot be decoded
        """
        signature_bytes = decode_key_material(signature, "signature", SIGNATURE_NUM_BYTES)
        public_key_bytes = decode_key_material(public_key, "public key", PUBLIC_KEY_NUM_BYTES)
        ok = verify_signature(format_wallet_message(challenge), signature_bytes, public_key_bytes)
        logger.debug(
            "ed25519 verification result=%s (signature %d bytes, public key %d bytes)",
            ok,
            len(signature_bytes),
            len(public_key_bytes),
        )
        return ok
