# SP Vault - Secret Codec
#
# Configured secret -> master key (SHA-256, 256 bits)
# Entry secret encryption (AES-256-GCM)
# Fresh 96-bit nonce per encryption, carried inside the envelope
#
# Envelope format:  <base64 nonce>:<base64 ciphertext+tag>
# decrypt() needs nothing but the envelope and the master key.

import base64
import binascii
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ..core.exceptions import DecryptionError

KEY_LENGTH = 32  # 256 bits for AES-256
NONCE_LENGTH = 12  # 96-bit nonce for GCM (recommended)
ENVELOPE_SEPARATOR = ":"


def derive_master_key(secret: str) -> bytes:
    """
    Derive the 256-bit master key from the configured secret.

    One-way and deterministic: the same secret always yields the same key,
    so entries written by one process can be read by the next.
    """
    digest = hashes.Hash(hashes.SHA256())
    digest.update(secret.encode("utf-8"))
    return digest.finalize()


def encode_for_storage(data: bytes) -> str:
    """Encode binary data as base64 text."""
    return base64.b64encode(data).decode("utf-8")


def decode_from_storage(data: str) -> bytes:
    """Decode base64 text; raises binascii.Error on garbage."""
    return base64.b64decode(data.encode("utf-8"), validate=True)


def encrypt(plaintext: str, key: bytes) -> str:
    """
    Encrypt plaintext with AES-256-GCM.

    Args:
        plaintext: Secret to encrypt
        key: 256-bit master key (from derive_master_key)

    Returns:
        Self-describing envelope string (nonce + ciphertext)
    """
    nonce = os.urandom(NONCE_LENGTH)
    ciphertext = AESGCM(key).encrypt(nonce, plaintext.encode("utf-8"), None)
    return f"{encode_for_storage(nonce)}{ENVELOPE_SEPARATOR}{encode_for_storage(ciphertext)}"


def decrypt(envelope: str, key: bytes) -> str:
    """
    Decrypt an envelope produced by encrypt().

    Raises:
        DecryptionError: If the envelope is malformed, the nonce segment is
            missing, or the GCM authentication tag does not verify.
    """
    if not isinstance(envelope, str) or envelope.count(ENVELOPE_SEPARATOR) != 1:
        raise DecryptionError("Malformed secret envelope")

    nonce_b64, ciphertext_b64 = envelope.split(ENVELOPE_SEPARATOR)
    if not nonce_b64 or not ciphertext_b64:
        raise DecryptionError("Secret envelope is missing a segment")

    try:
        nonce = decode_from_storage(nonce_b64)
        ciphertext = decode_from_storage(ciphertext_b64)
    except (binascii.Error, ValueError):
        raise DecryptionError("Secret envelope is not valid base64")

    if len(nonce) != NONCE_LENGTH:
        raise DecryptionError("Secret envelope has an invalid nonce")

    try:
        plaintext = AESGCM(key).decrypt(nonce, ciphertext, None)
    except InvalidTag:
        raise DecryptionError("Secret envelope failed authentication")

    try:
        return plaintext.decode("utf-8")
    except UnicodeDecodeError:
        raise DecryptionError("Decrypted secret is not valid text")


class SecretCodec:
    """
    Encrypts/decrypts entry secrets under the process master key.

    The master key is recomputed from the configured secret on each call
    and never stored on the instance.
    """

    def __init__(self, secret_key: str):
        if not secret_key:
            raise ValueError("secret_key must not be empty")
        self._secret_key = secret_key

    def _master_key(self) -> bytes:
        return derive_master_key(self._secret_key)

    def encrypt(self, plaintext: str) -> str:
        return encrypt(plaintext, self._master_key())

    def decrypt(self, envelope: str) -> str:
        return decrypt(envelope, self._master_key())
