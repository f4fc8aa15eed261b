"""
Encryption of persisted plan blobs.

Plans are stored as AES-GCM ciphertext keyed by the process's configured
secret. The secret is stretched to a 256-bit key with SHA-256, and each
ciphertext carries its own random nonce, so encrypting the same plan twice
yields different blobs.
"""

import base64
import binascii
import hashlib
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ..exceptions import EncryptionError

NONCE_SIZE = 12


def _derive_key(secret: str) -> bytes:
    if not secret:
        raise EncryptionError("Encryption secret is not configured")
    return hashlib.sha256(secret.encode("utf-8")).digest()


def encrypt(secret: str, plaintext: str) -> str:
    """Encrypt text with the given secret.

    Args:
        secret: Encryption secret
        plaintext: Text to encrypt

    Returns:
        URL-safe base64 of nonce followed by ciphertext

    Raises:
        EncryptionError: If the secret is empty
    """
    key = _derive_key(secret)
    nonce = os.urandom(NONCE_SIZE)
    ciphertext = AESGCM(key).encrypt(nonce, plaintext.encode("utf-8"), None)
    return base64.urlsafe_b64encode(nonce + ciphertext).decode("ascii")


def decrypt(secret: str, ciphertext: str) -> str:
    """Decrypt text produced by :func:`encrypt`.

    Args:
        secret: Encryption secret
        ciphertext: Value returned by :func:`encrypt`

    Returns:
        Original plaintext

    Raises:
        EncryptionError: If the secret is empty or wrong, or the ciphertext is corrupt
    """
    key = _derive_key(secret)
    try:
        raw = base64.urlsafe_b64decode(ciphertext.encode("ascii"))
    except (binascii.Error, UnicodeEncodeError) as e:
        raise EncryptionError(f"Ciphertext is not valid base64: {e}") from e
    if len(raw) <= NONCE_SIZE:
        raise EncryptionError("Ciphertext is too short")

    nonce, body = raw[:NONCE_SIZE], raw[NONCE_SIZE:]
    try:
        plaintext = AESGCM(key).decrypt(nonce, body, None)
    except InvalidTag as e:
        raise EncryptionError("Decryption failed: wrong key or corrupted ciphertext") from e
    return plaintext.decode("utf-8")
