"""Authenticated encryption of connector API tokens (ChaCha20-Poly1305)."""

import base64
import binascii
import os
from functools import lru_cache

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import ChaCha20Poly1305

from shelfkeeper.config.settings import settings

NONCE_SIZE = 12
TAG_SIZE = 16


class TokenCipher:
    """Encrypt and decrypt provider tokens with a 256-bit key.

    Every call to :meth:`encrypt` draws a fresh random nonce, so the same
    plaintext never produces the same ciphertext twice. The stored form is
    ``base64(nonce || ciphertext || tag)``.
    """

    def __init__(self, key_base64: str):
        try:
            key = base64.b64decode(key_base64, validate=True)
        except binascii.Error as err:
            raise ValueError("Invalid encryption key format") from err
        if len(key) != 32:
            raise ValueError("Encryption key must be exactly 32 bytes (44 base64 characters)")
        self._aead = ChaCha20Poly1305(key)

    @staticmethod
    def generate_key() -> str:
        """New random key, base64 encoded, suitable for ENCRYPTION_KEY."""
        return base64.b64encode(ChaCha20Poly1305.generate_key()).decode("ascii")

    def encrypt(self, plaintext: str) -> str:
        nonce = os.urandom(NONCE_SIZE)
        sealed = self._aead.encrypt(nonce, plaintext.encode("utf-8"), None)
        return base64.b64encode(nonce + sealed).decode("ascii")

    def decrypt(self, ciphertext: str) -> str:
        """Open a value produced by :meth:`encrypt`.

        Raises:
            ValueError: The value is not valid base64, is truncated, or fails
                authentication (wrong key or tampered data)

        """
        try:
            data = base64.b64decode(ciphertext, validate=True)
        except binascii.Error as err:
            raise ValueError("Invalid encrypted token format") from err
        if len(data) < NONCE_SIZE + TAG_SIZE:
            raise ValueError("Encrypted token is too short")

        nonce, sealed = data[:NONCE_SIZE], data[NONCE_SIZE:]
        try:
            plaintext = self._aead.decrypt(nonce, sealed, None)
        except InvalidTag as err:
            raise ValueError("Failed to decrypt token; wrong key or tampered data") from err
        return plaintext.decode("utf-8")


@lru_cache
def get_token_cipher() -> TokenCipher:
    """Cipher keyed from ENCRYPTION_KEY, built once."""
    return TokenCipher(settings.encryption_key)
