"""Encryption of saved passwords in the format OpenVPN Connect reads back."""

from __future__ import annotations

import base64
import binascii
import os
from typing import Callable, Final

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from .errors import AuthenticationError

SALT_LENGTH: Final[int] = 16
NONCE_LENGTH: Final[int] = 12
TAG_LENGTH: Final[int] = 16
KEY_LENGTH: Final[int] = 16
KDF_ITERATIONS: Final[int] = 32767


def derive_key(profile_name: str, salt: bytes) -> bytes:
    """Derive the AES-128 key for ``profile_name`` from ``salt``."""
    kdf = PBKDF2HMAC(algorithm=hashes.SHA1(), length=KEY_LENGTH, salt=salt, iterations=KDF_ITERATIONS)
    return kdf.derive(profile_name.encode("utf-8"))


class CredentialCipher:
    """Encrypts and decrypts secrets bound to a profile name with AES-GCM.

    Blobs are base64 of ``salt | nonce | ciphertext | tag``. The layout is
    shared with OpenVPN Connect and must not change.
    """

    def __init__(self, random_bytes: Callable[[int], bytes] = os.urandom) -> None:
        self._random_bytes = random_bytes

    def encrypt(self, secret: str, profile_name: str) -> str:
        salt = self._random_bytes(SALT_LENGTH)
        nonce = self._random_bytes(NONCE_LENGTH)
        key = derive_key(profile_name, salt)
        # AESGCM appends the tag to the ciphertext.
        sealed = AESGCM(key).encrypt(nonce, secret.encode("utf-8"), None)
        return base64.b64encode(salt + nonce + sealed).decode("ascii")

    def decrypt(self, blob: str, profile_name: str) -> str:
        try:
            raw = base64.b64decode(blob.encode("ascii"), validate=True)
        except (binascii.Error, UnicodeEncodeError) as exc:
            raise AuthenticationError(f"credential for {profile_name!r} is not valid base64") from exc
        if len(raw) < SALT_LENGTH + NONCE_LENGTH + TAG_LENGTH:
            raise AuthenticationError(f"credential for {profile_name!r} is truncated")
        salt = raw[:SALT_LENGTH]
        nonce = raw[SALT_LENGTH : SALT_LENGTH + NONCE_LENGTH]
        sealed = raw[SALT_LENGTH + NONCE_LENGTH :]
        key = derive_key(profile_name, salt)
        try:
            plaintext = AESGCM(key).decrypt(nonce, sealed, None)
        except InvalidTag as exc:
            raise AuthenticationError(f"credential for {profile_name!r} failed authentication") from exc
        return plaintext.decode("utf-8")
