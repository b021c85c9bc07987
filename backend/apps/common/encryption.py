"""
Symmetric encryption for secrets stored at rest (provider API keys).

The Fernet key is derived from ``settings.ENCRYPTION_KEY`` so the database
alone is not enough to recover the plaintext.
"""
import base64
import functools
import logging

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from django.conf import settings

logger = logging.getLogger(__name__)

_KDF_SALT = b"ai-notes-api-keys-v1"
_KDF_ITERATIONS = 480_000


class DecryptionError(Exception):
    """Ciphertext could not be decrypted with the configured key."""


@functools.lru_cache(maxsize=4)
def _fernet_for(secret: str) -> Fernet:
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=_KDF_SALT,
        iterations=_KDF_ITERATIONS,
    )
    key = base64.urlsafe_b64encode(kdf.derive(secret.encode("utf-8")))
    return Fernet(key)


def get_fernet() -> Fernet:
    return _fernet_for(settings.ENCRYPTION_KEY)


def encrypt_value(plaintext: str) -> str:
    return get_fernet().encrypt(plaintext.encode("utf-8")).decode("ascii")


def decrypt_value(ciphertext: str) -> str:
    try:
        return get_fernet().decrypt(ciphertext.encode("ascii")).decode("utf-8")
    except InvalidToken as e:
        logger.error("secret_decryption_failed")
        raise DecryptionError("Stored secret cannot be decrypted") from e


def mask_secret(value: str, visible: int = 4) -> str:
    """Show only the last few characters of a secret, e.g. ``sk-...abcd``."""
    if len(value) <= visible:
        return "*" * len(value)
    prefix = value[:3] if len(value) > visible + 3 else ""
    return f"{prefix}...{value[-visible:]}"
