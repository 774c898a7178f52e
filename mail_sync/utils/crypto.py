"""
Cryptography utilities for mail account credentials.

Values are sealed with Fernet under a key derived per value: PBKDF2-HMAC-SHA256
over the master ``ENCRYPTION_KEY`` and the owner's key material, with a random
salt that is stored in front of the token.
"""

import base64
import os

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from triage_core.utils.logging import ContextLogger

from ..config import get_config
from ..exceptions import AuthenticationError, ConfigurationError

logger = ContextLogger(__name__)

SALT_LENGTH = 16


class FieldEncryption:
    """
    Field-level encryption of account secrets.

    The derived key depends on the master key, the key material (the owning
    user's id) and a fresh salt, so identical secrets never produce identical
    ciphertexts and one user's values cannot be decrypted with another's key.
    """

    @classmethod
    def _master_key(cls) -> bytes:
        master = get_config("ENCRYPTION_KEY")
        if not master:
            raise ConfigurationError("ENCRYPTION_KEY is not configured")
        return master.encode("utf-8")

    @classmethod
    def _derive_key(cls, key_material: str, salt: bytes) -> bytes:
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=salt,
            iterations=int(get_config("ENCRYPTION_KDF_ITERATIONS", 100000)),
        )
        secret = cls._master_key() + b":" + str(key_material).encode("utf-8")
        return base64.urlsafe_b64encode(kdf.derive(secret))

    @classmethod
    def encrypt(cls, value: str, key_material: str) -> str:
        """
        Encrypt a sensitive value.

        Args:
            value: String value to encrypt
            key_material: Per-owner material mixed into the key

        Returns:
            Base64 string holding the salt followed by the Fernet token
        """
        if not value:
            return ""

        salt = os.urandom(SALT_LENGTH)
        token = Fernet(cls._derive_key(key_material, salt)).encrypt(
            value.encode("utf-8"),
        )
        return base64.urlsafe_b64encode(salt + token).decode("ascii")

    @classmethod
    def decrypt(cls, encrypted_value: str, key_material: str) -> str:
        """
        Decrypt a value sealed by :meth:`encrypt`.

        Raises:
            AuthenticationError: if the value cannot be decrypted; the stored
                credentials are unusable and the user has to re-authenticate.
        """
        if not encrypted_value:
            return ""

        try:
            blob = base64.urlsafe_b64decode(encrypted_value.encode("ascii"))
        except (ValueError, UnicodeEncodeError) as e:
            raise AuthenticationError("Stored credentials are corrupt") from e

        salt, token = blob[:SALT_LENGTH], blob[SALT_LENGTH:]
        if len(salt) < SALT_LENGTH or not token:
            raise AuthenticationError("Stored credentials are corrupt")

        try:
            plaintext = Fernet(cls._derive_key(key_material, salt)).decrypt(token)
        except InvalidToken as e:
            logger.warning("Credential decryption failed")
            raise AuthenticationError("Stored credentials cannot be decrypted") from e
        return plaintext.decode("utf-8")


def encrypt_value(value, key_material):
    """Convenience function to encrypt a value."""
    return FieldEncryption.encrypt(value, key_material)


def decrypt_value(encrypted_value, key_material):
    """Convenience function to decrypt a value."""
    return FieldEncryption.decrypt(encrypted_value, key_material)
