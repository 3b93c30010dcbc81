"""
Credential Vault

Encrypts provider secrets at rest.

Current format: ``salt:iv:tag:ciphertext`` (hex), AES-256-GCM with a key
derived per value by scrypt from the master secret and a random salt.

Legacy format: ``iv:ciphertext`` (hex), AES-256-CBC with a key derived
from the master secret and a fixed salt. Read-only; new values always use
the current format.
"""

import logging
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from messaging_gateway.errors import EncryptionError

logger = logging.getLogger(__name__)

KEY_LENGTH = 32
SALT_LENGTH = 16
IV_LENGTH = 12
TAG_LENGTH = 16

SCRYPT_N = 2**14
SCRYPT_R = 8
SCRYPT_P = 1

LEGACY_SALT = b"salt"


def _derive_key(secret: str, salt: bytes) -> bytes:
    kdf = Scrypt(salt=salt, length=KEY_LENGTH, n=SCRYPT_N, r=SCRYPT_R, p=SCRYPT_P)
    return kdf.derive(secret.encode("utf-8"))


class CredentialVault:
    """
    Stateless encrypt/decrypt of secrets with a long-lived master secret.

    Instances hold only the secret; they are safe to share across threads.
    """

    def __init__(self, master_secret: str | None):
        if not master_secret:
            raise EncryptionError(
                "Master secret is not configured (set MESSAGING_ENCRYPTION_KEY)",
                code=EncryptionError.MISSING_MASTER_SECRET,
            )
        self._secret = master_secret

    @classmethod
    def from_settings(cls, settings=None) -> "CredentialVault":
        """Build a vault from process settings. Raises when the secret is absent."""
        if settings is None:
            from basecore.settings import get_settings

            settings = get_settings()
        return cls(settings.master_secret)

    def encrypt(self, plaintext: str) -> str:
        """
        Encrypt a secret.

        Args:
            plaintext: Value to protect

        Returns:
            Serialized ``salt:iv:tag:ciphertext``
        """
        salt = os.urandom(SALT_LENGTH)
        iv = os.urandom(IV_LENGTH)
        key = _derive_key(self._secret, salt)

        sealed = AESGCM(key).encrypt(iv, plaintext.encode("utf-8"), None)
        ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]

        return ":".join([salt.hex(), iv.hex(), tag.hex(), ciphertext.hex()])

    def decrypt(self, serialized: str) -> str:
        """
        Decrypt a value produced by ``encrypt`` or by the legacy scheme.

        Raises:
            EncryptionError: Tampered, corrupted or foreign ciphertext
        """
        parts = (serialized or "").split(":")

        try:
            if len(parts) == 2:
                return self._decrypt_legacy(parts[0], parts[1])
            if len(parts) == 4:
                return self._decrypt_current(*parts)
        except (ValueError, InvalidTag, UnicodeDecodeError) as e:
            logger.warning("Credential decryption failed", extra={"segments": len(parts)})
            raise EncryptionError("Failed to decrypt credential") from e

        raise EncryptionError(f"Unrecognized ciphertext format ({len(parts)} segments)")

    def _decrypt_current(self, salt_hex: str, iv_hex: str, tag_hex: str, ct_hex: str) -> str:
        salt = bytes.fromhex(salt_hex)
        iv = bytes.fromhex(iv_hex)
        tag = bytes.fromhex(tag_hex)
        ciphertext = bytes.fromhex(ct_hex)

        if len(tag) != TAG_LENGTH:
            raise ValueError("bad tag length")

        key = _derive_key(self._secret, salt)
        return AESGCM(key).decrypt(iv, ciphertext + tag, None).decode("utf-8")

    def _decrypt_legacy(self, iv_hex: str, ct_hex: str) -> str:
        iv = bytes.fromhex(iv_hex)
        ciphertext = bytes.fromhex(ct_hex)
        key = _derive_key(self._secret, LEGACY_SALT)

        decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
        padded = decryptor.update(ciphertext) + decryptor.finalize()

        unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
        return (unpadder.update(padded) + unpadder.finalize()).decode("utf-8")

