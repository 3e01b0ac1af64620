"""
File Encryption Module
Implements AES-256-GCM authenticated encryption for file blobs at rest
"""

import logging
import secrets
from dataclasses import dataclass

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from shared.errors import ConfigurationError, DecodeError, IntegrityError

logger = logging.getLogger(__name__)

KEY_SIZE = 32
IV_SIZE = 16
TAG_SIZE = 16

SUPPORTED_ALGORITHMS = frozenset({"aes-256-gcm"})


@dataclass(frozen=True)
class EncryptionConfig:
    """Key material and cipher choice for one process."""

    key: bytes
    algorithm: str = "aes-256-gcm"

    def __repr__(self) -> str:
        return f"EncryptionConfig(key=<{len(self.key)} bytes>, algorithm={self.algorithm!r})"


@dataclass(frozen=True)
class EncryptedPayload:
    """Ciphertext, IV and authentication tag of one encryption."""

    ciphertext: bytes
    iv: bytes
    auth_tag: bytes

    def to_dict(self) -> dict[str, str]:
        """Hex encode the fields using the on-disk envelope names."""
        return {
            "encrypted": self.ciphertext.hex(),
            "iv": self.iv.hex(),
            "authTag": self.auth_tag.hex(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "EncryptedPayload":
        """
        Decode hex fields of an envelope

        Raises:
            DecodeError: If a field is missing, not a string, or not hex
        """
        try:
            return cls(
                ciphertext=bytes.fromhex(data["encrypted"]),
                iv=bytes.fromhex(data["iv"]),
                auth_tag=bytes.fromhex(data["authTag"]),
            )
        except KeyError as e:
            raise DecodeError(f"Envelope is missing field {e}") from e
        except (TypeError, ValueError) as e:
            raise DecodeError(f"Envelope field is not valid hex: {e}") from e


class FileEncryption:
    """AES-256-GCM encryption for file contents"""

    def __init__(self, config: EncryptionConfig):
        """
        Initialize encryption with a 32-byte key

        Args:
            config: Key material and algorithm

        Raises:
            ConfigurationError: If the key size or algorithm is unsupported
        """
        if config.algorithm.lower() not in SUPPORTED_ALGORITHMS:
            raise ConfigurationError(
                f"Unsupported ENCRYPTION_ALGORITHM {config.algorithm!r}; "
                f"supported: {', '.join(sorted(SUPPORTED_ALGORITHMS))}"
            )
        if len(config.key) != KEY_SIZE:
            raise ConfigurationError(f"Encryption key must be exactly {KEY_SIZE} bytes")

        self.algorithm = config.algorithm.lower()
        self.cipher = AESGCM(config.key)

    def encrypt(self, plaintext: bytes) -> EncryptedPayload:
        """
        Encrypt bytes under a fresh random IV

        Args:
            plaintext: Content to encrypt

        Returns:
            EncryptedPayload with ciphertext, IV and tag
        """
        iv = secrets.token_bytes(IV_SIZE)

        # AESGCM appends the 16-byte tag to the ciphertext
        sealed = self.cipher.encrypt(iv, plaintext, None)

        return EncryptedPayload(
            ciphertext=sealed[:-TAG_SIZE],
            iv=iv,
            auth_tag=sealed[-TAG_SIZE:],
        )

    def decrypt(self, payload: EncryptedPayload) -> bytes:
        """
        Verify the tag and decrypt

        Args:
            payload: Ciphertext, IV and tag from an envelope

        Returns:
            Decrypted plaintext

        Raises:
            DecodeError: If the IV or tag has the wrong length
            IntegrityError: If the tag does not verify
        """
        if len(payload.iv) != IV_SIZE:
            raise DecodeError(f"IV must be {IV_SIZE} bytes, got {len(payload.iv)}")
        if len(payload.auth_tag) != TAG_SIZE:
            raise DecodeError(f"Auth tag must be {TAG_SIZE} bytes, got {len(payload.auth_tag)}")

        try:
            return self.cipher.decrypt(payload.iv, payload.ciphertext + payload.auth_tag, None)
        except InvalidTag as e:
            raise IntegrityError("Authentication tag mismatch: envelope is corrupted or was tampered with") from e


def generate_key_hex() -> str:
    """Generate a new random key encoded as 64 hex characters."""
    return AESGCM.generate_key(bit_length=KEY_SIZE * 8).hex()
