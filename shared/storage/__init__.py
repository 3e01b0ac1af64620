"""Encrypted envelope storage"""

from .encryption import EncryptedPayload, EncryptionConfig, FileEncryption
from .file_store import EncryptedFileStore, FileMetadata, StoredFile

__all__ = [
    "EncryptedFileStore",
    "EncryptedPayload",
    "EncryptionConfig",
    "FileEncryption",
    "FileMetadata",
    "StoredFile",
]
