"""
Encrypted File Store

Persists file contents as encrypted JSON envelopes on the local filesystem,
addressed by (package_id, version, filename):

    {root}/{package_id}/{version}/{filename}.enc

Every addressing component is sanitized before it touches a path because
all three arrive from URL parameters.
"""

import json
import logging
import os
import re
import tempfile
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from shared.errors import InvalidPathError, StorageIOError
from shared.storage.encryption import EncryptedPayload, FileEncryption

logger = logging.getLogger(__name__)

ENVELOPE_SUFFIX = ".enc"
# Longest single path component on common filesystems (ext4, APFS, NTFS)
NAME_MAX = 255

_PACKAGE_ID_STRIP = re.compile(r"[^A-Za-z0-9_-]")
_VERSION_STRIP = re.compile(r"[^A-Za-z0-9.-]")


class FileMetadata(BaseModel):
    """Unencrypted metadata stored beside each envelope."""

    model_config = ConfigDict(populate_by_name=True)

    package_id: str = Field(alias="packageId")
    version: str
    filename: str
    is_public: bool = Field(alias="isPublic")
    created_at: str = Field(alias="createdAt")

    def to_json_dict(self) -> dict:
        """Serialize with the camelCase field names used on disk and over HTTP."""
        return self.model_dump(by_alias=True)


@dataclass
class StoredFile:
    """Decrypted content of an envelope with its metadata."""

    content: bytes
    metadata: FileMetadata


# =============================================================================
# Path sanitization
# =============================================================================


def _check_length(component: str, limit: int, field: str, raw: str) -> None:
    if len(component.encode("utf-8")) > limit:
        raise InvalidPathError(f"{field} is longer than {limit} bytes", {field: raw[:64]})


def sanitize_package_id(package_id: str) -> str:
    """Keep only [A-Za-z0-9_-]."""
    sanitized = _PACKAGE_ID_STRIP.sub("", package_id)
    if not sanitized:
        raise InvalidPathError("Package id is empty after sanitization", {"package_id": package_id})
    _check_length(sanitized, NAME_MAX, "package_id", package_id)
    return sanitized


def sanitize_version(version: str) -> str:
    """Keep only [A-Za-z0-9.-]; a version made only of dots is rejected."""
    sanitized = _VERSION_STRIP.sub("", version)
    if not sanitized.strip("."):
        raise InvalidPathError("Version is empty after sanitization", {"version": version})
    _check_length(sanitized, NAME_MAX, "version", version)
    return sanitized


def sanitize_filename(filename: str) -> str:
    """Keep only the final path segment, treating both / and \\ as separators."""
    if "\x00" in filename:
        raise InvalidPathError("Filename contains a null byte")
    sanitized = re.split(r"[/\\]", filename)[-1]
    if sanitized in ("", ".", ".."):
        raise InvalidPathError("Filename is empty after sanitization", {"filename": filename})
    # The envelope suffix must still fit in one directory entry
    _check_length(sanitized, NAME_MAX - len(ENVELOPE_SUFFIX), "filename", filename)
    return sanitized


def _utc_timestamp() -> str:
    # Millisecond precision with a Z suffix, same shape as JavaScript toISOString()
    return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class EncryptedFileStore:
    """
    Filesystem store for encrypted envelopes.

    Writes go to a temporary file in the target directory and are renamed
    into place, so readers never observe a partially written envelope.
    Concurrent writers to the same key are last-writer-wins.
    """

    def __init__(self, root: str | Path, encryption: FileEncryption):
        """
        Args:
            root: Storage root directory
            encryption: Encryption module holding the process key
        """
        self.root = Path(root)
        self.encryption = encryption

    # -------------------------------------------------------------------------
    # Addressing
    # -------------------------------------------------------------------------

    def get_version_dir(self, package_id: str, version: str) -> Path:
        """Directory holding every envelope of one package version."""
        path = self.root / sanitize_package_id(package_id) / sanitize_version(version)
        self._assert_confined(path)
        return path

    def get_file_path(self, package_id: str, version: str, filename: str) -> Path:
        """Physical path of the envelope for a logical key."""
        path = self.get_version_dir(package_id, version) / (sanitize_filename(filename) + ENVELOPE_SUFFIX)
        self._assert_confined(path)
        return path

    def _assert_confined(self, path: Path) -> None:
        root = self.root.resolve()
        if not path.resolve().is_relative_to(root):
            raise InvalidPathError("Resolved path escapes the storage root")

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    def store(
        self,
        package_id: str,
        version: str,
        filename: str,
        content: bytes,
        is_public: bool,
    ) -> FileMetadata:
        """
        Encrypt and persist a file, overwriting any existing envelope

        Returns:
            The metadata written beside the ciphertext

        Raises:
            InvalidPathError: If an addressing component is unusable
            StorageIOError: If the directory or file cannot be written
        """
        path = self.get_file_path(package_id, version, filename)
        metadata = FileMetadata(
            package_id=package_id,
            version=version,
            filename=path.name[: -len(ENVELOPE_SUFFIX)],
            is_public=is_public,
            created_at=_utc_timestamp(),
        )
        envelope = {**self.encryption.encrypt(content).to_dict(), "metadata": metadata.to_json_dict()}

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            self._write_atomic(path, json.dumps(envelope))
        except OSError as e:
            raise StorageIOError(f"Failed to write envelope: {e}", {"path": str(path)}) from e

        logger.info(
            "Stored envelope package=%s version=%s file=%s bytes=%d public=%s",
            package_id,
            version,
            metadata.filename,
            len(content),
            is_public,
        )
        return metadata

    def retrieve(self, package_id: str, version: str, filename: str) -> StoredFile | None:
        """
        Read and decrypt a file

        Returns:
            StoredFile, or None when no envelope exists for the key

        Raises:
            StorageIOError: If the envelope cannot be read or parsed
            DecodeError: If the envelope fields are malformed
            IntegrityError: If the authentication tag does not verify
        """
        path = self.get_file_path(package_id, version, filename)
        envelope = self._read_envelope(path)
        if envelope is None:
            return None

        payload = EncryptedPayload.from_dict(envelope)
        content = self.encryption.decrypt(payload)
        return StoredFile(content=content, metadata=self._parse_metadata(envelope, path))

    def list_files(self, package_id: str, version: str) -> list[FileMetadata]:
        """
        List metadata of every envelope in a package version without decrypting

        Returns:
            Metadata list in filesystem order; empty if the version has no directory
        """
        version_dir = self.get_version_dir(package_id, version)
        try:
            with os.scandir(version_dir) as it:
                entries = sorted(it, key=lambda e: e.name)
        except FileNotFoundError:
            return []
        except OSError as e:
            raise StorageIOError(f"Failed to list envelopes: {e}", {"path": str(version_dir)}) from e

        metadata_list = []
        for entry in entries:
            if not entry.name.endswith(ENVELOPE_SUFFIX) or not entry.is_file():
                continue
            path = Path(entry.path)
            envelope = self._read_envelope(path)
            # Deleted between scandir and read
            if envelope is None:
                continue
            metadata_list.append(self._parse_metadata(envelope, path))
        return metadata_list

    def delete(self, package_id: str, version: str, filename: str) -> bool:
        """
        Remove an envelope

        Returns:
            True if a file was removed, False if none existed
        """
        path = self.get_file_path(package_id, version, filename)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StorageIOError(f"Failed to delete envelope: {e}", {"path": str(path)}) from e

        logger.info("Deleted envelope package=%s version=%s file=%s", package_id, version, path.name)
        return True

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    @staticmethod
    def _write_atomic(path: Path, data: str) -> None:
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".envelope-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(data)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
            raise

    @staticmethod
    def _read_envelope(path: Path) -> dict | None:
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StorageIOError(f"Failed to read envelope: {e}", {"path": str(path)}) from e

        try:
            envelope = json.loads(raw)
        except json.JSONDecodeError as e:
            raise StorageIOError(f"Envelope is not valid JSON: {e}", {"path": str(path)}) from e
        if not isinstance(envelope, dict):
            raise StorageIOError("Envelope is not a JSON object", {"path": str(path)})
        return envelope

    @staticmethod
    def _parse_metadata(envelope: dict, path: Path) -> FileMetadata:
        try:
            return FileMetadata.model_validate(envelope["metadata"])
        except (KeyError, ValidationError) as e:
            raise StorageIOError(f"Envelope metadata is invalid: {e}", {"path": str(path)}) from e
