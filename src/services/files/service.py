"""
File Access Service

Applies package visibility rules on top of the encrypted file store:
- public files are readable by everyone
- private files need an authenticated user holding a package_access grant

Visibility is the isPublic flag frozen into each envelope at write time.
"""

import logging

from starlette.concurrency import run_in_threadpool

from shared.auth.supabase import AccessBackend
from shared.errors import AccessDeniedError, NotFoundError
from shared.storage.file_store import EncryptedFileStore, FileMetadata, StoredFile
from src.auth.permissions import Identity

logger = logging.getLogger(__name__)


class FileAccessService:
    """Authorize-then-fetch wrapper around EncryptedFileStore"""

    def __init__(self, store: EncryptedFileStore, access: AccessBackend):
        self.store = store
        self.access = access

    async def check_package_access(self, user_id: str | None, package_id: str, is_public: bool) -> bool:
        """
        Decide whether a caller may read a file of a package

        Args:
            user_id: Resolved user id, or None when unauthenticated
            package_id: Package the file belongs to
            is_public: Visibility flag stored with the file

        Returns:
            True if access is allowed
        """
        if is_public:
            return True
        if user_id is None:
            return False
        return await self.access.has_package_access(user_id, package_id)

    async def get_file(self, identity: Identity, package_id: str, version: str, filename: str) -> StoredFile:
        """
        Fetch and decrypt a file the caller is allowed to read

        Raises:
            NotFoundError: If no envelope exists
            AccessDeniedError: If the caller may not read it
        """
        stored = await run_in_threadpool(self.store.retrieve, package_id, version, filename)
        if stored is None:
            raise NotFoundError(
                "File not found",
                {"package_id": package_id, "version": version, "filename": filename},
            )

        if not await self.check_package_access(identity.user_id, package_id, stored.metadata.is_public):
            logger.info(
                "Access denied package=%s version=%s file=%s authenticated=%s",
                package_id,
                version,
                filename,
                identity.is_authenticated,
            )
            raise AccessDeniedError("Access denied", {"package_id": package_id})

        return stored

    async def list_files(self, identity: Identity, package_id: str, version: str) -> list[FileMetadata]:
        """List metadata of the files in a version that the caller may read"""
        files = await run_in_threadpool(self.store.list_files, package_id, version)

        # One grant lookup covers every private file of the package
        has_grant: bool | None = None
        accessible = []
        for metadata in files:
            if metadata.is_public:
                accessible.append(metadata)
                continue
            if has_grant is None:
                has_grant = await self.check_package_access(identity.user_id, package_id, False)
            if has_grant:
                accessible.append(metadata)
        return accessible
