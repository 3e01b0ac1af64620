"""
File Retrieval API Routes

Endpoints:
- GET  /files/{package_id}/{version}/{filename} - Decrypted file content
- HEAD /files/{package_id}/{version}/{filename} - File headers only
- GET  /files/{package_id}/{version}            - Accessible file metadata
"""

from typing import Any

from fastapi import APIRouter, Depends, Request, Response

from shared.storage.file_store import StoredFile
from src.auth.permissions import Identity, get_identity

from .service import FileAccessService

MARKDOWN_CONTENT_TYPE = "text/markdown"

router = APIRouter(prefix="/files", tags=["files"])


def get_file_service(request: Request) -> FileAccessService:
    """Dependency: file access service built at app creation"""
    return request.app.state.file_service


def _file_headers(package_id: str, version: str) -> dict[str, str]:
    return {
        "Content-Type": MARKDOWN_CONTENT_TYPE,
        "X-Package-Id": package_id,
        "X-Version": version,
    }


@router.get("/{package_id}/{version}/{filename}")
async def get_file(
    package_id: str,
    version: str,
    filename: str,
    identity: Identity = Depends(get_identity),
    service: FileAccessService = Depends(get_file_service),
) -> Response:
    """Return the decrypted bytes of one file"""
    stored: StoredFile = await service.get_file(identity, package_id, version, filename)
    return Response(content=stored.content, headers=_file_headers(package_id, version))


@router.head("/{package_id}/{version}/{filename}")
async def head_file(
    package_id: str,
    version: str,
    filename: str,
    identity: Identity = Depends(get_identity),
    service: FileAccessService = Depends(get_file_service),
) -> Response:
    """Same checks as GET, headers only"""
    stored = await service.get_file(identity, package_id, version, filename)
    headers = _file_headers(package_id, version)
    headers["Content-Length"] = str(len(stored.content))
    headers["X-Created-At"] = stored.metadata.created_at
    return Response(headers=headers)


@router.get("/{package_id}/{version}")
async def list_files(
    package_id: str,
    version: str,
    identity: Identity = Depends(get_identity),
    service: FileAccessService = Depends(get_file_service),
) -> dict[str, Any]:
    """List metadata of files in a version the caller may read"""
    files = await service.list_files(identity, package_id, version)
    return {"files": [metadata.to_json_dict() for metadata in files]}
