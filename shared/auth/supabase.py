"""
Supabase identity and access-grant client.

Resolves bearer tokens through the GoTrue auth API and looks up
package_access grants through PostgREST. Also records request access
logs into the access_logs table.
"""

import logging
from typing import Any, Protocol

import httpx

from shared.logging.safe_logging import token_presence

logger = logging.getLogger(__name__)


class AccessBackend(Protocol):
    """Identity and grant lookups used by the file routes."""

    async def resolve_user(self, token: str) -> str | None:
        """Return the user id for a bearer token, or None if it is not valid."""
        ...

    async def has_package_access(self, user_id: str, package_id: str) -> bool:
        """Return True if a grant row links the user to the package."""
        ...

    async def record_access(self, entry: dict[str, Any]) -> None:
        """Persist one access log entry."""
        ...

    async def close(self) -> None:
        ...


class SupabaseAccessClient:
    """
    HTTP client for the Supabase project backing the proxy.

    Every lookup fails closed: an unreachable or erroring backend means
    "unauthenticated" for token resolution and "no grant" for access
    checks. Failures are logged, never raised to the request.
    """

    def __init__(
        self,
        base_url: str,
        service_key: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.service_key = service_key
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
                headers={"apikey": self.service_key},
            )
        return self._client

    def _service_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.service_key}"}

    async def resolve_user(self, token: str) -> str | None:
        """
        Resolve a user access token to a user id.

        Args:
            token: Bearer token supplied by the caller

        Returns:
            User id, or None if the token is invalid or the lookup failed
        """
        client = await self._get_client()
        try:
            response = await client.get("/auth/v1/user", headers={"Authorization": f"Bearer {token}"})
        except httpx.HTTPError as e:
            logger.error("Auth verification failed (%s): %s", token_presence("token", token), e)
            return None

        if response.status_code != 200:
            logger.info("Token rejected by auth service: status=%d", response.status_code)
            return None

        try:
            body = response.json()
        except ValueError:
            logger.error("Auth service returned a non-JSON body")
            return None
        if not isinstance(body, dict):
            logger.error("Auth service returned a %s instead of a user object", type(body).__name__)
            return None
        user_id = body.get("id")
        return user_id if isinstance(user_id, str) and user_id else None

    async def has_package_access(self, user_id: str, package_id: str) -> bool:
        """
        Check for a package_access row linking user and package.

        Returns:
            True only when a matching grant exists
        """
        client = await self._get_client()
        params = {
            "select": "package_id",
            "package_id": f"eq.{package_id}",
            "user_id": f"eq.{user_id}",
            "limit": "1",
        }
        try:
            response = await client.get("/rest/v1/package_access", params=params, headers=self._service_headers())
            response.raise_for_status()
            rows = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Package access lookup failed for package=%s: %s", package_id, e)
            return False

        return isinstance(rows, list) and len(rows) > 0

    async def record_access(self, entry: dict[str, Any]) -> None:
        """
        Insert one row into access_logs.

        Raises:
            httpx.HTTPError: On transport failure or a non-2xx response
        """
        client = await self._get_client()
        headers = {**self._service_headers(), "Prefer": "return=minimal"}
        response = await client.post("/rest/v1/access_logs", json=entry, headers=headers)
        response.raise_for_status()

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None
