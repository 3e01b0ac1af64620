"""
Request identity resolution
Bearer auth is optional: a missing or invalid token yields an anonymous
identity, which is still subject to the public/private visibility check
"""

import logging
from dataclasses import dataclass

from fastapi import Request

from shared.logging.safe_logging import bearer_token, token_presence

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Identity:
    """Caller identity for one request"""

    user_id: str | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None


ANONYMOUS = Identity()


async def get_identity(request: Request) -> Identity:
    """
    Dependency: resolve the optional bearer token to an identity
    Stores the user id on request.state for the request logger
    """
    token = bearer_token(request.headers.get("authorization"))
    if token is None:
        identity = ANONYMOUS
    else:
        user_id = await request.app.state.access.resolve_user(token)
        identity = Identity(user_id=user_id)
        if user_id is None:
            logger.debug("Unauthenticated request with %s", token_presence("token", token))

    request.state.user_id = identity.user_id
    return identity
