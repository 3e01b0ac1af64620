"""Helpers that keep bearer tokens out of log lines."""


def token_presence(label: str, token: str | None) -> str:
    """Describe whether a token was supplied without logging its value."""
    return f"{label}=present" if token else f"{label}=absent"


def bearer_token(authorization: str | None) -> str | None:
    """Extract the token from an ``Authorization: Bearer <token>`` header value."""
    if not authorization or not authorization.startswith("Bearer "):
        return None
    token = authorization[len("Bearer ") :].strip()
    return token or None
