"""API key authentication for the manager API.

Accepts the key either as HTTP Basic credentials (key as the username,
empty password) or as a Bearer token.
"""

from __future__ import annotations

import base64
import binascii

from fastapi import Depends, Request

from snapcheck.errors import NotFoundError, UnauthorizedError
from snapcheck.schemas.entities import ApiKey


def extract_key(authorization: str) -> str:
    """Pull the raw API key out of an Authorization header value."""
    scheme, _, credentials = authorization.strip().partition(" ")
    credentials = credentials.strip()
    if scheme.lower() == "bearer":
        return credentials
    if scheme.lower() == "basic":
        try:
            decoded = base64.b64decode(credentials, validate=True).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError):
            return ""
        return decoded.split(":", 1)[0]
    return ""


async def current_api_key(request: Request) -> ApiKey | None:
    """Resolve the caller's API key, or None when absent or unknown."""
    key = extract_key(request.headers.get("authorization", ""))
    if not key:
        return None
    return await request.app.state.services.api_keys.find_by_key(key)


async def require_api_key(
    request: Request,
    api_key: ApiKey | None = Depends(current_api_key),
) -> ApiKey:
    """Require a valid API key.

    Unauthenticated requests for a specific resource get a 404 rather
    than a 401, so resource ids are not confirmed to strangers.
    """
    if api_key is None:
        if "id" in request.path_params:
            raise NotFoundError("Unauthenticated request for a resource")
        raise UnauthorizedError()
    return api_key
