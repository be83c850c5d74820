from __future__ import annotations

from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import APIKeyHeader

from .repositories import Repository, get_repository

USER_HEADER = "X-User-Id"

_security = APIKeyHeader(name=USER_HEADER, auto_error=False, description="Authenticated user identity")


# PUBLIC_INTERFACE
async def get_current_user_id(
    user_id: Optional[str] = Depends(_security),
    repo: Repository = Depends(get_repository),
) -> str:
    """
    Resolve the authenticated user.

    Sign-in is handled by the identity provider in front of this service, which
    forwards the user's id in the X-User-Id header. The user record is created
    on first sight.

    Raises:
        HTTPException(401) if the header is missing or blank.
    """
    if user_id is None or not user_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )
    user_id = user_id.strip()
    await repo.get_or_create_user(user_id)
    return user_id
