"""Request-scoped dependencies shared by the API routes."""

from typing import Annotated
from uuid import UUID

import structlog
from fastapi import Depends, HTTPException, Request, status

from planboard.config import get_settings

logger = structlog.get_logger()


async def get_current_user_id_optional(request: Request) -> UUID | None:
    """Acting user from the identity header, if the gateway set one.

    Authentication happens upstream; this only parses what it forwarded.
    """
    raw = request.headers.get(get_settings().user_id_header)
    if not raw:
        return None
    try:
        return UUID(raw.strip())
    except ValueError:
        logger.info("invalid_user_header", value=raw[:64])
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid user id",
        )


async def get_current_user_id(
    user_id: Annotated[UUID | None, Depends(get_current_user_id_optional)],
) -> UUID:
    """Acting user; 401 when the request carries none."""
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )
    return user_id


# Type aliases for dependency injection
CurrentUserId = Annotated[UUID, Depends(get_current_user_id)]
OptionalUserId = Annotated[UUID | None, Depends(get_current_user_id_optional)]
