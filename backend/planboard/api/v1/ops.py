"""Batched mutation endpoint."""

from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, HTTPException, status

from planboard.api.deps import OptionalUserId
from planboard.db.session import DBSession
from planboard.ops.dispatcher import apply_ops
from planboard.ops.schemas import OpsRequest, OpsResponse
from planboard.services.notification import Notifier, get_notifier

router = APIRouter()
logger = structlog.get_logger()


@router.post("/ops", response_model=OpsResponse)
async def apply_operations(
    body: OpsRequest,
    db: DBSession,
    header_user_id: OptionalUserId,
    notifier: Annotated[Notifier, Depends(get_notifier)],
) -> OpsResponse:
    """Apply a batch of operations atomically.

    The identity header wins over ``userId`` in the body. Subscribers are
    notified only after the batch has committed.
    """
    user_id = header_user_id or body.user_id
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )

    outcome = await apply_ops(db, user_id, body.ops)
    notifier.notify(outcome.affected_project_ids, outcome.affected_user_ids)

    return OpsResponse(
        results=outcome.results,
        affected_project_ids=[str(i) for i in outcome.affected_project_ids],
        affected_user_ids=[str(i) for i in outcome.affected_user_ids],
    )
