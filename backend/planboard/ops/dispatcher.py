"""Atomic batch application of operations."""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any
from uuid import UUID

import pydantic
import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from planboard.exceptions import PlanboardError, ValidationError
from planboard.ops.executors import OperationExecutor
from planboard.ops.schemas import OpEnvelope, OpResult

logger = structlog.get_logger()


@dataclass
class ApplyOpsResult:
    """What a committed batch produced."""

    results: list[OpResult] = field(default_factory=list)
    affected_project_ids: list[UUID] = field(default_factory=list)
    affected_user_ids: list[UUID] = field(default_factory=list)


def _coerce_envelopes(ops: Iterable[OpEnvelope | Mapping[str, Any]]) -> list[OpEnvelope]:
    envelopes = []
    for op in ops:
        if isinstance(op, OpEnvelope):
            envelopes.append(op)
            continue
        try:
            envelopes.append(OpEnvelope.model_validate(op))
        except pydantic.ValidationError as exc:
            raise ValidationError("opName", "each op needs an opName and args object") from exc
    return envelopes


async def apply_ops(
    db: AsyncSession,
    user_id: UUID,
    ops: Iterable[OpEnvelope | Mapping[str, Any]],
) -> ApplyOpsResult:
    """Apply a batch of operations in one transaction.

    Operations run in order and each sees the writes of the ones before
    it. The first failure rolls the whole batch back and is re-raised;
    nothing from a failed batch (including op-log rows) is persisted.

    Args:
        db: Session with no transaction in progress
        user_id: Acting user, already authenticated upstream
        ops: Envelopes or raw ``{"opName", "args"}`` mappings

    Returns:
        Per-op results in input order plus the touched project and user ids

    Raises:
        PlanboardError subclasses from validation, authorization or the
        executors
    """
    envelopes = _coerce_envelopes(ops)
    if not envelopes:
        return ApplyOpsResult()
    if db.in_transaction():
        raise RuntimeError("apply_ops needs a session without an open transaction")

    executor = OperationExecutor(db, user_id)
    results: list[OpResult] = []
    index = 0

    logger.info("ops_batch_started", user_id=str(user_id), op_count=len(envelopes))
    try:
        async with db.begin():
            for index, envelope in enumerate(envelopes):
                result = await executor.execute(envelope.op_name, envelope.args)
                results.append(OpResult(op_name=envelope.op_name, result=result))
    except PlanboardError as e:
        logger.info(
            "ops_batch_rolled_back",
            user_id=str(user_id),
            failed_index=index,
            op_name=envelopes[index].op_name,
            kind=e.kind,
            error=e.message,
        )
        raise
    except Exception as e:
        logger.error(
            "ops_batch_failed",
            user_id=str(user_id),
            failed_index=index,
            op_name=envelopes[index].op_name,
            error=str(e),
        )
        raise

    logger.info(
        "ops_batch_committed",
        user_id=str(user_id),
        op_count=len(results),
        project_count=len(executor.affected_project_ids),
    )
    return ApplyOpsResult(
        results=results,
        affected_project_ids=sorted(executor.affected_project_ids, key=str),
        affected_user_ids=sorted(executor.affected_user_ids, key=str),
    )
