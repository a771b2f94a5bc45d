"""Batched mutation engine."""

from planboard.ops.dispatcher import ApplyOpsResult, apply_ops
from planboard.ops.executors import OperationExecutor
from planboard.ops.schemas import OpEnvelope, OpResult, OpsRequest, OpsResponse

__all__ = [
    "ApplyOpsResult",
    "OpEnvelope",
    "OpResult",
    "OperationExecutor",
    "OpsRequest",
    "OpsResponse",
    "apply_ops",
]
