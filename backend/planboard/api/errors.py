"""Map engine errors onto HTTP responses."""

import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import ORJSONResponse

from planboard.exceptions import PlanboardError

logger = structlog.get_logger()

STATUS_BY_KIND = {
    "validation": status.HTTP_400_BAD_REQUEST,
    "unknown_operation": status.HTTP_400_BAD_REQUEST,
    "forbidden": status.HTTP_403_FORBIDDEN,
    "not_found": status.HTTP_404_NOT_FOUND,
    "conflict": status.HTTP_409_CONFLICT,
}


def error_body(message: str, kind: str) -> dict[str, object]:
    return {"ok": False, "error": message, "code": kind}


async def planboard_error_handler(request: Request, exc: PlanboardError) -> ORJSONResponse:
    status_code = STATUS_BY_KIND.get(exc.kind, status.HTTP_500_INTERNAL_SERVER_ERROR)
    logger.info("request_rejected", kind=exc.kind, status_code=status_code, error=exc.message)
    return ORJSONResponse(status_code=status_code, content=error_body(exc.message, exc.kind))


async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> ORJSONResponse:
    errors = exc.errors()
    location = ".".join(str(part) for part in errors[0]["loc"]) if errors else "body"
    message = f"{location}: {errors[0]['msg']}" if errors else "invalid request"
    return ORJSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_body(message, "validation"),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(PlanboardError, planboard_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
