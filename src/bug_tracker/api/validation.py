import logging
from collections.abc import Sequence
from typing import Any

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)

_LOCATION_PREFIXES = {"body", "query", "path", "header", "cookie"}


def _path(loc: Sequence[Any]) -> str:
    parts = list(loc)
    if parts and parts[0] in _LOCATION_PREFIXES:
        parts = parts[1:]
    return ".".join(str(part) for part in parts)


def format_validation_errors(errors: Sequence[dict[str, Any]]) -> list[dict[str, str]]:
    """Every violation as ``{message, path, type}``, not just the first."""
    return [
        {"message": err.get("msg", ""), "path": _path(err.get("loc", ())), "type": err.get("type", "")}
        for err in errors
    ]


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = format_validation_errors(exc.errors())
    logger.warning("[validation] %s %s rejected: %s", request.method, request.url.path, errors)
    return JSONResponse(status_code=400, content={"errors": errors})
