# core/envelope.py
import uuid
from typing import Any, Dict, Optional

from fastapi import Request
from fastapi.encoders import jsonable_encoder

CORRELATION_HEADER = "x-correlation-id"


def new_correlation_id() -> str:
    return str(uuid.uuid4())


def get_correlation_id(request: Request) -> str:
    """Dependency: correlation id set by the middleware in main.py."""
    correlation_id = getattr(request.state, "correlation_id", None)
    if not correlation_id:
        correlation_id = request.headers.get(CORRELATION_HEADER) or new_correlation_id()
        request.state.correlation_id = correlation_id
    return correlation_id


def wrap_success(data: Any, correlation_id: str) -> Dict[str, Any]:
    return {"data": jsonable_encoder(data), "correlationId": correlation_id}


def wrap_error(code: str, message: str, details: Optional[Any], correlation_id: str) -> Dict[str, Any]:
    error: Dict[str, Any] = {"code": code, "message": message}
    if details is not None:
        error["details"] = jsonable_encoder(details)
    return {"error": error, "correlationId": correlation_id}
