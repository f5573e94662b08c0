"""Error envelope shared by every endpoint."""

from typing import Any

from pydantic import BaseModel


class ErrorDetail(BaseModel):
    code: str
    message: str
    detail: dict[str, Any] | None = None


class ErrorResponse(BaseModel):
    """{"error": {"code": str, "message": str, "detail": object | null}}"""

    error: ErrorDetail


def error_body(code: str, message: str, detail: dict[str, Any] | None = None) -> dict[str, Any]:
    """JSON-ready error envelope."""
    return ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail)).model_dump()
