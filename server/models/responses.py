from typing import Any

from pydantic import BaseModel

from shared.models.errors import AppError


class ErrorBody(BaseModel):
    category: str
    detail: str | None = None


class ApiResponse(BaseModel):
    """Envelope of every API response.

    success is True for full and partial indexing alike; message carries
    the qualification. error is only set on failures.
    """

    success: bool
    message: str
    data: Any = None
    error: ErrorBody | None = None

    @classmethod
    def ok(cls, message: str, data: Any = None) -> "ApiResponse":
        return cls(success=True, message=message, data=data)

    @classmethod
    def from_error(cls, exc: AppError) -> "ApiResponse":
        return cls(
            success=False,
            message=exc.message,
            data=exc.context or None,
            error=ErrorBody(category=exc.category, detail=exc.detail),
        )
