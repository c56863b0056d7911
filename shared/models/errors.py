"""Application error taxonomy.

Every error raised by the services carries a machine-usable category and an
HTTP status code so the API layer can turn it into a response envelope
without inspecting message strings.
"""

from typing import Any


class AppError(Exception):
    """Base class for all application errors.

    Attributes:
        category (str): Machine-usable error category (e.g. "not_found").
        status_code (int): HTTP status code used by the API layer.
        message (str): Human-readable message.
        detail (str | None): Additional detail for debugging.
        context (dict): Extra data returned alongside the error (e.g. the document uuid).
    """

    category: str = "internal"
    status_code: int = 500

    def __init__(self, message: str, detail: str | None = None, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail
        self.context = context or {}

    def __str__(self) -> str:
        if self.detail:
            return f"{self.message} ({self.detail})"
        return self.message


class InvalidInputError(AppError):
    category = "validation"
    status_code = 400


class NotFoundError(AppError):
    category = "not_found"
    status_code = 404


class DocumentPermissionError(AppError):
    category = "permission"
    status_code = 403


class EmbeddingError(AppError):
    category = "embedding"
    status_code = 502


class VectorIndexError(AppError):
    category = "index"
    status_code = 502


class ExtractionError(AppError):
    category = "extraction"
    status_code = 422


class NoMatchError(AppError):
    category = "no_match"
    status_code = 404


class StorageError(AppError):
    category = "storage"
    status_code = 502


class GenerationError(AppError):
    category = "generation"
    status_code = 502


class InternalError(AppError):
    category = "internal"
    status_code = 500
