"""Translate application errors into the API response envelope."""

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from server.models.responses import ApiResponse, ErrorBody
from shared.models.errors import AppError

_HTTP_CATEGORIES = {
    400: "validation",
    401: "unauthorized",
    403: "permission",
    404: "not_found",
    405: "validation",
    413: "validation",
}


def _envelope(status_code: int, body: ApiResponse) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


def register_exception_handlers(app: FastAPI) -> None:
    """Install handlers so that every failure leaves the API as an ApiResponse."""

    @app.exception_handler(AppError)
    async def handle_app_error(request: Request, exc: AppError) -> JSONResponse:
        logging = request.app.state.logging
        if exc.status_code >= 500:
            logging.error("%s %s failed: %s", request.method, request.url.path, exc)
        else:
            logging.warning("%s %s rejected: %s", request.method, request.url.path, exc)
        return _envelope(exc.status_code, ApiResponse.from_error(exc))

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        body = ApiResponse(
            success=False,
            message="Invalid request",
            error=ErrorBody(category="validation", detail=str(exc.errors())),
        )
        return _envelope(400, body)

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        body = ApiResponse(
            success=False,
            message=str(exc.detail),
            error=ErrorBody(category=_HTTP_CATEGORIES.get(exc.status_code, "internal")),
        )
        return _envelope(exc.status_code, body)

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        request.app.state.logging.exception("Unhandled error on %s %s: %s", request.method, request.url.path, exc)
        body = ApiResponse(
            success=False,
            message="Internal server error",
            error=ErrorBody(category="internal", detail=str(exc)),
        )
        return _envelope(500, body)
