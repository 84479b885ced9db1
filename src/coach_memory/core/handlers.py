"""Error handlers for the HTTP surface"""

from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from coach_memory.core.logging import get_logger

from .base import ApplicationError, ErrorCode, ErrorLevel
from .error_context import ErrorContext, ErrorContextManager

logger = get_logger(__name__)

STATUS_BY_CODE: dict[ErrorCode, int] = {
    ErrorCode.INVALID_REQUEST: status.HTTP_400_BAD_REQUEST,
    ErrorCode.INVALID_INPUT: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorCode.EMBEDDING_DIMENSION_MISMATCH: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorCode.DB_VALIDATION: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorCode.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.DB_RECORD_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.DB_CONFLICT: status.HTTP_409_CONFLICT,
    ErrorCode.AUTHENTICATION_FAILED: status.HTTP_502_BAD_GATEWAY,
    ErrorCode.RATE_LIMITED: status.HTTP_429_TOO_MANY_REQUESTS,
    ErrorCode.TIMEOUT: status.HTTP_504_GATEWAY_TIMEOUT,
    ErrorCode.CONFIG_MISSING: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorCode.CONFIG_INVALID: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorCode.CIRCUIT_OPEN: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorCode.SERVICE_UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorCode.DB_CONNECTION: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def status_for(error: ApplicationError) -> int:
    return STATUS_BY_CODE.get(error.code, status.HTTP_500_INTERNAL_SERVER_ERROR)


class ErrorHandler:
    """Base class for error handlers"""

    def _format_response(self, error_context: ErrorContext, level: ErrorLevel) -> dict[str, Any]:
        """Format error response"""
        response: dict[str, Any] = {
            "error": str(error_context.error),
            "error_code": ErrorCode.PROCESSING_FAILED.value,
            "level": level.value,
            "trace_id": error_context.trace_id,
            "timestamp": error_context.timestamp.isoformat(),
        }

        # Include rich structured data if it's an ApplicationError
        if isinstance(error_context.error, ApplicationError):
            response["error_code"] = error_context.error.code.value
            response["details"] = error_context.error.details.model_dump(mode="json")

        return response

    async def handle_async(self, error: Exception, level: ErrorLevel, **context: Any) -> dict[str, Any]:
        """Handle error asynchronously"""
        async with ErrorContextManager(error, **context) as error_context:
            return self._format_response(error_context, level)


class GlobalErrorHandler(ErrorHandler):
    """Global error handler for FastAPI application"""

    async def handle_application_error(self, request: Request, error: ApplicationError) -> JSONResponse:
        status_code = status_for(error)
        logger.log(
            error.level.to_logging_level(),
            "Request failed",
            path=request.url.path,
            error_code=error.code.value,
            status_code=status_code,
            error=error.message,
        )
        body = await self.handle_async(error, error.level, path=request.url.path)
        return JSONResponse(status_code=status_code, content=body)

    async def handle_http_exception(self, request: Request, error: HTTPException) -> JSONResponse:
        """Handle HTTP exceptions"""
        level = ErrorLevel.ERROR if error.status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR else ErrorLevel.WARNING
        body = await self.handle_async(error, level, path=request.url.path, status_code=error.status_code)
        body["error"] = error.detail
        return JSONResponse(status_code=error.status_code, content=body)


def install_error_handlers(app: FastAPI, handler: GlobalErrorHandler | None = None) -> None:
    handler = handler or GlobalErrorHandler()
    app.add_exception_handler(ApplicationError, handler.handle_application_error)
    app.add_exception_handler(HTTPException, handler.handle_http_exception)
