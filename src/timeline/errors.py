from fastapi.exceptions import HTTPException, RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from timeline.persistence.database import StorageError
import logging

logger = logging.getLogger(__name__)


class ApiError(HTTPException):
    """An error whose message is safe to show to the client"""

    def __init__(self, detail: str, code: int = status.HTTP_400_BAD_REQUEST):
        super().__init__(status_code=code, detail=detail)


class ValidationError(ApiError):
    def __init__(self, detail: str):
        super().__init__(detail=detail, code=status.HTTP_400_BAD_REQUEST)


class AuthError(ApiError):
    def __init__(self, detail: str = "Login required"):
        super().__init__(detail=detail, code=status.HTTP_401_UNAUTHORIZED)


def error_response(message: str, code: int) -> JSONResponse:
    return JSONResponse(status_code=code, content={"error": message})


def register_exception_handlers(app: FastAPI) -> None:
    """Renders every error as {"error": message}"""

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return error_response(str(exc.detail), exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ):
        logger.info(f"Rejected malformed request to {request.url.path}: {exc.errors()}")
        return error_response("Malformed request body", status.HTTP_400_BAD_REQUEST)

    @app.exception_handler(StorageError)
    async def storage_error_handler(request: Request, exc: StorageError):
        # Details stay in the log, never in the response
        logger.error(
            f"Storage failure on {request.method} {request.url.path}", exc_info=exc
        )
        return error_response(
            "Internal server error", status.HTTP_500_INTERNAL_SERVER_ERROR
        )

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.error(
            f"Unhandled error on {request.method} {request.url.path}", exc_info=exc
        )
        return error_response(
            "Internal server error", status.HTTP_500_INTERNAL_SERVER_ERROR
        )
