"""Error taxonomy and the handlers that turn it into JSON responses.

Every error response body has the shape ``{"message": "..."}``.
"""
import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class GalleryError(Exception):
    """Base class for errors raised by the gallery domain code."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    message = "Internal server error"
    retryable = False

    def __init__(self, message: str = None):
        super().__init__(message or self.message)
        if message:
            self.message = message


# ===== Image / face extraction =====
class InvalidImageError(GalleryError):
    status_code = status.HTTP_400_BAD_REQUEST
    message = "Invalid image payload"


class NoFaceDetectedError(GalleryError):
    message = "No face detected in the image"


class MultipleFacesError(GalleryError):
    status_code = status.HTTP_400_BAD_REQUEST
    message = "More than one face detected in the image"

    def __init__(self, count: int):
        super().__init__(f"Expected exactly one face, found {count}")
        self.count = count


class ExtractionError(GalleryError):
    message = "Face extraction failed"


class DescriptorMismatchError(GalleryError):
    message = "Face descriptors have different lengths"


class StorageError(GalleryError):
    message = "Could not store the uploaded image"


# ===== Retryable capacity problems =====
class ModelNotReadyError(GalleryError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    message = "Face models are not loaded yet, please try again"
    retryable = True


class PoolSaturatedError(GalleryError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    message = "Face analysis is busy, please try again"
    retryable = True


class ExtractionTimeoutError(GalleryError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    message = "Face analysis timed out, please try again"
    retryable = True


def _message_from_validation(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    field = ".".join(str(p) for p in first.get("loc", ()) if p not in ("body", "query", "path"))
    msg = first.get("msg", "Invalid value")
    return f"{field}: {msg}" if field else msg


def install_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(GalleryError)
    async def gallery_error_handler(request: Request, exc: GalleryError):
        if exc.status_code >= 500:
            logger.warning(f"{request.method} {request.url.path} failed: {exc.message}")
        headers = {"Retry-After": "5"} if exc.retryable else None
        return JSONResponse(status_code=exc.status_code, content={"message": exc.message}, headers=headers)

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"message": str(exc.detail)},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"message": _message_from_validation(exc)},
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"message": "Internal server error"},
        )
