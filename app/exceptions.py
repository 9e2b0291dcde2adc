"""
    Centralized exception handling for the FastAPI application.
"""
from fastapi import Request, HTTPException
from fastapi.responses import JSONResponse
from typing import Optional
import logging

log = logging.getLogger(__name__)

class APIException(Exception):
    """Base class for API exceptions."""
    def __init__(self, status_code: int, detail: str):
        self.status_code = status_code
        self.detail = detail
        super().__init__(self.detail)

class ConfigurationError(APIException):
    """Missing secrets or connection settings. Fatal at startup."""
    def __init__(self, detail: str):
        super().__init__(status_code=500, detail=detail)

class ExternalServiceError(APIException):
    """Background removal API failed, answered with a non-image or was unreachable."""
    def __init__(self, detail: str, upstream_status: Optional[int] = None):
        self.upstream_status = upstream_status
        super().__init__(status_code=502, detail=detail)

class TransformError(APIException):
    """Image bytes could not be decoded for transformation."""
    def __init__(self, detail: str):
        super().__init__(status_code=422, detail=detail)

class StorageError(APIException):
    """Blob or metadata backend failure."""
    def __init__(self, detail: str):
        super().__init__(status_code=500, detail=detail)

class ImageNotFoundException(APIException):
    """Exception for when an image is not found."""
    def __init__(self, image_id: str):
        self.image_id = image_id
        super().__init__(status_code=404, detail=f"Image with ID '{image_id}' not found.")

class InvalidImageException(APIException):
    """Exception for invalid image files."""
    def __init__(self, detail: str):
        super().__init__(status_code=400, detail=detail)

class InvalidCursorException(APIException):
    def __init__(self, cursor: str):
        super().__init__(status_code=400, detail=f"Invalid pagination cursor: {cursor!r}")

class PayloadTooLargeException(APIException):
    def __init__(self, limit: int):
        super().__init__(status_code=413, detail=f"File exceeds the maximum size of {limit} bytes.")

class ScopeForbiddenException(APIException):
    def __init__(self, scope: str):
        super().__init__(status_code=403, detail=f"Scope '{scope}' is not allowed.")

class ProcessingCancelledException(APIException):
    """Raised at a pipeline step boundary once the caller cancelled or the deadline passed."""
    def __init__(self, step: str):
        self.step = step
        super().__init__(status_code=408, detail=f"Image processing cancelled before step '{step}'.")

async def api_exception_handler(request: Request, exc: APIException):
    """Handles API exceptions."""
    log.error(f"API Exception: {exc.detail}", exc_info=exc)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
    )

async def http_exception_handler(request: Request, exc: HTTPException):
    """Handles FastAPI HTTP exceptions."""
    log.error(f"HTTP Exception: {exc.detail}", exc_info=exc)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
    )

async def generic_exception_handler(request: Request, exc: Exception):
    """Handles all other exceptions."""
    log.error(f"Unhandled Exception: {str(exc)}", exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={"detail": "An unexpected error occurred."},
    )

def add_exception_handlers(app):
    """Adds exception handlers to the FastAPI app."""
    app.add_exception_handler(APIException, api_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
