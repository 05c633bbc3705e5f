import logging
from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse

from .application.errors import BookingError, ContentionError, TrustError, StorageError, GatewayError

logger = logging.getLogger(__name__)


def create_error_response(error_message: str, status_code: int = 400, error_type: str = None) -> dict:
    """Create a standardized error response"""
    return {
        "success": False,
        "data": None,
        "error": error_message,
        "error_type": error_type,
    }


def create_success_response(data) -> dict:
    """Create a standardized success response"""
    return {
        "success": True,
        "data": data,
        "error": None
    }


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Custom exception handler for HTTPException"""
    # Convert 403 from HTTPBearer to 401 for missing authentication
    if exc.status_code == 403 and "Not authenticated" in str(exc.detail):
        return JSONResponse(
            status_code=401,
            content=create_error_response("Authentication required", 401)
        )

    return JSONResponse(
        status_code=exc.status_code,
        content=create_error_response(exc.detail, exc.status_code)
    )


async def booking_error_handler(request: Request, exc: BookingError) -> JSONResponse:
    """Map domain errors onto HTTP responses; contention is a normal outcome, not a fault."""
    error_type = type(exc).__name__
    if isinstance(exc, (StorageError, GatewayError)):
        logger.error(f"{error_type} on {request.method} {request.url.path}: {exc.detail}")
    elif isinstance(exc, TrustError):
        logger.warning(f"{error_type} on {request.url.path}: {exc.detail}")
    elif isinstance(exc, ContentionError):
        logger.info(f"{error_type} on {request.url.path}: {exc.detail}")

    return JSONResponse(
        status_code=exc.status_code,
        content=create_error_response(exc.detail, exc.status_code, error_type)
    )
