import errno
import logging
from typing import Optional
from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.requests import ClientDisconnect

logger = logging.getLogger("errors")

# Status used for requests whose client went away; never reaches a live client
HTTP_499_CLIENT_CLOSED_REQUEST = 499

DISCONNECT_ERRNOS = {errno.ECONNRESET, errno.EPIPE, errno.ECONNABORTED}


class NotFound(HTTPException):
    def __init__(self, detail: str = "File not found"):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class BadRequest(HTTPException):
    def __init__(self, detail: str):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


class RangeNotSatisfiable(HTTPException):
    """
    Raised when a Range header cannot be satisfied for a resource.

    Carries ``Content-Range: bytes */<size>`` so clients learn the real size.
    """

    def __init__(self, total_size: int, detail: str = "Requested range not satisfiable"):
        self.total_size = total_size
        super().__init__(
            status_code=status.HTTP_416_REQUESTED_RANGE_NOT_SATISFIABLE,
            detail=detail,
            headers={"Content-Range": f"bytes */{total_size}"},
        )


class UploadTimeout(HTTPException):
    def __init__(self, detail: str = "Upload timeout - file too large or connection too slow"):
        super().__init__(status_code=status.HTTP_408_REQUEST_TIMEOUT, detail=detail)


class InternalError(HTTPException):
    def __init__(self, detail: str):
        super().__init__(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=detail)


class ClientClosedRequest(HTTPException):
    def __init__(self, detail: str = "Client disconnected"):
        super().__init__(status_code=HTTP_499_CLIENT_CLOSED_REQUEST, detail=detail)


def is_client_disconnect(exc: Optional[BaseException]) -> bool:
    """
    Check whether an exception means the peer closed the connection.

    Resets, broken pipes and aborted connections are expected while
    streaming and are not reported as server errors.
    """
    if exc is None:
        return False
    if isinstance(exc, (ClientDisconnect, ConnectionError)):
        return True
    if isinstance(exc, OSError) and exc.errno in DISCONNECT_ERRNOS:
        return True
    return False


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code == HTTP_499_CLIENT_CLOSED_REQUEST:
        logger.debug(f"Client disconnected during {request.method} {request.url.path}")
    detail = exc.detail
    if exc.status_code == status.HTTP_404_NOT_FOUND and detail == "Not Found":
        detail = "Route not found"
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": detail},
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": f"Invalid request: {message}"},
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    if is_client_disconnect(exc):
        logger.info("Client disconnected (expected behavior)")
    else:
        logger.error(f"Unhandled error on {request.method} {request.url.path}", exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Something went wrong!"},
    )


def setup_exception_handlers(app: FastAPI):
    """
    Register JSON error rendering for every error path of the application.
    """
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
