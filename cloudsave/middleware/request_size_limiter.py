"""
Request size limiting middleware for FastAPI.
Protects the analysis endpoints from oversized payloads.
"""
from typing import Dict, Set, Optional
import json
import logging
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.types import ASGIApp

from cloudsave.core.config import config

logger = logging.getLogger(__name__)


# Room for multipart boundaries and part headers around an upload
MULTIPART_OVERHEAD_BYTES = 64 * 1024

# Endpoints that require size limiting
PROTECTED_ENDPOINTS: Set[str] = {
    "/api/analyze",
    "/api/analyze/text",
}


def max_request_body_size() -> int:
    """Largest accepted request body: the file limit plus multipart overhead."""
    return config.MAX_FILE_SIZE_BYTES + MULTIPART_OVERHEAD_BYTES


def _too_large(message: str) -> JSONResponse:
    return JSONResponse(
        status_code=413,
        content={
            "status": "error",
            "error": "request_too_large",
            "message": message,
        }
    )


class RequestSizeLimiterMiddleware(BaseHTTPMiddleware):
    """
    FastAPI middleware for request size limiting.

    Applies size limits only to configured endpoints.
    Other routes pass through untouched.
    """

    async def dispatch(self, request: Request, call_next: ASGIApp):
        """
        Process request and apply size limits if applicable.

        Args:
            request: FastAPI request object
            call_next: Next middleware or route handler

        Returns:
            Response object
        """
        path = request.url.path

        if path not in PROTECTED_ENDPOINTS:
            response = await call_next(request)
            return response

        limit = max_request_body_size()

        try:
            # Reject early on Content-Length when the client sends one
            content_length = request.headers.get("Content-Length")
            if content_length:
                try:
                    body_size = int(content_length)
                    if body_size > limit:
                        logger.info(
                            f"Request body size exceeded for {path}: "
                            f"{body_size} bytes (limit: {limit})"
                        )
                        return _too_large("Request body size exceeds allowed limit.")
                except ValueError:
                    # Invalid Content-Length header, measure the body instead
                    pass

            body_bytes = await request.body()
            body_size = len(body_bytes)

            if body_size > limit:
                logger.info(
                    f"Request body size exceeded for {path}: "
                    f"{body_size} bytes (limit: {limit})"
                )
                return _too_large("Request body size exceeds allowed limit.")

            # Text submissions carry the file inside JSON
            if path == "/api/analyze/text" and body_size > 0:
                try:
                    body_json = json.loads(body_bytes.decode("utf-8"))
                    validation_error = self._validate_text_request(body_json)
                    if validation_error:
                        logger.info(f"Payload validation failed for {path}: {validation_error}")
                        return _too_large(validation_error)
                except (json.JSONDecodeError, UnicodeDecodeError):
                    # Malformed body; FastAPI reports the validation error
                    pass

            # Restore the consumed body for downstream handlers
            async def receive():
                return {"type": "http.request", "body": body_bytes}

            request._receive = receive

        except Exception as error:
            # Fail closed on any error
            logger.error(
                f"Error during size limiting for {path}: {error}",
                exc_info=True
            )
            return _too_large("Request validation failed.")

        response = await call_next(request)
        return response

    def _validate_text_request(self, body_json: Dict) -> Optional[str]:
        """
        Validate /api/analyze/text request.

        Args:
            body_json: Parsed JSON body with 'content'

        Returns:
            Error message if validation fails, None if valid
        """
        if not isinstance(body_json, dict):
            return None

        content = body_json.get("content", "")
        if not isinstance(content, str):
            return None

        content_size = len(content.encode("utf-8"))
        if content_size > config.MAX_FILE_SIZE_BYTES:
            return (
                f"File content size exceeds limit: "
                f"{content_size} bytes (limit: {config.MAX_FILE_SIZE_BYTES} bytes)"
            )
        return None
