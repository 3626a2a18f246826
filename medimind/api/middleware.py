"""
API middleware for MediMind.

Provides:
- Rate limiting
- Request logging with a per-request id
- Uniform error bodies
"""

import time
from typing import Callable
from uuid import uuid4

from fastapi import HTTPException, Request, Response
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.util import get_remote_address
from starlette.middleware.base import BaseHTTPMiddleware

from medimind.config import settings
from medimind.utils.logger import bind_context, clear_context, get_logger

logger = get_logger("middleware")


# Rate limiter using client IP
limiter = Limiter(key_func=get_remote_address, enabled=settings.rate_limit_enabled)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Middleware for request/response logging.

    Logs:
    - Request method, path, client
    - Response status code
    - Processing time
    """

    async def dispatch(
        self,
        request: Request,
        call_next: Callable
    ) -> Response:
        start_time = time.time()
        request_id = request.headers.get("X-Request-ID") or uuid4().hex

        clear_context()
        bind_context(request_id=request_id)

        method = request.method
        path = request.url.path

        logger.info(
            "Request received",
            method=method,
            path=path,
            client_ip=get_remote_address(request)
        )

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                "Request failed",
                method=method,
                path=path,
                error=str(e),
                process_time_ms=int((time.time() - start_time) * 1000)
            )
            raise

        process_time = time.time() - start_time

        # Streamed bodies are still being sent at this point
        logger.info(
            "Request completed",
            method=method,
            path=path,
            status_code=response.status_code,
            process_time_ms=int(process_time * 1000)
        )

        response.headers["X-Process-Time"] = f"{process_time:.4f}"
        response.headers["X-Request-ID"] = request_id
        return response


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """
    Global error handling middleware.

    Catches unhandled exceptions and returns safe `{error}` bodies.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: Callable
    ) -> Response:
        try:
            return await call_next(request)

        except HTTPException:
            raise

        except ValueError as e:
            logger.warning("Validation error", error=str(e))
            return JSONResponse(status_code=400, content={"error": str(e)})

        except Exception as e:
            logger.error("Unhandled exception", error=str(e), exc_info=True)
            return JSONResponse(
                status_code=500,
                content={"error": "An unexpected error occurred. Please try again."}
            )


def setup_rate_limiting(app) -> None:
    """Setup rate limiting on the application."""
    app.state.limiter = limiter

    @app.exception_handler(429)
    async def rate_limit_handler(request: Request, exc: Exception):
        return JSONResponse(
            status_code=429,
            content={"error": "Too many requests. Please wait before trying again."}
        )
