"""Middleware for request/response logging and correlation IDs.

Each request gets a correlation ID (taken from the X-Correlation-ID header or
generated), which is stored on request.state, attached to every log record the
middleware emits, and echoed back in the response headers. A browser session
can run for minutes, so durations are logged for every request.
"""

import logging
import time
import uuid
from typing import Callable, FrozenSet

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

CORRELATION_HEADER = "X-Correlation-ID"

# Polled by monitors; logged at DEBUG only.
QUIET_PATHS: FrozenSet[str] = frozenset({"/health", "/favicon.ico"})


class LoggingMiddleware(BaseHTTPMiddleware):
  """Log all requests and responses with correlation IDs and timing."""

  async def dispatch(self, request: Request, call_next: Callable) -> Response:
    """Process request and response with logging."""
    correlation_id = request.headers.get(CORRELATION_HEADER) or str(uuid.uuid4())
    request.state.correlation_id = correlation_id

    client_host = request.client.host if request.client else "unknown"
    quiet = request.url.path in QUIET_PATHS
    start_time = time.perf_counter()

    logger.log(
      logging.DEBUG if quiet else logging.INFO,
      f"Request started: {request.method} {request.url.path}",
      extra={
        "correlation_id": correlation_id,
        "method": request.method,
        "path": request.url.path,
        "client_host": client_host,
      }
    )

    try:
      response = await call_next(request)
    except Exception as e:
      logger.error(
        f"Request failed: {request.method} {request.url.path}",
        extra={
          "correlation_id": correlation_id,
          "method": request.method,
          "path": request.url.path,
          "duration_ms": _elapsed_ms(start_time),
          "error": str(e),
        },
        exc_info=True,
      )
      raise

    response.headers[CORRELATION_HEADER] = correlation_id

    if response.status_code >= 400:
      log_level = logging.WARNING
    elif quiet:
      log_level = logging.DEBUG
    else:
      log_level = logging.INFO
    logger.log(
      log_level,
      f"Request completed: {request.method} {request.url.path} - {response.status_code}",
      extra={
        "correlation_id": correlation_id,
        "method": request.method,
        "path": request.url.path,
        "status_code": response.status_code,
        "duration_ms": _elapsed_ms(start_time),
        "client_host": client_host,
      }
    )

    return response


def _elapsed_ms(start_time: float) -> float:
  return round((time.perf_counter() - start_time) * 1000, 2)


def get_correlation_id(request: Request) -> str:
  """Get correlation ID from request state.

  Args:
    request: FastAPI request object

  Returns:
    Correlation ID string
  """
  return getattr(request.state, "correlation_id", "no-correlation-id")
