"""Chat Relay API - Main application entry point.

This module configures and initializes the FastAPI application that drives
the ChatGPT web UI through a browser and returns the replies.

The application provides:
- POST /api/v1/chat: run one browser session (initial prompt + optional follow-up)
- A browser form at / for submitting prompts
- CSV transcripts for every reply, written to OUTPUT_DIR
- Structured logging with correlation IDs for request tracing
- Consistent JSON error bodies from a custom exception hierarchy

API Documentation:
- OpenAPI/Swagger UI: /docs
- ReDoc: /redoc
- Health check: /health

Environment Configuration:
- Configured via settings in chatrelay.config
- See .env.example for the available variables
"""

import logging
import os
from pathlib import Path

import uvicorn
from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse

from chatrelay.api.v1.endpoints import chat
from chatrelay.config import settings
from chatrelay.core.exceptions import APIException, InternalServerError
from chatrelay.core.middleware import LoggingMiddleware, get_correlation_id
from chatrelay.dependencies import get_chat_service
from chatrelay.services.chat_service import ChatService

STATIC_DIR = Path(__file__).resolve().parent / "static"


class CorrelationIdFilter(logging.Filter):
  """Add default correlation_id to all log records."""

  def filter(self, record):
    """Add correlation_id to log record if not present."""
    if not hasattr(record, 'correlation_id'):
      record.correlation_id = 'no-correlation-id'
    return True


logging.basicConfig(
  level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
  format='%(asctime)s - %(name)s - %(levelname)s - [%(correlation_id)s] - %(message)s',
  datefmt='%Y-%m-%d %H:%M:%S'
)

for handler in logging.root.handlers:
  handler.addFilter(CorrelationIdFilter())

logger = logging.getLogger(__name__)

app = FastAPI(
  title=settings.APP_NAME,
  description="Send prompts to the ChatGPT web UI through an automated browser",
  version=settings.VERSION,
  docs_url="/docs",
  redoc_url="/redoc",
)

app.add_middleware(
  CORSMiddleware,
  allow_origins=settings.CORS_ORIGINS,
  allow_credentials=True,
  allow_methods=["*"],
  allow_headers=["*"],
)

app.add_middleware(LoggingMiddleware)

app.include_router(chat.router, prefix="/api/v1")


@app.get("/", include_in_schema=False)
async def index():
  """Serve the prompt form."""
  return FileResponse(STATIC_DIR / "index.html", media_type="text/html")


@app.get("/health")
async def health_check(chat_service: ChatService = Depends(get_chat_service)):
  """Health check endpoint - verifies the transcript directory is writable."""
  output_dir = Path(settings.OUTPUT_DIR)
  try:
    output_dir.mkdir(parents=True, exist_ok=True)
    writable = os.access(output_dir, os.W_OK)
  except OSError:
    writable = False

  payload = {
    "status": "healthy" if writable else "unhealthy",
    "version": settings.VERSION,
    "output_dir": str(output_dir),
    "output_dir_writable": writable,
    "session_active": chat_service.is_busy,
  }
  return JSONResponse(status_code=200 if writable else 503, content=payload)


# Exception handlers for consistent error responses

@app.exception_handler(APIException)
async def api_exception_handler(request: Request, exc: APIException):
  """Handle custom API exceptions with error codes.

  Returns a consistent JSON response with error code, message, and details.
  """
  logger.error(
    f"API Exception: {exc.error_code} - {exc.message}",
    extra={
      "correlation_id": get_correlation_id(request),
      "error_code": exc.error_code,
      "status_code": exc.status_code,
      "path": request.url.path,
      "method": request.method,
      "details": exc.details,
    }
  )

  return JSONResponse(
    status_code=exc.status_code,
    content=exc.to_dict(),
  )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
  """Handle Pydantic validation errors (422).

  Converts Pydantic validation errors into user-friendly format
  with field-level error details. Submitted values are not echoed back
  because they may include a password.
  """
  errors = []
  for error in exc.errors():
    field_path = " -> ".join(str(loc) for loc in error["loc"])
    errors.append({
      "field": field_path,
      "message": error["msg"],
      "type": error["type"],
    })

  logger.warning(
    f"Validation error on {request.url.path}",
    extra={
      "correlation_id": get_correlation_id(request),
      "path": request.url.path,
      "method": request.method,
      "errors": errors,
    }
  )

  return JSONResponse(
    status_code=422,
    content={
      "error": {
        "message": "Request validation failed",
        "code": "VALIDATION_ERROR",
        "details": {
          "errors": errors,
        },
      }
    },
  )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
  """Global exception handler for unhandled errors (500)."""
  logger.exception(
    f"Unhandled exception on {request.url.path}",
    extra={
      "correlation_id": get_correlation_id(request),
      "path": request.url.path,
      "method": request.method,
      "error_type": type(exc).__name__,
    },
  )

  error = InternalServerError(
    message="An unexpected error occurred",
    details={"error_type": type(exc).__name__, "error": str(exc)} if settings.DEBUG else None,
  )

  return JSONResponse(
    status_code=error.status_code,
    content=error.to_dict(),
  )


def run() -> None:
  """Start the API server with uvicorn."""
  uvicorn.run(
    "chatrelay.main:app",
    host=settings.HOST,
    port=settings.PORT,
    log_level=settings.LOG_LEVEL.lower(),
  )


if __name__ == "__main__":
  run()
