"""Response schemas for API endpoints."""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class ChatResponse(BaseModel):
  """Result of one automated ChatGPT interaction."""

  success: bool = Field(True, description="Whether the interaction completed")
  initial_response: str = Field(..., description="Reply to the initial prompt")
  reply_response: Optional[str] = Field(None, description="Reply to the follow-up prompt")
  initial_csv_path: str = Field(..., description="Transcript file for the initial reply")
  reply_csv_path: Optional[str] = Field(None, description="Transcript file for the follow-up reply")
  logged_in: bool = Field(False, description="Whether the browser session was logged in")
  duration_ms: int = Field(..., ge=0, description="Total automation time")
  debug_dir: Optional[str] = Field(None, description="Debug artifact directory, if enabled")

  model_config = {
    "json_schema_extra": {
      "examples": [
        {
          "success": True,
          "initial_response": "Prince Hamlet seeks revenge...",
          "reply_response": "A prince avenges his father and everyone dies.",
          "initial_csv_path": "outputs/chatgpt-initial-response-2024-01-15T10-30-00-000Z.csv",
          "reply_csv_path": "outputs/chatgpt-reply-response-2024-01-15T10-30-20-000Z.csv",
          "logged_in": False,
          "duration_ms": 41250,
          "debug_dir": None,
        }
      ]
    }
  }


class HealthResponse(BaseModel):
  """Health check response."""

  status: str = Field(..., description="healthy or unhealthy")
  version: str = Field(..., description="API version")
  output_dir: str = Field(..., description="Transcript directory")
  output_dir_writable: bool = Field(..., description="Whether transcripts can be written")
  session_active: bool = Field(..., description="Whether a browser session is running")


class ErrorResponse(BaseModel):
  """Error envelope returned by all exception handlers."""

  error: Dict[str, Any] = Field(..., description="message, code and optional details")
