"""Chat API endpoint."""

from fastapi import APIRouter, Depends, status

from chatrelay.api.v1.schemas.requests import ChatRequest
from chatrelay.api.v1.schemas.responses import ChatResponse, ErrorResponse
from chatrelay.dependencies import get_chat_service
from chatrelay.services.chat_service import ChatService

router = APIRouter(tags=["chat"])


@router.post(
  "/chat",
  response_model=ChatResponse,
  status_code=status.HTTP_200_OK,
  summary="Send prompts to ChatGPT through the browser",
  description="Open ChatGPT in a browser, send the initial prompt (and optional follow-up) "
  "and return the replies. Each reply is saved to its own CSV file. "
  "The request blocks until the browser session has finished.",
  responses={
    409: {"model": ErrorResponse, "description": "Another browser session is running"},
    422: {"model": ErrorResponse, "description": "Validation error"},
    502: {"model": ErrorResponse, "description": "A browser automation step failed"},
    503: {"model": ErrorResponse, "description": "ChatGPT asked for human verification"},
    504: {"model": ErrorResponse, "description": "The reply did not finish in time"},
  },
)
async def chat(
  request: ChatRequest,
  chat_service: ChatService = Depends(get_chat_service),
):
  """Run one automated interaction.

  Args:
    request: ChatRequest with prompts, optional credentials and browser flags
    chat_service: ChatService dependency

  Returns:
    ChatResponse with reply texts and transcript paths
  """
  return await chat_service.run_interaction(request)
