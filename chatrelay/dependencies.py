"""Dependency injection for FastAPI endpoints.

Dependency Chain:
1. get_transcript_store() -> TranscriptStore (OUTPUT_DIR from settings)
2. get_chat_service() -> ChatService (needs store)

ChatService is a process-wide singleton because it guards the single browser
session; tests replace it through app.dependency_overrides.

Example:
    @router.post("/chat")
    async def chat(
        request: ChatRequest,
        chat_service: ChatService = Depends(get_chat_service),
    ):
        return await chat_service.run_interaction(request)
"""

from functools import lru_cache

from chatrelay.config import settings
from chatrelay.services.chat_service import ChatService
from chatrelay.services.transcript_store import TranscriptStore


@lru_cache(maxsize=1)
def get_transcript_store() -> TranscriptStore:
  """
  Get the TranscriptStore writing into OUTPUT_DIR.

  Returns:
    TranscriptStore instance
  """
  return TranscriptStore(settings.OUTPUT_DIR)


@lru_cache(maxsize=1)
def get_chat_service() -> ChatService:
  """
  Get the shared ChatService instance.

  Returns:
    ChatService instance
  """
  return ChatService(get_transcript_store())
