"""Service running one automated chat interaction end to end."""

from __future__ import annotations

import asyncio
import functools
import logging
import threading
from pathlib import Path
from typing import Callable, Dict, Optional

from chatrelay.api.v1.schemas.requests import ChatRequest
from chatrelay.api.v1.schemas.responses import ChatResponse
from chatrelay.automation.base_session import SessionResult
from chatrelay.automation.chatgpt_session import ChatGPTSession
from chatrelay.core.exceptions import SessionBusyError
from chatrelay.services.transcript_store import TranscriptStore

logger = logging.getLogger(__name__)

# (headless, debug) -> session exposing run(...)
SessionFactory = Callable[[Optional[bool], Optional[bool]], ChatGPTSession]


def default_session_factory(headless: Optional[bool], debug: Optional[bool]) -> ChatGPTSession:
  """Build a ChatGPT session from global settings with per-request overrides."""
  return ChatGPTSession(headless=headless, debug=debug)


class ChatService:
  """Runs a browser session and persists each reply as it arrives.

  Only one browser session runs at a time; a second request while one is
  in flight is rejected rather than queued.
  """

  def __init__(self, store: TranscriptStore, session_factory: SessionFactory = default_session_factory):
    """Initialize chat service.

    Args:
      store: TranscriptStore for persistence writes
      session_factory: Callable building a session for a request
    """
    self.store = store
    self.session_factory = session_factory
    self._lock = threading.Lock()

  @property
  def is_busy(self) -> bool:
    """Whether a browser session is currently running."""
    return self._lock.locked()

  async def run_interaction(self, request: ChatRequest) -> ChatResponse:
    """Run the automation session for a request and save its transcripts.

    The guard is released when the worker thread finishes, not when this
    coroutine does: a cancelled request leaves its browser running until the
    session ends, and no second session may start meanwhile.

    Raises:
      SessionBusyError: If another session is running
      APIException: Any automation or persistence failure
    """
    if not self._lock.acquire(blocking=False):
      raise SessionBusyError()

    csv_paths: Dict[str, Path] = {}

    def persist(kind: str, prompt: str, response: str) -> None:
      csv_paths[kind] = self.store.save(kind, prompt, response)

    try:
      session = self.session_factory(request.headless, request.debug)
      logger.info(
        "Starting automation session (follow-up: %s, credentials: %s)",
        bool(request.reply_prompt),
        bool(request.email),
      )
      loop = asyncio.get_running_loop()
      future = loop.run_in_executor(
        None,
        functools.partial(
          session.run,
          request.initial_prompt,
          reply_prompt=request.reply_prompt,
          email=request.email,
          password=request.password,
          on_response=persist,
        ),
      )
    except BaseException:
      self._lock.release()
      raise
    future.add_done_callback(self._session_finished)

    result: SessionResult = await asyncio.shield(future)

    logger.info("Automation session finished in %d ms", result.duration_ms)
    reply_path = csv_paths.get("reply")
    return ChatResponse(
      success=True,
      initial_response=result.initial_response,
      reply_response=result.reply_response,
      initial_csv_path=str(csv_paths["initial"]),
      reply_csv_path=str(reply_path) if reply_path else None,
      logged_in=result.logged_in,
      duration_ms=result.duration_ms,
      debug_dir=result.debug_dir,
    )

  def _session_finished(self, future: asyncio.Future) -> None:
    self._lock.release()
    if not future.cancelled() and future.exception() is not None:
      logger.info("Automation session ended with %s", type(future.exception()).__name__)
