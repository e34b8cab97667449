"""Browser automation for the ChatGPT web UI."""

from chatrelay.automation.base_session import BaseSession, SessionResult
from chatrelay.automation.chatgpt_session import ChatGPTSession

__all__ = ["BaseSession", "ChatGPTSession", "SessionResult"]
