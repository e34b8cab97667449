"""Abstract base class for chat automation sessions.

Defines the interface that a browser-driven chat session implements.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional


@dataclass
class SessionResult:
  """Outcome of one automation session."""

  initial_response: str
  reply_response: Optional[str] = None
  logged_in: bool = False
  duration_ms: int = 0
  debug_dir: Optional[str] = None


class BaseSession(ABC):
  """Abstract base class for browser automation sessions.

  A session owns exactly one browser page, used strictly sequentially.
  """

  def __init__(self):
    """Initialize the session."""
    self.page = None
    self.is_active = False

  @abstractmethod
  def start_browser(self, headless: bool = True) -> None:
    """Start the browser and open a page.

    Args:
      headless: Whether to run browser in headless mode

    Raises:
      AutomationError: If the browser fails to start
    """

  @abstractmethod
  def stop_browser(self) -> None:
    """Close the browser and release Playwright resources."""

  @abstractmethod
  def open_chat(self) -> None:
    """Navigate to the chat application and clear blocking pages.

    Raises:
      ChallengeDetectedError: If a verification wall was not cleared
    """

  @abstractmethod
  def authenticate(self, email: Optional[str] = None, password: Optional[str] = None) -> bool:
    """Make sure the page is usable, logging in when credentials are given.

    Returns:
      True if the session is logged in, False for anonymous use
    """

  @abstractmethod
  def send_prompt(self, prompt: str) -> str:
    """Submit a prompt and return the extracted reply text."""

  def is_browser_active(self) -> bool:
    """Check if browser session is active."""
    return self.is_active
