"""Pytest configuration and shared fixtures."""

from pathlib import Path

import pytest
from dotenv import load_dotenv

from chatrelay.automation.chatgpt_session import ChatGPTSession
from chatrelay.config import Settings
from tests.fakes import FakeBrowserManager, FakePage


def pytest_configure(config):
  """
  Load environment variables from .env file before running tests.

  The .env file is located in the project root, next to pyproject.toml.
  """
  env_file = Path(__file__).resolve().parent.parent / ".env"
  if env_file.exists():
    load_dotenv(env_file)


@pytest.fixture
def test_settings(tmp_path):
  """Settings with short polls and timeouts, writing into tmp_path."""
  return Settings(
    OUTPUT_DIR=str(tmp_path / "outputs"),
    CHATGPT_SESSION_FILE=str(tmp_path / "data" / "session.json"),
    CHROME_CDP_URL=None,
    BROWSER_HEADLESS=True,
    DEBUG_ARTIFACTS=False,
    POLL_INTERVAL_MS=50,
    LOCATE_TIMEOUT_MS=100,
    NAVIGATION_TIMEOUT_MS=1000,
    RESPONSE_START_TIMEOUT_S=1,
    RESPONSE_TIMEOUT_S=1,
    CHALLENGE_WAIT_S=1,
    MIN_RESPONSE_CHARS=20,
  )


@pytest.fixture
def page():
  """Empty fake page."""
  return FakePage()


@pytest.fixture
def browser_manager(page):
  """Browser manager handing out the fake page."""
  return FakeBrowserManager(page)


@pytest.fixture
def session(test_settings, page, browser_manager):
  """Session attached to the fake page as if start_browser() had run."""
  chat_session = ChatGPTSession(config=test_settings, browser_manager=browser_manager)
  chat_session.page = page
  chat_session.is_active = True
  return chat_session
