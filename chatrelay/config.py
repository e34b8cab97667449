"""Application configuration settings.

This module defines the application's configuration using Pydantic Settings,
which loads values from environment variables and .env files with type validation.

The Settings class manages:
- Server configuration (host, port, debug mode, CORS origins)
- Browser automation (target URLs, session file, CDP attach, headless mode)
- Timeouts and polling cadence for the selector fallback chains
- Output directory for transcripts and debug artifacts
- Logging levels

Configuration Priority:
1. Environment variables (highest priority)
2. .env file in project root
3. Default values defined in this module

Example:
    from chatrelay.config import settings

    print(settings.OUTPUT_DIR)
    print(settings.RESPONSE_TIMEOUT_S)
"""

import logging
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
  """Application configuration settings using Pydantic Settings.

  Attributes:
    APP_NAME: Application name
    VERSION: API version
    DEBUG: Include error internals in 500 responses
    HOST: Server bind address
    PORT: Server port number
    CORS_ORIGINS: Allowed CORS origins
    CHATGPT_URL: Chat application entry page
    CHATGPT_LOGIN_URL: Chat application login page
    CHATGPT_SESSION_FILE: Playwright storage state file (cookies, localStorage)
    CHROME_CDP_URL: Attach to an already running Chrome instead of launching one
    BROWSER_CHANNEL: Playwright browser channel (None uses bundled Chromium)
    BROWSER_HEADLESS: Default headless mode for automation sessions
    OUTPUT_DIR: Directory for transcript CSV files and debug artifacts
    DEBUG_ARTIFACTS: Default for per-request debug capture
    LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
  """

  # Application settings
  APP_NAME: str = "Chat Relay API"
  VERSION: str = "1.0.0"
  DEBUG: bool = False

  # Server settings
  HOST: str = "0.0.0.0"
  PORT: int = 3000

  # CORS settings
  CORS_ORIGINS: List[str] = Field(
    default=["http://localhost:3000"],
    description="Allowed CORS origins"
  )

  # Target site
  CHATGPT_URL: str = Field(default="https://chatgpt.com", description="Chat application URL")
  CHATGPT_LOGIN_URL: str = Field(
    default="https://chatgpt.com/auth/login",
    description="Chat application login URL"
  )

  # Browser settings
  CHATGPT_SESSION_FILE: str = Field(
    default="./data/chatgpt_session.json",
    description="Path to Playwright storage state file"
  )
  CHROME_CDP_URL: Optional[str] = Field(
    default=None,
    description="CDP endpoint of a running Chrome (e.g. http://localhost:9222)"
  )
  BROWSER_CHANNEL: Optional[str] = Field(
    default=None,
    description="Playwright channel such as 'chrome'; None uses bundled Chromium"
  )
  BROWSER_HEADLESS: bool = Field(
    default=True,
    description="Run browser in headless mode"
  )

  # Output settings
  OUTPUT_DIR: str = Field(
    default="./outputs",
    description="Directory for transcript CSV files and debug artifacts"
  )
  DEBUG_ARTIFACTS: bool = Field(
    default=False,
    description="Capture screenshots, HTML and a debug log for every session"
  )

  # Timeouts
  NAVIGATION_TIMEOUT_MS: int = Field(default=30000, ge=1000)
  LOCATE_TIMEOUT_MS: int = Field(default=3000, ge=100)
  RESPONSE_START_TIMEOUT_S: int = Field(default=30, ge=1)
  RESPONSE_TIMEOUT_S: int = Field(default=90, ge=1)
  CHALLENGE_WAIT_S: int = Field(default=300, ge=0)
  POLL_INTERVAL_MS: int = Field(default=1000, ge=50)
  MIN_RESPONSE_CHARS: int = Field(default=20, ge=0)

  # Logging
  LOG_LEVEL: str = Field(
    default="INFO",
    description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
  )

  model_config = SettingsConfigDict(
    env_file=".env",
    env_file_encoding="utf-8",
    case_sensitive=True,
    extra="ignore",
  )

  @field_validator("LOG_LEVEL", mode="before")
  @classmethod
  def normalize_log_level(cls, value: str) -> str:
    """Upper-case the level name and reject unknown levels."""
    level = str(value).upper()
    if level not in logging.getLevelNamesMapping():
      raise ValueError(f"Unknown log level: {value}")
    return level

  def polls_for(self, seconds: float) -> int:
    """Return how many POLL_INTERVAL_MS iterations fit in a time budget."""
    return max(1, int(seconds * 1000 // self.POLL_INTERVAL_MS))


# Create global settings instance
settings = Settings()
