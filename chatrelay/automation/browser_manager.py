"""Browser lifecycle management for automation sessions.

Handles launching (or attaching to) Chromium, creating a context with the
saved session state, and tearing everything down again.
"""

import logging
import os
from pathlib import Path
from typing import Optional

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import sync_playwright

logger = logging.getLogger(__name__)

VIEWPORT = {'width': 1440, 'height': 900}


class BrowserManager:
  """Owns the Playwright driver, browser, context and page for one session.

  Two modes are supported:
  1. CDP mode: attach to a Chrome the user already runs (and is logged in to)
  2. Launch mode: start a fresh Chromium locally
  """

  def __init__(self):
    """Initialize browser manager."""
    self.playwright = None
    self.browser = None
    self.context = None
    self.page = None
    self.attached = False

  def start(
    self,
    headless: bool = True,
    storage_state_path: Optional[str] = None,
    cdp_url: Optional[str] = None,
    channel: Optional[str] = None,
  ):
    """Start the browser and return a fresh page.

    Args:
      headless: Run the launched browser headless (ignored in CDP mode)
      storage_state_path: Playwright storage state to restore, if the file exists
      cdp_url: CDP endpoint of a running Chrome; falls back to launching on failure
      channel: Playwright channel for launch mode, None for bundled Chromium

    Returns:
      Playwright Page
    """
    self.playwright = sync_playwright().start()

    if cdp_url:
      try:
        logger.info("Connecting to Chrome via CDP at %s", cdp_url)
        self.browser = self.playwright.chromium.connect_over_cdp(cdp_url)
        self.attached = True
      except PlaywrightError as e:
        logger.warning("CDP attach failed (%s); launching Chromium locally", e)

    if not self.attached:
      logger.info("Launching Chromium (headless=%s, channel=%s)", headless, channel or "bundled")
      self.browser = self.playwright.chromium.launch(headless=headless, channel=channel)

    storage_state = None
    if storage_state_path and os.path.exists(storage_state_path):
      logger.info("Restoring session state from %s", storage_state_path)
      storage_state = storage_state_path
    else:
      logger.info("No saved session state found")

    if self.attached and self.browser.contexts:
      # Reuse the running profile so its logged-in cookies apply.
      self.context = self.browser.contexts[0]
    else:
      self.context = self.browser.new_context(
        viewport=VIEWPORT,
        storage_state=storage_state,
        permissions=["clipboard-read", "clipboard-write"],
      )

    self.page = self.context.new_page()
    return self.page

  def save_storage_state(self, path: str) -> bool:
    """Save cookies and localStorage to a file.

    Args:
      path: Destination JSON file

    Returns:
      True if the state was written
    """
    if not self.context:
      return False
    try:
      Path(path).parent.mkdir(parents=True, exist_ok=True)
      self.context.storage_state(path=path)
      logger.info("Session state saved to %s", path)
      return True
    except (OSError, PlaywrightError) as e:
      logger.warning("Failed to save session state: %s", e)
      return False

  def stop(self) -> None:
    """Close page, context, browser and driver. Safe to call repeatedly."""
    if self.page:
      self._close_quietly(self.page, "page")
    # An attached browser belongs to the user; only our page is closed.
    if not self.attached:
      if self.context:
        self._close_quietly(self.context, "context")
      if self.browser:
        self._close_quietly(self.browser, "browser")
    if self.playwright:
      try:
        self.playwright.stop()
      except PlaywrightError as e:
        logger.warning("Failed to stop Playwright driver: %s", e)

    self.page = None
    self.context = None
    self.browser = None
    self.playwright = None
    self.attached = False

  @staticmethod
  def _close_quietly(target, label: str) -> None:
    try:
      target.close()
    except PlaywrightError as e:
      logger.warning("Failed to close %s: %s", label, e)
