"""Debug artifacts for automation sessions.

When enabled, a session gets its own directory holding full-page screenshots,
the page HTML at each step, and a log of what the selector chains found.
Failure screenshots are written even when debug capture is off.
"""

import json
import logging
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from playwright.sync_api import Error as PlaywrightError

logger = logging.getLogger(__name__)

HIGHLIGHT_SCRIPT = """
([selector, color]) => {
  const elements = document.querySelectorAll(selector);
  elements.forEach(el => {
    el.style.outline = `3px solid ${color}`;
  });
  return elements.length;
}
"""


def _stamp() -> str:
  return datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%f")


def _safe_name(name: str) -> str:
  return re.sub(r"[^A-Za-z0-9_-]+", "_", name).strip("_") or "snapshot"


class DebugRecorder:
  """Writes screenshots, HTML dumps and a debug log for one session."""

  def __init__(self, root: str, enabled: bool = False):
    """Create the recorder; the session directory only exists when enabled.

    Args:
      root: Output directory under which artifacts are written
      enabled: Capture step-by-step artifacts
    """
    self.root = Path(root)
    self.enabled = enabled
    self.directory: Optional[Path] = None
    if enabled:
      directory = self.root / f"debug_{_stamp()}"
      try:
        directory.mkdir(parents=True, exist_ok=True)
      except OSError as e:
        logger.warning("Debug capture disabled, cannot create %s: %s", directory, e)
        self.enabled = False
      else:
        self.directory = directory

  def snapshot(self, page, name: str) -> Optional[str]:
    """Save a full-page screenshot and the page HTML when enabled."""
    if not self.enabled or page is None:
      return None
    base = self.directory / f"{_safe_name(name)}_{_stamp()}"
    try:
      page.screenshot(path=str(base.with_suffix(".png")), full_page=True)
      base.with_suffix(".html").write_text(page.content(), encoding="utf-8")
    except (OSError, PlaywrightError) as e:
      logger.warning("Debug snapshot %s failed: %s", name, e)
      return None
    self.log(f"Snapshot saved: {base.name}")
    return str(base.with_suffix(".png"))

  def log(self, message: str, data: Any = None) -> None:
    """Append a message (and optional JSON payload) to the debug log."""
    logger.debug(message)
    if not self.enabled:
      return
    timestamp = datetime.now(timezone.utc).isoformat()
    entry = f"[{timestamp}] {message}\n"
    if data is not None:
      entry += json.dumps(data, indent=2, default=str) + "\n"
    try:
      with (self.directory / "debug_log.txt").open("a", encoding="utf-8") as handle:
        handle.write(entry + "\n")
    except OSError as e:
      logger.warning("Could not write debug log: %s", e)

  def highlight(self, page, selector: str, color: str = "red") -> None:
    """Outline elements matching a selector and snapshot the result."""
    if not self.enabled or page is None:
      return
    try:
      page.evaluate(HIGHLIGHT_SCRIPT, [selector, color])
    except PlaywrightError as e:
      logger.debug("Highlight of %s failed: %s", selector, e)
      return
    self.snapshot(page, f"highlighted_{selector}")

  def capture_failure(self, page, name: str) -> Optional[str]:
    """Save a screenshot for a failed step regardless of debug mode.

    Returns:
      Path of the screenshot, or None if it could not be taken
    """
    if page is None:
      return None
    target_dir = self.directory or self.root
    path = target_dir / f"{_safe_name(name)}_{_stamp()}.png"
    try:
      target_dir.mkdir(parents=True, exist_ok=True)
      page.screenshot(path=str(path))
    except (OSError, PlaywrightError) as e:
      logger.warning("Failure screenshot %s failed: %s", name, e)
      return None
    logger.info("Screenshot saved to %s", path)
    return str(path)

  @property
  def directory_path(self) -> Optional[str]:
    """Session debug directory as a string, if debug capture is on."""
    return str(self.directory) if self.directory else None
