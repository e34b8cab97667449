"""ChatGPT browser automation session.

Drives the ChatGPT web UI with Playwright: open the page, optionally log in,
find the prompt input, submit, wait for the streamed reply to finish and pull
the reply text out of the DOM. Each UI element is located by a chain of
fallback strategies because the page layout changes without notice.

The session uses the synchronous Playwright API and must run off the event
loop (ChatService runs it in an executor).
"""

import logging
import os
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Iterable, Iterator, Optional, Tuple

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import Locator

from chatrelay.automation import selectors
from chatrelay.automation.base_session import BaseSession, SessionResult
from chatrelay.automation.browser_manager import BrowserManager
from chatrelay.automation.debug import DebugRecorder
from chatrelay.config import Settings, settings as default_settings
from chatrelay.core.exceptions import (
  APIException,
  AutomationError,
  ChallengeDetectedError,
  ChatInputNotFoundError,
  LoginFailedError,
  ResponseTimeoutError,
)

logger = logging.getLogger(__name__)

# Called with (kind, prompt, response) as soon as each reply is extracted.
ResponseCallback = Callable[[str, str, str], None]

SETTLE_MS = 300
KEYBOARD_TAB_ATTEMPTS = 5
LOGIN_FIELD_ATTEMPTS = 3
HEURISTIC_MIN_CHARS = 50

BODY_TEXT_SCRIPT = "() => (document.body && document.body.innerText) || ''"

FOCUS_BODY_SCRIPT = """
() => {
  if (document.activeElement) document.activeElement.blur();
  if (document.body) document.body.focus();
}
"""

FOCUSED_EDITABLE_SCRIPT = """
() => {
  const el = document.activeElement;
  if (!el || el === document.body) return false;
  if (el.isContentEditable || el.tagName === 'TEXTAREA') return true;
  return el.tagName === 'INPUT' && ['text', 'search', ''].includes(el.type);
}
"""

CLIPBOARD_SCRIPT = "() => navigator.clipboard.readText()"

AFTER_USER_MESSAGE_SCRIPT = """
({userSelectors, minChars}) => {
  const users = document.querySelectorAll(userSelectors.join(', '));
  if (users.length === 0) return '';
  let el = users[users.length - 1].nextElementSibling;
  while (el) {
    const text = (el.innerText || '').trim();
    if (text.length > minChars && !el.matches('form, button, textarea, input')) {
      return text;
    }
    el = el.nextElementSibling;
  }
  return '';
}
"""

LARGEST_BLOCK_SCRIPT = """
({exclude, minChars}) => {
  const blocks = Array.from(document.querySelectorAll('main p, main div, main span'));
  let best = '';
  for (const el of blocks) {
    if (el.closest('form, nav, header, footer, button')) continue;
    if (el.matches('textarea, input, [role="textbox"]')) continue;
    const text = (el.innerText || '').trim();
    if (text.length <= minChars || text.length <= best.length) continue;
    if (exclude.some(marker => text.includes(marker))) continue;
    best = text;
  }
  return best;
}
"""


@dataclass
class InputHandle:
  """Where the prompt goes: a located element, or the focused element."""

  locator: Optional[Locator]
  selector: Optional[str]
  strategy: str


class ChatGPTSession(BaseSession):
  """One automation session against the ChatGPT web UI."""

  def __init__(
    self,
    config: Optional[Settings] = None,
    headless: Optional[bool] = None,
    debug: Optional[bool] = None,
    browser_manager: Optional[BrowserManager] = None,
  ):
    """Initialize the session.

    Args:
      config: Settings to use; defaults to the global settings
      headless: Override BROWSER_HEADLESS
      debug: Override DEBUG_ARTIFACTS
      browser_manager: Injected browser manager (tests)
    """
    super().__init__()
    self.settings = config or default_settings
    self.headless = self.settings.BROWSER_HEADLESS if headless is None else headless
    self.browser_manager = browser_manager or BrowserManager()
    self.debug = DebugRecorder(
      self.settings.OUTPUT_DIR,
      enabled=self.settings.DEBUG_ARTIFACTS if debug is None else debug,
    )

  # ---------------------------------------------------------------------------
  # Lifecycle
  # ---------------------------------------------------------------------------

  def start_browser(self, headless: Optional[bool] = None) -> None:
    """Start the browser and open a page."""
    if headless is not None:
      self.headless = headless
    try:
      self.page = self.browser_manager.start(
        headless=self.headless,
        storage_state_path=self.settings.CHATGPT_SESSION_FILE,
        cdp_url=self.settings.CHROME_CDP_URL,
        channel=self.settings.BROWSER_CHANNEL,
      )
    except PlaywrightError as e:
      self.browser_manager.stop()
      raise AutomationError("start_browser", f"Failed to start browser: {e}") from e

    self.page.set_default_timeout(self.settings.NAVIGATION_TIMEOUT_MS)
    self.is_active = True

  def stop_browser(self) -> None:
    """Stop browser and cleanup."""
    self.browser_manager.stop()
    self.page = None
    self.is_active = False

  def run(
    self,
    initial_prompt: str,
    reply_prompt: Optional[str] = None,
    email: Optional[str] = None,
    password: Optional[str] = None,
    on_response: Optional[ResponseCallback] = None,
  ) -> SessionResult:
    """Run a full automation session: start, open, authenticate, prompt, reply.

    The browser is always stopped, whether the session succeeds or not.
    """
    start_time = time.time()
    try:
      self.start_browser()
      self.open_chat()
      logged_in = self.authenticate(email, password)

      initial_response = self.send_prompt(initial_prompt)
      if on_response:
        on_response("initial", initial_prompt, initial_response)

      reply_response = None
      if reply_prompt:
        logger.info("Sending follow-up prompt")
        reply_response = self.send_prompt(reply_prompt)
        if on_response:
          on_response("reply", reply_prompt, reply_response)

      self.debug.snapshot(self.page, "interaction_complete")
      return SessionResult(
        initial_response=initial_response,
        reply_response=reply_response,
        logged_in=logged_in,
        duration_ms=int((time.time() - start_time) * 1000),
        debug_dir=self.debug.directory_path,
      )
    except APIException:
      self.debug.snapshot(self.page, "error")
      raise
    finally:
      self.stop_browser()

  @contextmanager
  def _step(self, name: str) -> Iterator[None]:
    """Convert Playwright failures inside a step into AutomationError."""
    try:
      yield
    except PlaywrightError as e:
      screenshot = self.debug.capture_failure(self.page, f"{name}_error")
      raise AutomationError(name, str(e).splitlines()[0] if str(e) else repr(e), screenshot) from e

  # ---------------------------------------------------------------------------
  # Navigation and blocking pages
  # ---------------------------------------------------------------------------

  def open_chat(self) -> None:
    """Navigate to ChatGPT and make sure no verification wall is in the way."""
    logger.info("Navigating to %s", self.settings.CHATGPT_URL)
    with self._step("open_chat"):
      self.page.goto(
        self.settings.CHATGPT_URL,
        wait_until="domcontentloaded",
        timeout=self.settings.NAVIGATION_TIMEOUT_MS,
      )
      self.page.wait_for_timeout(self.settings.POLL_INTERVAL_MS)
      self.debug.snapshot(self.page, "initial_load")

      if self._has_js_cookies_wall():
        logger.warning("Browser-check page shown; reloading once")
        self.page.reload(wait_until="domcontentloaded", timeout=self.settings.NAVIGATION_TIMEOUT_MS)
        self.page.wait_for_timeout(self.settings.POLL_INTERVAL_MS)
        if self._has_js_cookies_wall():
          self.debug.snapshot(self.page, "js_cookies_wall")
          raise ChallengeDetectedError("browser check")

      if self._has_challenge():
        self._wait_for_challenge_clear()

  def _body_text(self) -> str:
    try:
      return (self.page.evaluate(BODY_TEXT_SCRIPT) or "").lower()
    except PlaywrightError:
      return ""

  def _has_js_cookies_wall(self) -> bool:
    text = self._body_text()
    return any(marker in text for marker in selectors.JS_COOKIES_TEXT)

  def _has_challenge(self) -> bool:
    """Detect a CAPTCHA or verification interstitial."""
    if self._any_present(selectors.CHALLENGE):
      return True
    text = self._body_text()
    if any(marker in text for marker in selectors.CHALLENGE_TEXT):
      return not self._chat_input_present()
    return False

  def _wait_for_challenge_clear(self) -> None:
    """Let a person complete the check in a visible window, or fail."""
    if self.headless:
      self.debug.snapshot(self.page, "challenge")
      raise ChallengeDetectedError("human verification")

    wait_s = self.settings.CHALLENGE_WAIT_S
    logger.warning(
      "Human verification shown; complete it in the browser window (waiting up to %ss)",
      wait_s,
    )
    for _ in range(self.settings.polls_for(wait_s)):
      self.page.wait_for_timeout(self.settings.POLL_INTERVAL_MS)
      if self._chat_input_present() and not self._has_challenge():
        logger.info("Verification cleared, continuing")
        return

    raise ChallengeDetectedError(
      "human verification",
      f"Human verification was not completed within {wait_s} seconds",
    )

  # ---------------------------------------------------------------------------
  # Authentication
  # ---------------------------------------------------------------------------

  def is_logged_in(self) -> bool:
    """Logged in when a chat input exists and no log-in button is visible."""
    has_chat_interface = self._any_present(selectors.COMPOSER_INPUT)
    has_login_button = self._first_visible(selectors.LOGIN_BUTTON) is not None
    return has_chat_interface and not has_login_button

  def authenticate(self, email: Optional[str] = None, password: Optional[str] = None) -> bool:
    """Reuse a saved session, log in with credentials, or continue anonymously.

    Returns:
      True if logged in, False for anonymous use

    Raises:
      LoginFailedError: If credentials were given but login did not complete
    """
    session_file = self.settings.CHATGPT_SESSION_FILE

    if self.is_logged_in():
      logger.info("Already logged in (session restored)")
      if not os.path.exists(session_file):
        self.browser_manager.save_storage_state(session_file)
      return True

    if email and password:
      logger.info("Not logged in; signing in with supplied credentials")
      with self._step("authenticate"):
        self._login_with_credentials(email, password)
      self.browser_manager.save_storage_state(session_file)
      return True

    logger.info("No credentials supplied; continuing without an account")
    return False

  def _login_with_credentials(self, email: str, password: str) -> None:
    interval = self.settings.POLL_INTERVAL_MS

    if not self._click_first_visible(selectors.LOGIN_BUTTON):
      logger.info("Log-in button not found; opening login page directly")
      self.page.goto(
        self.settings.CHATGPT_LOGIN_URL,
        wait_until="domcontentloaded",
        timeout=self.settings.NAVIGATION_TIMEOUT_MS,
      )
    self.page.wait_for_timeout(interval)

    if self._click_first_visible(selectors.EMAIL_LOGIN_OPTION):
      self.page.wait_for_timeout(interval)

    email_field = self._wait_for_any(selectors.EMAIL_INPUT, LOGIN_FIELD_ATTEMPTS)
    if email_field is None:
      raise LoginFailedError(
        "Could not find email input field",
        self.debug.capture_failure(self.page, "email_not_found"),
      )
    email_field.fill(email)

    if not self._click_email_continue():
      email_field.press("Enter")
    self.page.wait_for_timeout(interval)

    password_field = self._wait_for_any(selectors.PASSWORD_INPUT, LOGIN_FIELD_ATTEMPTS)
    if password_field is None:
      raise LoginFailedError(
        "Could not find password input field",
        self.debug.capture_failure(self.page, "password_not_found"),
      )
    password_field.fill(password)

    if not self._click_first_visible(selectors.LOGIN_SUBMIT):
      password_field.press("Enter")

    logger.info("Waiting for login to complete")
    for _ in range(self.settings.polls_for(self.settings.NAVIGATION_TIMEOUT_MS / 1000)):
      self.page.wait_for_timeout(interval)
      if self._chat_input_present():
        logger.info("Login successful")
        return

    raise LoginFailedError(
      "Login did not reach the chat interface (additional verification may be required)",
      self.debug.capture_failure(self.page, "login_failed"),
    )

  def _click_email_continue(self) -> bool:
    """Click the first visible submit button that is not a third-party sign-in."""
    buttons = self.page.locator('button[type="submit"]')
    for i in range(self._count(buttons)):
      button = buttons.nth(i)
      try:
        label = button.inner_text().lower()
        if any(marker in label for marker in selectors.OAUTH_MARKERS):
          continue
        if button.is_visible():
          button.click()
          return True
      except PlaywrightError:
        continue
    return False

  # ---------------------------------------------------------------------------
  # Prompt submission
  # ---------------------------------------------------------------------------

  def dismiss_modals(self) -> bool:
    """Click away the first visible modal or banner, if any."""
    selector = self._click_first_visible(selectors.MODAL_DISMISS)
    if selector:
      logger.info("Dismissed overlay via %s", selector)
      self.page.wait_for_timeout(SETTLE_MS)
      return True
    return False

  def find_chat_input(self) -> InputHandle:
    """Locate the prompt input through the selector fallback chain.

    Strategies, in order: known input selectors, editable elements inside
    forms, then tabbing through the page until an editable element has focus.

    Raises:
      ChatInputNotFoundError: If every strategy fails
    """
    found = self._first_visible(selectors.CHAT_INPUT, timeout_ms=self.settings.LOCATE_TIMEOUT_MS)
    if found:
      self.debug.log(f"Found chat input with selector: {found[1]}")
      return InputHandle(found[0], found[1], "selector")

    self.debug.log("Direct selectors failed; searching form inputs")
    found = self._first_visible(selectors.FORM_INPUT)
    if found:
      self.debug.log(f"Found chat input inside form: {found[1]}")
      return InputHandle(found[0], found[1], "form")

    self.debug.log("Form search failed; trying keyboard navigation")
    try:
      self.page.evaluate(FOCUS_BODY_SCRIPT)
      for attempt in range(KEYBOARD_TAB_ATTEMPTS):
        self.page.keyboard.press("Tab")
        self.page.wait_for_timeout(SETTLE_MS)
        if self.page.evaluate(FOCUSED_EDITABLE_SCRIPT):
          self.debug.log(f"Chat input focused after {attempt + 1} Tab presses")
          return InputHandle(None, None, "keyboard")
    except PlaywrightError as e:
      self.debug.log(f"Keyboard navigation failed: {e}")

    raise ChatInputNotFoundError(self.debug.capture_failure(self.page, "chat_input_not_found"))

  def type_prompt(self, handle: InputHandle, text: str) -> None:
    """Put the prompt text into the input."""
    if handle.locator is not None:
      try:
        handle.locator.fill(text)
        return
      except PlaywrightError as e:
        logger.debug("fill() failed on %s (%s); typing instead", handle.selector, e)
        handle.locator.click()
    self.page.keyboard.insert_text(text)

  def submit(self, handle: InputHandle) -> str:
    """Click the send button, falling back to the Enter key.

    Returns:
      The selector that was clicked, or "enter"
    """
    for selector in selectors.SEND_BUTTON:
      try:
        button = self.page.locator(selector).first
        if button.count() > 0 and button.is_visible() and button.is_enabled():
          button.click()
          return selector
      except PlaywrightError:
        continue

    if handle.locator is not None:
      handle.locator.press("Enter")
    else:
      self.page.keyboard.press("Enter")
    return "enter"

  def send_prompt(self, prompt: str) -> str:
    """Submit a prompt and return the reply text."""
    if not self.is_active:
      raise AutomationError("send_prompt", "Browser not started. Call start_browser() first.")

    logger.info("Submitting prompt: %s", prompt[:60])
    with self._step("send_prompt"):
      self.dismiss_modals()
      handle = self.find_chat_input()
      if handle.selector:
        self.debug.highlight(self.page, handle.selector, "green")

      baseline = self.count_responses()
      self.type_prompt(handle, prompt)
      self.page.wait_for_timeout(SETTLE_MS)
      via = self.submit(handle)
      self.debug.log(f"Prompt submitted via {via}")
      self.debug.snapshot(self.page, "after_sending")

    with self._step("wait_for_response"):
      self.wait_for_response(baseline)
      self.debug.snapshot(self.page, "before_extracting_response")

    with self._step("extract_response"):
      return self.extract_response()

  # ---------------------------------------------------------------------------
  # Waiting for the reply
  # ---------------------------------------------------------------------------

  def count_responses(self) -> int:
    """Count assistant messages using the first response selector that matches."""
    for selector in selectors.RESPONSE:
      count = self._count(self.page.locator(selector))
      if count:
        return count
    return 0

  def is_generating(self) -> bool:
    """True while any streaming/loading indicator is visible."""
    return self._first_visible(selectors.LOADING_INDICATORS) is not None

  def wait_for_response(self, baseline: int) -> None:
    """Wait until a new reply appears and stops changing.

    Args:
      baseline: Response count before the prompt was submitted

    Raises:
      ResponseTimeoutError: If no reply starts, or streaming never settles
        and no text was seen
    """
    interval = self.settings.POLL_INTERVAL_MS

    start_timeout = self.settings.RESPONSE_START_TIMEOUT_S
    for _ in range(self.settings.polls_for(start_timeout)):
      if self.count_responses() > baseline or self.is_generating():
        break
      self.page.wait_for_timeout(interval)
    else:
      self.debug.capture_failure(self.page, "response_not_started")
      raise ResponseTimeoutError("start", start_timeout)

    logger.info("Response generation started")
    stream_timeout = self.settings.RESPONSE_TIMEOUT_S
    last_text = None
    for waited in range(self.settings.polls_for(stream_timeout)):
      self.page.wait_for_timeout(interval)
      if self.is_generating():
        last_text = None
        continue
      text = self._last_response_text()
      if text and text == last_text:
        logger.info("Response complete after %d polls", waited + 1)
        return
      last_text = text

    if last_text:
      logger.warning("Response still changing after %ss; extracting what is there", stream_timeout)
      return
    self.debug.capture_failure(self.page, "response_timeout")
    raise ResponseTimeoutError("streaming", stream_timeout)

  def _last_response_text(self) -> str:
    for selector in selectors.RESPONSE:
      elements = self.page.locator(selector)
      count = self._count(elements)
      if count:
        try:
          return elements.nth(count - 1).inner_text()
        except PlaywrightError:
          return ""
    return ""

  # ---------------------------------------------------------------------------
  # Extraction
  # ---------------------------------------------------------------------------

  def extract_response(self) -> str:
    """Pull the latest reply text out of the page through the extraction chain.

    Structural strategies (copy button, last assistant message) are trusted
    even for short replies. Heuristic strategies only run when both find
    nothing.

    Raises:
      AutomationError: If no strategy yields any text
    """
    strategies = (
      ("copy_button", self._extract_via_copy_button),
      ("last_response", self._last_response_text),
      ("after_user_message", self._extract_after_user_message),
      ("largest_block", self._extract_largest_block),
    )
    for name, strategy in strategies:
      try:
        text = self._clean_response(strategy())
      except PlaywrightError as e:
        self.debug.log(f"Extraction strategy {name} failed: {e}")
        continue
      if not text:
        continue

      self.debug.log(f"Response extracted via {name}. Length: {len(text)}", {"preview": text[:500]})
      if len(text) < self.settings.MIN_RESPONSE_CHARS:
        logger.warning("Extracted response is unusually short (%d chars)", len(text))
        self.debug.capture_failure(self.page, "short_response")
      return text

    raise AutomationError(
      "extract_response",
      "Could not extract response text from the page",
      self.debug.capture_failure(self.page, "response_extraction_error"),
    )

  def _last_assistant_turn(self) -> Optional[Locator]:
    for selector in selectors.ASSISTANT_TURN:
      turns = self.page.locator(selector)
      count = self._count(turns)
      if count:
        return turns.nth(count - 1)
    return None

  def _extract_via_copy_button(self) -> str:
    """Copy the latest reply as markdown through its own copy button.

    Only the button inside the last assistant turn is used; an earlier
    turn's button would copy the previous reply.
    """
    turn = self._last_assistant_turn()
    if turn is None:
      return ""
    buttons = turn.locator(selectors.COPY_BUTTON)
    count = self._count(buttons)
    if not count:
      return ""
    buttons.nth(count - 1).click(timeout=2000)
    self.page.wait_for_timeout(SETTLE_MS)
    return self.page.evaluate(CLIPBOARD_SCRIPT) or ""

  def _extract_after_user_message(self) -> str:
    return self.page.evaluate(
      AFTER_USER_MESSAGE_SCRIPT,
      {"userSelectors": list(selectors.USER_MESSAGE), "minChars": self.settings.MIN_RESPONSE_CHARS},
    ) or ""

  def _extract_largest_block(self) -> str:
    return self.page.evaluate(
      LARGEST_BLOCK_SCRIPT,
      {"exclude": list(selectors.PAGE_CHROME_TEXT), "minChars": HEURISTIC_MIN_CHARS},
    ) or ""

  @staticmethod
  def _clean_response(text: Optional[str]) -> str:
    text = (text or "").strip()
    for noise in selectors.RESPONSE_NOISE:
      if text.startswith(noise):
        text = text[len(noise):].strip()
    return text

  # ---------------------------------------------------------------------------
  # Lookup helpers
  # ---------------------------------------------------------------------------

  @staticmethod
  def _count(locator: Locator) -> int:
    try:
      return locator.count()
    except PlaywrightError:
      return 0

  def _any_present(self, candidates: Iterable[str]) -> bool:
    return any(self._count(self.page.locator(selector)) > 0 for selector in candidates)

  def _chat_input_present(self) -> bool:
    return self._first_visible(selectors.CHAT_INPUT) is not None

  def _first_visible(
    self,
    candidates: Iterable[str],
    timeout_ms: Optional[int] = None,
  ) -> Optional[Tuple[Locator, str]]:
    """Return the first visible element across a selector chain.

    With timeout_ms, each match is given that long to become visible.
    """
    for selector in candidates:
      elements = self.page.locator(selector)
      for i in range(self._count(elements)):
        element = elements.nth(i)
        try:
          if timeout_ms is None:
            if element.is_visible():
              return element, selector
          else:
            element.wait_for(state="visible", timeout=timeout_ms)
            return element, selector
        except PlaywrightError:
          continue
    return None

  def _click_first_visible(self, candidates: Iterable[str]) -> Optional[str]:
    found = self._first_visible(candidates)
    if not found:
      return None
    element, selector = found
    try:
      element.click()
    except PlaywrightError as e:
      logger.debug("Click on %s failed: %s", selector, e)
      return None
    return selector

  def _wait_for_any(self, candidates: Tuple[str, ...], attempts: int) -> Optional[Locator]:
    for attempt in range(attempts):
      found = self._first_visible(candidates, timeout_ms=self.settings.LOCATE_TIMEOUT_MS)
      if found:
        return found[0]
      if attempt < attempts - 1:
        self.page.wait_for_timeout(self.settings.POLL_INTERVAL_MS)
    return None
