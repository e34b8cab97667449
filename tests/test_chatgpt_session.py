"""Tests for the ChatGPT automation session selector fallback chains, waits and extraction."""

import logging
from pathlib import Path

import pytest

from chatrelay.automation import selectors
from chatrelay.automation.chatgpt_session import (
  AFTER_USER_MESSAGE_SCRIPT,
  BODY_TEXT_SCRIPT,
  CLIPBOARD_SCRIPT,
  FOCUSED_EDITABLE_SCRIPT,
  LARGEST_BLOCK_SCRIPT,
  ChatGPTSession,
)
from chatrelay.core.exceptions import (
  AutomationError,
  ChallengeDetectedError,
  ChatInputNotFoundError,
  LoginFailedError,
  ResponseTimeoutError,
)
from tests.fakes import FakeBrowserManager, FakeElement, FakePage

ASSISTANT = selectors.RESPONSE[0]
STOP_BUTTON = selectors.LOADING_INDICATORS[0]
SEND_BUTTON = selectors.SEND_BUTTON[0]
TURN = selectors.ASSISTANT_TURN[0]


def assistant_turn(page, text, copyable=True, markdown=None):
  """Add an assistant turn: its message text and, optionally, its copy button.

  Clicking the copy button puts markdown (or the text) on the clipboard.
  """
  turn = FakeElement(text)
  page.add(TURN, turn)
  page.add(ASSISTANT, FakeElement(text))
  if copyable:
    copied = markdown or text
    turn.add(
      selectors.COPY_BUTTON,
      FakeElement(on_click=lambda: page.scripts.__setitem__(CLIPBOARD_SCRIPT, copied)),
    )
  return turn


class TestFindChatInput:
  """Tests for the input fallback chain."""

  def test_skips_hidden_matches(self, session, page):
    """A hidden match is passed over for the next visible selector."""
    page.add('#prompt-textarea', FakeElement(visible=False))
    page.add('textarea[placeholder*="Message"]', FakeElement())

    handle = session.find_chat_input()

    assert handle.strategy == "selector"
    assert handle.selector == 'textarea[placeholder*="Message"]'

  def test_falls_back_to_form_inputs(self, session, page):
    """Editable elements inside forms are tried when no known selector matches."""
    page.add('form input[type="text"]', FakeElement())

    handle = session.find_chat_input()

    assert handle.strategy == "form"
    assert handle.selector == 'form input[type="text"]'

  def test_falls_back_to_keyboard_navigation(self, session, page):
    """Tabbing stops as soon as an editable element has focus."""
    page.scripts[FOCUSED_EDITABLE_SCRIPT] = lambda arg: page.keyboard.presses.count("Tab") >= 3

    handle = session.find_chat_input()

    assert handle.strategy == "keyboard"
    assert handle.locator is None
    assert page.keyboard.presses == ["Tab", "Tab", "Tab"]

  def test_raises_with_screenshot_when_all_strategies_fail(self, session, page):
    """Exhausting the chain raises and leaves a screenshot behind."""
    with pytest.raises(ChatInputNotFoundError) as exc_info:
      session.find_chat_input()

    screenshot = exc_info.value.details["screenshot"]
    assert Path(screenshot).exists()
    assert exc_info.value.step == "find_chat_input"
    assert page.keyboard.presses.count("Tab") == 5


class TestTypeAndSubmit:
  """Tests for typing and submitting the prompt."""

  def test_keyboard_handle_inserts_text(self, session, page):
    """Without a locator the text goes to the focused element."""
    page.scripts[FOCUSED_EDITABLE_SCRIPT] = True
    handle = session.find_chat_input()

    session.type_prompt(handle, "Hello there")

    assert page.keyboard.inserted == ["Hello there"]

  def test_clicks_visible_enabled_send_button(self, session, page):
    """The first visible, enabled send button is clicked."""
    (textarea,) = page.add('#prompt-textarea', FakeElement())
    (button,) = page.add(SEND_BUTTON, FakeElement())
    handle = session.find_chat_input()

    via = session.submit(handle)

    assert via == SEND_BUTTON
    assert button.clicks == 1
    assert textarea.pressed == []

  def test_presses_enter_when_send_button_disabled(self, session, page):
    """A disabled send button is skipped and Enter is used instead."""
    (textarea,) = page.add('#prompt-textarea', FakeElement())
    (button,) = page.add(SEND_BUTTON, FakeElement(enabled=False))
    handle = session.find_chat_input()

    via = session.submit(handle)

    assert via == "enter"
    assert button.clicks == 0
    assert textarea.pressed == ["Enter"]


class TestWaitForResponse:
  """Tests for response start and completion polling."""

  def test_waits_for_streaming_to_finish(self, session, page):
    """Returns once the stop button is gone and the text stops changing."""
    def advance(p):
      if p.waits == 1:
        p.add(ASSISTANT, FakeElement("Hel"))
        p.add(STOP_BUTTON, FakeElement())
      elif p.waits == 2:
        p.elements[ASSISTANT][0].text = "Hello wor"
      elif p.waits == 3:
        p.remove(STOP_BUTTON)
        p.elements[ASSISTANT][0].text = "Hello world, this is the full reply."

    page.on_wait = advance

    session.wait_for_response(baseline=0)

    assert page.waits == 4

  def test_raises_when_no_response_starts(self, session, page):
    """No new message and no loading indicator means the start phase times out."""
    with pytest.raises(ResponseTimeoutError) as exc_info:
      session.wait_for_response(baseline=0)

    assert exc_info.value.phase == "start"
    assert exc_info.value.status_code == 504

  def test_raises_when_generation_never_ends(self, session, page):
    """A permanent stop button with no settled text times out."""
    page.add(ASSISTANT, FakeElement("partial"))
    page.add(STOP_BUTTON, FakeElement())

    with pytest.raises(ResponseTimeoutError) as exc_info:
      session.wait_for_response(baseline=0)

    assert exc_info.value.phase == "streaming"

  def test_continues_when_text_keeps_changing(self, session, page, caplog):
    """Text that never settles is still extracted, with a warning."""
    page.add(ASSISTANT, FakeElement("0"))

    def grow(p):
      p.elements[ASSISTANT][0].text += "."

    page.on_wait = grow

    with caplog.at_level(logging.WARNING):
      session.wait_for_response(baseline=0)

    assert any("still changing" in record.message for record in caplog.records)

  def test_new_response_counted_against_baseline(self, session, page):
    """An existing reply does not count as the start of a new one."""
    page.add(ASSISTANT, FakeElement("Earlier reply text"))

    def second_reply(p):
      if p.waits == 2:
        p.add(ASSISTANT, FakeElement("Second reply text"))

    page.on_wait = second_reply

    session.wait_for_response(baseline=1)

    assert session.count_responses() == 2


class TestExtractResponse:
  """Tests for the extraction chain."""

  def test_prefers_copy_button_of_last_turn(self, session, page):
    """Clipboard markdown from the last turn's copy button wins over DOM text."""
    first = assistant_turn(page, "First reply in the conversation")
    last = assistant_turn(page, "DOM text of the reply", markdown="**Markdown** reply from the clipboard")

    text = session.extract_response()

    assert text == "**Markdown** reply from the clipboard"
    assert last.children[selectors.COPY_BUTTON][0].clicks == 1
    assert first.children[selectors.COPY_BUTTON][0].clicks == 0

  def test_earlier_turn_copy_button_not_used(self, session, page):
    """A reply without its own copy button is read from the page instead."""
    first = assistant_turn(page, "Paris is the capital of France.")
    assistant_turn(page, "Its population is about two million people.", copyable=False)

    assert session.extract_response() == "Its population is about two million people."
    assert first.children[selectors.COPY_BUTTON][0].clicks == 0

  def test_page_level_copy_button_ignored(self, session, page):
    """Copy buttons outside any assistant turn are not clicked."""
    (stray,) = page.add(selectors.COPY_BUTTON, FakeElement())
    page.add(ASSISTANT, FakeElement("Reply text read from the message element"))

    assert session.extract_response() == "Reply text read from the message element"
    assert stray.clicks == 0

  def test_uses_last_response_and_strips_prefix(self, session, page):
    """The last assistant message is used, minus the screen-reader prefix."""
    page.add(
      '.markdown',
      FakeElement("First answer that should be ignored"),
      FakeElement("ChatGPT said:\n  Second answer is the one we want"),
    )

    assert session.extract_response() == "Second answer is the one we want"

  def test_short_structural_reply_is_kept(self, session, page, caplog):
    """A short reply from an assistant message is returned with a warning."""
    page.add(ASSISTANT, FakeElement("Yes."))
    page.scripts[LARGEST_BLOCK_SCRIPT] = "A much longer block of unrelated page text that should not win"

    with caplog.at_level(logging.WARNING):
      text = session.extract_response()

    assert text == "Yes."
    assert any("unusually short" in record.message for record in caplog.records)

  def test_falls_back_to_sibling_of_user_message(self, session, page):
    """Without assistant markup the block after the last user message is used."""
    seen = {}

    def after_user(arg):
      seen.update(arg)
      return "Reply found next to the last user message"

    page.scripts[AFTER_USER_MESSAGE_SCRIPT] = after_user

    assert session.extract_response() == "Reply found next to the last user message"
    assert '[data-message-author-role="user"]' in seen["userSelectors"]
    assert seen["minChars"] == 20

  def test_falls_back_to_largest_block(self, session, page):
    """The largest substantial text block is the last resort."""
    page.scripts[LARGEST_BLOCK_SCRIPT] = lambda arg: "Longest text block on the page " * 3

    assert session.extract_response().startswith("Longest text block on the page")

  def test_raises_when_nothing_found(self, session, page):
    """An empty page raises an automation error for the extraction step."""
    with pytest.raises(AutomationError) as exc_info:
      session.extract_response()

    assert exc_info.value.step == "extract_response"
    assert exc_info.value.status_code == 502


class TestOpenChat:
  """Tests for navigation and verification walls."""

  def test_navigates_to_configured_url(self, session, page, test_settings):
    """Opening the chat navigates once when no wall is shown."""
    session.open_chat()

    assert page.gotos == [test_settings.CHATGPT_URL]
    assert page.reloads == 0

  def test_challenge_in_headless_mode_raises(self, session, page):
    """Headless sessions cannot wait for a person to clear a challenge."""
    page.add(selectors.CHALLENGE[0], FakeElement())

    with pytest.raises(ChallengeDetectedError) as exc_info:
      session.open_chat()

    assert exc_info.value.kind == "human verification"
    assert exc_info.value.status_code == 503

  def test_challenge_cleared_by_person_in_visible_browser(self, session, page):
    """A visible session polls until the chat input replaces the challenge."""
    session.headless = False
    page.add(selectors.CHALLENGE[0], FakeElement())

    def person_solves(p):
      if p.waits == 3:
        p.remove(selectors.CHALLENGE[0])
        p.add('#prompt-textarea', FakeElement())

    page.on_wait = person_solves

    session.open_chat()

    assert page.waits == 3

  def test_challenge_not_cleared_in_time(self, session, page):
    """A visible session still fails once the wait budget is used up."""
    session.headless = False
    page.add(selectors.CHALLENGE[0], FakeElement())

    with pytest.raises(ChallengeDetectedError, match="not completed"):
      session.open_chat()

  def test_js_cookies_wall_cleared_by_reload(self, session, page):
    """A browser-check page is reloaded once."""
    page.scripts[BODY_TEXT_SCRIPT] = lambda arg: (
      "Enable JavaScript and cookies to continue" if page.reloads == 0 else "What can I help with?"
    )

    session.open_chat()

    assert page.reloads == 1

  def test_js_cookies_wall_persisting_raises(self, session, page):
    """A browser-check page that survives the reload is reported."""
    page.scripts[BODY_TEXT_SCRIPT] = "Please enable cookies."

    with pytest.raises(ChallengeDetectedError) as exc_info:
      session.open_chat()

    assert exc_info.value.kind == "browser check"
    assert page.reloads == 1


class TestAuthenticate:
  """Tests for session reuse, credential login and anonymous mode."""

  def test_restored_session_is_saved_when_file_missing(self, session, page, browser_manager, test_settings):
    """A logged-in page with no state file writes one."""
    page.add('#prompt-textarea', FakeElement())

    assert session.authenticate() is True
    assert browser_manager.saved_states == [test_settings.CHATGPT_SESSION_FILE]

  def test_generic_textarea_is_not_the_composer(self, session, page):
    """Only the chat composer counts as a loaded, logged-in chat page."""
    page.add('textarea', FakeElement())

    assert session.is_logged_in() is False

  def test_anonymous_without_credentials(self, session, page, browser_manager):
    """A visible log-in button and no credentials means anonymous use."""
    page.add('#prompt-textarea', FakeElement())
    page.add('button:has-text("Log in")', FakeElement())

    assert session.authenticate() is False
    assert browser_manager.saved_states == []

  def test_login_with_credentials(self, session, page, browser_manager):
    """The email flow skips third-party sign-in buttons and saves the session."""
    (login_button,) = page.add('button:has-text("Log in")', FakeElement())
    (email_field,) = page.add('input[type="email"]', FakeElement())
    google, cont = page.add(
      'button[type="submit"]',
      FakeElement("Continue with Google"),
      FakeElement("Continue"),
    )
    (password_field,) = page.add('input[type="password"]', FakeElement())

    def chat_after_password(p):
      if password_field.filled and '#prompt-textarea' not in p.elements:
        p.add('#prompt-textarea', FakeElement())

    page.on_wait = chat_after_password

    assert session.authenticate("user@example.com", "hunter2") is True
    assert email_field.filled == "user@example.com"
    assert password_field.filled == "hunter2"
    assert google.clicks == 0
    assert cont.clicks == 1
    assert login_button.clicks >= 1
    assert len(browser_manager.saved_states) == 1

  def test_login_without_password_field_fails(self, session, page):
    """A missing password field raises a login failure with a screenshot."""
    page.add('button:has-text("Log in")', FakeElement())
    page.add('input[type="email"]', FakeElement())

    with pytest.raises(LoginFailedError, match="password input") as exc_info:
      session.authenticate("user@example.com", "hunter2")

    assert Path(exc_info.value.details["screenshot"]).exists()

  def test_login_that_never_reaches_chat_fails(self, session, page):
    """Login that never shows the chat input is reported as failed."""
    page.add('input[type="email"]', FakeElement())
    page.add('input[type="password"]', FakeElement())

    with pytest.raises(LoginFailedError, match="did not reach"):
      session.authenticate("user@example.com", "hunter2")

    assert page.gotos  # no log-in button, so the login page was opened directly


class TestRun:
  """Tests for the full session run."""

  def _chat_page(self) -> FakePage:
    page = FakePage()
    page.add('#prompt-textarea', FakeElement())
    replies = iter([
      "Paris is the capital of France.",
      "Its population is about two million people.",
    ])

    def reply():
      page.add(ASSISTANT, FakeElement(next(replies)))

    page.add(SEND_BUTTON, FakeElement(on_click=reply))
    return page

  def test_initial_and_reply_prompts(self, test_settings):
    """Both prompts are answered, persisted through the callback, and the browser stops."""
    page = self._chat_page()
    manager = FakeBrowserManager(page)
    chat_session = ChatGPTSession(config=test_settings, browser_manager=manager)
    saved = []

    result = chat_session.run(
      "What is the capital of France?",
      reply_prompt="And its population?",
      on_response=lambda kind, prompt, response: saved.append((kind, prompt, response)),
    )

    assert result.initial_response == "Paris is the capital of France."
    assert result.reply_response == "Its population is about two million people."
    assert result.logged_in is True
    assert saved == [
      ("initial", "What is the capital of France?", "Paris is the capital of France."),
      ("reply", "And its population?", "Its population is about two million people."),
    ]
    assert page.elements['#prompt-textarea'][0].filled == "And its population?"
    assert page.default_timeout == test_settings.NAVIGATION_TIMEOUT_MS
    assert manager.started_with["headless"] is True
    assert manager.stopped == 1
    assert chat_session.is_browser_active() is False

  def test_follow_up_reply_not_copied_from_previous_turn(self, test_settings):
    """A follow-up whose copy button has not rendered yet still yields its own text."""
    page = FakePage()
    page.add('#prompt-textarea', FakeElement())
    turns = iter([
      ("Paris is the capital of France.", True),
      ("Its population is about two million people.", False),
    ])
    page.add(SEND_BUTTON, FakeElement(on_click=lambda: assistant_turn(page, *next(turns))))
    chat_session = ChatGPTSession(config=test_settings, browser_manager=FakeBrowserManager(page))
    saved = []

    result = chat_session.run(
      "What is the capital of France?",
      reply_prompt="And its population?",
      on_response=lambda kind, prompt, response: saved.append((kind, response)),
    )

    assert result.initial_response == "Paris is the capital of France."
    assert result.reply_response == "Its population is about two million people."
    assert saved[1] == ("reply", "Its population is about two million people.")

  def test_without_reply_prompt(self, test_settings):
    """Only the initial prompt is sent when no follow-up is given."""
    page = self._chat_page()
    chat_session = ChatGPTSession(config=test_settings, browser_manager=FakeBrowserManager(page))

    result = chat_session.run("What is the capital of France?")

    assert result.reply_response is None
    assert page.elements[SEND_BUTTON][0].clicks == 1

  def test_browser_stopped_on_failure(self, test_settings):
    """The browser is closed even when a step fails."""
    manager = FakeBrowserManager(FakePage())
    chat_session = ChatGPTSession(config=test_settings, browser_manager=manager)

    with pytest.raises(ChatInputNotFoundError):
      chat_session.run("Hello?")

    assert manager.stopped == 1

  def test_send_prompt_requires_started_browser(self, test_settings):
    """Sending before start_browser() is an automation error."""
    chat_session = ChatGPTSession(config=test_settings, browser_manager=FakeBrowserManager(FakePage()))

    with pytest.raises(AutomationError, match="Browser not started"):
      chat_session.send_prompt("Hello?")
