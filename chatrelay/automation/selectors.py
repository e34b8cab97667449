"""Selector chains for the ChatGPT web UI.

Every tuple is tried in order, most specific first. The page layout changes
without notice, so the older selectors stay in the chains as fallbacks.
"""

from typing import Tuple

# The composer itself; its presence means the chat UI has loaded.
COMPOSER_INPUT: Tuple[str, ...] = (
  '#prompt-textarea',
  '[data-testid="composer-input"]',
  'textarea[data-id="root"]',
  'textarea[placeholder*="Message"]',
)

CHAT_INPUT: Tuple[str, ...] = COMPOSER_INPUT + (
  'textarea[placeholder*="Ask anything"]',
  'textarea[placeholder*="Send a message"]',
  'div[role="textbox"]',
  'div[contenteditable="true"]',
  'form textarea',
  'textarea',
)

# Editable elements inside any form, used when CHAT_INPUT finds nothing visible.
FORM_INPUT: Tuple[str, ...] = (
  'form [contenteditable="true"]',
  'form textarea',
  'form input[type="text"]',
)

SEND_BUTTON: Tuple[str, ...] = (
  'button[data-testid="send-button"]',
  '#composer-submit-button',
  'button[aria-label="Send prompt"]',
  'button[aria-label="Send message"]',
  'button[aria-label*="Send"]',
  'form button[type="submit"]',
  'button:has-text("Send")',
)

RESPONSE: Tuple[str, ...] = (
  '[data-message-author-role="assistant"] .markdown',
  '[data-message-author-role="assistant"]',
  '.markdown',
  '.chat-message-content',
  '.assistant-message',
  '.response-message',
)

USER_MESSAGE: Tuple[str, ...] = (
  '[data-message-author-role="user"]',
  '.user-message',
  '.request-message',
)

LOADING_INDICATORS: Tuple[str, ...] = (
  'button[data-testid="stop-button"]',
  'button[aria-label*="Stop"]',
  'button:has-text("Stop generating")',
  '.result-streaming',
  '.typing-indicator',
  '[data-state="loading"]',
)

# Whole assistant turns, which hold the action buttons below the message.
ASSISTANT_TURN: Tuple[str, ...] = (
  'article[data-testid^="conversation-turn"]:has([data-message-author-role="assistant"])',
  '[data-message-author-role="assistant"]',
)

COPY_BUTTON = 'button[data-testid="copy-turn-action-button"]'

MODAL_DISMISS: Tuple[str, ...] = (
  'button:has-text("Stay logged out")',
  'button:has-text("Accept all")',
  'button:has-text("Accept cookies")',
  'button:has-text("Got it")',
  'button:has-text("Okay")',
  '[role="dialog"] button[aria-label*="Close"]',
  '[role="dialog"] button[aria-label*="close"]',
  '[aria-label*="dismiss"]',
)

LOGIN_BUTTON: Tuple[str, ...] = (
  'button[data-testid="login-button"]',
  'button:has-text("Log in")',
  'a:has-text("Log in")',
)

EMAIL_LOGIN_OPTION: Tuple[str, ...] = (
  'button:has-text("Continue with email")',
  'button:has-text("Use email")',
  'a:has-text("Continue with email")',
  '[data-provider="email"]',
)

EMAIL_INPUT: Tuple[str, ...] = (
  'input[type="email"]',
  'input[name="email"]',
  'input[name="username"]',
  'input[id="email-input"]',
  'input[placeholder*="email" i]',
)

PASSWORD_INPUT: Tuple[str, ...] = (
  'input[type="password"]',
  'input[name="password"]',
  '#password',
)

LOGIN_SUBMIT: Tuple[str, ...] = (
  'button:has-text("Continue")',
  'button:has-text("Log in")',
  'button:has-text("Sign in")',
  'button[type="submit"]',
)

# Submit buttons carrying these words belong to third-party sign-in.
OAUTH_MARKERS: Tuple[str, ...] = ("google", "microsoft", "apple", "phone")

CHALLENGE: Tuple[str, ...] = (
  'iframe[src*="challenges.cloudflare.com"]',
  'iframe[src*="captcha"]',
  'iframe[title*="recaptcha"]',
  '[name="cf-turnstile-response"]',
  '#cf-challenge-running',
  'div[aria-label*="security challenge"]',
)

CHALLENGE_TEXT: Tuple[str, ...] = (
  "verify you are human",
  "checking your browser",
  "not a robot",
  "security check",
)

JS_COOKIES_TEXT: Tuple[str, ...] = (
  "enable javascript and cookies to continue",
  "javascript is required",
  "please enable javascript",
  "please enable cookies",
)

RESPONSE_NOISE: Tuple[str, ...] = (
  "ChatGPT said:",
  "ChatGPT:",
)

# Text blocks containing these are page chrome, not replies.
PAGE_CHROME_TEXT: Tuple[str, ...] = (
  "Ask anything",
  "What can I help with?",
  "Log in",
  "Sign up",
  "Temporary Chat",
)
