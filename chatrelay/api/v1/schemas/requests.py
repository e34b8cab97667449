"""Request schemas for API endpoints."""

from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

MAX_PROMPT_LENGTH = 10000


class ChatRequest(BaseModel):
  """Request schema for one automated ChatGPT interaction.

  The browser form posts camelCase keys, so both spellings are accepted.
  """

  model_config = ConfigDict(
    populate_by_name=True,
    json_schema_extra={
      "examples": [
        {
          "initial_prompt": "Summarize the plot of Hamlet in three sentences.",
          "reply_prompt": "Now do it in one sentence.",
          "headless": True,
        }
      ]
    },
  )

  initial_prompt: str = Field(
    ...,
    min_length=1,
    max_length=MAX_PROMPT_LENGTH,
    validation_alias=AliasChoices("initial_prompt", "initialPrompt"),
    description="First prompt to send",
  )

  reply_prompt: Optional[str] = Field(
    default=None,
    max_length=MAX_PROMPT_LENGTH,
    validation_alias=AliasChoices("reply_prompt", "replyPrompt"),
    description="Optional follow-up prompt sent in the same conversation",
  )

  email: Optional[str] = Field(default=None, description="Account email (optional)")
  password: Optional[str] = Field(
    default=None,
    description="Account password (optional, never logged or stored)",
    repr=False,
  )

  headless: Optional[bool] = Field(
    default=None,
    description="Run the browser headless (defaults to server setting)",
  )
  debug: Optional[bool] = Field(
    default=None,
    description="Capture screenshots and HTML for each step",
  )

  @field_validator("initial_prompt")
  @classmethod
  def validate_initial_prompt(cls, v: str) -> str:
    """Strip whitespace and reject empty prompts."""
    v = v.strip()
    if not v:
      raise ValueError("Prompt cannot be empty or whitespace only")
    return v

  @field_validator("reply_prompt", "email", "password")
  @classmethod
  def blank_to_none(cls, v: Optional[str]) -> Optional[str]:
    """Treat blank optional fields (as submitted by HTML forms) as absent."""
    if v is None:
      return None
    v = v.strip()
    return v or None

  @model_validator(mode="after")
  def validate_credentials_pair(self) -> "ChatRequest":
    """Email and password must be supplied together."""
    if bool(self.email) != bool(self.password):
      raise ValueError("email and password must be provided together")
    return self
