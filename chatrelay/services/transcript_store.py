"""Transcript persistence: one CSV file per prompt/response pair."""

from __future__ import annotations

import csv
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, Optional

import pandas as pd

from chatrelay.core.exceptions import InvalidRequestError, PersistenceError

logger = logging.getLogger(__name__)

COLUMNS = ["Prompt", "Response", "Timestamp"]
RESPONSE_KINDS = ("initial", "reply")


def dataframe_to_csv_bytes(
  df: pd.DataFrame,
  *,
  text_columns: Optional[Iterable[str]] = None,
  quoting: int = csv.QUOTE_ALL
) -> bytes:
  """
  Convert a DataFrame into UTF-8 encoded CSV bytes with optional text sanitization.

  Args:
    df: The DataFrame to export.
    text_columns: Optional iterable of column names whose string values should have
      Windows line endings normalized to '\n' to preserve formatting.
    quoting: csv module quoting strategy (defaults to QUOTE_ALL for compatibility).

  Returns:
    Bytes encoded CSV (UTF-8 with BOM) so spreadsheet apps detect the encoding.
  """
  clean_df = df.copy()

  if text_columns:
    for column in text_columns:
      if column in clean_df.columns:
        clean_df[column] = clean_df[column].apply(
          lambda value: value.replace("\r\n", "\n").replace("\r", "\n") if isinstance(value, str) else value
        )

  csv_string = clean_df.to_csv(index=False, quoting=quoting)
  return csv_string.encode("utf-8-sig")


def isoformat_utc(moment: datetime) -> str:
  """Format a timestamp as ISO-8601 UTC with millisecond precision and a Z suffix."""
  if moment.tzinfo is None:
    moment = moment.replace(tzinfo=timezone.utc)
  return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class TranscriptStore:
  """Writes each prompt/response pair to its own timestamped CSV file."""

  def __init__(self, output_dir: str | Path):
    """Initialize the store.

    Args:
      output_dir: Directory for transcript files; created on first write
    """
    self.output_dir = Path(output_dir)

  def save(
    self,
    kind: str,
    prompt: str,
    response: str,
    timestamp: Optional[datetime] = None,
  ) -> Path:
    """Persist one prompt/response pair.

    Args:
      kind: "initial" or "reply"
      prompt: Prompt that was sent
      response: Extracted response text
      timestamp: Time of the write (defaults to now, UTC)

    Returns:
      Path of the written CSV file

    Raises:
      InvalidRequestError: If kind is unknown
      PersistenceError: If the file cannot be written
    """
    if kind not in RESPONSE_KINDS:
      raise InvalidRequestError(
        f"Unknown response kind: {kind}",
        details={"valid_values": list(RESPONSE_KINDS)},
      )

    moment = timestamp or datetime.now(timezone.utc)
    iso = isoformat_utc(moment)
    df = pd.DataFrame([{"Prompt": prompt, "Response": response, "Timestamp": iso}], columns=COLUMNS)
    payload = dataframe_to_csv_bytes(df, text_columns=["Prompt", "Response"])

    stem = f"chatgpt-{kind}-response-{iso.replace(':', '-').replace('.', '-')}"
    try:
      self.output_dir.mkdir(parents=True, exist_ok=True)
      path = self._write_new(stem, payload)
    except OSError as e:
      raise PersistenceError(str(self.output_dir / f"{stem}.csv"), str(e)) from e

    logger.info("Saved %s response to %s", kind, path)
    return path

  def read(self, path: str | Path) -> Dict[str, str]:
    """Load a transcript file back into a {Prompt, Response, Timestamp} dict."""
    df = pd.read_csv(path, encoding="utf-8-sig", dtype=str, keep_default_na=False)
    if list(df.columns) != COLUMNS or df.empty:
      raise ValueError(f"{path} is not a transcript file")
    return df.iloc[0].to_dict()

  def _write_new(self, stem: str, payload: bytes) -> Path:
    """Create stem.csv, or stem-1.csv, stem-2.csv ... if the name is taken."""
    suffix = 0
    while True:
      name = f"{stem}.csv" if suffix == 0 else f"{stem}-{suffix}.csv"
      path = self.output_dir / name
      try:
        with path.open("xb") as handle:
          handle.write(payload)
        return path
      except FileExistsError:
        suffix += 1
