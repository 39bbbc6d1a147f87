"""Shared models for the conversion pipelines and the gateway"""

from enum import Enum
from html import escape
from typing import NamedTuple, Optional

from pydantic import BaseModel, ConfigDict


PIPE = "｜"
OPEN_BRACKET = "《"
CLOSE_BRACKET = "》"


class RubyAnnotation(BaseModel):
    """A base text span paired with its reading (furigana)."""
    model_config = ConfigDict(frozen=True)

    base: str
    reading: str

    @property
    def is_complete(self) -> bool:
        return bool(self.base.strip()) and bool(self.reading.strip())

    def to_markdown(self) -> str:
        """Canonical plain-text form, always with the fullwidth pipe."""
        return f"{PIPE}{self.base}{OPEN_BRACKET}{self.reading}{CLOSE_BRACKET}"

    def to_html(self) -> str:
        return f"<ruby>{escape(self.base)}<rt>{escape(self.reading)}</rt></ruby>"


class RubyMatch(NamedTuple):
    """Result of matching the ruby grammar at one position.

    `annotation` is None for the escape form or a blank base or reading, in which
    case `literal` holds the text to emit verbatim.
    """
    annotation: Optional[RubyAnnotation]
    literal: str
    end: int


class ConversionState(str, Enum):
    idle = "idle"
    saving = "saving"
