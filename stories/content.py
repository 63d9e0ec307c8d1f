"""
Content normalization between legacy plain text and rich markup.

Stories written before the rich editor existed are newline-delimited
plain text. The rich editor works on markup. This module is the single
place that decides which form a stored value is in and converts between
them.
"""

import html
import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Protocol

from bs4 import BeautifulSoup

from core.logging import get_logger


logger = get_logger(__name__)

RICH_START_TOKEN = "<"
LINE_BREAK = re.compile(r"\r?\n")


class BlockKind(str, Enum):
    """Kinds of renderable content blocks."""
    PARAGRAPH = "paragraph"  # Plain text paragraph
    SPACER = "spacer"        # Intentional blank line in legacy text
    PROMPT = "prompt"        # Illustration placeholder callout
    HTML = "html"            # Rich markup, rendered as-is


@dataclass(frozen=True)
class ContentBlock:
    kind: BlockKind
    text: str = ""


class RichEditor(Protocol):
    """What the normalizer needs from the visual editor widget."""

    @property
    def is_empty(self) -> bool: ...

    def get_content(self) -> str: ...

    def set_content(self, markup: str) -> None: ...


def is_rich_format(content: Optional[str]) -> bool:
    """True iff the trimmed content starts with a markup start token."""
    if not content:
        return False
    return content.strip().startswith(RICH_START_TOKEN)


def to_editable_rich_form(content: Optional[str]) -> str:
    """
    Convert content into markup the rich editor can load.

    Rich content is returned unchanged. Legacy content is split on line
    breaks, blank lines are dropped and every remaining line becomes its
    own paragraph, so intentional paragraph breaks survive the editor.
    Applying this twice gives the same result as applying it once.
    """
    if not content:
        return ""
    if is_rich_format(content):
        return content

    lines = [line for line in LINE_BREAK.split(content) if line.strip()]
    return "".join(f"<p>{html.escape(line, quote=False)}</p>" for line in lines)


def to_display_paragraphs(content: Optional[str]) -> list[ContentBlock]:
    """
    Split content into blocks for reading (not editing).

    Legacy blank lines are kept as spacer blocks. Rich content comes back
    as a single HTML block for the consumer to render as-is.
    """
    if not content:
        return []
    if is_rich_format(content):
        return [ContentBlock(BlockKind.HTML, content)]

    return [
        ContentBlock(BlockKind.PARAGRAPH, line) if line.strip()
        else ContentBlock(BlockKind.SPACER)
        for line in LINE_BREAK.split(content)
    ]


def to_plain_text(content: Optional[str]) -> str:
    """Text of the content with any markup removed."""
    if not content:
        return ""
    if not is_rich_format(content):
        return content
    soup = BeautifulSoup(content, "html.parser")
    return soup.get_text("\n", strip=True)


def load_into_editor(editor: Optional[RichEditor], content: Optional[str]) -> bool:
    """
    Load stored content into the editor if, and only if, it is empty.

    An editor that already holds content is left alone; overwriting it
    would move the user's cursor. Returns True when content was set.
    """
    if editor is None or not content:
        return False

    if not editor.is_empty:
        logger.debug("Editor already has content, skipping normalization")
        return False

    editor.set_content(to_editable_rich_form(content))
    return True
