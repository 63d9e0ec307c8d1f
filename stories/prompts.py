"""
Illustration prompt detection and story rendering.

Generated stories carry textual placeholders where an illustration was
intended, e.g. ``[Illustration: a cat on a roof]`` or
``> **Illustration suggérée :** ...``. Once a real image is attached the
placeholders are hidden; until then they are shown as a callout.
"""

import re
from dataclasses import dataclass
from typing import Optional, Sequence

from bs4 import BeautifulSoup, NavigableString, Tag

from stories.content import LINE_BREAK, BlockKind, ContentBlock, is_rich_format
from stories.models import Illustration


PROMPT_PREFIXES = (
    "[Illustration:",
    "> **Illustration",
    "**Illustration",
    "Illustration suggérée",
)

MARKER_PATTERNS = (
    re.compile(r"^(?:>\s*)?\*\*Illustration[^*]*\*\*\s*:?\s*"),
    re.compile(r"^\[Illustration:\s*"),
    re.compile(r"^Illustration suggérée\s*:?\s*"),
)
CLOSING_BRACKET = re.compile(r"\]\s*$")


@dataclass(frozen=True)
class PromptSegment:
    """
    One paragraph of story content.

    ``markup`` is set for paragraphs taken from rich content and holds the
    original element so non-prompt paragraphs render unchanged.
    """
    is_prompt: bool
    text: str
    markup: Optional[str] = None


def is_prompt_text(text: str) -> bool:
    return text.strip().startswith(PROMPT_PREFIXES)


def strip_marker(text: str) -> str:
    """Remove the placeholder syntax, leaving the description."""
    stripped = text.strip()
    for pattern in MARKER_PATTERNS:
        stripped = pattern.sub("", stripped, count=1)
    return CLOSING_BRACKET.sub("", stripped).strip()


def _rich_paragraphs(content: str) -> list[tuple[str, str]]:
    """(text, markup) for each top-level block of rich content."""
    soup = BeautifulSoup(content, "html.parser")
    paragraphs = []
    for node in soup.children:
        if isinstance(node, Tag):
            paragraphs.append((node.get_text(" ", strip=True), str(node)))
        elif isinstance(node, NavigableString) and node.strip():
            paragraphs.append((node.strip(), str(node)))
    return paragraphs


def detect_inline_prompts(content: Optional[str]) -> list[PromptSegment]:
    """Tag each paragraph of the content as prompt or story text."""
    if not content:
        return []

    if is_rich_format(content):
        return [
            PromptSegment(is_prompt_text(text), text, markup)
            for text, markup in _rich_paragraphs(content)
        ]

    return [
        PromptSegment(is_prompt_text(line), line)
        for line in LINE_BREAK.split(content)
    ]


def render(
    content: Optional[str],
    illustrations: Sequence[Illustration],
) -> list[ContentBlock]:
    """
    Render story content into display blocks.

    With at least one illustration the image stands in for the
    placeholders, so prompt paragraphs are dropped. Without any, each
    prompt becomes a PROMPT callout with the marker syntax stripped.
    """
    has_illustrations = len(illustrations) > 0
    blocks: list[ContentBlock] = []

    for segment in detect_inline_prompts(content):
        if segment.is_prompt:
            if not has_illustrations:
                blocks.append(ContentBlock(BlockKind.PROMPT, strip_marker(segment.text)))
            continue

        if segment.markup is not None:
            blocks.append(ContentBlock(BlockKind.HTML, segment.markup))
        elif segment.text.strip():
            blocks.append(ContentBlock(BlockKind.PARAGRAPH, segment.text))
        else:
            blocks.append(ContentBlock(BlockKind.SPACER))

    return blocks
