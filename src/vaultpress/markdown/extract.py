from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Sequence

from markdown_it.token import Token

from ..models import TocItem

WORD_RE = re.compile(r"\w+(?:['’-]\w+)*")
_WS_RE = re.compile(r"\s+")
_HEADING_STRIP_RE = re.compile(r"[^\w\s-]")

# Inline tokens that contribute visible text
_TEXT_TYPES = {"text", "code_inline"}


@dataclass(frozen=True)
class Heading:
    level: int
    text: str


def inline_text(token: Token, sep: str = "") -> str:
    """Visible text of one inline token (emphasis markers, images dropped)."""
    parts: list[str] = []
    for child in token.children or []:
        if child.type in _TEXT_TYPES:
            parts.append(child.content)
        elif child.type == "wikilink":
            parts.append(child.content)
        elif child.type in ("softbreak", "hardbreak"):
            parts.append(" ")
    return sep.join(parts)


def to_plain_text(tokens: Sequence[Token]) -> str:
    """Text and inline code of the whole document, whitespace collapsed."""
    parts = [inline_text(t, " ") for t in tokens if t.type == "inline"]
    return _WS_RE.sub(" ", " ".join(parts)).strip()


def extract_headings(tokens: Sequence[Token]) -> list[Heading]:
    headings: list[Heading] = []
    for i, tok in enumerate(tokens):
        if tok.type != "heading_open" or i + 1 >= len(tokens):
            continue
        text = _WS_RE.sub(" ", inline_text(tokens[i + 1])).strip()
        headings.append(Heading(level=int(tok.tag[1:]), text=text))
    return headings


def extract_first_paragraph(tokens: Sequence[Token]) -> str:
    """Text of the first top-level paragraph, or '' if there is none."""
    for i, tok in enumerate(tokens):
        if tok.type == "paragraph_open" and tok.level == 0 and i + 1 < len(tokens):
            text = _WS_RE.sub(" ", inline_text(tokens[i + 1])).strip()
            if text:
                return text
    return ""


def heading_slug(text: str) -> str:
    slug = _HEADING_STRIP_RE.sub("", text.lower().strip())
    return _WS_RE.sub("-", slug)


class HeadingSlugger:
    """Heading anchors, with -1, -2 suffixes for repeated headings."""

    def __init__(self) -> None:
        self._seen: dict[str, int] = {}

    def slug(self, text: str) -> str:
        base = heading_slug(text)
        count = self._seen.get(base, 0)
        self._seen[base] = count + 1
        return base if count == 0 else f"{base}-{count}"


def build_toc(headings: Sequence[Heading]) -> list[TocItem]:
    slugger = HeadingSlugger()
    return [TocItem(level=h.level, text=h.text, slug=slugger.slug(h.text)) for h in headings]


def count_words(text: str) -> int:
    return len(WORD_RE.findall(text))


def first_heading_title(headings: Sequence[Heading]) -> str | None:
    if headings and headings[0].level == 1 and headings[0].text:
        return headings[0].text
    return None
