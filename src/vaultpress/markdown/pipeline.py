from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable

import frontmatter
import yaml
from markdown_it import MarkdownIt
from markdown_it.token import Token

from ..models import TocItem
from ..paths import is_remote
from ..utils import to_json_safe
from .extract import (
    Heading,
    build_toc,
    count_words,
    extract_first_paragraph,
    extract_headings,
    first_heading_title,
    to_plain_text,
)
from .wikilinks import heading_ids_plugin, wikilinks_plugin

logger = logging.getLogger(__name__)


class FrontmatterError(ValueError):
    """The document's YAML header could not be parsed."""


@dataclass(frozen=True)
class WikiLinkRef:
    target: str
    anchor: str = ""
    alias: str = ""
    embed: bool = False


@dataclass
class ParsedMarkdown:
    """Parsed document; `tokens` stay mutable until `render()`."""

    frontmatter: dict[str, Any]
    body: str
    tokens: list[Token]
    headings: list[Heading]
    toc: list[TocItem]
    plain_text: str
    excerpt: str
    word_count: int
    heading_title: str | None
    wikilinks: list[WikiLinkRef] = field(default_factory=list)
    links: list[str] = field(default_factory=list)
    images: list[str] = field(default_factory=list)


def parse_frontmatter(raw_text: str) -> tuple[dict[str, Any], str]:
    try:
        post = frontmatter.loads(raw_text)
    except (yaml.YAMLError, ValueError, TypeError) as e:
        raise FrontmatterError(f"Invalid frontmatter: {e}") from e
    meta = post.metadata
    if not isinstance(meta, dict):
        raise FrontmatterError(f"Frontmatter must be a mapping, got {type(meta).__name__}")
    return to_json_safe(meta), post.content


def _collect_references(tokens: list[Token]) -> tuple[list[WikiLinkRef], list[str], list[str]]:
    wikilinks: list[WikiLinkRef] = []
    links: list[str] = []
    images: list[str] = []
    for tok in tokens:
        for child in tok.children or []:
            if child.type in ("wikilink", "wikilink_embed"):
                wikilinks.append(WikiLinkRef(
                    target=child.meta["target"],
                    anchor=child.meta["anchor"],
                    alias=child.meta["alias"],
                    embed=child.type == "wikilink_embed",
                ))
            elif child.type == "link_open":
                href = str(child.attrGet("href") or "")
                if href and not is_remote(href) and not href.startswith("#"):
                    links.append(href)
            elif child.type == "image":
                src = str(child.attrGet("src") or "")
                if src and not is_remote(src):
                    images.append(src)
    return wikilinks, links, images


class MarkdownPipeline:
    """CommonMark (+ tables, strikethrough, wikilinks) parser and renderer.

    One instance is shared by all document workers; parse() and render()
    keep no per-call state on the instance.
    """

    def __init__(self) -> None:
        self.md = (
            MarkdownIt("commonmark", {"html": True})
            .enable(["table", "strikethrough"])
            .use(wikilinks_plugin)
            .use(heading_ids_plugin)
        )

    def parse(self, raw_text: str) -> ParsedMarkdown:
        meta, body = parse_frontmatter(raw_text)
        tokens = self.md.parse(body)
        headings = extract_headings(tokens)
        plain_text = to_plain_text(tokens)
        wikilinks, links, images = _collect_references(tokens)
        return ParsedMarkdown(
            frontmatter=meta,
            body=body,
            tokens=tokens,
            headings=headings,
            toc=build_toc(headings),
            plain_text=plain_text,
            excerpt=extract_first_paragraph(tokens),
            word_count=count_words(plain_text),
            heading_title=first_heading_title(headings),
            wikilinks=wikilinks,
            links=links,
            images=images,
        )

    def render(
        self,
        parsed: ParsedMarkdown,
        resolve_wikilink: Callable[[str, str], str | None] | None = None,
        resolve_embed: Callable[[str], str | None] | None = None,
        resolve_image: Callable[[str], str | None] | None = None,
        resolve_link: Callable[[str], str | None] | None = None,
    ) -> str:
        """Render to HTML, rewriting local image sources and document links.

        `resolve_embed` handles `![[image.png]]` embeds, `resolve_image`
        handles `![alt](src)` images; each returns a URL or None.
        """
        for tok in parsed.tokens:
            for child in tok.children or []:
                if child.type == "image" and resolve_image is not None:
                    src = str(child.attrGet("src") or "")
                    url = resolve_image(src) if src and not is_remote(src) else None
                    if url:
                        child.attrSet("src", url)
                elif child.type == "link_open" and resolve_link is not None:
                    href = str(child.attrGet("href") or "")
                    url = resolve_link(href) if href and not is_remote(href) else None
                    if url:
                        child.attrSet("href", url)
        env = {"resolve_wikilink": resolve_wikilink, "resolve_media": resolve_embed}
        return self.md.renderer.render(parsed.tokens, self.md.options, env)
