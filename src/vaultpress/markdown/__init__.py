from .extract import (
    Heading,
    build_toc,
    count_words,
    extract_first_paragraph,
    extract_headings,
    to_plain_text,
)
from .pipeline import FrontmatterError, MarkdownPipeline, ParsedMarkdown, WikiLinkRef, parse_frontmatter

__all__ = [
    "FrontmatterError",
    "Heading",
    "MarkdownPipeline",
    "ParsedMarkdown",
    "WikiLinkRef",
    "build_toc",
    "count_words",
    "extract_first_paragraph",
    "extract_headings",
    "parse_frontmatter",
    "to_plain_text",
]
