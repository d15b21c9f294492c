from __future__ import annotations

import difflib
import logging
import posixpath
from pathlib import PurePosixPath
from urllib.parse import unquote

from ..issues import IssueCollector
from ..markdown.extract import heading_slug
from ..markdown.pipeline import MarkdownPipeline
from ..paths import normalize_vault_path
from ..slugs import to_slug
from .media import MediaIndex
from .records import DocumentDraft

logger = logging.getLogger(__name__)

_DOC_SUFFIXES = (".md", ".markdown")


def _stem(path: str) -> str:
    name = PurePosixPath(path).name
    for suffix in _DOC_SUFFIXES:
        if name.lower().endswith(suffix):
            return name[: -len(suffix)]
    return name


def _split_anchor(target: str) -> tuple[str, str]:
    target, _, anchor = target.partition("#")
    return target, anchor


def _is_document_target(target: str) -> bool:
    suffix = PurePosixPath(target).suffix.lower()
    return suffix in _DOC_SUFFIXES or suffix == ""


class DocumentIndex:
    """Resolves link targets to included documents.

    Lookup order: vault path, path relative to the linking document, path
    with '.md' appended, file stem (case-insensitive), slug.
    """

    def __init__(self, drafts: list[DocumentDraft]) -> None:
        self.by_path: dict[str, DocumentDraft] = {}
        self.by_stem: dict[str, DocumentDraft] = {}
        self.by_slug: dict[str, DocumentDraft] = {}
        for d in drafts:
            self.by_path.setdefault(d.original_path, d)
            self.by_stem.setdefault(_stem(d.original_path).lower(), d)
            if d.slug:
                self.by_slug.setdefault(d.slug, d)

    def resolve(self, target: str, folder: str = "") -> DocumentDraft | None:
        target = unquote(target).strip()
        if not target:
            return None
        bases = [normalize_vault_path(target)]
        if folder:
            bases.append(normalize_vault_path(posixpath.join(folder, target)))
        bases.append(normalize_vault_path(target.lstrip("/")))
        for base in bases:
            if not base:
                continue
            for candidate in (base, f"{base}.md"):
                if candidate in self.by_path:
                    return self.by_path[candidate]
        found = self.by_stem.get(_stem(target).lower())
        if found is None:
            found = self.by_slug.get(to_slug(_stem(target)))
        return found

    def suggestions(self, target: str, limit: int = 3) -> list[str]:
        names = {_stem(p): p for p in self.by_path}
        matches = difflib.get_close_matches(_stem(target), list(names), n=limit, cutoff=0.6)
        return [names[m] for m in matches]


def resolve_links(
    drafts: list[DocumentDraft],
    media_index: MediaIndex,
    pipeline: MarkdownPipeline,
    issues: IssueCollector,
) -> None:
    """Attach outgoing links and media references, then render each body.

    Must run after slugs are assigned; drafts are visited in order so the
    emitted issues follow the traversal order.
    """
    index = DocumentIndex(drafts)

    for draft in drafts:
        folder = draft.folder
        links: dict[str, None] = {}
        media_refs: dict[str, None] = {}
        reported: set[str] = set()

        def link_to(target: str, text: str | None = None) -> str | None:
            doc = index.resolve(target, folder)
            if doc is None:
                if target not in reported:
                    reported.add(target)
                    issues.add_broken_link(
                        draft.original_path, target, text, index.suggestions(target)
                    )
                return None
            if doc is not draft:
                links[doc.hash] = None
            return f"/{doc.slug}"

        def media_url(target: str, embed: bool = False) -> str | None:
            found = media_index.resolve_embed(target, folder) if embed else media_index.resolve(target, folder)
            if found is None:
                if target not in reported:
                    reported.add(target)
                    issues.add_missing_media(draft.original_path, target)
                return None
            media_refs[found.hash] = None
            return media_index.public_url(found)

        def resolve_wikilink(target: str, anchor: str) -> str | None:
            fragment = f"#{heading_slug(anchor)}" if anchor else ""
            if not target:
                return fragment or None
            href = link_to(target)
            return href + fragment if href else None

        def resolve_embed(target: str) -> str | None:
            return media_url(target, embed=True)

        def resolve_link(href: str) -> str | None:
            target, anchor = _split_anchor(href)
            if not target:
                return None
            fragment = f"#{heading_slug(anchor)}" if anchor else ""
            if _is_document_target(target):
                url = link_to(target)
                return url + fragment if url else None
            found = media_index.resolve(target, folder)
            if found is not None:
                media_refs[found.hash] = None
                return media_index.public_url(found)
            return None

        draft.html = pipeline.render(
            draft.parsed,
            resolve_wikilink=resolve_wikilink,
            resolve_embed=resolve_embed,
            resolve_image=media_url,
            resolve_link=resolve_link,
        )
        draft.links = list(links)
        draft.media_refs = list(media_refs)
