from __future__ import annotations

import logging
import re
import threading
import unicodedata
from dataclasses import dataclass, field
from pathlib import PurePosixPath

from .hashing import hash_text

logger = logging.getLogger(__name__)

SLUG_STRATEGIES = ("number", "hash")

_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")


def to_slug(text: str) -> str:
    """URL-safe slug: 'Café & Crème!' -> 'cafe-and-creme'."""
    text = unicodedata.normalize("NFKD", str(text))
    text = "".join(c for c in text if not unicodedata.combining(c))
    text = text.replace("&", " and ").replace("'", "").replace("’", "")
    text = _NON_ALNUM_RE.sub("-", text.lower())
    return text.strip("-")


def generate_base_slug(
    file_name: str,
    parent_folder: str | None = None,
    frontmatter_slug: str | None = None,
    sibling_count: int | None = None,
) -> str:
    """Candidate slug before collision handling.

    An explicit frontmatter slug wins. A file named `index` that is the only
    document in its folder is named after the folder.
    """
    if frontmatter_slug:
        slug = to_slug(frontmatter_slug)
        if slug:
            return slug
    stem = PurePosixPath(file_name).stem if file_name.lower().endswith(".md") else file_name
    if stem.lower() == "index" and parent_folder and (sibling_count is None or sibling_count <= 1):
        slug = to_slug(parent_folder)
        if slug:
            return slug
    return to_slug(stem) or "untitled"


@dataclass(frozen=True)
class SlugResult:
    slug: str
    original_slug: str
    was_modified: bool
    conflicting_paths: tuple[str, ...] = ()


@dataclass
class SlugManager:
    """Assigns unique slugs within one run.

    Resolution depends only on the order of `reserve()` calls, so callers
    must reserve in a stable traversal order.
    """

    strategy: str = "number"
    _by_slug: dict[str, str] = field(default_factory=dict, init=False, repr=False)
    _by_path: dict[str, str] = field(default_factory=dict, init=False, repr=False)
    _claims: dict[str, list[str]] = field(default_factory=dict, init=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def __post_init__(self) -> None:
        if self.strategy not in SLUG_STRATEGIES:
            raise ValueError(f"Unknown slug conflict strategy: {self.strategy}")

    def reserve(
        self,
        path: str,
        file_name: str,
        parent_folder: str | None = None,
        frontmatter_slug: str | None = None,
        sibling_count: int | None = None,
    ) -> SlugResult:
        base = generate_base_slug(file_name, parent_folder, frontmatter_slug, sibling_count)
        with self._lock:
            existing = self._by_path.get(path)
            if existing is not None:
                return SlugResult(existing, base, existing != base)

            claimants = self._claims.setdefault(base, [])
            conflicting = tuple(claimants)
            claimants.append(path)

            slug = base
            if slug in self._by_slug:
                slug = self._resolve_conflict(base, path)
            self._by_slug[slug] = path
            self._by_path[path] = slug

        if slug != base:
            logger.debug(f"Slug conflict for {path}: {base} -> {slug}")
        return SlugResult(slug, base, slug != base, conflicting)

    def _resolve_conflict(self, base: str, path: str) -> str:
        if self.strategy == "hash":
            candidate = f"{base}-{hash_text(path)[:6]}"
            if candidate not in self._by_slug:
                return candidate
            base = candidate
        n = 2
        while f"{base}-{n}" in self._by_slug:
            n += 1
        return f"{base}-{n}"

    def get_slug(self, path: str) -> str | None:
        with self._lock:
            return self._by_path.get(path)

    def path_for(self, slug: str) -> str | None:
        with self._lock:
            return self._by_slug.get(slug)

    def is_reserved(self, slug: str) -> bool:
        with self._lock:
            return slug in self._by_slug

    def slug_map(self) -> dict[str, str]:
        """slug -> original path."""
        with self._lock:
            return dict(self._by_slug)

    def clear(self) -> None:
        with self._lock:
            self._by_slug.clear()
            self._by_path.clear()
            self._claims.clear()
