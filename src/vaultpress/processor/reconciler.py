from __future__ import annotations

import os
from dataclasses import dataclass, field
from fnmatch import fnmatch
from pathlib import Path

from ..errors import ConfigurationError
from ..models import MediaType

MARKDOWN_EXTENSIONS = {".md", ".markdown"}
MEDIA_EXTENSIONS: dict[str, MediaType] = {
    **{e: MediaType.IMAGE for e in (".jpg", ".jpeg", ".png", ".gif", ".webp", ".avif",
                                    ".bmp", ".tif", ".tiff", ".svg")},
    **{e: MediaType.VIDEO for e in (".mp4", ".webm", ".mov", ".m4v")},
    **{e: MediaType.AUDIO for e in (".mp3", ".wav", ".ogg", ".m4a", ".flac")},
    ".pdf": MediaType.OTHER,
}


def media_type_for(path: str | Path) -> MediaType | None:
    return MEDIA_EXTENSIONS.get(Path(path).suffix.lower())


def matches_ignore_pattern(rel_path: str, patterns: list[str] | tuple[str, ...]) -> bool:
    """Check if a relative path matches any ignore entry.

    Plain names ("README.md") match the file name in any folder; entries
    containing "/" or glob characters are matched against the whole path,
    with "dir/**" matching everything under a directory.
    """
    rel_path = rel_path.replace("\\", "/")
    name = rel_path.rsplit("/", 1)[-1]

    for pattern in patterns:
        pattern = pattern.replace("\\", "/")
        if pattern.startswith("**/"):
            suffix = pattern[3:]
            if fnmatch(name, suffix) or fnmatch(rel_path, suffix) or fnmatch(rel_path, f"*/{suffix}"):
                return True
        elif pattern.endswith("/**"):
            prefix = pattern[:-3]
            if rel_path.startswith(prefix + "/") or rel_path == prefix:
                return True
        elif "/" in pattern:
            if fnmatch(rel_path, pattern):
                return True
        elif fnmatch(name, pattern):
            return True
    return False


@dataclass(frozen=True)
class VaultFile:
    path: Path
    rel_path: str


@dataclass
class VaultScan:
    documents: list[VaultFile] = field(default_factory=list)
    media: list[VaultFile] = field(default_factory=list)
    ignored: int = 0


@dataclass
class Reconciler:
    """Walks the vault in lexicographic path order.

    Hidden files and folders (".obsidian", ".git", ...) and the output
    directory, when it lives inside the vault, are never visited.
    """

    root: Path
    ignore: tuple[str, ...] | list[str] = ()
    exclude_dirs: tuple[Path, ...] = ()

    def scan(self) -> VaultScan:
        root = Path(self.root)
        if not root.is_dir():
            raise ConfigurationError(f"Input directory does not exist or is not a directory: {root}")
        try:
            with os.scandir(root) as entries:
                next(entries, None)
        except OSError as e:
            raise ConfigurationError(f"Cannot read input directory {root}: {e}") from e

        excluded = {p.resolve() for p in self.exclude_dirs}
        scan = VaultScan()
        for dirpath, dirnames, filenames in os.walk(root):
            current = Path(dirpath)
            dirnames[:] = sorted(
                d for d in dirnames
                if not d.startswith(".") and (current / d).resolve() not in excluded
            )
            for fname in sorted(filenames):
                if fname.startswith("."):
                    continue
                p = current / fname
                rel = p.relative_to(root).as_posix()
                if matches_ignore_pattern(rel, self.ignore):
                    scan.ignored += 1
                    continue
                suffix = p.suffix.lower()
                if suffix in MARKDOWN_EXTENSIONS:
                    scan.documents.append(VaultFile(p, rel))
                elif suffix in MEDIA_EXTENSIONS:
                    scan.media.append(VaultFile(p, rel))

        scan.documents.sort(key=lambda f: f.rel_path)
        scan.media.sort(key=lambda f: f.rel_path)
        return scan
