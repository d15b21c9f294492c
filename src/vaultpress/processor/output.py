from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Sequence

from ..issues import IssueCollector
from ..models import ProcessedDocument, ProcessedMedia
from ..utils import json_dumps

logger = logging.getLogger(__name__)


class OutputFiles:
    """Stable artifact names inside the output directory."""

    DOCUMENTS = "documents.json"
    MEDIA = "media.json"
    SLUG_MAP = "documents-slug-map.json"
    PATH_MAP = "documents-path-map.json"
    MEDIA_PATH_MAP = "media-path-map.json"
    TEXT_EMBEDDINGS = "documents-embedding-hash-map.json"
    IMAGE_EMBEDDINGS = "media-embedding-hash-map.json"
    SIMILARITY = "similarity.json"
    GRAPH = "graph.json"
    ISSUES = "processor-issues.json"


def build_graph(
    documents: Sequence[ProcessedDocument],
    media: Sequence[ProcessedMedia],
    media_refs: dict[str, list[str]],
) -> dict[str, Any]:
    """Nodes for documents and media; `links_to` and `uses_media` edges."""
    nodes: list[dict[str, Any]] = []
    edges: list[dict[str, Any]] = []
    first_media: dict[str, ProcessedMedia] = {}
    for m in media:
        first_media.setdefault(m.hash, m)
    for d in documents:
        nodes.append({"id": d.hash, "type": "document", "label": d.title, "slug": d.slug})
    for h, m in first_media.items():
        nodes.append({"id": h, "type": "media", "label": m.file_name, "mediaType": m.type.value})
    for d in documents:
        for target in d.links:
            edges.append({"source": d.hash, "target": target, "type": "links_to"})
        for target in media_refs.get(d.hash, []):
            edges.append({"source": d.hash, "target": target, "type": "uses_media"})
    return {"nodes": nodes, "edges": edges}


class OutputWriter:
    """Writes each artifact independently; failures become file-access issues."""

    def __init__(self, output_dir: Path, issues: IssueCollector) -> None:
        self.output_dir = Path(output_dir)
        self.issues = issues
        self.written: dict[str, Path] = {}

    def write_json(self, name: str, payload: Any) -> Path | None:
        path = self.output_dir / name
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json_dumps(payload, indent=2) + "\n", encoding="utf-8")
        except (OSError, TypeError, ValueError) as e:
            self.issues.add_file_access_error(str(path), "write", str(e))
            return None
        self.written[name] = path
        logger.debug(f"Wrote {path}")
        return path

    def write_results(
        self,
        documents: Sequence[ProcessedDocument],
        media: Sequence[ProcessedMedia],
    ) -> None:
        self.write_json(OutputFiles.DOCUMENTS, [d.to_dict() for d in documents])
        self.write_json(OutputFiles.MEDIA, [m.to_dict() for m in media])
        self.write_json(OutputFiles.SLUG_MAP, {d.slug: d.hash for d in documents})
        self.write_json(OutputFiles.PATH_MAP, {d.original_path: d.hash for d in documents})
        self.write_json(OutputFiles.MEDIA_PATH_MAP, {m.original_path: m.hash for m in media})
        self.write_json(
            OutputFiles.TEXT_EMBEDDINGS,
            {d.hash: list(d.embedding) for d in documents if d.embedding is not None},
        )
        self.write_json(
            OutputFiles.IMAGE_EMBEDDINGS,
            {m.hash: list(m.embedding) for m in media if m.embedding is not None},
        )
