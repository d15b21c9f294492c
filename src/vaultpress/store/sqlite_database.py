from __future__ import annotations

import mimetypes
import os
import sqlite3
from pathlib import Path
from typing import Sequence

import numpy as np

from ..models import DatabaseResult, ProcessedDocument, ProcessedMedia
from ..plugins.base import DatabaseInput, PluginBase, PluginContext
from ..similarity.cosine import rank_neighbours, similarity_matrix
from ..utils import json_dumps
from .schema import CURRENT_SCHEMA_VERSION, SchemaManager


def _vec_to_blob(vec: Sequence[float] | np.ndarray) -> bytes:
    vec = np.asarray(vec, dtype=np.float32).ravel()
    return vec.tobytes()


def _blob_to_vec(blob: bytes) -> np.ndarray:
    return np.frombuffer(blob, dtype=np.float32)


class SqliteDatabase(PluginBase):
    """Builds a self-contained SQLite database of the processed vault.

    Tables: documents, media, documents_fts (FTS5), embeddings,
    media_embeddings, similarity (precomputed top-N cosine neighbours) and
    schema_metadata. The file is rebuilt from scratch on every run.
    """

    name = "sqlite-database"

    def __init__(
        self,
        file_name: str = "vault.db",
        fts: bool = True,
        vector_search: bool = True,
        top_n: int = 5,
    ) -> None:
        super().__init__()
        self.file_name = file_name
        self.fts = fts
        self.vector_search = vector_search
        self.top_n = top_n
        self.output_dir: Path | None = None

    def initialize(self, context: PluginContext) -> None:
        self.output_dir = Path(context.output_dir)
        super().initialize(context)

    def build(self, data: DatabaseInput) -> DatabaseResult:
        out_dir = Path(data.output_dir or self.output_dir or ".")
        out_dir.mkdir(parents=True, exist_ok=True)
        db_path = out_dir / self.file_name
        tmp_path = db_path.with_name(db_path.name + ".tmp")
        if tmp_path.exists():
            tmp_path.unlink()

        conn = sqlite3.connect(str(tmp_path))
        conn.row_factory = sqlite3.Row
        try:
            schema = SchemaManager(conn)
            has_fts = schema.create(fts=self.fts)
            self._insert_documents(conn, data.documents)
            self._insert_media(conn, data.media)
            if has_fts:
                conn.execute("INSERT INTO documents_fts(documents_fts) VALUES('rebuild')")

            has_vectors = False
            if self.vector_search:
                has_vectors = self._insert_embeddings(conn, data)
                if has_vectors:
                    self._insert_similarity(conn)

            schema.stamp("document_count", str(len(data.documents)))
            if data.text_model:
                schema.stamp("text_model", data.text_model)
            conn.commit()

            tables = tuple(
                r["name"]
                for r in conn.execute(
                    "SELECT name FROM sqlite_master WHERE type = 'table' "
                    "AND name NOT LIKE 'sqlite_%' AND name NOT LIKE 'documents_fts_%' ORDER BY name"
                )
            )
            row_counts = {t: int(conn.execute(f'SELECT COUNT(*) FROM "{t}"').fetchone()[0]) for t in tables}
        except Exception:
            conn.close()
            tmp_path.unlink(missing_ok=True)
            raise
        conn.close()

        os.replace(tmp_path, db_path)
        self.logger.info(f"Database written to {db_path}: {row_counts}")
        return DatabaseResult(
            database_path=str(db_path),
            tables=tables,
            row_counts=row_counts,
            has_vector_search=has_vectors,
            has_fts=has_fts,
            schema_version=CURRENT_SCHEMA_VERSION,
        )

    def _insert_documents(self, conn: sqlite3.Connection, documents: Sequence[ProcessedDocument]) -> None:
        backlinks: dict[str, list[str]] = {}
        for doc in documents:
            for target in doc.links:
                backlinks.setdefault(target, []).append(doc.hash)

        conn.executemany(
            """
            INSERT INTO documents (
              hash, slug, title, file_name, original_path, html, markdown, plain_text,
              excerpt, word_count, frontmatter_json, toc_json, links_json, backlinks_json,
              cover_json, created_at, modified_at, processed_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            [
                (
                    d.hash, d.slug, d.title, d.file_name, d.original_path, d.html, d.markdown,
                    d.plain_text, d.excerpt, d.word_count,
                    json_dumps(d.frontmatter),
                    json_dumps([t.to_dict() for t in d.toc]),
                    json_dumps(list(d.links)),
                    json_dumps(backlinks.get(d.hash, [])),
                    json_dumps(d.cover.to_dict()) if d.cover is not None else None,
                    d.created_at, d.modified_at, d.processed_at,
                )
                for d in documents
            ],
        )

    def _insert_media(self, conn: sqlite3.Connection, media: Sequence[ProcessedMedia]) -> None:
        conn.executemany(
            """
            INSERT OR REPLACE INTO media (
              hash, original_path, output_path, file_name, type, mime_type, format,
              width, height, size, original_size, sizes_json
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            [
                (
                    m.metadata.hash, m.original_path, m.output_path, m.file_name, m.type.value,
                    mimetypes.guess_type(m.output_path)[0], m.metadata.format,
                    m.metadata.width, m.metadata.height, m.metadata.size, m.metadata.original_size,
                    json_dumps([s.to_dict() for s in m.sizes]),
                )
                for m in media
            ],
        )

    def _insert_embeddings(self, conn: sqlite3.Connection, data: DatabaseInput) -> bool:
        text_model = data.text_model or "unknown"
        rows = {
            d.hash: (d.hash, text_model, len(d.embedding), _vec_to_blob(d.embedding))
            for d in data.documents
            if d.embedding is not None
        }
        conn.executemany(
            "INSERT OR REPLACE INTO embeddings (document_hash, model, dimensions, vector) VALUES (?, ?, ?, ?)",
            list(rows.values()),
        )
        image_model = data.image_model or "unknown"
        media_rows = {
            m.hash: (m.hash, image_model, len(m.embedding), _vec_to_blob(m.embedding))
            for m in data.media
            if m.embedding is not None
        }
        conn.executemany(
            "INSERT OR REPLACE INTO media_embeddings (media_hash, model, dimensions, vector) VALUES (?, ?, ?, ?)",
            list(media_rows.values()),
        )
        return bool(rows)

    def _insert_similarity(self, conn: sqlite3.Connection) -> None:
        hashes: list[str] = []
        vectors: list[np.ndarray] = []
        for row in conn.execute("SELECT document_hash, vector FROM embeddings ORDER BY rowid"):
            hashes.append(row["document_hash"])
            vectors.append(_blob_to_vec(row["vector"]))
        if len(hashes) < 2:
            return
        scores = similarity_matrix(np.vstack(vectors))
        rows = []
        for i, h in enumerate(hashes):
            for rank, j in enumerate(rank_neighbours(scores, i, self.top_n), start=1):
                rows.append((h, hashes[j], float(scores[i, j]), rank))
        conn.executemany(
            "INSERT INTO similarity (document_hash, similar_hash, score, rank) VALUES (?, ?, ?, ?)",
            rows,
        )
