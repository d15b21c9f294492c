"""Shared fixtures: tiny vaults, generated images and fake embedders."""
from __future__ import annotations

from pathlib import Path
from typing import Sequence

import numpy as np
import pytest

from vaultpress.config import ProcessorConfig
from vaultpress.plugins.base import PluginBase


def make_image(path: Path, size: tuple[int, int] = (120, 80), color: str = "red", fmt: str = "PNG") -> Path:
    from PIL import Image

    path.parent.mkdir(parents=True, exist_ok=True)
    Image.new("RGB", size, color=color).save(path, format=fmt)
    return path


def write(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


class FakeTextEmbedder(PluginBase):
    """Deterministic bag-of-letters embedder (8 dims)."""

    name = "fake-text"
    model = "fake-text-model"
    dimensions = 8

    def __init__(self) -> None:
        super().__init__()
        self.calls: list[list[str]] = []

    def embed(self, text: str) -> np.ndarray:
        return self.batch_embed([text])[0]

    def batch_embed(self, texts: Sequence[str]) -> np.ndarray:
        self.calls.append(list(texts))
        out = np.zeros((len(texts), self.dimensions), dtype=np.float32)
        for i, t in enumerate(texts):
            for ch in t.lower():
                idx = ord(ch) - ord("a")
                if 0 <= idx < self.dimensions:
                    out[i, idx] += 1.0
        return out


class FailingTextEmbedder(FakeTextEmbedder):
    name = "failing-text"

    def batch_embed(self, texts: Sequence[str]) -> np.ndarray:
        raise RuntimeError("model backend crashed")


class FakeImageEmbedder(PluginBase):
    """Embeds an image as its mean RGB colour (3 dims)."""

    name = "fake-image"
    model = "fake-image-model"
    dimensions = 3

    def __init__(self) -> None:
        super().__init__()
        self.files: list[Path] = []

    def embed_file(self, path: Path) -> np.ndarray:
        from PIL import Image

        self.files.append(Path(path))
        with Image.open(path) as img:
            return np.asarray(img.convert("RGB"), dtype=np.float32).reshape(-1, 3).mean(axis=0)

    def embed_bytes(self, data: bytes) -> np.ndarray:
        raise NotImplementedError


@pytest.fixture
def vault(tmp_path: Path) -> Path:
    root = tmp_path / "vault"
    root.mkdir()
    return root


@pytest.fixture
def out_dir(tmp_path: Path) -> Path:
    return tmp_path / "out"


@pytest.fixture
def make_config(vault: Path, out_dir: Path):
    def _make(**overrides) -> ProcessorConfig:
        kwargs = dict(input_dir=vault, output_dir=out_dir, max_workers=4)
        kwargs.update(overrides)
        return ProcessorConfig(**kwargs)

    return _make


def make_document(content_hash: str, slug: str | None = None, embedding=None, links=(), **overrides):
    from vaultpress.models import ProcessedDocument

    slug = slug or content_hash
    fields = dict(
        hash=content_hash,
        slug=slug,
        title=slug.replace("-", " ").title(),
        file_name=f"{slug}.md",
        original_path=f"{slug}.md",
        html=f"<p>{slug}</p>",
        markdown=slug,
        plain_text=f"{slug} body text",
        excerpt=f"{slug} body text",
        word_count=3,
        created_at="2024-01-01T00:00:00+00:00",
        modified_at="2024-01-01T00:00:00+00:00",
        processed_at="2024-01-02T00:00:00+00:00",
        links=tuple(links),
        embedding=tuple(embedding) if embedding is not None else None,
    )
    fields.update(overrides)
    return ProcessedDocument(**fields)
