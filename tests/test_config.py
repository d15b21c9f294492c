"""Tests for configuration loading, validation and the plugin factory."""
from __future__ import annotations

from pathlib import Path

import pytest

from vaultpress.config import DEFAULT_IMAGE_SIZES, ImageSize, MediaConfig, ProcessorConfig
from vaultpress.errors import ConfigurationError
from vaultpress.media import CopyOnlyImageProcessor, PillowImageProcessor
from vaultpress.plugins.factory import build_plugins
from vaultpress.store import SqliteDatabase


class TestProcessorConfig:
    """Defaults and validation."""

    def test_defaults(self, tmp_path: Path):
        cfg = ProcessorConfig(input_dir=tmp_path, output_dir=tmp_path / "out")
        assert cfg.media.format == "webp"
        assert cfg.media.sizes == DEFAULT_IMAGE_SIZES
        assert cfg.slug_conflict_strategy == "number"
        assert "README.md" in cfg.ignore_files
        assert cfg.media_output_dir == tmp_path / "out" / "_media"

    def test_string_paths_expanded(self, tmp_path: Path, monkeypatch):
        monkeypatch.setenv("VAULT_HOME", str(tmp_path))
        cfg = ProcessorConfig(input_dir="$VAULT_HOME/notes", output_dir="~/site")
        assert cfg.input_dir == tmp_path / "notes"
        assert isinstance(cfg.output_dir, Path)
        assert "~" not in str(cfg.output_dir)

    @pytest.mark.parametrize("kwargs", [
        {"slug_conflict_strategy": "random"},
        {"required_plugins": ("teleporter",)},
        {"max_workers": 0},
        {"embedding_batch_size": 0},
        {"similarity_top_n": 0},
    ])
    def test_invalid_values(self, tmp_path: Path, kwargs):
        with pytest.raises(ConfigurationError):
            ProcessorConfig(input_dir=tmp_path, output_dir=tmp_path, **kwargs)

    @pytest.mark.parametrize("kwargs", [{"format": "gif"}, {"quality": 0}, {"quality": 101}])
    def test_invalid_media(self, kwargs):
        with pytest.raises(ConfigurationError):
            MediaConfig(**kwargs)


class TestFromToml:
    """TOML loading."""

    def test_full_config(self, tmp_path: Path):
        path = tmp_path / "config.toml"
        path.write_text(f"""
[vault]
root = "{tmp_path.as_posix()}/vault"
ignore_files = ["private/**"]

[output]
dir = "{tmp_path.as_posix()}/site"

[content]
process_all_files = true
slug_conflict_strategy = "hash"
track_relationships = true
max_workers = 2

[media]
format = "jpeg"
quality = 70
use_sharding = true
domain = "https://cdn.example.com"

[[media.sizes]]
suffix = "thumb"
width = 200

[embeddings]
provider = "sentence_transformers"
model = "my-model"
batch_size = 8

[similarity]
top_n = 3

[database]
provider = "off"

[plugins]
image_processor = "copy"
required = ["image_processor"]

[debug]
level = 2
timing = true
""")
        cfg = ProcessorConfig.from_toml(path)

        assert cfg.input_dir == tmp_path / "vault"
        assert cfg.ignore_files == ("private/**",)
        assert cfg.process_all_files and cfg.track_relationships
        assert cfg.slug_conflict_strategy == "hash"
        assert cfg.max_workers == 2
        assert cfg.media.format == "jpeg"
        assert cfg.media.sizes == (ImageSize("thumb", 200),)
        assert cfg.media.use_sharding
        assert cfg.media.domain == "https://cdn.example.com"
        assert cfg.embedding_batch_size == 8
        assert cfg.similarity_top_n == 3
        assert cfg.plugins.text_embedder == "sentence_transformers"
        assert cfg.plugins.text_model == "my-model"
        assert cfg.plugins.database == "off"
        assert cfg.required_plugins == ("image_processor",)
        assert cfg.debug.level == 2 and cfg.debug.timing

    def test_missing_sections(self, tmp_path: Path):
        path = tmp_path / "config.toml"
        path.write_text('[vault]\nroot = "x"\n')
        with pytest.raises(ConfigurationError, match=r"\[output\]"):
            ProcessorConfig.from_toml(path)

    def test_unreadable(self, tmp_path: Path):
        with pytest.raises(ConfigurationError):
            ProcessorConfig.from_toml(tmp_path / "absent.toml")
        bad = tmp_path / "bad.toml"
        bad.write_text("[vault\nroot=")
        with pytest.raises(ConfigurationError):
            ProcessorConfig.from_toml(bad)

    def test_bad_size_entry(self, tmp_path: Path):
        path = tmp_path / "config.toml"
        path.write_text('[vault]\nroot = "x"\n[output]\ndir = "y"\n[[media.sizes]]\nwidth = 100\n')
        with pytest.raises(ConfigurationError):
            ProcessorConfig.from_toml(path)


class TestBuildPlugins:
    """Provider names to plugin instances."""

    def _cfg(self, tmp_path: Path, **plugins) -> ProcessorConfig:
        return ProcessorConfig.from_dict({
            "vault": {"root": str(tmp_path)},
            "output": {"dir": str(tmp_path / "out")},
            **plugins,
        })

    def test_defaults(self, tmp_path: Path):
        plugins = build_plugins(self._cfg(tmp_path))
        assert isinstance(plugins.image_processor, PillowImageProcessor)
        assert isinstance(plugins.database, SqliteDatabase)
        assert plugins.text_embedder is None
        assert plugins.image_embedder is None
        # cosine similarity needs a text embedder
        assert plugins.similarity is None

    def test_copy_and_off(self, tmp_path: Path):
        plugins = build_plugins(self._cfg(
            tmp_path, plugins={"image_processor": "copy"}, database={"provider": "off"}
        ))
        assert isinstance(plugins.image_processor, CopyOnlyImageProcessor)
        assert plugins.database is None

    def test_text_embedder_enables_similarity(self, tmp_path: Path):
        plugins = build_plugins(self._cfg(tmp_path, embeddings={"provider": "sentence_transformers"}))
        assert plugins.text_embedder is not None
        assert plugins.similarity is not None

    def test_unknown_provider(self, tmp_path: Path):
        with pytest.raises(ConfigurationError):
            build_plugins(self._cfg(tmp_path, database={"provider": "postgres"}))
