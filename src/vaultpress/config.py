from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .errors import ConfigurationError
from .slugs import SLUG_STRATEGIES

IMAGE_FORMATS = ("webp", "jpeg", "png", "avif")
PLUGIN_CAPABILITIES = ("image_processor", "image_embedder", "text_embedder", "similarity", "database")

DEFAULT_IGNORE_FILES = ("CONTRIBUTING.md", "README.md", "readme.md", "LICENSE.md")


def _expand(p: str) -> str:
    return os.path.expandvars(os.path.expanduser(p))


def _default_workers() -> int:
    return min(8, os.cpu_count() or 4)


@dataclass(frozen=True)
class ImageSize:
    suffix: str
    width: int | None = None
    height: int | None = None


DEFAULT_IMAGE_SIZES = (
    ImageSize("xs", 320),
    ImageSize("sm", 640),
    ImageSize("md", 1024),
    ImageSize("lg", 1920),
    ImageSize("xl", 3840),
)


@dataclass(frozen=True)
class MediaConfig:
    sizes: tuple[ImageSize, ...] = DEFAULT_IMAGE_SIZES
    format: str = "webp"
    quality: int = 80
    use_hash: bool = True
    use_sharding: bool = False
    output_subdir: str = "_media"
    domain: str | None = None

    def __post_init__(self):
        if self.format not in IMAGE_FORMATS:
            raise ConfigurationError(f"Unsupported media format: {self.format} (use one of {IMAGE_FORMATS})")
        if not 1 <= self.quality <= 100:
            raise ConfigurationError(f"Media quality must be within 1..100, got {self.quality}")
        object.__setattr__(self, "sizes", tuple(self.sizes))


@dataclass(frozen=True)
class DebugConfig:
    level: int = 0  # 0 warnings, 1 info, 2 debug
    timing: bool = False

    def __post_init__(self):
        if self.level not in (0, 1, 2):
            raise ConfigurationError(f"debug.level must be 0, 1 or 2, got {self.level}")


@dataclass(frozen=True)
class PluginSettings:
    """Provider names used by `vaultpress.plugins.factory.build_plugins`."""

    image_processor: str = "pillow"  # pillow|copy|off
    text_embedder: str = "off"  # sentence_transformers|off
    text_model: str = "sentence-transformers/all-MiniLM-L6-v2"
    image_embedder: str = "off"  # clip|off
    image_model: str = "clip-ViT-B-32"
    embedding_device: str = "cpu"
    similarity: str = "cosine"  # cosine|off
    database: str = "sqlite"  # sqlite|off


@dataclass(frozen=True)
class ProcessorConfig:
    """Configuration for a single processing run.

    Plugin instances are passed to the Processor separately; this only holds
    plain values so it can be loaded from TOML.
    """

    input_dir: Path
    output_dir: Path

    def __post_init__(self):
        """Convert string paths to Path objects and expand ~ and environment variables."""
        if isinstance(self.input_dir, str):
            object.__setattr__(self, "input_dir", Path(_expand(self.input_dir)))
        if isinstance(self.output_dir, str):
            object.__setattr__(self, "output_dir", Path(_expand(self.output_dir)))
        object.__setattr__(self, "ignore_files", tuple(self.ignore_files))
        object.__setattr__(self, "required_plugins", tuple(self.required_plugins))
        if self.slug_conflict_strategy not in SLUG_STRATEGIES:
            raise ConfigurationError(f"Unknown slug conflict strategy: {self.slug_conflict_strategy}")
        unknown = [p for p in self.required_plugins if p not in PLUGIN_CAPABILITIES]
        if unknown:
            raise ConfigurationError(f"Unknown required plugins: {unknown}")
        if self.max_workers < 1:
            raise ConfigurationError("max_workers must be >= 1")
        if self.embedding_batch_size < 1:
            raise ConfigurationError("embedding_batch_size must be >= 1")
        if self.similarity_top_n < 1:
            raise ConfigurationError("similarity_top_n must be >= 1")

    ignore_files: tuple[str, ...] = DEFAULT_IGNORE_FILES
    process_all_files: bool = False
    slug_conflict_strategy: str = "number"
    track_relationships: bool = False

    media: MediaConfig = field(default_factory=MediaConfig)

    # Embeddings / similarity / database
    embedding_batch_size: int = 32
    similarity_top_n: int = 5
    database_name: str = "vault.db"
    database_fts: bool = True
    database_vector_search: bool = True

    required_plugins: tuple[str, ...] = ()
    plugins: PluginSettings = field(default_factory=PluginSettings)

    max_workers: int = field(default_factory=_default_workers)
    debug: DebugConfig = field(default_factory=DebugConfig)

    @property
    def media_output_dir(self) -> Path:
        return self.output_dir / self.media.output_subdir

    @staticmethod
    def from_toml(path: str | Path) -> "ProcessorConfig":
        try:
            data = tomllib.loads(Path(path).read_text(encoding="utf-8"))
        except (OSError, tomllib.TOMLDecodeError) as e:
            raise ConfigurationError(f"Cannot read config {path}: {e}") from e
        return ProcessorConfig.from_dict(data)

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "ProcessorConfig":
        vault = data.get("vault", {})
        output = data.get("output", {})
        content = data.get("content", {})
        media = data.get("media", {})
        emb = data.get("embeddings", {})
        sim = data.get("similarity", {})
        db = data.get("database", {})
        plugins = data.get("plugins", {})
        debug = data.get("debug", {})

        if "root" not in vault:
            raise ConfigurationError("Missing [vault].root in config")
        if "dir" not in output:
            raise ConfigurationError("Missing [output].dir in config")

        sizes = media.get("sizes")
        if sizes is None:
            image_sizes = DEFAULT_IMAGE_SIZES
        else:
            try:
                image_sizes = tuple(
                    ImageSize(suffix=s["suffix"], width=s.get("width"), height=s.get("height"))
                    for s in sizes
                )
            except (KeyError, TypeError) as e:
                raise ConfigurationError(f"Invalid [[media.sizes]] entry: {e}") from e

        kwargs: dict[str, Any] = dict(
            input_dir=vault["root"],
            output_dir=output["dir"],
            ignore_files=tuple(vault.get("ignore_files", DEFAULT_IGNORE_FILES)),
            process_all_files=bool(content.get("process_all_files", False)),
            slug_conflict_strategy=content.get("slug_conflict_strategy", "number"),
            track_relationships=bool(content.get("track_relationships", False)),
            media=MediaConfig(
                sizes=image_sizes,
                format=media.get("format", "webp"),
                quality=int(media.get("quality", 80)),
                use_hash=bool(media.get("use_hash", True)),
                use_sharding=bool(media.get("use_sharding", False)),
                output_subdir=media.get("output_subdir", "_media"),
                domain=media.get("domain"),
            ),
            embedding_batch_size=int(emb.get("batch_size", 32)),
            similarity_top_n=int(sim.get("top_n", 5)),
            database_name=db.get("name", "vault.db"),
            database_fts=bool(db.get("fts", True)),
            database_vector_search=bool(db.get("vector_search", True)),
            required_plugins=tuple(plugins.get("required", ())),
            plugins=PluginSettings(
                image_processor=plugins.get("image_processor", "pillow"),
                text_embedder=emb.get("provider", "off"),
                text_model=emb.get("model", PluginSettings.text_model),
                image_embedder=emb.get("image_provider", "off"),
                image_model=emb.get("image_model", PluginSettings.image_model),
                embedding_device=emb.get("device", "cpu"),
                similarity=sim.get("provider", "cosine"),
                database=db.get("provider", "sqlite"),
            ),
            debug=DebugConfig(
                level=int(debug.get("level", 0)),
                timing=bool(debug.get("timing", False)),
            ),
        )
        if "max_workers" in content:
            kwargs["max_workers"] = int(content["max_workers"])
        return ProcessorConfig(**kwargs)
