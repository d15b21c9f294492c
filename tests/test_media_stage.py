"""Tests for media naming, transcoding, copying and cache reuse."""
from __future__ import annotations

from pathlib import Path

import pytest
from conftest import make_image, write

from vaultpress.cache import CacheContext, CachedMediaMetadata, CachedMediaSizeVariant, CacheStats
from vaultpress.config import ImageSize, MediaConfig
from vaultpress.hashing import hash_file
from vaultpress.media import CopyOnlyImageProcessor, PillowImageProcessor
from vaultpress.models import MediaType
from vaultpress.processor.media import MediaIndex, MediaStage, media_output_path
from vaultpress.processor.reconciler import VaultFile

HASH = "ab" + "c" * 62


class CountingPillow(PillowImageProcessor):
    def __init__(self) -> None:
        super().__init__()
        self.process_calls = 0

    def process(self, input_path, output_path, options):
        self.process_calls += 1
        return super().process(input_path, output_path, options)


def _vf(root: Path, rel: str) -> VaultFile:
    return VaultFile(root / rel, rel)


def _stage(out: Path, cfg: MediaConfig | None = None, plugin=None, cache: CacheContext | None = None) -> MediaStage:
    return MediaStage(
        cfg or MediaConfig(),
        out,
        plugin or PillowImageProcessor(),
        cache or CacheContext(),
        CacheStats(),
    )


class TestMediaOutputPath:
    """Naming rules for media output files."""

    def test_hash_naming(self):
        assert media_output_path(MediaConfig(), HASH, "img/pic.png", "webp") == f"_media/{HASH[:16]}.webp"

    def test_hash_naming_with_suffix_and_sharding(self):
        cfg = MediaConfig(use_sharding=True)
        assert media_output_path(cfg, HASH, "pic.png", "webp", "sm") == f"_media/ab/{HASH[:16]}-sm.webp"

    def test_path_naming_keeps_folder(self):
        cfg = MediaConfig(use_hash=False)
        assert media_output_path(cfg, HASH, "img/pic.png", "webp", "xs") == "_media/img/pic-xs.webp"
        assert media_output_path(cfg, HASH, "pic.png", "webp") == "_media/pic.webp"


class TestMediaStage:
    """Per-file processing."""

    def test_transcodes_and_never_upscales(self, tmp_path: Path):
        vault = tmp_path / "vault"
        make_image(vault / "img" / "wide.png", size=(800, 400))
        cfg = MediaConfig(sizes=(ImageSize("xs", 320), ImageSize("sm", 640), ImageSize("md", 1024)))
        stage = _stage(tmp_path / "out", cfg)

        outcome = stage.process_file(_vf(vault, "img/wide.png"))

        assert outcome.error is None
        draft = outcome.draft
        assert draft.type == MediaType.IMAGE
        assert draft.format == "webp"
        assert (draft.width, draft.height) == (800, 400)
        assert [s.suffix for s in draft.sizes] == ["xs", "sm"]
        assert all(s.width < 800 for s in draft.sizes)
        assert draft.sizes[0].height == 160
        assert (tmp_path / "out" / draft.output_path).is_file()
        for s in draft.sizes:
            assert (tmp_path / "out" / s.output_path).is_file()

    def test_hash_is_content_hash(self, tmp_path: Path):
        vault = tmp_path / "vault"
        src = make_image(vault / "pic.png")
        outcome = _stage(tmp_path / "out").process_file(_vf(vault, "pic.png"))
        assert outcome.draft.hash == hash_file(src)
        assert outcome.draft.original_size == src.stat().st_size

    def test_duplicate_content_processed_once(self, tmp_path: Path):
        vault = tmp_path / "vault"
        make_image(vault / "a.png", color="blue")
        make_image(vault / "b" / "copy.png", color="blue")
        plugin = CountingPillow()
        stage = _stage(tmp_path / "out", MediaConfig(sizes=()), plugin)

        first = stage.process_file(_vf(vault, "a.png")).draft
        second = stage.process_file(_vf(vault, "b/copy.png")).draft

        assert plugin.process_calls == 1
        assert first.output_path == second.output_path
        assert second.original_path == "b/copy.png"

    def test_corrupt_image_reports_error(self, tmp_path: Path):
        vault = tmp_path / "vault"
        write(vault / "broken.png", "definitely not a png")
        outcome = _stage(tmp_path / "out").process_file(_vf(vault, "broken.png"))
        assert outcome.draft is None
        assert outcome.error
        assert outcome.operation == "process"

    def test_non_raster_media_is_copied(self, tmp_path: Path):
        vault = tmp_path / "vault"
        svg = write(vault / "diagram.svg", "<svg xmlns='http://www.w3.org/2000/svg'/>")
        write(vault / "paper.pdf", "%PDF-1.4")
        stage = _stage(tmp_path / "out")

        svg_outcome = stage.process_file(_vf(vault, "diagram.svg"))
        pdf_outcome = stage.process_file(_vf(vault, "paper.pdf"))

        assert svg_outcome.copied and pdf_outcome.copied
        assert svg_outcome.draft.output_path.endswith(".svg")
        assert svg_outcome.draft.type == MediaType.IMAGE
        assert pdf_outcome.draft.type == MediaType.OTHER
        assert (tmp_path / "out" / svg_outcome.draft.output_path).read_bytes() == svg.read_bytes()

    def test_copy_only_processor_copies_images(self, tmp_path: Path):
        vault = tmp_path / "vault"
        make_image(vault / "pic.png")
        outcome = _stage(tmp_path / "out", plugin=CopyOnlyImageProcessor()).process_file(_vf(vault, "pic.png"))
        assert outcome.copied
        assert outcome.draft.format == "png"
        assert outcome.draft.output_path.endswith(".png")

    def test_cache_hit_skips_transcoding(self, tmp_path: Path):
        vault = tmp_path / "vault"
        src = make_image(vault / "pic.png", size=(500, 250))
        h = hash_file(src)
        cached = CachedMediaMetadata(
            width=500, height=250, format="webp", size=1234, original_size=src.stat().st_size,
            output_path=f"_media/{h[:16]}.webp",
        )
        plugin = CountingPillow()
        stats = CacheStats()
        stage = MediaStage(MediaConfig(sizes=()), tmp_path / "out", plugin, CacheContext(media={h: cached}), stats)

        draft = stage.process_file(_vf(vault, "pic.png")).draft

        assert plugin.process_calls == 0
        assert draft.cache_hit
        assert (draft.width, draft.size, draft.output_path) == (500, 1234, cached.output_path)
        assert stats.hits("media") == 1

    def test_cache_entry_with_other_format_is_ignored(self, tmp_path: Path):
        vault = tmp_path / "vault"
        src = make_image(vault / "pic.png")
        h = hash_file(src)
        cached = CachedMediaMetadata(
            width=120, height=80, format="jpeg", size=1, original_size=1, output_path="_media/x.jpg"
        )
        plugin = CountingPillow()
        stage = _stage(tmp_path / "out", MediaConfig(sizes=()), plugin, CacheContext(media={h: cached}))
        draft = stage.process_file(_vf(vault, "pic.png")).draft
        assert plugin.process_calls == 1
        assert draft.format == "webp"

    def test_cached_and_fresh_results_agree(self, tmp_path: Path):
        vault = tmp_path / "vault"
        make_image(vault / "pic.png", size=(700, 350))
        cfg = MediaConfig(sizes=(ImageSize("xs", 320),))
        fresh = _stage(tmp_path / "out", cfg).process_file(_vf(vault, "pic.png")).draft

        cache = CacheContext(media={fresh.hash: CachedMediaMetadata(
            width=fresh.width, height=fresh.height, format=fresh.format, size=fresh.size,
            original_size=fresh.original_size, output_path=fresh.output_path,
            sizes=tuple(
                CachedMediaSizeVariant(s.suffix, s.output_path, s.width, s.height, s.size) for s in fresh.sizes
            ),
        )})
        reused = _stage(tmp_path / "out2", cfg, cache=cache).process_file(_vf(vault, "pic.png")).draft

        assert reused.freeze() == fresh.freeze()

    def test_cache_entry_with_other_layout_is_ignored(self, tmp_path: Path):
        vault = tmp_path / "vault"
        make_image(vault / "pic.png", size=(700, 350))
        flat = _stage(tmp_path / "out", MediaConfig(sizes=())).process_file(_vf(vault, "pic.png")).draft
        cache = CacheContext(media={flat.hash: CachedMediaMetadata(
            width=flat.width, height=flat.height, format=flat.format, size=flat.size,
            original_size=flat.original_size, output_path=flat.output_path,
        )})

        plugin = CountingPillow()
        sharded_cfg = MediaConfig(sizes=(), use_sharding=True)
        draft = _stage(tmp_path / "out2", sharded_cfg, plugin, cache).process_file(_vf(vault, "pic.png")).draft
        fresh = _stage(tmp_path / "out3", sharded_cfg).process_file(_vf(vault, "pic.png")).draft

        assert plugin.process_calls == 1
        assert not draft.cache_hit
        assert draft.output_path == fresh.output_path == f"_media/{flat.hash[:2]}/{flat.hash[:16]}.webp"

    def test_cache_entry_with_other_sizes_is_ignored(self, tmp_path: Path):
        vault = tmp_path / "vault"
        make_image(vault / "pic.png", size=(700, 350))
        bare = _stage(tmp_path / "out", MediaConfig(sizes=())).process_file(_vf(vault, "pic.png")).draft
        cache = CacheContext(media={bare.hash: CachedMediaMetadata(
            width=bare.width, height=bare.height, format=bare.format, size=bare.size,
            original_size=bare.original_size, output_path=bare.output_path,
        )})

        plugin = CountingPillow()
        cfg = MediaConfig(sizes=(ImageSize("xs", 320),))
        draft = _stage(tmp_path / "out2", cfg, plugin, cache).process_file(_vf(vault, "pic.png")).draft

        assert not draft.cache_hit
        assert [s.suffix for s in draft.sizes] == ["xs"]
        assert plugin.process_calls == 2

    def test_exif_rotated_image_is_not_upscaled(self, tmp_path: Path):
        from PIL import ExifTags, Image

        vault = tmp_path / "vault"
        vault.mkdir()
        exif = Image.Exif()
        exif[ExifTags.Base.Orientation] = 6
        Image.new("RGB", (1000, 600), color="white").save(vault / "portrait.jpg", format="JPEG", exif=exif.tobytes())

        plugin = PillowImageProcessor()
        meta = plugin.get_metadata(vault / "portrait.jpg")
        assert (meta.width, meta.height) == (600, 1000)

        cfg = MediaConfig(sizes=(ImageSize("xs", 320), ImageSize("sm", 640)))
        draft = _stage(tmp_path / "out", cfg, plugin).process_file(_vf(vault, "portrait.jpg")).draft

        assert (draft.width, draft.height) == (600, 1000)
        assert [s.suffix for s in draft.sizes] == ["xs"]
        assert draft.sizes[0].width == 320
        assert draft.sizes[0].height > draft.sizes[0].width

    def test_only_raster_images_are_marked_transcoded(self, tmp_path: Path):
        vault = tmp_path / "vault"
        make_image(vault / "pic.png")
        write(vault / "logo.svg", "<svg xmlns='http://www.w3.org/2000/svg'/>")
        stage = _stage(tmp_path / "out", MediaConfig(sizes=()))

        assert stage.process_file(_vf(vault, "pic.png")).draft.transcoded
        assert not stage.process_file(_vf(vault, "logo.svg")).draft.transcoded

    def test_unreadable_file(self, tmp_path: Path):
        outcome = _stage(tmp_path / "out").process_file(_vf(tmp_path, "missing.png"))
        assert outcome.operation == "read"
        assert outcome.error


class TestMediaIndex:
    """Resolving references to processed media."""

    @pytest.fixture
    def index(self, tmp_path: Path) -> MediaIndex:
        vault = tmp_path / "vault"
        make_image(vault / "posts" / "images" / "My Pic.png")
        make_image(vault / "banner.png", color="green")
        stage = _stage(tmp_path / "out", MediaConfig(sizes=()))
        drafts = [
            stage.process_file(_vf(vault, "posts/images/My Pic.png")).draft,
            stage.process_file(_vf(vault, "banner.png")).draft,
        ]
        return MediaIndex(drafts)

    def test_resolve_vault_path(self, index):
        assert index.resolve("banner.png").original_path == "banner.png"
        assert index.resolve("/banner.png").original_path == "banner.png"

    def test_resolve_relative_to_folder(self, index):
        found = index.resolve("images/My%20Pic.png", folder="posts")
        assert found.original_path == "posts/images/My Pic.png"
        assert index.resolve("../banner.png", folder="posts").original_path == "banner.png"

    def test_embed_matches_by_file_name(self, index):
        assert index.resolve("My Pic.png") is None
        assert index.resolve_embed("My Pic.png").original_path == "posts/images/My Pic.png"

    def test_remote_and_missing(self, index):
        assert index.resolve("https://example.com/banner.png") is None
        assert index.resolve("nope.png") is None

    def test_public_url(self, index):
        draft = index.resolve("banner.png")
        assert index.public_url(draft) == f"/{draft.output_path}"
        assert MediaIndex([draft], domain="https://cdn.example.com/").public_url(draft) == (
            f"https://cdn.example.com/{draft.output_path}"
        )
