from __future__ import annotations

from pathlib import Path

from ..plugins.base import ImageMetadata, ImageProcessOptions, ImageProcessResult, PluginBase
from .pillow_processor import copy_file


class CopyOnlyImageProcessor(PluginBase):
    """Image processor that never transcodes; every media file is copied."""

    name = "copy"

    def can_process(self, path: Path) -> bool:
        return False

    def get_metadata(self, path: Path) -> ImageMetadata:
        raise NotImplementedError("copy-only processor does not read image metadata")

    def process(self, input_path: Path, output_path: Path, options: ImageProcessOptions) -> ImageProcessResult:
        raise NotImplementedError("copy-only processor does not transcode")

    def copy(self, input_path: Path, output_path: Path) -> None:
        copy_file(Path(input_path), Path(output_path))
