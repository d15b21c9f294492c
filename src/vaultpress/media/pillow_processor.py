from __future__ import annotations

import shutil
from pathlib import Path

from ..plugins.base import (
    ImageMetadata,
    ImageProcessOptions,
    ImageProcessResult,
    PluginBase,
    PluginContext,
)

SUPPORTED_EXTENSIONS = {".jpg", ".jpeg", ".png", ".gif", ".webp", ".bmp", ".tif", ".tiff"}
_PIL_FORMATS = {"webp": "WEBP", "jpeg": "JPEG", "png": "PNG", "avif": "AVIF"}


def copy_file(input_path: Path, output_path: Path) -> None:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    shutil.copyfile(input_path, output_path)


class PillowImageProcessor(PluginBase):
    """Transcodes and downsizes raster images with Pillow.

    Vector images (SVG) and non-image media are left to `copy()`.
    """

    name = "pillow"

    def initialize(self, context: PluginContext) -> None:
        try:
            from PIL import Image  # noqa: F401
        except ImportError as e:
            raise RuntimeError("Pillow not installed. Install with: pip install Pillow") from e
        super().initialize(context)

    def can_process(self, path: Path) -> bool:
        return Path(path).suffix.lower() in SUPPORTED_EXTENSIONS

    def get_metadata(self, path: Path) -> ImageMetadata:
        from PIL import ExifTags, Image

        with Image.open(path) as img:
            fmt = (img.format or Path(path).suffix.lstrip(".")).lower()
            width, height = img.size
            # Orientations 5-8 are stored rotated by 90 degrees; report the size process() will see
            if img.getexif().get(ExifTags.Base.Orientation) in (5, 6, 7, 8):
                width, height = height, width
            return ImageMetadata(width=width, height=height, format=fmt)

    def process(self, input_path: Path, output_path: Path, options: ImageProcessOptions) -> ImageProcessResult:
        from PIL import Image, ImageOps

        pil_format = _PIL_FORMATS.get(options.format)
        if pil_format is None:
            raise ValueError(f"Unsupported output format: {options.format}")

        with Image.open(input_path) as src:
            img = ImageOps.exif_transpose(src)
            if options.width or options.height:
                target = (options.width or img.width, options.height or img.height)
                # thumbnail() keeps the aspect ratio and never enlarges
                img.thumbnail(target, Image.Resampling.LANCZOS)

            if pil_format == "JPEG" and img.mode not in ("RGB", "L"):
                img = img.convert("RGB")
            elif img.mode not in ("RGB", "RGBA", "L", "LA"):
                img = img.convert("RGBA")

            save_kwargs: dict[str, object] = {}
            if pil_format == "PNG":
                save_kwargs["optimize"] = True
            else:
                save_kwargs["quality"] = options.quality

            output_path = Path(output_path)
            output_path.parent.mkdir(parents=True, exist_ok=True)
            img.save(output_path, format=pil_format, **save_kwargs)
            width, height = img.size

        return ImageProcessResult(
            output_path=output_path,
            width=width,
            height=height,
            format=options.format,
            size=output_path.stat().st_size,
        )

    def copy(self, input_path: Path, output_path: Path) -> None:
        copy_file(Path(input_path), Path(output_path))
