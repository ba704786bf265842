"""
Post-processing and local output.

Post-processing runs after every transform: strip metadata unless the
operation sets strip=false, pick the requested encoding format, and set the
encode quality (never for `original`, which keeps the encoder default).
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from PIL import Image

from imageworker.core.exceptions import InvalidParameter
from imageworker.core.logging import get_logger
from imageworker.pipeline.descriptors import OperationDescriptor
from imageworker.pipeline.tiling import tile_filename
from imageworker.pipeline.transforms import strip_metadata

logger = get_logger(__name__)

# Modes the JPEG encoder accepts as-is
JPEG_MODES = ("RGB", "L", "CMYK")


@dataclass(frozen=True)
class EncodeOptions:
    format: Optional[str] = None  # Pillow format name, e.g. "JPEG"
    quality: Optional[int] = None


def pil_format(op: str, name: str) -> str:
    """Map "jpg" / ".png" / "webp" to the Pillow format name."""
    ext = "." + name.lower().lstrip(".")
    fmt = Image.registered_extensions().get(ext)
    if fmt is None and name.upper() in Image.SAVE:
        fmt = name.upper()
    if fmt is None or fmt not in Image.SAVE:
        raise InvalidParameter(op, "format", name, "no encoder for this format")
    return fmt


def extension_for(fmt: str) -> str:
    """Preferred file extension for a Pillow format name."""
    preferred = {"JPEG": "jpg", "TIFF": "tif"}
    if fmt in preferred:
        return preferred[fmt]
    for ext, name in Image.registered_extensions().items():
        if name == fmt:
            return ext.lstrip(".")
    return fmt.lower()


def post_process(image: Image.Image, descriptor: OperationDescriptor) -> Tuple[Image.Image, EncodeOptions]:
    if descriptor.strip is not False:
        image = strip_metadata(image)

    fmt = pil_format(descriptor.op, descriptor.format) if descriptor.format else None

    quality = None
    if descriptor.quality is not None and descriptor.op != "original":
        quality = descriptor.quality
        if not 1 <= quality <= 100:
            raise InvalidParameter(descriptor.op, "quality", quality, "must be between 1 and 100")

    return image, EncodeOptions(format=fmt, quality=quality)


def default_destination(source_filename: str, descriptor: OperationDescriptor) -> str:
    """<source stem>_<op>.<ext>, the extension following the requested format."""
    source = Path(source_filename)
    if descriptor.format:
        suffix = "." + extension_for(pil_format(descriptor.op, descriptor.format))
    else:
        suffix = source.suffix or ".jpg"
    return f"{source.stem}_{descriptor.op}{suffix}"


class OutputSink:
    """Writes derivatives into the worker's scratch directory."""

    def __init__(self, work_dir: str):
        self.work_dir = Path(work_dir)
        self.work_dir.mkdir(parents=True, exist_ok=True)

    def write(
        self,
        image: Image.Image,
        destination: str,
        options: EncodeOptions = EncodeOptions()
    ) -> Path:
        path = self.work_dir / destination
        path.parent.mkdir(parents=True, exist_ok=True)

        fmt = options.format or Image.registered_extensions().get(path.suffix.lower())
        if fmt is None:
            raise InvalidParameter("write", "destination", destination, "cannot infer a format from the extension")

        if fmt == "JPEG" and image.mode not in JPEG_MODES:
            image = image.convert("RGB")

        save_kwargs: Dict[str, Any] = {}
        if options.quality is not None:
            save_kwargs["quality"] = options.quality
        # Metadata survives only when strip=false left it in place
        for key in ("exif", "icc_profile"):
            if image.info.get(key):
                save_kwargs[key] = image.info[key]

        image.save(path, format=fmt, **save_kwargs)
        logger.info("output_written", path=str(path), format=fmt, size=image.size, quality=options.quality)
        return path

    def write_tile(
        self,
        image: Image.Image,
        basename: str,
        row: int,
        col: int,
        ext: str,
        options: EncodeOptions = EncodeOptions()
    ) -> Path:
        return self.write(image, tile_filename(basename, row, col, ext), options)
