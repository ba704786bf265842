"""
Transform catalog.

Every transform takes the current image handle plus the operation's full
descriptor and returns a new handle. Inputs are never modified; callers must
drop the old handle and keep only the returned one.
"""

from typing import Any, Tuple

import numpy as np
from PIL import Image, ImageColor, ImageFilter, ImageOps

from imageworker.core.exceptions import InvalidParameter
from imageworker.pipeline.descriptors import OperationDescriptor

RESAMPLE = Image.Resampling.LANCZOS

THUMBNAIL_DEFAULTS = {
    "width": 150,
    "height": 150,
    "bg_color": "#232323",
}

OFFERIZE_DEFAULTS = {
    "brightness": 115,
    "saturation": 175,
    "hue": 100,
    "gamma": 1.125,
    "width": 350,
    "height": 350,
    "bg_color": "#232323",
}

SKETCH_BLUR_RADIUS = 0.5
CHARCOAL_STRENGTH = 1

# ImageMagick's -normalize clips 2% of the darkest and 1% of the brightest pixels
NORMALIZE_CUTOFF = (2, 1)


# =============================================================================
# Parameter validation
# =============================================================================

def _positive_int(op: str, name: str, value: Any) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise InvalidParameter(op, name, value, "expected an integer")
    if number <= 0:
        raise InvalidParameter(op, name, value, "must be greater than zero")
    return number


def _number(op: str, name: str, value: Any, minimum: float = None, exclusive: bool = False) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise InvalidParameter(op, name, value, "expected a number")
    if not np.isfinite(number):
        raise InvalidParameter(op, name, value, "must be finite")
    if minimum is not None:
        if exclusive and number <= minimum:
            raise InvalidParameter(op, name, value, f"must be greater than {minimum:g}")
        if not exclusive and number < minimum:
            raise InvalidParameter(op, name, value, f"must be at least {minimum:g}")
    return number


def _color(op: str, value: Any) -> Tuple[int, ...]:
    try:
        return ImageColor.getrgb(str(value))
    except ValueError:
        raise InvalidParameter(op, "bg_color", value, "not a recognised colour")


def _level_point(name: str, value: Any) -> float:
    """Accept 0-255 values or percentages such as "10%"."""
    if isinstance(value, str) and value.strip().endswith("%"):
        return _number("level", name, value.strip()[:-1]) * 255.0 / 100.0
    return _number("level", name, value)


# =============================================================================
# Shared helpers
# =============================================================================

def strip_metadata(image: Image.Image) -> Image.Image:
    """Copy of `image` without EXIF, ICC profile, comments or text chunks."""
    stripped = image.copy()
    stripped.info = {}
    return stripped


def _has_alpha(image: Image.Image) -> bool:
    return image.mode in ("RGBA", "LA", "PA") or (image.mode == "P" and "transparency" in image.info)


def _as_rgb(image: Image.Image) -> Image.Image:
    """RGB or L view of the image; the filters below only handle those modes."""
    if image.mode in ("RGB", "L"):
        return image
    return image.convert("RGB")


def _apply_lut(image: Image.Image, lut) -> Image.Image:
    image = _as_rgb(image)
    return image.point(list(lut) * len(image.getbands()))


def _gamma(image: Image.Image, gamma: float) -> Image.Image:
    exponent = 1.0 / gamma
    return _apply_lut(image, (round(255 * (i / 255.0) ** exponent) for i in range(256)))


def _modulate(image: Image.Image, brightness: float, saturation: float, hue: float) -> Image.Image:
    """Brightness/saturation/hue in percent; hue 100 keeps colours, 0 or 200 rotate by 180 degrees."""
    hsv = np.asarray(_as_rgb(image).convert("RGB").convert("HSV"), dtype=np.float32)
    h = np.mod(hsv[..., 0] + (hue - 100.0) / 200.0 * 256.0, 256.0)
    s = hsv[..., 1] * (saturation / 100.0)
    v = hsv[..., 2] * (brightness / 100.0)
    bands = [Image.fromarray(np.clip(channel, 0, 255).astype(np.uint8)) for channel in (h, s, v)]
    return Image.merge("HSV", bands).convert("RGB")


def _fit_to_box(image: Image.Image, width: int, height: int, background: Tuple[int, ...]) -> Image.Image:
    """Scale to cover width x height keeping aspect, then centre on a background canvas."""
    scale = max(width / image.width, height / image.height)
    scaled = image.resize(
        (max(1, round(image.width * scale)), max(1, round(image.height * scale))),
        RESAMPLE
    )

    left = max(0, (scaled.width - width) // 2)
    top = max(0, (scaled.height - height) // 2)
    cropped = scaled.crop((left, top, left + min(width, scaled.width), top + min(height, scaled.height)))
    offset = ((width - cropped.width) // 2, (height - cropped.height) // 2)

    canvas = Image.new("RGB", (width, height), background[:3])
    if _has_alpha(cropped):
        cropped = cropped.convert("RGBA")
        canvas.paste(cropped, offset, cropped)
    else:
        canvas.paste(cropped.convert("RGB"), offset)
    return canvas


# =============================================================================
# Catalog
# =============================================================================

def original(image: Image.Image, descriptor: OperationDescriptor) -> Image.Image:
    """Re-encode at the image's own size, without metadata."""
    return strip_metadata(image.resize(image.size, RESAMPLE))


def resize(image: Image.Image, descriptor: OperationDescriptor) -> Image.Image:
    """Exact resize; missing dimensions default to the image's current ones."""
    params = descriptor.params_with({"width": image.width, "height": image.height})
    size = (
        _positive_int("resize", "width", params["width"]),
        _positive_int("resize", "height", params["height"]),
    )
    if size == image.size:
        return image.copy()
    return image.resize(size, RESAMPLE)


def thumbnail(image: Image.Image, descriptor: OperationDescriptor) -> Image.Image:
    params = descriptor.params_with(THUMBNAIL_DEFAULTS)
    width = _positive_int("thumbnail", "width", params["width"])
    height = _positive_int("thumbnail", "height", params["height"])
    return _fit_to_box(image, width, height, _color("thumbnail", params["bg_color"]))


def sketch(image: Image.Image, descriptor: OperationDescriptor) -> Image.Image:
    edges = _as_rgb(image).filter(ImageFilter.FIND_EDGES)
    stretched = ImageOps.autocontrast(ImageOps.invert(edges), cutoff=NORMALIZE_CUTOFF)
    return stretched.convert("L").filter(ImageFilter.GaussianBlur(radius=SKETCH_BLUR_RADIUS))


def offerize(image: Image.Image, descriptor: OperationDescriptor) -> Image.Image:
    """Brand styling: punchier colours, lifted gamma, fixed-size centred box."""
    params = descriptor.params_with(OFFERIZE_DEFAULTS)
    brightness = _number("offerize", "brightness", params["brightness"], minimum=0)
    saturation = _number("offerize", "saturation", params["saturation"], minimum=0)
    hue = _number("offerize", "hue", params["hue"])
    gamma = _number("offerize", "gamma", params["gamma"], minimum=0, exclusive=True)
    width = _positive_int("offerize", "width", params["width"])
    height = _positive_int("offerize", "height", params["height"])
    background = _color("offerize", params["bg_color"])

    styled = _gamma(_modulate(image, brightness, saturation, hue), gamma)
    return _fit_to_box(styled, width, height, background)


def normalize(image: Image.Image, descriptor: OperationDescriptor) -> Image.Image:
    return ImageOps.autocontrast(_as_rgb(image), cutoff=NORMALIZE_CUTOFF)


def charcoal(image: Image.Image, descriptor: OperationDescriptor) -> Image.Image:
    edges = _as_rgb(image).convert("L").filter(ImageFilter.FIND_EDGES)
    blurred = edges.filter(ImageFilter.GaussianBlur(radius=CHARCOAL_STRENGTH))
    return ImageOps.invert(ImageOps.autocontrast(blurred, cutoff=NORMALIZE_CUTOFF))


def level(image: Image.Image, descriptor: OperationDescriptor) -> Image.Image:
    """Linear level adjustment between black and white points, then gamma."""
    params = descriptor.require("black_point", "white_point", "gamma")
    black = _level_point("black_point", params["black_point"])
    white = _level_point("white_point", params["white_point"])
    gamma = _number("level", "gamma", params["gamma"], minimum=0, exclusive=True)
    if white <= black:
        raise InvalidParameter("level", "white_point", params["white_point"], "must be above black_point")

    span = white - black
    exponent = 1.0 / gamma
    lut = (
        round(255 * min(max((i - black) / span, 0.0), 1.0) ** exponent)
        for i in range(256)
    )
    return _apply_lut(image, lut)
