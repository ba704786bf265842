import numpy as np
import pytest
from PIL import Image

from imageworker.core.exceptions import InvalidParameter, MissingParameter
from imageworker.pipeline import transforms
from imageworker.pipeline.descriptors import OperationDescriptor


def op(name, **params):
    return OperationDescriptor(op=name, **params)


# =============================================================================
# Geometry contracts
# =============================================================================

@pytest.mark.parametrize("size", [(640, 480), (200, 800), (150, 150), (31, 7)])
def test_thumbnail_defaults_to_150_box_whatever_the_aspect(size, image_factory):
    result = transforms.thumbnail(image_factory(*size), op("thumbnail"))

    assert result.size == (150, 150)


def test_thumbnail_honours_caller_box(image_factory):
    result = transforms.thumbnail(image_factory(640, 480), op("thumbnail", width=100, height=60))

    assert result.size == (100, 60)


def test_thumbnail_is_center_anchored():
    # Left half red, right half blue: a centred 100x100 crop of a 200x100 image keeps both
    source = Image.new("RGB", (200, 100), (255, 0, 0))
    source.paste((0, 0, 255), (100, 0, 200, 100))

    result = transforms.thumbnail(source, op("thumbnail", width=100, height=100))

    assert result.getpixel((5, 50)) == (255, 0, 0)
    assert result.getpixel((95, 50)) == (0, 0, 255)


def test_thumbnail_fills_transparency_with_background_color():
    source = Image.new("RGBA", (64, 64), (255, 255, 255, 0))

    result = transforms.thumbnail(source, op("thumbnail", width=32, height=32))

    assert result.mode == "RGB"
    assert result.getpixel((16, 16)) == (0x23, 0x23, 0x23)


def test_thumbnail_accepts_background_color_alias():
    source = Image.new("RGBA", (10, 10), (0, 0, 0, 0))

    result = transforms.thumbnail(source, OperationDescriptor.model_validate({
        "op": "thumbnail", "width": 4, "height": 4, "background-color": "#ff0000"
    }))

    assert result.getpixel((2, 2)) == (255, 0, 0)


def test_offerize_defaults_to_350_box(image_factory):
    result = transforms.offerize(image_factory(640, 480), op("offerize"))

    assert result.size == (350, 350)
    assert result.mode == "RGB"


def test_offerize_neutral_settings_keep_colours():
    source = Image.new("RGB", (20, 20), (120, 60, 30))

    result = transforms.offerize(source, op(
        "offerize", brightness=100, saturation=100, hue=100, gamma=1.0, width=20, height=20
    ))

    r, g, b = result.getpixel((10, 10))
    assert abs(r - 120) <= 3 and abs(g - 60) <= 3 and abs(b - 30) <= 3


def test_offerize_boosts_saturation():
    source = Image.new("RGB", (20, 20), (120, 90, 80))

    result = transforms.offerize(source, op("offerize", width=20, height=20))

    r, g, b = result.getpixel((10, 10))
    assert (r - b) > (120 - 80)


# =============================================================================
# resize / original
# =============================================================================

def test_resize_without_params_is_idempotent(image_factory):
    source = image_factory(123, 45)

    once = transforms.resize(source, op("resize"))
    twice = transforms.resize(once, op("resize"))

    assert once.size == twice.size == (123, 45)


def test_resize_ignores_aspect_ratio(image_factory):
    result = transforms.resize(image_factory(640, 480), op("resize", width=10, height=300))

    assert result.size == (10, 300)


def test_resize_defaults_follow_current_dimensions(image_factory):
    shrunk = transforms.resize(image_factory(640, 480), op("resize", width=100, height=50))

    result = transforms.resize(shrunk, op("resize", height=20))

    assert result.size == (100, 20)


@pytest.mark.parametrize("params", [{"width": 0}, {"height": -5}])
def test_resize_rejects_non_positive_dimensions(params, image_factory):
    with pytest.raises(InvalidParameter):
        transforms.resize(image_factory(10, 10), op("resize", **params))


def test_original_keeps_size_and_drops_metadata(image_factory):
    source = image_factory(64, 48)
    source.info["comment"] = b"shot on a potato"

    result = transforms.original(source, op("original"))

    assert result.size == (64, 48)
    assert result.info == {}
    # Input handle untouched
    assert source.info["comment"] == b"shot on a potato"


# =============================================================================
# Filters
# =============================================================================

def test_sketch_is_grayscale_and_keeps_size(image_factory):
    result = transforms.sketch(image_factory(640, 480), op("sketch"))

    assert result.size == (640, 480)
    assert result.mode == "L"


def test_charcoal_is_grayscale_and_keeps_size(image_factory):
    result = transforms.charcoal(image_factory(64, 48), op("charcoal"))

    assert result.size == (64, 48)
    assert result.mode == "L"


def test_normalize_stretches_contrast():
    ramp = np.linspace(100, 150, 256, dtype=np.float32)[None, :].repeat(16, axis=0)
    source = Image.fromarray(ramp.astype(np.uint8)).convert("RGB")

    result = transforms.normalize(source, op("normalize"))

    for low, high in result.getextrema():
        assert low <= 5
        assert high >= 250


def test_filters_accept_palette_and_alpha_images(image_factory):
    for mode in ("P", "RGBA", "L"):
        source = image_factory(32, 32, mode=mode)
        for transform in (transforms.sketch, transforms.charcoal, transforms.normalize):
            assert transform(source, op("x")).size == (32, 32)


# =============================================================================
# level
# =============================================================================

@pytest.mark.parametrize("missing", ["black_point", "white_point", "gamma"])
def test_level_requires_all_three_points(missing, image_factory):
    params = {"black_point": 10, "white_point": 240, "gamma": 1.2}
    del params[missing]

    with pytest.raises(MissingParameter) as exc_info:
        transforms.level(image_factory(16, 16), op("level", **params))

    assert exc_info.value.details["missing"] == [missing]


@pytest.mark.parametrize("mode", ["RGB", "L", "RGBA", "P"])
def test_level_with_all_points_succeeds_for_any_image(mode, image_factory):
    result = transforms.level(
        image_factory(40, 30, mode=mode),
        op("level", black_point="5%", white_point="95%", gamma=0.8)
    )

    assert result.size == (40, 30)


def test_level_full_range_unit_gamma_is_identity(image_factory):
    source = image_factory(40, 30)

    result = transforms.level(source, op("level", black_point=0, white_point=255, gamma=1))

    assert np.array_equal(np.asarray(result), np.asarray(source))


def test_level_clips_below_black_and_above_white():
    source = Image.fromarray(np.array([[10, 100, 200]], dtype=np.uint8))

    result = transforms.level(source, op("level", black_point=50, white_point=150, gamma=1))

    assert list(result.getdata()) == [0, 128, 255]


@pytest.mark.parametrize("params", [
    {"black_point": 200, "white_point": 100, "gamma": 1},
    {"black_point": 0, "white_point": 255, "gamma": 0},
    {"black_point": "dark", "white_point": 255, "gamma": 1},
])
def test_level_rejects_unusable_values(params, image_factory):
    with pytest.raises(InvalidParameter):
        transforms.level(image_factory(8, 8), op("level", **params))


def test_invalid_background_color_is_reported(image_factory):
    with pytest.raises(InvalidParameter) as exc_info:
        transforms.thumbnail(image_factory(8, 8), op("thumbnail", bg_color="not-a-colour"))

    assert exc_info.value.details["parameter"] == "bg_color"
