import pytest
from PIL import Image

from imageworker.core.exceptions import UnknownOperation
from imageworker.pipeline import transforms
from imageworker.pipeline.descriptors import OperationDescriptor
from imageworker.pipeline.registry import TransformRegistry, default_registry

CATALOG_NAMES = ["charcoal", "level", "normalize", "offerize", "original", "resize", "sketch", "thumbnail"]


def test_default_registry_holds_the_catalog():
    registry = default_registry()

    assert registry.names() == CATALOG_NAMES
    assert len(registry) == len(CATALOG_NAMES)
    assert registry.resolve("thumbnail") is transforms.thumbnail


@pytest.mark.parametrize("name", ["sharpen", "Thumbnail", "", "tile", "__init__"])
def test_unknown_names_are_rejected(name):
    with pytest.raises(UnknownOperation) as exc_info:
        default_registry().resolve(name)

    assert exc_info.value.details["op"] == name
    assert exc_info.value.details["available"] == CATALOG_NAMES


def test_registry_is_closed_after_construction():
    table = {"resize": transforms.resize}
    registry = TransformRegistry(table)

    # Later changes to the source table do not leak in
    table["sketch"] = transforms.sketch

    assert "sketch" not in registry
    with pytest.raises(UnknownOperation):
        registry.resolve("sketch")


@pytest.mark.parametrize("name", [n for n in CATALOG_NAMES if n != "level"])
def test_every_transform_returns_an_image(name, image_factory):
    source = image_factory(64, 48)

    result = default_registry().resolve(name)(source, OperationDescriptor(op=name))

    assert isinstance(result, Image.Image)
    assert result is not source
