from unittest.mock import AsyncMock, MagicMock

import numpy as np
import pytest
from PIL import Image

from imageworker.core.storage import LocalStorage, StorageFactory


def make_image(width: int = 640, height: int = 480, mode: str = "RGB") -> Image.Image:
    """Synthetic photo-like image: gradients plus a bright square so edge filters have work to do."""
    x = np.linspace(0, 255, width, dtype=np.float32)[None, :].repeat(height, axis=0)
    y = np.linspace(0, 255, height, dtype=np.float32)[:, None].repeat(width, axis=1)
    rgb = np.stack([x, y, 255 - x], axis=-1)
    rgb[height // 4: height // 2, width // 4: width // 2] = 250
    image = Image.fromarray(rgb.astype(np.uint8))
    return image if mode == "RGB" else image.convert(mode)


@pytest.fixture
def image_factory():
    return make_image


@pytest.fixture
def work_dir(tmp_path):
    path = tmp_path / "work"
    path.mkdir()
    return path


@pytest.fixture
def local_storage(tmp_path):
    return LocalStorage(base_path=str(tmp_path / "storage"), public_base_url="https://cdn.example.com")


@pytest.fixture
def mock_storage():
    storage = MagicMock()
    storage.upload = AsyncMock(side_effect=lambda data, key, content_type="image/jpeg": key)
    storage.get_url = AsyncMock(side_effect=lambda key: f"https://cdn.example.com/{key}")
    storage.delete = AsyncMock(return_value=True)
    storage.exists = AsyncMock(return_value=True)
    return storage


@pytest.fixture(autouse=True)
def reset_storage_factory():
    StorageFactory.reset()
    yield
    StorageFactory.reset()
