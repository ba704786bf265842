import numpy as np
import pytest
from PIL import Image

from imageworker.core.exceptions import IncompleteGrid, InvalidGridDimensions
from imageworker.pipeline import tiling


def opener_for(image):
    calls = []

    def open_source():
        calls.append(1)
        return image.copy()

    return open_source, calls


def test_tiles_partition_an_evenly_divisible_image(image_factory):
    source = image_factory(300, 300)
    open_source, _ = opener_for(source)

    grid = tiling.tile(open_source, 3, 3)

    assert grid.is_complete
    assert all(tile.size == (100, 100) for _, tile in grid.items())
    merged = tiling.merge(3, 3, grid)
    assert np.array_equal(np.asarray(merged), np.asarray(source))


def test_remainder_pixels_are_dropped(image_factory):
    source = image_factory(301, 301)
    open_source, _ = opener_for(source)

    grid = tiling.tile(open_source, 3, 3)
    merged = tiling.merge(3, 3, grid)

    assert grid[2, 2].size == (100, 100)
    assert merged.size == (300, 300)
    assert np.array_equal(np.asarray(merged), np.asarray(source.crop((0, 0, 300, 300))))


def test_tile_content_matches_its_region(image_factory):
    source = image_factory(640, 480)
    open_source, _ = opener_for(source)

    grid = tiling.tile(open_source, 3, 2, max_workers=4)

    # 640 // 3 = 213, 480 // 2 = 240
    expected = source.crop((213, 240, 426, 480))
    assert np.array_equal(np.asarray(grid[1, 1]), np.asarray(expected))


def test_each_tile_gets_a_fresh_source_handle(image_factory):
    open_source, calls = opener_for(image_factory(60, 40))

    tiling.tile(open_source, 3, 2)

    # One probe for the size plus one per tile
    assert len(calls) == 1 + 3 * 2


@pytest.mark.parametrize("grid", [(0, 2), (2, -1), (True, 2), (1.5, 2)])
def test_invalid_grid_dimensions_are_rejected(grid, image_factory):
    open_source, _ = opener_for(image_factory(60, 40))

    with pytest.raises(InvalidGridDimensions):
        tiling.tile(open_source, *grid)


def test_grid_larger_than_image_is_rejected(image_factory):
    open_source, _ = opener_for(image_factory(4, 4))

    with pytest.raises(InvalidGridDimensions):
        tiling.tile(open_source, 5, 1)


def test_merge_rejects_incomplete_grid():
    grid = tiling.TileGrid(2, 2)
    for cell in [(0, 0), (1, 0), (0, 1)]:
        grid[cell] = Image.new("RGB", (10, 10))

    with pytest.raises(IncompleteGrid) as exc_info:
        tiling.merge(2, 2, grid)

    assert exc_info.value.details["missing"] == [(1, 1)]


def test_merge_rejects_mismatched_dimensions():
    grid = tiling.TileGrid(1, 1)
    grid[0, 0] = Image.new("RGB", (10, 10))

    with pytest.raises(InvalidGridDimensions):
        tiling.merge(2, 1, grid)


def test_merge_joins_columns_left_to_right():
    grid = tiling.TileGrid(2, 1)
    grid[0, 0] = Image.new("L", (5, 5), 0)
    grid[1, 0] = Image.new("L", (5, 5), 255)

    merged = tiling.merge(2, 1, grid)

    assert merged.size == (10, 5)
    assert merged.getpixel((0, 0)) == 0
    assert merged.getpixel((9, 0)) == 255


def test_grid_rejects_cells_outside_its_bounds():
    grid = tiling.TileGrid(2, 2)

    with pytest.raises(IndexError):
        grid[2, 0] = Image.new("RGB", (1, 1))


def test_tile_filename():
    assert tiling.tile_filename("poster", 1, 2, "jpg") == "poster_1_2.jpg"
    assert tiling.tile_filename("poster", 0, 0, ".png") == "poster_0_0.png"
