"""
Tiling and merging.

`tile` splits an image into a grid_width x grid_height grid of equally sized
crops. Slice sizes use integer division, so the remainder pixels on the right
and bottom edges are not covered by any tile. `merge` reassembles a complete
grid column by column; its output is therefore never larger than the source.
"""

from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Dict, Iterator, List, Tuple

from PIL import Image

from imageworker.core.exceptions import IncompleteGrid, InvalidGridDimensions
from imageworker.core.logging import get_logger

logger = get_logger(__name__)

SourceOpener = Callable[[], Image.Image]


def tile_filename(basename: str, row: int, col: int, ext: str) -> str:
    """Deterministic per-tile name: <basename>_<row>_<col>.<ext>"""
    return f"{basename}_{row}_{col}.{ext.lstrip('.')}"


class TileGrid:
    """Image handles addressed by (col, row)."""

    def __init__(self, grid_width: int, grid_height: int):
        _check_grid(grid_width, grid_height)
        self.grid_width = grid_width
        self.grid_height = grid_height
        self._cells: Dict[Tuple[int, int], Image.Image] = {}

    def _check_cell(self, col: int, row: int):
        if not (0 <= col < self.grid_width and 0 <= row < self.grid_height):
            raise IndexError(f"Cell ({col}, {row}) is outside a {self.grid_width}x{self.grid_height} grid")

    def __setitem__(self, cell: Tuple[int, int], image: Image.Image):
        self._check_cell(*cell)
        self._cells[cell] = image

    def __getitem__(self, cell: Tuple[int, int]) -> Image.Image:
        self._check_cell(*cell)
        return self._cells[cell]

    def __contains__(self, cell: Tuple[int, int]) -> bool:
        return cell in self._cells

    def __len__(self) -> int:
        return len(self._cells)

    def cells(self) -> Iterator[Tuple[int, int]]:
        """All grid positions, row-major within each column."""
        for col in range(self.grid_width):
            for row in range(self.grid_height):
                yield col, row

    def items(self) -> Iterator[Tuple[Tuple[int, int], Image.Image]]:
        for cell in self.cells():
            if cell in self._cells:
                yield cell, self._cells[cell]

    def missing(self) -> List[Tuple[int, int]]:
        return [cell for cell in self.cells() if cell not in self._cells]

    @property
    def is_complete(self) -> bool:
        return len(self._cells) == self.grid_width * self.grid_height


def _check_grid(grid_width, grid_height):
    for value in (grid_width, grid_height):
        if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
            raise InvalidGridDimensions(grid_width, grid_height)


def slice_size(size: Tuple[int, int], grid_width: int, grid_height: int) -> Tuple[int, int]:
    _check_grid(grid_width, grid_height)
    slice_width = size[0] // grid_width
    slice_height = size[1] // grid_height
    if slice_width == 0 or slice_height == 0:
        raise InvalidGridDimensions(
            grid_width,
            grid_height,
            reason=f"grid is larger than the {size[0]}x{size[1]} source"
        )
    return slice_width, slice_height


def _crop_tile(open_source: SourceOpener, box: Tuple[int, int, int, int]) -> Image.Image:
    # Each tile starts from an untouched copy of the source
    with open_source() as source:
        tile = source.crop(box)
        tile.load()
    return tile


def tile(
    open_source: SourceOpener,
    grid_width: int,
    grid_height: int,
    max_workers: int = 1
) -> TileGrid:
    """
    Split the source into a grid of crops.

    Args:
        open_source: Returns a fresh handle on the source image each call
        grid_width: Number of columns
        grid_height: Number of rows
        max_workers: Crops run on a thread pool of this size

    Returns:
        A complete TileGrid
    """
    grid = TileGrid(grid_width, grid_height)

    with open_source() as source:
        source_size = source.size
    slice_width, slice_height = slice_size(source_size, grid_width, grid_height)

    logger.info(
        "tiling_started",
        grid=f"{grid_width}x{grid_height}",
        source_size=source_size,
        slice_size=(slice_width, slice_height),
        dropped_pixels=(source_size[0] - slice_width * grid_width, source_size[1] - slice_height * grid_height)
    )

    boxes = {
        (col, row): (
            col * slice_width,
            row * slice_height,
            (col + 1) * slice_width,
            (row + 1) * slice_height,
        )
        for col, row in grid.cells()
    }

    with ThreadPoolExecutor(max_workers=max(1, max_workers)) as executor:
        futures = {cell: executor.submit(_crop_tile, open_source, box) for cell, box in boxes.items()}
        # Join every cell before the grid is handed out
        for cell, future in futures.items():
            grid[cell] = future.result()

    return grid


def merge(grid_width: int, grid_height: int, grid: TileGrid) -> Image.Image:
    """Stack each column top-to-bottom, then join the columns left-to-right."""
    _check_grid(grid_width, grid_height)
    if (grid.grid_width, grid.grid_height) != (grid_width, grid_height):
        raise InvalidGridDimensions(
            grid_width,
            grid_height,
            reason=f"grid holds {grid.grid_width}x{grid.grid_height} cells"
        )
    if not grid.is_complete:
        raise IncompleteGrid(grid.missing())

    strips = [_append([grid[col, row] for row in range(grid_height)], vertical=True) for col in range(grid_width)]
    return _append(strips, vertical=False)


def _append(images: List[Image.Image], vertical: bool) -> Image.Image:
    mode = images[0].mode
    if vertical:
        size = (max(im.width for im in images), sum(im.height for im in images))
    else:
        size = (sum(im.width for im in images), max(im.height for im in images))

    combined = Image.new(mode, size)
    if mode == "P":
        combined.putpalette(images[0].getpalette())
    offset = 0
    for im in images:
        if im.mode != mode:
            im = im.convert(mode)
        combined.paste(im, (0, offset) if vertical else (offset, 0))
        offset += im.height if vertical else im.width
    return combined
