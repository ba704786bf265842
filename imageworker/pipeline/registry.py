"""
Transform registry: the single dispatch point from operation names to
transform functions.

The table is closed once built. There is no fallback transform and no
name-based reflection: an unregistered name is an error.
"""

from types import MappingProxyType
from typing import Callable, Dict, Iterator, List, Mapping

from PIL import Image

from imageworker.core.exceptions import UnknownOperation
from imageworker.pipeline import transforms
from imageworker.pipeline.descriptors import OperationDescriptor

TransformFunction = Callable[[Image.Image, OperationDescriptor], Image.Image]


class TransformRegistry:
    def __init__(self, table: Mapping[str, TransformFunction]):
        self._table: Mapping[str, TransformFunction] = MappingProxyType(dict(table))

    def __contains__(self, name: str) -> bool:
        return name in self._table

    def __iter__(self) -> Iterator[str]:
        return iter(self._table)

    def __len__(self) -> int:
        return len(self._table)

    def names(self) -> List[str]:
        return sorted(self._table)

    def resolve(self, name: str) -> TransformFunction:
        try:
            return self._table[name]
        except KeyError:
            raise UnknownOperation(name, available=self._table.keys()) from None


CATALOG: Dict[str, TransformFunction] = {
    "original": transforms.original,
    "resize": transforms.resize,
    "thumbnail": transforms.thumbnail,
    "sketch": transforms.sketch,
    "offerize": transforms.offerize,
    "normalize": transforms.normalize,
    "charcoal": transforms.charcoal,
    "level": transforms.level,
}

_default = TransformRegistry(CATALOG)


def default_registry() -> TransformRegistry:
    """The registry holding the built-in catalog."""
    return _default
