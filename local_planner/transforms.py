from abc import ABC, abstractmethod
from typing import Dict, Tuple

from .exceptions import TransformUnavailable
from .types import Transform2D


class TransformProvider(ABC):
    """
    Coordinate-frame transform lookup.

    lookup_transform(target, source) returns the transform taking points
    expressed in `source` into `target`, or raises TransformUnavailable.
    Implementations must not block longer than a short bounded wait.
    """

    @abstractmethod
    def lookup_transform(self, target_frame: str, source_frame: str) -> Transform2D:
        pass


class StaticTransformProvider(TransformProvider):
    """Transforms held in memory, inverses are derived on lookup."""

    def __init__(self):
        self._transforms: Dict[Tuple[str, str], Transform2D] = {}

    def set_transform(self, target_frame: str, source_frame: str, transform: Transform2D):
        self._transforms[(target_frame, source_frame)] = transform

    def remove_transform(self, target_frame: str, source_frame: str):
        self._transforms.pop((target_frame, source_frame), None)

    def lookup_transform(self, target_frame: str, source_frame: str) -> Transform2D:
        if (target_frame, source_frame) in self._transforms:
            return self._transforms[(target_frame, source_frame)]
        if (source_frame, target_frame) in self._transforms:
            return self._transforms[(source_frame, target_frame)].inverse()
        raise TransformUnavailable(f"no transform from '{source_frame}' to '{target_frame}'")
