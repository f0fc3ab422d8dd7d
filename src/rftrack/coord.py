"""Coordinate spaces and the affine transforms between them.

The plot works with four 2D coordinate systems:

    SCREEN:           device pixels, origin top-left, y grows downward.
    PLOT_AREA:        [0, 1]² over the drawable plot region, origin bottom-left.
    DATA_NORMALIZED:  [0, 1]² over the full data extent; the visible view
                      window is a rectangle in this space.
    DATA_ABSOLUTE:    seconds since spectrogram start (x) and Hz offset from
                      the center frequency (y).

Points, vectors, sizes and rectangles carry their space as a tag, and any
arithmetic that mixes two spaces raises ``TypeError``. A ``Transform`` maps
one space to another with a 3×3 homogeneous affine matrix; transforms
compose with ``then`` and invert with ``inverse``.

Example:
    >>> frame = Frame(view=full_view(), data_bounds=bounds, screen_size=size)
    >>> to_data = frame.transform(Space.SCREEN, Space.DATA_ABSOLUTE)
    >>> to_data(Point(320.0, 240.0, Space.SCREEN))
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import Optional, Union

import numpy as np


class Space(Enum):
    """The four coordinate systems, ordered from device to data."""
    SCREEN = auto()
    PLOT_AREA = auto()
    DATA_NORMALIZED = auto()
    DATA_ABSOLUTE = auto()


# Elementary transforms exist between neighbours in this chain.
_CHAIN = (Space.SCREEN, Space.PLOT_AREA, Space.DATA_NORMALIZED, Space.DATA_ABSOLUTE)


def _require_same(a: Space, b: Space) -> None:
    if a is not b:
        raise TypeError(f"Cannot combine {a.name} and {b.name} coordinates")


@dataclass(frozen=True, slots=True)
class Vector:
    """A displacement in one coordinate space."""
    x: float
    y: float
    space: Space

    def __add__(self, other: Vector) -> Vector:
        if not isinstance(other, Vector):
            return NotImplemented
        _require_same(self.space, other.space)
        return Vector(self.x + other.x, self.y + other.y, self.space)

    def __sub__(self, other: Vector) -> Vector:
        if not isinstance(other, Vector):
            return NotImplemented
        _require_same(self.space, other.space)
        return Vector(self.x - other.x, self.y - other.y, self.space)

    def __mul__(self, factor: float) -> Vector:
        return Vector(self.x * factor, self.y * factor, self.space)

    __rmul__ = __mul__

    def __neg__(self) -> Vector:
        return Vector(-self.x, -self.y, self.space)


@dataclass(frozen=True, slots=True)
class Point:
    """A position in one coordinate space."""
    x: float
    y: float
    space: Space

    def __add__(self, other: Vector) -> Point:
        if not isinstance(other, Vector):
            return NotImplemented
        _require_same(self.space, other.space)
        return Point(self.x + other.x, self.y + other.y, self.space)

    def __sub__(self, other: Union[Point, Vector]) -> Union[Point, Vector]:
        if isinstance(other, Point):
            _require_same(self.space, other.space)
            return Vector(self.x - other.x, self.y - other.y, self.space)
        if isinstance(other, Vector):
            _require_same(self.space, other.space)
            return Point(self.x - other.x, self.y - other.y, self.space)
        return NotImplemented

    def as_tuple(self) -> tuple[float, float]:
        return (self.x, self.y)


@dataclass(frozen=True, slots=True)
class Size:
    """Width and height in one coordinate space (may be negative after a flip)."""
    width: float
    height: float
    space: Space


@dataclass(frozen=True, slots=True)
class Rectangle:
    """Axis-aligned rectangle given by its origin corner and size."""
    x: float
    y: float
    width: float
    height: float
    space: Space

    @classmethod
    def from_origin(cls, origin: Point, size: Size) -> Rectangle:
        _require_same(origin.space, size.space)
        return cls(origin.x, origin.y, size.width, size.height, origin.space)

    @property
    def origin(self) -> Point:
        return Point(self.x, self.y, self.space)

    @property
    def size(self) -> Size:
        return Size(self.width, self.height, self.space)

    @property
    def center(self) -> Point:
        return Point(self.x + self.width / 2.0, self.y + self.height / 2.0, self.space)

    def x_range(self) -> tuple[float, float]:
        """(min, max) along x, regardless of the sign of ``width``."""
        return tuple(sorted((self.x, self.x + self.width)))

    def y_range(self) -> tuple[float, float]:
        """(min, max) along y, regardless of the sign of ``height``."""
        return tuple(sorted((self.y, self.y + self.height)))

    def contains(self, point: Point) -> bool:
        _require_same(self.space, point.space)
        x0, x1 = self.x_range()
        y0, y1 = self.y_range()
        return x0 <= point.x <= x1 and y0 <= point.y <= y1


Coordinate = Union[Point, Vector, Size, Rectangle]


@dataclass(frozen=True, eq=False)
class Transform:
    """Affine map from ``source`` to ``target`` space.

    Attributes:
        source: Space the transform accepts.
        target: Space the transform produces.
        matrix: 3×3 homogeneous matrix (row-major, column vectors).
    """
    source: Space
    target: Space
    matrix: np.ndarray

    @classmethod
    def affine(
        cls,
        source: Space,
        target: Space,
        scale: tuple[float, float],
        offset: tuple[float, float],
    ) -> Transform:
        """Build ``p' = scale * p + offset`` (per axis)."""
        matrix = np.array(
            [
                [scale[0], 0.0, offset[0]],
                [0.0, scale[1], offset[1]],
                [0.0, 0.0, 1.0],
            ],
            dtype=np.float64,
        )
        return cls(source, target, matrix)

    @classmethod
    def identity(cls, space: Space) -> Transform:
        return cls(space, space, np.eye(3))

    def then(self, other: Transform) -> Transform:
        """Compose ``self`` (A→B) with ``other`` (B→C) into A→C."""
        _require_same(self.target, other.source)
        return Transform(self.source, other.target, other.matrix @ self.matrix)

    def inverse(self) -> Transform:
        """The B→A transform. Raises ``numpy.linalg.LinAlgError`` if singular."""
        return Transform(self.target, self.source, np.linalg.inv(self.matrix))

    def _apply(self, x: float, y: float, w: float) -> tuple[float, float]:
        rx, ry, _ = self.matrix @ np.array([x, y, w])
        return float(rx), float(ry)

    def __call__(self, value: Coordinate) -> Coordinate:
        _require_same(self.source, value.space)
        if isinstance(value, Point):
            return Point(*self._apply(value.x, value.y, 1.0), self.target)
        if isinstance(value, Vector):
            return Vector(*self._apply(value.x, value.y, 0.0), self.target)
        if isinstance(value, Size):
            return Size(*self._apply(value.width, value.height, 0.0), self.target)
        if isinstance(value, Rectangle):
            return Rectangle.from_origin(self(value.origin), self(value.size))
        raise TypeError(f"Cannot transform {type(value).__name__}")

    def __repr__(self) -> str:
        return f"Transform({self.source.name} -> {self.target.name})"


# Elementary transforms

def screen_to_plot_area(size: Size) -> Transform:
    """Divide by the widget size and flip y (screen y grows downward)."""
    _require_same(size.space, Space.SCREEN)
    return Transform.affine(
        Space.SCREEN,
        Space.PLOT_AREA,
        scale=(1.0 / size.width, -1.0 / size.height),
        offset=(0.0, 1.0),
    )


def plot_area_to_data_normalized(view: Rectangle) -> Transform:
    """Map the plot area onto the view window (a DATA_NORMALIZED rectangle)."""
    _require_same(view.space, Space.DATA_NORMALIZED)
    return Transform.affine(
        Space.PLOT_AREA,
        Space.DATA_NORMALIZED,
        scale=(view.width, view.height),
        offset=(view.x, view.y),
    )


def data_normalized_to_data_absolute(bounds: Rectangle) -> Transform:
    """Map the unit square onto the spectrogram's absolute bounds."""
    _require_same(bounds.space, Space.DATA_ABSOLUTE)
    return Transform.affine(
        Space.DATA_NORMALIZED,
        Space.DATA_ABSOLUTE,
        scale=(bounds.width, bounds.height),
        offset=(bounds.x, bounds.y),
    )


def full_view() -> Rectangle:
    """The unit square in DATA_NORMALIZED space (nothing zoomed)."""
    return Rectangle(0.0, 0.0, 1.0, 1.0, Space.DATA_NORMALIZED)


@dataclass(frozen=True)
class Frame:
    """Everything needed to build a transform between any two spaces.

    Attributes:
        view: Currently visible window, in DATA_NORMALIZED space.
        data_bounds: Spectrogram extent, in DATA_ABSOLUTE space.
        screen_size: Widget size in pixels. Only needed for transforms
            that touch SCREEN space.
    """
    view: Rectangle
    data_bounds: Rectangle
    screen_size: Optional[Size] = None

    def _elementary(self, source: Space) -> Transform:
        if source is Space.SCREEN:
            if self.screen_size is None:
                raise ValueError("Screen size is required for SCREEN transforms")
            return screen_to_plot_area(self.screen_size)
        if source is Space.PLOT_AREA:
            return plot_area_to_data_normalized(self.view)
        if source is Space.DATA_NORMALIZED:
            return data_normalized_to_data_absolute(self.data_bounds)
        raise ValueError(f"No elementary transform starts at {source.name}")

    def transform(self, source: Space, target: Space) -> Transform:
        """Compose the elementary transforms from ``source`` to ``target``."""
        if source is target:
            return Transform.identity(source)

        i, j = _CHAIN.index(source), _CHAIN.index(target)
        if i > j:
            return self.transform(target, source).inverse()

        result = self._elementary(_CHAIN[i])
        for space in _CHAIN[i + 1:j]:
            result = result.then(self._elementary(space))
        return result
