"""Pan/zoom state of the spectrogram plot.

The visible window is a DATA_NORMALIZED rectangle described by a center and
a per-axis log₂ zoom factor: a zoom of ``z`` shows ``2**-z`` of the data
extent along that axis. Every operation finishes by snapping the window back
inside the unit square, moving the center and never the size.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from .coord import Point, Rectangle, Size, Space, Transform, Vector, plot_area_to_data_normalized

logger = logging.getLogger(__name__)

ZOOM_MIN = 0.0
ZOOM_MAX = 8.0
ZOOM_WHEEL_SCALE = 0.2
"""Zoom levels per unit of scroll-wheel delta."""

SIGMA_MIN = 0.1
SIGMA_MAX = 20.0

TRACK_BW_MIN = 1e3
TRACK_BW_MAX = 100e3


def _clamp(value: float, lo: float, hi: float) -> float:
    return min(max(value, lo), hi)


@dataclass
class ViewControls:
    """Interactive plot state: view window, power range and tracker settings.

    Attributes:
        zoom_x: log₂ zoom along time.
        zoom_y: log₂ zoom along frequency.
        center: View-window center (DATA_NORMALIZED).
        power_bounds: Full power range of the loaded spectrogram (dB).
        power_range: Power range currently mapped to the colour scale (dB).
        signal_sigma: Detection threshold for the signal tracker.
        track_bw: Full width of the band searched around the track (Hz).
    """
    zoom_x: float = ZOOM_MIN
    zoom_y: float = ZOOM_MIN
    center: Point = field(default_factory=lambda: Point(0.5, 0.5, Space.DATA_NORMALIZED))
    power_bounds: tuple[float, float] = (0.0, 0.0)
    power_range: tuple[float, float] = (0.0, 0.0)
    signal_sigma: float = 5.0
    track_bw: float = 10e3

    # ── View window ──

    def size(self) -> Size:
        return Size(2.0 ** -self.zoom_x, 2.0 ** -self.zoom_y, Space.DATA_NORMALIZED)

    def bounds(self) -> Rectangle:
        """The visible window in DATA_NORMALIZED space."""
        size = self.size()
        return Rectangle(
            self.center.x - size.width / 2.0,
            self.center.y - size.height / 2.0,
            size.width,
            size.height,
            Space.DATA_NORMALIZED,
        )

    def data_normalized(self) -> Transform:
        """PLOT_AREA → DATA_NORMALIZED for the current window."""
        return plot_area_to_data_normalized(self.bounds())

    def pan(self, delta: Vector) -> None:
        """Drag the view by a PLOT_AREA displacement."""
        self.center = self.center - self.data_normalized()(delta)
        self._snap_to_bounds()

    def zoom(self, plot_pos: Point, delta: float, axis: Optional[str] = None) -> None:
        """Zoom around ``plot_pos`` so the data under the cursor stays put.

        Args:
            plot_pos: Cursor position in PLOT_AREA space.
            delta: Scroll-wheel delta; positive zooms in.
            axis: ``"x"`` or ``"y"`` to zoom a single axis, ``None`` for both.
        """
        if axis not in (None, "x", "y"):
            raise ValueError(f"axis must be 'x', 'y' or None, got {axis!r}")
        delta *= ZOOM_WHEEL_SCALE

        before = self.data_normalized()(plot_pos)
        if axis in (None, "x"):
            self.zoom_x = _clamp(self.zoom_x + delta, ZOOM_MIN, ZOOM_MAX)
        if axis in (None, "y"):
            self.zoom_y = _clamp(self.zoom_y + delta, ZOOM_MIN, ZOOM_MAX)
        after = self.data_normalized()(plot_pos)

        # An axis whose zoom did not change maps identically, so its shift is 0.
        self.center = self.center + (before - after)
        self._snap_to_bounds()

    def set_zoom(self, x: Optional[float] = None, y: Optional[float] = None) -> None:
        """Set absolute zoom levels (slider input), keeping the center."""
        if x is not None:
            self.zoom_x = _clamp(x, ZOOM_MIN, ZOOM_MAX)
        if y is not None:
            self.zoom_y = _clamp(y, ZOOM_MIN, ZOOM_MAX)
        self._snap_to_bounds()

    def reset(self) -> None:
        self.zoom_x = ZOOM_MIN
        self.zoom_y = ZOOM_MIN
        self.center = Point(0.5, 0.5, Space.DATA_NORMALIZED)

    def _snap_to_bounds(self) -> None:
        """Keep the view window inside [0, 1] on both axes."""
        b = self.bounds()
        dx = _snap_offset(b.x, b.width)
        dy = _snap_offset(b.y, b.height)
        if dx or dy:
            logger.debug("Snapping view by (%.4f, %.4f)", dx, dy)
            self.center = self.center + Vector(dx, dy, Space.DATA_NORMALIZED)

    # ── Display and tracker settings ──

    def set_power_bounds(self, bounds: tuple[float, float]) -> None:
        """Install the power bounds of a newly loaded spectrogram."""
        self.power_bounds = bounds
        if self.power_range == (0.0, 0.0):
            self.power_range = bounds
        else:
            self.power_range = (
                _clamp(self.power_range[0], *bounds),
                _clamp(self.power_range[1], *bounds),
            )

    def set_min_power(self, value: float) -> None:
        value = _clamp(value, *self.power_bounds)
        self.power_range = (min(value, self.power_range[1]), self.power_range[1])

    def set_max_power(self, value: float) -> None:
        value = _clamp(value, *self.power_bounds)
        self.power_range = (self.power_range[0], max(value, self.power_range[0]))

    def set_signal_sigma(self, sigma: float) -> None:
        self.signal_sigma = _clamp(sigma, SIGMA_MIN, SIGMA_MAX)

    def set_track_bw(self, bw: float) -> None:
        self.track_bw = _clamp(bw, TRACK_BW_MIN, TRACK_BW_MAX)


def _snap_offset(start: float, length: float) -> float:
    if start < 0.0:
        return -start
    if start + length > 1.0:
        return 1.0 - (start + length)
    return 0.0
