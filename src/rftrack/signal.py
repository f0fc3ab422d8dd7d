"""Signal tracking along a user-drawn frequency track.

The user marks anchor points on the spectrogram roughly following a drifting
signal. Between consecutive anchors the track is interpolated linearly in
(slice, channel) index space; every slice on the track is searched within a
band of channels around the interpolated bin, and a detector decides which
bins in that window hold a signal.

The default detector, :class:`FitTrace`, follows STRF's ``fit_trace``: take
the strongest bin and report it when it stands far enough above the rest of
the window, measured in standard deviations of linear power.

Example:
    >>> track = Track()
    >>> track.add(Point(10.0, -2000.0, Space.DATA_ABSOLUTE))
    >>> track.add(Point(50.0, 1500.0, Space.DATA_ABSOLUTE))
    >>> signals = find_signals(spectrogram, track.points, half_bandwidth=5e3)
"""

from __future__ import annotations

import bisect
import logging
from dataclasses import dataclass
from typing import Iterator, Optional, Protocol, Sequence

import numpy as np
import pandas as pd

from .coord import Point, Space
from .spectrogram import Spectrogram

logger = logging.getLogger(__name__)

DEFAULT_SIGMA = 5.0

# Relative tolerance below which a window's spread counts as zero.
_FLAT_RTOL = 1e-9


class SignalDetector(Protocol):
    """Anything that can pick signal bins out of one window of dB values."""

    def detect(self, window: np.ndarray) -> list[int]:
        """Return indices into ``window`` that hold a signal."""
        ...


@dataclass
class FitTrace:
    """Peak-over-background detector.

    The window is converted to linear power. The maximum is compared with
    the mean and population standard deviation of the remaining samples,
    and reported if ``(max - mean) / std`` exceeds ``sigma``.

    A window with no spread in its remainder has an unbounded ratio: the
    peak is reported if it stands above that constant level, and nothing is
    reported for a completely flat window.

    Attributes:
        sigma: Detection threshold in standard deviations.
    """
    sigma: float = DEFAULT_SIGMA

    def detect(self, window: np.ndarray) -> list[int]:
        if len(window) < 2:
            return []

        linear = np.power(10.0, np.asarray(window, dtype=np.float64) / 10.0)
        peak_idx = int(np.argmax(linear))
        peak = linear[peak_idx]
        rest = np.delete(linear, peak_idx)
        mean = rest.mean()
        std = rest.std()

        scale = max(abs(peak), np.finfo(np.float64).tiny)
        if std <= _FLAT_RTOL * scale:
            return [peak_idx] if peak - mean > _FLAT_RTOL * scale else []

        if (peak - mean) / std > self.sigma:
            return [peak_idx]
        return []


def _to_index(value: float, n: int) -> int:
    """Round to the nearest index and clamp into ``[0, n - 1]``."""
    return int(min(max(round(value), 0), n - 1))


def find_signals(
    spectrogram: Spectrogram,
    track_points: Sequence[Point],
    half_bandwidth: float,
    method: Optional[SignalDetector] = None,
) -> list[Point]:
    """Search for signals along a piecewise-linear track.

    Args:
        spectrogram: Spectrogram to search.
        track_points: Anchors in DATA_ABSOLUTE space; scanned in time order.
        half_bandwidth: Half width of the search band around the track (Hz).
        method: Detector to apply to each window. Defaults to ``FitTrace()``.

    Returns:
        Detected signals as DATA_ABSOLUTE points, in scan order. Fewer than
        two anchors yield no signals.
    """
    if method is None:
        method = FitTrace()
    if len(track_points) < 2:
        return []
    for p in track_points:
        if p.space is not Space.DATA_ABSOLUTE:
            raise TypeError(f"Track points must be DATA_ABSOLUTE, got {p.space.name}")

    data = spectrogram.data()
    nt, nf = data.shape
    bw = spectrogram.bandwidth
    t_scale = 1.0 / spectrogram.slice_duration
    f_scale = nf / bw
    half_bins = int(half_bandwidth * f_scale)

    # Each axis is clamped on its own, which can change the slope of a
    # segment whose anchor lies outside the data.
    anchors = sorted(
        (_to_index(p.x * t_scale, nt), _to_index((p.y + bw / 2.0) * f_scale, nf))
        for p in track_points
    )
    logger.debug("Tracking %d anchors with a window of ±%d bins", len(anchors), half_bins)

    signals: list[Point] = []
    for k, ((t0, f0), (t1, f1)) in enumerate(zip(anchors, anchors[1:])):
        slope = (f1 - f0) / (t1 - t0) if t1 != t0 else 0.0
        # Later segments skip the anchor slice their predecessor already scanned.
        first = t0 if k == 0 else t0 + 1
        for t_idx in range(first, t1 + 1):
            center = int(round(f0 + slope * (t_idx - t0)))
            lo = max(center - half_bins, 0)
            hi = min(center + half_bins, nf - 1)
            for f_idx in method.detect(data[t_idx, lo:hi + 1]):
                signals.append(
                    Point(
                        t_idx / t_scale,
                        (lo + f_idx) / f_scale - bw / 2.0,
                        Space.DATA_ABSOLUTE,
                    )
                )

    logger.info("Found %d signal points", len(signals))
    return signals


def signals_to_dataframe(signals: Sequence[Point], spectrogram: Spectrogram) -> pd.DataFrame:
    """Tabulate detections with absolute time and frequency.

    Columns: ``time_s`` (offset from start), ``utc``, ``offset_hz`` (from the
    center frequency) and ``frequency_hz``.
    """
    times = np.array([p.x for p in signals], dtype=np.float64)
    offsets = np.array([p.y for p in signals], dtype=np.float64)
    return pd.DataFrame(
        {
            "time_s": times,
            "utc": pd.Timestamp(spectrogram.start_time) + pd.to_timedelta(times, unit="s"),
            "offset_hz": offsets,
            "frequency_hz": spectrogram.center_frequency + offsets,
        }
    )


class Track:
    """Anchor points kept sorted by time.

    Adding a point at a time already on the track replaces that anchor.
    """

    def __init__(self, points: Sequence[Point] = ()) -> None:
        self._points: list[Point] = []
        for p in points:
            self.add(p)

    def __len__(self) -> int:
        return len(self._points)

    def __iter__(self) -> Iterator[Point]:
        return iter(self._points)

    def __repr__(self) -> str:
        return f"Track({self._points!r})"

    @property
    def points(self) -> tuple[Point, ...]:
        """Immutable snapshot of the anchors."""
        return tuple(self._points)

    def add(self, point: Point) -> None:
        if point.space is not Space.DATA_ABSOLUTE:
            raise TypeError(f"Track points must be DATA_ABSOLUTE, got {point.space.name}")
        times = [p.x for p in self._points]
        idx = bisect.bisect_left(times, point.x)
        if idx < len(times) and times[idx] == point.x:
            self._points[idx] = point
        else:
            self._points.insert(idx, point)
        logger.debug("Track point at (%.3f s, %.1f Hz)", point.x, point.y)

    def remove_near(self, point: Point, max_distance_s: float) -> Optional[Point]:
        """Remove the anchor closest in time to ``point``, if within range."""
        if not self._points:
            return None
        idx = min(range(len(self._points)), key=lambda i: abs(self._points[i].x - point.x))
        if abs(self._points[idx].x - point.x) > max_distance_s:
            return None
        return self._points.pop(idx)

    def clear(self) -> None:
        self._points.clear()
