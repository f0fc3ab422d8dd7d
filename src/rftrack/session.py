"""Analysis session tying the spectrogram, view, track and satellites together.

A :class:`Session` holds the state a viewer front end works on: the loaded
spectrogram, the view controls, the user's track, the satellite catalogue
with per-satellite active flags, and the latest detection and prediction
results. Detection and prediction are dispatched to a :class:`TaskRunner`
with snapshots of their inputs; results are installed with :meth:`apply`,
which keeps only the newest result of each kind.

Example:
    >>> session = Session(site=Site.from_degrees(52.0, 4.4, 10.0))
    >>> session.load_spectrogram(["obs_000000.bin", "obs_000001.bin"])
    >>> session.add_track_point(Point(12.0, -800.0, Space.DATA_ABSOLUTE))
    >>> session.add_track_point(Point(95.0, 1200.0, Space.DATA_ABSOLUTE))
    >>> session.apply(session.request_signals().result())
    >>> session.signals
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future
from typing import Iterable, Optional, Sequence

from .coord import Point
from .orbit import Predictions, Satellite, Site, load_frequencies, load_tles, predict_satellites
from .signal import FitTrace, Track, find_signals
from .spectrogram import PathLike, Spectrogram, load
from .view import ViewControls
from .worker import PREDICTIONS, SIGNALS, TaskResult, TaskRunner

logger = logging.getLogger(__name__)


class Session:
    """Mutable analysis state for one spectrogram."""

    def __init__(
        self,
        site: Optional[Site] = None,
        controls: Optional[ViewControls] = None,
        runner: Optional[TaskRunner] = None,
    ):
        self.site = site
        self.controls = controls or ViewControls()
        self.runner = runner or TaskRunner()
        self.spectrogram: Optional[Spectrogram] = None
        self.track = Track()
        self.signals: list[Point] = []
        self.predictions: Optional[Predictions] = None
        self._satellites: dict[int, Satellite] = {}
        self._active: set[int] = set()
        self._applied: dict[str, int] = {}
        self._lock = threading.Lock()

    # ── Spectrogram ──

    def load_spectrogram(self, paths: Sequence[PathLike]) -> Spectrogram:
        """Load and install a spectrogram from one or more files."""
        spectrogram = load(paths)
        self.set_spectrogram(spectrogram)
        return spectrogram

    def set_spectrogram(self, spectrogram: Spectrogram) -> None:
        """Install a spectrogram; clears track, signals and predictions."""
        self.spectrogram = spectrogram
        self.track.clear()
        self.signals = []
        self.predictions = None
        self.controls.reset()
        self._supersede(SIGNALS, PREDICTIONS)
        self.controls.set_power_bounds(spectrogram.power_bounds)
        logger.info("Loaded %r", spectrogram)

    # ── Satellites ──

    def load_satellites(self, tle_path: PathLike, freq_path: PathLike) -> list[Satellite]:
        """Load a TLE file and frequency table; new satellites start active."""
        satellites = load_tles(tle_path, load_frequencies(freq_path))
        self.add_satellites(satellites)
        return satellites

    def add_satellites(self, satellites: Iterable[Satellite]) -> None:
        for sat in satellites:
            if sat.norad_id not in self._satellites:
                self._active.add(sat.norad_id)
            self._satellites[sat.norad_id] = sat

    @property
    def satellites(self) -> list[Satellite]:
        return list(self._satellites.values())

    def is_active(self, norad_id: int) -> bool:
        return norad_id in self._active

    def set_active(self, norad_id: int, active: bool = True) -> None:
        if norad_id not in self._satellites:
            raise KeyError(f"Unknown satellite: NORAD {norad_id}")
        if active:
            self._active.add(norad_id)
        else:
            self._active.discard(norad_id)

    def toggle(self, norad_id: int) -> bool:
        """Flip a satellite's active flag and return the new state."""
        self.set_active(norad_id, not self.is_active(norad_id))
        return self.is_active(norad_id)

    def active_satellites(self) -> list[Satellite]:
        return [s for n, s in self._satellites.items() if n in self._active]

    # ── Track ──

    def add_track_point(self, point: Point) -> None:
        self.track.add(point)

    def clear_track(self) -> None:
        self.track.clear()
        self.signals = []
        self._supersede(SIGNALS)

    # ── Background requests ──

    def request_signals(self) -> Optional[Future]:
        """Dispatch signal detection along the current track.

        Returns ``None`` when there is no spectrogram or fewer than two
        track points.
        """
        if self.spectrogram is None:
            logger.error("No spectrogram loaded, cannot find signals")
            return None
        if len(self.track) < 2:
            return None

        return self.runner.submit(
            SIGNALS,
            find_signals,
            self.spectrogram,
            self.track.points,
            self.controls.track_bw / 2.0,
            FitTrace(sigma=self.controls.signal_sigma),
        )

    def request_predictions(self) -> Optional[Future]:
        """Dispatch pass prediction for active satellites over the spectrogram.

        Returns ``None`` when there is no spectrogram, no site configured or
        no active satellite.
        """
        if self.spectrogram is None:
            logger.debug("No spectrogram loaded, skipping pass predictions")
            return None
        if self.site is None:
            logger.debug("No site configured, skipping pass predictions")
            return None
        satellites = self.active_satellites()
        if not satellites:
            return None

        logger.debug("Predicting %d satellites", len(satellites))
        return self.runner.submit(
            PREDICTIONS,
            predict_satellites,
            satellites,
            self.spectrogram.start_time,
            self.spectrogram.length().total_seconds(),
            self.site,
        )

    def _supersede(self, *kinds: str) -> None:
        # Results of requests issued before this point no longer match the state.
        with self._lock:
            for kind in kinds:
                self._applied[kind] = max(self._applied.get(kind, 0), self.runner.current(kind))

    def apply(self, result: TaskResult) -> bool:
        """Install a task result unless a newer one of its kind was applied.

        Returns:
            True if the result was installed.
        """
        if result.kind not in (SIGNALS, PREDICTIONS):
            raise ValueError(f"Unknown task kind: {result.kind!r}")

        with self._lock:
            if result.generation <= self._applied.get(result.kind, 0):
                logger.warning(
                    "Discarding superseded %s result #%d", result.kind, result.generation
                )
                return False
            self._applied[result.kind] = result.generation

        if result.kind == SIGNALS:
            self.signals = result.value
        else:
            self.predictions = result.value
        return True

    def close(self) -> None:
        self.runner.shutdown()
