"""Satellite catalogue loading and Doppler/visibility prediction.

Satellites come from a TLE file plus a transmit-frequency table. For each
satellite, :func:`predict_satellites` propagates the orbit with SGP4 over an
evenly spaced time grid and computes, against a ground site, the
Doppler-shifted downlink frequency and a zenith-angle visibility proxy.

The site is placed in the same quasi-inertial (TEME) frame as the SGP4 output
by rotating its geodetic position on the WGS72 spheroid with Greenwich Mean
Sidereal Time; its velocity follows from the sidereal rotation rate.

References:
    - Vallado, D. et al. (2006). "Revisiting Spacetrack Report #3".
    - Meeus, J. (1998). Astronomical Algorithms, ch. 12 (GMST).
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Optional, Union

import numpy as np
import pandas as pd
from sgp4.api import Satrec, jday

from .errors import LoadError, MissingFrequencyError, ParseError
from .tle import TLE, iter_records

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

# ── Constants ──

C_KM_S = 299792.458
"""Speed of light (km/s)."""

XKMPER = 6378.135
"""WGS72 equatorial radius (km), matching the SGP4 gravity model."""

FLATTENING = 1.0 / 298.26
"""WGS72 flattening."""

MJD_J2000 = 51544.5
JD_MJD_OFFSET = 2400000.5
SECONDS_PER_DAY = 86400.0

NSAMPLES = 1000
"""Default number of samples in a prediction time grid."""


# ── Ground site ──


@dataclass(frozen=True)
class Site:
    """Ground station location.

    Attributes:
        latitude: Geodetic latitude (radians).
        longitude: East longitude (radians).
        altitude: Height above the spheroid (km).
    """
    latitude: float
    longitude: float
    altitude: float

    @classmethod
    def from_degrees(cls, latitude: float, longitude: float, altitude_m: float = 0.0) -> Site:
        return cls(math.radians(latitude), math.radians(longitude), altitude_m / 1000.0)

    def position_velocity(self, mjd: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        """Site position (km) and velocity (km/s) in the TEME frame.

        Args:
            mjd: Modified Julian Dates (UT), shape (n,).

        Returns:
            Position and velocity arrays of shape (n, 3).
        """
        mjd = np.asarray(mjd, dtype=np.float64)
        s, c = math.sin(self.latitude), math.cos(self.latitude)
        ff = math.sqrt(1.0 - FLATTENING * (2.0 - FLATTENING) * s * s)
        gc = 1.0 / ff + self.altitude / XKMPER
        gs = (1.0 - FLATTENING) ** 2 / ff + self.altitude / XKMPER

        theta = np.radians(gmst(mjd)) + self.longitude
        pos = np.stack(
            [
                gc * c * np.cos(theta) * XKMPER,
                gc * c * np.sin(theta) * XKMPER,
                np.full_like(theta, gs * s * XKMPER),
            ],
            axis=-1,
        )

        omega = np.radians(gmst_rate(mjd)) / SECONDS_PER_DAY
        vel = np.stack(
            [-omega * pos[:, 1], omega * pos[:, 0], np.zeros_like(omega)],
            axis=-1,
        )
        return pos, vel


def gmst(mjd: np.ndarray) -> np.ndarray:
    """Greenwich Mean Sidereal Time (degrees, in [0, 360))."""
    d = np.asarray(mjd, dtype=np.float64) - MJD_J2000
    t = d / 36525.0
    return np.mod(280.46061837 + 360.98564736629 * d + t * t * (0.000387933 - t / 38710000.0), 360.0)


def gmst_rate(mjd: np.ndarray) -> np.ndarray:
    """Time derivative of GMST (degrees per day), including the secular term."""
    t = (np.asarray(mjd, dtype=np.float64) - MJD_J2000) / 36525.0
    return 360.98564736629 + t * (2.0 * 0.000387933 - 3.0 * t / 38710000.0) / 36525.0


def julian_date(dt: datetime) -> tuple[float, float]:
    """Split Julian Date ``(jd, fraction)`` of a UTC datetime, as SGP4 expects."""
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc)
    return jday(
        dt.year, dt.month, dt.day, dt.hour, dt.minute,
        dt.second + dt.microsecond / 1e6,
    )


# ── Satellites ──


@dataclass(frozen=True, eq=False)
class Satellite:
    """A trackable satellite: elements, SGP4 record and downlink frequency.

    Attributes:
        tle: Parsed element set.
        satrec: SGP4 propagation record derived from the element set.
        tx_freq: Downlink transmit frequency (Hz).
    """
    tle: TLE
    satrec: Satrec = field(repr=False)
    tx_freq: float

    @property
    def norad_id(self) -> int:
        return self.tle.norad_id

    @property
    def name(self) -> Optional[str]:
        return self.tle.name

    @classmethod
    def from_lines(
        cls,
        line1: str,
        line2: str,
        tx_freq: float,
        name: Optional[str] = None,
    ) -> Satellite:
        """Parse an element set and derive its SGP4 record.

        Raises:
            ParseError: If the lines are malformed or SGP4 rejects them.
        """
        tle = TLE.parse(line1, line2, name=name)
        return cls.from_tle(tle, tx_freq)

    @classmethod
    def from_tle(cls, tle: TLE, tx_freq: float) -> Satellite:
        """Derive the SGP4 record for an already parsed element set."""
        try:
            satrec = Satrec.twoline2rv(tle.line1, tle.line2)
        except ValueError as exc:
            raise ParseError(f"Failed to parse TLE for NORAD {tle.norad_id}: {exc}") from exc
        if satrec.error:
            raise ParseError(
                f"Failed to derive SGP4 constants for NORAD {tle.norad_id} "
                f"(error code {satrec.error})"
            )
        return cls(tle=tle, satrec=satrec, tx_freq=tx_freq)


def load_frequencies(path: PathLike) -> dict[int, float]:
    """Load a ``<norad_id> <frequency_MHz>`` table.

    Blank lines and ``#`` comments are skipped.

    Returns:
        Mapping of NORAD ID to frequency in Hz.

    Raises:
        LoadError: If the file cannot be read.
        ParseError: On any malformed line.
    """
    text = _read_text(path)
    frequencies: dict[int, float] = {}

    for lineno, line in enumerate(text.splitlines(), 1):
        content = line.split("#", 1)[0].strip()
        if not content:
            continue
        fields = content.split()
        if len(fields) != 2:
            raise ParseError(f"{path}:{lineno}: expected '<norad_id> <MHz>', got {line!r}")
        try:
            norad_id = int(fields[0])
            freq_hz = float(fields[1]) * 1e6
        except ValueError as exc:
            raise ParseError(f"{path}:{lineno}: {exc}") from exc
        if norad_id in frequencies:
            logger.warning("%s:%d: duplicate entry for NORAD %d", path, lineno, norad_id)
        frequencies[norad_id] = freq_hz

    logger.info("Loaded frequencies for %d satellites", len(frequencies))
    return frequencies


def load_tles(path: PathLike, frequencies: dict[int, float]) -> list[Satellite]:
    """Load 2- or 3-line TLEs and attach transmit frequencies.

    Raises:
        LoadError: If the file cannot be read.
        ParseError: On malformed records.
        MissingFrequencyError: If a satellite has no frequency entry.
    """
    satellites: list[Satellite] = []
    for title, line1, line2 in iter_records(_read_text(path).splitlines()):
        tle = TLE.parse(line1, line2, name=title)
        if tle.norad_id not in frequencies:
            raise MissingFrequencyError(tle.norad_id)
        satellites.append(Satellite.from_tle(tle, frequencies[tle.norad_id]))

    logger.info("Loaded %d satellites", len(satellites))
    return satellites


def satellites_to_dataframe(satellites: Iterable[Satellite]) -> pd.DataFrame:
    """Catalogue summary, one row per satellite."""
    return pd.DataFrame(
        [
            {
                "norad_id": s.norad_id,
                "name": s.name,
                "epoch": s.tle.epoch,
                "tx_freq_mhz": s.tx_freq / 1e6,
                "altitude_km": round(s.tle.altitude, 1),
                "inclination_deg": s.tle.inclination,
                "period_min": round(s.tle.period / 60.0, 2),
            }
            for s in satellites
        ],
        columns=[
            "norad_id", "name", "epoch", "tx_freq_mhz",
            "altitude_km", "inclination_deg", "period_min",
        ],
    )


def _read_text(path: PathLike) -> str:
    try:
        return Path(path).read_text()
    except OSError as exc:
        raise LoadError(f"Failed to read {path}: {exc}") from exc


# ── Predictions ──


@dataclass(frozen=True, eq=False)
class SatPrediction:
    """Per-satellite series over the prediction grid.

    Attributes:
        frequency: Doppler-shifted downlink frequency (Hz); NaN where
            propagation failed.
        zenith_angle: Zenith-angle proxy (radians); NaN where propagation
            failed.
    """
    frequency: np.ndarray
    zenith_angle: np.ndarray

    def visible(self) -> np.ndarray:
        """Boolean mask of samples above the horizon."""
        with np.errstate(invalid="ignore"):
            return self.zenith_angle < math.pi / 2.0


@dataclass(frozen=True, eq=False)
class Predictions:
    """Prediction result for a satellite set over one time grid.

    Attributes:
        start_time: Absolute time of ``times[0]``.
        times: Sample offsets from ``start_time`` (s).
        satellites: NORAD ID → series.
    """
    start_time: datetime
    times: np.ndarray
    satellites: dict[int, SatPrediction]

    def for_id(self, norad_id: int) -> Optional[SatPrediction]:
        return self.satellites.get(norad_id)

    def to_dataframe(self) -> pd.DataFrame:
        """Long-format table: one row per satellite and sample."""
        utc = pd.Timestamp(self.start_time) + pd.to_timedelta(self.times, unit="s")
        frames = [
            pd.DataFrame(
                {
                    "norad_id": norad_id,
                    "time_s": self.times,
                    "utc": utc,
                    "frequency_hz": pred.frequency,
                    "zenith_deg": np.degrees(pred.zenith_angle),
                }
            )
            for norad_id, pred in self.satellites.items()
        ]
        if not frames:
            return pd.DataFrame(columns=["norad_id", "time_s", "utc", "frequency_hz", "zenith_deg"])
        return pd.concat(frames, ignore_index=True)

    def summary(self) -> pd.DataFrame:
        """Closest approach per satellite: minimum zenith angle and its time.

        Satellites that never rise above the horizon are omitted.
        """
        rows = []
        for norad_id, pred in self.satellites.items():
            visible = pred.visible()
            if not visible.any():
                continue
            idx = int(np.nanargmin(pred.zenith_angle))
            rows.append(
                {
                    "norad_id": norad_id,
                    "tca_s": float(self.times[idx]),
                    "min_zenith_deg": float(np.degrees(pred.zenith_angle[idx])),
                    "freq_at_tca_hz": float(pred.frequency[idx]),
                    "visible_s": float(visible.sum() * _grid_step(self.times)),
                }
            )
        df = pd.DataFrame(
            rows,
            columns=["norad_id", "tca_s", "min_zenith_deg", "freq_at_tca_hz", "visible_s"],
        )
        return df.sort_values("tca_s").reset_index(drop=True)


def _grid_step(times: np.ndarray) -> float:
    return float(times[1] - times[0]) if len(times) > 1 else 0.0


def doppler_geometry(
    sat_pos: np.ndarray,
    sat_vel: np.ndarray,
    site_pos: np.ndarray,
    site_vel: np.ndarray,
    tx_freq: float,
) -> tuple[np.ndarray, np.ndarray]:
    """Doppler-shifted frequency and zenith angle for matched (n, 3) vectors.

    Returns:
        ``(frequency_hz, zenith_angle_rad)``, each shape (n,).
    """
    los = sat_pos - site_pos
    with np.errstate(invalid="ignore", divide="ignore"):
        rng = np.linalg.norm(los, axis=-1)
        range_rate = np.sum((sat_vel - site_vel) * los, axis=-1) / rng
        frequency = (1.0 - range_rate / C_KM_S) * tx_freq
        cos_za = np.sum(los * site_pos, axis=-1) / (rng * XKMPER)
    return frequency, np.arccos(np.clip(cos_za, -1.0, 1.0))


def predict_satellites(
    satellites: Iterable[Satellite],
    start_time: datetime,
    duration_s: float,
    site: Site,
    nsamples: int = NSAMPLES,
) -> Predictions:
    """Predict Doppler frequency and zenith angle over a time window.

    Args:
        satellites: Satellites to predict.
        start_time: Start of the window (UTC).
        duration_s: Window length (s).
        site: Ground station.
        nsamples: Number of evenly spaced samples over ``[0, duration_s]``.

    Returns:
        A new ``Predictions``. Samples where SGP4 fails (e.g. decayed
        orbits) are NaN; they never abort the batch.
    """
    times = np.linspace(0.0, duration_s, nsamples)
    jd0, fr0 = julian_date(start_time)
    jd = np.full(nsamples, jd0)
    fr = fr0 + times / SECONDS_PER_DAY

    site_pos, site_vel = site.position_velocity(jd + fr - JD_MJD_OFFSET)

    results: dict[int, SatPrediction] = {}
    for sat in satellites:
        err, r, v = sat.satrec.sgp4_array(jd, fr)
        r = np.array(r, dtype=np.float64)
        v = np.array(v, dtype=np.float64)
        failed = np.asarray(err) != 0
        if failed.any():
            logger.warning(
                "SGP4 failed for NORAD %d at %d of %d samples",
                sat.norad_id, int(failed.sum()), nsamples,
            )
            r[failed] = np.nan
            v[failed] = np.nan

        frequency, zenith = doppler_geometry(r, v, site_pos, site_vel, sat.tx_freq)
        results[sat.norad_id] = SatPrediction(frequency=frequency, zenith_angle=zenith)

    logger.debug("Predicted %d satellites over %.1f s", len(results), duration_s)
    return Predictions(start_time=start_time, times=times, satellites=results)
