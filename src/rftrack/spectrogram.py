"""Spectrogram loading, validation and concatenation.

Reads the STRF spectrogram format: a file is a sequence of records, each a
256-byte ASCII header followed by ``nchan`` little-endian float32 samples of
linear power. Headers look like::

    HEADER
    UTC_START    2024-03-01T12:00:00.000
    FREQ         437500000.000000 Hz
    BW           50000.000000 Hz
    LENGTH       1.000000 s
    NCHAN        4096
    NSUB         60
    END

padded with NUL bytes. Samples are converted to decibels on load.

Multiple files are read concurrently and concatenated in the given order;
parameters must match and segments must be contiguous in time.
"""

from __future__ import annotations

import logging
import re
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional, Sequence, Union

import numpy as np
from scipy.ndimage import median_filter

from .coord import Rectangle, Space
from .errors import ConsistencyError, LoadError, ParseError

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

HEADER_SIZE = 256
"""Size of the ASCII header preceding every data block (bytes)."""

TIME_TOLERANCE = timedelta(milliseconds=10)
"""Allowed timestamp jitter between consecutive slices or files."""

POWER_FLOOR = 1e-12
"""Added to linear power before taking the logarithm."""

_HEADER_RE = re.compile(
    r"HEADER\s+UTC_START\s+(?P<start>\S+)"
    r"\s+FREQ\s+(?P<freq>[0-9.]+)\s+Hz"
    r"\s+BW\s+(?P<bw>[0-9.]+)\s+Hz"
    r"\s+LENGTH\s+(?P<length>[0-9.]+)\s+s"
    r"\s+NCHAN\s+(?P<nchan>\d+)"
    r"(?:\s+NSUB\s+(?P<nsub>\d+))?"
    r"\s+END"
)


@dataclass(frozen=True)
class Header:
    """Metadata block preceding each slice in a spectrogram file."""
    start_time: datetime
    freq: float
    bw: float
    length: float
    nchan: int
    nsub: Optional[int] = None

    @classmethod
    def parse(cls, raw: bytes) -> Header:
        """Parse a raw 256-byte header block.

        Raises:
            ParseError: If the text does not match the header format.
        """
        try:
            text = raw.decode("ascii").rstrip("\0").strip()
        except UnicodeDecodeError as exc:
            raise ParseError(f"Header is not ASCII: {exc}") from exc

        m = _HEADER_RE.fullmatch(text)
        if m is None:
            raise ParseError(f"Incorrect header format: {text[:80]!r}")

        try:
            start = datetime.fromisoformat(m["start"])
        except ValueError as exc:
            raise ParseError(f"Invalid start time: {m['start']}") from exc
        if start.tzinfo is not None:
            raise ParseError(f"Start time must not carry a timezone: {m['start']}")

        try:
            return cls(
                start_time=start.replace(tzinfo=timezone.utc),
                freq=float(m["freq"]),
                bw=float(m["bw"]),
                length=float(m["length"]),
                nchan=int(m["nchan"]),
                nsub=int(m["nsub"]) if m["nsub"] else None,
            )
        except ValueError as exc:
            raise ParseError(f"Invalid numeric field in header: {exc}") from exc

    def same_params(self, other: Header) -> bool:
        return (
            self.freq == other.freq
            and self.bw == other.bw
            and self.nchan == other.nchan
        )

    def nth_following(self, n: int) -> datetime:
        """Expected start time of the ``n``-th slice after this header."""
        return self.start_time + timedelta(seconds=self.length * n)

    def render(self, start_time: datetime) -> bytes:
        """Serialize a header for a slice starting at ``start_time``."""
        stamp = start_time.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3]
        lines = [
            "HEADER",
            f"UTC_START    {stamp}",
            f"FREQ         {_fmt(self.freq)} Hz",
            f"BW           {_fmt(self.bw)} Hz",
            f"LENGTH       {_fmt(self.length)} s",
            f"NCHAN        {self.nchan}",
        ]
        if self.nsub is not None:
            lines.append(f"NSUB         {self.nsub}")
        lines.append("END")
        text = ("\n".join(lines) + "\n").encode("ascii")
        if len(text) > HEADER_SIZE:
            raise ValueError(f"Header exceeds {HEADER_SIZE} bytes")
        return text.ljust(HEADER_SIZE, b"\0")


def _fmt(value: float) -> str:
    return np.format_float_positional(value, trim="-")


class Spectrogram:
    """Immutable time × frequency power matrix with its metadata.

    Attributes:
        start_time: UTC start of the first slice.
        center_frequency: Center frequency (Hz).
        bandwidth: Total bandwidth (Hz).
        slice_duration: Duration of one time slice (s).
        nsub: Number of sub-integrations per slice, if the file recorded it.
    """

    def __init__(
        self,
        data: np.ndarray,
        start_time: datetime,
        center_frequency: float,
        bandwidth: float,
        slice_duration: float,
        nsub: Optional[int] = None,
    ) -> None:
        if data.ndim != 2:
            raise ValueError(f"Spectrogram data must be 2D, got shape {data.shape}")
        self._data = np.array(data, dtype=np.float32, copy=True)
        self._data.flags.writeable = False
        self.start_time = start_time
        self.center_frequency = float(center_frequency)
        self.bandwidth = float(bandwidth)
        self.slice_duration = float(slice_duration)
        self.nsub = nsub

    @classmethod
    def from_linear(cls, header: Header, raw: np.ndarray) -> Spectrogram:
        """Build from linear-power samples shaped (nslices, nchan)."""
        data = 10.0 * np.log10(raw.astype(np.float32) + np.float32(POWER_FLOOR))
        return cls(
            data,
            start_time=header.start_time,
            center_frequency=header.freq,
            bandwidth=header.bw,
            slice_duration=header.length,
            nsub=header.nsub,
        )

    def __repr__(self) -> str:
        return (
            f"Spectrogram(start_time={self.start_time.isoformat()}, "
            f"freq={self.center_frequency}, bw={self.bandwidth}, "
            f"slice_duration={self.slice_duration}, nchan={self.channel_count}, "
            f"nslices={self.nslices})"
        )

    # ── Shape and time ──

    @property
    def nslices(self) -> int:
        return self._data.shape[0]

    @property
    def channel_count(self) -> int:
        return self._data.shape[1]

    def data(self) -> np.ndarray:
        """Read-only view of the (nslices, channel_count) dB matrix."""
        return self._data.view()

    def length(self) -> timedelta:
        return timedelta(seconds=self.slice_duration * self.nslices)

    @property
    def end_time(self) -> datetime:
        return self.start_time + self.length()

    @property
    def power_bounds(self) -> tuple[float, float]:
        """(min, max) power in dB."""
        if self._data.size == 0:
            return (float("nan"), float("nan"))
        return (float(np.nanmin(self._data)), float(np.nanmax(self._data)))

    def bounds(self) -> Rectangle:
        """Absolute extent: seconds on x, Hz offset from center on y."""
        return Rectangle(
            0.0,
            -self.bandwidth / 2.0,
            self.length().total_seconds(),
            self.bandwidth,
            Space.DATA_ABSOLUTE,
        )

    def header(self) -> Header:
        return Header(
            start_time=self.start_time,
            freq=self.center_frequency,
            bw=self.bandwidth,
            length=self.slice_duration,
            nchan=self.channel_count,
            nsub=self.nsub,
        )

    def same_params(self, other: Spectrogram) -> bool:
        return (
            self.center_frequency == other.center_frequency
            and self.bandwidth == other.bandwidth
            and self.slice_duration == other.slice_duration
            and self.channel_count == other.channel_count
        )

    def copy(self) -> Spectrogram:
        return self.with_data(self._data)

    def with_data(self, data: np.ndarray) -> Spectrogram:
        """New spectrogram with the same metadata and replaced dB values."""
        if data.shape != self._data.shape:
            raise ValueError(
                f"Shape mismatch: expected {self._data.shape}, got {data.shape}"
            )
        return Spectrogram(
            data,
            start_time=self.start_time,
            center_frequency=self.center_frequency,
            bandwidth=self.bandwidth,
            slice_duration=self.slice_duration,
            nsub=self.nsub,
        )

    # ── Concatenation ──

    @classmethod
    def concatenate(cls, components: Sequence[Spectrogram]) -> Spectrogram:
        """Join contiguous spectrograms along time.

        Raises:
            ValueError: If ``components`` is empty.
            ConsistencyError: If parameters differ or a component does not
                start within 10 ms of the previous component's end.
        """
        if not components:
            raise ValueError("No spectrograms to concatenate")

        first = components[0]
        for i in range(1, len(components)):
            prev, curr = components[i - 1], components[i]
            if not curr.same_params(first):
                raise ConsistencyError(
                    f"Inconsistent spectrogram parameters in component {i}: "
                    f"expected freq={first.center_frequency} bw={first.bandwidth} "
                    f"length={first.slice_duration} nchan={first.channel_count}, "
                    f"got freq={curr.center_frequency} bw={curr.bandwidth} "
                    f"length={curr.slice_duration} nchan={curr.channel_count}"
                )
            if abs(curr.start_time - prev.end_time) > TIME_TOLERANCE:
                raise ConsistencyError(
                    f"Non-contiguous spectrograms: component {i} starts at "
                    f"{curr.start_time.isoformat()}, expected {prev.end_time.isoformat()}"
                )

        data = np.concatenate([c._data for c in components], axis=0)
        return cls(
            data,
            start_time=first.start_time,
            center_frequency=first.center_frequency,
            bandwidth=first.bandwidth,
            slice_duration=first.slice_duration,
            nsub=first.nsub,
        )

    # ── Post-processing ──

    def median_filtered(self, window_hz: float) -> Spectrogram:
        """Subtract a running median along frequency from every slice.

        Removes the slowly varying noise floor so narrowband signals stand
        out. The window spans ``window_hz`` and edges repeat the nearest
        channel.
        """
        window = int(round(self.channel_count * window_hz / self.bandwidth))
        window = max(1, min(window, self.channel_count))
        logger.debug("Median filter over %d channels", window)

        floor = median_filter(self._data, size=(1, window), mode="nearest")
        filtered = self._data - floor
        return self.with_data(filtered)

    def save(self, path: PathLike) -> None:
        """Write the spectrogram in the binary file format (linear power)."""
        header = self.header()
        linear = np.power(10.0, self._data.astype(np.float64) / 10.0).astype("<f4")
        with open(path, "wb") as fh:
            for i, row in enumerate(linear):
                fh.write(header.render(header.nth_following(i)))
                fh.write(row.tobytes())
        logger.info("Saved %d slices to %s", self.nslices, path)


# ── Loading ──


def load(paths: Sequence[PathLike]) -> Spectrogram:
    """Load and concatenate spectrogram files in the given order.

    Files are read concurrently, one read per file.

    Raises:
        ValueError: If no paths are given.
        LoadError: If a file cannot be read.
        ParseError: If a header is malformed.
        ConsistencyError: If blocks or files do not fit together.
    """
    if not paths:
        raise ValueError("No files provided")

    logger.debug("Parsing files %s", [str(p) for p in paths])
    with ThreadPoolExecutor(max_workers=len(paths)) as pool:
        spectrograms = list(pool.map(load_file, paths))

    return Spectrogram.concatenate(spectrograms)


def load_file(path: PathLike) -> Spectrogram:
    """Load a single spectrogram file."""
    path = Path(path)
    try:
        buf = path.read_bytes()
    except OSError as exc:
        raise LoadError(f"Failed to load file {path}: {exc}") from exc
    return parse_bytes(buf, source=str(path))


def parse_bytes(buf: bytes, source: str = "<bytes>") -> Spectrogram:
    """Parse an in-memory spectrogram file.

    Args:
        buf: Entire file contents.
        source: Name used in error messages.
    """
    if len(buf) < HEADER_SIZE:
        raise ParseError(f"{source}: file too short for a header ({len(buf)} bytes)")

    try:
        first = Header.parse(buf[:HEADER_SIZE])
    except ParseError as exc:
        raise ParseError(f"{source}: failed to parse header: {exc}") from exc
    logger.debug("Parsed header: %s", first)

    record = np.dtype([("header", f"S{HEADER_SIZE}"), ("data", "<f4", (first.nchan,))])
    n_blocks = len(buf) // record.itemsize
    if n_blocks == 0:
        raise ParseError(f"{source}: no complete data block after header")
    if len(buf) % record.itemsize:
        logger.warning(
            "%s: ignoring %d trailing bytes", source, len(buf) % record.itemsize
        )

    records = np.frombuffer(buf, dtype=record, count=n_blocks)
    for i in range(1, n_blocks):
        try:
            header = Header.parse(records["header"][i])
        except ParseError as exc:
            raise ParseError(f"{source}: failed to parse header of slice {i}: {exc}") from exc
        if not first.same_params(header):
            raise ConsistencyError(
                f"{source}: inconsistent parameters in slice {i}: expected "
                f"freq={first.freq} bw={first.bw} nchan={first.nchan}, got "
                f"freq={header.freq} bw={header.bw} nchan={header.nchan}"
            )
        expected = first.nth_following(i)
        if abs(header.start_time - expected) > TIME_TOLERANCE:
            raise ConsistencyError(
                f"{source}: unexpected time for slice {i}: expected "
                f"{expected.isoformat()}, got {header.start_time.isoformat()}"
            )

    raw = records["data"]
    logger.debug(
        "Loaded %s with %d slices, min: %g, max: %g",
        source, n_blocks, float(raw.min()), float(raw.max()),
    )
    return Spectrogram.from_linear(first, raw)
