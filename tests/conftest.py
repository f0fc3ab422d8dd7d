"""Shared fixtures: synthetic spectrogram files and a reference TLE."""
from datetime import datetime, timedelta, timezone

import matplotlib
import numpy as np
import pytest

matplotlib.use("Agg")

from rftrack.spectrogram import Header  # noqa: E402

ISS_NAME = "ISS (ZARYA)"
ISS_LINE1 = "1 25544U 98067A   19343.69339541  .00001764  00000-0  38792-4 0  9991"
ISS_LINE2 = "2 25544  51.6439 211.2001 0007417  17.6667  85.6398 15.50103472202482"

START = datetime(2024, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


def raw_header(text: str) -> bytes:
    """Pad free-form header text to a 256-byte block."""
    return text.encode("ascii").ljust(256, b"\0")


@pytest.fixture
def write_spectrogram(tmp_path):
    """Factory writing a spectrogram file from linear power samples.

    ``linear`` is shaped (nslices, nchan). ``start_offsets`` optionally
    overrides each slice's start (seconds after ``start``) to simulate
    timestamp jitter or gaps.
    """
    counter = iter(range(1000))

    def write(
        linear,
        start=START,
        freq=437.5e6,
        bw=64e3,
        length=1.0,
        nsub=None,
        start_offsets=None,
        name=None,
    ):
        linear = np.asarray(linear, dtype="<f4")
        header = Header(start, freq, bw, length, linear.shape[1], nsub)
        path = tmp_path / (name or f"obs_{next(counter):06d}.bin")
        with open(path, "wb") as fh:
            for i, row in enumerate(linear):
                if start_offsets is None:
                    t = header.nth_following(i)
                else:
                    t = start + timedelta(seconds=start_offsets[i])
                fh.write(header.render(t))
                fh.write(row.tobytes())
        return path

    return write


@pytest.fixture
def iss_files(tmp_path):
    """ISS TLE file (3-line, with '0 ' title prefix) and its frequency table."""
    tle_path = tmp_path / "catalog.txt"
    tle_path.write_text(f"0 {ISS_NAME}\n{ISS_LINE1}\n{ISS_LINE2}\n")
    freq_path = tmp_path / "frequencies.txt"
    freq_path.write_text("# ISS downlink\n25544 437.800\n")
    return tle_path, freq_path
