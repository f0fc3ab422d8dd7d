"""Two-Line Element parsing.

Reads NORAD TLE files in 2-line or 3-line form. A 3-line record starts with
a title line, which may carry a leading ``"0 "`` marker (CelesTrak/Space-Track
style). Fields are sliced at the fixed columns of the format; SGP4 constants
are derived separately by :mod:`rftrack.orbit`.

References:
    - Kelso, T.S. "CelesTrak TLE Format Documentation"
      https://celestrak.org/columns/v04n03/
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum, auto
from typing import Iterable, Iterator, Optional

from .errors import ParseError

logger = logging.getLogger(__name__)

MU_EARTH = 398600.4418
"""Earth gravitational parameter (km³/s²)."""

R_EARTH = 6378.137
"""Earth equatorial radius (km)."""

SOLAR_DAY = 86400.0


@dataclass(frozen=True, slots=True)
class TLE:
    """Orbital elements and identity from one TLE record.

    Attributes:
        name: Title line, if the record had one.
        norad_id: NORAD catalog number.
        epoch: Element set epoch (UTC).
        inclination: Inclination (degrees).
        raan: Right ascension of the ascending node (degrees).
        eccentricity: Eccentricity.
        arg_perigee: Argument of perigee (degrees).
        mean_anomaly: Mean anomaly (degrees).
        mean_motion: Mean motion (rev/day).
        bstar: B* drag term (1/Earth radii).
        line1: Raw line 1.
        line2: Raw line 2.
    """
    name: Optional[str]
    norad_id: int
    epoch: datetime
    inclination: float
    raan: float
    eccentricity: float
    arg_perigee: float
    mean_anomaly: float
    mean_motion: float
    bstar: float
    line1: str = field(repr=False)
    line2: str = field(repr=False)

    @property
    def period(self) -> float:
        """Orbital period (s)."""
        return SOLAR_DAY / self.mean_motion

    @property
    def altitude(self) -> float:
        """Mean altitude above the equatorial radius (km)."""
        n = self.mean_motion * 2.0 * math.pi / SOLAR_DAY
        return (MU_EARTH / n**2) ** (1.0 / 3.0) - R_EARTH

    @classmethod
    def parse(cls, line1: str, line2: str, name: Optional[str] = None) -> TLE:
        """Parse line 1 and line 2 of an element set.

        Raises:
            ParseError: On malformed lines or mismatched catalog numbers.
        """
        l1 = line1.rstrip().ljust(69)
        l2 = line2.rstrip().ljust(69)
        if not l1.startswith("1 "):
            raise ParseError(f"Expected line 1 of TLE, got: {line1!r}")
        if not l2.startswith("2 "):
            raise ParseError(f"Expected line 2 of TLE, got: {line2!r}")

        _check_checksum(l1)
        _check_checksum(l2)

        try:
            norad_id = int(l1[2:7])
            if int(l2[2:7]) != norad_id:
                raise ParseError(
                    f"NORAD ID mismatch: {l1[2:7].strip()} vs {l2[2:7].strip()}"
                )
            yy = int(l1[18:20])
            year = 1900 + yy if yy >= 57 else 2000 + yy
            epoch = datetime(year, 1, 1, tzinfo=timezone.utc) + timedelta(
                days=float(l1[20:32]) - 1.0
            )
            return cls(
                name=name.strip() if name else None,
                norad_id=norad_id,
                epoch=epoch,
                inclination=float(l2[8:16]),
                raan=float(l2[17:25]),
                eccentricity=float("0." + l2[26:33].strip()),
                arg_perigee=float(l2[34:42]),
                mean_anomaly=float(l2[43:51]),
                mean_motion=float(l2[52:63]),
                bstar=_implied_decimal(l1[53:61]),
                line1=line1.rstrip(),
                line2=line2.rstrip(),
            )
        except ParseError:
            raise
        except ValueError as exc:
            raise ParseError(f"Malformed TLE for {l1[2:7].strip()!r}: {exc}") from exc


class _State(Enum):
    LINE1_OR_TITLE = auto()
    LINE1 = auto()
    LINE2 = auto()


def iter_records(lines: Iterable[str]) -> Iterator[tuple[Optional[str], str, str]]:
    """Group TLE lines into ``(title, line1, line2)`` records.

    Blank lines are skipped. Titles keep their text minus any ``"0 "``
    prefix; bare 2-line records yield ``None`` as title.

    Raises:
        ParseError: If a line appears out of order or the input ends inside
            a record.
    """
    state = _State.LINE1_OR_TITLE
    title: Optional[str] = None
    line1 = ""

    for lineno, line in enumerate(lines, 1):
        line = line.rstrip("\r\n")
        if not line.strip():
            continue

        if state is _State.LINE1_OR_TITLE:
            if line.startswith("1 "):
                title, line1 = None, line
                state = _State.LINE2
            else:
                title = line[2:] if line.startswith("0 ") else line
                state = _State.LINE1
        elif state is _State.LINE1:
            if not line.startswith("1 "):
                raise ParseError(f"Line {lineno}: expected line 1 of TLE, got: {line!r}")
            line1 = line
            state = _State.LINE2
        else:
            if not line.startswith("2 "):
                raise ParseError(f"Line {lineno}: expected line 2 of TLE, got: {line!r}")
            yield title, line1, line
            state = _State.LINE1_OR_TITLE

    if state is not _State.LINE1_OR_TITLE:
        raise ParseError("Input ended in the middle of a TLE record")


def parse_tles(text: str) -> list[TLE]:
    """Parse every record in a TLE file's contents."""
    return [
        TLE.parse(line1, line2, name=title)
        for title, line1, line2 in iter_records(text.splitlines())
    ]


def _implied_decimal(s: str) -> float:
    """Decode the ``±NNNNN±E`` notation used for B* (``-11606-4`` → -0.11606e-4)."""
    s = s.strip()
    if not s:
        return 0.0
    sign = -1.0 if s[0] == "-" else 1.0
    s = s.lstrip("+-")
    for i in range(len(s) - 1, 0, -1):
        if s[i] in "+-":
            return sign * float(f"0.{s[:i].strip()}e{s[i:]}")
    return sign * float(f"0.{s}")


def _check_checksum(line: str) -> None:
    """Warn on a modulo-10 checksum mismatch.

    Real-world TLE sources often have small formatting quirks, so a bad
    checksum is logged rather than rejected.
    """
    if not line[68].isdigit():
        return
    total = sum(int(c) if c.isdigit() else (c == "-") for c in line[:68])
    if total % 10 != int(line[68]):
        logger.warning(
            "Checksum mismatch on TLE line %s for %s: expected %s, computed %d",
            line[0], line[2:7].strip(), line[68], total % 10,
        )
