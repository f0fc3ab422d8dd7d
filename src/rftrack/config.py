"""User configuration: ground site, Space-Track credentials, tracker defaults.

Stored as JSON, by default at ``~/.config/rftrack/config.json``::

    {
      "site": {"latitude": 52.0, "longitude": 4.4, "altitude": 10.0},
      "space_track": {"user": "you@example.com", "password": "..."},
      "signal_sigma": 5.0,
      "track_bw": 10000.0
    }

Latitude and longitude are in degrees, altitude in metres. The
``SPACETRACK_USER`` and ``SPACETRACK_PASS`` environment variables override
the stored credentials.
"""

from __future__ import annotations

import json
import logging
import math
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from .errors import LoadError, ParseError
from .orbit import Site
from .signal import DEFAULT_SIGMA

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path.home() / ".config" / "rftrack" / "config.json"
DEFAULT_TRACK_BW = 10e3


@dataclass
class Config:
    """Application settings.

    Attributes:
        site: Ground station, or None if not configured.
        space_track_creds: ``(user, password)`` for Space-Track, if any.
        signal_sigma: Default detection threshold.
        track_bw: Default track search bandwidth (Hz).
    """
    site: Optional[Site] = None
    space_track_creds: Optional[tuple[str, str]] = None
    signal_sigma: float = DEFAULT_SIGMA
    track_bw: float = DEFAULT_TRACK_BW

    def __repr__(self) -> str:
        creds = None
        if self.space_track_creds is not None:
            creds = (self.space_track_creds[0], "********")
        return (
            f"Config(site={self.site!r}, space_track_creds={creds!r}, "
            f"signal_sigma={self.signal_sigma}, track_bw={self.track_bw})"
        )

    @classmethod
    def load(cls, path: Optional[Union[str, Path]] = None) -> Config:
        """Read a config file, falling back to defaults if it does not exist.

        Raises:
            LoadError: If the file exists but cannot be read.
            ParseError: If the file is not valid JSON or has bad values.
        """
        path = Path(path) if path is not None else DEFAULT_CONFIG_PATH
        if not path.exists():
            logger.debug("No config at %s, using defaults", path)
            config = cls()
        else:
            try:
                text = path.read_text()
            except OSError as exc:
                raise LoadError(f"Failed to read config {path}: {exc}") from exc
            try:
                raw = json.loads(text)
            except json.JSONDecodeError as exc:
                raise ParseError(f"Invalid config {path}: {exc}") from exc
            config = cls.from_dict(raw, source=str(path))

        user = os.environ.get("SPACETRACK_USER")
        password = os.environ.get("SPACETRACK_PASS")
        if user and password:
            config.space_track_creds = (user, password)
        return config

    @classmethod
    def from_dict(cls, raw: dict, source: str = "<config>") -> Config:
        if not isinstance(raw, dict):
            raise ParseError(f"{source}: expected a JSON object")
        try:
            site = None
            if raw.get("site") is not None:
                s = raw["site"]
                site = Site.from_degrees(
                    float(s["latitude"]), float(s["longitude"]), float(s.get("altitude", 0.0))
                )
            creds = None
            if raw.get("space_track") is not None:
                st = raw["space_track"]
                creds = (str(st["user"]), str(st["password"]))
            return cls(
                site=site,
                space_track_creds=creds,
                signal_sigma=float(raw.get("signal_sigma", DEFAULT_SIGMA)),
                track_bw=float(raw.get("track_bw", DEFAULT_TRACK_BW)),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise ParseError(f"{source}: invalid value: {exc!r}") from exc

    def to_dict(self) -> dict:
        out: dict = {"signal_sigma": self.signal_sigma, "track_bw": self.track_bw}
        if self.site is not None:
            out["site"] = {
                "latitude": math.degrees(self.site.latitude),
                "longitude": math.degrees(self.site.longitude),
                "altitude": self.site.altitude * 1000.0,
            }
        if self.space_track_creds is not None:
            out["space_track"] = {
                "user": self.space_track_creds[0],
                "password": self.space_track_creds[1],
            }
        return out

    def save(self, path: Optional[Union[str, Path]] = None) -> Path:
        """Write the config as JSON, creating parent directories."""
        path = Path(path) if path is not None else DEFAULT_CONFIG_PATH
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(self.to_dict(), indent=2) + "\n")
        logger.info("Saved config to %s", path)
        return path
