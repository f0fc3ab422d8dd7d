"""Exception hierarchy shared by the loaders and analysis routines.

Every error raised on purpose by rftrack derives from ``RFTrackError`` and
also from the built-in exception that best describes it, so callers can
catch either ``RFTrackError`` or e.g. ``ValueError``.
"""

from __future__ import annotations


class RFTrackError(Exception):
    """Base class for all rftrack errors."""


class LoadError(RFTrackError, OSError):
    """A file could not be opened or read."""


class ParseError(RFTrackError, ValueError):
    """Input text or binary data does not follow the expected format."""


class ConsistencyError(RFTrackError, ValueError):
    """Spectrogram segments disagree on parameters or are not contiguous."""


class MissingFrequencyError(RFTrackError, LookupError):
    """A satellite has no entry in the transmit-frequency table."""

    def __init__(self, norad_id: int) -> None:
        super().__init__(f"No transmit frequency for NORAD {norad_id}")
        self.norad_id = norad_id
