"""rftrack — RF spectrogram signal tracking and satellite Doppler prediction.

Load STRF-format spectrograms, follow drifting downlink signals along a
user-drawn track, and overlay SGP4-predicted Doppler curves for a satellite
catalogue as seen from a ground station.

Modules:
    spectrogram:    Binary spectrogram loading, validation and concatenation.
    coord:          Coordinate spaces and composable affine transforms.
    view:           Pan/zoom view window and display controls.
    signal:         Track interpolation and FitTrace signal detection.
    tle:            Two-Line Element parsing.
    orbit:          Satellite catalogue and Doppler/zenith-angle prediction.
    worker:         Generation-stamped background task runner.
    session:        Analysis state tying the above together.
    config:         JSON configuration (site, Space-Track credentials).
    spacetrack:     Space-Track.org client with caching and rate limiting.
    viz:            Spectrogram and pass-prediction plots.
    cli:            Command-line interface.

Example:
    >>> from rftrack.spectrogram import load
    >>> from rftrack.orbit import Site, load_frequencies, load_tles, predict_satellites
    >>>
    >>> spec = load(["obs_000000.bin", "obs_000001.bin"])
    >>> sats = load_tles("catalog.txt", load_frequencies("frequencies.txt"))
    >>> site = Site.from_degrees(52.0, 4.4, 10.0)
    >>> preds = predict_satellites(sats, spec.start_time, spec.length().total_seconds(), site)
    >>> print(preds.summary())
"""

__version__ = "0.1.0"
