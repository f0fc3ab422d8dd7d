#!/usr/bin/env python3
"""rftrack command-line interface.

Usage::

    rftrack info obs_000000.bin obs_000001.bin
    rftrack medfilt obs_000000.bin --window-hz 20000 -o filtered.bin
    rftrack track obs_*.bin -p 12,-800 -p 95,1200 --sigma 5 -o signals.csv
    rftrack predict obs_*.bin --tle catalog.txt --freqs frequencies.txt
    rftrack plot obs_*.bin --tle catalog.txt --freqs frequencies.txt -o plot.png
    rftrack fetch-tles --freqs frequencies.txt -o catalog.txt
"""
from __future__ import annotations

import sys
import logging
from contextlib import contextmanager
from pathlib import Path

import click
import requests
from rich.console import Console
from rich.table import Table
from rich.panel import Panel
from rich.markup import escape
from rich import box

from .config import Config
from .coord import Point, Space
from .errors import RFTrackError
from .orbit import Site, load_frequencies, load_tles, predict_satellites, satellites_to_dataframe
from .signal import FitTrace, find_signals, signals_to_dataframe
from .spectrogram import Spectrogram, load
from .view import ViewControls

console = Console()

_FILES = click.argument("files", nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False))


@contextmanager
def _reporting_errors():
    try:
        yield
    except RFTrackError as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        sys.exit(1)


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.option("--config", "config_path", type=click.Path(dir_okay=False), help="Config file path")
@click.pass_context
def main(ctx: click.Context, verbose: bool, config_path: str | None):
    """rftrack — spectrogram signal tracking and satellite Doppler prediction."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(level=level, format="%(name)s — %(message)s")
    with _reporting_errors():
        ctx.obj = Config.load(config_path)


@main.command()
@_FILES
def info(files: tuple[str, ...]):
    """Summarize one or more contiguous spectrogram files."""
    with _reporting_errors():
        spec = load(files)
    _display_spectrogram(spec, files)


@main.command()
@_FILES
@click.option("--window-hz", "-w", default=20000.0, show_default=True, help="Median window width (Hz)")
@click.option("--output", "-o", required=True, type=click.Path(dir_okay=False), help="Output file")
def medfilt(files: tuple[str, ...], window_hz: float, output: str):
    """Subtract a running median along frequency and save the result."""
    with _reporting_errors():
        spec = load(files)
        filtered = spec.median_filtered(window_hz)
        filtered.save(output)
    console.print(f"Wrote {filtered.nslices} slices to {output}")


@main.command()
@_FILES
@click.option("--point", "-p", "points", multiple=True, required=True,
              help="Track anchor as SECONDS,OFFSET_HZ (repeat for each anchor)")
@click.option("--sigma", "-s", type=float, help="Detection threshold (default from config)")
@click.option("--track-bw", "-b", type=float, help="Full search bandwidth in Hz (default from config)")
@click.option("--output", "-o", type=click.Path(dir_okay=False), help="Save signals to CSV")
@click.pass_obj
def track(
    config: Config,
    files: tuple[str, ...],
    points: tuple[str, ...],
    sigma: float | None,
    track_bw: float | None,
    output: str | None,
):
    """Detect signals along a track through the given anchor points."""
    controls = _controls(config, sigma, track_bw)
    anchors = [_parse_point(p) for p in points]

    with _reporting_errors():
        spec = load(files)
    signals = find_signals(spec, anchors, controls.track_bw / 2.0, FitTrace(controls.signal_sigma))

    df = signals_to_dataframe(signals, spec)
    console.print(
        Panel(
            f"Anchors: {len(anchors)}\n"
            f"Threshold: {controls.signal_sigma:.1f}σ over ±{controls.track_bw / 2e3:.1f} kHz\n"
            f"Signals detected: [bold green]{len(df)}[/bold green]",
            title="Signal Track",
            box=box.ROUNDED,
        )
    )
    if len(df):
        _display_signal_table(df)

    if output:
        df.to_csv(output, index=False)
        console.print(f"\nResults saved to {output}")


@main.command()
@_FILES
@click.option("--tle", "tle_path", required=True, type=click.Path(exists=True), help="TLE file")
@click.option("--freqs", "freq_path", required=True, type=click.Path(exists=True),
              help="Frequency table (NORAD_ID MHz per line)")
@click.option("--site", "site_opt", type=(float, float, float), default=None,
              help="Site as LAT LON ALT_M (default from config)")
@click.option("--output", "-o", type=click.Path(dir_okay=False), help="Save predictions to CSV")
@click.pass_obj
def predict(
    config: Config,
    files: tuple[str, ...],
    tle_path: str,
    freq_path: str,
    site_opt: tuple[float, float, float] | None,
    output: str | None,
):
    """Predict Doppler curves of satellites over the spectrogram's time span."""
    site = _site(config, site_opt)
    with _reporting_errors():
        spec = load(files)
        satellites = load_tles(tle_path, load_frequencies(freq_path))

    preds = predict_satellites(satellites, spec.start_time, spec.length().total_seconds(), site)
    summary = preds.summary()
    names = {s.norad_id: s.name or "" for s in satellites}

    console.print(
        Panel(
            f"Satellites: {len(satellites)}\n"
            f"Window: {spec.start_time:%Y-%m-%d %H:%M:%S} → {spec.end_time:%H:%M:%S} UTC\n"
            f"Visible passes: [bold green]{len(summary)}[/bold green]",
            title="Pass Predictions",
            box=box.ROUNDED,
        )
    )
    if len(summary):
        _display_pass_table(summary, names, spec.center_frequency, spec.bandwidth)

    if output:
        preds.to_dataframe().to_csv(output, index=False)
        console.print(f"\nResults saved to {output}")


@main.command()
@_FILES
@click.option("--tle", "tle_path", type=click.Path(exists=True), help="TLE file")
@click.option("--freqs", "freq_path", type=click.Path(exists=True), help="Frequency table")
@click.option("--site", "site_opt", type=(float, float, float), default=None,
              help="Site as LAT LON ALT_M (default from config)")
@click.option("--point", "-p", "points", multiple=True, help="Track anchor as SECONDS,OFFSET_HZ")
@click.option("--sigma", "-s", type=float, help="Detection threshold")
@click.option("--track-bw", "-b", type=float, help="Full search bandwidth in Hz")
@click.option("--zoom", type=(float, float), default=(0.0, 0.0), help="log2 zoom as X Y")
@click.option("--center", type=(float, float), default=(0.5, 0.5),
              help="View center in normalized data coordinates as X Y")
@click.option("--power", type=(float, float), default=None, help="Colour range as MIN MAX (dB)")
@click.option("--output", "-o", required=True, type=click.Path(dir_okay=False), help="Output image")
@click.pass_obj
def plot(
    config: Config,
    files: tuple[str, ...],
    tle_path: str | None,
    freq_path: str | None,
    site_opt: tuple[float, float, float] | None,
    points: tuple[str, ...],
    sigma: float | None,
    track_bw: float | None,
    zoom: tuple[float, float],
    center: tuple[float, float],
    power: tuple[float, float] | None,
    output: str,
):
    """Render the spectrogram with predictions, track and detections."""
    from .viz import plot_spectrogram

    if bool(tle_path) != bool(freq_path):
        console.print("[red]Error: --tle and --freqs must be given together[/red]")
        sys.exit(1)

    controls = _controls(config, sigma, track_bw)
    anchors = [_parse_point(p) for p in points]

    with _reporting_errors():
        spec = load(files)
        satellites = load_tles(tle_path, load_frequencies(freq_path)) if tle_path else []

    controls.set_power_bounds(spec.power_bounds)
    if power:
        controls.set_min_power(power[0])
        controls.set_max_power(power[1])
    controls.center = Point(center[0], center[1], Space.DATA_NORMALIZED)
    controls.set_zoom(*zoom)

    preds = None
    if satellites:
        site = _site(config, site_opt)
        preds = predict_satellites(satellites, spec.start_time, spec.length().total_seconds(), site)

    signals = []
    if len(anchors) >= 2:
        signals = find_signals(spec, anchors, controls.track_bw / 2.0, FitTrace(controls.signal_sigma))

    plot_spectrogram(
        spec,
        controls=controls,
        predictions=preds,
        track_points=sorted(anchors, key=lambda p: p.x),
        signals=signals,
        names={s.norad_id: s.name or str(s.norad_id) for s in satellites},
        save_path=output,
    )
    console.print(f"Plot saved to {output}")


@main.command("fetch-tles")
@click.option("--norad-ids", "-i", type=str, help="Comma-separated NORAD IDs")
@click.option("--freqs", "freq_path", type=click.Path(exists=True),
              help="Fetch every satellite in this frequency table")
@click.option("--output", "-o", required=True, type=click.Path(dir_okay=False), help="Output TLE file")
@click.pass_obj
def fetch_tles(config: Config, norad_ids: str | None, freq_path: str | None, output: str):
    """Download current TLEs from Space-Track."""
    from .spacetrack import SpaceTrackClient, save_tles

    with _reporting_errors():
        if norad_ids:
            try:
                ids = [int(x.strip()) for x in norad_ids.split(",") if x.strip()]
            except ValueError:
                raise click.BadParameter("NORAD IDs must be integers", param_hint="--norad-ids")
        elif freq_path:
            ids = sorted(load_frequencies(freq_path))
        else:
            console.print("[red]Error: provide --norad-ids or --freqs[/red]")
            sys.exit(1)

    user, password = config.space_track_creds or (None, None)
    client = SpaceTrackClient(username=user, password=password)
    console.print(f"Fetching TLEs for {len(ids)} satellites...")
    try:
        text = client.get_latest_tles(ids)
    except (ValueError, ConnectionError, requests.RequestException) as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        sys.exit(1)

    save_tles(text, output)
    with _reporting_errors():
        satellites = load_tles(output, {n: 0.0 for n in ids})
    _display_catalog_table(satellites)
    console.print(f"\nSaved {len(satellites)} TLEs to {output}")


def _parse_point(value: str) -> Point:
    try:
        t, f = (float(v) for v in value.split(","))
    except ValueError:
        raise click.BadParameter(f"expected SECONDS,OFFSET_HZ, got {value!r}", param_hint="--point")
    return Point(t, f, Space.DATA_ABSOLUTE)


def _controls(config: Config, sigma: float | None, track_bw: float | None) -> ViewControls:
    controls = ViewControls()
    controls.set_signal_sigma(sigma if sigma is not None else config.signal_sigma)
    controls.set_track_bw(track_bw if track_bw is not None else config.track_bw)
    return controls


def _site(config: Config, site_opt: tuple[float, float, float] | None) -> Site:
    if site_opt is not None:
        return Site.from_degrees(*site_opt)
    if config.site is None:
        console.print("[red]Error: no site configured; pass --site LAT LON ALT_M[/red]")
        sys.exit(1)
    return config.site


def _display_spectrogram(spec: Spectrogram, files: tuple[str, ...]):
    lo, hi = spec.power_bounds
    console.print(
        Panel(
            f"[bold]{Path(files[0]).name}[/bold]"
            + (f" (+{len(files) - 1} more)" if len(files) > 1 else "")
            + "\n"
            f"Start: {spec.start_time:%Y-%m-%d %H:%M:%S.%f} UTC\n"
            f"End: {spec.end_time:%Y-%m-%d %H:%M:%S.%f} UTC\n"
            f"Center frequency: {spec.center_frequency / 1e6:.6f} MHz\n"
            f"Bandwidth: {spec.bandwidth / 1e3:.3f} kHz\n"
            f"Slices: {spec.nslices} × {spec.slice_duration:g} s\n"
            f"Channels: {spec.channel_count}\n"
            f"Power: {lo:.1f} → {hi:.1f} dB",
            title="Spectrogram",
            box=box.ROUNDED,
        )
    )


def _display_signal_table(df):
    table = Table(title="Detected Signals", box=box.SIMPLE_HEAVY)
    table.add_column("Time (UTC)", style="cyan")
    table.add_column("t (s)", justify="right")
    table.add_column("Offset (Hz)", justify="right")
    table.add_column("Frequency (MHz)", justify="right")

    for _, row in df.head(50).iterrows():
        table.add_row(
            f"{row['utc']:%H:%M:%S.%f}"[:-3],
            f"{row['time_s']:.2f}",
            f"{row['offset_hz']:+.1f}",
            f"{row['frequency_hz'] / 1e6:.6f}",
        )

    if len(df) > 50:
        console.print(f"(showing 50 of {len(df)} signals)")
    console.print(table)


def _display_pass_table(summary, names: dict[int, str], center: float, bw: float):
    table = Table(title="Visible Passes", box=box.SIMPLE_HEAVY, show_lines=True)
    table.add_column("NORAD", justify="right")
    table.add_column("Name")
    table.add_column("TCA (s)", justify="right", style="cyan")
    table.add_column("Min zenith (°)", justify="right")
    table.add_column("Freq at TCA (MHz)", justify="right")
    table.add_column("Visible (s)", justify="right")

    for _, row in summary.iterrows():
        in_band = abs(row["freq_at_tca_hz"] - center) <= bw / 2.0
        color = "green" if in_band else "dim"
        table.add_row(
            str(int(row["norad_id"])),
            names.get(int(row["norad_id"]), ""),
            f"{row['tca_s']:.1f}",
            f"{row['min_zenith_deg']:.1f}",
            f"[{color}]{row['freq_at_tca_hz'] / 1e6:.6f}[/{color}]",
            f"{row['visible_s']:.0f}",
        )

    console.print(table)


def _display_catalog_table(satellites):
    df = satellites_to_dataframe(satellites)
    table = Table(box=box.SIMPLE_HEAVY)
    table.add_column("NORAD", justify="right")
    table.add_column("Name")
    table.add_column("Epoch", style="cyan")
    table.add_column("Alt (km)", justify="right")
    table.add_column("Inc (°)", justify="right")

    for _, row in df.head(50).iterrows():
        table.add_row(
            str(row["norad_id"]),
            str(row["name"] or ""),
            f"{row['epoch']:%Y-%m-%d %H:%M}",
            f"{row['altitude_km']:.1f}",
            f"{row['inclination_deg']:.2f}",
        )

    if len(df) > 50:
        console.print(f"(showing 50 of {len(df)} satellites)")
    console.print(table)


if __name__ == "__main__":
    main()
