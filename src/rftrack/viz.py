"""Plotting for spectrograms, tracks, detections and pass predictions.

Figures are returned so they can be shown interactively (Jupyter) or saved
in batch runs. The spectrogram view honours a :class:`ViewControls` window:
the visible DATA_ABSOLUTE region is obtained by mapping the unit plot area
through the coordinate transforms.
"""
from __future__ import annotations

from pathlib import Path
from typing import Optional, Sequence

import numpy as np
import matplotlib.pyplot as plt

from .coord import Frame, Point, Rectangle, Space
from .orbit import Predictions
from .spectrogram import Spectrogram
from .view import ViewControls


plt.rcParams.update({
    "figure.facecolor": "white",
    "axes.facecolor": "#fafafa",
    "axes.grid": False,
    "grid.alpha": 0.3,
    "font.family": "sans-serif",
    "font.size": 10,
})

TRACK_COLOR = "#e74c3c"
SIGNAL_COLOR = "#2ecc71"
PREDICTION_COLORS = ["#f39c12", "#3498db", "#9b59b6", "#1abc9c", "#e67e22", "#ecf0f1"]


def visible_region(spectrogram: Spectrogram, controls: ViewControls) -> Rectangle:
    """The DATA_ABSOLUTE rectangle shown by the current view window."""
    frame = Frame(view=controls.bounds(), data_bounds=spectrogram.bounds())
    to_data = frame.transform(Space.PLOT_AREA, Space.DATA_ABSOLUTE)
    return to_data(Rectangle(0.0, 0.0, 1.0, 1.0, Space.PLOT_AREA))


def plot_spectrogram(
    spectrogram: Spectrogram,
    controls: Optional[ViewControls] = None,
    predictions: Optional[Predictions] = None,
    track_points: Sequence[Point] = (),
    signals: Sequence[Point] = (),
    names: Optional[dict[int, str]] = None,
    title: Optional[str] = None,
    save_path: Optional[str | Path] = None,
    figsize: tuple = (12, 7),
) -> plt.Figure:
    """Plot a spectrogram with optional overlays.

    Args:
        spectrogram: Data to show; time on x, frequency offset on y.
        controls: View window and colour range. Defaults to the full
            spectrogram and its full power range.
        predictions: Doppler curves to overlay; only samples above the
            horizon are drawn.
        track_points: Track anchors; drawn with the ±track_bw/2 search band.
        signals: Detected signal points.
        names: NORAD ID → label for prediction curves.
        title: Plot title.
        save_path: Path to save figure (optional).

    Returns:
        matplotlib Figure
    """
    if controls is None:
        controls = ViewControls()
        controls.set_power_bounds(spectrogram.power_bounds)

    fig, ax = plt.subplots(figsize=figsize)

    bounds = spectrogram.bounds()
    x0, x1 = bounds.x_range()
    y0, y1 = bounds.y_range()
    vmin, vmax = controls.power_range
    im = ax.imshow(
        spectrogram.data().T,
        origin="lower",
        aspect="auto",
        interpolation="nearest",
        extent=(x0, x1, y0 / 1e3, y1 / 1e3),
        vmin=vmin,
        vmax=vmax,
        cmap="viridis",
    )
    fig.colorbar(im, ax=ax, label="Power (dB)")

    if predictions is not None:
        names = names or {}
        for i, (norad_id, pred) in enumerate(predictions.satellites.items()):
            offset = (pred.frequency - spectrogram.center_frequency) / 1e3
            curve = np.where(pred.visible(), offset, np.nan)
            if np.all(np.isnan(curve)):
                continue
            ax.plot(
                predictions.times,
                curve,
                linewidth=1.0,
                color=PREDICTION_COLORS[i % len(PREDICTION_COLORS)],
                label=names.get(norad_id, str(norad_id)),
            )

    if len(track_points):
        tx = [p.x for p in track_points]
        ty = np.array([p.y for p in track_points]) / 1e3
        half = controls.track_bw / 2e3
        ax.plot(tx, ty, "o", color=TRACK_COLOR, markersize=4)
        ax.plot(tx, ty + half, "--", color=TRACK_COLOR, linewidth=0.8)
        ax.plot(tx, ty - half, "--", color=TRACK_COLOR, linewidth=0.8)

    if len(signals):
        ax.scatter(
            [p.x for p in signals],
            [p.y / 1e3 for p in signals],
            s=6,
            color=SIGNAL_COLOR,
            label=f"Signals ({len(signals)})",
            zorder=5,
        )

    view = visible_region(spectrogram, controls)
    vx0, vx1 = view.x_range()
    vy0, vy1 = view.y_range()
    ax.set_xlim(vx0, vx1)
    ax.set_ylim(vy0 / 1e3, vy1 / 1e3)

    ax.set_xlabel(f"Time since {spectrogram.start_time:%Y-%m-%d %H:%M:%S} UTC (s)")
    ax.set_ylabel(f"Offset from {spectrogram.center_frequency / 1e6:.4f} MHz (kHz)")
    ax.set_title(title or "Spectrogram")
    if ax.get_legend_handles_labels()[0]:
        ax.legend(loc="upper right", fontsize=8)

    plt.tight_layout()

    if save_path:
        fig.savefig(save_path, dpi=150, bbox_inches="tight")

    return fig


def plot_predictions(
    predictions: Predictions,
    names: Optional[dict[int, str]] = None,
    title: Optional[str] = None,
    save_path: Optional[str | Path] = None,
    figsize: tuple = (12, 8),
) -> plt.Figure:
    """Doppler curve and elevation of every predicted satellite.

    Only samples above the horizon are drawn.
    """
    names = names or {}
    fig, axes = plt.subplots(2, 1, figsize=figsize, sharex=True)

    for i, (norad_id, pred) in enumerate(predictions.satellites.items()):
        visible = pred.visible()
        if not visible.any():
            continue
        color = PREDICTION_COLORS[i % len(PREDICTION_COLORS)]
        label = names.get(norad_id, str(norad_id))
        centre = np.nanmedian(pred.frequency)
        shift = np.where(visible, (pred.frequency - centre) / 1e3, np.nan)
        elevation = np.where(visible, 90.0 - np.degrees(pred.zenith_angle), np.nan)
        axes[0].plot(predictions.times, shift, linewidth=1.0, color=color, label=label)
        axes[1].plot(predictions.times, elevation, linewidth=1.0, color=color)

    axes[0].set_ylabel("Offset from pass median (kHz)")
    axes[0].set_title(title or f"Pass predictions from {predictions.start_time:%Y-%m-%d %H:%M:%S} UTC")
    axes[1].set_ylabel("Elevation proxy (°)")
    axes[1].set_ylim(0, 90)
    axes[1].set_xlabel("Time (s)")
    for ax in axes:
        ax.grid(True, alpha=0.3)
    if axes[0].get_legend_handles_labels()[0]:
        axes[0].legend(loc="upper right", fontsize=8)

    plt.tight_layout()

    if save_path:
        fig.savefig(save_path, dpi=150, bbox_inches="tight")

    return fig
