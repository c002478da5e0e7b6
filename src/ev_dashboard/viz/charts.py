from __future__ import annotations

from pathlib import Path

import numpy as np

from ev_dashboard.report.contracts import ChartPayload
from ev_dashboard.viz.common import plt, save_figure


def plot_trend(payload: ChartPayload, output_path: Path) -> Path | None:
    if payload.is_empty:
        return None
    plt.figure(figsize=(10, 4))
    for series in payload.series:
        plt.plot(
            payload.labels,
            series.values,
            marker="o",
            linewidth=2.5,
            color=series.color,
            label=series.name,
        )
    plt.title(payload.title)
    plt.xlabel("Model year")
    plt.ylabel("Vehicles")
    plt.xticks(payload.labels)
    plt.legend(loc="upper left")
    return save_figure(output_path)


def plot_market_share(payload: ChartPayload, output_path: Path) -> Path | None:
    values = payload.series[0].values if payload.series else ()
    if payload.is_empty or sum(values) == 0:
        return None
    plt.figure(figsize=(6, 6))
    plt.pie(
        values,
        labels=payload.labels,
        colors=payload.meta.get("colors"),
        autopct="%1.1f%%",
        startangle=90,
        wedgeprops={"width": 0.45},
    )
    plt.title(payload.title)
    return save_figure(output_path)


def plot_horizontal_bars(payload: ChartPayload, output_path: Path) -> Path | None:
    if payload.is_empty:
        return None
    series = payload.series[0]
    plt.figure(figsize=(10, max(3.0, 0.45 * len(payload.labels) + 1.0)))
    plt.barh(payload.labels, series.values, color=payload.meta.get("colors") or series.color)
    plt.gca().invert_yaxis()
    plt.title(payload.title)
    plt.xlabel("Vehicles")
    return save_figure(output_path)


def plot_range_distribution(payload: ChartPayload, output_path: Path) -> Path | None:
    if payload.is_empty:
        return None
    series = payload.series[0]
    plt.figure(figsize=(10, 4))
    plt.bar(payload.labels, series.values, color=payload.meta.get("colors") or series.color)
    plt.title(payload.title)
    plt.xlabel("Electric range")
    plt.ylabel("Vehicles")
    return save_figure(output_path)


def plot_stacked_groups(payload: ChartPayload, output_path: Path) -> Path | None:
    if payload.is_empty:
        return None
    plt.figure(figsize=(10, max(3.0, 0.6 * len(payload.labels) + 1.0)))
    offsets = np.zeros(len(payload.labels), dtype=float)
    for series in payload.series:
        values = np.asarray(series.values, dtype=float)
        plt.barh(payload.labels, values, left=offsets, color=series.color, label=series.name)
        offsets += values
    plt.gca().invert_yaxis()
    plt.title(payload.title)
    plt.xlabel("Vehicles")
    plt.legend(loc="lower right")
    return save_figure(output_path)


PLOTTERS = {
    "trend": plot_trend,
    "market_share": plot_market_share,
    "top_manufacturers": plot_horizontal_bars,
    "range_distribution": plot_range_distribution,
    "top_providers": plot_stacked_groups,
}


def plot_chart(payload: ChartPayload, output_path: Path) -> Path | None:
    plotter = PLOTTERS.get(payload.chart_id)
    if plotter is None:
        raise ValueError(f"No plotter registered for chart {payload.chart_id!r}")
    return plotter(payload, output_path)
