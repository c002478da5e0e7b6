from __future__ import annotations

from collections.abc import Sequence

import pandas as pd

from ev_dashboard.config import AppConfig, BinConfig
from ev_dashboard.report.contracts import (
    ChartPayload,
    SeriesPayload,
    category_color,
    category_display_name,
    palette_color,
)

CHART_TITLES = {
    "trend": "EV registrations by model year",
    "market_share": "BEV vs PHEV market share",
    "top_manufacturers": "Top manufacturers",
    "range_distribution": "Electric range distribution",
    "top_providers": "Top electric vehicle providers",
}


def _rows(frame: pd.DataFrame) -> tuple[dict[str, object], ...]:
    return tuple(frame.to_dict(orient="records"))


def trend_payload(frame: pd.DataFrame, categories: Sequence[str]) -> ChartPayload:
    labels = frame["year"].tolist()
    series = tuple(
        SeriesPayload(
            key=label,
            name=category_display_name(label),
            color=category_color(label),
            values=tuple(frame[label].tolist()),
        )
        for label in categories
    )
    return ChartPayload(
        chart_id="trend",
        kind="line",
        title=CHART_TITLES["trend"],
        labels=tuple(labels),
        series=series,
        rows=_rows(frame),
    )


def market_share_payload(frame: pd.DataFrame) -> ChartPayload:
    labels = [category_display_name(label) for label in frame["label"].tolist()]
    return ChartPayload(
        chart_id="market_share",
        kind="pie",
        title=CHART_TITLES["market_share"],
        labels=tuple(labels),
        series=(
            SeriesPayload(
                key="count",
                name="Vehicles",
                color=palette_color(0),
                values=tuple(frame["count"].tolist()),
            ),
        ),
        rows=_rows(frame),
        meta={
            "colors": [category_color(label) for label in frame["label"].tolist()],
            "percentages": frame["percentage"].tolist(),
        },
    )


def ranking_payload(frame: pd.DataFrame) -> ChartPayload:
    return ChartPayload(
        chart_id="top_manufacturers",
        kind="bar",
        title=CHART_TITLES["top_manufacturers"],
        labels=tuple(frame["group_key"].tolist()),
        series=(
            SeriesPayload(
                key="count",
                name="Vehicles",
                color=palette_color(0),
                values=tuple(frame["count"].tolist()),
            ),
        ),
        rows=_rows(frame),
        meta={"colors": [palette_color(index) for index in range(len(frame))]},
    )


def range_distribution_payload(
    frame: pd.DataFrame, bins: Sequence[BinConfig]
) -> ChartPayload:
    colors_by_label = {bin_config.label: bin_config.color for bin_config in bins}
    labels = frame["label"].tolist()
    return ChartPayload(
        chart_id="range_distribution",
        kind="bar",
        title=CHART_TITLES["range_distribution"],
        labels=tuple(labels),
        series=(
            SeriesPayload(
                key="count",
                name="Vehicles",
                color=palette_color(0),
                values=tuple(frame["count"].tolist()),
            ),
        ),
        rows=_rows(frame),
        meta={"colors": [colors_by_label.get(label, palette_color(0)) for label in labels]},
    )


def providers_payload(frame: pd.DataFrame, categories: Sequence[str]) -> ChartPayload:
    series = tuple(
        SeriesPayload(
            key=f"n_{label.lower()}",
            name=category_display_name(label),
            color=category_color(label),
            values=tuple(frame[f"n_{label.lower()}"].tolist()),
        )
        for label in categories
    )
    return ChartPayload(
        chart_id="top_providers",
        kind="stacked_bar",
        title=CHART_TITLES["top_providers"],
        labels=tuple(frame["group_key"].tolist()),
        series=series,
        rows=_rows(frame),
    )


def build_chart_payload(name: str, frame: pd.DataFrame, config: AppConfig) -> ChartPayload:
    categories = config.normalization.tracked_labels
    if name == "trend":
        return trend_payload(frame, categories)
    if name == "market_share":
        return market_share_payload(frame)
    if name == "top_manufacturers":
        return ranking_payload(frame)
    if name == "range_distribution":
        return range_distribution_payload(frame, config.charts.range_distribution.bins)
    if name == "top_providers":
        return providers_payload(frame, categories)
    raise ValueError(f"No payload builder for chart {name!r}")
