from __future__ import annotations

import json

import numpy as np
import pytest

from ev_dashboard.config import AppConfig
from ev_dashboard.io.read import Dataset
from ev_dashboard.pipeline.dashboard import CHART_NAMES, AggregationObserver, DashboardAggregator
from ev_dashboard.report.contracts import (
    ChartPayload,
    SeriesPayload,
    category_color,
    category_display_name,
    default_color_semantics,
    palette_color,
)
from ev_dashboard.report.payload import build_chart_payload


def _payloads(dataset: Dataset) -> dict[str, ChartPayload]:
    cfg = AppConfig()
    aggregator = DashboardAggregator(cfg, observer=AggregationObserver())
    return {
        name: build_chart_payload(name, aggregator.chart(name, dataset), cfg)
        for name in CHART_NAMES
    }


def test_every_chart_payload_is_json_serializable(sample_dataset: Dataset) -> None:
    payloads = _payloads(sample_dataset)

    for name, payload in payloads.items():
        encoded = json.dumps(payload.to_dict(), allow_nan=False)
        assert json.loads(encoded)["chart_id"] == name


def test_trend_payload_has_one_series_per_category(sample_dataset: Dataset) -> None:
    payload = _payloads(sample_dataset)["trend"]

    assert payload.kind == "line"
    assert payload.labels == (2020, 2021, 2022, 2023)
    assert [series.key for series in payload.series] == ["BEV", "PHEV"]
    assert payload.series[0].values == (1, 1, 0, 1)
    assert payload.series[0].color == category_color("BEV")
    assert payload.series[1].name == "Plug-in Hybrid (PHEV)"


def test_market_share_payload_carries_colors_and_percentages(sample_dataset: Dataset) -> None:
    payload = _payloads(sample_dataset)["market_share"]

    assert payload.kind == "pie"
    assert payload.labels == ("Battery Electric (BEV)", "Plug-in Hybrid (PHEV)")
    assert payload.meta["colors"] == ["#10b981", "#f59e0b"]
    assert payload.meta["percentages"] == [50.0, 50.0]


def test_range_distribution_payload_uses_bin_colors(sample_dataset: Dataset) -> None:
    payload = _payloads(sample_dataset)["range_distribution"]

    assert payload.labels == ("0-100 mi", "100-200 mi", "200-300 mi", "300-400 mi")
    assert payload.meta["colors"] == ["#ef4444", "#f97316", "#eab308", "#22c55e"]
    assert payload.rows[0]["upper"] == 100.0


def test_providers_payload_is_stacked_by_category(sample_dataset: Dataset) -> None:
    payload = _payloads(sample_dataset)["top_providers"]

    assert payload.kind == "stacked_bar"
    assert payload.labels == ("TOYOTA", "TESLA", "NISSAN")
    assert [series.key for series in payload.series] == ["n_bev", "n_phev"]
    assert payload.series[1].values == (2, 0, 0)


def test_payload_rows_convert_numpy_and_missing_values() -> None:
    payload = ChartPayload(
        chart_id="range_distribution",
        kind="bar",
        title="Range",
        labels=(np.int64(1),),
        series=(SeriesPayload(key="count", name="Vehicles", color="#000", values=(np.int64(3),)),),
        rows=({"upper": np.nan, "count": np.int64(3)},),
    )

    assert payload.labels == (1,)
    assert type(payload.series[0].values[0]) is int
    assert payload.rows[0] == {"upper": None, "count": 3}


def test_payload_validation() -> None:
    with pytest.raises(ValueError, match="chart kind"):
        ChartPayload(chart_id="x", kind="scatter", title="", labels=(), series=())
    with pytest.raises(ValueError, match="values"):
        ChartPayload(
            chart_id="x",
            kind="bar",
            title="",
            labels=("a", "b"),
            series=(SeriesPayload(key="count", name="n", color="#000", values=(1,)),),
        )
    with pytest.raises(ValueError, match="series key"):
        SeriesPayload(key=" ", name="n", color="#000")


def test_unknown_chart_has_no_payload_builder(sample_dataset: Dataset) -> None:
    frame = DashboardAggregator(observer=AggregationObserver()).trend(sample_dataset)

    with pytest.raises(ValueError, match="No payload builder"):
        build_chart_payload("heatmap", frame, AppConfig())


def test_color_helpers() -> None:
    semantics = default_color_semantics()
    semantics["category"]["BEV"] = "#000000"

    assert category_color("BEV") == "#10b981"
    assert category_color("Hydrogen") == "#475569"
    assert category_display_name("Hydrogen") == "Hydrogen"
    assert palette_color(0) == palette_color(10)
