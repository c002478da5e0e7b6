from __future__ import annotations

import logging
from typing import Any

import pandas as pd
import pytest

from ev_dashboard.config import AppConfig
from ev_dashboard.filters import FilterConfig
from ev_dashboard.io.read import Dataset
from ev_dashboard.pipeline.dashboard import (
    CHART_NAMES,
    AggregationObserver,
    DashboardAggregator,
    LoggingObserver,
    NormalizedCache,
)


class RecordingObserver(AggregationObserver):
    def __init__(self) -> None:
        self.events: list[tuple[str, Any]] = []

    def dataset_normalized(
        self, dataset: Dataset, n_raw: int, n_normalized: int, elapsed_seconds: float
    ) -> None:
        self.events.append(("normalized", (n_raw, n_normalized)))

    def cache_invalidated(self, dataset: Dataset) -> None:
        self.events.append(("invalidated", dataset.source))

    def aggregation_completed(
        self, chart: str, filters: FilterConfig, n_rows: int, elapsed_seconds: float
    ) -> None:
        self.events.append(("aggregated", (chart, n_rows)))

    def names(self) -> list[str]:
        return [name for name, _ in self.events]


def test_normalization_runs_once_per_dataset(sample_dataset: Dataset) -> None:
    observer = RecordingObserver()
    aggregator = DashboardAggregator(AppConfig(), observer=observer)

    for name in CHART_NAMES:
        aggregator.chart(name, sample_dataset)
    aggregator.chart("trend", sample_dataset, FilterConfig(geo="King"))

    assert observer.names().count("normalized") == 1
    assert ("normalized", (8, 6)) in observer.events
    assert observer.names().count("aggregated") == len(CHART_NAMES) + 1
    assert sample_dataset in aggregator.cache


def test_invalidate_forces_renormalization(sample_dataset: Dataset) -> None:
    observer = RecordingObserver()
    aggregator = DashboardAggregator(AppConfig(), observer=observer)

    aggregator.market_share(sample_dataset)
    aggregator.invalidate(sample_dataset)
    aggregator.invalidate(sample_dataset)
    aggregator.market_share(sample_dataset)

    assert observer.names() == [
        "normalized",
        "aggregated",
        "invalidated",
        "normalized",
        "aggregated",
    ]


def test_reloaded_dataset_is_normalized_again(raw_frame: pd.DataFrame) -> None:
    observer = RecordingObserver()
    aggregator = DashboardAggregator(AppConfig(), observer=observer)

    aggregator.trend(Dataset(raw=raw_frame))
    aggregator.trend(Dataset(raw=raw_frame))

    assert observer.names().count("normalized") == 2
    assert len(aggregator.cache) == 2


def test_shared_cache_between_aggregators(sample_dataset: Dataset) -> None:
    cache = NormalizedCache()
    first = RecordingObserver()
    second = RecordingObserver()

    DashboardAggregator(observer=first, cache=cache).trend(sample_dataset)
    DashboardAggregator(observer=second, cache=cache).trend(sample_dataset)

    assert first.names().count("normalized") == 1
    assert second.names().count("normalized") == 0


def test_trend_defaults_to_configured_year_window(sample_dataset: Dataset) -> None:
    cfg = AppConfig.model_validate({"charts": {"trend": {"year_range": [2021, 2022]}}})
    aggregator = DashboardAggregator(cfg, observer=RecordingObserver())

    trend = aggregator.trend(sample_dataset)

    assert trend.to_dict(orient="records") == [
        {"year": 2021, "BEV": 1, "PHEV": 1},
        {"year": 2022, "BEV": 0, "PHEV": 0},
    ]


def test_market_share_leaves_out_unknown_county_by_default(sample_dataset: Dataset) -> None:
    aggregator = DashboardAggregator(observer=RecordingObserver())

    share = aggregator.market_share(sample_dataset)

    assert share["count"].tolist() == [2, 2]
    assert share["percentage"].tolist() == [50.0, 50.0]


def test_market_share_exclusion_is_configurable(sample_dataset: Dataset) -> None:
    cfg = AppConfig.model_validate({"charts": {"market_share": {"exclude_unknown_geo": False}}})

    share = DashboardAggregator(cfg, observer=RecordingObserver()).market_share(sample_dataset)

    assert share["count"].tolist() == [3, 2]


def test_rankings_take_top_n_from_filters_or_config(sample_dataset: Dataset) -> None:
    cfg = AppConfig.model_validate({"charts": {"top_providers": {"top_n": 2}}})
    aggregator = DashboardAggregator(cfg, observer=RecordingObserver())

    assert len(aggregator.top_manufacturers(sample_dataset)) == 3
    assert len(aggregator.top_manufacturers(sample_dataset, FilterConfig(top_n=1))) == 1
    assert aggregator.top_providers(sample_dataset)["group_key"].tolist() == ["TOYOTA", "TESLA"]


def test_range_distribution_honours_recency(sample_dataset: Dataset) -> None:
    aggregator = DashboardAggregator(observer=RecordingObserver())

    recent = aggregator.range_distribution(
        sample_dataset, FilterConfig(recency="last2", reference_year=2023)
    )

    assert recent["label"].tolist() == ["100-200 mi", "200-300 mi"]
    assert aggregator.range_summary(sample_dataset)["max_range"] == 300.0


def test_options_and_kpis(sample_dataset: Dataset) -> None:
    aggregator = DashboardAggregator(observer=RecordingObserver())

    assert aggregator.options(sample_dataset)["counties"] == ["King", "Pierce", "Snohomish"]
    assert aggregator.options(sample_dataset)["recency"] == ["all", "last10", "last5"]
    assert aggregator.kpis(sample_dataset, FilterConfig(category="BEV"))["market_leader"] == "TESLA"


def test_unknown_chart_name_is_rejected(sample_dataset: Dataset) -> None:
    aggregator = DashboardAggregator(observer=RecordingObserver())

    with pytest.raises(ValueError, match="Unknown chart"):
        aggregator.chart("heatmap", sample_dataset)
    with pytest.raises(ValueError, match="Unknown chart"):
        aggregator.debounced("heatmap", sample_dataset, lambda _frame: None)


def test_debounced_chart_delivers_latest_result(sample_dataset: Dataset) -> None:
    timers: list[Any] = []

    class ManualTimer:
        def __init__(self, interval: float, function, args: tuple = ()) -> None:
            self.interval = interval
            self.function = function
            self.args = args
            timers.append(self)

        def start(self) -> None:
            return None

        def cancel(self) -> None:
            return None

    results: list[pd.DataFrame] = []
    aggregator = DashboardAggregator(observer=RecordingObserver())
    debouncer = aggregator.debounced(
        "market_share", sample_dataset, results.append, timer_factory=ManualTimer
    )

    debouncer.submit(FilterConfig(geo="Pierce"))
    debouncer.submit(FilterConfig(geo="King"))
    for timer in timers:
        timer.function(*timer.args)

    assert timers[-1].interval == pytest.approx(0.3)
    assert len(results) == 1
    assert results[0]["count"].tolist() == [1, 2]


def test_logging_observer_emits_structured_events(sample_dataset: Dataset, caplog) -> None:
    caplog.set_level(logging.DEBUG, logger="ev_dashboard.pipeline.dashboard")
    aggregator = DashboardAggregator(observer=LoggingObserver())

    aggregator.top_manufacturers(sample_dataset, FilterConfig(geo="King"))
    aggregator.invalidate(sample_dataset)

    assert "event=dataset_normalized source=sample.csv n_raw=8 n_normalized=6" in caplog.text
    assert "event=aggregation_completed chart=top_manufacturers" in caplog.text
    assert "'geo': 'King'" in caplog.text
    assert "event=cache_invalidated source=sample.csv" in caplog.text


def test_summary_views_notify_observer(sample_dataset: Dataset) -> None:
    observer = RecordingObserver()
    aggregator = DashboardAggregator(observer=observer)

    aggregator.range_summary(sample_dataset)
    aggregator.options(sample_dataset)
    aggregator.kpis(sample_dataset, FilterConfig(category="BEV"))

    completed = [payload for name, payload in observer.events if name == "aggregated"]
    assert completed == [("range_summary", 1), ("options", 1), ("kpis", 1)]


def test_recency_windows_offered_follow_config(sample_dataset: Dataset) -> None:
    cfg = AppConfig.model_validate({"charts": {"range_distribution": {"recency_windows": [3]}}})

    options = DashboardAggregator(cfg, observer=RecordingObserver()).options(sample_dataset)

    assert options["recency"] == ["all", "last3"]
