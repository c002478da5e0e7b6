from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any, TypeVar

import pandas as pd

from ev_dashboard.config import AppConfig
from ev_dashboard.features.aggregates import (
    category_distribution,
    count_by_year_and_category,
    filter_options,
    group_metrics,
    histogram,
    kpi_summary,
    metric_summary,
    rank_top_groups,
)
from ev_dashboard.filters import FilterConfig, build_predicate
from ev_dashboard.io.read import Dataset
from ev_dashboard.pipeline.debounce import Debouncer
from ev_dashboard.preprocess.normalize import normalize_records

LOGGER = logging.getLogger(__name__)

ResultT = TypeVar("ResultT")

CHART_NAMES = (
    "trend",
    "market_share",
    "top_manufacturers",
    "range_distribution",
    "top_providers",
)


class AggregationObserver:
    """Receives pipeline events; the base implementation ignores them."""

    def dataset_normalized(
        self, dataset: Dataset, n_raw: int, n_normalized: int, elapsed_seconds: float
    ) -> None:
        return None

    def cache_invalidated(self, dataset: Dataset) -> None:
        return None

    def aggregation_completed(
        self, chart: str, filters: FilterConfig, n_rows: int, elapsed_seconds: float
    ) -> None:
        return None


class LoggingObserver(AggregationObserver):
    def __init__(self, logger: logging.Logger | None = None) -> None:
        self.logger = logger or LOGGER

    def dataset_normalized(
        self, dataset: Dataset, n_raw: int, n_normalized: int, elapsed_seconds: float
    ) -> None:
        self.logger.info(
            "event=dataset_normalized source=%s n_raw=%d n_normalized=%d elapsed_ms=%.1f",
            dataset.source,
            n_raw,
            n_normalized,
            elapsed_seconds * 1000.0,
        )

    def cache_invalidated(self, dataset: Dataset) -> None:
        self.logger.info("event=cache_invalidated source=%s", dataset.source)

    def aggregation_completed(
        self, chart: str, filters: FilterConfig, n_rows: int, elapsed_seconds: float
    ) -> None:
        self.logger.debug(
            "event=aggregation_completed chart=%s filters=%s n_rows=%d elapsed_ms=%.1f",
            chart,
            filters.model_dump(exclude_defaults=True),
            n_rows,
            elapsed_seconds * 1000.0,
        )


class NormalizedCache:
    """Normalized record frames keyed by dataset handle identity."""

    def __init__(self) -> None:
        self._entries: dict[Dataset, pd.DataFrame] = {}

    def get(self, dataset: Dataset) -> pd.DataFrame | None:
        return self._entries.get(dataset)

    def put(self, dataset: Dataset, records: pd.DataFrame) -> None:
        self._entries[dataset] = records

    def invalidate(self, dataset: Dataset) -> bool:
        return self._entries.pop(dataset, None) is not None

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, dataset: object) -> bool:
        return dataset in self._entries

    def __len__(self) -> int:
        return len(self._entries)


class DashboardAggregator:
    """One entry point per dashboard chart over a cached, normalized dataset.

    Normalization runs once per dataset handle; every chart call rebuilds the
    filter predicate and reruns its aggregator over the cached records.
    """

    def __init__(
        self,
        config: AppConfig | None = None,
        *,
        observer: AggregationObserver | None = None,
        cache: NormalizedCache | None = None,
    ) -> None:
        self.config = config or AppConfig()
        self.observer = observer or LoggingObserver()
        self.cache = cache if cache is not None else NormalizedCache()

    @property
    def categories(self) -> list[str]:
        return self.config.normalization.tracked_labels

    @property
    def unknown_geo(self) -> str:
        return self.config.normalization.unknown_geo

    def normalized(self, dataset: Dataset) -> pd.DataFrame:
        cached = self.cache.get(dataset)
        if cached is not None:
            return cached

        started = time.perf_counter()
        records = normalize_records(
            dataset.raw,
            columns=self.config.columns,
            config=self.config.normalization,
        )
        self.cache.put(dataset, records)
        self.observer.dataset_normalized(
            dataset,
            n_raw=dataset.n_rows,
            n_normalized=int(len(records)),
            elapsed_seconds=time.perf_counter() - started,
        )
        return records

    def invalidate(self, dataset: Dataset) -> None:
        if self.cache.invalidate(dataset):
            self.observer.cache_invalidated(dataset)

    def _run(
        self,
        chart: str,
        filters: FilterConfig,
        aggregate: Callable[[pd.DataFrame], ResultT],
        dataset: Dataset,
    ) -> ResultT:
        records = self.normalized(dataset)
        started = time.perf_counter()
        series = aggregate(records)
        self.observer.aggregation_completed(
            chart,
            filters,
            n_rows=int(len(series)) if isinstance(series, pd.DataFrame) else 1,
            elapsed_seconds=time.perf_counter() - started,
        )
        return series

    def trend(self, dataset: Dataset, filters: FilterConfig | None = None) -> pd.DataFrame:
        chart_config = self.config.charts.trend
        if filters is None:
            filters = FilterConfig(year_range=chart_config.year_range)
        predicate = build_predicate(filters)
        return self._run(
            "trend",
            filters,
            lambda records: count_by_year_and_category(
                records,
                predicate,
                categories=self.categories,
                zero_fill=chart_config.zero_fill,
            ),
            dataset,
        )

    def market_share(self, dataset: Dataset, filters: FilterConfig | None = None) -> pd.DataFrame:
        chart_config = self.config.charts.market_share
        filters = filters if filters is not None else FilterConfig()
        predicate = build_predicate(filters)
        return self._run(
            "market_share",
            filters,
            lambda records: category_distribution(
                records,
                predicate,
                categories=self.categories,
                exclude_unknown_geo=chart_config.exclude_unknown_geo,
                unknown_geo=self.unknown_geo,
            ),
            dataset,
        )

    def top_manufacturers(
        self, dataset: Dataset, filters: FilterConfig | None = None
    ) -> pd.DataFrame:
        chart_config = self.config.charts.top_manufacturers
        filters = filters if filters is not None else FilterConfig()
        predicate = build_predicate(filters)
        top_n = filters.top_n if filters.top_n is not None else chart_config.top_n
        return self._run(
            "top_manufacturers",
            filters,
            lambda records: rank_top_groups(
                records,
                predicate,
                top_n=top_n,
                exclude_unknown_geo=chart_config.exclude_unknown_geo,
                unknown_geo=self.unknown_geo,
            ),
            dataset,
        )

    def range_distribution(
        self, dataset: Dataset, filters: FilterConfig | None = None
    ) -> pd.DataFrame:
        chart_config = self.config.charts.range_distribution
        filters = filters if filters is not None else FilterConfig()
        predicate = build_predicate(filters)
        return self._run(
            "range_distribution",
            filters,
            lambda records: histogram(
                records,
                predicate,
                bins=chart_config.bins,
                exclude_unknown_geo=chart_config.exclude_unknown_geo,
                unknown_geo=self.unknown_geo,
            ),
            dataset,
        )

    def top_providers(self, dataset: Dataset, filters: FilterConfig | None = None) -> pd.DataFrame:
        chart_config = self.config.charts.top_providers
        filters = filters if filters is not None else FilterConfig()
        predicate = build_predicate(filters)
        top_n = filters.top_n if filters.top_n is not None else chart_config.top_n
        return self._run(
            "top_providers",
            filters,
            lambda records: group_metrics(
                records,
                predicate,
                top_n=top_n,
                categories=self.categories,
                exclude_unknown_geo=chart_config.exclude_unknown_geo,
                unknown_geo=self.unknown_geo,
            ),
            dataset,
        )

    def range_summary(
        self, dataset: Dataset, filters: FilterConfig | None = None
    ) -> dict[str, Any]:
        chart_config = self.config.charts.range_distribution
        filters = filters if filters is not None else FilterConfig()
        predicate = build_predicate(filters)
        return self._run(
            "range_summary",
            filters,
            lambda records: metric_summary(
                records,
                predicate,
                exclude_unknown_geo=chart_config.exclude_unknown_geo,
                unknown_geo=self.unknown_geo,
            ),
            dataset,
        )

    def options(self, dataset: Dataset) -> dict[str, list[Any]]:
        return self._run(
            "options",
            FilterConfig(),
            lambda records: filter_options(
                records,
                categories=self.categories,
                unknown_geo=self.unknown_geo,
                recency_windows=self.config.charts.range_distribution.recency_windows,
            ),
            dataset,
        )

    def kpis(self, dataset: Dataset, filters: FilterConfig | None = None) -> dict[str, Any]:
        filters = filters if filters is not None else FilterConfig()
        predicate = build_predicate(filters)
        return self._run(
            "kpis",
            filters,
            lambda records: kpi_summary(
                records,
                predicate,
                categories=self.categories,
                unknown_geo=self.unknown_geo,
            ),
            dataset,
        )

    def chart(
        self, name: str, dataset: Dataset, filters: FilterConfig | None = None
    ) -> pd.DataFrame:
        if name not in CHART_NAMES:
            raise ValueError(f"Unknown chart {name!r}; expected one of {', '.join(CHART_NAMES)}")
        return getattr(self, name)(dataset, filters)

    def debounced(
        self,
        name: str,
        dataset: Dataset,
        on_result: Callable[[pd.DataFrame], None],
        **kwargs: Any,
    ) -> Debouncer[pd.DataFrame]:
        """Bind one chart to a debouncer that recomputes on the latest filters only."""
        if name not in CHART_NAMES:
            raise ValueError(f"Unknown chart {name!r}; expected one of {', '.join(CHART_NAMES)}")
        kwargs.setdefault("delay_seconds", self.config.debounce.delay_seconds)
        return Debouncer(
            compute=lambda filters: self.chart(name, dataset, filters),
            on_result=on_result,
            **kwargs,
        )
