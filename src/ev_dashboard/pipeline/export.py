from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path

import pandas as pd

from ev_dashboard.config import AppConfig
from ev_dashboard.filters import FilterConfig
from ev_dashboard.io.read import Dataset
from ev_dashboard.io.write import write_summary, write_table
from ev_dashboard.paths import OutputPaths, build_output_paths
from ev_dashboard.pipeline.dashboard import CHART_NAMES, DashboardAggregator
from ev_dashboard.report.contracts import ChartPayload, default_color_semantics
from ev_dashboard.report.payload import build_chart_payload
from ev_dashboard.viz.charts import plot_chart

LOGGER = logging.getLogger(__name__)


def build_chart_series(
    dataset: Dataset,
    aggregator: DashboardAggregator,
    filters: Mapping[str, FilterConfig] | None = None,
) -> dict[str, pd.DataFrame]:
    selected = filters or {}
    return {name: aggregator.chart(name, dataset, selected.get(name)) for name in CHART_NAMES}


def _render_figures(
    payloads: dict[str, ChartPayload],
    paths: OutputPaths,
    figure_suffix: str,
) -> dict[str, Path]:
    written: dict[str, Path] = {}
    try:
        for name, payload in payloads.items():
            figure_path = plot_chart(payload, paths.figure(name, figure_suffix))
            if figure_path is not None:
                written[name] = figure_path
    except Exception:  # pragma: no cover
        LOGGER.exception("Failed rendering one or more dashboard figures")
    return written


def export_dashboard(
    dataset: Dataset,
    out_dir: Path,
    config: AppConfig,
    *,
    filters: Mapping[str, FilterConfig] | None = None,
    aggregator: DashboardAggregator | None = None,
) -> dict[str, Path]:
    """Aggregate every chart and write tables, payload JSON and figures."""
    aggregator = aggregator or DashboardAggregator(config)
    paths = build_output_paths(out_dir)
    series = build_chart_series(dataset, aggregator, filters)

    written: dict[str, Path] = {}
    for name, table in series.items():
        written[f"tables.{name}"] = write_table(
            table,
            paths.table(name, config.outputs.tables_format),
            fmt=config.outputs.tables_format,
        )

    payloads = {name: build_chart_payload(name, table, config) for name, table in series.items()}
    written["summary.payloads"] = write_summary(
        {
            "source": dataset.source,
            "colors": default_color_semantics(),
            "charts": {name: payload.to_dict() for name, payload in payloads.items()},
        },
        paths.summary_file("payloads"),
    )
    range_filters = (filters or {}).get("range_distribution")
    written["summary.kpis"] = write_summary(
        {
            "kpis": aggregator.kpis(dataset),
            "range_summary": aggregator.range_summary(dataset, range_filters),
            "filter_options": aggregator.options(dataset),
        },
        paths.summary_file("kpis"),
    )

    if config.outputs.render_figures:
        for name, figure_path in _render_figures(
            payloads, paths, config.outputs.figures_format
        ).items():
            written[f"figures.{name}"] = figure_path

    LOGGER.info("Exported %d dashboard artifacts to %s", len(written), out_dir)
    return written
