from __future__ import annotations

import json
from pathlib import Path

import typer

from ev_dashboard.config import ALL, DEFAULT_CONFIG_PATH, AppConfig, load_config
from ev_dashboard.filters import FilterConfig
from ev_dashboard.io.read import Dataset, DatasetLoadError, load_dataset
from ev_dashboard.logging import configure_logging
from ev_dashboard.pipeline.dashboard import CHART_NAMES, DashboardAggregator
from ev_dashboard.pipeline.export import export_dashboard
from ev_dashboard.report.payload import build_chart_payload

app = typer.Typer(no_args_is_help=True, add_completion=False)


def _load_app_config(config_path: Path) -> AppConfig:
    return load_config(config_path)


def _load_dataset_or_exit(csv: Path | None, cfg: AppConfig) -> Dataset:
    try:
        return load_dataset(csv_path=csv, config=cfg)
    except DatasetLoadError as exc:
        typer.echo(f"Could not load dataset: {exc}. Check the source and retry.", err=True)
        raise typer.Exit(code=1) from exc
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc


def _build_filters(
    *,
    year: int | None,
    year_min: int | None,
    year_max: int | None,
    category: str,
    county: str,
    top_n: int | None,
    recency: str,
    reference_year: int | None,
    year_bounds: tuple[int, int],
    default_year_range: tuple[int, int] | None = None,
) -> FilterConfig:
    year_range = default_year_range
    if year is not None:
        year_range = (year, year)
    elif year_min is not None or year_max is not None:
        lower = year_min if year_min is not None else year_bounds[0]
        upper = year_max if year_max is not None else year_bounds[1]
        year_range = (lower, upper)
    try:
        return FilterConfig(
            year_range=year_range,
            category=category,
            geo=county,
            top_n=top_n,
            recency=recency,
            reference_year=reference_year,
        )
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc


@app.command()
def summary(
    csv: Path | None = typer.Option(None, exists=True, readable=True, resolve_path=True),
    config: Path = typer.Option(DEFAULT_CONFIG_PATH, exists=True, readable=True, resolve_path=True),
) -> None:
    """Print the headline KPI figures for a registration CSV."""
    configure_logging()
    cfg = _load_app_config(config)
    dataset = _load_dataset_or_exit(csv, cfg)
    aggregator = DashboardAggregator(cfg)
    for key, value in aggregator.kpis(dataset).items():
        typer.echo(f"{key}: {value}")


@app.command()
def options(
    csv: Path | None = typer.Option(None, exists=True, readable=True, resolve_path=True),
    config: Path = typer.Option(DEFAULT_CONFIG_PATH, exists=True, readable=True, resolve_path=True),
) -> None:
    """List the values offered by the year, county and vehicle type filters."""
    configure_logging()
    cfg = _load_app_config(config)
    dataset = _load_dataset_or_exit(csv, cfg)
    typer.echo(json.dumps(DashboardAggregator(cfg).options(dataset), indent=2))


@app.command()
def chart(
    name: str = typer.Argument(..., help=f"One of: {', '.join(CHART_NAMES)}."),
    csv: Path | None = typer.Option(None, exists=True, readable=True, resolve_path=True),
    config: Path = typer.Option(DEFAULT_CONFIG_PATH, exists=True, readable=True, resolve_path=True),
    year: int | None = typer.Option(None, help="Single model year."),
    year_min: int | None = typer.Option(None),
    year_max: int | None = typer.Option(None),
    category: str = typer.Option(ALL, help="BEV, PHEV or All."),
    county: str = typer.Option(ALL),
    top_n: int | None = typer.Option(None, min=1),
    recency: str = typer.Option("all", help="'all' or 'last<N>', e.g. last5."),
    reference_year: int | None = typer.Option(
        None, help="Year that recency windows count back from. Defaults to the current year."
    ),
    as_json: bool = typer.Option(False, "--json", help="Print the chart payload as JSON."),
) -> None:
    """Print one chart's aggregated series."""
    configure_logging()
    if name not in CHART_NAMES:
        raise typer.BadParameter(f"Unknown chart {name!r}; expected one of {', '.join(CHART_NAMES)}")
    cfg = _load_app_config(config)
    filters = _build_filters(
        year=year,
        year_min=year_min,
        year_max=year_max,
        category=category,
        county=county,
        top_n=top_n,
        recency=recency,
        reference_year=reference_year,
        year_bounds=(cfg.normalization.min_year, cfg.normalization.max_year),
        default_year_range=cfg.charts.trend.year_range if name == "trend" else None,
    )
    dataset = _load_dataset_or_exit(csv, cfg)
    frame = DashboardAggregator(cfg).chart(name, dataset, filters)

    if as_json:
        typer.echo(json.dumps(build_chart_payload(name, frame, cfg).to_dict(), indent=2))
        return
    if frame.empty:
        typer.echo("No vehicles match the selected filters.")
        return
    typer.echo(frame.to_string(index=False))


@app.command()
def export(
    csv: Path | None = typer.Option(None, exists=True, readable=True, resolve_path=True),
    out: Path = typer.Option(Path("out"), resolve_path=True),
    config: Path = typer.Option(DEFAULT_CONFIG_PATH, exists=True, readable=True, resolve_path=True),
    figures: bool | None = typer.Option(
        None, "--figures/--no-figures", help="Override outputs.render_figures."
    ),
) -> None:
    """Aggregate every chart with its default filters and write the results to out/."""
    configure_logging()
    cfg = _load_app_config(config)
    if figures is not None:
        cfg.outputs.render_figures = figures
    dataset = _load_dataset_or_exit(csv, cfg)
    written = export_dashboard(dataset, out_dir=out, config=cfg)
    typer.echo(f"Export complete. Artifacts: {', '.join(sorted(written.keys()))}")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
