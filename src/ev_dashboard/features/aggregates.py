from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import numpy as np
import pandas as pd

from ev_dashboard.config import DEFAULT_RANGE_BINS, BinConfig
from ev_dashboard.filters import RecordPredicate

DEFAULT_CATEGORIES = ("BEV", "PHEV")
UNKNOWN_GEO = "Unknown"


def round_half_up(values: Any, digits: int = 1) -> Any:
    """Round to ``digits`` decimals with exact ties going away from zero.

    Works on scalars and Series alike; the built-in ``round`` and
    ``Series.round`` send ties to the even neighbour instead.
    """
    scale = 10.0**digits
    return np.sign(values) * np.floor(np.abs(values) * scale + 0.5) / scale


def percentage(count: float, total: float) -> float:
    if total <= 0:
        return 0.0
    return float(round_half_up(100.0 * float(count) / float(total)))


def _percentages(counts: pd.Series, totals: pd.Series | float) -> pd.Series:
    totals_series = (
        totals if isinstance(totals, pd.Series) else pd.Series(float(totals), index=counts.index)
    )
    values = round_half_up(100.0 * counts.astype(float) / totals_series.astype(float))
    return values.where(totals_series > 0, 0.0)


def select_survivors(
    records: pd.DataFrame,
    predicate: RecordPredicate | None = None,
    *,
    exclude_unknown_geo: bool = False,
    unknown_geo: str = UNKNOWN_GEO,
) -> pd.DataFrame:
    if records.empty:
        return records
    mask = predicate(records) if predicate is not None else pd.Series(True, index=records.index)
    if exclude_unknown_geo:
        mask &= records["geo"] != unknown_geo
    return records[mask]


def _keyed(survivors: pd.DataFrame) -> pd.DataFrame:
    if survivors.empty:
        return survivors
    return survivors[survivors["group_key"].fillna("").astype(str).str.strip() != ""]


def count_by_year_and_category(
    records: pd.DataFrame,
    predicate: RecordPredicate | None = None,
    *,
    categories: Sequence[str] = DEFAULT_CATEGORIES,
    zero_fill: bool = True,
    exclude_unknown_geo: bool = False,
    unknown_geo: str = UNKNOWN_GEO,
) -> pd.DataFrame:
    """Count surviving vehicles per model year, split by tracked category.

    Unclassified records still create their year row but add to no column.
    With ``zero_fill`` years between the first and last surviving year that
    have no records are emitted as zero rows.
    """
    labels = list(categories)
    survivors = select_survivors(
        records, predicate, exclude_unknown_geo=exclude_unknown_geo, unknown_geo=unknown_geo
    )
    if survivors.empty:
        return pd.DataFrame({column: pd.Series(dtype=int) for column in ["year", *labels]})

    indicators = {
        label: (survivors["category"] == label).astype(int) for label in labels
    }
    grouped = (
        pd.DataFrame({"year": survivors["year"].astype(int), **indicators})
        .groupby("year", sort=True)[labels]
        .sum()
        .sort_index()
    )
    if zero_fill:
        full_index = pd.RangeIndex(int(grouped.index.min()), int(grouped.index.max()) + 1)
        grouped = grouped.reindex(full_index, fill_value=0)
    grouped.index.name = "year"
    return grouped.astype(int).reset_index()


def category_distribution(
    records: pd.DataFrame,
    predicate: RecordPredicate | None = None,
    *,
    categories: Sequence[str] = DEFAULT_CATEGORIES,
    exclude_unknown_geo: bool = False,
    unknown_geo: str = UNKNOWN_GEO,
) -> pd.DataFrame:
    """Count and share of each tracked category; Unclassified is left out of both."""
    survivors = select_survivors(
        records, predicate, exclude_unknown_geo=exclude_unknown_geo, unknown_geo=unknown_geo
    )
    counts = [
        int((survivors["category"] == label).sum()) if not survivors.empty else 0
        for label in categories
    ]
    total = sum(counts)
    return pd.DataFrame(
        {
            "label": list(categories),
            "count": counts,
            "percentage": [percentage(count, total) for count in counts],
        }
    )


def rank_top_groups(
    records: pd.DataFrame,
    predicate: RecordPredicate | None = None,
    *,
    top_n: int,
    exclude_unknown_geo: bool = False,
    unknown_geo: str = UNKNOWN_GEO,
) -> pd.DataFrame:
    """Rank group keys by surviving record count.

    Ties keep the order in which groups were first encountered. The
    percentage is taken over all survivors that carry a group key.
    """
    empty = pd.DataFrame(
        {
            "group_key": pd.Series(dtype=object),
            "count": pd.Series(dtype=int),
            "percentage": pd.Series(dtype=float),
        }
    )
    if top_n is None or int(top_n) <= 0:
        return empty
    survivors = _keyed(
        select_survivors(
            records, predicate, exclude_unknown_geo=exclude_unknown_geo, unknown_geo=unknown_geo
        )
    )
    if survivors.empty:
        return empty

    counts = survivors.groupby("group_key", sort=False).size().rename("count").reset_index()
    ranked = counts.sort_values("count", ascending=False, kind="stable").head(int(top_n))
    ranked["percentage"] = _percentages(ranked["count"], float(len(survivors)))
    return ranked.reset_index(drop=True)


def _bin_mask(metric: pd.Series, bin_config: BinConfig) -> pd.Series:
    mask = metric >= bin_config.min
    if bin_config.max is not None:
        mask &= metric < bin_config.max
    return mask


def histogram(
    records: pd.DataFrame,
    predicate: RecordPredicate | None = None,
    *,
    bins: Sequence[BinConfig] | None = None,
    exclude_unknown_geo: bool = False,
    unknown_geo: str = UNKNOWN_GEO,
) -> pd.DataFrame:
    """Bucket the numeric metric into half-open ``[min, max)`` ranges.

    The last bin is unbounded above when its ``max`` is ``None``. Records
    without a positive metric are not counted and empty bins are omitted.
    Percentages are taken over every surviving positive metric, including
    values that fall outside all configured bins.
    """
    bin_configs = list(bins) if bins is not None else list(DEFAULT_RANGE_BINS)
    empty = pd.DataFrame(
        {
            "label": pd.Series(dtype=object),
            "lower": pd.Series(dtype=float),
            "upper": pd.Series(dtype=float),
            "count": pd.Series(dtype=int),
            "percentage": pd.Series(dtype=float),
        }
    )
    survivors = select_survivors(
        records, predicate, exclude_unknown_geo=exclude_unknown_geo, unknown_geo=unknown_geo
    )
    if survivors.empty or not bin_configs:
        return empty

    metric = survivors["metric"].astype(float)
    positive = metric[metric > 0]
    masks = [_bin_mask(positive, bin_config) for bin_config in bin_configs]
    valid_total = int(len(positive))

    rows: list[dict[str, Any]] = []
    for bin_config, mask in zip(bin_configs, masks):
        count = int(mask.sum())
        if count == 0:
            continue
        rows.append(
            {
                "label": bin_config.label,
                "lower": float(bin_config.min),
                "upper": float(bin_config.max) if bin_config.max is not None else np.nan,
                "count": count,
                "percentage": percentage(count, valid_total),
            }
        )
    if not rows:
        return empty
    return pd.DataFrame(rows, columns=list(empty.columns))


def group_metrics(
    records: pd.DataFrame,
    predicate: RecordPredicate | None = None,
    *,
    top_n: int,
    categories: Sequence[str] = DEFAULT_CATEGORIES,
    exclude_unknown_geo: bool = False,
    unknown_geo: str = UNKNOWN_GEO,
) -> pd.DataFrame:
    """Composite per-group view: totals, category split and distinct model years."""
    labels = list(categories)
    count_columns = [f"n_{label.lower()}" for label in labels]
    percentage_columns = [f"{label.lower()}_percentage" for label in labels]
    columns = ["group_key", "n_total", *count_columns, "n_years", *percentage_columns]
    empty = pd.DataFrame({column: pd.Series(dtype=object) for column in columns})
    if top_n is None or int(top_n) <= 0:
        return empty
    survivors = _keyed(
        select_survivors(
            records, predicate, exclude_unknown_geo=exclude_unknown_geo, unknown_geo=unknown_geo
        )
    )
    if survivors.empty:
        return empty

    indicators = {
        column: (survivors["category"] == label).astype(int)
        for column, label in zip(count_columns, labels)
    }
    grouped = (
        survivors.assign(**indicators)
        .groupby("group_key", sort=False)
        .agg(
            n_total=("year", "size"),
            n_years=("year", "nunique"),
            **{column: (column, "sum") for column in count_columns},
        )
        .reset_index()
    )
    for count_column, percentage_column in zip(count_columns, percentage_columns):
        grouped[percentage_column] = _percentages(grouped[count_column], grouped["n_total"])

    ranked = grouped.sort_values("n_total", ascending=False, kind="stable").head(int(top_n))
    return ranked[columns].reset_index(drop=True)


def metric_summary(
    records: pd.DataFrame,
    predicate: RecordPredicate | None = None,
    *,
    exclude_unknown_geo: bool = False,
    unknown_geo: str = UNKNOWN_GEO,
) -> dict[str, Any]:
    survivors = select_survivors(
        records, predicate, exclude_unknown_geo=exclude_unknown_geo, unknown_geo=unknown_geo
    )
    metric = survivors["metric"].astype(float) if not survivors.empty else pd.Series(dtype=float)
    positive = metric[metric > 0]
    if positive.empty:
        return {"n_vehicles": 0, "mean_range": 0, "max_range": 0.0}
    return {
        "n_vehicles": int(len(positive)),
        "mean_range": int(round_half_up(float(positive.mean()), 0)),
        "max_range": float(positive.max()),
    }


def filter_options(
    records: pd.DataFrame,
    *,
    categories: Sequence[str] = DEFAULT_CATEGORIES,
    unknown_geo: str = UNKNOWN_GEO,
    recency_windows: Sequence[int] = (),
) -> dict[str, list[Any]]:
    """Values offered by the year, county, vehicle type and recency selectors."""
    recency = ["all", *(f"last{int(window)}" for window in recency_windows)]
    if records.empty:
        return {
            "years": [],
            "counties": [],
            "categories": list(categories),
            "recency": recency,
        }
    years = sorted(int(year) for year in records["year"].dropna().unique())
    counties = sorted(
        str(geo) for geo in records["geo"].dropna().unique() if str(geo) != unknown_geo
    )
    return {
        "years": years,
        "counties": counties,
        "categories": list(categories),
        "recency": recency,
    }


def kpi_summary(
    records: pd.DataFrame,
    predicate: RecordPredicate | None = None,
    *,
    categories: Sequence[str] = DEFAULT_CATEGORIES,
    unknown_geo: str = UNKNOWN_GEO,
) -> dict[str, Any]:
    """Headline figures for the dashboard header cards."""
    survivors = select_survivors(records, predicate)
    summary: dict[str, Any] = {
        "total_vehicles": int(len(survivors)),
        "market_leader": None,
        "market_leader_share": 0.0,
        f"{categories[0].lower()}_share": 0.0,
        "top_county": None,
        "latest_year": None,
        "latest_year_growth": 0.0,
    }
    if survivors.empty:
        return summary

    leaders = rank_top_groups(survivors, top_n=1)
    if not leaders.empty:
        summary["market_leader"] = str(leaders.loc[0, "group_key"])
        summary["market_leader_share"] = float(leaders.loc[0, "percentage"])

    distribution = category_distribution(survivors, categories=categories)
    summary[f"{categories[0].lower()}_share"] = float(distribution.loc[0, "percentage"])

    located = survivors[survivors["geo"] != unknown_geo]
    if not located.empty:
        county_counts = located.groupby("geo", sort=False).size()
        summary["top_county"] = str(
            county_counts.sort_values(ascending=False, kind="stable").index[0]
        )

    per_year = survivors.groupby("year").size().sort_index()
    latest_year = int(per_year.index.max())
    previous = int(per_year.get(latest_year - 1, 0))
    summary["latest_year"] = latest_year
    if previous > 0:
        summary["latest_year_growth"] = float(
            round_half_up(100.0 * (int(per_year[latest_year]) - previous) / previous)
        )
    return summary
