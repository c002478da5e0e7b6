from __future__ import annotations

from dataclasses import dataclass

import pandas as pd

from ev_dashboard.config import ColumnsConfig


@dataclass(frozen=True)
class CanonicalColumns:
    model_year: str = "model_year"
    vehicle_type: str = "vehicle_type"
    make: str = "make"
    county: str = "county"
    electric_range: str = "electric_range"


REQUIRED_COLUMNS = [
    CanonicalColumns.model_year,
    CanonicalColumns.vehicle_type,
    CanonicalColumns.make,
    CanonicalColumns.county,
    CanonicalColumns.electric_range,
]


def source_rename_map(columns: ColumnsConfig) -> dict[str, str]:
    return {
        columns.model_year: CanonicalColumns.model_year,
        columns.vehicle_type: CanonicalColumns.vehicle_type,
        columns.make: CanonicalColumns.make,
        columns.county: CanonicalColumns.county,
        columns.electric_range: CanonicalColumns.electric_range,
    }


def missing_source_columns(df: pd.DataFrame, columns: ColumnsConfig) -> list[str]:
    return [source for source in source_rename_map(columns) if source not in df.columns]


def normalize_columns(
    df: pd.DataFrame,
    columns: ColumnsConfig,
    *,
    strict: bool = True,
) -> pd.DataFrame:
    """Rename source columns to the canonical names used by the aggregation core.

    With ``strict=False`` absent source columns are added as empty so that
    downstream normalization degrades them to sentinel values.
    """
    missing = missing_source_columns(df, columns)
    if missing and strict:
        missing_str = ", ".join(missing)
        raise ValueError(f"Missing required columns in CSV: {missing_str}")

    renamed = df.rename(columns=source_rename_map(columns))
    for column in REQUIRED_COLUMNS:
        if column not in renamed.columns:
            renamed[column] = pd.Series([None] * len(renamed), index=renamed.index, dtype=object)
    return renamed[REQUIRED_COLUMNS]
