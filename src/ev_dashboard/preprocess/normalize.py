from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping

import numpy as np
import pandas as pd

from ev_dashboard.config import ColumnsConfig, NormalizationConfig
from ev_dashboard.io.schema import CanonicalColumns, normalize_columns

LOGGER = logging.getLogger(__name__)

NORMALIZED_COLUMNS = ["year", "category", "group_key", "geo", "metric"]


def _clean_text(values: pd.Series) -> pd.Series:
    return values.fillna("").astype(str).str.strip()


def classify_vehicle_type(value: object, config: NormalizationConfig) -> str:
    """Map a raw vehicle type description to BEV, PHEV or Unclassified.

    TypeA markers are tested before TypeB markers, so a description containing
    both resolves to TypeA. Matching is case-sensitive.
    """
    if value is None or (isinstance(value, float) and np.isnan(value)):
        return config.unclassified_label
    text = str(value).strip()
    if not text:
        return config.unclassified_label
    for category in (config.type_a, config.type_b):
        if any(marker in text for marker in category.markers):
            return category.label
    return config.unclassified_label


def _parse_years(values: pd.Series) -> pd.Series:
    numeric = pd.to_numeric(_clean_text(values), errors="coerce").astype(float)
    return numeric.where(np.isfinite(numeric) & (numeric == np.floor(numeric)))


def _parse_metric(values: pd.Series) -> pd.Series:
    numeric = pd.to_numeric(_clean_text(values), errors="coerce").astype(float)
    return numeric.where(np.isfinite(numeric))


def normalize_records(
    raw: pd.DataFrame | Iterable[Mapping[str, object]],
    columns: ColumnsConfig,
    config: NormalizationConfig,
) -> pd.DataFrame:
    """Derive one normalized record per raw row with a valid model year.

    Rows keep their input order. Malformed fields degrade to sentinels:
    blank make becomes ``""``, blank county becomes the unknown-geo sentinel,
    an unparseable range becomes ``NaN``. Only rows whose model year is
    missing or outside ``[min_year, max_year]`` are dropped, since no chart
    can place them.
    """
    frame = raw if isinstance(raw, pd.DataFrame) else pd.DataFrame.from_records(list(raw))
    if frame.empty:
        return _empty_normalized()

    canonical = normalize_columns(frame, columns, strict=False)

    years = _parse_years(canonical[CanonicalColumns.model_year])
    vehicle_type = _clean_text(canonical[CanonicalColumns.vehicle_type])
    geo = _clean_text(canonical[CanonicalColumns.county])

    normalized = pd.DataFrame(
        {
            "year": years,
            "category": vehicle_type.map(lambda value: classify_vehicle_type(value, config)),
            "group_key": _clean_text(canonical[CanonicalColumns.make]),
            "geo": geo.mask(geo == "", config.unknown_geo),
            "metric": _parse_metric(canonical[CanonicalColumns.electric_range]),
        }
    )

    valid_year = years.between(config.min_year, config.max_year).astype(bool)
    dropped = int((~valid_year).sum())
    if dropped:
        LOGGER.debug(
            "Excluded %d of %d rows with missing or out-of-range model year",
            dropped,
            len(normalized),
        )

    normalized = normalized[valid_year].reset_index(drop=True)
    normalized["year"] = normalized["year"].astype(int)
    return normalized[NORMALIZED_COLUMNS]


def _empty_normalized() -> pd.DataFrame:
    return pd.DataFrame(
        {
            "year": pd.Series(dtype=int),
            "category": pd.Series(dtype=object),
            "group_key": pd.Series(dtype=object),
            "geo": pd.Series(dtype=object),
            "metric": pd.Series(dtype=float),
        }
    )
