from __future__ import annotations

import re
from collections.abc import Callable, Mapping
from datetime import date

import pandas as pd
from pydantic import BaseModel, ConfigDict, field_validator

from ev_dashboard.config import ALL

RecordPredicate = Callable[[pd.DataFrame], pd.Series]

_RECENCY_PATTERN = re.compile(r"^last(\d+)$")


class FilterConfig(BaseModel):
    """Filter selection for one chart.

    ``None`` and ``"All"`` both mean the dimension is not filtered. A single
    year selection is expressed as ``year_range=(year, year)``.
    """

    model_config = ConfigDict(frozen=True)

    year_range: tuple[int, int] | None = None
    category: str = ALL
    geo: str = ALL
    top_n: int | None = None
    recency: str = "all"
    reference_year: int | None = None

    @field_validator("recency")
    @classmethod
    def _check_recency(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized != "all" and not _RECENCY_PATTERN.match(normalized):
            raise ValueError(f"recency must be 'all' or 'last<N>', got {value!r}")
        return normalized

    @property
    def recency_years(self) -> int | None:
        match = _RECENCY_PATTERN.match(self.recency)
        return int(match.group(1)) if match else None

    def resolved_reference_year(self) -> int:
        return self.reference_year if self.reference_year is not None else date.today().year

    @classmethod
    def for_year(cls, year: int | str | None, **kwargs: object) -> FilterConfig:
        """Build a config from a single-year selector where ``"All"`` means every year."""
        if year is None or str(year) == ALL:
            return cls(**kwargs)
        return cls(year_range=(int(year), int(year)), **kwargs)


def build_predicate(config: FilterConfig) -> RecordPredicate:
    """Interpret a filter config as a vectorized predicate over normalized records.

    Only the config is inspected here; the returned callable does the per-row work.
    """
    year_bounds = config.year_range
    category = config.category
    geo = config.geo
    recency_years = config.recency_years
    recency_floor = (
        config.resolved_reference_year() - recency_years if recency_years is not None else None
    )

    def predicate(records: pd.DataFrame) -> pd.Series:
        mask = pd.Series(True, index=records.index, dtype=bool)
        if records.empty:
            return mask
        if year_bounds is not None:
            mask &= (records["year"] >= year_bounds[0]) & (records["year"] <= year_bounds[1])
        if recency_floor is not None:
            mask &= records["year"] >= recency_floor
        if category != ALL:
            mask &= records["category"] == category
        if geo != ALL:
            mask &= records["geo"] == geo
        return mask

    return predicate


def matches(record: Mapping[str, object], config: FilterConfig) -> bool:
    frame = pd.DataFrame([dict(record)])
    return bool(build_predicate(config)(frame).iloc[0])
