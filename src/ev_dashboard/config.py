from __future__ import annotations

import os
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, model_validator

ALL = "All"


class ColumnsConfig(BaseModel):
    model_year: str = "Model Year"
    vehicle_type: str = "Electric Vehicle Type"
    make: str = "Make"
    county: str = "County"
    electric_range: str = "Electric Range"


class CategoryConfig(BaseModel):
    label: str
    markers: list[str] = Field(min_length=1)


class NormalizationConfig(BaseModel):
    min_year: int = 2010
    max_year: int = 2024
    type_a: CategoryConfig = Field(
        default_factory=lambda: CategoryConfig(
            label="BEV", markers=["Battery Electric Vehicle", "BEV"]
        )
    )
    type_b: CategoryConfig = Field(
        default_factory=lambda: CategoryConfig(label="PHEV", markers=["Plug-in Hybrid", "PHEV"])
    )
    unclassified_label: str = "Unclassified"
    unknown_geo: str = "Unknown"

    @model_validator(mode="after")
    def _check_bounds(self) -> NormalizationConfig:
        if self.min_year > self.max_year:
            raise ValueError("normalization.min_year must not exceed normalization.max_year")
        return self

    @property
    def tracked_labels(self) -> list[str]:
        return [self.type_a.label, self.type_b.label]


class BinConfig(BaseModel):
    min: float = Field(ge=0.0)
    max: float | None = None
    label: str
    color: str = "#3b82f6"


DEFAULT_RANGE_BINS = [
    BinConfig(min=0, max=100, label="0-100 mi", color="#ef4444"),
    BinConfig(min=100, max=200, label="100-200 mi", color="#f97316"),
    BinConfig(min=200, max=300, label="200-300 mi", color="#eab308"),
    BinConfig(min=300, max=400, label="300-400 mi", color="#22c55e"),
    BinConfig(min=400, max=500, label="400-500 mi", color="#3b82f6"),
    BinConfig(min=500, max=None, label="500+ mi", color="#8b5cf6"),
]


class TrendChartConfig(BaseModel):
    year_range: tuple[int, int] = (2018, 2024)
    zero_fill: bool = True


class MarketShareChartConfig(BaseModel):
    exclude_unknown_geo: bool = True


class RankingChartConfig(BaseModel):
    top_n: int = Field(default=10, ge=1)
    exclude_unknown_geo: bool = False


class RangeDistributionChartConfig(BaseModel):
    bins: list[BinConfig] = Field(default_factory=lambda: list(DEFAULT_RANGE_BINS))
    recency_windows: list[int] = Field(default_factory=lambda: [10, 5])
    exclude_unknown_geo: bool = False

    @model_validator(mode="after")
    def _check_bins(self) -> RangeDistributionChartConfig:
        if not self.bins:
            raise ValueError("charts.range_distribution.bins must not be empty")
        for index, current in enumerate(self.bins):
            is_last = index == len(self.bins) - 1
            if current.max is None and not is_last:
                raise ValueError("only the last range bin may be unbounded")
            if current.max is not None and current.max <= current.min:
                raise ValueError(f"range bin {current.label!r} has max <= min")
            if not is_last and self.bins[index + 1].min < (current.max or 0.0):
                raise ValueError("range bins must be ascending and non-overlapping")
        return self


class ChartsConfig(BaseModel):
    trend: TrendChartConfig = Field(default_factory=TrendChartConfig)
    market_share: MarketShareChartConfig = Field(default_factory=MarketShareChartConfig)
    top_manufacturers: RankingChartConfig = Field(default_factory=RankingChartConfig)
    top_providers: RankingChartConfig = Field(
        default_factory=lambda: RankingChartConfig(top_n=5)
    )
    range_distribution: RangeDistributionChartConfig = Field(
        default_factory=RangeDistributionChartConfig
    )


class DebounceConfig(BaseModel):
    delay_seconds: float = Field(default=0.3, ge=0.0, le=5.0)


class InputConfig(BaseModel):
    csv_path: str | None = None


class OutputsConfig(BaseModel):
    tables_format: Literal["parquet", "csv"] = "parquet"
    figures_format: str = "png"
    render_figures: bool = True


class AppConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    columns: ColumnsConfig = Field(default_factory=ColumnsConfig)
    normalization: NormalizationConfig = Field(default_factory=NormalizationConfig)
    charts: ChartsConfig = Field(default_factory=ChartsConfig)
    debounce: DebounceConfig = Field(default_factory=DebounceConfig)
    input: InputConfig = Field(default_factory=InputConfig)
    outputs: OutputsConfig = Field(default_factory=OutputsConfig)


DEFAULT_CONFIG_PATH = Path("configs/default.yaml")


def _resolve_optional_path(path_value: str | None, base_dir: Path) -> str | None:
    if not path_value:
        return None
    candidate = Path(path_value)
    if candidate.is_absolute():
        return str(candidate)
    return str((base_dir / candidate).resolve())


def load_config(path: Path) -> AppConfig:
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}

    config = AppConfig.model_validate(data)
    base_dir = path.resolve().parent

    config.input.csv_path = _resolve_optional_path(
        config.input.csv_path, base_dir
    ) or _resolve_optional_path(os.getenv("EV_DASHBOARD_CSV"), Path.cwd())
    return config
