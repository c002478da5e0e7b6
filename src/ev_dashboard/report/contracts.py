from __future__ import annotations

import math
from copy import deepcopy
from dataclasses import dataclass, field
from typing import Any, Literal

ChartKind = Literal["line", "pie", "bar", "stacked_bar"]

ALLOWED_CHART_KINDS = frozenset({"line", "pie", "bar", "stacked_bar"})

_COLOR_SEMANTICS: dict[str, Any] = {
    "category": {
        "BEV": "#10b981",
        "PHEV": "#f59e0b",
        "Unclassified": "#94A3B8",
    },
    "series": {
        "primary": "#3b82f6",
        "context": "#8b5cf6",
        "reference": "#475569",
    },
    "categorical_palette": [
        "#3b82f6",
        "#10b981",
        "#f59e0b",
        "#8b5cf6",
        "#ef4444",
        "#06b6d4",
        "#84cc16",
        "#f97316",
        "#ec4899",
        "#64748b",
    ],
}

_CATEGORY_DISPLAY_NAMES = {
    "BEV": "Battery Electric (BEV)",
    "PHEV": "Plug-in Hybrid (PHEV)",
}


def default_color_semantics() -> dict[str, Any]:
    return deepcopy(_COLOR_SEMANTICS)


def category_color(label: str) -> str:
    return _COLOR_SEMANTICS["category"].get(label, _COLOR_SEMANTICS["series"]["reference"])


def category_display_name(label: str) -> str:
    return _CATEGORY_DISPLAY_NAMES.get(label, label)


def palette_color(index: int) -> str:
    palette = _COLOR_SEMANTICS["categorical_palette"]
    return palette[index % len(palette)]


def _json_scalar(value: Any) -> Any:
    if hasattr(value, "item"):
        value = value.item()
    if isinstance(value, float) and not math.isfinite(value):
        return None
    return value


@dataclass(slots=True, frozen=True)
class SeriesPayload:
    key: str
    name: str
    color: str
    values: tuple[Any, ...] = ()

    def __post_init__(self) -> None:
        if not self.key.strip():
            raise ValueError("series key must be non-empty.")
        object.__setattr__(self, "values", tuple(_json_scalar(value) for value in self.values))

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "name": self.name,
            "color": self.color,
            "values": list(self.values),
        }


@dataclass(slots=True, frozen=True)
class ChartPayload:
    chart_id: str
    kind: ChartKind
    title: str
    labels: tuple[Any, ...]
    series: tuple[SeriesPayload, ...]
    rows: tuple[dict[str, Any], ...] = ()
    meta: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.chart_id.strip():
            raise ValueError("chart_id must be non-empty.")
        if self.kind not in ALLOWED_CHART_KINDS:
            raise ValueError(f"Unsupported chart kind: {self.kind!r}.")
        labels = tuple(_json_scalar(label) for label in self.labels)
        for series in self.series:
            if len(series.values) != len(labels):
                raise ValueError(
                    f"series {series.key!r} has {len(series.values)} values "
                    f"for {len(labels)} labels."
                )
        object.__setattr__(self, "labels", labels)
        object.__setattr__(self, "series", tuple(self.series))
        object.__setattr__(
            self,
            "rows",
            tuple({key: _json_scalar(value) for key, value in row.items()} for row in self.rows),
        )
        object.__setattr__(self, "meta", dict(self.meta))

    @property
    def is_empty(self) -> bool:
        return not self.labels

    def to_dict(self) -> dict[str, Any]:
        return {
            "chart_id": self.chart_id,
            "kind": self.kind,
            "title": self.title,
            "labels": list(self.labels),
            "series": [series.to_dict() for series in self.series],
            "rows": [dict(row) for row in self.rows],
            "meta": dict(self.meta),
        }
