from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

import pandas as pd

from ev_dashboard.config import AppConfig
from ev_dashboard.io.schema import missing_source_columns

LOGGER = logging.getLogger(__name__)


class DatasetLoadError(RuntimeError):
    """The registration table could not be fetched or parsed."""


@dataclass(frozen=True, eq=False)
class Dataset:
    """Handle for one loaded registration table.

    Handles hash and compare by identity, so a reloaded table is a new handle
    even when its contents are equal.
    """

    raw: pd.DataFrame
    source: str = "<memory>"
    loaded_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def n_rows(self) -> int:
        return int(len(self.raw))

    @classmethod
    def from_records(
        cls,
        records: Iterable[Mapping[str, object]],
        source: str = "<memory>",
    ) -> Dataset:
        frame = pd.DataFrame.from_records(list(records))
        return cls(raw=frame.astype(object), source=source)


def _validate_required_columns(df: pd.DataFrame, config: AppConfig) -> pd.DataFrame:
    missing = missing_source_columns(df, config.columns)
    if missing:
        raise ValueError(f"Missing required columns in CSV: {', '.join(missing)}")
    return df


def read_raw_table(csv_path: Path) -> pd.DataFrame:
    """Read every cell as a string, exactly as published."""
    try:
        # utf-8-sig strips BOM-prefixed headers commonly found in exported CSV files.
        return pd.read_csv(
            csv_path,
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
            encoding="utf-8-sig",
        )
    except FileNotFoundError as exc:
        raise DatasetLoadError(f"Dataset not found at {csv_path}") from exc
    except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as exc:
        raise DatasetLoadError(f"Dataset at {csv_path} could not be parsed: {exc}") from exc


def load_dataset(csv_path: Path | None, config: AppConfig) -> Dataset:
    """Load the registration CSV and return a dataset handle."""
    resolved = csv_path or (Path(config.input.csv_path) if config.input.csv_path else None)
    if resolved is None:
        raise ValueError("csv_path is required when input.csv_path is not configured")

    frame = _validate_required_columns(read_raw_table(resolved), config)
    LOGGER.info("Loaded %d raw rows from %s", len(frame), resolved)
    return Dataset(raw=frame, source=str(resolved))

