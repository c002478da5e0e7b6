from __future__ import annotations

import pandas as pd
import pytest

from ev_dashboard.config import AppConfig
from ev_dashboard.io.read import Dataset

SOURCE_HEADER = ["Model Year", "Electric Vehicle Type", "Make", "County", "Electric Range"]

SAMPLE_ROWS = [
    ["2020", "Battery Electric Vehicle (BEV)", "TESLA", "King", "300"],
    ["2020", "Plug-in Hybrid Electric Vehicle (PHEV)", "TOYOTA", "King", "40"],
    ["2021", "Battery Electric Vehicle (BEV)", "TESLA", "Pierce", "250"],
    ["2023", "Battery Electric Vehicle (BEV)", "NISSAN", "", "150"],
    ["2009", "Battery Electric Vehicle (BEV)", "TESLA", "King", "200"],
    ["", "Plug-in Hybrid Electric Vehicle (PHEV)", "FORD", "King", "20"],
    ["2022", "Hydrogen Fuel Cell", "TOYOTA", "Snohomish", "0"],
    ["2021", "Plug-in Hybrid Electric Vehicle (PHEV)", " TOYOTA ", " King ", "n/a"],
]


def _sample_csv_text() -> str:
    lines = [",".join(SOURCE_HEADER)]
    lines.extend(",".join(f'"{value}"' for value in row) for row in SAMPLE_ROWS)
    return "\n".join(lines) + "\n"


@pytest.fixture
def csv_text() -> str:
    return _sample_csv_text()


@pytest.fixture
def app_config() -> AppConfig:
    return AppConfig()


@pytest.fixture
def raw_frame() -> pd.DataFrame:
    return pd.DataFrame(SAMPLE_ROWS, columns=SOURCE_HEADER, dtype=object)


@pytest.fixture
def sample_dataset(raw_frame: pd.DataFrame) -> Dataset:
    return Dataset(raw=raw_frame, source="sample.csv")


def _normalized_frame(rows: list[dict[str, object]]) -> pd.DataFrame:
    defaults = {"year": 2020, "category": "BEV", "group_key": "TESLA", "geo": "King", "metric": 0.0}
    frame = pd.DataFrame([{**defaults, **row} for row in rows], columns=list(defaults))
    frame["year"] = frame["year"].astype(int)
    frame["metric"] = frame["metric"].astype(float)
    return frame[["year", "category", "group_key", "geo", "metric"]]


@pytest.fixture
def make_records():
    """Build already-normalized records; missing fields take neutral defaults."""
    return _normalized_frame
