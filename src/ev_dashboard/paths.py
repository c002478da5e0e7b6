from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

TABLE_SUFFIXES = {"parquet": "parquet", "csv": "csv"}


@dataclass(frozen=True)
class OutputPaths:
    root: Path
    tables: Path
    figures: Path
    summary: Path

    def table(self, chart: str, fmt: str) -> Path:
        return self.tables / f"{chart}.{TABLE_SUFFIXES[fmt]}"

    def figure(self, chart: str, suffix: str) -> Path:
        return self.figures / f"{chart}.{suffix.lstrip('.')}"

    def summary_file(self, name: str) -> Path:
        return self.summary / f"{name}.json"


def build_output_paths(out_dir: Path, *, create: bool = True) -> OutputPaths:
    root = Path(out_dir)
    paths = OutputPaths(
        root=root,
        tables=root / "tables",
        figures=root / "figures",
        summary=root / "summary",
    )
    if create:
        for path in (paths.root, paths.tables, paths.figures, paths.summary):
            path.mkdir(parents=True, exist_ok=True)
    return paths
