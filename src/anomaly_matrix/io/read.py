from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pandas as pd

DAILY_REQUIRED_COLUMNS = ["date", "segment_a", "segment_b", "metric", "actual"]
DAILY_ID_COLUMNS = ("segment_a", "segment_b", "metric", "base_segment")


def load_table(path: Path) -> pd.DataFrame:
    if path.suffix == ".parquet":
        return pd.read_parquet(path)
    if path.suffix == ".csv":
        return pd.read_csv(path)
    raise ValueError(f"Unsupported table file type: {path.suffix}")


def load_summary(path: Path) -> dict[str, Any]:
    with path.open("r", encoding="utf-8") as handle:
        data = json.load(handle)
    if not isinstance(data, dict):
        raise ValueError(f"Expected a JSON object in {path}")
    return data


def load_daily_table(path: Path) -> pd.DataFrame:
    """Load a long-format daily metrics table keyed by segment pair and metric."""
    if path.suffix == ".csv":
        df = pd.read_csv(path, dtype={column: str for column in DAILY_ID_COLUMNS})
    else:
        df = load_table(path)
    missing = [column for column in DAILY_REQUIRED_COLUMNS if column not in df.columns]
    if missing:
        raise ValueError(f"Daily metrics table missing columns: {', '.join(missing)}")

    working = df.copy()
    working["date"] = pd.to_datetime(working["date"], errors="coerce").dt.normalize()
    for column in DAILY_ID_COLUMNS:
        if column in working.columns:
            working[column] = working[column].astype("string").str.strip()
    for column in ("actual", "forecast", "upper", "lower"):
        if column in working.columns:
            working[column] = pd.to_numeric(working[column], errors="coerce")
    return working.dropna(subset=["date"]).reset_index(drop=True)
