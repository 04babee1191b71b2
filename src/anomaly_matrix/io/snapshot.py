from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import pandas as pd

from anomaly_matrix.anomalies.matrix import COUNT_COLUMNS, MATRIX_COLUMNS, AnomalyMatrix
from anomaly_matrix.config import AppConfig
from anomaly_matrix.io.read import load_summary, load_table
from anomaly_matrix.io.write import write_summary, write_table

LOGGER = logging.getLogger(__name__)

SNAPSHOT_STEM = "anomaly_matrix"
SNAPSHOT_SCHEMA_VERSION = 1
KEY_COLUMNS = ("segment_a", "segment_b", "metric")


def snapshot_path(tables_dir: Path, fmt: str = "parquet") -> Path:
    return tables_dir / f"{SNAPSHOT_STEM}.{fmt}"


def metadata_path(path: Path) -> Path:
    return path.with_name(f"{path.stem}.meta.json")


def snapshot_metadata(config: AppConfig) -> dict[str, Any]:
    return {
        "schema_version": SNAPSHOT_SCHEMA_VERSION,
        "window_start": config.window.start.isoformat(),
        "window_end": config.window.end.isoformat(),
        "include_weekends": bool(config.window.include_weekends),
        "lookback_days": config.window.lookback_days,
        "base_segment": config.base_segment,
        "provider_path": config.provider.path,
        "confidence": config.provider.confidence,
        "seasonal_periods": config.provider.seasonal_periods,
        "metrics": [metric.id for metric in config.metrics],
        "segments_a": [segment.id for segment in config.segments_a],
        "segments_b": [segment.id for segment in config.segments_b],
    }


def save_snapshot(
    matrix: AnomalyMatrix,
    path: Path,
    *,
    fmt: str = "parquet",
    metadata: dict[str, Any] | None = None,
) -> Path:
    write_table(matrix.to_frame(), path, fmt=fmt)
    sidecar = dict(metadata or {})
    sidecar["cells"] = len(matrix)
    sidecar["written_at"] = datetime.now(timezone.utc).isoformat()
    write_summary(sidecar, metadata_path(path))
    LOGGER.info("Wrote anomaly matrix snapshot (%d cells) to %s", len(matrix), path)
    return path


def load_snapshot(path: Path) -> AnomalyMatrix:
    if path.suffix == ".csv":
        # Keep ids such as "007" as text.
        frame = pd.read_csv(path, dtype={column: str for column in KEY_COLUMNS})
    else:
        frame = load_table(path)
    missing = [column for column in MATRIX_COLUMNS if column not in frame.columns]
    if missing:
        raise ValueError(f"Snapshot {path} missing columns: {', '.join(missing)}")
    frame = frame.astype({column: "int64" for column in COUNT_COLUMNS})
    for column in KEY_COLUMNS:
        frame[column] = frame[column].astype(str)
    return AnomalyMatrix.from_frame(frame)


def snapshot_is_current(path: Path, config: AppConfig) -> bool:
    """True when a snapshot exists and was built for the same run inputs."""
    sidecar = metadata_path(path)
    if not path.exists() or not sidecar.exists():
        return False
    stored = load_summary(sidecar)
    expected = snapshot_metadata(config)
    stale = sorted(key for key, value in expected.items() if stored.get(key) != value)
    if stale:
        LOGGER.info("Snapshot %s is stale (%s differ)", path, ", ".join(stale))
        return False
    return True
