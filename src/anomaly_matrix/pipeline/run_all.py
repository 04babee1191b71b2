from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from anomaly_matrix.anomalies.matrix import AnomalyMatrix
from anomaly_matrix.config import AppConfig
from anomaly_matrix.io.snapshot import (
    load_snapshot,
    save_snapshot,
    snapshot_is_current,
    snapshot_metadata,
    snapshot_path,
)
from anomaly_matrix.io.write import write_summary
from anomaly_matrix.paths import build_output_paths
from anomaly_matrix.pipeline.build_matrix import build_matrix_from_config
from anomaly_matrix.providers.base import TimeSeriesProvider
from anomaly_matrix.providers.table import build_provider
from anomaly_matrix.viz.heatmaps import plot_all_metric_heatmaps

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class RunResult:
    matrix: AnomalyMatrix
    snapshot_path: Path
    summary_path: Path
    figures: dict[str, Path] = field(default_factory=dict)
    reused_snapshot: bool = False


def build_or_load_matrix(
    config: AppConfig,
    out_dir: Path,
    provider: TimeSeriesProvider | None = None,
    *,
    reuse_snapshot: bool = True,
) -> tuple[AnomalyMatrix, Path, bool]:
    paths = build_output_paths(out_dir)
    path = snapshot_path(paths.tables, config.outputs.snapshot_format)
    if reuse_snapshot and snapshot_is_current(path, config):
        LOGGER.info("Reusing anomaly matrix snapshot %s", path)
        return load_snapshot(path), path, True

    matrix = build_matrix_from_config(config, provider or build_provider(config))
    save_snapshot(
        matrix,
        path,
        fmt=config.outputs.snapshot_format,
        metadata=snapshot_metadata(config),
    )
    return matrix, path, False


def render_matrix(matrix: AnomalyMatrix, config: AppConfig, out_dir: Path) -> dict[str, Path]:
    paths = build_output_paths(out_dir)
    return plot_all_metric_heatmaps(
        matrix,
        config.metric_list(),
        config.segment_list_a(),
        config.segment_list_b(),
        paths.figures,
        figure_suffix=config.outputs.figures_format,
    )


def write_run_summary(
    matrix: AnomalyMatrix,
    config: AppConfig,
    out_dir: Path,
    *,
    reused_snapshot: bool,
) -> Path:
    paths = build_output_paths(out_dir)
    totals = matrix.totals_by_metric()
    summary = {
        "window_start": config.window.start.isoformat(),
        "window_end": config.window.end.isoformat(),
        "include_weekends": bool(config.window.include_weekends),
        "base_segment": config.base_segment,
        "cells": len(matrix),
        "reused_snapshot": reused_snapshot,
        "metrics": {
            str(row.metric): {"good": int(row.good), "bad": int(row.bad), "net": int(row.net)}
            for row in totals.itertuples(index=False)
        },
    }
    return write_summary(summary, paths.summary / "run_summary.json")


def run_report(
    config: AppConfig,
    out_dir: Path,
    provider: TimeSeriesProvider | None = None,
    *,
    reuse_snapshot: bool = True,
) -> RunResult:
    matrix, path, reused = build_or_load_matrix(
        config,
        out_dir,
        provider,
        reuse_snapshot=reuse_snapshot,
    )
    figures = render_matrix(matrix, config, out_dir)
    summary_path = write_run_summary(matrix, config, out_dir, reused_snapshot=reused)
    return RunResult(
        matrix=matrix,
        snapshot_path=path,
        summary_path=summary_path,
        figures=figures,
        reused_snapshot=reused,
    )
