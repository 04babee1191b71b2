from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path

import matplotlib.pyplot as plt
import numpy as np

from anomaly_matrix.anomalies.base import Metric, Segment
from anomaly_matrix.anomalies.matrix import AnomalyMatrix
from anomaly_matrix.viz.common import save_figure


def plot_anomaly_matrix_heatmap(
    matrix: AnomalyMatrix,
    metric: Metric,
    segments_a: Sequence[Segment],
    segments_b: Sequence[Segment],
    output_path: Path,
) -> Path | None:
    order_a = [segment.id for segment in segments_a]
    order_b = [segment.id for segment in segments_b]
    net = matrix.pivot(metric.id, "net", segment_a_order=order_a, segment_b_order=order_b)
    if net.empty or net.isna().all().all():
        return None
    good = matrix.pivot(metric.id, "good", segment_a_order=order_a, segment_b_order=order_b)
    bad = matrix.pivot(metric.id, "bad", segment_a_order=order_a, segment_b_order=order_b)

    values = net.to_numpy(dtype=float)
    magnitude = np.nanmax(np.abs(values))
    if not np.isfinite(magnitude) or magnitude <= 0.0:
        magnitude = 1.0
    cmap = plt.get_cmap("RdYlGn").copy()
    cmap.set_bad("#e2e8f0")

    fig_width = max(6.0, min(18.0, 1.4 * len(order_b) + 3.0))
    fig_height = max(3.0, min(14.0, 0.6 * len(order_a) + 2.0))
    fig, ax = plt.subplots(figsize=(fig_width, fig_height))
    image = ax.imshow(
        np.ma.masked_invalid(values),
        aspect="auto",
        cmap=cmap,
        vmin=-magnitude,
        vmax=magnitude,
    )
    fig.colorbar(image, ax=ax, label="Net anomalies (good - bad)")

    for row_index in range(values.shape[0]):
        for col_index in range(values.shape[1]):
            if not np.isfinite(values[row_index, col_index]):
                continue
            ax.text(
                col_index,
                row_index,
                f"+{int(good.iat[row_index, col_index])}/-{int(bad.iat[row_index, col_index])}",
                ha="center",
                va="center",
                fontsize=8,
                color="#0f172a",
            )

    ax.set_xticks(range(len(segments_b)), [segment.name for segment in segments_b])
    ax.set_yticks(range(len(segments_a)), [segment.name for segment in segments_a])
    plt.setp(ax.get_xticklabels(), rotation=45, ha="right")
    ax.set_title(f"{metric.name}: anomalies by segment")
    return save_figure(output_path)


def plot_all_metric_heatmaps(
    matrix: AnomalyMatrix,
    metrics: Sequence[Metric],
    segments_a: Sequence[Segment],
    segments_b: Sequence[Segment],
    figures_dir: Path,
    figure_suffix: str = "png",
) -> dict[str, Path]:
    written: dict[str, Path] = {}
    for metric in metrics:
        path = plot_anomaly_matrix_heatmap(
            matrix,
            metric,
            segments_a,
            segments_b,
            figures_dir / f"anomaly_heatmap_{metric.id}.{figure_suffix}",
        )
        if path is not None:
            written[metric.id] = path
    return written
