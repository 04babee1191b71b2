from __future__ import annotations

from pathlib import Path

import matplotlib.pyplot as plt

from anomaly_matrix.anomalies.base import Metric


def save_figure(path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    plt.tight_layout()
    plt.savefig(path)
    plt.close()
    return path


def format_metric_value(value: float, metric: Metric) -> str:
    decimals = int(metric.decimals)
    if metric.format == "percent":
        return f"{value * 100:.{decimals}f}%"
    if metric.format == "currency":
        return f"${value:,.{decimals}f}"
    if metric.format == "time":
        seconds = int(round(value))
        return f"{seconds // 60}:{seconds % 60:02d}"
    return f"{value:,.{decimals}f}"
