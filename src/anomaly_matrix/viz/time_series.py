from __future__ import annotations

from datetime import date
from pathlib import Path

import matplotlib.pyplot as plt
import pandas as pd
from matplotlib.ticker import FuncFormatter

from anomaly_matrix.anomalies.base import Classification, Metric
from anomaly_matrix.anomalies.classifier import classify_frame
from anomaly_matrix.viz.common import format_metric_value, save_figure

GOOD_COLOR = "#16a34a"
BAD_COLOR = "#dc2626"


def plot_cell_trend(
    frame: pd.DataFrame,
    metric: Metric,
    window_start: date,
    window_end: date,
    include_weekends: bool,
    output_path: Path,
    *,
    title: str | None = None,
) -> Path | None:
    """Plot actual vs forecast band for one cell with anomaly markers.

    Classification only applies inside the assessment window; earlier days
    are drawn as trend context.
    """
    if frame.empty:
        return None
    working = frame.copy()
    working["date"] = pd.to_datetime(working["date"], errors="coerce")
    working = working.dropna(subset=["date"]).sort_values("date")
    if working.empty:
        return None

    start = pd.Timestamp(window_start)
    end = pd.Timestamp(window_end)
    assessment = working[(working["date"] >= start) & (working["date"] <= end)]
    labels = classify_frame(assessment, metric.polarity, include_weekends)

    fig, ax = plt.subplots(figsize=(12, 4))
    ax.fill_between(
        working["date"],
        pd.to_numeric(working["lower"], errors="coerce"),
        pd.to_numeric(working["upper"], errors="coerce"),
        color="#94a3b8",
        alpha=0.25,
        label="Forecast band",
    )
    ax.plot(working["date"], working["forecast"], color="#64748b", linestyle="--", label="Forecast")
    ax.plot(working["date"], working["actual"], color="#0f172a", linewidth=1.4, label="Actual")
    ax.axvline(start, color="#0369a1", linewidth=1.0, alpha=0.7)

    if not include_weekends:
        for day in working.loc[working["date"].dt.dayofweek >= 5, "date"]:
            ax.axvspan(day - pd.Timedelta(hours=12), day + pd.Timedelta(hours=12), color="#e2e8f0")

    for classification, color in (
        (Classification.good_anomaly, GOOD_COLOR),
        (Classification.bad_anomaly, BAD_COLOR),
    ):
        flagged = assessment.loc[labels[labels == classification.value].index]
        if flagged.empty:
            continue
        ax.scatter(
            flagged["date"],
            flagged["actual"],
            color=color,
            zorder=3,
            label=classification.value.replace("_", " ").capitalize(),
        )

    ax.yaxis.set_major_formatter(
        FuncFormatter(lambda value, _pos: format_metric_value(value, metric))
    )
    ax.set_title(title or f"{metric.name} trend")
    ax.set_xlabel("Date")
    ax.set_ylabel(metric.name)
    ax.legend(loc="upper left", fontsize=8)
    fig.autofmt_xdate()
    return save_figure(output_path)
