from __future__ import annotations

from datetime import date
from pathlib import Path

import numpy as np
import pandas as pd
import pytest

from anomaly_matrix.errors import ProviderError
from anomaly_matrix.providers.base import RESPONSE_COLUMNS, SegmentFilter
from anomaly_matrix.providers.table import TableTimeSeriesProvider

WINDOW_START = date(2024, 3, 4)
WINDOW_END = date(2024, 3, 8)


def _write_daily_csv(path: Path, *, with_band: bool) -> Path:
    days = pd.date_range("2024-01-29", "2024-03-08", freq="D")
    rows = []
    for segment_a in ("007", "mobile"):
        for metric in ("revenue", "orders"):
            for offset, day in enumerate(days):
                row = {
                    "date": day.date().isoformat(),
                    "base_segment": "all_visits",
                    "segment_a": segment_a,
                    "segment_b": "new",
                    "metric": metric,
                    "actual": 100.0 + (offset % 7) + 0.5 * ((offset * 37) % 5),
                }
                if with_band:
                    row.update({"forecast": 100.0, "upper": 110.0, "lower": 90.0})
                rows.append(row)
    pd.DataFrame(rows).to_csv(path, index=False)
    return path


def test_fetch_returns_trend_and_window_rows_for_requested_metrics(tmp_path: Path) -> None:
    path = _write_daily_csv(tmp_path / "daily.csv", with_band=True)
    provider = TableTimeSeriesProvider.from_path(path, lookback_days=7)

    frame = provider.fetch(
        SegmentFilter(segment_a="007", segment_b="new", base_segment="all_visits"),
        ["revenue"],
        WINDOW_START,
        WINDOW_END,
    )

    assert list(frame.columns) == RESPONSE_COLUMNS
    assert set(frame["metric"]) == {"revenue"}
    assert frame["date"].min() == pd.Timestamp("2024-02-26")
    assert frame["date"].max() == pd.Timestamp("2024-03-08")
    assert len(frame) == 12
    assert (frame["upper"] == 110.0).all()


def test_fetch_fits_forecast_band_when_table_has_actuals_only(tmp_path: Path) -> None:
    path = _write_daily_csv(tmp_path / "daily.csv", with_band=False)
    provider = TableTimeSeriesProvider.from_path(path, lookback_days=35)

    frame = provider.fetch(
        SegmentFilter(segment_a="mobile", segment_b="new"),
        ["revenue", "orders"],
        WINDOW_START,
        WINDOW_END,
    )

    assessed = frame[frame["date"] >= pd.Timestamp(WINDOW_START)]
    trend = frame[frame["date"] < pd.Timestamp(WINDOW_START)]
    assert len(assessed) == 10
    assert assessed[["forecast", "upper", "lower"]].notna().all().all()
    assert (assessed["upper"] >= assessed["lower"]).all()
    assert trend["forecast"].isna().all()
    assert trend["actual"].notna().all()


def test_fetch_skips_metrics_without_rows(tmp_path: Path) -> None:
    path = _write_daily_csv(tmp_path / "daily.csv", with_band=True)
    provider = TableTimeSeriesProvider.from_path(path)

    frame = provider.fetch(
        SegmentFilter(segment_a="tablet", segment_b="new"),
        ["revenue"],
        WINDOW_START,
        WINDOW_END,
    )

    assert frame.empty
    assert list(frame.columns) == RESPONSE_COLUMNS


def test_missing_days_become_null_rows(tmp_path: Path) -> None:
    table = pd.DataFrame(
        {
            "date": pd.to_datetime(["2024-03-04", "2024-03-06"]),
            "segment_a": ["mobile", "mobile"],
            "segment_b": ["new", "new"],
            "metric": ["revenue", "revenue"],
            "actual": [100.0, 101.0],
            "forecast": [100.0, 100.0],
            "upper": [110.0, 110.0],
            "lower": [90.0, 90.0],
        }
    )
    provider = TableTimeSeriesProvider(table, lookback_days=1)

    frame = provider.fetch(
        SegmentFilter(segment_a="mobile", segment_b="new"),
        ["revenue"],
        WINDOW_START,
        WINDOW_END,
    )

    assert len(frame) == 6
    missing = frame.set_index("date").loc[pd.Timestamp("2024-03-05")]
    assert np.isnan(missing["actual"])


def test_from_path_raises_provider_error_for_bad_table(tmp_path: Path) -> None:
    path = tmp_path / "daily.csv"
    path.write_text("date,metric\n2024-03-04,revenue\n", encoding="utf-8")

    with pytest.raises(ProviderError, match="missing columns"):
        TableTimeSeriesProvider.from_path(path)


def test_fetch_rejects_non_daily_granularity(tmp_path: Path) -> None:
    path = _write_daily_csv(tmp_path / "daily.csv", with_band=True)
    provider = TableTimeSeriesProvider.from_path(path)

    with pytest.raises(ProviderError, match="granularity"):
        provider.fetch(
            SegmentFilter(segment_a="mobile", segment_b="new"),
            ["revenue"],
            WINDOW_START,
            WINDOW_END,
            granularity="week",
        )
