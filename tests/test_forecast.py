from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from anomaly_matrix.providers.forecast import band_z_score, compute_forecast_band


def _weekly_history(days: int = 35, level: float = 100.0) -> pd.Series:
    index = pd.date_range("2024-01-29", periods=days, freq="D")
    rng = np.random.default_rng(3)
    weekly = np.where(index.dayofweek >= 5, 0.7, 1.0)
    return pd.Series(level * weekly + rng.normal(0.0, 2.0, size=days), index=index)


def test_band_z_score_matches_normal_quantile() -> None:
    assert band_z_score(0.95) == pytest.approx(1.959964, abs=1e-5)
    with pytest.raises(ValueError, match="confidence"):
        band_z_score(1.5)


def test_compute_forecast_band_covers_horizon_with_ordered_bounds() -> None:
    history = _weekly_history()
    horizon = pd.date_range(history.index.max() + pd.Timedelta(days=1), periods=7, freq="D")

    band = compute_forecast_band(history, horizon)

    assert band.index.equals(horizon)
    assert band.notna().all().all()
    assert (band["upper"] >= band["forecast"]).all()
    assert (band["forecast"] >= band["lower"]).all()
    assert band["forecast"].mean() == pytest.approx(history.mean(), rel=0.25)


def test_compute_forecast_band_tolerates_missing_history_days() -> None:
    history = _weekly_history()
    history.iloc[[3, 10, 11]] = np.nan
    horizon = pd.date_range(history.index.max() + pd.Timedelta(days=1), periods=3, freq="D")

    band = compute_forecast_band(history, horizon)

    assert band.notna().all().all()


def test_compute_forecast_band_returns_null_band_for_short_history() -> None:
    history = pd.Series([10.0, np.nan], index=pd.date_range("2024-03-01", periods=2, freq="D"))
    horizon = pd.date_range("2024-03-03", periods=2, freq="D")

    band = compute_forecast_band(history, horizon)

    assert list(band.columns) == ["forecast", "upper", "lower"]
    assert band.isna().all().all()
