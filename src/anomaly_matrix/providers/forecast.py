from __future__ import annotations

import logging
import warnings

import numpy as np
import pandas as pd
from scipy.stats import norm
from statsmodels.tools.sm_exceptions import ConvergenceWarning
from statsmodels.tsa.holtwinters import ExponentialSmoothing

LOGGER = logging.getLogger(__name__)

MIN_HISTORY_POINTS = 3
MIN_TREND_POINTS = 10
DEFAULT_CONFIDENCE = 0.95
DEFAULT_SEASONAL_PERIODS = 7


def band_z_score(confidence: float = DEFAULT_CONFIDENCE) -> float:
    if not 0.0 < confidence < 1.0:
        raise ValueError(f"confidence must be in (0, 1), got {confidence!r}.")
    return float(norm.ppf((1.0 + confidence) / 2.0))


def _empty_band(horizon: pd.DatetimeIndex) -> pd.DataFrame:
    return pd.DataFrame(
        {
            "forecast": np.full(len(horizon), np.nan),
            "upper": np.full(len(horizon), np.nan),
            "lower": np.full(len(horizon), np.nan),
        },
        index=horizon,
    )


def compute_forecast_band(
    history: pd.Series,
    horizon: pd.DatetimeIndex,
    *,
    confidence: float = DEFAULT_CONFIDENCE,
    seasonal_periods: int = DEFAULT_SEASONAL_PERIODS,
) -> pd.DataFrame:
    """Holt-Winters forecast with a symmetric confidence band.

    ``history`` is a daily actuals series ending the day before ``horizon``
    starts. Missing days are interpolated; too little history yields a null
    band.
    """
    if len(horizon) == 0:
        return _empty_band(horizon)

    values = pd.to_numeric(history, errors="coerce").astype(float)
    if values.notna().sum() < MIN_HISTORY_POINTS:
        LOGGER.debug("Skipping forecast: %d usable history points", int(values.notna().sum()))
        return _empty_band(horizon)
    values = values.interpolate(limit_direction="both").to_numpy(dtype=float)

    seasonal = None
    if seasonal_periods >= 2 and len(values) >= 2 * seasonal_periods:
        seasonal = "add"
    model = ExponentialSmoothing(
        values,
        trend="add" if len(values) >= MIN_TREND_POINTS else None,
        seasonal=seasonal,
        seasonal_periods=seasonal_periods if seasonal else None,
        initialization_method="estimated",
    )
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", ConvergenceWarning)
        warnings.simplefilter("ignore", RuntimeWarning)
        fitted = model.fit()

    # Forecast steps count from the last history day through the final horizon day.
    last_history_day = pd.Timestamp(history.index.max())
    steps = int((pd.Timestamp(horizon.max()) - last_history_day).days)
    steps = max(steps, len(horizon))
    predicted = np.asarray(fitted.forecast(steps), dtype=float)
    offsets = [int((pd.Timestamp(day) - last_history_day).days) - 1 for day in horizon]
    forecast = np.array(
        [predicted[offset] if 0 <= offset < steps else np.nan for offset in offsets],
        dtype=float,
    )

    residuals = values - np.asarray(fitted.fittedvalues, dtype=float)
    sigma = float(np.nanstd(residuals, ddof=1)) if len(residuals) > 1 else 0.0
    if not np.isfinite(sigma):
        sigma = 0.0
    half_width = band_z_score(confidence) * sigma
    return pd.DataFrame(
        {
            "forecast": forecast,
            "upper": forecast + half_width,
            "lower": forecast - half_width,
        },
        index=horizon,
    )
