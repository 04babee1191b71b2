from __future__ import annotations

import logging
from collections.abc import Collection
from datetime import date, timedelta
from pathlib import Path

import pandas as pd

from anomaly_matrix.config import DEFAULT_LOOKBACK_DAYS, AppConfig
from anomaly_matrix.errors import ConfigurationError, ProviderError
from anomaly_matrix.io.read import load_daily_table
from anomaly_matrix.providers.base import BAND_COLUMNS, RESPONSE_COLUMNS, SegmentFilter
from anomaly_matrix.providers.forecast import (
    DEFAULT_CONFIDENCE,
    DEFAULT_SEASONAL_PERIODS,
    compute_forecast_band,
)

LOGGER = logging.getLogger(__name__)


class TableTimeSeriesProvider:
    """Serve daily segment-pair series from a CSV or Parquet extract.

    The extract holds one row per (date, segment_a, segment_b, metric). When
    it carries no forecast band columns the band is fit here from the
    lookback days preceding the assessment window.
    """

    def __init__(
        self,
        table: pd.DataFrame,
        *,
        lookback_days: int = DEFAULT_LOOKBACK_DAYS,
        confidence: float = DEFAULT_CONFIDENCE,
        seasonal_periods: int = DEFAULT_SEASONAL_PERIODS,
    ) -> None:
        self.table = table
        self.lookback_days = int(lookback_days)
        self.confidence = float(confidence)
        self.seasonal_periods = int(seasonal_periods)
        self.has_band = all(column in table.columns for column in BAND_COLUMNS)

    @classmethod
    def from_path(cls, path: Path, **kwargs: object) -> TableTimeSeriesProvider:
        try:
            table = load_daily_table(path)
        except (OSError, ValueError) as exc:
            raise ProviderError(f"could not load daily metrics table {path}: {exc}") from exc
        return cls(table, **kwargs)

    def _select_rows(
        self,
        segment_filter: SegmentFilter,
        metric_ids: Collection[str],
    ) -> pd.DataFrame:
        table = self.table
        mask = (table["segment_a"] == segment_filter.segment_a) & (
            table["segment_b"] == segment_filter.segment_b
        )
        if "base_segment" in table.columns and segment_filter.base_segment:
            mask &= table["base_segment"] == segment_filter.base_segment
        mask &= table["metric"].isin(list(metric_ids))
        return table.loc[mask.fillna(False)]

    def _metric_frame(
        self,
        metric_rows: pd.DataFrame,
        metric_id: str,
        window_start: date,
        window_end: date,
    ) -> pd.DataFrame:
        trend_start = pd.Timestamp(window_start - timedelta(days=self.lookback_days))
        days = pd.date_range(trend_start, pd.Timestamp(window_end), freq="D")
        daily = (
            metric_rows.groupby("date", sort=True)
            .agg({column: "mean" for column in ["actual", *BAND_COLUMNS] if column in metric_rows})
            .reindex(days)
        )
        daily.index.name = "date"

        if not self.has_band:
            assessment = days[days >= pd.Timestamp(window_start)]
            history = daily.loc[days < pd.Timestamp(window_start), "actual"]
            band = compute_forecast_band(
                history,
                assessment,
                confidence=self.confidence,
                seasonal_periods=self.seasonal_periods,
            )
            for column in BAND_COLUMNS:
                daily[column] = band[column].reindex(days)

        frame = daily.reset_index()
        frame["metric"] = metric_id
        return frame[RESPONSE_COLUMNS]

    def fetch(
        self,
        segment_filter: SegmentFilter,
        metric_ids: Collection[str],
        window_start: date,
        window_end: date,
        granularity: str = "day",
    ) -> pd.DataFrame:
        if granularity != "day":
            raise ProviderError(
                f"unsupported granularity {granularity!r}",
                segment_a=segment_filter.segment_a,
                segment_b=segment_filter.segment_b,
            )
        rows = self._select_rows(segment_filter, metric_ids)
        frames = []
        for metric_id in metric_ids:
            metric_rows = rows[rows["metric"] == metric_id]
            if metric_rows.empty:
                LOGGER.debug("No rows for %s metric=%s", segment_filter.describe(), metric_id)
                continue
            frames.append(self._metric_frame(metric_rows, metric_id, window_start, window_end))
        if not frames:
            return pd.DataFrame(columns=RESPONSE_COLUMNS)
        return pd.concat(frames, ignore_index=True)


def build_provider(config: AppConfig) -> TableTimeSeriesProvider:
    if not config.provider.path:
        raise ConfigurationError(
            "a daily metrics table path is required for the table provider",
            key="provider.path",
        )
    return TableTimeSeriesProvider.from_path(
        Path(config.provider.path),
        lookback_days=config.window.lookback_days,
        confidence=config.provider.confidence,
        seasonal_periods=config.provider.seasonal_periods,
    )
