from __future__ import annotations

import logging
import time
from collections.abc import Sequence
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from datetime import date

import pandas as pd

from anomaly_matrix.anomalies.aggregator import aggregate_series
from anomaly_matrix.anomalies.base import CellResult, Metric, Segment, records_from_frame
from anomaly_matrix.anomalies.matrix import AnomalyMatrix
from anomaly_matrix.anomalies.polarity import PolarityRegistry
from anomaly_matrix.config import AppConfig
from anomaly_matrix.errors import ConfigurationError, DataGapWarning, ProviderError
from anomaly_matrix.providers.base import (
    TimeSeriesProvider,
    compose_segment_filter,
    validate_response,
)

LOGGER = logging.getLogger(__name__)


def _check_inputs(
    segments_a: Sequence[Segment],
    segments_b: Sequence[Segment],
    metrics: Sequence[Metric],
    registry: PolarityRegistry,
    window_start: date,
    window_end: date,
) -> None:
    if not segments_a:
        raise ConfigurationError("segment list must not be empty", key="segments_a")
    if not segments_b:
        raise ConfigurationError("segment list must not be empty", key="segments_b")
    if not metrics:
        raise ConfigurationError("metric list must not be empty", key="metrics")
    if window_start >= window_end:
        raise ConfigurationError(
            f"window start ({window_start}) must be before window end ({window_end})",
            key="window",
        )
    registry.require(metrics)


def _build_pair(
    segment_a: Segment,
    segment_b: Segment,
    metrics: Sequence[Metric],
    base_segment: str | None,
    provider: TimeSeriesProvider,
    registry: PolarityRegistry,
    window_start: date,
    window_end: date,
    include_weekends: bool,
) -> list[CellResult]:
    segment_filter = compose_segment_filter(base_segment, segment_a, segment_b)
    metric_ids = [metric.id for metric in metrics]
    try:
        response = provider.fetch(
            segment_filter,
            metric_ids,
            window_start,
            window_end,
            granularity="day",
        )
    except ProviderError:
        raise
    except Exception as exc:
        raise ProviderError(
            f"provider fetch failed for {segment_filter.describe()}: {exc}",
            segment_a=segment_a.id,
            segment_b=segment_b.id,
        ) from exc

    missing_columns = validate_response(response)
    if missing_columns:
        raise ProviderError(
            f"provider response missing columns: {', '.join(missing_columns)}",
            segment_a=segment_a.id,
            segment_b=segment_b.id,
        )

    cells: list[CellResult] = []
    for metric in metrics:
        series = response[response["metric"] == metric.id]
        if series.empty:
            raise ProviderError(
                "provider response has no series for metric",
                segment_a=segment_a.id,
                segment_b=segment_b.id,
                metric=metric.id,
            )
        counts = aggregate_series(
            records_from_frame(series),
            registry.polarity(metric),
            include_weekends,
            window_start=window_start,
            window_end=window_end,
        )
        if counts.gaps:
            LOGGER.warning(
                "%s: %d day(s) missing data for segment pair (%s, %s) metric %s",
                DataGapWarning.__name__,
                counts.gaps,
                segment_a.id,
                segment_b.id,
                metric.id,
            )
        cells.append(
            CellResult(
                segment_a=segment_a.id,
                segment_b=segment_b.id,
                metric=metric.id,
                good=counts.good,
                bad=counts.bad,
                net=counts.net,
            )
        )
    return cells


def build_anomaly_matrix(
    segments_a: Sequence[Segment],
    segments_b: Sequence[Segment],
    metrics: Sequence[Metric],
    base_segment: str | None,
    provider: TimeSeriesProvider,
    registry: PolarityRegistry,
    window_start: date,
    window_end: date,
    include_weekends: bool,
    *,
    max_workers: int = 1,
) -> AnomalyMatrix:
    """Classify every segment pair and metric into an immutable anomaly matrix.

    One provider call is made per segment pair and serves all metrics. With
    ``max_workers > 1`` pairs are fetched on a thread pool; per-pair results
    are merged in declared order so the matrix matches a sequential run.
    """
    _check_inputs(segments_a, segments_b, metrics, registry, window_start, window_end)
    pairs = [(segment_a, segment_b) for segment_a in segments_a for segment_b in segments_b]
    started = time.perf_counter()

    def _run(pair: tuple[Segment, Segment]) -> list[CellResult]:
        return _build_pair(
            pair[0],
            pair[1],
            metrics,
            base_segment,
            provider,
            registry,
            window_start,
            window_end,
            include_weekends,
        )

    if max_workers > 1 and len(pairs) > 1:
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            futures = [pool.submit(_run, pair) for pair in pairs]
            done, _ = wait(futures, return_when=FIRST_EXCEPTION)
            failed = [future for future in futures if future in done and future.exception()]
            if failed:
                # Queued pairs are dropped; pairs already fetching run to completion.
                pool.shutdown(wait=False, cancel_futures=True)
                failed[0].result()
            per_pair = [future.result() for future in futures]
    else:
        per_pair = [_run(pair) for pair in pairs]

    matrix = AnomalyMatrix(cells=tuple(cell for cells in per_pair for cell in cells))
    LOGGER.info(
        "Built anomaly matrix: %d cells from %d provider calls in %.2fs",
        len(matrix),
        len(pairs),
        time.perf_counter() - started,
    )
    return matrix


def build_matrix_from_config(config: AppConfig, provider: TimeSeriesProvider) -> AnomalyMatrix:
    return build_anomaly_matrix(
        segments_a=config.segment_list_a(),
        segments_b=config.segment_list_b(),
        metrics=config.metric_list(),
        base_segment=config.base_segment,
        provider=provider,
        registry=config.polarity_registry(),
        window_start=config.window.start,
        window_end=config.window.end,
        include_weekends=config.window.include_weekends,
        max_workers=config.provider.max_workers,
    )


def fetch_cell_series(
    config: AppConfig,
    provider: TimeSeriesProvider,
    segment_a: Segment,
    segment_b: Segment,
    metric: Metric,
) -> pd.DataFrame:
    """Fetch one cell's full trend series for plotting."""
    segment_filter = compose_segment_filter(config.base_segment, segment_a, segment_b)
    try:
        response = provider.fetch(
            segment_filter,
            [metric.id],
            config.window.start,
            config.window.end,
            granularity="day",
        )
    except ProviderError:
        raise
    except Exception as exc:
        raise ProviderError(
            f"provider fetch failed: {exc}",
            segment_a=segment_a.id,
            segment_b=segment_b.id,
            metric=metric.id,
        ) from exc
    if validate_response(response) or response[response["metric"] == metric.id].empty:
        raise ProviderError(
            "provider response has no series for metric",
            segment_a=segment_a.id,
            segment_b=segment_b.id,
            metric=metric.id,
        )
    return response[response["metric"] == metric.id].reset_index(drop=True)
