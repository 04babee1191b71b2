from __future__ import annotations

import threading
from collections.abc import Collection
from datetime import date

import pandas as pd
import pytest

from anomaly_matrix.anomalies.base import Metric, Polarity, Segment
from anomaly_matrix.anomalies.polarity import PolarityRegistry
from anomaly_matrix.errors import ConfigurationError, ProviderError
from anomaly_matrix.pipeline.build_matrix import build_anomaly_matrix
from anomaly_matrix.providers.base import SegmentFilter

WINDOW_START = date(2024, 3, 4)
WINDOW_END = date(2024, 3, 8)
REVENUE = Metric(id="revenue", name="Revenue", polarity=Polarity.higher_is_good)
BOUNCE = Metric(id="bounce_rate", name="Bounce Rate", polarity=Polarity.higher_is_bad)


def _series(metric_id: str, actuals: list[float | None], start: str = "2024-03-04") -> pd.DataFrame:
    days = pd.date_range(start, periods=len(actuals), freq="D")
    return pd.DataFrame(
        {
            "date": days,
            "metric": metric_id,
            "actual": actuals,
            "forecast": [100.0] * len(actuals),
            "upper": [150.0] * len(actuals),
            "lower": [50.0] * len(actuals),
        }
    )


class RecordingProvider:
    def __init__(self, frames: dict[tuple[str, str], pd.DataFrame] | None = None) -> None:
        self.frames = frames or {}
        self.calls: list[tuple[SegmentFilter, tuple[str, ...]]] = []
        self._lock = threading.Lock()

    def fetch(
        self,
        segment_filter: SegmentFilter,
        metric_ids: Collection[str],
        window_start: date,
        window_end: date,
        granularity: str = "day",
    ) -> pd.DataFrame:
        with self._lock:
            self.calls.append((segment_filter, tuple(metric_ids)))
        key = (segment_filter.segment_a, segment_filter.segment_b)
        if key in self.frames:
            return self.frames[key]
        return pd.concat(
            [
                _series("revenue", [120.0, 200.0, 10.0, 100.0, 100.0]),
                _series("bounce_rate", [100.0, 200.0, 100.0, 100.0, 100.0]),
            ],
            ignore_index=True,
        )


def _segments(prefix: str, count: int) -> list[Segment]:
    return [
        Segment(id=f"{prefix}{index}", name=f"{prefix.upper()}{index}", ordinal=index)
        for index in range(count)
    ]


def _build(provider: RecordingProvider, **kwargs: object):
    params: dict[str, object] = {
        "segments_a": _segments("a", 2),
        "segments_b": _segments("b", 3),
        "metrics": [REVENUE, BOUNCE],
        "base_segment": "all_visits",
        "provider": provider,
        "registry": PolarityRegistry.from_metrics([REVENUE, BOUNCE]),
        "window_start": WINDOW_START,
        "window_end": WINDOW_END,
        "include_weekends": False,
    }
    params.update(kwargs)
    return build_anomaly_matrix(**params)


def test_build_produces_one_cell_per_pair_and_metric() -> None:
    provider = RecordingProvider()
    matrix = _build(provider)

    assert len(matrix) == 2 * 3 * 2
    assert len(set(matrix.keys())) == len(matrix)
    assert len(provider.calls) == 6
    assert all(metric_ids == ("revenue", "bounce_rate") for _, metric_ids in provider.calls)
    assert provider.calls[0][0].segment_ids == ("all_visits", "a0", "b0")

    revenue = matrix.get("a0", "b0", "revenue")
    assert (revenue.good, revenue.bad, revenue.net) == (1, 1, 0)
    bounce = matrix.get("a1", "b2", "bounce_rate")
    assert (bounce.good, bounce.bad, bounce.net) == (0, 1, -1)


def test_end_to_end_example_is_stable_across_runs() -> None:
    segments_a = [Segment(id="SegA1", name="SegA1"), Segment(id="SegA2", name="SegA2", ordinal=1)]
    segments_b = [Segment(id="SegB1", name="SegB1")]
    frame = _series("revenue", [120.0, 200.0, 10.0, 100.0, 100.0])
    frame.loc[0, ["forecast", "upper", "lower"]] = [100.0, 110.0, 90.0]
    frame.loc[0, "actual"] = 105.0

    def _run():
        return _build(
            RecordingProvider({("SegA1", "SegB1"): frame, ("SegA2", "SegB1"): frame}),
            segments_a=segments_a,
            segments_b=segments_b,
            metrics=[REVENUE],
            registry=PolarityRegistry.from_metrics([REVENUE]),
        )

    first = _run()
    second = _run()

    assert len(first) == 2
    assert first.get("SegA1", "SegB1", "revenue").to_dict() == {
        "segment_a": "SegA1",
        "segment_b": "SegB1",
        "metric": "revenue",
        "good": 1,
        "bad": 1,
        "net": 0,
    }
    assert first == second


def test_trend_rows_before_window_are_not_counted() -> None:
    trend = _series("revenue", [999.0] * 7, start="2024-02-26")
    assessed = _series("revenue", [100.0] * 5)
    provider = RecordingProvider({("a0", "b0"): pd.concat([trend, assessed], ignore_index=True)})

    matrix = _build(
        provider,
        segments_a=_segments("a", 1),
        segments_b=_segments("b", 1),
        metrics=[REVENUE],
        registry=PolarityRegistry.from_metrics([REVENUE]),
    )

    assert matrix.get("a0", "b0", "revenue").good == 0


def test_parallel_build_matches_sequential_order() -> None:
    sequential = _build(RecordingProvider())
    parallel = _build(RecordingProvider(), max_workers=4)

    assert parallel.keys() == sequential.keys()
    assert parallel == sequential


def test_provider_exception_is_wrapped_with_segment_pair() -> None:
    class FailingProvider(RecordingProvider):
        def fetch(self, segment_filter, metric_ids, window_start, window_end, granularity="day"):
            if segment_filter.segment_b == "b1":
                raise TimeoutError("upstream timed out")
            return super().fetch(segment_filter, metric_ids, window_start, window_end, granularity)

    with pytest.raises(ProviderError, match=r"segment pair \(a0, b1\)") as excinfo:
        _build(FailingProvider())
    assert excinfo.value.segment_a == "a0"
    assert isinstance(excinfo.value.__cause__, TimeoutError)


def test_parallel_build_stops_queued_pairs_after_first_failure() -> None:
    release = threading.Event()

    class SlowFailingProvider(RecordingProvider):
        def fetch(self, segment_filter, metric_ids, window_start, window_end, granularity="day"):
            response = super().fetch(
                segment_filter, metric_ids, window_start, window_end, granularity
            )
            if segment_filter.segment_a == "a0" and segment_filter.segment_b == "b0":
                raise TimeoutError("upstream timed out")
            release.wait(0.5)
            return response

    provider = SlowFailingProvider()
    with pytest.raises(ProviderError, match=r"segment pair \(a0, b0\)"):
        _build(provider, segments_a=_segments("a", 4), max_workers=2)
    release.set()

    assert len(provider.calls) < 4 * 3


def test_missing_metric_series_aborts_run() -> None:
    provider = RecordingProvider({("a0", "b0"): _series("revenue", [100.0] * 5)})

    with pytest.raises(ProviderError, match="metric bounce_rate") as excinfo:
        _build(provider)
    assert excinfo.value.metric == "bounce_rate"


def test_response_missing_columns_aborts_run() -> None:
    provider = RecordingProvider({("a0", "b0"): pd.DataFrame({"date": [], "metric": []})})

    with pytest.raises(ProviderError, match="missing columns"):
        _build(provider)


def test_configuration_is_checked_before_any_provider_call() -> None:
    provider = RecordingProvider()

    with pytest.raises(ConfigurationError, match="segments_a"):
        _build(provider, segments_a=[])
    with pytest.raises(ConfigurationError, match="window"):
        _build(provider, window_start=WINDOW_END, window_end=WINDOW_START)
    with pytest.raises(ConfigurationError, match="no polarity registered"):
        _build(provider, registry=PolarityRegistry.from_metrics([REVENUE]))
    assert provider.calls == []


def test_data_gaps_are_logged_not_raised(caplog: pytest.LogCaptureFixture) -> None:
    gappy = pd.concat(
        [
            _series("revenue", [None, 200.0, 100.0, 100.0, 100.0]),
            _series("bounce_rate", [100.0] * 5),
        ],
        ignore_index=True,
    )
    provider = RecordingProvider({("a0", "b0"): gappy})

    with caplog.at_level("WARNING", logger="anomaly_matrix.pipeline.build_matrix"):
        matrix = _build(
            provider,
            segments_a=_segments("a", 1),
            segments_b=_segments("b", 1),
        )

    assert matrix.get("a0", "b0", "revenue").good == 1
    assert "DataGapWarning" in caplog.text
