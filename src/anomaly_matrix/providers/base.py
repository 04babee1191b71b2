from __future__ import annotations

from collections.abc import Collection
from dataclasses import dataclass
from datetime import date
from typing import Protocol

import pandas as pd

from anomaly_matrix.anomalies.base import Segment

RESPONSE_COLUMNS = ["date", "metric", "actual", "forecast", "upper", "lower"]
BAND_COLUMNS = ["forecast", "upper", "lower"]


@dataclass(slots=True, frozen=True)
class SegmentFilter:
    """Conjunction of the base segment and one segment from each list."""

    segment_a: str
    segment_b: str
    base_segment: str | None = None

    @property
    def segment_ids(self) -> tuple[str, ...]:
        if self.base_segment:
            return (self.base_segment, self.segment_a, self.segment_b)
        return (self.segment_a, self.segment_b)

    def describe(self) -> str:
        return " AND ".join(self.segment_ids)


def compose_segment_filter(
    base_segment: str | None,
    segment_a: Segment,
    segment_b: Segment,
) -> SegmentFilter:
    return SegmentFilter(
        segment_a=segment_a.id,
        segment_b=segment_b.id,
        base_segment=base_segment or None,
    )


class TimeSeriesProvider(Protocol):
    def fetch(
        self,
        segment_filter: SegmentFilter,
        metric_ids: Collection[str],
        window_start: date,
        window_end: date,
        granularity: str = "day",
    ) -> pd.DataFrame:
        """Return long-format daily rows with ``RESPONSE_COLUMNS`` for every metric."""
        ...


def validate_response(frame: pd.DataFrame) -> list[str]:
    return [column for column in RESPONSE_COLUMNS if column not in frame.columns]
