from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date

from anomaly_matrix.anomalies.base import Classification, DayRecord, Polarity
from anomaly_matrix.anomalies.classifier import classify_day, is_weekend


@dataclass(slots=True, frozen=True)
class AnomalyCounts:
    good: int = 0
    bad: int = 0
    excluded: int = 0
    gaps: int = 0

    @property
    def net(self) -> int:
        return self.good - self.bad

    def to_dict(self) -> dict[str, int]:
        return {
            "good": self.good,
            "bad": self.bad,
            "net": self.net,
            "excluded": self.excluded,
            "gaps": self.gaps,
        }


def _in_window(day: date, window_start: date | None, window_end: date | None) -> bool:
    if window_start is not None and day < window_start:
        return False
    if window_end is not None and day > window_end:
        return False
    return True


def aggregate_series(
    records: Iterable[DayRecord],
    polarity: Polarity,
    include_weekends: bool,
    *,
    window_start: date | None = None,
    window_end: date | None = None,
) -> AnomalyCounts:
    """Count good and bad anomaly days for one segment pair and metric.

    Only days within ``[window_start, window_end]`` are assessed; anything
    earlier is trend context and never counted. Weekend exclusion only gates
    classification, it does not change how the remaining days are counted.
    """
    good = bad = excluded = gaps = 0
    for record in records:
        if not _in_window(record.date, window_start, window_end):
            continue
        classification = classify_day(
            record,
            polarity,
            is_weekend=is_weekend(record.date),
            include_weekends=include_weekends,
        )
        if classification is Classification.excluded_weekend:
            excluded += 1
            continue
        if not record.is_complete:
            gaps += 1
        if classification is Classification.good_anomaly:
            good += 1
        elif classification is Classification.bad_anomaly:
            bad += 1
    return AnomalyCounts(good=good, bad=bad, excluded=excluded, gaps=gaps)
