from __future__ import annotations

from datetime import date

import pandas as pd

from anomaly_matrix.anomalies.base import (
    Classification,
    DayRecord,
    Polarity,
    records_from_frame,
)


def is_weekend(day: date) -> bool:
    return day.weekday() >= 5


def classify_day(
    record: DayRecord,
    polarity: Polarity,
    *,
    is_weekend: bool,
    include_weekends: bool,
) -> Classification:
    """Classify one day's actual value against its forecast band.

    Values equal to a bound sit inside the band. Missing actuals or bounds
    are never an anomaly.
    """
    if is_weekend and not include_weekends:
        return Classification.excluded_weekend
    if record.actual is None or not record.has_band:
        return Classification.no_anomaly

    if record.actual > record.upper:
        if polarity is Polarity.higher_is_good:
            return Classification.good_anomaly
        return Classification.bad_anomaly
    if record.actual < record.lower:
        if polarity is Polarity.higher_is_good:
            return Classification.bad_anomaly
        return Classification.good_anomaly
    return Classification.no_anomaly


def classify_frame(
    frame: pd.DataFrame,
    polarity: Polarity,
    include_weekends: bool,
) -> pd.Series:
    """Classification per row of a single-metric provider frame.

    Rows with an unparseable date are dropped from the result.
    """
    working = frame.assign(date=pd.to_datetime(frame["date"], errors="coerce"))
    working = working.dropna(subset=["date"])
    labels = [
        classify_day(
            record,
            polarity,
            is_weekend=is_weekend(record.date),
            include_weekends=include_weekends,
        ).value
        for record in records_from_frame(working)
    ]
    return pd.Series(labels, index=working.index, dtype="object", name="classification")
