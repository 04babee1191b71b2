from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date
from enum import Enum

import pandas as pd


class Polarity(str, Enum):
    higher_is_good = "higher_is_good"
    higher_is_bad = "higher_is_bad"


class Classification(str, Enum):
    no_anomaly = "no_anomaly"
    good_anomaly = "good_anomaly"
    bad_anomaly = "bad_anomaly"
    excluded_weekend = "excluded_weekend"


@dataclass(slots=True, frozen=True)
class Metric:
    id: str
    name: str
    polarity: Polarity
    format: str = "number"
    decimals: int = 0

    def __post_init__(self) -> None:
        if not self.id.strip():
            raise ValueError("metric id must be non-empty.")
        if self.decimals < 0:
            raise ValueError("decimals must be >= 0.")
        object.__setattr__(self, "polarity", Polarity(self.polarity))


@dataclass(slots=True, frozen=True)
class Segment:
    id: str
    name: str
    ordinal: int = 0

    def __post_init__(self) -> None:
        if not self.id.strip():
            raise ValueError("segment id must be non-empty.")


def _clean_value(value: float | None) -> float | None:
    if value is None:
        return None
    numeric = float(value)
    if not math.isfinite(numeric):
        return None
    return numeric


@dataclass(slots=True, frozen=True)
class DayRecord:
    date: date
    actual: float | None = None
    forecast: float | None = None
    upper: float | None = None
    lower: float | None = None

    def __post_init__(self) -> None:
        for name in ("actual", "forecast", "upper", "lower"):
            object.__setattr__(self, name, _clean_value(getattr(self, name)))

    @property
    def has_band(self) -> bool:
        return self.upper is not None and self.lower is not None

    @property
    def is_complete(self) -> bool:
        return self.actual is not None and self.forecast is not None and self.has_band


@dataclass(slots=True, frozen=True)
class CellResult:
    segment_a: str
    segment_b: str
    metric: str
    good: int
    bad: int
    net: int

    def __post_init__(self) -> None:
        if self.good < 0 or self.bad < 0:
            raise ValueError("good and bad counts must be >= 0.")
        if self.net != self.good - self.bad:
            raise ValueError(
                f"net must equal good - bad, got net={self.net} good={self.good} bad={self.bad}."
            )

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.segment_a, self.segment_b, self.metric)

    def to_dict(self) -> dict[str, object]:
        return {
            "segment_a": self.segment_a,
            "segment_b": self.segment_b,
            "metric": self.metric,
            "good": self.good,
            "bad": self.bad,
            "net": self.net,
        }


def _optional_float(value: object) -> float | None:
    if value is None or pd.isna(value):
        return None
    return float(value)


def records_from_frame(frame: pd.DataFrame) -> list[DayRecord]:
    """Convert a single-metric provider frame into day records, NaN as missing."""
    if frame.empty:
        return []
    dates = pd.to_datetime(frame["date"], errors="coerce")
    records: list[DayRecord] = []
    for position, (_, row) in enumerate(frame.iterrows()):
        day = dates.iloc[position]
        if pd.isna(day):
            continue
        records.append(
            DayRecord(
                date=day.date(),
                actual=_optional_float(row.get("actual")),
                forecast=_optional_float(row.get("forecast")),
                upper=_optional_float(row.get("upper")),
                lower=_optional_float(row.get("lower")),
            )
        )
    return records
