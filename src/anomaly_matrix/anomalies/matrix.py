from __future__ import annotations

from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass
from typing import Literal

import pandas as pd

from anomaly_matrix.anomalies.base import CellResult

MATRIX_COLUMNS = ["segment_a", "segment_b", "metric", "good", "bad", "net"]
COUNT_COLUMNS = ["good", "bad", "net"]
CellKey = tuple[str, str, str]


def _ordered_unique(values: Iterable[str]) -> tuple[str, ...]:
    seen: set[str] = set()
    ordered: list[str] = []
    for value in values:
        if value in seen:
            continue
        seen.add(value)
        ordered.append(value)
    return tuple(ordered)


@dataclass(slots=True, frozen=True)
class AnomalyMatrix:
    """Immutable set of cell results keyed by (segment_a, segment_b, metric).

    Cells keep the order they were built in, which is the declared segment
    and metric order.
    """

    cells: tuple[CellResult, ...]

    def __post_init__(self) -> None:
        cells = tuple(self.cells)
        seen: set[CellKey] = set()
        for cell in cells:
            if cell.key in seen:
                raise ValueError(f"duplicate anomaly matrix cell: {cell.key!r}.")
            seen.add(cell.key)
        object.__setattr__(self, "cells", cells)

    def __len__(self) -> int:
        return len(self.cells)

    def __iter__(self) -> Iterator[CellResult]:
        return iter(self.cells)

    def keys(self) -> list[CellKey]:
        return [cell.key for cell in self.cells]

    def get(self, segment_a: str, segment_b: str, metric: str) -> CellResult:
        for cell in self.cells:
            if cell.key == (segment_a, segment_b, metric):
                return cell
        raise KeyError((segment_a, segment_b, metric))

    @property
    def segment_a_ids(self) -> tuple[str, ...]:
        return _ordered_unique(cell.segment_a for cell in self.cells)

    @property
    def segment_b_ids(self) -> tuple[str, ...]:
        return _ordered_unique(cell.segment_b for cell in self.cells)

    @property
    def metric_ids(self) -> tuple[str, ...]:
        return _ordered_unique(cell.metric for cell in self.cells)

    def to_frame(self) -> pd.DataFrame:
        frame = pd.DataFrame([cell.to_dict() for cell in self.cells], columns=MATRIX_COLUMNS)
        return frame.astype({column: "int64" for column in COUNT_COLUMNS})

    @classmethod
    def from_frame(cls, frame: pd.DataFrame) -> AnomalyMatrix:
        missing = [column for column in MATRIX_COLUMNS if column not in frame.columns]
        if missing:
            raise ValueError(f"Anomaly matrix table missing columns: {', '.join(missing)}")
        cells = tuple(
            CellResult(
                segment_a=str(row.segment_a),
                segment_b=str(row.segment_b),
                metric=str(row.metric),
                good=int(row.good),
                bad=int(row.bad),
                net=int(row.net),
            )
            for row in frame[MATRIX_COLUMNS].itertuples(index=False)
        )
        return cls(cells=cells)

    def pivot(
        self,
        metric: str,
        value: Literal["good", "bad", "net"] = "net",
        *,
        segment_a_order: Sequence[str] | None = None,
        segment_b_order: Sequence[str] | None = None,
    ) -> pd.DataFrame:
        frame = self.to_frame()
        subset = frame[frame["metric"] == metric]
        rows = list(segment_a_order or self.segment_a_ids)
        columns = list(segment_b_order or self.segment_b_ids)
        return subset.pivot(index="segment_a", columns="segment_b", values=value).reindex(
            index=rows,
            columns=columns,
        )

    def totals_by_metric(self) -> pd.DataFrame:
        frame = self.to_frame()
        if frame.empty:
            return pd.DataFrame(columns=["metric", *COUNT_COLUMNS])
        totals = frame.groupby("metric", sort=False)[COUNT_COLUMNS].sum().reset_index()
        return totals.astype({column: "int64" for column in COUNT_COLUMNS})
