from __future__ import annotations

from collections.abc import Iterable, Mapping

from anomaly_matrix.anomalies.base import Metric, Polarity
from anomaly_matrix.errors import ConfigurationError


class PolarityRegistry:
    """Lookup table from metric id to the direction that counts as good."""

    def __init__(self, entries: Mapping[str, Polarity | str] | None = None) -> None:
        self._entries: dict[str, Polarity] = {}
        for metric_id, polarity in (entries or {}).items():
            self.register(metric_id, polarity)

    @classmethod
    def from_metrics(cls, metrics: Iterable[Metric]) -> PolarityRegistry:
        return cls({metric.id: metric.polarity for metric in metrics})

    def register(self, metric_id: str, polarity: Polarity | str) -> None:
        try:
            self._entries[metric_id] = Polarity(polarity)
        except ValueError as exc:
            raise ConfigurationError(
                f"unknown polarity {polarity!r} for metric {metric_id!r}",
                key=f"metrics.{metric_id}.polarity",
            ) from exc

    def polarity(self, metric: Metric | str) -> Polarity:
        metric_id = metric.id if isinstance(metric, Metric) else metric
        try:
            return self._entries[metric_id]
        except KeyError as exc:
            raise ConfigurationError(
                f"no polarity registered for metric {metric_id!r}",
                key=f"metrics.{metric_id}.polarity",
            ) from exc

    def require(self, metrics: Iterable[Metric | str]) -> None:
        for metric in metrics:
            self.polarity(metric)

    def __contains__(self, metric_id: object) -> bool:
        return metric_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)
