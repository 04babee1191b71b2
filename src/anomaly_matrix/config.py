from __future__ import annotations

import os
from datetime import date
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from anomaly_matrix.anomalies.base import Metric, Polarity, Segment
from anomaly_matrix.anomalies.polarity import PolarityRegistry
from anomaly_matrix.errors import ConfigurationError

DEFAULT_LOOKBACK_DAYS = 35


class MetricConfig(BaseModel):
    id: str = Field(min_length=1)
    name: str | None = None
    polarity: Polarity
    format: Literal["number", "percent", "currency", "time"] = "number"
    decimals: int = Field(default=0, ge=0, le=10)

    def to_metric(self) -> Metric:
        return Metric(
            id=self.id,
            name=self.name or self.id,
            polarity=self.polarity,
            format=self.format,
            decimals=self.decimals,
        )


class SegmentConfig(BaseModel):
    id: str = Field(min_length=1)
    name: str | None = None


class WindowConfig(BaseModel):
    start: date
    end: date
    include_weekends: bool = False
    lookback_days: int = Field(default=DEFAULT_LOOKBACK_DAYS, ge=1)

    @model_validator(mode="after")
    def _check_order(self) -> WindowConfig:
        if self.start >= self.end:
            raise ValueError(
                f"window start ({self.start}) must be before window end ({self.end})"
            )
        return self


class ProviderConfig(BaseModel):
    mode: Literal["table"] = "table"
    path: str | None = None
    confidence: float = Field(default=0.95, gt=0.0, lt=1.0)
    seasonal_periods: int = Field(default=7, ge=1)
    max_workers: int = Field(default=1, ge=1)


class OutputsConfig(BaseModel):
    snapshot_format: Literal["parquet", "csv"] = "parquet"
    figures_format: str = "png"


def _require_unique_ids(entries: list[Any], label: str) -> None:
    seen: set[str] = set()
    for entry in entries:
        if entry.id in seen:
            raise ValueError(f"duplicate {label} id: {entry.id}")
        seen.add(entry.id)


class AppConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    metrics: list[MetricConfig] = Field(min_length=1)
    segments_a: list[SegmentConfig] = Field(min_length=1)
    segments_b: list[SegmentConfig] = Field(min_length=1)
    base_segment: str | None = None
    window: WindowConfig
    provider: ProviderConfig = Field(default_factory=ProviderConfig)
    outputs: OutputsConfig = Field(default_factory=OutputsConfig)

    @field_validator("metrics")
    @classmethod
    def _unique_metrics(cls, value: list[MetricConfig]) -> list[MetricConfig]:
        _require_unique_ids(value, "metric")
        return value

    @field_validator("segments_a", "segments_b")
    @classmethod
    def _unique_segments(cls, value: list[SegmentConfig]) -> list[SegmentConfig]:
        _require_unique_ids(value, "segment")
        return value

    def metric_list(self) -> tuple[Metric, ...]:
        return tuple(entry.to_metric() for entry in self.metrics)

    def segment_list_a(self) -> tuple[Segment, ...]:
        return _to_segments(self.segments_a)

    def segment_list_b(self) -> tuple[Segment, ...]:
        return _to_segments(self.segments_b)

    def polarity_registry(self) -> PolarityRegistry:
        return PolarityRegistry.from_metrics(self.metric_list())


def _to_segments(entries: list[SegmentConfig]) -> tuple[Segment, ...]:
    return tuple(
        Segment(id=entry.id, name=entry.name or entry.id, ordinal=position)
        for position, entry in enumerate(entries)
    )


DEFAULT_CONFIG_PATH = Path("configs/default.yaml")


def _resolve_optional_path(path_value: str | None, base_dir: Path) -> str | None:
    if not path_value:
        return None
    candidate = Path(path_value)
    if candidate.is_absolute():
        return str(candidate)
    return str((base_dir / candidate).resolve())


def _error_key(error: dict[str, Any]) -> str:
    return ".".join(str(part) for part in error.get("loc", ())) or "<root>"


def parse_config(data: dict[str, Any]) -> AppConfig:
    try:
        return AppConfig.model_validate(data)
    except ValidationError as exc:
        first = exc.errors()[0]
        raise ConfigurationError(str(first.get("msg", exc)), key=_error_key(first)) from exc


def load_config(path: Path) -> AppConfig:
    with path.open("r", encoding="utf-8") as handle:
        try:
            data = yaml.safe_load(handle) or {}
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"invalid YAML in {path}: {exc}", key="<root>") from exc
    if not isinstance(data, dict):
        raise ConfigurationError("config document must be a mapping", key="<root>")

    config = parse_config(data)
    base_dir = path.resolve().parent
    config.provider.path = _resolve_optional_path(
        config.provider.path or os.getenv("ANOMALY_MATRIX_PROVIDER_PATH"),
        base_dir,
    )
    return config
