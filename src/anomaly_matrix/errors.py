from __future__ import annotations


class ConfigurationError(ValueError):
    """Invalid or incomplete run configuration. Fatal, never retried."""

    def __init__(self, message: str, *, key: str | None = None) -> None:
        self.key = key
        super().__init__(f"{key}: {message}" if key else message)


class ProviderError(RuntimeError):
    """The time-series provider failed for a segment pair; aborts the run."""

    def __init__(
        self,
        message: str,
        *,
        segment_a: str | None = None,
        segment_b: str | None = None,
        metric: str | None = None,
    ) -> None:
        self.segment_a = segment_a
        self.segment_b = segment_b
        self.metric = metric
        context = []
        if segment_a is not None or segment_b is not None:
            context.append(f"segment pair ({segment_a}, {segment_b})")
        if metric is not None:
            context.append(f"metric {metric}")
        prefix = f"{', '.join(context)}: " if context else ""
        super().__init__(f"{prefix}{message}")


class DataGapWarning(UserWarning):
    """A day in a fetched series lacks actual, forecast or bound values."""
