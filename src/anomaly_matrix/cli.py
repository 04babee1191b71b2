from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path
from typing import Any

import typer

from anomaly_matrix.config import DEFAULT_CONFIG_PATH, AppConfig, load_config
from anomaly_matrix.errors import ConfigurationError, ProviderError
from anomaly_matrix.io.snapshot import load_snapshot, snapshot_path
from anomaly_matrix.logging import configure_logging
from anomaly_matrix.paths import build_output_paths
from anomaly_matrix.pipeline.build_matrix import fetch_cell_series
from anomaly_matrix.pipeline.run_all import render_matrix, run_report
from anomaly_matrix.providers.table import build_provider
from anomaly_matrix.viz.time_series import plot_cell_trend

app = typer.Typer(no_args_is_help=True, add_completion=False)


def _load_app_config(config_path: Path) -> AppConfig:
    return load_config(config_path)


def _fail(exc: Exception) -> typer.Exit:
    typer.echo(f"Error: {exc}", err=True)
    return typer.Exit(code=1)


def _lookup(items: Sequence[Any], item_id: str, option: str) -> Any:
    for item in items:
        if item.id == item_id:
            return item
    known = ", ".join(item.id for item in items)
    raise typer.BadParameter(f"Unknown id {item_id!r}. Known ids: {known}", param_hint=option)


@app.command()
def run(
    out: Path = typer.Option(Path("out"), resolve_path=True),
    config: Path = typer.Option(DEFAULT_CONFIG_PATH, exists=True, readable=True, resolve_path=True),
    rebuild: bool = typer.Option(
        False, help="Query the provider even when a current snapshot exists."
    ),
    log_level: str = typer.Option("INFO", help="Logging level."),
) -> None:
    """Build the anomaly matrix, snapshot it, and render heatmaps."""
    configure_logging(log_level)
    try:
        cfg = _load_app_config(config)
        result = run_report(cfg, out, reuse_snapshot=not rebuild)
    except (ConfigurationError, ProviderError) as exc:
        raise _fail(exc) from exc
    source = "reused snapshot" if result.reused_snapshot else "provider"
    typer.echo(f"Run complete ({source}). Cells: {len(result.matrix)}")
    typer.echo(f"- snapshot: {result.snapshot_path}")
    typer.echo(f"- summary: {result.summary_path}")
    for metric_id, path in result.figures.items():
        typer.echo(f"- heatmap[{metric_id}]: {path}")


@app.command()
def render(
    out: Path = typer.Option(Path("out"), resolve_path=True),
    config: Path = typer.Option(DEFAULT_CONFIG_PATH, exists=True, readable=True, resolve_path=True),
) -> None:
    """Render heatmaps from an existing snapshot in out/."""
    configure_logging()
    try:
        cfg = _load_app_config(config)
    except ConfigurationError as exc:
        raise _fail(exc) from exc
    paths = build_output_paths(out)
    path = snapshot_path(paths.tables, cfg.outputs.snapshot_format)
    if not path.exists():
        raise typer.BadParameter(f"No snapshot found at {path}. Run `run` first.")
    try:
        matrix = load_snapshot(path)
    except ValueError as exc:
        raise _fail(exc) from exc
    figures = render_matrix(matrix, cfg, out)
    typer.echo(f"Rendered {len(figures)} heatmap(s) to {paths.figures}")


@app.command()
def trend(
    segment_a: str = typer.Option(..., help="Segment id from segments_a."),
    segment_b: str = typer.Option(..., help="Segment id from segments_b."),
    metric: str = typer.Option(..., help="Metric id."),
    out: Path = typer.Option(Path("out"), resolve_path=True),
    config: Path = typer.Option(DEFAULT_CONFIG_PATH, exists=True, readable=True, resolve_path=True),
) -> None:
    """Plot one cell's actual vs forecast trend with anomaly markers."""
    configure_logging()
    try:
        cfg = _load_app_config(config)
    except ConfigurationError as exc:
        raise _fail(exc) from exc
    seg_a = _lookup(cfg.segment_list_a(), segment_a, "--segment-a")
    seg_b = _lookup(cfg.segment_list_b(), segment_b, "--segment-b")
    chosen = _lookup(cfg.metric_list(), metric, "--metric")
    try:
        frame = fetch_cell_series(cfg, build_provider(cfg), seg_a, seg_b, chosen)
    except (ConfigurationError, ProviderError) as exc:
        raise _fail(exc) from exc

    paths = build_output_paths(out)
    figure_path = plot_cell_trend(
        frame,
        chosen,
        cfg.window.start,
        cfg.window.end,
        cfg.window.include_weekends,
        paths.figures / f"trend_{segment_a}__{segment_b}__{metric}.{cfg.outputs.figures_format}",
        title=f"{chosen.name}: {seg_a.name} x {seg_b.name}",
    )
    if figure_path is None:
        typer.echo("No data to plot.")
        return
    typer.echo(f"Trend written to: {figure_path}")


@app.command("validate-config")
def validate_config(
    config: Path = typer.Option(DEFAULT_CONFIG_PATH, exists=True, readable=True, resolve_path=True),
) -> None:
    """Load and validate a run configuration."""
    configure_logging()
    try:
        cfg = _load_app_config(config)
        cfg.polarity_registry().require(cfg.metric_list())
    except ConfigurationError as exc:
        raise _fail(exc) from exc
    cells = len(cfg.segments_a) * len(cfg.segments_b) * len(cfg.metrics)
    typer.echo("Config OK")
    typer.echo(f"- metrics: {len(cfg.metrics)}")
    typer.echo(f"- segments_a: {len(cfg.segments_a)}")
    typer.echo(f"- segments_b: {len(cfg.segments_b)}")
    typer.echo(f"- cells: {cells}")
    typer.echo(f"- window: {cfg.window.start} .. {cfg.window.end}")


if __name__ == "__main__":
    app()
