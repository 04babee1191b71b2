from __future__ import annotations

import argparse
from pathlib import Path

import numpy as np
import pandas as pd
import yaml

BASE_LEVELS = {
    "revenue": 12_000.0,
    "orders": 240.0,
    "bounce_rate": 0.42,
    "time_on_site": 185.0,
}
WEEKEND_FACTOR = 0.7


def build_sample_frame(config_path: Path, seed: int, spike_rate: float) -> pd.DataFrame:
    with config_path.open("r", encoding="utf-8") as handle:
        config = yaml.safe_load(handle) or {}

    window = config["window"]
    start = pd.Timestamp(window["start"]) - pd.Timedelta(days=int(window.get("lookback_days", 35)))
    days = pd.date_range(start, pd.Timestamp(window["end"]), freq="D")
    rng = np.random.default_rng(seed)

    rows: list[dict[str, object]] = []
    for segment_a in config["segments_a"]:
        for segment_b in config["segments_b"]:
            share = rng.uniform(0.05, 0.3)
            for metric in config["metrics"]:
                base = BASE_LEVELS.get(metric["id"], 100.0)
                scale = base if metric["id"] in {"bounce_rate", "time_on_site"} else base * share
                weekly = np.where(days.dayofweek >= 5, WEEKEND_FACTOR, 1.0)
                values = scale * weekly * rng.normal(1.0, 0.05, size=len(days))
                spikes = rng.random(len(days)) < spike_rate
                values[spikes] *= rng.choice([0.5, 1.6], size=int(spikes.sum()))
                for day, value in zip(days, values):
                    rows.append(
                        {
                            "date": day.date().isoformat(),
                            "base_segment": config.get("base_segment") or "",
                            "segment_a": segment_a["id"],
                            "segment_b": segment_b["id"],
                            "metric": metric["id"],
                            "actual": round(float(value), 4),
                        }
                    )
    return pd.DataFrame(rows)


def main() -> None:
    parser = argparse.ArgumentParser(description="Write a synthetic daily metrics table.")
    parser.add_argument("--config", type=Path, default=Path("configs/default.yaml"))
    parser.add_argument("--out", type=Path, default=Path("out/sample/daily_metrics.csv"))
    parser.add_argument("--seed", type=int, default=7)
    parser.add_argument("--spike-rate", type=float, default=0.05)
    args = parser.parse_args()

    frame = build_sample_frame(args.config, seed=args.seed, spike_rate=args.spike_rate)
    args.out.parent.mkdir(parents=True, exist_ok=True)
    frame.to_csv(args.out, index=False)
    print(f"Wrote {len(frame)} rows to {args.out}")


if __name__ == "__main__":
    main()
