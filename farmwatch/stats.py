from collections.abc import Sequence
from enum import Enum

import numpy as np
import pandas as pd

from .metrics import CHARTED_METRICS, Metric
from .timeseries import Reading


class BucketSize(Enum):
    RAW = 0
    ONE_HOUR = 60
    ONE_DAY = 1440


def metric_frame(readings: Sequence[Reading], metrics: Sequence[Metric] = CHARTED_METRICS) -> pd.DataFrame:
    """One row per reading: `instant` plus one float column per metric (NaN when absent)."""
    columns = ["instant", *[m.name for m in metrics]]
    if not readings:
        return pd.DataFrame(columns=columns).astype({"instant": "datetime64[ns]"})
    rows = [
        {"instant": r.instant, **{m.name: r.metric(m.key) for m in metrics}}
        for r in readings
    ]
    df = pd.DataFrame(rows, columns=columns)
    for m in metrics:
        df[m.name] = pd.to_numeric(df[m.name], errors="coerce").astype(float)
    return df.sort_values("instant", kind="stable").reset_index(drop=True)


def aggregate_buckets(df: pd.DataFrame, bucket: BucketSize) -> pd.DataFrame:
    """Average every metric column over fixed time buckets.

    `RAW` returns the frame unchanged. Empty buckets are not emitted.
    """
    if bucket == BucketSize.RAW or df is None or df.empty:
        return df

    work = df.copy()
    work["instant"] = work["instant"].dt.floor(f"{int(bucket.value)}min")
    value_cols = [c for c in work.columns if c != "instant"]
    out = work.groupby("instant", sort=True)[value_cols].mean()
    return out.reset_index()


def _nan_stat(values: np.ndarray, fn) -> float | None:  # type: ignore[no-untyped-def]
    if values.size == 0 or np.all(np.isnan(values)):
        return None
    return float(fn(values))


def summarize_window(
    df: pd.DataFrame, metrics: Sequence[Metric] = CHARTED_METRICS
) -> dict[str, dict[str, float | None]]:
    """Compute min, max, mean and population std for each metric over the window."""
    summary: dict[str, dict[str, float | None]] = {}
    for m in metrics:
        if df is None or df.empty or m.name not in df.columns:
            values = np.array([], dtype=float)
        else:
            values = df[m.name].to_numpy(dtype=float)
        summary[m.name] = {
            "min": _nan_stat(values, np.nanmin),
            "max": _nan_stat(values, np.nanmax),
            "avg": _nan_stat(values, np.nanmean),
            "std": _nan_stat(values, lambda v: np.nanstd(v, ddof=0)),
        }
    return summary


def default_bucket(readings_count: int, window_days: int) -> BucketSize:
    """Pick a bucket that keeps charts readable for long windows."""
    if window_days <= 1 or readings_count <= 500:
        return BucketSize.RAW
    if window_days <= 7:
        return BucketSize.ONE_HOUR
    return BucketSize.ONE_DAY
