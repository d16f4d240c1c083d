from collections.abc import Sequence
from datetime import datetime, time, timedelta
from typing import Any, Final

import pandas as pd
import plotly.graph_objects as go

from .metrics import FLOAT_SWITCH, GROUP_TITLES, ChartGroup, Metric, metrics_in_group
from .pins import MapPin
from .timeseries import Window

PLOTLY_CONFIG: Final[dict[str, Any]] = {
    "scrollZoom": False,
    "displaylogo": False,
    "modeBarButtonsToRemove": [
        "zoom2d",
        "zoomIn2d",
        "zoomOut2d",
        "select2d",
        "lasso2d",
        "pan2d",
    ],
}


def _axis_title(metrics: Sequence[Metric]) -> str:
    units = sorted({m.unit for m in metrics if m.unit})
    return ", ".join(units) if units else "Value"


def group_figure(df: pd.DataFrame, group: ChartGroup, window: Window) -> go.Figure:
    """Line chart of every metric in `group` over the window.

    Missing values are drawn as 0, as the sensor sheet leaves cells blank when a
    probe is disconnected.
    """
    metrics = metrics_in_group(group)
    fig = go.Figure()
    for m in metrics:
        y = df[m.name].fillna(0.0) if m.name in df.columns else []
        fig.add_trace(
            go.Scatter(
                x=df["instant"] if "instant" in df.columns else [],
                y=y,
                mode="lines",
                name=f"{m.label} ({m.unit})" if m.unit else m.label,
                line=dict(color=m.color, shape="spline", width=2),
            )
        )

    x0 = datetime.combine(window.start, time.min)
    x1 = datetime.combine(window.end + timedelta(days=1), time.min)
    fig.update_layout(
        title=GROUP_TITLES[group],
        xaxis=dict(title="Time", range=[x0, x1], fixedrange=True),
        yaxis=dict(title=_axis_title(metrics), fixedrange=True),
        legend=dict(orientation="h", yanchor="bottom", y=1.02, xanchor="left", x=0),
        margin=dict(l=40, r=40, t=60, b=40),
        height=350,
    )
    return fig


def gauge_figure(metric: Metric, value: float | None) -> go.Figure:
    """Radial gauge for the latest value of a metric; the float switch shows ON/OFF."""
    shown = value or 0.0
    if metric is FLOAT_SWITCH:
        indicator = go.Indicator(
            mode="gauge",
            value=1.0 if shown > 0 else 0.0,
            title={"text": f"{metric.label}: {'ON' if shown > 0 else 'OFF'}"},
            gauge={"axis": {"range": [0, 1], "visible": False}, "bar": {"color": metric.color}},
        )
    else:
        indicator = go.Indicator(
            mode="gauge+number",
            value=shown,
            number={"suffix": f" {metric.unit}" if metric.unit else ""},
            title={"text": metric.label},
            gauge={"axis": {"range": [0, max(metric.gauge_max, shown)]}, "bar": {"color": metric.color}},
        )
    fig = go.Figure(indicator)
    fig.update_layout(margin=dict(l=20, r=20, t=50, b=10), height=200)
    return fig


def pins_figure(pins: Sequence[MapPin], highlight_uid: str | None = None) -> go.Figure:
    """Scatter of pole positions on a 0-100 grid matching the farm map image."""
    fig = go.Figure()
    own = [p for p in pins if highlight_uid is None or p.uid == highlight_uid]
    others = [p for p in pins if highlight_uid is not None and p.uid != highlight_uid]
    for subset, color, name in ((own, "#84cc16", "Poles"), (others, "#94a3b8", "Other farms")):
        if not subset:
            continue
        fig.add_trace(
            go.Scatter(
                x=[p.x for p in subset],
                y=[p.y for p in subset],
                mode="markers+text",
                text=[f"{p.place_name} #{p.pole_number}" for p in subset],
                textposition="top center",
                marker=dict(size=14, color=color, symbol="triangle-down"),
                name=name,
            )
        )
    fig.update_layout(
        xaxis=dict(range=[0, 100], showgrid=False, visible=False, fixedrange=True),
        # Screen coordinates: y grows downwards
        yaxis=dict(range=[100, 0], showgrid=False, visible=False, fixedrange=True),
        margin=dict(l=10, r=10, t=10, b=10),
        height=420,
        showlegend=bool(others),
    )
    return fig
