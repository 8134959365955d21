from __future__ import annotations

from typing import Any, Dict

import altair as alt
import pandas as pd

from core.bands import BandTable

alt.data_transformers.disable_max_rows()


def to_vega_spec(chart: alt.Chart) -> Dict[str, Any]:
    """Convert an Altair chart into a Vega-Lite spec dict (JSON-serializable)."""
    return chart.to_dict()


def _k_axis(kmax: float) -> alt.X:
    return alt.X("k:Q", title="Months", scale=alt.Scale(domain=[0, kmax], nice=False), axis=alt.Axis(grid=False))


def curve_chart(frame: pd.DataFrame, kmax: float) -> alt.Chart:
    """Fitted curves on one shared k axis; comparison curves are dashed."""
    labels = frame.drop_duplicates("label")
    return (
        alt.Chart(frame)
        .mark_line()
        .encode(
            x=_k_axis(kmax),
            y=alt.Y("hd:Q", title="Disbursed", scale=alt.Scale(domain=[0, 1]), axis=alt.Axis(format=".0%", gridDash=[4, 4])),
            color=alt.Color(
                "label:N",
                title="Series",
                scale=alt.Scale(domain=labels["label"].tolist(), range=labels["color"].tolist()),
            ),
            strokeDash=alt.condition(alt.datum.series == "primary", alt.value([1, 0]), alt.value([6, 4])),
            tooltip=[
                alt.Tooltip("label:N", title="Series"),
                alt.Tooltip("k:Q", title="Month"),
                alt.Tooltip("hd:Q", title="Disbursed", format=".1%"),
            ],
        )
    )


def band_chart(table: BandTable, kmax: float) -> alt.LayerChart:
    df = table.to_frame()
    base = alt.Chart(df).encode(x=_k_axis(kmax))
    area = base.mark_area(opacity=0.2).encode(
        y=alt.Y("p_low:Q", title="Disbursed", axis=alt.Axis(format=".0%")),
        y2="p_high:Q",
    )
    median = base.mark_line().encode(
        y="p50:Q",
        tooltip=[
            alt.Tooltip("k:Q", title="Month"),
            alt.Tooltip("p_low:Q", title="Low", format=".1%"),
            alt.Tooltip("p50:Q", title="Median", format=".1%"),
            alt.Tooltip("p_high:Q", title="High", format=".1%"),
        ],
    )
    return alt.layer(area, median)
