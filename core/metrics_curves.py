from __future__ import annotations

import math
from typing import Any, Dict, List, Mapping, Optional, Sequence

import numpy as np
import pandas as pd

from core.bands import normalize_bands
from core.charts import band_chart, curve_chart, to_vega_spec
from core.compare import CompareEntry, default_label
from core.domain import DEFAULT_KMAX, compute_kmax, curve_limit, k_upper_bound
from core.filters import FilterSpec
from core.series_cache import SeriesPoint


MAIN_COLOR = "#4ea1f3"
PALETTE = ("#ef4444", "#10b981", "#f59e0b", "#a78bfa", "#22d3ee", "#f472b6", "#34d399")
KPI_FIELDS = ("k30", "k50", "k80", "r2", "var_y", "sigma", "n_projects", "disb_count", "approved_avg", "portfolio_share")
RESIDUAL_GROUPS = {"macrosector": "macrosector_id", "modality": "modality_id", "country": "country_id"}


def _finite_number(value: Any) -> Optional[float]:
    try:
        out = float(value)
    except Exception:
        return None
    return out if math.isfinite(out) else None


def curve_params(fit: Optional[Mapping[str, Any]]) -> Optional[Dict[str, float]]:
    if not isinstance(fit, Mapping) or not isinstance(fit.get("params"), Mapping):
        return None
    params = fit["params"]
    coeffs = {name: _finite_number(params.get(name)) for name in ("b0", "b1", "b2")}
    if any(v is None for v in coeffs.values()):
        return None
    return coeffs  # type: ignore[return-value]


def evaluate_curve(params: Mapping[str, float], limit: float) -> pd.DataFrame:
    """hd(k) = 1 / (1 + exp(-(b0 + b1*k + b2*k^2))) for integer k in 0..limit."""
    k = np.arange(0, int(math.floor(max(0.0, limit))) + 1)
    z = params["b0"] + params["b1"] * k + params["b2"] * k * k
    with np.errstate(over="ignore"):
        hd = 1.0 / (1.0 + np.exp(-z))
    return pd.DataFrame({"k": k, "hd": hd})


def kpi_row(label: str, color: str, fit: Mapping[str, Any], *, default_kmax: float = DEFAULT_KMAX) -> Dict[str, Any]:
    params = fit.get("params") or {}
    row: Dict[str, Any] = {"label": label, "color": color}
    for name in KPI_FIELDS:
        row[name] = _finite_number(params.get(name))
    upper = k_upper_bound(fit)
    row["kMax"] = default_kmax if upper is None else upper
    return row


def residual_summary(points: Optional[Sequence[Mapping[str, Any]]], *, top_countries: int = 10) -> Dict[str, Any]:
    """Residual values and their mean/variance by macrosector, modality and country."""
    empty = {"residuals": [], "by_group": {name: [] for name in RESIDUAL_GROUPS}}
    if not points:
        return empty
    df = pd.DataFrame([p for p in points if isinstance(p, Mapping)])
    if df.empty or "y" not in df.columns:
        return empty
    df["y"] = pd.to_numeric(df["y"], errors="coerce")
    df = df[np.isfinite(df["y"])]
    if df.empty:
        return empty

    by_group: Dict[str, List[Dict[str, Any]]] = {}
    for name, col in RESIDUAL_GROUPS.items():
        if col in df.columns:
            keys = df[col].astype(object).where(df[col].notna(), "NA")
        else:
            keys = pd.Series("NA", index=df.index, dtype=object)
        stats = df["y"].groupby(keys.rename("key"), sort=False).agg(["count", "mean", "var"]).reset_index()
        stats.columns = ["key", "n", "mean", "var"]
        stats["var"] = stats["var"].fillna(0.0)
        stats = stats.sort_values("n", ascending=False, kind="mergesort")
        if name == "country":
            stats = stats.head(top_countries)
        by_group[name] = stats.to_dict(orient="records")

    return {"residuals": df["y"].tolist(), "by_group": by_group}


def sparkline_points(series: Sequence[SeriesPoint], kmax: float) -> List[Dict[str, float]]:
    """Clamp a project's series into the main chart's [0, KMAX] x [0, 1] box."""
    return [{"k": min(max(0.0, float(p.k)), kmax), "d": min(max(0.0, float(p.d)), 1.0)} for p in series]


def compute_curves(
    filters: FilterSpec,
    primary: Optional[Mapping[str, Any]],
    comparisons: Sequence[Optional[Mapping[str, Any]]],
    entries: Sequence[CompareEntry],
    *,
    suppress_primary: bool = False,
    bands: Any = None,
    default_kmax: float = DEFAULT_KMAX,
) -> Dict[str, Any]:
    """Everything the rendering layer needs to draw one workbench state.

    `comparisons` is index-aligned with `entries`. The primary curve is skipped
    when `suppress_primary` is set (its filters already sit in the comparison set).
    """
    kmax = compute_kmax(primary, comparisons, default=default_kmax)
    frames: List[pd.DataFrame] = []
    kpis: List[Dict[str, Any]] = []

    main_label = default_label(filters)
    primary_params = curve_params(primary)
    if primary_params is not None and not suppress_primary:
        curve = evaluate_curve(primary_params, curve_limit(primary, kmax, default=default_kmax))
        frames.append(curve.assign(series="primary", label=main_label, color=MAIN_COLOR))
    if primary_params is not None and not entries:
        kpis.append(kpi_row(main_label, MAIN_COLOR, primary, default_kmax=default_kmax))  # type: ignore[arg-type]

    for idx, (entry, fit) in enumerate(zip(entries, comparisons)):
        params = curve_params(fit)
        if params is None:
            continue
        label = entry.label or f"Curva {idx + 1} · {entry.filters.years_label}"
        color = PALETTE[idx % len(PALETTE)]
        curve = evaluate_curve(params, curve_limit(fit, kmax, default=default_kmax))
        frames.append(curve.assign(series=entry.id, label=label, color=color))
        kpis.append(kpi_row(label, color, fit, default_kmax=default_kmax))  # type: ignore[arg-type]

    curves = pd.concat(frames, ignore_index=True) if frames else pd.DataFrame(columns=["k", "hd", "series", "label", "color"])

    charts: Dict[str, Any] = {}
    if not curves.empty:
        charts["curves"] = to_vega_spec(curve_chart(curves, kmax))

    band_table = None
    if bands is not None:
        table = normalize_bands(bands)
        band_table = table.to_dict()
        if len(table):
            charts["bands"] = to_vega_spec(band_chart(table, kmax))

    return {
        "filters": filters.to_payload(),
        "kmax": kmax,
        "axis": [0, kmax],
        "curves": curves.to_dict(orient="records"),
        "kpis": kpis,
        "residuals": residual_summary((primary or {}).get("points")),
        "bands": band_table,
        "charts": charts,
    }
