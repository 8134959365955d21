import math

from core.compare import ComparisonSetManager
from core.filters import normalize_filters
from core.metrics_curves import (
    MAIN_COLOR,
    PALETTE,
    compute_curves,
    curve_params,
    evaluate_curve,
    residual_summary,
    sparkline_points,
)
from core.series_cache import SeriesPoint


def _fit(upper, b0=-4.0, b1=0.08, b2=0.0, **params):
    return {"params": {"b0": b0, "b1": b1, "b2": b2, **params}, "kDomain": [0, upper]}


def test_evaluate_curve_logistic():
    frame = evaluate_curve({"b0": 0.0, "b1": 0.0, "b2": 0.0}, 10)
    assert frame["k"].tolist() == list(range(11))
    assert all(abs(v - 0.5) < 1e-12 for v in frame["hd"])
    frame = evaluate_curve({"b0": -2.0, "b1": 0.1, "b2": 0.001}, 3)
    expected = 1 / (1 + math.exp(-(-2.0 + 0.1 * 3 + 0.001 * 9)))
    assert abs(frame["hd"].iloc[-1] - expected) < 1e-12


def test_curve_params_requires_all_coefficients():
    assert curve_params({"params": {"b0": 1, "b1": 2}}) is None
    assert curve_params({"params": {"b0": 1, "b1": 2, "b2": "nan"}}) is None
    assert curve_params(None) is None
    assert curve_params({"params": {"b0": 1, "b1": 2, "b2": 3}}) == {"b0": 1.0, "b1": 2.0, "b2": 3.0}


def test_compute_curves_shared_axis_and_limits():
    m = ComparisonSetManager()
    m.add({"countries": ["AR"]})
    m.add({"countries": ["BO"]})
    filters = normalize_filters({})
    payload = compute_curves(filters, _fit(80), [_fit(120), _fit(95)], m.entries)

    assert payload["kmax"] == 120
    assert payload["axis"] == [0, 120]
    max_k = {}
    for row in payload["curves"]:
        max_k[row["series"]] = max(max_k.get(row["series"], 0), row["k"])
    assert max_k["primary"] == 80
    assert max_k[m.entries[0].id] == 120
    assert max_k[m.entries[1].id] == 95
    assert "curves" in payload["charts"]


def test_primary_kpi_row_only_without_comparisons():
    filters = normalize_filters({})
    alone = compute_curves(filters, _fit(90, r2=0.8, n_projects=40), [], [])
    assert [r["color"] for r in alone["kpis"]] == [MAIN_COLOR]
    assert alone["kpis"][0]["r2"] == 0.8
    assert alone["kpis"][0]["kMax"] == 90
    assert alone["kpis"][0]["label"] == "Global · Global · Investment · 2010–2024"

    m = ComparisonSetManager()
    m.add({"countries": ["AR"]})
    with_compare = compute_curves(filters, _fit(90), [_fit(90)], m.entries)
    assert [r["color"] for r in with_compare["kpis"]] == [PALETTE[0]]
    assert with_compare["kpis"][0]["label"] == m.entries[0].label


def test_suppress_primary_when_already_compared():
    m = ComparisonSetManager()
    m.add({"countries": ["AR"]})
    filters = normalize_filters({"countries": ["AR"]})
    payload = compute_curves(filters, _fit(90), [_fit(90)], m.entries, suppress_primary=m.contains(filters))
    assert {row["series"] for row in payload["curves"]} == {m.entries[0].id}


def test_failed_comparison_fits_are_skipped():
    m = ComparisonSetManager()
    m.add({"countries": ["AR"]})
    m.add({"countries": ["BO"]})
    payload = compute_curves(normalize_filters({}), _fit(60), [None, {"error": "x"}], m.entries)
    assert {row["series"] for row in payload["curves"]} == {"primary"}
    assert payload["kpis"] == []
    assert payload["kmax"] == 60


def test_compute_curves_without_any_fit():
    payload = compute_curves(normalize_filters({}), None, [], [])
    assert payload["kmax"] == 120
    assert payload["curves"] == []
    assert payload["charts"] == {}


def test_compute_curves_with_bands():
    raw = {"k": [0, 1, 2], "p10": [0.0, 0.1, 0.2], "p50": [0.1, 0.2, 0.3], "p90": [0.2, 0.3, 0.4]}
    payload = compute_curves(normalize_filters({}), _fit(60), [], [], bands=raw)
    assert payload["bands"]["p_low"] == [0.0, 0.1, 0.2]
    assert "bands" in payload["charts"]


def test_residual_summary_groups():
    points = [
        {"y": 0.1, "macrosector_id": 11, "country_id": "AR"},
        {"y": 0.3, "macrosector_id": 11, "country_id": "AR"},
        {"y": -0.2, "macrosector_id": 22, "country_id": "BO"},
        {"y": None, "macrosector_id": 33},
    ]
    summary = residual_summary(points)
    assert summary["residuals"] == [0.1, 0.3, -0.2]
    macro = summary["by_group"]["macrosector"]
    assert [g["n"] for g in macro] == [2, 1]
    assert abs(macro[0]["mean"] - 0.2) < 1e-12
    assert abs(macro[0]["var"] - 0.02) < 1e-12
    assert macro[1]["var"] == 0.0
    modality = summary["by_group"]["modality"]
    assert [(g["key"], g["n"]) for g in modality] == [("NA", 3)]


def test_residual_summary_caps_countries():
    points = [{"y": 0.1, "country_id": f"C{i}"} for i in range(15)]
    assert len(residual_summary(points)["by_group"]["country"]) == 10


def test_residual_summary_empty():
    assert residual_summary(None)["residuals"] == []
    assert residual_summary([{"x": 1}])["by_group"]["country"] == []


def test_sparkline_points_clamped_to_axis():
    series = [SeriesPoint(k=-2, d=-0.1), SeriesPoint(k=50, d=0.5), SeriesPoint(k=200, d=1.4)]
    assert sparkline_points(series, 120) == [{"k": 0.0, "d": 0.0}, {"k": 50.0, "d": 0.5}, {"k": 120, "d": 1.0}]
