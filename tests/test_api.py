import pytest
from fastapi.testclient import TestClient

import api.main as main
from core.client import CurveServiceError
from core.compare import ComparisonSetManager
from core.series_cache import SeriesCache
from core.workbench import CompareFetcher


class FakeCurveService:
    def __init__(self, fail_primary=False):
        self.fail_primary = fail_primary
        self.series_calls = 0

    async def fit_curve(self, filters):
        if self.fail_primary:
            raise CurveServiceError(503, "fit service unavailable")
        upper = 80 + 10 * len(filters.countries)
        return {"params": {"b0": -4.0, "b1": 0.08, "b2": 0.0, "r2": 0.9}, "kDomain": [0, upper]}

    async def fetch_bands(self, filters, *, method="historical_quantiles", level=80):
        return [{"k": 1, "hd_dn": 0.1, "hd": 0.2, "hd_up": 0.3}, {"k": 0, "hd_dn": 0.0, "hd": 0.1, "hd_up": 0.2}]

    async def fetch_series(self, identifier, *, year_from=None, year_to=None):
        self.series_calls += 1
        if identifier == "BAD":
            raise CurveServiceError(404, "not found")
        return {"project": {"iatiidentifier": identifier}, "series": [{"k": 0, "d": 0.0}, {"k": 200, "d": 1.2}]}


@pytest.fixture
def service(monkeypatch):
    fake = FakeCurveService()
    monkeypatch.setattr(main, "client", fake)
    monkeypatch.setattr(main, "compare_set", ComparisonSetManager())
    monkeypatch.setattr(main, "compare_fetcher", CompareFetcher(fake.fit_curve))
    monkeypatch.setattr(main, "series_cache", SeriesCache(fake.fetch_series))
    return fake


@pytest.fixture
def http(service):
    return TestClient(main.app)


def test_health(http):
    assert http.get("/health").json() == {"status": "ok"}


def test_meta_labels(http):
    data = http.get("/meta/labels").json()
    assert data["macrosectors"]["11"] == "Infraestructura"
    assert data["modalities"]["111"] == "Investment"


def test_compare_lifecycle(http):
    first = http.post("/compare", json={"filters": {"countries": ["AR"], "macrosectors": [11]}}).json()
    assert first["id"] is not None
    assert first["entries"][0]["label"] == "AR · Infraestructura · Investment · 2010–2024"
    second = http.post("/compare", json={"filters": {"countries": ["BO"], "macrosectors": [11]}, "label": "Bolivia"}).json()
    assert [e["label"] for e in second["entries"]][1] == "Bolivia"

    combined = http.post("/compare/combine", json={"ids": [first["id"], second["id"]]}).json()
    assert combined["id"] is not None
    assert combined["entries"][-1]["filters"]["countries"] == ["AR", "BO"]
    assert combined["entries"][-1]["filters"]["macrosectors"] == [11]

    after_remove = http.delete(f"/compare/{first['id']}").json()
    assert first["id"] not in [e["id"] for e in after_remove["entries"]]

    cleared = http.delete("/compare").json()
    assert cleared["entries"] == []
    assert cleared["can_add"] is True


def test_compare_capacity_is_silent(http):
    for i in range(7):
        assert http.post("/compare", json={"filters": {"yearFrom": 2010 + i}}).json()["id"] is not None
    full = http.post("/compare", json={"filters": {}}).json()
    assert full["id"] is None
    assert len(full["entries"]) == 7
    assert full["can_add"] is False


def test_combine_single_id_is_noop(http):
    entry_id = http.post("/compare", json={"filters": {}}).json()["id"]
    data = http.post("/compare/combine", json={"ids": [entry_id]}).json()
    assert data["id"] is None
    assert len(data["entries"]) == 1


def test_bands_normalize(http):
    data = http.post("/bands/normalize", json={"k": [1, 0], "p_low": [0.2, 0.1], "p_high": [0.4, 0.3]}).json()
    assert data["k"] == [0, 1]
    assert data["p_low"] == [0.1, 0.2]
    assert data["p_high"] == [0.3, 0.4]


def test_bands_normalize_nan_encoded_as_null(http):
    data = http.post("/bands/normalize", json=[{"k": 0, "p50": "oops"}]).json()
    assert data["p50"] == [None]


def test_project_series_cached(http, service):
    first = http.get("/projects/P1/series", params={"kmax": 120}).json()
    second = http.get("/projects/P1/series").json()
    assert service.series_calls == 1
    assert first["series"] == second["series"]
    assert first["sparkline"][-1] == {"k": 120, "d": 1.0}


def test_project_series_failure_placeholder(http, service):
    for _ in range(2):
        data = http.get("/projects/BAD/series").json()
        assert data == {"project": {"iatiidentifier": "BAD"}, "series": []}
    assert service.series_calls == 1


def test_curves_shared_kmax(http):
    http.post("/compare", json={"filters": {"countries": ["AR", "BO", "BR"]}})
    data = http.post("/curves", json={"filters": {"countries": ["AR"]}, "include_bands": True}).json()
    assert data["kmax"] == 110
    series_max = {}
    for row in data["curves"]:
        series_max[row["series"]] = max(series_max.get(row["series"], 0), row["k"])
    assert series_max["primary"] == 90
    assert data["bands"]["p_low"] == [0.0, 0.1]
    assert data["bands"]["p50"] == [0.1, 0.2]
    assert "curves" in data["charts"]


def test_curves_suppresses_duplicate_primary(http):
    http.post("/compare", json={"filters": {"countries": ["AR"]}})
    data = http.post("/curves", json={"filters": {"countries": ["AR"]}}).json()
    assert "primary" not in {row["series"] for row in data["curves"]}


def test_curves_primary_failure(monkeypatch, http):
    monkeypatch.setattr(main, "client", FakeCurveService(fail_primary=True))
    resp = http.post("/curves", json={"filters": {}})
    assert resp.status_code == 503
    assert resp.json()["type"] == "CurveServiceError"


def test_bands_normalize_oversized_integer(http):
    resp = http.post("/bands/normalize", json=[{"k": 0, "p50": 10**400}])
    assert resp.status_code == 200
    assert resp.json()["p50"] == [None]


def test_curves_generation_is_per_session(http):
    http.post("/curves", json={"filters": {}}, headers={"X-Session-Id": "alice"})
    http.post("/curves", json={"filters": {}}, headers={"X-Session-Id": "alice"})
    http.post("/curves", json={"filters": {}})
    assert main.compare_fetcher.generation("alice") == 2
    assert main.compare_fetcher.generation() == 1
