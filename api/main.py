from __future__ import annotations

import logging
import math
from contextlib import asynccontextmanager
from typing import Any, Optional

import numpy as np
import pandas as pd
from fastapi import Body, FastAPI, Header, Query
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.schemas import CombineModel, CompareAddModel, CurvesRequestModel, FilterSpecModel
from core.bands import normalize_bands
from core.client import CurveServiceClient, CurveServiceError
from core.compare import ComparisonSetManager
from core.config import load_settings
from core.filters import FilterSpec, normalize_filters
from core.labels import MACROSECTOR_LABELS, MODALITY_LABELS
from core.metrics_curves import compute_curves, sparkline_points
from core.series_cache import SeriesCache
from core.workbench import DEFAULT_SESSION, CompareFetcher


logger = logging.getLogger(__name__)
settings = load_settings()

client = CurveServiceClient(settings.api_base_url, settings.api_timeout)
compare_set = ComparisonSetManager(capacity=settings.compare_capacity)
compare_fetcher = CompareFetcher(client.fit_curve)
series_cache = SeriesCache(client.fetch_series)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    yield
    await client.close()


app = FastAPI(title="Disbursement Curves API", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.cors_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _filters_from_model(model: FilterSpecModel) -> FilterSpec:
    raw = model.model_dump()
    return normalize_filters(raw)


def _json(data: object, status_code: int = 200) -> JSONResponse:
    """Return JSON with safe encoding for pandas/numpy objects."""

    def _safe_float(value: object) -> float | None:
        try:
            out = float(value)  # type: ignore[arg-type]
        except Exception:
            return None
        if math.isnan(out) or math.isinf(out):
            return None
        return out

    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(
            data,
            custom_encoder={
                type(pd.NA): lambda _: None,
                np.integer: int,
                float: _safe_float,
                np.floating: _safe_float,
                np.bool_: bool,
                np.ndarray: lambda arr: arr.tolist(),
            },
        ),
    )


def _error(exc: Exception, status_code: int = 500) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": str(exc), "type": type(exc).__name__})


def _compare_state(new_id: Optional[str] = None) -> dict:
    return {
        "id": new_id,
        "entries": compare_set.to_list(),
        "capacity": compare_set.capacity,
        "can_add": compare_set.can_add(),
    }


@app.get("/health")
def health():
    return {"status": "ok"}


@app.get("/meta/labels")
def meta_labels():
    return _json({"macrosectors": MACROSECTOR_LABELS, "modalities": MODALITY_LABELS})


@app.get("/compare")
def compare_list():
    try:
        return _json(_compare_state())
    except Exception as exc:
        logger.exception("compare_list failed")
        return _error(exc)


@app.post("/compare")
def compare_add(body: CompareAddModel):
    try:
        new_id = compare_set.add({"filters": _filters_from_model(body.filters), "label": body.label})
        return _json(_compare_state(new_id))
    except Exception as exc:
        logger.exception("compare_add failed")
        return _error(exc)


@app.delete("/compare/{entry_id}")
def compare_remove(entry_id: str):
    try:
        compare_set.remove(entry_id)
        return _json(_compare_state())
    except Exception as exc:
        logger.exception("compare_remove failed")
        return _error(exc)


@app.delete("/compare")
def compare_clear():
    try:
        compare_set.clear()
        compare_fetcher.cancel()
        return _json(_compare_state())
    except Exception as exc:
        logger.exception("compare_clear failed")
        return _error(exc)


@app.post("/compare/combine")
def compare_combine(body: CombineModel):
    try:
        new_id = compare_set.combine(body.ids)
        return _json(_compare_state(new_id))
    except Exception as exc:
        logger.exception("compare_combine failed")
        return _error(exc)


@app.post("/bands/normalize")
def bands_normalize(payload: Any = Body(default=None)):
    try:
        return _json(normalize_bands(payload).to_dict())
    except Exception as exc:
        logger.exception("bands_normalize failed")
        return _error(exc)


@app.get("/projects/{identifier}/series")
async def project_series(identifier: str, kmax: Optional[float] = Query(default=None)):
    try:
        payload = await series_cache.get(identifier)
        data = payload.to_dict()
        if kmax is not None:
            data["sparkline"] = sparkline_points(payload.series, kmax)
        return _json(data)
    except Exception as exc:
        logger.exception("project_series failed")
        return _error(exc)


@app.post("/curves")
async def curves(body: CurvesRequestModel, x_session_id: Optional[str] = Header(default=None)):
    try:
        f = _filters_from_model(body.filters)
        entries = compare_set.entries
        try:
            primary = await client.fit_curve(f)
        except CurveServiceError as exc:
            logger.warning("primary fit failed: %s", exc)
            return _error(exc, status_code=exc.status_code or 502)

        comparisons = await compare_fetcher.refresh(entries, session=x_session_id or DEFAULT_SESSION)
        if comparisons is None:
            return JSONResponse(status_code=409, content={"error": "superseded by a newer request", "type": "Stale"})

        bands = None
        if body.include_bands:
            try:
                bands = await client.fetch_bands(f, method=body.band_method, level=body.band_level)
            except CurveServiceError as exc:
                logger.warning("band fetch failed, drawing without bands: %s", exc)

        payload = compute_curves(
            f,
            primary,
            comparisons,
            entries,
            suppress_primary=compare_set.contains(f),
            bands=bands,
            default_kmax=settings.default_kmax,
        )
        return _json(payload)
    except Exception as exc:
        logger.exception("curves failed")
        return _error(exc)
