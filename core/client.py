"""Async HTTP client for the remote curve service.

The service owns the statistical fitting; this client only moves filter payloads
out and JSON back. Every method raises CurveServiceError on HTTP or transport
errors, and the callers (series cache, compare fetcher) decide how to degrade.
"""

from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional, Tuple, Union
from urllib.parse import quote

import httpx

from core.filters import FilterSpec, normalize_filters


class CurveServiceError(Exception):
    """Raised when the curve service fails or cannot be reached."""

    def __init__(self, status_code: int, detail: str):
        self.status_code = status_code
        self.detail = detail
        super().__init__(f"Curve service error {status_code}: {detail}")


def _error_detail(response: httpx.Response) -> str:
    try:
        data = response.json()
    except Exception:
        data = {}
    if isinstance(data, dict):
        detail = data.get("detail") or data.get("message")
        if detail:
            return str(detail)
    return response.reason_phrase or f"HTTP {response.status_code}"


class CurveServiceClient:
    def __init__(self, base_url: str = "http://localhost:8000", timeout: float = 30.0, *, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._lock = asyncio.Lock()

    async def _ensure_client(self) -> httpx.AsyncClient:
        async with self._lock:
            if self._client is None:
                self._client = httpx.AsyncClient(
                    base_url=self.base_url,
                    timeout=self.timeout,
                    follow_redirects=True,
                    transport=self._transport,
                )
            return self._client

    async def close(self) -> None:
        async with self._lock:
            if self._client is not None:
                await self._client.aclose()
                self._client = None

    async def _request(self, method: str, path: str, **kwargs) -> Union[Dict[str, Any], List[Any], str]:
        client = await self._ensure_client()
        try:
            response = await client.request(method, path, **kwargs)
        except httpx.RequestError as exc:
            raise CurveServiceError(0, "Network request failed") from exc
        if response.is_error:
            raise CurveServiceError(response.status_code, _error_detail(response))
        try:
            return response.json()
        except ValueError:
            return response.text

    async def health(self) -> Any:
        return await self._request("GET", "/api/health")

    async def get_filters(self) -> Any:
        """Available filter values (macrosectors, modalities, countries, ranges)."""
        return await self._request("GET", "/api/filters")

    async def fit_curve(self, filters: Union[FilterSpec, Dict[str, Any]]) -> Any:
        """POST /api/curves/fit; fromFirstDisbursement travels as a query flag."""
        body = normalize_filters(filters).to_payload()
        from_first = body.pop("fromFirstDisbursement", False)
        params = {"fromFirstDisbursement": "true"} if from_first else None
        return await self._request("POST", "/api/curves/fit", json=body, params=params)

    async def fetch_series(
        self,
        identifier: str,
        *,
        year_from: Optional[int] = None,
        year_to: Optional[int] = None,
        from_first_disbursement: bool = False,
    ) -> Any:
        params: Dict[str, Any] = {}
        if year_from is not None:
            params["yearFrom"] = year_from
        if year_to is not None:
            params["yearTo"] = year_to
        if from_first_disbursement:
            params["fromFirstDisbursement"] = "true"
        path = f"/api/projects/{quote(str(identifier), safe='')}/timeseries"
        return await self._request("GET", path, params=params or None)

    async def fetch_bands(
        self,
        filters: Union[FilterSpec, Dict[str, Any], None] = None,
        *,
        identifier: Optional[str] = None,
        method: str = "historical_quantiles",
        level: int = 80,
        smooth: bool = True,
    ) -> Any:
        """Historical quantile bands for the filtered portfolio (raw, un-normalized).

        When `identifier` is given the service leaves that project out of the computation.
        """
        params: List[Tuple[str, Any]] = [("method", method), ("level", level), ("smooth", "true" if smooth else "false")]
        if identifier:
            params.append(("iatiidentifier", identifier))
        payload = normalize_filters(filters).to_payload() if filters is not None else {}
        if payload.pop("fromFirstDisbursement", False):
            params.append(("fromFirstDisbursement", "true"))
        for key, value in payload.items():
            if isinstance(value, list):
                params.extend((key, v) for v in value)
            elif isinstance(value, bool):
                params.append((key, "true" if value else "false"))
            elif value is not None:
                params.append((key, value))
        return await self._request("GET", "/api/curves/prediction-bands", params=params)
