from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional


logger = logging.getLogger(__name__)

SeriesFetcher = Callable[..., Awaitable[Any]]


@dataclass(frozen=True)
class SeriesPoint:
    k: int
    d: float


@dataclass
class SeriesPayload:
    project: Dict[str, Any]
    series: List[SeriesPoint] = field(default_factory=list)

    @classmethod
    def placeholder(cls, identifier: str) -> "SeriesPayload":
        return cls(project={"iatiidentifier": identifier}, series=[])

    @classmethod
    def from_response(cls, identifier: str, resp: Any) -> "SeriesPayload":
        resp = resp if isinstance(resp, dict) else {}
        project = resp.get("project")
        if not isinstance(project, dict):
            project = {"iatiidentifier": identifier}
        points: List[SeriesPoint] = []
        raw_series = resp.get("series")
        for p in raw_series if isinstance(raw_series, list) else []:
            try:
                points.append(SeriesPoint(k=int(p["k"]), d=float(p["d"])))
            except Exception:
                continue
        return cls(project=project, series=points)

    def to_dict(self) -> Dict[str, Any]:
        return {"project": self.project, "series": [{"k": p.k, "d": p.d} for p in self.series]}


class SeriesCache:
    """Per-project time series, fetched at most once per identifier.

    Concurrent callers for an uncached identifier share one in-flight task. Failed
    fetches are cached as an empty-series placeholder, so a known-bad identifier is
    never retried for the lifetime of the cache. No eviction, no TTL.
    """

    def __init__(self, fetch_series: SeriesFetcher, *, year_from: Optional[int] = None, year_to: Optional[int] = None):
        self._fetch_series = fetch_series
        self.year_from = year_from
        self.year_to = year_to
        self._values: Dict[str, SeriesPayload] = {}
        self._inflight: Dict[str, "asyncio.Task[SeriesPayload]"] = {}

    def __contains__(self, identifier: object) -> bool:
        return identifier in self._values

    def __len__(self) -> int:
        return len(self._values)

    def peek(self, identifier: str) -> Optional[SeriesPayload]:
        return self._values.get(identifier)

    async def _load(self, identifier: str) -> SeriesPayload:
        try:
            resp = await self._fetch_series(identifier, year_from=self.year_from, year_to=self.year_to)
            payload = SeriesPayload.from_response(identifier, resp)
        except Exception:
            logger.warning("series fetch failed for %s, caching empty placeholder", identifier, exc_info=True)
            payload = SeriesPayload.placeholder(identifier)
        self._values[identifier] = payload
        return payload

    async def get(self, identifier: str) -> SeriesPayload:
        cached = self._values.get(identifier)
        if cached is not None:
            logger.debug("series cache hit: %s", identifier)
            return cached

        task = self._inflight.get(identifier)
        if task is None:
            task = asyncio.ensure_future(self._load(identifier))
            self._inflight[identifier] = task
            task.add_done_callback(lambda _t, key=identifier: self._inflight.pop(key, None))
        else:
            logger.debug("series fetch already in flight: %s", identifier)
        # a cancelled caller leaves the shared fetch running for the others
        return await asyncio.shield(task)
