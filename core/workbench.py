from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from core.compare import CompareEntry
from core.filters import FilterSpec


logger = logging.getLogger(__name__)

FitFetcher = Callable[[FilterSpec], Awaitable[Any]]

DEFAULT_SESSION = "default"


class CompareFetcher:
    """Fetches fit results for the whole comparison set, last request wins.

    Generations are counted per session key. Each `refresh` takes a new
    generation for its session; when a batch finishes after a newer one for the
    same session has started (or after `cancel`), its results are dropped and
    `None` is returned. Batches from different sessions never invalidate each
    other. A failing batch falls back to an empty result list.
    """

    def __init__(self, fit_curve: FitFetcher):
        self._fit_curve = fit_curve
        self._generations: Dict[str, int] = {}
        self._results: Dict[str, List[Any]] = {}

    def generation(self, session: str = DEFAULT_SESSION) -> int:
        return self._generations.get(session, 0)

    def results(self, session: str = DEFAULT_SESSION) -> List[Any]:
        return self._results.get(session, [])

    def cancel(self, session: Optional[str] = None) -> None:
        """Invalidate in-flight batches for one session, or for all of them."""
        keys = list(self._generations) if session is None else [session]
        for key in keys:
            self._generations[key] = self._generations.get(key, 0) + 1

    async def refresh(self, entries: Sequence[CompareEntry], session: str = DEFAULT_SESSION) -> Optional[List[Any]]:
        generation = self._generations.get(session, 0) + 1
        self._generations[session] = generation
        entries = list(entries)

        if not entries:
            results: List[Any] = []
        else:
            try:
                # each entry keeps the year interval frozen when it was added
                results = list(await asyncio.gather(*(self._fit_curve(e.filters) for e in entries)))
            except Exception:
                logger.exception("comparison fits failed, showing no comparison curves")
                results = []

        current = self._generations.get(session, 0)
        if generation != current:
            logger.debug("discarding stale comparison results for %s (generation %d < %d)", session, generation, current)
            return None
        self._results[session] = results
        return results
