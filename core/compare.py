from __future__ import annotations

import itertools
import logging
import threading
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple

from core.filters import Exactly, FilterSpec, Scope, Subset, normalize_filters
from core.labels import (
    DEFAULT_MACROSECTORS,
    DEFAULT_MODALITIES,
    GLOBAL_LABEL,
    MACROSECTOR_LABELS,
    MODALITY_LABELS,
)


logger = logging.getLogger(__name__)

MAX_COMPARE = 7
SEP = " · "


@dataclass(frozen=True)
class CompareEntry:
    id: str
    label: str
    filters: FilterSpec

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "label": self.label, "filters": self.filters.to_payload()}


def _named_phrase(scope: Scope, names: Mapping[int, str]) -> str:
    if isinstance(scope, Exactly):
        return names.get(scope.value, GLOBAL_LABEL)
    return GLOBAL_LABEL


def _first_plus_rest(values: Sequence[str]) -> str:
    return f"{values[0]}+{len(values) - 1}"


def _country_phrase(scope: Scope) -> str:
    if isinstance(scope, Exactly):
        return str(scope.value)
    if isinstance(scope, Subset):
        return _first_plus_rest(scope.values)
    return GLOBAL_LABEL


def default_label(filters: FilterSpec) -> str:
    """`[MDB ·] Country · Macrosector · Modality · YearFrom–YearTo`."""
    parts = [
        _country_phrase(filters.country_scope),
        _named_phrase(filters.macrosector_scope, MACROSECTOR_LABELS),
        _named_phrase(filters.modality_scope, MODALITY_LABELS),
        filters.years_label,
    ]
    mdb = filters.mdb_scope
    if isinstance(mdb, Exactly):
        parts.insert(0, str(mdb.value))
    return SEP.join(parts)


def combined_label(filters: FilterSpec) -> str:
    """`MDBs · AR+BO+BR+2 · Macrosector · Modality · YearFrom–YearTo`."""
    mdbs = filters.mdbs
    if len(mdbs) == 1:
        mdb_part = mdbs[0]
    elif len(mdbs) > 1:
        mdb_part = _first_plus_rest(mdbs)
    else:
        mdb_part = GLOBAL_LABEL

    countries = filters.countries
    if not countries:
        countries_part = GLOBAL_LABEL
    else:
        shown = countries[:3]
        rest = len(countries) - len(shown)
        countries_part = "+".join(shown) + (f"+{rest}" if rest > 0 else "")

    return SEP.join(
        [
            mdb_part,
            countries_part,
            _named_phrase(filters.macrosector_scope, MACROSECTOR_LABELS),
            _named_phrase(filters.modality_scope, MODALITY_LABELS),
            filters.years_label,
        ]
    )


def _union(groups: Iterable[Sequence[str]]) -> Tuple[str, ...]:
    seen: Dict[str, None] = {}
    for group in groups:
        for value in group:
            seen.setdefault(value, None)
    return tuple(seen)


def merge_filters(picks: Sequence[FilterSpec]) -> FilterSpec:
    """Merge several filter specs into one covering portfolio.

    Countries and MDBs are unioned in first-seen order; a macrosector survives only
    when every pick selected that same single macrosector. Modalities are not yet
    combinable and reset to the default.
    """
    singles = {p.macrosectors[0] if len(p.macrosectors) == 1 else None for p in picks}
    if len(singles) == 1 and None not in singles:
        macrosectors = (singles.pop(),)
    else:
        macrosectors = DEFAULT_MACROSECTORS

    return FilterSpec(
        macrosectors=macrosectors,
        modalities=DEFAULT_MODALITIES,
        countries=_union(p.countries for p in picks),
        mdbs=_union(p.mdbs for p in picks),
        ticket_min=min(p.ticket_min for p in picks),
        ticket_max=max(p.ticket_max for p in picks),
        year_from=min(p.year_from for p in picks),
        year_to=max(p.year_to for p in picks),
        only_exited=True,
        from_first_disbursement=all(p.from_first_disbursement for p in picks),
    )


def _split_request(request: Any) -> Tuple[FilterSpec, Optional[str]]:
    if isinstance(request, FilterSpec):
        return request, None
    if isinstance(request, Mapping) and "filters" in request:
        return normalize_filters(request["filters"]), request.get("label") or None
    if isinstance(request, Mapping):
        return normalize_filters(request), None
    filters = getattr(request, "filters", None)
    if filters is not None:
        return normalize_filters(filters), getattr(request, "label", None) or None
    return normalize_filters(None), None


class ComparisonSetManager:
    """Bounded, insertion-ordered set of frozen comparison entries.

    Mutations swap in a new tuple under a lock, so readers always see either the
    old or the new set, never a half-applied change. Capacity and pick-count
    violations are silent no-ops; check `can_add` / `can_combine` first.
    """

    def __init__(self, capacity: int = MAX_COMPARE):
        try:
            capacity = int(capacity)
        except Exception:
            capacity = MAX_COMPARE
        self.capacity = max(1, min(MAX_COMPARE, capacity))
        self._entries: Tuple[CompareEntry, ...] = ()
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    @property
    def entries(self) -> Tuple[CompareEntry, ...]:
        return self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[CompareEntry]:
        return iter(self._entries)

    def get(self, entry_id: str) -> Optional[CompareEntry]:
        for entry in self._entries:
            if entry.id == entry_id:
                return entry
        return None

    def can_add(self) -> bool:
        return len(self._entries) < self.capacity

    def _picks(self, ids: Iterable[str]) -> List[CompareEntry]:
        wanted = {str(i) for i in ids}
        return [e for e in self._entries if e.id in wanted]

    def can_combine(self, ids: Iterable[str]) -> bool:
        return len(self._picks(ids)) >= 2 and self.can_add()

    def contains(self, filters: Any) -> bool:
        """True when an entry with structurally equal filters is already stored."""
        spec = normalize_filters(filters)
        return any(e.filters == spec for e in self._entries)

    def add(self, request: Any, label: Optional[str] = None) -> Optional[str]:
        filters, override = _split_request(request)
        label = label or override or default_label(filters)
        with self._lock:
            if len(self._entries) >= self.capacity:
                logger.debug("comparison set full (%d), add ignored", self.capacity)
                return None
            entry = CompareEntry(id=str(next(self._ids)), label=label, filters=filters)
            self._entries = self._entries + (entry,)
        return entry.id

    def remove(self, entry_id: str) -> None:
        with self._lock:
            self._entries = tuple(e for e in self._entries if e.id != entry_id)

    def clear(self) -> None:
        with self._lock:
            self._entries = ()

    def combine(self, ids: Iterable[str]) -> Optional[str]:
        picks = self._picks(ids)
        if len(picks) < 2:
            return None
        merged = merge_filters([p.filters for p in picks])
        return self.add(merged, label=combined_label(merged))

    def to_list(self) -> List[Dict[str, Any]]:
        return [e.to_dict() for e in self._entries]
