from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from core.labels import DEFAULT_MACROSECTORS, DEFAULT_MODALITIES, MODALITY_LABELS


DEFAULT_TICKET_MIN = 0.0
DEFAULT_TICKET_MAX = 1_000_000_000.0
DEFAULT_YEAR_FROM = 2010
DEFAULT_YEAR_TO = 2024

# wire name -> attribute name
FILTER_FIELDS = {
    "macrosectors": "macrosectors",
    "modalities": "modalities",
    "countries": "countries",
    "mdbs": "mdbs",
    "ticketMin": "ticket_min",
    "ticketMax": "ticket_max",
    "yearFrom": "year_from",
    "yearTo": "year_to",
    "onlyExited": "only_exited",
    "fromFirstDisbursement": "from_first_disbursement",
}


@dataclass(frozen=True)
class AllScope:
    """No restriction on the field."""


@dataclass(frozen=True)
class Exactly:
    value: Any


@dataclass(frozen=True)
class Subset:
    values: Tuple[Any, ...]


Scope = Union[AllScope, Exactly, Subset]
ALL = AllScope()


def scope_of(values: Iterable[Any], universe: Optional[Iterable[Any]] = None) -> Scope:
    """Classify a selection: one value, a strict subset, or everything.

    An empty selection and a selection covering the whole universe are both ``ALL``.
    """
    values = tuple(values)
    if len(values) == 1:
        return Exactly(values[0])
    if not values:
        return ALL
    if universe is not None and set(values) >= set(universe):
        return ALL
    return Subset(values)


@dataclass(frozen=True)
class FilterSpec:
    macrosectors: Tuple[int, ...] = field(default=DEFAULT_MACROSECTORS)
    modalities: Tuple[int, ...] = field(default=DEFAULT_MODALITIES)
    countries: Tuple[str, ...] = ()
    mdbs: Tuple[str, ...] = ()
    ticket_min: float = DEFAULT_TICKET_MIN
    ticket_max: float = DEFAULT_TICKET_MAX
    year_from: int = DEFAULT_YEAR_FROM
    year_to: int = DEFAULT_YEAR_TO
    only_exited: bool = True
    from_first_disbursement: bool = False

    def __post_init__(self) -> None:
        # sequence fields are stored as tuples so a spec never aliases caller lists
        for attr in ("macrosectors", "modalities", "countries", "mdbs"):
            value = getattr(self, attr)
            if not isinstance(value, tuple):
                object.__setattr__(self, attr, tuple(value))

    @property
    def macrosector_scope(self) -> Scope:
        return scope_of(self.macrosectors, DEFAULT_MACROSECTORS)

    @property
    def modality_scope(self) -> Scope:
        return scope_of(self.modalities, MODALITY_LABELS)

    @property
    def country_scope(self) -> Scope:
        return scope_of(self.countries)

    @property
    def mdb_scope(self) -> Scope:
        return scope_of(self.mdbs)

    @property
    def years_label(self) -> str:
        return f"{self.year_from}–{self.year_to}"

    def to_payload(self) -> Dict[str, Any]:
        """Wire (camelCase) representation, as sent to the curve service."""
        out: Dict[str, Any] = {}
        for wire, attr in FILTER_FIELDS.items():
            value = getattr(self, attr)
            out[wire] = list(value) if isinstance(value, tuple) else value
        return out


def _unique(values: Iterable[Any]) -> List[Any]:
    seen = set()
    out = []
    for v in values:
        if v in seen:
            continue
        seen.add(v)
        out.append(v)
    return out


def _as_int_list(values: Optional[Iterable[object]]) -> List[int]:
    if not values:
        return []
    if isinstance(values, (str, int)):
        values = [values]
    out: List[int] = []
    for v in values:
        try:
            out.append(int(v))  # type: ignore[arg-type]
        except Exception:
            continue
    return _unique(out)


def _as_str_list(values: Optional[Iterable[object]]) -> List[str]:
    if not values:
        return []
    if isinstance(values, str):
        values = [values]
    return _unique(str(x).strip() for x in values if x is not None and str(x).strip())


def _as_float(value: object, default: float) -> float:
    try:
        out = float(value)  # type: ignore[arg-type]
    except Exception:
        return default
    return out if math.isfinite(out) else default


def _as_int(value: object, default: int) -> int:
    try:
        return int(value)  # type: ignore[arg-type]
    except Exception:
        return default


def _as_bool(value: object, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


def _get(raw: Mapping[str, Any], wire: str) -> Any:
    if wire in raw:
        return raw[wire]
    return raw.get(FILTER_FIELDS[wire])


def normalize_filters(raw: Union[Mapping[str, Any], FilterSpec, None]) -> FilterSpec:
    """Build a frozen FilterSpec from a loose payload (camelCase or snake_case keys).

    Set-like fields (macrosectors, modalities) are deduplicated and sorted so that
    structural equality is set equality; countries and mdbs keep first-seen order.
    Reversed ranges are swapped rather than rejected.
    """
    if isinstance(raw, FilterSpec):
        return raw
    if hasattr(raw, "model_dump"):
        raw = raw.model_dump()
    raw = raw or {}

    macro_raw = _get(raw, "macrosectors")
    macrosectors = DEFAULT_MACROSECTORS if macro_raw is None else tuple(sorted(_as_int_list(macro_raw)))
    mod_raw = _get(raw, "modalities")
    modalities = DEFAULT_MODALITIES if mod_raw is None else tuple(sorted(_as_int_list(mod_raw)))

    ticket_min = _as_float(_get(raw, "ticketMin"), DEFAULT_TICKET_MIN)
    ticket_max = _as_float(_get(raw, "ticketMax"), DEFAULT_TICKET_MAX)
    if ticket_min > ticket_max:
        ticket_min, ticket_max = ticket_max, ticket_min

    year_from = _as_int(_get(raw, "yearFrom"), DEFAULT_YEAR_FROM)
    year_to = _as_int(_get(raw, "yearTo"), DEFAULT_YEAR_TO)
    if year_from > year_to:
        year_from, year_to = year_to, year_from

    return FilterSpec(
        macrosectors=macrosectors,
        modalities=modalities,
        countries=tuple(_as_str_list(_get(raw, "countries"))),
        mdbs=tuple(_as_str_list(_get(raw, "mdbs"))),
        ticket_min=ticket_min,
        ticket_max=ticket_max,
        year_from=year_from,
        year_to=year_to,
        only_exited=_as_bool(_get(raw, "onlyExited"), True),
        from_first_disbursement=_as_bool(_get(raw, "fromFirstDisbursement"), False),
    )
