"""Prediction-band payload normalization.

The band service has shipped several shapes over time: a list of row objects or
an object of parallel arrays, with quantiles under assorted field names. This
module folds all of them into one canonical, k-sorted, order-consistent table.
Malformed input degrades to missing values or clamped quantiles and a logged
warning; it never raises.
"""

from __future__ import annotations

import logging
import math
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence

import numpy as np
import pandas as pd


logger = logging.getLogger(__name__)

# canonical field -> accepted source names, highest priority first
BAND_ALIASES: Dict[str, tuple] = {
    "k": ("k", "month", "x"),
    "p2_5": ("p2_5", "p_2_5", "p025"),
    "p10": ("p10", "p_10"),
    "p50": ("p50", "p_50", "median", "hd"),
    "p90": ("p90", "p_90"),
    "p97_5": ("p97_5", "p_97_5", "p975"),
    "p_low": ("p_low", "pLow", "lower", "hd_dn", "p10", "p_10", "p2_5", "p_2_5"),
    "p_high": ("p_high", "pHigh", "upper", "hd_up", "p90", "p_90", "p97_5", "p_97_5"),
    "n": ("n", "n_k", "count"),
    "low_sample_p80": ("low_sample_p80",),
    "low_sample_p95": ("low_sample_p95",),
}

BAND_FIELDS = tuple(BAND_ALIASES)
QUANTILE_CHAIN = ("p2_5", "p10", "p50", "p90", "p97_5")
OPTIONAL_FIELDS = ("low_sample_p80", "low_sample_p95")

_SEQUENCE_TYPES = (list, tuple, np.ndarray, pd.Series)


@dataclass
class BandTable:
    k: List[float] = field(default_factory=list)
    p2_5: List[Optional[float]] = field(default_factory=list)
    p10: List[Optional[float]] = field(default_factory=list)
    p50: List[Optional[float]] = field(default_factory=list)
    p90: List[Optional[float]] = field(default_factory=list)
    p97_5: List[Optional[float]] = field(default_factory=list)
    p_low: List[Optional[float]] = field(default_factory=list)
    p_high: List[Optional[float]] = field(default_factory=list)
    n: List[Optional[float]] = field(default_factory=list)
    low_sample_p80: List[Optional[float]] = field(default_factory=list)
    low_sample_p95: List[Optional[float]] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.k)

    def to_dict(self) -> Dict[str, List[Optional[float]]]:
        return asdict(self)

    def to_frame(self) -> pd.DataFrame:
        """Row-per-k frame; optional columns that were never reported are omitted."""
        cols = {name: values for name, values in self.to_dict().items() if values or name not in OPTIONAL_FIELDS}
        return pd.DataFrame(cols, dtype=float)


def _is_sequence(value: Any) -> bool:
    return isinstance(value, _SEQUENCE_TYPES)


def _records(raw: Any) -> List[Mapping[str, Any]]:
    if isinstance(raw, pd.DataFrame):
        raw = raw.to_dict(orient="list")
    if isinstance(raw, Mapping):
        columns = {name: list(values) for name, values in raw.items() if _is_sequence(values)}
        length = max((len(v) for v in columns.values()), default=0)
        return [{name: v[i] for name, v in columns.items() if i < len(v)} for i in range(length)]
    if _is_sequence(raw):
        return [r if isinstance(r, Mapping) else {} for r in raw]
    return []


def _pick(record: Mapping[str, Any], names: Sequence[str]) -> Any:
    for name in names:
        value = record.get(name)
        if value is not None:
            return value
    return None


def _to_number(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError, OverflowError):
        return math.nan


def _finite(value: Optional[float]) -> bool:
    return value is not None and math.isfinite(value)


def resolve_record(record: Mapping[str, Any]) -> Dict[str, Optional[float]]:
    """Resolve every canonical field of one raw row through the alias table."""
    return {name: _to_number(_pick(record, aliases)) for name, aliases in BAND_ALIASES.items()}


def reconcile_lengths(columns: Dict[str, List[Any]]) -> Dict[str, List[Any]]:
    """Truncate every column to the shortest non-empty one, warning on disagreement."""
    lens = [len(v) for v in columns.values() if len(v) > 0]
    if not lens:
        return columns
    min_len = min(lens)
    if any(n != min_len for n in lens):
        logger.warning("normalize_bands: inconsistent lengths %s, truncating to %d", lens, min_len)
        return {name: values[:min_len] for name, values in columns.items()}
    return columns


def _clamp_row(columns: Dict[str, List[Optional[float]]], i: int) -> None:
    prev = -math.inf
    for name in QUANTILE_CHAIN:
        value = columns[name][i]
        if not _finite(value):
            continue
        if value < prev:
            logger.warning("Quantile inversion at k=%s for %s (%s < %s)", columns["k"][i], name, value, prev)
            value = prev
            columns[name][i] = value
        prev = value

    med = columns["p50"][i]
    if not _finite(med):
        return
    low = columns["p_low"][i]
    high = columns["p_high"][i]
    if _finite(low) and low > med:
        logger.warning("Low above median at k=%s", columns["k"][i])
        columns["p_low"][i] = med
    if _finite(high) and high < med:
        logger.warning("High below median at k=%s", columns["k"][i])
        columns["p_high"][i] = med


def normalize_bands(raw: Any = None) -> BandTable:
    rows = [resolve_record(r) for r in _records(raw)]
    rows = [r for r in rows if _finite(r["k"])]
    rows.sort(key=lambda r: r["k"])

    columns: Dict[str, List[Optional[float]]] = {name: [r[name] for r in rows] for name in BAND_FIELDS}
    for name in OPTIONAL_FIELDS:
        if all(v is None for v in columns[name]):
            columns[name] = []

    columns = reconcile_lengths(columns)
    for i in range(len(columns["k"])):
        _clamp_row(columns, i)
    return BandTable(**columns)
