from __future__ import annotations

import math
from typing import Any, Iterable, Mapping, Optional, Tuple


DEFAULT_KMAX = 120


def k_upper_bound(fit: Optional[Mapping[str, Any]]) -> Optional[float]:
    """Upper end of a fit result's `kDomain`, or None when it is not reported."""
    if not isinstance(fit, Mapping):
        return None
    domain = fit.get("kDomain")
    if not isinstance(domain, (list, tuple)) or len(domain) < 2 or domain[1] is None:
        return None
    try:
        upper = float(domain[1])
    except (TypeError, ValueError, OverflowError):
        return None
    return upper if math.isfinite(upper) else None


def compute_kmax(
    primary: Optional[Mapping[str, Any]],
    comparisons: Iterable[Optional[Mapping[str, Any]]] = (),
    *,
    default: float = DEFAULT_KMAX,
) -> float:
    """Shared horizontal extent: the largest reported upper bound across all fits."""
    bounds = [b for b in (k_upper_bound(f) for f in [primary, *comparisons]) if b is not None]
    return max(bounds) if bounds else default


def curve_limit(fit: Optional[Mapping[str, Any]], kmax: float, *, default: float = DEFAULT_KMAX) -> float:
    """Last k a curve may be drawn to: its own validity bound, never past the shared axis."""
    own = k_upper_bound(fit)
    return min(default if own is None else own, kmax)


def shared_axis(kmax: float) -> Tuple[float, float]:
    return (0, kmax)
