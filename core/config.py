from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Mapping, Optional, Tuple

from core.compare import MAX_COMPARE
from core.domain import DEFAULT_KMAX


DEFAULT_CORS_ORIGINS = ("http://localhost:3000", "http://127.0.0.1:3000")


@dataclass(frozen=True)
class Settings:
    api_base_url: str = "http://localhost:8000"
    api_timeout: float = 30.0
    compare_capacity: int = MAX_COMPARE
    default_kmax: float = DEFAULT_KMAX
    cors_origins: Tuple[str, ...] = field(default=DEFAULT_CORS_ORIGINS)


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    env = os.environ if env is None else env

    base_url = (env.get("CURVES_API_BASE_URL") or "").strip() or Settings.api_base_url

    try:
        timeout = float(env.get("CURVES_API_TIMEOUT", Settings.api_timeout))
    except Exception:
        timeout = Settings.api_timeout
    if timeout <= 0:
        timeout = Settings.api_timeout

    try:
        capacity = int(env.get("CURVES_COMPARE_CAPACITY", MAX_COMPARE))
    except Exception:
        capacity = MAX_COMPARE
    capacity = max(1, min(MAX_COMPARE, capacity))

    try:
        kmax = float(env.get("CURVES_DEFAULT_KMAX", DEFAULT_KMAX))
    except Exception:
        kmax = DEFAULT_KMAX
    if not 0 < kmax < float("inf"):
        kmax = DEFAULT_KMAX

    origins = tuple(o.strip() for o in (env.get("CURVES_CORS_ORIGINS") or "").split(",") if o.strip())

    return Settings(
        api_base_url=base_url.rstrip("/"),
        api_timeout=timeout,
        compare_capacity=capacity,
        default_kmax=kmax,
        cors_origins=origins or DEFAULT_CORS_ORIGINS,
    )
