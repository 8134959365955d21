from __future__ import annotations

from typing import Dict, Tuple


MACROSECTOR_LABELS: Dict[int, str] = {
    11: "Infraestructura",
    22: "Productivo",
    33: "Social",
    44: "Ambiental",
    55: "Gobernanza – Público",
    66: "Multisectorial – Otros",
}

MODALITY_LABELS: Dict[int, str] = {
    111: "Investment",
    222: "Results",
    333: "Emergency",
    444: "Policy-Based",
}

DEFAULT_MACROSECTORS: Tuple[int, ...] = tuple(MACROSECTOR_LABELS)
DEFAULT_MODALITIES: Tuple[int, ...] = (111,)

GLOBAL_LABEL = "Global"
