from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from core.filters import (
    DEFAULT_TICKET_MAX,
    DEFAULT_TICKET_MIN,
    DEFAULT_YEAR_FROM,
    DEFAULT_YEAR_TO,
)
from core.labels import DEFAULT_MACROSECTORS, DEFAULT_MODALITIES


class FilterSpecModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    macrosectors: List[int] = Field(default_factory=lambda: list(DEFAULT_MACROSECTORS))
    modalities: List[int] = Field(default_factory=lambda: list(DEFAULT_MODALITIES))
    countries: List[str] = Field(default_factory=list)
    mdbs: List[str] = Field(default_factory=list)
    ticket_min: float = Field(default=DEFAULT_TICKET_MIN, alias="ticketMin")
    ticket_max: float = Field(default=DEFAULT_TICKET_MAX, alias="ticketMax")
    year_from: int = Field(default=DEFAULT_YEAR_FROM, alias="yearFrom")
    year_to: int = Field(default=DEFAULT_YEAR_TO, alias="yearTo")
    only_exited: bool = Field(default=True, alias="onlyExited")
    from_first_disbursement: bool = Field(default=False, alias="fromFirstDisbursement")


class CompareAddModel(BaseModel):
    filters: FilterSpecModel = Field(default_factory=FilterSpecModel)
    label: Optional[str] = None


class CombineModel(BaseModel):
    ids: List[str] = Field(default_factory=list)


class CurvesRequestModel(BaseModel):
    filters: FilterSpecModel = Field(default_factory=FilterSpecModel)
    include_bands: bool = False
    band_method: str = "historical_quantiles"
    band_level: int = 80
