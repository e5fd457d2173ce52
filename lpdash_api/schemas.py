from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class ReportFiltersModel(BaseModel):
    start_date: str = ""
    end_date: str = ""
    media: str = ""
    method: str = ""
    method2: str = ""
    lp_number: str = ""


class AssumptionsModel(BaseModel):
    unit_prices: Dict[str, float] = Field(default_factory=dict)
    unit_est_rates: Dict[str, float] = Field(default_factory=dict)
    diff_rate: Optional[float] = None


class ReportRequest(BaseModel):
    filters: ReportFiltersModel = Field(default_factory=ReportFiltersModel)
    assumptions: AssumptionsModel = Field(default_factory=AssumptionsModel)
    section_id: str = "main"


class MetaOptionsResponse(BaseModel):
    media: List[str]
    method: List[str]
    method2: List[str]
    lp_number: List[str]
    origin: str
    uses_fixture: bool
