from __future__ import annotations

from datetime import date
from typing import List, Optional

from pydantic import BaseModel, Field


class DateRangeModel(BaseModel):
    start: Optional[date] = None
    end: Optional[date] = None


class AgeRangeModel(BaseModel):
    min: Optional[int] = None
    max: Optional[int] = None


class FilterCriteriaModel(BaseModel):
    date_range: DateRangeModel = Field(default_factory=DateRangeModel)
    genders: List[str] = Field(default_factory=list)
    categories: List[str] = Field(default_factory=list)
    payment_methods: List[str] = Field(default_factory=list)
    malls: List[str] = Field(default_factory=list)
    age_range: AgeRangeModel = Field(default_factory=AgeRangeModel)


class OverviewRequest(BaseModel):
    criteria: FilterCriteriaModel = Field(default_factory=FilterCriteriaModel)
    previous: Optional[dict] = None
