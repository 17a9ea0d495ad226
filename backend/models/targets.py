from __future__ import annotations
import datetime as dt
from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, Field, model_validator


class TargetScope(str, Enum):
    FLEET = "Fleet"
    CARLIST = "Carlist"


class TargetPeriod(str, Enum):
    ANNUAL = "Annual"
    MONTHLY = "Monthly"


class TargetStatus(str, Enum):
    ON_TRACK = "on-track"
    AT_RISK = "at-risk"
    OFF_TRACK = "off-track"
    COMPLETED = "completed"


class EmissionTarget(BaseModel):
    id: str
    scope: TargetScope = TargetScope.FLEET
    carlist_id: Optional[str] = None
    target_value: float = Field(..., ge=0)  # kgCO2e
    period: TargetPeriod = TargetPeriod.ANNUAL
    start_date: dt.date
    end_date: dt.date
    description: Optional[str] = None

    @model_validator(mode="after")
    def _check(self):
        if self.end_date < self.start_date:
            raise ValueError("end_date must not precede start_date")
        if self.scope == TargetScope.CARLIST and not self.carlist_id:
            raise ValueError("carlist_id is required for Carlist targets")
        return self


class Milestone(BaseModel):
    label: str
    date: dt.date
    expected_value: float
    actual_value: float
    achieved: bool
    on_track: bool


class TargetProgress(BaseModel):
    target_value: float
    current_value: float
    percentage: float
    remaining: float
    elapsed_fraction: float
    consumed_fraction: float
    status: TargetStatus
    milestones: List[Milestone] = Field(default_factory=list)


class TargetProgressReport(BaseModel):
    target: EmissionTarget
    progress: TargetProgress
