from __future__ import annotations
import datetime as dt
from enum import Enum
from typing import Dict, List, Optional
from pydantic import BaseModel, Field, model_validator

from models.emissions import KyotoGas


class AggregationDimension(str, Enum):
    FLEET = "FLEET"
    VEHICLE = "VEHICLE"
    CARLIST = "CARLIST"
    FUEL_TYPE = "FUEL_TYPE"
    PERIOD = "PERIOD"


class PeriodGranularity(str, Enum):
    MONTHLY = "MONTHLY"
    QUARTERLY = "QUARTERLY"
    YEARLY = "YEARLY"


class PerformanceLevel(str, Enum):
    GOOD = "good"
    NEUTRAL = "neutral"
    POOR = "poor"


class DrillDownLevel(str, Enum):
    FLEET = "FLEET"
    CARLIST = "CARLIST"
    VEHICLE = "VEHICLE"


class ReportParams(BaseModel):
    start_date: dt.date
    end_date: dt.date
    dimension: AggregationDimension = AggregationDimension.VEHICLE
    granularity: Optional[PeriodGranularity] = None  # None = DEFAULT_GRANULARITY
    carlist_id: Optional[str] = None

    @model_validator(mode="after")
    def _check_range(self):
        if self.end_date < self.start_date:
            raise ValueError("end_date must not precede start_date")
        return self


class ScopeBreakdown(BaseModel):
    scope: int
    real_emissions: float = 0.0
    per_gas: Dict[KyotoGas, float] = Field(default_factory=dict)


class EmissionAggregation(BaseModel):
    id: str
    label: str
    theoretical_emissions: float
    real_emissions: float
    delta_absolute: float
    delta_percentage: float
    total_km: float
    total_fuel: float
    total_kwh: float
    vehicle_count: int
    real_co2e_per_km: float
    co2_g_km_wltp: Optional[float] = None
    co2_g_km_nedc: Optional[float] = None
    scopes: Dict[int, ScopeBreakdown] = Field(default_factory=dict)
    per_gas: Dict[KyotoGas, float] = Field(default_factory=dict)
    performance_deviation: float = 0.0
    performance_level: PerformanceLevel = PerformanceLevel.NEUTRAL


class EmissionTimeSeries(BaseModel):
    period: str
    period_label: str
    theoretical_emissions: float
    real_emissions: float
    delta: float


class EmissionBreakdown(BaseModel):
    category: str
    category_id: str
    value: float
    percentage: float
    color: Optional[str] = None


class ReportMetadata(BaseModel):
    total_theoretical_emissions: float = 0.0
    total_real_emissions: float = 0.0
    total_delta_absolute: float = 0.0
    total_delta_percentage: float = 0.0
    total_km: float = 0.0
    total_fuel: float = 0.0
    vehicle_count: int = 0
    carlist_count: int = 0
    start_date: dt.date
    end_date: dt.date
    reference_date: Optional[dt.date] = None
    generated_at: dt.datetime


class ReportResult(BaseModel):
    aggregations: List[EmissionAggregation] = Field(default_factory=list)
    time_series: List[EmissionTimeSeries] = Field(default_factory=list)
    breakdown: List[EmissionBreakdown] = Field(default_factory=list)
    scope_breakdown: List[EmissionBreakdown] = Field(default_factory=list)
    metadata: ReportMetadata


class DrillDownItem(BaseModel):
    id: str
    label: str
    subtitle: Optional[str] = None
    theoretical_emissions: float
    real_emissions: float
    delta: float
    delta_percentage: float
    total_km: float
    contribution_percentage: float
    child_count: Optional[int] = None
    performance_level: PerformanceLevel = PerformanceLevel.NEUTRAL


class DrillDownResult(BaseModel):
    level: DrillDownLevel
    parent_label: str
    parent_id: Optional[str] = None
    items: List[DrillDownItem] = Field(default_factory=list)
    total_emissions: float = 0.0
    total_theoretical_emissions: float = 0.0


class MonthlyPoint(BaseModel):
    period: str
    period_label: str
    theoretical: float
    real: float


class FuelRecordLine(BaseModel):
    date: dt.date
    fuel_code: str
    quantity_liters: float
    quantity_kwh: Optional[float] = None
    amount_eur: Optional[float] = None
    odometer_km: float
    real_emissions: float


class KmReadingLine(BaseModel):
    date: dt.date
    odometer_km: float
    source: str


class VehicleEmissionDetail(BaseModel):
    vehicle_id: str
    plate: str
    make_model: str
    fuel_code: Optional[str] = None
    theoretical_emissions: float
    real_emissions: float
    delta: float
    delta_percentage: float
    total_km: float
    total_fuel: float
    total_kwh: float
    monthly_series: List[MonthlyPoint] = Field(default_factory=list)
    fuel_records: List[FuelRecordLine] = Field(default_factory=list)
    km_readings: List[KmReadingLine] = Field(default_factory=list)
