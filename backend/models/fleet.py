from __future__ import annotations
import datetime as dt
from typing import List, Optional
from pydantic import BaseModel, Field

ELECTRIC = "ELECTRIC"
PETROL = "PETROL"
DIESEL = "DIESEL"
HYBRID_PETROL = "HYBRID_PETROL"
HYBRID_DIESEL = "HYBRID_DIESEL"


class Engine(BaseModel):
    fuel_code: str
    co2_g_km: Optional[float] = None  # catalog figure used for theoretical emissions
    co2_g_km_wltp: Optional[float] = None
    co2_g_km_nedc: Optional[float] = None


class CatalogVehicle(BaseModel):
    id: str
    make: str
    model: str
    is_hybrid: bool = False
    engines: List[Engine] = Field(default_factory=list)


class Vehicle(BaseModel):
    id: str
    license_plate: str
    catalog_vehicle: CatalogVehicle
    status: str = "ACTIVE"

    @property
    def make_model(self) -> str:
        return f"{self.catalog_vehicle.make} {self.catalog_vehicle.model}"

    @property
    def label(self) -> str:
        return f"{self.make_model} ({self.license_plate})"


class FuelRecord(BaseModel):
    vehicle_id: str
    date: dt.date
    fuel_code: str
    quantity_liters: float = Field(0.0, ge=0)
    quantity_kwh: Optional[float] = Field(None, ge=0)
    odometer_km: float
    amount_eur: Optional[float] = None


class KmReading(BaseModel):
    vehicle_id: str
    date: dt.date
    odometer_km: float
    source: str = "MANUAL"


class Carlist(BaseModel):
    id: str
    name: str


class CarlistMembership(BaseModel):
    catalog_vehicle_id: str
    carlist_id: str
    carlist_name: str
