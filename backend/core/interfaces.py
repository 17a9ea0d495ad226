from __future__ import annotations
from abc import ABC, abstractmethod
from datetime import date
from typing import List, Optional, Sequence

from models.fleet import Carlist, CarlistMembership, FuelRecord, KmReading, Vehicle
from models.targets import EmissionTarget, TargetScope
from services.emissions.factors import ReferenceTables


class EmissionDataRepository(ABC):
    """
    Read-only access to the data store behind the emission engine.
    Every loader is a bulk read; the report service fetches them concurrently
    once per request and never re-reads.
    """

    @abstractmethod
    async def load_vehicles(
        self,
        vehicle_ids: Optional[Sequence[str]] = None,
        carlist_id: Optional[str] = None,
        active_only: bool = True,
    ) -> List[Vehicle]: ...

    @abstractmethod
    async def load_fuel_records(
        self, vehicle_ids: Sequence[str], start: date, end: date
    ) -> List[FuelRecord]: ...

    @abstractmethod
    async def load_km_readings(
        self, vehicle_ids: Sequence[str], start: date, end: date
    ) -> List[KmReading]: ...

    @abstractmethod
    async def load_carlist_memberships(
        self, catalog_vehicle_ids: Sequence[str]
    ) -> List[CarlistMembership]: ...

    @abstractmethod
    async def load_reference_tables(self) -> ReferenceTables: ...

    @abstractmethod
    async def load_targets(
        self, scope: Optional[TargetScope] = None, carlist_id: Optional[str] = None
    ) -> List[EmissionTarget]: ...

    @abstractmethod
    async def get_target(self, target_id: str) -> Optional[EmissionTarget]: ...

    @abstractmethod
    async def get_carlist(self, carlist_id: str) -> Optional[Carlist]: ...
