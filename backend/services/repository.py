# services/repository.py
from __future__ import annotations
from datetime import date
from typing import Callable, Iterable, List, Optional, Sequence

from core.interfaces import EmissionDataRepository
from models.fleet import Carlist, CarlistMembership, FuelRecord, KmReading, Vehicle
from models.targets import EmissionTarget, TargetScope
from services.emissions.factors import ReferenceTables


class InMemoryEmissionRepository(EmissionDataRepository):
    """
    Plain-list store. Reference tables come from a factory so each request
    gets its own snapshot.
    """

    def __init__(
        self,
        vehicles: Iterable[Vehicle] = (),
        fuel_records: Iterable[FuelRecord] = (),
        km_readings: Iterable[KmReading] = (),
        memberships: Iterable[CarlistMembership] = (),
        targets: Iterable[EmissionTarget] = (),
        reference_tables: Callable[[], ReferenceTables] = ReferenceTables.sample,
    ) -> None:
        self.vehicles: List[Vehicle] = list(vehicles)
        self.fuel_records: List[FuelRecord] = list(fuel_records)
        self.km_readings: List[KmReading] = list(km_readings)
        self.memberships: List[CarlistMembership] = list(memberships)
        self.targets: List[EmissionTarget] = list(targets)
        self._reference_tables = reference_tables

    async def load_vehicles(
        self,
        vehicle_ids: Optional[Sequence[str]] = None,
        carlist_id: Optional[str] = None,
        active_only: bool = True,
    ) -> List[Vehicle]:
        out = self.vehicles
        if vehicle_ids is not None:
            wanted = set(vehicle_ids)
            out = [v for v in out if v.id in wanted]
        if carlist_id is not None:
            catalog_ids = {m.catalog_vehicle_id for m in self.memberships if m.carlist_id == carlist_id}
            out = [v for v in out if v.catalog_vehicle.id in catalog_ids]
        if active_only:
            out = [v for v in out if v.status == "ACTIVE"]
        return list(out)

    async def load_fuel_records(
        self, vehicle_ids: Sequence[str], start: date, end: date
    ) -> List[FuelRecord]:
        wanted = set(vehicle_ids)
        return sorted(
            (r for r in self.fuel_records if r.vehicle_id in wanted and start <= r.date <= end),
            key=lambda r: r.date,
        )

    async def load_km_readings(
        self, vehicle_ids: Sequence[str], start: date, end: date
    ) -> List[KmReading]:
        wanted = set(vehicle_ids)
        return sorted(
            (r for r in self.km_readings if r.vehicle_id in wanted and start <= r.date <= end),
            key=lambda r: r.date,
        )

    async def load_carlist_memberships(
        self, catalog_vehicle_ids: Sequence[str]
    ) -> List[CarlistMembership]:
        wanted = set(catalog_vehicle_ids)
        return [m for m in self.memberships if m.catalog_vehicle_id in wanted]

    async def load_reference_tables(self) -> ReferenceTables:
        return self._reference_tables()

    async def load_targets(
        self, scope: Optional[TargetScope] = None, carlist_id: Optional[str] = None
    ) -> List[EmissionTarget]:
        out = self.targets
        if scope is not None:
            out = [t for t in out if t.scope == scope]
        if carlist_id is not None:
            out = [t for t in out if t.carlist_id == carlist_id]
        return sorted(out, key=lambda t: t.start_date, reverse=True)

    async def get_target(self, target_id: str) -> Optional[EmissionTarget]:
        return next((t for t in self.targets if t.id == target_id), None)

    async def get_carlist(self, carlist_id: str) -> Optional[Carlist]:
        m = next((m for m in self.memberships if m.carlist_id == carlist_id), None)
        return Carlist(id=m.carlist_id, name=m.carlist_name) if m else None


def build_repository(settings=None) -> InMemoryEmissionRepository:
    """Empty store whose reference tables follow the configured preset."""
    from config import get_settings
    from services.emissions.emissions_factory import load_reference_tables

    s = settings or get_settings()
    return InMemoryEmissionRepository(
        reference_tables=lambda: load_reference_tables(
            s.REFERENCE_PRESET, s.REFERENCE_XLSX_PATH
        )
    )
