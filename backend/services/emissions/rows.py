# services/emissions/rows.py
from __future__ import annotations
import logging
from bisect import bisect_right
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence

from core.emissions import estimate_theoretical_emissions, travelled_km
from core.periods import Period
from models.emissions import EmissionContext
from models.fleet import CarlistMembership, FuelRecord, KmReading, Vehicle
from .calculator import (
    RealEmissions,
    combined_co2_g_km,
    effective_fuel_code,
    real_emissions_for_contexts,
    standard_co2_g_km,
)

logger = logging.getLogger(__name__)


@dataclass
class EmissionRow:
    """One vehicle in one period; the unit every report aggregates."""

    vehicle_id: str
    label: str
    license_plate: str
    fuel_code: str
    co2_g_km: float
    co2_g_km_wltp: Optional[float]
    co2_g_km_nedc: Optional[float]
    period_key: str
    period_label: str
    km_travelled: float
    liters: float
    kwh: float
    contexts: List[EmissionContext]
    theoretical: float
    real: RealEmissions
    carlist_ids: List[str] = field(default_factory=list)
    carlist_names: List[str] = field(default_factory=list)

    @property
    def has_emission_context(self) -> bool:
        return bool(self.contexts)


def carlists_by_catalog_vehicle(
    memberships: Sequence[CarlistMembership],
) -> Dict[str, List[CarlistMembership]]:
    out: Dict[str, List[CarlistMembership]] = {}
    seen = set()
    for m in memberships:
        key = (m.catalog_vehicle_id, m.carlist_id)
        if key in seen:
            continue
        seen.add(key)
        out.setdefault(m.catalog_vehicle_id, []).append(m)
    return out


def _period_index(starts: List, d) -> int:
    return bisect_right(starts, d) - 1


def build_rows(
    vehicles: Sequence[Vehicle],
    fuel_records: Sequence[FuelRecord],
    km_readings: Sequence[KmReading],
    memberships: Sequence[CarlistMembership],
    contexts_by_fuel_code: Mapping[str, List[EmissionContext]],
    periods: Sequence[Period],
) -> List[EmissionRow]:
    """
    Join vehicles, fuel records, odometer readings, carlist memberships and
    resolved contexts into one row per (vehicle, period).

    Vehicles without a resolvable fuel code are skipped. Vehicles whose fuel
    code has no emission context keep their rows with zero real emissions.
    """
    if not periods:
        return []
    starts = [p.start for p in periods]
    range_end = periods[-1].end

    fuel_by_vehicle: Dict[str, List[FuelRecord]] = {}
    for r in fuel_records:
        fuel_by_vehicle.setdefault(r.vehicle_id, []).append(r)
    km_by_vehicle: Dict[str, List[KmReading]] = {}
    for r in km_readings:
        km_by_vehicle.setdefault(r.vehicle_id, []).append(r)
    carlists = carlists_by_catalog_vehicle(memberships)

    rows: List[EmissionRow] = []
    warned: set = set()

    for vehicle in vehicles:
        v_fuel = [
            r for r in fuel_by_vehicle.get(vehicle.id, []) if starts[0] <= r.date <= range_end
        ]
        v_km = [
            r for r in km_by_vehicle.get(vehicle.id, []) if starts[0] <= r.date <= range_end
        ]

        # resolved once per vehicle over the whole range, not per period
        fuel_code = effective_fuel_code(vehicle.catalog_vehicle, v_fuel)
        if fuel_code is None:
            logger.debug("Vehicle %s skipped: no resolvable fuel code", vehicle.id)
            continue

        contexts = list(contexts_by_fuel_code.get(fuel_code, []))
        if not contexts and fuel_code not in warned:
            warned.add(fuel_code)
            logger.warning(
                "No emission context for fuel code %s; real emissions count as 0", fuel_code
            )

        co2_g_km = combined_co2_g_km(vehicle.catalog_vehicle)
        wltp, nedc = standard_co2_g_km(vehicle.catalog_vehicle)
        memberships_of = carlists.get(vehicle.catalog_vehicle.id, [])

        liters = [0.0] * len(periods)
        kwh = [0.0] * len(periods)
        odometer: List[List[float]] = [[] for _ in periods]
        for r in v_fuel:
            i = _period_index(starts, r.date)
            liters[i] += r.quantity_liters
            kwh[i] += r.quantity_kwh or 0.0
            odometer[i].append(r.odometer_km)
        for r in v_km:
            odometer[_period_index(starts, r.date)].append(r.odometer_km)

        for i, period in enumerate(periods):
            km = travelled_km(odometer[i])
            rows.append(
                EmissionRow(
                    vehicle_id=vehicle.id,
                    label=vehicle.label,
                    license_plate=vehicle.license_plate,
                    fuel_code=fuel_code,
                    co2_g_km=co2_g_km,
                    co2_g_km_wltp=wltp,
                    co2_g_km_nedc=nedc,
                    period_key=period.key,
                    period_label=period.label,
                    km_travelled=km,
                    liters=liters[i],
                    kwh=kwh[i],
                    contexts=contexts,
                    theoretical=estimate_theoretical_emissions(co2_g_km, km),
                    real=real_emissions_for_contexts(contexts, liters[i], kwh[i]),
                    carlist_ids=[m.carlist_id for m in memberships_of],
                    carlist_names=[m.carlist_name for m in memberships_of],
                )
            )
    return rows
