from __future__ import annotations
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from core.emissions import calculate_scoped_emissions, quantity_for_scope, round2
from models.emissions import EmissionContext, KyotoGas, zero_gas_map
from models.fleet import (
    DIESEL,
    ELECTRIC,
    HYBRID_DIESEL,
    HYBRID_PETROL,
    PETROL,
    CatalogVehicle,
    Engine,
    FuelRecord,
)


@dataclass
class RealEmissions:
    total: float = 0.0
    by_scope: Dict[int, float] = field(default_factory=dict)
    per_gas_by_scope: Dict[int, Dict[KyotoGas, float]] = field(default_factory=dict)

    def per_gas(self) -> Dict[KyotoGas, float]:
        merged = zero_gas_map()
        for gases in self.per_gas_by_scope.values():
            for gas, v in gases.items():
                merged[gas] = round2(merged[gas] + v)
        return merged


def real_emissions_for_contexts(
    contexts: Sequence[EmissionContext], liters: float, kwh: float
) -> RealEmissions:
    """
    One scoped calculation per context (1 for pure fuels, 2 for hybrids),
    litres for scope 1 and kWh for scope 2, summed.
    """
    out = RealEmissions()
    total = 0.0
    for ctx in contexts:
        res = calculate_scoped_emissions(
            quantity_for_scope(ctx.scope, liters, kwh), ctx.gas_factors, ctx.gwp_values
        )
        out.by_scope[ctx.scope] = round2(out.by_scope.get(ctx.scope, 0.0) + res.total_co2e)
        gases = out.per_gas_by_scope.setdefault(ctx.scope, zero_gas_map())
        for gas, v in res.per_gas.items():
            gases[gas] = round2(gases[gas] + v)
        total += res.total_co2e
    out.total = round2(total)
    return out


def effective_fuel_code(
    catalog_vehicle: CatalogVehicle, fuel_records: Optional[Sequence[FuelRecord]] = None
) -> Optional[str]:
    """
    Hybrid-aware fuel code of a vehicle:
    1. hybrid with an electric engine + petrol/diesel engine -> HYBRID_*
    2. most frequent fuel code of the fuel records (ties: first seen)
    3. first engine's fuel code
    """
    engines = catalog_vehicle.engines
    if catalog_vehicle.is_hybrid and len(engines) >= 2:
        codes = {e.fuel_code for e in engines}
        if ELECTRIC in codes:
            if PETROL in codes:
                return HYBRID_PETROL
            if DIESEL in codes:
                return HYBRID_DIESEL

    if fuel_records:
        # Counter.most_common keeps insertion order among equal counts
        return Counter(r.fuel_code for r in fuel_records).most_common(1)[0][0]

    if engines:
        return engines[0].fuel_code
    return None


def engine_co2_g_km(engine: Engine) -> float:
    for value in (engine.co2_g_km, engine.co2_g_km_wltp, engine.co2_g_km_nedc):
        if value is not None:
            return float(value)
    return 0.0


def _primary_engine(engines: List[Engine], is_hybrid: bool) -> Optional[Engine]:
    if not engines:
        return None
    if is_hybrid:
        # the thermal engine carries the combined-cycle figure
        return next((e for e in engines if e.fuel_code != ELECTRIC), engines[0])
    return engines[0]


def combined_co2_g_km(catalog_vehicle: CatalogVehicle) -> float:
    engine = _primary_engine(catalog_vehicle.engines, catalog_vehicle.is_hybrid)
    return engine_co2_g_km(engine) if engine else 0.0


def standard_co2_g_km(catalog_vehicle: CatalogVehicle) -> tuple[Optional[float], Optional[float]]:
    """(WLTP, NEDC) catalog figures of the primary engine; None when absent."""
    engine = _primary_engine(catalog_vehicle.engines, catalog_vehicle.is_hybrid)
    if engine is None:
        return None, None
    return engine.co2_g_km_wltp, engine.co2_g_km_nedc
