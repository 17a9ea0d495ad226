"""Pure emission arithmetic. No I/O, deterministic: same input, same output."""
from __future__ import annotations
import math
from dataclasses import dataclass
from typing import Dict, Iterable, Mapping

from models.emissions import KYOTO_GASES, KyotoGas, zero_gas_map


def round2(n: float) -> float:
    """Round half-up to 2 decimals; idempotent on already-rounded values."""
    return math.floor(n * 100 + 0.5) / 100


def safe_ratio(numerator: float, denominator: float) -> float:
    """numerator / denominator, or 0 when the denominator is 0."""
    if not denominator:
        return 0.0
    return numerator / denominator


@dataclass(frozen=True)
class ScopedEmissionResult:
    total_co2e: float
    per_gas: Dict[KyotoGas, float]


@dataclass(frozen=True)
class Delta:
    absolute: float
    percentage: float


def calculate_gas_co2e(quantity: float, factor_kg_per_unit: float, gwp: float) -> float:
    return round2(quantity * factor_kg_per_unit * gwp)


def calculate_scoped_emissions(
    quantity: float,
    gas_factors: Mapping[KyotoGas, float],
    gwp_values: Mapping[KyotoGas, float],
) -> ScopedEmissionResult:
    """
    quantity x factor x GWP for each Kyoto gas, summed into kgCO2e.
    quantity is litres for a scope-1 context and kWh for a scope-2 one.
    """
    per_gas = zero_gas_map()
    total = 0.0
    for gas in KYOTO_GASES:
        co2e = calculate_gas_co2e(
            quantity, gas_factors.get(gas, 0.0), gwp_values.get(gas, 0.0)
        )
        per_gas[gas] = co2e
        total += co2e
    return ScopedEmissionResult(total_co2e=round2(total), per_gas=per_gas)


def quantity_for_scope(scope: int, liters: float, kwh: float) -> float:
    return kwh if scope == 2 else liters


def estimate_theoretical_emissions(co2_g_km: float, km_travelled: float) -> float:
    """Catalog gCO2e/km x km, converted to kgCO2e."""
    return round2(co2_g_km * km_travelled / 1000.0)


def travelled_km(odometer_readings: Iterable[float]) -> float:
    """max - min of the readings; 0 with fewer than two readings."""
    values = list(odometer_readings)
    if len(values) < 2:
        return 0.0
    return float(max(values) - min(values))


def calculate_delta(theoretical: float, real: float) -> Delta:
    absolute = round2(real - theoretical)
    percentage = round2(safe_ratio(real - theoretical, theoretical) * 100)
    return Delta(absolute=absolute, percentage=percentage)
