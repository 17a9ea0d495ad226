# models/emissions.py
from __future__ import annotations
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Dict, Optional, Literal
from pydantic import BaseModel, Field, model_validator


class KyotoGas(str, Enum):
    CO2 = "co2"
    CH4 = "ch4"
    N2O = "n2o"
    HFC = "hfc"
    PFC = "pfc"
    SF6 = "sf6"
    NF3 = "nf3"


KYOTO_GASES = tuple(KyotoGas)

# IPCC AR5, 100-year horizon
DEFAULT_GWP_AR5: Dict[KyotoGas, float] = {
    KyotoGas.CO2: 1.0,
    KyotoGas.CH4: 28.0,
    KyotoGas.N2O: 265.0,
    KyotoGas.HFC: 1300.0,
    KyotoGas.PFC: 6630.0,
    KyotoGas.SF6: 23500.0,
    KyotoGas.NF3: 16100.0,
}

Scope = Literal[1, 2]

SCOPE_LABELS: Dict[int, str] = {
    1: "Scope 1 (combustion)",
    2: "Scope 2 (electricity)",
}


def zero_gas_map() -> Dict[KyotoGas, float]:
    return {g: 0.0 for g in KYOTO_GASES}


class MacroFuelType(BaseModel):
    """Reporting-level fuel category; one scope and one set of factors."""

    id: int
    name: str
    scope: Scope
    unit: str = "L"
    color: str = "#94a3b8"
    sort_order: int = 0


class FuelTypeMacroMapping(BaseModel):
    vehicle_fuel_code: str
    macro_fuel_type_id: int
    scope: Scope


class _Versioned(BaseModel):
    valid_from: date
    valid_to: Optional[date] = None

    @model_validator(mode="after")
    def _check_window(self):
        if self.valid_to is not None and self.valid_to < self.valid_from:
            raise ValueError("valid_to must not precede valid_from")
        return self

    def covers(self, d: date) -> bool:
        return self.valid_from <= d and (self.valid_to is None or d <= self.valid_to)


class GasEmissionFactor(_Versioned):
    """kg of gas emitted per unit (L, kg or kWh) of the macro fuel type."""

    macro_fuel_type_id: int
    gas: KyotoGas
    value: float = Field(..., ge=0)
    # optional override for one vehicle fuel code; None = macro-type default
    vehicle_fuel_code: Optional[str] = None


class GwpValue(_Versioned):
    gas: KyotoGas
    value: float = Field(..., ge=0)
    # None = applies to every macro fuel type
    macro_fuel_type_id: Optional[int] = None
    source: Optional[str] = None


@dataclass(frozen=True)
class EmissionContext:
    """Everything needed to turn a quantity into CO2e, resolved for one date."""

    macro_fuel_type: MacroFuelType
    gas_factors: Dict[KyotoGas, float] = field(default_factory=zero_gas_map)
    gwp_values: Dict[KyotoGas, float] = field(default_factory=zero_gas_map)

    @property
    def scope(self) -> int:
        return self.macro_fuel_type.scope
