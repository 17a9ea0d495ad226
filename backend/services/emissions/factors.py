# services/emissions/factors.py
from __future__ import annotations
import logging
from bisect import bisect_right
from datetime import date
from pathlib import Path
from typing import Dict, Generic, Hashable, Iterable, List, Optional, Tuple, TypeVar

import pandas as pd

from core.exceptions import ReferenceDataError
from models.emissions import (
    DEFAULT_GWP_AR5,
    KYOTO_GASES,
    EmissionContext,
    FuelTypeMacroMapping,
    GasEmissionFactor,
    GwpValue,
    KyotoGas,
    MacroFuelType,
)

logger = logging.getLogger(__name__)

T = TypeVar("T", GasEmissionFactor, GwpValue)


class VersionedTable(Generic[T]):
    """
    Time-versioned values indexed per key and sorted by valid_from, so a
    point-in-time lookup is a bisect instead of a scan.
    Overlapping windows for the same key are rejected.
    """

    def __init__(self, items: Iterable[Tuple[Hashable, T]]) -> None:
        self._rows: Dict[Hashable, List[T]] = {}
        for key, item in items:
            self._rows.setdefault(key, []).append(item)
        self._starts: Dict[Hashable, List[date]] = {}
        for key, rows in self._rows.items():
            rows.sort(key=lambda r: r.valid_from)
            for prev, nxt in zip(rows, rows[1:]):
                if prev.valid_to is None or prev.valid_to >= nxt.valid_from:
                    raise ReferenceDataError(
                        f"Overlapping validity windows for {key}: "
                        f"{prev.valid_from}..{prev.valid_to} and {nxt.valid_from}..{nxt.valid_to}"
                    )
            self._starts[key] = [r.valid_from for r in rows]

    def at(self, key: Hashable, d: date) -> Optional[T]:
        starts = self._starts.get(key)
        if not starts:
            return None
        idx = bisect_right(starts, d) - 1
        if idx < 0:
            return None
        candidate = self._rows[key][idx]
        return candidate if candidate.covers(d) else None

    def __len__(self) -> int:
        return sum(len(v) for v in self._rows.values())


class ReferenceTables:
    """
    Point-in-time snapshot of the reference tables: macro fuel types, the
    vehicle-fuel-code mappings and the versioned gas factors / GWP values.
    """

    def __init__(
        self,
        macro_fuel_types: Iterable[MacroFuelType],
        mappings: Iterable[FuelTypeMacroMapping],
        factors: Iterable[GasEmissionFactor],
        gwp_values: Iterable[GwpValue],
        fuel_type_labels: Optional[Dict[str, str]] = None,
        name: str = "custom",
    ) -> None:
        self.name = name
        self.macro_fuel_types: Dict[int, MacroFuelType] = {m.id: m for m in macro_fuel_types}
        self.mappings: List[FuelTypeMacroMapping] = list(mappings)
        self.factors: List[GasEmissionFactor] = list(factors)
        self.gwp_values: List[GwpValue] = list(gwp_values)
        self.fuel_type_labels: Dict[str, str] = dict(fuel_type_labels or {})

    def fuel_codes(self) -> List[str]:
        return sorted({m.vehicle_fuel_code for m in self.mappings})

    def label_for(self, fuel_code: str) -> str:
        return self.fuel_type_labels.get(fuel_code, fuel_code)

    # ---------- Loaders ----------
    @classmethod
    def sample(cls, name: str = "sample_ispra_2024") -> "ReferenceTables":
        """
        Built-in tables: ISPRA 2024 factors (kg gas per L / kg / kWh) and
        IPCC AR5 GWP values.
        """
        macros = [
            MacroFuelType(id=1, name="Petrol", scope=1, unit="L", color="#22c55e", sort_order=1),
            MacroFuelType(id=2, name="Diesel", scope=1, unit="L", color="#3b82f6", sort_order=2),
            MacroFuelType(id=3, name="LPG", scope=1, unit="L", color="#f97316", sort_order=3),
            MacroFuelType(id=4, name="CNG", scope=1, unit="kg", color="#8b5cf6", sort_order=4),
            MacroFuelType(id=5, name="Electricity", scope=2, unit="kWh", color="#06b6d4", sort_order=5),
            MacroFuelType(id=6, name="Hydrogen", scope=1, unit="kg", color="#ec4899", sort_order=6),
        ]
        mapping_rows = [
            ("PETROL", 1, 1),
            ("DIESEL", 2, 1),
            ("LPG", 3, 1),
            ("CNG", 4, 1),
            ("ELECTRIC", 5, 2),
            ("HYDROGEN", 6, 1),
            ("HYBRID_PETROL", 1, 1),
            ("HYBRID_PETROL", 5, 2),
            ("HYBRID_DIESEL", 2, 1),
            ("HYBRID_DIESEL", 5, 2),
            ("BIFUEL_PETROL_LPG", 1, 1),
            ("BIFUEL_PETROL_CNG", 1, 1),
        ]
        mappings = [
            FuelTypeMacroMapping(vehicle_fuel_code=c, macro_fuel_type_id=m, scope=s)
            for c, m, s in mapping_rows
        ]
        ispra = {
            1: (2.315, 0.00086, 0.00026),
            2: (2.653, 0.00003, 0.00028),
            3: (1.513, 0.00068, 0.00002),
            4: (1.932, 0.00188, 0.00003),
            5: (0.256, 0.00001, 0.000004),
            6: (0.830, 0.00001, 0.000001),
        }
        since = date(2024, 1, 1)
        factors = []
        for macro_id, (co2, ch4, n2o) in ispra.items():
            for gas, value in ((KyotoGas.CO2, co2), (KyotoGas.CH4, ch4), (KyotoGas.N2O, n2o)):
                factors.append(
                    GasEmissionFactor(
                        macro_fuel_type_id=macro_id, gas=gas, value=value, valid_from=since
                    )
                )
        gwp = [
            GwpValue(gas=g, value=v, valid_from=date(2014, 1, 1), source="IPCC AR5")
            for g, v in DEFAULT_GWP_AR5.items()
        ]
        labels = {
            "PETROL": "Petrol",
            "DIESEL": "Diesel",
            "LPG": "LPG",
            "CNG": "CNG",
            "ELECTRIC": "Electric",
            "HYDROGEN": "Hydrogen",
            "HYBRID_PETROL": "Hybrid petrol",
            "HYBRID_DIESEL": "Hybrid diesel",
            "BIFUEL_PETROL_LPG": "Bi-fuel petrol/LPG",
            "BIFUEL_PETROL_CNG": "Bi-fuel petrol/CNG",
        }
        return cls(macros, mappings, factors, gwp, fuel_type_labels=labels, name=name)

    @classmethod
    def from_xlsx(cls, xlsx_path: str | Path, *, name: str = "xlsx") -> "ReferenceTables":
        """
        Reads a workbook with the sheets macro_fuel_types, mappings,
        emission_factors, gwp_values and (optionally) fuel_type_labels.
        Column names match the model field names.
        """
        xlsx_path = Path(xlsx_path)
        if not xlsx_path.exists():
            raise FileNotFoundError(f"Reference workbook not found: {xlsx_path}")

        xls = pd.ExcelFile(xlsx_path)
        required = ("macro_fuel_types", "mappings", "emission_factors", "gwp_values")
        missing = [s for s in required if s not in xls.sheet_names]
        if missing:
            raise ReferenceDataError(f"{xlsx_path.name}: missing sheets {missing}")

        def _records(sheet: str) -> List[dict]:
            df = pd.read_excel(xls, sheet_name=sheet)
            df.columns = [str(c).strip().lower() for c in df.columns]
            out = []
            for _, row in df.iterrows():
                rec = {}
                for col, val in row.items():
                    if pd.isna(val):
                        continue
                    if isinstance(val, pd.Timestamp):
                        val = val.date()
                    elif hasattr(val, "item"):
                        val = val.item()  # numpy scalar -> python
                    rec[col] = val
                if rec:
                    out.append(rec)
            return out

        try:
            macros = [MacroFuelType(**r) for r in _records("macro_fuel_types")]
            mappings = [
                FuelTypeMacroMapping(**{**r, "vehicle_fuel_code": str(r["vehicle_fuel_code"]).strip()})
                for r in _records("mappings")
            ]
            factors = [
                GasEmissionFactor(**{**r, "gas": str(r["gas"]).strip().lower()})
                for r in _records("emission_factors")
            ]
            gwp = [
                GwpValue(**{**r, "gas": str(r["gas"]).strip().lower()})
                for r in _records("gwp_values")
            ]
        except (KeyError, ValueError) as e:
            raise ReferenceDataError(f"{xlsx_path.name}: {e}") from e

        labels: Dict[str, str] = {}
        if "fuel_type_labels" in xls.sheet_names:
            for r in _records("fuel_type_labels"):
                if "code" in r and "label" in r:
                    labels[str(r["code"])] = str(r["label"])

        return cls(macros, mappings, factors, gwp, fuel_type_labels=labels, name=name)


class FactorResolver:
    """
    Resolves every vehicle fuel code to its EmissionContext list for one
    reference date. One context for pure fuels, two (scope 1 + scope 2) for
    hybrids. Codes that cannot be fully resolved map to an empty list.
    """

    def __init__(self, tables: ReferenceTables) -> None:
        self.tables = tables
        self._factors: VersionedTable[GasEmissionFactor] = VersionedTable(
            ((f.macro_fuel_type_id, f.gas, f.vehicle_fuel_code), f) for f in tables.factors
        )
        self._gwp: VersionedTable[GwpValue] = VersionedTable(
            ((g.macro_fuel_type_id, g.gas), g) for g in tables.gwp_values
        )
        self._mappings: Dict[str, List[FuelTypeMacroMapping]] = {}
        for m in tables.mappings:
            self._mappings.setdefault(m.vehicle_fuel_code, []).append(m)
        for rows in self._mappings.values():
            rows.sort(key=lambda m: m.scope)

    def _factor(self, macro_id: int, gas: KyotoGas, fuel_code: str, d: date):
        return self._factors.at((macro_id, gas, fuel_code), d) or self._factors.at(
            (macro_id, gas, None), d
        )

    def _gwp_value(self, macro_id: int, gas: KyotoGas, d: date):
        return self._gwp.at((macro_id, gas), d) or self._gwp.at((None, gas), d)

    def _context(
        self, fuel_code: str, mapping: FuelTypeMacroMapping, d: date
    ) -> Optional[EmissionContext]:
        macro = self.tables.macro_fuel_types.get(mapping.macro_fuel_type_id)
        if macro is None:
            logger.warning(
                "Fuel code %s maps to unknown macro fuel type %s",
                fuel_code,
                mapping.macro_fuel_type_id,
            )
            return None

        gas_factors: Dict[KyotoGas, float] = {}
        gwp_values: Dict[KyotoGas, float] = {}
        found_any = False
        for gas in KYOTO_GASES:
            factor = self._factor(macro.id, gas, fuel_code, d)
            gwp = self._gwp_value(macro.id, gas, d)
            gas_factors[gas] = factor.value if factor else 0.0
            gwp_values[gas] = gwp.value if gwp else 0.0
            if factor is not None:
                found_any = True
                if gwp is None and factor.value > 0:
                    logger.warning(
                        "No GWP value effective on %s for %s (fuel code %s, macro %s)",
                        d,
                        gas.value,
                        fuel_code,
                        macro.name,
                    )
                    return None

        if not found_any:
            logger.warning(
                "No emission factor effective on %s for fuel code %s (macro %s)",
                d,
                fuel_code,
                macro.name,
            )
            return None

        return EmissionContext(
            macro_fuel_type=macro, gas_factors=gas_factors, gwp_values=gwp_values
        )

    def resolve(self, fuel_code: str, reference_date: date) -> List[EmissionContext]:
        contexts: List[EmissionContext] = []
        for mapping in self._mappings.get(fuel_code, []):
            ctx = self._context(fuel_code, mapping, reference_date)
            if ctx is None:
                return []
            contexts.append(ctx)
        return contexts

    def resolve_all(self, reference_date: date) -> Dict[str, List[EmissionContext]]:
        return {code: self.resolve(code, reference_date) for code in self._mappings}
