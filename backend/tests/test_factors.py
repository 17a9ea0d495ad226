from datetime import date

import pandas as pd
import pytest

from core.exceptions import ReferenceDataError
from models.emissions import GasEmissionFactor, GwpValue, KyotoGas
from services.emissions.emissions_factory import load_reference_tables
from services.emissions.factors import FactorResolver, ReferenceTables

D = date(2025, 1, 15)


def _with(tables: ReferenceTables, factors=(), gwp=()) -> ReferenceTables:
    return ReferenceTables(
        tables.macro_fuel_types.values(),
        tables.mappings,
        tables.factors + list(factors),
        tables.gwp_values + list(gwp),
        fuel_type_labels=tables.fuel_type_labels,
    )


def test_sample_tables_resolve_every_code():
    tables = ReferenceTables.sample()
    contexts = FactorResolver(tables).resolve_all(date(2025, 6, 1))

    assert set(contexts) == set(tables.fuel_codes())
    assert all(contexts.values())
    assert [c.scope for c in contexts["HYBRID_DIESEL"]] == [1, 2]
    diesel = contexts["DIESEL"][0]
    assert diesel.macro_fuel_type.name == "Diesel"
    assert diesel.gas_factors[KyotoGas.CO2] == 2.653
    assert diesel.gwp_values[KyotoGas.CH4] == 28.0


def test_pure_fuel_single_context(tables):
    contexts = FactorResolver(tables).resolve("DIESEL", D)
    assert len(contexts) == 1
    assert contexts[0].scope == 1
    assert contexts[0].gas_factors[KyotoGas.CO2] == 2.64
    assert contexts[0].gas_factors[KyotoGas.N2O] == 0.0


def test_unmapped_code_has_no_context(tables):
    assert FactorResolver(tables).resolve("LPG", D) == []


def test_versioned_factor_lookup(tables):
    old = GasEmissionFactor(
        macro_fuel_type_id=2, gas=KyotoGas.CO2, value=2.60,
        valid_from=date(2023, 1, 1), valid_to=date(2023, 12, 31),
    )
    resolver = FactorResolver(_with(tables, factors=[old]))

    assert resolver.resolve("DIESEL", date(2023, 6, 1))[0].gas_factors[KyotoGas.CO2] == 2.60
    assert resolver.resolve("DIESEL", date(2024, 1, 1))[0].gas_factors[KyotoGas.CO2] == 2.64
    # before any window: nothing effective
    assert resolver.resolve("DIESEL", date(2022, 6, 1)) == []


def test_overlapping_windows_rejected(tables):
    clash = GasEmissionFactor(
        macro_fuel_type_id=2, gas=KyotoGas.CO2, value=2.70, valid_from=date(2024, 6, 1)
    )
    with pytest.raises(ReferenceDataError):
        FactorResolver(_with(tables, factors=[clash]))


def test_fuel_code_override_wins(tables):
    override = GasEmissionFactor(
        macro_fuel_type_id=1, gas=KyotoGas.CO2, value=2.0,
        valid_from=date(2024, 1, 1), vehicle_fuel_code="HYBRID_PETROL",
    )
    resolver = FactorResolver(_with(tables, factors=[override]))
    assert resolver.resolve("HYBRID_PETROL", D)[0].gas_factors[KyotoGas.CO2] == 2.0
    assert resolver.resolve("PETROL", D)[0].gas_factors[KyotoGas.CO2] == 2.3


def test_macro_specific_gwp_wins(tables):
    gwp = GwpValue(gas=KyotoGas.CO2, value=2.0, macro_fuel_type_id=2, valid_from=date(2020, 1, 1))
    resolver = FactorResolver(_with(tables, gwp=[gwp]))
    assert resolver.resolve("DIESEL", D)[0].gwp_values[KyotoGas.CO2] == 2.0
    assert resolver.resolve("PETROL", D)[0].gwp_values[KyotoGas.CO2] == 1.0


def test_missing_gwp_makes_code_unresolvable(tables):
    ch4 = GasEmissionFactor(
        macro_fuel_type_id=2, gas=KyotoGas.CH4, value=0.001, valid_from=date(2024, 1, 1)
    )
    assert FactorResolver(_with(tables, factors=[ch4])).resolve("DIESEL", D) == []


def _write_workbook(path, tables: ReferenceTables):
    with pd.ExcelWriter(path, engine="openpyxl") as xw:
        pd.DataFrame([m.model_dump() for m in tables.macro_fuel_types.values()]).to_excel(
            xw, sheet_name="macro_fuel_types", index=False
        )
        pd.DataFrame([m.model_dump() for m in tables.mappings]).to_excel(
            xw, sheet_name="mappings", index=False
        )
        pd.DataFrame(
            [{**f.model_dump(), "gas": f.gas.value} for f in tables.factors]
        ).to_excel(xw, sheet_name="emission_factors", index=False)
        pd.DataFrame(
            [{**g.model_dump(), "gas": g.gas.value} for g in tables.gwp_values]
        ).to_excel(xw, sheet_name="gwp_values", index=False)
        pd.DataFrame(
            [{"code": k, "label": v} for k, v in tables.fuel_type_labels.items()]
        ).to_excel(xw, sheet_name="fuel_type_labels", index=False)


def test_xlsx_preset(tmp_path, tables):
    path = tmp_path / "reference.xlsx"
    _write_workbook(path, tables)

    loaded = load_reference_tables("xlsx", path)
    assert loaded.name == "reference"
    assert loaded.fuel_codes() == tables.fuel_codes()
    assert loaded.label_for("DIESEL") == "Diesel"

    contexts = FactorResolver(loaded).resolve("HYBRID_PETROL", D)
    assert [c.scope for c in contexts] == [1, 2]
    assert contexts[1].gas_factors[KyotoGas.CO2] == 0.25


def test_xlsx_missing_sheet(tmp_path):
    path = tmp_path / "broken.xlsx"
    pd.DataFrame([{"a": 1}]).to_excel(path, sheet_name="macro_fuel_types", index=False)
    with pytest.raises(ReferenceDataError):
        ReferenceTables.from_xlsx(path)


def test_xlsx_preset_falls_back_to_sample(tmp_path):
    tables = load_reference_tables("xlsx", tmp_path / "missing.xlsx")
    assert tables.name == "sample_ispra_2024"


def test_unknown_preset():
    with pytest.raises(ValueError):
        load_reference_tables("nope")
