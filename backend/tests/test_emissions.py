from datetime import date

from core.emissions import (
    calculate_delta,
    calculate_gas_co2e,
    calculate_scoped_emissions,
    estimate_theoretical_emissions,
    round2,
    safe_ratio,
    travelled_km,
)
from models.emissions import KyotoGas
from models.fleet import CatalogVehicle, Engine, FuelRecord
from services.emissions.calculator import (
    combined_co2_g_km,
    effective_fuel_code,
    real_emissions_for_contexts,
    standard_co2_g_km,
)
from services.emissions.factors import FactorResolver
from data_toy import DUCATO, SANDERO, YARIS, toy_tables

YARIS_DATE = date(2025, 1, 15)


def test_round2_half_up_on_binary_values():
    assert round2(1.234) == 1.23
    assert round2(0.125) == 0.13
    assert round2(-0.125) == -0.12
    # 1.005 is stored just below 1.005
    assert round2(1.005) == 1.0
    assert round2(round2(3.14159)) == round2(3.14159)


def test_safe_ratio_zero_denominator():
    assert safe_ratio(5, 0) == 0.0
    assert safe_ratio(1, 4) == 0.25


def test_diesel_single_period():
    # 120 g/km over 1000 km vs 50 L at 2.64 kg/L
    theoretical = estimate_theoretical_emissions(120, 1000)
    res = calculate_scoped_emissions(
        50, {KyotoGas.CO2: 2.64}, {KyotoGas.CO2: 1.0}
    )
    delta = calculate_delta(theoretical, res.total_co2e)

    assert theoretical == 120.0
    assert res.total_co2e == 132.0
    assert res.per_gas[KyotoGas.CO2] == 132.0
    assert res.per_gas[KyotoGas.CH4] == 0.0
    assert delta.absolute == 12.0
    assert delta.percentage == 10.0


def test_scoped_emissions_sum_of_gases():
    factors = {KyotoGas.CO2: 2.0, KyotoGas.CH4: 0.01, KyotoGas.N2O: 0.001}
    gwp = {KyotoGas.CO2: 1.0, KyotoGas.CH4: 28.0, KyotoGas.N2O: 265.0}
    res = calculate_scoped_emissions(100, factors, gwp)
    assert res.per_gas[KyotoGas.CO2] == 200.0
    assert res.per_gas[KyotoGas.CH4] == 28.0
    assert res.per_gas[KyotoGas.N2O] == 26.5
    assert res.total_co2e == 254.5
    assert len(res.per_gas) == 7


def test_zero_quantity_is_zero():
    res = calculate_scoped_emissions(0, {KyotoGas.CO2: 2.64}, {KyotoGas.CO2: 1.0})
    assert res.total_co2e == 0.0
    assert calculate_gas_co2e(0, 2.64, 1.0) == 0.0


def test_delta_percentage_zero_when_no_theoretical():
    d = calculate_delta(0, 15.5)
    assert d.absolute == 15.5
    assert d.percentage == 0.0


def test_travelled_km_is_max_minus_min():
    assert travelled_km([10500, 10000, 11000]) == 1000.0
    assert travelled_km([10000]) == 0.0
    assert travelled_km([]) == 0.0


def test_hybrid_real_emissions_add_both_scopes():
    contexts = FactorResolver(toy_tables()).resolve("HYBRID_PETROL", YARIS_DATE)
    assert [c.scope for c in contexts] == [1, 2]

    real = real_emissions_for_contexts(contexts, liters=20, kwh=40)
    assert real.by_scope == {1: 46.0, 2: 10.0}
    assert real.total == 56.0
    assert real.per_gas()[KyotoGas.CO2] == 56.0


def test_no_contexts_no_real_emissions():
    real = real_emissions_for_contexts([], liters=30, kwh=0)
    assert real.total == 0.0
    assert real.by_scope == {}


def test_effective_fuel_code_hybrid_and_majority():
    assert effective_fuel_code(YARIS) == "HYBRID_PETROL"

    diesel_hybrid = CatalogVehicle(
        id="c", make="X", model="Y", is_hybrid=True,
        engines=[Engine(fuel_code="ELECTRIC"), Engine(fuel_code="DIESEL", co2_g_km=90)],
    )
    assert effective_fuel_code(diesel_hybrid) == "HYBRID_DIESEL"

    records = [
        FuelRecord(vehicle_id="v", date=YARIS_DATE, fuel_code=code, quantity_liters=1, odometer_km=0)
        for code in ("LPG", "PETROL", "LPG")
    ]
    assert effective_fuel_code(SANDERO, records) == "LPG"
    assert effective_fuel_code(DUCATO) == "DIESEL"
    assert effective_fuel_code(CatalogVehicle(id="e", make="A", model="B")) is None


def test_effective_fuel_code_tie_keeps_first_seen():
    records = [
        FuelRecord(vehicle_id="v", date=YARIS_DATE, fuel_code=code, quantity_liters=1, odometer_km=0)
        for code in ("PETROL", "LPG")
    ]
    assert effective_fuel_code(SANDERO, records) == "PETROL"


def test_catalog_figures():
    assert combined_co2_g_km(YARIS) == 100.0
    assert combined_co2_g_km(DUCATO) == 120.0
    assert standard_co2_g_km(DUCATO) == (125, 110)

    only_wltp = CatalogVehicle(
        id="w", make="A", model="B", engines=[Engine(fuel_code="PETROL", co2_g_km_wltp=95)]
    )
    assert combined_co2_g_km(only_wltp) == 95.0
    assert combined_co2_g_km(CatalogVehicle(id="e", make="A", model="B")) == 0.0

