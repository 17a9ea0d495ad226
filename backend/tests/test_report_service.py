import asyncio
from datetime import date

import pytest

from core.exceptions import (
    CarlistNotFoundError,
    DataLoadError,
    TargetNotFoundError,
    VehicleNotFoundError,
)
from models.emissions import GasEmissionFactor, KyotoGas
from models.fleet import FuelRecord
from models.report import AggregationDimension, DrillDownLevel, ReportParams
from models.targets import EmissionTarget, TargetStatus
from services.emissions.aggregation import NO_CARLIST_ID
from services.emissions.factors import ReferenceTables
from services.report_service import ReportService
from services.repository import InMemoryEmissionRepository
from data_toy import JAN_END, JAN_START, VEHICLES, toy_repository, toy_tables


def run(coro):
    return asyncio.run(coro)


@pytest.fixture
def service():
    return ReportService(toy_repository())


def test_report_by_vehicle(service):
    params = ReportParams(start_date=JAN_START, end_date=JAN_END)
    report = run(service.generate_report(params))

    assert [a.label for a in report.aggregations] == [
        "Dacia Sandero (CC333CC)",
        "Fiat Ducato (AA111AA)",
        "Toyota Yaris (BB222BB)",
    ]
    meta = report.metadata
    assert meta.total_theoretical_emissions == 206.0
    assert meta.total_real_emissions == 188.0
    assert meta.total_km == 1800.0
    assert meta.vehicle_count == 3
    assert meta.carlist_count == 2
    assert meta.reference_date == date(2025, 1, 16)
    assert [p.period for p in report.time_series] == ["2025-01"]
    assert [b.category_id for b in report.breakdown] == ["DIESEL", "HYBRID_PETROL", "LPG"]
    assert [s.category_id for s in report.scope_breakdown] == ["1", "2"]


def test_report_restricted_to_carlist(service):
    params = ReportParams(
        start_date=JAN_START,
        end_date=JAN_END,
        dimension=AggregationDimension.FLEET,
        carlist_id="cl-ops",
    )
    report = run(service.generate_report(params))
    assert report.metadata.vehicle_count == 1
    assert report.metadata.total_real_emissions == 132.0
    assert report.aggregations[0].real_emissions == 132.0


def test_report_empty_fleet():
    service = ReportService(InMemoryEmissionRepository(reference_tables=toy_tables))
    report = run(service.generate_report(ReportParams(start_date=JAN_START, end_date=JAN_END)))
    assert report.aggregations == []
    assert report.metadata.total_real_emissions == 0.0


def test_drill_down_fleet(service):
    result = run(service.drill_down(DrillDownLevel.FLEET, JAN_START, JAN_END))
    assert result.total_emissions == 188.0
    items = {i.id: i for i in result.items}
    assert [i.id for i in result.items] == ["cl-sales", "cl-ops", NO_CARLIST_ID]
    assert items["cl-sales"].contribution_percentage == 100.0
    assert items["cl-ops"].contribution_percentage == 70.21
    assert items["cl-sales"].child_count == 2
    assert items[NO_CARLIST_ID].child_count == 1


def test_drill_down_carlist(service):
    result = run(
        service.drill_down(DrillDownLevel.CARLIST, JAN_START, JAN_END, carlist_id="cl-sales")
    )
    assert result.parent_label == "Sales"
    assert [i.id for i in result.items] == ["v1", "v2"]
    assert [i.contribution_percentage for i in result.items] == [70.21, 29.79]

    none = run(
        service.drill_down(DrillDownLevel.CARLIST, JAN_START, JAN_END, carlist_id=NO_CARLIST_ID)
    )
    assert [i.id for i in none.items] == ["v3"]


def test_drill_down_vehicle_periods(service):
    result = run(
        service.drill_down(DrillDownLevel.VEHICLE, JAN_START, date(2025, 3, 31), vehicle_id="v1")
    )
    assert [i.id for i in result.items] == ["2025-01", "2025-02", "2025-03"]
    assert result.parent_label == "Fiat Ducato (AA111AA)"
    assert result.total_emissions == 132.0
    assert result.items[0].contribution_percentage == 100.0


def test_drill_down_errors(service):
    with pytest.raises(CarlistNotFoundError):
        run(service.drill_down(DrillDownLevel.CARLIST, JAN_START, JAN_END, carlist_id="nope"))
    with pytest.raises(VehicleNotFoundError):
        run(service.drill_down(DrillDownLevel.VEHICLE, JAN_START, JAN_END, vehicle_id="nope"))
    with pytest.raises(ValueError):
        run(service.drill_down(DrillDownLevel.CARLIST, JAN_START, JAN_END))


def test_vehicle_detail(service):
    detail = run(service.vehicle_detail("v1", JAN_START, JAN_END))
    assert detail.make_model == "Fiat Ducato"
    assert detail.fuel_code == "DIESEL"
    assert detail.theoretical_emissions == 120.0
    assert detail.real_emissions == 132.0
    assert detail.delta == 12.0
    assert detail.delta_percentage == 10.0
    assert detail.total_km == 1000.0
    assert [f.real_emissions for f in detail.fuel_records] == [132.0]
    assert len(detail.km_readings) == 1
    assert [(m.period, m.theoretical, m.real) for m in detail.monthly_series] == [
        ("2025-01", 120.0, 132.0)
    ]


def test_vehicle_detail_includes_inactive(service):
    detail = run(service.vehicle_detail("v4", JAN_START, JAN_END))
    assert detail.real_emissions == 23.0
    assert detail.theoretical_emissions == 0.0


def _repricing_repo() -> InMemoryEmissionRepository:
    base = toy_tables()
    factors = [f for f in base.factors if f.macro_fuel_type_id != 2] + [
        GasEmissionFactor(
            macro_fuel_type_id=2, gas=KyotoGas.CO2, value=2.64,
            valid_from=date(2024, 1, 1), valid_to=date(2025, 1, 31),
        ),
        GasEmissionFactor(
            macro_fuel_type_id=2, gas=KyotoGas.CO2, value=3.0, valid_from=date(2025, 2, 1)
        ),
    ]
    tables = ReferenceTables(
        base.macro_fuel_types.values(), base.mappings, factors, base.gwp_values, name="repriced"
    )
    records = [
        FuelRecord(vehicle_id="v1", date=date(2025, 1, 10), fuel_code="DIESEL",
                   quantity_liters=50, odometer_km=10000),
        FuelRecord(vehicle_id="v1", date=date(2025, 2, 10), fuel_code="DIESEL",
                   quantity_liters=10, odometer_km=10500),
    ]
    return InMemoryEmissionRepository(
        vehicles=[VEHICLES[0]], fuel_records=records, reference_tables=lambda: tables
    )


def test_detail_prices_each_record_at_its_date():
    service = ReportService(_repricing_repo())
    end = date(2025, 2, 28)

    detail = run(service.vehicle_detail("v1", JAN_START, end))
    assert [f.real_emissions for f in detail.fuel_records] == [132.0, 30.0]
    assert detail.real_emissions == 162.0

    # aggregate reports use one reference date (Jan 30) for the whole range
    report = run(service.generate_report(ReportParams(start_date=JAN_START, end_date=end)))
    assert report.metadata.total_real_emissions == 158.4


def test_target_progress(service):
    report = run(service.target_progress("t-fleet-2025", as_of=date(2025, 2, 15)))
    p = report.progress
    assert p.current_value == 188.0
    assert p.percentage == 18.8
    assert p.status == TargetStatus.OFF_TRACK
    assert not any(m.achieved for m in p.milestones)

    ops = run(service.target_progress("t-ops-2025", as_of=date(2025, 2, 15)))
    assert ops.progress.current_value == 132.0


def test_target_progress_before_start(service):
    report = run(service.target_progress("t-fleet-2025", as_of=date(2024, 12, 1)))
    assert report.progress.current_value == 0.0
    assert report.progress.status == TargetStatus.ON_TRACK


def test_target_milestones_cumulative():
    repo = _repricing_repo()
    repo.fuel_records.append(
        FuelRecord(vehicle_id="v1", date=date(2025, 5, 10), fuel_code="DIESEL",
                   quantity_liters=10, odometer_km=11000)
    )
    repo.targets.append(
        EmissionTarget(id="t", target_value=1000, start_date=JAN_START, end_date=date(2025, 12, 31))
    )
    report = run(ReportService(repo).target_progress("t", as_of=date(2025, 12, 31)))
    p = report.progress
    assert p.status == TargetStatus.COMPLETED
    # one reference date (Jul 2) for the whole target: 3.0 kg/L
    assert [m.actual_value for m in p.milestones] == [180.0, 210.0, 210.0, 210.0]
    assert all(m.achieved for m in p.milestones)
    assert p.current_value == 210.0


def test_list_target_progress(service):
    reports = run(service.list_target_progress(as_of=date(2025, 2, 15)))
    assert {r.target.id for r in reports} == {"t-fleet-2025", "t-ops-2025"}


def test_unknown_target(service):
    with pytest.raises(TargetNotFoundError):
        run(service.target_progress("nope"))


class _BrokenRepository(InMemoryEmissionRepository):
    async def load_fuel_records(self, vehicle_ids, start, end):
        raise RuntimeError("connection reset")


def test_store_failure_becomes_data_load_error():
    service = ReportService(_BrokenRepository(vehicles=VEHICLES, reference_tables=toy_tables))
    with pytest.raises(DataLoadError):
        run(service.generate_report(ReportParams(start_date=JAN_START, end_date=JAN_END)))
