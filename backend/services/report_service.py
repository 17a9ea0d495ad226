# services/report_service.py
from __future__ import annotations
import asyncio
import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Awaitable, Dict, List, Optional, Sequence, TypeVar

from config import settings
from core.emissions import calculate_delta, estimate_theoretical_emissions, round2, travelled_km
from core.exceptions import (
    AppError,
    CarlistNotFoundError,
    DataLoadError,
    TargetNotFoundError,
    VehicleNotFoundError,
)
from core.interfaces import EmissionDataRepository
from core.periods import Period, bucket_periods, median_date, split_span
from models.emissions import EmissionContext
from models.fleet import CarlistMembership, FuelRecord, KmReading, Vehicle
from models.report import (
    AggregationDimension,
    DrillDownLevel,
    DrillDownResult,
    FuelRecordLine,
    KmReadingLine,
    MonthlyPoint,
    PeriodGranularity,
    ReportMetadata,
    ReportParams,
    ReportResult,
    VehicleEmissionDetail,
)
from models.targets import EmissionTarget, TargetProgressReport, TargetScope
from services.emissions import drilldown
from services.emissions.aggregation import (
    NO_CARLIST_ID,
    aggregate,
    build_breakdown,
    build_scope_breakdown,
)
from services.emissions.calculator import (
    combined_co2_g_km,
    effective_fuel_code,
    real_emissions_for_contexts,
)
from services.emissions.factors import FactorResolver, ReferenceTables
from services.emissions.rows import EmissionRow, build_rows
from services.emissions.targets import calculate_target_progress, milestone_dates
from services.emissions.timeseries import build_time_series

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class Snapshot:
    """Everything one report request reads, loaded once."""

    start: date
    end: date
    vehicles: List[Vehicle]
    fuel_records: List[FuelRecord]
    km_readings: List[KmReading]
    memberships: List[CarlistMembership]
    tables: ReferenceTables

    def rows(self, periods: Sequence[Period], reference_date: date) -> List[EmissionRow]:
        contexts = FactorResolver(self.tables).resolve_all(reference_date)
        return build_rows(
            self.vehicles,
            self.fuel_records,
            self.km_readings,
            self.memberships,
            contexts,
            periods,
        )


async def _guarded(awaitable: Awaitable[T], what: str) -> T:
    try:
        return await awaitable
    except AppError:
        raise
    except Exception as e:
        logger.error("Failed to load %s: %s", what, e)
        raise DataLoadError(f"Failed to load {what}: {e}") from e


class ReportService:
    def __init__(
        self,
        repository: EmissionDataRepository,
        *,
        at_risk_margin: Optional[float] = None,
        performance_threshold_pct: Optional[float] = None,
    ) -> None:
        self.repository = repository
        self.at_risk_margin = (
            settings.AT_RISK_MARGIN if at_risk_margin is None else at_risk_margin
        )
        self.threshold_pct = (
            settings.PERFORMANCE_THRESHOLD_PCT
            if performance_threshold_pct is None
            else performance_threshold_pct
        )

    @staticmethod
    def _granularity(granularity: Optional[PeriodGranularity]) -> PeriodGranularity:
        return PeriodGranularity(granularity or settings.DEFAULT_GRANULARITY)

    # ---------- Loading ----------
    async def load_snapshot(
        self,
        start: date,
        end: date,
        *,
        carlist_id: Optional[str] = None,
        vehicle_ids: Optional[Sequence[str]] = None,
        active_only: bool = True,
    ) -> Snapshot:
        repo = self.repository
        vehicles, tables = await asyncio.gather(
            _guarded(
                repo.load_vehicles(
                    vehicle_ids=vehicle_ids, carlist_id=carlist_id, active_only=active_only
                ),
                "vehicles",
            ),
            _guarded(repo.load_reference_tables(), "reference tables"),
        )
        ids = [v.id for v in vehicles]
        if not ids:
            return Snapshot(start, end, [], [], [], [], tables)

        catalog_ids = sorted({v.catalog_vehicle.id for v in vehicles})
        fuel, km, memberships = await asyncio.gather(
            _guarded(repo.load_fuel_records(ids, start, end), "fuel records"),
            _guarded(repo.load_km_readings(ids, start, end), "km readings"),
            _guarded(repo.load_carlist_memberships(catalog_ids), "carlist memberships"),
        )
        return Snapshot(start, end, vehicles, fuel, km, memberships, tables)

    # ---------- Reports ----------
    async def generate_report(self, params: ReportParams) -> ReportResult:
        snap = await self.load_snapshot(
            params.start_date, params.end_date, carlist_id=params.carlist_id
        )
        reference_date = median_date(params.start_date, params.end_date)
        periods = bucket_periods(
            params.start_date, params.end_date, self._granularity(params.granularity)
        )
        rows = snap.rows(periods, reference_date)
        labels = snap.tables.fuel_type_labels

        aggregations = aggregate(rows, params.dimension, labels, self.threshold_pct)
        metadata = self._metadata(rows, params.start_date, params.end_date, reference_date)
        return ReportResult(
            aggregations=aggregations,
            time_series=build_time_series(rows),
            breakdown=build_breakdown(rows, labels),
            scope_breakdown=build_scope_breakdown(rows),
            metadata=metadata,
        )

    def _metadata(
        self, rows: Sequence[EmissionRow], start: date, end: date, reference_date: date
    ) -> ReportMetadata:
        fleet = aggregate(rows, AggregationDimension.FLEET)
        meta = ReportMetadata(
            start_date=start,
            end_date=end,
            reference_date=reference_date,
            generated_at=datetime.now(timezone.utc),
            vehicle_count=len({r.vehicle_id for r in rows}),
            carlist_count=len({cid for r in rows for cid in r.carlist_ids}),
        )
        if fleet:
            total = fleet[0]
            meta.total_theoretical_emissions = total.theoretical_emissions
            meta.total_real_emissions = total.real_emissions
            meta.total_delta_absolute = total.delta_absolute
            meta.total_delta_percentage = total.delta_percentage
            meta.total_km = total.total_km
            meta.total_fuel = total.total_fuel
        return meta

    # ---------- Drill-down ----------
    async def drill_down(
        self,
        level: DrillDownLevel,
        start: date,
        end: date,
        *,
        carlist_id: Optional[str] = None,
        vehicle_id: Optional[str] = None,
        granularity: Optional[PeriodGranularity] = None,
    ) -> DrillDownResult:
        level = DrillDownLevel(level)
        reference_date = median_date(start, end)
        periods = bucket_periods(start, end, self._granularity(granularity))

        if level == DrillDownLevel.FLEET:
            snap = await self.load_snapshot(start, end)
            return drilldown.fleet_level(snap.rows(periods, reference_date), self.threshold_pct)

        if level == DrillDownLevel.CARLIST:
            if not carlist_id:
                raise ValueError("carlist_id is required for the CARLIST level")
            name = "No carlist"
            if carlist_id == NO_CARLIST_ID:
                snap = await self.load_snapshot(start, end)
            else:
                carlist = await _guarded(self.repository.get_carlist(carlist_id), "carlist")
                if carlist is None:
                    raise CarlistNotFoundError(f"Carlist '{carlist_id}' not found")
                name = carlist.name
                snap = await self.load_snapshot(start, end, carlist_id=carlist_id)
            return drilldown.carlist_level(
                snap.rows(periods, reference_date), carlist_id, name, self.threshold_pct
            )

        if not vehicle_id:
            raise ValueError("vehicle_id is required for the VEHICLE level")
        snap = await self.load_snapshot(start, end, vehicle_ids=[vehicle_id], active_only=False)
        if not snap.vehicles:
            raise VehicleNotFoundError(f"Vehicle '{vehicle_id}' not found")
        return drilldown.vehicle_level(
            snap.rows(periods, reference_date), vehicle_id, self.threshold_pct
        )

    async def vehicle_detail(self, vehicle_id: str, start: date, end: date) -> VehicleEmissionDetail:
        """
        Single-vehicle view. Unlike the aggregate reports, factors are
        resolved at each fuel record's own date.
        """
        snap = await self.load_snapshot(start, end, vehicle_ids=[vehicle_id], active_only=False)
        if not snap.vehicles:
            raise VehicleNotFoundError(f"Vehicle '{vehicle_id}' not found")
        vehicle = snap.vehicles[0]

        fuel_code = effective_fuel_code(vehicle.catalog_vehicle, snap.fuel_records)
        co2_g_km = combined_co2_g_km(vehicle.catalog_vehicle)
        resolver = FactorResolver(snap.tables)
        by_date: Dict[date, List[EmissionContext]] = {}

        def contexts_at(d: date) -> List[EmissionContext]:
            if fuel_code is None:
                return []
            if d not in by_date:
                by_date[d] = resolver.resolve(fuel_code, d)
            return by_date[d]

        record_real = [
            real_emissions_for_contexts(contexts_at(r.date), r.quantity_liters, r.quantity_kwh or 0.0).total
            for r in snap.fuel_records
        ]

        monthly: List[MonthlyPoint] = []
        for period in bucket_periods(start, end, PeriodGranularity.MONTHLY):
            readings = [r.odometer_km for r in snap.fuel_records if period.contains(r.date)]
            readings += [r.odometer_km for r in snap.km_readings if period.contains(r.date)]
            real = sum(v for r, v in zip(snap.fuel_records, record_real) if period.contains(r.date))
            monthly.append(
                MonthlyPoint(
                    period=period.key,
                    period_label=period.label,
                    theoretical=estimate_theoretical_emissions(co2_g_km, travelled_km(readings)),
                    real=round2(real),
                )
            )

        total_km = travelled_km(
            [r.odometer_km for r in snap.fuel_records] + [r.odometer_km for r in snap.km_readings]
        )
        theoretical = estimate_theoretical_emissions(co2_g_km, total_km)
        real_total = round2(sum(record_real))
        delta = calculate_delta(theoretical, real_total)

        return VehicleEmissionDetail(
            vehicle_id=vehicle.id,
            plate=vehicle.license_plate,
            make_model=vehicle.make_model,
            fuel_code=fuel_code,
            theoretical_emissions=theoretical,
            real_emissions=real_total,
            delta=delta.absolute,
            delta_percentage=delta.percentage,
            total_km=round2(total_km),
            total_fuel=round2(sum(r.quantity_liters for r in snap.fuel_records)),
            total_kwh=round2(sum(r.quantity_kwh or 0.0 for r in snap.fuel_records)),
            monthly_series=monthly,
            fuel_records=[
                FuelRecordLine(
                    date=r.date,
                    fuel_code=r.fuel_code,
                    quantity_liters=r.quantity_liters,
                    quantity_kwh=r.quantity_kwh,
                    amount_eur=r.amount_eur,
                    odometer_km=r.odometer_km,
                    real_emissions=v,
                )
                for r, v in zip(snap.fuel_records, record_real)
            ],
            km_readings=[
                KmReadingLine(date=r.date, odometer_km=r.odometer_km, source=r.source)
                for r in snap.km_readings
            ],
        )

    # ---------- Targets ----------
    async def _progress_for(self, target: EmissionTarget, as_of: date) -> TargetProgressReport:
        carlist_id = target.carlist_id if target.scope == TargetScope.CARLIST else None
        checkpoints = milestone_dates(target.start_date, target.end_date, target.period)
        clip_end = min(as_of, target.end_date)

        cumulative: Dict[str, float] = {}
        current = 0.0
        if clip_end >= target.start_date:
            snap = await self.load_snapshot(target.start_date, clip_end, carlist_id=carlist_id)
            reached = [(label, d) for label, _, d in checkpoints if d <= clip_end]
            periods = split_span(
                target.start_date,
                clip_end,
                [d for _, d in reached] + [clip_end],
                [label for label, _ in reached] + ["__current__"],
            )
            reference_date = median_date(target.start_date, target.end_date)
            rows = snap.rows(periods, reference_date)
            per_period: Dict[str, float] = {}
            for r in rows:
                per_period[r.period_key] = per_period.get(r.period_key, 0.0) + r.real.total
            running = 0.0
            for p in periods:
                running += per_period.get(p.key, 0.0)
                cumulative[p.key] = round2(running)
            # checkpoints that collapsed onto the previous one share its total
            last = 0.0
            for label, _ in reached:
                last = cumulative.setdefault(label, last)
            current = round2(running)

        actuals = [cumulative.get(label, current) for label, _, _ in checkpoints]
        progress = calculate_target_progress(
            target.target_value,
            current,
            target.start_date,
            target.end_date,
            as_of,
            target.period,
            milestone_actuals=actuals,
            at_risk_margin=self.at_risk_margin,
        )
        return TargetProgressReport(target=target, progress=progress)

    async def target_progress(self, target_id: str, as_of: Optional[date] = None) -> TargetProgressReport:
        target = await _guarded(self.repository.get_target(target_id), "target")
        if target is None:
            raise TargetNotFoundError(f"Emission target '{target_id}' not found")
        return await self._progress_for(target, as_of or date.today())

    async def list_target_progress(
        self,
        as_of: Optional[date] = None,
        scope: Optional[TargetScope] = None,
        carlist_id: Optional[str] = None,
    ) -> List[TargetProgressReport]:
        as_of = as_of or date.today()
        targets = await _guarded(self.repository.load_targets(scope, carlist_id), "targets")
        return list(await asyncio.gather(*(self._progress_for(t, as_of) for t in targets)))
