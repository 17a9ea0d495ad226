# api/emissions_routes.py
from __future__ import annotations

from datetime import date
from typing import Awaitable, Optional

from fastapi import APIRouter, Query, Request

from api._resp import fail, ok
from core.exceptions import DataLoadError, NotFoundError, ReferenceDataError
from models.report import DrillDownLevel, PeriodGranularity, ReportParams
from models.targets import TargetScope
from services.report_service import ReportService

router = APIRouter(prefix="/emissions", tags=["emissions"])


def _service(request: Request) -> ReportService:
    return ReportService(request.app.state.repository)


async def _run(awaitable: Awaitable):
    try:
        return await awaitable
    except NotFoundError as e:
        fail(404, str(e))
    except DataLoadError as e:
        fail(503, str(e))
    except (ReferenceDataError, ValueError) as e:
        # bad ranges, missing ids for a level, malformed reference data
        fail(400, f"Emission report failed: {e}")


@router.post("/report")
async def generate_report(params: ReportParams, request: Request):
    result = await _run(_service(request).generate_report(params))
    return ok(result)


@router.get("/drill-down")
async def drill_down(
    request: Request,
    start_date: date,
    end_date: date,
    level: DrillDownLevel = DrillDownLevel.FLEET,
    carlist_id: Optional[str] = None,
    vehicle_id: Optional[str] = None,
    granularity: Optional[PeriodGranularity] = None,
):
    result = await _run(
        _service(request).drill_down(
            level,
            start_date,
            end_date,
            carlist_id=carlist_id,
            vehicle_id=vehicle_id,
            granularity=granularity,
        )
    )
    return ok(result)


@router.get("/vehicles/{vehicle_id}")
async def vehicle_detail(vehicle_id: str, start_date: date, end_date: date, request: Request):
    result = await _run(_service(request).vehicle_detail(vehicle_id, start_date, end_date))
    return ok(result)


@router.get("/targets/progress")
async def list_target_progress(
    request: Request,
    as_of: Optional[date] = Query(None, description="Defaults to today"),
    scope: Optional[TargetScope] = None,
    carlist_id: Optional[str] = None,
):
    reports = await _run(_service(request).list_target_progress(as_of, scope, carlist_id))
    return ok(reports, count=len(reports))


@router.get("/targets/{target_id}/progress")
async def target_progress(target_id: str, request: Request, as_of: Optional[date] = None):
    result = await _run(_service(request).target_progress(target_id, as_of))
    return ok(result)
