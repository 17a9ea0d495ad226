from fastapi import APIRouter

from api._resp import ok
from config import get_settings
from services.emissions.emissions_factory import load_reference_tables

router = APIRouter(prefix="/status", tags=["status"])


@router.get("/reference")
def reference():
    s = get_settings()
    tables = load_reference_tables(s.REFERENCE_PRESET, s.REFERENCE_XLSX_PATH)
    return ok(
        {
            "preset": tables.name,
            "fuel_codes": tables.fuel_codes(),
            "macro_fuel_types": [m.name for m in tables.macro_fuel_types.values()],
        }
    )
