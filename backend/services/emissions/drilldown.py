# services/emissions/drilldown.py
from __future__ import annotations
from typing import Dict, List, Optional, Sequence

from core.emissions import round2, safe_ratio
from models.report import (
    AggregationDimension,
    DrillDownItem,
    DrillDownLevel,
    DrillDownResult,
    EmissionAggregation,
)
from .aggregation import NO_CARLIST_ID, aggregate
from .rows import EmissionRow


def _items(
    groups: Sequence[EmissionAggregation],
    parent_total: float,
    child_counts: Optional[Dict[str, int]] = None,
) -> List[DrillDownItem]:
    items = [
        DrillDownItem(
            id=g.id,
            label=g.label,
            theoretical_emissions=g.theoretical_emissions,
            real_emissions=g.real_emissions,
            delta=g.delta_absolute,
            delta_percentage=g.delta_percentage,
            total_km=g.total_km,
            contribution_percentage=round2(safe_ratio(g.real_emissions, parent_total) * 100),
            child_count=child_counts.get(g.id, 0) if child_counts is not None else None,
            performance_level=g.performance_level,
        )
        for g in groups
    ]
    items.sort(key=lambda i: i.real_emissions, reverse=True)
    return items


def _totals(rows: Sequence[EmissionRow]) -> EmissionAggregation | None:
    fleet = aggregate(rows, AggregationDimension.FLEET)
    return fleet[0] if fleet else None


def fleet_level(rows: Sequence[EmissionRow], threshold_pct: float = 10.0) -> DrillDownResult:
    """Root: one item per carlist; contributions against the fleet total."""
    total = _totals(rows)
    total_real = total.real_emissions if total else 0.0

    vehicles_per_carlist: Dict[str, set] = {}
    for r in rows:
        for cid in r.carlist_ids or [NO_CARLIST_ID]:
            vehicles_per_carlist.setdefault(cid, set()).add(r.vehicle_id)
    counts = {cid: len(v) for cid, v in vehicles_per_carlist.items()}

    groups = aggregate(rows, AggregationDimension.CARLIST, threshold_pct=threshold_pct)
    return DrillDownResult(
        level=DrillDownLevel.FLEET,
        parent_label="Fleet",
        items=_items(groups, total_real, counts),
        total_emissions=total_real,
        total_theoretical_emissions=total.theoretical_emissions if total else 0.0,
    )


def carlist_level(
    rows: Sequence[EmissionRow],
    carlist_id: str,
    carlist_name: Optional[str] = None,
    threshold_pct: float = 10.0,
) -> DrillDownResult:
    """Vehicles of one carlist; contributions against the carlist total."""
    if carlist_id == NO_CARLIST_ID:
        scoped = [r for r in rows if not r.carlist_ids]
    else:
        scoped = [r for r in rows if carlist_id in r.carlist_ids]
    total = _totals(scoped)
    total_real = total.real_emissions if total else 0.0
    groups = aggregate(scoped, AggregationDimension.VEHICLE, threshold_pct=threshold_pct)
    return DrillDownResult(
        level=DrillDownLevel.CARLIST,
        parent_label=carlist_name or "Carlist",
        parent_id=carlist_id,
        items=_items(groups, total_real),
        total_emissions=total_real,
        total_theoretical_emissions=total.theoretical_emissions if total else 0.0,
    )


def vehicle_level(
    rows: Sequence[EmissionRow], vehicle_id: str, threshold_pct: float = 10.0
) -> DrillDownResult:
    """Periods of one vehicle; contributions against the vehicle total."""
    scoped = [r for r in rows if r.vehicle_id == vehicle_id]
    total = _totals(scoped)
    total_real = total.real_emissions if total else 0.0
    groups = aggregate(scoped, AggregationDimension.PERIOD, threshold_pct=threshold_pct)
    items = _items(groups, total_real)
    # periods read chronologically
    items.sort(key=lambda i: i.id)
    return DrillDownResult(
        level=DrillDownLevel.VEHICLE,
        parent_label=scoped[0].label if scoped else vehicle_id,
        parent_id=vehicle_id,
        items=items,
        total_emissions=total_real,
        total_theoretical_emissions=total.theoretical_emissions if total else 0.0,
    )
