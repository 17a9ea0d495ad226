# services/emissions/aggregation.py
from __future__ import annotations
import unicodedata
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from core.emissions import calculate_delta, round2, safe_ratio
from models.emissions import SCOPE_LABELS, zero_gas_map
from models.report import (
    AggregationDimension,
    EmissionAggregation,
    EmissionBreakdown,
    PerformanceLevel,
    ScopeBreakdown,
)
from .rows import EmissionRow

FLEET_GROUP_ID = "__fleet__"
NO_CARLIST_ID = "__no_carlist__"

GroupKey = Tuple[str, str]  # (id, label)


class GroupIndex:
    """
    Multimap group id -> member row indices. A row may sit in several groups
    (carlist fan-out), so group totals are not a partition of the rows.
    """

    def __init__(self) -> None:
        self.labels: Dict[str, str] = {}
        self.members: Dict[str, List[int]] = {}

    def add(self, key: GroupKey, row_index: int) -> None:
        gid, label = key
        self.labels.setdefault(gid, label)
        self.members.setdefault(gid, []).append(row_index)

    def groups_of(self, row_index: int) -> List[str]:
        return [gid for gid, idx in self.members.items() if row_index in idx]

    def __len__(self) -> int:
        return len(self.members)


def _fleet_keys(row: EmissionRow, labels: Mapping[str, str]) -> List[GroupKey]:
    return [(FLEET_GROUP_ID, "Fleet")]


def _vehicle_keys(row: EmissionRow, labels: Mapping[str, str]) -> List[GroupKey]:
    return [(row.vehicle_id, row.label)]


def _carlist_keys(row: EmissionRow, labels: Mapping[str, str]) -> List[GroupKey]:
    if not row.carlist_ids:
        return [(NO_CARLIST_ID, "No carlist")]
    return list(zip(row.carlist_ids, row.carlist_names))


def _fuel_type_keys(row: EmissionRow, labels: Mapping[str, str]) -> List[GroupKey]:
    return [(row.fuel_code, labels.get(row.fuel_code, row.fuel_code))]


def _period_keys(row: EmissionRow, labels: Mapping[str, str]) -> List[GroupKey]:
    return [(row.period_key, row.period_label)]


GROUP_KEYS: Dict[AggregationDimension, Callable[[EmissionRow, Mapping[str, str]], List[GroupKey]]] = {
    AggregationDimension.FLEET: _fleet_keys,
    AggregationDimension.VEHICLE: _vehicle_keys,
    AggregationDimension.CARLIST: _carlist_keys,
    AggregationDimension.FUEL_TYPE: _fuel_type_keys,
    AggregationDimension.PERIOD: _period_keys,
}


def group_rows(
    rows: Sequence[EmissionRow],
    dimension: AggregationDimension,
    fuel_labels: Optional[Mapping[str, str]] = None,
) -> GroupIndex:
    key_fn = GROUP_KEYS[AggregationDimension(dimension)]
    labels = fuel_labels or {}
    index = GroupIndex()
    for i, row in enumerate(rows):
        for key in key_fn(row, labels):
            index.add(key, i)
    return index


def collation_key(label: str) -> Tuple[str, str]:
    """Accent- and case-insensitive sort key, raw label as tie-break."""
    decomposed = unicodedata.normalize("NFKD", label)
    base = "".join(c for c in decomposed if not unicodedata.combining(c))
    return base.casefold(), label


def _weighted_figure(members: Sequence[EmissionRow], attr: str) -> Optional[float]:
    carrying = [(getattr(r, attr), r.km_travelled) for r in members if getattr(r, attr) is not None]
    if not carrying:
        return None
    weight = sum(km for _, km in carrying)
    if weight == 0:
        return round2(sum(v for v, _ in carrying) / len(carrying))
    return round2(sum(v * km for v, km in carrying) / weight)


def _build_group(gid: str, label: str, members: Sequence[EmissionRow]) -> EmissionAggregation:
    theoretical = round2(sum(r.theoretical for r in members))
    real = round2(sum(r.real.total for r in members))
    km = sum(r.km_travelled for r in members)

    scopes: Dict[int, ScopeBreakdown] = {}
    per_gas = zero_gas_map()
    for r in members:
        for scope, value in r.real.by_scope.items():
            sb = scopes.setdefault(scope, ScopeBreakdown(scope=scope, per_gas=zero_gas_map()))
            sb.real_emissions = round2(sb.real_emissions + value)
            for gas, v in r.real.per_gas_by_scope.get(scope, {}).items():
                sb.per_gas[gas] = round2(sb.per_gas[gas] + v)
                per_gas[gas] = round2(per_gas[gas] + v)

    delta = calculate_delta(theoretical, real)
    return EmissionAggregation(
        id=gid,
        label=label,
        theoretical_emissions=theoretical,
        real_emissions=real,
        delta_absolute=delta.absolute,
        delta_percentage=delta.percentage,
        total_km=round2(km),
        total_fuel=round2(sum(r.liters for r in members)),
        total_kwh=round2(sum(r.kwh for r in members)),
        vehicle_count=len({r.vehicle_id for r in members}),
        real_co2e_per_km=round2(safe_ratio(real, km) * 1000),
        co2_g_km_wltp=_weighted_figure(members, "co2_g_km_wltp"),
        co2_g_km_nedc=_weighted_figure(members, "co2_g_km_nedc"),
        scopes=dict(sorted(scopes.items())),
        per_gas=per_gas,
    )


def classify_performance(deviation: float, threshold_pct: float = 10.0) -> PerformanceLevel:
    if deviation <= -threshold_pct:
        return PerformanceLevel.GOOD
    if deviation >= threshold_pct:
        return PerformanceLevel.POOR
    return PerformanceLevel.NEUTRAL


def fleet_average_co2e_per_km(groups: Sequence[EmissionAggregation]) -> float:
    """Real gCO2e/km over all groups' totals."""
    real = sum(g.real_emissions for g in groups)
    km = sum(g.total_km for g in groups)
    return safe_ratio(real, km) * 1000


def apply_performance(
    groups: Sequence[EmissionAggregation], threshold_pct: float = 10.0
) -> None:
    avg = fleet_average_co2e_per_km(groups)
    for g in groups:
        if g.total_km == 0 or avg == 0:
            g.performance_deviation = 0.0
            g.performance_level = PerformanceLevel.NEUTRAL
            continue
        deviation = round2(safe_ratio(g.real_co2e_per_km - avg, avg) * 100)
        g.performance_deviation = deviation
        g.performance_level = classify_performance(deviation, threshold_pct)


def aggregate(
    rows: Sequence[EmissionRow],
    dimension: AggregationDimension,
    fuel_labels: Optional[Mapping[str, str]] = None,
    threshold_pct: float = 10.0,
) -> List[EmissionAggregation]:
    index = group_rows(rows, dimension, fuel_labels)
    result = [
        _build_group(gid, index.labels[gid], [rows[i] for i in members])
        for gid, members in index.members.items()
    ]
    apply_performance(result, threshold_pct)
    result.sort(key=lambda a: collation_key(a.label))
    return result


def _percentages(totals: Dict[str, float]) -> Dict[str, float]:
    grand = sum(totals.values())
    return {k: round2(safe_ratio(v, grand) * 100) for k, v in totals.items()}


def build_breakdown(
    rows: Sequence[EmissionRow], fuel_labels: Optional[Mapping[str, str]] = None
) -> List[EmissionBreakdown]:
    """Real emissions by fuel code, percentages of the grand total, largest first."""
    labels = fuel_labels or {}
    totals: Dict[str, float] = {}
    colors: Dict[str, Optional[str]] = {}
    for r in rows:
        totals[r.fuel_code] = totals.get(r.fuel_code, 0.0) + r.real.total
        if r.fuel_code not in colors:
            colors[r.fuel_code] = r.contexts[0].macro_fuel_type.color if r.contexts else None

    pct = _percentages(totals)
    out = [
        EmissionBreakdown(
            category=labels.get(code, code),
            category_id=code,
            value=round2(value),
            percentage=pct[code],
            color=colors.get(code),
        )
        for code, value in totals.items()
    ]
    out.sort(key=lambda b: b.value, reverse=True)
    return out


def build_scope_breakdown(rows: Sequence[EmissionRow]) -> List[EmissionBreakdown]:
    totals: Dict[str, float] = {}
    for r in rows:
        for scope, value in r.real.by_scope.items():
            totals[str(scope)] = totals.get(str(scope), 0.0) + value

    pct = _percentages(totals)
    return [
        EmissionBreakdown(
            category=SCOPE_LABELS.get(int(scope), f"Scope {scope}"),
            category_id=scope,
            value=round2(totals[scope]),
            percentage=pct[scope],
        )
        for scope in sorted(totals)
    ]
