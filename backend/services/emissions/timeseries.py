# services/emissions/timeseries.py
from __future__ import annotations
from typing import Dict, List, Sequence, Tuple

from core.emissions import round2
from models.report import EmissionTimeSeries
from .rows import EmissionRow


def build_time_series(rows: Sequence[EmissionRow]) -> List[EmissionTimeSeries]:
    """Theoretical vs real per period, ascending by period key."""
    groups: Dict[str, Tuple[str, float, float]] = {}
    for r in rows:
        label, theoretical, real = groups.get(r.period_key, (r.period_label, 0.0, 0.0))
        groups[r.period_key] = (label, theoretical + r.theoretical, real + r.real.total)

    series: List[EmissionTimeSeries] = []
    for key in sorted(groups):
        label, theoretical, real = groups[key]
        theoretical = round2(theoretical)
        real = round2(real)
        series.append(
            EmissionTimeSeries(
                period=key,
                period_label=label,
                theoretical_emissions=theoretical,
                real_emissions=real,
                delta=round2(real - theoretical),
            )
        )
    return series
