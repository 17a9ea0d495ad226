# services/emissions/targets.py
from __future__ import annotations
from datetime import date, timedelta
from typing import List, Optional, Sequence, Tuple

from core.emissions import round2, safe_ratio
from models.targets import Milestone, TargetPeriod, TargetProgress, TargetStatus

QUARTER_MILESTONES: Tuple[Tuple[str, float], ...] = (
    ("Q1", 0.25),
    ("Q2", 0.50),
    ("Q3", 0.75),
    ("Q4", 1.00),
)


def milestone_dates(start: date, end: date, period: TargetPeriod) -> List[Tuple[str, float, date]]:
    """(label, fraction, date) checkpoints; quarterly for Annual targets, none for Monthly."""
    if TargetPeriod(period) != TargetPeriod.ANNUAL:
        return []
    total = (end - start).days
    return [
        (label, frac, start + timedelta(days=round(total * frac)))
        for label, frac in QUARTER_MILESTONES
    ]


def elapsed_fraction(start: date, end: date, as_of: date) -> float:
    total = (end - start).days
    if total <= 0:
        return 1.0 if as_of >= end else 0.0
    return min(max((as_of - start).days / total, 0.0), 1.0)


def classify_status(
    consumed: float, elapsed: float, completed: bool, at_risk_margin: float = 0.15
) -> TargetStatus:
    if completed:
        return TargetStatus.COMPLETED
    if consumed <= elapsed:
        return TargetStatus.ON_TRACK
    if consumed <= elapsed * (1 + at_risk_margin):
        return TargetStatus.AT_RISK
    return TargetStatus.OFF_TRACK


def calculate_target_progress(
    target_value: float,
    current_emissions: float,
    start_date: date,
    end_date: date,
    as_of: date,
    period: TargetPeriod = TargetPeriod.ANNUAL,
    milestone_actuals: Optional[Sequence[float]] = None,
    at_risk_margin: float = 0.15,
) -> TargetProgress:
    """
    Progress of a reduction target: the share of the budget consumed is
    compared with the share of the target period elapsed.

    milestone_actuals, when given, holds the cumulative emissions at each
    milestone date (same order as milestone_dates); otherwise the current
    emissions are used for every reached milestone.
    """
    consumed = safe_ratio(current_emissions, target_value)
    elapsed = elapsed_fraction(start_date, end_date, as_of)
    percentage = round2(consumed * 100)
    status = classify_status(consumed, elapsed, as_of >= end_date, at_risk_margin)

    milestones: List[Milestone] = []
    for i, (label, frac, when) in enumerate(milestone_dates(start_date, end_date, period)):
        expected = round2(target_value * frac)
        achieved = as_of >= when
        if achieved:
            actual = (
                milestone_actuals[i]
                if milestone_actuals is not None and i < len(milestone_actuals)
                else current_emissions
            )
            on_track = actual <= expected
        else:
            actual = current_emissions
            on_track = percentage <= frac * 100
        milestones.append(
            Milestone(
                label=label,
                date=when,
                expected_value=expected,
                actual_value=round2(actual),
                achieved=achieved,
                on_track=on_track,
            )
        )

    return TargetProgress(
        target_value=target_value,
        current_value=round2(current_emissions),
        percentage=percentage,
        remaining=round2(target_value - current_emissions),
        elapsed_fraction=round2(elapsed),
        consumed_fraction=round2(consumed),
        status=status,
        milestones=milestones,
    )
