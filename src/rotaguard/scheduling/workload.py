"""Fatigue and workload estimation from recent shift history.

Fatigue and workload are recomputed before every generation pass as a
deterministic function of what the employee actually worked: hours,
night density, short rest gaps and the current working streak.
"""

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Optional

from rotaguard.domain.models import Employee, RosterSnapshot, ShiftType, clamp
from rotaguard.domain.policies import DefaultWorkRulePolicy, WorkRulePolicy
from rotaguard.domain.timeline import EmployeeTimeline

logger = logging.getLogger(__name__)


@dataclass
class WorkloadModel:
    """Coefficients for the fatigue and workload estimates.

    Attributes:
        fatigue_lookback_days: Days of history feeding the fatigue score.
        workload_lookback_days: Days of history feeding the workload ratio.
        per_shift: Fatigue added per worked shift.
        per_night: Extra fatigue per night shift.
        per_short_rest: Extra fatigue per quick return.
        short_rest_hours: Rest gaps below this count as quick returns.
        per_streak_day: Extra fatigue per working day beyond streak_threshold.
        streak_threshold: Streak length that starts adding fatigue.
        contract_weekly_hours: Hours that correspond to a workload of 1.0.
    """

    fatigue_lookback_days: int = 14
    workload_lookback_days: int = 28
    per_shift: float = 0.4
    per_night: float = 0.3
    per_short_rest: float = 0.5
    short_rest_hours: float = 16.0
    per_streak_day: float = 0.5
    streak_threshold: int = 3
    contract_weekly_hours: float = 40.0

    def estimate_fatigue(
        self,
        timeline: EmployeeTimeline,
        as_of: date,
        policy: WorkRulePolicy,
    ) -> float:
        """Fatigue on a 0-10 scale from the lookback window before as_of."""
        first = as_of - timedelta(days=self.fatigue_lookback_days)
        last = as_of - timedelta(days=1)

        shifts = [
            s for d, s in timeline.shifts.items() if first <= d <= last and s.is_working
        ]
        nights = sum(1 for s in shifts if s is ShiftType.NIGHT)
        short_rests = sum(
            1
            for start, _, gap in timeline.rest_gaps(policy)
            if first <= start <= last and gap < self.short_rest_hours
        )
        streak = timeline.consecutive_working_days(as_of)

        fatigue = (
            len(shifts) * self.per_shift
            + nights * self.per_night
            + short_rests * self.per_short_rest
            + max(0, streak - self.streak_threshold) * self.per_streak_day
        )
        return clamp(fatigue, 0.0, 10.0)

    def estimate_workload(
        self,
        timeline: EmployeeTimeline,
        as_of: date,
        policy: WorkRulePolicy,
    ) -> float:
        """Hours worked in the lookback window relative to contract hours."""
        first = as_of - timedelta(days=self.workload_lookback_days)
        hours = timeline.hours_between(first, as_of - timedelta(days=1), policy)
        expected = self.contract_weekly_hours * self.workload_lookback_days / 7.0
        if expected <= 0:
            return 1.0
        return clamp(hours / expected, 0.0, 2.0)


def refresh_employee(
    employee: Employee,
    timeline: EmployeeTimeline,
    as_of: date,
    policy: Optional[WorkRulePolicy] = None,
    model: Optional[WorkloadModel] = None,
) -> Employee:
    """Employee copy with fatigue and workload recomputed from a timeline."""
    policy = policy or DefaultWorkRulePolicy()
    model = model or WorkloadModel()
    return employee.with_workload(
        fatigue_score=model.estimate_fatigue(timeline, as_of, policy),
        current_workload=model.estimate_workload(timeline, as_of, policy),
    )


def refresh_roster(
    snapshot: RosterSnapshot,
    as_of: date,
    policy: Optional[WorkRulePolicy] = None,
    model: Optional[WorkloadModel] = None,
) -> RosterSnapshot:
    """New snapshot whose employees carry fatigue/workload from history.

    Employees without any history keep the values they were supplied with.
    The input snapshot is left untouched.
    """
    if not snapshot.history:
        return snapshot

    history_ids = {a.employee_id for a in snapshot.history}
    employees = []
    for employee in snapshot.employees:
        if employee.id not in history_ids:
            employees.append(employee)
            continue
        timeline = EmployeeTimeline.from_assignments(employee.id, snapshot.history)
        refreshed = refresh_employee(employee, timeline, as_of, policy, model)
        logger.debug(
            "Refreshed %s: fatigue %.1f -> %.1f, workload %.2f -> %.2f",
            employee.id,
            employee.fatigue_score,
            refreshed.fatigue_score,
            employee.current_workload,
            refreshed.current_workload,
        )
        employees.append(refreshed)

    return RosterSnapshot(
        employees=tuple(employees),
        levels=snapshot.levels,
        history=snapshot.history,
    )
