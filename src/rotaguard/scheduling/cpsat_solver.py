"""OR-Tools CP-SAT solver for roster generation.

This module formulates the whole horizon as one constraint model: the
same hard working-time rules the greedy engine enforces become model
constraints, head counts per hierarchy level are bounded by the
preferred staffing level, and shortfalls against the minimum are
penalized in the objective instead of making the model infeasible.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Callable, Optional

from ortools.sat.python import cp_model

from rotaguard.domain.models import Employee, RosterSnapshot, ShiftType
from rotaguard.domain.policies import DefaultWorkRulePolicy, WorkRulePolicy
from rotaguard.domain.timeline import EmployeeTimeline

logger = logging.getLogger(__name__)


@dataclass
class SolverConfig:
    """Configuration for the CP-SAT solver.

    Attributes:
        time_limit_seconds: Maximum solver runtime.
        num_workers: Number of parallel workers (0 = auto).
        undercoverage_penalty: Objective penalty per missing head below minimum.
        score_scale: Multiplier turning float priority scores into integers.
    """

    time_limit_seconds: float = 10.0
    num_workers: int = 0
    undercoverage_penalty: int = 1000
    score_scale: int = 1


@dataclass
class SolverResult:
    """Result from the CP-SAT solver.

    Attributes:
        placements: (employee_id, date, shift_type) triples, in processing order.
        status: Solver status (OPTIMAL, FEASIBLE, etc.).
        objective_value: Final objective value.
        solve_time_seconds: Time taken to solve.
    """

    placements: list[tuple[str, date, ShiftType]] = field(default_factory=list)
    status: str = "UNKNOWN"
    objective_value: int = 0
    solve_time_seconds: float = 0.0

    @property
    def is_optimal(self) -> bool:
        return self.status == "OPTIMAL"

    @property
    def is_feasible(self) -> bool:
        return self.status in ("OPTIMAL", "FEASIBLE")


class RosterCPSATSolver:
    """Constraint Programming roster solver using OR-Tools CP-SAT.

    Example:
        >>> solver = RosterCPSATSolver()
        >>> result = solver.solve(snapshot, dates, is_eligible, priority)
        >>> if result.is_feasible:
        ...     placements = result.placements
    """

    def __init__(
        self,
        policy: Optional[WorkRulePolicy] = None,
        config: Optional[SolverConfig] = None,
    ):
        self.policy = policy or DefaultWorkRulePolicy()
        self.config = config or SolverConfig()

    def solve(
        self,
        snapshot: RosterSnapshot,
        dates: list[date],
        is_eligible: Callable[[Employee], bool],
        priority: Callable[[Employee, date, ShiftType], float],
        time_limit_seconds: Optional[float] = None,
    ) -> SolverResult:
        """Solve the horizon as a single model.

        Args:
            snapshot: Roster with employees, levels and prior history.
            dates: Horizon dates in order.
            is_eligible: Static per-employee gate (availability, fatigue).
            priority: Static priority of placing an employee on a shift.
            time_limit_seconds: Tighter runtime cap for this call; the
                configured limit still applies when it is smaller.

        Returns:
            SolverResult with placements and solver statistics.
        """
        model = cp_model.CpModel()
        policy = self.policy
        level_map = snapshot.level_map()
        shift_types = ShiftType.working()
        timelines = {
            e.id: EmployeeTimeline.from_assignments(e.id, snapshot.history)
            for e in snapshot.employees
        }

        # Decision variables: x[(employee, day index, shift)] = 1 if placed
        x: dict[tuple[str, int, ShiftType], cp_model.IntVar] = {}
        for employee in snapshot.employees:
            level = level_map.get(employee.hierarchy_level)
            if level is None or not is_eligible(employee):
                continue
            timeline = timelines[employee.id]
            for d_idx, d in enumerate(dates):
                for shift in shift_types:
                    if level.requirement_for(shift).is_empty:
                        continue
                    # Placements already illegal against history are never created
                    if timeline.violation_for(d, shift, policy) is not None:
                        continue
                    x[(employee.id, d_idx, shift)] = model.NewBoolVar(
                        f"x_{employee.id}_{d_idx}_{shift.value}"
                    )

        employee_ids = [e.id for e in snapshot.employees]

        # Constraint 1: at most one shift per employee per date
        for emp_id in employee_ids:
            for d_idx in range(len(dates)):
                day_vars = [x[k] for k in ((emp_id, d_idx, s) for s in shift_types) if k in x]
                if len(day_vars) > 1:
                    model.AddAtMostOne(day_vars)

        # Constraint 2: minimum rest between shifts on nearby dates
        for emp_id in employee_ids:
            for d_idx, d in enumerate(dates):
                for gap_days in (1, 2):
                    if d_idx + gap_days >= len(dates):
                        continue
                    later = dates[d_idx + gap_days]
                    for first in shift_types:
                        for second in shift_types:
                            a = x.get((emp_id, d_idx, first))
                            b = x.get((emp_id, d_idx + gap_days, second))
                            if a is None or b is None:
                                continue
                            if not policy.has_minimum_rest(d, first, later, second):
                                model.Add(a + b <= 1)

        max_nights = policy.max_consecutive_nights()
        max_hours = int(round(policy.max_weekly_hours() * 4))
        for emp_id in employee_ids:
            timeline = timelines[emp_id]

            # Constraint 3: no run of more than max_nights nights, history included
            for end_idx in range(len(dates)):
                window_start = dates[end_idx] - timedelta(days=max_nights)
                terms = []
                fixed = 0
                for offset in range(max_nights + 1):
                    d = window_start + timedelta(days=offset)
                    if d < dates[0]:
                        fixed += 1 if timeline.shift_on(d) is ShiftType.NIGHT else 0
                    else:
                        var = x.get((emp_id, (d - dates[0]).days, ShiftType.NIGHT))
                        if var is not None:
                            terms.append(var)
                if terms and fixed + len(terms) > max_nights:
                    model.Add(sum(terms) + fixed <= max_nights)

            # Constraint 4: rolling 7-day hours, in quarter hours
            for end_idx in range(len(dates)):
                window_end = dates[end_idx]
                window_start = window_end - timedelta(days=6)
                fixed = int(round(
                    timeline.hours_between(
                        window_start, min(window_end, dates[0] - timedelta(days=1)), policy
                    ) * 4
                ))
                terms = []
                for offset in range(7):
                    d = window_start + timedelta(days=offset)
                    if d < dates[0]:
                        continue
                    for shift in shift_types:
                        var = x.get((emp_id, (d - dates[0]).days, shift))
                        if var is not None:
                            terms.append(var * int(round(policy.shift_hours(shift) * 4)))
                if terms:
                    model.Add(sum(terms) + fixed <= max_hours)

        # Staffing per (date, shift, level): cap at preferred, penalize shortfall
        objective_terms = []
        by_level: dict[int, list[Employee]] = {}
        for employee in snapshot.employees:
            by_level.setdefault(employee.hierarchy_level, []).append(employee)

        for d_idx, d in enumerate(dates):
            for shift in shift_types:
                for level in snapshot.levels_by_priority():
                    requirement = level.requirement_for(shift)
                    if requirement.is_empty:
                        continue
                    level_vars = [
                        x[k]
                        for k in (
                            (e.id, d_idx, shift) for e in by_level.get(level.level, [])
                        )
                        if k in x
                    ]
                    cap = min(requirement.preferred, requirement.max_allowed)
                    if level_vars:
                        model.Add(sum(level_vars) <= cap)
                    if requirement.min_required > 0:
                        under = model.NewIntVar(
                            0, requirement.min_required, f"under_{d_idx}_{shift.value}_{level.level}"
                        )
                        model.Add(sum(level_vars) + under >= requirement.min_required)
                        objective_terms.append(-under * self.config.undercoverage_penalty)

        employees_map = snapshot.employees_map()
        for (emp_id, d_idx, shift), var in x.items():
            weight = int(round(priority(employees_map[emp_id], dates[d_idx], shift) * self.config.score_scale))
            # Every placement must be worth something or the solver leaves slots empty
            objective_terms.append(var * max(1, weight))

        model.Maximize(sum(objective_terms))

        solver = cp_model.CpSolver()
        limit = self.config.time_limit_seconds
        if time_limit_seconds is not None:
            limit = min(limit, time_limit_seconds)
        solver.parameters.max_time_in_seconds = limit
        if self.config.num_workers > 0:
            solver.parameters.num_workers = self.config.num_workers

        status = solver.Solve(model)

        status_map = {
            cp_model.OPTIMAL: "OPTIMAL",
            cp_model.FEASIBLE: "FEASIBLE",
            cp_model.INFEASIBLE: "INFEASIBLE",
            cp_model.MODEL_INVALID: "MODEL_INVALID",
            cp_model.UNKNOWN: "UNKNOWN",
        }
        status_str = status_map.get(status, "UNKNOWN")
        logger.info(
            "CP-SAT finished with %s in %.2fs (%d variables)",
            status_str,
            solver.WallTime(),
            len(x),
        )

        if status not in (cp_model.OPTIMAL, cp_model.FEASIBLE):
            return SolverResult(status=status_str, solve_time_seconds=solver.WallTime())

        return SolverResult(
            placements=self._extract_solution(solver, x, snapshot, dates),
            status=status_str,
            objective_value=int(solver.ObjectiveValue()),
            solve_time_seconds=solver.WallTime(),
        )

    def _extract_solution(
        self,
        solver: cp_model.CpSolver,
        x: dict[tuple[str, int, ShiftType], cp_model.IntVar],
        snapshot: RosterSnapshot,
        dates: list[date],
    ) -> list[tuple[str, date, ShiftType]]:
        """Selected placements ordered by date, shift, level priority, roster order."""
        priority_rank = {
            lv.level: rank for rank, lv in enumerate(snapshot.levels_by_priority())
        }
        placements = []
        for d_idx, d in enumerate(dates):
            for shift in ShiftType.working():
                chosen = [
                    e
                    for e in snapshot.employees
                    if (e.id, d_idx, shift) in x and solver.Value(x[(e.id, d_idx, shift)]) == 1
                ]
                chosen.sort(key=lambda e: priority_rank.get(e.hierarchy_level, len(priority_rank)))
                placements.extend((e.id, d, shift) for e in chosen)
        return placements
