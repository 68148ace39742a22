"""Assignment engine for multi-day roster generation.

This module provides the AssignmentEngine that fills every date of a
planning horizon with day, evening and night shifts:
- Hierarchy levels are staffed in priority order, minimum first
- Hard working-time rules make employees ineligible
- A weighted priority score picks among the eligible
- Shortfalls and supervision gaps are reported, never raised
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Optional

from rotaguard.domain.models import (
    ConfigurationError,
    Employee,
    GenerationOptions,
    HierarchyLevel,
    RosterSnapshot,
    ScheduleGenerationResult,
    ShiftAssignment,
    ShiftType,
    date_range,
)
from rotaguard.domain.policies import DefaultWorkRulePolicy, WorkRulePolicy
from rotaguard.domain.timeline import EmployeeTimeline
from rotaguard.scheduling.cpsat_solver import RosterCPSATSolver, SolverConfig
from rotaguard.scheduling.scoring import Factor, WeightedScorer
from rotaguard.scheduling.workload import WorkloadModel, refresh_roster
from rotaguard.validation.validator import ScheduleValidator

logger = logging.getLogger(__name__)


class SolverType(Enum):
    """Type of solver to use."""

    HEURISTIC = "heuristic"  # Greedy, shift by shift
    CPSAT = "cpsat"  # OR-Tools CP-SAT over the whole horizon
    HYBRID = "hybrid"  # Try CP-SAT, fall back to heuristic


@dataclass
class EngineConfig:
    """Configuration for the assignment engine.

    Attributes:
        solver_type: Which solver to use.
        preference_weight: Multiplier on the preference-pattern term.
        fatigue_exclusion_threshold: Fatigue at or above this is ineligible
            unless overridden.
        validate_output: Run the finished roster through ScheduleValidator.
        solver_config: Configuration for the CP-SAT solver.
    """

    solver_type: SolverType = SolverType.HEURISTIC
    preference_weight: float = 1.0
    fatigue_exclusion_threshold: float = 8.0
    validate_output: bool = True
    solver_config: SolverConfig = field(default_factory=SolverConfig)


@dataclass
class EmployeeState:
    """Tracks an employee throughout the horizon for scheduling decisions.

    Attributes:
        employee: The employee (with refreshed fatigue/workload).
        timeline: History plus shifts placed so far in this run.
        shifts_assigned: Working shifts placed so far in this run.
    """

    employee: Employee
    timeline: EmployeeTimeline
    shifts_assigned: int = 0

    def add_shift(self, schedule_date: date, shift_type: ShiftType) -> None:
        """Record a shift being placed."""
        self.timeline.add(schedule_date, shift_type)
        self.shifts_assigned += 1


@dataclass(frozen=True)
class PlacementCandidate:
    """An eligible employee for one (date, shift), as seen by the scorer."""

    employee: Employee
    shift_type: ShiftType
    day_index: int
    consecutive_days: int
    relative_load: float


def preference_term(c: PlacementCandidate) -> float:
    preferred = c.employee.preferred_shift(c.day_index)
    if preferred is c.shift_type:
        return 40.0
    if preferred is ShiftType.OFF:
        return -30.0
    return 0.0


def fatigue_term(c: PlacementCandidate) -> float:
    fatigue = c.employee.fatigue_score
    if fatigue <= 3:
        return 30.0
    elif fatigue <= 6:
        return 15.0
    elif fatigue >= 8:
        return -25.0
    return 0.0


def consecutive_term(c: PlacementCandidate) -> float:
    if c.consecutive_days >= 5:
        return -40.0
    elif c.consecutive_days >= 3:
        return -20.0
    return 0.0


def workload_term(c: PlacementCandidate) -> float:
    if c.relative_load < 0.8:
        return 10.0
    elif c.relative_load > 1.2:
        return -15.0
    return 0.0


def build_priority_scorer(
    preference_weight: float = 1.0,
    prioritize_preferences: bool = True,
) -> WeightedScorer[PlacementCandidate]:
    """Priority scorer: base 100 plus preference, fatigue, streak and load terms.

    The score is unbounded below so very poor candidates still rank apart.
    """
    factors = []
    if prioritize_preferences:
        factors.append(Factor("preference", preference_weight, preference_term))
    factors.extend(
        [
            Factor("fatigue", 1.0, fatigue_term),
            Factor("consecutive", 1.0, consecutive_term),
            Factor("workload", 1.0, workload_term),
        ]
    )
    return WeightedScorer(factors=tuple(factors), base=100.0, lower=None)


class GenerationCancelled(Exception):
    """Raised internally when the deadline passes or the caller cancels."""


@dataclass
class _PassState:
    """Working state of one generation pass."""

    working: list[ShiftAssignment] = field(default_factory=list)
    fills: dict[tuple[date, ShiftType, int], int] = field(default_factory=dict)
    dates_processed: list[date] = field(default_factory=list)
    drafted: int = 0


class AssignmentEngine:
    """Generates rosters over a planning horizon.

    The engine is stateless between calls: every invocation builds its
    working state from the snapshot it is given and discards it after.

    Example:
        >>> engine = AssignmentEngine()
        >>> result = engine.generate(snapshot, date(2024, 1, 15), 7)
        >>> result.compliance_score
        100.0
    """

    def __init__(
        self,
        policy: Optional[WorkRulePolicy] = None,
        config: Optional[EngineConfig] = None,
        workload_model: Optional[WorkloadModel] = None,
    ):
        """Initialize the engine.

        Args:
            policy: Working-time rules.
            config: Engine configuration.
            workload_model: Coefficients for the fatigue/workload refresh.
        """
        self.policy = policy or DefaultWorkRulePolicy()
        self.config = config or EngineConfig()
        self.workload_model = workload_model or WorkloadModel()
        self.validator = ScheduleValidator(self.policy)
        self.cpsat_solver = RosterCPSATSolver(self.policy, self.config.solver_config)

    def generate(
        self,
        snapshot: RosterSnapshot,
        start_date: date,
        horizon_days: int,
        options: Optional[GenerationOptions] = None,
    ) -> ScheduleGenerationResult:
        """Generate a complete roster.

        Args:
            snapshot: Employees, hierarchy requirements and prior history.
            start_date: First date of the horizon.
            horizon_days: Number of dates to fill.
            options: Per-invocation switches.

        Returns:
            ScheduleGenerationResult with one assignment per employee per
            processed date.

        Raises:
            ConfigurationError: Empty roster, no levels or a horizon < 1.
        """
        options = options or GenerationOptions()
        if horizon_days < 1:
            raise ConfigurationError(f"Horizon must be at least 1 day, got {horizon_days}")
        snapshot.validate()

        if options.recompute_workload:
            snapshot = refresh_roster(snapshot, start_date, self.policy, self.workload_model)

        dates = date_range(start_date, horizon_days)
        logger.info(
            "Generating %d-day roster from %s for %d employees (%s)",
            horizon_days,
            start_date.isoformat(),
            len(snapshot.employees),
            self.config.solver_type.value,
        )

        metadata: dict = {"solver": self.config.solver_type.value}
        warnings: list[str] = []
        is_partial = False

        if self.config.solver_type == SolverType.HEURISTIC:
            state = _PassState()
            is_partial = self._run_heuristic(snapshot, dates, options, state, warnings)
            metadata["method"] = "heuristic"
        else:
            try:
                self._check_cancelled(options)
            except GenerationCancelled as exc:
                logger.warning("Generation stopped before CP-SAT solve: %s", exc)
                warnings.append(f"Generation cancelled before {start_date.isoformat()}: {exc}")
                metadata["method"] = "cpsat"
                return self._finalize(snapshot, start_date, _PassState(), warnings, metadata, True)

            state, stats = self._run_cpsat(snapshot, dates, options)
            metadata.update(stats)
            if state is None:
                logger.warning(
                    "CP-SAT returned %s, falling back to heuristic", stats["cpsat_status"]
                )
                state = _PassState()
                is_partial = self._run_heuristic(snapshot, dates, options, state, warnings)
                metadata["method"] = "heuristic"
                metadata["fallback"] = True

        return self._finalize(snapshot, start_date, state, warnings, metadata, is_partial)

    def _run_heuristic(
        self,
        snapshot: RosterSnapshot,
        dates: list[date],
        options: GenerationOptions,
        state: _PassState,
        warnings: list[str],
    ) -> bool:
        """Greedy pass over dates x shifts x levels. Returns True if cancelled."""
        states = self._init_states(snapshot)
        levels = snapshot.levels_by_priority()
        level_map = snapshot.level_map()
        scorer = build_priority_scorer(self.config.preference_weight, options.prioritize_preferences)
        start_date = dates[0]

        for schedule_date in dates:
            try:
                self._check_cancelled(options)
            except GenerationCancelled as exc:
                logger.warning("Generation stopped before %s: %s", schedule_date.isoformat(), exc)
                warnings.append(f"Generation cancelled before {schedule_date.isoformat()}: {exc}")
                return True

            day_index = (schedule_date - start_date).days
            assigned_today: set[str] = set()

            for shift_type in ShiftType.working():
                for level in levels:
                    requirement = level.requirement_for(shift_type)
                    if requirement.is_empty:
                        continue

                    pool = [s for s in states if s.employee.hierarchy_level == level.level]
                    chosen = self._fill_level(
                        pool, states, requirement.min_required, requirement.preferred,
                        requirement.max_allowed, schedule_date, shift_type, day_index,
                        assigned_today, options, scorer,
                    )

                    if options.emergency_mode and len(chosen) < requirement.min_required:
                        drafted = self._draft(
                            level, levels, states, requirement.min_required - len(chosen),
                            schedule_date, shift_type, day_index, assigned_today, options, scorer,
                        )
                        state.drafted += len(drafted)
                        chosen.extend(drafted)

                    for emp_state in chosen:
                        self._place(emp_state, schedule_date, shift_type, level_map, state)
                        assigned_today.add(emp_state.employee.id)
                    key = (schedule_date, shift_type, level.level)
                    state.fills[key] = state.fills.get(key, 0) + len(chosen)

            state.dates_processed.append(schedule_date)
            logger.debug(
                "%s: %d employees working", schedule_date.isoformat(), len(assigned_today)
            )

        return False

    def _fill_level(
        self,
        pool: list[EmployeeState],
        all_states: list[EmployeeState],
        min_required: int,
        preferred: int,
        max_allowed: int,
        schedule_date: date,
        shift_type: ShiftType,
        day_index: int,
        assigned_today: set[str],
        options: GenerationOptions,
        scorer: WeightedScorer[PlacementCandidate],
    ) -> list[EmployeeState]:
        """Rank the eligible part of a pool and take the top of the list."""
        eligible = [
            s for s in pool
            if self._is_eligible(s, schedule_date, shift_type, assigned_today, options)
        ]
        ranked = self._rank(eligible, all_states, schedule_date, shift_type, day_index, scorer)

        # Hard minimum first, then up to preferred, never above max_allowed
        chosen = ranked[:min_required]
        capacity = min(preferred, max_allowed)
        if len(chosen) < capacity:
            chosen.extend(ranked[len(chosen):capacity])
        return chosen

    def _draft(
        self,
        short_level: HierarchyLevel,
        levels: list[HierarchyLevel],
        states: list[EmployeeState],
        shortage: int,
        schedule_date: date,
        shift_type: ShiftType,
        day_index: int,
        assigned_today: set[str],
        options: GenerationOptions,
        scorer: WeightedScorer[PlacementCandidate],
    ) -> list[EmployeeState]:
        """Back-fill a shortfall from levels that can supervise the short level."""
        donors = {lv.level for lv in levels if short_level.level in lv.can_supervise}
        if not donors:
            return []
        pool = [s for s in states if s.employee.hierarchy_level in donors]
        eligible = [
            s for s in pool
            if self._is_eligible(s, schedule_date, shift_type, assigned_today, options)
        ]
        drafted = self._rank(eligible, states, schedule_date, shift_type, day_index, scorer)[:shortage]
        for s in drafted:
            logger.info(
                "Emergency draft: %s (level %d) covers %s %s for %s",
                s.employee.id,
                s.employee.hierarchy_level,
                schedule_date.isoformat(),
                shift_type.value,
                short_level.role_name,
            )
        return drafted

    def _is_eligible(
        self,
        emp_state: EmployeeState,
        schedule_date: date,
        shift_type: ShiftType,
        assigned_today: set[str],
        options: GenerationOptions,
    ) -> bool:
        employee = emp_state.employee
        if not employee.is_available or employee.id in assigned_today:
            return False
        if not self._passes_fatigue_gate(employee, options):
            return False
        violation = emp_state.timeline.violation_for(schedule_date, shift_type, self.policy)
        if violation is not None:
            logger.debug(
                "%s ineligible for %s %s: %s",
                employee.id,
                schedule_date.isoformat(),
                shift_type.value,
                violation.value,
            )
            return False
        return True

    def _passes_fatigue_gate(self, employee: Employee, options: GenerationOptions) -> bool:
        if options.allow_fatigue_override or options.emergency_mode:
            return True
        return employee.fatigue_score < self.config.fatigue_exclusion_threshold

    def _rank(
        self,
        eligible: list[EmployeeState],
        all_states: list[EmployeeState],
        schedule_date: date,
        shift_type: ShiftType,
        day_index: int,
        scorer: WeightedScorer[PlacementCandidate],
    ) -> list[EmployeeState]:
        """Eligible employees best first; encounter order breaks ties."""
        active = [s for s in all_states if s.employee.is_available]
        mean_assigned = (
            sum(s.shifts_assigned for s in active) / len(active) if active else 0.0
        )
        candidates = [
            (
                s,
                PlacementCandidate(
                    employee=s.employee,
                    shift_type=shift_type,
                    day_index=day_index,
                    consecutive_days=s.timeline.consecutive_working_days(schedule_date),
                    relative_load=(
                        s.shifts_assigned / mean_assigned
                        if mean_assigned > 0
                        else s.employee.current_workload
                    ),
                ),
            )
            for s in eligible
        ]
        ranked = scorer.rank([c for _, c in candidates])
        by_candidate = {id(c): s for s, c in candidates}
        return [by_candidate[id(c)] for c, _ in ranked]

    def _place(
        self,
        emp_state: EmployeeState,
        schedule_date: date,
        shift_type: ShiftType,
        level_map: dict[int, HierarchyLevel],
        state: _PassState,
    ) -> None:
        employee = emp_state.employee
        level = level_map.get(employee.hierarchy_level)
        emp_state.add_shift(schedule_date, shift_type)
        state.working.append(
            ShiftAssignment(
                employee_id=employee.id,
                date=schedule_date,
                shift_type=shift_type,
                hierarchy_level=employee.hierarchy_level,
                is_supervisor=level is not None and level.is_supervisor_level,
            )
        )

    def _run_cpsat(
        self,
        snapshot: RosterSnapshot,
        dates: list[date],
        options: GenerationOptions,
    ) -> tuple[Optional[_PassState], dict]:
        """Solve with CP-SAT; returns (None, stats) when no solution was found."""
        scorer = build_priority_scorer(self.config.preference_weight, options.prioritize_preferences)
        timelines = {
            e.id: EmployeeTimeline.from_assignments(e.id, snapshot.history)
            for e in snapshot.employees
        }

        def is_eligible(employee: Employee) -> bool:
            return employee.is_available and self._passes_fatigue_gate(employee, options)

        def priority(employee: Employee, schedule_date: date, shift_type: ShiftType) -> float:
            # Static score: streak and load as of the horizon start
            candidate = PlacementCandidate(
                employee=employee,
                shift_type=shift_type,
                day_index=(schedule_date - dates[0]).days,
                consecutive_days=timelines[employee.id].consecutive_working_days(dates[0]),
                relative_load=employee.current_workload,
            )
            return scorer.score(candidate).total

        time_limit = None
        if options.deadline is not None:
            # The heuristic fallback polls the deadline again if CP-SAT runs out
            time_limit = max(0.0, options.deadline - time.monotonic())
        result = self.cpsat_solver.solve(snapshot, dates, is_eligible, priority, time_limit)
        stats = {
            "cpsat_status": result.status,
            "cpsat_objective": result.objective_value,
            "cpsat_time": result.solve_time_seconds,
        }
        if not result.is_feasible:
            return None, stats

        state = _PassState(dates_processed=list(dates))
        states = {s.employee.id: s for s in self._init_states(snapshot)}
        level_map = snapshot.level_map()
        for emp_id, schedule_date, shift_type in result.placements:
            emp_state = states[emp_id]
            self._place(emp_state, schedule_date, shift_type, level_map, state)
            key = (schedule_date, shift_type, emp_state.employee.hierarchy_level)
            state.fills[key] = state.fills.get(key, 0) + 1
        stats["method"] = "cpsat"
        return state, stats

    def _init_states(self, snapshot: RosterSnapshot) -> list[EmployeeState]:
        """Per-employee working state, in roster order."""
        return [
            EmployeeState(
                employee=e,
                timeline=EmployeeTimeline.from_assignments(e.id, snapshot.history),
            )
            for e in snapshot.employees
        ]

    def _check_cancelled(self, options: GenerationOptions) -> None:
        if options.should_cancel is not None and options.should_cancel():
            raise GenerationCancelled("cancelled by caller")
        if options.deadline is not None and time.monotonic() >= options.deadline:
            raise GenerationCancelled("deadline exceeded")

    def _finalize(
        self,
        snapshot: RosterSnapshot,
        start_date: date,
        state: _PassState,
        warnings: list[str],
        metadata: dict,
        is_partial: bool,
    ) -> ScheduleGenerationResult:
        """Off-fill, coverage audit, scores, metadata and self-check."""
        dates = state.dates_processed
        coverage_warnings, violations, gaps, balance, supervision_coverage = self._audit_coverage(
            snapshot, dates, state
        )

        assignments = list(state.working)
        working_days = {(a.employee_id, a.date) for a in state.working}
        level_map = snapshot.level_map()
        for d in dates:
            for employee in snapshot.employees:
                if (employee.id, d) not in working_days:
                    level = level_map.get(employee.hierarchy_level)
                    assignments.append(
                        ShiftAssignment(
                            employee_id=employee.id,
                            date=d,
                            shift_type=ShiftType.OFF,
                            hierarchy_level=employee.hierarchy_level,
                            is_supervisor=level is not None and level.is_supervisor_level,
                        )
                    )
        assignments.sort(key=lambda a: a.date)

        total_shifts = len(state.working)
        if total_shifts > 0:
            compliance = max(0.0, 1.0 - len(coverage_warnings) / total_shifts) * 100
        else:
            compliance = 0.0

        employees = snapshot.employees_map()
        preferred_hits = sum(
            1
            for a in state.working
            if employees[a.employee_id].preferred_shift((a.date - start_date).days) is a.shift_type
        )

        metadata.update(
            {
                "total_employees": len(snapshot.employees),
                "total_shifts": total_shifts,
                "hierarchy_violations": violations,
                "supervision_gaps": gaps,
                "supervision_coverage": round(supervision_coverage, 1),
                "preference_satisfaction": (
                    round(preferred_hits / total_shifts * 100, 1) if total_shifts else 0.0
                ),
                "emergency_drafts": state.drafted,
                "dates_processed": len(dates),
            }
        )

        if self.config.validate_output:
            validation = self.validator.validate(assignments, snapshot, dates)
            self.validator.validate_staffing(assignments, snapshot, validation)
            for error in validation.errors:
                logger.error("Roster failed validation: %s", error)
            for warning in validation.warnings:
                logger.warning(warning)
            metadata["validation_errors"] = len(validation.errors)

        result = ScheduleGenerationResult(
            assignments=assignments,
            compliance_score=compliance,
            hierarchy_balance_score=balance,
            warnings=coverage_warnings + warnings,
            metadata=metadata,
            is_partial=is_partial,
        )
        logger.info(
            "Roster done: %d shifts, compliance %.1f, balance %.1f, %d warnings%s",
            total_shifts,
            result.compliance_score,
            result.hierarchy_balance_score,
            len(result.warnings),
            " (partial)" if is_partial else "",
        )
        return result

    def _audit_coverage(
        self,
        snapshot: RosterSnapshot,
        dates: list[date],
        state: _PassState,
    ) -> tuple[list[str], int, int, float, float]:
        """Shortfall and supervision warnings plus balance and supervision coverage.

        Returns:
            (warnings, hierarchy_violations, supervision_gaps,
             hierarchy_balance_score, supervision_coverage_percent)
        """
        supervised = {(a.date, a.shift_type) for a in state.working if a.is_supervisor}
        warnings = []
        violations = 0
        gaps = 0
        ratios = []
        needs_supervision = 0
        covered_slots = 0
        levels = snapshot.levels_by_priority()

        for d in dates:
            for shift_type in ShiftType.working():
                slot_ratios = []
                staffed_needing_supervision = False
                for level in levels:
                    requirement = level.requirement_for(shift_type)
                    if requirement.is_empty:
                        continue
                    count = state.fills.get((d, shift_type, level.level), 0)

                    if count < requirement.min_required:
                        violations += 1
                        warnings.append(
                            f"{d.isoformat()} {shift_type.value}: {level.role_name} "
                            f"has {count}/{requirement.min_required} required staff"
                        )
                        logger.warning(warnings[-1])

                    if level.requires_supervision and count > 0:
                        staffed_needing_supervision = True
                        if (d, shift_type) not in supervised:
                            gaps += 1
                            warnings.append(
                                f"{d.isoformat()} {shift_type.value}: {level.role_name} "
                                f"on shift without a supervisor"
                            )
                            logger.warning(warnings[-1])

                    if requirement.preferred > 0:
                        slot_ratios.append(min(1.0, count / requirement.preferred))

                if staffed_needing_supervision:
                    needs_supervision += 1
                    if (d, shift_type) in supervised:
                        covered_slots += 1
                if slot_ratios:
                    ratios.append(sum(slot_ratios) / len(slot_ratios))

        balance = (sum(ratios) / len(ratios) * 100) if ratios else 100.0
        supervision_coverage = (
            covered_slots / needs_supervision * 100 if needs_supervision else 100.0
        )
        return warnings, violations, gaps, balance, supervision_coverage


def generate_assignments(
    snapshot: RosterSnapshot,
    start_date: date,
    horizon_days: int,
    options: Optional[GenerationOptions] = None,
    config: Optional[EngineConfig] = None,
    policy: Optional[WorkRulePolicy] = None,
) -> ScheduleGenerationResult:
    """Generate a roster in one call with a throwaway engine."""
    return AssignmentEngine(policy=policy, config=config).generate(
        snapshot, start_date, horizon_days, options
    )


def create_engine(
    solver_type: str = "heuristic",
    time_limit: float = 10.0,
    preference_weight: float = 1.0,
) -> AssignmentEngine:
    """Factory function to create an assignment engine.

    Args:
        solver_type: "heuristic", "cpsat", or "hybrid".
        time_limit: CP-SAT solver time limit in seconds.
        preference_weight: Multiplier on the preference-pattern term.

    Returns:
        Configured AssignmentEngine.
    """
    solver_type_enum = SolverType(solver_type.lower())
    config = EngineConfig(
        solver_type=solver_type_enum,
        preference_weight=preference_weight,
        solver_config=SolverConfig(time_limit_seconds=time_limit),
    )
    return AssignmentEngine(config=config)
