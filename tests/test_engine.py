"""Tests for the assignment engine."""

import time
from collections import Counter
from datetime import timedelta

import pytest

from rotaguard.domain.models import (
    ConfigurationError,
    Employee,
    GenerationOptions,
    HierarchyLevel,
    RosterSnapshot,
    ShiftAssignment,
    ShiftType,
    StaffingRequirement,
)
from rotaguard.domain.timeline import EmployeeTimeline
from rotaguard.scheduling.engine import (
    AssignmentEngine,
    EngineConfig,
    PlacementCandidate,
    SolverType,
    build_priority_scorer,
    create_engine,
    generate_assignments,
)
from rotaguard.validation.validator import ScheduleValidator


def _day_only(level: int, **kwargs) -> HierarchyLevel:
    return HierarchyLevel(
        level=level,
        day_shift=StaffingRequirement(min_required=1, preferred=1, max_allowed=1),
        priority_order=level,
        **kwargs,
    )


class TestPriorityScorer:
    """Tests for the placement priority score."""

    def _candidate(self, **kwargs) -> PlacementCandidate:
        defaults = dict(
            employee=Employee(id="E1", fatigue_score=5.0),
            shift_type=ShiftType.EVENING,
            day_index=0,
            consecutive_days=0,
            relative_load=1.0,
        )
        defaults.update(kwargs)
        return PlacementCandidate(**defaults)

    def test_preferred_shift_bonus(self):
        scorer = build_priority_scorer()
        # Default pattern starts D, E, N, O
        preferred = self._candidate(shift_type=ShiftType.DAY)
        neutral = self._candidate(shift_type=ShiftType.EVENING)
        wants_off = self._candidate(shift_type=ShiftType.DAY, day_index=3)

        assert scorer.score(preferred).total == 155.0
        assert scorer.score(neutral).total == 115.0
        assert scorer.score(wants_off).total == 85.0

    def test_preferences_can_be_ignored(self):
        scorer = build_priority_scorer(prioritize_preferences=False)
        assert scorer.score(self._candidate(shift_type=ShiftType.DAY)).total == 115.0

    def test_fatigue_streak_and_load_terms(self):
        scorer = build_priority_scorer()
        tired = self._candidate(employee=Employee(id="E1", fatigue_score=9.0))
        long_streak = self._candidate(consecutive_days=5)
        underused = self._candidate(relative_load=0.5)
        overused = self._candidate(relative_load=1.5)

        assert scorer.score(tired).total == 75.0
        assert scorer.score(long_streak).total == 75.0
        assert scorer.score(underused).total == 125.0
        assert scorer.score(overused).total == 100.0

    def test_negative_scores_stay_ordered(self):
        scorer = build_priority_scorer(preference_weight=10.0)
        worst = self._candidate(
            employee=Employee(id="E1", fatigue_score=9.0),
            shift_type=ShiftType.DAY,
            day_index=3,
            consecutive_days=6,
            relative_load=2.0,
        )
        less_bad = self._candidate(
            employee=Employee(id="E2", fatigue_score=9.0),
            shift_type=ShiftType.DAY,
            day_index=3,
            consecutive_days=6,
            relative_load=1.0,
        )

        # 100 - 300 - 25 - 40 - 15
        assert scorer.score(worst).total == -280.0
        assert scorer.score(less_bad).total == -265.0
        ranked = scorer.rank([worst, less_bad])
        assert [c.employee.id for c, _ in ranked] == ["E2", "E1"]


class TestAssignmentEngine:
    """Tests for heuristic roster generation."""

    @pytest.fixture
    def engine(self):
        return AssignmentEngine()

    def test_week_is_fully_staffed(self, engine, ward_snapshot, monday):
        result = engine.generate(ward_snapshot, monday, 7)

        assert len(result.assignments) == 8 * 7
        assert len(result.working_assignments) == 42
        assert result.warnings == []
        assert result.compliance_score == 100.0
        assert result.hierarchy_balance_score == 100.0
        assert not result.is_partial
        assert result.metadata["method"] == "heuristic"
        assert result.metadata["total_shifts"] == 42
        assert result.metadata["supervision_gaps"] == 0
        assert result.metadata["supervision_coverage"] == 100.0
        assert result.metadata["validation_errors"] == 0

    def test_one_assignment_per_employee_per_date(self, engine, ward_snapshot, monday):
        result = engine.generate(ward_snapshot, monday, 7)
        per_day = Counter((a.employee_id, a.date) for a in result.assignments)

        assert set(per_day.values()) == {1}
        assert len(per_day) == 8 * 7

    def test_level_counts_within_bounds(self, engine, ward_snapshot, monday):
        result = engine.generate(ward_snapshot, monday, 7)
        counts = Counter(
            (a.date, a.shift_type, a.hierarchy_level) for a in result.working_assignments
        )

        assert len(counts) == 7 * 3 * 2
        assert set(counts.values()) == {1}

    def test_roster_passes_validation(self, engine, ward_snapshot, monday):
        result = engine.generate(ward_snapshot, monday, 7)
        dates = [monday + timedelta(days=i) for i in range(7)]

        validation = ScheduleValidator().validate(result.assignments, ward_snapshot, dates)
        assert validation.is_valid, [str(e) for e in validation.errors]

    def test_supervisor_flag_follows_level(self, engine, ward_snapshot, monday):
        result = engine.generate(ward_snapshot, monday, 3)

        for a in result.assignments:
            assert a.is_supervisor == (a.hierarchy_level == 1)

    def test_deterministic(self, engine, ward_snapshot, monday):
        first = engine.generate(ward_snapshot, monday, 7)
        second = engine.generate(ward_snapshot, monday, 7)
        assert first.assignments == second.assignments

    def test_history_rest_is_respected(self, engine, monday):
        snapshot = RosterSnapshot(
            employees=(Employee(id="S1"),),
            levels=(_day_only(1),),
            history=(ShiftAssignment("S1", monday - timedelta(days=1), ShiftType.EVENING),),
        )
        result = engine.generate(snapshot, monday, 2)

        first_day = result.for_employee("S1")[0]
        assert first_day.shift_type == ShiftType.OFF
        assert result.metadata["hierarchy_violations"] == 1
        assert any("0/1 required" in w for w in result.warnings)
        assert result.for_employee("S1")[1].shift_type == ShiftType.DAY

    def test_shortfall_is_reported_not_raised(self, engine, monday):
        snapshot = RosterSnapshot(
            employees=(Employee(id="S1", is_available=False),),
            levels=(_day_only(1),),
        )
        result = engine.generate(snapshot, monday, 1)

        assert result.working_assignments == []
        assert result.compliance_score == 0.0
        assert len(result.warnings) == 1
        assert result.assignments[0].shift_type == ShiftType.OFF

    def test_fatigue_gate(self, engine, monday):
        snapshot = RosterSnapshot(
            employees=(Employee(id="S1", fatigue_score=9.0),),
            levels=(_day_only(1),),
        )
        blocked = engine.generate(snapshot, monday, 1)
        overridden = engine.generate(
            snapshot, monday, 1, GenerationOptions(allow_fatigue_override=True)
        )

        assert blocked.working_assignments == []
        assert len(overridden.working_assignments) == 1

    def test_preferred_count_capped_by_max(self, engine, monday):
        snapshot = RosterSnapshot(
            employees=tuple(Employee(id=f"S{i}") for i in range(5)),
            levels=(
                HierarchyLevel(
                    level=1,
                    day_shift=StaffingRequirement(min_required=1, preferred=3, max_allowed=3),
                ),
            ),
        )
        result = engine.generate(snapshot, monday, 1)

        assert len(result.on(monday, ShiftType.DAY)) == 3
        assert result.hierarchy_balance_score == 100.0

    def test_supervision_gap_warning(self, engine, monday):
        snapshot = RosterSnapshot(
            employees=(Employee(id="N1", hierarchy_level=2),),
            levels=(
                _day_only(1, can_supervise={2}),
                _day_only(2, requires_supervision=True),
            ),
        )
        result = engine.generate(snapshot, monday, 1)

        assert result.metadata["supervision_gaps"] == 1
        assert result.metadata["supervision_coverage"] == 0.0
        assert any("without a supervisor" in w for w in result.warnings)


class TestEmergencyMode:
    """Tests for emergency drafting."""

    @pytest.fixture
    def snapshot(self):
        return RosterSnapshot(
            employees=(
                Employee(id="S1", hierarchy_level=1),
                Employee(id="S2", hierarchy_level=1),
                Employee(id="N1", hierarchy_level=2, is_available=False),
            ),
            levels=(
                _day_only(1, can_supervise={2}),
                _day_only(2, requires_supervision=True),
            ),
        )

    def test_without_emergency_mode_level_is_short(self, snapshot, monday):
        result = AssignmentEngine().generate(snapshot, monday, 1)

        assert result.metadata["hierarchy_violations"] == 1
        assert result.metadata["emergency_drafts"] == 0

    def test_supervising_level_backfills(self, snapshot, monday):
        result = AssignmentEngine().generate(
            snapshot, monday, 1, GenerationOptions(emergency_mode=True)
        )

        assert result.metadata["hierarchy_violations"] == 0
        assert result.metadata["emergency_drafts"] == 1
        working = {a.employee_id for a in result.working_assignments}
        assert working == {"S1", "S2"}
        # Drafted employees keep their own level
        assert {a.hierarchy_level for a in result.working_assignments} == {1}

    def test_emergency_mode_lifts_fatigue_gate(self, monday):
        snapshot = RosterSnapshot(
            employees=(Employee(id="S1", fatigue_score=9.5),),
            levels=(_day_only(1),),
        )
        result = AssignmentEngine().generate(
            snapshot, monday, 1, GenerationOptions(emergency_mode=True)
        )
        assert len(result.working_assignments) == 1


class TestCancellation:
    """Tests for deadlines and caller cancellation."""

    def test_cancel_callback_stops_between_dates(self, ward_snapshot, monday):
        calls = []

        def should_cancel():
            calls.append(1)
            return len(calls) > 2

        result = AssignmentEngine().generate(
            ward_snapshot, monday, 7, GenerationOptions(should_cancel=should_cancel)
        )

        assert result.is_partial
        assert result.metadata["dates_processed"] == 2
        assert {a.date for a in result.assignments} == {monday, monday + timedelta(days=1)}
        assert any("cancelled" in w for w in result.warnings)

    def test_past_deadline_returns_empty_partial_result(self, ward_snapshot, monday):
        result = AssignmentEngine().generate(
            ward_snapshot, monday, 7, GenerationOptions(deadline=time.monotonic() - 1)
        )

        assert result.is_partial
        assert result.assignments == []
        assert any("deadline" in w for w in result.warnings)

    @pytest.mark.parametrize("solver_type", [SolverType.CPSAT, SolverType.HYBRID])
    def test_cpsat_past_deadline_returns_empty_partial_result(self, ward_snapshot, monday, solver_type):
        engine = AssignmentEngine(config=EngineConfig(solver_type=solver_type))
        result = engine.generate(
            ward_snapshot, monday, 7, GenerationOptions(deadline=time.monotonic() - 1)
        )

        assert result.is_partial
        assert result.assignments == []
        assert any("deadline" in w for w in result.warnings)

    def test_cpsat_cancel_callback_is_honoured(self, ward_snapshot, monday):
        engine = AssignmentEngine(config=EngineConfig(solver_type=SolverType.CPSAT))
        result = engine.generate(
            ward_snapshot, monday, 7, GenerationOptions(should_cancel=lambda: True)
        )

        assert result.is_partial
        assert result.assignments == []
        assert result.metadata["dates_processed"] == 0
        assert any("cancelled by caller" in w for w in result.warnings)

    def test_cpsat_with_time_left_is_complete(self, ward_snapshot, monday):
        engine = AssignmentEngine(config=EngineConfig(solver_type=SolverType.CPSAT))
        result = engine.generate(
            ward_snapshot, monday, 7, GenerationOptions(deadline=time.monotonic() + 60)
        )

        assert not result.is_partial
        assert len(result.assignments) == 8 * 7


class TestHardLimitsUnderPressure:
    """A lone night worker on a long horizon keeps hitting the hard limits."""

    @pytest.fixture
    def night_only(self):
        return RosterSnapshot(
            employees=(Employee(id="S1"),),
            levels=(
                HierarchyLevel(
                    level=1,
                    night_shift=StaffingRequirement(min_required=1, preferred=1, max_allowed=1),
                ),
            ),
        )

    @pytest.mark.parametrize("solver_type", [SolverType.HEURISTIC, SolverType.CPSAT])
    def test_night_run_and_weekly_hours_hold(self, night_only, monday, solver_type):
        engine = AssignmentEngine(config=EngineConfig(solver_type=solver_type))
        result = engine.generate(night_only, monday, 28)
        dates = [monday + timedelta(days=i) for i in range(28)]
        codes = "".join(a.shift_type.value[0].upper() for a in result.for_employee("S1"))

        assert len(codes) == 28
        assert max(len(run) for run in codes.split("O")) == 5
        assert "NNNNNN" not in codes

        timeline = EmployeeTimeline.from_assignments("S1", result.assignments)
        policy = engine.policy
        for end in dates:
            assert timeline.hours_in_week_ending(end, policy) <= policy.max_weekly_hours()

        validation = ScheduleValidator(policy).validate(result.assignments, night_only, dates)
        assert validation.is_valid, [str(e) for e in validation.errors]


class TestConfigurationErrors:
    """Tests for unrecoverable input."""

    def test_zero_horizon(self, ward_snapshot, monday):
        with pytest.raises(ConfigurationError):
            AssignmentEngine().generate(ward_snapshot, monday, 0)

    def test_empty_roster(self, ward_levels, monday):
        with pytest.raises(ConfigurationError):
            generate_assignments(RosterSnapshot(employees=(), levels=ward_levels), monday, 7)

    def test_no_levels(self, ward_employees, monday):
        with pytest.raises(ConfigurationError):
            generate_assignments(RosterSnapshot(employees=ward_employees, levels=()), monday, 7)


class TestCPSATEngine:
    """Tests for the CP-SAT backed engine."""

    def test_cpsat_week_is_valid_and_staffed(self, ward_snapshot, monday):
        engine = AssignmentEngine(config=EngineConfig(solver_type=SolverType.CPSAT))
        result = engine.generate(ward_snapshot, monday, 7)

        assert result.metadata["method"] == "cpsat"
        assert result.metadata["validation_errors"] == 0
        assert result.metadata["hierarchy_violations"] == 0
        assert len(result.assignments) == 8 * 7
        assert len(result.working_assignments) == 42

    def test_factory(self):
        engine = create_engine("Hybrid", time_limit=3.0, preference_weight=2.0)

        assert engine.config.solver_type == SolverType.HYBRID
        assert engine.config.solver_config.time_limit_seconds == 3.0
        assert engine.config.preference_weight == 2.0
