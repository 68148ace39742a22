"""Tests for domain models."""

from datetime import date

import pytest

from rotaguard.domain.models import (
    ConfigurationError,
    Employee,
    FairnessGrade,
    HierarchyLevel,
    RiskLevel,
    RosterSnapshot,
    ScheduleGenerationResult,
    Severity,
    ShiftAssignment,
    ShiftRecord,
    ShiftType,
    StaffingRequirement,
    date_range,
)


class TestShiftType:
    """Tests for the shift vocabulary."""

    def test_parse_accepts_strings_and_members(self):
        assert ShiftType.parse("Night ") == ShiftType.NIGHT
        assert ShiftType.parse(ShiftType.DAY) == ShiftType.DAY

    def test_parse_rejects_unknown(self):
        with pytest.raises(ValueError, match="Unknown shift type"):
            ShiftType.parse("graveyard")

    def test_working_order(self):
        assert ShiftType.working() == (ShiftType.DAY, ShiftType.EVENING, ShiftType.NIGHT)
        assert not ShiftType.OFF.is_working

    def test_codes(self):
        assert [s.code for s in ShiftType] == ["D", "E", "N", "O"]


class TestEnums:
    """Tests for severity, risk and grade enums."""

    @pytest.mark.parametrize(
        "score,expected",
        [
            (0, RiskLevel.LOW),
            (39.9, RiskLevel.LOW),
            (40, RiskLevel.MEDIUM),
            (60, RiskLevel.HIGH),
            (79.9, RiskLevel.HIGH),
            (80, RiskLevel.CRITICAL),
            (100, RiskLevel.CRITICAL),
        ],
    )
    def test_risk_level_buckets(self, score, expected):
        assert RiskLevel.from_score(score) == expected

    def test_severity_ordering(self):
        ranks = [s.rank for s in (Severity.LOW, Severity.MEDIUM, Severity.HIGH, Severity.CRITICAL)]
        assert ranks == sorted(ranks)
        assert Severity.parse("HIGH") == Severity.HIGH

    def test_fairness_grades(self):
        assert FairnessGrade.from_score(95) == FairnessGrade.EXCELLENT
        assert FairnessGrade.from_score(85) == FairnessGrade.GOOD
        assert FairnessGrade.from_score(65) == FairnessGrade.FAIR
        assert FairnessGrade.from_score(45) == FairnessGrade.POOR
        assert FairnessGrade.from_score(10) == FairnessGrade.UNACCEPTABLE


class TestEmployee:
    """Tests for Employee model."""

    def test_values_are_clamped(self):
        emp = Employee(id="E1", fatigue_score=14, current_workload=-1, performance_score=130)

        assert emp.fatigue_score == 10.0
        assert emp.current_workload == 0.0
        assert emp.performance_score == 100.0
        assert emp.name == "E1"

    def test_level_below_one_rejected(self):
        with pytest.raises(ConfigurationError):
            Employee(id="E1", hierarchy_level=0)

    def test_preference_pattern_rotates(self):
        emp = Employee(id="E1", preference_pattern=("night", "off"))

        assert emp.preferred_shift(0) == ShiftType.NIGHT
        assert emp.preferred_shift(1) == ShiftType.OFF
        assert emp.preferred_shift(4) == ShiftType.NIGHT

    def test_with_workload_keeps_identity(self):
        emp = Employee(id="E1", hierarchy_level=2, certifications={"ACLS"})
        refreshed = emp.with_workload(fatigue_score=4.5, current_workload=1.3)

        assert refreshed.id == "E1"
        assert refreshed.hierarchy_level == 2
        assert refreshed.certifications == frozenset({"ACLS"})
        assert refreshed.fatigue_score == 4.5
        assert emp.fatigue_score == 0.0


class TestStaffingRequirement:
    """Tests for staffing bounds."""

    def test_valid_bounds(self):
        req = StaffingRequirement(min_required=1, preferred=2, max_allowed=3)
        assert not req.is_empty

    def test_default_is_empty(self):
        assert StaffingRequirement().is_empty

    @pytest.mark.parametrize("bounds", [(2, 1, 3), (1, 3, 2), (-1, 0, 0)])
    def test_invalid_bounds_rejected(self, bounds):
        with pytest.raises(ConfigurationError):
            StaffingRequirement(*bounds)

    def test_requirement_for_off_rejected(self):
        level = HierarchyLevel(level=1)
        with pytest.raises(ValueError):
            level.requirement_for(ShiftType.OFF)


class TestRosterSnapshot:
    """Tests for snapshot validation."""

    def test_empty_roster_rejected(self):
        snapshot = RosterSnapshot(employees=(), levels=(HierarchyLevel(level=1),))
        with pytest.raises(ConfigurationError, match="no employees"):
            snapshot.validate()

    def test_missing_levels_rejected(self):
        snapshot = RosterSnapshot(employees=(Employee(id="E1"),), levels=())
        with pytest.raises(ConfigurationError):
            snapshot.validate()

    def test_duplicate_ids_rejected(self):
        snapshot = RosterSnapshot(
            employees=(Employee(id="E1"), Employee(id="E1")),
            levels=(HierarchyLevel(level=1),),
        )
        with pytest.raises(ConfigurationError, match="Duplicate employee"):
            snapshot.validate()

    def test_levels_by_priority_is_stable(self):
        snapshot = RosterSnapshot(
            employees=(Employee(id="E1"),),
            levels=(
                HierarchyLevel(level=3, priority_order=2),
                HierarchyLevel(level=1, priority_order=1),
                HierarchyLevel(level=2, priority_order=2),
            ),
        )
        assert [lv.level for lv in snapshot.levels_by_priority()] == [1, 3, 2]


class TestScheduleGenerationResult:
    """Tests for result helpers."""

    def test_to_records_groups_by_employee(self):
        d1, d2 = date_range(date(2024, 1, 15), 2)
        result = ScheduleGenerationResult(
            assignments=[
                ShiftAssignment("B", d2, ShiftType.OFF),
                ShiftAssignment("A", d2, ShiftType.NIGHT),
                ShiftAssignment("A", d1, ShiftType.DAY),
            ]
        )
        records = result.to_records()

        assert [r.shift_type for r in records["A"]] == [ShiftType.DAY, ShiftType.NIGHT]
        assert records["B"] == [ShiftRecord(date=d2, shift_type=ShiftType.OFF)]
        assert len(result.working_assignments) == 2

    def test_leave_counts_as_rest(self):
        record = ShiftRecord(date=date(2024, 1, 15), shift_type="day", leave_type="annual")
        assert not record.is_working
        assert record.effective_shift == ShiftType.OFF
