"""Tests for roster validation."""

from datetime import timedelta

import pytest

from rotaguard.domain.models import (
    Employee,
    HierarchyLevel,
    RosterSnapshot,
    ShiftAssignment,
    ShiftType,
    StaffingRequirement,
    date_range,
)
from rotaguard.validation.validator import (
    ScheduleValidator,
    ValidationError,
    ValidationErrorType,
    ValidationResult,
)


def _run(employee_id, start, shifts):
    return [
        ShiftAssignment(employee_id, start + timedelta(days=i), shift)
        for i, shift in enumerate(shifts)
    ]


class TestScheduleValidator:
    """Tests for ScheduleValidator."""

    @pytest.fixture
    def validator(self):
        """Create a validator with default policies."""
        return ScheduleValidator()

    @pytest.fixture
    def snapshot(self):
        return RosterSnapshot(
            employees=(Employee(id="A"), Employee(id="B")),
            levels=(
                HierarchyLevel(
                    level=1,
                    day_shift=StaffingRequirement(min_required=1, preferred=1, max_allowed=1),
                ),
            ),
        )

    def test_valid_rotation(self, validator, monday):
        assignments = _run(
            "A",
            monday,
            [ShiftType.DAY, ShiftType.EVENING, ShiftType.NIGHT, ShiftType.OFF, ShiftType.DAY],
        )
        result = validator.validate(assignments)

        assert result.is_valid
        assert result.errors == []

    def test_insufficient_rest(self, validator, monday):
        result = validator.validate(_run("A", monday, [ShiftType.EVENING, ShiftType.DAY]))

        assert not result.is_valid
        errors = result.errors_of(ValidationErrorType.INSUFFICIENT_REST)
        assert len(errors) == 1
        assert errors[0].date == monday + timedelta(days=1)
        assert errors[0].details["rest_hours"] == 8.0

    def test_night_run_reported_once(self, validator, monday):
        result = validator.validate(_run("A", monday, [ShiftType.NIGHT] * 7))

        errors = result.errors_of(ValidationErrorType.CONSECUTIVE_NIGHTS_EXCEEDED)
        assert len(errors) == 1
        assert errors[0].date == monday + timedelta(days=5)

    def test_weekly_hours(self, validator, monday):
        result = validator.validate(_run("A", monday, [ShiftType.DAY] * 7))

        errors = result.errors_of(ValidationErrorType.MAX_WEEKLY_HOURS_EXCEEDED)
        assert len(errors) == 1
        assert errors[0].details["hours"] == 56.0

    def test_duplicate_assignment(self, validator, monday):
        assignments = [
            ShiftAssignment("A", monday, ShiftType.DAY),
            ShiftAssignment("A", monday, ShiftType.OFF),
        ]
        result = validator.validate(assignments)

        assert len(result.errors_of(ValidationErrorType.DUPLICATE_ASSIGNMENT)) == 1

    def test_unknown_employee(self, validator, snapshot, monday):
        result = validator.validate([ShiftAssignment("Z", monday, ShiftType.DAY)], snapshot)

        assert len(result.errors_of(ValidationErrorType.UNKNOWN_EMPLOYEE)) == 1

    def test_missing_assignment(self, validator, snapshot, monday):
        dates = date_range(monday, 2)
        assignments = _run("A", monday, [ShiftType.DAY, ShiftType.OFF]) + _run(
            "B", monday, [ShiftType.OFF]
        )
        result = validator.validate(assignments, snapshot, dates)

        missing = result.errors_of(ValidationErrorType.MISSING_ASSIGNMENT)
        assert [(e.employee_id, e.date) for e in missing] == [("B", dates[1])]

    def test_history_counts_towards_rest(self, validator, monday):
        snapshot = RosterSnapshot(
            employees=(Employee(id="A"),),
            levels=(HierarchyLevel(level=1),),
            history=(ShiftAssignment("A", monday - timedelta(days=1), ShiftType.NIGHT),),
        )
        result = validator.validate([ShiftAssignment("A", monday, ShiftType.DAY)], snapshot)

        assert len(result.errors_of(ValidationErrorType.INSUFFICIENT_REST)) == 1

    def test_violations_inside_history_are_ignored(self, validator, monday):
        history = tuple(_run("A", monday - timedelta(days=3), [ShiftType.EVENING, ShiftType.DAY]))
        snapshot = RosterSnapshot(
            employees=(Employee(id="A"),),
            levels=(HierarchyLevel(level=1),),
            history=history,
        )
        result = validator.validate([ShiftAssignment("A", monday, ShiftType.DAY)], snapshot)

        assert result.is_valid

    def test_overstaffing_is_a_warning(self, validator, snapshot, monday):
        assignments = [
            ShiftAssignment("A", monday, ShiftType.DAY),
            ShiftAssignment("B", monday, ShiftType.DAY),
        ]
        result = validator.validate(assignments, snapshot)
        validator.validate_staffing(assignments, snapshot, result)

        assert result.is_valid
        assert len(result.warnings) == 1
        assert "above max_allowed" in result.warnings[0]


class TestValidationResult:
    """Tests for the result container."""

    def test_add_error_invalidates(self, monday):
        result = ValidationResult(is_valid=True)
        result.add_warning("note")
        assert result.is_valid

        result.add_error(
            ValidationError(
                error_type=ValidationErrorType.INSUFFICIENT_REST,
                message="Only 8.0h rest",
                employee_id="A",
                date=monday,
            )
        )
        assert not result.is_valid
        assert str(result.errors[0]) == "[insufficient_rest] Employee A: Only 8.0h rest (2024-01-15)"
