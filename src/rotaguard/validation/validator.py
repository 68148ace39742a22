"""Validation module for verifying roster correctness.

This module is the single source of truth for the hard working-time
rules. The assignment engine runs every finished roster through it, and
callers can validate rosters that came from anywhere else.
"""

from collections import Counter
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Iterable, Optional

from rotaguard.domain.models import RosterSnapshot, ShiftAssignment, ShiftType
from rotaguard.domain.policies import DefaultWorkRulePolicy, WorkRulePolicy
from rotaguard.domain.timeline import EmployeeTimeline


class ValidationErrorType(Enum):
    """Types of validation errors."""

    UNKNOWN_EMPLOYEE = "unknown_employee"
    DUPLICATE_ASSIGNMENT = "duplicate_assignment"
    MISSING_ASSIGNMENT = "missing_assignment"
    INSUFFICIENT_REST = "insufficient_rest"
    CONSECUTIVE_NIGHTS_EXCEEDED = "consecutive_nights_exceeded"
    MAX_WEEKLY_HOURS_EXCEEDED = "max_weekly_hours_exceeded"


@dataclass
class ValidationError:
    """A single validation error."""

    error_type: ValidationErrorType
    message: str
    employee_id: Optional[str] = None
    date: Optional[date] = None
    details: dict = field(default_factory=dict)

    def __str__(self) -> str:
        parts = [f"[{self.error_type.value}]"]
        if self.employee_id:
            parts.append(f"Employee {self.employee_id}:")
        parts.append(self.message)
        if self.date is not None:
            parts.append(f"({self.date.isoformat()})")
        return " ".join(parts)


@dataclass
class ValidationResult:
    """Result of validating a roster."""

    is_valid: bool
    errors: list[ValidationError] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def add_error(self, error: ValidationError) -> None:
        """Add an error and mark as invalid."""
        self.errors.append(error)
        self.is_valid = False

    def add_warning(self, warning: str) -> None:
        """Add a warning (doesn't affect validity)."""
        self.warnings.append(warning)

    def errors_of(self, error_type: ValidationErrorType) -> list[ValidationError]:
        return [e for e in self.errors if e.error_type == error_type]


class ScheduleValidator:
    """Validates rosters against the working-time rules.

    Example:
        >>> validator = ScheduleValidator()
        >>> result = validator.validate(assignments, snapshot, dates)
        >>> if not result.is_valid:
        ...     for error in result.errors:
        ...         print(error)
    """

    def __init__(self, policy: Optional[WorkRulePolicy] = None):
        self.policy = policy or DefaultWorkRulePolicy()

    def validate(
        self,
        assignments: Iterable[ShiftAssignment],
        snapshot: Optional[RosterSnapshot] = None,
        dates: Optional[list[date]] = None,
    ) -> ValidationResult:
        """Validate a complete roster.

        Args:
            assignments: Assignments to check.
            snapshot: Roster the assignments were made for. Its history is
                prepended to every employee's timeline, and assignments for
                employees outside it are rejected.
            dates: When given, every roster employee must hold exactly one
                assignment on each of these dates.

        Returns:
            ValidationResult with is_valid flag and any errors.
        """
        result = ValidationResult(is_valid=True)
        assignments = list(assignments)

        per_employee: dict[str, list[ShiftAssignment]] = {}
        for a in assignments:
            per_employee.setdefault(a.employee_id, []).append(a)

        if snapshot is not None:
            known = {e.id for e in snapshot.employees}
            for emp_id in per_employee:
                if emp_id not in known:
                    result.add_error(
                        ValidationError(
                            error_type=ValidationErrorType.UNKNOWN_EMPLOYEE,
                            message=f"Unknown employee ID: {emp_id}",
                            employee_id=emp_id,
                        )
                    )

        for emp_id, emp_assignments in per_employee.items():
            counts = Counter(a.date for a in emp_assignments)
            for d, n in sorted(counts.items()):
                if n > 1:
                    result.add_error(
                        ValidationError(
                            error_type=ValidationErrorType.DUPLICATE_ASSIGNMENT,
                            message=f"{n} assignments on one date",
                            employee_id=emp_id,
                            date=d,
                        )
                    )

            history = snapshot.history_for(emp_id) if snapshot is not None else []
            timeline = EmployeeTimeline.from_assignments(emp_id, history)
            for a in sorted(emp_assignments, key=lambda a: a.date):
                timeline.add(a.date, a.shift_type)
            self._validate_timeline(timeline, {a.date for a in emp_assignments}, result)

        if dates is not None and snapshot is not None:
            self._validate_completeness(per_employee, snapshot, dates, result)

        return result

    def _validate_timeline(
        self,
        timeline: EmployeeTimeline,
        checked_dates: set[date],
        result: ValidationResult,
    ) -> None:
        """Check rest, night runs and weekly hours for one employee.

        Only violations touching a checked date are reported, so problems
        that lie entirely inside the supplied history are not blamed on
        the new roster.
        """
        policy = self.policy
        emp_id = timeline.employee_id

        for first, second, gap in timeline.rest_gaps(policy):
            if second not in checked_dates and first not in checked_dates:
                continue
            if gap < policy.min_rest_hours():
                result.add_error(
                    ValidationError(
                        error_type=ValidationErrorType.INSUFFICIENT_REST,
                        message=(
                            f"Only {gap:.1f}h rest between {timeline.shifts[first].value} "
                            f"on {first.isoformat()} and {timeline.shifts[second].value}"
                        ),
                        employee_id=emp_id,
                        date=second,
                        details={"rest_hours": gap},
                    )
                )

        max_nights = policy.max_consecutive_nights()
        for d in sorted(checked_dates):
            if timeline.shift_on(d) is not ShiftType.NIGHT:
                continue
            # Report each overlong run once, at the night that breaks the limit
            if timeline.consecutive_nights(d) == max_nights:
                result.add_error(
                    ValidationError(
                        error_type=ValidationErrorType.CONSECUTIVE_NIGHTS_EXCEEDED,
                        message=f"Night run longer than {max_nights}",
                        employee_id=emp_id,
                        date=d,
                    )
                )

        for d in sorted(checked_dates):
            hours = timeline.hours_in_week_ending(d, policy)
            if hours > policy.max_weekly_hours():
                result.add_error(
                    ValidationError(
                        error_type=ValidationErrorType.MAX_WEEKLY_HOURS_EXCEEDED,
                        message=(
                            f"{hours:.1f}h in the 7 days ending here "
                            f"(max {policy.max_weekly_hours():.1f}h)"
                        ),
                        employee_id=emp_id,
                        date=d,
                        details={"hours": hours},
                    )
                )

    def _validate_completeness(
        self,
        per_employee: dict[str, list[ShiftAssignment]],
        snapshot: RosterSnapshot,
        dates: list[date],
        result: ValidationResult,
    ) -> None:
        """Every roster employee has an assignment on every date."""
        for employee in snapshot.employees:
            held = {a.date for a in per_employee.get(employee.id, [])}
            for d in dates:
                if d not in held:
                    result.add_error(
                        ValidationError(
                            error_type=ValidationErrorType.MISSING_ASSIGNMENT,
                            message="No assignment (not even off) on this date",
                            employee_id=employee.id,
                            date=d,
                        )
                    )

    def validate_staffing(
        self,
        assignments: Iterable[ShiftAssignment],
        snapshot: RosterSnapshot,
        result: ValidationResult,
    ) -> None:
        """Add warnings for shifts staffed above a level's max_allowed.

        Over-staffing is a soft issue: emergency drafting can legitimately
        place a supervisor on a shift their own level is already full on.
        """
        counts: Counter = Counter(
            (a.date, a.shift_type, a.hierarchy_level) for a in assignments if a.is_working
        )
        level_map = snapshot.level_map()
        for (d, shift, level_no), n in sorted(
            counts.items(), key=lambda kv: (kv[0][0], ShiftType.working().index(kv[0][1]), kv[0][2])
        ):
            level = level_map.get(level_no)
            if level is None:
                continue
            cap = level.requirement_for(shift).max_allowed
            if n > cap:
                result.add_warning(
                    f"{d.isoformat()} {shift.value}: {level.role_name} staffed "
                    f"{n} above max_allowed {cap}"
                )

