"""Domain models for the rostering system.

This module contains the core data structures shared by every component:
employees, hierarchy levels with their staffing requirements, shift
assignments, the roster snapshot handed to the engine, and the engine's
result record.
"""

from dataclasses import dataclass, field
from datetime import date, timedelta
from enum import Enum
from typing import Callable, Optional


class ConfigurationError(ValueError):
    """Raised when the supplied roster or requirements cannot produce a plan."""


class ShiftType(Enum):
    """Shift slots an employee can hold on a single date."""

    DAY = "day"
    EVENING = "evening"
    NIGHT = "night"
    OFF = "off"

    @classmethod
    def parse(cls, value: "str | ShiftType") -> "ShiftType":
        """Parse a shift type, rejecting anything outside the vocabulary."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"Unknown shift type: {value!r}") from None

    @classmethod
    def working(cls) -> tuple["ShiftType", ...]:
        """Working shift types in processing order."""
        return (cls.DAY, cls.EVENING, cls.NIGHT)

    @property
    def is_working(self) -> bool:
        return self is not ShiftType.OFF

    @property
    def code(self) -> str:
        """One-letter code used in pattern strings."""
        return {"day": "D", "evening": "E", "night": "N", "off": "O"}[self.value]


class Severity(Enum):
    """Ordered severity for detected issues and problem areas."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @classmethod
    def parse(cls, value: "str | Severity") -> "Severity":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"Unknown severity: {value!r}") from None

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    Severity.LOW: 1,
    Severity.MEDIUM: 2,
    Severity.HIGH: 3,
    Severity.CRITICAL: 4,
}


class RiskLevel(Enum):
    """Bucketed pattern risk."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @classmethod
    def from_score(cls, score: float) -> "RiskLevel":
        """Bucket a 0-100 risk score."""
        if score >= 80:
            return cls.CRITICAL
        elif score >= 60:
            return cls.HIGH
        elif score >= 40:
            return cls.MEDIUM
        return cls.LOW

    @property
    def rank(self) -> int:
        return list(RiskLevel).index(self) + 1


class FairnessGrade(Enum):
    """Team fairness grade, best first."""

    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"
    UNACCEPTABLE = "unacceptable"

    @classmethod
    def from_score(cls, score: float) -> "FairnessGrade":
        if score >= 90:
            return cls.EXCELLENT
        elif score >= 80:
            return cls.GOOD
        elif score >= 60:
            return cls.FAIR
        elif score >= 40:
            return cls.POOR
        return cls.UNACCEPTABLE


DEFAULT_PREFERENCE_PATTERN = (
    ShiftType.DAY,
    ShiftType.EVENING,
    ShiftType.NIGHT,
    ShiftType.OFF,
)


def clamp(value: float, lower: float, upper: float) -> float:
    """Clamp a value into [lower, upper]."""
    return max(lower, min(upper, value))


@dataclass(frozen=True)
class Employee:
    """A schedulable worker.

    Attributes:
        id: Unique identifier.
        name: Display name.
        hierarchy_level: Rank, 1 is the most senior level.
        experience_years: Years of experience.
        team_id: Team the employee belongs to.
        fatigue_score: Composite strain indicator, clamped to 0-10.
        current_workload: Recent load relative to contract, clamped to 0-2.
        preference_pattern: Rotating shift preference, one entry per day.
        is_available: False removes the employee from every pass.
        certifications: Qualifications held, used when covering supervisors.
        supervisor_qualified: Cross-trained to supervise above their level.
        performance_score: Recent performance rating, clamped to 0-100.
    """

    id: str
    name: str = ""
    hierarchy_level: int = 1
    experience_years: float = 0.0
    team_id: str = ""
    fatigue_score: float = 0.0
    current_workload: float = 1.0
    preference_pattern: tuple[ShiftType, ...] = DEFAULT_PREFERENCE_PATTERN
    is_available: bool = True
    certifications: frozenset[str] = frozenset()
    supervisor_qualified: bool = False
    performance_score: float = 75.0

    def __post_init__(self):
        if self.hierarchy_level < 1:
            raise ConfigurationError(
                f"Employee {self.id}: hierarchy level must be >= 1, "
                f"got {self.hierarchy_level}"
            )
        # Frozen dataclass, so normalise through object.__setattr__
        object.__setattr__(self, "fatigue_score", clamp(float(self.fatigue_score), 0.0, 10.0))
        object.__setattr__(self, "current_workload", clamp(float(self.current_workload), 0.0, 2.0))
        object.__setattr__(
            self, "performance_score", clamp(float(self.performance_score), 0.0, 100.0)
        )
        object.__setattr__(
            self,
            "preference_pattern",
            tuple(ShiftType.parse(s) for s in self.preference_pattern)
            or DEFAULT_PREFERENCE_PATTERN,
        )
        object.__setattr__(self, "certifications", frozenset(self.certifications))
        if not self.name:
            object.__setattr__(self, "name", self.id)

    def preferred_shift(self, day_index: int) -> ShiftType:
        """Shift named by the rotating preference pattern for a day offset."""
        pattern = self.preference_pattern
        return pattern[day_index % len(pattern)]

    def with_workload(self, fatigue_score: float, current_workload: float) -> "Employee":
        """Copy of this employee with recomputed fatigue and workload."""
        return Employee(
            id=self.id,
            name=self.name,
            hierarchy_level=self.hierarchy_level,
            experience_years=self.experience_years,
            team_id=self.team_id,
            fatigue_score=fatigue_score,
            current_workload=current_workload,
            preference_pattern=self.preference_pattern,
            is_available=self.is_available,
            certifications=self.certifications,
            supervisor_qualified=self.supervisor_qualified,
            performance_score=self.performance_score,
        )


@dataclass(frozen=True)
class StaffingRequirement:
    """Minimum / preferred / maximum head count for one level on one shift type."""

    min_required: int = 0
    preferred: int = 0
    max_allowed: int = 0
    priority_weight: float = 1.0

    def __post_init__(self):
        if self.min_required < 0:
            raise ConfigurationError(
                f"min_required must be >= 0, got {self.min_required}"
            )
        if not (self.min_required <= self.preferred <= self.max_allowed):
            raise ConfigurationError(
                "Staffing requirement must satisfy min_required <= preferred <= "
                f"max_allowed (got {self.min_required}/{self.preferred}/{self.max_allowed})"
            )

    @property
    def is_empty(self) -> bool:
        """True when the level is not staffed on this shift at all."""
        return self.min_required == 0 and self.preferred == 0


@dataclass(frozen=True)
class HierarchyLevel:
    """A hierarchy rank and its per-shift staffing requirements.

    Attributes:
        level: Numeric level, 1 is the most senior.
        role_name: Human-readable role (e.g., "Charge Nurse").
        day_shift: Requirement for day shifts.
        evening_shift: Requirement for evening shifts.
        night_shift: Requirement for night shifts.
        priority_order: Allocation order, lower is staffed first.
        can_work_alone: Whether the level may staff a shift unsupervised.
        requires_supervision: Whether a supervisor must share the shift.
        can_supervise: Levels this level may supervise.
    """

    level: int
    role_name: str = ""
    day_shift: StaffingRequirement = field(default_factory=StaffingRequirement)
    evening_shift: StaffingRequirement = field(default_factory=StaffingRequirement)
    night_shift: StaffingRequirement = field(default_factory=StaffingRequirement)
    priority_order: int = 0
    can_work_alone: bool = True
    requires_supervision: bool = False
    can_supervise: frozenset[int] = frozenset()

    def __post_init__(self):
        if self.level < 1:
            raise ConfigurationError(f"Hierarchy level must be >= 1, got {self.level}")
        object.__setattr__(self, "can_supervise", frozenset(self.can_supervise))
        if not self.role_name:
            object.__setattr__(self, "role_name", f"Level {self.level}")

    def requirement_for(self, shift_type: ShiftType) -> StaffingRequirement:
        """Staffing requirement for a working shift type."""
        if shift_type is ShiftType.DAY:
            return self.day_shift
        elif shift_type is ShiftType.EVENING:
            return self.evening_shift
        elif shift_type is ShiftType.NIGHT:
            return self.night_shift
        raise ValueError("Off days carry no staffing requirement")

    @property
    def is_supervisor_level(self) -> bool:
        return bool(self.can_supervise)


@dataclass(frozen=True)
class ShiftAssignment:
    """One employee's placement on one date."""

    employee_id: str
    date: date
    shift_type: ShiftType
    hierarchy_level: int = 1
    is_supervisor: bool = False

    def __post_init__(self):
        object.__setattr__(self, "shift_type", ShiftType.parse(self.shift_type))

    @property
    def is_working(self) -> bool:
        return self.shift_type.is_working


@dataclass(frozen=True)
class ShiftRecord:
    """A historical shift as seen by the analyzers.

    Attributes:
        date: Calendar date of the shift start.
        shift_type: Shift worked (or off).
        leave_type: Leave category; any value makes the day a rest day.
        is_preferred: Whether the shift matched the employee's wishes,
            None when unknown.
    """

    date: date
    shift_type: ShiftType
    leave_type: Optional[str] = None
    is_preferred: Optional[bool] = None

    def __post_init__(self):
        object.__setattr__(self, "shift_type", ShiftType.parse(self.shift_type))

    @property
    def is_working(self) -> bool:
        return self.shift_type.is_working and not self.leave_type

    @property
    def effective_shift(self) -> ShiftType:
        """Shift type with leave days folded into off."""
        return self.shift_type if self.is_working else ShiftType.OFF

    @classmethod
    def from_assignment(cls, assignment: ShiftAssignment) -> "ShiftRecord":
        return cls(date=assignment.date, shift_type=assignment.shift_type)


@dataclass(frozen=True)
class RosterSnapshot:
    """Immutable roster input for one engine invocation.

    Attributes:
        employees: Employees to schedule.
        levels: Hierarchy levels with staffing requirements.
        history: Assignments before the horizon, used for rest and
            consecutive-shift checks and workload refresh.
    """

    employees: tuple[Employee, ...]
    levels: tuple[HierarchyLevel, ...]
    history: tuple[ShiftAssignment, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "employees", tuple(self.employees))
        object.__setattr__(self, "levels", tuple(self.levels))
        object.__setattr__(self, "history", tuple(self.history))

    def validate(self) -> None:
        """Raise ConfigurationError when no valid plan can be produced."""
        if not self.employees:
            raise ConfigurationError("Roster contains no employees")
        if not self.levels:
            raise ConfigurationError("No hierarchy staffing requirements supplied")
        ids = [e.id for e in self.employees]
        if len(ids) != len(set(ids)):
            raise ConfigurationError("Duplicate employee IDs in roster")
        levels = [lv.level for lv in self.levels]
        if len(levels) != len(set(levels)):
            raise ConfigurationError("Duplicate hierarchy levels in requirements")

    def employees_map(self) -> dict[str, Employee]:
        return {e.id: e for e in self.employees}

    def level_map(self) -> dict[int, HierarchyLevel]:
        return {lv.level: lv for lv in self.levels}

    def levels_by_priority(self) -> list[HierarchyLevel]:
        """Levels in allocation order (stable on ties)."""
        return sorted(self.levels, key=lambda lv: lv.priority_order)

    def history_for(self, employee_id: str) -> list[ShiftAssignment]:
        return [a for a in self.history if a.employee_id == employee_id]


@dataclass
class GenerationOptions:
    """Per-invocation switches for the assignment engine.

    Attributes:
        prioritize_preferences: Apply the preference-pattern term.
        allow_fatigue_override: Keep highly fatigued employees eligible.
        emergency_mode: Lift the fatigue gate and back-fill shortfalls from
            supervising levels.
        recompute_workload: Refresh fatigue/workload from history first.
        deadline: time.monotonic() value after which generation stops.
        should_cancel: Callback polled between dates; True stops generation.
    """

    prioritize_preferences: bool = True
    allow_fatigue_override: bool = False
    emergency_mode: bool = False
    recompute_workload: bool = True
    deadline: Optional[float] = None
    should_cancel: Optional[Callable[[], bool]] = None


@dataclass
class ScheduleGenerationResult:
    """Output of one assignment engine run.

    Attributes:
        assignments: One assignment per employee per processed date.
        compliance_score: 0-100, drops with every warning.
        hierarchy_balance_score: 0-100 fulfilment of preferred head counts.
        warnings: Human-readable shortfall and supervision messages.
        metadata: Counters and run details.
        is_partial: True when generation was cancelled; never final.
    """

    assignments: list[ShiftAssignment] = field(default_factory=list)
    compliance_score: float = 0.0
    hierarchy_balance_score: float = 0.0
    warnings: list[str] = field(default_factory=list)
    metadata: dict = field(default_factory=dict)
    is_partial: bool = False

    @property
    def working_assignments(self) -> list[ShiftAssignment]:
        return [a for a in self.assignments if a.is_working]

    def for_employee(self, employee_id: str) -> list[ShiftAssignment]:
        """Assignments of one employee in date order."""
        return sorted(
            (a for a in self.assignments if a.employee_id == employee_id),
            key=lambda a: a.date,
        )

    def on(self, schedule_date: date, shift_type: ShiftType) -> list[ShiftAssignment]:
        return [
            a
            for a in self.assignments
            if a.date == schedule_date and a.shift_type is shift_type
        ]

    def to_records(self) -> dict[str, list[ShiftRecord]]:
        """Per-employee shift records for the analyzers."""
        records: dict[str, list[ShiftRecord]] = {}
        for a in sorted(self.assignments, key=lambda a: (a.employee_id, a.date)):
            records.setdefault(a.employee_id, []).append(ShiftRecord.from_assignment(a))
        return records


def date_range(start_date: date, days: int) -> list[date]:
    """Consecutive dates starting at start_date."""
    return [start_date + timedelta(days=i) for i in range(days)]
