"""Domain models for supervisor replacement planning."""

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Optional

from rotaguard.domain.models import ShiftType


class ReplacementType(Enum):
    """How a candidate relates to the absent supervisor's level."""

    SAME_LEVEL_SENIOR = "same_level_senior"
    UPPER_LEVEL_AVAILABLE = "upper_level_available"
    CROSS_TRAINED_LOWER_LEVEL = "cross_trained_lower_level"
    EXTERNAL_FLOAT_POOL = "external_float_pool"


class AvailabilityStatus(Enum):
    AVAILABLE = "available"
    PARTIAL = "partial"
    UNAVAILABLE = "unavailable"


class UrgencyLevel(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @classmethod
    def parse(cls, value: "str | UrgencyLevel") -> "UrgencyLevel":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"Unknown urgency level: {value!r}") from None


class AbsenceReason(Enum):
    PLANNED_LEAVE = "planned_leave"
    EMERGENCY = "emergency"
    SICK_LEAVE = "sick_leave"
    TRAINING = "training"
    OTHER = "other"

    @classmethod
    def parse(cls, value: "str | AbsenceReason") -> "AbsenceReason":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"Unknown absence reason: {value!r}") from None


@dataclass(frozen=True)
class AffectedShift:
    """A shift the absent supervisor would have covered."""

    date: date
    shift_type: ShiftType
    team_id: str = ""
    required_supervision_level: int = 1

    def __post_init__(self):
        shift = ShiftType.parse(self.shift_type)
        if not shift.is_working:
            raise ValueError("Affected shifts must be working shifts")
        object.__setattr__(self, "shift_type", shift)


@dataclass(frozen=True)
class ReplacementRequest:
    """An absence event that needs its shifts re-covered."""

    original_supervisor_id: str
    absence_start_date: date
    absence_end_date: date
    affected_shifts: tuple[AffectedShift, ...]
    urgency_level: UrgencyLevel = UrgencyLevel.MEDIUM
    absence_reason: AbsenceReason = AbsenceReason.OTHER
    special_requirements: tuple[str, ...] = ()

    def __post_init__(self):
        if self.absence_end_date < self.absence_start_date:
            raise ValueError("Absence ends before it starts")
        object.__setattr__(self, "affected_shifts", tuple(self.affected_shifts))
        object.__setattr__(self, "urgency_level", UrgencyLevel.parse(self.urgency_level))
        object.__setattr__(self, "absence_reason", AbsenceReason.parse(self.absence_reason))


@dataclass(frozen=True)
class ReplacementCandidate:
    """A scored stand-in for the absent supervisor.

    Attributes:
        employee_id: Candidate employee.
        hierarchy_level: Candidate's level.
        replacement_type: Relation to the absent supervisor's level.
        replacement_score: Weighted suitability in [0, 1].
        availability_status: Derived from schedule conflicts.
        qualification_match: Certification/experience match, 0-100.
        conflicts: Dates of affected shifts the candidate cannot take.
        supervisor_qualified: Cross-trained to supervise above their level.
    """

    employee_id: str
    hierarchy_level: int
    replacement_type: ReplacementType
    replacement_score: float
    availability_status: AvailabilityStatus
    qualification_match: float
    conflicts: tuple[date, ...] = ()
    supervisor_qualified: bool = False
    factor_scores: dict = field(default_factory=dict, compare=False, hash=False)


@dataclass(frozen=True)
class ReplacementAssignment:
    """Coverage chosen for one affected shift.

    An uncovered shift has no replacement_employee_id and zero confidence.
    """

    shift_date: date
    shift_type: ShiftType
    team_id: str
    replacement_employee_id: Optional[str]
    replacement_type: Optional[ReplacementType]
    confidence_score: float
    backup_options: tuple[str, ...] = ()

    @property
    def is_covered(self) -> bool:
        return self.replacement_employee_id is not None


@dataclass(frozen=True)
class CoverageAnalysis:
    full_coverage_percentage: float
    full_coverage_shifts: int
    partial_coverage_shifts: int
    uncovered_shifts: int
    skill_coverage_gaps: tuple[str, ...] = ()


@dataclass(frozen=True)
class Notification:
    """A notification record for delivery by an external collaborator."""

    recipient_id: str
    notification_type: str
    message: str


@dataclass
class ReplacementPlan:
    """Output of the replacement planner for one absence event."""

    request_id: str
    replacement_assignments: list[ReplacementAssignment]
    coverage_analysis: CoverageAnalysis
    approval_required: bool
    estimated_cost_impact: float
    candidates: list[ReplacementCandidate] = field(default_factory=list)
    implementation_steps: list[str] = field(default_factory=list)
    notifications_required: list[Notification] = field(default_factory=list)

    def assignment_for(self, shift_date: date, shift_type: ShiftType) -> Optional[ReplacementAssignment]:
        for a in self.replacement_assignments:
            if a.shift_date == shift_date and a.shift_type is shift_type:
                return a
        return None
