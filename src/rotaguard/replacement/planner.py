"""Re-coverage planning for an absent supervisor.

Given an absence request and the live employee pool, the planner scores
every other employee as a stand-in, drops weak candidates, and assigns
the best remaining candidate (plus backups) to each affected shift
without double-booking anyone on a date.
"""

import hashlib
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Optional, Sequence

from rotaguard.domain.models import (
    ConfigurationError,
    Employee,
    ShiftAssignment,
)
from rotaguard.domain.policies import DefaultWorkRulePolicy, WorkRulePolicy
from rotaguard.domain.replacement import (
    AffectedShift,
    AvailabilityStatus,
    CoverageAnalysis,
    Notification,
    ReplacementAssignment,
    ReplacementCandidate,
    ReplacementPlan,
    ReplacementRequest,
    ReplacementType,
    UrgencyLevel,
)
from rotaguard.domain.timeline import EmployeeTimeline
from rotaguard.scheduling.scoring import Factor, Penalty, WeightedScorer, normalize_weights

logger = logging.getLogger(__name__)


def _default_weights() -> dict[str, float]:
    return {
        "same_level_experience": 0.4,
        "cross_training": 0.3,
        "availability": 0.2,
        "recent_performance": 0.1,
    }


def _default_type_factors() -> dict[ReplacementType, float]:
    return {
        ReplacementType.SAME_LEVEL_SENIOR: 1.0,
        ReplacementType.UPPER_LEVEL_AVAILABLE: 0.8,
        ReplacementType.CROSS_TRAINED_LOWER_LEVEL: 0.6,
        ReplacementType.EXTERNAL_FLOAT_POOL: 0.4,
    }


def _default_cost_table() -> dict[ReplacementType, float]:
    return {
        ReplacementType.SAME_LEVEL_SENIOR: 0.0,
        ReplacementType.CROSS_TRAINED_LOWER_LEVEL: 20000.0,
        ReplacementType.UPPER_LEVEL_AVAILABLE: 50000.0,
        ReplacementType.EXTERNAL_FLOAT_POOL: 150000.0,
    }


@dataclass
class ReplacementConfig:
    """Configuration for replacement planning.

    Attributes:
        weights: Factor weights, normalized to sum to 1.
        type_factors: Factor value per replacement type.
        min_score: Candidates scoring at or below this are dropped.
        full_coverage_threshold: Confidence that counts as full coverage.
        workload_limit: Workload above this applies workload_penalty.
        workload_penalty: Score multiplier for overloaded candidates.
        fatigue_limit: Fatigue at or above this applies fatigue_penalty.
        fatigue_penalty: Score multiplier for fatigued candidates.
        max_backups: Backup candidates listed per shift.
        cost_table: Surcharge per assignment by replacement type.
        uncovered_cost: Surcharge per shift left uncovered.
    """

    weights: dict[str, float] = field(default_factory=_default_weights)
    type_factors: dict[ReplacementType, float] = field(default_factory=_default_type_factors)
    min_score: float = 0.3
    full_coverage_threshold: float = 0.7
    workload_limit: float = 1.2
    workload_penalty: float = 0.8
    fatigue_limit: float = 7.0
    fatigue_penalty: float = 0.7
    max_backups: int = 2
    cost_table: dict[ReplacementType, float] = field(default_factory=_default_cost_table)
    uncovered_cost: float = 150000.0


@dataclass(frozen=True)
class CandidateProfile:
    """Everything the replacement scorer looks at for one employee."""

    employee: Employee
    replacement_type: ReplacementType
    qualification_match: float
    availability_status: AvailabilityStatus


_AVAILABILITY_FACTOR = {
    AvailabilityStatus.AVAILABLE: 1.0,
    AvailabilityStatus.PARTIAL: 0.5,
    AvailabilityStatus.UNAVAILABLE: 0.0,
}


class ReplacementPlanner:
    """Plans coverage of an absent supervisor's shifts.

    Example:
        >>> planner = ReplacementPlanner()
        >>> plan = planner.plan(request, employees, existing_assignments)
        >>> plan.coverage_analysis.full_coverage_percentage
        100.0
    """

    def __init__(
        self,
        config: Optional[ReplacementConfig] = None,
        policy: Optional[WorkRulePolicy] = None,
    ):
        self.config = config or ReplacementConfig()
        self.policy = policy or DefaultWorkRulePolicy()
        self.scorer = self._build_scorer()

    def _build_scorer(self) -> WeightedScorer[CandidateProfile]:
        cfg = self.config
        weights = normalize_weights(cfg.weights)
        return WeightedScorer(
            factors=(
                Factor(
                    "same_level_experience",
                    weights.get("same_level_experience", 0.0),
                    lambda p: cfg.type_factors.get(p.replacement_type, 0.0),
                ),
                Factor(
                    "cross_training",
                    weights.get("cross_training", 0.0),
                    lambda p: p.qualification_match / 100.0,
                ),
                Factor(
                    "availability",
                    weights.get("availability", 0.0),
                    lambda p: _AVAILABILITY_FACTOR[p.availability_status],
                ),
                Factor(
                    "recent_performance",
                    weights.get("recent_performance", 0.0),
                    lambda p: min(1.0, p.employee.performance_score / 100.0),
                ),
            ),
            penalties=(
                Penalty(
                    "workload",
                    cfg.workload_penalty,
                    lambda p: p.employee.current_workload > cfg.workload_limit,
                ),
                Penalty(
                    "fatigue",
                    cfg.fatigue_penalty,
                    lambda p: p.employee.fatigue_score >= cfg.fatigue_limit,
                ),
            ),
            lower=0.0,
            upper=1.0,
        )

    def plan(
        self,
        request: ReplacementRequest,
        employees: Sequence[Employee],
        existing_assignments: Sequence[ShiftAssignment] = (),
    ) -> ReplacementPlan:
        """Build a replacement plan for one absence.

        Args:
            request: The absence and the shifts it leaves open.
            employees: Live employee pool, including the absent supervisor.
            existing_assignments: Already scheduled shifts of the pool.

        Returns:
            ReplacementPlan with one assignment per affected shift.

        Raises:
            ConfigurationError: The absent supervisor is not in the pool.
        """
        pool = {e.id: e for e in employees}
        supervisor = pool.get(request.original_supervisor_id)
        if supervisor is None:
            raise ConfigurationError(
                f"Absent supervisor {request.original_supervisor_id} is not in the employee pool"
            )

        timelines = {
            e.id: EmployeeTimeline.from_assignments(e.id, existing_assignments)
            for e in employees
        }
        candidates = self.rank_candidates(request, supervisor, employees, timelines)
        logger.info(
            "Replacement for %s: %d candidates above %.2f for %d shifts",
            supervisor.id,
            len(candidates),
            self.config.min_score,
            len(request.affected_shifts),
        )

        assignments = self._select(request, candidates, timelines)
        coverage = self._analyze_coverage(request, assignments, pool)
        cost = sum(
            self.config.cost_table.get(a.replacement_type, 0.0)
            if a.is_covered
            else self.config.uncovered_cost
            for a in assignments
        )
        approval_required = request.urgency_level is not UrgencyLevel.CRITICAL and any(
            a.replacement_type is ReplacementType.UPPER_LEVEL_AVAILABLE for a in assignments
        )

        if coverage.uncovered_shifts:
            logger.warning(
                "%d of %d shifts left uncovered for %s",
                coverage.uncovered_shifts,
                len(assignments),
                supervisor.id,
            )

        return ReplacementPlan(
            request_id=self.request_id(request),
            replacement_assignments=assignments,
            coverage_analysis=coverage,
            approval_required=approval_required,
            estimated_cost_impact=cost,
            candidates=candidates,
            implementation_steps=self._implementation_steps(assignments),
            notifications_required=self._notifications(request, assignments, employees),
        )

    def rank_candidates(
        self,
        request: ReplacementRequest,
        supervisor: Employee,
        employees: Sequence[Employee],
        timelines: dict[str, EmployeeTimeline],
    ) -> list[ReplacementCandidate]:
        """Score everyone but the absent supervisor, best first, weak ones dropped."""
        profiles = []
        conflicts_by_id = {}
        for employee in employees:
            if employee.id == supervisor.id:
                continue
            conflicts = self._conflicts(employee, request.affected_shifts, timelines[employee.id])
            conflicts_by_id[employee.id] = conflicts
            profiles.append(
                CandidateProfile(
                    employee=employee,
                    replacement_type=self.replacement_type(employee, supervisor),
                    qualification_match=self.qualification_match(employee, supervisor),
                    availability_status=self._availability(conflicts, len(request.affected_shifts)),
                )
            )

        candidates = []
        for profile, breakdown in self.scorer.rank(profiles):
            employee = profile.employee
            if breakdown.total <= self.config.min_score:
                logger.debug("Dropping %s: score %.2f", employee.id, breakdown.total)
                continue
            candidates.append(
                ReplacementCandidate(
                    employee_id=employee.id,
                    hierarchy_level=employee.hierarchy_level,
                    replacement_type=profile.replacement_type,
                    replacement_score=breakdown.total,
                    availability_status=profile.availability_status,
                    qualification_match=profile.qualification_match,
                    conflicts=conflicts_by_id[employee.id],
                    supervisor_qualified=employee.supervisor_qualified,
                    factor_scores=dict(breakdown.contributions),
                )
            )
        return candidates

    @staticmethod
    def replacement_type(candidate: Employee, supervisor: Employee) -> ReplacementType:
        if candidate.hierarchy_level == supervisor.hierarchy_level:
            return ReplacementType.SAME_LEVEL_SENIOR
        elif candidate.hierarchy_level < supervisor.hierarchy_level:
            return ReplacementType.UPPER_LEVEL_AVAILABLE
        elif candidate.supervisor_qualified:
            return ReplacementType.CROSS_TRAINED_LOWER_LEVEL
        return ReplacementType.EXTERNAL_FLOAT_POOL

    @staticmethod
    def qualification_match(candidate: Employee, supervisor: Employee) -> float:
        """Certification overlap (70%) and experience ratio (30%), 0-100."""
        if supervisor.certifications:
            overlap = len(candidate.certifications & supervisor.certifications) / len(
                supervisor.certifications
            )
        else:
            overlap = 1.0
        if supervisor.experience_years > 0:
            experience = min(1.0, candidate.experience_years / supervisor.experience_years)
        else:
            experience = 1.0
        return round((overlap * 0.7 + experience * 0.3) * 100, 1)

    def _conflicts(
        self,
        employee: Employee,
        shifts: Sequence[AffectedShift],
        timeline: EmployeeTimeline,
    ) -> tuple[date, ...]:
        """Dates of affected shifts the employee cannot legally take."""
        if not employee.is_available:
            return tuple(s.date for s in shifts)
        return tuple(
            s.date
            for s in shifts
            if timeline.violation_for(s.date, s.shift_type, self.policy) is not None
        )

    @staticmethod
    def _availability(conflicts: Sequence[date], total: int) -> AvailabilityStatus:
        if not conflicts:
            return AvailabilityStatus.AVAILABLE
        if len(conflicts) < total / 2:
            return AvailabilityStatus.PARTIAL
        return AvailabilityStatus.UNAVAILABLE

    def _select(
        self,
        request: ReplacementRequest,
        candidates: list[ReplacementCandidate],
        timelines: dict[str, EmployeeTimeline],
    ) -> list[ReplacementAssignment]:
        """Best free candidate per shift, processed in request order."""
        consumed: dict[date, set[str]] = {}
        # Provisional placements count towards rest checks for later shifts
        provisional = {
            c.employee_id: EmployeeTimeline(
                c.employee_id, dict(timelines[c.employee_id].shifts)
            )
            for c in candidates
        }

        assignments = []
        for shift in request.affected_shifts:
            taken = consumed.setdefault(shift.date, set())
            free = [
                c
                for c in candidates
                if c.availability_status is not AvailabilityStatus.UNAVAILABLE
                and shift.date not in c.conflicts
                and c.employee_id not in taken
                and provisional[c.employee_id].violation_for(
                    shift.date, shift.shift_type, self.policy
                ) is None
            ]

            if not free:
                logger.debug("No candidate for %s %s", shift.date.isoformat(), shift.shift_type.value)
                assignments.append(
                    ReplacementAssignment(
                        shift_date=shift.date,
                        shift_type=shift.shift_type,
                        team_id=shift.team_id,
                        replacement_employee_id=None,
                        replacement_type=None,
                        confidence_score=0.0,
                    )
                )
                continue

            best = free[0]
            taken.add(best.employee_id)
            provisional[best.employee_id].add(shift.date, shift.shift_type)
            assignments.append(
                ReplacementAssignment(
                    shift_date=shift.date,
                    shift_type=shift.shift_type,
                    team_id=shift.team_id,
                    replacement_employee_id=best.employee_id,
                    replacement_type=best.replacement_type,
                    confidence_score=best.replacement_score,
                    backup_options=tuple(
                        c.employee_id for c in free[1:1 + self.config.max_backups]
                    ),
                )
            )
        return assignments

    def _analyze_coverage(
        self,
        request: ReplacementRequest,
        assignments: list[ReplacementAssignment],
        pool: dict[str, Employee],
    ) -> CoverageAnalysis:
        threshold = self.config.full_coverage_threshold
        full = sum(1 for a in assignments if a.is_covered and a.confidence_score >= threshold)
        partial = sum(1 for a in assignments if a.is_covered and a.confidence_score < threshold)
        uncovered = sum(1 for a in assignments if not a.is_covered)
        total = len(assignments)

        gaps = []
        for shift, assignment in zip(request.affected_shifts, assignments):
            if not assignment.is_covered:
                continue
            stand_in = pool[assignment.replacement_employee_id]
            if (
                stand_in.hierarchy_level > shift.required_supervision_level
                and not stand_in.supervisor_qualified
            ):
                gaps.append(
                    f"{shift.date.isoformat()} {shift.shift_type.value}: {stand_in.id} "
                    f"(level {stand_in.hierarchy_level}) below required level "
                    f"{shift.required_supervision_level}"
                )

        return CoverageAnalysis(
            full_coverage_percentage=(full / total * 100) if total else 100.0,
            full_coverage_shifts=full,
            partial_coverage_shifts=partial,
            uncovered_shifts=uncovered,
            skill_coverage_gaps=tuple(gaps),
        )

    def _implementation_steps(self, assignments: list[ReplacementAssignment]) -> list[str]:
        steps = [
            "Notify replacement employees of their assignments",
            "Brief or train replacements where needed",
            "Announce the change to affected teams",
            "Hand over ongoing work",
            "Update the emergency contact list",
        ]
        if any(a.confidence_score < self.config.full_coverage_threshold for a in assignments):
            steps.append("Put additional support staff on standby")
        if any(not a.is_covered for a in assignments):
            steps.append("Escalate uncovered shifts to the float pool")
        return [f"{i}. {step}" for i, step in enumerate(steps, start=1)]

    def _notifications(
        self,
        request: ReplacementRequest,
        assignments: list[ReplacementAssignment],
        employees: Sequence[Employee],
    ) -> list[Notification]:
        notifications = [
            Notification(
                recipient_id=a.replacement_employee_id,
                notification_type="supervisor_replacement_assignment",
                message=(
                    f"You are covering supervision on {a.shift_date.isoformat()} "
                    f"({a.shift_type.value} shift)"
                ),
            )
            for a in assignments
            if a.is_covered
        ]

        teams = {s.team_id for s in request.affected_shifts if s.team_id}
        notifications.extend(
            Notification(
                recipient_id=e.id,
                notification_type="supervisor_change_notice",
                message="Your shift supervisor is changing; coordinate with the replacement",
            )
            for e in employees
            if e.team_id in teams and e.id != request.original_supervisor_id
        )
        return notifications

    @staticmethod
    def request_id(request: ReplacementRequest) -> str:
        """Stable identifier derived from the request contents."""
        digest = hashlib.sha1(
            "|".join(
                [request.original_supervisor_id]
                + [f"{s.date.isoformat()}:{s.shift_type.value}:{s.team_id}" for s in request.affected_shifts]
            ).encode("utf-8")
        ).hexdigest()[:8]
        return (
            f"SRR-{request.original_supervisor_id}-"
            f"{request.absence_start_date:%Y%m%d}-{request.absence_end_date:%Y%m%d}-{digest}"
        )
