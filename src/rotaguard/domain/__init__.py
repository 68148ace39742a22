"""Domain models and working-time rules for rostering."""

from rotaguard.domain.metrics import (
    FairnessMetrics,
    FairnessReport,
    PatternIssue,
    PatternRiskAnalysis,
    PatternRiskReport,
    ProblemArea,
    TeamAverages,
    TeamFairnessAnalysis,
    TeamRiskSummary,
)
from rotaguard.domain.models import (
    ConfigurationError,
    Employee,
    FairnessGrade,
    GenerationOptions,
    HierarchyLevel,
    RiskLevel,
    RosterSnapshot,
    ScheduleGenerationResult,
    Severity,
    ShiftAssignment,
    ShiftRecord,
    ShiftType,
    StaffingRequirement,
)
from rotaguard.domain.policies import DefaultWorkRulePolicy, WorkRulePolicy
from rotaguard.domain.replacement import (
    AffectedShift,
    AvailabilityStatus,
    ReplacementCandidate,
    ReplacementPlan,
    ReplacementRequest,
    ReplacementType,
    UrgencyLevel,
)
from rotaguard.domain.timeline import EmployeeTimeline, HardConstraint

__all__ = [
    # Models
    "ConfigurationError",
    "Employee",
    "FairnessGrade",
    "GenerationOptions",
    "HierarchyLevel",
    "RiskLevel",
    "RosterSnapshot",
    "ScheduleGenerationResult",
    "Severity",
    "ShiftAssignment",
    "ShiftRecord",
    "ShiftType",
    "StaffingRequirement",
    # Analysis records
    "FairnessMetrics",
    "FairnessReport",
    "PatternIssue",
    "PatternRiskAnalysis",
    "PatternRiskReport",
    "ProblemArea",
    "TeamAverages",
    "TeamFairnessAnalysis",
    "TeamRiskSummary",
    # Replacement records
    "AffectedShift",
    "AvailabilityStatus",
    "ReplacementCandidate",
    "ReplacementPlan",
    "ReplacementRequest",
    "ReplacementType",
    "UrgencyLevel",
    # Policies
    "DefaultWorkRulePolicy",
    "WorkRulePolicy",
    # Timeline
    "EmployeeTimeline",
    "HardConstraint",
]
