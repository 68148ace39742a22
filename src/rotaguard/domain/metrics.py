"""Result records produced by the fairness and pattern risk analyzers."""

from dataclasses import dataclass, field
from datetime import date
from typing import Optional

from rotaguard.domain.models import FairnessGrade, RiskLevel, Severity


@dataclass(frozen=True)
class TeamAverages:
    """Precomputed team means the fairness sub-scores are measured against."""

    avg_night_shifts: float = 0.0
    avg_weekend_shifts: float = 0.0
    avg_work_hours: float = 0.0
    avg_preferred_ratio: float = 0.0


@dataclass(frozen=True)
class BurdenDistribution:
    night_shifts_count: int = 0
    weekend_shifts_count: int = 0
    consecutive_work_days_avg: float = 0.0
    unwanted_shifts_count: int = 0
    total_work_hours: float = 0.0


@dataclass(frozen=True)
class OpportunityDistribution:
    preferred_shifts_count: int = 0
    preferred_ratio: float = 0.0
    weekend_off_count: int = 0
    day_shifts_ratio: float = 0.0


@dataclass(frozen=True)
class HealthEquity:
    fatigue_score_avg: float = 0.0
    dangerous_patterns_count: int = 0
    recovery_time_avg: float = 0.0


@dataclass(frozen=True)
class FairnessMetrics:
    """Per-employee equity snapshot.

    All fairness scores are in [0, 100]; overall_fairness is the
    configured weighted average of the three sub-scores.
    """

    employee_id: str
    burden: BurdenDistribution
    opportunity: OpportunityDistribution
    health: HealthEquity
    burden_fairness: float
    opportunity_fairness: float
    health_fairness: float
    overall_fairness: float


@dataclass(frozen=True)
class RangeSummary:
    min: float = 0.0
    max: float = 0.0

    @property
    def range(self) -> float:
        return self.max - self.min


@dataclass(frozen=True)
class InequalityMetrics:
    """Team inequality per burden category, keyed by category name."""

    gini_coefficient: dict[str, float] = field(default_factory=dict)
    standard_deviation: dict[str, float] = field(default_factory=dict)
    range_analysis: dict[str, RangeSummary] = field(default_factory=dict)


@dataclass(frozen=True)
class ProblemArea:
    area: str
    category: str
    severity: Severity
    inequality: float
    affected_employees: tuple[str, ...]
    description: str
    recommendations: tuple[str, ...]


@dataclass(frozen=True)
class ImprovementPriority:
    priority: int
    area: str
    action: str
    expected_impact: float
    target_employees: tuple[str, ...] = ()


@dataclass
class TeamFairnessAnalysis:
    """Aggregate fairness over a team."""

    total_employees: int
    inequality_metrics: InequalityMetrics
    fairness_score: float
    fairness_grade: FairnessGrade
    problem_areas: list[ProblemArea] = field(default_factory=list)
    improvement_priorities: list[ImprovementPriority] = field(default_factory=list)
    team_id: Optional[str] = None

    def problem(self, area: str) -> Optional[ProblemArea]:
        """Problem area by name, if raised."""
        for p in self.problem_areas:
            if p.area == area:
                return p
        return None


@dataclass
class FairnessReport:
    """Everything the fairness analyzer returns for one period."""

    employee_metrics: list[FairnessMetrics]
    team: TeamFairnessAnalysis

    def for_employee(self, employee_id: str) -> Optional[FairnessMetrics]:
        for m in self.employee_metrics:
            if m.employee_id == employee_id:
                return m
        return None


@dataclass(frozen=True)
class PatternIssue:
    """A detected risky shift pattern.

    Attributes:
        issue_type: Pattern name (e.g., "excessive_nights").
        severity: How dangerous the occurrence is.
        affected_dates: Dates making up the occurrence.
        description: Human-readable explanation.
        weight: Contribution to the risk score.
    """

    issue_type: str
    severity: Severity
    affected_dates: tuple[date, ...]
    description: str
    weight: float


@dataclass
class PatternRiskAnalysis:
    """Per-employee risk snapshot over a lookback window."""

    employee_id: str
    risk_score: float
    risk_level: RiskLevel
    detected_issues: list[PatternIssue] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
    pattern_code: str = ""

    def issues_of(self, issue_type: str) -> list[PatternIssue]:
        return [i for i in self.detected_issues if i.issue_type == issue_type]


@dataclass(frozen=True)
class CommonIssue:
    issue_type: str
    count: int
    employees: tuple[str, ...]


@dataclass
class TeamRiskSummary:
    """Risk aggregated over a team."""

    total_employees: int
    risk_distribution: dict[RiskLevel, int]
    team_risk_score: float
    critical_employees: list[str] = field(default_factory=list)
    common_issues: list[CommonIssue] = field(default_factory=list)
    urgent_recommendations: list[str] = field(default_factory=list)


@dataclass
class PatternRiskReport:
    analyses: list[PatternRiskAnalysis]
    summary: TeamRiskSummary
