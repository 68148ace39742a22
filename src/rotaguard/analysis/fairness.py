"""Fairness analysis over historical or generated rosters.

Each employee is compared against the team mean on three axes (burden,
opportunity and health), and the team as a whole is measured with Gini
coefficients, standard deviations and ranges per burden category.
"""

import logging
from dataclasses import dataclass, field
from typing import Mapping, Optional, Sequence

from rotaguard.domain.metrics import (
    BurdenDistribution,
    FairnessMetrics,
    FairnessReport,
    HealthEquity,
    ImprovementPriority,
    InequalityMetrics,
    OpportunityDistribution,
    ProblemArea,
    RangeSummary,
    TeamAverages,
    TeamFairnessAnalysis,
)
from rotaguard.domain.models import (
    ConfigurationError,
    FairnessGrade,
    Severity,
    ShiftRecord,
    ShiftType,
    clamp,
)
from rotaguard.domain.policies import DefaultWorkRulePolicy, WorkRulePolicy, is_weekend

logger = logging.getLogger(__name__)

NIGHT_SHIFTS = "night_shifts"
WEEKEND_SHIFTS = "weekend_shifts"
WORK_HOURS = "work_hours"
PREFERRED_SHIFTS = "preferred_shifts"
CATEGORIES = (NIGHT_SHIFTS, WEEKEND_SHIFTS, WORK_HOURS, PREFERRED_SHIFTS)

_PROBLEM_AREAS = {
    NIGHT_SHIFTS: (
        "night_shift_inequality",
        "Night shifts differ by {range:g} between employees",
        (
            "Adjust the night rotation cycle",
            "Set a per-employee night shift ceiling",
            "Rebalance nights in the next roster",
        ),
    ),
    WEEKEND_SHIFTS: (
        "weekend_shift_inequality",
        "Weekend shifts differ by {range:g} between employees",
        (
            "Review the weekend rotation rules",
            "Consider weekend allowance or compensatory leave",
        ),
    ),
    WORK_HOURS: (
        "work_hours_inequality",
        "Worked hours differ by {range:g}h between employees",
        (
            "Level contracted hours across the team",
            "Offer open shifts to employees below the mean first",
        ),
    ),
    PREFERRED_SHIFTS: (
        "preferred_shift_inequality",
        "Preferred shifts granted differ by {range:g} between employees",
        (
            "Rotate who gets preference priority",
            "Review preference patterns that are never satisfiable",
        ),
    ),
}

# Per-shift strain used by the health fatigue index
_SHIFT_STRAIN = {
    ShiftType.DAY: 1.0,
    ShiftType.EVENING: 2.0,
    ShiftType.NIGHT: 3.0,
}


def _default_dispersion_limits() -> dict[str, float]:
    return {
        NIGHT_SHIFTS: 2.0,
        WEEKEND_SHIFTS: 2.0,
        WORK_HOURS: 16.0,
        PREFERRED_SHIFTS: 2.0,
    }


@dataclass
class FairnessConfig:
    """Configuration for fairness scoring.

    Attributes:
        night_tolerance: Night-count deviation that halves the night score.
        weekend_tolerance: Weekend-count deviation that halves the weekend score.
        preferred_ratio_tolerance: Preferred-ratio deviation that halves
            the opportunity score.
        hours_tolerance: Hours deviation that halves the health score.
        burden_weight: Weight of burden fairness in the overall score.
        opportunity_weight: Weight of opportunity fairness.
        health_weight: Weight of health fairness.
        dangerous_pattern_penalty: Health points lost per dangerous pattern.
        fatigue_penalty: Health points lost per unit of fatigue index.
        gini_threshold: Problem area threshold on the 0-100 Gini scale.
        dispersion_limits: Standard deviation that raises a problem area,
            per category.
    """

    night_tolerance: float = 1.0
    weekend_tolerance: float = 1.0
    preferred_ratio_tolerance: float = 0.1
    hours_tolerance: float = 8.0
    burden_weight: float = 1.0
    opportunity_weight: float = 1.0
    health_weight: float = 1.0
    dangerous_pattern_penalty: float = 10.0
    fatigue_penalty: float = 5.0
    gini_threshold: float = 50.0
    dispersion_limits: dict[str, float] = field(default_factory=_default_dispersion_limits)


def gini_coefficient(values: Sequence[float]) -> float:
    """Discrete Gini coefficient of non-negative values, in [0, 1].

    G = 2 * sum(i * x_i) / (n * sum(x)) - (n + 1) / n over ascending x_i
    with 1-based rank i. Empty or all-zero input is perfectly equal.
    """
    n = len(values)
    total = sum(values)
    if n == 0 or total <= 0:
        return 0.0
    ordered = sorted(values)
    weighted = sum(i * x for i, x in enumerate(ordered, start=1))
    return clamp(2 * weighted / (n * total) - (n + 1) / n, 0.0, 1.0)


def standard_deviation(values: Sequence[float]) -> float:
    """Population standard deviation."""
    if not values:
        return 0.0
    mean = sum(values) / len(values)
    return (sum((v - mean) ** 2 for v in values) / len(values)) ** 0.5


def closeness_score(value: float, mean: float, tolerance: float) -> float:
    """Map a deviation from the mean onto (0, 100]; 100 at the mean."""
    if tolerance <= 0:
        return 100.0 if value == mean else 0.0
    return 100.0 / (1.0 + abs(value - mean) / tolerance)


class FairnessAnalyzer:
    """Measures how evenly burden and opportunity are spread over a team.

    Example:
        >>> analyzer = FairnessAnalyzer()
        >>> report = analyzer.analyze(result.to_records())
        >>> report.team.fairness_grade
        <FairnessGrade.GOOD: 'good'>
    """

    def __init__(
        self,
        config: Optional[FairnessConfig] = None,
        policy: Optional[WorkRulePolicy] = None,
    ):
        self.config = config or FairnessConfig()
        self.policy = policy or DefaultWorkRulePolicy()

    def analyze(
        self,
        histories: Mapping[str, Sequence[ShiftRecord]],
        team_averages: Optional[TeamAverages] = None,
        team_id: Optional[str] = None,
    ) -> FairnessReport:
        """Per-employee metrics and the team analysis for one period.

        Args:
            histories: Shift records per employee ID.
            team_averages: Precomputed team means; derived from histories
                when omitted.
            team_id: Team identifier carried into the team analysis.

        Raises:
            ConfigurationError: No employees were supplied.
        """
        if not histories:
            raise ConfigurationError("No employee histories supplied")
        averages = team_averages or self.team_averages(histories)
        metrics = [
            self.analyze_employee(emp_id, records, averages)
            for emp_id, records in histories.items()
        ]
        team = self.analyze_team(metrics, team_id=team_id)
        return FairnessReport(employee_metrics=metrics, team=team)

    def team_averages(self, histories: Mapping[str, Sequence[ShiftRecord]]) -> TeamAverages:
        """Team means the per-employee sub-scores are measured against."""
        if not histories:
            return TeamAverages()
        burdens = [self._burden(records) for records in histories.values()]
        opportunities = [self._opportunity(records) for records in histories.values()]
        n = len(burdens)
        return TeamAverages(
            avg_night_shifts=sum(b.night_shifts_count for b in burdens) / n,
            avg_weekend_shifts=sum(b.weekend_shifts_count for b in burdens) / n,
            avg_work_hours=sum(b.total_work_hours for b in burdens) / n,
            avg_preferred_ratio=sum(o.preferred_ratio for o in opportunities) / n,
        )

    def analyze_employee(
        self,
        employee_id: str,
        records: Sequence[ShiftRecord],
        team_averages: TeamAverages,
    ) -> FairnessMetrics:
        """Fairness metrics of one employee relative to the team means."""
        cfg = self.config
        burden = self._burden(records)
        opportunity = self._opportunity(records)
        health = self._health(records)

        burden_fairness = (
            closeness_score(burden.night_shifts_count, team_averages.avg_night_shifts, cfg.night_tolerance)
            + closeness_score(
                burden.weekend_shifts_count, team_averages.avg_weekend_shifts, cfg.weekend_tolerance
            )
        ) / 2
        opportunity_fairness = closeness_score(
            opportunity.preferred_ratio,
            team_averages.avg_preferred_ratio,
            cfg.preferred_ratio_tolerance,
        )
        health_fairness = clamp(
            closeness_score(burden.total_work_hours, team_averages.avg_work_hours, cfg.hours_tolerance)
            - health.dangerous_patterns_count * cfg.dangerous_pattern_penalty
            - health.fatigue_score_avg * cfg.fatigue_penalty,
            0.0,
            100.0,
        )

        weights = (cfg.burden_weight, cfg.opportunity_weight, cfg.health_weight)
        total_weight = sum(weights)
        if total_weight > 0:
            overall = (
                burden_fairness * weights[0]
                + opportunity_fairness * weights[1]
                + health_fairness * weights[2]
            ) / total_weight
        else:
            overall = (burden_fairness + opportunity_fairness + health_fairness) / 3

        return FairnessMetrics(
            employee_id=employee_id,
            burden=burden,
            opportunity=opportunity,
            health=health,
            burden_fairness=clamp(burden_fairness, 0.0, 100.0),
            opportunity_fairness=clamp(opportunity_fairness, 0.0, 100.0),
            health_fairness=health_fairness,
            overall_fairness=clamp(overall, 0.0, 100.0),
        )

    def analyze_team(
        self,
        metrics: Sequence[FairnessMetrics],
        team_id: Optional[str] = None,
    ) -> TeamFairnessAnalysis:
        """Inequality, grade, problem areas and improvement priorities."""
        if not metrics:
            raise ConfigurationError("No employee metrics supplied")

        values = self._category_values(metrics)
        inequality = InequalityMetrics(
            gini_coefficient={c: gini_coefficient(v) for c, v in values.items()},
            standard_deviation={c: standard_deviation(v) for c, v in values.items()},
            range_analysis={
                c: RangeSummary(min=min(v), max=max(v)) for c, v in values.items()
            },
        )

        score = clamp(
            0.5 * (1 - inequality.gini_coefficient[NIGHT_SHIFTS]) * 100
            + 0.3 * max(0.0, 100 - 20 * inequality.standard_deviation[NIGHT_SHIFTS])
            + 0.2 * max(0.0, 100 - 25 * inequality.standard_deviation[WEEKEND_SHIFTS]),
            0.0,
            100.0,
        )

        problems = self._problem_areas(metrics, values, inequality)
        analysis = TeamFairnessAnalysis(
            total_employees=len(metrics),
            inequality_metrics=inequality,
            fairness_score=score,
            fairness_grade=FairnessGrade.from_score(score),
            problem_areas=problems,
            improvement_priorities=self._improvement_priorities(problems, inequality),
            team_id=team_id,
        )
        logger.info(
            "Team fairness %.1f (%s), %d problem areas",
            score,
            analysis.fairness_grade.value,
            len(problems),
        )
        return analysis

    def _category_values(self, metrics: Sequence[FairnessMetrics]) -> dict[str, list[float]]:
        return {
            NIGHT_SHIFTS: [m.burden.night_shifts_count for m in metrics],
            WEEKEND_SHIFTS: [m.burden.weekend_shifts_count for m in metrics],
            WORK_HOURS: [m.burden.total_work_hours for m in metrics],
            PREFERRED_SHIFTS: [m.opportunity.preferred_shifts_count for m in metrics],
        }

    def _problem_areas(
        self,
        metrics: Sequence[FairnessMetrics],
        values: dict[str, list[float]],
        inequality: InequalityMetrics,
    ) -> list[ProblemArea]:
        problems = []
        for category in CATEGORIES:
            gini_pct = inequality.gini_coefficient[category] * 100
            sigma = inequality.standard_deviation[category]
            limit = self.config.dispersion_limits.get(category)
            over_gini = gini_pct > self.config.gini_threshold
            over_sigma = limit is not None and sigma > limit
            if not (over_gini or over_sigma):
                continue

            spread = inequality.range_analysis[category]
            if gini_pct >= 70:
                severity = Severity.CRITICAL
            elif gini_pct >= 50:
                severity = Severity.HIGH
            else:
                severity = Severity.MEDIUM
            if severity is Severity.MEDIUM and spread.range > 5:
                severity = Severity.HIGH

            cutoff = spread.min + spread.range * 0.8
            affected = tuple(
                m.employee_id for m, v in zip(metrics, values[category]) if v > cutoff
            )
            area, description, recommendations = _PROBLEM_AREAS[category]
            problems.append(
                ProblemArea(
                    area=area,
                    category=category,
                    severity=severity,
                    inequality=gini_pct,
                    affected_employees=affected,
                    description=description.format(range=spread.range),
                    recommendations=recommendations,
                )
            )
            logger.debug("Problem area %s (%s): gini %.1f, sd %.2f", area, severity.value, gini_pct, sigma)

        problems.sort(key=lambda p: -p.severity.rank)
        return problems

    def _improvement_priorities(
        self,
        problems: list[ProblemArea],
        inequality: InequalityMetrics,
    ) -> list[ImprovementPriority]:
        """Problem areas ranked by severity, then by estimated score gain."""
        scored = []
        for problem in problems:
            sigma = inequality.standard_deviation[problem.category]
            limit = self.config.dispersion_limits.get(problem.category, sigma)
            impact = min(20.0, problem.inequality / 5 + max(0.0, sigma - limit) * 5)
            scored.append((problem, round(impact, 1)))
        scored.sort(key=lambda pair: (-pair[0].severity.rank, -pair[1]))
        return [
            ImprovementPriority(
                priority=rank,
                area=problem.area,
                action=problem.recommendations[0],
                expected_impact=impact,
                target_employees=problem.affected_employees,
            )
            for rank, (problem, impact) in enumerate(scored, start=1)
        ]

    def _burden(self, records: Sequence[ShiftRecord]) -> BurdenDistribution:
        worked = [r for r in records if r.is_working]
        return BurdenDistribution(
            night_shifts_count=sum(1 for r in worked if r.shift_type is ShiftType.NIGHT),
            weekend_shifts_count=sum(1 for r in worked if is_weekend(r.date)),
            consecutive_work_days_avg=_average(_streaks(records, working=True)),
            unwanted_shifts_count=sum(1 for r in worked if r.is_preferred is False),
            total_work_hours=sum(self.policy.shift_hours(r.shift_type) for r in worked),
        )

    def _opportunity(self, records: Sequence[ShiftRecord]) -> OpportunityDistribution:
        worked = [r for r in records if r.is_working]
        preferred = sum(1 for r in worked if r.is_preferred is True)
        return OpportunityDistribution(
            preferred_shifts_count=preferred,
            preferred_ratio=preferred / len(worked) if worked else 0.0,
            weekend_off_count=sum(1 for r in records if not r.is_working and is_weekend(r.date)),
            day_shifts_ratio=(
                sum(1 for r in worked if r.shift_type is ShiftType.DAY) / len(worked)
                if worked
                else 0.0
            ),
        )

    def _health(self, records: Sequence[ShiftRecord]) -> HealthEquity:
        ordered = sorted(records, key=lambda r: r.date)

        # Fatigue index: strain per shift, rising after three straight
        # working days, recovering one point per rest day
        fatigue = 0.0
        streak = 0
        for r in ordered:
            if r.is_working:
                streak += 1
                fatigue += _SHIFT_STRAIN[r.shift_type] + max(0, streak - 3) * 0.5
            else:
                streak = 0
                fatigue = max(0.0, fatigue - 1)

        # Completed rest periods only: a trailing run of rest days is still open
        rest_streaks = _streaks(ordered, working=False)
        if ordered and not ordered[-1].is_working and rest_streaks:
            rest_streaks = rest_streaks[:-1]

        return HealthEquity(
            fatigue_score_avg=fatigue / len(ordered) if ordered else 0.0,
            dangerous_patterns_count=_dangerous_patterns(ordered),
            recovery_time_avg=_average(rest_streaks),
        )


def _streaks(records: Sequence[ShiftRecord], working: bool) -> list[int]:
    """Lengths of runs of consecutive-date records that are (not) working."""
    runs = []
    current = 0
    previous = None
    for r in sorted(records, key=lambda r: r.date):
        matches = r.is_working == working
        contiguous = previous is not None and (r.date - previous).days == 1
        if matches and (current == 0 or contiguous):
            current += 1
        elif matches:
            runs.append(current)
            current = 1
        else:
            if current:
                runs.append(current)
            current = 0
        previous = r.date
    if current:
        runs.append(current)
    return runs


def _dangerous_patterns(ordered: Sequence[ShiftRecord]) -> int:
    """Nights from the fourth of a run onward plus day-evening-night triples."""
    count = 0
    nights = 0
    previous = None
    for r in ordered:
        contiguous = previous is not None and (r.date - previous).days == 1
        if r.effective_shift is ShiftType.NIGHT:
            nights = nights + 1 if contiguous else 1
            if nights >= 4:
                count += 1
        else:
            nights = 0
        previous = r.date

    triple = {ShiftType.DAY, ShiftType.EVENING, ShiftType.NIGHT}
    for first, second, third in zip(ordered, ordered[1:], ordered[2:]):
        if (third.date - first.date).days != 2:
            continue
        if {first.effective_shift, second.effective_shift, third.effective_shift} == triple:
            count += 1
    return count


def _average(values: Sequence[float]) -> float:
    return sum(values) / len(values) if values else 0.0
