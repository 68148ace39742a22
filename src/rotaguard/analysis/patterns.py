"""Detection of risky shift sequences.

The analyzer scans one employee's ordered shift records for named
patterns, each contributing an additive weight to a 0-100 risk score.
It is a pure function of its input: analyzing the same records twice
yields identical results.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Mapping, Optional, Sequence

from rotaguard.domain.metrics import (
    CommonIssue,
    PatternIssue,
    PatternRiskAnalysis,
    PatternRiskReport,
    TeamRiskSummary,
)
from rotaguard.domain.models import RiskLevel, Severity, ShiftRecord, ShiftType
from rotaguard.domain.policies import DefaultWorkRulePolicy, WorkRulePolicy, is_weekend
from rotaguard.domain.timeline import EmployeeTimeline

logger = logging.getLogger(__name__)

TRIPLE_SHIFT = "consecutive_triple_shift"
ALTERNATING_CHAOS = "alternating_chaos"
DOUBLE_WITHOUT_REST = "double_without_rest"
EXCESSIVE_NIGHTS = "excessive_nights"
WEEKEND_HEAVY = "weekend_heavy"
FATIGUE_ACCUMULATION = "fatigue_accumulation"

RECOMMENDATIONS = {
    TRIPLE_SHIFT: (
        "Replace day-evening-night runs with blocks of one shift type",
        "Give two or three days on the same shift before rotating, then rest",
    ),
    ALTERNATING_CHAOS: (
        "Turn alternating shifts into a regular forward rotation",
        "Take the employee's preferred rotation length into account",
    ),
    DOUBLE_WITHOUT_REST: (
        "Restore the minimum rest period between shifts",
    ),
    EXCESSIVE_NIGHTS: (
        "Limit night runs to three in a row",
        "Guarantee at least two rest days after a night block",
    ),
    WEEKEND_HEAVY: (
        "Rotate weekend duty across the team",
    ),
    FATIGUE_ACCUMULATION: (
        "Reduce hours over the next two weeks",
        "Schedule a longer recovery break",
    ),
}

LEVEL_ADVICE = {
    RiskLevel.CRITICAL: "Rework the roster immediately: health risk",
    RiskLevel.HIGH: "Fix this pattern first in the next roster",
}


@dataclass
class PatternRiskConfig:
    """Configuration for pattern detection.

    Attributes:
        lookback_days: Days before as_of to analyze (None = all records).
        night_window_days: Window for counting night shifts.
        night_threshold: Nights in the window that start excessive_nights.
        alternating_window: Working shifts examined for alternation.
        alternating_min_changes: Type changes that make a window chaotic.
        alternating_span_days: Maximum calendar span of that window.
        fatigue_window_days: Window for cumulative hours.
        fatigue_hours_ceiling: Hours in that window that start fatigue risk.
        weekend_ratio_factor: Weekend ratio above this multiple of the
            weekday ratio is weekend-heavy.
        min_weekend_shifts: Weekend shifts needed before weekend-heavy applies.
        weights: Risk weight per issue type.
    """

    lookback_days: Optional[int] = None
    night_window_days: int = 7
    night_threshold: int = 4
    alternating_window: int = 5
    alternating_min_changes: int = 4
    alternating_span_days: int = 7
    fatigue_window_days: int = 14
    fatigue_hours_ceiling: float = 96.0
    weekend_ratio_factor: float = 2.0
    min_weekend_shifts: int = 2
    weights: dict[str, float] = field(
        default_factory=lambda: {
            TRIPLE_SHIFT: 40.0,
            ALTERNATING_CHAOS: 25.0,
            DOUBLE_WITHOUT_REST: 30.0,
            EXCESSIVE_NIGHTS: 60.0,
            WEEKEND_HEAVY: 15.0,
            FATIGUE_ACCUMULATION: 30.0,
        }
    )


class PatternRiskAnalyzer:
    """Classifies dangerous shift patterns into a 0-100 risk score.

    Example:
        >>> analyzer = PatternRiskAnalyzer()
        >>> analysis = analyzer.analyze_employee("e1", records)
        >>> analysis.risk_level
        <RiskLevel.HIGH: 'high'>
    """

    def __init__(
        self,
        config: Optional[PatternRiskConfig] = None,
        policy: Optional[WorkRulePolicy] = None,
    ):
        self.config = config or PatternRiskConfig()
        self.policy = policy or DefaultWorkRulePolicy()

    def analyze(
        self,
        histories: Mapping[str, Sequence[ShiftRecord]],
        as_of: Optional[date] = None,
    ) -> PatternRiskReport:
        """Analyze every employee and summarize the team."""
        analyses = [
            self.analyze_employee(emp_id, records, as_of)
            for emp_id, records in histories.items()
        ]
        return PatternRiskReport(analyses=analyses, summary=self.analyze_team(analyses))

    def analyze_employee(
        self,
        employee_id: str,
        records: Sequence[ShiftRecord],
        as_of: Optional[date] = None,
    ) -> PatternRiskAnalysis:
        """Risk analysis of one employee's shift sequence.

        Args:
            employee_id: Employee the records belong to.
            records: Shift records in any order; one per date is used,
                the last one given for a date wins.
            as_of: End of the lookback window (defaults to the last record).

        Returns:
            PatternRiskAnalysis with score, level, issues and advice.
        """
        ordered = self._prepare(records, as_of)

        issues: list[PatternIssue] = []
        issues.extend(self._detect_triple_shifts(ordered))
        issues.extend(self._detect_alternating(ordered))
        issues.extend(self._detect_short_rest(employee_id, ordered))
        issues.extend(self._detect_excessive_nights(ordered))
        issues.extend(self._detect_weekend_heavy(ordered))
        issues.extend(self._detect_fatigue_accumulation(employee_id, ordered))

        score = min(100.0, sum(i.weight for i in issues))
        level = RiskLevel.from_score(score)
        if issues:
            logger.debug(
                "%s: risk %.0f (%s) from %s",
                employee_id,
                score,
                level.value,
                ", ".join(i.issue_type for i in issues),
            )

        return PatternRiskAnalysis(
            employee_id=employee_id,
            risk_score=score,
            risk_level=level,
            detected_issues=issues,
            recommendations=self._recommendations(issues, level),
            pattern_code="-".join(r.effective_shift.code for r in ordered),
        )

    def analyze_team(self, analyses: Sequence[PatternRiskAnalysis]) -> TeamRiskSummary:
        """Aggregate individual analyses into a team summary."""
        distribution = {level: 0 for level in RiskLevel}
        for a in analyses:
            distribution[a.risk_level] += 1

        issue_employees: dict[str, list[str]] = {}
        issue_counts: dict[str, int] = {}
        for a in analyses:
            for issue in a.detected_issues:
                issue_counts[issue.issue_type] = issue_counts.get(issue.issue_type, 0) + 1
                employees = issue_employees.setdefault(issue.issue_type, [])
                if a.employee_id not in employees:
                    employees.append(a.employee_id)
        common = sorted(
            (
                CommonIssue(issue_type=t, count=issue_counts[t], employees=tuple(issue_employees[t]))
                for t in issue_counts
            ),
            key=lambda c: -c.count,
        )

        urgent = []
        critical_count = distribution[RiskLevel.CRITICAL]
        if critical_count:
            urgent.append(f"{critical_count} employee(s) at critical risk: rework rosters now")
        if analyses and distribution[RiskLevel.HIGH] >= len(analyses) * 0.3:
            urgent.append("30% or more of the team is at high risk: review the rostering policy")
        for a in analyses:
            for issue in a.detected_issues:
                if issue.severity in (Severity.HIGH, Severity.CRITICAL):
                    urgent.append(f"{a.employee_id}: {issue.description}")

        team_score = sum(a.risk_score for a in analyses) / len(analyses) if analyses else 0.0
        logger.info(
            "Team pattern risk %.1f over %d employees (%d critical)",
            team_score,
            len(analyses),
            critical_count,
        )
        return TeamRiskSummary(
            total_employees=len(analyses),
            risk_distribution=distribution,
            team_risk_score=team_score,
            critical_employees=[a.employee_id for a in analyses if a.risk_level is RiskLevel.CRITICAL],
            common_issues=common,
            urgent_recommendations=urgent,
        )

    def _prepare(self, records: Sequence[ShiftRecord], as_of: Optional[date]) -> list[ShiftRecord]:
        by_date = {r.date: r for r in records}
        ordered = [by_date[d] for d in sorted(by_date)]
        if self.config.lookback_days is not None and ordered:
            end = as_of or ordered[-1].date
            start = end - timedelta(days=self.config.lookback_days)
            ordered = [r for r in ordered if start <= r.date <= end]
        elif as_of is not None:
            ordered = [r for r in ordered if r.date <= as_of]
        return ordered

    def _issue(
        self,
        issue_type: str,
        severity: Severity,
        dates: Sequence[date],
        description: str,
        weight: Optional[float] = None,
    ) -> PatternIssue:
        return PatternIssue(
            issue_type=issue_type,
            severity=severity,
            affected_dates=tuple(dates),
            description=description,
            weight=self.config.weights.get(issue_type, 0.0) if weight is None else weight,
        )

    def _detect_triple_shifts(self, ordered: list[ShiftRecord]) -> list[PatternIssue]:
        """Three working shifts of three different types on consecutive dates."""
        issues = []
        for first, second, third in zip(ordered, ordered[1:], ordered[2:]):
            if (third.date - first.date).days != 2:
                continue
            if not (first.is_working and second.is_working and third.is_working):
                continue
            if len({first.shift_type, second.shift_type, third.shift_type}) == 3:
                codes = "".join(r.shift_type.code for r in (first, second, third))
                issues.append(
                    self._issue(
                        TRIPLE_SHIFT,
                        Severity.CRITICAL,
                        [first.date, second.date, third.date],
                        f"Three different shifts on consecutive days ({codes}) "
                        f"from {first.date.isoformat()}",
                    )
                )
        return issues

    def _detect_alternating(self, ordered: list[ShiftRecord]) -> list[PatternIssue]:
        """Shift type changing on most of a short run of working shifts."""
        cfg = self.config
        worked = [r for r in ordered if r.is_working]
        issues = []
        i = 0
        while i + cfg.alternating_window <= len(worked):
            window = worked[i:i + cfg.alternating_window]
            span = (window[-1].date - window[0].date).days + 1
            if span <= cfg.alternating_span_days:
                previous = worked[i - 1].shift_type if i > 0 else None
                changes = 0
                for r in window:
                    if previous is not None and r.shift_type is not previous:
                        changes += 1
                    previous = r.shift_type
                if changes >= cfg.alternating_min_changes:
                    issues.append(
                        self._issue(
                            ALTERNATING_CHAOS,
                            Severity.HIGH,
                            [r.date for r in window],
                            f"{changes} shift type changes over {len(window)} shifts "
                            f"from {window[0].date.isoformat()}",
                        )
                    )
                    # Windows must not overlap or one run is counted repeatedly
                    i += cfg.alternating_window
                    continue
            i += 1
        return issues

    def _detect_short_rest(self, employee_id: str, ordered: list[ShiftRecord]) -> list[PatternIssue]:
        """Back-to-back shifts with less than the legal minimum rest."""
        timeline = EmployeeTimeline.from_records(employee_id, ordered)
        minimum = self.policy.min_rest_hours()
        issues = []
        for first, second, gap in timeline.rest_gaps(self.policy):
            if gap >= minimum:
                continue
            overlapping = gap <= 0
            issues.append(
                self._issue(
                    DOUBLE_WITHOUT_REST,
                    Severity.CRITICAL if overlapping else Severity.HIGH,
                    [first, second],
                    f"Only {gap:.0f}h between shifts on {first.isoformat()} "
                    f"and {second.isoformat()} (minimum {minimum:.0f}h)",
                    weight=45.0 if overlapping else None,
                )
            )
        return issues

    def _detect_excessive_nights(self, ordered: list[ShiftRecord]) -> list[PatternIssue]:
        """Night clusters with at least night_threshold nights in a window."""
        cfg = self.config
        nights = [r.date for r in ordered if r.effective_shift is ShiftType.NIGHT]
        window = timedelta(days=cfg.night_window_days - 1)

        # Merge every qualifying window into clusters of overlapping windows
        clusters: list[list[date]] = []
        for start in nights:
            in_window = [d for d in nights if start <= d <= start + window]
            if len(in_window) < cfg.night_threshold:
                continue
            if clusters and in_window[0] <= clusters[-1][-1]:
                clusters[-1] = sorted(set(clusters[-1]) | set(in_window))
            else:
                clusters.append(in_window)

        issues = []
        base = cfg.weights.get(EXCESSIVE_NIGHTS, 0.0)
        for cluster in clusters:
            count = len(cluster)
            issues.append(
                self._issue(
                    EXCESSIVE_NIGHTS,
                    Severity.CRITICAL if count >= 6 else Severity.HIGH,
                    cluster,
                    f"{count} night shifts between {cluster[0].isoformat()} "
                    f"and {cluster[-1].isoformat()}",
                    weight=base + 5.0 * (count - cfg.night_threshold),
                )
            )
        return issues

    def _detect_weekend_heavy(self, ordered: list[ShiftRecord]) -> list[PatternIssue]:
        """Weekends worked far more often than weekdays.

        Dates inside the covered span without a record count as rest days.
        """
        cfg = self.config
        if not ordered:
            return []
        worked = {r.date for r in ordered if r.is_working}
        weekend_days = weekday_days = weekend_worked = weekday_worked = 0
        current = ordered[0].date
        while current <= ordered[-1].date:
            if is_weekend(current):
                weekend_days += 1
                weekend_worked += current in worked
            else:
                weekday_days += 1
                weekday_worked += current in worked
            current += timedelta(days=1)

        if weekend_worked < cfg.min_weekend_shifts or weekend_days == 0:
            return []
        weekend_ratio = weekend_worked / weekend_days
        weekday_ratio = weekday_worked / weekday_days if weekday_days else 0.0
        if weekend_ratio <= cfg.weekend_ratio_factor * weekday_ratio:
            return []
        return [
            self._issue(
                WEEKEND_HEAVY,
                Severity.MEDIUM,
                sorted(d for d in worked if is_weekend(d)),
                f"Works {weekend_ratio:.0%} of weekend days but {weekday_ratio:.0%} of weekdays",
            )
        ]

    def _detect_fatigue_accumulation(
        self, employee_id: str, ordered: list[ShiftRecord]
    ) -> list[PatternIssue]:
        """High cumulative hours in a window while rest gaps keep shrinking."""
        cfg = self.config
        timeline = EmployeeTimeline.from_records(employee_id, ordered)
        gaps = timeline.rest_gaps(self.policy)
        span = timedelta(days=cfg.fatigue_window_days - 1)

        issues = []
        last_flagged: Optional[date] = None
        for end in timeline.working_dates():
            if last_flagged is not None and end <= last_flagged + span:
                continue
            start = end - span
            hours = timeline.hours_between(start, end, self.policy)
            if hours <= cfg.fatigue_hours_ceiling:
                continue
            window_gaps = [g for first, second, g in gaps if start <= first and second <= end]
            if not _declining(window_gaps):
                continue
            issues.append(
                self._issue(
                    FATIGUE_ACCUMULATION,
                    Severity.HIGH,
                    [d for d in timeline.working_dates() if start <= d <= end],
                    f"{hours:.0f}h worked in {cfg.fatigue_window_days} days to "
                    f"{end.isoformat()} with shrinking rest",
                )
            )
            last_flagged = end
        return issues

    def _recommendations(self, issues: list[PatternIssue], level: RiskLevel) -> list[str]:
        recommendations: list[str] = []
        for issue in issues:
            for text in RECOMMENDATIONS.get(issue.issue_type, ()):
                if text not in recommendations:
                    recommendations.append(text)
        if level in LEVEL_ADVICE:
            recommendations.append(LEVEL_ADVICE[level])
        return recommendations


def _declining(gaps: Sequence[float]) -> bool:
    """True when the later half of the rest gaps is shorter on average."""
    if len(gaps) < 2:
        return False
    half = len(gaps) // 2
    earlier = gaps[:half]
    later = gaps[len(gaps) - half:]
    return sum(later) / len(later) < sum(earlier) / len(earlier)
