"""Tests for pattern risk analysis."""

from datetime import date, timedelta

import pytest

from rotaguard.analysis.patterns import (
    ALTERNATING_CHAOS,
    DOUBLE_WITHOUT_REST,
    EXCESSIVE_NIGHTS,
    FATIGUE_ACCUMULATION,
    TRIPLE_SHIFT,
    WEEKEND_HEAVY,
    PatternRiskAnalyzer,
    PatternRiskConfig,
)
from rotaguard.domain.models import RiskLevel, Severity, ShiftRecord, ShiftType

CODES = {"D": ShiftType.DAY, "E": ShiftType.EVENING, "N": ShiftType.NIGHT, "O": ShiftType.OFF}


def _records(start: date, codes: str) -> list[ShiftRecord]:
    return [
        ShiftRecord(date=start + timedelta(days=i), shift_type=CODES[c])
        for i, c in enumerate(codes)
    ]


class TestPatternRiskAnalyzer:
    """Tests for PatternRiskAnalyzer."""

    @pytest.fixture
    def analyzer(self):
        return PatternRiskAnalyzer()

    def test_five_weekday_nights(self, analyzer, monday):
        analysis = analyzer.analyze_employee("E1", _records(monday, "NNNNN"))

        assert analysis.risk_score == 65.0
        assert analysis.risk_level == RiskLevel.HIGH
        issues = analysis.issues_of(EXCESSIVE_NIGHTS)
        assert len(issues) == 1
        assert len(issues[0].affected_dates) == 5
        assert analysis.pattern_code == "N-N-N-N-N"
        assert "Fix this pattern first in the next roster" in analysis.recommendations

    def test_analysis_is_idempotent(self, analyzer, monday):
        records = _records(monday, "DENODDNNNNOE")

        assert analyzer.analyze_employee("E1", records) == analyzer.analyze_employee("E1", records)

    def test_triple_shift(self, analyzer, monday):
        analysis = analyzer.analyze_employee("E1", _records(monday, "DEN"))

        assert [i.issue_type for i in analysis.detected_issues] == [TRIPLE_SHIFT]
        assert analysis.detected_issues[0].severity == Severity.CRITICAL
        assert analysis.risk_score == 40.0
        assert analysis.risk_level == RiskLevel.MEDIUM

    def test_off_day_breaks_triple(self, analyzer, monday):
        analysis = analyzer.analyze_employee("E1", _records(monday, "DEON"))
        assert analysis.issues_of(TRIPLE_SHIFT) == []

    def test_short_rest(self, analyzer, monday):
        analysis = analyzer.analyze_employee("E1", _records(monday, "ED"))
        issues = analysis.issues_of(DOUBLE_WITHOUT_REST)

        assert len(issues) == 1
        assert issues[0].severity == Severity.HIGH
        assert analysis.risk_score == 30.0

    def test_night_into_day_is_critical(self, analyzer, monday):
        issues = analyzer.analyze_employee("E1", _records(monday, "ND")).issues_of(DOUBLE_WITHOUT_REST)

        assert issues[0].severity == Severity.CRITICAL
        assert issues[0].weight == 45.0

    def test_alternating_chaos(self, analyzer, monday):
        analysis = analyzer.analyze_employee("E1", _records(monday, "DDDEEE"))

        assert len(analysis.issues_of(ALTERNATING_CHAOS)) == 0
        analysis = analyzer.analyze_employee("E1", _records(monday, "DENDEN"))
        assert len(analysis.issues_of(ALTERNATING_CHAOS)) == 1

    def test_weekend_heavy(self, analyzer):
        saturday = date(2024, 1, 6)
        records = _records(saturday, "DD") + _records(saturday + timedelta(days=7), "DD")
        analysis = analyzer.analyze_employee("E1", records)

        assert [i.issue_type for i in analysis.detected_issues] == [WEEKEND_HEAVY]
        assert analysis.risk_level == RiskLevel.LOW

    def test_long_night_block_is_critical(self, analyzer, monday):
        analysis = analyzer.analyze_employee("E1", _records(monday, "NNNNNNNN"))
        issues = analysis.issues_of(EXCESSIVE_NIGHTS)

        assert len(issues) == 1
        assert issues[0].severity == Severity.CRITICAL
        assert analysis.risk_score == 80.0
        assert analysis.risk_level == RiskLevel.CRITICAL

    def test_fatigue_accumulation(self, monday):
        config = PatternRiskConfig(fatigue_hours_ceiling=50.0)
        analyzer = PatternRiskAnalyzer(config)
        # Rest gaps shrink from 40h between nights to 16h between days
        analysis = analyzer.analyze_employee("E1", _records(monday, "NONONODDDD"))

        assert len(analysis.issues_of(FATIGUE_ACCUMULATION)) == 1

    def test_score_is_capped(self, analyzer, monday):
        analysis = analyzer.analyze_employee("E1", _records(monday, "DENDNDNNNNNNN"))

        assert analysis.risk_score == 100.0
        assert analysis.risk_level == RiskLevel.CRITICAL

    def test_lookback_window(self, monday):
        analyzer = PatternRiskAnalyzer(PatternRiskConfig(lookback_days=3))
        records = _records(monday, "NNNNNOOOOD")
        analysis = analyzer.analyze_employee("E1", records)

        assert analysis.detected_issues == []
        assert analysis.pattern_code == "O-O-O-D"

    def test_empty_records(self, analyzer):
        analysis = analyzer.analyze_employee("E1", [])

        assert analysis.risk_score == 0.0
        assert analysis.risk_level == RiskLevel.LOW
        assert analysis.pattern_code == ""


class TestTeamRiskSummary:
    """Tests for team aggregation."""

    def test_summary(self, monday):
        analyzer = PatternRiskAnalyzer()
        report = analyzer.analyze(
            {
                "calm": _records(monday, "DDODDO"),
                "nights": _records(monday, "NNNNN"),
                "critical": _records(monday, "NNNNNNNN"),
            }
        )
        summary = report.summary

        assert summary.total_employees == 3
        assert summary.risk_distribution[RiskLevel.LOW] == 1
        assert summary.risk_distribution[RiskLevel.HIGH] == 1
        assert summary.risk_distribution[RiskLevel.CRITICAL] == 1
        assert summary.risk_distribution[RiskLevel.MEDIUM] == 0
        assert summary.critical_employees == ["critical"]
        assert summary.team_risk_score == pytest.approx((0 + 65 + 80) / 3)
        assert summary.common_issues[0].issue_type == EXCESSIVE_NIGHTS
        assert summary.common_issues[0].employees == ("nights", "critical")
        assert summary.urgent_recommendations[0].startswith("1 employee(s) at critical risk")
