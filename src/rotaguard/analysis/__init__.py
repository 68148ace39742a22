"""Fairness and pattern risk analysis of rosters."""

from rotaguard.analysis.fairness import FairnessAnalyzer, FairnessConfig, gini_coefficient
from rotaguard.analysis.patterns import PatternRiskAnalyzer, PatternRiskConfig

__all__ = [
    "FairnessAnalyzer",
    "FairnessConfig",
    "PatternRiskAnalyzer",
    "PatternRiskConfig",
    "gini_coefficient",
]
