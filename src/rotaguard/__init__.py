"""Hierarchy-aware shift rostering: generation, fairness, pattern risk and replacement."""

from rotaguard.analysis import FairnessAnalyzer, PatternRiskAnalyzer
from rotaguard.domain import (
    ConfigurationError,
    Employee,
    GenerationOptions,
    HierarchyLevel,
    RosterSnapshot,
    ShiftAssignment,
    ShiftType,
    StaffingRequirement,
)
from rotaguard.replacement import ReplacementPlanner
from rotaguard.scheduling import AssignmentEngine, generate_assignments
from rotaguard.validation import ScheduleValidator

__version__ = "0.1.0"

__all__ = [
    "AssignmentEngine",
    "ConfigurationError",
    "Employee",
    "FairnessAnalyzer",
    "GenerationOptions",
    "HierarchyLevel",
    "PatternRiskAnalyzer",
    "ReplacementPlanner",
    "RosterSnapshot",
    "ScheduleValidator",
    "ShiftAssignment",
    "ShiftType",
    "StaffingRequirement",
    "generate_assignments",
]
