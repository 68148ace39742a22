"""Roster generation engine and solvers."""

from rotaguard.scheduling.cpsat_solver import RosterCPSATSolver, SolverConfig, SolverResult
from rotaguard.scheduling.engine import (
    AssignmentEngine,
    EngineConfig,
    SolverType,
    create_engine,
    generate_assignments,
)
from rotaguard.scheduling.scoring import Factor, Penalty, WeightedScorer
from rotaguard.scheduling.workload import WorkloadModel, refresh_roster

__all__ = [
    # Engine
    "AssignmentEngine",
    "EngineConfig",
    "create_engine",
    "generate_assignments",
    # Solvers
    "RosterCPSATSolver",
    "SolverConfig",
    "SolverResult",
    "SolverType",
    # Scoring and workload
    "Factor",
    "Penalty",
    "WeightedScorer",
    "WorkloadModel",
    "refresh_roster",
]
