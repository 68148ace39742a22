"""Shared fixtures for roster tests."""

from datetime import date

import pytest

from rotaguard.domain.models import (
    Employee,
    HierarchyLevel,
    RosterSnapshot,
    StaffingRequirement,
)


def one_per_shift() -> StaffingRequirement:
    return StaffingRequirement(min_required=1, preferred=1, max_allowed=1)


@pytest.fixture
def monday():
    """A Monday, so weekday/weekend boundaries are easy to reason about."""
    return date(2024, 1, 15)


@pytest.fixture
def ward_levels():
    """Charge nurses supervise staff nurses; one of each level per shift."""
    return (
        HierarchyLevel(
            level=1,
            role_name="Charge Nurse",
            day_shift=one_per_shift(),
            evening_shift=one_per_shift(),
            night_shift=one_per_shift(),
            priority_order=1,
            can_supervise=frozenset({2}),
        ),
        HierarchyLevel(
            level=2,
            role_name="Staff Nurse",
            day_shift=one_per_shift(),
            evening_shift=one_per_shift(),
            night_shift=one_per_shift(),
            priority_order=2,
            can_work_alone=False,
            requires_supervision=True,
        ),
    )


@pytest.fixture
def ward_employees():
    """Four employees per level, all rested."""
    employees = []
    for level in (1, 2):
        for i in range(4):
            employees.append(
                Employee(
                    id=f"L{level}-{i + 1}",
                    name=f"Level {level} nurse {i + 1}",
                    hierarchy_level=level,
                    experience_years=10 - level * 3 + i,
                    team_id="ward-a",
                    fatigue_score=2.0,
                    current_workload=1.0,
                )
            )
    return tuple(employees)


@pytest.fixture
def ward_snapshot(ward_employees, ward_levels):
    return RosterSnapshot(employees=ward_employees, levels=ward_levels)
