"""Per-employee shift timeline.

The timeline is the single place where "previous shift", "consecutive"
and "weekly hours" are computed, so the engine, the validator, the
analyzers and the replacement planner all agree on them.
"""

from bisect import bisect_left, bisect_right, insort
from dataclasses import dataclass, field
from datetime import date, timedelta
from enum import Enum
from typing import Iterable, Optional

from rotaguard.domain.models import ShiftAssignment, ShiftRecord, ShiftType
from rotaguard.domain.policies import WorkRulePolicy


class HardConstraint(Enum):
    """Hard working-time rules that make a placement illegal."""

    ALREADY_ASSIGNED = "already_assigned"
    INSUFFICIENT_REST = "insufficient_rest"
    CONSECUTIVE_NIGHTS = "consecutive_nights"
    WEEKLY_HOURS = "weekly_hours"


@dataclass
class EmployeeTimeline:
    """Date-indexed shifts of one employee.

    Attributes:
        employee_id: ID of the employee.
        shifts: Mapping of date to the shift held that day.
    """

    employee_id: str
    shifts: dict[date, ShiftType] = field(default_factory=dict)
    _working: list[date] = field(default_factory=list, init=False, repr=False, compare=False)

    def __post_init__(self):
        self._working = sorted(d for d, s in self.shifts.items() if s.is_working)

    @classmethod
    def from_assignments(
        cls,
        employee_id: str,
        assignments: Iterable[ShiftAssignment],
    ) -> "EmployeeTimeline":
        timeline = cls(employee_id)
        for a in assignments:
            if a.employee_id == employee_id:
                timeline.add(a.date, a.shift_type)
        return timeline

    @classmethod
    def from_records(cls, employee_id: str, records: Iterable[ShiftRecord]) -> "EmployeeTimeline":
        timeline = cls(employee_id)
        for r in records:
            timeline.add(r.date, r.effective_shift)
        return timeline

    def add(self, shift_date: date, shift_type: ShiftType) -> None:
        was_working = self.is_working_on(shift_date)
        self.shifts[shift_date] = shift_type
        if shift_type.is_working and not was_working:
            insort(self._working, shift_date)
        elif was_working and not shift_type.is_working:
            del self._working[bisect_left(self._working, shift_date)]

    def shift_on(self, shift_date: date) -> Optional[ShiftType]:
        return self.shifts.get(shift_date)

    def is_working_on(self, shift_date: date) -> bool:
        shift = self.shifts.get(shift_date)
        return shift is not None and shift.is_working

    def working_dates(self) -> list[date]:
        return list(self._working)

    def previous_working(self, before: date) -> Optional[tuple[date, ShiftType]]:
        """Latest working shift strictly before a date."""
        idx = bisect_left(self._working, before)
        if idx == 0:
            return None
        latest = self._working[idx - 1]
        return latest, self.shifts[latest]

    def next_working(self, after: date) -> Optional[tuple[date, ShiftType]]:
        """Earliest working shift strictly after a date."""
        idx = bisect_right(self._working, after)
        if idx == len(self._working):
            return None
        earliest = self._working[idx]
        return earliest, self.shifts[earliest]

    def consecutive_working_days(self, before: date) -> int:
        """Length of the working streak that ends the day before a date."""
        count = 0
        current = before - timedelta(days=1)
        while self.is_working_on(current):
            count += 1
            current -= timedelta(days=1)
        return count

    def consecutive_nights(self, before: date) -> int:
        """Length of the night streak that ends the day before a date."""
        count = 0
        current = before - timedelta(days=1)
        while self.shifts.get(current) is ShiftType.NIGHT:
            count += 1
            current -= timedelta(days=1)
        return count

    def _nights_after(self, after: date) -> int:
        count = 0
        current = after + timedelta(days=1)
        while self.shifts.get(current) is ShiftType.NIGHT:
            count += 1
            current += timedelta(days=1)
        return count

    def hours_between(self, first: date, last: date, policy: WorkRulePolicy) -> float:
        """Hours of shifts starting in [first, last]."""
        lo = bisect_left(self._working, first)
        hi = bisect_right(self._working, last)
        return sum(policy.shift_hours(self.shifts[d]) for d in self._working[lo:hi])

    def hours_in_week_ending(self, end: date, policy: WorkRulePolicy) -> float:
        """Hours in the rolling 7-day window ending on a date."""
        return self.hours_between(end - timedelta(days=6), end, policy)

    def max_weekly_hours_with(
        self,
        shift_date: date,
        shift_type: ShiftType,
        policy: WorkRulePolicy,
    ) -> float:
        """Worst rolling 7-day total if the shift were added."""
        added = policy.shift_hours(shift_type)
        if self.is_working_on(shift_date):
            added -= policy.shift_hours(self.shifts[shift_date])
        worst = 0.0
        for offset in range(7):
            window_end = shift_date + timedelta(days=offset)
            worst = max(worst, self.hours_in_week_ending(window_end, policy) + added)
        return worst

    def violation_for(
        self,
        shift_date: date,
        shift_type: ShiftType,
        policy: WorkRulePolicy,
    ) -> Optional[HardConstraint]:
        """First hard rule broken by placing a shift, or None if legal.

        Args:
            shift_date: Date the shift would start on.
            shift_type: Working shift type to place.
            policy: Working-time rules.

        Returns:
            The violated HardConstraint, or None.
        """
        if self.is_working_on(shift_date):
            return HardConstraint.ALREADY_ASSIGNED

        previous = self.previous_working(shift_date)
        if previous and not policy.has_minimum_rest(
            previous[0], previous[1], shift_date, shift_type
        ):
            return HardConstraint.INSUFFICIENT_REST

        following = self.next_working(shift_date)
        if following and not policy.has_minimum_rest(
            shift_date, shift_type, following[0], following[1]
        ):
            return HardConstraint.INSUFFICIENT_REST

        if shift_type is ShiftType.NIGHT:
            run = self.consecutive_nights(shift_date) + 1 + self._nights_after(shift_date)
            if run > policy.max_consecutive_nights():
                return HardConstraint.CONSECUTIVE_NIGHTS

        if self.max_weekly_hours_with(shift_date, shift_type, policy) > policy.max_weekly_hours():
            return HardConstraint.WEEKLY_HOURS

        return None

    def rest_gaps(self, policy: WorkRulePolicy) -> list[tuple[date, date, float]]:
        """Rest gap in hours between each pair of consecutive working shifts."""
        dates = self.working_dates()
        gaps = []
        for first, second in zip(dates, dates[1:]):
            gaps.append(
                (
                    first,
                    second,
                    policy.rest_gap_hours(first, self.shifts[first], second, self.shifts[second]),
                )
            )
        return gaps
