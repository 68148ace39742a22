"""Policy definitions for working-time rules.

This module contains configurable policies that define the legal and
operational limits on shifts: when each shift runs, how long rest between
shifts must be, how many nights may be chained and how many hours fit in
a week. Policies are kept separate from the engine and analyzers so every
component applies the same rules and each can be tested on its own.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta

from rotaguard.domain.models import ShiftType


class WorkRulePolicy(ABC):
    """Abstract base class for working-time rules."""

    @abstractmethod
    def shift_window(self, schedule_date: date, shift_type: ShiftType) -> tuple[datetime, datetime]:
        """Start and end of a working shift that starts on schedule_date.

        Args:
            schedule_date: Date the shift starts on.
            shift_type: Working shift type.

        Returns:
            Tuple of (start, end) datetimes; end may fall on the next day.
        """
        pass

    @abstractmethod
    def shift_hours(self, shift_type: ShiftType) -> float:
        """Paid hours for a shift type (0 for off)."""
        pass

    @abstractmethod
    def min_rest_hours(self) -> float:
        """Minimum rest between the end of one shift and the next start."""
        pass

    @abstractmethod
    def max_consecutive_nights(self) -> int:
        """Longest allowed run of night shifts."""
        pass

    @abstractmethod
    def max_weekly_hours(self) -> float:
        """Ceiling on hours worked in any 7-day window."""
        pass

    def rest_gap_hours(
        self,
        first_date: date,
        first_shift: ShiftType,
        second_date: date,
        second_shift: ShiftType,
    ) -> float:
        """Hours between the end of one shift and the start of the next."""
        _, first_end = self.shift_window(first_date, first_shift)
        second_start, _ = self.shift_window(second_date, second_shift)
        return (second_start - first_end).total_seconds() / 3600.0

    def has_minimum_rest(
        self,
        first_date: date,
        first_shift: ShiftType,
        second_date: date,
        second_shift: ShiftType,
    ) -> bool:
        return (
            self.rest_gap_hours(first_date, first_shift, second_date, second_shift)
            >= self.min_rest_hours()
        )


def _default_shift_starts() -> dict[ShiftType, time]:
    return {
        ShiftType.DAY: time(7, 0),
        ShiftType.EVENING: time(15, 0),
        ShiftType.NIGHT: time(23, 0),
    }


@dataclass
class DefaultWorkRulePolicy(WorkRulePolicy):
    """Default working-time rules.

    Shift windows (8 hours each):
    - Day: 07:00 - 15:00
    - Evening: 15:00 - 23:00
    - Night: 23:00 - 07:00 the next day

    Limits:
    - At least 11 hours rest between shifts
    - At most 5 consecutive nights
    - At most 52 hours in any rolling 7-day window

    Hours are attributed to the date a shift starts on.
    """

    shift_starts: dict[ShiftType, time] = field(default_factory=_default_shift_starts)
    shift_length_hours: float = 8.0
    min_rest: float = 11.0
    max_nights: int = 5
    max_week_hours: float = 52.0

    def shift_window(self, schedule_date: date, shift_type: ShiftType) -> tuple[datetime, datetime]:
        if not shift_type.is_working:
            raise ValueError("Off days have no shift window")
        start = datetime.combine(schedule_date, self.shift_starts[shift_type])
        return start, start + timedelta(hours=self.shift_length_hours)

    def shift_hours(self, shift_type: ShiftType) -> float:
        return self.shift_length_hours if shift_type.is_working else 0.0

    def min_rest_hours(self) -> float:
        return self.min_rest

    def max_consecutive_nights(self) -> int:
        return self.max_nights

    def max_weekly_hours(self) -> float:
        return self.max_week_hours


def is_weekend(d: date) -> bool:
    """Saturday or Sunday."""
    return d.weekday() >= 5
