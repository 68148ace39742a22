"""Weighted multi-factor scoring.

Both the assignment engine and the replacement planner rank people by a
weighted sum of factors followed by optional multiplicative penalties.
This module provides one implementation parameterized by a factor table.
"""

from dataclasses import dataclass, field
from typing import Callable, Generic, Optional, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class Factor(Generic[T]):
    """A named scoring factor.

    Attributes:
        name: Factor name, used as the key in score breakdowns.
        weight: Multiplier applied to the evaluated value.
        evaluate: Function of the scored subject returning the raw value.
    """

    name: str
    weight: float
    evaluate: Callable[[T], float]


@dataclass(frozen=True)
class Penalty(Generic[T]):
    """A multiplicative adjustment applied when its condition holds."""

    name: str
    multiplier: float
    applies: Callable[[T], bool]


@dataclass(frozen=True)
class ScoreBreakdown:
    """Total score and how each factor contributed."""

    total: float
    contributions: dict[str, float] = field(default_factory=dict)
    penalties: tuple[str, ...] = ()


@dataclass(frozen=True)
class WeightedScorer(Generic[T]):
    """Scores subjects as base + sum(weight * factor), then applies penalties.

    Example:
        >>> scorer = WeightedScorer(
        ...     factors=(Factor("experience", 0.6, lambda c: c.exp),),
        ...     penalties=(Penalty("tired", 0.7, lambda c: c.fatigue >= 7),),
        ...     upper=1.0,
        ... )
        >>> scorer.score(candidate).total
    """

    factors: tuple[Factor[T], ...]
    penalties: tuple[Penalty[T], ...] = ()
    base: float = 0.0
    lower: Optional[float] = 0.0
    upper: Optional[float] = None

    def score(self, subject: T) -> ScoreBreakdown:
        contributions = {}
        total = self.base
        for factor in self.factors:
            contribution = factor.weight * factor.evaluate(subject)
            contributions[factor.name] = contribution
            total += contribution

        applied = []
        for penalty in self.penalties:
            if penalty.applies(subject):
                total *= penalty.multiplier
                applied.append(penalty.name)

        if self.lower is not None:
            total = max(self.lower, total)
        if self.upper is not None:
            total = min(self.upper, total)

        return ScoreBreakdown(total=total, contributions=contributions, penalties=tuple(applied))

    def rank(self, subjects: list[T]) -> list[tuple[T, ScoreBreakdown]]:
        """Score and sort descending; ties keep input order."""
        scored = [(s, self.score(s)) for s in subjects]
        # sorted() is stable, so encounter order breaks ties
        return sorted(scored, key=lambda pair: -pair[1].total)


def normalize_weights(weights: dict[str, float]) -> dict[str, float]:
    """Scale weights so they sum to 1, leaving all-zero tables untouched."""
    total = sum(weights.values())
    if total <= 0:
        return dict(weights)
    return {k: v / total for k, v in weights.items()}
