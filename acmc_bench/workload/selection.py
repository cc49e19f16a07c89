from __future__ import annotations

import bisect
import random
from typing import Mapping, Sequence

from .config import DEFAULT_INVOKER, WorkloadConfigError, normalise_weights


def cumulative_table(weights: Sequence[float]) -> tuple[float, ...]:
    """Cumulative probabilities aligned with ``weights``; the last bound is exactly 1.0."""
    shares = normalise_weights(weights)
    bounds = []
    upto = 0.0
    for share in shares:
        upto += share
        bounds.append(upto)
    # Float drift fallback: pin everything from the last weighted candidate on.
    last = max(idx for idx, share in enumerate(shares) if share > 0)
    for idx in range(last, len(bounds)):
        bounds[idx] = 1.0
    return tuple(bounds)


class WeightedSelector:
    """Maps one uniform draw onto a candidate through a cumulative table."""

    def __init__(
        self,
        candidates: Sequence[str],
        weights: Sequence[float],
        rng: random.Random | None = None,
    ) -> None:
        if len(candidates) != len(weights):
            raise WorkloadConfigError(
                f"{len(candidates)} candidates but {len(weights)} weights"
            )
        if not candidates:
            raise WorkloadConfigError("at least one candidate is required")
        self._candidates = tuple(candidates)
        self._cumulative = cumulative_table(weights)
        self._random = (rng or random).random

    @classmethod
    def from_mapping(
        cls, weights: Mapping[str, float], rng: random.Random | None = None
    ) -> "WeightedSelector":
        return cls(list(weights), list(weights.values()), rng=rng)

    @property
    def candidates(self) -> tuple[str, ...]:
        return self._candidates

    @property
    def cumulative(self) -> tuple[float, ...]:
        return self._cumulative

    def pick(self) -> str:
        r = self._random()
        # bisect_right never lands on a zero-weight candidate.
        idx = bisect.bisect_right(self._cumulative, r)
        return self._candidates[min(idx, len(self._candidates) - 1)]


class InvokerSelector:
    """Chooses the submitting identity for each request."""

    def __init__(
        self,
        identifiers: Sequence[str],
        weights: Sequence[float] | None = None,
        fallback: str = DEFAULT_INVOKER,
        rng: random.Random | None = None,
    ) -> None:
        self._rng = rng or random
        self._identifiers = tuple(identifiers) or (fallback,)
        self._weighted: WeightedSelector | None = None
        if weights is not None and identifiers:
            self._weighted = WeightedSelector(identifiers, weights, rng=rng)

    @property
    def identifiers(self) -> tuple[str, ...]:
        return self._identifiers

    @property
    def weighted(self) -> bool:
        return self._weighted is not None

    def pick(self) -> str:
        if self._weighted is not None:
            return self._weighted.pick()
        if len(self._identifiers) == 1:
            return self._identifiers[0]
        idx = int(self._rng.random() * len(self._identifiers))
        return self._identifiers[min(idx, len(self._identifiers) - 1)]


__all__ = ["InvokerSelector", "WeightedSelector", "cumulative_table"]
