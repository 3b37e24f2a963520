"""Weighted combination with a validated weight sum.

Mood scoring, confidence assessment and feature similarity all reduce to
``sum(value * weight)`` over a named weight set that must sum to 1.0. This
module is the single implementation of that contract.
"""

from __future__ import annotations

import math
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Iterator, Mapping, Tuple, Type

from moodlens.errors import InvalidInputError

WEIGHT_SUM_TOLERANCE = 1e-6


def round_half_up(value: float, places: int) -> float:
    """Round like a person would (6.75 -> 6.8), ignoring float noise."""
    # Trim representation error first so 6.749999999999999 is treated as 6.75
    cleaned = Decimal(repr(round(value, 9)))
    return float(cleaned.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP))


class WeightedCombination:
    """Immutable named weight set.

    Example:
        >>> combo = WeightedCombination({"a": 0.6, "b": 0.4})
        >>> combo.combine({"b": 5.0, "a": 10.0})
        8.0
    """

    __slots__ = ("_weights", "_error")

    def __init__(
        self,
        weights: Mapping[str, float],
        *,
        error_cls: Type[InvalidInputError] = InvalidInputError,
    ) -> None:
        if not weights:
            raise error_cls("Weight set must not be empty", field="weights")
        for name, weight in weights.items():
            if not isinstance(weight, (int, float)) or math.isnan(weight) or weight < 0:
                raise error_cls(
                    f"Weight '{name}' must be a non-negative number, got {weight!r}",
                    field="weights",
                )
        total = math.fsum(weights.values())
        if abs(total - 1.0) > WEIGHT_SUM_TOLERANCE:
            raise error_cls(
                f"Weights must sum to 1.0 within {WEIGHT_SUM_TOLERANCE}, got {total:.9f}",
                field="weights",
                details={"weight_sum": total},
            )
        self._weights: Dict[str, float] = {str(k): float(v) for k, v in weights.items()}
        self._error = error_cls

    @property
    def weights(self) -> Dict[str, float]:
        return dict(self._weights)

    @property
    def names(self) -> Tuple[str, ...]:
        return tuple(self._weights)

    def weight(self, name: str) -> float:
        try:
            return self._weights[name]
        except KeyError as exc:
            raise self._error(f"Unknown weight '{name}'", field=name) from exc

    def __iter__(self) -> Iterator[Tuple[str, float]]:
        return iter(self._weights.items())

    def __len__(self) -> int:
        return len(self._weights)

    def combine(self, values: Mapping[str, float]) -> float:
        """Return the weighted sum of ``values`` keyed by weight name.

        Extra keys are ignored; a missing key raises.
        """
        missing = [name for name in self._weights if name not in values]
        if missing:
            raise self._error(
                f"Missing values for {sorted(missing)}",
                field=missing[0],
                details={"missing": sorted(missing)},
            )
        # fsum keeps the result independent of insertion order
        return math.fsum(values[name] * weight for name, weight in self._weights.items())

    def __repr__(self) -> str:
        return f"WeightedCombination({self._weights!r})"
