from typing import Iterable, Sequence
import numpy as np


class MathTools:
    """Provides essential mathematical utilities for workout calculations."""

    EPLEY_DIVISOR: float = 30.0
    E1RM_MIN_REPS: int = 1
    E1RM_MAX_REPS: int = 12
    MAX_REPS: int = 200
    WARMUP_REPS: tuple[int, ...] = (8, 5, 3)

    @staticmethod
    def clamp(value: float, min_value: float, max_value: float) -> float:
        """Clamp ``value`` to the inclusive range [min_value, max_value]."""
        if min_value > max_value:
            raise ValueError("min_value must not exceed max_value")
        return max(min_value, min(value, max_value))

    @classmethod
    def epley_1rm(cls, weight: float, reps: int) -> float:
        """Return the estimated one-rep max using the Epley formula."""
        if reps < 0:
            raise ValueError("reps must be non-negative")
        return weight * (1 + reps / cls.EPLEY_DIVISOR)

    @classmethod
    def counts_for_e1rm(cls, weight: float, reps: int) -> bool:
        """Return True when a set lies in the rep range used for e1RM."""
        return weight > 0 and cls.E1RM_MIN_REPS <= reps <= cls.E1RM_MAX_REPS

    @staticmethod
    def volume(sets: Iterable[tuple[int, float]]) -> float:
        """Compute training volume as the sum of reps times weight."""
        vol = 0.0
        for reps, weight in sets:
            vol += reps * weight
        return vol

    @staticmethod
    def valid_rpe(rpe: float | None) -> bool:
        """RPE is optional; when given it must be 1-10 in half steps."""
        if rpe is None:
            return True
        return 1 <= rpe <= 10 and float(rpe * 2).is_integer()

    @staticmethod
    def round_to_increment(value: float, increment: float) -> float:
        """Round ``value`` down to the nearest multiple of ``increment``."""
        if increment <= 0:
            raise ValueError("increment must be positive")
        return float(np.floor(round(value / increment, 6)) * increment)

    @staticmethod
    def warmup_percentages(working_weight_kg: float) -> list[float]:
        """Return the warm-up ramp for a working weight given in kg.

        Light loads get fewer steps so every warm-up stays meaningfully
        lighter than the bar plus the smallest jump.
        """
        if working_weight_kg < 40:
            return [0.5]
        if working_weight_kg < 60:
            return [0.4, 0.7]
        return [0.4, 0.6, 0.8]

    @staticmethod
    def warmup_weights(
        target_weight: float, percentages: Sequence[float], increment: float
    ) -> list[float]:
        """Return ascending warm-up weights leading up to ``target_weight``.

        Each step is rounded down to ``increment``; zero, duplicate and
        non-lighter steps are dropped.
        """
        if target_weight <= 0:
            raise ValueError("invalid input values")
        raw = np.asarray(sorted(percentages), dtype=float) * target_weight
        stepped = np.floor(np.round(raw / increment, 6)) * increment
        weights: list[float] = []
        for w in stepped:
            w = round(float(w), 2)
            if w <= 0 or w >= target_weight or w in weights:
                continue
            weights.append(w)
        return weights

    @classmethod
    def warmup_plan(
        cls, target_weight: float, percentages: Sequence[float], increment: float
    ) -> list[tuple[int, float]]:
        """Generate a warmup plan as list of (reps, weight)."""
        weights = cls.warmup_weights(target_weight, percentages, increment)
        reps = list(cls.WARMUP_REPS)
        while len(reps) < len(weights):
            reps.append(reps[-1])
        return list(zip(reps, weights))
