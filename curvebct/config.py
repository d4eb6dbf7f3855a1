"""Parameter and mode configuration for block cluster trees."""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Union

DEFAULT_SMALL_PAIR_THRESHOLD = 8


class MultiplyMode(str, Enum):
    """Realizations of the implicit operator, selectable per multiply call."""

    EXACT = "exact"
    MONOPOLE = "monopole"
    PROPAGATED = "propagated"


@dataclass(frozen=True)
class BlockTreeParameters:
    """Kernel exponents and admissibility settings for one tree.

    Attributes
    ----------
    theta:
        Separation coefficient. A pair is admissible when its larger viewspace
        extent is strictly below ``theta`` times the centroid distance.
    alpha, beta:
        Energy exponents; the kernel decays as ``dist ** -(beta - alpha)``.
    epsilon:
        Regularization value carried for the energy code. The multiply
        operations do not read it.
    small_pair_threshold:
        Pairs whose combined element count is at most this value are kept
        exact instead of being subdivided further.
    """

    theta: float
    alpha: float
    beta: float
    epsilon: float = 0.0
    small_pair_threshold: int = DEFAULT_SMALL_PAIR_THRESHOLD

    @property
    def kernel_power(self: "BlockTreeParameters") -> float:
        return float(self.beta - self.alpha)


def normalize_mode(mode: Union[MultiplyMode, str]) -> MultiplyMode:
    """Return ``mode`` as a :class:`MultiplyMode`, accepting loose strings."""
    if isinstance(mode, MultiplyMode):
        return mode
    try:
        return MultiplyMode(str(mode).strip().lower())
    except ValueError:
        choices = ", ".join(repr(m.value) for m in MultiplyMode)
        raise ValueError(f"mode must be one of {choices}, got {mode!r}") from None


def validate_parameters(params: BlockTreeParameters) -> BlockTreeParameters:
    """Check parameter ranges eagerly and return ``params`` unchanged."""
    theta = float(params.theta)
    if not math.isfinite(theta) or theta < 0.0:
        raise ValueError("theta must be a finite, non-negative number")
    if not (math.isfinite(float(params.alpha)) and math.isfinite(float(params.beta))):
        raise ValueError("alpha and beta must be finite")
    if not math.isfinite(float(params.epsilon)):
        raise ValueError("epsilon must be finite")
    if int(params.small_pair_threshold) < 2:
        raise ValueError("small_pair_threshold must be >= 2")
    return params


__all__ = [
    "DEFAULT_SMALL_PAIR_THRESHOLD",
    "BlockTreeParameters",
    "MultiplyMode",
    "normalize_mode",
    "validate_parameters",
]
