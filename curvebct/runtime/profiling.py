"""Per-call timing counters for block tree products."""

from __future__ import annotations

import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Iterator, Literal

import jax

ProfileSection = Literal["well_separated", "ill_separated", "traversal"]


def block_until_ready(value: Any) -> Any:
    """Recursively block on JAX arrays so timings cover the device work."""

    def _maybe_block(x: Any) -> Any:
        if hasattr(x, "block_until_ready"):
            return x.block_until_ready()
        return x

    return jax.tree_util.tree_map(_maybe_block, value)


@dataclass
class MultiplyProfile:
    """Cumulative wall-clock seconds spent in each part of a multiply.

    A profile is owned by the caller and passed to
    :meth:`BlockClusterTree.multiply`; it is never read by the product itself.
    ``traversal`` covers the upward/downward tree sweeps, ``well_separated``
    the far-field pass as a whole and ``ill_separated`` the exact near field.
    """

    well_separated_seconds: float = 0.0
    ill_separated_seconds: float = 0.0
    traversal_seconds: float = 0.0
    calls: int = 0

    @contextmanager
    def section(self: "MultiplyProfile", name: ProfileSection) -> Iterator[None]:
        """Accumulate the elapsed time of the ``with`` body under ``name``."""
        start = time.perf_counter()
        try:
            yield
        finally:
            elapsed = time.perf_counter() - start
            attr = f"{name}_seconds"
            setattr(self, attr, getattr(self, attr) + elapsed)

    @property
    def total_seconds(self: "MultiplyProfile") -> float:
        # Traversal time is nested inside the well-separated section.
        return self.well_separated_seconds + self.ill_separated_seconds

    def reset(self: "MultiplyProfile") -> None:
        """Zero every counter."""
        self.well_separated_seconds = 0.0
        self.ill_separated_seconds = 0.0
        self.traversal_seconds = 0.0
        self.calls = 0


__all__ = ["MultiplyProfile", "ProfileSection", "block_until_ready"]
