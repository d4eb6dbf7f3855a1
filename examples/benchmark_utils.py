"""Utility helpers for benchmarking block cluster tree products."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable, Optional, Tuple

import jax
import jax.numpy as jnp
import numpy as np

from curvebct.runtime.profiling import block_until_ready

from .polyline_bvh import PolylineCurve

Array = jax.Array


@dataclass(frozen=True)
class TimingResult:
    """Container summarising repeated runtime measurements."""

    wall_times: Tuple[float, ...]
    mean: float
    std: float
    result: Any

    @property
    def samples(self) -> Tuple[float, ...]:
        return self.wall_times


def time_callable(
    fn: Callable[..., Any],
    *args: Any,
    warmup: int = 1,
    runs: int = 5,
    **kwargs: Any,
) -> TimingResult:
    """Measure execution time for ``fn`` with optional warmup passes."""

    if runs <= 0:
        raise ValueError("runs must be positive")
    if warmup < 0:
        raise ValueError("warmup must be non-negative")

    for _ in range(warmup):
        block_until_ready(fn(*args, **kwargs))

    samples = []
    result: Any = None
    for _ in range(runs):
        start = time.perf_counter()
        result = block_until_ready(fn(*args, **kwargs))
        samples.append(time.perf_counter() - start)

    wall_times = tuple(samples)
    return TimingResult(
        wall_times=wall_times,
        mean=float(np.mean(wall_times)),
        std=float(np.std(wall_times)),
        result=result,
    )


def generate_random_curve(
    num_elements: int,
    *,
    key: Optional[jax.Array] = None,
    step_scale: float = 1.0,
    closed: bool = False,
) -> Tuple[PolylineCurve, jax.Array]:
    """Create a random-walk polyline with ``num_elements`` segments."""

    if num_elements <= 0:
        raise ValueError("num_elements must be positive")

    if key is None:
        key = jax.random.PRNGKey(0)

    num_vertices = num_elements if closed else num_elements + 1
    key, key_steps = jax.random.split(key)
    steps = jax.random.normal(key_steps, (num_vertices, 3), dtype=jnp.float32)
    vertices = np.cumsum(np.asarray(steps, dtype=np.float64) * step_scale, axis=0)
    return PolylineCurve(vertices, closed=closed), key


def random_field(
    num_elements: int,
    *,
    key: Optional[jax.Array] = None,
    dtype: jnp.dtype = jnp.float64,
) -> Array:
    """Random ``(num_elements, 3)`` input field for multiply benchmarks."""
    if key is None:
        key = jax.random.PRNGKey(1)
    return jax.random.normal(key, (num_elements, 3), dtype=dtype)


__all__ = [
    "TimingResult",
    "generate_random_curve",
    "random_field",
    "time_callable",
]
