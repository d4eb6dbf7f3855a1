"""Brute-force reference operators used to validate the block tree."""

from __future__ import annotations

from functools import partial
from typing import Union

import jax
import jax.numpy as jnp
from beartype import beartype
from jaxtyping import Array, ArrayLike, jaxtyped

from ..geometry import CurveElementGeometry
from ..nearfield.near_field import compute_kernel_entries
from .dtypes import INDEX_DTYPE


@partial(jax.jit, static_argnames=("num_elements",))
@jaxtyped(typechecker=beartype)
def _dense_kernel_impl(
    midpoints: Array,
    lengths: Array,
    point_ids: Array,
    next_ids: Array,
    power: Union[float, Array],
    *,
    num_elements: int,
) -> Array:
    idx = jnp.arange(num_elements, dtype=INDEX_DTYPE)
    rows = jnp.repeat(idx, num_elements)
    cols = jnp.tile(idx, num_elements)
    entries = compute_kernel_entries(
        midpoints, lengths, point_ids, next_ids, rows, cols, power
    )
    return entries.reshape(num_elements, num_elements)


def dense_kernel_matrix(geometry: CurveElementGeometry, power: float) -> Array:
    """Materialize ``a(i, j)`` for all element pairs, zero when adjacent."""
    n = geometry.num_elements
    if n == 0:
        return jnp.zeros((0, 0), dtype=geometry.lengths.dtype)
    return _dense_kernel_impl(
        geometry.midpoints,
        geometry.lengths,
        geometry.point_ids,
        geometry.next_ids,
        float(power),
        num_elements=n,
    )


def dense_operator_matrix(geometry: CurveElementGeometry, power: float) -> Array:
    """Return ``L = 2 * (diag(A 1) - A)`` so that the operator is ``v -> L v``."""
    kernel = dense_kernel_matrix(geometry, power)
    return 2.0 * (jnp.diag(jnp.sum(kernel, axis=1)) - kernel)


def direct_apply(
    values: ArrayLike,
    geometry: CurveElementGeometry,
    power: float,
) -> Array:
    """Apply the operator with an O(N^2) double sum over all element pairs."""
    values = jnp.asarray(values)
    kernel = dense_kernel_matrix(geometry, power)
    return 2.0 * (jnp.sum(kernel, axis=1)[:, None] * values - kernel @ values)


__all__ = ["dense_kernel_matrix", "dense_operator_matrix", "direct_apply"]
