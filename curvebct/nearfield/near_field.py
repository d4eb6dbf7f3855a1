"""Exact near-field evaluation over inadmissible cluster pairs."""

from __future__ import annotations

from functools import partial
from typing import NamedTuple, Tuple, Union

import jax
import jax.numpy as jnp
from beartype import beartype
from jaxtyping import Array, ArrayLike, jaxtyped

from ..geometry import CurveElementGeometry, neighbor_mask
from ..partition.cluster_pairs import ClusterPair, pair_index_products
from ..runtime.dtypes import as_index


class NearFieldSchedule(NamedTuple):
    """Flattened element index cross-products of a set of cluster pairs.

    Entry ``k`` stands for the kernel entry ``a(rows[k], cols[k])``; rows come
    from side 1 of their pair and receive the contribution.
    """

    rows: Array
    cols: Array

    @property
    def num_entries(self: "NearFieldSchedule") -> int:
        return int(self.rows.shape[0])


def prepare_near_field_schedule(pairs: Tuple[ClusterPair, ...]) -> NearFieldSchedule:
    """Precompute the index schedule consumed by :func:`apply_near_field`."""
    rows, cols = pair_index_products(pairs)
    return NearFieldSchedule(rows=as_index(rows), cols=as_index(cols))


@jaxtyped(typechecker=beartype)
def compute_kernel_entries(
    midpoints: Array,
    lengths: Array,
    point_ids: Array,
    next_ids: Array,
    rows: Array,
    cols: Array,
    power: Union[float, Array],
) -> Array:
    """Return ``l_i * l_j / |mid_i - mid_j|**power``, zero for adjacent pairs."""
    diff = midpoints[rows] - midpoints[cols]
    dist = jnp.sqrt(jnp.sum(diff * diff, axis=-1))
    adjacent = neighbor_mask(point_ids, next_ids, rows, cols)
    # Adjacent pairs (including i == j) may sit at zero distance.
    safe_dist = jnp.where(adjacent, 1.0, dist)
    entries = lengths[rows] * lengths[cols] / jnp.power(safe_dist, power)
    return jnp.where(adjacent, 0.0, entries)


@partial(jax.jit, static_argnames=("num_elements",))
@jaxtyped(typechecker=beartype)
def _apply_near_field_impl(
    values: Array,
    midpoints: Array,
    lengths: Array,
    point_ids: Array,
    next_ids: Array,
    rows: Array,
    cols: Array,
    power: Union[float, Array],
    *,
    num_elements: int,
) -> Array:
    entries = compute_kernel_entries(
        midpoints, lengths, point_ids, next_ids, rows, cols, power
    )
    row_sums = jax.ops.segment_sum(entries, rows, num_elements)
    weighted = jax.ops.segment_sum(
        entries[:, None] * values[cols], rows, num_elements
    )
    return 2.0 * (row_sums[:, None] * values - weighted)


def apply_near_field(
    values: ArrayLike,
    geometry: CurveElementGeometry,
    schedule: NearFieldSchedule,
    power: float,
) -> Array:
    """Apply the exact operator restricted to the scheduled blocks.

    For each scheduled row ``i`` this adds
    ``2 * (sum_j a(i, j) * v(i) - sum_j a(i, j) * v(j))``; rows that appear in
    no block receive zero.
    """
    values = jnp.asarray(values)
    if schedule.num_entries == 0:
        return jnp.zeros_like(values)
    return _apply_near_field_impl(
        values,
        geometry.midpoints,
        geometry.lengths,
        geometry.point_ids,
        geometry.next_ids,
        schedule.rows,
        schedule.cols,
        float(power),
        num_elements=int(values.shape[0]),
    )


__all__ = [
    "NearFieldSchedule",
    "apply_near_field",
    "compute_kernel_entries",
    "prepare_near_field_schedule",
]
