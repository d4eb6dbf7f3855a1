"""Downward sweep and the propagated far-field product.

Given the upward partial sums ``V_J``, every admissible pair ``(I, J)`` adds
``a_IJ * V_J`` to the pending value of node ``I``. The downward pass
accumulates pending values from the root to the leaves, so a leaf ends up
holding the sum over itself and all of its ancestors. Multiplying by the
element masses gives the raw far-field product ``b = A_f v`` for one scalar
column.
"""

from __future__ import annotations

from functools import partial
from typing import NamedTuple, Tuple

import jax
import jax.numpy as jnp
from beartype import beartype
from jax import lax
from jaxtyping import Array, ArrayLike, jaxtyped

from ..farfield.monopole import pair_far_field_scalars
from ..partition.arena import HierarchyArena, pair_node_ids
from ..partition.cluster_pairs import ClusterPair
from ..runtime.dtypes import as_index
from ..upward.partial_sums import compute_node_partial_sums


class PropagationSchedule(NamedTuple):
    """Admissible pairs expressed as arena node ids."""

    pair_scalars: Array
    side1_node: Array
    side2_node: Array

    @property
    def num_pairs(self: "PropagationSchedule") -> int:
        return int(self.pair_scalars.shape[0])


def prepare_propagation_schedule(
    arena: HierarchyArena,
    pairs: Tuple[ClusterPair, ...],
    power: float,
) -> PropagationSchedule:
    """Map admissible pairs onto arena ids and precompute ``a_IJ``."""
    side1, side2 = pair_node_ids(arena, pairs)
    return PropagationSchedule(
        pair_scalars=pair_far_field_scalars(pairs, power),
        side1_node=as_index(side1),
        side2_node=as_index(side2),
    )


@partial(jax.jit, static_argnames=("num_nodes",))
@jaxtyped(typechecker=beartype)
def accumulate_pending_contributions(
    partial_sums: Array,
    pair_scalars: Array,
    side1_node: Array,
    side2_node: Array,
    *,
    num_nodes: int,
) -> Array:
    """Sum ``a_IJ * V_J`` into side 1 of every admissible pair."""
    return jax.ops.segment_sum(
        pair_scalars * partial_sums[side2_node], side1_node, num_nodes
    )


@jax.jit
@jaxtyped(typechecker=beartype)
def propagate_downward(pending: Array, parent: Array) -> Array:
    """Return ``B_I = B_parent(I) + pending_I`` for every node, root first."""
    num_nodes = pending.shape[0]

    def body(step: Array, state: Array) -> Array:
        node = step + 1
        return state.at[node].add(state[parent[node]])

    return lax.fori_loop(0, num_nodes - 1, body, pending)


@partial(jax.jit, static_argnames=("num_elements",))
@jaxtyped(typechecker=beartype)
def _scatter_leaf_values(
    accumulated: Array,
    leaf_entry_node: Array,
    leaf_entry_element: Array,
    leaf_entry_mass: Array,
    *,
    num_elements: int,
) -> Array:
    return jax.ops.segment_sum(
        leaf_entry_mass * accumulated[leaf_entry_node],
        leaf_entry_element,
        num_elements,
    )


def multiply_far_field_scalar(
    values: ArrayLike,
    arena: HierarchyArena,
    schedule: PropagationSchedule,
) -> Array:
    """Raw far-field product ``b_i = m_i * sum_{(I, J)} a_IJ * V_J`` for one column.

    ``I`` ranges over the leaf holding ``i`` and its ancestors.
    """
    values = jnp.asarray(values)
    if values.ndim != 1:
        raise ValueError("values must be a 1D array (one scalar per element)")
    if schedule.num_pairs == 0 or arena.num_nodes == 0:
        return jnp.zeros_like(values)

    partial_sums = compute_node_partial_sums(values, arena)
    pending = accumulate_pending_contributions(
        partial_sums,
        schedule.pair_scalars,
        schedule.side1_node,
        schedule.side2_node,
        num_nodes=arena.num_nodes,
    )
    accumulated = propagate_downward(pending, arena.parent)
    return _scatter_leaf_values(
        accumulated,
        arena.leaf_entry_node,
        arena.leaf_entry_element,
        arena.leaf_entry_mass,
        num_elements=int(values.shape[0]),
    )


def apply_propagated_far_field(
    values: ArrayLike,
    arena: HierarchyArena,
    schedule: PropagationSchedule,
) -> Array:
    """Apply the admissible blocks to an ``(N, 3)`` field via tree sweeps.

    The row-sum term comes from one extra sweep on the all-ones field,
    ``h = A_f 1``, after which ``out = 2 * (diag(h) v - A_f v)``.
    """
    values = jnp.asarray(values)
    if values.ndim != 2:
        raise ValueError("values must have shape (N, 3)")
    if schedule.num_pairs == 0:
        return jnp.zeros_like(values)

    ones = jnp.ones((values.shape[0],), dtype=values.dtype)
    row_sums = multiply_far_field_scalar(ones, arena, schedule)
    columns = [
        multiply_far_field_scalar(values[:, axis], arena, schedule)
        for axis in range(values.shape[1])
    ]
    raw = jnp.stack(columns, axis=1)
    return 2.0 * (row_sums[:, None] * values - raw)


__all__ = [
    "PropagationSchedule",
    "accumulate_pending_contributions",
    "apply_propagated_far_field",
    "multiply_far_field_scalar",
    "prepare_propagation_schedule",
    "propagate_downward",
]
