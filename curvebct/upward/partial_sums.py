"""Upward sweep: mass-weighted partial sums of a scalar field per node."""

from __future__ import annotations

from functools import partial

import jax
import jax.numpy as jnp
from beartype import beartype
from jax import lax
from jaxtyping import Array, ArrayLike, jaxtyped

from ..partition.arena import HierarchyArena


@partial(jax.jit, static_argnames=("num_nodes",))
@jaxtyped(typechecker=beartype)
def _upward_sums_impl(
    values: Array,
    parent: Array,
    leaf_entry_node: Array,
    leaf_entry_element: Array,
    leaf_entry_mass: Array,
    *,
    num_nodes: int,
) -> Array:
    sums = jax.ops.segment_sum(
        leaf_entry_mass * values[leaf_entry_element],
        leaf_entry_node,
        num_nodes,
    )

    def body(step: Array, state: Array) -> Array:
        # Pre-order ids: every descendant of ``node`` has a larger id and has
        # already been folded in when ``node`` is reached.
        node = num_nodes - 1 - step
        return state.at[parent[node]].add(state[node])

    return lax.fori_loop(0, num_nodes - 1, body, sums)


def compute_node_partial_sums(
    values: ArrayLike,
    arena: HierarchyArena,
) -> Array:
    """Return ``V_I = sum_{j in I} mass_j * v_j`` for every arena node.

    Leaves sum their own elements; internal nodes sum their children. The
    result is a fresh ``(num_nodes,)`` array, so no state is left on the
    hierarchy between calls.
    """
    values = jnp.asarray(values)
    if values.ndim != 1:
        raise ValueError("values must be a 1D array (one scalar per element)")
    return _upward_sums_impl(
        values,
        arena.parent,
        arena.leaf_entry_node,
        arena.leaf_entry_element,
        arena.leaf_entry_mass,
        num_nodes=arena.num_nodes,
    )


__all__ = ["compute_node_partial_sums"]
