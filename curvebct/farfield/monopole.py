"""Monopole (direct form) far-field evaluation over admissible pairs."""

from __future__ import annotations

from functools import partial
from typing import NamedTuple, Tuple

import jax
import jax.numpy as jnp
import numpy as np
from beartype import beartype
from jaxtyping import Array, ArrayLike, jaxtyped

from ..partition.cluster_pairs import ClusterPair
from ..runtime.dtypes import HOST_INDEX_DTYPE, as_index


class MonopoleSchedule(NamedTuple):
    """Per-pair far-field scalars and flattened side memberships.

    Attributes
    ----------
    pair_scalars:
        ``(P,)`` values ``a_IJ = 1 / |c_I - c_J|**power``.
    side1_pair, side1_element, side1_mass:
        One entry per element of side 1 of each pair (receivers).
    side2_pair, side2_element, side2_mass:
        One entry per element of side 2 of each pair (sources).
    """

    pair_scalars: Array
    side1_pair: Array
    side1_element: Array
    side1_mass: Array
    side2_pair: Array
    side2_element: Array
    side2_mass: Array

    @property
    def num_pairs(self: "MonopoleSchedule") -> int:
        return int(self.pair_scalars.shape[0])


def far_field_scalar(pair: ClusterPair, power: float) -> float:
    """Return ``1 / |c_1 - c_2|**power`` for an admissible pair."""
    return float(1.0 / pair.centroid_distance() ** power)


def _side_entries(
    pairs: Tuple[ClusterPair, ...],
    side: int,
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    pair_ids: list[np.ndarray] = []
    elements: list[np.ndarray] = []
    masses: list[np.ndarray] = []
    for k, pair in enumerate(pairs):
        node = pair.cluster1 if side == 1 else pair.cluster2
        idx = np.asarray(node.cluster_indices, dtype=HOST_INDEX_DTYPE)
        mass = np.asarray(node.cluster_masses(), dtype=np.float64).reshape(-1)
        pair_ids.append(np.full(idx.shape, k, dtype=HOST_INDEX_DTYPE))
        elements.append(idx)
        masses.append(mass)
    if not pair_ids:
        empty_idx = np.zeros((0,), dtype=HOST_INDEX_DTYPE)
        return empty_idx, empty_idx, np.zeros((0,), dtype=np.float64)
    return np.concatenate(pair_ids), np.concatenate(elements), np.concatenate(masses)


def prepare_monopole_schedule(
    pairs: Tuple[ClusterPair, ...],
    power: float,
) -> MonopoleSchedule:
    """Gather cluster masses and far-field scalars for every admissible pair."""
    s1_pair, s1_elem, s1_mass = _side_entries(pairs, 1)
    s2_pair, s2_elem, s2_mass = _side_entries(pairs, 2)
    return MonopoleSchedule(
        pair_scalars=pair_far_field_scalars(pairs, power),
        side1_pair=as_index(s1_pair),
        side1_element=as_index(s1_elem),
        side1_mass=jnp.asarray(s1_mass),
        side2_pair=as_index(s2_pair),
        side2_element=as_index(s2_elem),
        side2_mass=jnp.asarray(s2_mass),
    )


@partial(jax.jit, static_argnames=("num_elements", "num_pairs"))
@jaxtyped(typechecker=beartype)
def _apply_monopole_impl(
    values: Array,
    pair_scalars: Array,
    side1_pair: Array,
    side1_element: Array,
    side1_mass: Array,
    side2_pair: Array,
    side2_element: Array,
    side2_mass: Array,
    *,
    num_elements: int,
    num_pairs: int,
) -> Array:
    # a_IJ * w_f(J)^T 1(J) and a_IJ * w_f(J)^T v(J) per pair.
    mass_sums = jax.ops.segment_sum(side2_mass, side2_pair, num_pairs)
    weighted = jax.ops.segment_sum(
        side2_mass[:, None] * values[side2_element], side2_pair, num_pairs
    )
    a_wf_1 = pair_scalars * mass_sums
    a_wf_v = pair_scalars[:, None] * weighted

    contrib = (
        2.0
        * side1_mass[:, None]
        * (
            a_wf_1[side1_pair][:, None] * values[side1_element]
            - a_wf_v[side1_pair]
        )
    )
    return jax.ops.segment_sum(contrib, side1_element, num_elements)


def apply_monopole_direct(
    values: ArrayLike,
    schedule: MonopoleSchedule,
) -> Array:
    """Apply the monopole-approximated admissible blocks to ``values``."""
    values = jnp.asarray(values)
    if schedule.num_pairs == 0:
        return jnp.zeros_like(values)
    return _apply_monopole_impl(
        values,
        schedule.pair_scalars,
        schedule.side1_pair,
        schedule.side1_element,
        schedule.side1_mass,
        schedule.side2_pair,
        schedule.side2_element,
        schedule.side2_mass,
        num_elements=int(values.shape[0]),
        num_pairs=schedule.num_pairs,
    )


def pair_far_field_scalars(
    pairs: Tuple[ClusterPair, ...],
    power: float,
) -> Array:
    """Vector of ``a_IJ`` for ``pairs`` in order."""
    return jnp.asarray(
        np.asarray([far_field_scalar(pair, power) for pair in pairs], dtype=np.float64)
    )


__all__ = [
    "MonopoleSchedule",
    "apply_monopole_direct",
    "far_field_scalar",
    "pair_far_field_scalars",
    "prepare_monopole_schedule",
]
