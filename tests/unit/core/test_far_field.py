"""Tests for the monopole far field and its propagated realization."""

import jax
import jax.numpy as jnp
import numpy as np
import pytest

from curvebct.diagnostics.accuracy import monopole_block
from curvebct.downward.far_field_locals import (
    apply_propagated_far_field,
    multiply_far_field_scalar,
    prepare_propagation_schedule,
)
from curvebct.farfield.monopole import apply_monopole_direct, prepare_monopole_schedule
from curvebct.partition.arena import build_hierarchy_arena
from curvebct.partition.cluster_pairs import classify_cluster_pairs
from curvebct.upward.partial_sums import compute_node_partial_sums
from examples.polyline_bvh import build_segment_bvh, helix_curve

jax.config.update("jax_enable_x64", True)

POWER = 2.0


def _setup(num_elements, leaf_size, theta=0.5):
    curve = helix_curve(num_elements, turns=3.0)
    root = build_segment_bvh(curve, leaf_size=leaf_size)
    partition = classify_cluster_pairs(root, theta=theta)
    arena = build_hierarchy_arena(root)
    return curve, root, partition, arena


def _dense_far_field(partition, num_elements):
    dense = np.zeros((num_elements, num_elements))
    for pair in partition.admissible:
        rows = np.asarray(pair.cluster1.cluster_indices)
        cols = np.asarray(pair.cluster2.cluster_indices)
        dense[np.ix_(rows, cols)] += -monopole_block(pair, POWER)
    return dense


def test_partial_sums_match_cluster_totals():
    _, root, _, arena = _setup(40, leaf_size=2)
    values = np.random.default_rng(0).normal(size=(40,))

    sums = np.asarray(compute_node_partial_sums(values, arena))

    for node_id, node in enumerate(arena.nodes):
        idx = np.asarray(node.cluster_indices)
        expected = np.sum(node.cluster_masses() * values[idx])
        np.testing.assert_allclose(sums[node_id], expected, rtol=1e-12, atol=1e-12)


@pytest.mark.parametrize("leaf_size", [1, 4])
def test_scalar_far_field_matches_dense_blocks(leaf_size):
    curve, _, partition, arena = _setup(96, leaf_size=leaf_size)
    assert partition.admissible
    schedule = prepare_propagation_schedule(arena, partition.admissible, POWER)
    values = np.random.default_rng(2).normal(size=(96,))

    out = multiply_far_field_scalar(values, arena, schedule)

    dense = _dense_far_field(partition, curve.num_elements)
    np.testing.assert_allclose(np.asarray(out), dense @ values, rtol=1e-10, atol=1e-12)


@pytest.mark.parametrize("leaf_size", [1, 4])
def test_propagated_matches_monopole_direct(leaf_size):
    _, _, partition, arena = _setup(128, leaf_size=leaf_size)
    values = np.random.default_rng(3).normal(size=(128, 3))

    direct = apply_monopole_direct(
        values, prepare_monopole_schedule(partition.admissible, POWER)
    )
    propagated = apply_propagated_far_field(
        values,
        arena,
        prepare_propagation_schedule(arena, partition.admissible, POWER),
    )

    np.testing.assert_allclose(
        np.asarray(propagated), np.asarray(direct), rtol=1e-10, atol=1e-12
    )


def test_monopole_direct_matches_dense_identity():
    curve, _, partition, _ = _setup(64, leaf_size=1)
    values = np.random.default_rng(4).normal(size=(64, 3))
    dense = _dense_far_field(partition, curve.num_elements)

    out = apply_monopole_direct(
        values, prepare_monopole_schedule(partition.admissible, POWER)
    )

    expected = 2.0 * (dense.sum(axis=1)[:, None] * values - dense @ values)
    np.testing.assert_allclose(np.asarray(out), expected, rtol=1e-10, atol=1e-12)


def test_no_admissible_pairs_gives_zero():
    _, _, partition, arena = _setup(32, leaf_size=1, theta=0.0)
    values = jnp.ones((32, 3))

    out = apply_propagated_far_field(
        values,
        arena,
        prepare_propagation_schedule(arena, partition.admissible, POWER),
    )

    np.testing.assert_array_equal(np.asarray(out), 0.0)


def test_scalar_sweep_rejects_fields():
    _, _, partition, arena = _setup(16, leaf_size=1)
    schedule = prepare_propagation_schedule(arena, partition.admissible, POWER)

    with pytest.raises(ValueError, match="1D"):
        multiply_far_field_scalar(np.ones((16, 3)), arena, schedule)
