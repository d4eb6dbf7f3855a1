"""End-to-end checks of block tree products against the dense operator."""

import jax
import jax.numpy as jnp
import numpy as np
import pytest

from curvebct import BlockClusterTree, MultiplyMode
from curvebct.runtime.reference import dense_operator_matrix, direct_apply
from examples.benchmark_utils import generate_random_curve, random_field
from examples.polyline_bvh import build_segment_bvh, circle_curve, helix_curve

jax.config.update("jax_enable_x64", True)


def _relative_error(approx, reference):
    return float(jnp.linalg.norm(approx - reference) / jnp.linalg.norm(reference))


@pytest.mark.parametrize("leaf_size", [1, 4])
@pytest.mark.parametrize("theta", [0.25, 0.8])
def test_exact_mode_matches_dense_operator(leaf_size, theta):
    curve = helix_curve(160, turns=4.0)
    root = build_segment_bvh(curve, leaf_size=leaf_size)
    tree = BlockClusterTree(curve, root, theta=theta, alpha=2.0, beta=4.5)
    values = random_field(160, key=jax.random.PRNGKey(3))

    out = tree.multiply(values, mode=MultiplyMode.EXACT)
    dense = dense_operator_matrix(tree.geometry, tree.parameters.kernel_power)

    np.testing.assert_allclose(
        np.asarray(out), np.asarray(dense @ values), rtol=1e-9, atol=1e-9
    )


def test_approximation_error_is_bounded_on_circle():
    curve = circle_curve(128)
    root = build_segment_bvh(curve, leaf_size=1)
    tree = BlockClusterTree(curve, root, theta=0.25, alpha=2.0, beta=4.0)
    values = random_field(128, key=jax.random.PRNGKey(5))

    reference = direct_apply(values, tree.geometry, tree.parameters.kernel_power)
    report = tree.compare_blocks(verbose=False)

    assert tree.admissible_pairs
    assert report.relative_percent < 10.0
    for mode in (MultiplyMode.MONOPOLE, MultiplyMode.PROPAGATED):
        assert _relative_error(tree.multiply(values, mode=mode), reference) < 0.1


def test_random_curve_modes_agree():
    curve, _ = generate_random_curve(200, key=jax.random.PRNGKey(11), step_scale=0.1)
    root = build_segment_bvh(curve, leaf_size=2)
    tree = BlockClusterTree(curve, root, theta=0.4, alpha=2.0, beta=4.5)
    values = random_field(200, key=jax.random.PRNGKey(12))

    monopole = tree.multiply(values, mode="monopole")
    propagated = tree.multiply(values, mode="propagated")
    exact = tree.multiply(values, mode="exact")

    np.testing.assert_allclose(
        np.asarray(propagated), np.asarray(monopole), rtol=1e-9, atol=1e-9
    )
    np.testing.assert_allclose(
        np.asarray(exact),
        np.asarray(direct_apply(values, tree.geometry, tree.parameters.kernel_power)),
        rtol=1e-9,
        atol=1e-9,
    )
