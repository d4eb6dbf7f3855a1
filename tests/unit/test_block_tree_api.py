"""Public API tests for BlockClusterTree."""

import io
import logging

import jax
import jax.numpy as jnp
import numpy as np
import pytest

from curvebct import BlockClusterTree, MultiplyMode, MultiplyProfile, normalize_mode
from curvebct.runtime.reference import direct_apply
from examples.polyline_bvh import PolylineCurve, build_segment_bvh, circle_curve, helix_curve

jax.config.update("jax_enable_x64", True)


def _tree(num_elements=96, *, theta=0.5, leaf_size=1, **kwargs):
    curve = helix_curve(num_elements, turns=3.0)
    root = build_segment_bvh(curve, leaf_size=leaf_size)
    return BlockClusterTree(curve, root, theta=theta, alpha=2.0, beta=4.0, **kwargs)


def _field(n, seed):
    return jnp.asarray(np.random.default_rng(seed).normal(size=(n, 3)))


def test_four_collinear_elements_in_every_mode():
    curve = PolylineCurve(np.asarray([[x, 0.0, 0.0] for x in range(5)], dtype=float))
    root = build_segment_bvh(curve, leaf_size=1)
    tree = BlockClusterTree(curve, root, theta=100.0, alpha=0.0, beta=4.0)
    values = jnp.asarray(
        [[1.0, 0.0, 0.0], [0.0, 1.0, 0.0], [0.0, 0.0, 1.0], [1.0, 1.0, 1.0]]
    )
    expected = np.asarray(
        [
            [0.125, -2.0 / 81.0, -0.125 - 2.0 / 81.0],
            [-0.125, 0.0, -0.125],
            [-0.125, 0.0, 0.125],
            [0.125, 2.0 / 81.0, 0.125 + 2.0 / 81.0],
        ]
    )

    assert tree.summary() == "0 admissible pairs\n1 inadmissible pairs"
    for mode in MultiplyMode:
        out = tree.multiply(values, mode=mode)
        np.testing.assert_allclose(np.asarray(out), expected, rtol=1e-12, atol=1e-14)


@pytest.mark.parametrize("num_elements", [2, 5, 8])
def test_zero_theta_matches_brute_force(num_elements):
    curve = helix_curve(num_elements)
    root = build_segment_bvh(curve, leaf_size=1)
    tree = BlockClusterTree(curve, root, theta=0.0, alpha=1.0, beta=3.5)
    values = _field(curve.num_elements, 0)

    reference = direct_apply(values, tree.geometry, tree.parameters.kernel_power)

    assert tree.admissible_pairs == ()
    for mode in MultiplyMode:
        np.testing.assert_allclose(
            np.asarray(tree.multiply(values, mode=mode)),
            np.asarray(reference),
            rtol=1e-10,
            atol=1e-12,
        )


@pytest.mark.parametrize("mode", list(MultiplyMode))
def test_multiply_is_linear(mode):
    tree = _tree()
    u = _field(96, 1)
    v = _field(96, 2)

    lhs = tree.multiply(2.5 * u - 0.75 * v, mode=mode)
    rhs = 2.5 * tree.multiply(u, mode=mode) - 0.75 * tree.multiply(v, mode=mode)

    np.testing.assert_allclose(np.asarray(lhs), np.asarray(rhs), rtol=1e-9, atol=1e-10)


@pytest.mark.parametrize("mode", list(MultiplyMode))
def test_multiply_is_symmetric(mode):
    tree = _tree()
    u = _field(96, 3)
    v = _field(96, 4)

    uv = float(jnp.sum(u * tree.multiply(v, mode=mode)))
    vu = float(jnp.sum(v * tree.multiply(u, mode=mode)))

    assert uv == pytest.approx(vu, rel=1e-9, abs=1e-9)


@pytest.mark.parametrize("leaf_size", [1, 3])
def test_propagated_matches_monopole(leaf_size):
    tree = _tree(leaf_size=leaf_size)
    values = _field(96, 5)

    assert tree.admissible_pairs
    np.testing.assert_allclose(
        np.asarray(tree.multiply(values, mode="propagated")),
        np.asarray(tree.multiply(values, mode="monopole")),
        rtol=1e-10,
        atol=1e-12,
    )


def test_default_mode_and_set_mode():
    tree = _tree(mode="Monopole")
    values = _field(96, 6)

    assert tree.mode is MultiplyMode.MONOPOLE
    monopole = tree.multiply(values)
    tree.set_mode(" exact ")
    assert tree.mode is MultiplyMode.EXACT
    np.testing.assert_allclose(
        np.asarray(tree.multiply(values)),
        np.asarray(tree.multiply(values, mode=MultiplyMode.EXACT)),
    )
    np.testing.assert_allclose(
        np.asarray(monopole),
        np.asarray(tree.multiply(values, mode="monopole")),
    )


def test_mode_normalization():
    assert normalize_mode("PROPAGATED") is MultiplyMode.PROPAGATED
    assert normalize_mode(MultiplyMode.EXACT) is MultiplyMode.EXACT
    with pytest.raises(ValueError, match="mode must be one of"):
        normalize_mode("fast")


def test_out_is_accumulated():
    tree = _tree()
    values = _field(96, 7)
    base = _field(96, 8)

    out = tree.multiply(values, out=base)

    np.testing.assert_allclose(
        np.asarray(out), np.asarray(base + tree.multiply(values)), rtol=1e-12
    )


def test_split_products_add_up():
    tree = _tree()
    values = _field(96, 9)

    near = tree.multiply_inadmissible(values)
    np.testing.assert_allclose(
        np.asarray(near + tree.multiply_admissible(values)),
        np.asarray(tree.multiply(values, mode="monopole")),
    )
    np.testing.assert_allclose(
        np.asarray(near + tree.multiply_admissible_fast(values)),
        np.asarray(tree.multiply(values, mode="propagated")),
    )
    np.testing.assert_allclose(
        np.asarray(near + tree.multiply_admissible_exact(values)),
        np.asarray(tree.multiply(values, mode="exact")),
    )


def test_far_field_scalar_row_sums_are_positive():
    tree = _tree()

    row_sums = tree.multiply_far_field_scalar(jnp.ones((96,)))

    assert row_sums.shape == (96,)
    assert np.all(np.asarray(row_sums) >= 0.0)
    assert float(jnp.sum(row_sums)) > 0.0


def test_shape_mismatch_raises():
    tree = _tree()

    with pytest.raises(ValueError, match="shape"):
        tree.multiply(jnp.ones((95, 3)))
    with pytest.raises(ValueError, match="shape"):
        tree.multiply(jnp.ones((96, 2)))
    with pytest.raises(ValueError, match="shape"):
        tree.multiply(jnp.ones((96, 3)), out=jnp.ones((96,)))
    with pytest.raises(ValueError, match="shape"):
        tree.multiply_far_field_scalar(jnp.ones((96, 3)))


def test_empty_curve_is_a_no_op():
    curve = PolylineCurve(np.zeros((1, 3)))
    tree = BlockClusterTree(curve, build_segment_bvh(curve), theta=0.5, alpha=2.0, beta=4.0)

    out = tree.multiply(jnp.zeros((0, 3)))

    assert out.shape == (0, 3)
    assert tree.summary() == "0 admissible pairs\n0 inadmissible pairs"
    assert tree.partition.dropped == 1


@pytest.mark.parametrize(
    "kwargs",
    [
        dict(theta=-0.1),
        dict(theta=float("nan")),
        dict(theta=float("inf")),
        dict(alpha=float("nan")),
        dict(beta=float("inf")),
        dict(epsilon=float("nan")),
        dict(small_pair_threshold=1),
        dict(mode="fastest"),
    ],
)
def test_invalid_configuration_raises(kwargs):
    curve = circle_curve(8)
    root = build_segment_bvh(curve)
    params = dict(theta=0.5, alpha=2.0, beta=4.0)
    params.update(kwargs)

    with pytest.raises(ValueError):
        BlockClusterTree(curve, root, **params)


def test_profile_counters_accumulate():
    tree = _tree()
    values = _field(96, 10)
    profile = MultiplyProfile()

    tree.multiply(values, mode="propagated", profile=profile)
    tree.multiply(values, mode="monopole", profile=profile)

    assert profile.calls == 2
    assert profile.ill_separated_seconds > 0.0
    assert profile.well_separated_seconds > 0.0
    assert 0.0 < profile.traversal_seconds <= profile.well_separated_seconds
    assert profile.total_seconds == pytest.approx(
        profile.well_separated_seconds + profile.ill_separated_seconds
    )

    profile.reset()
    assert profile.calls == 0
    assert profile.total_seconds == 0.0


def test_profile_does_not_change_results():
    tree = _tree()
    values = _field(96, 11)

    np.testing.assert_array_equal(
        np.asarray(tree.multiply(values, profile=MultiplyProfile())),
        np.asarray(tree.multiply(values)),
    )


def test_print_data_and_compare_blocks_write_to_stream():
    tree = _tree(theta=0.25)
    stream = io.StringIO()

    tree.print_data(stream)
    report = tree.compare_blocks(stream)

    lines = stream.getvalue().splitlines()
    assert lines[0] == f"{len(tree.admissible_pairs)} admissible pairs"
    assert lines[1] == f"{len(tree.inadmissible_pairs)} inadmissible pairs"
    assert lines[-1].startswith("Total error = ")
    assert report.num_admissible == len(tree.admissible_pairs)


def test_construction_logs_summary(caplog):
    with caplog.at_level(logging.DEBUG, logger="curvebct"):
        tree = _tree(32)

    messages = [r.getMessage() for r in caplog.records]
    assert any(
        m.startswith("Block cluster tree over 32 elements") for m in messages
    )
    assert tree.num_elements == 32


def test_round_logger_is_forwarded():
    events = []
    tree = _tree(64, round_logger=events.append)

    assert len(events) == tree.partition.rounds
