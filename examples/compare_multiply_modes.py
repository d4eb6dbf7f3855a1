"""Cross-compare block tree construction and the three multiply modes.

Run with:
    JAX_ENABLE_X64=1 python -m examples.compare_multiply_modes
"""

from __future__ import annotations

import time

import jax
import jax.numpy as jnp

from curvebct import BlockClusterTree, MultiplyMode, MultiplyProfile
from curvebct.runtime.reference import direct_apply

from .benchmark_utils import random_field, time_callable
from .polyline_bvh import build_segment_bvh, helix_curve


def main() -> None:
    jax.config.update("jax_enable_x64", True)

    num_elements = 2_048
    curve = helix_curve(num_elements, turns=6.0)
    values = random_field(num_elements)

    t0 = time.perf_counter()
    root = build_segment_bvh(curve, leaf_size=1)
    bvh_s = time.perf_counter() - t0

    t0 = time.perf_counter()
    tree = BlockClusterTree(curve, root, theta=0.25, alpha=2.0, beta=4.5)
    build_s = time.perf_counter() - t0

    print(f"N={num_elements} bvh={bvh_s:.4f}s block_tree={build_s:.4f}s")
    tree.print_data()

    reference = direct_apply(values, tree.geometry, tree.parameters.kernel_power)
    ref_norm = float(jnp.linalg.norm(reference))

    for mode in MultiplyMode:
        profile = MultiplyProfile()
        timing = time_callable(
            lambda v: tree.multiply(v, mode=mode, profile=profile),
            values,
            warmup=1,
            runs=3,
        )
        rel = float(jnp.linalg.norm(timing.result - reference)) / ref_norm
        print(
            f"[{mode.value:>10}] mean={timing.mean:.4f}s std={timing.std:.4f}s "
            f"rel_error={rel:.3e} near={profile.ill_separated_seconds:.4f}s "
            f"far={profile.well_separated_seconds:.4f}s "
            f"traversal={profile.traversal_seconds:.4f}s calls={profile.calls}"
        )

    tree.compare_blocks(verbose=False)


if __name__ == "__main__":
    main()
