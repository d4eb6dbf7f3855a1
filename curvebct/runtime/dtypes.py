"""Centralized dtypes for integer indices.

Keep a single source of truth for index dtype so the codebase can be
switched between 32-bit and 64-bit indices easily.
"""

import jax.numpy as jnp
import numpy as np

# Use 64-bit indices by default; without ``jax_enable_x64`` JAX narrows them.
INDEX_DTYPE = jnp.int64
HOST_INDEX_DTYPE = np.int64


def as_index(x: object) -> jnp.ndarray:
    """Convert a Python, NumPy or JAX scalar/array to INDEX_DTYPE.

    Schedules are assembled on the host with NumPy and handed to the jitted
    kernels through this helper so every index array shares one dtype.
    """
    return jnp.asarray(x, dtype=INDEX_DTYPE)


__all__ = ["HOST_INDEX_DTYPE", "INDEX_DTYPE", "as_index"]
