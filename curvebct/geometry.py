"""Per-element curve geometry shared by the kernels."""

from __future__ import annotations

from typing import NamedTuple

import jax.numpy as jnp
import numpy as np
from beartype import beartype
from jaxtyping import Array, jaxtyped

from .protocols import CurveProtocol
from .runtime.dtypes import HOST_INDEX_DTYPE, as_index


class CurveElementGeometry(NamedTuple):
    """Cached segment data for every curve element.

    Attributes
    ----------
    midpoints:
        ``(N, 3)`` segment midpoints.
    lengths:
        ``(N,)`` segment lengths, the element masses of the kernel.
    point_ids:
        ``(N,)`` id of the point each segment starts at.
    next_ids:
        ``(N,)`` id of the point each segment ends at.
    """

    midpoints: Array
    lengths: Array
    point_ids: Array
    next_ids: Array

    @property
    def num_elements(self: "CurveElementGeometry") -> int:
        return int(self.lengths.shape[0])


def build_element_geometry(curve: CurveProtocol) -> CurveElementGeometry:
    """Read midpoints, lengths and adjacency ids from ``curve`` once."""
    n = int(curve.num_elements)
    midpoints = np.zeros((n, 3), dtype=np.float64)
    lengths = np.zeros((n,), dtype=np.float64)
    point_ids = np.zeros((n,), dtype=HOST_INDEX_DTYPE)
    next_ids = np.zeros((n,), dtype=HOST_INDEX_DTYPE)

    for i in range(n):
        point = curve.curve_point(i)
        following = point.next()
        start = np.asarray(point.position(), dtype=np.float64)
        end = np.asarray(following.position(), dtype=np.float64)
        midpoints[i] = 0.5 * (start + end)
        lengths[i] = np.linalg.norm(start - end)
        point_ids[i] = int(point.index)
        next_ids[i] = int(following.index)

    return CurveElementGeometry(
        midpoints=jnp.asarray(midpoints),
        lengths=jnp.asarray(lengths),
        point_ids=as_index(point_ids),
        next_ids=as_index(next_ids),
    )


@jaxtyped(typechecker=beartype)
def neighbor_mask(
    point_ids: Array,
    next_ids: Array,
    rows: Array,
    cols: Array,
) -> Array:
    """Return ``True`` where elements ``rows[k]`` and ``cols[k]`` share a point.

    The diagonal counts as adjacent, so self pairs are masked as well.
    """
    p1 = point_ids[rows]
    p2 = point_ids[cols]
    n1 = next_ids[rows]
    n2 = next_ids[cols]
    return (p1 == p2) | (n1 == p2) | (p1 == n2) | (n1 == n2)


__all__ = ["CurveElementGeometry", "build_element_geometry", "neighbor_mask"]
