"""Structural protocols for the curve and hierarchy collaborators."""

from __future__ import annotations

from typing import NamedTuple, Protocol, Sequence, Tuple, runtime_checkable

import numpy as np
from jaxtyping import ArrayLike


class Constituent(NamedTuple):
    """One curve element as seen by a cluster: point mass at ``position``."""

    position: ArrayLike
    mass: float
    index: int


@runtime_checkable
class CurvePointProtocol(Protocol):
    """Handle to one curve point; two handles are equal iff their ids match."""

    index: int

    def position(self: "CurvePointProtocol") -> ArrayLike: ...

    def next(self: "CurvePointProtocol") -> "CurvePointProtocol": ...


@runtime_checkable
class CurveProtocol(Protocol):
    """Polygonal curve; element ``i`` spans ``curve_point(i)`` to its ``next()``."""

    num_elements: int

    def curve_point(self: "CurveProtocol", index: int) -> CurvePointProtocol: ...


@runtime_checkable
class ClusterNodeProtocol(Protocol):
    """Spatial cluster of curve elements (one node of the hierarchy)."""

    num_elements: int
    children: Sequence["ClusterNodeProtocol"]
    center_of_mass: ArrayLike
    total_mass: float
    cluster_indices: Sequence[int]

    def viewspace_bounds(
        self: "ClusterNodeProtocol", point: ArrayLike
    ) -> Tuple[float, float]: ...

    def cluster_masses(self: "ClusterNodeProtocol") -> np.ndarray: ...

    def constituents(self: "ClusterNodeProtocol") -> Sequence[Constituent]: ...

    def element_index(self: "ClusterNodeProtocol") -> int: ...


__all__ = [
    "ClusterNodeProtocol",
    "Constituent",
    "CurvePointProtocol",
    "CurveProtocol",
]
