"""Reference polyline and segment hierarchy for tests and benchmarks.

``PolylineCurve`` and ``SegmentBVHNode`` satisfy the collaborator protocols of
:mod:`curvebct.protocols`. The hierarchy is a plain median split on segment
midpoints; it is not tuned for quality, only for being easy to reason about.
"""

from __future__ import annotations

from typing import Optional, Sequence, Tuple

import numpy as np
from jaxtyping import ArrayLike

from curvebct.protocols import Constituent


class PolylinePoint:
    """Handle on one vertex of a :class:`PolylineCurve`."""

    __slots__ = ("_curve", "index")

    def __init__(self, curve: "PolylineCurve", index: int) -> None:
        self._curve = curve
        self.index = int(index)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PolylinePoint):
            return NotImplemented
        return self._curve is other._curve and self.index == other.index

    def __hash__(self) -> int:
        return hash((id(self._curve), self.index))

    def position(self: "PolylinePoint") -> np.ndarray:
        return self._curve.vertices[self.index]

    def next(self: "PolylinePoint") -> "PolylinePoint":
        """Following vertex along the curve; wraps around on closed curves."""
        num_vertices = self._curve.num_vertices
        following = self.index + 1
        if following >= num_vertices:
            if not self._curve.closed:
                raise ValueError("last vertex of an open polyline has no successor")
            following = 0
        return PolylinePoint(self._curve, following)


class PolylineCurve:
    """Polygonal curve through ``vertices``, open or closed."""

    def __init__(self, vertices: ArrayLike, *, closed: bool = False) -> None:
        verts = np.asarray(vertices, dtype=np.float64)
        if verts.ndim != 2 or verts.shape[1] not in (2, 3):
            raise ValueError("vertices must have shape (n, 2) or (n, 3)")
        if verts.shape[1] == 2:
            verts = np.concatenate([verts, np.zeros((verts.shape[0], 1))], axis=1)
        self.vertices = verts
        self.closed = bool(closed)
        if verts.shape[0] < 2:
            self.num_elements = 0
        else:
            self.num_elements = verts.shape[0] if self.closed else verts.shape[0] - 1

    @property
    def num_vertices(self: "PolylineCurve") -> int:
        return int(self.vertices.shape[0])

    def curve_point(self: "PolylineCurve", index: int) -> PolylinePoint:
        if not 0 <= index < self.num_vertices:
            raise IndexError(f"vertex index {index} out of range")
        return PolylinePoint(self, index)

    def segment_endpoints(self: "PolylineCurve") -> Tuple[np.ndarray, np.ndarray]:
        """Return ``(starts, ends)`` of every element, each ``(N, 3)``."""
        idx = np.arange(self.num_elements)
        following = (idx + 1) % self.num_vertices
        return self.vertices[idx], self.vertices[following]


def circle_curve(num_elements: int, *, radius: float = 1.0) -> PolylineCurve:
    """Closed regular polygon with ``num_elements`` sides in the xy-plane."""
    angles = np.linspace(0.0, 2.0 * np.pi, num_elements, endpoint=False)
    vertices = np.stack(
        [radius * np.cos(angles), radius * np.sin(angles), np.zeros_like(angles)],
        axis=1,
    )
    return PolylineCurve(vertices, closed=True)


def helix_curve(
    num_elements: int,
    *,
    turns: float = 3.0,
    radius: float = 1.0,
    pitch: float = 0.5,
) -> PolylineCurve:
    """Open helix around the z-axis."""
    t = np.linspace(0.0, 2.0 * np.pi * turns, num_elements + 1)
    vertices = np.stack(
        [radius * np.cos(t), radius * np.sin(t), pitch * t / (2.0 * np.pi)], axis=1
    )
    return PolylineCurve(vertices, closed=False)


class SegmentBVHNode:
    """Axis-aligned bounding box over a set of curve segments."""

    def __init__(
        self,
        indices: np.ndarray,
        midpoints: np.ndarray,
        lengths: np.ndarray,
        box_min: np.ndarray,
        box_max: np.ndarray,
        children: Sequence["SegmentBVHNode"] = (),
    ) -> None:
        self._indices = np.asarray(indices, dtype=np.int64)
        self._midpoints = midpoints
        self._lengths = lengths
        self.box_min = box_min
        self.box_max = box_max
        self.children = tuple(children)
        self.num_elements = int(self._indices.shape[0])
        self.cluster_indices = tuple(int(i) for i in self._indices)
        self.total_mass = float(np.sum(lengths))
        if self.total_mass > 0.0:
            self.center_of_mass = (
                np.sum(lengths[:, None] * midpoints, axis=0) / self.total_mass
            )
        else:
            self.center_of_mass = np.zeros((3,), dtype=np.float64)

    @property
    def is_leaf(self: "SegmentBVHNode") -> bool:
        return not self.children

    def _corners(self) -> np.ndarray:
        lo, hi = self.box_min, self.box_max
        return np.asarray(
            [[x, y, z] for x in (lo[0], hi[0]) for y in (lo[1], hi[1]) for z in (lo[2], hi[2])]
        )

    def viewspace_bounds(self: "SegmentBVHNode", point: ArrayLike) -> Tuple[float, float]:
        """Extent of the box along and across the view ray from ``point``.

        Returns ``(radial, linear)``: the largest distance of a box corner from
        the centre of mass measured along the direction to ``point`` and
        perpendicular to it.
        """
        offsets = self._corners() - self.center_of_mass
        direction = self.center_of_mass - np.asarray(point, dtype=np.float64)
        norm = float(np.linalg.norm(direction))
        if norm == 0.0:
            extent = float(np.max(np.linalg.norm(offsets, axis=1)))
            return extent, extent
        direction = direction / norm
        along = offsets @ direction
        across = offsets - along[:, None] * direction[None, :]
        radial = float(np.max(np.abs(along)))
        linear = float(np.max(np.linalg.norm(across, axis=1)))
        return radial, linear

    def cluster_masses(self: "SegmentBVHNode") -> np.ndarray:
        return np.asarray(self._lengths, dtype=np.float64)

    def constituents(self: "SegmentBVHNode") -> Tuple[Constituent, ...]:
        return tuple(
            Constituent(position=self._midpoints[k], mass=float(self._lengths[k]), index=i)
            for k, i in enumerate(self.cluster_indices)
        )

    def element_index(self: "SegmentBVHNode") -> int:
        if self.children or self.num_elements != 1:
            raise ValueError("element_index() is only defined on single-element leaves")
        return self.cluster_indices[0]


def build_segment_bvh(
    curve: PolylineCurve,
    *,
    leaf_size: int = 1,
    max_depth: Optional[int] = None,
) -> SegmentBVHNode:
    """Build a median-split hierarchy over the segments of ``curve``.

    Nodes split along the longest axis of their midpoint extent until they
    hold at most ``leaf_size`` segments (or ``max_depth`` is reached).
    """
    if leaf_size < 1:
        raise ValueError("leaf_size must be >= 1")

    starts, ends = curve.segment_endpoints()
    midpoints = 0.5 * (starts + ends)
    lengths = np.linalg.norm(ends - starts, axis=1)
    seg_min = np.minimum(starts, ends)
    seg_max = np.maximum(starts, ends)

    def build(indices: np.ndarray, depth: int) -> SegmentBVHNode:
        if indices.shape[0] == 0:
            zero = np.zeros((3,), dtype=np.float64)
            return SegmentBVHNode(
                indices, np.zeros((0, 3)), np.zeros((0,)), zero, zero
            )
        box_min = np.min(seg_min[indices], axis=0)
        box_max = np.max(seg_max[indices], axis=0)
        stop = indices.shape[0] <= leaf_size or (
            max_depth is not None and depth >= max_depth
        )
        children: Tuple[SegmentBVHNode, ...] = ()
        if not stop:
            mids = midpoints[indices]
            axis = int(np.argmax(np.ptp(mids, axis=0)))
            order = indices[np.argsort(mids[:, axis], kind="stable")]
            half = order.shape[0] // 2
            children = (build(order[:half], depth + 1), build(order[half:], depth + 1))
        return SegmentBVHNode(
            indices,
            midpoints[indices],
            lengths[indices],
            box_min,
            box_max,
            children,
        )

    return build(np.arange(curve.num_elements, dtype=np.int64), 0)


__all__ = [
    "PolylineCurve",
    "PolylinePoint",
    "SegmentBVHNode",
    "build_segment_bvh",
    "circle_curve",
    "helix_curve",
]
