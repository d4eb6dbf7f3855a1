"""Flat, index-addressed snapshot of a cluster hierarchy.

Nodes are numbered in pre-order with an explicit stack, so a parent's id is
always smaller than any of its descendants' ids. The upward pass can then run
over ids in decreasing order and the downward pass in increasing order
without recursion, and per-call scratch values live in ``(num_nodes,)``
arrays instead of on the shared nodes.
"""

from __future__ import annotations

from typing import Dict, NamedTuple, Tuple

import jax.numpy as jnp
import numpy as np
from jaxtyping import Array

from ..protocols import ClusterNodeProtocol
from ..runtime.dtypes import HOST_INDEX_DTYPE, as_index
from .cluster_pairs import ClusterPair


class HierarchyArena(NamedTuple):
    """Index arrays describing the hierarchy topology.

    Attributes
    ----------
    nodes:
        Nodes in pre-order; ``nodes[k]`` has id ``k``.
    node_ids:
        Map from ``id(node)`` to arena id.
    parent:
        ``(num_nodes,)`` parent id per node, ``-1`` for the root.
    leaf_entry_node:
        Leaf id for every element stored in a leaf.
    leaf_entry_element:
        Curve element index for every leaf entry.
    leaf_entry_mass:
        Element mass for every leaf entry.
    """

    nodes: Tuple[ClusterNodeProtocol, ...]
    node_ids: Dict[int, int]
    parent: Array
    leaf_entry_node: Array
    leaf_entry_element: Array
    leaf_entry_mass: Array

    @property
    def num_nodes(self: "HierarchyArena") -> int:
        return len(self.nodes)

    def node_id(self: "HierarchyArena", node: ClusterNodeProtocol) -> int:
        """Return the arena id of ``node``."""
        try:
            return self.node_ids[id(node)]
        except KeyError:
            raise ValueError("node does not belong to this hierarchy") from None


def _leaf_entries(node: ClusterNodeProtocol) -> Tuple[np.ndarray, np.ndarray]:
    count = int(node.num_elements)
    if count == 0:
        return (
            np.zeros((0,), dtype=HOST_INDEX_DTYPE),
            np.zeros((0,), dtype=np.float64),
        )
    if count == 1:
        elements = np.asarray([node.element_index()], dtype=HOST_INDEX_DTYPE)
        masses = np.asarray([node.total_mass], dtype=np.float64)
        return elements, masses
    elements = np.asarray(node.cluster_indices, dtype=HOST_INDEX_DTYPE)
    masses = np.asarray(node.cluster_masses(), dtype=np.float64).reshape(-1)
    if masses.shape != elements.shape:
        raise ValueError("cluster_masses() must align with cluster_indices")
    return elements, masses


def build_hierarchy_arena(root: ClusterNodeProtocol) -> HierarchyArena:
    """Number every node below ``root`` in pre-order using an explicit stack."""

    nodes: list[ClusterNodeProtocol] = []
    node_ids: Dict[int, int] = {}
    parents: list[int] = []
    entry_nodes: list[np.ndarray] = []
    entry_elements: list[np.ndarray] = []
    entry_masses: list[np.ndarray] = []

    stack: list[Tuple[ClusterNodeProtocol, int]] = [(root, -1)]
    while stack:
        node, parent_id = stack.pop()
        if id(node) in node_ids:
            raise ValueError("hierarchy must be a tree; a node was reached twice")
        node_id = len(nodes)
        node_ids[id(node)] = node_id
        nodes.append(node)
        parents.append(parent_id)

        children = tuple(node.children)
        if not children:
            elements, masses = _leaf_entries(node)
            entry_nodes.append(np.full(elements.shape, node_id, dtype=HOST_INDEX_DTYPE))
            entry_elements.append(elements)
            entry_masses.append(masses)
            continue
        # Reversed so the first child is popped, and numbered, first.
        for child in reversed(children):
            stack.append((child, node_id))

    if entry_nodes:
        leaf_entry_node = np.concatenate(entry_nodes)
        leaf_entry_element = np.concatenate(entry_elements)
        leaf_entry_mass = np.concatenate(entry_masses)
    else:
        leaf_entry_node = np.zeros((0,), dtype=HOST_INDEX_DTYPE)
        leaf_entry_element = np.zeros((0,), dtype=HOST_INDEX_DTYPE)
        leaf_entry_mass = np.zeros((0,), dtype=np.float64)

    return HierarchyArena(
        nodes=tuple(nodes),
        node_ids=node_ids,
        parent=as_index(np.asarray(parents, dtype=HOST_INDEX_DTYPE)),
        leaf_entry_node=as_index(leaf_entry_node),
        leaf_entry_element=as_index(leaf_entry_element),
        leaf_entry_mass=jnp.asarray(leaf_entry_mass),
    )


def pair_node_ids(
    arena: HierarchyArena,
    pairs: Tuple[ClusterPair, ...],
) -> Tuple[np.ndarray, np.ndarray]:
    """Return arena ids of both sides of every pair."""
    side1 = np.fromiter(
        (arena.node_id(pair.cluster1) for pair in pairs),
        dtype=HOST_INDEX_DTYPE,
        count=len(pairs),
    )
    side2 = np.fromiter(
        (arena.node_id(pair.cluster2) for pair in pairs),
        dtype=HOST_INDEX_DTYPE,
        count=len(pairs),
    )
    return side1, side2


__all__ = ["HierarchyArena", "build_hierarchy_arena", "pair_node_ids"]
