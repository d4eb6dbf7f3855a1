"""Cluster pairs and the admissibility classifier.

The classifier walks the block cluster tree breadth-first, starting from the
pair ``(root, root)``, and splits every pair it cannot resolve into the
cartesian product of both sides' children. Resolved pairs end up in one of
two flat tuples: admissible pairs, whose interaction is approximated by a
single monopole term, and inadmissible pairs, which are summed exactly.
"""

from __future__ import annotations

import logging
import math
from typing import Callable, NamedTuple, Optional, Tuple

import numpy as np

from ..config import DEFAULT_SMALL_PAIR_THRESHOLD
from ..protocols import ClusterNodeProtocol
from ..runtime.dtypes import HOST_INDEX_DTYPE

logger = logging.getLogger(__name__)


class ClusterPair:
    """Non-owning handle on two hierarchy nodes, compared by identity."""

    __slots__ = ("cluster1", "cluster2")

    def __init__(
        self,
        cluster1: ClusterNodeProtocol,
        cluster2: ClusterNodeProtocol,
    ) -> None:
        self.cluster1 = cluster1
        self.cluster2 = cluster2

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ClusterPair):
            return NotImplemented
        return self.cluster1 is other.cluster1 and self.cluster2 is other.cluster2

    def __hash__(self) -> int:
        return hash((id(self.cluster1), id(self.cluster2)))

    def __repr__(self) -> str:
        return (
            f"ClusterPair({self.cluster1.num_elements}, "
            f"{self.cluster2.num_elements})"
        )

    @property
    def is_self_pair(self: "ClusterPair") -> bool:
        return self.cluster1 is self.cluster2

    def centroid_distance(self: "ClusterPair") -> float:
        """Distance between the two centres of mass."""
        delta = np.asarray(self.cluster1.center_of_mass, dtype=np.float64) - np.asarray(
            self.cluster2.center_of_mass, dtype=np.float64
        )
        return float(np.linalg.norm(delta))


class PairPartition(NamedTuple):
    """Result of classifying every cluster pair of a hierarchy."""

    admissible: Tuple[ClusterPair, ...]
    inadmissible: Tuple[ClusterPair, ...]
    dropped: int
    rounds: int


class ClassificationEvent(NamedTuple):
    """Counts for one breadth-first round of the classifier."""

    round: int
    unresolved: int
    admissible: int
    inadmissible: int
    dropped: int
    subdivided: int


def log_classification_event(
    event: ClassificationEvent,
    *,
    level: int = logging.DEBUG,
    logger: Optional[logging.Logger] = None,
) -> None:
    """Log a classification round using the provided (or module) logger."""

    target_logger = logger or logging.getLogger(__name__)
    target_logger.log(
        level,
        (
            "Classifier round %d: unresolved=%d, admissible=%d, "
            "inadmissible=%d, dropped=%d, subdivided=%d"
        ),
        event.round,
        event.unresolved,
        event.admissible,
        event.inadmissible,
        event.dropped,
        event.subdivided,
    )


def is_pair_small_enough(
    pair: ClusterPair,
    small_pair_threshold: int = DEFAULT_SMALL_PAIR_THRESHOLD,
) -> bool:
    """Return whether the block is cheap enough to keep exact."""
    s1 = int(pair.cluster1.num_elements)
    s2 = int(pair.cluster2.num_elements)
    return s1 <= 1 or s2 <= 1 or s1 + s2 <= small_pair_threshold


def is_pair_admissible(pair: ClusterPair, theta: float) -> bool:
    """Barnes-Hut style separation test between two distinct clusters.

    Coincident (or non-finite) centroids never pass, so a far-field scalar is
    only ever formed for a strictly positive distance.
    """
    if pair.is_self_pair:
        return False

    distance = pair.centroid_distance()
    if not math.isfinite(distance) or distance <= 0.0:
        return False

    c1_radial, c1_linear = pair.cluster1.viewspace_bounds(pair.cluster2.center_of_mass)
    c2_radial, c2_linear = pair.cluster2.viewspace_bounds(pair.cluster1.center_of_mass)
    max_radial = max(float(c1_radial), float(c2_radial))
    max_linear = max(float(c1_linear), float(c2_linear))
    return max(max_radial, max_linear) < theta * distance


def classify_cluster_pairs(
    root: ClusterNodeProtocol,
    *,
    theta: float,
    small_pair_threshold: int = DEFAULT_SMALL_PAIR_THRESHOLD,
    round_logger: Optional[Callable[[ClassificationEvent], None]] = None,
) -> PairPartition:
    """Partition all leaf-index pairs below ``root`` into two pair tuples.

    Parameters
    ----------
    root:
        Root of the hierarchy.
    theta:
        Separation coefficient of :func:`is_pair_admissible`.
    small_pair_threshold:
        Combined element count under which a pair stays exact.
    round_logger:
        Optional callback receiving a :class:`ClassificationEvent` per round.
    """

    admissible: list[ClusterPair] = []
    inadmissible: list[ClusterPair] = []
    unresolved = [ClusterPair(root, root)]
    dropped = 0
    rounds = 0

    while unresolved:
        next_pairs: list[ClusterPair] = []
        round_admissible = 0
        round_inadmissible = 0
        round_dropped = 0
        round_subdivided = 0

        for pair in unresolved:
            s1 = int(pair.cluster1.num_elements)
            s2 = int(pair.cluster2.num_elements)
            if s1 == 0 or s2 == 0:
                round_dropped += 1
            elif s1 == 1 and s2 == 1:
                # Neighbouring singletons must use the exact kernel.
                inadmissible.append(pair)
                round_inadmissible += 1
            elif is_pair_admissible(pair, theta):
                admissible.append(pair)
                round_admissible += 1
            elif is_pair_small_enough(pair, small_pair_threshold) or (
                not pair.cluster1.children and not pair.cluster2.children
            ):
                inadmissible.append(pair)
                round_inadmissible += 1
            else:
                round_subdivided += 1
                # A leaf side stays whole while the other side is split.
                children1 = pair.cluster1.children or (pair.cluster1,)
                children2 = pair.cluster2.children or (pair.cluster2,)
                for child1 in children1:
                    for child2 in children2:
                        next_pairs.append(ClusterPair(child1, child2))

        event = ClassificationEvent(
            round=rounds,
            unresolved=len(unresolved),
            admissible=round_admissible,
            inadmissible=round_inadmissible,
            dropped=round_dropped,
            subdivided=round_subdivided,
        )
        if round_logger is not None:
            round_logger(event)
        else:
            log_classification_event(event, logger=logger)

        dropped += round_dropped
        rounds += 1
        unresolved = next_pairs

    return PairPartition(
        admissible=tuple(admissible),
        inadmissible=tuple(inadmissible),
        dropped=dropped,
        rounds=rounds,
    )


def pair_index_products(
    pairs: Tuple[ClusterPair, ...],
) -> Tuple[np.ndarray, np.ndarray]:
    """Concatenate the element index cross-products of ``pairs``.

    Returns ``(rows, cols)`` where rows come from ``cluster1`` and columns from
    ``cluster2`` of each pair, in pair order.
    """
    rows: list[np.ndarray] = []
    cols: list[np.ndarray] = []
    for pair in pairs:
        idx1 = np.asarray(pair.cluster1.cluster_indices, dtype=HOST_INDEX_DTYPE)
        idx2 = np.asarray(pair.cluster2.cluster_indices, dtype=HOST_INDEX_DTYPE)
        rows.append(np.repeat(idx1, idx2.shape[0]))
        cols.append(np.tile(idx2, idx1.shape[0]))
    if not rows:
        empty = np.zeros((0,), dtype=HOST_INDEX_DTYPE)
        return empty, empty
    return np.concatenate(rows), np.concatenate(cols)


__all__ = [
    "ClassificationEvent",
    "ClusterPair",
    "PairPartition",
    "classify_cluster_pairs",
    "is_pair_admissible",
    "is_pair_small_enough",
    "log_classification_event",
    "pair_index_products",
]
