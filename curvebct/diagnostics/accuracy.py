"""Diagnostic comparison of exact and monopole-approximated blocks.

Nothing here is on the multiply path. The validator materializes every block
of the partition on the host with NumPy, so it is meant for moderate problem
sizes when choosing a separation coefficient.
"""

from __future__ import annotations

import math
import sys
from typing import NamedTuple, Optional, TextIO, Tuple

import numpy as np

from ..geometry import CurveElementGeometry
from ..partition.cluster_pairs import ClusterPair, PairPartition
from ..protocols import ClusterNodeProtocol

DEFAULT_FLAG_PERCENT = 50.0


class PairBlockError(NamedTuple):
    """Exact and approximated block of one admissible pair above the flag level."""

    sizes: Tuple[int, int]
    full_block: np.ndarray
    approx_block: np.ndarray
    error: float
    relative_percent: float


class BlockComparisonReport(NamedTuple):
    """Aggregate Frobenius error of the monopole approximation."""

    total_error: float
    total_norm: float
    relative_percent: float
    flagged_pairs: Tuple[PairBlockError, ...]
    num_admissible: int
    num_inadmissible: int


def _constituent_arrays(
    node: ClusterNodeProtocol,
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    items = list(node.constituents())
    if not items:
        return (
            np.zeros((0, 3), dtype=np.float64),
            np.zeros((0,), dtype=np.float64),
            np.zeros((0,), dtype=np.int64),
        )
    positions = np.asarray([np.asarray(c.position, dtype=np.float64) for c in items])
    masses = np.asarray([float(c.mass) for c in items], dtype=np.float64)
    indices = np.asarray([int(c.index) for c in items], dtype=np.int64)
    return positions, masses, indices


def _exact_block(
    pair: ClusterPair,
    point_ids: np.ndarray,
    next_ids: np.ndarray,
    power: float,
) -> np.ndarray:
    pos1, mass1, idx1 = _constituent_arrays(pair.cluster1)
    pos2, mass2, idx2 = _constituent_arrays(pair.cluster2)

    p1 = point_ids[idx1][:, None]
    p2 = point_ids[idx2][None, :]
    n1 = next_ids[idx1][:, None]
    n2 = next_ids[idx2][None, :]
    adjacent = (p1 == p2) | (n1 == p2) | (p1 == n2) | (n1 == n2)

    diff = pos1[:, None, :] - pos2[None, :, :]
    dist = np.sqrt(np.sum(diff * diff, axis=-1))
    with np.errstate(divide="ignore", invalid="ignore"):
        block = -mass1[:, None] * mass2[None, :] / np.power(dist, power)
    return np.where(adjacent, 0.0, block)


def exact_block(
    pair: ClusterPair,
    geometry: CurveElementGeometry,
    power: float,
) -> np.ndarray:
    """Dense block ``-m_i m_j / |x_i - x_j|**power``, zero for adjacent elements."""
    return _exact_block(
        pair,
        np.asarray(geometry.point_ids),
        np.asarray(geometry.next_ids),
        float(power),
    )


def monopole_block(pair: ClusterPair, power: float) -> np.ndarray:
    """Dense block ``-m_i a_IJ m_j`` of the monopole approximation."""
    _, mass1, _ = _constituent_arrays(pair.cluster1)
    _, mass2, _ = _constituent_arrays(pair.cluster2)
    a_ij = 1.0 / pair.centroid_distance() ** float(power)
    return -mass1[:, None] * a_ij * mass2[None, :]


def _relative_percent(error: float, norm: float) -> float:
    if norm > 0.0:
        return 100.0 * error / norm
    return 0.0 if error == 0.0 else math.inf


def compare_blocks(
    partition: PairPartition,
    geometry: CurveElementGeometry,
    power: float,
    *,
    flag_percent: float = DEFAULT_FLAG_PERCENT,
) -> BlockComparisonReport:
    """Measure the Frobenius error of every admissible block.

    Inadmissible blocks are always evaluated exactly, so they contribute to
    the total norm but not to the error.
    """
    point_ids = np.asarray(geometry.point_ids)
    next_ids = np.asarray(geometry.next_ids)
    power = float(power)

    total_error_sq = 0.0
    total_norm_sq = 0.0
    flagged: list[PairBlockError] = []

    for pair in partition.inadmissible:
        norm_full = float(np.linalg.norm(_exact_block(pair, point_ids, next_ids, power)))
        total_norm_sq += norm_full * norm_full

    for pair in partition.admissible:
        full = _exact_block(pair, point_ids, next_ids, power)
        approx = monopole_block(pair, power)
        norm_full = float(np.linalg.norm(full))
        norm_diff = float(np.linalg.norm(full - approx))
        relative = _relative_percent(norm_diff, norm_full)
        if relative > flag_percent:
            flagged.append(
                PairBlockError(
                    sizes=(
                        int(pair.cluster1.num_elements),
                        int(pair.cluster2.num_elements),
                    ),
                    full_block=full,
                    approx_block=approx,
                    error=norm_diff,
                    relative_percent=relative,
                )
            )
        total_norm_sq += norm_full * norm_full
        total_error_sq += norm_diff * norm_diff

    total_error = math.sqrt(total_error_sq)
    total_norm = math.sqrt(total_norm_sq)
    return BlockComparisonReport(
        total_error=total_error,
        total_norm=total_norm,
        relative_percent=_relative_percent(total_error, total_norm),
        flagged_pairs=tuple(flagged),
        num_admissible=len(partition.admissible),
        num_inadmissible=len(partition.inadmissible),
    )


def format_block_comparison(report: BlockComparisonReport) -> str:
    """Render ``report`` as the plain-text accuracy summary."""
    lines: list[str] = []
    for item in report.flagged_pairs:
        lines.append(f"({item.sizes[0]}, {item.sizes[1]})")
        lines.append(f"Full:\n{item.full_block}")
        lines.append(f"Approx:\n{item.approx_block}")
        lines.append(f"Error: {item.error} ({item.relative_percent} percent)")
    lines.append(
        f"Total error = {report.total_error} ({report.relative_percent} percent; "
        f"total norm = {report.total_norm})"
    )
    return "\n".join(lines)


def print_block_comparison(
    report: BlockComparisonReport,
    stream: Optional[TextIO] = None,
) -> None:
    """Write :func:`format_block_comparison` output to ``stream`` (stdout)."""
    print(format_block_comparison(report), file=stream or sys.stdout)


__all__ = [
    "BlockComparisonReport",
    "DEFAULT_FLAG_PERCENT",
    "PairBlockError",
    "compare_blocks",
    "exact_block",
    "format_block_comparison",
    "monopole_block",
    "print_block_comparison",
]
