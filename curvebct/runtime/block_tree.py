"""Block cluster tree facade: classification once, products many times."""

from __future__ import annotations

import logging
import sys
from contextlib import nullcontext
from typing import Callable, ContextManager, Optional, TextIO, Tuple, Union

import jax.numpy as jnp
from jaxtyping import Array, ArrayLike

from ..config import (
    DEFAULT_SMALL_PAIR_THRESHOLD,
    BlockTreeParameters,
    MultiplyMode,
    normalize_mode,
    validate_parameters,
)
from ..diagnostics.accuracy import (
    DEFAULT_FLAG_PERCENT,
    BlockComparisonReport,
    compare_blocks,
    print_block_comparison,
)
from ..downward.far_field_locals import (
    apply_propagated_far_field,
    multiply_far_field_scalar,
    prepare_propagation_schedule,
)
from ..farfield.monopole import apply_monopole_direct, prepare_monopole_schedule
from ..geometry import CurveElementGeometry, build_element_geometry
from ..nearfield.near_field import (
    NearFieldSchedule,
    apply_near_field,
    prepare_near_field_schedule,
)
from ..partition.arena import HierarchyArena, build_hierarchy_arena
from ..partition.cluster_pairs import (
    ClassificationEvent,
    ClusterPair,
    PairPartition,
    classify_cluster_pairs,
)
from ..protocols import ClusterNodeProtocol, CurveProtocol
from .profiling import MultiplyProfile, ProfileSection, block_until_ready

logger = logging.getLogger(__name__)


def _section(
    profile: Optional[MultiplyProfile], name: ProfileSection
) -> ContextManager[None]:
    if profile is None:
        return nullcontext()
    return profile.section(name)


class BlockClusterTree:
    """Hierarchical approximation of the fractional curve interaction matrix.

    Construction classifies every cluster pair of ``root`` and prepares the
    index schedules of the three products. The curve and hierarchy are
    treated as static snapshots for the lifetime of the tree.

    Args:
        curve: Curve collaborator (element count, point handles).
        root: Root node of the spatial hierarchy over the curve elements.
        theta: Separation coefficient of the admissibility test.
        alpha, beta: Energy exponents; the kernel power is ``beta - alpha``.
        epsilon: Regularization value stored for energy code, unused here.
        small_pair_threshold: Combined size under which pairs stay exact.
        mode: Default :class:`MultiplyMode` for :meth:`multiply`.
        round_logger: Optional callback receiving one
            :class:`ClassificationEvent` per classifier round.
    """

    def __init__(
        self: "BlockClusterTree",
        curve: CurveProtocol,
        root: ClusterNodeProtocol,
        *,
        theta: float,
        alpha: float,
        beta: float,
        epsilon: float = 0.0,
        small_pair_threshold: int = DEFAULT_SMALL_PAIR_THRESHOLD,
        mode: Union[MultiplyMode, str] = MultiplyMode.PROPAGATED,
        round_logger: Optional[Callable[[ClassificationEvent], None]] = None,
    ):
        self.parameters = validate_parameters(
            BlockTreeParameters(
                theta=float(theta),
                alpha=float(alpha),
                beta=float(beta),
                epsilon=float(epsilon),
                small_pair_threshold=int(small_pair_threshold),
            )
        )
        self._mode = normalize_mode(mode)
        self.curve = curve
        self.root = root

        self.geometry: CurveElementGeometry = build_element_geometry(curve)
        self.partition: PairPartition = classify_cluster_pairs(
            root,
            theta=self.parameters.theta,
            small_pair_threshold=self.parameters.small_pair_threshold,
            round_logger=round_logger,
        )
        self.arena: HierarchyArena = build_hierarchy_arena(root)

        power = self.parameters.kernel_power
        self._near_schedule = prepare_near_field_schedule(self.partition.inadmissible)
        self._monopole_schedule = prepare_monopole_schedule(
            self.partition.admissible, power
        )
        self._propagation_schedule = prepare_propagation_schedule(
            self.arena, self.partition.admissible, power
        )
        self._admissible_exact_schedule: Optional[NearFieldSchedule] = None

        logger.debug(
            "Block cluster tree over %d elements: %d admissible, %d inadmissible, "
            "%d dropped pairs after %d rounds",
            self.num_elements,
            len(self.partition.admissible),
            len(self.partition.inadmissible),
            self.partition.dropped,
            self.partition.rounds,
        )

    @property
    def num_elements(self: "BlockClusterTree") -> int:
        return self.geometry.num_elements

    @property
    def admissible_pairs(self: "BlockClusterTree") -> Tuple[ClusterPair, ...]:
        return self.partition.admissible

    @property
    def inadmissible_pairs(self: "BlockClusterTree") -> Tuple[ClusterPair, ...]:
        return self.partition.inadmissible

    @property
    def mode(self: "BlockClusterTree") -> MultiplyMode:
        return self._mode

    def set_mode(self: "BlockClusterTree", mode: Union[MultiplyMode, str]) -> None:
        """Change the default mode used when :meth:`multiply` gets none."""
        self._mode = normalize_mode(mode)

    def _check_values(self, values: ArrayLike) -> Array:
        values = jnp.asarray(values)
        if values.ndim != 2 or values.shape != (self.num_elements, 3):
            raise ValueError(
                f"values must have shape ({self.num_elements}, 3), "
                f"got {tuple(values.shape)}"
            )
        return values

    def multiply_inadmissible(self: "BlockClusterTree", values: ArrayLike) -> Array:
        """Exact near-field product over the inadmissible blocks."""
        values = self._check_values(values)
        return apply_near_field(
            values, self.geometry, self._near_schedule, self.parameters.kernel_power
        )

    def multiply_admissible(self: "BlockClusterTree", values: ArrayLike) -> Array:
        """Monopole product over the admissible blocks, direct form."""
        values = self._check_values(values)
        return apply_monopole_direct(values, self._monopole_schedule)

    def multiply_admissible_fast(self: "BlockClusterTree", values: ArrayLike) -> Array:
        """Monopole product over the admissible blocks via tree sweeps."""
        values = self._check_values(values)
        return apply_propagated_far_field(
            values, self.arena, self._propagation_schedule
        )

    def multiply_admissible_exact(self: "BlockClusterTree", values: ArrayLike) -> Array:
        """Exact kernel over the admissible blocks (O(N^2) reference path)."""
        values = self._check_values(values)
        if self._admissible_exact_schedule is None:
            self._admissible_exact_schedule = prepare_near_field_schedule(
                self.partition.admissible
            )
        return apply_near_field(
            values,
            self.geometry,
            self._admissible_exact_schedule,
            self.parameters.kernel_power,
        )

    def multiply_far_field_scalar(self: "BlockClusterTree", values: ArrayLike) -> Array:
        """Raw far-field product ``A_f v`` for one scalar column."""
        values = jnp.asarray(values)
        if values.shape != (self.num_elements,):
            raise ValueError(f"values must have shape ({self.num_elements},)")
        return multiply_far_field_scalar(
            values, self.arena, self._propagation_schedule
        )

    def multiply(
        self: "BlockClusterTree",
        values: ArrayLike,
        *,
        mode: Optional[Union[MultiplyMode, str]] = None,
        out: Optional[ArrayLike] = None,
        profile: Optional[MultiplyProfile] = None,
    ) -> Array:
        """Apply the interaction operator to an ``(N, 3)`` field.

        Args:
            values: Input field, one 3-vector per curve element.
            mode: Realization to use; defaults to :attr:`mode`.
            out: Optional ``(N, 3)`` field the product is added to.
            profile: Optional timing accumulator.

        Returns:
            The product (plus ``out`` when given) as a new array.
        """
        values = self._check_values(values)
        mode_norm = self._mode if mode is None else normalize_mode(mode)
        if profile is not None:
            profile.calls += 1

        with _section(profile, "ill_separated"):
            near = self.multiply_inadmissible(values)
            if profile is not None:
                near = block_until_ready(near)

        with _section(profile, "well_separated"):
            if mode_norm is MultiplyMode.EXACT:
                far = self.multiply_admissible_exact(values)
            elif mode_norm is MultiplyMode.MONOPOLE:
                far = self.multiply_admissible(values)
            else:
                with _section(profile, "traversal"):
                    far = self.multiply_admissible_fast(values)
                    if profile is not None:
                        far = block_until_ready(far)
            if profile is not None:
                far = block_until_ready(far)

        result = near + far
        if out is not None:
            result = self._check_values(out) + result
        return result

    def summary(self: "BlockClusterTree") -> str:
        """Pair counts of the classification."""
        return (
            f"{len(self.partition.admissible)} admissible pairs\n"
            f"{len(self.partition.inadmissible)} inadmissible pairs"
        )

    def print_data(self: "BlockClusterTree", stream: Optional[TextIO] = None) -> None:
        """Write :meth:`summary` to ``stream`` (stdout by default)."""
        print(self.summary(), file=stream or sys.stdout)

    def compare_blocks(
        self: "BlockClusterTree",
        stream: Optional[TextIO] = None,
        *,
        flag_percent: float = DEFAULT_FLAG_PERCENT,
        verbose: bool = True,
    ) -> BlockComparisonReport:
        """Compare exact and monopole blocks and report the Frobenius error."""
        report = compare_blocks(
            self.partition,
            self.geometry,
            self.parameters.kernel_power,
            flag_percent=flag_percent,
        )
        if verbose:
            print_block_comparison(report, stream)
        return report


__all__ = ["BlockClusterTree"]
