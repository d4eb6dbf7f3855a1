"""curvebct: block cluster tree products for fractional curve energies."""

from ._typecheck import enable_runtime_typecheck

enable_runtime_typecheck()

from .config import BlockTreeParameters, MultiplyMode, normalize_mode
from .diagnostics.accuracy import BlockComparisonReport, PairBlockError
from .partition.cluster_pairs import (
    ClassificationEvent,
    ClusterPair,
    PairPartition,
    classify_cluster_pairs,
)
from .protocols import (
    ClusterNodeProtocol,
    Constituent,
    CurvePointProtocol,
    CurveProtocol,
)
from .runtime.block_tree import BlockClusterTree
from .runtime.profiling import MultiplyProfile

__all__ = [
    "BlockClusterTree",
    "BlockComparisonReport",
    "BlockTreeParameters",
    "ClassificationEvent",
    "ClusterNodeProtocol",
    "ClusterPair",
    "Constituent",
    "CurvePointProtocol",
    "CurveProtocol",
    "MultiplyMode",
    "MultiplyProfile",
    "PairBlockError",
    "PairPartition",
    "classify_cluster_pairs",
    "normalize_mode",
]
