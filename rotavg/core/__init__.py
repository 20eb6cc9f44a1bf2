"""
Core data types and configuration
"""

from .config import (
    GraphPartitionOptions,
    IRLSRefinerOptions,
    L1RefinerOptions,
    L1SolverOptions,
    RotationAveragingConfig,
    SDPSolverOptions,
    SDPSolverType,
)
from .types import (
    CONSTANT_ROTATION_INDEX,
    GlobalRotationMap,
    TwoViewGeometry,
    ViewId,
    ViewPair,
    make_view_pair,
)

__all__ = [
    # Configuration
    "GraphPartitionOptions",
    "IRLSRefinerOptions",
    "L1RefinerOptions",
    "L1SolverOptions",
    "RotationAveragingConfig",
    "SDPSolverOptions",
    "SDPSolverType",

    # Types
    "CONSTANT_ROTATION_INDEX",
    "GlobalRotationMap",
    "TwoViewGeometry",
    "ViewId",
    "ViewPair",
    "make_view_pair",
]
