"""
Rotation averaging estimators and pipelines
"""

from .hybrid_rotation_estimator import HybridRotationEstimator, RotationAveragingSummary
from .irls_rotation_local_refiner import IRLSRotationLocalRefiner, IRLSState, IRLSSummary
from .l1_rotation_global_estimator import L1RotationGlobalEstimator
from .lagrange_dual_rotation_estimator import LagrangeDualRotationEstimator
from .partitioned_rotation_estimator import PartitionedRotationEstimator, PartitionedSummary

__all__ = [
    "HybridRotationEstimator",
    "IRLSRotationLocalRefiner",
    "IRLSState",
    "IRLSSummary",
    "L1RotationGlobalEstimator",
    "LagrangeDualRotationEstimator",
    "PartitionedRotationEstimator",
    "PartitionedSummary",
    "RotationAveragingSummary",
]
