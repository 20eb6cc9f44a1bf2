"""
Robust Rotation Averaging Package
Semidefinite relaxation, IRLS and L1 refinement for global camera rotations
"""

__version__ = "0.1.0"


# Lazy imports - estimators pull in the full solver stack
def __getattr__(name):
    """Lazy import for module attributes"""

    if name == "HybridRotationEstimator":
        from .rotation_averaging.hybrid_rotation_estimator import HybridRotationEstimator
        return HybridRotationEstimator
    elif name == "PartitionedRotationEstimator":
        from .rotation_averaging.partitioned_rotation_estimator import PartitionedRotationEstimator
        return PartitionedRotationEstimator
    elif name == "LagrangeDualRotationEstimator":
        from .rotation_averaging.lagrange_dual_rotation_estimator import LagrangeDualRotationEstimator
        return LagrangeDualRotationEstimator
    elif name == "IRLSRotationLocalRefiner":
        from .rotation_averaging.irls_rotation_local_refiner import IRLSRotationLocalRefiner
        return IRLSRotationLocalRefiner
    elif name == "L1RotationGlobalEstimator":
        from .rotation_averaging.l1_rotation_global_estimator import L1RotationGlobalEstimator
        return L1RotationGlobalEstimator
    elif name == "L1Solver":
        from .solver.l1_solver import L1Solver
        return L1Solver
    elif name == "BalancedGraphPartitioner":
        from .graph.graph_cut import BalancedGraphPartitioner
        return BalancedGraphPartitioner
    elif name == "DisjointSetForest":
        from .graph.union_find import DisjointSetForest
        return DisjointSetForest
    # Configuration and types (lighter imports)
    elif name == "RotationAveragingConfig":
        from .core.config import RotationAveragingConfig
        return RotationAveragingConfig
    elif name == "SDPSolverType":
        from .core.config import SDPSolverType
        return SDPSolverType
    elif name == "TwoViewGeometry":
        from .core.types import TwoViewGeometry
        return TwoViewGeometry

    raise AttributeError(f"module '{__name__}' has no attribute '{name}'")


__all__ = [
    # Pipelines
    "HybridRotationEstimator",
    "PartitionedRotationEstimator",

    # Components
    "LagrangeDualRotationEstimator",
    "IRLSRotationLocalRefiner",
    "L1RotationGlobalEstimator",
    "L1Solver",
    "BalancedGraphPartitioner",
    "DisjointSetForest",

    # Configuration and types
    "RotationAveragingConfig",
    "SDPSolverType",
    "TwoViewGeometry",
]
