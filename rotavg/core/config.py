"""
Configuration management for robust rotation averaging

Uses dataclasses for type safety and validation.
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Dict, Any


class SDPSolverType(Enum):
    """Strategies available for the semidefinite relaxation"""

    RBR_BCM = "rbr_bcm"
    RANK_DEFICIENT_BCM = "rank_deficient_bcm"
    RIEMANNIAN_STAIRCASE = "riemannian_staircase"


@dataclass
class L1SolverOptions:
    """Configuration for the ADMM L1-norm solver"""

    max_num_iterations: int = 1000

    # Augmented Lagrangian parameter
    rho: float = 1.0

    # Over-relaxation parameter (typically between 1.0 and 1.8)
    alpha: float = 1.0

    absolute_tolerance: float = 1e-4
    relative_tolerance: float = 1e-2

    def __post_init__(self):
        if self.max_num_iterations < 1:
            raise ValueError(f"max_num_iterations must be >= 1, got {self.max_num_iterations}")
        if self.rho <= 0.0:
            raise ValueError(f"rho must be positive, got {self.rho}")
        if not (0.0 < self.alpha < 2.0):
            raise ValueError(f"alpha must be in (0, 2), got {self.alpha}")


@dataclass
class SDPSolverOptions:
    """Configuration for the semidefinite relaxation strategies"""

    solver_type: SDPSolverType = SDPSolverType.RBR_BCM

    # Maximum number of sweeps over all blocks
    max_iterations: int = 500

    # Relative objective change that stops the sweeps
    tolerance: float = 1e-10

    # Rank of the factor used by the rank-restricted solver
    rank: int = 5

    # Rank range explored by the Riemannian staircase
    min_rank: int = 3
    max_rank: int = 10

    # Minimum eigenvalue accepted by the optimality certificate
    certificate_tolerance: float = 1e-6

    verbose: bool = False

    def __post_init__(self):
        if isinstance(self.solver_type, str):
            self.solver_type = SDPSolverType(self.solver_type)
        if self.max_iterations < 1:
            raise ValueError(f"max_iterations must be >= 1, got {self.max_iterations}")
        if self.min_rank > self.max_rank:
            raise ValueError(
                f"min_rank ({self.min_rank}) must not exceed max_rank ({self.max_rank})"
            )


@dataclass
class IRLSRefinerOptions:
    """Configuration for the IRLS local refiner"""

    max_num_irls_iterations: int = 100

    # Residual scale (radians) of the Huber-like weight
    irls_loss_parameter_sigma: float = math.radians(5.0)

    # Average tangent-space step (radians) below which IRLS stops
    irls_step_convergence_threshold: float = 1e-3

    # Worker threads for per-edge weight computation
    num_threads: int = 1

    def __post_init__(self):
        if self.irls_loss_parameter_sigma <= 0.0:
            raise ValueError(
                f"irls_loss_parameter_sigma must be positive, got {self.irls_loss_parameter_sigma}"
            )
        if self.num_threads < 1:
            raise ValueError(f"num_threads must be >= 1, got {self.num_threads}")


@dataclass
class L1RefinerOptions:
    """Configuration for the tangent-space L1 refinement stage"""

    max_num_l1_iterations: int = 5
    step_convergence_threshold: float = 1e-3
    l1_solver: L1SolverOptions = field(default_factory=lambda: L1SolverOptions(max_num_iterations=50))

    def __post_init__(self):
        if isinstance(self.l1_solver, dict):
            self.l1_solver = L1SolverOptions(**self.l1_solver)


@dataclass
class GraphPartitionOptions:
    """Configuration for balanced graph partitioning"""

    # Allowed ratio between the heaviest part and total / num_parts
    imbalance_tolerance: float = 1.05

    # Seeds tried for the initial partition of the coarsest graph
    num_initial_trials: int = 4

    # Minimum refinement passes per level, raised to ceil(log2(V)) + num_parts
    max_refinement_passes: int = 10

    seed: int = 0

    def __post_init__(self):
        if self.imbalance_tolerance < 1.0:
            raise ValueError(
                f"imbalance_tolerance must be >= 1.0, got {self.imbalance_tolerance}"
            )
        if self.num_initial_trials < 1:
            raise ValueError(f"num_initial_trials must be >= 1, got {self.num_initial_trials}")
        if self.max_refinement_passes < 1:
            raise ValueError(
                f"max_refinement_passes must be >= 1, got {self.max_refinement_passes}"
            )


@dataclass
class RotationAveragingConfig:
    """Main configuration for the rotation averaging pipeline"""

    sdp: SDPSolverOptions = field(default_factory=SDPSolverOptions)
    irls: IRLSRefinerOptions = field(default_factory=IRLSRefinerOptions)
    l1: L1RefinerOptions = field(default_factory=L1RefinerOptions)
    partition: GraphPartitionOptions = field(default_factory=GraphPartitionOptions)

    # Run the tangent-space L1 stage between the SDP and IRLS
    use_l1_refinement: bool = False

    # Compute the spectral error bound after the SDP
    compute_error_bound: bool = False

    # Split graphs larger than this; None disables partitioning
    max_views_per_partition: Optional[int] = None

    # Logging level: "DEBUG", "INFO", "WARNING", "ERROR"
    log_level: str = "INFO"

    def __post_init__(self):
        """Validate configuration"""
        if self.max_views_per_partition is not None and self.max_views_per_partition < 2:
            raise ValueError(
                f"max_views_per_partition must be >= 2, got {self.max_views_per_partition}"
            )
        if self.log_level not in ["DEBUG", "INFO", "WARNING", "ERROR"]:
            raise ValueError(f"Invalid log_level: {self.log_level}")

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> "RotationAveragingConfig":
        """Create config from dictionary (for CLI/JSON loading)"""
        config_dict = dict(config_dict)
        sdp = SDPSolverOptions(**config_dict.pop("sdp", {}))
        irls = IRLSRefinerOptions(**config_dict.pop("irls", {}))
        l1 = L1RefinerOptions(**config_dict.pop("l1", {}))
        partition = GraphPartitionOptions(**config_dict.pop("partition", {}))

        return cls(
            sdp=sdp,
            irls=irls,
            l1=l1,
            partition=partition,
            **config_dict
        )

    def to_dict(self) -> Dict[str, Any]:
        """Export config to dictionary"""
        sdp = dict(self.sdp.__dict__)
        sdp["solver_type"] = self.sdp.solver_type.value
        l1 = dict(self.l1.__dict__)
        l1["l1_solver"] = dict(self.l1.l1_solver.__dict__)
        return {
            "sdp": sdp,
            "irls": dict(self.irls.__dict__),
            "l1": l1,
            "partition": dict(self.partition.__dict__),
            "use_l1_refinement": self.use_l1_refinement,
            "compute_error_bound": self.compute_error_bound,
            "max_views_per_partition": self.max_views_per_partition,
            "log_level": self.log_level,
        }
