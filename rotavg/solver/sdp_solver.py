"""
Semidefinite relaxation solvers for rotation synchronization

All strategies minimize tr(C X) subject to X_ii = I_dim and X >= 0, where C is
the (negated) block matrix of relative rotations. They differ in how the
relaxed problem is parameterized and solved; the result is always a dense
factor Y (rank x dim*n) of the solution X = Y^T Y.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import numpy as np
import scipy.linalg
import scipy.sparse as sp
from scipy.sparse.linalg import eigsh

from ..core.config import SDPSolverOptions, SDPSolverType
from ..utils.rotation import project_to_stiefel

logger = logging.getLogger(__name__)

# Above this matrix size eigenproblems go through ARPACK instead of LAPACK
DENSE_EIGEN_MAX_SIZE = 1500

NeighborBlocks = Dict[int, List[Tuple[int, np.ndarray]]]


@dataclass
class SDPSummary:
    """Diagnostics of an SDP solve"""

    total_iterations_num: int = 0
    total_time_ms: float = 0.0
    converged: bool = False
    rank: int = 0
    certified: Optional[bool] = None
    objective: float = 0.0

    def total_time(self) -> float:
        return self.total_time_ms


class SDPSolver(ABC):
    """
    Common interface of the relaxation strategies

    Subclasses implement solve(covariance, adjacent_edges) and return the
    solution factor together with an SDPSummary.
    """

    def __init__(self, n: int, dim: int, options: Optional[SDPSolverOptions] = None):
        """
        Args:
            n: Number of blocks (views)
            dim: Block size (rotation dimension)
            options: SDPSolverOptions or None (uses defaults)
        """
        self.n = n
        self.dim = dim
        self.options = options or SDPSolverOptions()
        self.logger = logging.getLogger(self.__class__.__module__)

    @abstractmethod
    def solve(
        self,
        covariance: sp.spmatrix,
        adjacent_edges: Dict[int, List[int]],
    ) -> Tuple[np.ndarray, SDPSummary]:
        """
        Solve the relaxation

        Args:
            covariance: Symmetric (dim*n x dim*n) cost matrix C
            adjacent_edges: Neighbor indices of every block

        Returns:
            Tuple of (Y, summary) with Y of shape (rank, dim*n)
        """

    def _cols(self, i: int) -> slice:
        return slice(self.dim * i, self.dim * (i + 1))

    def _neighbor_blocks(
        self,
        covariance: sp.spmatrix,
        adjacent_edges: Dict[int, List[int]],
    ) -> NeighborBlocks:
        """Dense C_ij blocks for every i and each neighbor j of i"""
        csr = sp.csr_matrix(covariance)
        blocks: NeighborBlocks = {}
        for i, neighbors in adjacent_edges.items():
            rows = csr[self._cols(i), :]
            blocks[i] = [(j, rows[:, self._cols(j)].toarray()) for j in sorted(set(neighbors))]
        return blocks

    def _factor_objective(self, Y: np.ndarray, blocks: NeighborBlocks) -> float:
        """tr(C Y^T Y) accumulated over the non-zero blocks of C"""
        value = 0.0
        for i, neighbors in blocks.items():
            Yi = Y[:, self._cols(i)]
            for j, C_ij in neighbors:
                value += np.sum(C_ij * (Yi.T @ Y[:, self._cols(j)]))
        return float(value)

    def _spectral_initialization(self, covariance: sp.spmatrix, rank: int) -> np.ndarray:
        """
        Factor built from the leading eigenvectors of -C

        Each block is projected onto the Stiefel manifold so the constraint
        Y_i^T Y_i = I holds from the first iteration.
        """
        size = self.dim * self.n
        rank = min(rank, size)
        if size <= DENSE_EIGEN_MAX_SIZE:
            dense = -covariance.toarray() if sp.issparse(covariance) else -np.asarray(covariance)
            _, vectors = scipy.linalg.eigh(dense, subset_by_index=[size - rank, size - 1])
        else:
            _, vectors = eigsh(-sp.csr_matrix(covariance), k=rank, which="LA")

        Y = np.ascontiguousarray(vectors[:, ::-1].T)
        for i in range(self.n):
            Y[:, self._cols(i)] = project_to_stiefel(Y[:, self._cols(i)])
        return Y

    def _has_converged(self, previous: float, current: float) -> bool:
        return abs(previous - current) <= self.options.tolerance * max(1.0, abs(current))


def create_sdp_solver(n: int, dim: int, options: SDPSolverOptions) -> Optional[SDPSolver]:
    """
    Instantiate the strategy selected by options.solver_type

    Returns:
        The solver, or None if the type is not supported
    """
    from .rbr_sdp_solver import RBRSDPSolver
    from .rank_restricted_sdp_solver import RankRestrictedSDPSolver
    from .riemannian_staircase import RiemannianStaircase

    solver_classes = {
        SDPSolverType.RBR_BCM: RBRSDPSolver,
        SDPSolverType.RANK_DEFICIENT_BCM: RankRestrictedSDPSolver,
        SDPSolverType.RIEMANNIAN_STAIRCASE: RiemannianStaircase,
    }
    solver_class = solver_classes.get(options.solver_type)
    if solver_class is None:
        logger.warning(f"SDP solver type {options.solver_type} is not supported")
        return None
    return solver_class(n, dim, options)
