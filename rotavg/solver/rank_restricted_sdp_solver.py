"""
Rank-restricted block coordinate minimization

Burer-Monteiro parameterization X = Y^T Y with Y of fixed rank r. Every
block Y_i (r x dim) lives on the Stiefel manifold and is updated in closed
form with the rest of Y fixed:

    Y_i = polar(-sum_j Y_j C_ji)

Each update minimizes the objective exactly over its block, so the objective
is non-increasing across sweeps.
"""

from typing import Dict, List, Optional, Tuple

import numpy as np
import scipy.sparse as sp

from ..core.config import SDPSolverOptions
from ..utils.rotation import project_to_stiefel
from ..utils.timer import Timer
from .sdp_solver import NeighborBlocks, SDPSolver, SDPSummary


class RankRestrictedSDPSolver(SDPSolver):
    """Block coordinate minimization over a rank-restricted factor"""

    def __init__(
        self,
        n: int,
        dim: int,
        options: Optional[SDPSolverOptions] = None,
        rank: Optional[int] = None,
    ):
        super().__init__(n, dim, options)
        rank = rank if rank is not None else self.options.rank
        self.rank = int(np.clip(rank, dim, dim * n))

    def solve(
        self,
        covariance: sp.spmatrix,
        adjacent_edges: Dict[int, List[int]],
    ) -> Tuple[np.ndarray, SDPSummary]:
        timer = Timer().start()
        blocks = self._neighbor_blocks(covariance, adjacent_edges)

        Y = self._spectral_initialization(covariance, self.rank)
        Y, iterations, converged, objective = self._block_coordinate_minimization(Y, blocks)

        timer.pause()
        summary = SDPSummary(
            total_iterations_num=iterations,
            total_time_ms=timer.elapsed_ms(),
            converged=converged,
            rank=Y.shape[0],
            objective=objective,
        )
        self.logger.debug(
            f"Rank-{self.rank} BCM finished after {iterations} sweeps, objective {objective:.6e}"
        )
        return Y, summary

    def _block_coordinate_minimization(
        self,
        Y: np.ndarray,
        blocks: NeighborBlocks,
    ) -> Tuple[np.ndarray, int, bool, float]:
        """
        Sweep over all blocks until the objective stops changing

        Returns:
            Tuple of (Y, sweeps, converged, objective)
        """
        previous = self._factor_objective(Y, blocks)
        current = previous
        for iteration in range(self.options.max_iterations):
            for i in range(self.n):
                neighbors = blocks.get(i)
                if not neighbors:
                    continue
                gradient = np.zeros((Y.shape[0], self.dim))
                for j, C_ij in neighbors:
                    gradient += Y[:, self._cols(j)] @ C_ij.T
                Y[:, self._cols(i)] = project_to_stiefel(-gradient)

            current = self._factor_objective(Y, blocks)
            if self.options.verbose:
                self.logger.info(f"BCM rank {Y.shape[0]} iter {iteration}: objective {current:.10e}")
            if self._has_converged(previous, current):
                return Y, iteration + 1, True, current
            previous = current

        return Y, self.options.max_iterations, False, current
