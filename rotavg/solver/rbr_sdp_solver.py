"""
Row-by-row block coordinate minimization

Works on the full dense matrix X. Fixing every block row but i, the optimal
block column is available in closed form:

    X[-i, i] = -B W (W^T B W)^(-1/2),  B = X[-i, -i],  W = C[-i, i]

Reference:
    Eriksson et al., "Rotation Averaging and Strong Duality", CVPR 2018
"""

from typing import Dict, List, Tuple

import numpy as np
import scipy.linalg
import scipy.sparse as sp

from ..utils.timer import Timer
from .sdp_solver import NeighborBlocks, SDPSolver, SDPSummary


class RBRSDPSolver(SDPSolver):
    """Row-by-row block coordinate minimization over X, starting at X = I"""

    def solve(
        self,
        covariance: sp.spmatrix,
        adjacent_edges: Dict[int, List[int]],
    ) -> Tuple[np.ndarray, SDPSummary]:
        timer = Timer().start()
        blocks = self._neighbor_blocks(covariance, adjacent_edges)

        size = self.dim * self.n
        X = np.eye(size)
        summary = SDPSummary()

        previous = self._objective(X, blocks)
        for iteration in range(self.options.max_iterations):
            for i in range(self.n):
                self._update_block_row(X, i, blocks.get(i, []))

            current = self._objective(X, blocks)
            summary.total_iterations_num = iteration + 1
            if self.options.verbose:
                self.logger.info(f"RBR iter {iteration}: objective {current:.10e}")
            if self._has_converged(previous, current):
                summary.converged = True
                break
            previous = current

        summary.objective = current
        summary.rank = self.dim
        timer.pause()
        summary.total_time_ms = timer.elapsed_ms()

        self.logger.debug(
            f"RBR finished after {summary.total_iterations_num} sweeps, "
            f"objective {summary.objective:.6e}"
        )
        return self._factorize_solution(X), summary

    def _update_block_row(self, X: np.ndarray, i: int, neighbors: List[Tuple[int, np.ndarray]]) -> None:
        if not neighbors:
            return

        rows_i = self._cols(i)

        # S = B W, with the rows of block i removed
        S = np.zeros((X.shape[0], self.dim))
        for j, C_ij in neighbors:
            S += X[:, self._cols(j)] @ C_ij.T
        S[rows_i] = 0.0

        # W^T B W
        M = np.zeros((self.dim, self.dim))
        for j, C_ij in neighbors:
            M += C_ij @ S[self._cols(j)]
        M = 0.5 * (M + M.T)

        eigenvalues, eigenvectors = np.linalg.eigh(M)
        threshold = max(eigenvalues.max(), 0.0) * 1e-12
        inv_sqrt = np.zeros_like(eigenvalues)
        positive = eigenvalues > threshold
        inv_sqrt[positive] = 1.0 / np.sqrt(eigenvalues[positive])
        M_inv_sqrt = (eigenvectors * inv_sqrt) @ eigenvectors.T

        column = -S @ M_inv_sqrt
        column[rows_i] = np.eye(self.dim)
        X[:, rows_i] = column
        X[rows_i, :] = column.T

    def _objective(self, X: np.ndarray, blocks: NeighborBlocks) -> float:
        """tr(C X) over the non-zero blocks of C"""
        value = 0.0
        for i, neighbors in blocks.items():
            rows_i = self._cols(i)
            for j, C_ij in neighbors:
                value += np.sum(C_ij * X[rows_i, self._cols(j)])
        return float(value)

    def _factorize_solution(self, X: np.ndarray) -> np.ndarray:
        """Rank-dim factor Y with Y^T Y closest to X"""
        size = X.shape[0]
        eigenvalues, eigenvectors = scipy.linalg.eigh(
            0.5 * (X + X.T), subset_by_index=[size - self.dim, size - 1]
        )
        eigenvalues = np.clip(eigenvalues[::-1], 0.0, None)
        return np.sqrt(eigenvalues)[:, None] * eigenvectors[:, ::-1].T
