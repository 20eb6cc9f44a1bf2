"""
Riemannian staircase

Solves the Burer-Monteiro problem at increasing ranks until the solution is
certified globally optimal for the semidefinite relaxation. A factor Y is
optimal when

    S = C - Lambda(Y),   Lambda_ii = sym(sum_j C_ij Y_j^T Y_i)

is positive semidefinite. If the certificate fails, the rank is lifted by
one and the iterate escapes the saddle along the eigenvector of the most
negative eigenvalue of S.

Reference:
    Boumal, "A Riemannian low-rank method for optimization over semidefinite
    matrices with block-diagonal constraints", 2015
"""

from typing import Dict, List, Optional, Tuple

import numpy as np
import scipy.linalg
import scipy.sparse as sp
from scipy.sparse.linalg import ArpackNoConvergence, eigsh

from ..utils.rotation import project_to_stiefel
from ..utils.timer import Timer
from .rank_restricted_sdp_solver import RankRestrictedSDPSolver
from .sdp_solver import DENSE_EIGEN_MAX_SIZE, NeighborBlocks, SDPSummary

MAX_ESCAPE_HALVINGS = 12


class RiemannianStaircase(RankRestrictedSDPSolver):
    """Rank-increasing Burer-Monteiro solver with an optimality certificate"""

    def solve(
        self,
        covariance: sp.spmatrix,
        adjacent_edges: Dict[int, List[int]],
    ) -> Tuple[np.ndarray, SDPSummary]:
        timer = Timer().start()
        blocks = self._neighbor_blocks(covariance, adjacent_edges)

        size = self.dim * self.n
        max_rank = min(self.options.max_rank, size)
        rank = min(max(self.options.min_rank, self.dim), max_rank)

        Y = self._spectral_initialization(covariance, rank)
        summary = SDPSummary()
        while True:
            Y, iterations, converged, objective = self._block_coordinate_minimization(Y, blocks)
            summary.total_iterations_num += iterations
            summary.converged = converged
            summary.objective = objective

            min_eigenvalue, eigenvector = self._certificate(covariance, Y, blocks)
            if eigenvector is None:
                summary.certified = False
                break

            summary.certified = min_eigenvalue >= -self.options.certificate_tolerance
            self.logger.debug(
                f"Staircase rank {rank}: objective {objective:.6e}, "
                f"min certificate eigenvalue {min_eigenvalue:.3e}"
            )
            if summary.certified or rank >= max_rank:
                break

            Y = self._escape_saddle(Y, eigenvector, blocks, objective)
            rank += 1

        timer.pause()
        summary.rank = rank
        summary.total_time_ms = timer.elapsed_ms()

        if not summary.certified:
            self.logger.warning(f"Riemannian staircase stopped at rank {rank} without a certificate")
        return Y, summary

    def _certificate(
        self,
        covariance: sp.spmatrix,
        Y: np.ndarray,
        blocks: NeighborBlocks,
    ) -> Tuple[float, Optional[np.ndarray]]:
        """
        Smallest eigenvalue of the certificate matrix and its eigenvector

        Returns:
            Tuple of (eigenvalue, eigenvector); eigenvector is None if the
            eigensolver failed
        """
        lambda_blocks = []
        for i in range(self.n):
            Yi = Y[:, self._cols(i)]
            block = np.zeros((self.dim, self.dim))
            for j, C_ij in blocks.get(i, []):
                block += C_ij @ Y[:, self._cols(j)].T @ Yi
            lambda_blocks.append(0.5 * (block + block.T))

        certificate = sp.csr_matrix(covariance) - sp.block_diag(lambda_blocks, format="csr")
        size = certificate.shape[0]
        if size <= DENSE_EIGEN_MAX_SIZE:
            values, vectors = scipy.linalg.eigh(certificate.toarray(), subset_by_index=[0, 0])
        else:
            try:
                values, vectors = eigsh(certificate, k=1, which="SA")
            except ArpackNoConvergence:
                self.logger.warning("Certificate eigenvalue computation did not converge")
                return 0.0, None
        return float(values[0]), vectors[:, 0]

    def _escape_saddle(
        self,
        Y: np.ndarray,
        eigenvector: np.ndarray,
        blocks: NeighborBlocks,
        objective: float,
    ) -> np.ndarray:
        """Lift Y by one row and step along the negative curvature direction"""
        lifted = np.vstack([Y, np.zeros((1, Y.shape[1]))])
        step = 1.0
        candidate = lifted
        for _ in range(MAX_ESCAPE_HALVINGS):
            candidate = lifted.copy()
            candidate[-1, :] = step * eigenvector
            for i in range(self.n):
                candidate[:, self._cols(i)] = project_to_stiefel(candidate[:, self._cols(i)])
            if self._factor_objective(candidate, blocks) < objective:
                return candidate
            step *= 0.5
        return candidate
