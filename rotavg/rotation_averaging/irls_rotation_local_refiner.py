"""
Robust local refinement of global rotations with IRLS

Each iteration linearizes the relative rotation residuals
r_ij = log(R_j^T R_ij R_i) in the tangent space of the current estimate,
reweights every residual with

    w = sigma / (e^2 + sigma^2)^2

and solves the weighted normal equations (J^T W J) delta = J^T W r. The
sparsity pattern of J^T W J never changes, so its ordering is analyzed once
per solve and only the numeric factorization is repeated.

Reference:
    Chatterjee and Govindu, "Robust Relative Rotation Averaging", TPAMI 2018
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Mapping, Optional

import numpy as np
import scipy.sparse as sp

from ..core.config import IRLSRefinerOptions
from ..core.types import GlobalRotationMap, TwoViewGeometry, ViewPair
from ..solver.sparse_cholesky import CholeskyFactorizationError, SparseCholeskyLLt
from ..utils.timer import Timer
from .estimator_util import (
    apply_tangent_space_step,
    compute_average_step_size,
    compute_relative_residuals,
    setup_linear_system,
    view_id_to_ascent_index,
)


class IRLSState(Enum):
    """Lifecycle of a refiner instance"""

    UNINITIALIZED = "uninitialized"
    READY = "ready"
    ITERATING = "iterating"
    CONVERGED = "converged"
    MAX_ITERATIONS_REACHED = "max_iterations_reached"
    FAILED = "failed"


@dataclass
class IRLSSummary:
    """Diagnostics of the last IRLS solve"""

    num_iterations: int = 0
    converged: bool = False
    final_squared_residual: float = 0.0
    total_time_ms: float = 0.0


def compute_irls_weights(residuals: np.ndarray, sigma: float) -> np.ndarray:
    """Per-coordinate weights for stacked 3-vector residuals"""
    e_sq = np.sum(residuals.reshape(-1, 3) ** 2, axis=1)
    tmp = e_sq + sigma * sigma
    return np.repeat(sigma / (tmp * tmp), 3)


class IRLSRotationLocalRefiner:
    """
    Iteratively reweighted least squares refinement on SO(3)

    The view with the smallest id (ascent index 0) is held constant and fixes
    the gauge.
    """

    def __init__(
        self,
        num_orientations: int,
        num_edges: int,
        options: Optional[IRLSRefinerOptions] = None,
    ):
        """
        Args:
            num_orientations: Number of global rotations
            num_edges: Number of relative rotations
            options: IRLSRefinerOptions or None (uses defaults)
        """
        self.options = options or IRLSRefinerOptions()
        self.logger = logging.getLogger(__name__)

        self.view_id_to_index: Dict[int, int] = {}
        self.sparse_matrix: Optional[sp.csr_matrix] = None
        self.summary = IRLSSummary()
        self.state = IRLSState.UNINITIALIZED
        self.resize(num_orientations, num_edges)

    def resize(self, num_orientations: int, num_edges: int) -> None:
        """Re-target the refiner to a new problem size and drop cached state"""
        if num_orientations < 1 or num_edges < 0:
            raise ValueError(
                f"Invalid problem size: {num_orientations} orientations, {num_edges} edges"
            )
        self.num_orientations = num_orientations
        self.num_edges = num_edges

        # One rotation is held constant
        self.tangent_space_step = np.zeros(3 * (num_orientations - 1))
        self.tangent_space_residual = np.zeros(3 * num_edges)
        self.view_id_to_index = {}
        self.sparse_matrix = None
        self.state = IRLSState.READY

    def set_view_id_to_index(self, view_id_to_index: Mapping[int, int]) -> None:
        self.view_id_to_index = dict(view_id_to_index)

    def set_sparse_matrix(self, sparse_matrix: sp.spmatrix) -> None:
        self.sparse_matrix = sp.csr_matrix(sparse_matrix)

    def set_init_tangent_space_step(self, tangent_space_step: np.ndarray) -> None:
        tangent_space_step = np.asarray(tangent_space_step, dtype=np.float64)
        if tangent_space_step.shape != self.tangent_space_step.shape:
            raise ValueError(
                f"Tangent space step must have shape {self.tangent_space_step.shape}, "
                f"got {tangent_space_step.shape}"
            )
        self.tangent_space_step = tangent_space_step.copy()

    def solve_irls(
        self,
        view_pairs: Mapping[ViewPair, TwoViewGeometry],
        global_rotations: GlobalRotationMap,
    ) -> bool:
        """
        Refine global_rotations in place

        Args:
            view_pairs: Relative rotation measurements
            global_rotations: Initial global rotations, overwritten in place

        Returns:
            True on success (converged or iteration limit reached), False if
            a linear system could not be factorized or solved
        """
        if not global_rotations:
            raise ValueError("global_rotations must not be empty")
        if not view_pairs:
            raise ValueError("view_pairs must not be empty")

        num_edges = len(view_pairs)
        num_views = len(global_rotations)
        if num_edges != self.num_edges or num_views != self.num_orientations:
            self.logger.debug(
                f"Resizing IRLS refiner from ({self.num_orientations}, {self.num_edges}) "
                f"to ({num_views}, {num_edges})"
            )
            view_id_to_index, sparse_matrix = self.view_id_to_index, self.sparse_matrix
            self.resize(num_views, num_edges)
            self.view_id_to_index = view_id_to_index
            if sparse_matrix is not None and sparse_matrix.shape == (3 * num_edges, 3 * (num_views - 1)):
                self.sparse_matrix = sparse_matrix

        if not self.view_id_to_index:
            self.view_id_to_index = view_id_to_ascent_index(global_rotations)

        if self.sparse_matrix is None or self.sparse_matrix.shape[0] == 0:
            self.sparse_matrix = setup_linear_system(view_pairs, num_views, self.view_id_to_index)

        self.summary = IRLSSummary()
        timer = Timer().start()

        J = self.sparse_matrix
        Jt = J.T.tocsr()

        # The sparsity pattern does not change between iterations, so the
        # ordering is computed once.
        linear_solver = SparseCholeskyLLt()
        try:
            linear_solver.analyze_pattern((Jt @ J).tocsc())
        except CholeskyFactorizationError as e:
            self.logger.error(f"Cholesky decomposition failed: {e}")
            self.state = IRLSState.FAILED
            return False

        self.tangent_space_residual = compute_relative_residuals(view_pairs, global_rotations)

        self.state = IRLSState.ITERATING
        self.logger.debug(f"{'Iter':>12}{'SqError':>16}{'Delta':>16}")
        sigma = self.options.irls_loss_parameter_sigma
        for i in range(self.options.max_num_irls_iterations):
            weights = self._compute_weights(self.tangent_space_residual, sigma)

            at_weight = Jt @ sp.diags(weights)
            try:
                linear_solver.factorize((at_weight @ J).tocsc())
            except CholeskyFactorizationError as e:
                self.logger.error(f"Failed to factorize the least squares system: {e}")
                self.state = IRLSState.FAILED
                return False

            try:
                self.tangent_space_step = linear_solver.solve(at_weight @ self.tangent_space_residual)
            except CholeskyFactorizationError as e:
                self.logger.error(f"Failed to solve the least squares system: {e}")
                self.state = IRLSState.FAILED
                return False

            apply_tangent_space_step(global_rotations, self.tangent_space_step, self.view_id_to_index)
            self.tangent_space_residual = compute_relative_residuals(view_pairs, global_rotations)
            avg_step_size = compute_average_step_size(self.tangent_space_step)

            squared_residual = float(self.tangent_space_residual @ self.tangent_space_residual)
            self.logger.debug(f"{i:>12}{squared_residual:>16.6e}{avg_step_size:>16.6e}")

            self.summary.num_iterations = i + 1
            self.summary.final_squared_residual = squared_residual
            if avg_step_size < self.options.irls_step_convergence_threshold:
                self.summary.converged = True
                self.logger.info(f"IRLS converged in {i + 1} iterations")
                break

        timer.pause()
        self.summary.total_time_ms = timer.elapsed_ms()
        self.state = IRLSState.CONVERGED if self.summary.converged else IRLSState.MAX_ITERATIONS_REACHED
        self.logger.info(f"Total time [IRLS]: {self.summary.total_time_ms:.2f} ms")
        return True

    def _compute_weights(self, residuals: np.ndarray, sigma: float) -> np.ndarray:
        num_threads = self.options.num_threads
        num_edges = residuals.size // 3
        if num_threads == 1 or num_edges < num_threads:
            return compute_irls_weights(residuals, sigma)

        weights = np.empty_like(residuals)
        bounds = np.linspace(0, num_edges, num_threads + 1).astype(int)

        def fill_chunk(begin: int, end: int) -> None:
            weights[3 * begin:3 * end] = compute_irls_weights(residuals[3 * begin:3 * end], sigma)

        # Leaving the context waits for every chunk
        with ThreadPoolExecutor(max_workers=num_threads) as executor:
            futures = [
                executor.submit(fill_chunk, begin, end)
                for begin, end in zip(bounds[:-1], bounds[1:])
            ]
            for future in futures:
                future.result()
        return weights
