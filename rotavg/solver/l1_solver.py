"""
L1-norm approximation solver (ADMM)

Solves min_x ||A x - b||_1 with the alternating direction method of
multipliers as a least absolute deviations problem:

    min ||z||_1  s.t.  A x - z = b

A^T A is factorized once at construction and reused by every x-update, so
re-solving with a different right-hand side only costs back-substitutions.

Reference:
    Boyd et al., "Distributed Optimization and Statistical Learning via the
    Alternating Direction Method of Multipliers", 2011
"""

import logging
from dataclasses import dataclass, replace
from typing import Optional, Union

import numpy as np
import scipy.sparse as sp

from ..core.config import L1SolverOptions
from .sparse_cholesky import CholeskyFactorizationError, SparseCholeskyLLt


@dataclass
class L1SolverSummary:
    """Diagnostics of the last solve"""

    num_iterations: int = 0
    converged: bool = False
    primal_residual: float = float("inf")
    dual_residual: float = float("inf")


def shrinkage(vec: np.ndarray, kappa: float) -> np.ndarray:
    """Soft-thresholding operator: max(0, v - k) - max(0, -v - k)"""
    return np.maximum(0.0, vec - kappa) - np.maximum(0.0, -vec - kappa)


class L1Solver:
    """
    ADMM least absolute deviations solver for a fixed coefficient matrix
    """

    def __init__(
        self,
        options: Optional[L1SolverOptions],
        mat: Union[np.ndarray, sp.spmatrix],
    ):
        """
        Args:
            options: L1SolverOptions or None (uses defaults)
            mat: Coefficient matrix A, dense or scipy.sparse

        Raises:
            CholeskyFactorizationError: If A^T A is not positive definite
        """
        # set_max_iterations only affects this solver
        self.options = replace(options) if options is not None else L1SolverOptions()
        self.logger = logging.getLogger(__name__)

        if sp.issparse(mat):
            self._a = sp.csr_matrix(mat, dtype=np.float64)
        else:
            self._a = np.asarray(mat, dtype=np.float64)
        self._at = self._a.T

        spd_mat = self._at @ self._a
        if sp.issparse(spd_mat):
            spd_mat = spd_mat.tocsc()

        self._linear_solver = SparseCholeskyLLt()
        self._linear_solver.compute(spd_mat)

        self._z: Optional[np.ndarray] = None
        self._u: Optional[np.ndarray] = None
        self.summary = L1SolverSummary()

    @property
    def num_rows(self) -> int:
        return self._a.shape[0]

    @property
    def num_cols(self) -> int:
        return self._a.shape[1]

    def set_max_iterations(self, max_iterations: int) -> None:
        self.options.max_num_iterations = max_iterations

    def solve(self, rhs: np.ndarray, warm_start: bool = False) -> Optional[np.ndarray]:
        """
        Minimize ||A x - rhs||_1

        Args:
            rhs: Right-hand side b with one entry per row of A
            warm_start: Continue from the auxiliary and dual variables of the
                previous solve instead of zeros

        Returns:
            The solution x, or None if the linear system could not be solved
        """
        rhs = np.asarray(rhs, dtype=np.float64)
        if rhs.shape != (self.num_rows,):
            raise ValueError(f"rhs must have shape ({self.num_rows},), got {rhs.shape}")

        opts = self.options
        if warm_start and self._z is not None:
            z, u = self._z.copy(), self._u.copy()
        else:
            z, u = np.zeros(self.num_rows), np.zeros(self.num_rows)

        rhs_norm = np.linalg.norm(rhs)
        primal_abs_tolerance_eps = np.sqrt(self.num_rows) * opts.absolute_tolerance
        dual_abs_tolerance_eps = np.sqrt(self.num_cols) * opts.absolute_tolerance

        self.summary = L1SolverSummary()
        self.logger.debug(
            f"{'Iter':>12}{'R norm':>16}{'S norm':>16}{'Primal eps':>16}{'Dual eps':>16}"
        )

        x = None
        for i in range(opts.max_num_iterations):
            # Update x
            try:
                x = self._linear_solver.solve(self._at @ (rhs + z - u))
            except CholeskyFactorizationError as e:
                self.logger.error(
                    f"L1 minimization failed. Could not solve the linear system: {e}"
                )
                return None

            a_times_x = self._a @ x
            ax_hat = opts.alpha * a_times_x + (1.0 - opts.alpha) * (z + rhs)

            # Update z and keep the previous value for the dual residual
            z_old = z
            z = shrinkage(ax_hat - rhs + u, 1.0 / opts.rho)

            # Update u
            u = u + ax_hat - z - rhs

            # Convergence terms
            r_norm = np.linalg.norm(a_times_x - z - rhs)
            s_norm = np.linalg.norm(-opts.rho * (self._at @ (z - z_old)))
            max_norm = max(np.linalg.norm(a_times_x), np.linalg.norm(z), rhs_norm)
            primal_eps = primal_abs_tolerance_eps + opts.relative_tolerance * max_norm
            dual_eps = dual_abs_tolerance_eps + opts.relative_tolerance * np.linalg.norm(
                opts.rho * (self._at @ u)
            )

            self.logger.debug(
                f"{i:>12}{r_norm:>16.6e}{s_norm:>16.6e}{primal_eps:>16.6e}{dual_eps:>16.6e}"
            )

            self.summary.num_iterations = i + 1
            self.summary.primal_residual = float(r_norm)
            self.summary.dual_residual = float(s_norm)
            if r_norm < primal_eps and s_norm < dual_eps:
                self.summary.converged = True
                break

        self._z, self._u = z, u
        return x
