"""
Cholesky-style factorization of symmetric positive definite systems

The fill-reducing ordering is analyzed once per sparsity pattern; numeric
factorizations reuse it, which is what the iterative solvers rely on when
only the values of their normal equations change between iterations.
"""

from typing import Optional, Union

import numpy as np
import scipy.linalg
import scipy.sparse as sp
from scipy.sparse.csgraph import reverse_cuthill_mckee
from scipy.sparse.linalg import splu

MatrixLike = Union[np.ndarray, sp.spmatrix]


class CholeskyFactorizationError(RuntimeError):
    """Raised when a system cannot be factorized or solved"""


class SparseCholeskyLLt:
    """
    LLt-style solver for SPD matrices (sparse or dense)

    Sparse inputs are reordered with reverse Cuthill-McKee and factorized by
    SuperLU without pivoting; a non-positive pivot means the matrix is not
    positive definite. Dense inputs go through LAPACK's Cholesky.
    """

    def __init__(self):
        self._permutation: Optional[np.ndarray] = None
        self._inverse_permutation: Optional[np.ndarray] = None
        self._shape = None
        self._lu = None
        self._dense_factor = None

    @property
    def is_analyzed(self) -> bool:
        return self._shape is not None

    @property
    def is_factorized(self) -> bool:
        return self._lu is not None or self._dense_factor is not None

    def analyze_pattern(self, mat: MatrixLike) -> None:
        """Compute the fill-reducing ordering of mat's sparsity pattern"""
        if mat.shape[0] != mat.shape[1]:
            raise CholeskyFactorizationError(f"Matrix must be square, got shape {mat.shape}")

        self._shape = mat.shape
        self._lu = None
        self._dense_factor = None
        if sp.issparse(mat):
            self._permutation = reverse_cuthill_mckee(sp.csr_matrix(mat), symmetric_mode=True)
            self._inverse_permutation = np.argsort(self._permutation)
        else:
            self._permutation = None
            self._inverse_permutation = None

    def factorize(self, mat: MatrixLike) -> None:
        """
        Numeric factorization of a matrix with the analyzed pattern

        Raises:
            CholeskyFactorizationError: If mat is not positive definite
        """
        if not self.is_analyzed:
            self.analyze_pattern(mat)
        if mat.shape != self._shape:
            raise CholeskyFactorizationError(
                f"Matrix shape {mat.shape} differs from the analyzed shape {self._shape}"
            )

        self._lu = None
        self._dense_factor = None

        if sp.issparse(mat):
            if self._permutation is None:
                self.analyze_pattern(mat)
            p = self._permutation
            permuted = sp.csr_matrix(mat)[p, :][:, p].tocsc()
            try:
                lu = splu(
                    permuted,
                    permc_spec="NATURAL",
                    diag_pivot_thresh=0.0,
                    options={"SymmetricMode": True},
                )
            except RuntimeError as e:
                raise CholeskyFactorizationError(f"Sparse factorization failed: {e}") from e

            pivots = lu.U.diagonal()
            if not np.all(np.isfinite(pivots)) or np.any(pivots <= 0.0):
                raise CholeskyFactorizationError("Matrix is not positive definite")
            self._lu = lu
        else:
            try:
                self._dense_factor = scipy.linalg.cho_factor(np.asarray(mat, dtype=np.float64))
            except np.linalg.LinAlgError as e:
                raise CholeskyFactorizationError(f"Dense Cholesky failed: {e}") from e

    def compute(self, mat: MatrixLike) -> None:
        """Analyze and factorize in one call"""
        self.analyze_pattern(mat)
        self.factorize(mat)

    def solve(self, rhs: np.ndarray) -> np.ndarray:
        """
        Solve mat * x = rhs with the current factorization

        Raises:
            CholeskyFactorizationError: If nothing is factorized or the result is not finite
        """
        if not self.is_factorized:
            raise CholeskyFactorizationError("solve() called before a successful factorize()")

        rhs = np.asarray(rhs, dtype=np.float64)
        if self._lu is not None:
            p = self._permutation
            solution = self._lu.solve(rhs[p])[self._inverse_permutation]
        else:
            solution = scipy.linalg.cho_solve(self._dense_factor, rhs)

        if not np.all(np.isfinite(solution)):
            raise CholeskyFactorizationError("Linear solve produced non-finite values")
        return solution
