"""
Unit tests for the SPD factorization wrapper
"""

import pytest
import numpy as np
import scipy.sparse as sp
from pathlib import Path
import sys

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from rotavg.solver.sparse_cholesky import CholeskyFactorizationError, SparseCholeskyLLt


def laplacian_plus_identity(n=20):
    main = 3.0 * np.ones(n)
    off = -1.0 * np.ones(n - 1)
    return sp.diags([off, main, off], [-1, 0, 1], format="csc")


class TestSparseCholeskyLLt:
    """Test analyze / factorize / solve"""

    def test_sparse_solve(self):
        """Sparse SPD system is solved accurately"""
        mat = laplacian_plus_identity()
        rhs = np.arange(20, dtype=float)

        solver = SparseCholeskyLLt()
        solver.compute(mat)
        x = solver.solve(rhs)

        np.testing.assert_allclose(mat @ x, rhs, atol=1e-10)

    def test_dense_solve(self):
        """Dense SPD system goes through LAPACK"""
        rng = np.random.default_rng(0)
        A = rng.normal(size=(6, 4))
        mat = A.T @ A + np.eye(4)
        rhs = rng.normal(size=4)

        solver = SparseCholeskyLLt()
        solver.compute(mat)
        np.testing.assert_allclose(solver.solve(rhs), np.linalg.solve(mat, rhs), atol=1e-10)

    def test_refactorize_same_pattern(self):
        """The analyzed ordering is reused for new values"""
        mat = laplacian_plus_identity(10)
        solver = SparseCholeskyLLt()
        solver.analyze_pattern(mat)
        assert solver.is_analyzed
        assert not solver.is_factorized

        for scale in (1.0, 2.0, 5.0):
            solver.factorize(scale * mat)
            rhs = np.ones(10)
            np.testing.assert_allclose((scale * mat) @ solver.solve(rhs), rhs, atol=1e-10)

    def test_indefinite_sparse(self):
        """Indefinite sparse matrices are rejected"""
        mat = sp.csc_matrix(np.array([[1.0, 2.0], [2.0, 1.0]]))
        with pytest.raises(CholeskyFactorizationError):
            SparseCholeskyLLt().compute(mat)

    def test_indefinite_dense(self):
        """Indefinite dense matrices are rejected"""
        with pytest.raises(CholeskyFactorizationError):
            SparseCholeskyLLt().compute(np.array([[1.0, 2.0], [2.0, 1.0]]))

    def test_shape_change(self):
        """Factorizing a matrix of another shape fails"""
        solver = SparseCholeskyLLt()
        solver.analyze_pattern(laplacian_plus_identity(5))
        with pytest.raises(CholeskyFactorizationError):
            solver.factorize(laplacian_plus_identity(6))

    def test_solve_before_factorize(self):
        """Solving without a factorization fails"""
        with pytest.raises(CholeskyFactorizationError):
            SparseCholeskyLLt().solve(np.ones(3))
