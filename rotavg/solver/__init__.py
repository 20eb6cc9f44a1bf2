"""
Numerical solvers: sparse factorization, L1 ADMM and SDP relaxations
"""

from .l1_solver import L1Solver, L1SolverSummary
from .rank_restricted_sdp_solver import RankRestrictedSDPSolver
from .rbr_sdp_solver import RBRSDPSolver
from .riemannian_staircase import RiemannianStaircase
from .sdp_solver import SDPSolver, SDPSummary, create_sdp_solver
from .sparse_cholesky import CholeskyFactorizationError, SparseCholeskyLLt

__all__ = [
    "CholeskyFactorizationError",
    "L1Solver",
    "L1SolverSummary",
    "RBRSDPSolver",
    "RankRestrictedSDPSolver",
    "RiemannianStaircase",
    "SDPSolver",
    "SDPSummary",
    "SparseCholeskyLLt",
    "create_sdp_solver",
]
