"""
Global rotation estimation through the Lagrange dual of rotation averaging

The relative rotations are stacked into the symmetric block matrix R with
block (i, j) = R_ij^T and block (j, i) = R_ij. The semidefinite relaxation

    min tr(-R X)  s.t.  X_ii = I, X >= 0

is tight for moderate noise, in which case the global rotations can be read
off a low-rank factor of its solution.

References:
    Eriksson et al., "Rotation Averaging and Strong Duality", CVPR 2018
    Dellaert et al., "Shonan Rotation Averaging", ECCV 2020
"""

import logging
import math
from typing import Dict, List, Mapping, Optional, Tuple

import numpy as np
import scipy.sparse as sp
from scipy.sparse.linalg import ArpackNoConvergence, eigsh

from ..core.config import SDPSolverOptions
from ..core.types import GlobalRotationMap, TwoViewGeometry, ViewPair
from ..solver.sdp_solver import SDPSummary, create_sdp_solver
from ..utils.rotation import (
    angle_axis_to_rotation_matrix,
    project_to_rotation_matrix,
    rotation_matrix_to_angle_axis,
)
from .estimator_util import view_id_to_ascent_index

# Laplacians up to this many views use a dense eigensolver
DENSE_LAPLACIAN_MAX_VIEWS = 100


class LagrangeDualRotationEstimator:
    """
    Semidefinite-relaxation global rotation estimator

    Example:
        >>> estimator = LagrangeDualRotationEstimator(num_views=len(rotations))
        >>> if estimator.estimate_rotations(view_pairs, rotations):
        ...     print(estimator.get_ra_summary().total_iterations_num)
    """

    def __init__(self, num_views: int, dim: int = 3, options: Optional[SDPSolverOptions] = None):
        """
        Args:
            num_views: Number of views (N)
            dim: Rotation dimension, only 3 is supported
            options: SDPSolverOptions or None (uses defaults)
        """
        if dim != 3:
            raise ValueError(f"Only 3D rotations are supported, got dim={dim}")

        self.num_views = num_views
        self.dim = dim
        self.options = options or SDPSolverOptions()
        self.logger = logging.getLogger(__name__)

        self.view_id_to_index: Dict[int, int] = {}
        self.summary = SDPSummary()
        self.alpha_max = 0.0
        self.Y: Optional[np.ndarray] = None

    def set_view_id_to_index(self, view_id_to_index: Mapping[int, int]) -> None:
        self.view_id_to_index = dict(view_id_to_index)

    def set_ra_option(self, options: SDPSolverOptions) -> None:
        self.options = options

    def get_ra_summary(self) -> SDPSummary:
        return self.summary

    def get_error_bound(self) -> float:
        return self.alpha_max

    def estimate_rotations(
        self,
        view_pairs: Mapping[ViewPair, TwoViewGeometry],
        global_rotations: GlobalRotationMap,
    ) -> bool:
        """
        Estimate global rotations from relative rotations

        Args:
            view_pairs: Relative rotation measurements keyed by view pair
            global_rotations: Rotation map whose keys are the views to solve
                for; values are overwritten in place

        Returns:
            True if a solution was written to global_rotations
        """
        if not view_pairs or self.num_views == 0 or not global_rotations:
            self.logger.error("Rotation estimation needs at least one view and one view pair")
            return False

        if not self.view_id_to_index:
            self.view_id_to_index = view_id_to_ascent_index(global_rotations)

        R, adjacent_edges = self.fill_in_relative_graph(view_pairs)

        solver = create_sdp_solver(self.num_views, self.dim, self.options)
        if solver is None:
            return False

        self.Y, self.summary = solver.solve(-R, adjacent_edges)
        self.retrieve_rotations(self.Y, global_rotations)

        self.logger.info(
            f"LagrangeDual converged in {self.summary.total_iterations_num} iterations"
        )
        self.logger.info(f"Total time [LagrangeDual]: {self.summary.total_time():.2f} ms")
        return True

    def compute_error_bound(self, view_pairs: Mapping[ViewPair, TwoViewGeometry]) -> float:
        """
        Upper bound on the angular error under which the relaxation is tight

        alpha_max = 2 * asin(sqrt(0.25 + lambda2 / (2 * d_max)) - 0.5), with
        lambda2 the algebraic connectivity of the view graph and d_max its
        maximum degree.

        Returns:
            alpha_max in radians (also stored for get_error_bound())
        """
        n = self.num_views
        rows, cols = [], []
        for view_id1, view_id2 in view_pairs:
            i = self.view_id_to_index[view_id1]
            j = self.view_id_to_index[view_id2]
            rows.extend([i, j])
            cols.extend([j, i])

        adjacency = sp.csr_matrix((np.ones(len(rows)), (rows, cols)), shape=(n, n))
        adjacency.data[:] = 1.0
        degrees = np.asarray(adjacency.sum(axis=1)).ravel()
        laplacian = sp.diags(degrees) - adjacency
        max_degree = float(degrees.max()) if n > 0 else 0.0

        lambda2 = 0.0
        if n < 2 or max_degree == 0.0:
            self.logger.warning("Error bound needs a graph with at least one edge")
        elif n <= DENSE_LAPLACIAN_MAX_VIEWS:
            lambda2 = float(np.linalg.eigvalsh(laplacian.toarray())[1])
        else:
            try:
                values = eigsh(laplacian.tocsc(), k=2, which="SA", return_eigenvectors=False)
                lambda2 = float(np.sort(values)[1])
            except ArpackNoConvergence:
                self.logger.warning("Computing the Laplacian eigenvalues failed")

        lambda2 = max(lambda2, 0.0)
        if max_degree > 0.0:
            self.alpha_max = 2.0 * math.asin(math.sqrt(0.25 + lambda2 / (2.0 * max_degree)) - 0.5)
        else:
            self.alpha_max = 0.0
        return self.alpha_max

    def fill_in_relative_graph(
        self,
        view_pairs: Mapping[ViewPair, TwoViewGeometry],
    ) -> Tuple[sp.csr_matrix, Dict[int, List[int]]]:
        """
        Build the block matrix R and the adjacency lists of the view graph

        Returns:
            Tuple of (R, adjacent_edges) with R of shape (dim*N, dim*N)
        """
        dim = self.dim
        size = dim * self.num_views
        pairs = list(view_pairs.items())
        relative = angle_axis_to_rotation_matrix(
            np.array([geometry.rotation_2 for _, geometry in pairs])
        ).reshape(-1, dim, dim)

        local_r, local_c = np.meshgrid(np.arange(dim), np.arange(dim), indexing="ij")
        rows, cols, values = [], [], []
        adjacent_edges: Dict[int, List[int]] = {}
        for ((view_id1, view_id2), _), R_ij in zip(pairs, relative):
            i = self.view_id_to_index[view_id1]
            j = self.view_id_to_index[view_id2]

            # Block (i, j) = R_ij^T, block (j, i) = R_ij
            rows.append(dim * i + local_r.ravel())
            cols.append(dim * j + local_c.ravel())
            values.append(R_ij.T.ravel())
            rows.append(dim * j + local_r.ravel())
            cols.append(dim * i + local_c.ravel())
            values.append(R_ij.ravel())

            adjacent_edges.setdefault(i, []).append(j)
            adjacent_edges.setdefault(j, []).append(i)

        R = sp.csr_matrix(
            (np.concatenate(values), (np.concatenate(rows), np.concatenate(cols))),
            shape=(size, size),
        )
        return R, adjacent_edges

    def retrieve_rotations(self, Y: np.ndarray, global_rotations: GlobalRotationMap) -> None:
        """Read the global rotations off the solution factor Y"""
        dim = self.dim
        if Y.shape[0] > dim:
            # Best rank-dim row space of Y, a left rotation of the factor
            _, singular_values, Vt = np.linalg.svd(Y, full_matrices=False)
            Y = singular_values[:dim, None] * Vt[:dim]

        view_ids = list(global_rotations)
        indices = [self.view_id_to_index[view_id] for view_id in view_ids]
        blocks = np.array([Y[:, dim * i:dim * (i + 1)].T for i in indices])

        determinants = np.linalg.det(blocks)
        if np.count_nonzero(determinants < 0) * 2 > len(blocks):
            blocks = -blocks
            determinants = -determinants
        blocks[determinants < 0] *= -1.0

        rotations = np.array([project_to_rotation_matrix(block) for block in blocks])
        angle_axes = rotation_matrix_to_angle_axis(rotations)
        for view_id, angle_axis in zip(view_ids, angle_axes):
            global_rotations[view_id] = angle_axis
