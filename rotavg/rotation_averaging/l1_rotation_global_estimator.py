"""
Tangent-space L1 rotation refinement

Solves min ||J delta - r||_1 repeatedly around the current estimate, where J
and r are the tangent-space Jacobian and residuals used by the IRLS refiner.
The L1 cost tolerates a large fraction of outlier measurements, which makes
this a good intermediate stage between the relaxation and IRLS.

Reference:
    Chatterjee and Govindu, "Efficient and Robust Large-Scale Rotation
    Averaging", ICCV 2013
"""

import logging
from typing import Dict, Mapping, Optional

from ..core.config import L1RefinerOptions
from ..core.types import GlobalRotationMap, TwoViewGeometry, ViewPair
from ..solver.l1_solver import L1Solver
from ..solver.sparse_cholesky import CholeskyFactorizationError
from ..utils.timer import Timer
from .estimator_util import (
    apply_tangent_space_step,
    compute_average_step_size,
    compute_relative_residuals,
    setup_linear_system,
    view_id_to_ascent_index,
)


class L1RotationGlobalEstimator:
    """Robust L1 regression of global rotations in the tangent space"""

    def __init__(self, options: Optional[L1RefinerOptions] = None):
        self.options = options or L1RefinerOptions()
        self.logger = logging.getLogger(__name__)
        self.view_id_to_index: Dict[int, int] = {}
        self.num_iterations = 0

    def set_view_id_to_index(self, view_id_to_index: Mapping[int, int]) -> None:
        self.view_id_to_index = dict(view_id_to_index)

    def estimate_rotations(
        self,
        view_pairs: Mapping[ViewPair, TwoViewGeometry],
        global_rotations: GlobalRotationMap,
    ) -> bool:
        """
        Refine global_rotations in place

        Returns:
            False if the L1 solver could not be built or a solve failed
        """
        if not view_pairs or not global_rotations:
            self.logger.error("L1 rotation estimation needs view pairs and initial rotations")
            return False

        if not self.view_id_to_index:
            self.view_id_to_index = view_id_to_ascent_index(global_rotations)

        timer = Timer().start()
        sparse_matrix = setup_linear_system(view_pairs, len(global_rotations), self.view_id_to_index)
        try:
            l1_solver = L1Solver(self.options.l1_solver, sparse_matrix)
        except CholeskyFactorizationError as e:
            self.logger.error(f"Could not set up the L1 solver: {e}")
            return False

        self.num_iterations = 0
        for i in range(self.options.max_num_l1_iterations):
            residuals = compute_relative_residuals(view_pairs, global_rotations)
            step = l1_solver.solve(residuals)
            if step is None:
                self.logger.error("L1 rotation refinement failed")
                return False

            apply_tangent_space_step(global_rotations, step, self.view_id_to_index)
            avg_step_size = compute_average_step_size(step)
            self.num_iterations = i + 1
            self.logger.debug(
                f"L1 iteration {i}: ADMM iterations {l1_solver.summary.num_iterations}, "
                f"average step {avg_step_size:.6e}"
            )
            if avg_step_size < self.options.step_convergence_threshold:
                break

        timer.pause()
        self.logger.info(
            f"L1 refinement finished after {self.num_iterations} iterations "
            f"({timer.elapsed_ms():.2f} ms)"
        )
        return True
