"""
Hybrid rotation averaging pipeline

Global initialization through the Lagrange dual relaxation followed by
robust local refinement:

- Keep the largest connected component of the view graph
- Semidefinite relaxation (LagrangeDualRotationEstimator)
- Optional spectral error bound
- Optional tangent-space L1 stage (L1RotationGlobalEstimator)
- IRLS refinement (IRLSRotationLocalRefiner)
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional

import numpy as np

from ..core.config import RotationAveragingConfig
from ..core.types import GlobalRotationMap, TwoViewGeometry, ViewPair
from ..graph.union_find import DisjointSetForest
from ..solver.sdp_solver import SDPSummary
from ..utils.timer import Timer
from .estimator_util import view_id_to_ascent_index
from .irls_rotation_local_refiner import IRLSRotationLocalRefiner, IRLSSummary
from .l1_rotation_global_estimator import L1RotationGlobalEstimator
from .lagrange_dual_rotation_estimator import LagrangeDualRotationEstimator


@dataclass
class RotationAveragingSummary:
    """Diagnostics of one rotation averaging run"""

    num_views: int = 0
    num_edges: int = 0
    sdp_summary: Optional[SDPSummary] = None
    l1_iterations: int = 0
    irls_summary: Optional[IRLSSummary] = None
    error_bound: Optional[float] = None
    total_time_ms: float = 0.0
    dropped_views: List[int] = field(default_factory=list)


def validate_view_pairs(view_pairs: Mapping[ViewPair, TwoViewGeometry]) -> None:
    """Raise ValueError for an empty or non-canonical set of view pairs"""
    if not view_pairs:
        raise ValueError("view_pairs must not be empty")
    for view_id1, view_id2 in view_pairs:
        if view_id1 >= view_id2:
            raise ValueError(
                f"View pairs must satisfy first < second, got ({view_id1}, {view_id2})"
            )


def largest_connected_component(
    view_pairs: Mapping[ViewPair, TwoViewGeometry],
    view_ids: Optional[List[int]] = None,
) -> List[int]:
    """Sorted view ids of the largest connected component of the view graph"""
    forest = DisjointSetForest()
    nodes = set(view_ids or [])
    for pair in view_pairs:
        nodes.update(pair)
    forest.init_with_nodes(sorted(nodes))
    for view_id1, view_id2 in view_pairs:
        forest.union(view_id1, view_id2)
    return sorted(forest.largest_component())


class HybridRotationEstimator:
    """
    Relaxation + robust refinement rotation averaging

    Example:
        >>> estimator = HybridRotationEstimator(RotationAveragingConfig())
        >>> rotations = {}
        >>> if estimator.estimate_rotations(view_pairs, rotations):
        ...     print(estimator.summary.irls_summary.num_iterations)
    """

    def __init__(self, config: Optional[RotationAveragingConfig] = None):
        """
        Args:
            config: RotationAveragingConfig or None (uses defaults)
        """
        self.config = config or RotationAveragingConfig()
        self.logger = logging.getLogger(__name__)
        self.summary = RotationAveragingSummary()
        self.rotations: GlobalRotationMap = {}

    def estimate_rotations(
        self,
        view_pairs: Mapping[ViewPair, TwoViewGeometry],
        global_rotations: Optional[GlobalRotationMap] = None,
    ) -> bool:
        """
        Estimate global rotations for the largest connected component

        Args:
            view_pairs: Relative rotations keyed by (first, second), first < second
            global_rotations: Rotation map updated in place. Views of the
                largest component that are missing are added; views outside
                it are left untouched and reported in summary.dropped_views.
                If None, a new map is created (see self.rotations).

        Returns:
            True if every stage succeeded
        """
        validate_view_pairs(view_pairs)
        if global_rotations is None:
            global_rotations = {}
        self.rotations = global_rotations

        timer = Timer().start()
        self.summary = RotationAveragingSummary()

        # Step 1: Largest connected component
        component = largest_connected_component(view_pairs, list(global_rotations))
        component_set = set(component)
        all_views = set(global_rotations)
        for pair in view_pairs:
            all_views.update(pair)
        self.summary.dropped_views = sorted(all_views - component_set)
        if self.summary.dropped_views:
            self.logger.warning(
                f"Dropping {len(self.summary.dropped_views)} views outside the largest "
                f"connected component"
            )

        pairs = {
            pair: geometry
            for pair, geometry in view_pairs.items()
            if pair[0] in component_set
        }
        rotations = {
            view_id: np.asarray(global_rotations.get(view_id, np.zeros(3)), dtype=np.float64)
            for view_id in component
        }
        self.summary.num_views = len(rotations)
        self.summary.num_edges = len(pairs)
        self.logger.info(
            f"Rotation averaging on {self.summary.num_views} views and "
            f"{self.summary.num_edges} relative rotations"
        )

        view_id_to_index = view_id_to_ascent_index(rotations)

        # Step 2: Global initialization from the relaxation
        sdp_estimator = LagrangeDualRotationEstimator(len(rotations), options=self.config.sdp)
        sdp_estimator.set_view_id_to_index(view_id_to_index)
        if not sdp_estimator.estimate_rotations(pairs, rotations):
            self.logger.error("Lagrange dual rotation estimation failed")
            return False
        self.summary.sdp_summary = sdp_estimator.get_ra_summary()

        if self.config.compute_error_bound:
            self.summary.error_bound = sdp_estimator.compute_error_bound(pairs)
            self.logger.info(f"Error bound: {np.degrees(self.summary.error_bound):.3f} deg")

        # Step 3: Optional L1 refinement
        if self.config.use_l1_refinement:
            l1_estimator = L1RotationGlobalEstimator(self.config.l1)
            l1_estimator.set_view_id_to_index(view_id_to_index)
            if not l1_estimator.estimate_rotations(pairs, rotations):
                self.logger.error("L1 rotation refinement failed")
                return False
            self.summary.l1_iterations = l1_estimator.num_iterations

        # Step 4: IRLS refinement
        irls_refiner = IRLSRotationLocalRefiner(len(rotations), len(pairs), self.config.irls)
        irls_refiner.set_view_id_to_index(view_id_to_index)
        if not irls_refiner.solve_irls(pairs, rotations):
            self.logger.error("IRLS rotation refinement failed")
            return False
        self.summary.irls_summary = irls_refiner.summary

        global_rotations.update(rotations)
        timer.pause()
        self.summary.total_time_ms = timer.elapsed_ms()
        self.logger.info(f"Rotation averaging complete in {self.summary.total_time_ms:.2f} ms")
        return True

    def get_rotations(self) -> Dict[int, np.ndarray]:
        return dict(self.rotations)
