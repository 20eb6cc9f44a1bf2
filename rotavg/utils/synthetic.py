"""
Synthetic view graphs with known ground truth

Used by the tests and by the synthetic CLI to exercise the solvers on
controlled noise and outlier levels.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, List

import numpy as np
from scipy.spatial.transform import Rotation

from ..core.types import GlobalRotationMap, TwoViewGeometry, ViewPair
from .random import RandomNumberGenerator

logger = logging.getLogger(__name__)


@dataclass
class SyntheticViewGraph:
    """Ground-truth rotations and the measurements generated from them"""

    ground_truth: GlobalRotationMap
    view_pairs: Dict[ViewPair, TwoViewGeometry]
    outlier_pairs: List[ViewPair] = field(default_factory=list)

    @property
    def num_views(self) -> int:
        return len(self.ground_truth)

    @property
    def num_edges(self) -> int:
        return len(self.view_pairs)

    def identity_rotations(self) -> GlobalRotationMap:
        """Initial rotation map filled with identities"""
        return {view_id: np.zeros(3) for view_id in self.ground_truth}


def relative_measurement(rotation1: np.ndarray, rotation2: np.ndarray) -> np.ndarray:
    """Axis-angle of R_12 = R_2 * R_1^T"""
    return (Rotation.from_rotvec(rotation2) * Rotation.from_rotvec(rotation1).inv()).as_rotvec()


def generate_synthetic_view_graph(
    num_views: int,
    rng: RandomNumberGenerator,
    edge_probability: float = 0.5,
    noise_deg: float = 0.0,
    outlier_ratio: float = 0.0,
    view_id_offset: int = 0,
) -> SyntheticViewGraph:
    """
    Generate a connected view graph with random global rotations

    A chain over all views guarantees connectivity; every other pair is added
    with edge_probability. Measurements get a random perturbation of up to
    noise_deg degrees, and a fraction outlier_ratio of them is replaced by a
    uniformly random rotation.

    Args:
        num_views: Number of views
        rng: Explicit random generator
        edge_probability: Probability of each non-chain edge
        noise_deg: Maximum angle of the noise rotation applied to measurements
        outlier_ratio: Fraction of edges replaced by random rotations
        view_id_offset: First view id (ids are consecutive)

    Returns:
        SyntheticViewGraph
    """
    if num_views < 2:
        raise ValueError(f"num_views must be >= 2, got {num_views}")

    view_ids = [view_id_offset + k for k in range(num_views)]
    ground_truth = {view_id: rng.random_rotation() for view_id in view_ids}

    pairs: List[ViewPair] = []
    for a in range(num_views):
        for b in range(a + 1, num_views):
            if b == a + 1 or rng.random_real(0.0, 1.0) < edge_probability:
                pairs.append((view_ids[a], view_ids[b]))

    num_outliers = int(round(outlier_ratio * len(pairs)))
    shuffled = list(pairs)
    rng.shuffle(num_outliers, shuffled)
    outlier_pairs = sorted(shuffled[:num_outliers])
    outlier_set = set(outlier_pairs)

    max_noise = math.radians(noise_deg)
    view_pairs: Dict[ViewPair, TwoViewGeometry] = {}
    for pair in pairs:
        if pair in outlier_set:
            rotation = rng.random_rotation()
        else:
            rotation = relative_measurement(ground_truth[pair[0]], ground_truth[pair[1]])
            if max_noise > 0.0:
                noise = rng.random_rotation(max_noise)
                rotation = (Rotation.from_rotvec(noise) * Rotation.from_rotvec(rotation)).as_rotvec()
        view_pairs[pair] = TwoViewGeometry(
            rotation_2=rotation,
            visibility_score=rng.random_integer(50, 500),
        )

    logger.debug(
        f"Synthetic view graph: {num_views} views, {len(view_pairs)} edges, "
        f"{num_outliers} outliers, noise {noise_deg} deg"
    )
    return SyntheticViewGraph(ground_truth, view_pairs, outlier_pairs)


def perturb_rotations(
    rotations: GlobalRotationMap,
    rng: RandomNumberGenerator,
    max_angle_deg: float,
) -> GlobalRotationMap:
    """Apply an independent random rotation of bounded angle to every view"""
    max_angle = math.radians(max_angle_deg)
    return {
        view_id: (Rotation.from_rotvec(aa) * Rotation.from_rotvec(rng.random_rotation(max_angle))).as_rotvec()
        for view_id, aa in rotations.items()
    }
