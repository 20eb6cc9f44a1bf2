"""
Shared data types for the rotation averaging stack

- ViewId / ViewPair: node and edge keys of the view graph
- TwoViewGeometry: pairwise relative rotation measurement
- GlobalRotationMap: per-view axis-angle global rotations
"""

from dataclasses import dataclass, field
from typing import Dict, Tuple

import numpy as np

ViewId = int
ViewPair = Tuple[int, int]
GlobalRotationMap = Dict[int, np.ndarray]

# Index of the view held constant during tangent-space refinement
# (the view with ascent index 0 is mapped to -1).
CONSTANT_ROTATION_INDEX = -1


def make_view_pair(view_id1: int, view_id2: int) -> ViewPair:
    """Build the canonical (smaller, larger) key of an edge"""
    if view_id1 == view_id2:
        raise ValueError(f"A view pair needs two distinct views, got ({view_id1}, {view_id2})")
    if view_id1 < view_id2:
        return (view_id1, view_id2)
    return (view_id2, view_id1)


@dataclass
class TwoViewGeometry:
    """
    Relative geometry between two views

    The first view is assumed to sit at the origin with identity rotation, so
    rotation_2 is the axis-angle rotation of the second view with respect to
    the first: R_12 = R_2 * R_1^T for world-to-camera global rotations.
    """

    rotation_2: np.ndarray = field(default_factory=lambda: np.zeros(3))
    translation_2: np.ndarray = field(default_factory=lambda: np.zeros(3))

    # Number of verified correspondences (or any positive confidence)
    visibility_score: int = 1

    def __post_init__(self):
        self.rotation_2 = np.asarray(self.rotation_2, dtype=np.float64).reshape(3)
        self.translation_2 = np.asarray(self.translation_2, dtype=np.float64).reshape(3)
        if self.visibility_score < 1:
            raise ValueError(f"visibility_score must be >= 1, got {self.visibility_score}")
