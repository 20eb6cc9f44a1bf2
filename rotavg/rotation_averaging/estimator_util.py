"""
Helpers shared by the tangent-space rotation estimators
"""

from typing import Dict, Mapping

import numpy as np
import scipy.sparse as sp
from scipy.spatial.transform import Rotation

from ..core.types import CONSTANT_ROTATION_INDEX, GlobalRotationMap, TwoViewGeometry, ViewPair
from ..utils.rotation import multiply_rotations


def view_id_to_ascent_index(global_rotations: Mapping[int, np.ndarray]) -> Dict[int, int]:
    """Map view ids to 0..N-1 in ascending id order"""
    return {view_id: index for index, view_id in enumerate(sorted(global_rotations))}


def tangent_space_column(view_id: int, view_id_to_index: Mapping[int, int]) -> int:
    """
    Block column of a view in the tangent-space system

    The view with index 0 is held constant and has no columns; it returns
    CONSTANT_ROTATION_INDEX.
    """
    return view_id_to_index[view_id] - 1


def setup_linear_system(
    view_pairs: Mapping[ViewPair, TwoViewGeometry],
    num_views: int,
    view_id_to_index: Mapping[int, int],
) -> sp.csr_matrix:
    """
    Jacobian of the relative rotation residuals w.r.t. the tangent-space step

    Row block k belongs to the k-th pair in iteration order of view_pairs and
    holds -I in the columns of the first view and +I in the columns of the
    second one.

    Returns:
        Sparse matrix of shape (3 * num_pairs, 3 * (num_views - 1))
    """
    rows, cols, values = [], [], []
    for k, (view_id1, view_id2) in enumerate(view_pairs):
        for view_id, sign in ((view_id1, -1.0), (view_id2, 1.0)):
            column = tangent_space_column(view_id, view_id_to_index)
            if column == CONSTANT_ROTATION_INDEX:
                continue
            for axis in range(3):
                rows.append(3 * k + axis)
                cols.append(3 * column + axis)
                values.append(sign)

    shape = (3 * len(view_pairs), 3 * (num_views - 1))
    return sp.csr_matrix((values, (rows, cols)), shape=shape)


def compute_relative_residuals(
    view_pairs: Mapping[ViewPair, TwoViewGeometry],
    global_rotations: GlobalRotationMap,
) -> np.ndarray:
    """
    Stacked axis-angle residuals log(R2^T * R12 * R1), one 3-vector per pair

    Raises:
        KeyError: If a pair references a view without a global rotation
    """
    if not view_pairs:
        return np.zeros(0)
    first = np.array([global_rotations[pair[0]] for pair in view_pairs])
    second = np.array([global_rotations[pair[1]] for pair in view_pairs])
    relative = np.array([geometry.rotation_2 for geometry in view_pairs.values()])

    error = (
        Rotation.from_rotvec(second).inv()
        * Rotation.from_rotvec(relative)
        * Rotation.from_rotvec(first)
    )
    return error.as_rotvec().reshape(-1)


def compute_average_step_size(tangent_space_step: np.ndarray) -> float:
    """Mean norm of the per-view 3-vectors of a tangent-space step"""
    steps = np.asarray(tangent_space_step).reshape(-1, 3)
    if steps.shape[0] == 0:
        return 0.0
    return float(np.linalg.norm(steps, axis=1).mean())


def apply_tangent_space_step(
    global_rotations: GlobalRotationMap,
    tangent_space_step: np.ndarray,
    view_id_to_index: Mapping[int, int],
) -> None:
    """R_i <- R_i * exp(step_i) for every view except the constant one"""
    for view_id, rotation in global_rotations.items():
        column = tangent_space_column(view_id, view_id_to_index)
        if column == CONSTANT_ROTATION_INDEX:
            continue
        global_rotations[view_id] = multiply_rotations(
            rotation, tangent_space_step[3 * column:3 * column + 3]
        )
