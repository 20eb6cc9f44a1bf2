"""
Axis-angle rotation helpers

Thin wrappers over scipy.spatial.transform.Rotation so that the solvers can
work with 3-vectors (axis * angle) while composing on SO(3).
"""

from typing import Dict, Iterable, Optional

import numpy as np
from scipy.spatial.transform import Rotation


def angle_axis_to_rotation_matrix(angle_axis: np.ndarray) -> np.ndarray:
    """Convert an axis-angle 3-vector (or an (N, 3) stack) to rotation matrices"""
    return Rotation.from_rotvec(np.asarray(angle_axis, dtype=np.float64)).as_matrix()


def rotation_matrix_to_angle_axis(rotation_matrix: np.ndarray) -> np.ndarray:
    """Convert a rotation matrix (or an (N, 3, 3) stack) to axis-angle"""
    return Rotation.from_matrix(np.asarray(rotation_matrix, dtype=np.float64)).as_rotvec()


def multiply_rotations(rotation1: np.ndarray, rotation2: np.ndarray) -> np.ndarray:
    """Axis-angle of R1 * R2"""
    composed = Rotation.from_rotvec(rotation1) * Rotation.from_rotvec(rotation2)
    return composed.as_rotvec()


def relative_rotation_from_globals(rotation1: np.ndarray, rotation2: np.ndarray) -> np.ndarray:
    """Axis-angle of R_12 = R_2 * R_1^T"""
    relative = Rotation.from_rotvec(rotation2) * Rotation.from_rotvec(rotation1).inv()
    return relative.as_rotvec()


def project_to_rotation_matrix(matrix: np.ndarray) -> np.ndarray:
    """
    Closest rotation matrix in the Frobenius sense

    Matrices with negative determinant are mapped to the closest proper
    rotation by flipping the singular direction of smallest magnitude.
    """
    U, _, Vt = np.linalg.svd(matrix)
    R = U @ Vt
    if np.linalg.det(R) < 0:
        U[:, -1] *= -1
        R = U @ Vt
    return R


def project_to_stiefel(matrix: np.ndarray) -> np.ndarray:
    """Orthonormal-column factor of the polar decomposition (r x d, r >= d)"""
    U, _, Vt = np.linalg.svd(matrix, full_matrices=False)
    return U @ Vt


def chordal_mean(rotation_matrices: Iterable[np.ndarray],
                 weights: Optional[Iterable[float]] = None) -> np.ndarray:
    """Rotation minimizing the (weighted) sum of squared chordal distances"""
    matrices = np.asarray(list(rotation_matrices), dtype=np.float64)
    if weights is None:
        total = matrices.sum(axis=0)
    else:
        w = np.asarray(list(weights), dtype=np.float64)
        total = np.einsum("n,nij->ij", w, matrices)
    return project_to_rotation_matrix(total)


def angular_distance(rotation1: np.ndarray, rotation2: np.ndarray) -> float:
    """Angle (radians) of R_1^T * R_2 for axis-angle inputs"""
    difference = Rotation.from_rotvec(rotation1).inv() * Rotation.from_rotvec(rotation2)
    return float(np.linalg.norm(difference.as_rotvec()))


def align_global_rotations(
    estimated: Dict[int, np.ndarray],
    reference: Dict[int, np.ndarray],
) -> Dict[int, np.ndarray]:
    """
    Remove the gauge between two sets of global rotations

    Finds the rotation G minimizing sum ||R_i^ref - R_i^est G||_F over the
    common views and returns the estimated rotations right-multiplied by G.
    """
    common = sorted(set(estimated) & set(reference))
    if not common:
        return {}

    est = Rotation.from_rotvec(np.array([estimated[v] for v in common])).as_matrix()
    ref = Rotation.from_rotvec(np.array([reference[v] for v in common])).as_matrix()

    # R_est^T R_ref for every view, averaged on SO(3)
    G = chordal_mean(np.einsum("nji,njk->nik", est, ref))
    aligned = np.einsum("nij,jk->nik", est, G)
    aligned_aa = rotation_matrix_to_angle_axis(aligned)
    return {view_id: aligned_aa[k] for k, view_id in enumerate(common)}


def rotation_errors(
    estimated: Dict[int, np.ndarray],
    reference: Dict[int, np.ndarray],
    align: bool = True,
) -> Dict[int, float]:
    """Per-view angular error (radians), optionally after gauge alignment"""
    if align:
        estimated = align_global_rotations(estimated, reference)
    return {
        view_id: angular_distance(estimated[view_id], reference[view_id])
        for view_id in estimated
        if view_id in reference
    }
