"""
Math, random and timing utilities
"""

from .random import RandomNumberGenerator
from .rotation import (
    align_global_rotations,
    angle_axis_to_rotation_matrix,
    angular_distance,
    chordal_mean,
    multiply_rotations,
    project_to_rotation_matrix,
    relative_rotation_from_globals,
    rotation_errors,
    rotation_matrix_to_angle_axis,
)
from .timer import Timer

__all__ = [
    "RandomNumberGenerator",
    "Timer",
    "align_global_rotations",
    "angle_axis_to_rotation_matrix",
    "angular_distance",
    "chordal_mean",
    "multiply_rotations",
    "project_to_rotation_matrix",
    "relative_rotation_from_globals",
    "rotation_errors",
    "rotation_matrix_to_angle_axis",
]
