"""
Seedable random number generation

Every component that needs randomness receives an explicit generator
instance instead of touching process-wide state.
"""

from typing import List, MutableSequence, Optional

import numpy as np
from scipy.spatial.transform import Rotation


class RandomNumberGenerator:
    """Wrapper around numpy's Generator with the helpers used by the solvers"""

    def __init__(self, seed: Optional[int] = None):
        """
        Args:
            seed: Seed for repeatable sequences, None draws fresh entropy
        """
        self.seed = seed
        self._generator = np.random.default_rng(seed)

    @property
    def generator(self) -> np.random.Generator:
        return self._generator

    def random_integer(self, low: int, high: int) -> int:
        """Uniform integer in [low, high]"""
        return int(self._generator.integers(low, high, endpoint=True))

    def random_real(self, low: float, high: float) -> float:
        """Uniform real in [low, high)"""
        return float(self._generator.uniform(low, high))

    def random_gaussian(self, mean: float, std_dev: float) -> float:
        return float(self._generator.normal(mean, std_dev))

    def random_vector(self, size: int, low: float = -1.0, high: float = 1.0) -> np.ndarray:
        return self._generator.uniform(low, high, size=size)

    def shuffle(self, num_to_shuffle: int, values: MutableSequence) -> None:
        """
        Shuffle the first num_to_shuffle elements of values in place

        Partial Fisher-Yates: the leading elements become a uniform random
        sample of the whole sequence.
        """
        if num_to_shuffle > len(values):
            raise ValueError(
                f"Cannot shuffle {num_to_shuffle} elements of a sequence of length {len(values)}"
            )
        last = len(values) - 1
        for i in range(num_to_shuffle):
            j = self.random_integer(i, last)
            values[i], values[j] = values[j], values[i]

    def permutation(self, n: int) -> List[int]:
        return [int(v) for v in self._generator.permutation(n)]

    def random_rotation(self, max_angle: Optional[float] = None) -> np.ndarray:
        """
        Random axis-angle rotation

        Args:
            max_angle: If given, the angle is uniform in [0, max_angle] around a
                uniform axis; otherwise the rotation is uniform on SO(3)

        Returns:
            Axis-angle 3-vector
        """
        if max_angle is None:
            # Normalized Gaussian quaternions are uniform on SO(3)
            quat = self._generator.normal(size=4)
            return Rotation.from_quat(quat / np.linalg.norm(quat)).as_rotvec()

        axis = self._generator.normal(size=3)
        axis /= np.linalg.norm(axis)
        return axis * self.random_real(0.0, max_angle)
