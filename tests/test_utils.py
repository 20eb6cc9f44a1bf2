"""
Unit tests for rotation, random and synthetic data utilities
"""

import math
import pytest
import numpy as np
from pathlib import Path
from scipy.spatial.transform import Rotation
import sys

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from rotavg.utils.random import RandomNumberGenerator
from rotavg.utils.rotation import (
    align_global_rotations,
    angular_distance,
    chordal_mean,
    multiply_rotations,
    project_to_rotation_matrix,
    project_to_stiefel,
    relative_rotation_from_globals,
    rotation_errors,
)
from rotavg.utils.synthetic import generate_synthetic_view_graph, relative_measurement
from rotavg.utils.timer import Timer


class TestRandomNumberGenerator:
    """Test seeded random generation"""

    def test_repeatability(self):
        """Equal seeds give equal sequences"""
        rng1, rng2, rng3 = RandomNumberGenerator(0), RandomNumberGenerator(1), RandomNumberGenerator(0)
        numbers1 = [rng1.random_integer(0, 10000) for _ in range(100)]
        numbers2 = [rng2.random_integer(0, 10000) for _ in range(100)]
        numbers3 = [rng3.random_integer(0, 10000) for _ in range(100)]
        assert numbers1 == numbers3
        assert numbers1 != numbers2

    def test_ranges(self):
        rng = RandomNumberGenerator(0)
        for _ in range(1000):
            assert -100 <= rng.random_integer(-100, 100) <= 100
            assert -100.0 <= rng.random_real(-100.0, 100.0) <= 100.0

    def test_gaussian(self):
        rng = RandomNumberGenerator(0)
        values = np.array([rng.random_gaussian(1.0, 1.0) for _ in range(100000)])
        assert abs(values.mean() - 1.0) < 1e-2
        assert abs(values.std() - 1.0) < 1e-2

    def test_shuffle_none(self):
        numbers = [1, 2, 3, 4, 5]
        RandomNumberGenerator(0).shuffle(0, numbers)
        assert numbers == [1, 2, 3, 4, 5]

    def test_shuffle_all(self):
        numbers = list(range(1000))
        shuffled = list(numbers)
        RandomNumberGenerator(0).shuffle(1000, shuffled)
        assert sorted(shuffled) == numbers
        assert shuffled != numbers

    def test_shuffle_too_many(self):
        with pytest.raises(ValueError):
            RandomNumberGenerator(0).shuffle(4, [1, 2, 3])

    def test_random_rotation_bounded(self):
        rng = RandomNumberGenerator(0)
        max_angle = math.radians(10.0)
        for _ in range(100):
            assert np.linalg.norm(rng.random_rotation(max_angle)) <= max_angle + 1e-12


class TestRotationUtils:
    """Test axis-angle helpers"""

    def test_multiply_rotations(self):
        a = np.array([0.1, 0.2, 0.3])
        b = np.array([-0.3, 0.1, 0.2])
        expected = (Rotation.from_rotvec(a) * Rotation.from_rotvec(b)).as_rotvec()
        np.testing.assert_allclose(multiply_rotations(a, b), expected)

    def test_relative_rotation(self):
        """R_12 * R_1 = R_2"""
        r1 = np.array([0.3, -0.1, 0.2])
        r2 = np.array([-0.5, 0.4, 0.1])
        r12 = relative_rotation_from_globals(r1, r2)
        np.testing.assert_allclose(multiply_rotations(r12, r1), r2, atol=1e-12)
        np.testing.assert_allclose(relative_measurement(r1, r2), r12, atol=1e-12)

    def test_project_to_rotation_matrix(self):
        R = Rotation.from_rotvec([0.2, 0.1, -0.4]).as_matrix()
        np.testing.assert_allclose(project_to_rotation_matrix(2.0 * R), R, atol=1e-12)

        reflected = project_to_rotation_matrix(-np.eye(3))
        assert np.linalg.det(reflected) == pytest.approx(1.0)

    def test_project_to_stiefel(self):
        rng = np.random.default_rng(0)
        Q = project_to_stiefel(rng.normal(size=(5, 3)))
        np.testing.assert_allclose(Q.T @ Q, np.eye(3), atol=1e-12)

    def test_chordal_mean(self):
        R = Rotation.from_rotvec([0.1, 0.2, 0.3]).as_matrix()
        np.testing.assert_allclose(chordal_mean([R, R, R]), R, atol=1e-12)

    def test_angular_distance(self):
        assert angular_distance(np.zeros(3), np.array([0.0, 0.0, 0.5])) == pytest.approx(0.5)

    def test_alignment_removes_gauge(self):
        """Rotations differing by a right gauge have zero aligned error"""
        rng = RandomNumberGenerator(0)
        reference = {k: rng.random_rotation() for k in range(6)}
        gauge = Rotation.from_rotvec([0.4, -1.0, 0.7])
        estimated = {
            k: (Rotation.from_rotvec(aa) * gauge).as_rotvec() for k, aa in reference.items()
        }

        aligned = align_global_rotations(estimated, reference)
        for k in reference:
            assert angular_distance(aligned[k], reference[k]) < 1e-9
        assert max(rotation_errors(estimated, reference).values()) < 1e-9
        assert max(rotation_errors(estimated, reference, align=False).values()) > 0.1


class TestSyntheticViewGraph:
    """Test synthetic data generation"""

    def test_chain_connectivity(self):
        graph = generate_synthetic_view_graph(10, RandomNumberGenerator(0), edge_probability=0.0)
        assert graph.num_edges == 9
        assert all(b == a + 1 for a, b in graph.view_pairs)

    def test_noise_free_measurements(self):
        graph = generate_synthetic_view_graph(6, RandomNumberGenerator(0))
        for (a, b), geometry in graph.view_pairs.items():
            expected = relative_rotation_from_globals(graph.ground_truth[a], graph.ground_truth[b])
            assert angular_distance(geometry.rotation_2, expected) < 1e-12
            assert 50 <= geometry.visibility_score <= 500

    def test_outliers(self):
        graph = generate_synthetic_view_graph(
            20, RandomNumberGenerator(0), edge_probability=0.5, outlier_ratio=0.2
        )
        assert len(graph.outlier_pairs) == int(round(0.2 * graph.num_edges))
        assert set(graph.outlier_pairs) <= set(graph.view_pairs)

    def test_too_few_views(self):
        with pytest.raises(ValueError):
            generate_synthetic_view_graph(1, RandomNumberGenerator(0))


class TestTimer:
    def test_elapsed(self):
        timer = Timer().start()
        timer.pause()
        assert timer.elapsed_seconds() >= 0.0
        assert timer.elapsed_ms() == pytest.approx(1000.0 * timer.elapsed_seconds())
