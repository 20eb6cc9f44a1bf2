"""
Unit tests for the Lagrange dual global rotation estimator
"""

import math
import pytest
import numpy as np
from pathlib import Path
from scipy.spatial.transform import Rotation
import sys

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from rotavg.core.config import SDPSolverOptions, SDPSolverType
from rotavg.core.types import TwoViewGeometry
from rotavg.rotation_averaging.lagrange_dual_rotation_estimator import LagrangeDualRotationEstimator
from rotavg.utils.random import RandomNumberGenerator
from rotavg.utils.rotation import angular_distance, relative_rotation_from_globals, rotation_errors
from rotavg.utils.synthetic import generate_synthetic_view_graph


def complete_graph(num_views, seed=0):
    return generate_synthetic_view_graph(num_views, RandomNumberGenerator(seed), edge_probability=1.0)


class TestEstimateRotations:
    """Test global rotation recovery"""

    @pytest.mark.parametrize("solver_type", list(SDPSolverType))
    def test_noise_free_recovery(self, solver_type):
        """Ground truth is recovered up to the gauge to near machine precision"""
        graph = generate_synthetic_view_graph(10, RandomNumberGenerator(1), edge_probability=0.5)
        rotations = graph.identity_rotations()

        estimator = LagrangeDualRotationEstimator(10, options=SDPSolverOptions(solver_type=solver_type))
        assert estimator.estimate_rotations(graph.view_pairs, rotations)

        errors = rotation_errors(rotations, graph.ground_truth)
        assert max(errors.values()) < 1e-9

    def test_consistent_with_measurements(self):
        """Relative rotations of the estimate match noise-free measurements without alignment"""
        graph = complete_graph(8, seed=2)
        rotations = graph.identity_rotations()
        estimator = LagrangeDualRotationEstimator(8)
        assert estimator.estimate_rotations(graph.view_pairs, rotations)

        for (view_id1, view_id2), geometry in graph.view_pairs.items():
            relative = relative_rotation_from_globals(rotations[view_id1], rotations[view_id2])
            assert angular_distance(relative, geometry.rotation_2) < 1e-9

    def test_global_rotation_of_ground_truth(self):
        """Rotating every ground-truth rotation by the same G does not matter"""
        graph = generate_synthetic_view_graph(10, RandomNumberGenerator(6), edge_probability=0.5)
        G = Rotation.from_rotvec([0.3, -1.2, 2.0])
        rotated_truth = {
            view_id: (G * Rotation.from_rotvec(aa)).as_rotvec()
            for view_id, aa in graph.ground_truth.items()
        }
        rotated_pairs = {
            (a, b): TwoViewGeometry(
                rotation_2=relative_rotation_from_globals(rotated_truth[a], rotated_truth[b])
            )
            for a, b in graph.view_pairs
        }

        for pairs, truth in ((graph.view_pairs, graph.ground_truth), (rotated_pairs, rotated_truth)):
            rotations = {view_id: np.zeros(3) for view_id in truth}
            assert LagrangeDualRotationEstimator(10).estimate_rotations(pairs, rotations)
            assert max(rotation_errors(rotations, truth).values()) < 1e-9

    def test_noisy_recovery(self):
        """Small measurement noise gives small errors"""
        graph = generate_synthetic_view_graph(
            20, RandomNumberGenerator(3), edge_probability=0.5, noise_deg=3.0
        )
        rotations = graph.identity_rotations()
        estimator = LagrangeDualRotationEstimator(20)
        assert estimator.estimate_rotations(graph.view_pairs, rotations)

        errors = np.degrees(list(rotation_errors(rotations, graph.ground_truth).values()))
        assert np.mean(errors) < 3.0

    def test_non_consecutive_view_ids(self):
        """View ids are mapped to dense indices in ascending order"""
        graph = generate_synthetic_view_graph(6, RandomNumberGenerator(4), view_id_offset=100)
        rotations = graph.identity_rotations()
        estimator = LagrangeDualRotationEstimator(6)
        assert estimator.estimate_rotations(graph.view_pairs, rotations)

        assert estimator.view_id_to_index == {100 + k: k for k in range(6)}
        assert max(rotation_errors(rotations, graph.ground_truth).values()) < 1e-9

    def test_output_is_proper_rotation(self):
        """Every estimate is an axis-angle vector with angle <= pi"""
        graph = generate_synthetic_view_graph(
            12, RandomNumberGenerator(5), noise_deg=10.0, outlier_ratio=0.2
        )
        rotations = graph.identity_rotations()
        assert LagrangeDualRotationEstimator(12).estimate_rotations(graph.view_pairs, rotations)

        for angle_axis in rotations.values():
            assert angle_axis.shape == (3,)
            assert np.linalg.norm(angle_axis) <= math.pi + 1e-9

    def test_empty_view_pairs(self):
        """No view pairs: failure, nothing written"""
        rotations = {0: np.zeros(3), 1: np.zeros(3)}
        assert not LagrangeDualRotationEstimator(2).estimate_rotations({}, rotations)

    def test_zero_views(self):
        pairs = {(0, 1): TwoViewGeometry(rotation_2=np.zeros(3))}
        assert not LagrangeDualRotationEstimator(0).estimate_rotations(pairs, {})

    def test_empty_rotation_map(self):
        """Views declared but no target rotations: failure instead of a lookup error"""
        pairs = {(0, 1): TwoViewGeometry(rotation_2=np.zeros(3))}
        rotations = {}
        assert not LagrangeDualRotationEstimator(2).estimate_rotations(pairs, rotations)
        assert rotations == {}

    def test_unsupported_strategy(self):
        """Unsupported strategy: failure and rotations untouched"""
        graph = complete_graph(4)
        rotations = graph.identity_rotations()
        options = SDPSolverOptions()
        options.solver_type = "bogus"

        estimator = LagrangeDualRotationEstimator(4, options=options)
        assert not estimator.estimate_rotations(graph.view_pairs, rotations)
        assert all(np.allclose(aa, 0.0) for aa in rotations.values())

    def test_only_3d_supported(self):
        with pytest.raises(ValueError):
            LagrangeDualRotationEstimator(4, dim=2)

    def test_summary(self):
        graph = complete_graph(5)
        estimator = LagrangeDualRotationEstimator(5)
        estimator.estimate_rotations(graph.view_pairs, graph.identity_rotations())
        summary = estimator.get_ra_summary()
        assert summary.total_iterations_num >= 1
        assert summary.rank == 3


class TestFillInRelativeGraph:
    """Test the relative rotation block matrix"""

    def test_blocks_and_adjacency(self):
        graph = complete_graph(4)
        estimator = LagrangeDualRotationEstimator(4)
        estimator.set_view_id_to_index({k: k for k in range(4)})
        R, adjacent_edges = estimator.fill_in_relative_graph(graph.view_pairs)

        assert R.shape == (12, 12)
        np.testing.assert_allclose(R.toarray(), R.toarray().T)
        assert sorted(adjacent_edges[0]) == [1, 2, 3]

        R_01 = Rotation.from_rotvec(graph.view_pairs[(0, 1)].rotation_2).as_matrix()
        np.testing.assert_allclose(R[3:6, 0:3].toarray(), R_01)
        np.testing.assert_allclose(R[0:3, 3:6].toarray(), R_01.T)
        np.testing.assert_allclose(R[0:3, 0:3].toarray(), np.zeros((3, 3)))


class TestErrorBound:
    """Test the spectral error bound"""

    def test_complete_graph(self):
        """Complete graph: lambda2 = N, d_max = N - 1"""
        n = 10
        graph = complete_graph(n)
        estimator = LagrangeDualRotationEstimator(n)
        estimator.set_view_id_to_index({k: k for k in range(n)})
        bound = estimator.compute_error_bound(graph.view_pairs)

        expected = 2.0 * math.asin(math.sqrt(0.25 + n / (2.0 * (n - 1))) - 0.5)
        assert bound == pytest.approx(expected, rel=1e-9)
        assert estimator.get_error_bound() == bound

    def test_chain_smaller_than_complete(self):
        """Weaker connectivity gives a smaller bound"""
        n = 10
        chain = generate_synthetic_view_graph(n, RandomNumberGenerator(0), edge_probability=0.0)
        assert len(chain.view_pairs) == n - 1

        estimator = LagrangeDualRotationEstimator(n)
        estimator.set_view_id_to_index({k: k for k in range(n)})
        chain_bound = estimator.compute_error_bound(chain.view_pairs)
        complete_bound = estimator.compute_error_bound(complete_graph(n).view_pairs)

        assert 0.0 < chain_bound < complete_bound
