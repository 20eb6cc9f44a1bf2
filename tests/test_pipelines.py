"""
End-to-end tests of the hybrid and partitioned rotation averaging pipelines
"""

import pytest
import numpy as np
from pathlib import Path
import sys

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from rotavg.core.config import RotationAveragingConfig, SDPSolverType
from rotavg.core.types import TwoViewGeometry
from rotavg.rotation_averaging.hybrid_rotation_estimator import HybridRotationEstimator
from rotavg.rotation_averaging.partitioned_rotation_estimator import PartitionedRotationEstimator
from rotavg.utils.random import RandomNumberGenerator
from rotavg.utils.rotation import rotation_errors
from rotavg.utils.synthetic import generate_synthetic_view_graph


def errors_deg(rotations, ground_truth):
    return np.degrees(list(rotation_errors(rotations, ground_truth).values()))


class TestHybridRotationEstimator:
    """Test relaxation + refinement"""

    def test_noise_free(self):
        """Noise-free measurements are reproduced exactly"""
        graph = generate_synthetic_view_graph(15, RandomNumberGenerator(0), edge_probability=0.4)
        estimator = HybridRotationEstimator()
        rotations = {}

        assert estimator.estimate_rotations(graph.view_pairs, rotations)
        assert set(rotations) == set(graph.ground_truth)
        assert np.max(errors_deg(rotations, graph.ground_truth)) < 1e-2

        summary = estimator.summary
        assert summary.num_views == 15
        assert summary.num_edges == graph.num_edges
        assert summary.sdp_summary is not None
        assert summary.irls_summary is not None
        assert summary.dropped_views == []

    @pytest.mark.parametrize("solver_type", list(SDPSolverType))
    def test_noise_and_outliers(self, solver_type):
        """Noisy measurements with outliers give errors of a few degrees"""
        graph = generate_synthetic_view_graph(
            30, RandomNumberGenerator(1), edge_probability=0.4, noise_deg=2.0, outlier_ratio=0.1
        )
        config = RotationAveragingConfig()
        config.sdp.solver_type = solver_type
        estimator = HybridRotationEstimator(config)
        rotations = graph.identity_rotations()

        assert estimator.estimate_rotations(graph.view_pairs, rotations)
        errors = errors_deg(rotations, graph.ground_truth)
        assert np.median(errors) < 2.0

    def test_l1_stage_and_error_bound(self):
        graph = generate_synthetic_view_graph(
            20, RandomNumberGenerator(2), edge_probability=0.5, noise_deg=2.0, outlier_ratio=0.1
        )
        config = RotationAveragingConfig(use_l1_refinement=True, compute_error_bound=True)
        estimator = HybridRotationEstimator(config)
        rotations = graph.identity_rotations()

        assert estimator.estimate_rotations(graph.view_pairs, rotations)
        assert estimator.summary.l1_iterations >= 1
        assert estimator.summary.error_bound is not None
        assert estimator.summary.error_bound > 0.0
        assert np.median(errors_deg(rotations, graph.ground_truth)) < 2.0

    def test_keeps_largest_component(self):
        """Views outside the largest component are reported and left untouched"""
        graph = generate_synthetic_view_graph(8, RandomNumberGenerator(3))
        view_pairs = dict(graph.view_pairs)
        view_pairs[(100, 101)] = TwoViewGeometry(rotation_2=np.array([0.1, 0.0, 0.0]))

        rotations = graph.identity_rotations()
        rotations[100] = np.array([0.0, 0.5, 0.0])
        rotations[200] = np.array([0.0, 0.0, 0.5])

        estimator = HybridRotationEstimator()
        assert estimator.estimate_rotations(view_pairs, rotations)

        assert estimator.summary.dropped_views == [100, 101, 200]
        np.testing.assert_allclose(rotations[100], [0.0, 0.5, 0.0])
        np.testing.assert_allclose(rotations[200], [0.0, 0.0, 0.5])
        assert 101 not in rotations
        assert max(rotation_errors(
            {k: rotations[k] for k in graph.ground_truth}, graph.ground_truth
        ).values()) < 1e-3

    def test_invalid_pairs(self):
        estimator = HybridRotationEstimator()
        with pytest.raises(ValueError):
            estimator.estimate_rotations({})
        with pytest.raises(ValueError):
            estimator.estimate_rotations({(3, 1): TwoViewGeometry()})


class TestPartitionedRotationEstimator:
    """Test divide-and-conquer rotation averaging"""

    def test_noise_free_partitioned(self):
        """Clusters are aligned into one consistent solution"""
        graph = generate_synthetic_view_graph(40, RandomNumberGenerator(4), edge_probability=0.2)
        config = RotationAveragingConfig(max_views_per_partition=15)
        estimator = PartitionedRotationEstimator(config)
        rotations = graph.identity_rotations()

        assert estimator.estimate_rotations(graph.view_pairs, rotations)
        assert estimator.summary.num_parts == 3
        assert estimator.summary.num_clusters >= 3
        assert sum(estimator.summary.cluster_sizes) == 40
        assert estimator.summary.edge_cut > 0
        assert np.max(errors_deg(rotations, graph.ground_truth)) < 1e-2

    def test_noisy_partitioned(self):
        graph = generate_synthetic_view_graph(
            36, RandomNumberGenerator(5), edge_probability=0.3, noise_deg=2.0
        )
        config = RotationAveragingConfig(max_views_per_partition=12)
        estimator = PartitionedRotationEstimator(config)
        rotations = graph.identity_rotations()

        assert estimator.estimate_rotations(graph.view_pairs, rotations)
        assert np.median(errors_deg(rotations, graph.ground_truth)) < 2.0

    def test_small_graph_delegates(self):
        """Graphs below the partition size are solved in one piece"""
        graph = generate_synthetic_view_graph(10, RandomNumberGenerator(6))
        config = RotationAveragingConfig(max_views_per_partition=20)
        estimator = PartitionedRotationEstimator(config)
        rotations = graph.identity_rotations()

        assert estimator.estimate_rotations(graph.view_pairs, rotations)
        assert estimator.summary.num_clusters == 1
        assert estimator.summary.cluster_sizes == [10]
        assert np.max(errors_deg(rotations, graph.ground_truth)) < 1e-2
