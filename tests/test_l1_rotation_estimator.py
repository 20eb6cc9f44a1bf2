"""
Unit tests for tangent-space L1 rotation refinement
"""

import pytest
import numpy as np
from pathlib import Path
import sys

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from rotavg.core.config import L1RefinerOptions
from rotavg.rotation_averaging.l1_rotation_global_estimator import L1RotationGlobalEstimator
from rotavg.utils.random import RandomNumberGenerator
from rotavg.utils.rotation import rotation_errors
from rotavg.utils.synthetic import generate_synthetic_view_graph, perturb_rotations


def mean_error(rotations, ground_truth):
    return float(np.mean(list(rotation_errors(rotations, ground_truth).values())))


class TestL1RotationGlobalEstimator:
    """Test the L1 refinement stage"""

    def test_noise_free_improves(self):
        """Perturbed ground truth moves back towards it"""
        rng = RandomNumberGenerator(0)
        graph = generate_synthetic_view_graph(12, rng, edge_probability=0.5)
        rotations = perturb_rotations(graph.ground_truth, rng, 5.0)
        before = mean_error(rotations, graph.ground_truth)

        estimator = L1RotationGlobalEstimator()
        assert estimator.estimate_rotations(graph.view_pairs, rotations)

        assert mean_error(rotations, graph.ground_truth) < 0.5 * before
        assert 1 <= estimator.num_iterations <= L1RefinerOptions().max_num_l1_iterations

    def test_iteration_limit(self):
        rng = RandomNumberGenerator(1)
        graph = generate_synthetic_view_graph(8, rng)
        rotations = perturb_rotations(graph.ground_truth, rng, 5.0)

        options = L1RefinerOptions(max_num_l1_iterations=2, step_convergence_threshold=0.0)
        estimator = L1RotationGlobalEstimator(options)
        assert estimator.estimate_rotations(graph.view_pairs, rotations)
        assert estimator.num_iterations == 2

    def test_isolated_view_fails(self):
        """The L1 solver cannot be built for a singular system"""
        rng = RandomNumberGenerator(2)
        graph = generate_synthetic_view_graph(6, rng)
        rotations = graph.identity_rotations()
        rotations[99] = np.zeros(3)

        assert not L1RotationGlobalEstimator().estimate_rotations(graph.view_pairs, rotations)

    def test_empty_input(self):
        assert not L1RotationGlobalEstimator().estimate_rotations({}, {})

    def test_options_from_dict(self):
        options = L1RefinerOptions(l1_solver={"max_num_iterations": 20, "rho": 2.0})
        assert options.l1_solver.max_num_iterations == 20
        assert options.l1_solver.rho == 2.0
