"""
Divide-and-conquer rotation averaging for large view graphs

The view graph is split with a balanced minimum cut, every cluster is solved
on its own with the hybrid pipeline, the per-cluster gauges are reconciled
through the cut edges and a final IRLS pass polishes the full solution.
"""

import logging
import math
from collections import deque
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Tuple

import numpy as np

from ..core.config import RotationAveragingConfig
from ..core.types import GlobalRotationMap, TwoViewGeometry, ViewPair
from ..graph.graph_cut import BalancedGraphPartitioner
from ..graph.union_find import DisjointSetForest
from ..utils.rotation import (
    angle_axis_to_rotation_matrix,
    chordal_mean,
    rotation_matrix_to_angle_axis,
)
from ..utils.timer import Timer
from .hybrid_rotation_estimator import (
    HybridRotationEstimator,
    RotationAveragingSummary,
    largest_connected_component,
    validate_view_pairs,
)
from .irls_rotation_local_refiner import IRLSRotationLocalRefiner, IRLSSummary


@dataclass
class PartitionedSummary:
    """Diagnostics of a partitioned rotation averaging run"""

    num_views: int = 0
    num_edges: int = 0
    num_parts: int = 1
    num_clusters: int = 1
    edge_cut: int = 0
    cluster_sizes: List[int] = field(default_factory=list)
    cluster_summaries: List[RotationAveragingSummary] = field(default_factory=list)
    irls_summary: Optional[IRLSSummary] = None
    total_time_ms: float = 0.0
    dropped_views: List[int] = field(default_factory=list)


class PartitionedRotationEstimator:
    """
    Rotation averaging over a partitioned view graph

    Graphs with at most config.max_views_per_partition views (or with
    partitioning disabled) are handed to HybridRotationEstimator unchanged.
    """

    def __init__(self, config: Optional[RotationAveragingConfig] = None):
        self.config = config or RotationAveragingConfig()
        self.logger = logging.getLogger(__name__)
        self.summary = PartitionedSummary()

    def estimate_rotations(
        self,
        view_pairs: Mapping[ViewPair, TwoViewGeometry],
        global_rotations: Optional[GlobalRotationMap] = None,
    ) -> bool:
        """
        Estimate global rotations for the largest connected component

        Args:
            view_pairs: Relative rotations keyed by (first, second), first < second
            global_rotations: Rotation map updated in place (created if None)

        Returns:
            True if every cluster solve and the final refinement succeeded
        """
        validate_view_pairs(view_pairs)
        if global_rotations is None:
            global_rotations = {}

        timer = Timer().start()
        self.summary = PartitionedSummary()

        component = largest_connected_component(view_pairs, list(global_rotations))
        max_views = self.config.max_views_per_partition
        if max_views is None or len(component) <= max_views:
            return self._solve_single(view_pairs, global_rotations, timer)

        component_set = set(component)
        pairs = {pair: geometry for pair, geometry in view_pairs.items() if pair[0] in component_set}
        all_views = set(global_rotations)
        for pair in view_pairs:
            all_views.update(pair)
        self.summary.dropped_views = sorted(all_views - component_set)
        self.summary.num_views = len(component)
        self.summary.num_edges = len(pairs)

        # Step 1: Balanced partition of the view graph
        num_parts = max(2, int(math.ceil(len(component) / max_views)))
        partitioner = BalancedGraphPartitioner(self.config.partition)
        result = partitioner.partition(
            list(pairs),
            [geometry.visibility_score for geometry in pairs.values()],
            num_parts,
        )
        self.summary.num_parts = num_parts
        self.summary.edge_cut = result.edge_cut

        # Step 2: Connected pieces of every part become clusters
        clusters = self._build_clusters(pairs, result.labels)
        self.summary.num_clusters = len(clusters)
        self.summary.cluster_sizes = [len(views) for views in clusters]
        self.logger.info(
            f"Partitioned {len(component)} views into {num_parts} parts / "
            f"{len(clusters)} clusters (edge cut {result.edge_cut})"
        )

        # Step 3: Solve every cluster independently
        rotations: Dict[int, np.ndarray] = {}
        view_to_cluster: Dict[int, int] = {}
        for cluster_id, views in enumerate(clusters):
            for view_id in views:
                view_to_cluster[view_id] = cluster_id
            cluster_rotations = self._solve_cluster(pairs, views, global_rotations)
            if cluster_rotations is None:
                self.logger.error(f"Rotation averaging failed on cluster {cluster_id}")
                return False
            rotations.update(cluster_rotations)

        # Step 4: Bring all clusters into one gauge
        self._align_clusters(pairs, clusters, view_to_cluster, rotations)

        # Step 5: Global refinement
        irls_refiner = IRLSRotationLocalRefiner(len(rotations), len(pairs), self.config.irls)
        if not irls_refiner.solve_irls(pairs, rotations):
            self.logger.error("Final IRLS refinement failed")
            return False
        self.summary.irls_summary = irls_refiner.summary

        global_rotations.update(rotations)
        timer.pause()
        self.summary.total_time_ms = timer.elapsed_ms()
        self.logger.info(
            f"Partitioned rotation averaging complete in {self.summary.total_time_ms:.2f} ms"
        )
        return True

    def _solve_single(
        self,
        view_pairs: Mapping[ViewPair, TwoViewGeometry],
        global_rotations: GlobalRotationMap,
        timer: Timer,
    ) -> bool:
        estimator = HybridRotationEstimator(self.config)
        success = estimator.estimate_rotations(view_pairs, global_rotations)
        timer.pause()

        hybrid_summary = estimator.summary
        self.summary.num_views = hybrid_summary.num_views
        self.summary.num_edges = hybrid_summary.num_edges
        self.summary.cluster_sizes = [hybrid_summary.num_views]
        self.summary.cluster_summaries = [hybrid_summary]
        self.summary.irls_summary = hybrid_summary.irls_summary
        self.summary.dropped_views = hybrid_summary.dropped_views
        self.summary.total_time_ms = timer.elapsed_ms()
        return success

    @staticmethod
    def _build_clusters(
        view_pairs: Mapping[ViewPair, TwoViewGeometry],
        labels: Mapping[int, int],
    ) -> List[List[int]]:
        """Connected components of the subgraphs induced by every label"""
        forest = DisjointSetForest()
        forest.init_with_nodes(sorted(labels))
        for view_id1, view_id2 in view_pairs:
            if labels[view_id1] == labels[view_id2]:
                forest.union(view_id1, view_id2)
        clusters = list(forest.get_components().values())
        return sorted(clusters, key=lambda views: (-len(views), views[0]))

    def _solve_cluster(
        self,
        view_pairs: Mapping[ViewPair, TwoViewGeometry],
        views: List[int],
        global_rotations: GlobalRotationMap,
    ) -> Optional[Dict[int, np.ndarray]]:
        if len(views) == 1:
            return {views[0]: np.zeros(3)}

        view_set = set(views)
        cluster_pairs = {
            pair: geometry
            for pair, geometry in view_pairs.items()
            if pair[0] in view_set and pair[1] in view_set
        }
        cluster_rotations = {
            view_id: np.asarray(global_rotations.get(view_id, np.zeros(3)), dtype=np.float64)
            for view_id in views
        }

        estimator = HybridRotationEstimator(self.config)
        if not estimator.estimate_rotations(cluster_pairs, cluster_rotations):
            return None
        self.summary.cluster_summaries.append(estimator.summary)
        return cluster_rotations

    def _align_clusters(
        self,
        view_pairs: Mapping[ViewPair, TwoViewGeometry],
        clusters: List[List[int]],
        view_to_cluster: Mapping[int, int],
        rotations: GlobalRotationMap,
    ) -> None:
        """
        Right-multiply every cluster by the rotation that agrees best with
        the cut edges to clusters aligned before it (breadth-first from the
        largest cluster)
        """
        cut_edges: Dict[int, List[Tuple[ViewPair, TwoViewGeometry]]] = {}
        cluster_neighbors: Dict[int, set] = {c: set() for c in range(len(clusters))}
        for pair, geometry in view_pairs.items():
            c1, c2 = view_to_cluster[pair[0]], view_to_cluster[pair[1]]
            if c1 == c2:
                continue
            cut_edges.setdefault(c1, []).append((pair, geometry))
            cut_edges.setdefault(c2, []).append((pair, geometry))
            cluster_neighbors[c1].add(c2)
            cluster_neighbors[c2].add(c1)

        aligned = {0}
        queue = deque([0])
        while queue:
            current = queue.popleft()
            for cluster_id in sorted(cluster_neighbors[current]):
                if cluster_id in aligned:
                    continue
                H = self._cluster_alignment(
                    cut_edges[cluster_id], cluster_id, view_to_cluster, aligned, rotations
                )
                for view_id in clusters[cluster_id]:
                    R = angle_axis_to_rotation_matrix(rotations[view_id])
                    rotations[view_id] = rotation_matrix_to_angle_axis(R @ H)
                aligned.add(cluster_id)
                queue.append(cluster_id)

        if len(aligned) != len(clusters):
            self.logger.warning(
                f"{len(clusters) - len(aligned)} clusters are not connected to the others"
            )

    @staticmethod
    def _cluster_alignment(
        edges: List[Tuple[ViewPair, TwoViewGeometry]],
        cluster_id: int,
        view_to_cluster: Mapping[int, int],
        aligned: set,
        rotations: GlobalRotationMap,
    ) -> np.ndarray:
        candidates = []
        for (view_id1, view_id2), geometry in edges:
            c1, c2 = view_to_cluster[view_id1], view_to_cluster[view_id2]
            R_12 = angle_axis_to_rotation_matrix(geometry.rotation_2)
            R_1 = angle_axis_to_rotation_matrix(rotations[view_id1])
            R_2 = angle_axis_to_rotation_matrix(rotations[view_id2])
            if c2 == cluster_id and c1 in aligned:
                candidates.append(R_2.T @ R_12 @ R_1)
            elif c1 == cluster_id and c2 in aligned:
                candidates.append(R_1.T @ R_12.T @ R_2)
        return chordal_mean(candidates)
