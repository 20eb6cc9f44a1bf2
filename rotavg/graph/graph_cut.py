"""
Balanced k-way minimum graph cut

Multilevel partitioning of a weighted undirected graph:
- Coarsening by heavy-edge matching
- Greedy graph-growing partition of the coarsest graph
- Uncoarsening with balancing and boundary refinement at every level

The number of refinement passes per level grows with log2 of the graph size
and with the number of parts.

Only moves with non-negative gain are applied during refinement, so the cut
never increases inside a refinement pass; balancing is the only step allowed
to trade cut weight for balance.
"""

import logging
import math
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from ..core.config import GraphPartitionOptions
from ..utils.random import RandomNumberGenerator


@dataclass
class CSRGraph:
    """Weighted graph in compressed adjacency form"""

    xadj: np.ndarray  # (V + 1,) offsets into adjncy
    adjncy: np.ndarray  # (2E,) neighbor indices
    adjwgt: np.ndarray  # (2E,) edge weights
    vwgt: np.ndarray  # (V,) vertex weights

    @property
    def num_vertices(self) -> int:
        return len(self.vwgt)

    @property
    def num_edges(self) -> int:
        return len(self.adjncy) // 2

    def neighbors(self, v: int) -> Tuple[np.ndarray, np.ndarray]:
        start, end = self.xadj[v], self.xadj[v + 1]
        return self.adjncy[start:end], self.adjwgt[start:end]

    @classmethod
    def from_adjacency(cls, adjacency: List[Dict[int, int]], vwgt: np.ndarray) -> "CSRGraph":
        xadj = np.zeros(len(adjacency) + 1, dtype=np.int64)
        adjncy: List[int] = []
        adjwgt: List[int] = []
        for v, neighbors in enumerate(adjacency):
            for u in sorted(neighbors):
                adjncy.append(u)
                adjwgt.append(neighbors[u])
            xadj[v + 1] = len(adjncy)
        return cls(
            xadj=xadj,
            adjncy=np.asarray(adjncy, dtype=np.int64),
            adjwgt=np.asarray(adjwgt, dtype=np.int64),
            vwgt=np.asarray(vwgt, dtype=np.int64),
        )


class PartitionGraph:
    """
    Weighted, undirected graph over arbitrary vertex ids

    Vertex ids are remapped to dense indices in first-seen order. Parallel
    edges are coalesced by summing weights and self loops are dropped.
    """

    def __init__(self, edges: Sequence[Tuple[int, int]], weights: Sequence[int]):
        if len(edges) != len(weights):
            raise ValueError(
                f"Number of edges ({len(edges)}) and weights ({len(weights)}) must match"
            )

        self.vertex_id_to_idx: Dict[int, int] = {}
        self.vertex_idx_to_id: Dict[int, int] = {}

        adjacency: List[Dict[int, int]] = []
        for (id1, id2), weight in zip(edges, weights):
            if weight <= 0:
                raise ValueError(f"Edge ({id1}, {id2}) has non-positive weight {weight}")
            idx1 = self._get_vertex_idx(id1, adjacency)
            idx2 = self._get_vertex_idx(id2, adjacency)
            if idx1 == idx2:
                continue
            adjacency[idx1][idx2] = adjacency[idx1].get(idx2, 0) + int(weight)
            adjacency[idx2][idx1] = adjacency[idx2].get(idx1, 0) + int(weight)

        self.csr = CSRGraph.from_adjacency(adjacency, np.ones(len(adjacency), dtype=np.int64))

    def _get_vertex_idx(self, vertex_id: int, adjacency: List[Dict[int, int]]) -> int:
        idx = self.vertex_id_to_idx.get(vertex_id)
        if idx is None:
            idx = len(self.vertex_id_to_idx)
            self.vertex_id_to_idx[vertex_id] = idx
            self.vertex_idx_to_id[idx] = vertex_id
            adjacency.append({})
        return idx

    def get_vertex_id(self, idx: int) -> int:
        return self.vertex_idx_to_id[idx]

    @property
    def num_vertices(self) -> int:
        return self.csr.num_vertices


@dataclass
class PartitionResult:
    """Labels and diagnostics of a k-way partition"""

    labels: Dict[int, int]
    num_parts: int
    edge_cut: int
    normalized_cut: float
    balance: float
    part_weights: List[int]
    max_part_weight: int

    # Cut after each refinement pass, one list per level (coarsest first)
    refinement_history: List[List[int]] = field(default_factory=list)


def compute_edge_cut(graph: CSRGraph, labels: np.ndarray) -> int:
    """Total weight of edges whose endpoints carry different labels"""
    src = np.repeat(np.arange(graph.num_vertices), np.diff(graph.xadj))
    crossing = labels[src] != labels[graph.adjncy]
    return int(graph.adjwgt[crossing].sum()) // 2


def compute_normalized_cut(graph: CSRGraph, labels: np.ndarray, num_parts: int) -> float:
    """Sum over parts of cut(part) / volume(part)"""
    src = np.repeat(np.arange(graph.num_vertices), np.diff(graph.xadj))
    src_labels = labels[src]
    crossing = src_labels != labels[graph.adjncy]
    cut = np.bincount(src_labels[crossing], weights=graph.adjwgt[crossing], minlength=num_parts)
    volume = np.bincount(src_labels, weights=graph.adjwgt, minlength=num_parts)
    nonempty = volume > 0
    return float(np.sum(cut[nonempty] / volume[nonempty]))


def compute_refinement_passes(num_vertices: int, num_parts: int, min_passes: int) -> int:
    """Refinement passes per level, growing with log2 of the graph size and the part count"""
    if num_vertices < 2:
        return min_passes
    return max(min_passes, int(math.ceil(math.log2(num_vertices))) + num_parts)


def compute_partition_balance(graph: CSRGraph, labels: np.ndarray, num_parts: int) -> float:
    """Heaviest part weight relative to a perfectly balanced part"""
    part_weights = np.bincount(labels, weights=graph.vwgt, minlength=num_parts)
    total = graph.vwgt.sum()
    if total == 0:
        return 1.0
    return float(part_weights.max() * num_parts / total)


class BalancedGraphPartitioner:
    """
    Multilevel k-way partitioner approximating a balanced minimum edge cut
    """

    def __init__(self, options: Optional[GraphPartitionOptions] = None):
        """
        Args:
            options: GraphPartitionOptions or None (uses defaults)
        """
        self.options = options or GraphPartitionOptions()
        self.logger = logging.getLogger(__name__)

    def partition(
        self,
        edges: Sequence[Tuple[int, int]],
        weights: Sequence[int],
        num_parts: int,
    ) -> PartitionResult:
        """
        Partition the graph given by edges and parallel weights

        Args:
            edges: Vertex id pairs
            weights: Positive integer weight per edge
            num_parts: Number of parts (>= 2)

        Returns:
            PartitionResult mapping every vertex id to a label in [0, num_parts)
        """
        if num_parts < 2:
            raise ValueError(f"num_parts must be >= 2, got {num_parts}")

        graph = PartitionGraph(edges, weights)
        if graph.num_vertices == 0:
            self.logger.warning("Graph cut requested on an empty graph")
            return PartitionResult({}, num_parts, 0, 0.0, 1.0, [0] * num_parts, 0)

        rng = RandomNumberGenerator(self.options.seed)
        fine = graph.csr
        total_weight = int(fine.vwgt.sum())
        max_part_weight = int(math.ceil(self.options.imbalance_tolerance * total_weight / num_parts))
        min_part_weight = int(math.floor(total_weight / (num_parts * self.options.imbalance_tolerance)))

        # Target size of the coarsest graph
        coarsen_to = max(int(fine.num_vertices / (40 * math.log2(num_parts))), 20 * num_parts)
        self.logger.debug(
            f"Partitioning {fine.num_vertices} vertices / {fine.num_edges} edges into "
            f"{num_parts} parts (coarsen to {coarsen_to})"
        )

        levels = self._coarsen(fine, coarsen_to, rng)
        coarsest = levels[-1][0] if levels else fine

        labels, history = self._initial_partition(
            coarsest, num_parts, max_part_weight, min_part_weight, rng
        )
        refinement_history = [history]

        # Uncoarsen, finest level last
        for level in range(len(levels) - 1, -1, -1):
            _, cmap = levels[level]
            finer = levels[level - 1][0] if level > 0 else fine
            labels = labels[cmap]
            self._balance(finer, labels, num_parts, max_part_weight)
            refinement_history.append(
                self._refine(finer, labels, num_parts, max_part_weight, min_part_weight, rng)
            )

        edge_cut = compute_edge_cut(fine, labels)
        normalized_cut = compute_normalized_cut(fine, labels, num_parts)
        balance = compute_partition_balance(fine, labels, num_parts)
        part_weights = np.bincount(labels, weights=fine.vwgt, minlength=num_parts).astype(int)

        self.logger.info(
            f"Graph cut: {num_parts} parts, edge cut {edge_cut}, "
            f"normalized cut {normalized_cut:.4f}, balance {balance:.3f}"
        )

        return PartitionResult(
            labels={graph.get_vertex_id(idx): int(label) for idx, label in enumerate(labels)},
            num_parts=num_parts,
            edge_cut=edge_cut,
            normalized_cut=normalized_cut,
            balance=balance,
            part_weights=part_weights.tolist(),
            max_part_weight=max_part_weight,
            refinement_history=refinement_history,
        )

    def _coarsen(
        self,
        graph: CSRGraph,
        coarsen_to: int,
        rng: RandomNumberGenerator,
    ) -> List[Tuple[CSRGraph, np.ndarray]]:
        """
        Heavy-edge matching until the graph is small enough

        Returns:
            List of (coarse graph, fine-to-coarse map), finest first
        """
        levels: List[Tuple[CSRGraph, np.ndarray]] = []
        current = graph
        while current.num_vertices > coarsen_to:
            coarse, cmap = self._match_and_contract(current, rng)
            if coarse.num_vertices >= current.num_vertices:
                break
            levels.append((coarse, cmap))
            # Matching no longer pays off
            if coarse.num_vertices > 0.9 * current.num_vertices:
                break
            current = coarse

        self.logger.debug(
            f"Coarsening: {len(levels)} levels, "
            f"{levels[-1][0].num_vertices if levels else graph.num_vertices} vertices at the coarsest"
        )
        return levels

    def _match_and_contract(
        self,
        graph: CSRGraph,
        rng: RandomNumberGenerator,
    ) -> Tuple[CSRGraph, np.ndarray]:
        n = graph.num_vertices
        match = np.full(n, -1, dtype=np.int64)

        for v in rng.permutation(n):
            if match[v] != -1:
                continue
            best, best_weight = v, -1
            neighbors, weights = graph.neighbors(v)
            for u, w in zip(neighbors, weights):
                if match[u] == -1 and w > best_weight:
                    best, best_weight = u, w
            match[v] = best
            match[best] = v

        cmap = np.full(n, -1, dtype=np.int64)
        num_coarse = 0
        for v in range(n):
            if cmap[v] == -1:
                cmap[v] = num_coarse
                cmap[match[v]] = num_coarse
                num_coarse += 1

        vwgt = np.zeros(num_coarse, dtype=np.int64)
        np.add.at(vwgt, cmap, graph.vwgt)

        adjacency: List[Dict[int, int]] = [defaultdict(int) for _ in range(num_coarse)]
        for v in range(n):
            cv = cmap[v]
            neighbors, weights = graph.neighbors(v)
            for u, w in zip(neighbors, weights):
                cu = cmap[u]
                if cu != cv:
                    adjacency[cv][int(cu)] += int(w)

        return CSRGraph.from_adjacency(adjacency, vwgt), cmap

    def _initial_partition(
        self,
        graph: CSRGraph,
        num_parts: int,
        max_part_weight: int,
        min_part_weight: int,
        rng: RandomNumberGenerator,
    ) -> Tuple[np.ndarray, List[int]]:
        """Best of several greedy graph-growing trials on the coarsest graph"""
        best_labels, best_history, best_key = None, [], None
        for trial in range(self.options.num_initial_trials):
            labels = self._grow_partition(graph, num_parts, rng)
            self._balance(graph, labels, num_parts, max_part_weight)
            history = self._refine(graph, labels, num_parts, max_part_weight, min_part_weight, rng)
            key = (compute_edge_cut(graph, labels), compute_partition_balance(graph, labels, num_parts))
            self.logger.debug(f"Initial partition trial {trial}: cut {key[0]}, balance {key[1]:.3f}")
            if best_key is None or key < best_key:
                best_labels, best_history, best_key = labels, history, key
        return best_labels, best_history

    def _grow_partition(
        self,
        graph: CSRGraph,
        num_parts: int,
        rng: RandomNumberGenerator,
    ) -> np.ndarray:
        """Grow parts one at a time from random seeds along the heaviest connections"""
        n = graph.num_vertices
        labels = np.full(n, -1, dtype=np.int64)
        target = graph.vwgt.sum() / num_parts

        for part in range(num_parts - 1):
            connection = np.zeros(n)
            part_weight = 0
            while part_weight < target:
                unassigned = labels == -1
                if not unassigned.any():
                    break
                candidates = np.where(unassigned, connection, -1.0)
                v = int(np.argmax(candidates))
                if candidates[v] <= 0.0:
                    # Frontier exhausted, start from a new random seed
                    free = np.flatnonzero(unassigned)
                    v = int(free[rng.random_integer(0, len(free) - 1)])

                overshoot = part_weight + graph.vwgt[v] - target
                if part_weight > 0 and overshoot > target - part_weight:
                    break

                labels[v] = part
                part_weight += graph.vwgt[v]
                neighbors, weights = graph.neighbors(v)
                connection[neighbors] += weights

        labels[labels == -1] = num_parts - 1
        return labels

    def _balance(
        self,
        graph: CSRGraph,
        labels: np.ndarray,
        num_parts: int,
        max_part_weight: int,
    ) -> None:
        """Move vertices out of overweight parts, preferring the smallest cut increase"""
        part_weights = np.bincount(labels, weights=graph.vwgt, minlength=num_parts)
        while part_weights.max() > max_part_weight:
            source = int(np.argmax(part_weights))
            best = None  # (gain, -target weight, vertex, target)
            for v in np.flatnonzero(labels == source):
                connection = self._part_connection(graph, labels, v)
                internal = connection.get(source, 0)
                for target in range(num_parts):
                    if target == source or part_weights[target] + graph.vwgt[v] > max_part_weight:
                        continue
                    key = (connection.get(target, 0) - internal, -part_weights[target])
                    if best is None or key > best[0]:
                        best = (key, int(v), target)

            if best is None:
                self.logger.debug("Balancing stopped: no feasible move at this level")
                return

            _, v, target = best
            labels[v] = target
            part_weights[source] -= graph.vwgt[v]
            part_weights[target] += graph.vwgt[v]

    def _refine(
        self,
        graph: CSRGraph,
        labels: np.ndarray,
        num_parts: int,
        max_part_weight: int,
        min_part_weight: int,
        rng: RandomNumberGenerator,
    ) -> List[int]:
        """
        Greedy boundary refinement

        Returns:
            Edge cut before refinement followed by the cut after each pass
        """
        part_weights = np.bincount(labels, weights=graph.vwgt, minlength=num_parts)
        cut = compute_edge_cut(graph, labels)
        history = [cut]

        max_passes = compute_refinement_passes(
            graph.num_vertices, num_parts, self.options.max_refinement_passes
        )
        for _ in range(max_passes):
            num_moves = 0
            for v in rng.permutation(graph.num_vertices):
                source = labels[v]
                vertex_weight = graph.vwgt[v]
                if part_weights[source] - vertex_weight < min_part_weight:
                    continue

                connection = self._part_connection(graph, labels, v)
                internal = connection.get(source, 0)
                best_gain, best_target = None, None
                for target, external in connection.items():
                    if target == source or part_weights[target] + vertex_weight > max_part_weight:
                        continue
                    gain = external - internal
                    improves_balance = part_weights[target] + vertex_weight < part_weights[source]
                    if gain < 0 or (gain == 0 and not improves_balance):
                        continue
                    if (best_gain is None or gain > best_gain or
                            (gain == best_gain and part_weights[target] < part_weights[best_target])):
                        best_gain, best_target = gain, target

                if best_target is None:
                    continue

                labels[v] = best_target
                part_weights[source] -= vertex_weight
                part_weights[best_target] += vertex_weight
                cut -= best_gain
                num_moves += 1

            history.append(cut)
            if num_moves == 0:
                break

        return history

    @staticmethod
    def _part_connection(graph: CSRGraph, labels: np.ndarray, v: int) -> Dict[int, int]:
        """Edge weight from v into every part it touches"""
        connection: Dict[int, int] = defaultdict(int)
        neighbors, weights = graph.neighbors(v)
        for u, w in zip(neighbors, weights):
            connection[int(labels[u])] += int(w)
        return connection


def compute_normalized_min_graph_cut(
    edges: Sequence[Tuple[int, int]],
    weights: Sequence[int],
    num_parts: int,
    options: Optional[GraphPartitionOptions] = None,
) -> Dict[int, int]:
    """
    Convenience function returning only the vertex id -> label mapping

    Args:
        edges: Vertex id pairs
        weights: Positive integer weight per edge
        num_parts: Number of parts (>= 2)
        options: Optional partitioner configuration

    Returns:
        Mapping from vertex id to label in [0, num_parts)
    """
    partitioner = BalancedGraphPartitioner(options)
    return partitioner.partition(edges, weights, num_parts).labels
