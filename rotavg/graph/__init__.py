"""
View graph utilities: connected components and balanced partitioning
"""

from .graph_cut import (
    BalancedGraphPartitioner,
    PartitionGraph,
    PartitionResult,
    compute_normalized_min_graph_cut,
)
from .union_find import DisjointSetForest

__all__ = [
    "BalancedGraphPartitioner",
    "DisjointSetForest",
    "PartitionGraph",
    "PartitionResult",
    "compute_normalized_min_graph_cut",
]
