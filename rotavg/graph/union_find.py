"""
Disjoint-set forest (union-find)

Tracks the connected components of a growing edge set. Used to validate
view graphs and to split them into independently solvable pieces.
"""

from collections import defaultdict
from typing import Dict, Hashable, Iterable, List, Set


class DisjointSetForest:
    """
    Union by rank with path compression over arbitrary hashable node ids
    """

    def __init__(self, num_nodes: int = 0):
        self._parents: Dict[Hashable, Hashable] = {}
        self._ranks: Dict[Hashable, int] = {}
        if num_nodes > 0:
            self.init(num_nodes)

    def init(self, num_nodes: int) -> None:
        """Reset to num_nodes singleton sets over 0..num_nodes-1"""
        self.init_with_nodes(range(num_nodes))

    def init_with_nodes(self, nodes: Iterable[Hashable]) -> None:
        """Reset to singleton sets keyed by the given node ids"""
        self._parents = {node: node for node in nodes}
        self._ranks = {node: 0 for node in self._parents}

    def find_root(self, node: Hashable) -> Hashable:
        """
        Representative of the set containing node

        Raises:
            KeyError: If node was never registered
        """
        if node not in self._parents:
            raise KeyError(f"Node {node} is not part of the disjoint-set forest")

        root = node
        while self._parents[root] != root:
            root = self._parents[root]

        # Path compression
        while self._parents[node] != root:
            next_node = self._parents[node]
            self._parents[node] = root
            node = next_node

        return root

    def union(self, node1: Hashable, node2: Hashable) -> None:
        """Merge the sets containing node1 and node2"""
        root1 = self.find_root(node1)
        root2 = self.find_root(node2)
        if root1 == root2:
            return

        rank1 = self._ranks[root1]
        rank2 = self._ranks[root2]
        if rank1 < rank2:
            self._parents[root1] = root2
        elif rank1 > rank2:
            self._parents[root2] = root1
        else:
            self._parents[root2] = root1
            self._ranks[root1] += 1

    def get_connected_components(self) -> Set[Hashable]:
        """Set of the current roots, one per component"""
        return {self.find_root(node) for node in self._parents}

    def get_components(self) -> Dict[Hashable, List[Hashable]]:
        """Mapping from root to the sorted members of its component"""
        components: Dict[Hashable, List[Hashable]] = defaultdict(list)
        for node in self._parents:
            components[self.find_root(node)].append(node)
        return {root: sorted(members) for root, members in components.items()}

    def largest_component(self) -> List[Hashable]:
        """Members of the largest component (ties broken by smallest member)"""
        components = self.get_components()
        if not components:
            return []
        return min(components.values(), key=lambda members: (-len(members), members[0]))

    def get_parents(self) -> Dict[Hashable, Hashable]:
        return dict(self._parents)

    def get_ranks(self) -> Dict[Hashable, int]:
        return dict(self._ranks)

    def __contains__(self, node: Hashable) -> bool:
        return node in self._parents

    def __len__(self) -> int:
        return len(self._parents)
